"""Monitoring: webhook notifications for automation events."""
