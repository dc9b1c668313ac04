"""Apply-flow handlers used by the platform adapters."""

from .linkedin_easy_apply import LinkedInEasyApply, FormField

__all__ = ["LinkedInEasyApply", "FormField"]
