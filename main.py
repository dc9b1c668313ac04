#!/usr/bin/env python3
"""
Job Engine - Main Entry Point

Command-line front end for the job-board automation engine.

Usage:
    # Import a search profile
    python main.py import-profile profiles/python-remote.yaml

    # Extract listings for one profile (log in by hand when prompted)
    python main.py run --profile python-remote

    # Extract for every enabled profile on one platform
    python main.py run-all --platform linkedin

    # Review, approve, apply
    python main.py jobs --status reviewed
    python main.py approve <job-id> <job-id>
    python main.py apply --platform linkedin
"""

import sys
import asyncio
import argparse
import logging
from contextlib import asynccontextmanager
from typing import Optional

import aiosqlite
import yaml
from dotenv import load_dotenv

# Load environment variables before the engine config is built
load_dotenv()
from playwright.async_api import async_playwright

from ai import AnswerGenerator, CompletionService, JobAnalyzer, ProposalGenerator
from core.config import get_config
from core.database import Database
from core.errors import DatabaseError, EngineError
from core.events import EventBus, EventType
from core.logging_config import setup_logging
from core.models import ApplicationDefaults, JobStatus, PlatformType, SearchCriteria, SearchProfile
from monitoring.notifications import Notifier

logger = logging.getLogger(__name__)


def check_environment():
    """Warn about optional settings that are missing."""
    for missing in get_config().validate():
        logger.warning(f"Not configured: {missing}")


def load_profile_yaml(path: str) -> SearchProfile:
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    return SearchProfile(
        id=str(data["id"]),
        name=data.get("name", data["id"]),
        platform=PlatformType(data["platform"]),
        enabled=data.get("enabled", True),
        search=SearchCriteria(**(data.get("search") or {})),
        application=ApplicationDefaults(**(data.get("application") or {})),
    )


def load_candidate(path: Optional[str]) -> Optional[dict]:
    if not path:
        return None
    with open(path) as f:
        return yaml.safe_load(f)


@asynccontextmanager
async def browser_page():
    """Persistent Chromium context so logins survive between runs."""
    cfg = get_config()
    async with async_playwright() as p:
        context = await p.chromium.launch_persistent_context(cfg.USER_DATA_DIR, headless=cfg.HEADLESS)
        try:
            page = context.pages[0] if context.pages else await context.new_page()
            page.set_default_timeout(cfg.BROWSER_TIMEOUT_MS)
            yield page
        finally:
            await context.close()


async def log_events(bus: EventBus, runner):
    """Log bus events and relay screening questions to stdin."""
    while True:
        event = await bus.get()
        if event.type == EventType.AUTOMATION_STATUS:
            action = event.payload.get("current_action")
            if action:
                logger.info(f"[{event.payload['state']}] {action}")
        elif event.type == EventType.JOBS_NEW:
            logger.info(f"Job: {event.payload['title']} @ {event.payload['company']} ({event.payload['status']})")
        elif event.type == EventType.APPLICATION_PROGRESS:
            logger.info(f"  step {event.payload['step']}: {event.payload['current_action']}")
        elif event.type == EventType.APPLICATION_PAUSE_QUESTION:
            answer = await asyncio.to_thread(input, f"\n❓ {event.payload['question']}\n> ")
            runner.resolve_answer(answer.strip() or None)
        elif event.type == EventType.APPLICATION_COMPLETE:
            mark = "✅" if event.payload["success"] else "❌"
            logger.info(f"{mark} Application {event.payload['job_id']}: {event.payload.get('error') or 'done'}")


async def run_automation(args, db: Database):
    from core.extraction_runner import ExtractionRunner

    completion = CompletionService()
    candidate = load_candidate(args.candidate)
    bus = EventBus()
    platform = PlatformType(args.platform) if args.platform else None

    async with browser_page() as page:
        runner = ExtractionRunner(
            db,
            page,
            platform=platform,
            events=bus,
            notifier=Notifier(),
            analyzer=JobAnalyzer(completion, candidate),
            answer_generator=AnswerGenerator(completion, candidate),
            proposal_generator=ProposalGenerator(completion, candidate),
        )
        listener = asyncio.create_task(log_events(bus, runner))
        try:
            if args.command == "run":
                await runner.run_profile(args.profile)
            elif args.command == "run-all":
                await runner.run_all_enabled()
            elif args.command == "apply":
                await runner.apply_to_approved()
            elif args.command == "refetch":
                result = await runner.refetch_descriptions()
                print(f"Updated {result['updated']}/{result['total']} descriptions")
        except KeyboardInterrupt:
            runner.stop()
        finally:
            listener.cancel()

        status = runner.get_status()
        print(
            f"\nState: {status.state.value} | Extracted: {status.jobs_extracted} | "
            f"Analyzed: {status.jobs_analyzed} | Applied: {status.applications_submitted}"
        )
        for error in status.errors:
            print(f"  ⚠️  {error}")


async def list_jobs(args, db: Database):
    status = JobStatus(args.status) if args.status else None
    platform = PlatformType(args.platform) if args.platform else None
    jobs = await db.list_jobs(status=status, platform=platform, limit=args.limit)
    for job in jobs:
        score = f"{round(job.match_score * 100)}%" if job.match_score is not None else "  - "
        print(f"{job.id}  {job.status.value:<9} {score:>4}  {job.title} @ {job.company}")
    print(f"\n{len(jobs)} jobs")


async def approve_jobs(args, db: Database):
    for job_id in args.job_ids:
        job = await db.get_job(job_id)
        if not job:
            print(f"❌ Unknown job: {job_id}")
            continue
        await db.update_status(job_id, JobStatus.APPROVED)
        print(f"✅ Approved: {job.title} @ {job.company}")


async def dispatch(args):
    db = Database(get_config().DATABASE_PATH)
    try:
        await db.init()

        if args.command == "import-profile":
            profile = load_profile_yaml(args.file)
            await db.insert_profile(profile)
            print(f"✅ Imported profile {profile.id} ({profile.platform.value})")
        elif args.command == "jobs":
            await list_jobs(args, db)
        elif args.command == "approve":
            await approve_jobs(args, db)
        elif args.command == "disable-apply":
            await db.set_setting("apply_disabled", "1")
            print("Auto-apply disabled")
        elif args.command == "enable-apply":
            await db.set_setting("apply_disabled", "0")
            print("Auto-apply enabled")
        else:
            await run_automation(args, db)
    except aiosqlite.Error as e:
        raise DatabaseError(f"Database error: {e}") from e


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Job Engine - paced job-board extraction and application automation"
    )
    platforms = [p.value for p in PlatformType]

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--platform", choices=platforms, help="Limit to one platform")

    browser = argparse.ArgumentParser(add_help=False, parents=[common])
    browser.add_argument("--candidate", help="Candidate profile YAML used for AI analysis and answers")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    run_parser = subparsers.add_parser("run", parents=[browser], help="Extract listings for one profile")
    run_parser.add_argument("--profile", required=True, help="Search profile id")

    subparsers.add_parser("run-all", parents=[browser], help="Extract for all enabled profiles")
    subparsers.add_parser("apply", parents=[browser], help="Apply to approved jobs")
    subparsers.add_parser("refetch", parents=[browser], help="Re-fetch missing descriptions")

    import_parser = subparsers.add_parser("import-profile", parents=[common], help="Import a search profile")
    import_parser.add_argument("file", help="Profile YAML file")

    jobs_parser = subparsers.add_parser("jobs", parents=[common], help="List stored jobs")
    jobs_parser.add_argument("--status", choices=[s.value for s in JobStatus])
    jobs_parser.add_argument("--limit", type=int, default=100)

    approve_parser = subparsers.add_parser("approve", parents=[common], help="Approve jobs for applying")
    approve_parser.add_argument("job_ids", nargs="+", metavar="JOB_ID")

    subparsers.add_parser("disable-apply", parents=[common], help="Turn auto-apply off")
    subparsers.add_parser("enable-apply", parents=[common], help="Turn auto-apply on")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    setup_logging()
    check_environment()

    try:
        asyncio.run(dispatch(args))
    except EngineError as e:
        logger.error(f"{e.code}: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted")


if __name__ == "__main__":
    main()
