#!/usr/bin/env python3
"""
Extraction Runner - orchestrates extraction, analysis and applications.

One runner drives one Playwright page. It owns the automation state
machine (idle / running / paused / error), walks search profiles page by
page through the platform adapters, persists new listings, analyzes them
and applies to approved jobs. Every detail extraction and apply attempt
goes through the rate limiter and the circuit breaker.

Usage:
    runner = ExtractionRunner(db, page, events=bus, notifier=notifier)
    await runner.run_profile(profile_id)
    await runner.apply_to_approved()
"""

import asyncio
import math
import time
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from playwright.async_api import Page

from adapters import PlatformAdapter, get_adapter
from .circuit_breaker import CircuitBreaker
from .config import EngineConfig, get_config
from .database import Database
from .errors import AuthenticationError, AutomationError, CircuitOpenError, ProfileNotFoundError
from .events import EventBus, EventType
from .human_behavior import HumanBehavior
from .models import (
    ApplicationProgress,
    AutomationState,
    AutomationStatus,
    JobListing,
    JobStatus,
    ListingCard,
    PlatformType,
    SearchProfile,
    utc_now_iso,
)
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

EXTRACTION_TRIPPED = "Too many consecutive failures, extraction paused"
APPLICATIONS_TRIPPED = "Too many consecutive failures, applications stopped"


def _collapse_repeated_prefix(title: str) -> str:
    if len(title) < 10:
        return title

    words = title.split()
    if len(words) < 4:
        return title

    for n in range(len(words) // 3, math.ceil(len(words) / 2) + 1):
        prefix = " ".join(words[:n])
        rest = " ".join(words[n:])
        if rest.startswith(prefix):
            return rest

    return title


def deduplicate_title(raw: str) -> str:
    """
    Collapse titles whose leading words are repeated.

    Nested spans in listing markup make inner text come back as
    "Title Title" or "Title Title with suffix"; the later, complete copy
    is kept. Repeats are collapsed until nothing changes.
    """
    title = raw.strip()
    while True:
        collapsed = _collapse_repeated_prefix(title)
        if collapsed == title:
            return title
        title = collapsed


class QuestionChannel:
    """
    Hands one screening question at a time to the user and waits for the answer.

    The question is emitted as ``application:pause-question``; ``resolve``
    completes it. Unanswered questions resolve to None after ``timeout``
    seconds (never, if ``timeout`` is None) or when ``cancel`` is called.
    """

    def __init__(self, events: Optional[EventBus] = None, timeout: Optional[float] = 300.0):
        self.events = events
        self.timeout = timeout
        self._lock = asyncio.Lock()
        self._future: Optional[asyncio.Future] = None

    @property
    def pending(self) -> bool:
        return self._future is not None and not self._future.done()

    async def ask(self, question: str, job_id: Optional[str] = None) -> Optional[str]:
        async with self._lock:
            self._future = asyncio.get_running_loop().create_future()
            if self.events:
                self.events.emit(EventType.APPLICATION_PAUSE_QUESTION, {"question": question, "job_id": job_id})
            try:
                return await asyncio.wait_for(self._future, self.timeout)
            except asyncio.TimeoutError:
                logger.warning(f"No answer within {self.timeout}s, skipping question: {question}")
                return None
            finally:
                self._future = None

    def resolve(self, answer: Optional[str]) -> bool:
        """Deliver ``answer`` to the outstanding question. False if none is waiting."""
        if not self.pending:
            return False
        self._future.set_result(answer)
        return True

    def cancel(self):
        self.resolve(None)


class ExtractionRunner:
    """
    Drives extraction and application runs for one browser page.

    Adapters are created once per platform and reused for the lifetime of
    the runner so each platform's selector healer keeps its session state.
    """

    def __init__(
        self,
        db: Database,
        page: Page,
        *,
        platform: Optional[PlatformType] = None,
        events: Optional[EventBus] = None,
        notifier=None,
        analyzer=None,
        answer_generator=None,
        proposal_generator=None,
        adapter_factory: Callable[..., PlatformAdapter] = get_adapter,
        behavior: Optional[HumanBehavior] = None,
        rate_limiter: Optional[RateLimiter] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        config: Optional[EngineConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.db = db
        self.page = page
        self.platform = platform
        self.config = config or get_config()
        self.events = events or EventBus()
        self.notifier = notifier
        self.analyzer = analyzer
        self.answer_generator = answer_generator
        self.proposal_generator = proposal_generator
        self.adapter_factory = adapter_factory
        self.behavior = behavior or HumanBehavior(self.config)
        self.rate_limiter = rate_limiter or RateLimiter(self.config.MAX_ACTIONS_PER_MINUTE)
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            self.config.CIRCUIT_FAILURE_THRESHOLD,
            self.config.CIRCUIT_RESET_TIMEOUT_SECONDS,
        )
        self.questions = QuestionChannel(self.events, self.config.QUESTION_TIMEOUT_SECONDS)
        self._sleep = sleep
        self._clock = clock

        self.status = AutomationStatus()
        self._running = False
        self._resumed = asyncio.Event()
        self._resumed.set()
        self._session_started = clock()
        self._adapters: Dict[PlatformType, PlatformAdapter] = {}

    # === Control ===

    @property
    def is_running(self) -> bool:
        return self._running

    def pause(self):
        if not self._running:
            return
        logger.info("Pausing automation")
        self._resumed.clear()
        self._update_status(AutomationState.PAUSED, "Paused by user")

    def resume(self):
        if not self._running:
            return
        logger.info("Resuming automation")
        self._resumed.set()
        self._update_status(AutomationState.RUNNING, "Resumed")

    def stop(self):
        logger.info("Stopping automation")
        self._running = False
        self._resumed.set()
        self.questions.cancel()
        self._update_status(AutomationState.IDLE, None)

    def get_status(self) -> AutomationStatus:
        self.status.actions_per_minute = self.rate_limiter.count()
        return self.status.snapshot()

    def resolve_answer(self, answer: Optional[str]) -> bool:
        return self.questions.resolve(answer)

    # === Runs ===

    async def run_profile(self, profile_id: str):
        """Extract listings for one search profile, then analyze the new ones."""
        profile = await self.db.get_profile(profile_id)
        if not profile:
            raise ProfileNotFoundError(profile_id)

        self._begin(f"Starting extraction: {profile.name}")
        try:
            adapter = self._get_adapter(profile.platform)
            if not await self._ensure_authenticated(adapter):
                if not self._running:
                    return
                raise AuthenticationError(
                    f"Not authenticated on {profile.platform.value}. Please log in first.",
                    profile.platform.value,
                )
            if await self._extract_from_profile(profile, adapter):
                await self._auto_analyze(profile.id)
        except Exception as e:
            self._fail(e, "Extraction failed")
        finally:
            await self._finish(notify_session=True)

    async def run_all_enabled(self):
        """Run every enabled profile (of this runner's platform, if set) in turn."""
        profiles = await self.db.list_enabled_profiles(self.platform)
        if not profiles:
            logger.info("No enabled profiles to run")
            return

        self._begin("Running all enabled profiles")
        try:
            for index, profile in enumerate(profiles):
                if not await self._checkpoint():
                    break

                self._set_action(f"Extracting: {profile.name}")
                adapter = self._get_adapter(profile.platform)
                if not await self._ensure_authenticated(adapter):
                    if not self._running:
                        break
                    logger.warning(f"Login timeout for {profile.platform.value}, skipping {profile.name}")
                    self.status.errors.append(
                        f"Skipped {profile.name}: not logged in to {profile.platform.value}"
                    )
                    continue

                if not await self._extract_from_profile(profile, adapter):
                    break
                await self._auto_analyze(profile.id)

                if self._running and index < len(profiles) - 1:
                    await self.behavior.between_applications()
        except Exception as e:
            self._fail(e, "Run all failed")
        finally:
            await self._finish(notify_session=True)

    async def apply_to_approved(self):
        """Apply to approved jobs, up to the per-session application cap."""
        if await self.db.get_setting("apply_disabled") == "1":
            logger.info("Auto-apply is disabled, skipping application batch")
            return

        jobs = await self.db.list_jobs(status=JobStatus.APPROVED, platform=self.platform)
        if not jobs:
            logger.info("No approved jobs to apply to")
            return

        self._begin(f"Applying to {len(jobs)} jobs")
        applied = 0
        try:
            for job in jobs:
                if not await self._checkpoint():
                    break
                if applied >= self.config.MAX_APPLICATIONS_PER_SESSION:
                    logger.info("Session application limit reached")
                    break
                if not await self._apply_to_job(job):
                    break
                applied = self.status.applications_submitted

                if self._running:
                    await self.behavior.between_applications()

            logger.info(f"Application batch complete: {applied}/{len(jobs)} applied")
        except Exception as e:
            self._fail(e, "Apply batch failed")
        finally:
            await self._finish()

    async def refetch_descriptions(self) -> Dict[str, int]:
        """Re-extract details for stored jobs whose description is empty."""
        jobs = await self.db.list_missing_description(self.platform)
        if not jobs:
            logger.info("No jobs with missing descriptions")
            return {"updated": 0, "total": 0}

        logger.info(f"Re-fetching descriptions for {len(jobs)} jobs")
        self._begin(f"Re-fetching descriptions: 0/{len(jobs)}", reset=False)
        updated = 0
        try:
            for index, job in enumerate(jobs, 1):
                if not await self._checkpoint():
                    break
                self._set_action(f"Re-fetching descriptions: {index}/{len(jobs)} ({job.title})")
                try:
                    if await self._refetch_job(job):
                        updated += 1
                except Exception as e:
                    logger.warning(f"Failed to re-fetch description for {job.title}: {e}")
        finally:
            await self._finish()

        logger.info(f"Re-fetch complete: {updated}/{len(jobs)} descriptions updated")
        return {"updated": updated, "total": len(jobs)}

    # === Extraction ===

    async def _extract_from_profile(self, profile: SearchProfile, adapter: PlatformAdapter) -> bool:
        """Walk the profile's search pages. Returns False when the run must not go on."""
        search_url = adapter.build_search_url(profile)
        logger.info(f"Navigating to search: {search_url}")
        self._set_action(f"Searching: {', '.join(profile.search.keywords)}")
        await self.page.goto(search_url, wait_until="domcontentloaded")
        await self.behavior.delay(2, 4)

        seen = set()
        extracted_before = self.status.jobs_extracted
        for page_num in range(1, self.config.MAX_SEARCH_PAGES + 1):
            if not await self._checkpoint() or self._session_exhausted():
                break

            if page_num > 1:
                next_url = adapter.build_search_url(profile, page_num)
                logger.info(f"Navigating to page {page_num}: {next_url}")
                await self.page.goto(next_url, wait_until="domcontentloaded")
                await self.behavior.delay(2, 4)
                if not await self._checkpoint():
                    break

            self._set_action(f"Page {page_num}: extracting listings")
            cards = await adapter.extract_listings(self.page)
            logger.info(f"Found {len(cards)} listings on page {page_num}")
            if not cards:
                logger.info("No listings found, stopping pagination")
                break

            for card in cards:
                if not await self._checkpoint() or self._session_exhausted():
                    break
                if not card.external_id or card.external_id in seen:
                    continue
                seen.add(card.external_id)

                if await self.db.job_exists(card.external_id, profile.platform):
                    logger.info(f"Skipping duplicate: {card.title} ({card.external_id})")
                    continue

                if not await self._extract_listing(profile, adapter, card):
                    return False

        logger.info(
            f"Extraction complete for {profile.name}: "
            f"{self.status.jobs_extracted - extracted_before} jobs"
        )
        return True

    async def _extract_listing(self, profile: SearchProfile, adapter: PlatformAdapter, card: ListingCard) -> bool:
        """Fetch details for one card and persist it.

        Returns False when extraction must stop: the circuit breaker tripped
        or the run was stopped while waiting for the rate limiter.
        """
        self._set_action(f"Extracting: {card.title}")
        await self.rate_limiter.acquire()
        if not await self._checkpoint():
            return False

        async def fetch_details():
            await self.behavior.delay(1.5, 3)
            return await adapter.extract_job_details(self.page, card.url)

        try:
            details = await self.circuit_breaker.execute(fetch_details)
        except CircuitOpenError:
            logger.warning("Circuit breaker open, aborting extraction")
            self.status.errors.append(EXTRACTION_TRIPPED)
            self._update_status(AutomationState.ERROR, "Too many failures, extraction paused")
            await self._notify("notify_circuit_breaker_tripped")
            return False
        except Exception as e:
            logger.warning(f"Failed to extract details for {card.title}: {e}")
            await self._save_job(self._job_from_card(profile, card))
            return True

        job = self._job_from_card(profile, card)
        job.title = deduplicate_title(details.title or card.title)
        job.company = details.company or card.company
        job.salary = details.salary
        job.description = details.description or card.snippet
        if details.posted_date:
            job.posted_date = details.posted_date

        if await self._save_job(job):
            await self.behavior.between_listings()
            await self.behavior.occasional_idle()
        return True

    def _job_from_card(self, profile: SearchProfile, card: ListingCard) -> JobListing:
        return JobListing(
            external_id=card.external_id,
            platform=profile.platform,
            profile_id=profile.id,
            url=card.url or self.page.url,
            title=deduplicate_title(card.title),
            company=card.company,
            location=card.location,
            job_type=profile.search.job_type[0] if profile.search.job_type else "full-time",
            description=card.snippet,
            posted_date=utc_now_iso(),
            easy_apply=card.easy_apply,
            status=JobStatus.NEW,
        )

    async def _save_job(self, job: JobListing) -> bool:
        try:
            job_id = await self.db.insert_job(job)
        except Exception as e:
            logger.error(f"Failed to save job {job.title}: {e}")
            return False
        if job_id is None:
            logger.info(f"Job already stored, skipping: {job.title} ({job.external_id})")
            return False

        self.status.jobs_extracted += 1
        logger.info(f"Saved job: {job.title} @ {job.company}")
        self.events.emit(EventType.JOBS_NEW, job.to_dict())
        self._send_status()
        return True

    def _session_exhausted(self) -> bool:
        if self.status.jobs_extracted >= self.config.MAX_EXTRACTIONS_PER_SESSION:
            logger.info("Extraction limit reached for session")
            return True
        if self._clock() - self._session_started > self.config.SESSION_DURATION_MAX_MINUTES * 60:
            logger.info("Session duration limit reached")
            return True
        return False

    # === Analysis ===

    async def _auto_analyze(self, profile_id: str):
        if not self.analyzer or not getattr(self.analyzer, "available", True):
            logger.info("No job analyzer configured, skipping analysis")
            return

        jobs = await self.db.list_jobs(status=JobStatus.NEW, profile_id=profile_id)
        if not jobs:
            return

        logger.info(f"Auto-analyzing {len(jobs)} new jobs")
        self._set_action(f"Analyzing {len(jobs)} jobs")
        analyzed = 0
        for job in jobs:
            if not await self._checkpoint():
                break
            try:
                self._set_action(f"Analyzing: {job.title}")
                analysis = await self.analyzer.analyze(job)
                await self.db.update_analysis(job.id, analysis)
            except Exception as e:
                logger.warning(f"Failed to analyze job {job.title}: {e}")
                continue

            analyzed += 1
            self.status.jobs_analyzed += 1
            if analysis.match_score >= self.config.HIGH_MATCH_THRESHOLD:
                await self._notify("notify_high_match_job", job.title, job.company, analysis.match_score)

            updated = await self.db.get_job(job.id)
            if updated:
                self.events.emit(EventType.JOBS_NEW, updated.to_dict())
            self._send_status()

        logger.info(f"Analysis complete: {analyzed}/{len(jobs)} jobs analyzed")

    # === Applications ===

    async def _apply_to_job(self, job: JobListing) -> bool:
        """One apply attempt. Returns False when the batch must stop."""
        adapter = self._get_adapter(job.platform)
        if adapter.requires_easy_apply and not job.easy_apply:
            logger.info(f"Skipping non-Easy Apply job: {job.title}")
            return True

        if not await self._ensure_authenticated(adapter):
            if not self._running:
                return False
            logger.warning(f"Login timeout for {job.platform.value}, skipping {job.title}")
            self.status.errors.append(f"Skipped {job.title}: not logged in to {job.platform.value}")
            return True

        self._set_action(f"Applying: {job.title} @ {job.company}")
        try:
            await self.page.goto(job.url, wait_until="domcontentloaded")
        except Exception as e:
            await self._record_apply_error(job, e)
            return True
        await self.behavior.delay(1.5, 3)
        if not await self._checkpoint():
            return False

        profile = await self.db.get_profile(job.profile_id) if job.profile_id else None
        answers = dict(profile.application.default_answers) if profile else {}
        resume_path = profile.application.resume_file if profile else ""

        await self.rate_limiter.acquire()
        if not await self._checkpoint():
            return False

        def on_progress(progress: ApplicationProgress):
            self.events.emit(EventType.APPLICATION_PROGRESS, {
                "job_id": job.id,
                "step": progress.step,
                "total_steps": progress.total_steps,
                "current_action": progress.current_action,
            })

        try:
            result = await self.circuit_breaker.execute(
                lambda: adapter.apply_to_job(
                    self.page, job, answers, resume_path, on_progress, self.questions.ask
                )
            )
        except CircuitOpenError:
            logger.warning("Circuit breaker open, stopping applications")
            self.status.errors.append(APPLICATIONS_TRIPPED)
            self._update_status(AutomationState.ERROR, "Too many failures, applications stopped")
            await self._notify("notify_circuit_breaker_tripped")
            return False
        except Exception as e:
            await self._record_apply_error(job, e)
            return True

        if result.success:
            await self.db.mark_applied(
                job.id,
                result.answers_used,
                resume_used=result.resume_used,
                cover_letter=result.cover_letter_used,
            )
            self.status.applications_submitted += 1
            logger.info(f"Applied to {job.title} @ {job.company}")
            await self._notify("notify_application_complete", job.title, job.company)
        elif result.needs_manual_intervention:
            logger.warning(f"Manual intervention needed for {job.title}: {result.intervention_reason}")
            await self.db.update_status(job.id, JobStatus.ERROR)
            self.status.errors.append(f"{job.title}: {result.intervention_reason}")
        else:
            logger.warning(f"Failed to apply to {job.title}: {result.error_message}")
            await self._notify("notify_application_failed", job.title, job.company, result.error_message or "Unknown error")

        self._send_status()
        self.events.emit(EventType.APPLICATION_COMPLETE, {
            "job_id": job.id,
            "success": result.success,
            "error": result.error_message,
        })
        return True

    async def _record_apply_error(self, job: JobListing, error: Exception):
        logger.error(f"Application error for {job.title}: {error}")
        await self.db.update_status(job.id, JobStatus.ERROR)
        self.status.errors.append(f"{job.title}: {error}")
        self.events.emit(EventType.APPLICATION_COMPLETE, {"job_id": job.id, "success": False, "error": str(error)})

    # === Refetch ===

    async def _refetch_job(self, job: JobListing) -> bool:
        adapter = self._get_adapter(job.platform)
        await self.page.goto(job.url, wait_until="domcontentloaded")
        await self.behavior.delay(1.5, 3)
        if not await self._checkpoint():
            return False

        details = await adapter.extract_job_details(self.page, job.url)
        if not details.description:
            return False

        await self.db.update_description(job.id, details.description)
        clean_title = deduplicate_title(details.title or job.title)
        if clean_title != job.title:
            await self.db.update_title(job.id, clean_title)

        logger.info(f"Updated description for {job.title} ({len(details.description)} chars)")
        refreshed = await self.db.get_job(job.id)
        if refreshed:
            self.events.emit(EventType.JOBS_NEW, refreshed.to_dict())
        return True

    # === Helpers ===

    def _get_adapter(self, platform: PlatformType) -> PlatformAdapter:
        adapter = self._adapters.get(platform)
        if adapter is None:
            adapter = self.adapter_factory(
                platform,
                behavior=self.behavior,
                config=self.config,
                db=self.db,
                answer_generator=self.answer_generator,
                proposal_generator=self.proposal_generator,
            )
            self._adapters[platform] = adapter
        return adapter

    async def _ensure_authenticated(self, adapter: PlatformAdapter) -> bool:
        if await adapter.is_authenticated(self.page):
            return True

        platform = adapter.platform.value
        logger.info(f"Not authenticated on {platform}, navigating to login page")
        self._set_action(f"Waiting for {platform} login...")
        await adapter.navigate_to_login(self.page)

        deadline = self._clock() + self.config.LOGIN_TIMEOUT_SECONDS
        while self._running and self._clock() < deadline:
            await self._sleep(self.config.LOGIN_POLL_INTERVAL_SECONDS)
            if not self._running:
                return False
            if await adapter.is_authenticated(self.page):
                logger.info(f"User logged in to {platform}")
                return True

        logger.warning(f"Login timeout for {platform}")
        return False

    async def _checkpoint(self) -> bool:
        """Block while paused. Returns False once the run has been stopped."""
        if self._running and not self._resumed.is_set():
            await self._resumed.wait()
        return self._running

    def _begin(self, action: str, reset: bool = True):
        if self._running:
            raise AutomationError("Automation is already running")
        self._running = True
        self._resumed.set()
        if reset:
            self.status = AutomationStatus(session_start_time=utc_now_iso())
            self._session_started = self._clock()
        self._update_status(AutomationState.RUNNING, action)

    def _fail(self, error: Exception, context: str):
        logger.error(f"{context}: {error}", exc_info=True)
        self.status.errors.append(str(error))
        self._update_status(AutomationState.ERROR, str(error))

    async def _finish(self, notify_session: bool = False):
        self._running = False
        self._resumed.set()
        if self.status.state != AutomationState.ERROR:
            self._update_status(AutomationState.IDLE, None)
        else:
            self._send_status()
        if notify_session:
            await self._notify(
                "notify_session_complete",
                self.status.jobs_extracted,
                self.status.jobs_analyzed,
                self.status.applications_submitted,
            )

    async def _notify(self, method: str, *args: Any):
        if not self.notifier:
            return
        try:
            await getattr(self.notifier, method)(*args)
        except Exception as e:
            logger.warning(f"Notification {method} failed: {e}")

    def _update_status(self, state: AutomationState, action: Optional[str]):
        self.status.state = state
        self.status.current_action = action
        self._send_status()

    def _set_action(self, action: str):
        """Report progress without clobbering a pause or stop that landed mid-await."""
        if not self._running:
            return
        state = AutomationState.RUNNING if self._resumed.is_set() else AutomationState.PAUSED
        self._update_status(state, action)

    def _send_status(self):
        self.events.emit(EventType.AUTOMATION_STATUS, self.get_status().to_dict())
