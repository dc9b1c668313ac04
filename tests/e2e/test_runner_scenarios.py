"""
End-to-end runner scenarios against a real SQLite database, a scripted
adapter and a fake browser page.
"""

import asyncio
from dataclasses import replace
import pytest
from unittest.mock import AsyncMock, MagicMock

from core.circuit_breaker import CircuitBreaker
from core.errors import AutomationError, ProfileNotFoundError
from core.events import EventType
from core.extraction_runner import APPLICATIONS_TRIPPED, EXTRACTION_TRIPPED, ExtractionRunner
from core.models import (
    ApplicationResult,
    AutomationState,
    JobAnalysis,
    JobDetails,
    JobStatus,
    ListingCard,
    PlatformType,
)
from core.rate_limiter import RateLimiter


class FakePage:
    def __init__(self):
        self.url = "about:blank"
        self.visited = []
        self.waiting = []
        self._gates = {}
        self._failures = {}

    def hold(self, fragment):
        """Block navigation to URLs containing fragment until the returned event is set."""
        gate = asyncio.Event()
        self._gates[fragment] = gate
        return gate

    def fail(self, fragment, error):
        self._failures[fragment] = error

    async def goto(self, url, wait_until=None):
        for fragment, error in self._failures.items():
            if fragment in url:
                raise error
        for fragment, gate in self._gates.items():
            if fragment in url:
                self.waiting.append(url)
                await gate.wait()
        self.url = url
        self.visited.append(url)


class GatedLimiter:
    """Rate limiter whose acquire() waits until released."""

    def __init__(self):
        self.waiting = asyncio.Event()
        self.release = asyncio.Event()

    async def acquire(self):
        self.waiting.set()
        await self.release.wait()

    def count(self):
        return 0


class ScriptedAdapter:
    """Serves listing pages keyed by page number, read back from the search URL."""

    requires_easy_apply = False

    def __init__(self, platform=PlatformType.LINKEDIN, pages=None, authenticated=True):
        self.platform = platform
        self.pages = pages or {}
        self.authenticated = authenticated
        self.detail_calls = []
        self.apply_calls = []
        self.on_details = None
        self.details_error = None
        self.apply_error = None
        self.apply_result = None
        self.navigate_to_login = AsyncMock()

    def build_search_url(self, profile, page_num=None):
        return f"https://jobs.example/search?q={profile.id}&page={page_num or 1}"

    async def is_authenticated(self, page):
        return self.authenticated

    async def extract_listings(self, page):
        page_num = int(page.url.rsplit("=", 1)[1])
        return list(self.pages.get(page_num, []))

    async def extract_job_details(self, page, url):
        self.detail_calls.append(url)
        if self.on_details:
            self.on_details(len(self.detail_calls))
        if self.details_error:
            raise self.details_error
        return JobDetails(description=f"Description for {url}", salary="$150k")

    async def apply_to_job(self, page, job, answers, resume_path, on_progress=None, on_question=None):
        self.apply_calls.append(job.id)
        if self.apply_error:
            raise self.apply_error
        return self.apply_result or ApplicationResult(success=True, job_id=job.id, answers_used=answers)


def cards(*ids):
    return [
        ListingCard(external_id=i, title=f"Python Engineer {i}", company="Acme", url=f"https://jobs.example/view/{i}")
        for i in ids
    ]


async def wait_until(condition, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


@pytest.fixture
def page():
    return FakePage()


@pytest.fixture
def make_runner(db, page, behavior, test_config, mock_notifier, fake_clock):
    def _make(adapter, **kwargs):
        kwargs.setdefault("notifier", mock_notifier)
        kwargs.setdefault("rate_limiter", RateLimiter(100))
        kwargs.setdefault("sleep", fake_clock.sleep)
        return ExtractionRunner(
            db,
            page,
            adapter_factory=lambda platform, **_: adapter,
            behavior=behavior,
            config=test_config,
            clock=fake_clock,
            **kwargs,
        )
    return _make


@pytest.fixture
def two_page_adapter():
    # "j5" appears on both pages
    return ScriptedAdapter(pages={1: cards("j1", "j2", "j3", "j4", "j5"), 2: cards("j5", "j6", "j7")})


@pytest.mark.e2e
class TestExtractionScenarios:

    @pytest.mark.asyncio
    async def test_two_pages_with_duplicate(self, db, page, sample_profile, make_runner, two_page_adapter):
        await db.insert_profile(sample_profile)
        runner = make_runner(two_page_adapter)

        await runner.run_profile(sample_profile.id)

        status = runner.get_status()
        assert status.state == AutomationState.IDLE
        assert status.jobs_extracted == 7
        assert status.errors == []
        assert len(two_page_adapter.detail_calls) == 7

        jobs = await db.list_jobs(profile_id=sample_profile.id)
        assert sorted(j.external_id for j in jobs) == ["j1", "j2", "j3", "j4", "j5", "j6", "j7"]
        assert all(j.description.startswith("Description for") for j in jobs)

        # Pages are reached by URL, and an empty page 3 ends pagination
        assert page.visited == [
            "https://jobs.example/search?q=python-remote&page=1",
            "https://jobs.example/search?q=python-remote&page=2",
            "https://jobs.example/search?q=python-remote&page=3",
        ]

    @pytest.mark.asyncio
    async def test_emits_new_job_events(self, db, sample_profile, make_runner, two_page_adapter):
        await db.insert_profile(sample_profile)
        runner = make_runner(two_page_adapter)
        await runner.run_profile(sample_profile.id)

        events = runner.events.drain()
        new_jobs = [e for e in events if e.type == EventType.JOBS_NEW]
        assert len(new_jobs) == 7
        assert new_jobs[0].payload["platform"] == "linkedin"
        assert events[-1].type == EventType.AUTOMATION_STATUS
        assert events[-1].payload["state"] == "idle"

    @pytest.mark.asyncio
    async def test_previously_stored_jobs_are_not_refetched(self, db, sample_profile, make_runner,
                                                            two_page_adapter, make_job):
        await db.insert_profile(sample_profile)
        await db.insert_job(make_job("j2"))
        runner = make_runner(two_page_adapter)

        await runner.run_profile(sample_profile.id)

        assert runner.get_status().jobs_extracted == 6
        assert "https://jobs.example/view/j2" not in two_page_adapter.detail_calls

    @pytest.mark.asyncio
    async def test_extraction_cap(self, db, sample_profile, make_runner, two_page_adapter, test_config):
        test_config.MAX_EXTRACTIONS_PER_SESSION = 3
        await db.insert_profile(sample_profile)
        runner = make_runner(two_page_adapter)

        await runner.run_profile(sample_profile.id)
        assert runner.get_status().jobs_extracted == 3
        assert len(two_page_adapter.detail_calls) == 3

    @pytest.mark.asyncio
    async def test_detail_failure_keeps_card_data(self, db, sample_profile, make_runner):
        adapter = ScriptedAdapter(pages={1: cards("j1", "j2")})
        adapter.details_error = TimeoutError("detail pane never loaded")
        await db.insert_profile(sample_profile)
        runner = make_runner(adapter, circuit_breaker=CircuitBreaker(failure_threshold=5))

        await runner.run_profile(sample_profile.id)

        jobs = await db.list_jobs()
        assert [(j.external_id, j.title, j.company) for j in jobs] == [
            ("j1", "Python Engineer j1", "Acme"),
            ("j2", "Python Engineer j2", "Acme"),
        ]
        assert all(j.description == "" for j in jobs)
        assert runner.get_status().state == AutomationState.IDLE

    @pytest.mark.asyncio
    async def test_open_circuit_aborts_extraction(self, db, sample_profile, make_runner, mock_notifier):
        adapter = ScriptedAdapter(pages={1: cards("j1", "j2", "j3", "j4", "j5"), 2: cards("j6")})
        adapter.details_error = RuntimeError("page crashed")
        await db.insert_profile(sample_profile)
        runner = make_runner(adapter)

        await runner.run_profile(sample_profile.id)

        status = runner.get_status()
        assert len(adapter.detail_calls) == 3
        assert status.errors == [EXTRACTION_TRIPPED]
        assert status.state == AutomationState.ERROR
        # Cards saved before the breaker opened are kept; page 2 is never visited
        assert status.jobs_extracted == 3
        assert not any(url.endswith("page=2") for url in runner.page.visited)
        mock_notifier.notify_circuit_breaker_tripped.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_profile(self, make_runner, two_page_adapter):
        runner = make_runner(two_page_adapter)
        with pytest.raises(ProfileNotFoundError):
            await runner.run_profile("nope")
        assert runner.get_status().state == AutomationState.IDLE

    @pytest.mark.asyncio
    async def test_login_timeout_ends_in_error(self, db, sample_profile, make_runner, fake_clock, test_config):
        adapter = ScriptedAdapter(pages={1: cards("j1")}, authenticated=False)
        await db.insert_profile(sample_profile)
        runner = make_runner(adapter)

        await runner.run_profile(sample_profile.id)

        status = runner.get_status()
        assert status.state == AutomationState.ERROR
        assert "Not authenticated" in status.errors[0]
        adapter.navigate_to_login.assert_awaited_once()
        assert sum(fake_clock.sleeps) >= test_config.LOGIN_TIMEOUT_SECONDS
        assert set(fake_clock.sleeps) == {test_config.LOGIN_POLL_INTERVAL_SECONDS}
        assert adapter.detail_calls == []

    @pytest.mark.asyncio
    async def test_login_detected_while_polling(self, db, sample_profile, make_runner, fake_clock):
        adapter = ScriptedAdapter(pages={1: cards("j1")}, authenticated=False)

        async def log_in_after_two_polls(seconds):
            await fake_clock.sleep(seconds)
            if len(fake_clock.sleeps) == 2:
                adapter.authenticated = True

        await db.insert_profile(sample_profile)
        runner = make_runner(adapter, sleep=log_in_after_two_polls)

        await runner.run_profile(sample_profile.id)
        assert runner.get_status().jobs_extracted == 1
        assert runner.get_status().state == AutomationState.IDLE

    @pytest.mark.asyncio
    async def test_auto_analysis_reviews_and_notifies(self, db, sample_profile, make_runner,
                                                      mock_notifier, two_page_adapter):
        analyzer = MagicMock()
        analyzer.available = True
        analyzer.analyze = AsyncMock(side_effect=[
            JobAnalysis(match_score=0.92),
            RuntimeError("model timeout"),
        ] + [JobAnalysis(match_score=0.4)] * 5)
        await db.insert_profile(sample_profile)
        runner = make_runner(two_page_adapter, analyzer=analyzer)

        await runner.run_profile(sample_profile.id)

        status = runner.get_status()
        assert status.jobs_analyzed == 6
        assert status.state == AutomationState.IDLE
        assert len(await db.list_jobs(status=JobStatus.REVIEWED)) == 6
        assert len(await db.list_jobs(status=JobStatus.NEW)) == 1
        mock_notifier.notify_high_match_job.assert_awaited_once()
        mock_notifier.notify_session_complete.assert_awaited_once_with(7, 6, 0)


@pytest.fixture
def three_profiles(db, sample_profile):
    async def _insert():
        profiles = [
            replace(sample_profile, created_at="2026-01-01T00:00:00+00:00"),
            replace(sample_profile, id="go-remote", name="Go Remote", created_at="2026-01-02T00:00:00+00:00"),
            replace(sample_profile, id="rust-onsite", name="Rust Onsite", enabled=False),
        ]
        for profile in profiles:
            await db.insert_profile(profile)
        return profiles
    return _insert


@pytest.mark.e2e
class TestRunAllEnabled:

    @pytest.mark.asyncio
    async def test_runs_enabled_profiles_in_order(self, page, make_runner, three_profiles, mock_notifier):
        await three_profiles()
        adapter = ScriptedAdapter(pages={1: cards("j1", "j2")})
        runner = make_runner(adapter)

        await runner.run_all_enabled()

        first_pages = [url for url in page.visited if url.endswith("page=1")]
        assert first_pages == [
            "https://jobs.example/search?q=python-remote&page=1",
            "https://jobs.example/search?q=go-remote&page=1",
        ]
        # The second profile sees the same cards, which are already stored
        assert runner.get_status().jobs_extracted == 2
        assert runner.get_status().state == AutomationState.IDLE
        mock_notifier.notify_session_complete.assert_awaited_once_with(2, 0, 0)

    @pytest.mark.asyncio
    async def test_open_circuit_skips_remaining_profiles(self, page, make_runner, three_profiles):
        await three_profiles()
        adapter = ScriptedAdapter(pages={1: cards("j1", "j2", "j3", "j4")})
        adapter.details_error = RuntimeError("page crashed")
        runner = make_runner(adapter)

        await runner.run_all_enabled()

        status = runner.get_status()
        assert status.errors == [EXTRACTION_TRIPPED]
        assert status.state == AutomationState.ERROR
        assert not any("go-remote" in url for url in page.visited)

    @pytest.mark.asyncio
    async def test_login_timeout_skips_profile(self, make_runner, three_profiles):
        await three_profiles()
        adapter = ScriptedAdapter(pages={1: cards("j1")}, authenticated=False)
        runner = make_runner(adapter)

        await runner.run_all_enabled()

        status = runner.get_status()
        assert status.errors == [
            "Skipped Python Remote: not logged in to linkedin",
            "Skipped Go Remote: not logged in to linkedin",
        ]
        assert status.state == AutomationState.IDLE
        assert adapter.detail_calls == []

    @pytest.mark.asyncio
    async def test_nothing_enabled(self, make_runner, mock_notifier):
        runner = make_runner(ScriptedAdapter())
        await runner.run_all_enabled()
        assert runner.get_status().state == AutomationState.IDLE
        mock_notifier.notify_session_complete.assert_not_awaited()


@pytest.mark.e2e
class TestRunnerControl:

    @pytest.mark.asyncio
    async def test_pause_holds_and_stop_returns_to_idle(self, db, sample_profile, make_runner, two_page_adapter):
        await db.insert_profile(sample_profile)
        runner = make_runner(two_page_adapter)
        two_page_adapter.on_details = lambda n: runner.pause() if n == 2 else None

        task = asyncio.create_task(runner.run_profile(sample_profile.id))
        await wait_until(lambda: runner.status.jobs_extracted == 2)
        await asyncio.sleep(0.05)

        # Paused: nothing further is processed, saved work is kept
        assert runner.get_status().state == AutomationState.PAUSED
        assert len(two_page_adapter.detail_calls) == 2
        assert len(await db.list_jobs()) == 2

        runner.stop()
        await asyncio.wait_for(task, 2)

        assert runner.get_status().state == AutomationState.IDLE
        assert not runner.is_running
        assert len(two_page_adapter.detail_calls) == 2
        assert len(await db.list_jobs()) == 2

    @pytest.mark.asyncio
    async def test_resume_continues_run(self, db, sample_profile, make_runner, two_page_adapter):
        await db.insert_profile(sample_profile)
        runner = make_runner(two_page_adapter)
        two_page_adapter.on_details = lambda n: runner.pause() if n == 3 else None

        task = asyncio.create_task(runner.run_profile(sample_profile.id))
        await wait_until(lambda: runner.status.state == AutomationState.PAUSED and runner.status.jobs_extracted == 3)

        runner.resume()
        await asyncio.wait_for(task, 2)
        assert runner.get_status().jobs_extracted == 7
        assert runner.get_status().state == AutomationState.IDLE

    @pytest.mark.asyncio
    async def test_second_run_rejected_while_running(self, db, sample_profile, make_runner, two_page_adapter):
        await db.insert_profile(sample_profile)
        runner = make_runner(two_page_adapter)
        two_page_adapter.on_details = lambda n: runner.pause() if n == 1 else None

        task = asyncio.create_task(runner.run_profile(sample_profile.id))
        await wait_until(lambda: runner.status.state == AutomationState.PAUSED)

        with pytest.raises(AutomationError):
            await runner.run_profile(sample_profile.id)

        runner.stop()
        await asyncio.wait_for(task, 2)

    @pytest.mark.asyncio
    async def test_pause_during_page_navigation_stays_paused(self, db, page, sample_profile, make_runner,
                                                              two_page_adapter):
        await db.insert_profile(sample_profile)
        runner = make_runner(two_page_adapter)
        gate = page.hold("page=2")

        task = asyncio.create_task(runner.run_profile(sample_profile.id))
        await wait_until(lambda: page.waiting)
        runner.pause()
        gate.set()
        await asyncio.sleep(0.05)

        assert runner.get_status().state == AutomationState.PAUSED
        assert len(two_page_adapter.detail_calls) == 5

        runner.stop()
        await asyncio.wait_for(task, 2)
        assert len(two_page_adapter.detail_calls) == 5
        assert runner.get_status().state == AutomationState.IDLE

    @pytest.mark.asyncio
    async def test_stop_while_rate_limited_skips_details(self, db, sample_profile, make_runner, two_page_adapter):
        await db.insert_profile(sample_profile)
        limiter = GatedLimiter()
        runner = make_runner(two_page_adapter, rate_limiter=limiter)

        task = asyncio.create_task(runner.run_profile(sample_profile.id))
        await wait_until(limiter.waiting.is_set)
        runner.stop()
        limiter.release.set()
        await asyncio.wait_for(task, 2)

        assert two_page_adapter.detail_calls == []
        assert await db.list_jobs() == []
        assert runner.get_status().state == AutomationState.IDLE

    @pytest.mark.asyncio
    async def test_stop_when_idle_is_harmless(self, make_runner, two_page_adapter):
        runner = make_runner(two_page_adapter)
        runner.pause()
        runner.stop()
        assert runner.get_status().state == AutomationState.IDLE

    @pytest.mark.asyncio
    async def test_status_snapshot_is_detached(self, make_runner, two_page_adapter):
        runner = make_runner(two_page_adapter)
        snapshot = runner.get_status()
        snapshot.errors.append("tampered")
        assert runner.get_status().errors == []


@pytest.mark.e2e
class TestApplyScenarios:

    async def _approved_jobs(self, db, make_job, count, platform=PlatformType.INDEED):
        ids = []
        for n in range(count):
            ids.append(await db.insert_job(make_job(f"a{n}", platform=platform, status=JobStatus.APPROVED)))
        return ids

    @pytest.mark.asyncio
    async def test_repeated_failures_abort_batch_once(self, db, make_job, make_runner, mock_notifier):
        job_ids = await self._approved_jobs(db, make_job, 5)
        adapter = ScriptedAdapter(platform=PlatformType.INDEED)
        adapter.apply_error = RuntimeError("Target page crashed")
        runner = make_runner(adapter)

        await runner.apply_to_approved()

        status = runner.get_status()
        assert adapter.apply_calls == job_ids[:3]
        assert status.errors.count(APPLICATIONS_TRIPPED) == 1
        assert len(status.errors) == 4
        assert status.state == AutomationState.ERROR

        statuses = [(await db.get_job(job_id)).status for job_id in job_ids]
        assert statuses == [JobStatus.ERROR] * 3 + [JobStatus.APPROVED] * 2
        mock_notifier.notify_circuit_breaker_tripped.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_successful_applications(self, db, make_job, make_runner, sample_profile, mock_notifier):
        sample_profile.platform = PlatformType.INDEED
        await db.insert_profile(sample_profile)
        job_id = await db.insert_job(make_job(
            "a1", platform=PlatformType.INDEED, status=JobStatus.APPROVED, profile_id=sample_profile.id
        ))
        adapter = ScriptedAdapter(platform=PlatformType.INDEED)
        runner = make_runner(adapter)

        await runner.apply_to_approved()

        job = await db.get_job(job_id)
        assert job.status == JobStatus.APPLIED
        assert job.application_answers == sample_profile.application.default_answers
        assert runner.get_status().applications_submitted == 1
        mock_notifier.notify_application_complete.assert_awaited_once()

        complete = [e for e in runner.events.drain() if e.type == EventType.APPLICATION_COMPLETE]
        assert complete[0].payload == {"job_id": job_id, "success": True, "error": None}

    @pytest.mark.asyncio
    async def test_manual_intervention_marks_error(self, db, make_job, make_runner):
        [job_id] = await self._approved_jobs(db, make_job, 1, platform=PlatformType.UPWORK)
        adapter = ScriptedAdapter(platform=PlatformType.UPWORK)
        adapter.apply_result = ApplicationResult(
            success=False,
            job_id=job_id,
            needs_manual_intervention=True,
            intervention_reason="Upwork proposal generated. Review and submit manually.",
        )
        runner = make_runner(adapter)

        await runner.apply_to_approved()

        assert (await db.get_job(job_id)).status == JobStatus.ERROR
        assert "Review and submit manually" in runner.get_status().errors[0]
        assert runner.get_status().state == AutomationState.IDLE

    @pytest.mark.asyncio
    async def test_session_cap(self, db, make_job, make_runner, test_config):
        test_config.MAX_APPLICATIONS_PER_SESSION = 2
        await self._approved_jobs(db, make_job, 4)
        adapter = ScriptedAdapter(platform=PlatformType.INDEED)
        runner = make_runner(adapter)

        await runner.apply_to_approved()
        assert len(adapter.apply_calls) == 2
        assert runner.get_status().applications_submitted == 2

    @pytest.mark.asyncio
    async def test_non_easy_apply_jobs_skipped(self, db, make_job, make_runner):
        await db.insert_job(make_job("e1", status=JobStatus.APPROVED, easy_apply=False))
        easy_id = await db.insert_job(make_job("e2", status=JobStatus.APPROVED, easy_apply=True))
        adapter = ScriptedAdapter(platform=PlatformType.LINKEDIN)
        adapter.requires_easy_apply = True
        runner = make_runner(adapter)

        await runner.apply_to_approved()
        assert adapter.apply_calls == [easy_id]

    @pytest.mark.asyncio
    async def test_disabled_setting_is_a_no_op(self, db, make_job, make_runner):
        await self._approved_jobs(db, make_job, 2)
        await db.set_setting("apply_disabled", "1")
        adapter = ScriptedAdapter(platform=PlatformType.INDEED)
        runner = make_runner(adapter)

        await runner.apply_to_approved()
        assert adapter.apply_calls == []
        assert runner.get_status().state == AutomationState.IDLE

    @pytest.mark.asyncio
    async def test_pending_question_reaches_caller(self, db, make_job, make_runner):
        [job_id] = await self._approved_jobs(db, make_job, 1)
        adapter = ScriptedAdapter(platform=PlatformType.INDEED)

        async def apply_with_question(page, job, answers, resume_path, on_progress=None, on_question=None):
            answer = await on_question("Desired salary?", job.id)
            return ApplicationResult(success=True, job_id=job.id, answers_used={"Desired salary?": answer})

        adapter.apply_to_job = apply_with_question
        runner = make_runner(adapter)

        task = asyncio.create_task(runner.apply_to_approved())
        await wait_until(lambda: runner.questions.pending)
        assert runner.resolve_answer("$150,000") is True
        await asyncio.wait_for(task, 2)

        job = await db.get_job(job_id)
        assert job.application_answers == {"Desired salary?": "$150,000"}

    @pytest.mark.asyncio
    async def test_navigation_failure_only_fails_that_job(self, db, page, make_job, make_runner):
        job_ids = await self._approved_jobs(db, make_job, 3)
        page.fail("/jobs/a0", TimeoutError("net::ERR_TIMED_OUT"))
        adapter = ScriptedAdapter(platform=PlatformType.INDEED)
        runner = make_runner(adapter)

        await runner.apply_to_approved()

        status = runner.get_status()
        assert adapter.apply_calls == job_ids[1:]
        assert status.errors == ["Engineer a0: net::ERR_TIMED_OUT"]
        assert status.applications_submitted == 2
        assert status.state == AutomationState.IDLE
        statuses = [(await db.get_job(job_id)).status for job_id in job_ids]
        assert statuses == [JobStatus.ERROR, JobStatus.APPLIED, JobStatus.APPLIED]


@pytest.mark.e2e
class TestApplyControl:

    async def _approved_jobs(self, db, make_job, count):
        return [
            await db.insert_job(make_job(f"a{n}", platform=PlatformType.INDEED, status=JobStatus.APPROVED))
            for n in range(count)
        ]

    @pytest.mark.asyncio
    async def test_stop_during_navigation_submits_nothing(self, db, page, make_job, make_runner):
        job_ids = await self._approved_jobs(db, make_job, 2)
        adapter = ScriptedAdapter(platform=PlatformType.INDEED)
        runner = make_runner(adapter)
        gate = page.hold("/jobs/a0")

        task = asyncio.create_task(runner.apply_to_approved())
        await wait_until(lambda: page.waiting)
        runner.stop()
        gate.set()
        await asyncio.wait_for(task, 2)

        assert adapter.apply_calls == []
        statuses = [(await db.get_job(job_id)).status for job_id in job_ids]
        assert statuses == [JobStatus.APPROVED, JobStatus.APPROVED]
        assert runner.get_status().state == AutomationState.IDLE

    @pytest.mark.asyncio
    async def test_pause_during_navigation_holds_until_resumed(self, db, page, make_job, make_runner):
        job_ids = await self._approved_jobs(db, make_job, 2)
        adapter = ScriptedAdapter(platform=PlatformType.INDEED)
        runner = make_runner(adapter)
        gate = page.hold("/jobs/a0")

        task = asyncio.create_task(runner.apply_to_approved())
        await wait_until(lambda: page.waiting)
        runner.pause()
        gate.set()
        await asyncio.sleep(0.05)

        assert runner.get_status().state == AutomationState.PAUSED
        assert adapter.apply_calls == []

        runner.resume()
        await asyncio.wait_for(task, 2)
        assert adapter.apply_calls == job_ids
        assert runner.get_status().state == AutomationState.IDLE

    @pytest.mark.asyncio
    async def test_stop_while_rate_limited_submits_nothing(self, db, make_job, make_runner):
        [job_id] = await self._approved_jobs(db, make_job, 1)
        adapter = ScriptedAdapter(platform=PlatformType.INDEED)
        limiter = GatedLimiter()
        runner = make_runner(adapter, rate_limiter=limiter)

        task = asyncio.create_task(runner.apply_to_approved())
        await wait_until(limiter.waiting.is_set)
        runner.stop()
        limiter.release.set()
        await asyncio.wait_for(task, 2)

        assert adapter.apply_calls == []
        assert (await db.get_job(job_id)).status == JobStatus.APPROVED
        assert runner.get_status().state == AutomationState.IDLE


@pytest.mark.e2e
class TestRefetch:

    @pytest.mark.asyncio
    async def test_refetch_fills_descriptions_and_cleans_titles(self, db, make_job, make_runner):
        job_id = await db.insert_job(make_job("r1", title="Data Engineer Data Engineer"))
        await db.insert_job(make_job("r2", description="Already extracted"))
        adapter = ScriptedAdapter()
        runner = make_runner(adapter)

        result = await runner.refetch_descriptions()

        assert result == {"updated": 1, "total": 1}
        job = await db.get_job(job_id)
        assert job.description.startswith("Description for")
        assert job.title == "Data Engineer"
        assert runner.get_status().state == AutomationState.IDLE

    @pytest.mark.asyncio
    async def test_stop_during_refetch_navigation(self, db, page, make_job, make_runner):
        job_id = await db.insert_job(make_job("r1"))
        adapter = ScriptedAdapter()
        runner = make_runner(adapter)
        gate = page.hold("/jobs/r1")

        task = asyncio.create_task(runner.refetch_descriptions())
        await wait_until(lambda: page.waiting)
        runner.stop()
        gate.set()

        assert await asyncio.wait_for(task, 2) == {"updated": 0, "total": 1}
        assert adapter.detail_calls == []
        assert (await db.get_job(job_id)).description == ""

    @pytest.mark.asyncio
    async def test_nothing_to_refetch(self, make_runner):
        runner = make_runner(ScriptedAdapter())
        assert await runner.refetch_descriptions() == {"updated": 0, "total": 0}
