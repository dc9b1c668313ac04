"""
Tests for SQLite persistence.
"""

import pytest

from core.models import JobAnalysis, JobStatus, PlatformType


class TestJobs:

    @pytest.mark.asyncio
    async def test_duplicate_insert_is_skipped(self, db, make_job):
        first = await db.insert_job(make_job("4001"))
        second = await db.insert_job(make_job("4001", title="Same listing, new title"))

        assert first is not None
        assert second is None
        jobs = await db.list_jobs()
        assert len(jobs) == 1
        assert jobs[0].title == "Engineer 4001"

    @pytest.mark.asyncio
    async def test_same_external_id_on_other_platform_is_distinct(self, db, make_job):
        await db.insert_job(make_job("4001"))
        assert await db.insert_job(make_job("4001", platform=PlatformType.INDEED)) is not None
        assert await db.job_exists("4001", PlatformType.LINKEDIN)
        assert await db.job_exists("4001", PlatformType.INDEED)
        assert not await db.job_exists("4001", PlatformType.UPWORK)

    @pytest.mark.asyncio
    async def test_round_trip_fields(self, db, make_job):
        job = make_job("4002", salary="$120k", easy_apply=True, profile_id="python-remote")
        job_id = await db.insert_job(job)

        stored = await db.get_job(job_id)
        assert stored.external_id == "4002"
        assert stored.platform == PlatformType.LINKEDIN
        assert stored.status == JobStatus.NEW
        assert stored.easy_apply is True
        assert stored.salary == "$120k"
        assert stored.red_flags == []

    @pytest.mark.asyncio
    async def test_list_filters(self, db, make_job):
        await db.insert_job(make_job("a", status=JobStatus.APPROVED))
        await db.insert_job(make_job("b", platform=PlatformType.UPWORK, status=JobStatus.APPROVED))
        await db.insert_job(make_job("c", profile_id="p1"))

        approved = await db.list_jobs(status=JobStatus.APPROVED)
        assert [j.external_id for j in approved] == ["a", "b"]
        upwork = await db.list_jobs(status=JobStatus.APPROVED, platform=PlatformType.UPWORK)
        assert [j.external_id for j in upwork] == ["b"]
        assert [j.external_id for j in await db.list_jobs(profile_id="p1")] == ["c"]

    @pytest.mark.asyncio
    async def test_analysis_marks_reviewed(self, db, make_job):
        job_id = await db.insert_job(make_job("4003"))
        await db.update_analysis(job_id, JobAnalysis(
            match_score=0.82,
            reasoning="Strong Python overlap",
            red_flags=["No salary listed"],
            highlights=["Remote"],
        ))

        job = await db.get_job(job_id)
        assert job.status == JobStatus.REVIEWED
        assert job.match_score == pytest.approx(0.82)
        assert job.red_flags == ["No salary listed"]
        assert job.highlights == ["Remote"]

    @pytest.mark.asyncio
    async def test_mark_applied_records_answers(self, db, make_job):
        job_id = await db.insert_job(make_job("4004", status=JobStatus.APPROVED))
        await db.mark_applied(job_id, {"Years of experience": "6"}, resume_used="/tmp/resume.pdf")

        job = await db.get_job(job_id)
        assert job.status == JobStatus.APPLIED
        assert job.applied_at
        assert job.application_answers == {"Years of experience": "6"}
        assert job.resume_used == "/tmp/resume.pdf"

    @pytest.mark.asyncio
    async def test_missing_description_and_updates(self, db, make_job):
        empty_id = await db.insert_job(make_job("4005"))
        await db.insert_job(make_job("4006", description="Already have it"))

        missing = await db.list_missing_description()
        assert [j.id for j in missing] == [empty_id]

        await db.update_description(empty_id, "Now extracted")
        await db.update_title(empty_id, "Clean Title")
        job = await db.get_job(empty_id)
        assert job.description == "Now extracted"
        assert job.title == "Clean Title"
        assert await db.list_missing_description() == []


class TestProfiles:

    @pytest.mark.asyncio
    async def test_profile_round_trip(self, db, sample_profile):
        await db.insert_profile(sample_profile)
        profile = await db.get_profile("python-remote")

        assert profile.platform == PlatformType.LINKEDIN
        assert profile.search.keywords == ["python", "backend"]
        assert profile.search.remote_only is True
        assert profile.application.default_answers["Authorized to work"] == "Yes"

    @pytest.mark.asyncio
    async def test_enabled_profiles_by_platform(self, db, sample_profile):
        await db.insert_profile(sample_profile)
        sample_profile.id = "disabled"
        sample_profile.enabled = False
        await db.insert_profile(sample_profile)

        assert [p.id for p in await db.list_enabled_profiles()] == ["python-remote"]
        assert await db.list_enabled_profiles(PlatformType.INDEED) == []

    @pytest.mark.asyncio
    async def test_unknown_profile(self, db):
        assert await db.get_profile("missing") is None


class TestAnswersAndSettings:

    @pytest.mark.asyncio
    async def test_answer_template_matches_within_question(self, db):
        template_id = await db.insert_answer_template("years of experience", "6", platform="linkedin")

        found = await db.find_answer_template("How many years of experience do you have with Python?")
        assert found["id"] == template_id
        assert found["answer"] == "6"
        assert await db.find_answer_template("Are you willing to relocate?") is None

    @pytest.mark.asyncio
    async def test_most_used_template_wins(self, db):
        await db.insert_answer_template("experience", "some")
        popular = await db.insert_answer_template("years of experience", "6")
        await db.record_answer_usage(popular)

        found = await db.find_answer_template("Years of experience with Django?")
        assert found["id"] == popular
        assert found["usage_count"] == 1

    @pytest.mark.asyncio
    async def test_settings(self, db):
        assert await db.get_setting("apply_disabled") is None
        await db.set_setting("apply_disabled", "1")
        await db.set_setting("apply_disabled", "0")
        assert await db.get_setting("apply_disabled") == "0"
