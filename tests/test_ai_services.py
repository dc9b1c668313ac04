"""
Tests for the AI helpers: JSON extraction, response parsing and selector repair prompts.
The completion endpoint is always mocked.
"""

import json
import pytest
from unittest.mock import AsyncMock, MagicMock

from ai import (
    AnswerGenerator,
    CompletionService,
    JobAnalyzer,
    ProposalGenerator,
    SelectorAI,
    safe_json_loads,
)
from ai.job_analyzer import build_job_context
from core.errors import AIServiceError


def completion_returning(content):
    completion = MagicMock()
    completion.available = True
    completion.complete = AsyncMock(return_value=content)
    return completion


class TestSafeJsonLoads:

    def test_plain_json(self):
        assert safe_json_loads('{"a": 1}') == {"a": 1}

    def test_fenced_json(self):
        assert safe_json_loads('Here you go:\n```json\n{"selectors": ["div.x"]}\n```') == {"selectors": ["div.x"]}

    def test_object_inside_prose(self):
        assert safe_json_loads('Sure! {"answer": "Yes", "confidence": 0.9} Hope that helps.') == {
            "answer": "Yes",
            "confidence": 0.9,
        }

    def test_array(self):
        assert safe_json_loads("result: [1, 2, 3]") == [1, 2, 3]

    @pytest.mark.parametrize("text", ["", None, "no json here", "{broken: json"])
    def test_unparseable_is_none(self, text):
        assert safe_json_loads(text) is None


class TestCompletionService:

    def test_unavailable_without_key(self, test_config):
        assert CompletionService(config=test_config).available is False

    @pytest.mark.asyncio
    async def test_request_without_key_raises(self, test_config):
        service = CompletionService(config=test_config)
        with pytest.raises(AIServiceError) as exc_info:
            await service.complete("system", "user")
        assert exc_info.value.recoverable is False


class TestJobAnalyzer:

    @pytest.mark.asyncio
    async def test_score_is_normalized(self, make_job):
        analyzer = JobAnalyzer(completion_returning(json.dumps({
            "matchScore": 85,
            "reasoning": "Python and AWS match",
            "summary": "Backend role",
            "redFlags": ["No salary", ""],
            "highlights": ["Remote"],
        })))

        analysis = await analyzer.analyze(make_job("1", description="Python, AWS"))
        assert analysis.match_score == pytest.approx(0.85)
        assert analysis.red_flags == ["No salary"]
        assert analysis.highlights == ["Remote"]
        assert analysis.recommended_resume == "default"

    @pytest.mark.asyncio
    async def test_out_of_range_score_is_clamped(self, make_job):
        analyzer = JobAnalyzer(completion_returning('{"matchScore": 140}'))
        assert (await analyzer.analyze(make_job("1"))).match_score == 1.0

    @pytest.mark.asyncio
    async def test_unparseable_reply_gives_neutral_score(self, make_job):
        analyzer = JobAnalyzer(completion_returning("I cannot evaluate this listing."))
        analysis = await analyzer.analyze(make_job("1"))
        assert analysis.match_score == 0.5
        assert analysis.red_flags == ["Could not parse AI analysis"]

    def test_job_context_includes_candidate(self, make_job):
        context = build_job_context(
            make_job("1", salary="$150k", description="Build APIs"),
            {"name": "Sam", "skills": ["Python", "Go"]},
        )
        assert "Salary: $150k" in context
        assert "Build APIs" in context
        assert "skills: Python, Go" in context

    def test_job_context_marks_missing_description(self, make_job):
        assert "(no description extracted)" in build_job_context(make_job("1"))


class TestAnswerAndProposal:

    @pytest.mark.asyncio
    async def test_answer_parsing(self, make_job):
        generator = AnswerGenerator(completion_returning(
            '{"answer": "5 years", "confidence": 0.85, "needsReview": false}'
        ))
        answer = await generator.generate_answer("Years of Python?", make_job("1"))
        assert answer.answer == "5 years"
        assert answer.confidence == pytest.approx(0.85)
        assert answer.needs_review is False

    @pytest.mark.asyncio
    async def test_raw_answer_needs_review(self, make_job):
        generator = AnswerGenerator(completion_returning("Five years, mostly Django."))
        answer = await generator.generate_answer("Years of Python?", make_job("1"))
        assert answer.answer == "Five years, mostly Django."
        assert answer.needs_review is True
        assert answer.confidence < 0.6

    @pytest.mark.asyncio
    async def test_proposal_parsing(self, make_job):
        generator = ProposalGenerator(completion_returning(json.dumps({
            "coverLetter": "Hi, I read your brief...",
            "suggestedBid": "1200",
            "estimatedDuration": "2 weeks",
            "confidence": 0.7,
            "needsReview": True,
        })))
        proposal = await generator.generate_proposal(make_job("1"))
        assert proposal.cover_letter.startswith("Hi")
        assert proposal.suggested_bid == 1200.0
        assert proposal.estimated_duration == "2 weeks"

    @pytest.mark.asyncio
    async def test_bad_bid_is_dropped(self, make_job):
        generator = ProposalGenerator(completion_returning('{"coverLetter": "Hello", "suggestedBid": "negotiable"}'))
        proposal = await generator.generate_proposal(make_job("1"))
        assert proposal.suggested_bid is None
        assert proposal.confidence == 0.0


class TestSelectorAI:

    @pytest.mark.asyncio
    async def test_invalid_selectors_filtered_and_confidence_clamped(self):
        ai = SelectorAI(completion_returning(json.dumps({
            "selectors": ["", "div.job-card", "a" * 300, 5],
            "confidence": 1.7,
            "reasoning": "data attribute is stable",
        })))
        repair = await ai.suggest_repair([".old-card"], "<div class='job-card'></div>", "job cards")
        assert repair.selectors == ["div.job-card"]
        assert repair.confidence == 1.0

        prompt = ai.completion.complete.await_args.args[1]
        assert "`.old-card`" in prompt
        assert "job cards" in prompt

    @pytest.mark.asyncio
    async def test_non_numeric_confidence_defaults(self):
        ai = SelectorAI(completion_returning('{"selectors": ["#x"], "confidence": "high"}'))
        repair = await ai.suggest_repair(["#y"], "<div id='x'></div>")
        assert repair.confidence == 0.5

    @pytest.mark.asyncio
    async def test_unparseable_reply(self):
        ai = SelectorAI(completion_returning("Sorry, I can't see the page."))
        assert await ai.suggest_repair(["#y"], "<div></div>") is None
