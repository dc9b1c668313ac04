"""
Answer Generator - drafts answers to application screening questions.
"""

import logging
from typing import Any, Dict, Optional

from core.models import GeneratedAnswer, JobListing
from .completion_service import CompletionService, safe_json_loads
from .job_analyzer import build_job_context

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You help a software contractor fill out job application forms. Generate answers to application questions that are specific to the job and the candidate's background.

Respond with ONLY valid JSON in this exact format:
{
  "answer": "<the answer to the question>",
  "confidence": <number 0-1>,
  "needsReview": <true/false>
}

Rules:
- Match the expected answer format (yes/no, number, short text, paragraph).
- If options are listed, answer with exactly one of them.
- Salary questions use the candidate's target range.
- Authorization or visa questions are answered from the profile.
- If you're not confident, set needsReview to true.
- Keep answers concise and professional."""


class AnswerGenerator:
    def __init__(
        self,
        completion: Optional[CompletionService] = None,
        candidate: Optional[Dict[str, Any]] = None,
    ):
        self.completion = completion or CompletionService()
        self.candidate = candidate

    @property
    def available(self) -> bool:
        return self.completion.available

    async def generate_answer(
        self,
        question: str,
        job: JobListing,
        additional_context: Optional[str] = None,
    ) -> GeneratedAnswer:
        parts = ["Generate an answer to this application question.", "", "## Question", question, ""]
        if additional_context:
            parts += ["## Additional Context", additional_context, ""]
        parts.append(build_job_context(job, self.candidate))

        content = await self.completion.complete(SYSTEM_PROMPT, "\n".join(parts), max_tokens=512)
        return self._parse_answer(content)

    def _parse_answer(self, content: str) -> GeneratedAnswer:
        data = safe_json_loads(content)
        if not isinstance(data, dict):
            logger.warning("Failed to parse answer JSON")
            return GeneratedAnswer(answer=content[:500], confidence=0.3, needs_review=True)

        try:
            confidence = float(data.get("confidence") or 0)
        except (TypeError, ValueError):
            confidence = 0.0

        return GeneratedAnswer(
            answer=str(data.get("answer") or ""),
            confidence=max(0.0, min(1.0, confidence)),
            needs_review=bool(data.get("needsReview")),
        )
