"""
Proposal Generator

Writes freelance proposals (cover letter plus suggested bid) for
marketplace listings that cannot be applied to automatically.
"""

import logging
from typing import Any, Dict, Optional

from core.models import JobListing, ProposalResult
from .completion_service import CompletionService, safe_json_loads
from .job_analyzer import build_job_context

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You help a freelance software contractor write proposals for marketplace projects. Generate specific proposals that stand out.

Respond with ONLY valid JSON in this exact format:
{
  "coverLetter": "<the proposal cover letter text>",
  "suggestedBid": <number or null>,
  "estimatedDuration": "<string or null>",
  "confidence": <number 0-1>,
  "needsReview": <true/false>
}

Rules:
- Open with a hook that shows you've read the project description.
- Reference specific technologies or requirements from the job.
- Keep proposals between 100 and 300 words.
- End with a specific next step or question about the project.
- Suggest a competitive bid based on the posted budget, or null if it can't be determined.
- Set needsReview to true for high-value projects ($5000+) or ambiguous requirements."""


class ProposalGenerator:
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

    async def generate_proposal(
        self,
        job: JobListing,
        additional_context: Optional[str] = None,
    ) -> ProposalResult:
        """Generate a proposal. Raises AIServiceError if the model is unreachable."""
        message = "Generate a proposal for this project.\n\n" + build_job_context(job, self.candidate)
        if additional_context:
            message += f"\n\n## Additional Context\n{additional_context}"

        content = await self.completion.complete(
            SYSTEM_PROMPT, message, max_tokens=1024, temperature=0.4
        )
        return self._parse_proposal(content)

    def _parse_proposal(self, content: str) -> ProposalResult:
        data = safe_json_loads(content)
        if not isinstance(data, dict):
            logger.warning("Failed to parse proposal JSON, using raw response")
            return ProposalResult(cover_letter=content[:2000], confidence=0.3, needs_review=True)

        bid = data.get("suggestedBid")
        try:
            bid = float(bid) if bid is not None else None
        except (TypeError, ValueError):
            bid = None

        try:
            confidence = float(data.get("confidence") or 0)
        except (TypeError, ValueError):
            confidence = 0.0

        return ProposalResult(
            cover_letter=str(data.get("coverLetter") or ""),
            suggested_bid=bid,
            estimated_duration=data.get("estimatedDuration") or None,
            confidence=max(0.0, min(1.0, confidence)),
            needs_review=bool(data.get("needsReview")),
        )
