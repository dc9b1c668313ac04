"""
Job Analyzer

Scores an extracted listing against the candidate's background and
returns a normalized JobAnalysis (match score 0-1).
"""

import logging
from typing import Any, Dict, Optional

from core.models import JobAnalysis, JobListing
from .completion_service import CompletionService, safe_json_loads

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You analyze job listings for a software contractor and provide honest, concise assessments.

Respond with ONLY valid JSON in this exact format:
{
  "matchScore": <number 0-100>,
  "reasoning": "<2-3 sentence explanation of the score>",
  "summary": "<1-2 sentence job summary focusing on what matters to the candidate>",
  "redFlags": ["<red flag>"],
  "highlights": ["<highlight>"],
  "recommendedResume": "<name of most relevant resume or 'default'>"
}

Rules:
- Be honest with scores. A perfect match is rare.
- Red flags: low pay, unrealistic requirements, vague descriptions, high turnover signals.
- Highlights: good pay, remote, interesting tech, growth opportunity.
- If the description is empty or minimal, note that as a red flag and give a lower score."""


def build_job_context(job: JobListing, candidate: Optional[Dict[str, Any]] = None) -> str:
    """Render a listing (and optional candidate profile) as prompt context."""
    lines = [
        "## Job",
        f"Title: {job.title}",
        f"Company: {job.company or 'Unknown'}",
        f"Location: {job.location or 'Unknown'}",
        f"Platform: {job.platform.value}",
    ]
    if job.salary:
        lines.append(f"Salary: {job.salary}")
    if job.job_type:
        lines.append(f"Type: {job.job_type}")
    lines.append("")
    lines.append("### Description")
    lines.append(job.description or "(no description extracted)")

    if candidate:
        lines.append("")
        lines.append("## Candidate")
        for key, value in candidate.items():
            if isinstance(value, (list, tuple)):
                value = ", ".join(str(v) for v in value)
            lines.append(f"{key}: {value}")

    return "\n".join(lines)


class JobAnalyzer:
    """
    Usage:
        analyzer = JobAnalyzer()
        analysis = await analyzer.analyze(job)
    """

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

    async def analyze(self, job: JobListing) -> JobAnalysis:
        """Analyze a single listing. Raises AIServiceError if the model is unreachable."""
        user_message = (
            "Analyze this job listing and return the JSON assessment.\n\n"
            + build_job_context(job, self.candidate)
        )
        content = await self.completion.complete(SYSTEM_PROMPT, user_message, max_tokens=1024)
        return self._parse_analysis(content)

    def _parse_analysis(self, content: str) -> JobAnalysis:
        data = safe_json_loads(content)
        if not isinstance(data, dict):
            logger.warning("Failed to parse analysis JSON, using neutral score")
            return JobAnalysis(
                match_score=0.5,
                reasoning=content[:200],
                summary="Analysis parsing failed, review manually",
                red_flags=["Could not parse AI analysis"],
            )

        try:
            score = float(data.get("matchScore") or 0)
        except (TypeError, ValueError):
            score = 0.0
        score = max(0.0, min(100.0, score))

        return JobAnalysis(
            match_score=score / 100.0,
            reasoning=str(data.get("reasoning") or ""),
            summary=str(data.get("summary") or ""),
            red_flags=[str(f) for f in data.get("redFlags") or [] if f],
            highlights=[str(h) for h in data.get("highlights") or [] if h],
            recommended_resume=str(data.get("recommendedResume") or "default"),
        )
