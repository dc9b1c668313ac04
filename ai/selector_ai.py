"""
AI-Powered Selector Repair

Asks the completion model for replacement CSS selectors when a known
selector group stops matching a site's markup.
"""

import logging
from typing import List, Optional
from dataclasses import dataclass

from .completion_service import CompletionService, safe_json_loads

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You are a CSS selector repair specialist for web scraping.
You will be given:
1. A list of CSS selectors that no longer match any elements
2. A DOM snapshot of the current page
3. Optionally, the field name these selectors were trying to extract

Analyze the DOM and suggest corrected CSS selectors.

Respond with ONLY valid JSON in this format:
{
  "selectors": ["selector1", "selector2"],
  "confidence": 0.85,
  "reasoning": "Brief explanation"
}

Rules:
- Return 1-3 selectors, ordered by specificity (most specific first)
- Prefer data attributes and semantic selectors over class-based ones
- Class names with hashes (e.g., .css-1abc23) are unstable; avoid them
- Confidence should reflect how sure you are (0.0-1.0)
- If you can't determine good selectors, return an empty selectors array with low confidence"""


@dataclass
class SelectorRepair:
    """AI-suggested replacement for a failed selector group."""
    selectors: List[str]
    confidence: float
    reasoning: str = ""


class SelectorAI:
    """
    AI service for repairing broken selectors.

    Usage:
        ai = SelectorAI()
        repair = await ai.suggest_repair(failed, dom_snapshot, field_name="description")
    """

    MAX_SELECTOR_LENGTH = 200

    def __init__(self, completion: Optional[CompletionService] = None):
        self.completion = completion or CompletionService()

    @property
    def available(self) -> bool:
        return self.completion.available

    async def suggest_repair(
        self,
        failed_selectors: List[str],
        dom_snapshot: str,
        field_name: Optional[str] = None,
    ) -> Optional[SelectorRepair]:
        """
        Suggest replacement selectors.

        Args:
            failed_selectors: Selectors that no longer match
            dom_snapshot: Cleaned, truncated HTML of the page or container
            field_name: Semantic purpose of the element (e.g. "salary")

        Returns:
            SelectorRepair, or None if the reply could not be parsed
        """
        failed = "\n".join(f"- `{s}`" for s in failed_selectors)
        target = f"## Target Field\n{field_name}\n" if field_name else ""
        prompt = f"""## Failed Selectors
{failed}

{target}
## DOM Snapshot
```html
{dom_snapshot}
```"""

        content = await self.completion.complete(SYSTEM_PROMPT, prompt, max_tokens=512)
        data = safe_json_loads(content)
        if not isinstance(data, dict) or not isinstance(data.get("selectors"), list):
            logger.warning(f"Could not parse selector repair response: {content[:200]}")
            return None

        selectors = [
            s for s in data["selectors"]
            if isinstance(s, str) and 0 < len(s) < self.MAX_SELECTOR_LENGTH
        ]
        confidence = data.get("confidence")
        if isinstance(confidence, (int, float)) and not isinstance(confidence, bool):
            confidence = max(0.0, min(1.0, float(confidence)))
        else:
            confidence = 0.5

        return SelectorRepair(
            selectors=selectors,
            confidence=confidence,
            reasoning=str(data.get("reasoning") or ""),
        )
