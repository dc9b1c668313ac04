"""
Selector Self-Healing

When every built-in selector for a field stops matching, the healer asks
the LLM for replacements based on a cleaned DOM snapshot. Working
replacements are cached per platform in
<HINTS_DIR>/selector-cache/<platform>-selectors.json and reused across
runs; their confidence rises on success and drops on failure until the
entry is ignored.

Live repairs are attempted at most once per selector group per process.
"""

import json
import logging
from pathlib import Path
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Set

from playwright.async_api import Page

from ai.completion_service import CompletionService
from ai.selector_ai import SelectorAI
from .config import EngineConfig, get_config
from .models import utc_now_iso

logger = logging.getLogger(__name__)

CACHE_VERSION = 1

SNAPSHOT_SCRIPT = """({ containerSel, maxLen }) => {
    const root = containerSel
        ? document.querySelector(containerSel) || document.body
        : document.body
    const clone = root.cloneNode(true)
    clone
        .querySelectorAll('script, style, svg, link[rel="stylesheet"], noscript')
        .forEach((el) => el.remove())

    let html = clone.innerHTML
    html = html.replace(/data:[^"'\\s]+/g, 'data:...')
    html = html.replace(/\\sstyle="[^"]*"/g, '')
    html = html.replace(/\\s{2,}/g, ' ')

    if (html.length > maxLen) {
        html = html.slice(0, maxLen) + '\\n<!-- truncated -->'
    }
    return html
}"""


@dataclass
class RepairedSelector:
    original_selectors: List[str]
    repaired_selectors: List[str]
    confidence: float
    repaired_at: str
    success_count: int = 0
    failure_count: int = 0


class SelectorHealer:
    """
    Per-platform selector repair with a persistent cache.

    Usage:
        healer = SelectorHealer("linkedin")
        repaired = healer.get_cached_repair(selectors)
        if not repaired:
            repaired = await healer.repair(page, selectors, field_name="salary")
    """

    def __init__(
        self,
        platform: str,
        ai: Optional[SelectorAI] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.platform = platform
        self.config = config or get_config()
        self.ai = ai or SelectorAI(CompletionService(config=self.config))
        self.attempted_this_session: Set[str] = set()
        self._cache: Dict[str, RepairedSelector] = {}
        self._pending_confidence: Dict[str, float] = {}
        self._cache_loaded = False

    @staticmethod
    def cache_key(selectors: List[str]) -> str:
        return "||".join(sorted(selectors))

    @property
    def cache_path(self) -> Path:
        return self.config.selector_cache_dir / f"{self.platform}-selectors.json"

    def get_cached_repair(self, selectors: List[str]) -> Optional[List[str]]:
        """Return cached replacement selectors if the entry is still trusted."""
        self._ensure_cache_loaded()
        entry = self._cache.get(self.cache_key(selectors))
        if not entry:
            return None
        if entry.confidence < self.config.SELECTOR_CACHE_MIN_CONFIDENCE:
            return None
        if entry.failure_count >= self.config.SELECTOR_CACHE_MAX_FAILURES:
            return None
        return list(entry.repaired_selectors)

    def record_success(self, selectors: List[str], repaired: Optional[List[str]] = None):
        """Count a successful use of the repair for ``selectors``.

        With ``repaired`` and no existing entry, the validated candidates
        from a live repair are stored using the confidence the model gave.
        """
        self._ensure_cache_loaded()
        key = self.cache_key(selectors)
        entry = self._cache.get(key)

        if entry is None:
            if not repaired:
                return
            confidence = self._pending_confidence.pop(key, 0.5)
            self._cache[key] = RepairedSelector(
                original_selectors=list(selectors),
                repaired_selectors=list(repaired),
                confidence=confidence,
                repaired_at=utc_now_iso(),
                success_count=1,
            )
            logger.info(f"Selector repaired for {self.platform}: {selectors} -> {repaired}")
        else:
            if repaired:
                entry.repaired_selectors = list(repaired)
            entry.success_count += 1
            entry.confidence = min(1.0, entry.confidence + self.config.SELECTOR_CONFIDENCE_BOOST)

        self._persist_cache()

    def record_failure(self, selectors: List[str]):
        self._ensure_cache_loaded()
        entry = self._cache.get(self.cache_key(selectors))
        if entry is None:
            return
        entry.failure_count += 1
        entry.confidence = max(0.0, entry.confidence - self.config.SELECTOR_CONFIDENCE_PENALTY)
        self._persist_cache()

    async def repair(
        self,
        page: Page,
        selectors: List[str],
        field_name: Optional[str] = None,
        within: Optional[str] = None,
    ) -> Optional[List[str]]:
        """Ask the LLM for replacement selectors.

        Returns the candidates unvalidated; callers check them against the
        page and call record_success() with the ones that worked.
        """
        key = self.cache_key(selectors)
        if key in self.attempted_this_session:
            return None
        self.attempted_this_session.add(key)

        if not self.ai.available:
            return None

        try:
            snapshot = await self.capture_snapshot(page, within)
            if not snapshot or len(snapshot) < 50:
                logger.warning("DOM snapshot too small, skipping selector repair")
                return None

            suggestion = await self.ai.suggest_repair(selectors, snapshot, field_name)
        except Exception as e:
            logger.warning(f"Selector repair failed for {field_name or selectors}: {e}")
            return None

        if not suggestion or not suggestion.selectors:
            logger.warning(f"No replacement selectors suggested for {field_name or selectors}")
            return None

        self._pending_confidence[key] = suggestion.confidence
        logger.debug(
            f"Repair candidates for {field_name or selectors}: {suggestion.selectors} "
            f"(confidence {suggestion.confidence:.2f})"
        )
        return suggestion.selectors

    async def capture_snapshot(self, page: Page, within: Optional[str] = None) -> str:
        return await page.evaluate(
            SNAPSHOT_SCRIPT,
            {"containerSel": within, "maxLen": self.config.SELECTOR_SNAPSHOT_MAX_LENGTH},
        )

    def reset_session(self):
        self.attempted_this_session.clear()
        self._pending_confidence.clear()

    def _ensure_cache_loaded(self):
        if self._cache_loaded:
            return
        self._cache_loaded = True

        path = self.cache_path
        if not path.exists():
            return

        try:
            with open(path) as f:
                data = json.load(f)
            if data.get("version") == CACHE_VERSION and data.get("platform") == self.platform:
                for key, entry in (data.get("entries") or {}).items():
                    self._cache[key] = RepairedSelector(**entry)
                logger.info(f"Loaded {len(self._cache)} cached selector repairs for {self.platform}")
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Failed to load selector cache: {e}")

    def _persist_cache(self):
        data = {
            "version": CACHE_VERSION,
            "platform": self.platform,
            "entries": {key: asdict(entry) for key, entry in self._cache.items()},
        }
        try:
            self.cache_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.cache_path, "w") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            logger.warning(f"Failed to persist selector cache: {e}")
