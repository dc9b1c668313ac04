"""
Page reading helpers shared by the site extractors.

Every lookup tries a list of selectors in order and, when none of them
match, falls back to the SelectorHealer: a trusted cached repair first,
then one live LLM repair whose candidates are validated against the page
before being cached.
"""

import asyncio
import logging
from typing import List, Optional, Union

from playwright.async_api import Locator, Page

from .selector_healer import SelectorHealer

logger = logging.getLogger(__name__)

Root = Union[Page, Locator]

QUICK_TIMEOUT_MS = 1500
HEALED_WAIT_TIMEOUT_MS = 3000

LARGEST_BLOCK_SCRIPT = """(containerSelectors) => {
    const containers = containerSelectors
        .map((sel) => document.querySelector(sel))
        .filter(Boolean)
    const root = containers[0] || document.body
    let best = ''
    for (const el of root.querySelectorAll('div, section, article, span')) {
        const text = (el.textContent || '').trim()
        if (text.length <= 100 || text.length <= best.length) continue
        if (el.querySelectorAll('div, section, article').length < 5) best = text
    }
    return best
}"""


class PageReader:
    def __init__(self, healer: Optional[SelectorHealer] = None):
        self.healer = healer

    async def quick_text(self, root: Root, selectors: List[str]) -> Optional[str]:
        """First non-empty inner text among ``selectors`` under ``root``."""
        for selector in selectors:
            try:
                text = await root.locator(selector).first.inner_text(timeout=QUICK_TIMEOUT_MS)
            except Exception:
                continue
            if text and text.strip():
                return text.strip()
        return None

    async def quick_attribute(self, root: Root, selectors: List[str], name: str) -> Optional[str]:
        for selector in selectors:
            try:
                value = await root.locator(selector).first.get_attribute(name, timeout=QUICK_TIMEOUT_MS)
            except Exception:
                continue
            if value:
                return value
        return None

    async def get_text_by_selectors(
        self,
        page: Page,
        selectors: List[str],
        field_name: Optional[str] = None,
        within: Optional[str] = None,
        root: Optional[Root] = None,
    ) -> Optional[str]:
        """Read text via ``selectors``, healing them if none match."""
        text = await self.quick_text(root or page, selectors)
        if text:
            return text
        return await self.recover_text(page, selectors, field_name, within, root)

    async def recover_text(
        self,
        page: Page,
        selectors: List[str],
        field_name: Optional[str] = None,
        within: Optional[str] = None,
        root: Optional[Root] = None,
    ) -> Optional[str]:
        if not self.healer:
            return None
        root = root or page

        cached = self.healer.get_cached_repair(selectors)
        if cached:
            text = await self.quick_text(root, cached)
            if text:
                self.healer.record_success(selectors)
                return text
            self.healer.record_failure(selectors)

        candidates = await self.healer.repair(page, selectors, field_name=field_name, within=within)
        if not candidates:
            return None

        valid = await self._validate(root, candidates)
        if not valid:
            logger.warning(f"No suggested selector matched the page for {field_name or selectors}")
            return None

        text = await self.quick_text(root, valid)
        if text:
            self.healer.record_success(selectors, repaired=valid)
        return text

    async def get_visible_text(self, page: Page, container_selector: Optional[str] = None) -> str:
        return await page.evaluate(
            """(sel) => {
                const root = sel ? document.querySelector(sel) : document.body
                if (!root) return ''
                return (root.textContent || '').replace(/\\s+/g, ' ').trim()
            }""",
            container_selector,
        )

    async def wait_for_any_selector(
        self,
        page: Page,
        selectors: List[str],
        timeout_ms: int = 10000,
    ) -> Optional[str]:
        """Wait for any selector to attach; return the first (in list order) that did."""

        async def _wait(selector: str) -> Optional[str]:
            try:
                await page.wait_for_selector(selector, timeout=timeout_ms, state="attached")
                return selector
            except Exception:
                return None

        results = await asyncio.gather(*(_wait(s) for s in selectors))
        for found in results:
            if found:
                return found

        if self.healer:
            repaired = self.healer.get_cached_repair(selectors)
            from_cache = repaired is not None
            if not repaired:
                repaired = await self.healer.repair(page, selectors)
            for selector in repaired or []:
                try:
                    await page.wait_for_selector(
                        selector, timeout=HEALED_WAIT_TIMEOUT_MS, state="attached"
                    )
                except Exception:
                    continue
                self.healer.record_success(selectors, repaired=None if from_cache else [selector])
                return selector
            if from_cache:
                self.healer.record_failure(selectors)

        logger.warning(f"No selector found among {selectors}")
        return None

    async def count_elements(self, root: Root, selector: str) -> int:
        try:
            return await root.locator(selector).count()
        except Exception:
            return 0

    async def largest_text_block(self, page: Page, container_selectors: List[str]) -> str:
        """Longest leaf-ish text block (> 100 chars) inside the given containers."""
        try:
            return await page.evaluate(LARGEST_BLOCK_SCRIPT, container_selectors) or ""
        except Exception as e:
            logger.debug(f"Largest text block lookup failed: {e}")
            return ""

    async def _validate(self, root: Root, selectors: List[str]) -> List[str]:
        valid = []
        for selector in selectors:
            if await self.count_elements(root, selector) > 0:
                valid.append(selector)
        return valid
