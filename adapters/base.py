"""
Base adapter interface for job platforms.
All platform-specific adapters inherit from this.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, ClassVar, Dict, List, Optional

from playwright.async_api import Page

from core.config import EngineConfig, get_config
from core.hints import HintStore, SiteHintFile
from core.human_behavior import HumanBehavior
from core.models import (
    ApplicationProgress,
    ApplicationResult,
    JobDetails,
    JobListing,
    ListingCard,
    PlatformType,
    SearchProfile,
)
from core.page_reader import PageReader
from core.selector_healer import SelectorHealer

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ApplicationProgress], None]
QuestionCallback = Callable[[str, Optional[str]], Awaitable[Optional[str]]]


class PlatformAdapter(ABC):
    """
    Abstract base class for job platform adapters.

    An adapter owns everything site-specific: search URL construction,
    authentication checks, listing/detail extraction and the apply flow.
    It holds one SelectorHealer, one PageReader and one HintStore for its
    platform for as long as the adapter lives.
    """

    platform: ClassVar[PlatformType]
    site: ClassVar[str] = ""
    login_url: ClassVar[str] = ""
    requires_easy_apply: ClassVar[bool] = False
    AUTH_SELECTORS: ClassVar[List[str]] = []

    def __init__(
        self,
        behavior: Optional[HumanBehavior] = None,
        healer: Optional[SelectorHealer] = None,
        hints: Optional[HintStore] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.config = config or get_config()
        self.behavior = behavior or HumanBehavior(self.config)
        self.healer = healer or SelectorHealer(self.platform.value, config=self.config)
        self.reader = PageReader(self.healer)
        self.hints = hints or HintStore(self.platform.value, self.site, config=self.config)

    # === Authentication ===

    async def is_authenticated(self, page: Page) -> bool:
        for selector in self.AUTH_SELECTORS:
            try:
                if await page.locator(selector).first.is_visible(timeout=2000):
                    return True
            except Exception:
                continue
        return False

    async def navigate_to_login(self, page: Page):
        logger.info(f"[{self.platform.value}] Opening login page, waiting for manual sign-in")
        await page.goto(self.login_url, wait_until="domcontentloaded")

    # === Search & extraction ===

    @abstractmethod
    def build_search_url(self, profile: SearchProfile, page_num: Optional[int] = None) -> str:
        """Search results URL for ``profile``; ``page_num`` is 1-based."""
        pass

    @abstractmethod
    async def extract_listings(self, page: Page) -> List[ListingCard]:
        """Read the listing cards on the current search results page."""
        pass

    @abstractmethod
    async def extract_job_details(self, page: Page, url: str) -> JobDetails:
        """Open ``url`` if needed and read the detail fields."""
        pass

    # === Applications ===

    @abstractmethod
    async def apply_to_job(
        self,
        page: Page,
        job: JobListing,
        answers: Dict[str, str],
        resume_path: str,
        on_progress: Optional[ProgressCallback] = None,
        on_question: Optional[QuestionCallback] = None,
    ) -> ApplicationResult:
        pass

    # === Hints ===

    def get_hints(self) -> SiteHintFile:
        return self.hints.load()

    def update_hints(self, changes: Dict[str, Any], note: Optional[str] = None):
        self.hints.update(changes, note=note)

    def selectors(self, action: str, intent: str, builtin: List[str]) -> List[str]:
        return self.hints.merged_selectors(action, intent, builtin)

    # === Helpers ===

    async def _goto_if_needed(self, page: Page, url: str):
        if url and url not in page.url:
            await page.goto(url, wait_until="domcontentloaded")
            await self.behavior.delay(1, 2)

    @staticmethod
    def _keywords_query(profile: SearchProfile) -> str:
        terms = list(profile.search.keywords)
        terms += [f"-{term}" for term in profile.search.exclude_terms]
        return " ".join(terms)

    @staticmethod
    def _report(on_progress: Optional[ProgressCallback], step: int, action: str, total: Optional[int] = None):
        if on_progress:
            on_progress(ApplicationProgress(step=step, current_action=action, total_steps=total))
