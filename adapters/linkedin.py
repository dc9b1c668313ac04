"""
LinkedIn Adapter - job search extraction and Easy Apply.

LinkedIn has the most jobs but the most aggressive anti-bot detection,
so every interaction goes through HumanBehavior pacing. Authentication is
the user's own logged-in browser profile.

Search results are virtual-scrolled: off-screen list items are kept as
empty placeholders, so the list is scrolled down in steps before reading
cards and occluded items are scrolled into view one at a time.
"""

import re
import logging
from typing import Dict, List, Optional
from urllib.parse import urlencode

from playwright.async_api import Locator, Page

from core.models import (
    ApplicationResult,
    JobDetails,
    JobListing,
    ListingCard,
    PlatformType,
    SearchProfile,
)
from .base import PlatformAdapter, ProgressCallback, QuestionCallback
from .handlers.linkedin_easy_apply import LinkedInEasyApply

logger = logging.getLogger(__name__)


DATE_POSTED_MAP = {
    "past24hrs": "r86400",
    "pastWeek": "r604800",
    "pastMonth": "r2592000",
}

JOB_TYPE_MAP = {
    "full-time": "F",
    "contract": "C",
    "freelance": "T",  # LinkedIn calls this "Temporary"
    "part-time": "P",
}

EXPERIENCE_MAP = {
    "internship": "1",
    "entry": "2",
    "associate": "3",
    "mid-senior": "4",
    "director": "5",
    "executive": "6",
}

# f_SB2 buckets: (minimum salary, code)
SALARY_BUCKETS = [(40000 + 20000 * i, str(i + 1)) for i in range(9)]

RESULTS_PER_PAGE = 25

SALARY_PATTERN = r"\$[\d,]+(?:\/yr|\/hr|K?\s*-\s*\$[\d,]+(?:\/yr|\/hr|K)?)"
POSTED_DATE_MARKERS = ("ago", "hour", "day", "week", "reposted")


class LinkedInAdapter(PlatformAdapter):
    """
    LinkedIn job search and Easy Apply automation.

    Usage:
        adapter = LinkedInAdapter()
        await page.goto(adapter.build_search_url(profile))
        cards = await adapter.extract_listings(page)
        details = await adapter.extract_job_details(page, cards[0].url)
    """

    platform = PlatformType.LINKEDIN
    site = "linkedin.com/jobs"
    login_url = "https://www.linkedin.com/login"
    requires_easy_apply = True

    BASE_URL = "https://www.linkedin.com"

    AUTH_SELECTORS = [
        ".global-nav__me-photo",
        "img.global-nav__me-photo",
        ".global-nav__primary-link-me-menu-trigger",
        ".feed-identity-module__actor-meta",
    ]
    GUEST_SIGN_IN = 'a[data-tracking-control-name="guest_homepage-basic_nav-header-signin"]'

    SELECTORS = {
        "jobCards": [
            ".job-card-container",
            ".jobs-search-results__list-item",
            "li[data-occludable-job-id]",
            ".scaffold-layout__list-item",
        ],
        "cardTitle": [
            ".job-card-list__title",
            "a.job-card-container__link",
            ".artdeco-entity-lockup__title a",
            'a[class*="job-card-list__title"]',
        ],
        "cardCompany": [
            ".job-card-container__primary-description",
            ".artdeco-entity-lockup__subtitle",
            ".job-card-container__company-name",
        ],
        "cardLocation": [
            ".job-card-container__metadata-item",
            ".artdeco-entity-lockup__caption",
            ".job-card-container__metadata-wrapper li",
        ],
        "detailDescription": [
            "#job-details",
            ".jobs-description__content",
            ".jobs-description-content__text",
            ".jobs-box__html-content",
            'article[class*="jobs-description"]',
            ".jobs-description",
            'div[class*="description__text"]',
            ".job-details-about-the-job-module",
        ],
        "detailSalary": [
            ".job-details-jobs-unified-top-card__job-insight span",
            '[class*="salary"]',
            ".compensation__salary",
        ],
        "detailPostedDate": [
            ".job-details-jobs-unified-top-card__primary-description-container span",
            "time",
            ".jobs-unified-top-card__posted-date",
        ],
    }

    LIST_CONTAINERS = [
        ".jobs-search-results-list",
        ".scaffold-layout__list",
        ".jobs-search__results-list",
    ]

    DETAIL_CONTAINERS = [
        ".scaffold-layout__detail",
        ".jobs-search__job-details",
        '[class*="job-details"]',
        ".job-view-layout",
    ]

    def __init__(self, *args, db=None, answer_generator=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.applicator = LinkedInEasyApply(
            behavior=self.behavior,
            reader=self.reader,
            db=db,
            answer_generator=answer_generator,
            hints=self.hints,
            config=self.config,
        )

    # === Authentication ===

    async def is_authenticated(self, page: Page) -> bool:
        if await super().is_authenticated(page):
            return True

        url = page.url
        if "/feed" in url or "/jobs" in url or "/in/" in url:
            # Logged-in pages never show the guest sign-in link
            try:
                return not await page.locator(self.GUEST_SIGN_IN).is_visible(timeout=2000)
            except Exception:
                return True

        return False

    # === Search URL ===

    def build_search_url(self, profile: SearchProfile, page_num: Optional[int] = None) -> str:
        search = profile.search
        params: Dict[str, str] = {}

        keywords = self._keywords_query(profile)
        if keywords:
            params["keywords"] = keywords

        if search.location:
            params["location"] = search.location[0]

        if search.date_posted in DATE_POSTED_MAP:
            params["f_TPR"] = DATE_POSTED_MAP[search.date_posted]

        job_types = [JOB_TYPE_MAP[t] for t in search.job_type if t in JOB_TYPE_MAP]
        if job_types:
            params["f_JT"] = ",".join(job_types)

        levels = [EXPERIENCE_MAP[l.lower()] for l in search.experience_level if l.lower() in EXPERIENCE_MAP]
        if levels:
            params["f_E"] = ",".join(levels)

        if search.remote_only:
            params["f_WT"] = "2"

        if search.salary_min:
            bucket = salary_bucket(search.salary_min)
            if bucket:
                params["f_SB2"] = bucket

        if search.easy_apply_only:
            params["f_AL"] = "true"

        if page_num and page_num > 1:
            params["start"] = str((page_num - 1) * RESULTS_PER_PAGE)

        return f"{self.BASE_URL}/jobs/search/?{urlencode(params)}"

    # === Listings ===

    async def extract_listings(self, page: Page) -> List[ListingCard]:
        await self._scroll_job_list(page)

        card_selectors = self.selectors("extract_listings", "job_cards", self.SELECTORS["jobCards"])
        card_elements: List[Locator] = []
        for selector in card_selectors:
            card_elements = await page.locator(selector).all()
            if card_elements:
                logger.info(f"[LinkedIn] Found {len(card_elements)} job cards using: {selector}")
                break

        if not card_elements:
            found = await self.reader.wait_for_any_selector(page, card_selectors, timeout_ms=5000)
            if found:
                card_elements = await page.locator(found).all()

        cards: List[ListingCard] = []
        seen = set()
        for element in card_elements:
            try:
                card = await self._extract_card(element)
            except Exception as e:
                logger.warning(f"[LinkedIn] Failed to extract card: {e}")
                continue
            if card and card.external_id not in seen:
                cards.append(card)
                seen.add(card.external_id)

        cards.extend(await self._extract_occluded(page, seen))
        logger.info(f"[LinkedIn] Extracted {len(cards)} cards")
        return cards

    async def _extract_occluded(self, page: Page, seen: set) -> List[ListingCard]:
        """Scroll placeholders for virtualized list items into view and read them."""
        try:
            all_ids = await page.locator("li[data-occludable-job-id]").evaluate_all(
                "els => els.map(el => el.getAttribute('data-occludable-job-id') || '').filter(Boolean)"
            )
        except Exception:
            return []

        missing = [job_id for job_id in all_ids if job_id not in seen]
        if not missing:
            return []
        logger.info(f"[LinkedIn] {len(missing)} occluded items, scrolling to extract")

        cards = []
        for job_id in missing:
            selector = f'li[data-occludable-job-id="{job_id}"]'
            try:
                element = page.locator(selector).first
                await element.scroll_into_view_if_needed(timeout=2000)
                await self.behavior.delay(0.25, 0.45)
                card = await self._extract_card(element)
            except Exception as e:
                logger.warning(f"[LinkedIn] Failed to extract occluded card {job_id}: {e}")
                continue

            if card is None:
                # Content still not rendered, keep the id with a constructed URL
                card = ListingCard(external_id=job_id, url=f"{self.BASE_URL}/jobs/view/{job_id}/")
            cards.append(card)
            seen.add(job_id)
        return cards

    async def _extract_card(self, element: Locator) -> Optional[ListingCard]:
        job_id = (
            await element.get_attribute("data-occludable-job-id", timeout=1000)
            or await element.get_attribute("data-job-id", timeout=1000)
            or await self._job_id_from_links(element)
        )
        if not job_id:
            return None

        title_selectors = self.selectors("extract_listings", "card_title", self.SELECTORS["cardTitle"])
        title = await self.reader.quick_text(element, title_selectors)
        if not title:
            return None

        company = await self.reader.quick_text(element, self.SELECTORS["cardCompany"]) or ""
        location = await self.reader.quick_text(element, self.SELECTORS["cardLocation"]) or ""
        card_text = (await element.inner_text(timeout=1500) or "").lower()

        href = await self.reader.quick_attribute(element, title_selectors, "href")
        url = ""
        if href:
            url = href if href.startswith("http") else f"{self.BASE_URL}{href}"

        return ListingCard(
            external_id=job_id,
            title=title,
            company=company,
            location=location,
            url=url or f"{self.BASE_URL}/jobs/view/{job_id}/",
            easy_apply="easy apply" in card_text,
        )

    @staticmethod
    async def _job_id_from_links(element: Locator) -> Optional[str]:
        try:
            hrefs = await element.locator("a").evaluate_all(
                "els => els.map(a => a.getAttribute('href') || '')"
            )
        except Exception:
            return None
        for href in hrefs:
            job_id = job_id_from_href(href)
            if job_id:
                return job_id
        return None

    async def _scroll_job_list(self, page: Page):
        """Scroll the results list down in steps so lazy items render."""
        for selector in self.LIST_CONTAINERS:
            try:
                if not await page.locator(selector).first.is_visible(timeout=2000):
                    continue
                metrics = await page.evaluate(
                    """(sel) => {
                        const list = document.querySelector(sel)
                        if (!list) return { scrollHeight: 0, clientHeight: 0 }
                        return { scrollHeight: list.scrollHeight, clientHeight: list.clientHeight }
                    }""",
                    selector,
                )
            except Exception:
                continue

            if metrics["scrollHeight"] <= metrics["clientHeight"]:
                return

            step = max(200, metrics["clientHeight"] // 3)
            position = 0
            scroll_height = metrics["scrollHeight"]
            while position < scroll_height:
                position = min(position + step, scroll_height)
                new_height = await page.evaluate(
                    """({ sel, pos }) => {
                        const list = document.querySelector(sel)
                        if (!list) return 0
                        list.scrollTop = pos
                        return list.scrollHeight
                    }""",
                    {"sel": selector, "pos": position},
                )
                await self.behavior.delay(0.3, 0.6)
                scroll_height = max(scroll_height, new_height or 0)

            # Stay at the bottom: scrolling back up re-occludes the bottom items
            await self.behavior.delay(0.5, 1.0)
            return

    # === Details ===

    async def extract_job_details(self, page: Page, url: str) -> JobDetails:
        await self._goto_if_needed(page, url)
        await self.behavior.delay(0.8, 1.5)

        description_selectors = self.selectors(
            "extract_details", "description", self.SELECTORS["detailDescription"]
        )
        description = await self.reader.quick_text(page, description_selectors)
        if not description:
            description = await self.reader.recover_text(page, description_selectors, "description")
        if not description:
            description = await self.reader.largest_text_block(page, self.DETAIL_CONTAINERS)
            if description:
                logger.info(f"[LinkedIn] Fallback extracted description ({len(description)} chars)")
        self.hints.record_result("extract_details", "description", bool(description))
        if description:
            await self.behavior.reading_pause(len(description))

        salary = await self._quick_salary(page)
        if not salary:
            healed = await self.reader.recover_text(page, self.SELECTORS["detailSalary"], "salary")
            if healed and looks_like_salary(healed):
                salary = healed

        posted_date = await self._quick_posted_date(page)
        if not posted_date:
            healed = await self.reader.recover_text(page, self.SELECTORS["detailPostedDate"], "posted date")
            if healed and looks_like_posted_date(healed):
                posted_date = healed

        # Title and company stay with the card values: the detail header's
        # inner text often repeats the title.
        return JobDetails(description=description or "", salary=salary, posted_date=posted_date)

    async def _quick_salary(self, page: Page) -> Optional[str]:
        for selector in self.SELECTORS["detailSalary"]:
            try:
                texts = await page.locator(selector).all_inner_texts()
            except Exception:
                continue
            for text in texts:
                text = text.strip()
                if text and looks_like_salary(text):
                    return text

        try:
            body = await page.locator("body").inner_text(timeout=2000)
        except Exception:
            return None
        match = re.search(SALARY_PATTERN, body, re.IGNORECASE)
        return match.group(0) if match else None

    async def _quick_posted_date(self, page: Page) -> Optional[str]:
        for selector in self.SELECTORS["detailPostedDate"]:
            try:
                texts = await page.locator(selector).all_inner_texts()
            except Exception:
                continue
            for text in texts:
                text = text.strip().lower()
                if looks_like_posted_date(text):
                    return text
        return None

    # === Applications ===

    async def apply_to_job(
        self,
        page: Page,
        job: JobListing,
        answers: Dict[str, str],
        resume_path: str,
        on_progress: Optional[ProgressCallback] = None,
        on_question: Optional[QuestionCallback] = None,
    ) -> ApplicationResult:
        return await self.applicator.apply(page, job, answers, resume_path, on_progress, on_question)


def salary_bucket(salary_min: int) -> Optional[str]:
    """Highest f_SB2 bucket whose floor does not exceed ``salary_min``."""
    code = None
    for floor, bucket in SALARY_BUCKETS:
        if floor <= salary_min:
            code = bucket
    return code


def job_id_from_href(href: str) -> Optional[str]:
    match = re.search(r"/jobs/view/(\d+)", href) or re.search(r"currentJobId=(\d+)", href)
    return match.group(1) if match else None


def looks_like_salary(text: str) -> bool:
    return "$" in text or "/yr" in text or "/hr" in text


def looks_like_posted_date(text: str) -> bool:
    lower = text.lower()
    return any(marker in lower for marker in POSTED_DATE_MARKERS)
