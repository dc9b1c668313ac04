"""
Indeed Adapter - job search extraction only.

Search and job pages are public, so no login is needed. Indeed's apply
flow differs per employer (Indeed-hosted form, ATS redirect, employer
site), so applications are always handed back for manual submission.
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

logger = logging.getLogger(__name__)


DATE_POSTED_MAP = {
    "past24hrs": "1",
    "pastWeek": "7",
    "pastMonth": "30",
}

JOB_TYPE_MAP = {
    "full-time": "fulltime",
    "contract": "contract",
    "freelance": "temporary",
    "part-time": "parttime",
    "internship": "internship",
}

REMOTE_JOB_FILTER = "032b3046-06a3-4876-8dfd-474eb5e7ed11"
RESULTS_PER_PAGE = 10


class IndeedAdapter(PlatformAdapter):
    platform = PlatformType.INDEED
    site = "indeed.com/jobs"
    login_url = "https://secure.indeed.com/auth"

    BASE_URL = "https://www.indeed.com"

    SELECTORS = {
        "jobCards": [".job_seen_beacon", ".resultContent", ".cardOutline", "[data-jk]", "li.css-1ac2h1y"],
        "cardTitle": [".jobTitle a", "h2.jobTitle span", "a[data-jk] span[title]", ".jcs-JobTitle span"],
        "cardCompany": [
            '[data-testid="company-name"]',
            ".companyName",
            ".company_location .companyName",
            "span.css-92r8pb",
        ],
        "cardLocation": [
            '[data-testid="text-location"]',
            ".companyLocation",
            ".company_location .companyLocation",
            ".css-1p0sjhy",
        ],
        "cardLink": ["a[data-jk]", ".jobTitle a", "h2.jobTitle a"],
        "detailDescription": [
            "#jobDescriptionText",
            ".jobsearch-JobComponent-description",
            '[id="jobDescriptionText"]',
            ".jobsearch-jobDescriptionText",
            "#jobDescription",
            ".jobsearch-BodyContainer",
            'div[class*="jobDescription"]',
            '[data-testid="jobDescriptionText"]',
        ],
        "detailSalary": [
            "#salaryInfoAndJobType",
            '[data-testid="attribute_snippet_testid"]',
            ".salary-snippet-container",
            ".css-1bkk2ja",
        ],
        "detailTitle": ["h1.jobsearch-JobInfoHeader-title", "h2.jobTitle"],
    }

    async def is_authenticated(self, page: Page) -> bool:
        return True

    def build_search_url(self, profile: SearchProfile, page_num: Optional[int] = None) -> str:
        search = profile.search
        params: Dict[str, str] = {}

        keywords = self._keywords_query(profile)
        if keywords:
            params["q"] = keywords

        if search.location:
            params["l"] = search.location[0]

        if search.date_posted in DATE_POSTED_MAP:
            params["fromage"] = DATE_POSTED_MAP[search.date_posted]

        # Indeed accepts a single job type
        job_types = [JOB_TYPE_MAP[t] for t in search.job_type if t in JOB_TYPE_MAP]
        if job_types:
            params["jt"] = job_types[0]

        if search.remote_only:
            params["rbl"] = "-1"
            params["remotejob"] = REMOTE_JOB_FILTER

        if page_num and page_num > 1:
            params["start"] = str((page_num - 1) * RESULTS_PER_PAGE)

        return f"{self.BASE_URL}/jobs?{urlencode(params)}"

    async def extract_listings(self, page: Page) -> List[ListingCard]:
        await self.behavior.human_scroll(page, "down", 600)

        card_selectors = self.selectors("extract_listings", "job_cards", self.SELECTORS["jobCards"])
        elements: List[Locator] = []
        for selector in card_selectors:
            elements = await page.locator(selector).all()
            if elements:
                logger.info(f"[Indeed] Found {len(elements)} job cards using: {selector}")
                break

        if not elements:
            logger.warning("[Indeed] No job cards found on page")
            return []

        cards = []
        for element in elements:
            try:
                card = await self._extract_card(element)
            except Exception as e:
                logger.warning(f"[Indeed] Failed to extract card: {e}")
                continue
            if card:
                cards.append(card)

        logger.info(f"[Indeed] Extracted {len(cards)} cards from {len(elements)} elements")
        return cards

    async def _extract_card(self, element: Locator) -> Optional[ListingCard]:
        href = await self.reader.quick_attribute(element, self.SELECTORS["cardLink"], "href")
        job_key = await element.get_attribute("data-jk", timeout=1000) or job_key_from_href(href or "")
        if not job_key:
            return None

        title_selectors = self.selectors("extract_listings", "card_title", self.SELECTORS["cardTitle"])
        title = await self.reader.quick_text(element, title_selectors)
        if not title:
            return None

        url = ""
        if href:
            url = href if href.startswith("http") else f"{self.BASE_URL}{href}"

        return ListingCard(
            external_id=job_key,
            title=title,
            company=await self.reader.quick_text(element, self.SELECTORS["cardCompany"]) or "",
            location=await self.reader.quick_text(element, self.SELECTORS["cardLocation"]) or "",
            url=url or f"{self.BASE_URL}/viewjob?jk={job_key}",
            easy_apply=False,
        )

    async def extract_job_details(self, page: Page, url: str) -> JobDetails:
        await self._goto_if_needed(page, url)
        await self.behavior.delay(0.5, 1.0)

        description_selectors = self.selectors(
            "extract_details", "description", self.SELECTORS["detailDescription"]
        )
        description = await self.reader.get_text_by_selectors(page, description_selectors, "description")
        if not description:
            logger.info("[Indeed] Known selectors failed for description, trying fallback extraction")
            description = await self.reader.largest_text_block(page, [])
        self.hints.record_result("extract_details", "description", bool(description))
        if description:
            await self.behavior.reading_pause(len(description))

        salary = None
        for selector in self.SELECTORS["detailSalary"]:
            try:
                texts = await page.locator(selector).all_inner_texts()
            except Exception:
                continue
            salary = next(
                (t.strip() for t in texts if "$" in t or "/yr" in t or "/hr" in t),
                None,
            )
            if salary:
                break

        title = await self.reader.quick_text(page, self.SELECTORS["detailTitle"])

        return JobDetails(description=description or "", salary=salary, title=title)

    async def apply_to_job(
        self,
        page: Page,
        job: JobListing,
        answers: Dict[str, str],
        resume_path: str,
        on_progress: Optional[ProgressCallback] = None,
        on_question: Optional[QuestionCallback] = None,
    ) -> ApplicationResult:
        return ApplicationResult(
            success=False,
            job_id=job.id,
            needs_manual_intervention=True,
            intervention_reason="Indeed external apply: manual review required",
            error_message="Indeed applications require manual submission",
        )


def job_key_from_href(href: str) -> Optional[str]:
    match = re.search(r"[?&]jk=([a-f0-9]+)", href)
    return match.group(1) if match else None
