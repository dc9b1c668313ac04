"""
Upwork Adapter - freelance project search and proposal drafting.

Upwork has no one-click apply: every bid is a proposal that costs
connects, so the adapter drafts one with the ProposalGenerator and hands
it back for manual review instead of submitting it.
"""

import re
import logging
from typing import Dict, List, Optional
from urllib.parse import urlencode

from playwright.async_api import Locator, Page

from ai.proposal_generator import ProposalGenerator
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


class UpworkAdapter(PlatformAdapter):
    platform = PlatformType.UPWORK
    site = "upwork.com/jobs"
    login_url = "https://www.upwork.com/ab/account-security/login"

    BASE_URL = "https://www.upwork.com"

    AUTH_SELECTORS = [
        '[data-test="nav-profile"]',
        ".nav-d-profile-image",
        ".up-avatar",
        'button[data-test="user-menu"]',
    ]

    SELECTORS = {
        "jobTiles": [
            '[data-test="job-tile-list"] article',
            ".job-tile",
            'section[data-test="JobTile"]',
            "article.air3-card-section",
        ],
        "tileTitle": [
            '[data-test="job-tile-title-link"] h2',
            ".job-tile-title a",
            "h2.my-0 a",
            "a.up-n-link",
        ],
        "tileClient": [
            '[data-test="client-info"]',
            ".client-info",
            ".up-n-link.text-muted",
            "small.text-muted",
        ],
        "tileSnippet": [".up-line-clamp-v2", '[data-test="UpCLineClamp JobDescription"]'],
        "detailDescription": [
            '[data-test="job-description-text"]',
            ".job-description",
            ".up-line-clamp-v2",
            "div.break.mb-0",
        ],
        "detailBudget": [
            '[data-test="budget"]',
            '[data-test="is-fixed-price"]',
            ".up-monetary",
            "strong.text-body-sm",
        ],
        "detailSkills": ['[data-test="token"]', ".up-skill-badge", ".air3-token", "span.badge"],
        "detailTitle": ['h1', 'h2[data-test="job-title"]'],
    }

    def __init__(self, *args, proposal_generator: Optional[ProposalGenerator] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.proposal_generator = proposal_generator or ProposalGenerator()

    def build_search_url(self, profile: SearchProfile, page_num: Optional[int] = None) -> str:
        params: Dict[str, str] = {}
        if profile.search.keywords:
            params["q"] = " ".join(profile.search.keywords)
        # Upwork has no location search; projects are remote
        params["sort"] = "recency"
        params["page"] = str(page_num or 1)
        return f"{self.BASE_URL}/nx/search/jobs/?{urlencode(params)}"

    async def extract_listings(self, page: Page) -> List[ListingCard]:
        await self.behavior.human_scroll(page, "down", 600)

        tile_selectors = self.selectors("extract_listings", "job_cards", self.SELECTORS["jobTiles"])
        tiles: List[Locator] = []
        for selector in tile_selectors:
            tiles = await page.locator(selector).all()
            if tiles:
                logger.info(f"[Upwork] Found {len(tiles)} job tiles using: {selector}")
                break

        if not tiles:
            logger.warning("[Upwork] No job tiles found on page")
            return []

        cards = []
        for tile in tiles:
            try:
                card = await self._extract_tile(tile)
            except Exception as e:
                logger.warning(f"[Upwork] Failed to extract tile: {e}")
                continue
            if card:
                cards.append(card)

        logger.info(f"[Upwork] Extracted {len(cards)} tiles from {len(tiles)} elements")
        return cards

    async def _extract_tile(self, tile: Locator) -> Optional[ListingCard]:
        try:
            hrefs = await tile.locator("a").evaluate_all("els => els.map(a => a.getAttribute('href') || '')")
        except Exception:
            hrefs = []
        job_id = next((i for i in map(job_id_from_href, hrefs) if i), None)
        if not job_id:
            return None

        title_selectors = self.selectors("extract_listings", "card_title", self.SELECTORS["tileTitle"])
        title = await self.reader.quick_text(tile, title_selectors)
        if not title:
            return None

        href = next((h for h in hrefs if "/jobs/" in h), None)
        if href:
            url = href if href.startswith("http") else f"{self.BASE_URL}{href}"
        else:
            url = f"{self.BASE_URL}/jobs/{job_id}"

        return ListingCard(
            external_id=job_id,
            title=title,
            company=await self.reader.quick_text(tile, self.SELECTORS["tileClient"]) or "",
            location="Remote",
            url=url,
            easy_apply=False,
            snippet=await self.reader.quick_text(tile, self.SELECTORS["tileSnippet"]) or "",
        )

    async def extract_job_details(self, page: Page, url: str) -> JobDetails:
        await self._goto_if_needed(page, url)
        await self.behavior.delay(0.5, 1.0)

        description_selectors = self.selectors(
            "extract_details", "description", self.SELECTORS["detailDescription"]
        )
        description = await self.reader.get_text_by_selectors(page, description_selectors, "description") or ""
        self.hints.record_result("extract_details", "description", bool(description))
        if description:
            await self.behavior.reading_pause(len(description))

        skills = await self._skills(page)
        if description and skills:
            description = f"{description}\n\nSkills: {', '.join(skills)}"

        return JobDetails(
            description=description,
            salary=await self._budget(page),
            title=await self.reader.quick_text(page, self.SELECTORS["detailTitle"]),
        )

    async def _budget(self, page: Page) -> Optional[str]:
        for selector in self.SELECTORS["detailBudget"]:
            try:
                texts = await page.locator(selector).all_inner_texts()
            except Exception:
                continue
            for text in texts:
                text = text.strip()
                if text and ("$" in text or "Budget" in text or "Hourly" in text):
                    return text
        return None

    async def _skills(self, page: Page) -> List[str]:
        for selector in self.SELECTORS["detailSkills"]:
            try:
                texts = await page.locator(selector).all_inner_texts()
            except Exception:
                continue
            skills = list(dict.fromkeys(t.strip() for t in texts if t.strip()))
            if skills:
                return skills
        return []

    async def apply_to_job(
        self,
        page: Page,
        job: JobListing,
        answers: Dict[str, str],
        resume_path: str,
        on_progress: Optional[ProgressCallback] = None,
        on_question: Optional[QuestionCallback] = None,
    ) -> ApplicationResult:
        self._report(on_progress, 1, "Generating proposal", total=2)

        try:
            proposal = await self.proposal_generator.generate_proposal(job)
        except Exception as e:
            logger.error(f"[Upwork] Proposal generation failed: {e}")
            return ApplicationResult(
                success=False,
                job_id=job.id,
                needs_manual_intervention=True,
                intervention_reason="Failed to generate proposal: manual submission required",
                error_message=str(e),
            )

        self._report(on_progress, 2, "Proposal generated, manual submission required", total=2)

        reason = (
            f"Upwork proposal generated (confidence: {round(proposal.confidence * 100)}%). "
            "Review and submit manually."
        )
        if proposal.suggested_bid:
            reason += f" Suggested bid: ${proposal.suggested_bid:g}"

        return ApplicationResult(
            success=False,
            job_id=job.id,
            cover_letter_used=proposal.cover_letter,
            needs_manual_intervention=True,
            intervention_reason=reason,
            error_message="Upwork proposals require manual submission",
        )


def job_id_from_href(href: str) -> Optional[str]:
    """Upwork job links look like /jobs/~0123abc or /ab/proposals/job/~0123abc."""
    match = re.search(r"~([0-9a-zA-Z]+)", href)
    return match.group(1) if match else None
