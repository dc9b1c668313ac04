#!/usr/bin/env python3
"""
LinkedIn Easy Apply Handler - fills and submits the Easy Apply modal.

Each modal step is scanned for fields (text, textarea, select, radio
fieldsets, file) and every field is answered from, in order:

1. answers passed in by the caller (exact, then fuzzy label match)
2. saved answer templates in the database
3. a generated answer, when the model is confident enough
4. the user, through the question callback (saved as a template)

A required field that none of these can answer stops the application
and hands it back for manual intervention.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from playwright.async_api import Locator, Page

from core.config import EngineConfig, get_config
from core.hints import HintStore
from core.human_behavior import HumanBehavior
from core.models import ApplicationProgress, ApplicationResult, JobListing
from core.page_reader import PageReader

logger = logging.getLogger(__name__)

MAX_STEPS = 10

MODAL_SCOPE = ".jobs-easy-apply-modal, .artdeco-modal"


@dataclass
class FormField:
    """One answerable field on the current modal step."""
    type: str  # text, textarea, select, radio, checkbox, file
    label: str
    selector: str
    required: bool = False
    options: List[str] = field(default_factory=list)
    current_value: str = ""


class LinkedInEasyApply:
    """Drives the Easy Apply modal for a single job page."""

    EASY_APPLY_BUTTON = [
        "button.jobs-apply-button",
        'button[aria-label*="Easy Apply"]',
        ".jobs-apply-button--top-card button",
        "button.jobs-s-apply",
    ]

    MODAL_CONTAINER = [
        ".jobs-easy-apply-modal",
        '[data-test-modal-id="easy-apply-modal"]',
        ".artdeco-modal--layer-default",
    ]

    NEXT_BUTTON = [
        'button[aria-label="Continue to next step"]',
        "button[data-easy-apply-next-button]",
        ".artdeco-modal footer button.artdeco-button--primary",
    ]

    REVIEW_BUTTON = [
        'button[aria-label="Review your application"]',
        "button[data-easy-apply-review-button]",
    ]

    SUBMIT_BUTTON = [
        'button[aria-label="Submit application"]',
        "button[data-easy-apply-submit-button]",
    ]

    DISMISS_BUTTON = [
        'button[aria-label="Dismiss"]',
        ".artdeco-modal__dismiss",
        "button.artdeco-modal__dismiss",
    ]

    DISCARD_BUTTON = [
        "button[data-test-dialog-primary-btn]",
        'button[data-control-name="discard_application_confirm_btn"]',
    ]

    VALIDATION_ERRORS = [
        ".artdeco-inline-feedback--error",
        ".fb-form-element__error-text",
        "[data-test-form-element-error-text]",
    ]

    SUCCESS_PHRASES = [
        "application was sent",
        "applied successfully",
        "your application",
        "application submitted",
    ]

    SUCCESS_HEADERS = [".artdeco-modal h2", ".jpac-modal-header"]

    def __init__(
        self,
        behavior: Optional[HumanBehavior] = None,
        reader: Optional[PageReader] = None,
        db=None,
        answer_generator=None,
        hints: Optional[HintStore] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.config = config or get_config()
        self.behavior = behavior or HumanBehavior(self.config)
        self.reader = reader or PageReader()
        self.db = db
        self.answer_generator = answer_generator
        self.hints = hints

    async def apply(
        self,
        page: Page,
        job: JobListing,
        answers: Dict[str, str],
        resume_path: str,
        on_progress=None,
        on_question=None,
    ) -> ApplicationResult:
        """
        Apply to the job open on ``page``.

        Returns a failed result for expected outcomes (no button, unanswerable
        question, validation error). Anything unexpected closes the modal and
        propagates so the caller's circuit breaker counts it.
        """
        answers_used: Dict[str, str] = {}

        def report(step: int, action: str):
            if on_progress:
                on_progress(ApplicationProgress(step=step, current_action=action))

        def failed(message: str, **kwargs) -> ApplicationResult:
            return ApplicationResult(
                success=False,
                job_id=job.id,
                answers_used=answers_used,
                error_message=message,
                **kwargs,
            )

        try:
            report(0, "Opening Easy Apply modal")
            if not await self._open_modal(page):
                return failed("Could not find Easy Apply button")

            await self.behavior.delay(1, 2)

            for step in range(1, MAX_STEPS + 1):
                report(step, f"Processing step {step}")

                if await self._is_submit_step(page):
                    report(step, "Submitting application")
                    await self._click_submit(page)
                    await self.behavior.delay(2, 3)

                    if await self._check_submission_success(page):
                        logger.info(f"[LinkedIn] Successfully applied to {job.title} @ {job.company}")
                        return ApplicationResult(
                            success=True,
                            job_id=job.id,
                            answers_used=answers_used,
                            resume_used=resume_path,
                        )
                    return failed("Submission may have failed, no confirmation detected")

                fields = await self.extract_form_fields(page)
                logger.info(f"[LinkedIn] Step {step}: found {len(fields)} fields")

                for form_field in fields:
                    if await self._fill_field(page, form_field, job, answers, answers_used, on_question):
                        continue
                    logger.warning(f"[LinkedIn] Could not fill field: {form_field.label}")
                    if form_field.required:
                        return failed(
                            f"Required field unanswered: {form_field.label}",
                            needs_manual_intervention=True,
                            intervention_reason=f'Cannot answer: "{form_field.label}"',
                        )

                if resume_path and any(f.type == "file" for f in fields):
                    await self._upload_resume(page, resume_path)

                await self.behavior.delay(0.5, 1)

                if await self._advance_step(page) == "error":
                    error_text = await self._validation_error(page)
                    return failed(error_text or "Failed to advance to next step")

                await self.behavior.delay(1, 2)

            await self.close_modal(page)
            return failed(f"Exceeded maximum steps ({MAX_STEPS})")

        except Exception as e:
            logger.error(f"[LinkedIn] Application failed: {e}")
            await self.close_modal(page)
            raise

    # === Modal navigation ===

    async def _open_modal(self, page: Page) -> bool:
        buttons = self.EASY_APPLY_BUTTON
        if self.hints:
            buttons = self.hints.merged_selectors("apply", "easy_apply_button", buttons)
        selector = await self.reader.wait_for_any_selector(page, buttons, timeout_ms=5000)
        if not selector:
            logger.warning("[LinkedIn] Easy Apply button not found")
            return False

        await self.behavior.human_click(page, selector)
        await self.behavior.delay(1, 2)

        modal = await self.reader.wait_for_any_selector(page, self.MODAL_CONTAINER, timeout_ms=5000)
        return modal is not None

    async def _is_submit_step(self, page: Page) -> bool:
        return await self._visible_selector(page, self.SUBMIT_BUTTON) is not None

    async def _click_submit(self, page: Page):
        selector = await self._visible_selector(page, self.SUBMIT_BUTTON, timeout_ms=3000)
        if selector:
            await self.behavior.human_click(page, selector)

    async def _advance_step(self, page: Page) -> str:
        """Returns submit, review, next or error."""
        if await self._visible_selector(page, self.SUBMIT_BUTTON):
            return "submit"

        review = await self._visible_selector(page, self.REVIEW_BUTTON)
        if review:
            await self.behavior.human_click(page, review)
            await self.behavior.delay(1, 2)
            return "review"

        next_button = await self._visible_selector(page, self.NEXT_BUTTON, timeout_ms=2000)
        if next_button:
            await self.behavior.human_click(page, next_button)
            await self.behavior.delay(1, 2)
            if await self._validation_error(page):
                return "error"
            return "next"

        return "error"

    async def _check_submission_success(self, page: Page) -> bool:
        await self.behavior.delay(1, 2)

        modal_text = ""
        try:
            modal_text = (await self.reader.get_visible_text(page, self.MODAL_CONTAINER[0])).lower()
        except Exception:
            # Modal already gone: LinkedIn closes it on success
            return await self._visible_selector(page, self.MODAL_CONTAINER) is None

        if any(phrase in modal_text for phrase in self.SUCCESS_PHRASES):
            dismiss = await self._visible_selector(page, self.DISMISS_BUTTON, timeout_ms=3000)
            if dismiss:
                await self.behavior.human_click(page, dismiss)
            return True

        for selector in self.SUCCESS_HEADERS:
            try:
                text = await page.locator(selector).first.inner_text(timeout=2000)
            except Exception:
                continue
            if any(phrase in text.lower() for phrase in self.SUCCESS_PHRASES):
                return True

        return False

    async def _validation_error(self, page: Page) -> Optional[str]:
        for selector in self.VALIDATION_ERRORS:
            try:
                element = page.locator(selector).first
                if await element.is_visible(timeout=500):
                    return (await element.inner_text()).strip()
            except Exception:
                continue
        return None

    async def close_modal(self, page: Page):
        """Dismiss the modal and discard the draft application."""
        try:
            dismiss = await self._visible_selector(page, self.DISMISS_BUTTON, timeout_ms=2000)
            if not dismiss:
                return
            await self.behavior.human_click(page, dismiss)
            await self.behavior.delay(0.5, 1)

            discard = await self._visible_selector(page, self.DISCARD_BUTTON, timeout_ms=2000)
            if discard:
                await self.behavior.human_click(page, discard)
        except Exception as e:
            logger.warning(f"[LinkedIn] Failed to close modal: {e}")

    async def _visible_selector(self, page: Page, selectors: List[str], timeout_ms: int = 1000) -> Optional[str]:
        for selector in selectors:
            try:
                if await page.locator(selector).first.is_visible(timeout=timeout_ms):
                    return selector
            except Exception:
                continue
        return None

    # === Field extraction ===

    async def extract_form_fields(self, page: Page) -> List[FormField]:
        modal = page.locator(MODAL_SCOPE).first
        fields: List[FormField] = []

        for element in await modal.locator('input[type="text"], input:not([type])').all():
            form_field = await self._input_field(page, element, "text")
            if form_field:
                fields.append(form_field)

        for element in await modal.locator("textarea").all():
            form_field = await self._input_field(page, element, "textarea")
            if form_field:
                fields.append(form_field)

        for element in await modal.locator("select").all():
            form_field = await self._select_field(page, element)
            if form_field:
                fields.append(form_field)

        for element in await modal.locator("fieldset").all():
            form_field = await self._radio_group(element)
            if form_field:
                fields.append(form_field)

        if await modal.locator('input[type="file"]').count() > 0:
            fields.append(FormField(type="file", label="Resume", selector='input[type="file"]', required=True))

        return fields

    @staticmethod
    async def _is_required(element: Locator) -> bool:
        return (
            await element.get_attribute("required") is not None
            or await element.get_attribute("aria-required") == "true"
        )

    @staticmethod
    async def _label_for(page: Page, element_id: Optional[str]) -> str:
        if not element_id:
            return ""
        try:
            text = await page.locator(f'label[for="{element_id}"]').first.inner_text(timeout=1000)
        except Exception:
            return ""
        return text.strip()

    async def _input_field(self, page: Page, element: Locator, field_type: str) -> Optional[FormField]:
        try:
            element_id = await element.get_attribute("id")
            name = await element.get_attribute("name")
            label = (
                await self._label_for(page, element_id)
                or await element.get_attribute("aria-label")
                or await element.get_attribute("placeholder")
                or name
                or ""
            )
            if not label:
                return None

            selector = f"#{element_id}" if element_id else f'[name="{name}"]' if name else ""
            if not selector:
                return None

            try:
                current_value = await element.input_value(timeout=1000)
            except Exception:
                current_value = ""

            return FormField(
                type=field_type,
                label=label.strip(),
                selector=selector,
                required=await self._is_required(element),
                current_value=current_value,
            )
        except Exception as e:
            logger.debug(f"[LinkedIn] Skipping input field: {e}")
            return None

    async def _select_field(self, page: Page, element: Locator) -> Optional[FormField]:
        try:
            element_id = await element.get_attribute("id")
            label = await self._label_for(page, element_id) or await element.get_attribute("aria-label") or ""
            if not label or not element_id:
                return None

            state = await element.evaluate(
                """(sel) => {
                    const real = (o) => o.value && !/^select an option/i.test((o.textContent || '').trim())
                    const text = (o) => (o.textContent || '').trim() || o.value
                    const chosen = sel.options[sel.selectedIndex]
                    return {
                        options: Array.from(sel.options).filter(real).map(text),
                        selected: chosen && real(chosen) ? text(chosen) : '',
                    }
                }"""
            )

            return FormField(
                type="select",
                label=label.strip(),
                selector=f"#{element_id}",
                required=await self._is_required(element),
                options=state["options"],
                current_value=state["selected"],
            )
        except Exception as e:
            logger.debug(f"[LinkedIn] Skipping select field: {e}")
            return None

    async def _radio_group(self, element: Locator) -> Optional[FormField]:
        try:
            legend = element.locator("legend").first
            if await legend.count() == 0:
                return None
            label = (await legend.inner_text(timeout=1000)).strip()
            if not label:
                return None

            radios = element.locator('input[type="radio"]')
            if await radios.count() == 0:
                return None
            name = await radios.first.get_attribute("name")
            options = await radios.evaluate_all(
                "els => els.map(el => (el.closest('label')?.textContent || '').trim()).filter(Boolean)"
            )

            return FormField(
                type="radio",
                label=label,
                selector=f'input[name="{name}"]' if name else "",
                required=True,
                options=options,
            )
        except Exception as e:
            logger.debug(f"[LinkedIn] Skipping radio group: {e}")
            return None

    # === Answering ===

    async def _fill_field(
        self,
        page: Page,
        form_field: FormField,
        job: JobListing,
        provided: Dict[str, str],
        answers_used: Dict[str, str],
        on_question=None,
    ) -> bool:
        if form_field.type == "file":
            return True
        # Pre-filled by LinkedIn from the profile
        if form_field.type == "select":
            if form_field.current_value in form_field.options:
                return True
        elif form_field.current_value:
            return True

        answer = await self._resolve_answer(form_field, job, provided, on_question)
        if not answer:
            return not form_field.required

        answers_used[form_field.label] = answer

        if form_field.type in ("text", "textarea"):
            await self._fill_text(page, form_field.selector, answer)
        elif form_field.type == "select":
            await self._fill_select(page, form_field.selector, answer, form_field.options)
        elif form_field.type == "radio":
            await self._fill_radio(page, form_field.selector, answer, form_field.options)
        elif form_field.type == "checkbox" and answer.lower() in ("yes", "true", "1"):
            try:
                await page.check(form_field.selector)
            except Exception as e:
                logger.warning(f"[LinkedIn] Failed to check {form_field.selector}: {e}")

        return True

    async def _resolve_answer(
        self,
        form_field: FormField,
        job: JobListing,
        provided: Dict[str, str],
        on_question=None,
    ) -> Optional[str]:
        answer = find_provided_answer(form_field.label, provided)
        if answer:
            return answer

        if self.db:
            template = await self.db.find_answer_template(form_field.label)
            if template:
                await self.db.record_answer_usage(template["id"])
                return template["answer"]

        if not form_field.required:
            return None

        if self.answer_generator and self.answer_generator.available:
            try:
                generated = await self.answer_generator.generate_answer(form_field.label, job)
                if generated.confidence >= self.config.ANSWER_MIN_CONFIDENCE and not generated.needs_review:
                    return generated.answer
            except Exception as e:
                logger.warning(f"[LinkedIn] Answer generation failed for {form_field.label}: {e}")

        if on_question:
            user_answer = await on_question(form_field.label, job.id)
            if user_answer:
                if self.db:
                    await self.db.insert_answer_template(form_field.label, user_answer, platform="linkedin")
                return user_answer

        return None

    # === Filling ===

    async def _fill_text(self, page: Page, selector: str, value: str):
        try:
            await page.click(selector, click_count=3)
            await self.behavior.delay(0.1, 0.3)
            await page.keyboard.press("Backspace")
            await self.behavior.delay(0.2, 0.4)
            await self.behavior.human_type(page, selector, value)
        except Exception as e:
            logger.warning(f"[LinkedIn] Typing into {selector} failed, filling directly: {e}")
            await page.fill(selector, value)

    async def _fill_select(self, page: Page, selector: str, answer: str, options: List[str]):
        best = best_option(answer, options)
        try:
            if best:
                await page.select_option(selector, label=best)
            else:
                await page.select_option(selector, answer)
        except Exception as e:
            logger.warning(f"[LinkedIn] Failed to fill select {selector}: {e}")

    async def _fill_radio(self, page: Page, selector: str, answer: str, options: List[str]):
        best = best_option(answer, options)
        if not best or not selector:
            return
        try:
            for radio in await page.locator(selector).all():
                radio_label = await radio.evaluate("el => (el.closest('label')?.textContent || '').trim()")
                if best.lower() in radio_label.lower():
                    await radio.check()
                    return
        except Exception as e:
            logger.warning(f"[LinkedIn] Failed to fill radio {selector}: {e}")

    async def _upload_resume(self, page: Page, resume_path: str):
        try:
            file_input = page.locator(
                '.jobs-easy-apply-modal input[type="file"], .artdeco-modal input[type="file"]'
            ).first
            if await file_input.count() == 0:
                return
            await file_input.set_input_files(resume_path)
            logger.info(f"[LinkedIn] Uploaded resume: {resume_path}")
            await self.behavior.delay(1, 2)
        except Exception as e:
            logger.warning(f"[LinkedIn] Resume upload failed: {e}")


def find_provided_answer(label: str, answers: Dict[str, str]) -> Optional[str]:
    """Exact (case-insensitive) label match, then substring match either way."""
    normalized = label.lower().strip()
    lowered = {key.lower().strip(): value for key, value in answers.items()}
    if lowered.get(normalized):
        return lowered[normalized]

    for key, value in lowered.items():
        if key and (key in normalized or normalized in key):
            return value
    return None


def best_option(answer: str, options: List[str]) -> Optional[str]:
    """Exact, then containment, then first-word match against ``options``."""
    lower = answer.lower().strip()
    for option in options:
        if option.lower() == lower:
            return option
    for option in options:
        if option.lower() in lower or lower in option.lower():
            return option
    words = lower.split()
    if not words:
        return None
    for option in options:
        if option.lower().startswith(words[0]):
            return option
    return None
