"""
Human-like pacing for browser automation.

Randomized delays, typing, scrolling and clicking so automated actions
are not mechanically uniform. All waits go through an injectable
``sleep`` so tests can run without real delays.
"""

import asyncio
import math
import random
from typing import Awaitable, Callable, Optional

from playwright.async_api import Page

from .config import EngineConfig, get_config


class HumanBehavior:
    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or get_config()
        self.rng = rng or random.Random()
        self._sleep = sleep

    async def delay(self, min_sec: Optional[float] = None, max_sec: Optional[float] = None):
        """Add human-like random delay."""
        low = self.config.MIN_HUMAN_DELAY if min_sec is None else min_sec
        high = self.config.MAX_HUMAN_DELAY if max_sec is None else max_sec
        await self._sleep(self.rng.uniform(low, high))

    async def reading_pause(self, text_length: int):
        """Pause roughly as long as reading ``text_length`` characters takes."""
        sentences = max(1, math.ceil(text_length / 75))
        pause = sentences * self.config.READING_PAUSE_PER_SENTENCE
        variance = pause * 0.3
        await self.delay(pause - variance, pause + variance)

    async def between_listings(self):
        await self.delay(*self.config.BETWEEN_LISTINGS)

    async def between_applications(self):
        await self.delay(*self.config.BETWEEN_APPLICATIONS)

    async def occasional_idle(self):
        if self.rng.random() < self.config.IDLE_CHANCE:
            await self.delay(*self.config.IDLE_RANGE)

    async def human_type(self, page: Page, selector: str, text: str):
        """Type text with variable delays, like a human."""
        element = page.locator(selector).first
        await element.click()
        await self.delay(0.2, 0.5)

        low, high = self.config.MIN_TYPING_DELAY_MS, self.config.MAX_TYPING_DELAY_MS
        for char in text:
            await page.keyboard.type(char, delay=self.rng.randint(low, high))
            # Occasional micro-pause mid-word
            if self.rng.random() < 0.05:
                await self.delay(0.2, 0.6)

    async def human_click(self, page: Page, selector: str):
        """Click somewhere near the middle of the element, not its exact center."""
        element = page.locator(selector).first
        box = await element.bounding_box()

        if box:
            x = box["x"] + box["width"] * (0.3 + self.rng.random() * 0.4)
            y = box["y"] + box["height"] * (0.3 + self.rng.random() * 0.4)
            await page.mouse.move(x, y)
            await self.delay(0.1, 0.3)
            await page.mouse.click(x, y)
        else:
            await element.click()

    async def human_scroll(self, page: Page, direction: str = "down", amount: int = 300):
        """Scroll in small wheel steps."""
        steps = math.ceil(amount / 100)
        delta = 100 if direction == "down" else -100
        for _ in range(steps):
            await page.mouse.wheel(0, delta)
            await self.delay(0.05, 0.2)

