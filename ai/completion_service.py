#!/usr/bin/env python3
"""
Chat Completion Service

Thin client for any OpenAI-compatible /chat/completions endpoint
(OpenAI, Moonshot, local gateways). Used by job analysis, answer and
proposal generation, and selector repair.
"""

import json
import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from core.config import EngineConfig, get_config
from core.errors import AIServiceError

logger = logging.getLogger(__name__)


def safe_json_loads(text: str) -> Any:
    """Parse JSON from model output with relaxed extraction."""
    text = (text or "").strip()
    if not text:
        return None

    # Direct JSON
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    # Strip code fences
    if "```" in text:
        if "```json" in text:
            text = text.split("```json", 1)[1].split("```", 1)[0].strip()
        else:
            text = text.split("```", 1)[1].split("```", 1)[0].strip()

    # Extract JSON object/array from content
    obj_start = text.find("{")
    arr_start = text.find("[")
    if arr_start != -1 and (obj_start == -1 or arr_start < obj_start):
        start = arr_start
        end = text.rfind("]") + 1
    else:
        start = obj_start
        end = text.rfind("}") + 1

    if start != -1 and end > start:
        try:
            return json.loads(text[start:end])
        except json.JSONDecodeError:
            return None

    return None


class CompletionService:
    """
    OpenAI-compatible chat completion client.

    Usage:
        service = CompletionService()
        text = await service.complete(system_prompt, user_message)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
        max_retries: Optional[int] = None,
        config: Optional[EngineConfig] = None,
    ):
        cfg = config or get_config()
        self.api_key = api_key or cfg.AI_API_KEY
        self.model = model or cfg.AI_MODEL
        self.base_url = (base_url or cfg.AI_BASE_URL).rstrip("/")
        self.timeout = timeout or cfg.AI_TIMEOUT_SECONDS
        self.max_retries = max_retries or cfg.AI_MAX_RETRIES

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    async def _chat_completion(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.1,
        max_tokens: int = 1024,
    ) -> str:
        """Call the chat completions API, retrying transient failures."""
        if not self.api_key:
            raise AIServiceError("AI_API_KEY not configured", recoverable=False)

        last_error = None
        for attempt in range(self.max_retries):
            try:
                timeout = aiohttp.ClientTimeout(total=self.timeout)
                async with aiohttp.ClientSession(timeout=timeout) as session:
                    async with session.post(
                        f"{self.base_url}/chat/completions",
                        headers={"Authorization": f"Bearer {self.api_key}"},
                        json={
                            "model": self.model,
                            "messages": messages,
                            "temperature": temperature,
                            "max_tokens": max_tokens,
                        },
                    ) as resp:
                        if resp.status >= 400:
                            body = await resp.text()
                            raise AIServiceError(
                                f"Completion request returned {resp.status}: {body[:200]}",
                                context={"status": resp.status},
                            )
                        data = await resp.json()
                        return data["choices"][0]["message"]["content"] or ""
            except (aiohttp.ClientError, asyncio.TimeoutError, AIServiceError, KeyError) as e:
                last_error = e
                logger.debug(f"Completion attempt {attempt + 1}/{self.max_retries} failed: {e}")
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(1 + attempt)

        raise AIServiceError(f"Completion request failed: {last_error}")

    async def complete(
        self,
        system_prompt: str,
        user_message: str,
        *,
        temperature: float = 0.1,
        max_tokens: int = 1024,
    ) -> str:
        """Send one system + user exchange and return the reply text."""
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_message},
        ]
        content = await self._chat_completion(messages, temperature=temperature, max_tokens=max_tokens)
        return content.strip()
