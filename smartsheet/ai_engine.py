import json
import logging
import httpx
from abc import ABC, abstractmethod
from typing import AsyncGenerator

from smartsheet import config

logger = logging.getLogger(__name__)

class AILogger:
    @staticmethod
    def log_event(engine_name: str, duration: float, request_size: int, is_valid: bool, fallback: bool = False):
        status = "SUCCESS" if is_valid else "FAILED/INVALID"
        fallback_str = " (FALLBACK ACTIVE)" if fallback else ""
        logger.info(
            "[AI_TRACE] Engine: %s | Latency: %.2fs | Req: %d chars | Status: %s%s",
            engine_name, duration, request_size, status, fallback_str,
        )

class AIEngine(ABC):
    kind = "unknown"

    @abstractmethod
    async def generate_stream(
        self, system_prompt: str, user_prompt: str, *,
        temperature: float = 0.7, top_p: float = 0.95,
        max_tokens: int = 1024, seed: int | None = None,
        json_mode: bool = True,
    ) -> AsyncGenerator[str, None]:
        pass

class MockAIEngine(AIEngine):
    """No-op engine used when no real LLM is configured. Never yields output,
    so formula suggestions come back empty and analysis falls back."""
    kind = "mock"

    async def generate_stream(
        self, system_prompt: str, user_prompt: str, *,
        temperature: float = 0.7, top_p: float = 0.95,
        max_tokens: int = 1024, seed: int | None = None,
        json_mode: bool = True,
    ) -> AsyncGenerator[str, None]:
        return
        yield

class HTTPAIEngine(AIEngine):
    """OpenAI-compatible chat completions endpoint, streamed."""
    kind = "http"

    def __init__(self, api_key: str | None = None, base_url: str | None = None,
                 model: str | None = None, timeout: float | None = None,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.api_key = api_key or config.LLM_API_KEY or "no-key"
        self.base_url = (base_url or config.LLM_BASE_URL).rstrip("/")
        self.model = model or config.LLM_MODEL
        self.timeout = timeout if timeout is not None else config.LLM_TIMEOUT
        self.transport = transport

    async def generate_stream(
        self, system_prompt: str, user_prompt: str, *,
        temperature: float = 0.7, top_p: float = 0.95,
        max_tokens: int = 1024, seed: int | None = None,
        json_mode: bool = True,
    ) -> AsyncGenerator[str, None]:
        payload = {
            "model": self.model,
            "messages": [{"role": "system", "content": system_prompt}, {"role": "user", "content": user_prompt}],
            "stream": True,
            "temperature": temperature,
            "top_p": top_p,
            "max_tokens": max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        if seed is not None:
            payload["seed"] = seed
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                async with client.stream("POST", f"{self.base_url}/chat/completions", json=payload, headers=headers) as response:
                    if response.status_code >= 400:
                        logger.warning("[HTTP_ENGINE] Upstream returned HTTP %d", response.status_code)
                        yield f"[ERROR] HTTP {response.status_code}"
                        return
                    async for line in response.aiter_lines():
                        if not line.startswith("data: "):
                            continue
                        data = line[6:]
                        if data.strip() == "[DONE]":
                            break
                        try:
                            chunk = json.loads(data)
                            content = chunk["choices"][0].get("delta", {}).get("content", "")
                        except (json.JSONDecodeError, KeyError, IndexError, TypeError):
                            continue
                        if content:
                            yield content
            except httpx.TimeoutException:
                logger.warning("[HTTP_ENGINE] Upstream LLM timed out after %ss", self.timeout)
                yield "[ERROR] LLM request timed out"
            except httpx.HTTPError as e:
                logger.warning("[HTTP_ENGINE] Request failed: %s", e)
                yield f"[ERROR] {e}"
