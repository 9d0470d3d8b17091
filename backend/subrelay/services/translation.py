import asyncio
import re as _re
from typing import Awaitable, Callable, Optional

import structlog
from google import genai
from google.genai import types
from google.genai import errors as genai_errors
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from subrelay.core.errors import RequestRejectedError

logger = structlog.get_logger()

DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_API_VERSION = "v1alpha"

_HEADER_RE = _re.compile(r"^\ufeff?WEBVTT[^\n]*\n*")


class TranslationEngine:
    """Base class for translation engines."""

    async def translate_chunk(self, chunk: str, target_lang: str) -> str:
        """Translate one WebVTT chunk and return the raw model text."""
        raise NotImplementedError


def _build_prompt(chunk: str, target_lang: str) -> str:
    return (
        f"You are a professional subtitle translator.\n"
        f"Translate the following WebVTT subtitle chunk into {target_lang}.\n"
        f"- Keep the VTT format (timestamps, numbering, etc).\n"
        f"- Only translate the dialogue text.\n"
        f"- Do not remove or change timing codes.\n"
        f"- Do not add explanations, just return the translated VTT chunk.\n"
        f"- Do not include WEBVTT header in your response.\n\n"
        f"Here is the chunk:\n"
        f"{chunk}\n"
    )


class GeminiEngine(TranslationEngine):
    def __init__(self, api_key: str, model: str = "", api_version: str = DEFAULT_API_VERSION):
        self.client = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(api_version=api_version),
        )
        self.model = model or DEFAULT_MODEL
        self.config = types.GenerateContentConfig(
            temperature=0.1,
            top_k=1,
            top_p=1,
            max_output_tokens=4096,
        )

    async def translate_chunk(self, chunk: str, target_lang: str) -> str:
        prompt = _build_prompt(chunk, target_lang)
        model_name = self.model
        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(
                None, lambda: self.client.models.generate_content(
                    model=model_name,
                    contents=prompt,
                    config=self.config,
                )
            )
        except genai_errors.ClientError as e:
            # 408 and 429 are transient; any other 4xx fails the same way on retry
            if e.code == 404:
                raise RequestRejectedError(f"Gemini model not found: {model_name}") from e
            if e.code in (401, 403):
                raise RequestRejectedError("Gemini API key was rejected") from e
            if e.code not in (408, 429):
                raise RequestRejectedError(f"Gemini rejected the request ({e.code}): {e.message}") from e
            raise
        return response.text or ""


def strip_vtt_header(text: str) -> str:
    """Drop a leading WEBVTT line that a model echoed back despite instructions."""
    return _HEADER_RE.sub("", text, count=1)


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    logger.warning(
        "chunk_translation_retry",
        attempt=retry_state.attempt_number,
        wait_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        error=str(outcome.exception()) if outcome else None,
    )


class ChunkTranslator:
    """Translate chunks with bounded retries and linear backoff.

    Attempt ``n`` that fails waits ``n * backoff_seconds`` before the next one;
    the final failure is re-raised unchanged. A ``RequestRejectedError`` is
    raised on the first attempt.
    """

    def __init__(
        self,
        engine: TranslationEngine,
        max_retries: int = 3,
        backoff_seconds: float = 2.0,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.engine = engine
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep or asyncio.sleep

    async def translate(self, chunk: str, target_lang: str, max_retries: Optional[int] = None) -> str:
        attempts = max_retries if max_retries is not None else self.max_retries
        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_incrementing(start=self.backoff_seconds, increment=self.backoff_seconds),
            sleep=self._sleep,
            retry=retry_if_not_exception_type(RequestRejectedError),
            before_sleep=_log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                text = await self.engine.translate_chunk(chunk, target_lang)
        return strip_vtt_header(text.strip()).strip()
