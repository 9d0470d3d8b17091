"""Chunked WebVTT translation with streamed progress.

One ``TranslationJob`` lives for the duration of one request. ``TranslationPipeline.run``
drives it through cache lookup, download, splitting, per-chunk translation,
reassembly and the cache write, yielding a ``ProgressEvent`` at every step.
"""

import asyncio
import re
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Optional, Union

import httpx
import structlog

from subrelay.core.errors import UpstreamError, ValidationError
from subrelay.models.schemas import JobOutcome, JobStatus, ProgressEvent
from subrelay.services.cache_store import CacheKey, CacheStore
from subrelay.services.translation import ChunkTranslator
from subrelay.utils.chunking import MAX_CHUNK_SIZE, split_vtt_into_chunks

logger = structlog.get_logger()

VTT_HEADER = "WEBVTT"
CREDIT_START = "99:59:55.000"
CREDIT_END = "99:59:59.999"
DEFAULT_CREDIT_TEXT = "Thanks for watching nuvex team"

_SUBTITLE_ID_RE = re.compile(r"/subtitle/([^/]+)/")
_EXTRA_NEWLINES_RE = re.compile(r"\n\n\n+")

ProgressCallback = Callable[[ProgressEvent], Union[None, Awaitable[None]]]


def extract_subtitle_id(url: str) -> Optional[str]:
    match = _SUBTITLE_ID_RE.search(url or "")
    return match.group(1) if match else None


def strip_source_header(vtt_text: str) -> str:
    """Remove a BOM and the source's WEBVTT header block; cues start after the first blank line."""
    text = vtt_text.lstrip("\ufeff").replace("\r\n", "\n")
    if not text.startswith(VTT_HEADER):
        return text
    _, sep, rest = text.partition("\n\n")
    return rest if sep else ""


def credit_cue(text: str = DEFAULT_CREDIT_TEXT) -> str:
    return f"{CREDIT_START} --> {CREDIT_END}\n{text}"


def assemble_vtt(chunks: list[str], credit_text: str = DEFAULT_CREDIT_TEXT) -> str:
    body = f"{VTT_HEADER}\n\n"
    for chunk in chunks:
        body += chunk + "\n\n"
    body = _EXTRA_NEWLINES_RE.sub("\n\n", body).strip()
    return body + "\n\n" + credit_cue(credit_text)


@dataclass
class TranslationJob:
    id: str
    target_lang: str
    source_url: str
    chunks: list[str] = field(default_factory=list)
    translated_chunks: list[str] = field(default_factory=list)
    status: JobStatus = JobStatus.initializing
    progress: int = 0
    outcome: Optional[JobOutcome] = None

    @property
    def cache_key(self) -> CacheKey:
        return CacheKey.of(self.id, self.target_lang)

    def advance(self, status: JobStatus, progress: int, message: str) -> ProgressEvent:
        # progress never goes backwards within a job
        self.status = status
        self.progress = max(self.progress, progress)
        return ProgressEvent(status=status, progress=self.progress, message=message)


class TranslationPipeline:
    def __init__(
        self,
        cache: CacheStore,
        translator: ChunkTranslator,
        http: httpx.AsyncClient,
        max_chunk_size: int = MAX_CHUNK_SIZE,
        chunk_delay_seconds: float = 1.0,
        credit_text: str = DEFAULT_CREDIT_TEXT,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.cache = cache
        self.translator = translator
        self.http = http
        self.max_chunk_size = max_chunk_size
        self.chunk_delay_seconds = chunk_delay_seconds
        self.credit_text = credit_text
        self._sleep = sleep or asyncio.sleep

    def create_job(self, source_url: str, target_lang: str = "ar") -> TranslationJob:
        subtitle_id = extract_subtitle_id(source_url)
        if not subtitle_id:
            raise ValidationError("Invalid VTT URL format")
        CacheKey.of(subtitle_id, target_lang)
        return TranslationJob(id=subtitle_id, target_lang=target_lang, source_url=source_url)

    async def run(self, job: TranslationJob) -> AsyncIterator[ProgressEvent]:
        """Drive ``job`` to completion, yielding progress events.

        On failure a final ``error`` event is yielded before the exception propagates.
        """
        log = logger.bind(subtitle_id=job.id, target_lang=job.target_lang)
        try:
            yield job.advance(JobStatus.initializing, 5, "Starting translation process...")

            cached = await self.cache.get(job.cache_key)
            if cached:
                job.outcome = JobOutcome.cached
                log.info("translation_cached")
                yield job.advance(JobStatus.completed, 100, "Using cached translation (cache)")
                return

            yield job.advance(JobStatus.downloading, 15, "Downloading VTT file...")
            vtt_text = await self._download(job.source_url)

            yield job.advance(JobStatus.processing, 30, "File downloaded, preparing for translation...")
            job.chunks = split_vtt_into_chunks(strip_source_header(vtt_text), self.max_chunk_size)
            total = len(job.chunks)
            log.info("translation_chunking", num_chunks=total, total_chars=len(vtt_text))

            yield job.advance(
                JobStatus.translating, 40, f"Translating content using AI ({total} chunks)...",
            )
            for i, chunk in enumerate(job.chunks):
                progress = 40 + (i * 50) // total
                yield job.advance(JobStatus.translating, progress, f"Translating chunk {i + 1}/{total}...")

                job.translated_chunks.append(await self._translate_or_fallback(chunk, job.target_lang, i, total))

                if i < total - 1:
                    await self._sleep(self.chunk_delay_seconds)

            final_text = assemble_vtt(job.translated_chunks, self.credit_text)

            yield job.advance(JobStatus.saving, 95, "Saving translated file...")
            await self.cache.put(job.cache_key, final_text.encode("utf-8"))

            job.outcome = JobOutcome.saved
            log.info("translation_completed", chunks=total, size=len(final_text))
            yield job.advance(JobStatus.completed, 100, "Translation completed successfully!")
        except Exception as e:
            log.error("translation_failed", error=str(e), status=job.status.value)
            yield job.advance(JobStatus.error, job.progress, f"Error: {e}")
            raise

    async def translate_with_progress(
        self,
        source_url: str,
        target_lang: str = "ar",
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        """Run a whole job, passing each event to ``on_progress``; returns "cached" or "saved"."""

        async def emit(event: ProgressEvent) -> None:
            if on_progress is None:
                return
            result = on_progress(event)
            if asyncio.iscoroutine(result):
                await result

        try:
            job = self.create_job(source_url, target_lang)
        except ValidationError as e:
            await emit(ProgressEvent(status=JobStatus.error, progress=0, message=f"Error: {e.message}"))
            raise

        async for event in self.run(job):
            await emit(event)
        return job.outcome.value

    async def _download(self, url: str) -> str:
        try:
            resp = await self.http.get(url, follow_redirects=True)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Failed to download file: {e}") from e
        if not resp.is_success:
            raise UpstreamError(f"Failed to download file: {resp.status_code}")
        return resp.text

    async def _translate_or_fallback(self, chunk: str, target_lang: str, index: int, total: int) -> str:
        try:
            translated = await self.translator.translate(chunk, target_lang)
        except Exception as e:
            logger.error("chunk_translation_failed", chunk=index + 1, total_chunks=total, error=str(e))
            return chunk
        if not translated.strip():
            logger.warning("chunk_translation_empty", chunk=index + 1, total_chunks=total)
            return chunk
        logger.info("chunk_translated", chunk=index + 1, total_chunks=total)
        return translated
