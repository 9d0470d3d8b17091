from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
import structlog

from subrelay.core.deps import Services, get_services
from subrelay.core.errors import ConfigurationError, ValidationError
from subrelay.core.security import require_api_key
from subrelay.models.schemas import (
    CompletedEvent,
    ErrorEvent,
    JobStatus,
    ProgressEvent,
    TranslateRequest,
)
from subrelay.services.cache_store import CacheKey
from subrelay.services.pipeline import TranslationJob, TranslationPipeline

logger = structlog.get_logger()
router = APIRouter(prefix="/translate", tags=["Translation"])


def _ndjson(event: BaseModel) -> str:
    return event.model_dump_json(by_alias=True) + "\n"


def build_download_url(request: Request, subtitle_id: str, lang: str) -> str:
    protocol = request.headers.get("x-forwarded-proto") or "https"
    host = request.headers.get("x-forwarded-host") or request.headers.get("host", "")
    return f"{protocol}://{host}/api/download/{subtitle_id}/{lang}"


async def _stream_job(
    pipeline: TranslationPipeline,
    services: Services,
    job: TranslationJob,
    download_url: str,
):
    """One JSON object per line, ending with a single completed or error object."""
    yield _ndjson(ProgressEvent(
        status=JobStatus.initializing, progress=0, message="Starting translation process...",
    ))
    try:
        async for event in pipeline.run(job):
            yield _ndjson(event)

        cached_now = await services.cache.get(CacheKey.of(job.id, job.target_lang))
        yield _ndjson(CompletedEvent(
            found_cached=bool(cached_now),
            download_url=download_url,
            id=job.id,
            language=job.target_lang,
        ))
    except Exception as e:
        # The 200 status line is already out, so failures are reported in-band
        logger.error("translation_stream_failed", subtitle_id=job.id, error=str(e))
        yield _ndjson(ErrorEvent(message=getattr(e, "message", str(e))))


@router.post("", dependencies=[Depends(require_api_key)])
async def translate_subtitle(
    body: TranslateRequest,
    request: Request,
    services: Services = Depends(get_services),
):
    """Translate a remote VTT file, streaming progress as newline-delimited JSON."""
    if not body.url:
        raise ValidationError("URL is required")

    pipeline = services.pipeline
    if pipeline is None:
        raise ConfigurationError("Google AI API key is not configured. Please set GOOGLE_AI_API_KEY.")

    # Bad URLs and unsafe ids are rejected here, before the 200 goes out
    job = pipeline.create_job(body.url, body.target_lang)

    logger.info("translation_requested", subtitle_id=job.id, target_lang=job.target_lang)
    return StreamingResponse(
        _stream_job(pipeline, services, job, build_download_url(request, job.id, job.target_lang)),
        media_type="application/json",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
