"""Serving cached translations (inline with Range support, or as attachment)."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
import structlog

from subrelay.core.deps import Services, get_services
from subrelay.core.errors import NotFoundError
from subrelay.services.cache_store import CacheKey

logger = structlog.get_logger()
router = APIRouter(tags=["Subtitles"])


def parse_range(range_header: str, size: int) -> Optional[tuple[int, int]]:
    """Parse a single ``bytes=start-end`` range into inclusive offsets.

    Returns None for a header that is not a byte range; raises 416 when unsatisfiable.
    """
    if not range_header.startswith("bytes="):
        return None
    byte_spec = range_header[len("bytes="):].strip()
    if "," in byte_spec:
        # Only single ranges are served
        return None
    try:
        start_s, end_s = byte_spec.split("-", 1)
        if start_s.strip() == "":
            suffix = int(end_s)
            if suffix <= 0:
                raise ValueError(byte_spec)
            start, end = max(size - suffix, 0), size - 1
        else:
            start = int(start_s)
            end = int(end_s) if end_s.strip() else size - 1
            end = min(end, size - 1)
    except ValueError:
        raise HTTPException(status_code=416, detail={"error": "Invalid range header"})

    if start < 0 or start >= size or start > end:
        raise HTTPException(
            status_code=416,
            detail={"error": "Range not satisfiable"},
            headers={"Content-Range": f"bytes */{size}"},
        )
    return start, end


async def _load(services: Services, subtitle_id: str, lang: str) -> tuple[CacheKey, bytes]:
    key = CacheKey.of(subtitle_id, lang)
    data = await services.cache.get(key)
    if not data:
        raise NotFoundError("File not found")
    return key, data


@router.get("/serve/{subtitle_id}/{lang}")
async def serve_subtitle(
    subtitle_id: str,
    lang: str,
    request: Request,
    services: Services = Depends(get_services),
):
    """Serve a translated VTT inline with HTTP Range support."""
    key, data = await _load(services, subtitle_id, lang)
    size = len(data)
    headers = {
        "Content-Disposition": f'inline; filename="{key.filename}"',
        "Cache-Control": "public, max-age=86400",
        "ETag": f'"{subtitle_id}-{lang}"',
        "Accept-Ranges": "bytes",
    }

    range_header = request.headers.get("range")
    byte_range = parse_range(range_header, size) if range_header else None
    if byte_range:
        start, end = byte_range
        headers["Content-Range"] = f"bytes {start}-{end}/{size}"
        return Response(
            content=data[start:end + 1],
            status_code=206,
            media_type="text/vtt; charset=utf-8",
            headers=headers,
        )

    return Response(content=data, media_type="text/vtt; charset=utf-8", headers=headers)


@router.get("/download/{subtitle_id}/{lang}")
async def download_subtitle(
    subtitle_id: str,
    lang: str,
    services: Services = Depends(get_services),
):
    """Download a translated VTT as an attachment."""
    key, data = await _load(services, subtitle_id, lang)
    logger.info("subtitle_download", key=key.filename, size=len(data))
    return Response(
        content=data,
        media_type="application/octet-stream",
        headers={
            "Content-Disposition": f'attachment; filename="{key.filename}"',
            "Cache-Control": "no-cache, no-store, must-revalidate",
            "Pragma": "no-cache",
            "Expires": "0",
            "Accept-Ranges": "bytes",
        },
    )
