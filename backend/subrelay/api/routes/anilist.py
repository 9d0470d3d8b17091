from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
import structlog

from subrelay.core.deps import Services, get_services

logger = structlog.get_logger()
router = APIRouter(tags=["AniList"])


def _parse_ids(raw: str) -> list[int]:
    ids = []
    for part in raw.split(","):
        part = part.strip()
        if part.isdigit() and int(part) > 0:
            ids.append(int(part))
    return ids


@router.get("/anilist-to-hianimez")
async def anilist_to_hianime(
    id: Optional[str] = Query(default=None),
    anilist_id: Optional[str] = Query(default=None, alias="anilistId"),
    ids: Optional[str] = Query(default=None),
    services: Services = Depends(get_services),
):
    """Resolve AniList id(s) to title metadata and a HiAnime slug."""
    single = id or anilist_id
    if not ids and not single:
        raise HTTPException(status_code=400, detail={"error": "Provide 'id' or 'ids' (comma-separated AniList IDs)"})

    try:
        if ids:
            id_list = _parse_ids(ids)
            if not id_list:
                raise HTTPException(status_code=400, detail={"error": "No valid IDs provided"})
            results = await services.anilist.resolve_many(id_list)
            return {"ok": True, "results": [r.model_dump(by_alias=True, exclude_none=True) for r in results]}

        if not single.strip().isdigit() or int(single) <= 0:
            raise HTTPException(status_code=400, detail={"error": "Query param 'id' (AniList ID) is invalid"})

        mapping = await services.anilist.resolve(int(single))
        if mapping is None:
            raise HTTPException(status_code=404, detail={"error": "Anime not found on AniList"})
        return {"ok": True, **mapping.model_dump(by_alias=True, exclude={"error"})}
    except HTTPException:
        raise
    except Exception as e:
        logger.error("anilist_mapping_failed", ids=ids, id=single, error=str(e))
        return JSONResponse(status_code=500, content={"error": "Failed to resolve mapping", "message": str(e)})
