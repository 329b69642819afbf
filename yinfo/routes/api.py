"""
API route definitions for the yinfo service.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ..config import get_settings
from ..core.clients import all_profiles
from ..errors import (
    AllProfilesExhaustedError,
    InvalidVideoIdError,
    NoPlayableFormatsError,
    YinfoError,
)
from ..innertube import Innertube
from ..models.response import ClientInfo, ErrorResponse, SearchResponse, VideoInfo

logger = logging.getLogger(__name__)

router = APIRouter()


def get_innertube(request: Request) -> Innertube:
    return request.app.state.innertube


def _error_detail(e: YinfoError, failures: list | None = None) -> dict:
    return ErrorResponse(
        error=str(e),
        error_code=e.error_code,
        failures=failures or [],
    ).model_dump(mode="json")


def _internal_error(e: Exception) -> HTTPException:
    logger.exception("Unexpected error: %s", e)
    # Do not leak exception details in production
    message = str(e) if get_settings().debug else "An internal error occurred. Please try again later."
    return HTTPException(
        status_code=500,
        detail={"success": False, "error": message, "error_code": "internal.error"},
    )


@router.get(
    "/info",
    response_model=VideoInfo,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid video URL or ID"},
        422: {"model": ErrorResponse, "description": "No playable formats could be resolved"},
        502: {"model": ErrorResponse, "description": "Every client profile failed"},
    },
    summary="Fetch video metadata and stream URLs",
)
async def video_info(
    url: str = Query(..., max_length=2048, description="Video URL or 11-character ID"),
    innertube: Innertube = Depends(get_innertube),
):
    try:
        return await innertube.fetch_video_info(url)
    except InvalidVideoIdError as e:
        raise HTTPException(status_code=400, detail=_error_detail(e))
    except NoPlayableFormatsError as e:
        raise HTTPException(status_code=422, detail=_error_detail(e, e.failures))
    except AllProfilesExhaustedError as e:
        raise HTTPException(status_code=502, detail=_error_detail(e, e.failures))
    except Exception as e:
        raise _internal_error(e)


@router.get(
    "/search",
    response_model=SearchResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Empty query"},
        502: {"model": ErrorResponse, "description": "Every search-capable profile failed"},
    },
    summary="Search for videos",
)
async def search_videos(
    q: str = Query(..., max_length=512, description="Search query"),
    innertube: Innertube = Depends(get_innertube),
):
    try:
        results = await innertube.search(q)
    except ValueError as e:
        raise HTTPException(
            status_code=400,
            detail={"success": False, "error": str(e), "error_code": "search.empty_query"},
        )
    except AllProfilesExhaustedError as e:
        raise HTTPException(status_code=502, detail=_error_detail(e, e.failures))
    except Exception as e:
        raise _internal_error(e)
    return SearchResponse(query=q.strip(), results=results)


@router.get(
    "/clients",
    response_model=list[ClientInfo],
    summary="List client personas in priority order",
)
async def list_clients():
    return [
        ClientInfo(
            name=p.client_type,
            client_name=p.client_name,
            client_version=p.client_version,
            priority=p.priority,
            default_enabled=p.default_enabled,
            capabilities=sorted(c.value for c in p.capabilities),
        )
        for p in all_profiles()
    ]


@router.get(
    "/health",
    summary="Health check",
    description="Check the health of the service and its cipher cache.",
)
async def health_check(innertube: Innertube = Depends(get_innertube)):
    return {
        "status": "healthy",
        "clients": [p.name for p in innertube.profiles],
        "cipher_cache": {
            "entries": len(innertube.cache),
            "builds": innertube.cache.builds,
        },
    }
