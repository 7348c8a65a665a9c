from fastapi import APIRouter, Request

from .utils import ApiSuccess

router = APIRouter()


@router.get("/health", response_model=ApiSuccess)
async def health(request: Request):
    live = getattr(request.app.state, "live", None)
    return ApiSuccess(
        results=dict(
            status="OK",
            phase=live.session.phase.value if live else None,
            feeds=live.mirror.subscription_count if live else 0,
        )
    )
