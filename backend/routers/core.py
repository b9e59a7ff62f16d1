from fastapi import APIRouter, Depends

from backend.context import AppContext, get_context

router = APIRouter()


@router.get("/")
def root():
    return {"status": "ok", "service": "scantrack"}


@router.get("/health")
def health(ctx: AppContext = Depends(get_context)):
    return {"status": "ok", "live_sessions": ctx.hub.session_count()}
