from fastapi import APIRouter

from app.dependencies.auth import CurrentPrincipal

router = APIRouter(prefix="/ping", tags=["health"])


@router.get("", summary="Public health probe")
async def ping() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/secure", summary="Authenticated health probe")
async def secure_ping(principal: CurrentPrincipal) -> dict[str, str]:
    return {"status": "ok", "user": principal.user_id}
