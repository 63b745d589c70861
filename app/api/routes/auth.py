from __future__ import annotations

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from app.core.config import get_settings
from app.dependencies.auth import CurrentPrincipal, IdentityProviderDep
from app.dependencies.tickets import UserDirectoryDep
from app.security.identity import Principal
from app.users.service import UserDirectory

router = APIRouter(prefix="/auth", tags=["auth"])


class SignupRequest(BaseModel):
    email: str
    password: str
    full_name: str = Field(..., min_length=1)


class TokenRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class PrincipalModel(BaseModel):
    user_id: str
    email: str
    display_name: str
    role: str


class AccountUpdateRequest(BaseModel):
    display_name: str | None = None
    password: str | None = None


async def _describe(principal: Principal, directory: UserDirectory) -> PrincipalModel:
    role = await directory.role_of(principal)
    return PrincipalModel(
        user_id=principal.user_id,
        email=principal.email,
        display_name=principal.display_name,
        role=role.value,
    )


@router.post("/signup", response_model=PrincipalModel, status_code=status.HTTP_201_CREATED)
async def signup(payload: SignupRequest, directory: UserDirectoryDep) -> PrincipalModel:
    if not get_settings().allow_self_signup:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Self sign-up is disabled")
    principal = await directory.register(
        email=payload.email,
        password=payload.password,
        full_name=payload.full_name,
    )
    return await _describe(principal, directory)


@router.post("/token", response_model=TokenResponse)
async def issue_token(payload: TokenRequest, provider: IdentityProviderDep) -> TokenResponse:
    token = await provider.authenticate(email=payload.email, password=payload.password)
    return TokenResponse(access_token=token)


@router.get("/me", response_model=PrincipalModel)
async def read_me(principal: CurrentPrincipal, directory: UserDirectoryDep) -> PrincipalModel:
    return await _describe(principal, directory)


@router.patch("/me", response_model=PrincipalModel)
async def update_me(
    payload: AccountUpdateRequest,
    principal: CurrentPrincipal,
    directory: UserDirectoryDep,
) -> PrincipalModel:
    updated = await directory.update_account(
        principal,
        display_name=payload.display_name,
        password=payload.password,
    )
    return await _describe(updated, directory)
