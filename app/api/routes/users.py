from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, status
from pydantic import BaseModel, ConfigDict, Field

from app.dependencies.auth import CurrentPrincipal
from app.dependencies.tickets import UserDirectoryDep
from app.tickets.permissions import Role
from app.users.models import DirectoryUser, Profile, RoleAssignment

router = APIRouter(tags=["users"])


class DirectoryUserModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    role: Role
    full_name: str | None
    department: str | None = None


class RoleAssignmentModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    role: Role
    created_at: datetime


class ProfileModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    full_name: str | None
    avatar_url: str | None
    phone: str | None
    department: str | None
    bio: str | None
    created_at: datetime
    updated_at: datetime


class UserCreateRequest(BaseModel):
    email: str
    password: str
    full_name: str = Field(..., min_length=1)
    role: str = Role.USER.value


class RoleUpdateRequest(BaseModel):
    role: str


class ProfileUpdateRequest(BaseModel):
    full_name: str | None = None
    avatar_url: str | None = None
    phone: str | None = None
    department: str | None = None
    bio: str | None = None


@router.get("/users", response_model=list[DirectoryUserModel])
async def list_users(directory: UserDirectoryDep, _: CurrentPrincipal) -> list[DirectoryUser]:
    return await directory.list_users()


@router.post("/users", response_model=DirectoryUserModel, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreateRequest,
    directory: UserDirectoryDep,
    principal: CurrentPrincipal,
) -> DirectoryUser:
    return await directory.create_user(
        principal,
        email=payload.email,
        password=payload.password,
        full_name=payload.full_name,
        role=payload.role,
    )


@router.get("/users/me/role", summary="Effective role of the caller")
async def get_my_role(directory: UserDirectoryDep, principal: CurrentPrincipal) -> dict[str, str]:
    role = await directory.role_of(principal)
    return {"role": role.value}


@router.put("/users/{user_id}/role", response_model=RoleAssignmentModel)
async def assign_role(
    user_id: str,
    payload: RoleUpdateRequest,
    directory: UserDirectoryDep,
    principal: CurrentPrincipal,
) -> RoleAssignment:
    return await directory.assign_role(principal, user_id, payload.role)


@router.get("/profiles", response_model=list[ProfileModel])
async def list_profiles(directory: UserDirectoryDep, _: CurrentPrincipal) -> list[Profile]:
    return list(await directory.list_profiles())


@router.patch("/profiles/me", response_model=ProfileModel)
async def update_my_profile(
    payload: ProfileUpdateRequest,
    directory: UserDirectoryDep,
    principal: CurrentPrincipal,
) -> Profile:
    return await directory.update_profile(principal, **payload.model_dump(exclude_unset=True))


@router.get("/profiles/{user_id}", response_model=ProfileModel)
async def get_profile(user_id: str, directory: UserDirectoryDep, _: CurrentPrincipal) -> Profile:
    return await directory.get_profile(user_id)
