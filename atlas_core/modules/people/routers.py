# atlas_core/modules/people/routers.py
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query, Response, status
from loguru import logger

from atlas_core.core.config import settings
from atlas_core.core.logging_config import trace_id_var
from atlas_core.core.permissions import module_list_for_role
from atlas_core.core.security import CurrentSession, create_session_token, require_module, session_from_person
from atlas_core.models.api_common import OkResponse
from .models import (
    LoginRequest,
    SessionInfo,
    UserActionAPI,
    UserCreateAPI,
    UserListResponse,
    UserUpdateAPI,
)
from .services import PeopleService, get_people_service

auth_router = APIRouter()
session_router = APIRouter()
users_router = APIRouter()

ConfigurationAccess = Depends(require_module("configuration"))


# --- Auth ---

@auth_router.post("/login", response_model=SessionInfo, tags=["Authentication"])
async def login(
    response: Response,
    payload: LoginRequest = Body(...),
    people_service: PeopleService = Depends(get_people_service),
):
    """Verifies credentials and sets the signed session cookie."""
    log = logger.bind(trace_id=trace_id_var.get(), api_endpoint="/auth/login", login=payload.username)
    log.info("Login attempt received.")

    person = await people_service.authenticate(payload.username, payload.password)
    if not person:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_credentials")

    token = create_session_token(person)
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.SESSION_DAYS * 24 * 3600,
        httponly=True,
        samesite="lax",
        secure=not settings.FRONTEND_ORIGIN.startswith("http://"),
        path="/",
    )
    return await people_service.session_info(session_from_person(person))


@auth_router.post("/logout", response_model=OkResponse, tags=["Authentication"])
async def logout(response: Response):
    response.delete_cookie(key=settings.SESSION_COOKIE_NAME, path="/")
    return OkResponse()


# --- Session ---

@session_router.get("/me", response_model=SessionInfo, tags=["Session"])
async def read_me(
    session: CurrentSession,
    people_service: PeopleService = Depends(get_people_service),
):
    return await people_service.session_info(session)


@session_router.get("/modules", tags=["Session"])
async def read_modules(session: CurrentSession):
    """Modules visible to the caller after role and global flags."""
    return {"ok": True, "role": session.role, "modules": module_list_for_role(session.role)}


# --- Users administration ---

@users_router.get("", response_model=UserListResponse, dependencies=[ConfigurationAccess], tags=["Users"])
async def list_users(
    q: str = Query(""),
    role: str = Query(""),
    branch: str = Query(""),
    active: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    people_service: PeopleService = Depends(get_people_service),
):
    data, total = await people_service.list_users(q, role, branch, active, page, page_size)
    return UserListResponse(data=data, page=page, page_size=page_size, total=total)


@users_router.post("", dependencies=[ConfigurationAccess], tags=["Users"])
async def create_user(
    payload: UserCreateAPI = Body(...),
    people_service: PeopleService = Depends(get_people_service),
):
    """Creates a person. A generated password is returned once, here only."""
    person, generated_password = await people_service.create_user(payload)
    body = {"ok": True, "data": person.model_dump(mode="json")}
    if generated_password:
        body["initial_password"] = generated_password
    return body


@users_router.get("/{person_id}", dependencies=[ConfigurationAccess], tags=["Users"])
async def get_user(
    person_id: str = Path(...),
    people_service: PeopleService = Depends(get_people_service),
):
    person = await people_service.get_user(person_id)
    return {"ok": True, "data": person.model_dump(mode="json")}


@users_router.patch("/{person_id}", dependencies=[ConfigurationAccess], tags=["Users"])
async def update_user(
    person_id: str = Path(...),
    payload: UserUpdateAPI = Body(...),
    people_service: PeopleService = Depends(get_people_service),
):
    person = await people_service.update_user(person_id, payload)
    return {"ok": True, "data": person.model_dump(mode="json") if person else None}


@users_router.post("/{person_id}", dependencies=[ConfigurationAccess], tags=["Users"])
async def user_action(
    person_id: str = Path(...),
    payload: UserActionAPI = Body(...),
    people_service: PeopleService = Depends(get_people_service),
):
    """Actions: `toggle` flips `active`, `reset-password` sets `newPassword`."""
    if payload.action == "toggle":
        active = await people_service.toggle_active(person_id)
        return {"ok": True, "active": active}
    if payload.action == "reset-password":
        await people_service.reset_password(person_id, payload.new_password)
        return {"ok": True}
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="unsupported_action")


@users_router.delete("/{person_id}", response_model=OkResponse, dependencies=[ConfigurationAccess], tags=["Users"])
async def delete_user(
    person_id: str = Path(...),
    people_service: PeopleService = Depends(get_people_service),
):
    await people_service.delete_user(person_id)
    return OkResponse()
