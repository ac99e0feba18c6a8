"""Account endpoints: registration, login, token refresh and profile."""
from fastapi import APIRouter, Depends, status

from manga_reader.api.deps import ServiceContainer, current_claims, get_services
from manga_reader.api.schemas import (
    LoginRequest,
    PasswordChangeRequest,
    ProfileUpdateRequest,
    RefreshRequest,
    RegisterRequest,
    ok,
)
from manga_reader.auth.tokens import Claims

router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(body: RegisterRequest, services: ServiceContainer = Depends(get_services)):
    return ok(services.users.register(body.username, body.email, body.password))


@router.post("/login")
def login(body: LoginRequest, services: ServiceContainer = Depends(get_services)):
    return ok(services.users.login(body.username, body.password))


@router.post("/refresh")
def refresh(body: RefreshRequest, services: ServiceContainer = Depends(get_services)):
    return ok(services.users.refresh(body.refresh_token))


@router.get("/me")
def get_profile(claims: Claims = Depends(current_claims), services: ServiceContainer = Depends(get_services)):
    return ok(services.users.get_profile(claims.user_id))


@router.put("/me")
def update_profile(
    body: ProfileUpdateRequest,
    claims: Claims = Depends(current_claims),
    services: ServiceContainer = Depends(get_services),
):
    return ok(services.users.update_profile(claims.user_id, body.username, body.email))


@router.post("/me/password")
def change_password(
    body: PasswordChangeRequest,
    claims: Claims = Depends(current_claims),
    services: ServiceContainer = Depends(get_services),
):
    services.users.change_password(claims.user_id, body.old_password, body.new_password)
    return ok({"message": "Password changed"})


@router.post("/logout")
def logout(claims: Claims = Depends(current_claims), services: ServiceContainer = Depends(get_services)):
    services.users.logout(claims.user_id)
    return ok({"message": "Logged out"})
