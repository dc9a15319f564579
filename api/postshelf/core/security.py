from typing import Any

import httpx
from fastapi import Depends, Header, HTTPException, status

from postshelf.core.auth import Principal
from postshelf.core.config import Settings, get_settings

USER_ENDPOINT = "/auth/v1/user"
ROLE_SOURCES = ("app_metadata", "user_metadata")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _unavailable(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)


def _bearer_token(authorization: str | None) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer":
        raise _unauthorized("authentication requires a bearer token")
    if not token.strip():
        raise _unauthorized("empty bearer token")
    return token.strip()


async def get_current_user(
    settings: Settings = Depends(get_settings),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Principal:
    """Resolve the bearer token to the signed-in user, for destructive routes."""
    token = _bearer_token(authorization)
    if not settings.supabase_url or not settings.supabase_anon_key:
        raise _unavailable("auth provider is not configured")

    return _principal_from_user(await _lookup_session_user(settings, token))


async def _lookup_session_user(settings: Settings, token: str) -> dict[str, Any]:
    """Ask the auth provider who owns ``token``."""
    try:
        async with httpx.AsyncClient(
            base_url=settings.supabase_url.rstrip("/"),
            headers={"apikey": settings.supabase_anon_key},
            timeout=settings.auth_timeout_seconds,
        ) as client:
            response = await client.get(USER_ENDPOINT, headers={"Authorization": f"Bearer {token}"})
    except httpx.HTTPError as exc:  # pragma: no cover - network dependent
        raise _unavailable("auth verification unavailable") from exc

    if response.status_code in {status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN}:
        raise _unauthorized("invalid bearer token")
    if response.status_code != status.HTTP_200_OK:
        raise _unavailable("auth verification failed")
    return response.json()


def _principal_from_user(user: dict[str, Any]) -> Principal:
    subject = user.get("id")
    if not isinstance(subject, str) or not subject:
        raise _unauthorized("invalid bearer token")

    email = user.get("email")
    role = next(
        (
            metadata["role"]
            for metadata in (user.get(source) for source in ROLE_SOURCES)
            if isinstance(metadata, dict) and isinstance(metadata.get("role"), str) and metadata["role"]
        ),
        "user",
    )
    return Principal(subject=subject, email=email if isinstance(email, str) and email else None, role=role)
