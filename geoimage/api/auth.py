"""Password gate, session cookie handling and route dependencies."""

from __future__ import annotations

import logging
import secrets

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from geoimage.api.context import AppContext
from geoimage.api.schemas import PasswordRequest
from geoimage.services.orchestrator import Orchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["auth"])


def get_context(request: Request) -> AppContext:
    """Return the application context or fail if startup has not completed."""

    context: AppContext | None = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is not initialised.",
        )
    return context


async def require_session(
    request: Request,
    context: AppContext = Depends(get_context),
) -> Orchestrator:
    """
    Resolve the caller's session from the auth cookie.

    The cookie holds an opaque token issued by ``/api/login``; the password itself
    never leaves the login request.
    """

    token = request.cookies.get(context.settings.session_cookie_name)
    orchestrator = await context.sessions.get(token)
    if orchestrator is None:
        logger.info("Auth check failed for %s", request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required.",
        )
    return orchestrator


SessionDependency = Depends(require_session)


def _password_matches(context: AppContext, password: str) -> bool:
    expected = context.settings.app_password
    return bool(expected) and secrets.compare_digest(password.encode(), expected.encode())


@router.post("/login")
async def login(payload: PasswordRequest, context: AppContext = Depends(get_context)) -> JSONResponse:
    """Exchange the shared password for a session cookie."""

    settings = context.settings
    if not settings.app_password:
        logger.error("Login attempted but APP_PASSWORD is not configured")
        return JSONResponse({"error": "Server configuration error"}, status_code=500)

    if not _password_matches(context, payload.password):
        logger.info("Login failed: invalid password")
        return JSONResponse({"error": "Invalid password"}, status_code=401)

    token = await context.sessions.create()
    response = JSONResponse({"success": True})
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_max_age,
        path="/",
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
    )
    logger.info("Login successful")
    return response


@router.post("/auth/verify")
async def verify_password(payload: PasswordRequest, context: AppContext = Depends(get_context)) -> JSONResponse:
    """Check a password without creating a session."""

    if not context.settings.app_password:
        return JSONResponse({"success": False, "message": "Server configuration error"}, status_code=500)
    if _password_matches(context, payload.password):
        return JSONResponse({"success": True})
    return JSONResponse({"success": False, "message": "Invalid password"}, status_code=401)


@router.post("/logout")
async def logout(
    request: Request,
    _: Orchestrator = SessionDependency,
    context: AppContext = Depends(get_context),
) -> JSONResponse:
    """Close the caller's session and drop the cookie."""

    cookie_name = context.settings.session_cookie_name
    token = request.cookies.get(cookie_name)
    if token:
        await context.sessions.discard(token)
    response = JSONResponse({"success": True})
    response.delete_cookie(cookie_name, path="/")
    return response
