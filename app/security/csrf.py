from __future__ import annotations

import secrets

from fastapi import HTTPException, Request, status
from starlette.responses import Response

from app.config import settings


CSRF_COOKIE_NAME = 'csrf_token'
CSRF_HEADER_NAME = 'X-CSRF-Token'
SAFE_METHODS = {'GET', 'HEAD', 'OPTIONS'}


def _new_token() -> str:
    return secrets.token_urlsafe(24)


def _set_cookie(response: Response, token: str) -> None:
    # Readable by the client so it can echo the value back in the header.
    response.set_cookie(
        key=CSRF_COOKIE_NAME,
        value=token,
        httponly=False,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
    )


def install_csrf_cookie_middleware(app) -> None:
    @app.middleware('http')
    async def csrf_cookie_middleware(request: Request, call_next):
        request.state.csrf_token = request.cookies.get(CSRF_COOKIE_NAME) or _new_token()

        response = await call_next(request)
        if request.cookies.get(CSRF_COOKIE_NAME) != request.state.csrf_token:
            _set_cookie(response, request.state.csrf_token)
        return response


def rotate_csrf_token(request: Request) -> str:
    """Issue a fresh token, e.g. when the signed-in identity changes.

    The cookie middleware writes it out with the response.
    """
    request.state.csrf_token = _new_token()
    return request.state.csrf_token


def csrf_token_for(request: Request) -> str:
    return getattr(request.state, 'csrf_token', '') or request.cookies.get(CSRF_COOKIE_NAME, '')


async def verify_csrf(request: Request) -> None:
    if request.method in SAFE_METHODS:
        return

    header_token = request.headers.get(CSRF_HEADER_NAME)
    cookie_token = request.cookies.get(CSRF_COOKIE_NAME)
    if not header_token or not cookie_token or not secrets.compare_digest(header_token, cookie_token):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Invalid CSRF token')
