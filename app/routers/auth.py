from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.auth import Principal, get_current_principal
from app.config import settings
from app.dependencies import get_client_ip, get_identity
from app.security.csrf import csrf_token_for, rotate_csrf_token, verify_csrf
from app.services.identity_service import IdentityProvider
from app.services.role_policy import principal_capabilities

router = APIRouter(tags=['auth'])


class LoginRequest(BaseModel):
    email: str
    password: str


def principal_document(principal: Principal) -> dict:
    return {
        'email': principal.email,
        'displayName': principal.display_name,
        'role': principal.role.value,
        'active': principal.active,
        'directoryMiss': principal.directory_miss,
        'capabilities': sorted(capability.value for capability in principal_capabilities(principal)),
    }


@router.post('/login')
async def login_submit(
    request: Request,
    body: LoginRequest,
    identity: IdentityProvider = Depends(get_identity),
):
    token, principal = await identity.sign_in(
        body.email,
        body.password,
        ip=get_client_ip(request),
        user_agent=request.headers.get('user-agent'),
    )
    response = JSONResponse({**principal_document(principal), 'csrfToken': rotate_csrf_token(request)})
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        max_age=settings.session_ttl_minutes * 60,
    )
    return response


@router.post('/logout')
async def logout(
    request: Request,
    identity: IdentityProvider = Depends(get_identity),
    _: None = Depends(verify_csrf),
):
    await identity.sign_out(request.cookies.get(settings.session_cookie_name))
    response = JSONResponse({'signedOut': True})
    response.delete_cookie(settings.session_cookie_name)
    return response


@router.get('/me')
def me(request: Request, principal: Principal = Depends(get_current_principal)):
    return {**principal_document(principal), 'csrfToken': csrf_token_for(request)}
