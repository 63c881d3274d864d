import logging
import secrets
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from crm.auth.dependencies import AuthContext, get_current_user
from crm.auth.google import GoogleOAuthClient, GoogleOAuthError
from crm.auth.security import create_access_token, hash_password, verify_password
from crm.config import settings
from crm.db.deps import get_session
from crm.db.enums import AuthProviderEnum, UserRoleEnum
from crm.db.models import User
from crm.db.repositories.users import UsersRepository
from crm.schemas.auth import LoginRequest, RegisterRequest, TokenResponse, UserResponse
from crm.schemas.common import envelope

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

google_client = GoogleOAuthClient()


def get_google_client() -> GoogleOAuthClient:
    return google_client


def serialize_user(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        provider=user.provider,
        avatar=user.avatar,
        isActive=user.is_active,
        lastLogin=user.last_login,
        preferences=user.preferences or {},
        createdAt=user.created_at,
    )


def _issue_token(user: User) -> TokenResponse:
    token = create_access_token(subject=user.id, role=user.role.value)
    return TokenResponse(token=token, user=serialize_user(user))


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, session: Session = Depends(get_session)):
    repo = UsersRepository(session)
    if repo.get_by_email(payload.email):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User already exists with this email",
        )
    user = repo.create(
        name=payload.name,
        email=payload.email,
        password_hash=hash_password(payload.password),
        role=UserRoleEnum.user,
        provider=AuthProviderEnum.local,
    )
    user = repo.touch_last_login(user)
    logger.info("User registered", extra={"user_id": user.id})
    return envelope(_issue_token(user), message="User registered successfully")


@router.post("/login")
def login(payload: LoginRequest, session: Session = Depends(get_session)):
    repo = UsersRepository(session)
    user = repo.get_by_email(payload.email)
    if not user or user.role == UserRoleEnum.customer or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account is deactivated")
    user = repo.touch_last_login(user)
    return envelope(_issue_token(user), message="Login successful")


@router.get("/me")
def me(auth: AuthContext = Depends(get_current_user), session: Session = Depends(get_session)):
    user = UsersRepository(session).get(auth.user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return envelope({"user": serialize_user(user)})


@router.get("/google")
def google_login(
    session: Session = Depends(get_session),
    client: GoogleOAuthClient = Depends(get_google_client),
):
    state = secrets.token_urlsafe(32)
    UsersRepository(session).create_oauth_state(state)
    return RedirectResponse(url=client.build_authorize_url(state=state), status_code=302)


@router.get("/google/callback")
async def google_callback(
    request: Request,
    session: Session = Depends(get_session),
    client: GoogleOAuthClient = Depends(get_google_client),
):
    error = request.query_params.get("error")
    if error:
        logger.info("Google sign-in declined", extra={"error": error})
        query = urlencode({"error": "google_auth_failed"})
        return RedirectResponse(url=f"{settings.FRONTEND_URL.rstrip('/')}/login?{query}", status_code=302)

    code = request.query_params.get("code")
    state_value = request.query_params.get("state")
    if not code or not state_value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required OAuth callback params: code, state",
        )

    repo = UsersRepository(session)
    if not repo.consume_oauth_state(state_value):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid OAuth state")

    try:
        access_token = await client.exchange_code(code=code)
        profile = await client.fetch_profile(access_token=access_token)
    except GoogleOAuthError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc

    user = repo.upsert_google_user(
        google_id=profile.google_id,
        email=profile.email,
        name=profile.name,
        avatar=profile.avatar,
    )
    if not user.is_active or user.role == UserRoleEnum.customer:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account is deactivated")
    user = repo.touch_last_login(user)
    logger.info("Google sign-in completed", extra={"user_id": user.id})

    token = create_access_token(subject=user.id, role=user.role.value)
    query = urlencode({"token": token})
    return RedirectResponse(url=f"{settings.FRONTEND_URL.rstrip('/')}/auth/success?{query}", status_code=302)
