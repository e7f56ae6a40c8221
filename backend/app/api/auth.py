"""Authentication API endpoints."""

from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_app_settings, get_current_user
from app.config import Settings
from app.core.security import create_access_token, get_password_hash, verify_password
from app.database import get_db
from app.models import User
from app.schemas import LoginRequest, Token, UserCreate, UserRead
from app.services.entitlements import plan_of

router = APIRouter()


def serialize_user(user: User, settings: Settings) -> UserRead:
    return UserRead(
        id=user.id,
        login=user.login,
        display_name=user.display_name,
        plan=plan_of(user, settings),
        video_chat=user.video_chat,
        verified=user.is_verified,
        created_at=user.created_at,
    )


@router.post("/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def register_user(
    user_in: UserCreate,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> UserRead:
    """Register a new user in the system."""

    existing_user = db.execute(select(User).where(User.login == user_in.login)).scalar_one_or_none()
    if existing_user is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Login is already taken",
        )

    user = User(
        login=user_in.login,
        display_name=user_in.display_name,
        video_chat=user_in.video_chat,
        hashed_password=get_password_hash(user_in.password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return serialize_user(user, settings)


@router.post("/login", response_model=Token)
def login_user(
    credentials: LoginRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> Token:
    """Authenticate a user and return a JWT access token."""

    db_user = db.execute(select(User).where(User.login == credentials.login)).scalar_one_or_none()
    if db_user is None or not verify_password(credentials.password, db_user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect login or password",
        )

    access_token_expires = timedelta(minutes=settings.access_token_expire_minutes)
    access_token = create_access_token({"sub": str(db_user.id)}, expires_delta=access_token_expires)
    return Token(
        access_token=access_token,
        token_type="bearer",
        expires_in=int(access_token_expires.total_seconds()),
    )


@router.get("/me", response_model=UserRead)
def read_current_user(
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_app_settings),
) -> UserRead:
    return serialize_user(current_user, settings)
