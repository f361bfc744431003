from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from database import get_session
from models import User, UserRole
from responses import ok
from services.auth import (
    authenticate_user,
    create_access_token,
    get_current_user,
    hash_password,
    require_roles,
    user_payload,
)

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=254)
    password: str = Field(min_length=1, max_length=256)


class RegisterRequest(BaseModel):
    first_name: str = Field(min_length=1, max_length=80)
    last_name: str = Field(default="", max_length=80)
    email: str = Field(min_length=3, max_length=254)
    password: str = Field(min_length=8, max_length=256)
    role: UserRole
    department: str = Field(default="", max_length=80)


@router.post("/register", status_code=201)
def register(
    body: RegisterRequest,
    session: Session = Depends(get_session),
    _current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    first_name = body.first_name.strip()
    email = body.email.strip().lower()
    if not first_name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="First name cannot be empty")
    if not email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email cannot be empty")

    existing = session.exec(select(User).where(User.email == email)).first()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

    user = User(
        first_name=first_name,
        last_name=body.last_name.strip(),
        email=email,
        password_hash=hash_password(body.password),
        role=body.role,
        department=body.department.strip(),
    )
    session.add(user)
    try:
        session.commit()
        session.refresh(user)
    except Exception:
        session.rollback()
        raise HTTPException(status_code=500, detail="Failed to register user")

    return ok(user_payload(user), "User registered")


@router.post("/login")
def login(body: LoginRequest, session: Session = Depends(get_session)):
    email = body.email.strip().lower()
    if not email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email cannot be empty")

    user = authenticate_user(email, body.password, session)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    return ok(
        {
            "access_token": create_access_token(user),
            "token_type": "bearer",
            "user": user_payload(user),
        }
    )


@router.get("/me")
def me(current_user: User = Depends(get_current_user)):
    return ok(user_payload(current_user))


@router.get("/users")
def list_users(
    role: UserRole | None = None,
    session: Session = Depends(get_session),
    _current_user: User = Depends(get_current_user),
):
    query = select(User).where(User.is_active == True)  # noqa: E712
    if role is not None:
        query = query.where(User.role == role)
    users = session.exec(query.order_by(User.first_name.asc(), User.id.asc())).all()  # type: ignore[union-attr]
    return ok([user_payload(user) for user in users])
