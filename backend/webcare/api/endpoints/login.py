import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from webcare.api import deps
from webcare.core.security import create_access_token, hash_password, verify_password
from webcare.models.user import User
from webcare.schemas import LoginRequest, Token, UserCreate, UserResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login/register", response_model=UserResponse, status_code=201)
def register(user_in: UserCreate, db: Session = Depends(deps.get_db)):
    email = user_in.email.strip().lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=400, detail="A user with this email already exists")
    user = User(
        email=email,
        hashed_password=hash_password(user_in.password),
        first_name=user_in.first_name,
        last_name=user_in.last_name,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Registered user {user.id}")
    return user


@router.post("/login/access-token", response_model=Token)
def login_access_token(credentials: LoginRequest, db: Session = Depends(deps.get_db)):
    user = db.query(User).filter(User.email == credentials.email.strip().lower()).first()
    if not user or not verify_password(credentials.password, user.hashed_password):
        raise HTTPException(status_code=400, detail="Incorrect email or password")
    if not user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user")
    return Token(access_token=create_access_token(user.id))


@router.get("/login/me", response_model=UserResponse)
def read_current_user(current_user: User = Depends(deps.get_current_user)):
    return current_user
