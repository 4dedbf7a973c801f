from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.models.user import UserCreate, UserLogin
from storefront.models_sqlalchemy import get_db
from storefront.models_sqlalchemy.models import User
from storefront.services.auth import (
    authenticate_user,
    create_access_token,
    get_current_user,
    register_user,
    serialize_user,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", status_code=201)
async def register(payload: UserCreate, db: Session = Depends(get_db)):
    user = register_user(db, payload.email, payload.password, payload.fullName)
    token = create_access_token({"sub": user.id})
    return {"access_token": token, "token_type": "bearer", "user": serialize_user(user)}


@router.post("/login")
async def login(payload: UserLogin, db: Session = Depends(get_db)):
    user = authenticate_user(db, payload.email, payload.password)
    token = create_access_token({"sub": user.id})
    return {"access_token": token, "token_type": "bearer", "user": serialize_user(user)}


@router.get("/me")
async def me(current_user: User = Depends(get_current_user)):
    return serialize_user(current_user)
