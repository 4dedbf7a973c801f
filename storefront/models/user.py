from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Optional


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    fullName: Optional[str] = None


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    id: str
    email: EmailStr
    fullName: Optional[str] = None
    phone: Optional[str] = None
    isAdmin: bool = False
    isActive: bool = True
    createdAt: datetime


class ProfileUpdate(BaseModel):
    fullName: Optional[str] = Field(None, min_length=2)
    phone: Optional[str] = None


class Token(BaseModel):
    access_token: str
    token_type: str
    user: UserResponse
