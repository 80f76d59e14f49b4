from pydantic import BaseModel, EmailStr, Field
from padel_api.models.user import UserRole


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    name: str | None = None
    phone: str | None = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RefreshRequest(BaseModel):
    refresh_token: str


class UserRead(BaseModel):
    id: int
    email: EmailStr
    role: UserRole
    name: str | None
    phone: str | None
    is_active: bool

    model_config = {"from_attributes": True}


class UserUpdate(BaseModel):
    name: str | None = None
    phone: str | None = None
    skill_level: str | None = None
    location: str | None = None
    push_token: str | None = None


class PushTokenRequest(BaseModel):
    push_token: str = Field(min_length=1, max_length=255)
