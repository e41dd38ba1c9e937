from pydantic import BaseModel, EmailStr, ConfigDict, computed_field
from typing import Literal, Optional

PlanType = Literal["none", "basic", "pro"]


class User(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    email: EmailStr
    display_name: str
    password_hash: str
    is_admin: bool = False
    rank: str = "iniciante"
    premium_plan_type: Optional[Literal["basic", "pro"]] = None  # None means no plan
    premium_expiry_date: Optional[str] = None
    redeemed_code: Optional[str] = None
    photo_url: Optional[str] = None
    created_at: str

    @computed_field
    @property
    def is_premium(self) -> bool:
        return self.premium_plan_type is not None


class UserCreate(BaseModel):
    email: EmailStr
    display_name: str
    password: str


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    id: str
    email: str
    display_name: str
    is_admin: bool
    rank: str
    premium_plan_type: Optional[str] = None
    is_premium: bool
    premium_expiry_date: Optional[str] = None
    redeemed_code: Optional[str] = None
    photo_url: Optional[str] = None
    created_at: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class AdminUserUpdate(BaseModel):
    display_name: Optional[str] = None
    rank: Optional[str] = None
    is_admin: Optional[bool] = None
    premium_plan_type: Optional[PlanType] = None
