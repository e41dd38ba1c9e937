from fastapi import APIRouter, HTTPException, Depends
from datetime import datetime, timezone

from pecc.core.config import DEFAULT_RANK
from pecc.core.security import hash_password, verify_password, create_access_token, require_auth
from pecc.db import DocumentStore, get_store
from pecc.models.user import UserCreate, UserLogin, TokenResponse, UserResponse
from pecc.services.utils import format_user_response

router = APIRouter(prefix="/auth", tags=["auth"])

@router.post("/register", response_model=TokenResponse)
async def register(user_data: UserCreate, store: DocumentStore = Depends(get_store)):
    # Check if email exists
    existing_user = await store.find_one("users", {"email": user_data.email})
    if existing_user:
        raise HTTPException(status_code=400, detail="Email already registered")

    display_name = user_data.display_name.strip()
    if not display_name:
        raise HTTPException(status_code=400, detail="Display name is required")

    # Every account starts without a plan
    user_doc = {
        "email": user_data.email,
        "display_name": display_name,
        "password_hash": hash_password(user_data.password),
        "is_admin": False,
        "rank": DEFAULT_RANK,
        "premium_plan_type": None,
        "premium_expiry_date": None,
        "redeemed_code": None,
        "photo_url": None,
        "created_at": datetime.now(timezone.utc).isoformat()
    }
    user_id = await store.create("users", user_doc)
    user_doc["id"] = user_id

    token = create_access_token(user_id)
    return TokenResponse(
        access_token=token,
        user=format_user_response(user_doc)
    )

@router.post("/login", response_model=TokenResponse)
async def login(credentials: UserLogin, store: DocumentStore = Depends(get_store)):
    user = await store.find_one("users", {"email": credentials.email})
    if not user or not verify_password(credentials.password, user['password_hash']):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    token = create_access_token(user['id'])
    return TokenResponse(
        access_token=token,
        user=format_user_response(user)
    )

@router.get("/me", response_model=UserResponse)
async def get_me(user: dict = Depends(require_auth)):
    return format_user_response(user)
