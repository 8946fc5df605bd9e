from typing import Optional
from fastapi import Depends, Header, HTTPException, Request
from splitshare.core.config import Settings
from splitshare.services.auth.jwt_handler import get_current_user
from splitshare.services.notification_service import ExpenseNotifier


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_notifier(request: Request) -> ExpenseNotifier:
    return request.app.state.notifier


def get_current_user_id(
    access_token: Optional[str] = Header(None, description="Access token (without Bearer)"),
    settings: Settings = Depends(get_app_settings)
) -> str:
    """Extract current user ID from JWT token"""
    if not access_token:
        raise HTTPException(status_code=401, detail="Missing access token")
    if access_token.startswith("Bearer "):
        access_token = access_token.replace("Bearer ", "", 1)
    user_id = get_current_user(access_token, settings)
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user_id
