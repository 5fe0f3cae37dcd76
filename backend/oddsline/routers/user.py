from fastapi import APIRouter, Depends

from oddsline.models.bet import UserResponse
from oddsline.services.auth_service import get_current_user
from oddsline.utils import format_money

router = APIRouter(prefix="/api/user", tags=["user"])


def user_to_response(user: dict) -> dict:
    return {
        "id": str(user["_id"]),
        "email": user.get("email", ""),
        "name": user.get("name", ""),
        "balance": format_money(user.get("balance", 0)),
        "is_admin": bool(user.get("is_admin", False)),
    }


@router.get("", response_model=UserResponse)
async def get_me(user=Depends(get_current_user)):
    """Current user, including the balance the betting slip validates against."""
    return user_to_response(user)
