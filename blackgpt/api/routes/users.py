"""
User endpoints. There is no auth layer; a single placeholder user is served.
"""
from fastapi import APIRouter

from blackgpt.utils.constants import DEMO_USER_EMAIL, DEMO_USER_ID

router = APIRouter()

@router.get("/me")
def get_current_user():
    return {
        "id": DEMO_USER_ID,
        "email": DEMO_USER_EMAIL,
        "role": "reviewer",
    }
