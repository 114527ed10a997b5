from fastapi import APIRouter
from pydantic import BaseModel, Field, field_validator
from typing import List
from gradebook.core.auth import STAFF_ROLES, create_token
from gradebook.core.config import settings

KNOWN_ROLES = ("student",) + STAFF_ROLES

router = APIRouter()

class MockLogin(BaseModel):
    user_id: str = Field(min_length=1)
    roles: List[str] = Field(default_factory=lambda: ["student"])

    @field_validator("roles")
    @classmethod
    def known_roles(cls, v: List[str]) -> List[str]:
        unknown = sorted(set(v) - set(KNOWN_ROLES))
        if unknown:
            raise ValueError(f"unknown roles: {', '.join(unknown)}")
        return v

@router.post("/mock-login")
def mock_login(payload: MockLogin):
    """Issue a token without a password; only for development and tests."""
    token = create_token(payload.user_id, payload.roles)
    return {
        "access_token": token, "token_type": "bearer", "roles": payload.roles,
        "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    }
