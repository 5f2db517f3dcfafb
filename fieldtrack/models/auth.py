"""Caller identity handed over by the authentication layer."""

from pydantic import BaseModel, Field


class AuthContext(BaseModel):
    """Authenticated caller."""
    user_id: str = Field(..., min_length=1)
    is_admin: bool = False
