from typing import Optional

from pydantic import BaseModel, ConfigDict


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class RegisterRequest(BaseModel):
    """Registration body; extra profile fields are stored on the user document."""

    model_config = ConfigDict(extra="allow")

    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None
    type: Optional[str] = None
    masterPassword: Optional[str] = None


class DeleteUserRequest(BaseModel):
    masterPassword: Optional[str] = None
