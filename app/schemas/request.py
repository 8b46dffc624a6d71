from typing import List, Optional

from pydantic import BaseModel, Field


class SendRequest(BaseModel):
    """Owners a draft is sent to, by id and/or email."""

    ownerIds: List[str] = Field(default_factory=list)
    ownerEmails: List[str] = Field(default_factory=list)


class OwnerDecision(BaseModel):
    ownerId: str


class CreatedResponse(BaseModel):
    id: str
    success: bool = True
    message: str = "Request created successfully"
