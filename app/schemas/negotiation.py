from typing import Optional

from pydantic import BaseModel


class NegotiationCreate(BaseModel):
    """Body of the negotiation creation endpoints; all ids are required."""

    requestId: Optional[str] = None
    consumerId: Optional[str] = None
    providerId: Optional[str] = None
