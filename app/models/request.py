"""
Consent request model definition.

A consent request is created by a requester as a draft, sent to one or
more data owners, and accepted or rejected by each owner individually.
Accepted requests can then be forwarded to the external negotiation and
contract services.

Owner progress is tracked with four id sets: ``owners`` (everyone the
request was sent to) and ``ownersPending`` / ``ownersAccepted`` /
``ownersRejected``, where every id in ``owners`` belongs to exactly one
of the latter three.
"""

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.policy import Permission


class RequestStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    REJECTED = "rejected"


class RequesterInfo(BaseModel):
    """
    Identity of the requester of record.

    Example:
        >>> RequesterInfo(requesterId="r1", requesterName="Acme Research", requesterEmail="r1@acme.org")
    """

    requesterId: str
    requesterName: Optional[str] = None
    requesterEmail: Optional[str] = None


class OntologyRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str


class ConsentRequest(BaseModel):
    """
    Fields a requester supplies when creating a consent request.

    Unknown fields (``description``, ``metadata``, free-text clauses used
    by other clients) are kept as-is.
    """

    model_config = ConfigDict(extra="allow")

    requestName: str = Field(min_length=1)
    """Display name of the request."""

    requester: RequesterInfo
    """Requester of record; required at creation."""

    permissions: List[Permission] = Field(default_factory=list)
    """Legacy permissions; may stay empty when ``policy`` is given."""

    policy: Optional[dict] = None
    """ODRL JSON-LD policy; supersedes ``permissions`` when present."""

    selectedOntologies: List[OntologyRef] = Field(default_factory=list)

    extraTerms: Optional[str] = None
    """Free-text usage restrictions, one per line."""

    extraText: Optional[str] = None
    """Free-text terms and conditions, one per paragraph."""

    description: Optional[str] = None
    metadata: Optional[Any] = None


def lifecycle_state(request_doc: dict) -> str:
    """
    Derives a single display state from the stored status, owner sets and
    negotiation linkage.

    Returns:
        str: ``negotiating`` once a negotiation exists, ``rejected`` or
        ``draft`` from the status, ``accepted`` when at least one owner
        accepted and none is pending, ``sent`` otherwise.
    """

    if request_doc.get("negotiationId"):
        return "negotiating"
    status = request_doc.get("status")
    if status in (RequestStatus.REJECTED.value, RequestStatus.DRAFT.value):
        return status
    if request_doc.get("ownersAccepted") and not request_doc.get("ownersPending"):
        return "accepted"
    return RequestStatus.SENT.value
