"""
Negotiation transformer.

Builds the payload expected by the external negotiation service from a
stored consent request and a consumer/provider pair. When the request
has no usable ODRL policy, one is synthesized from its legacy
permissions.

The transformation is pure: it performs no I/O and never raises for
missing optional fields. Every derived value degrades to an empty
string, an empty list or ``None``.
"""

import re
import time
from typing import Any, Dict, List, Optional

from app.models.policy import (
    ODRL_CONTEXT,
    ODRL_EQ,
    ODRL_POLICY_TYPE,
    ODRL_USE,
    OdrlConstraint,
    normalize_odrl_list,
    node_id,
)

POLICY_URI_BASE = "http://upcast-project.eu/policy/"
DATASET_URI_BASE = "http://upcast-project.eu/dataset/"
DEFAULT_TAG = "consent-request"

NATURAL_LANGUAGE_FIELDS = ("extraTerms", "extraText", "additionalInfo", "notes", "text")
GEOGRAPHIC_MARKERS = ("location", "geographic", "region")

_SLUG_STRIP_RE = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE_RE = re.compile(r"\s+")
_HYPHENS_RE = re.compile(r"-+")
_SEGMENT_SPLIT_RE = re.compile(r"[:#/]")
_PARAGRAPH_RE = re.compile(r"\n\n")


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def slugify(name: Any) -> str:
    """
    Derives the URL slug used in synthesized policy and dataset URIs.

    Example:
        >>> slugify("My Request! #1")
        'my-request-1'
    """

    slug = _text(name).lower()
    slug = _SLUG_STRIP_RE.sub("", slug)
    slug = _WHITESPACE_RE.sub("-", slug)
    slug = _HYPHENS_RE.sub("-", slug)
    return slug.strip("-")


def build_natural_language_document(request: dict) -> str:
    """Joins the free-text fields of a request, separated by blank lines."""

    parts = [request.get(field) for field in NATURAL_LANGUAGE_FIELDS]
    return "\n\n".join(p for p in parts if isinstance(p, str) and p)


def build_custom_clauses(request: dict) -> Dict[str, List[str]]:
    """
    Splits ``extraTerms`` into one clause per line and ``extraText`` into
    one clause per paragraph.
    """

    clauses = {}
    extra_terms = _text(request.get("extraTerms"))
    if extra_terms:
        clauses["data_usage_restrictions"] = [
            line.strip() for line in extra_terms.split("\n") if line.strip()
        ]
    extra_text = _text(request.get("extraText"))
    if extra_text:
        clauses["additional_terms_and_conditions"] = [
            para.strip().replace("\n", " ")
            for para in _PARAGRAPH_RE.split(extra_text)
            if para.strip()
        ]
    return clauses


def _refinement_name(refinement: dict) -> Optional[str]:
    return refinement.get("name") or refinement.get("attribute")


def synthesize_permissions(request: dict) -> List[dict]:
    """Builds ODRL permissions from the legacy ``permissions`` array."""

    requester_id = _as_dict(request.get("requester")).get("requesterId")
    result = []
    for perm in _as_list(request.get("permissions")):
        if not isinstance(perm, dict):
            continue
        action_refinements = [r for r in _as_list(perm.get("actionRefinements")) if isinstance(r, dict)]
        permission = {
            "action": (action_refinements[0].get("value") if action_refinements else None) or ODRL_USE,
            "target": perm.get("dataset"),
        }
        constraint_refinements = [r for r in _as_list(perm.get("constraintRefinements")) if isinstance(r, dict)]
        if constraint_refinements:
            permission["constraint"] = [
                {
                    "leftOperand": _refinement_name(ref),
                    "operator": ODRL_EQ,
                    "rightOperand": ref.get("value"),
                }
                for ref in constraint_refinements
            ]
        if requester_id:
            permission["assignee"] = requester_id
        result.append(permission)
    return result


def select_policy(request: dict, synthesized: List[dict], slug: str, now_ms: int) -> dict:
    """
    Picks the ODRL policy sent to the negotiation service.

    An existing policy with ``odrl:permission``, ``permission`` or a
    nested ``odrl`` key is authoritative and copied verbatim (after
    unwrapping ``odrl``); synthesized permissions are merged in only when
    it carries no permissions of its own. Otherwise a fresh policy is
    created.
    """

    policy = request.get("policy")
    if isinstance(policy, dict) and (
        policy.get("odrl:permission") or policy.get("permission") or policy.get("odrl")
    ):
        existing = policy
        if isinstance(policy.get("odrl"), dict) and not policy.get("odrl:permission"):
            existing = policy["odrl"]
        selected = dict(existing)
        if synthesized and not existing.get("odrl:permission") and not existing.get("permission"):
            selected["permission"] = synthesized
        return selected

    return {
        "permission": synthesized,
        "prohibition": [],
        "uid": f"{POLICY_URI_BASE}{slug}-{now_ms}",
        "@context": ODRL_CONTEXT,
        "@type": ODRL_POLICY_TYPE,
    }


def _trailing_segment(uri: str) -> str:
    return _SEGMENT_SPLIT_RE.split(uri)[-1].replace("_", " ")


def derive_type_hints(request: dict) -> List[str]:
    """
    Derives ``type_of_data`` hints from the stored policy's action URIs,
    or from legacy permissions when the policy has no ``odrl:permission``.
    """

    hints = []
    odrl_permissions = _as_dict(request.get("policy")).get("odrl:permission")
    if odrl_permissions:
        for perm in normalize_odrl_list(odrl_permissions):
            if not isinstance(perm, dict):
                continue
            action = perm.get("odrl:action")
            action_id = None
            if isinstance(action, dict):
                action_id = node_id(action.get("rdf:value")) or node_id(action)
            action_id = action_id or (perm.get("action") if isinstance(perm.get("action"), str) else None)
            if action_id:
                segment = _trailing_segment(action_id)
                if segment:
                    hints.append(segment)
        return hints

    for perm in _as_list(request.get("permissions")):
        if not isinstance(perm, dict):
            continue
        if perm.get("dataset"):
            hints.append("dataset")
        for ref in _as_list(perm.get("actionRefinements")):
            if isinstance(ref, dict) and ref.get("value"):
                hints.append(ref["value"])
    return hints


def derive_geographic_scope(request: dict) -> Any:
    """
    Returns the right operand of the first location/region constraint of
    the stored ODRL policy, or ``None``.
    """

    odrl_permissions = _as_dict(request.get("policy")).get("odrl:permission")
    for perm in normalize_odrl_list(odrl_permissions):
        if not isinstance(perm, dict):
            continue
        for raw in normalize_odrl_list(perm.get("odrl:constraint")):
            constraint = OdrlConstraint.from_jsonld(raw)
            left = constraint.left_operand if constraint else None
            if left and any(marker in left for marker in GEOGRAPHIC_MARKERS):
                if constraint.right_operand:
                    return constraint.right_operand
    return None


def derive_tags(request: dict, hints: List[str]) -> List[str]:
    tags = [
        o["name"]
        for o in _as_list(request.get("selectedOntologies"))
        if isinstance(o, dict) and o.get("name")
    ]
    for hint in dict.fromkeys(hints):
        tags.append(str(hint))
    return tags


def transform(request: dict, consumer_id: str, provider_id: str, now_ms: Optional[int] = None) -> dict:
    """
    Converts a consent request into a negotiation-service payload.

    Args:
        request (dict): Stored consent request document.
        consumer_id (str): Identifier of the consumer in the negotiation service.
        provider_id (str): Identifier of the provider in the negotiation service.
        now_ms (int, optional): Epoch milliseconds used in synthesized
            policy URIs. Defaults to the current time.

    Returns:
        dict: Payload with ``initial_offer``, ``initial_request`` and the
        top-level negotiation fields.
    """

    if now_ms is None:
        now_ms = int(time.time() * 1000)
    request = _as_dict(request)
    title = _text(request.get("requestName"))
    slug = slugify(title)

    natural_language_document = build_natural_language_document(request)
    custom_clauses = build_custom_clauses(request)
    odrl_policy = select_policy(request, synthesize_permissions(request), slug, now_ms)

    hints = derive_type_hints(request)
    tags = derive_tags(request, hints)
    requester = _as_dict(request.get("requester"))

    resource_description_object = {
        "title": title,
        "price": 0,
        "price_unit": "EUR/Month",
        "uri": f"{DATASET_URI_BASE}{slug}",
        "policy_url": "",
        "environmental_cost_of_generation": {},
        "environmental_cost_of_serving": {},
        "description": _text(request.get("description")),
        "type_of_data": ", ".join(str(h) for h in hints),
        "data_format": "",
        "data_size": "",
        "geographic_scope": derive_geographic_scope(request),
        "tags": ", ".join(tags) if tags else DEFAULT_TAG,
        "publisher": requester.get("requesterName") or None,
        "theme": None,
        "distribution": None,
    }

    base_policy = {
        "title": title,
        "type": "request",
        "consumer_id": consumer_id,
        "provider_id": provider_id,
        "data_processing_workflow_object": {},
        "natural_language_document": natural_language_document,
        "resource_description_object": resource_description_object,
        "odrl_policy": {"odrl": odrl_policy, **custom_clauses},
    }
    offer_policy = {**base_policy, "type": "offer"}

    return {
        "initial_offer": offer_policy,
        "initial_request": base_policy,
        "negotiation_status": "pending",
        "title": title,
        "consumer_id": consumer_id,
        "provider_id": provider_id,
        "data_processing_workflow_object": {},
        "natural_language_document": natural_language_document,
        "resource_description_object": resource_description_object,
    }
