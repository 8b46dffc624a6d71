"""
Policy parser.

Converts the policy stored on a consent request into a normalized list
of :class:`~app.models.policy.ParsedPermission` entries for display,
hiding whether the request carries an ODRL JSON-LD policy or a legacy
``permissions`` array.

All functions are pure. Malformed or partial JSON-LD never raises; it
degrades to ``"Unknown"`` names or empty lists.
"""

import json
import re
from typing import Any, List, Optional

from app.models.policy import (
    LegacyPolicySource,
    NoPolicySource,
    OdrlAssignee,
    OdrlConstraint,
    OdrlPermission,
    OdrlPolicy,
    OdrlPolicySource,
    ParsedAssignee,
    ParsedConstraint,
    ParsedPermission,
    PolicySource,
)

DEFAULT_PURPOSE = "General use"

_URI_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")
_PREFIX_RE = re.compile(r"^[a-zA-Z]+:")
_CAMEL_RE = re.compile(r"([a-z])([A-Z])")
_SPACES_RE = re.compile(r"\s+")
_WORD_START_RE = re.compile(r"\b\w")


def extract_readable_name(identifier: Any) -> str:
    """
    Extracts a human-readable name from a URI, prefixed name or plain id.

    The scheme, host and path of a URI are dropped (keeping the fragment
    or last path segment), a ``prefix:`` is dropped, underscores become
    spaces, camelCase is split and every word is capitalized.

    Example:
        >>> extract_readable_name("http://ex.org/ns#dataUsage")
        'Data Usage'
        >>> extract_readable_name("odrl:isAnyOf")
        'Is Any Of'
    """

    if identifier is None or identifier == "":
        return "Unknown"
    name = identifier if isinstance(identifier, str) else str(identifier)

    if _URI_RE.match(name):
        trimmed = name.rstrip("/#")
        if "#" in trimmed:
            name = trimmed.rsplit("#", 1)[1]
        else:
            name = trimmed.rsplit("/", 1)[1]
    else:
        name = _PREFIX_RE.sub("", name, count=1)

    name = name.replace("_", " ")
    name = _CAMEL_RE.sub(r"\1 \2", name)
    name = _SPACES_RE.sub(" ", name).strip()
    if not name:
        return "Unknown"
    return _WORD_START_RE.sub(lambda m: m.group(0).upper(), name)


def _describe_value(value: Any) -> str:
    if isinstance(value, dict):
        if isinstance(value.get("@id"), str):
            return extract_readable_name(value["@id"])
        if "@value" in value:
            return str(value["@value"])
        return json.dumps(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def describe_right_operand(right_operand: Any) -> str:
    """
    Renders a right operand as text.

    Handles plain scalars, ``@id`` references, ``@value`` literals, arrays
    and JSON-LD ``@list`` containers.
    """

    if isinstance(right_operand, list):
        return ", ".join(_describe_value(item) for item in right_operand)
    if isinstance(right_operand, dict) and isinstance(right_operand.get("@list"), list):
        return ", ".join(_describe_value(item) for item in right_operand["@list"])
    return _describe_value(right_operand)


def _parse_constraint(constraint: OdrlConstraint) -> ParsedConstraint:
    left = extract_readable_name(constraint.left_operand)
    operator = extract_readable_name(constraint.operator)
    description = f"{left} {operator}"
    value = describe_right_operand(constraint.right_operand)
    if value:
        description += f" {value}"
    return ParsedConstraint(
        leftOperand=left,
        operator=operator,
        rightOperand=constraint.right_operand,
        description=description,
    )


def parse_constraints(constraints: List[OdrlConstraint]) -> List[ParsedConstraint]:
    return [_parse_constraint(c) for c in constraints]


def parse_assignees(assignee: Optional[OdrlAssignee]) -> List[ParsedAssignee]:
    """Parses an assignee and at most one nested refinement."""

    if assignee is None:
        return []
    refinements = None
    if assignee.refinement is not None:
        refinements = [_parse_constraint(assignee.refinement)]
    return [ParsedAssignee(source=extract_readable_name(assignee.source), refinements=refinements)]


def derive_purpose(constraints: List[ParsedConstraint]) -> str:
    """
    Joins the values of purpose constraints using an "any of" operator.

    Falls back to ``"General use"`` when no constraint matches or all
    matching values are empty.
    """

    values = []
    for constraint in constraints:
        if "purpose" in constraint.leftOperand.lower() and "any" in constraint.operator.lower():
            values.append(describe_right_operand(constraint.rightOperand))
    joined = ", ".join(values)
    return joined or DEFAULT_PURPOSE


def _parse_odrl_permission(permission: OdrlPermission) -> ParsedPermission:
    constraints = parse_constraints(permission.constraints)
    return ParsedPermission(
        dataset=extract_readable_name(permission.target),
        action=extract_readable_name(permission.action),
        purpose=derive_purpose(constraints),
        constraints=constraints,
        assignees=parse_assignees(permission.assignee),
    )


def parse_odrl_policy(policy: Optional[OdrlPolicy]) -> List[ParsedPermission]:
    if policy is None:
        return []
    return [_parse_odrl_permission(p) for p in policy.permissions]


def has_odrl_policy(request: dict) -> bool:
    """
    True iff the request's policy carries both ``@context`` and an
    ``odrl:permission`` array.
    """

    policy = request.get("policy") if isinstance(request, dict) else None
    if not isinstance(policy, dict):
        return False
    return bool(policy.get("@context")) and isinstance(policy.get("odrl:permission"), list)


def resolve_policy_source(request: dict) -> PolicySource:
    """Decides once which storage shape a request's permissions come from."""

    if has_odrl_policy(request):
        return OdrlPolicySource(policy=OdrlPolicy.from_jsonld(request["policy"]))
    permissions = request.get("permissions") if isinstance(request, dict) else None
    if isinstance(permissions, list):
        return LegacyPolicySource(permissions=[p for p in permissions if isinstance(p, dict)])
    return NoPolicySource()


def _parse_legacy_permission(permission: dict) -> ParsedPermission:
    return ParsedPermission(
        dataset=permission.get("dataset") or "Unknown dataset",
        action=permission.get("action") or "Unknown action",
        purpose=permission.get("purpose") or "Unknown purpose",
        datasetRefinements=permission.get("datasetRefinements") or [],
        actionRefinements=permission.get("actionRefinements") or [],
        purposeRefinements=permission.get("purposeRefinements") or [],
        constraintRefinements=permission.get("constraintRefinements") or [],
    )


def get_permissions(request: dict) -> List[ParsedPermission]:
    """
    Returns the display permissions of a consent request.

    Args:
        request (dict): Stored consent request document.

    Returns:
        list[ParsedPermission]: Parsed ODRL permissions when the request
        has an ODRL policy, mapped legacy permissions otherwise, and an
        empty list when neither shape is present.
    """

    source = resolve_policy_source(request)
    if isinstance(source, OdrlPolicySource):
        return parse_odrl_policy(source.policy)
    if isinstance(source, LegacyPolicySource):
        return [_parse_legacy_permission(p) for p in source.permissions]
    return []
