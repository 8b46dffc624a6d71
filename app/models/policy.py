"""
Policy model definition.

This module defines the data models that describe data-usage policies
attached to consent requests. Two storage shapes exist:

- Legacy permissions: a flat list of :class:`Permission` entries, each
  holding a dataset URI and four lists of :class:`Refinement` conditions.
- ODRL policies: JSON-LD documents following the ODRL (Open Digital
  Rights Language) vocabulary with ``odrl:permission`` entries.

The ODRL side is exposed through typed views (:class:`OdrlPolicy`,
:class:`OdrlPermission`, :class:`OdrlConstraint`, :class:`OdrlAssignee`).
Each view is built with a ``from_jsonld`` constructor that never raises:
a field that is missing or has an unexpected shape is represented as
``None`` (absent) rather than as an error.

A request's policy is resolved once into a :class:`PolicySource`, one of
:class:`OdrlPolicySource`, :class:`LegacyPolicySource` or
:class:`NoPolicySource`.
"""

from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

ODRL_CONTEXT = "http://www.w3.org/ns/odrl.jsonld"
ODRL_POLICY_TYPE = "http://www.w3.org/ns/odrl/2/Policy"
ODRL_USE = "http://www.w3.org/ns/odrl/2/use"
ODRL_EQ = "http://www.w3.org/ns/odrl/2/eq"


def normalize_odrl_list(value: Any) -> list:
    """
    Ensures that an ODRL property is always returned as a list.

    Args:
        value (Any): Raw ODRL property (dict, list, or None).

    Returns:
        list: A normalized list of elements or an empty list.
    """

    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        return [value]
    return []


def node_id(value: Any) -> Optional[str]:
    """
    Returns the ``@id`` of a JSON-LD node, or the value itself when it is
    already a plain string. Anything else is absent.
    """

    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        ident = value.get("@id")
        if isinstance(ident, str) and ident:
            return ident
    return None


class Refinement(BaseModel):
    """
    A named, operator-qualified condition in the legacy permission shape.

    Example:
        >>> refinement = Refinement(attribute="purpose", instance="eq", value="research")
    """

    model_config = ConfigDict(extra="allow")

    attribute: Optional[str] = None
    """Attribute the condition applies to."""

    instance: Optional[str] = None
    """Comparison operator."""

    value: Optional[Any] = None
    """Value compared against."""

    name: Optional[str] = None
    """Alternate attribute key written by older clients."""


class Permission(BaseModel):
    """
    Legacy permission entry embedded in a consent request.

    Example:
        >>> permission = Permission(
        ...     dataset="http://example.org/dataset/energy",
        ...     actionRefinements=[Refinement(attribute="action", value="read")]
        ... )
    """

    model_config = ConfigDict(extra="allow")

    dataset: Optional[str] = None
    """URI of the dataset this permission covers."""

    datasetRefinements: List[Refinement] = Field(default_factory=list)
    actionRefinements: List[Refinement] = Field(default_factory=list)
    purposeRefinements: List[Refinement] = Field(default_factory=list)
    constraintRefinements: List[Refinement] = Field(default_factory=list)


class OdrlConstraint(BaseModel):
    """Typed view over one ``odrl:constraint`` or ``odrl:refinement`` node."""

    left_operand: Optional[str] = None
    operator: Optional[str] = None
    right_operand: Any = None

    @classmethod
    def from_jsonld(cls, raw: Any) -> Optional["OdrlConstraint"]:
        if not isinstance(raw, dict):
            return None
        return cls(
            left_operand=node_id(raw.get("odrl:leftOperand")),
            operator=node_id(raw.get("odrl:operator")),
            right_operand=raw.get("odrl:rightOperand"),
        )


class OdrlAssignee(BaseModel):
    """Typed view over an ``odrl:assignee`` node with its optional refinement."""

    source: Optional[str] = None
    refinement: Optional[OdrlConstraint] = None

    @classmethod
    def from_jsonld(cls, raw: Any) -> Optional["OdrlAssignee"]:
        if isinstance(raw, str):
            return cls(source=raw)
        if not isinstance(raw, dict):
            return None
        source = node_id(raw.get("odrl:source")) or node_id(raw)
        refinements = normalize_odrl_list(raw.get("odrl:refinement"))
        refinement = OdrlConstraint.from_jsonld(refinements[0]) if refinements else None
        return cls(source=source, refinement=refinement)


class OdrlPermission(BaseModel):
    """Typed view over one ``odrl:permission`` entry."""

    action: Optional[str] = None
    target: Optional[str] = None
    assignee: Optional[OdrlAssignee] = None
    constraints: List[OdrlConstraint] = Field(default_factory=list)

    @classmethod
    def from_jsonld(cls, raw: Any) -> Optional["OdrlPermission"]:
        if not isinstance(raw, dict):
            return None
        action = raw.get("odrl:action")
        action_id = None
        if isinstance(action, dict):
            action_id = node_id(action.get("rdf:value")) or node_id(action)
        else:
            action_id = node_id(action) or node_id(raw.get("action"))

        target = raw.get("odrl:target")
        target_id = None
        if isinstance(target, dict):
            target_id = node_id(target.get("odrl:source")) or node_id(target)
        else:
            target_id = node_id(target)

        constraints = []
        for item in normalize_odrl_list(raw.get("odrl:constraint")):
            constraint = OdrlConstraint.from_jsonld(item)
            if constraint is not None:
                constraints.append(constraint)

        return cls(
            action=action_id,
            target=target_id,
            assignee=OdrlAssignee.from_jsonld(raw.get("odrl:assignee")),
            constraints=constraints,
        )


class OdrlPolicy(BaseModel):
    """Typed view over a stored ODRL JSON-LD policy."""

    context: Any = None
    permissions: List[OdrlPermission] = Field(default_factory=list)

    @classmethod
    def from_jsonld(cls, raw: Any) -> Optional["OdrlPolicy"]:
        if not isinstance(raw, dict):
            return None
        permissions = []
        for item in normalize_odrl_list(raw.get("odrl:permission")):
            permission = OdrlPermission.from_jsonld(item)
            if permission is not None:
                permissions.append(permission)
        return cls(context=raw.get("@context"), permissions=permissions)


class OdrlPolicySource(BaseModel):
    kind: Literal["odrl"] = "odrl"
    policy: OdrlPolicy


class LegacyPolicySource(BaseModel):
    kind: Literal["legacy"] = "legacy"
    permissions: List[dict] = Field(default_factory=list)


class NoPolicySource(BaseModel):
    kind: Literal["none"] = "none"


PolicySource = Union[OdrlPolicySource, LegacyPolicySource, NoPolicySource]


class ParsedConstraint(BaseModel):
    """Human-readable rendering of an ODRL constraint or refinement."""

    leftOperand: str
    operator: str
    rightOperand: Any = None
    description: str


class ParsedAssignee(BaseModel):
    source: str
    refinements: Optional[List[ParsedConstraint]] = None


class ParsedPermission(BaseModel):
    """
    Normalized permission returned for display, whatever the storage shape.

    Legacy permissions carry their refinement lists unchanged; ODRL
    permissions leave them empty and fill ``constraints`` and
    ``assignees`` instead.
    """

    dataset: str
    action: str
    purpose: str
    datasetRefinements: List[Any] = Field(default_factory=list)
    actionRefinements: List[Any] = Field(default_factory=list)
    purposeRefinements: List[Any] = Field(default_factory=list)
    constraintRefinements: List[Any] = Field(default_factory=list)
    constraints: Optional[List[ParsedConstraint]] = None
    assignees: Optional[List[ParsedAssignee]] = None
