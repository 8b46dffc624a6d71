import pytest

from app.models.policy import LegacyPolicySource, NoPolicySource, OdrlPolicySource
from app.services.policy_parser import (
    describe_right_operand,
    extract_readable_name,
    get_permissions,
    has_odrl_policy,
    resolve_policy_source,
)

ODRL_CONTEXT = {"odrl": "http://www.w3.org/ns/odrl/2/"}


def odrl_request(*permissions):
    return {"policy": {"@context": ODRL_CONTEXT, "odrl:permission": list(permissions)}}


@pytest.mark.parametrize("value, expected", [
    ("Marketing", "Marketing"),
    ("http://ex.org/ns#dataUsage", "Data Usage"),
    ("https://ex.org/datasets/energy_data", "Energy Data"),
    ("odrl:isAnyOf", "Is Any Of"),
    ("odrl:use", "Use"),
    ("data_usage", "Data Usage"),
    ("  spaced   out ", "Spaced Out"),
    (None, "Unknown"),
    ("", "Unknown"),
])
def test_extract_readable_name(value, expected):
    assert extract_readable_name(value) == expected


def test_extract_readable_name_is_idempotent():
    once = extract_readable_name("http://ex.org/ns#dataUsage")
    assert extract_readable_name(once) == once


def test_has_odrl_policy_requires_context_and_permission_array():
    assert has_odrl_policy({}) is False
    assert has_odrl_policy({"policy": None}) is False
    assert has_odrl_policy({"policy": {"odrl:permission": []}}) is False
    assert has_odrl_policy({"policy": {"@context": ODRL_CONTEXT}}) is False
    assert has_odrl_policy({"policy": {"@context": ODRL_CONTEXT, "permission": [], "odrl:prohibition": []}}) is False
    assert has_odrl_policy({"policy": {"@context": ODRL_CONTEXT, "odrl:permission": {"odrl:action": "odrl:use"}}}) is False
    assert has_odrl_policy(odrl_request()) is True


def test_resolve_policy_source_picks_one_shape():
    assert isinstance(resolve_policy_source(odrl_request()), OdrlPolicySource)
    assert isinstance(resolve_policy_source({"permissions": []}), LegacyPolicySource)
    assert isinstance(resolve_policy_source({}), NoPolicySource)


def test_legacy_permissions_keep_refinements_unchanged():
    refinements = [{"attribute": "purpose", "instance": "eq", "value": "research"}]
    request = {
        "permissions": [{
            "dataset": "http://ex.org/dataset/energy",
            "action": "read",
            "purpose": "research",
            "datasetRefinements": refinements,
            "constraintRefinements": [{"name": "region", "value": "EU"}],
        }]
    }

    [parsed] = get_permissions(request)

    assert parsed.dataset == "http://ex.org/dataset/energy"
    assert parsed.action == "read"
    assert parsed.purpose == "research"
    assert parsed.datasetRefinements == refinements
    assert parsed.constraintRefinements == [{"name": "region", "value": "EU"}]
    assert parsed.actionRefinements == []
    assert parsed.purposeRefinements == []


def test_legacy_permission_defaults():
    [parsed] = get_permissions({"permissions": [{}]})

    assert parsed.dataset == "Unknown dataset"
    assert parsed.action == "Unknown action"
    assert parsed.purpose == "Unknown purpose"
    assert parsed.constraints is None


def test_no_policy_yields_empty_list():
    assert get_permissions({"requestName": "x"}) == []


def test_odrl_permission_is_parsed():
    request = odrl_request({
        "odrl:action": {"@id": "odrl:use"},
        "odrl:target": {"@id": "https://ex.org/datasets/energy_data"},
        "odrl:constraint": [{
            "odrl:leftOperand": {"@id": "http://ex.org/ns#purpose"},
            "odrl:operator": {"@id": "odrl:isAnyOf"},
            "odrl:rightOperand": [{"@id": "http://ex.org/ns#research"}, {"@value": "marketing"}],
        }],
        "odrl:assignee": {
            "odrl:source": {"@id": "http://ex.org/party#acmeResearch"},
            "odrl:refinement": [{
                "odrl:leftOperand": {"@id": "odrl:industry"},
                "odrl:operator": {"@id": "odrl:eq"},
                "odrl:rightOperand": "energy",
            }],
        },
    })

    [parsed] = get_permissions(request)

    assert parsed.dataset == "Energy Data"
    assert parsed.action == "Use"
    assert parsed.purpose == "Research, marketing"
    assert parsed.constraints[0].leftOperand == "Purpose"
    assert parsed.constraints[0].operator == "Is Any Of"
    assert parsed.constraints[0].description == "Purpose Is Any Of Research, marketing"
    assert parsed.assignees[0].source == "Acme Research"
    assert parsed.assignees[0].refinements[0].description == "Industry Eq energy"


def test_purpose_falls_back_to_general_use():
    request = odrl_request({
        "odrl:action": {"@id": "odrl:use"},
        "odrl:constraint": [{
            "odrl:leftOperand": {"@id": "odrl:spatial"},
            "odrl:operator": {"@id": "odrl:eq"},
            "odrl:rightOperand": "EU",
        }],
    })

    [parsed] = get_permissions(request)

    assert parsed.purpose == "General use"
    assert parsed.constraints[0].description == "Spatial Eq EU"


def test_malformed_odrl_never_raises():
    request = odrl_request(
        "not-a-permission",
        {"odrl:constraint": "garbage", "odrl:assignee": 42, "odrl:action": []},
        {"odrl:constraint": [None, {"odrl:rightOperand": {"@list": "nope"}}]},
    )

    parsed = get_permissions(request)

    assert len(parsed) == 2
    assert parsed[0].dataset == "Unknown"
    assert parsed[0].action == "Unknown"
    assert parsed[0].purpose == "General use"
    assert parsed[0].constraints == []
    assert parsed[0].assignees == []
    assert parsed[1].constraints[0].leftOperand == "Unknown"


@pytest.mark.parametrize("operand, expected", [
    ("EU", "EU"),
    (5, "5"),
    (True, "true"),
    (None, ""),
    ({"@id": "http://ex.org/ns#scientificResearch"}, "Scientific Research"),
    ({"@value": "2025-01-01"}, "2025-01-01"),
    ({"@list": [{"@value": "EU"}, {"@value": "US"}]}, "EU, US"),
    (["a", {"@id": "odrl:b"}], "a, B"),
])
def test_describe_right_operand(operand, expected):
    assert describe_right_operand(operand) == expected
