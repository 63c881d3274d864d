import math
import random

import pytest
from pydantic import ValidationError
from sqlalchemy import select

from crm.db.models import AudienceSegment
from crm.errors import SegmentValidationError
from crm.schemas.segments import SegmentCreateRequest, SegmentRule
from crm.services.segments import MAX_AUDIENCE_SIZE, MIN_AUDIENCE_SIZE, estimate_audience


@pytest.mark.parametrize("seed", range(10))
def test_estimate_stays_in_range(seed):
    estimate = estimate_audience([{"field": "age"}], rng=random.Random(seed))

    assert MIN_AUDIENCE_SIZE <= estimate.audience_size < MAX_AUDIENCE_SIZE
    assert estimate.estimated_reach == math.floor(estimate.audience_size * 0.85)


def test_estimate_requires_rules():
    with pytest.raises(SegmentValidationError):
        estimate_audience([])


def test_rule_rejects_unknown_field_and_operator():
    with pytest.raises(ValidationError):
        SegmentRule(field="favoriteColor", operator=">", value="1")
    with pytest.raises(ValidationError):
        SegmentRule(field="age", operator="~=", value="1")


def test_rule_accepts_numeric_values():
    rule = SegmentRule.model_validate({"field": "age", "operator": ">=", "value": 30})

    assert rule.value == "30"


def test_first_rule_logic_is_normalised(segment_payload):
    request = SegmentCreateRequest.model_validate(segment_payload)

    assert request.rules[0].logic is None
    assert request.rules[1].logic.value == "AND"


def test_empty_rules_fail_validation(segment_payload):
    segment_payload["rules"] = []

    with pytest.raises(ValidationError):
        SegmentCreateRequest.model_validate(segment_payload)


def test_create_segment_persists_size(api_client, user_headers, segment_payload):
    response = api_client.post("/api/audience", json=segment_payload, headers=user_headers)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Audience segment created successfully"
    segment = body["data"]["segment"]
    assert 100 <= segment["audienceSize"] < 5100
    assert segment["estimatedReach"] == math.floor(segment["audienceSize"] * 0.85)
    assert segment["rules"][0]["logic"] is None
    assert segment["usageCount"] == 0


def test_create_segment_with_empty_rules_is_rejected(api_client, user_headers, segment_payload):
    segment_payload["rules"] = []

    response = api_client.post("/api/audience", json=segment_payload, headers=user_headers)

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "At least one rule is required"}


def test_create_segment_with_bad_operator_is_rejected(api_client, user_headers, segment_payload):
    segment_payload["rules"][0]["operator"] = "between"

    response = api_client.post("/api/audience", json=segment_payload, headers=user_headers)

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_list_segments_only_returns_owned_active(api_client, user_headers, other_headers, segment, segment_payload):
    api_client.post("/api/audience", json=segment_payload, headers=other_headers)

    response = api_client.get("/api/audience", headers=user_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 1
    assert [s["id"] for s in body["data"]["segments"]] == [segment["id"]]


def test_segment_of_another_user_is_not_found(api_client, other_headers, segment):
    response = api_client.get(f"/api/audience/{segment['id']}", headers=other_headers)

    assert response.status_code == 404
    assert response.json()["message"] == "Audience segment not found"


def test_soft_delete_hides_segment_but_keeps_row(api_client, user_headers, segment, db_session):
    response = api_client.delete(f"/api/audience/{segment['id']}", headers=user_headers)
    assert response.status_code == 200

    listing = api_client.get("/api/audience", headers=user_headers).json()
    assert listing["count"] == 0

    db_session.expire_all()
    row = db_session.scalars(select(AudienceSegment).where(AudienceSegment.id == segment["id"])).one()
    assert row.is_active is False


def test_update_segment_recomputes_size(api_client, user_headers, segment):
    response = api_client.put(
        f"/api/audience/{segment['id']}",
        json={"name": "VIP Customers v2", "rules": [{"field": "location", "operator": "contains", "value": "Berlin"}]},
        headers=user_headers,
    )

    assert response.status_code == 200
    updated = response.json()["data"]["segment"]
    assert updated["name"] == "VIP Customers v2"
    assert updated["rules"] == [{"field": "location", "operator": "contains", "value": "Berlin", "logic": None}]
    assert updated["estimatedReach"] == math.floor(updated["audienceSize"] * 0.85)


def test_preview_saved_segment_persists_new_size(api_client, user_headers, segment, db_session):
    response = api_client.post(f"/api/audience/{segment['id']}/preview", headers=user_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    db_session.expire_all()
    row = db_session.get(AudienceSegment, segment["id"])
    assert row.audience_size == data["audienceSize"]
    assert row.estimated_reach == data["estimatedReach"]


def test_preview_unsaved_rules_does_not_persist(api_client, user_headers, segment_payload, db_session):
    response = api_client.post("/api/audience/preview", json={"rules": segment_payload["rules"]}, headers=user_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["estimatedReach"] == math.floor(data["audienceSize"] * 0.85)
    assert db_session.scalars(select(AudienceSegment)).all() == []


def test_popular_segments_ordered_by_usage(api_client, user_headers, segment, segment_payload, make_campaign_payload):
    segment_payload["name"] = "Dormant"
    dormant = api_client.post("/api/audience", json=segment_payload, headers=user_headers).json()["data"]["segment"]
    api_client.post("/api/campaigns", json=make_campaign_payload(segment["id"]), headers=user_headers)

    response = api_client.get("/api/audience/popular", headers=user_headers)

    assert response.status_code == 200
    ids = [s["id"] for s in response.json()["data"]["segments"]]
    assert ids == [segment["id"], dormant["id"]]


def test_segments_require_authentication(api_client, db_session):
    response = api_client.get("/api/audience")

    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "No token, authorization denied"}
