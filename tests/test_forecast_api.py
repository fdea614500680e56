"""
Forecast API tests.

Tests cover:
  - Actor header (401 without it)
  - Create / duplicate / item validation errors
  - Submit → review flow with notification log
  - Department scoping for department heads
  - Optimistic concurrency via expected_version
  - Bulk review result shape
  - Request guards and the health check
"""
import pytest

from conftest import Q1_2025, auth, make_item
from manpower.models import db
from manpower.models.forecast import Forecast
from manpower.models.scheduling import NotificationLog

BASE = "/api/v1/forecasts"


def _create(client, user, *, period=None, items=None, **extra):
    body = {"period": period or Q1_2025, "items": items or [make_item()], **extra}
    return client.post(BASE, json=body, headers=auth(user))


@pytest.fixture()
def draft(client, hod):
    res = _create(client, hod)
    assert res.status_code == 201
    return res.get_json()


@pytest.fixture()
def submitted(client, hod, draft):
    res = client.post(f"{BASE}/{draft['id']}/submit", headers=auth(hod))
    assert res.status_code == 200
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════
# ACTOR
# ═════════════════════════════════════════════════════════════════════════

class TestActor:
    def test_missing_header(self, client):
        res = client.get(BASE)
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"

    def test_unknown_or_inactive_user(self, client, hod):
        assert client.get(BASE, headers={"X-User-Id": "9999"}).status_code == 401
        assert client.get(BASE, headers={"X-User-Id": "abc"}).status_code == 401

        hod.is_active = False
        db.session.commit()
        assert client.get(BASE, headers=auth(hod)).status_code == 401

    def test_health_needs_no_actor(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"


# ═════════════════════════════════════════════════════════════════════════
# CREATE / EDIT / DELETE
# ═════════════════════════════════════════════════════════════════════════

class TestCreate:
    def test_create_draft(self, client, hod, draft):
        assert draft["status"] == "draft"
        assert draft["department"]["code"] == "ENG"
        assert draft["submitted_by"]["id"] == hod.id
        assert draft["period"] == {"year": 2025, "quarter": 1}
        assert draft["total_budget"] == 140000
        assert draft["version"] == 1
        assert draft["available_transitions"] == ["submit"]
        assert draft["items"][0]["skills"] == ["Python", "SQL"]

    def test_create_and_submit(self, client, hod):
        res = _create(client, hod, status="submitted")
        assert res.status_code == 201
        data = res.get_json()
        assert data["status"] == "submitted"
        assert data["submitted_at"] is not None
        assert set(data["available_transitions"]) == {"approve", "reject", "mark_reviewed"}

    def test_create_and_submit_missing_rating_saves_nothing(self, client, hod):
        item = make_item()
        del item["market_demand"]

        res = _create(client, hod, items=[item], status="submitted")
        assert res.status_code == 400
        assert res.get_json()["details"] == {"item": 1, "field": "market_demand"}
        assert Forecast.query.count() == 0

        retry = _create(client, hod, status="submitted")
        assert retry.status_code == 201
        assert retry.get_json()["status"] == "submitted"

    def test_duplicate_period(self, client, hod, draft):
        res = _create(client, hod)
        assert res.status_code == 409
        body = res.get_json()
        assert body["kind"] == "duplicate"
        assert body["code"] == "ERR_CONFLICT_DUPLICATE"
        assert body["details"]["existing_id"] == draft["id"]

    def test_other_quarter_is_fine(self, client, hod, draft):
        assert _create(client, hod, period={"year": 2025, "quarter": 2}).status_code == 201

    def test_item_validation_names_item_and_field(self, client, hod):
        res = _create(client, hod, items=[make_item(), make_item(position="  ")])
        assert res.status_code == 400
        body = res.get_json()
        assert body["kind"] == "validation"
        assert body["details"] == {"item": 2, "field": "position"}
        assert "Item #2" in body["error"]

    @pytest.mark.parametrize("period,field", [
        ({"year": 2025, "quarter": 5}, "quarter"),
        ({"year": 1999, "quarter": 1}, "year"),
        ({"year": "soon", "quarter": 1}, "year"),
    ])
    def test_bad_period(self, client, hod, period, field):
        res = _create(client, hod, period=period)
        assert res.status_code == 400
        assert res.get_json()["details"]["field"] == field

    def test_empty_items(self, client, hod):
        res = client.post(BASE, json={"period": Q1_2025, "items": []}, headers=auth(hod))
        assert res.status_code == 400
        assert res.get_json()["details"]["field"] == "items"

    @pytest.mark.parametrize("field,literal", [
        ("forecast_count", "Infinity"),
        ("market_demand", "NaN"),
        ("salary_budget", "NaN"),
        ("historical_attrition_rate", "-Infinity"),
    ])
    def test_non_finite_json_numbers(self, client, hod, field, literal):
        body = ('{"period": {"year": 2025, "quarter": 1}, '
                '"items": [{"position": "Analyst", "%s": %s}]}' % (field, literal))
        res = client.post(BASE, data=body, content_type="application/json", headers=auth(hod))
        assert res.status_code == 400
        assert res.get_json()["details"] == {"item": 1, "field": field}
        assert Forecast.query.count() == 0

    def test_finance_cannot_create(self, client, finance, departments):
        res = _create(client, finance, department_id=departments[0].id)
        assert res.status_code == 403
        assert res.get_json()["kind"] == "permission"

    def test_admin_must_name_department(self, client, admin, departments):
        assert _create(client, admin).status_code == 400
        res = _create(client, admin, department_id=departments[1].id)
        assert res.status_code == 201
        assert res.get_json()["department"]["code"] == "SAL"

    def test_non_json_body_rejected(self, client, hod):
        res = client.post(BASE, data="period=Q1", content_type="text/plain", headers=auth(hod))
        assert res.status_code == 415


class TestEditDelete:
    def test_edit_replaces_items(self, client, hod, draft):
        res = client.put(f"{BASE}/{draft['id']}", headers=auth(hod), json={
            "items": [make_item(position="QA", salary_budget=1000, one_time_cost=0, cost_per_hire=0)],
            "expected_version": draft["version"],
        })
        assert res.status_code == 200
        data = res.get_json()
        assert [i["position"] for i in data["items"]] == ["QA"]
        assert data["total_budget"] == 1000
        assert data["version"] == draft["version"] + 1

    def test_stale_version_conflicts(self, client, hod, draft):
        res = client.put(f"{BASE}/{draft['id']}", headers=auth(hod), json={
            "items": [make_item()], "expected_version": draft["version"] + 5,
        })
        assert res.status_code == 409
        body = res.get_json()
        assert body["kind"] == "conflict"
        assert body["code"] == "ERR_CONFLICT_VERSION"

    def test_cannot_edit_submitted(self, client, hod, submitted):
        res = client.put(f"{BASE}/{submitted['id']}", headers=auth(hod), json={"items": [make_item()]})
        assert res.status_code == 409
        assert res.get_json()["kind"] == "invalid_state"

    def test_other_department_cannot_edit(self, client, hod_b, draft):
        res = client.put(f"{BASE}/{draft['id']}", headers=auth(hod_b), json={"items": [make_item()]})
        assert res.status_code == 403

    def test_delete_draft(self, client, hod, draft):
        res = client.delete(f"{BASE}/{draft['id']}", headers=auth(hod))
        assert res.status_code == 200
        assert res.get_json() == {"message": "Forecast deleted", "id": draft["id"]}
        assert client.get(f"{BASE}/{draft['id']}", headers=auth(hod)).status_code == 404
        # period is free again
        assert _create(client, hod).status_code == 201

    def test_cannot_delete_submitted(self, client, hod, submitted):
        res = client.delete(f"{BASE}/{submitted['id']}", headers=auth(hod))
        assert res.status_code == 409


# ═════════════════════════════════════════════════════════════════════════
# READ
# ═════════════════════════════════════════════════════════════════════════

class TestRead:
    def test_hod_sees_own_department_only(self, client, hod, hod_b, finance, draft):
        other = _create(client, hod_b).get_json()

        mine = client.get(BASE, headers=auth(hod)).get_json()
        assert [f["id"] for f in mine["items"]] == [draft["id"]]
        assert "items" not in mine["items"][0]

        everything = client.get(BASE, headers=auth(finance)).get_json()
        assert everything["total"] == 2

        res = client.get(f"{BASE}/{other['id']}", headers=auth(hod))
        assert res.status_code == 404

    def test_filters_and_pagination(self, client, hod, hod_b, finance, submitted):
        _create(client, hod_b)

        drafts = client.get(f"{BASE}?status=draft", headers=auth(finance)).get_json()
        assert drafts["total"] == 1
        assert drafts["items"][0]["department"]["code"] == "SAL"

        both = client.get(f"{BASE}?status=draft,submitted&year=2025&quarter=1",
                          headers=auth(finance)).get_json()
        assert both["total"] == 2

        page = client.get(f"{BASE}?limit=1&offset=1", headers=auth(finance)).get_json()
        assert page["total"] == 2
        assert len(page["items"]) == 1

    @pytest.mark.parametrize("query", ["status=pending", "quarter=7", "year=next"])
    def test_bad_filter(self, client, finance, query):
        res = client.get(f"{BASE}?{query}", headers=auth(finance))
        assert res.status_code == 400

    def test_unknown_forecast(self, client, finance):
        res = client.get(f"{BASE}/9999", headers=auth(finance))
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_review_queue(self, client, hod, hod_b, finance, submitted):
        _create(client, hod_b)
        queue = client.get(f"{BASE}/review-queue", headers=auth(finance)).get_json()
        assert [f["id"] for f in queue["items"]] == [submitted["id"]]
        assert client.get(f"{BASE}/review-queue", headers=auth(hod)).status_code == 403


# ═════════════════════════════════════════════════════════════════════════
# REVIEW WORKFLOW
# ═════════════════════════════════════════════════════════════════════════

class TestReview:
    def test_approve_notifies_submitter(self, client, finance, submitted):
        res = client.post(f"{BASE}/{submitted['id']}/review", headers=auth(finance), json={
            "decision": "approved", "comments": "Looks good",
            "expected_version": submitted["version"],
        })
        assert res.status_code == 200
        data = res.get_json()
        assert data["status"] == "approved"
        assert data["reviewed_by"]["id"] == finance.id
        assert data["review_comments"] == "Looks good"
        assert data["available_transitions"] == []

        (log,) = NotificationLog.query.all()
        assert log.kind == "approval"
        assert log.recipient_email == "alice@example.com"
        assert log.subject == "Forecast Approved - Q1 2025"
        assert log.forecast_id == submitted["id"]

    def test_hod_cannot_review(self, client, hod, submitted):
        res = client.post(f"{BASE}/{submitted['id']}/review", headers=auth(hod),
                          json={"decision": "approved"})
        assert res.status_code == 403

    def test_bad_decision(self, client, finance, submitted):
        res = client.post(f"{BASE}/{submitted['id']}/review", headers=auth(finance),
                          json={"decision": "maybe"})
        assert res.status_code == 400
        assert res.get_json()["details"]["field"] == "decision"

    def test_draft_cannot_be_reviewed(self, client, finance, draft):
        res = client.post(f"{BASE}/{draft['id']}/review", headers=auth(finance),
                          json={"decision": "rejected"})
        assert res.status_code == 409
        assert res.get_json()["details"] == {"action": "reject", "status": "draft"}

    def test_second_review_loses(self, client, finance, admin, submitted):
        first = client.post(f"{BASE}/{submitted['id']}/review", headers=auth(finance),
                            json={"decision": "approved", "expected_version": submitted["version"]})
        assert first.status_code == 200
        second = client.post(f"{BASE}/{submitted['id']}/review", headers=auth(admin),
                             json={"decision": "rejected", "expected_version": submitted["version"]})
        assert second.status_code == 409

    def test_mark_reviewed_with_priority(self, client, finance, submitted):
        res = client.post(f"{BASE}/{submitted['id']}/mark-reviewed", headers=auth(finance),
                          json={"review_priority": "high"})
        assert res.status_code == 200
        assert res.get_json()["status"] == "reviewed"
        assert res.get_json()["review_priority"] == "high"
        assert NotificationLog.query.count() == 0

        res = client.put(f"{BASE}/{submitted['id']}/priority", headers=auth(finance),
                         json={"review_priority": "low"})
        assert res.get_json()["review_priority"] == "low"

    def test_bad_priority(self, client, finance, submitted):
        res = client.put(f"{BASE}/{submitted['id']}/priority", headers=auth(finance),
                         json={"review_priority": "critical"})
        assert res.status_code == 400

    def test_comments(self, client, hod, finance, submitted):
        res = client.post(f"{BASE}/{submitted['id']}/comments", headers=auth(finance),
                          json={"message": "  Please justify the QA hires  "})
        assert res.status_code == 201
        assert res.get_json()["message"] == "Please justify the QA hires"

        detail = client.get(f"{BASE}/{submitted['id']}", headers=auth(hod)).get_json()
        assert [c["message"] for c in detail["comments"]] == ["Please justify the QA hires"]
        assert detail["version"] == submitted["version"]

        assert client.post(f"{BASE}/{submitted['id']}/comments", headers=auth(finance),
                           json={"message": ""}).status_code == 400


class TestBulkReview:
    def test_mixed_batch(self, client, hod, hod_b, finance, submitted):
        pending = _create(client, hod_b).get_json()

        res = client.post(f"{BASE}/bulk-review", headers=auth(finance), json={
            "forecast_ids": [submitted["id"], pending["id"], 9999, submitted["id"]],
            "decision": "rejected",
            "comments": "Over budget",
        })
        assert res.status_code == 200
        result = res.get_json()
        assert result["updated"] == [submitted["id"]]
        assert result["skipped"] == [{
            "forecast_id": pending["id"], "status": "draft", "reason": "Cannot reject draft forecast",
        }]
        assert result["not_found"] == [9999]

        detail = client.get(f"{BASE}/{submitted['id']}", headers=auth(finance)).get_json()
        assert detail["status"] == "rejected"
        assert detail["review_comments"] == "Over budget"
        assert NotificationLog.query.filter_by(kind="rejection").count() == 1

    def test_requires_ids(self, client, finance):
        res = client.post(f"{BASE}/bulk-review", headers=auth(finance),
                          json={"forecast_ids": [], "decision": "approved"})
        assert res.status_code == 400

    def test_hod_forbidden(self, client, hod, submitted):
        res = client.post(f"{BASE}/bulk-review", headers=auth(hod),
                          json={"forecast_ids": [submitted["id"]], "decision": "approved"})
        assert res.status_code == 403
