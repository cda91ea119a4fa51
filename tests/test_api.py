"""HTTP surface: header authentication, error codes, and one full rental flow."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from rentmatch.services.api_gateway.main import create_app
from tests.conftest import add_profile


def headers(user_id: str, *capabilities: str, api_key: str = "test-key") -> dict:
    values = {"X-Api-Key": api_key, "X-Caller-Id": user_id}
    if capabilities:
        values["X-Caller-Capabilities"] = ",".join(capabilities)
    return values


CLIENT = headers("client-1")
OWNER = headers("biz-1")
OPERATOR = headers("ops-1", "operator")
PROVIDER = headers("payments-gateway", "payment_provider")


@pytest.fixture
def client(marketplace, settings, repository):
    with TestClient(create_app(settings, repository)) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_metrics_endpoint_exposes_prometheus_text(client):
    client.get("/health")
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "http_requests_total" in response.text


def test_wrong_api_key_is_unauthorized(client):
    response = client.get("/matches", params={"type": "client", "subject_id": "client-1"}, headers=headers("client-1", api_key="nope"))
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "unauthorized"


def test_missing_caller_id_is_unauthorized(client):
    response = client.get("/earnings", headers={"X-Api-Key": "test-key"})
    assert response.status_code == 401


def test_matches_for_client(client):
    response = client.get("/matches", params={"type": "client", "subject_id": "client-1"}, headers=CLIENT)

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 2
    assert [m["profile"]["id"] for m in body["matches"]] == ["biz-1", "biz-2"]
    assert body["matches"][0]["score"] == 1.0


def test_matches_bad_type_and_unknown_subject(client):
    bad = client.get("/matches", params={"type": "admin", "subject_id": "client-1"}, headers=CLIENT)
    assert bad.status_code == 400
    assert bad.json()["error"]["code"] == "bad_request"

    missing = client.get("/matches", params={"type": "client", "subject_id": "nobody"}, headers=CLIENT)
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "not_found"


def test_create_request_body_validation(client):
    response = client.post("/requests", json={"message": "hi"}, headers=CLIENT)
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "validation_error"

    empty = client.post("/requests", json={"item_id": "item-1", "message": " "}, headers=CLIENT)
    assert empty.status_code == 422


def test_unavailable_item_is_conflict(client):
    response = client.post("/requests", json={"item_id": "item-2", "message": "hi"}, headers=CLIENT)
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "invalid_transition"


def test_full_rental_flow(client):
    created = client.post("/requests", json={"item_id": "item-1", "message": "Free this weekend?"}, headers=CLIENT)
    assert created.status_code == 201
    request_id = created.json()["id"]

    forbidden = client.post(f"/requests/{request_id}/transitions", json={"action": "accept"}, headers=CLIENT)
    assert forbidden.status_code == 403
    assert forbidden.json()["error"]["code"] == "forbidden"

    accepted = client.post(f"/requests/{request_id}/transitions", json={"action": "accept"}, headers=OWNER)
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "accepted"

    illegal = client.post(f"/requests/{request_id}/transitions", json={"action": "decline"}, headers=OWNER)
    assert illegal.status_code == 409
    assert illegal.json()["error"]["code"] == "invalid_transition"

    reply = client.post(f"/requests/{request_id}/messages", json={"content": "See you Saturday"}, headers=OWNER)
    assert reply.status_code == 201
    thread = client.get(f"/requests/{request_id}/messages", headers=CLIENT).json()
    assert [m["content"] for m in thread] == ["Free this weekend?", "See you Saturday"]

    notice = {"request_id": request_id, "amount_cents": 20_000, "provider_transaction_id": "tx-http-1"}
    not_provider = client.post("/internal/payments/completed", json=notice, headers=CLIENT)
    assert not_provider.status_code == 403
    paid = client.post("/internal/payments/completed", json=notice, headers=PROVIDER)
    assert paid.status_code == 200
    assert paid.json()["status"] == "paid"
    duplicate = client.post("/internal/payments/completed", json=notice, headers=PROVIDER)
    assert duplicate.status_code == 200

    order = client.get(f"/orders/{request_id}", headers=CLIENT).json()
    assert order["status"] == "paid"
    assert order["payment"]["commission_cents"] == 1_600
    assert order["payment"]["merchant_amount_cents"] == 18_400
    assert client.get(f"/orders/{request_id}", headers=headers("someone-else")).status_code == 403

    pending = client.get("/payouts/pending", headers=OWNER).json()
    assert pending["summary"]["count"] == 1

    assert client.post("/payouts/settle", headers=OWNER).status_code == 403
    settled = client.post("/payouts/settle", headers=OPERATOR)
    assert settled.status_code == 200
    assert settled.json()["settled_count"] == 1
    assert client.post("/payouts/settle", headers=OPERATOR).json()["settled_count"] == 0

    earnings = client.get("/earnings", headers=OWNER).json()
    assert earnings["has_data"] is True
    assert earnings["paid_out_cents"] == 18_400
    assert client.get(f"/orders/{request_id}", headers=OWNER).json()["status"] == "completed"


def test_earnings_without_payments(client):
    body = client.get("/earnings", headers=headers("biz-2")).json()
    assert body["has_data"] is False
    assert body["business_id"] == "biz-2"


def test_storage_outage_renders_503_without_details(client, session_factory):
    def drop_connection(session):
        raise OperationalError("COMMIT", {}, Exception("could not connect to server at 10.0.0.7"))

    event.listen(session_factory, "before_commit", drop_connection)
    try:
        response = client.post("/requests", json={"item_id": "item-1", "message": "hi"}, headers=CLIENT)
    finally:
        event.remove(session_factory, "before_commit", drop_connection)

    assert response.status_code == 503
    assert response.json() == {"error": {"code": "internal_error", "message": "storage unavailable"}}
    assert "10.0.0.7" not in response.text


def test_matches_list_categories_in_stable_order(client, session_factory):
    add_profile(session_factory, "biz-3", "business", categories=["tools", "electronics", "audio"], location="Cape Town")

    body = client.get("/matches", params={"type": "client", "subject_id": "client-1"}, headers=CLIENT).json()

    profile = next(m["profile"] for m in body["matches"] if m["profile"]["id"] == "biz-3")
    assert profile["categories"] == ["audio", "electronics", "tools"]
