from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from app.api import deps
from app.models.items import AiMetadata
from app.services.claim_store import InMemoryClaimStore
from app.services.item_store import InMemoryItemStore
from app.services.match_store import InMemoryMatchStore
from app.services.throttle import TriggerThrottle
from app.services.vector_index import VectorIndex
from conftest import make_claim, make_item
from main import app

JAN_10 = datetime(2024, 1, 10, tzinfo=timezone.utc)


@pytest.fixture
def stores():
    items, claims, matches = InMemoryItemStore(), InMemoryClaimStore(), InMemoryMatchStore()
    ai = dict(primary_class="wallet", detected_objects=["wallet"])
    items.save(make_item("lost", "Wallets", "black leather wallet", id="lost-1", when=JAN_10,
                         ai_metadata=AiMetadata(image_embedding=[1.0, 0.0], **ai)))
    items.save(make_item("found", "Wallets", "black leather wallet", id="found-1",
                         when=JAN_10 + timedelta(hours=2), ai_metadata=AiMetadata(image_embedding=[1.0, 0.1], **ai)))
    return items, claims, matches


@pytest.fixture
def client(stores):
    items, claims, matches = stores
    index = VectorIndex()
    throttle = TriggerThrottle(max_requests=2, window_seconds=60)
    app.dependency_overrides[deps.get_item_store] = lambda: items
    app.dependency_overrides[deps.get_claim_store] = lambda: claims
    app.dependency_overrides[deps.get_match_store] = lambda: matches
    app.dependency_overrides[deps.get_vector_index] = lambda: index
    app.dependency_overrides[deps.get_throttle] = lambda: throttle
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def test_root_lists_routes(client):
    res = client.get("/")
    assert res.status_code == 200
    assert "/matching/run" in res.json()["routes"]
    assert res.headers["X-Request-ID"]


def test_request_id_is_echoed(client):
    res = client.get("/", headers={"X-Request-ID": "abc123"})
    assert res.headers["X-Request-ID"] == "abc123"


def test_match_all_and_decision(client, stores):
    items, _, matches = stores
    res = client.post("/matching/run")
    assert res.status_code == 200
    body = res.json()
    assert body["matched_pairs"] == 1
    assert body["top_matches"][0]["found_item_id"] == "found-1"

    match_id = matches.all()[0].id
    res = client.post(f"/matching/{match_id}/decision", json={"decision": "accepted", "admin_id": "admin"})
    assert res.status_code == 200
    assert res.json()["status"] == "accepted"
    assert items.get("found-1").status.value == "matched"

    res = client.post(f"/matching/{match_id}/decision", json={"decision": "nope", "admin_id": "admin"})
    assert res.status_code == 400
    assert res.json()["detail"] == "invalid_decision"


def test_bulk_trigger_is_throttled(client):
    assert client.post("/matching/run").status_code == 200
    assert client.post("/matching/run").status_code == 200
    res = client.post("/matching/run")
    assert res.status_code == 429
    assert res.json()["detail"] == "rate_limited"


def test_not_found_and_invalid(client):
    res = client.get("/matching/items/missing/best")
    assert res.status_code == 404
    assert res.json()["detail"] == "item_not_found"
    res = client.get("/matching/items/found-1/best")
    assert res.status_code == 400
    assert res.json()["detail"] == "not_lost_item"


def test_item_endpoints(client):
    assert client.get("/matching/items/lost-1/best").json()["found_item_id"] == "found-1"
    similar = client.post("/matching/items/lost-1/similar").json()
    assert similar[0]["matched_item_id"] == "found-1"
    top = client.get("/matching/items/lost-1/top").json()
    assert top[0]["found_item_id"] == "found-1"
    quick = client.get("/matching/quick", params={"category": "Wallets", "description": "leather wallet"}).json()
    assert {q["item_id"] for q in quick} == {"lost-1", "found-1"}
    # lifespan rebuilt the index from the item store
    visual = client.get("/matching/items/lost-1/visual").json()
    assert [v["item_id"] for v in visual] == ["found-1"]
    assert client.post("/matching/index/rebuild").json() == {"indexed": 2}


def test_claim_flow(client, stores):
    _, claims, _ = stores
    claims.save(make_claim("found-1", "owner", ["black leather wallet"], id="c1"))

    res = client.post("/claims/c1/risk")
    assert res.status_code == 200
    assert "suspicion_score" in res.json()

    preview = client.get("/claims/items/found-1/preview").json()
    assert preview["winner_claim_id"] == "c1"

    assert client.post("/claims/items/missing/process").status_code == 404
    assert client.post("/claims/c404/risk").json()["detail"] == "claim_not_found"

    summary = client.post("/claims/process-all").json()
    assert summary["processed"] == 1 and summary["errors"] == 0
    assert client.post("/claims/archive", params={"older_than_days": 0}).status_code == 200


def test_analytics_endpoints(client):
    client.post("/matching/run")
    perf = client.get("/analytics/performance").json()
    assert perf["total_matches"] == 1
    assert client.get("/analytics/accuracy").status_code == 200
    assert client.get("/analytics/fraud").json()["repeat_offenders"] == 0
    assert client.get("/analytics/categories").json()[0]["category"] == "Wallets"
    assert client.get("/analytics/thresholds").json()["current_config"]["auto_approve"] == 85

    res = client.get("/analytics/performance",
                     params={"start": "2024-02-01T00:00:00Z", "end": "2024-01-01T00:00:00Z"})
    assert res.status_code == 400
    assert res.json()["detail"] == "invalid_window"
