import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.routes import router, set_service
from services.engine import GradingService
from services.persistence import InMemoryPersistenceAdapter


app = FastAPI()
app.include_router(router)
client = TestClient(app)

BASE = "/api/grading-sessions"


@pytest.fixture(autouse=True)
def fresh_service():
    service = GradingService(adapter=InMemoryPersistenceAdapter())
    set_service(service)
    yield service
    set_service(None)


def _turn(response, **metadata):
    return {"prompt": "Walk me through your frontend work", "response": response, "metadata": metadata}


def test_interview_flow_over_http():
    created = client.post(BASE, json={"session_id": "http_1", "metadata": {"role": "frontend"}})
    assert created.status_code == 201
    assert created.json()["session_id"] == "http_1"

    first = client.post(
        f"{BASE}/http_1/turns",
        json=_turn(
            "I have spent five years building frontend dashboards for a logistics company.",
            engagement_level="high",
            new_topics=["React", "Testing"],
        ),
    )
    assert first.status_code == 200
    body = first.json()
    assert body["topic"] == "frontend"
    assert body["action"] == "fan_out"
    assert body["is_new_branch"] is True
    assert len(body["created_node_ids"]) == 3

    second = client.post(
        f"{BASE}/http_1/turns",
        json=_turn("I don't know React that well", engagement_level="low", exhaustion_signals=["dont_know"]),
    ).json()
    assert second["action"] == "backtrack"
    assert second["topic"] == "React"

    tree = client.get(f"{BASE}/http_1/tree").json()
    assert len(tree["nodes"]) == 3
    assert tree["exhausted_topics"] == ["React"]

    deepest = client.get(f"{BASE}/http_1/deepest-unvisited").json()
    assert deepest["label"] == "Testing"
    visited = client.post(f"{BASE}/http_1/nodes/{deepest['id']}/visit").json()
    assert visited["metadata"]["visit_count"] == 1
    assert client.get(f"{BASE}/http_1/deepest-unvisited").json() is None

    summary = client.get(f"{BASE}/http_1/summary").json()
    assert summary["turn_count"] == 2
    assert summary["exhausted_topics"] == ["React"]
    assert "<- CURRENT" in summary["rendered_tree_text"]

    pdf = client.get(f"{BASE}/http_1/summary.pdf")
    assert pdf.status_code == 200
    assert pdf.headers["content-type"] == "application/pdf"
    assert pdf.content.startswith(b"%PDF")

    deleted = client.delete(f"{BASE}/http_1")
    assert deleted.json() == {"session_id": "http_1", "deleted": True}
    assert client.get(f"{BASE}/http_1/tree").status_code == 404


def test_error_mapping():
    assert client.post(BASE, json={"session_id": "dup"}).status_code == 201
    assert client.post(BASE, json={"session_id": "dup"}).status_code == 409
    assert client.post(BASE, json={"session_id": "bad id"}).status_code == 422

    assert client.post(f"{BASE}/ghost/turns", json=_turn("hello there")).status_code == 404
    rejected = client.post(f"{BASE}/dup/turns", json=_turn("<script>alert(1)</script>"))
    assert rejected.status_code == 422
    assert "content guard" in rejected.json()["detail"]
    assert client.post(f"{BASE}/dup/turns", json={"prompt": "q"}).status_code == 422

    assert client.post(f"{BASE}/dup/nodes/missing_node/visit").status_code == 422
    assert client.delete(f"{BASE}/ghost").status_code == 404


def test_generated_session_ids():
    created = client.post(BASE, json={}).json()
    assert created["session_id"].startswith("session_")
    assert client.get(f"{BASE}/{created['session_id']}/summary").json()["total_nodes"] == 0
