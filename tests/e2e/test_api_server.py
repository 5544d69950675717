from fastapi.testclient import TestClient

import api_server
from api.routes import set_service
from services.engine import GradingService
from services.persistence import FileCheckpointAdapter


def test_health_and_flush_on_shutdown(tmp_checkpoints):
    set_service(GradingService(adapter=FileCheckpointAdapter()))
    try:
        with TestClient(api_server.app) as client:
            assert client.get("/api/health").json() == {"status": "ok"}
            assert client.post("/api/grading-sessions", json={"session_id": "flushed"}).status_code == 201
    finally:
        set_service(None)
    assert (tmp_checkpoints / "flushed.json").exists()


def test_build_service_without_config_uses_heuristics(tmp_path):
    service = api_server.build_service(tmp_path / "missing.json")
    assert service.orchestrator.capabilities.scoring.strategy.name == "engagement"
    assert isinstance(service.sessions.adapter, FileCheckpointAdapter)
