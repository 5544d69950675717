import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config.registry import RESPONSE_ANALYSIS_KEY, TOPIC_EXTRACTION_KEY, TURN_SCORING_KEY, unbind_model
from config.settings import settings
from topic_tree.manager import TreeManager
from topic_tree.models import Turn


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(autouse=True)
def reset_registry():
    yield
    for key in (TOPIC_EXTRACTION_KEY, RESPONSE_ANALYSIS_KEY, TURN_SCORING_KEY):
        unbind_model(key)


@pytest.fixture(autouse=True)
def tmp_checkpoints(tmp_path, monkeypatch):
    directory = tmp_path / "checkpoints"
    monkeypatch.setattr(settings, "CHECKPOINT_DIR", str(directory))
    return directory


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def manager():
    return TreeManager("session_test")


def make_turn(response: str = "I built the service and owned its rollout.", prompt: str = "Tell me about it", **metadata):
    return Turn(prompt=prompt, response=response, metadata=metadata)


@pytest.fixture
def turn_factory():
    return make_turn
