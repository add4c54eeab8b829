from __future__ import annotations

import pytest

from app import create_app
from kv_store import InMemoryKeyValueStore
from scene_store import SceneStore


class SteppingClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000, step: int = 0) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> int:
        current = self.now
        self.now += self.step
        return current

    def advance(self, ms: int = 1) -> None:
        self.now += ms


@pytest.fixture
def kv() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def clock() -> SteppingClock:
    return SteppingClock()


@pytest.fixture
def scene_store(kv: InMemoryKeyValueStore, clock: SteppingClock) -> SceneStore:
    return SceneStore(kv, clock=clock)


@pytest.fixture
def client(kv: InMemoryKeyValueStore):
    app = create_app(store=kv)
    app.config.update(TESTING=True)
    return app.test_client()
