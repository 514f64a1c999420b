import pytest
from fastapi.testclient import TestClient

from config import Settings
from database import MemoryBackend, RecordStore, StorageError
from main import AppContext, create_app
from seed import seed_store


class FlakyBackend(MemoryBackend):
    """Memory backend whose writes to ``failing_key`` either lose the race or blow up."""

    def __init__(self) -> None:
        super().__init__()
        self.failing_key = None
        self.failure = "conflict"

    def write(self, key, text, expected_version):
        if key == self.failing_key:
            if self.failure == "error":
                raise StorageError("disk on fire")
            return False
        return super().write(key, text, expected_version)


@pytest.fixture
def store():
    return RecordStore(MemoryBackend())


@pytest.fixture
def seeded_store(store):
    seed_store(store)
    return store


@pytest.fixture
def ctx(seeded_store):
    return AppContext(seeded_store)


@pytest.fixture
def empty_ctx(store):
    return AppContext(store)


@pytest.fixture
def client(store):
    app = create_app(Settings(storage_backend="memory", seed=True), store=store)
    return TestClient(app)


@pytest.fixture
def flaky_backend():
    backend = FlakyBackend()
    seed_store(RecordStore(backend))
    return backend


@pytest.fixture
def flaky_client(flaky_backend):
    app = create_app(Settings(storage_backend="memory", seed=False), store=RecordStore(flaky_backend))
    return TestClient(app)
