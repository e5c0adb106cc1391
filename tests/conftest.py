"""
BandLy - Test Configuration and Fixtures
"""
import os
from typing import Callable, List

import httpx
import pytest
from faker import Faker

# Keep a developer's .env and shell settings out of the tests
for var in ("BANDLY_API_URL", "BANDLY_TIMEOUT", "BANDLY_LOG_LEVEL", "BANDLY_LOG_FILE",
            "BANDLY_JSON_LOGS", "BANDLY_VERBOSE", "BANDLY_CONFIG_DIR"):
    os.environ.pop(var, None)

from bandly.api_client import BandlyAPIClient
from bandly.config import BandlyConfig
from bandly.session import SessionContext
from bandly.storage import MemoryStore

fake = Faker()

TEST_API_URL = "http://bandly.test"


def essay_text(words: int) -> str:
    """An essay with exactly `words` whitespace separated words"""
    return " ".join(fake.word() for _ in range(words))


class FakeClock:
    """Epoch-ms clock that only moves when told to"""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class RecordingTransport(httpx.MockTransport):
    """MockTransport that remembers every request it served"""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: List[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(record)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def store() -> MemoryStore:
    """Fresh in-memory store"""
    return MemoryStore()


@pytest.fixture
def session(store: MemoryStore) -> SessionContext:
    return SessionContext(store)


@pytest.fixture
def config(tmp_path) -> BandlyConfig:
    """Config pointed at a fake API and a throwaway config dir"""
    return BandlyConfig(api_base_url=TEST_API_URL, config_dir=str(tmp_path / "bandly"))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_client(config: BandlyConfig, session: SessionContext):
    """
    Build an API client whose requests are answered by `handler`.

    Returns (client, transport); transport.requests holds what was sent.
    """
    def _make(handler: Callable[[httpx.Request], httpx.Response]):
        transport = RecordingTransport(handler)
        return BandlyAPIClient(config, session, transport=transport), transport

    return _make


@pytest.fixture
def test_user_data() -> dict:
    """User record as returned by the API"""
    return {
        "id": fake.random_int(min=1, max=9999),
        "email": fake.email(),
        "plan": "free",
        "role": "user",
        "createdAt": "2024-03-01T10:00:00Z",
    }


@pytest.fixture
def make_essay() -> Callable[[int], str]:
    return essay_text
