"""
Pytest configuration and shared fixtures for Antnet tests.
"""

import json
import sys
from pathlib import Path
from urllib.parse import urlparse

import httpx
import numpy as np
import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


class FakeClock:
    """Manually advanced clock, seconds since epoch"""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


# Canned bodies per food endpoint
POST_BODY = {"userId": 1, "id": 3, "title": "ea molestias quasi", "body": "et iusto sed quo"}
TODO_BODY = {"userId": 1, "id": 7, "title": "illo expedita", "completed": False}
POKEMON_BODY = {
    "name": "pikachu",
    "abilities": [{"ability": {"name": "static"}}],
    "stats": {"hp": 35},
}
COUNTRIES_BODY = [
    {"name": {"common": "France", "official": "French Republic"}, "capital": ["Paris"]},
    {"name": {"common": "Peru", "official": "Republic of Peru"}, "capital": ["Lima"]},
]


def default_handler(request: httpx.Request) -> httpx.Response:
    """Healthy internet: every food endpoint answers, dangers behave as named"""
    url = urlparse(str(request.url))
    if url.netloc == "jsonplaceholder.typicode.com":
        body = POST_BODY if "/posts/" in url.path else TODO_BODY
        return httpx.Response(200, json=body)
    if url.netloc == "pokeapi.co":
        return httpx.Response(200, json=POKEMON_BODY)
    if url.netloc == "restcountries.com":
        return httpx.Response(200, json=COUNTRIES_BODY)
    if url.netloc == "httpstat.us":
        status = int(url.path.strip("/"))
        return httpx.Response(status, text=f"{status}")
    return httpx.Response(404, text="not found")


def status_handler(status: int, body=None):
    """Every request answers with the same status"""
    def handler(request: httpx.Request) -> httpx.Response:
        if body is None:
            return httpx.Response(status, text=str(status))
        return httpx.Response(status, content=json.dumps(body).encode(),
                              headers={"content-type": "application/json"})
    return handler


def make_client(handler=None) -> httpx.AsyncClient:
    """AsyncClient over an in-process mock transport"""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler or default_handler))


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests"""
    return np.random.default_rng(42)


@pytest.fixture
def clock():
    """Deterministic clock"""
    return FakeClock()


@pytest.fixture
def memory_store():
    from antnet.storage import MemoryStore
    return MemoryStore()


@pytest.fixture
def small_config():
    """Small colony: 5 ants, cap 3, no tick sleep, no stray dangers"""
    from antnet.config import create_small_test_config
    config = create_small_test_config()
    config.seed = 42
    return config


@pytest.fixture
def pheromone_config():
    """Default pheromone configuration"""
    from antnet.config import PheromoneConfig
    return PheromoneConfig()


@pytest.fixture
def agent_config():
    """Default agent configuration"""
    from antnet.config import AgentConfig
    return AgentConfig()


@pytest.fixture
def registry(pheromone_config, clock):
    """Pheromone registry on the fake clock"""
    from antnet.pheromone import PheromoneRegistry
    return PheromoneRegistry(pheromone_config, clock=clock)


@pytest.fixture
def topology(small_config):
    """Default endpoint catalog"""
    from antnet.topology import NetworkTopology
    return NetworkTopology(small_config.endpoints, small_config.forage)


@pytest.fixture
def make_view(registry, topology, clock):
    """Factory for a read-only colony view"""
    from antnet.colony import ColonyStats, ColonyView

    def _make(**overrides):
        fields = dict(
            tick_count=1,
            now=clock(),
            registry=registry,
            topology=topology,
            stats=ColonyStats(),
            population=5,
            food_stored=0,
            recent_activity=(),
        )
        fields.update(overrides)
        return ColonyView(**fields)

    return _make


@pytest.fixture
def client_factory():
    """Build mock-transport clients inside a running event loop"""
    return make_client


@pytest.fixture
def respond_with():
    """Handler factory: every request answers with one status (and optional JSON body)"""
    return status_handler
