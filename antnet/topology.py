"""
Antnet Network Topology
========================
The habitat: a fixed catalog of endpoints instead of grid cells.

    Habitat  = the endpoint catalog
    Movement = one HTTP request
    Distance = round-trip latency
    Food     = the decoded response body

Food quality follows structural complexity:
    Sugar   (flat JSON)   - quick energy
    Protein (nested JSON) - complex nutrients

Ecological dangers:
    HTTP 429          - predator
    HTTP 5xx          - storm
    timeout/transport - timeout
    other non-2xx     - camouflage
    2xx from danger   - swamp (wasted trip)
"""

import json
import time
import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional
from dataclasses import dataclass

import httpx
import numpy as np

from .config import (
    DangerKind, EndpointConfig, EndpointKind, FoodClass, ForageConfig
)

logger = logging.getLogger("antnet.topology")

# Nested objects below this depth no longer add to the score
MAX_NESTING_DEPTH = 3


@dataclass(frozen=True)
class EndpointDescriptor:
    """Immutable catalog entry"""
    url: str
    name: str
    kind: EndpointKind
    food_class: Optional[FoodClass] = None
    nutrition_multiplier: float = 1.0
    damage: float = 0.0
    danger_kind: Optional[DangerKind] = None
    fallback_path: Optional[str] = None

    @property
    def is_food(self) -> bool:
        return self.kind == EndpointKind.FOOD

    @property
    def is_collection(self) -> bool:
        """Collection URLs take a random sub-resource suffix"""
        return self.url.endswith("/")

    @classmethod
    def from_config(cls, entry: EndpointConfig) -> "EndpointDescriptor":
        return cls(
            url=entry.url,
            name=entry.name,
            kind=entry.kind,
            food_class=entry.food_class,
            nutrition_multiplier=entry.nutrition_multiplier,
            damage=entry.damage,
            danger_kind=entry.danger_kind,
            fallback_path=entry.fallback_path,
        )


@dataclass
class ForageOutcome:
    """
    Result of one network operation. Ephemeral, consumed by the colony.

    `url` is always the descriptor's identity; `requested_url` records the
    concrete URL that was fetched.
    """
    url: str
    success: bool
    status: int
    latency_ms: float

    # Success
    nutrition: float = 0.0
    title: str = ""
    payload: str = ""
    food_class: Optional[FoodClass] = None

    # Failure
    danger: Optional[DangerKind] = None
    message: str = ""

    requested_url: str = ""


# =============================================================================
# PAYLOAD CLASSIFICATION
# =============================================================================

def structural_complexity(obj: Any, depth: int = 0) -> float:
    """
    Score an object by its structural complexity.

    Top-level fields count 1 each; nested containers add half of their
    own score, down to MAX_NESTING_DEPTH. Scalars score 1.
    """
    if isinstance(obj, dict):
        values = list(obj.values())
    elif isinstance(obj, list):
        values = obj
    else:
        return 1.0

    score = float(len(values))
    for value in values:
        if isinstance(value, (dict, list)) and depth < MAX_NESTING_DEPTH:
            score += structural_complexity(value, depth + 1) * 0.5
    return score


def classify_payload(body: Any, descriptor: EndpointDescriptor) -> float:
    """
    Nutrition score of a decoded body.

    Arrays are judged by their first element.
    """
    if isinstance(body, list):
        sample = body[0] if body else {}
        return structural_complexity(sample) * descriptor.nutrition_multiplier
    return structural_complexity(body) * descriptor.nutrition_multiplier


def extract_title(body: Any, limit: int = 80) -> str:
    """Human-readable label of a food item"""
    item = body[0] if isinstance(body, list) and body else body
    title = None
    if isinstance(item, dict):
        for key in ("title", "name", "id"):
            value = item.get(key)
            if isinstance(value, dict):
                # REST Countries style {"name": {"common": ...}}
                value = value.get("common")
            if value not in (None, ""):
                title = value
                break
    if title is None:
        title = json.dumps(item)[:60]
    return str(title)[:limit]


def classify_status(status: int, descriptor: EndpointDescriptor) -> Optional[DangerKind]:
    """
    Fixed status-to-danger mapping.

    Returns None only for a 2xx on a food endpoint.
    """
    if status == 429:
        return DangerKind.PREDATOR
    if status >= 500:
        return DangerKind.STORM
    if not 200 <= status < 300:
        return DangerKind.CAMOUFLAGE
    if not descriptor.is_food:
        return DangerKind.SWAMP
    return None


# =============================================================================
# TOPOLOGY
# =============================================================================

class NetworkTopology:
    """
    Static endpoint catalog plus the forage operation.

    The topology holds no colony state; the only thing it remembers is
    whether the network looked restricted at probe time and a cache of
    local fallback snapshots.
    """

    def __init__(self, endpoints: List[EndpointConfig], config: ForageConfig):
        self.config = config
        self.nodes: List[EndpointDescriptor] = [
            EndpointDescriptor.from_config(e) for e in endpoints
        ]
        self.restricted = False
        self._fallback_cache: Dict[str, Any] = {}

    def food_endpoints(self) -> List[EndpointDescriptor]:
        """All food nodes, in catalog order"""
        return [n for n in self.nodes if n.kind == EndpointKind.FOOD]

    def danger_endpoints(self) -> List[EndpointDescriptor]:
        """All danger nodes, in catalog order"""
        return [n for n in self.nodes if n.kind == EndpointKind.DANGER]

    def get_endpoint(self, url: str) -> Optional[EndpointDescriptor]:
        """Find a node by exact identity, then by URL prefix"""
        for node in self.nodes:
            if node.url == url:
                return node
        for node in self.nodes:
            if url.startswith(node.url):
                return node
        return None

    def food_urls(self) -> List[str]:
        return [n.url for n in self.food_endpoints()]

    def build_request_url(self, descriptor: EndpointDescriptor,
                          rng: np.random.Generator) -> str:
        """Concrete URL for one visit, with a random sub-resource on collections"""
        if descriptor.is_collection:
            resource_id = int(rng.integers(1, self.config.max_resource_id + 1))
            return f"{descriptor.url}{resource_id}"
        return descriptor.url

    async def probe_network(self, client: httpx.AsyncClient) -> bool:
        """
        Check whether external endpoints are reachable.

        Restricted networks (proxies, content filters) answer with errors
        for every request. When detected, food endpoints that carry a
        fallback_path are served from their local snapshot.

        Returns:
            True if the network looks restricted
        """
        food = self.food_endpoints()
        if not food:
            return False
        url = food[0].url + "1" if food[0].is_collection else food[0].url

        try:
            response = await client.get(url, timeout=self.config.probe_timeout_seconds)
            if not response.is_success:
                self.restricted = True
            else:
                response.json()
                self.restricted = False
        except (httpx.HTTPError, ValueError):
            self.restricted = True

        if self.restricted:
            logger.warning(
                "External endpoints unreachable (restricted network detected). "
                "Falling back to local food snapshots where available."
            )
        return self.restricted

    async def forage(self, descriptor: EndpointDescriptor,
                     client: httpx.AsyncClient,
                     rng: np.random.Generator) -> ForageOutcome:
        """
        Execute one forage against an endpoint.

        Never raises for network conditions; every failure is classified
        into a ForageOutcome.
        """
        url = self.build_request_url(descriptor, rng)
        if descriptor.is_food and self.restricted and descriptor.fallback_path:
            return await self._forage_local(descriptor, url, rng)

        start = time.perf_counter()
        try:
            response = await client.get(url, timeout=self.config.timeout_seconds)
        except httpx.HTTPError as e:
            latency = (time.perf_counter() - start) * 1000.0
            return ForageOutcome(
                url=descriptor.url,
                success=False,
                status=0,
                latency_ms=latency,
                danger=DangerKind.TIMEOUT,
                message=f"{e.__class__.__name__}: {e}",
                requested_url=url,
            )
        latency = (time.perf_counter() - start) * 1000.0

        danger = classify_status(response.status_code, descriptor)
        if danger is not None:
            return ForageOutcome(
                url=descriptor.url,
                success=False,
                status=response.status_code,
                latency_ms=latency,
                danger=danger,
                requested_url=url,
            )

        try:
            body = response.json()
        except ValueError as e:
            # 2xx but inedible
            return ForageOutcome(
                url=descriptor.url,
                success=False,
                status=response.status_code,
                latency_ms=latency,
                danger=DangerKind.CAMOUFLAGE,
                message=f"Undecodable body: {e}",
                requested_url=url,
            )

        return self._food_outcome(descriptor, body, response.status_code, latency, url)

    def _food_outcome(self, descriptor: EndpointDescriptor, body: Any,
                      status: int, latency: float, url: str) -> ForageOutcome:
        return ForageOutcome(
            url=descriptor.url,
            success=True,
            status=status,
            latency_ms=latency,
            nutrition=classify_payload(body, descriptor),
            title=extract_title(body, self.config.title_chars),
            payload=json.dumps(body)[:self.config.payload_excerpt_chars],
            food_class=descriptor.food_class,
            requested_url=url,
        )

    async def _forage_local(self, descriptor: EndpointDescriptor, url: str,
                            rng: np.random.Generator) -> ForageOutcome:
        """Serve a food visit from the endpoint's local snapshot"""
        start = time.perf_counter()
        items = self._fallback_cache.get(descriptor.fallback_path)
        if items is None:
            try:
                items = json.loads(await asyncio.to_thread(Path(descriptor.fallback_path).read_text))
            except (OSError, ValueError) as e:
                latency = (time.perf_counter() - start) * 1000.0
                return ForageOutcome(
                    url=descriptor.url,
                    success=False,
                    status=404,
                    latency_ms=latency,
                    danger=DangerKind.CAMOUFLAGE,
                    message=f"Fallback snapshot unavailable: {e}",
                    requested_url=url,
                )
            self._fallback_cache[descriptor.fallback_path] = items

        if isinstance(items, list) and items:
            body = items[int(rng.integers(0, len(items)))]
        else:
            body = items
        latency = (time.perf_counter() - start) * 1000.0
        return self._food_outcome(descriptor, body, 200, latency, url)
