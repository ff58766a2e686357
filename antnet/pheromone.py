"""
Antnet Pheromone Registry
==========================
Stigmergic memory over network endpoints.

Instead of trails on grid edges, ants mark endpoint URLs in a shared
registry. Each record holds:

    { url, intensity, last_seen, avg_latency, visits }

Intensity decays lazily, it is never rewritten by the passage of time:

    effective = intensity * e^(-λ·Δt),   Δt = now - last_seen

- Deposition: successful forages add the initial increment (clamped to +MAX)
- Repellent: storms add a negative increment (clamped to -MAX)
- Forgetting: records whose |effective| drops below a threshold are pruned

The registry is owned by the colony tick and is not safe for
uncoordinated concurrent writers.
"""

import math
import time
import logging
from typing import Callable, Dict, List, Optional, Any
from dataclasses import dataclass

from .config import PheromoneConfig
from .contracts import KeyValueStore

logger = logging.getLogger("antnet.pheromone")


@dataclass
class PheromoneRecord:
    """Pheromone memory of a single endpoint"""
    url: str
    intensity: float
    last_seen: float  # seconds since epoch
    avg_latency: float = math.inf  # ms, inf until first successful visit
    visits: int = 0

    def effective_intensity(self, now: float, decay_lambda: float) -> float:
        """Decayed intensity; shrinks toward zero and keeps its sign"""
        dt = max(0.0, now - self.last_seen)
        return self.intensity * math.exp(-decay_lambda * dt)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "intensity": self.intensity,
            "lastSeen": self.last_seen,
            "avgLatency": None if math.isinf(self.avg_latency) else self.avg_latency,
            "visits": self.visits,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PheromoneRecord":
        avg = data.get("avgLatency")
        return cls(
            url=str(data["url"]),
            intensity=float(data["intensity"]),
            last_seen=float(data["lastSeen"]),
            avg_latency=math.inf if avg is None else float(avg),
            visits=int(data.get("visits", 0)),
        )


class PheromoneRegistry:
    """
    Mapping from endpoint URL to a decaying pheromone record.

    Every operation takes an optional `now`; when omitted the injected
    clock is read. Tests pass `now` explicitly for deterministic decay.
    """

    def __init__(self, config: PheromoneConfig,
                 clock: Optional[Callable[[], float]] = None):
        self.config = config
        self.clock = clock or time.time
        self.records: Dict[str, PheromoneRecord] = {}

        # Statistics
        self.total_deposits = 0
        self.total_repellents = 0
        self.total_pruned = 0

    def _now(self, now: Optional[float]) -> float:
        return self.clock() if now is None else now

    def deposit(self, url: str, latency_ms: float, now: Optional[float] = None):
        """
        Reinforce the trail to a successfully visited endpoint.

        Args:
            url: Endpoint identity
            latency_ms: Observed round-trip time of the visit
            now: Current time in seconds
        """
        now = self._now(now)
        existing = self.records.get(url)
        if existing is not None:
            existing.intensity = min(
                existing.intensity + self.config.initial_intensity,
                self.config.max_intensity
            )
            existing.last_seen = now
            if existing.visits == 0 or math.isinf(existing.avg_latency):
                existing.avg_latency = latency_ms
            else:
                existing.avg_latency = (
                    (existing.avg_latency * existing.visits + latency_ms)
                    / (existing.visits + 1)
                )
            existing.visits += 1
        else:
            self.records[url] = PheromoneRecord(
                url=url,
                intensity=min(self.config.initial_intensity, self.config.max_intensity),
                last_seen=now,
                avg_latency=latency_ms,
                visits=1,
            )
        self.total_deposits += 1

    def deposit_repellent(self, url: str, now: Optional[float] = None):
        """Mark an endpoint as dangerous (negative pheromone)"""
        now = self._now(now)
        existing = self.records.get(url)
        if existing is not None:
            existing.intensity = max(
                existing.intensity + self.config.repellent_intensity,
                -self.config.max_intensity
            )
            existing.last_seen = now
        else:
            self.records[url] = PheromoneRecord(
                url=url,
                intensity=max(self.config.repellent_intensity, -self.config.max_intensity),
                last_seen=now,
                avg_latency=math.inf,
                visits=0,
            )
        self.total_repellents += 1

    def effective_intensity(self, url: str, now: Optional[float] = None) -> float:
        """
        Decayed intensity for an endpoint.

        Returns 0.0 for unknown (or forgotten) endpoints.
        Positive = attractive, negative = repellent.
        """
        record = self.records.get(url)
        if record is None:
            return 0.0
        return record.effective_intensity(self._now(now), self.config.decay_lambda)

    def get_entry(self, url: str) -> Optional[PheromoneRecord]:
        """Raw stored record, or None"""
        return self.records.get(url)

    def all_effective(self, now: Optional[float] = None) -> List[Dict[str, Any]]:
        """All records with their effective intensity, strongest first"""
        now = self._now(now)
        results = []
        for record in self.records.values():
            entry = record.to_dict()
            entry["effectiveIntensity"] = record.effective_intensity(now, self.config.decay_lambda)
            results.append(entry)
        results.sort(key=lambda e: e["effectiveIntensity"], reverse=True)
        return results

    def prune(self, threshold: Optional[float] = None, now: Optional[float] = None) -> int:
        """
        Forget records whose decayed magnitude fell below threshold.

        Returns:
            Number of records removed
        """
        if threshold is None:
            threshold = self.config.prune_threshold
        now = self._now(now)

        forgotten = [
            url for url, record in self.records.items()
            if abs(record.effective_intensity(now, self.config.decay_lambda)) < threshold
        ]
        for url in forgotten:
            del self.records[url]

        self.total_pruned += len(forgotten)
        return len(forgotten)

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def to_records(self) -> List[Dict[str, Any]]:
        return [record.to_dict() for record in self.records.values()]

    def from_records(self, rows: List[Dict[str, Any]]) -> int:
        """Replace records from serialized rows; malformed rows are skipped"""
        loaded = 0
        for row in rows:
            try:
                record = PheromoneRecord.from_dict(row)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed pheromone record {row!r}: {e}")
                continue
            self.records[record.url] = record
            loaded += 1
        return loaded

    async def flush(self, store: KeyValueStore, key: str = "pheromone_nodes") -> bool:
        """Write the full record set. Failures are logged, never raised."""
        try:
            await store.set(key, self.to_records())
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Pheromone flush failed: {e}")
            return False
        logger.debug(f"Flushed {len(self.records)} pheromone records")
        return True

    async def load(self, store: KeyValueStore, key: str = "pheromone_nodes") -> int:
        """Read the record set written by flush(). Failures leave the registry as is."""
        try:
            rows = await store.get(key)
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Pheromone load failed: {e}")
            return 0
        if not rows:
            return 0
        if not isinstance(rows, list):
            logger.warning(f"Ignoring pheromone data of type {type(rows).__name__}")
            return 0
        loaded = self.from_records(rows)
        logger.info(f"Loaded {loaded} pheromone records")
        return loaded

    # =========================================================================
    # STATISTICS
    # =========================================================================

    def get_statistics(self, now: Optional[float] = None) -> Dict[str, float]:
        """Get statistics about the registry"""
        now = self._now(now)
        effective = [
            r.effective_intensity(now, self.config.decay_lambda)
            for r in self.records.values()
        ]
        return {
            "n_records": len(self.records),
            "n_attractive": sum(1 for e in effective if e > 0),
            "n_repellent": sum(1 for e in effective if e < 0),
            "max_effective": max(effective) if effective else 0.0,
            "min_effective": min(effective) if effective else 0.0,
            "total_deposits": self.total_deposits,
            "total_repellents": self.total_repellents,
            "total_pruned": self.total_pruned,
        }

    def reset(self):
        """Forget everything"""
        self.records.clear()
        self.total_deposits = 0
        self.total_repellents = 0
        self.total_pruned = 0

    def __len__(self) -> int:
        return len(self.records)

    def __contains__(self, url: str) -> bool:
        return url in self.records
