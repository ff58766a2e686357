"""
Antnet Colony Scheduler
========================
Owns the ant population and the pheromone registry, and drives the
fixed-interval tick loop.

One tick:
1. Advance every ant (age, energy decay, cooldown, death)
2. Select eligible ants up to the free concurrency slots
3. Ask the decision policy for their targets (local draw if it fails)
4. Dispatch one forage per selected ant (bounded by a semaphore)
5. Await every forage, then apply outcomes in dispatch order
6. Deliver food carried by returning ants
7. Prune forgotten pheromones
8. Reproduce if the food stash reached the threshold
9. Remove dead ants
10. Persist the population and flush pheromones on their cadences

All colony mutation happens in the tick coroutine; network operations are
the only concurrent work and they do not touch shared state.
"""

import asyncio
import time
import logging
from collections import deque
from typing import Any, Callable, Dict, List, Optional, Tuple
from dataclasses import dataclass, field, asdict

import httpx
import numpy as np

from .agent import Ant, FoodPacket, spawn_ant
from .config import AgentRole, AgentStatus, DangerKind, SimulationConfig
from .contracts import DecisionPolicy, FoodStorage, KeyValueStore
from .decisions import TargetDecision
from .pheromone import PheromoneRegistry
from .policy import LocalWeightedPolicy
from .storage import FoodStore, MemoryStore
from .topology import EndpointDescriptor, ForageOutcome, NetworkTopology

logger = logging.getLogger("antnet.colony")


@dataclass
class ColonyStats:
    """Cumulative colony counters"""
    total_food: int = 0
    total_births: int = 0
    total_deaths: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "totalFood": self.total_food,
            "totalBirths": self.total_births,
            "totalDeaths": self.total_deaths,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ColonyStats":
        return cls(
            total_food=int(data.get("totalFood", 0)),
            total_births=int(data.get("totalBirths", 0)),
            total_deaths=int(data.get("totalDeaths", 0)),
        )

    def reset(self):
        self.total_food = 0
        self.total_births = 0
        self.total_deaths = 0


@dataclass(frozen=True)
class ActivityEntry:
    """One forage outcome, kept for observability only"""
    url: str
    latency_ms: float
    success: bool
    timestamp: float
    agent_id: str
    status: int
    role: AgentRole = AgentRole.WORKER
    danger: Optional[DangerKind] = None
    nutrition: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "latency": self.latency_ms,
            "success": self.success,
            "timestamp": self.timestamp,
            "antId": self.agent_id,
            "status": self.status,
            "role": self.role.value,
            "danger": self.danger.value if self.danger else None,
            "nutrition": self.nutrition,
        }


class ActivityLog:
    """Ring buffer of the last N outcomes"""

    def __init__(self, maxlen: int = 50):
        self._entries: deque = deque(maxlen=maxlen)

    def append(self, entry: ActivityEntry):
        self._entries.append(entry)

    def entries(self) -> List[ActivityEntry]:
        return list(self._entries)

    def clear(self):
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True)
class ColonyView:
    """Read-only view of the colony handed to decision policies"""
    tick_count: int
    now: float
    registry: PheromoneRegistry
    topology: NetworkTopology
    stats: ColonyStats
    population: int
    food_stored: int
    recent_activity: Tuple[ActivityEntry, ...] = ()


@dataclass
class ColonyReport:
    """Copy of observable colony state for visualization/log sinks"""
    tick_count: int
    alive: int
    food_stored: int
    in_flight: int
    stats: Dict[str, int]
    activity: List[Dict[str, Any]]
    pheromones: List[Dict[str, Any]]
    decision_snapshot: Optional[Any] = None
    tick_summary: Dict[str, int] = field(default_factory=dict)


class Colony:
    """
    Colony scheduler.

    Collaborators are injected; anything omitted gets an in-process
    default (memory store, local policy, fresh registry and food stash).
    """

    def __init__(self, config: SimulationConfig,
                 topology: Optional[NetworkTopology] = None,
                 registry: Optional[PheromoneRegistry] = None,
                 food_store: Optional[FoodStorage] = None,
                 store: Optional[KeyValueStore] = None,
                 policy: Optional[DecisionPolicy] = None,
                 client: Optional[httpx.AsyncClient] = None,
                 rng: Optional[np.random.Generator] = None,
                 clock: Optional[Callable[[], float]] = None):
        self.config = config
        self.clock = clock or time.time
        self.rng = rng if rng is not None else np.random.default_rng(config.seed)

        self.topology = topology or NetworkTopology(config.endpoints, config.forage)
        self.registry = registry or PheromoneRegistry(config.pheromone, clock=self.clock)
        self.food_store = food_store or FoodStore(
            config.storage.food_max_age_seconds,
            config.storage.food_value_chars,
            clock=self.clock,
        )
        self.store = store or MemoryStore()
        self.policy = policy or LocalWeightedPolicy(self.rng)
        self._fallback_policy = LocalWeightedPolicy(self.rng)

        self.client = client
        self._owns_client = False

        self.ants: List[Ant] = []
        self.stats = ColonyStats()
        self.activity = ActivityLog(config.colony.activity_log_size)
        self.tick_count = 0

        # In-flight network operations
        self.in_flight = 0
        self.peak_in_flight = 0

        self._observers: List[Callable[[ColonyReport], None]] = []

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def init(self, probe: bool = False):
        """
        Load persisted state and bootstrap the population.

        Any load failure degrades to an empty population, which is then
        backfilled through the normal spawn path.
        """
        if self.client is None:
            self.client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.forage.timeout_seconds),
                follow_redirects=False,
            )
            self._owns_client = True

        await self.registry.load(self.store, self.config.storage.key_pheromones)
        await self._load_population()

        if not self.ants:
            for _ in range(self.config.colony.initial_colony_size):
                self._spawn()
            logger.info(f"Bootstrapped colony with {len(self.ants)} ants")
        else:
            logger.info(f"Restored colony with {len(self.ants)} ants")

        if probe:
            await self.topology.probe_network(self.client)

    async def close(self):
        """Persist everything and release the HTTP client"""
        await self.save()
        await self.registry.flush(self.store, self.config.storage.key_pheromones)
        if self._owns_client and self.client is not None:
            await self.client.aclose()
            self.client = None
            self._owns_client = False

    async def reset(self, include_pheromones: bool = False):
        """Fresh start: no ants, no food, zeroed counters"""
        self.ants = []
        self.food_store.clear()
        self.stats.reset()
        self.activity.clear()
        self.tick_count = 0
        keys = [
            self.config.storage.key_ants,
            self.config.storage.key_stats,
            self.config.storage.key_food,
        ]
        if include_pheromones:
            self.registry.reset()
            keys.append(self.config.storage.key_pheromones)
        for key in keys:
            try:
                await self.store.delete(key)
            except (OSError, ValueError) as e:
                logger.warning(f"Could not delete {key}: {e}")
        logger.info("Colony reset")

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    async def _load_population(self):
        storage = self.config.storage
        try:
            rows = await self.store.get(storage.key_ants)
            stats = await self.store.get(storage.key_stats)
            food = await self.store.get(storage.key_food)
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Could not load colony state: {e}")
            self.ants = []
            return

        try:
            ants = [
                Ant.from_dict(row, self.config.agent.max_energy)
                for row in (rows or [])
            ]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding corrupt population snapshot: {e}")
            ants = []
        self.ants = [a for a in ants if not a.is_dead][:self.config.colony.max_colony_size]

        if isinstance(stats, dict):
            try:
                self.stats = ColonyStats.from_dict(stats)
            except (TypeError, ValueError) as e:
                logger.warning(f"Discarding corrupt stats snapshot: {e}")
        if isinstance(food, list):
            self._load_food(food)

    def _load_food(self, rows: List[Dict[str, Any]]):
        loader = getattr(self.food_store, "from_list", None)
        if loader is not None:
            loader(rows)

    async def save(self) -> bool:
        """Persist population, stats and food. Failures are logged and skipped."""
        storage = self.config.storage
        try:
            await self.store.set(storage.key_ants, [a.to_dict() for a in self.ants])
            await self.store.set(storage.key_stats, self.stats.to_dict())
            dumper = getattr(self.food_store, "to_list", None)
            if dumper is not None:
                await self.store.set(storage.key_food, dumper())
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Colony save failed: {e}")
            return False
        return True

    # =========================================================================
    # POPULATION
    # =========================================================================

    def _spawn(self) -> Optional[Ant]:
        if self.alive_count >= self.config.colony.max_colony_size:
            return None
        ant = spawn_ant(self.config.agent, self.rng)
        self.ants.append(ant)
        self.stats.total_births += 1
        return ant

    def _try_reproduce(self) -> bool:
        """Consume one food unit and spawn an ant once the stash reaches the threshold"""
        if self.food_store.count() < self.config.colony.reproduction_food_threshold:
            return False
        if self.alive_count >= self.config.colony.max_colony_size:
            return False
        self.food_store.consume()
        ant = self._spawn()
        logger.debug(f"Born {ant.id} ({ant.role.value})")
        return True

    def _remove_dead(self) -> int:
        before = len(self.ants)
        self.ants = [a for a in self.ants if not a.is_dead]
        removed = before - len(self.ants)
        self.stats.total_deaths += removed
        return removed

    @property
    def alive_count(self) -> int:
        return sum(1 for a in self.ants if not a.is_dead)

    @property
    def food_count(self) -> int:
        return self.food_store.count()

    # =========================================================================
    # TICK
    # =========================================================================

    def view(self, now: Optional[float] = None) -> ColonyView:
        return ColonyView(
            tick_count=self.tick_count,
            now=self.clock() if now is None else now,
            registry=self.registry,
            topology=self.topology,
            stats=ColonyStats(**asdict(self.stats)),
            population=self.alive_count,
            food_stored=self.food_store.count(),
            recent_activity=tuple(self.activity.entries()),
        )

    def _maybe_stray(self, descriptor: EndpointDescriptor) -> EndpointDescriptor:
        """A dispatched ant sometimes wanders into a danger endpoint instead"""
        rate = self.config.forage.danger_exposure_rate
        dangers = self.topology.danger_endpoints()
        if rate > 0 and dangers and self.rng.random() < rate:
            return dangers[int(self.rng.integers(0, len(dangers)))]
        return descriptor

    async def _forage(self, descriptor: EndpointDescriptor,
                      slots: asyncio.Semaphore) -> ForageOutcome:
        async with slots:
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
            try:
                return await self.topology.forage(descriptor, self.client, self.rng)
            finally:
                self.in_flight -= 1

    async def _decide(self, batch: List[Ant], view: ColonyView) -> Dict[str, TargetDecision]:
        """Ask the policy; a failing policy degrades to the local weighted draw"""
        try:
            return await self.policy.decide(batch, view)
        except Exception as e:
            logger.error(f"Decision policy failed on tick {self.tick_count}: {e}", exc_info=True)
            return await self._fallback_policy.decide(batch, view)

    async def tick(self) -> Dict[str, int]:
        """
        Run one simulation tick.

        Returns:
            Summary counts for the tick
        """
        self.tick_count += 1
        now = self.clock()
        config = self.config
        summary = {"dispatched": 0, "successes": 0, "failures": 0,
                   "delivered": 0, "births": 0, "deaths": 0, "pruned": 0}

        # 1. Energy decay happens before any dispatch
        for ant in self.ants:
            ant.tick(config.agent)

        # 2. Select up to the free concurrency slots
        available = max(0, config.colony.concurrency_cap - self.in_flight)
        batch = [a for a in self.ants if a.can_forage()][:available]

        # 3-5. Decide, dispatch, await, apply
        if batch:
            if self.client is None:
                raise RuntimeError("Colony.init() must run before tick()")
            decisions = await self._decide(batch, self.view(now))

            jobs: List[Tuple[Ant, EndpointDescriptor]] = []
            for ant in batch:
                decision = decisions.get(ant.id)
                if decision is None:
                    continue
                descriptor = self.topology.get_endpoint(decision.url)
                if descriptor is None or not descriptor.is_food:
                    logger.warning(f"Ignoring decision for {ant.id}: {decision.url} is not a food endpoint")
                    continue
                descriptor = self._maybe_stray(descriptor)
                ant.begin_forage(descriptor.url, config.forage.cooldown_ticks)
                jobs.append((ant, descriptor))

            # Forages never outlive their tick
            slots = asyncio.Semaphore(config.colony.concurrency_cap)
            results = await asyncio.gather(
                *[self._forage(descriptor, slots) for _, descriptor in jobs],
                return_exceptions=True,
            )
            summary["dispatched"] = len(jobs)

            for (ant, descriptor), result in zip(jobs, results):
                if isinstance(result, BaseException):
                    logger.error(f"Forage of {descriptor.url} raised {result.__class__.__name__}: {result}")
                    result = ForageOutcome(
                        url=descriptor.url,
                        success=False,
                        status=0,
                        latency_ms=config.forage.timeout_seconds * 1000.0,
                        danger=DangerKind.TIMEOUT,
                        message=str(result),
                    )
                self.apply_outcome(ant, descriptor, result, now)
                if result.success:
                    summary["successes"] += 1
                else:
                    summary["failures"] += 1

        # 6. Delivery after this tick's outcomes
        summary["delivered"] = self._deliver_food()

        # 7. Forgetting
        summary["pruned"] = self.registry.prune(now=now)

        # 8. Reproduction
        if self._try_reproduce():
            summary["births"] = 1

        # 9. Death
        summary["deaths"] = self._remove_dead()

        # 10. Persistence cadence
        if self.tick_count % config.colony.save_every_ticks == 0:
            await self.save()
            logger.info(
                f"Tick {self.tick_count}: alive={self.alive_count}, food={self.food_count}, "
                f"births={self.stats.total_births}, deaths={self.stats.total_deaths}, "
                f"delivered={self.stats.total_food}, trails={len(self.registry)}"
            )
        if self.tick_count % config.colony.flush_pheromones_every_ticks == 0:
            await self.registry.flush(self.store, config.storage.key_pheromones)

        self._notify(summary)
        return summary

    # =========================================================================
    # OUTCOMES
    # =========================================================================

    def apply_outcome(self, ant: Ant, descriptor: EndpointDescriptor,
                      outcome: ForageOutcome, now: Optional[float] = None):
        """Apply one forage outcome to the ant and the registry"""
        now = self.clock() if now is None else now
        config = self.config
        ant.last_latency = outcome.latency_ms

        self.activity.append(ActivityEntry(
            url=descriptor.url,
            latency_ms=outcome.latency_ms,
            success=outcome.success,
            timestamp=now,
            agent_id=ant.id,
            status=outcome.status,
            role=ant.role,
            danger=outcome.danger,
            nutrition=outcome.nutrition,
        ))

        if outcome.success:
            self.registry.deposit(descriptor.url, outcome.latency_ms, now)
            packet = FoodPacket(
                title=outcome.title,
                nutrition=outcome.nutrition,
                food_class=outcome.food_class,
                payload=outcome.payload,
                source_url=descriptor.url,
            )
            penalty = outcome.latency_ms * config.agent.latency_penalty_factor
            died = ant.pick_up(packet, penalty)
            if not died:
                ant.record_visit(descriptor.url, config.agent.recent_targets_limit)
            logger.debug(
                f"{ant.id} found {outcome.title!r} at {descriptor.name} "
                f"({outcome.latency_ms:.0f}ms, nutrition {outcome.nutrition:.1f})"
                + (" and died on the way" if died else "")
            )
            return

        self._apply_danger(ant, descriptor, outcome, now)

    def _apply_danger(self, ant: Ant, descriptor: EndpointDescriptor,
                      outcome: ForageOutcome, now: float):
        danger = self.config.danger
        kind = outcome.danger or DangerKind.CAMOUFLAGE
        endpoint_damage = descriptor.damage if not descriptor.is_food and descriptor.damage > 0 else None

        if kind == DangerKind.PREDATOR:
            damage = endpoint_damage if endpoint_damage is not None else danger.predator_damage
        elif kind == DangerKind.STORM:
            damage = endpoint_damage if endpoint_damage is not None else danger.storm_damage
            self.registry.deposit_repellent(descriptor.url, now)
        elif kind == DangerKind.TIMEOUT:
            damage = outcome.latency_ms * self.config.agent.latency_penalty_factor
        else:
            damage = danger.minor_damage

        died = ant.take_damage(damage)
        logger.debug(
            f"{ant.id} met {kind.value} at {descriptor.name} (status {outcome.status}, "
            f"-{damage:.1f} energy){' and died' if died else ''}"
        )

    def _deliver_food(self) -> int:
        delivered = 0
        for ant in self.ants:
            if ant.status != AgentStatus.RETURNING:
                continue
            packet = ant.deliver(self.config.agent.energy_gain_on_food,
                                 self.config.agent.max_energy)
            if packet is None:
                continue
            label = f"{ant.id}_{self.tick_count}"
            try:
                self.food_store.store(label, packet.title)
            except (OSError, ValueError) as e:
                logger.warning(f"Food storage failed for {label}: {e}")
            self.stats.total_food += 1
            delivered += 1
        return delivered

    # =========================================================================
    # OBSERVATION
    # =========================================================================

    def add_observer(self, callback: Callable[[ColonyReport], None]):
        """Register a read-only sink called after every tick"""
        self._observers.append(callback)

    def report(self, tick_summary: Optional[Dict[str, int]] = None) -> ColonyReport:
        return ColonyReport(
            tick_count=self.tick_count,
            alive=self.alive_count,
            food_stored=self.food_count,
            in_flight=self.in_flight,
            stats=self.stats.to_dict(),
            activity=[e.to_dict() for e in self.activity.entries()],
            pheromones=self.registry.all_effective(),
            decision_snapshot=getattr(self.policy, "last_snapshot", None),
            tick_summary=dict(tick_summary or {}),
        )

    def _notify(self, summary: Dict[str, int]):
        if not self._observers:
            return
        report = self.report(summary)
        for callback in self._observers:
            try:
                callback(report)
            except Exception as e:
                logger.warning(f"Observer {callback!r} failed: {e}")

    # =========================================================================
    # DRIVER
    # =========================================================================

    async def run(self, n_ticks: Optional[int] = None,
                  on_tick: Optional[Callable[["Colony"], None]] = None):
        """
        Fixed-interval tick driver.

        Ticks never overlap: a slow tick delays the next one. No exception
        from a tick stops the loop.
        """
        interval = self.config.colony.tick_interval_seconds
        completed = 0
        while n_ticks is None or completed < n_ticks:
            started = time.monotonic()
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Tick {self.tick_count} failed: {e}", exc_info=True)
            completed += 1
            if on_tick is not None:
                on_tick(self)
            if interval > 0:
                await asyncio.sleep(max(0.0, interval - (time.monotonic() - started)))
