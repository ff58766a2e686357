"""
Antnet Decision Policies
=========================
Two interchangeable strategies that pick a food endpoint per ant.

LocalWeightedPolicy
    Weighted-random draw over food endpoints, weights from the decayed
    pheromone intensity and the ant's role:

        scout:  w = max(0.1, 1 - |τ|)   (0.01 if τ < -0.5)
        worker: w = max(0.1, τ + 1)     (0.05 if τ < -0.5)

ExternalBatchPolicy
    One request to an external decision source for the whole batch, with
    a per-ant fallback to the local policy. The external source can slow
    a tick down to its timeout but can never block dispatch.
"""

import asyncio
import time
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, TYPE_CHECKING
from dataclasses import dataclass, field

import numpy as np

from .config import AgentRole, DecisionConfig
from .contracts import DecisionParseError, DecisionSource, DecisionSourceError
from .decisions import (
    SYSTEM_PROMPT, TargetDecision, build_state_snapshot, format_user_prompt,
    merge_decisions, parse_decisions,
)

if TYPE_CHECKING:
    from .agent import Ant
    from .colony import ColonyView

logger = logging.getLogger("antnet.policy")

# Intensity below which an endpoint counts as known danger
DANGER_INTENSITY = -0.5


def role_weight(role: AgentRole, intensity: float) -> float:
    """Selection weight of an endpoint for a role, given its decayed intensity"""
    if role == AgentRole.SCOUT:
        if intensity < DANGER_INTENSITY:
            return 0.01
        return max(0.1, 1.0 - abs(intensity))
    if intensity < DANGER_INTENSITY:
        return 0.05
    return max(0.1, intensity + 1.0)


def weighted_choice(weights: Sequence[float], rng: np.random.Generator) -> int:
    """Cumulative-weight draw; returns an index into weights"""
    cumulative = np.cumsum(np.asarray(weights, dtype=float))
    total = cumulative[-1]
    if total <= 0:
        return int(rng.integers(0, len(cumulative)))
    draw = rng.random() * total
    index = int(np.searchsorted(cumulative, draw, side="right"))
    return min(index, len(cumulative) - 1)


class LocalWeightedPolicy:
    """Pheromone- and role-weighted random target selection"""

    def __init__(self, rng: Optional[np.random.Generator] = None):
        self.rng = rng if rng is not None else np.random.default_rng()

    def endpoint_weights(self, role: AgentRole, view: "ColonyView") -> List[float]:
        return [
            role_weight(role, view.registry.effective_intensity(node.url, view.now))
            for node in view.topology.food_endpoints()
        ]

    def choose(self, ant: "Ant", view: "ColonyView") -> Optional[TargetDecision]:
        food = view.topology.food_endpoints()
        if not food:
            return None
        index = weighted_choice(self.endpoint_weights(ant.role, view), self.rng)
        return TargetDecision(
            agent_id=ant.id,
            url=food[index].url,
            rationale=f"{ant.role.value} weighted draw",
            source="local",
        )

    async def decide(self, agents: Sequence["Ant"],
                     view: "ColonyView") -> Dict[str, TargetDecision]:
        decisions: Dict[str, TargetDecision] = {}
        for ant in agents:
            decision = self.choose(ant, view)
            if decision is not None:
                decisions[ant.id] = decision
        return decisions


@dataclass
class DecisionSnapshot:
    """Read-only record of one external decision round, for visualization sinks"""
    system_prompt: str
    user_prompt: str
    response: str
    decisions: List[Dict[str, Any]]
    colony_state: Dict[str, Any]
    food_sources: List[Dict[str, Any]]
    external_count: int = 0
    fallback_count: int = 0
    rejected: List[str] = field(default_factory=list)
    error: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


class ExternalBatchPolicy:
    """
    Batch decisions from an external source with per-ant local fallback.

    Any source failure (timeout, transport error, malformed response)
    degrades the whole batch to the fallback; individually invalid
    decisions degrade only their ant.
    """

    def __init__(self, source: DecisionSource, config: DecisionConfig,
                 fallback: Optional[LocalWeightedPolicy] = None,
                 on_snapshot: Optional[Callable[[DecisionSnapshot], None]] = None,
                 system_prompt: Optional[str] = None):
        self.source = source
        self.config = config
        self.system_prompt = system_prompt or SYSTEM_PROMPT
        self.fallback = fallback or LocalWeightedPolicy()
        self.on_snapshot = on_snapshot
        self.last_snapshot: Optional[DecisionSnapshot] = None

        # Statistics
        self.total_requests = 0
        self.total_failures = 0
        self.total_external = 0
        self.total_fallback = 0

    async def _request(self, user_prompt: str) -> str:
        return await asyncio.wait_for(
            self.source.complete(
                self.system_prompt,
                user_prompt,
                self.config.max_tokens,
                self.config.temperature,
            ),
            timeout=self.config.timeout_seconds,
        )

    async def decide(self, agents: Sequence["Ant"],
                     view: "ColonyView") -> Dict[str, TargetDecision]:
        if not agents:
            return {}

        snapshot = build_state_snapshot(agents, view, self.config.history_length)
        user_prompt = format_user_prompt(snapshot)
        agent_ids = {ant.id for ant in agents}
        valid_urls = set(view.topology.food_urls())

        self.total_requests += 1
        response = ""
        error: Optional[str] = None
        external: Dict[str, TargetDecision] = {}
        rejected: List[str] = []
        try:
            response = await self._request(user_prompt)
            parsed = parse_decisions(response, agent_ids, valid_urls, self.config.reasoning_chars)
            external = parsed.decisions
            rejected = parsed.rejected
        except asyncio.TimeoutError:
            error = f"timeout after {self.config.timeout_seconds}s"
        except DecisionParseError as e:
            error = f"parse error: {e.reason}"
        except DecisionSourceError as e:
            error = f"source error: {e}"
        except Exception as e:
            error = f"unexpected {e.__class__.__name__}: {e}"
            logger.error(f"External decision source raised {error}")

        if error is not None:
            self.total_failures += 1
            logger.warning(f"External decisions unavailable ({error}); using local policy")

        missing = [ant for ant in agents if ant.id not in external]
        fallback = await self.fallback.decide(missing, view) if missing else {}
        merged = merge_decisions(external, agents, fallback)

        self.total_external += len(external)
        self.total_fallback += len(missing)
        if external:
            logger.info(f"External source provided {len(external)} decisions for {len(agents)} ants")

        self._emit_snapshot(snapshot, user_prompt, response, merged, agents,
                            len(external), len(missing), rejected, error)
        return merged

    def _emit_snapshot(self, snapshot, user_prompt, response, merged, agents,
                       n_external, n_fallback, rejected, error):
        enriched = []
        for ant in agents:
            decision = merged.get(ant.id)
            enriched.append({
                "antId": ant.id,
                "role": ant.role.value,
                "energy": ant.energy,
                "ticksAlive": ant.ticks_alive,
                "targetUrl": decision.url if decision else None,
                "reasoning": decision.rationale if decision else "No decision made",
                "source": decision.source if decision else None,
            })

        self.last_snapshot = DecisionSnapshot(
            system_prompt=self.system_prompt,
            user_prompt=user_prompt,
            response=response,
            decisions=enriched,
            colony_state=dict(snapshot["colonyStats"]),
            food_sources=[dict(fs) for fs in snapshot["foodSources"]],
            external_count=n_external,
            fallback_count=n_fallback,
            rejected=list(rejected),
            error=error,
        )

        if self.on_snapshot is not None:
            try:
                self.on_snapshot(self.last_snapshot)
            except Exception as e:
                logger.warning(f"Decision snapshot callback failed: {e}")

    def get_statistics(self) -> Dict[str, float]:
        return {
            "requests": self.total_requests,
            "failures": self.total_failures,
            "external_decisions": self.total_external,
            "fallback_decisions": self.total_fallback,
        }


def create_policy(config: DecisionConfig, rng: np.random.Generator,
                  source: Optional[DecisionSource] = None,
                  on_snapshot: Optional[Callable[[DecisionSnapshot], None]] = None,
                  system_prompt: Optional[str] = None):
    """Build the configured policy; external needs a decision source"""
    local = LocalWeightedPolicy(rng)
    if config.policy == "external":
        if source is None:
            raise ValueError("External decision policy requires a decision source")
        return ExternalBatchPolicy(source, config, fallback=local, on_snapshot=on_snapshot,
                                   system_prompt=system_prompt)
    return local
