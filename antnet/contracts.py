"""
Antnet Architectural Contracts
===============================
Interface contracts that define component boundaries.

Key Principle: the Colony scheduler OWNS mutable state.
- The pheromone registry and the ant population are mutated only by the tick
- Decision policies READ a view of the colony and return targets
- External collaborators (decision source, stores) are reached only
  through the protocols below
"""

from typing import TypedDict, Protocol, Dict, Any, List, Optional, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from .agent import Ant
    from .colony import ColonyView
    from .decisions import TargetDecision


# =============================================================================
# SNAPSHOT CONTRACT - What the external decision source is allowed to see
# =============================================================================

class ColonyStatsSummary(TypedDict):
    """Colony-wide counters included in every snapshot"""
    totalAnts: int
    foodStored: int
    tickCount: int
    totalFood: int
    totalBirths: int
    totalDeaths: int


class AgentSummary(TypedDict):
    """
    One ant awaiting orders.
    Only identity, role, energy, age and recent targets are exposed.
    """
    id: str
    role: str
    energy: int
    ticksAlive: int
    recentlyVisited: List[str]


class FoodSourceSummary(TypedDict):
    """One food endpoint with its decayed pheromone memory"""
    url: str
    name: str
    type: str  # sugar or protein
    pheromoneIntensity: float
    averageLatency: Optional[int]  # ms, None when never reached
    visits: int


class OutcomeSummary(TypedDict):
    """A recent forage outcome, for in-context learning"""
    antRole: str
    targetName: str
    outcome: str


class StateSnapshot(TypedDict):
    """Structured snapshot submitted with every external decision request"""
    colonyStats: ColonyStatsSummary
    ants: List[AgentSummary]
    foodSources: List[FoodSourceSummary]
    topPheromoneTrails: List[Dict[str, Any]]
    recentOutcomes: List[OutcomeSummary]


# =============================================================================
# PROTOCOL DEFINITIONS - Interface contracts
# =============================================================================

class DecisionPolicy(Protocol):
    """
    Strategy that maps eligible ants to food endpoints.

    Implementations READ the colony view and never mutate it.
    Ants missing from the returned mapping are not dispatched.
    """
    async def decide(
        self,
        agents: Sequence["Ant"],
        view: "ColonyView",
    ) -> Dict[str, "TargetDecision"]:
        ...


class DecisionSource(Protocol):
    """
    External batch decision source (e.g. a chat-completion model).

    Receives a system instruction and a rendered snapshot, returns raw text.
    Provider-specific request shaping lives behind this boundary.
    """
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        ...


class KeyValueStore(Protocol):
    """
    Persistent key-value store for colony snapshots and pheromones.
    Errors propagate; callers treat persistence as best-effort.
    """
    async def get(self, key: str) -> Optional[Any]:
        ...

    async def set(self, key: str, value: Any) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class FoodStorage(Protocol):
    """Append-only food stash with natural expiry"""
    def store(self, label: str, value: str) -> bool:
        ...

    def count(self) -> int:
        ...

    def consume(self) -> Optional[str]:
        ...

    def clear(self) -> None:
        ...


# =============================================================================
# ERRORS
# =============================================================================

class DecisionSourceError(RuntimeError):
    """Raised when the external decision source cannot produce a response."""
    pass


class DecisionParseError(ValueError):
    """Raised when an external response is not a usable decision batch."""

    def __init__(self, reason: str, raw: str = ""):
        super().__init__(reason)
        self.reason = reason
        self.raw = raw
