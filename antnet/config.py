"""
Antnet Simulator Configuration
===============================
Configuration system for the network foraging colony.
All hyperparameters for agents, pheromones, foraging, scheduling and
the decision policy.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional
from enum import Enum


class AgentRole(Enum):
    """Ant behavioral roles"""
    SCOUT = "scout"
    WORKER = "worker"


class AgentStatus(Enum):
    """Ant lifecycle states"""
    IDLE = "idle"
    FORAGING = "foraging"
    RETURNING = "returning"
    DEAD = "dead"


class EndpointKind(Enum):
    """What an endpoint offers the colony"""
    FOOD = "food"
    DANGER = "danger"


class FoodClass(Enum):
    """Nutrition classes"""
    SUGAR = "sugar"  # flat payloads, quick energy
    PROTEIN = "protein"  # nested payloads, complex nutrients


class DangerKind(Enum):
    """Classification of unsuccessful forages"""
    PREDATOR = "predator"  # HTTP 429
    STORM = "storm"  # HTTP 5xx
    TIMEOUT = "timeout"  # transport failure or timeout
    CAMOUFLAGE = "camouflage"  # any other non-success status
    SWAMP = "swamp"  # 2xx from a danger endpoint, a wasted trip


@dataclass
class EndpointConfig:
    """One entry of the endpoint catalog"""
    name: str
    url: str
    kind: EndpointKind = EndpointKind.FOOD

    # Food endpoints
    food_class: Optional[FoodClass] = None
    nutrition_multiplier: float = 1.0
    fallback_path: Optional[str] = None  # local JSON snapshot for restricted networks

    # Danger endpoints
    damage: float = 0.0
    danger_kind: Optional[DangerKind] = None


def default_endpoints() -> List[EndpointConfig]:
    """The catalog the colony forages by default"""
    return [
        EndpointConfig(
            name="JSONPlaceholder Posts",
            url="https://jsonplaceholder.typicode.com/posts/",
            food_class=FoodClass.SUGAR,
            nutrition_multiplier=1.0,
        ),
        EndpointConfig(
            name="JSONPlaceholder Todos",
            url="https://jsonplaceholder.typicode.com/todos/",
            food_class=FoodClass.SUGAR,
            nutrition_multiplier=0.8,
        ),
        EndpointConfig(
            name="PokeAPI",
            url="https://pokeapi.co/api/v2/pokemon/",
            food_class=FoodClass.PROTEIN,
            nutrition_multiplier=2.0,
        ),
        EndpointConfig(
            name="REST Countries",
            url="https://restcountries.com/v3.1/all",
            food_class=FoodClass.PROTEIN,
            nutrition_multiplier=1.5,
        ),
        EndpointConfig(
            name="Rate Limiter (429)",
            url="https://httpstat.us/429",
            kind=EndpointKind.DANGER,
            damage=50.0,
            danger_kind=DangerKind.PREDATOR,
        ),
        EndpointConfig(
            name="Server Error (500)",
            url="https://httpstat.us/500",
            kind=EndpointKind.DANGER,
            damage=30.0,
            danger_kind=DangerKind.STORM,
        ),
        EndpointConfig(
            name="Slow Response",
            url="https://httpstat.us/200?sleep=5000",
            kind=EndpointKind.DANGER,
            damage=10.0,
            danger_kind=DangerKind.SWAMP,
        ),
    ]


@dataclass
class AgentConfig:
    """Ant agent configuration"""
    # Energy bounds
    max_energy: float = 100.0
    initial_energy: float = 80.0

    # Energy dynamics
    energy_decay_per_tick: float = 0.15
    energy_gain_on_food: float = 30.0
    latency_penalty_factor: float = 0.01  # energy lost per ms of round-trip time

    # Memory
    recent_targets_limit: int = 5

    # Role assignment at birth
    scout_probability: float = 0.2


@dataclass
class PheromoneConfig:
    """Time-decayed pheromone registry configuration"""
    # Deposition
    initial_intensity: float = 1.0  # increment per successful visit
    repellent_intensity: float = -2.0  # increment per storm

    # Clipping
    max_intensity: float = 10.0

    # Decay: effective = intensity * exp(-λ·Δt), Δt in seconds
    decay_lambda: float = 0.001

    # Forgetting
    prune_threshold: float = 0.01


@dataclass
class ForageConfig:
    """Network operation configuration"""
    timeout_seconds: float = 8.0
    cooldown_ticks: int = 20  # ticks between forages per ant

    # Sub-resource suffix drawn from 1..max_resource_id for collection URLs
    max_resource_id: int = 20

    # Food packet truncation
    payload_excerpt_chars: int = 500
    title_chars: int = 80

    # Chance that a dispatched ant strays into a danger endpoint
    danger_exposure_rate: float = 0.05

    probe_timeout_seconds: float = 5.0


@dataclass
class DangerConfig:
    """Energy effects of dangers, used when the endpoint defines no damage"""
    predator_damage: float = 50.0
    storm_damage: float = 30.0
    minor_damage: float = 10.0  # camouflage and swamp


@dataclass
class ColonyConfig:
    """Population and scheduling configuration"""
    initial_colony_size: int = 20
    max_colony_size: int = 200

    # Scheduler
    concurrency_cap: int = 8  # global cap on in-flight forages
    tick_interval_seconds: float = 0.5

    # Reproduction
    reproduction_food_threshold: int = 5

    # Persistence cadence
    save_every_ticks: int = 20
    flush_pheromones_every_ticks: int = 100

    # Observability
    activity_log_size: int = 50


@dataclass
class StorageConfig:
    """Persistent key-value store configuration"""
    state_dir: str = "./colony_state"

    key_ants: str = "colony_ants"
    key_stats: str = "colony_stats"
    key_food: str = "colony_food"
    key_pheromones: str = "pheromone_nodes"

    # Food stash
    food_max_age_seconds: float = 3600.0
    food_value_chars: int = 3800


@dataclass
class DecisionConfig:
    """Decision policy configuration"""
    policy: str = "local"  # "local" or "external"

    # External decision source
    model: str = "gpt-4o-mini"
    timeout_seconds: float = 20.0
    max_tokens: int = 2000
    temperature: float = 0.7

    # Prompt shaping
    history_length: int = 5
    reasoning_chars: int = 100


@dataclass
class SimulationConfig:
    """Master configuration combining all subsystems"""
    agent: AgentConfig = field(default_factory=AgentConfig)
    pheromone: PheromoneConfig = field(default_factory=PheromoneConfig)
    forage: ForageConfig = field(default_factory=ForageConfig)
    danger: DangerConfig = field(default_factory=DangerConfig)
    colony: ColonyConfig = field(default_factory=ColonyConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    decision: DecisionConfig = field(default_factory=DecisionConfig)

    endpoints: List[EndpointConfig] = field(default_factory=default_endpoints)

    # Run
    scenario_name: str = "default"
    seed: Optional[int] = None
    log_level: str = "INFO"
    output_dir: str = "./output"

    def validate(self):
        """Validate configuration consistency"""
        assert self.agent.max_energy > 0, "Max energy must be positive"
        assert 0 < self.agent.initial_energy <= self.agent.max_energy, \
            "Initial energy must be in (0, max_energy]"
        assert self.agent.energy_decay_per_tick >= 0, "Energy decay must be non-negative"
        assert 0.0 <= self.agent.scout_probability <= 1.0, "Scout probability must be in [0, 1]"

        assert self.pheromone.max_intensity > 0, "Max intensity must be positive"
        assert self.pheromone.initial_intensity > 0, "Deposit increment must be positive"
        assert self.pheromone.repellent_intensity < 0, "Repellent increment must be negative"
        assert self.pheromone.decay_lambda >= 0, "Decay rate must be non-negative"

        assert self.forage.timeout_seconds > 0, "Forage timeout must be positive"
        assert self.forage.max_resource_id >= 1, "Need at least one sub-resource"
        assert 0.0 <= self.forage.danger_exposure_rate <= 1.0, "Exposure rate must be in [0, 1]"

        assert self.colony.concurrency_cap > 0, "Concurrency cap must be positive"
        assert 0 < self.colony.initial_colony_size <= self.colony.max_colony_size, \
            "Initial colony must fit under the population cap"
        assert self.colony.reproduction_food_threshold > 0, "Reproduction threshold must be positive"
        assert self.colony.save_every_ticks > 0 and self.colony.flush_pheromones_every_ticks > 0, \
            "Persistence cadences must be positive"

        assert self.decision.policy in ("local", "external"), \
            f"Unknown decision policy: {self.decision.policy}"

        urls = [e.url for e in self.endpoints]
        assert len(urls) == len(set(urls)), "Endpoint URLs must be unique"
        for endpoint in self.endpoints:
            if endpoint.kind == EndpointKind.FOOD:
                assert endpoint.food_class is not None, f"{endpoint.name}: food needs a class"
                assert endpoint.nutrition_multiplier >= 0, f"{endpoint.name}: negative multiplier"
            else:
                assert endpoint.damage >= 0, f"{endpoint.name}: negative damage"

        return True


def create_default_config() -> SimulationConfig:
    """Create default configuration"""
    return SimulationConfig()


def create_small_test_config() -> SimulationConfig:
    """Create small configuration for testing"""
    config = SimulationConfig()
    config.colony.initial_colony_size = 5
    config.colony.max_colony_size = 10
    config.colony.concurrency_cap = 3
    config.colony.tick_interval_seconds = 0.0
    config.forage.cooldown_ticks = 2
    config.forage.timeout_seconds = 1.0
    config.forage.danger_exposure_rate = 0.0
    config.scenario_name = "small"
    return config


# =============================================================================
# SERIALIZATION
# =============================================================================

def _encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_encode(v) for v in value]
    return value


def config_to_dict(config: SimulationConfig) -> Dict[str, Any]:
    """JSON-ready dump of a configuration"""
    return _encode(asdict(config))


def _endpoint_from_dict(data: Dict[str, Any]) -> EndpointConfig:
    data = dict(data)
    data["kind"] = EndpointKind(data.get("kind", "food"))
    if data.get("food_class") is not None:
        data["food_class"] = FoodClass(data["food_class"])
    if data.get("danger_kind") is not None:
        data["danger_kind"] = DangerKind(data["danger_kind"])
    return EndpointConfig(**data)


def config_from_dict(data: Dict[str, Any]) -> SimulationConfig:
    """Rebuild a configuration from config_to_dict output; missing keys keep defaults"""
    sections = {
        "agent": AgentConfig,
        "pheromone": PheromoneConfig,
        "forage": ForageConfig,
        "danger": DangerConfig,
        "colony": ColonyConfig,
        "storage": StorageConfig,
        "decision": DecisionConfig,
    }
    kwargs: Dict[str, Any] = {}
    for name, cls in sections.items():
        if name in data:
            kwargs[name] = cls(**data[name])
    if "endpoints" in data:
        kwargs["endpoints"] = [_endpoint_from_dict(e) for e in data["endpoints"]]
    for key in ("scenario_name", "seed", "log_level", "output_dir"):
        if key in data:
            kwargs[key] = data[key]
    return SimulationConfig(**kwargs)
