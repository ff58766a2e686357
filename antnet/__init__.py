"""
Antnet Colony
==============
A stigmergic foraging colony that lives in a network topology.

Ants forage REST endpoints instead of grid cells:
- Movement is an HTTP request, distance is round-trip latency
- Food is JSON, classified as sugar (flat) or protein (nested)
- HTTP failures are ecological dangers (predator, storm, timeout, ...)
- Pheromones are a time-decayed registry keyed by endpoint URL

Modules:
--------
- config: Configuration dataclasses and defaults
- contracts: Protocol boundaries and error types
- pheromone: Time-decayed pheromone registry
- topology: Endpoint catalog, payload classification, forage operation
- agent: Per-ant state machine
- storage: Food stash and key-value persistence
- decisions: External decision schema, prompts and parsing
- policy: Local weighted and external batch decision policies
- llm_client: Chat-completion decision source and offline stub
- colony: Tick scheduler
- main: CLI and run loop

Example Usage:
--------------
>>> import asyncio
>>> from antnet import Colony, create_small_test_config
>>> colony = Colony(create_small_test_config())
>>> async def forage():
...     await colony.init()
...     await colony.run(10)
...     await colony.close()
>>> asyncio.run(forage())
"""

__version__ = "0.1.0"

# Configuration
from .config import (
    SimulationConfig,
    AgentConfig,
    PheromoneConfig,
    ForageConfig,
    DangerConfig,
    ColonyConfig,
    StorageConfig,
    DecisionConfig,
    EndpointConfig,
    create_default_config,
    create_small_test_config,
    default_endpoints,
    AgentRole,
    AgentStatus,
    EndpointKind,
    FoodClass,
    DangerKind,
)

# Contracts
from .contracts import (
    DecisionPolicy,
    DecisionSource,
    KeyValueStore,
    FoodStorage,
    DecisionSourceError,
    DecisionParseError,
)

# Core components
from .pheromone import PheromoneRecord, PheromoneRegistry
from .topology import EndpointDescriptor, ForageOutcome, NetworkTopology
from .agent import Ant, FoodPacket, spawn_ant
from .storage import FoodStore, MemoryStore, JsonFileStore
from .decisions import TargetDecision
from .policy import LocalWeightedPolicy, ExternalBatchPolicy, create_policy
from .colony import Colony, ColonyStats, ColonyView, ColonyReport

__all__ = [
    # Config
    "SimulationConfig",
    "AgentConfig",
    "PheromoneConfig",
    "ForageConfig",
    "DangerConfig",
    "ColonyConfig",
    "StorageConfig",
    "DecisionConfig",
    "EndpointConfig",
    "create_default_config",
    "create_small_test_config",
    "default_endpoints",
    "AgentRole",
    "AgentStatus",
    "EndpointKind",
    "FoodClass",
    "DangerKind",
    # Contracts
    "DecisionPolicy",
    "DecisionSource",
    "KeyValueStore",
    "FoodStorage",
    "DecisionSourceError",
    "DecisionParseError",
    # Components
    "PheromoneRecord",
    "PheromoneRegistry",
    "EndpointDescriptor",
    "ForageOutcome",
    "NetworkTopology",
    "Ant",
    "FoodPacket",
    "spawn_ant",
    "FoodStore",
    "MemoryStore",
    "JsonFileStore",
    "TargetDecision",
    "LocalWeightedPolicy",
    "ExternalBatchPolicy",
    "create_policy",
    "Colony",
    "ColonyStats",
    "ColonyView",
    "ColonyReport",
]
