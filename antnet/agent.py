"""
Antnet Ant Agent
=================
Per-ant state machine.

    idle ──dispatch──▶ foraging ──success──▶ returning ──deliver──▶ idle
                          │
                          └──danger (survived)──▶ idle
    any ──energy ≤ 0──▶ dead (terminal)

The tick advances age, energy decay and cooldown only. Foraging decisions
and network outcomes are applied by the colony.
"""

import uuid
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field

import numpy as np

from .config import AgentConfig, AgentRole, AgentStatus, FoodClass


def new_ant_id() -> str:
    return f"ant_{uuid.uuid4().hex[:12]}"


@dataclass
class FoodPacket:
    """Food carried back to the nest"""
    title: str
    nutrition: float
    food_class: Optional[FoodClass] = None
    payload: str = ""
    source_url: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "nutrition": self.nutrition,
            "foodClass": self.food_class.value if self.food_class else None,
            "payload": self.payload,
            "sourceUrl": self.source_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FoodPacket":
        food_class = data.get("foodClass")
        return cls(
            title=str(data.get("title", "")),
            nutrition=float(data.get("nutrition", 0.0)),
            food_class=FoodClass(food_class) if food_class else None,
            payload=str(data.get("payload", "")),
            source_url=str(data.get("sourceUrl", "")),
        )


@dataclass
class Ant:
    """Internal state of a single ant"""
    id: str = field(default_factory=new_ant_id)
    energy: float = 80.0
    role: AgentRole = AgentRole.WORKER
    status: AgentStatus = AgentStatus.IDLE
    current_target: Optional[str] = None
    carrying: Optional[FoodPacket] = None
    last_latency: Optional[float] = None  # ms
    forage_cooldown: int = 0
    recent_targets: List[str] = field(default_factory=list)  # most recent last
    ticks_alive: int = 0

    @property
    def is_dead(self) -> bool:
        return self.status == AgentStatus.DEAD

    def tick(self, config: AgentConfig):
        """Advance one simulation tick: age, energy decay, cooldown"""
        if self.is_dead:
            return

        self.ticks_alive += 1
        self.energy -= config.energy_decay_per_tick
        if self.forage_cooldown > 0:
            self.forage_cooldown -= 1

        self._check_death()

    def can_forage(self) -> bool:
        """Eligible for dispatch"""
        return (
            self.forage_cooldown <= 0
            and self.carrying is None
            and self.status == AgentStatus.IDLE
        )

    def begin_forage(self, url: str, cooldown: int):
        """idle → foraging"""
        self.status = AgentStatus.FORAGING
        self.current_target = url
        self.forage_cooldown = cooldown

    def take_damage(self, amount: float) -> bool:
        """
        Apply an energy-reducing effect.

        A survivor of a failed forage returns to idle with its target
        cleared. Returns True if the ant died.
        """
        if self.is_dead:
            return True
        self.energy -= amount
        if self._check_death():
            return True
        if self.status == AgentStatus.FORAGING:
            self.status = AgentStatus.IDLE
            self.current_target = None
        return False

    def pick_up(self, packet: FoodPacket, latency_penalty: float) -> bool:
        """
        foraging → returning, after paying the trip's latency cost.

        Returns True if the trip itself was fatal.
        """
        if self.is_dead:
            return True
        self.energy -= latency_penalty
        if self._check_death():
            return True
        self.carrying = packet
        self.status = AgentStatus.RETURNING
        return False

    def deliver(self, energy_gain: float, max_energy: float) -> Optional[FoodPacket]:
        """returning → idle; credits energy and hands over the packet"""
        packet = self.carrying
        if packet is not None:
            self.energy = min(self.energy + energy_gain, max_energy)
        self.carrying = None
        self.current_target = None
        if not self.is_dead:
            self.status = AgentStatus.IDLE
        return packet

    def record_visit(self, url: str, limit: int):
        self.recent_targets.append(url)
        if len(self.recent_targets) > limit:
            del self.recent_targets[:len(self.recent_targets) - limit]

    def _check_death(self) -> bool:
        if self.energy <= 0:
            self.status = AgentStatus.DEAD
            self.carrying = None
            return True
        return False

    # =========================================================================
    # SERIALIZATION
    # =========================================================================

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "energy": self.energy,
            "role": self.role.value,
            "state": self.status.value,
            "currentTarget": self.current_target,
            "carrying": self.carrying.to_dict() if self.carrying else None,
            "lastLatency": self.last_latency,
            "forageCooldown": self.forage_cooldown,
            "recentTargets": list(self.recent_targets),
            "ticksAlive": self.ticks_alive,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], max_energy: float = 100.0) -> "Ant":
        """
        Restore a serialized ant.

        Foraging is never durable: an in-flight ant comes back idle.
        Only a returning ant keeps its food.
        """
        try:
            role = AgentRole(data.get("role", "worker"))
        except ValueError:
            role = AgentRole.WORKER
        try:
            status = AgentStatus(data.get("state", "idle"))
        except ValueError:
            status = AgentStatus.IDLE

        carrying = None
        if status == AgentStatus.RETURNING and data.get("carrying"):
            carrying = FoodPacket.from_dict(data["carrying"])
        if status == AgentStatus.FORAGING or (status == AgentStatus.RETURNING and carrying is None):
            status = AgentStatus.IDLE

        current_target = data.get("currentTarget") if status == AgentStatus.RETURNING else None
        energy = float(np.clip(float(data.get("energy", 0.0)), 0.0, max_energy))
        if energy <= 0:
            status = AgentStatus.DEAD

        return cls(
            id=str(data.get("id") or new_ant_id()),
            energy=energy,
            role=role,
            status=status,
            current_target=current_target,
            carrying=carrying,
            last_latency=data.get("lastLatency"),
            forage_cooldown=int(data.get("forageCooldown", 0)),
            recent_targets=[str(u) for u in data.get("recentTargets", [])],
            ticks_alive=int(data.get("ticksAlive", 0)),
        )


def spawn_ant(config: AgentConfig, rng: np.random.Generator) -> Ant:
    """Create a newborn ant; scouts are drawn with scout_probability"""
    role = AgentRole.SCOUT if rng.random() < config.scout_probability else AgentRole.WORKER
    return Ant(energy=config.initial_energy, role=role)
