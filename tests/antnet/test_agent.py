"""
Unit tests for antnet/agent.py

Tests the per-ant state machine and its serialization.
"""

import pytest
from antnet.agent import Ant, FoodPacket, new_ant_id, spawn_ant
from antnet.config import AgentConfig, AgentRole, AgentStatus, FoodClass

URL = "https://jsonplaceholder.typicode.com/posts/"


def make_packet():
    return FoodPacket(title="post", nutrition=4.0, food_class=FoodClass.SUGAR, source_url=URL)


class TestTick:
    """Tests for per-tick dynamics"""

    def test_energy_decay(self, agent_config):
        ant = Ant(energy=80.0)
        ant.tick(agent_config)
        assert ant.energy == pytest.approx(79.85)
        assert ant.ticks_alive == 1
        assert ant.status == AgentStatus.IDLE

    def test_cooldown_counts_down(self, agent_config):
        ant = Ant(forage_cooldown=2)
        ant.tick(agent_config)
        assert ant.forage_cooldown == 1
        assert not ant.can_forage()
        ant.tick(agent_config)
        assert ant.forage_cooldown == 0
        assert ant.can_forage()

    def test_starvation(self, agent_config):
        ant = Ant(energy=0.1)
        ant.tick(agent_config)
        assert ant.is_dead

    def test_dead_ant_stays_dead(self, agent_config):
        ant = Ant(energy=0.1)
        ant.tick(agent_config)
        ant.tick(agent_config)
        assert ant.ticks_alive == 1


class TestTransitions:
    """Tests for idle → foraging → returning → idle"""

    def test_begin_forage(self):
        ant = Ant()
        ant.begin_forage(URL, 20)
        assert ant.status == AgentStatus.FORAGING
        assert ant.current_target == URL
        assert ant.forage_cooldown == 20
        assert not ant.can_forage()

    def test_pick_up_and_deliver(self):
        ant = Ant(energy=50.0)
        ant.begin_forage(URL, 20)
        assert ant.pick_up(make_packet(), latency_penalty=2.0) is False
        assert ant.status == AgentStatus.RETURNING
        assert ant.energy == pytest.approx(48.0)

        packet = ant.deliver(30.0, 100.0)
        assert packet.title == "post"
        assert ant.energy == pytest.approx(78.0)
        assert ant.status == AgentStatus.IDLE
        assert ant.carrying is None
        assert ant.current_target is None

    def test_deliver_clamps_energy(self):
        ant = Ant(energy=90.0)
        ant.begin_forage(URL, 20)
        ant.pick_up(make_packet(), 0.0)
        ant.deliver(30.0, 100.0)
        assert ant.energy == 100.0

    def test_fatal_trip(self):
        """A slow response can kill a weak ant before it picks up food"""
        ant = Ant(energy=1.0)
        ant.begin_forage(URL, 20)
        assert ant.pick_up(make_packet(), latency_penalty=5.0) is True
        assert ant.is_dead
        assert ant.carrying is None

    def test_damage_survived(self):
        ant = Ant(energy=79.85)
        ant.begin_forage(URL, 20)
        assert ant.take_damage(50.0) is False
        assert ant.energy == pytest.approx(29.85)
        assert ant.status == AgentStatus.IDLE
        assert ant.current_target is None

    def test_damage_fatal(self):
        ant = Ant(energy=40.0)
        ant.begin_forage(URL, 20)
        assert ant.take_damage(50.0) is True
        assert ant.status == AgentStatus.DEAD

    def test_record_visit_bounded(self):
        ant = Ant()
        for i in range(8):
            ant.record_visit(f"{URL}{i}", limit=5)
        assert len(ant.recent_targets) == 5
        assert ant.recent_targets[-1] == f"{URL}7"
        assert ant.recent_targets[0] == f"{URL}3"


class TestSerialization:
    """Tests for to_dict / from_dict"""

    def test_roundtrip_idle(self):
        ant = Ant(energy=42.5, role=AgentRole.SCOUT, ticks_alive=12, recent_targets=[URL])
        restored = Ant.from_dict(ant.to_dict())
        assert restored.id == ant.id
        assert restored.energy == 42.5
        assert restored.role == AgentRole.SCOUT
        assert restored.ticks_alive == 12
        assert restored.recent_targets == [URL]

    def test_foraging_restores_as_idle(self):
        ant = Ant()
        ant.begin_forage(URL, 20)
        restored = Ant.from_dict(ant.to_dict())
        assert restored.status == AgentStatus.IDLE
        assert restored.current_target is None
        assert restored.carrying is None

    def test_returning_keeps_food(self):
        ant = Ant()
        ant.begin_forage(URL, 20)
        ant.pick_up(make_packet(), 0.0)
        restored = Ant.from_dict(ant.to_dict())
        assert restored.status == AgentStatus.RETURNING
        assert restored.carrying.food_class == FoodClass.SUGAR

    def test_idle_never_restores_with_food(self):
        data = Ant().to_dict()
        data["carrying"] = make_packet().to_dict()
        assert Ant.from_dict(data).carrying is None

    def test_unknown_role_and_state(self):
        data = Ant().to_dict()
        data["role"] = "queen"
        data["state"] = "dancing"
        restored = Ant.from_dict(data)
        assert restored.role == AgentRole.WORKER
        assert restored.status == AgentStatus.IDLE

    def test_energy_clamped(self):
        data = Ant().to_dict()
        data["energy"] = 250.0
        assert Ant.from_dict(data, max_energy=100.0).energy == 100.0
        data["energy"] = -3.0
        assert Ant.from_dict(data).is_dead


class TestSpawn:
    """Tests for ant creation"""

    def test_ids_unique(self):
        assert new_ant_id() != new_ant_id()
        assert new_ant_id().startswith("ant_")

    def test_spawn_roles(self, rng):
        config = AgentConfig(scout_probability=0.2)
        ants = [spawn_ant(config, rng) for _ in range(500)]
        scouts = sum(1 for a in ants if a.role == AgentRole.SCOUT)
        assert 50 < scouts < 150
        assert all(a.energy == config.initial_energy for a in ants)

    def test_spawn_all_workers(self, rng):
        config = AgentConfig(scout_probability=0.0)
        assert all(spawn_ant(config, rng).role == AgentRole.WORKER for _ in range(20))
