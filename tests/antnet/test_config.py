"""
Unit tests for antnet/config.py
"""

import pytest
from antnet.config import (
    SimulationConfig, AgentConfig, PheromoneConfig, ColonyConfig,
    EndpointKind, FoodClass, DangerKind,
    create_default_config, create_small_test_config,
    config_to_dict, config_from_dict,
)


class TestDefaults:
    """Tests for default configuration values"""

    def test_agent_defaults(self):
        config = AgentConfig()
        assert config.max_energy == 100.0
        assert config.initial_energy == 80.0
        assert config.energy_decay_per_tick == 0.15
        assert config.energy_gain_on_food == 30.0

    def test_pheromone_defaults(self):
        config = PheromoneConfig()
        assert config.initial_intensity == 1.0
        assert config.repellent_intensity == -2.0
        assert config.max_intensity == 10.0
        assert config.decay_lambda > 0

    def test_colony_defaults(self):
        config = ColonyConfig()
        assert config.initial_colony_size == 20
        assert config.concurrency_cap == 8
        assert config.reproduction_food_threshold == 5

    def test_default_catalog(self):
        """Four food endpoints and three dangers"""
        config = create_default_config()
        food = [e for e in config.endpoints if e.kind == EndpointKind.FOOD]
        danger = [e for e in config.endpoints if e.kind == EndpointKind.DANGER]
        assert len(food) == 4
        assert len(danger) == 3
        assert {e.food_class for e in food} == {FoodClass.SUGAR, FoodClass.PROTEIN}
        predator = next(e for e in danger if e.danger_kind == DangerKind.PREDATOR)
        assert predator.damage == 50.0


class TestValidation:
    """Tests for SimulationConfig.validate"""

    def test_default_is_valid(self):
        assert create_default_config().validate()

    def test_small_is_valid(self):
        config = create_small_test_config()
        assert config.validate()
        assert config.colony.initial_colony_size == 5
        assert config.colony.concurrency_cap == 3
        assert config.forage.danger_exposure_rate == 0.0

    def test_rejects_zero_concurrency(self):
        config = create_default_config()
        config.colony.concurrency_cap = 0
        with pytest.raises(AssertionError):
            config.validate()

    def test_rejects_initial_above_cap(self):
        config = create_default_config()
        config.colony.initial_colony_size = config.colony.max_colony_size + 1
        with pytest.raises(AssertionError):
            config.validate()

    def test_rejects_positive_repellent(self):
        config = create_default_config()
        config.pheromone.repellent_intensity = 1.0
        with pytest.raises(AssertionError):
            config.validate()

    def test_rejects_duplicate_urls(self):
        config = create_default_config()
        config.endpoints.append(config.endpoints[0])
        with pytest.raises(AssertionError):
            config.validate()

    def test_rejects_unknown_policy(self):
        config = create_default_config()
        config.decision.policy = "oracle"
        with pytest.raises(AssertionError):
            config.validate()


class TestSerialization:
    """Tests for config dumps"""

    def test_dump_uses_enum_values(self):
        data = config_to_dict(create_default_config())
        assert data["endpoints"][0]["kind"] == "food"
        assert data["endpoints"][0]["food_class"] == "sugar"

    def test_restore_from_dump(self):
        config = create_small_test_config()
        config.seed = 7
        restored = config_from_dict(config_to_dict(config))
        assert isinstance(restored, SimulationConfig)
        assert restored.seed == 7
        assert restored.colony.concurrency_cap == 3
        assert restored.endpoints[4].kind == EndpointKind.DANGER
        assert restored.endpoints[4].danger_kind == DangerKind.PREDATOR
        assert restored.validate()

    def test_missing_sections_keep_defaults(self):
        restored = config_from_dict({"colony": {"concurrency_cap": 2}})
        assert restored.colony.concurrency_cap == 2
        assert restored.agent.max_energy == 100.0
        assert len(restored.endpoints) == 7
