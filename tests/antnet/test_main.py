"""
Unit tests for antnet/main.py
"""

import asyncio
import json

import pytest
from antnet.config import config_from_dict
from antnet.llm_client import OfflineDecisionSource
from antnet.main import (
    apply_overrides, build_colony, build_parser, create_benchmark_config,
    main, run_colony, summarize,
)
from antnet.policy import ExternalBatchPolicy, LocalWeightedPolicy
from antnet.storage import JsonFileStore


class TestScenarios:
    """Tests for benchmark configurations"""

    def test_default(self):
        config = create_benchmark_config("default")
        assert config.colony.initial_colony_size == 20
        assert config.decision.policy == "local"

    def test_small(self):
        config = create_benchmark_config("small")
        assert config.colony.initial_colony_size == 5
        assert config.validate()

    def test_offline(self):
        config = create_benchmark_config("offline")
        assert config.decision.policy == "external"
        assert config.scenario_name == "offline"

    def test_unknown(self):
        with pytest.raises(ValueError):
            create_benchmark_config("volcano")


class TestArguments:
    """Tests for CLI parsing and overrides"""

    def test_defaults(self):
        args = build_parser().parse_args([])
        assert args.ticks is None
        assert args.scenario == "default"
        assert args.reset is False

    def test_overrides(self):
        args = build_parser().parse_args([
            "--policy", "external", "--model", "gpt-4.1-mini", "--state-dir", "/tmp/nest",
            "--seed", "3", "--concurrency", "4", "--tick-interval", "0", "--log-level", "DEBUG",
        ])
        config = apply_overrides(create_benchmark_config("default"), args)
        assert config.decision.policy == "external"
        assert config.decision.model == "gpt-4.1-mini"
        assert config.storage.state_dir == "/tmp/nest"
        assert config.seed == 3
        assert config.colony.concurrency_cap == 4
        assert config.colony.tick_interval_seconds == 0.0
        assert config.log_level == "DEBUG"

    def test_invalid_choice(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--policy", "oracle"])


class TestBuild:
    """Tests for colony wiring"""

    def test_local_policy(self, tmp_path):
        config = create_benchmark_config("small")
        config.storage.state_dir = str(tmp_path)
        colony = build_colony(config)
        assert isinstance(colony.policy, LocalWeightedPolicy)
        assert isinstance(colony.store, JsonFileStore)

    def test_offline_policy(self, tmp_path):
        config = create_benchmark_config("offline")
        config.storage.state_dir = str(tmp_path)
        colony = build_colony(config)
        assert isinstance(colony.policy, ExternalBatchPolicy)
        assert isinstance(colony.policy.source, OfflineDecisionSource)
        assert "+30 energy" in colony.policy.system_prompt


class TestRun:
    """Tests for the run loop and CLI entry point"""

    def test_run_colony(self, tmp_path, client_factory):
        config = create_benchmark_config("offline")
        config.colony.tick_interval_seconds = 0.0
        config.storage.state_dir = str(tmp_path)
        colony = build_colony(config)

        async def go():
            async with client_factory() as client:
                colony.client = client
                return await run_colony(colony, 3, reset=True, probe=False)

        summary = asyncio.run(go())
        assert summary["ticks"] == 3
        assert summary["scenario"] == "offline"
        assert summary["stats"]["totalFood"] > 0
        assert summary["policy"]["requests"] >= 1
        assert summary["policy"]["external_decisions"] == 0
        # close() persisted the population and trails
        assert (tmp_path / "colony_ants.json").exists()
        assert (tmp_path / "pheromone_nodes.json").exists()
        json.dumps(summary)

    def test_summary_shape(self, small_config):
        colony = build_colony(small_config)
        summary = summarize(colony)
        assert summary["ticks"] == 0
        assert summary["top_trails"] == []
        assert "policy" not in summary

    def test_dump_config(self, tmp_path):
        path = tmp_path / "config.json"
        assert main(["--scenario", "small", "--dump-config", str(path)]) == 0
        restored = config_from_dict(json.loads(path.read_text()))
        assert restored.colony.initial_colony_size == 5

    def test_invalid_config(self, capsys):
        assert main(["--concurrency", "-1"]) == 2
        assert "Invalid configuration" in capsys.readouterr().err
