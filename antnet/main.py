"""
Antnet Main Runner
===================
Entry point for running a foraging colony.

Provides:
- CLI interface
- Logging setup
- Benchmark scenarios
- Run summary
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
from tqdm import tqdm

from .colony import Colony
from .config import SimulationConfig, config_to_dict, create_default_config, create_small_test_config
from .decisions import build_system_prompt
from .llm_client import OfflineDecisionSource, get_decision_source
from .policy import create_policy
from .storage import JsonFileStore

SCENARIOS = ["default", "small", "offline"]


def setup_logging(config: SimulationConfig) -> logging.Logger:
    """Configure root logging once: a log file in the output directory plus the console"""
    Path(config.output_dir).mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(f"{config.output_dir}/colony.log"),
            logging.StreamHandler()
        ]
    )
    # Per-request logs from the HTTP stack drown the colony's own
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return logging.getLogger("antnet")


def create_benchmark_config(scenario: str = "default") -> SimulationConfig:
    """
    Create configuration for benchmark scenarios.

    Args:
        scenario: One of "default", "small", "offline"

    Returns:
        SimulationConfig for the scenario
    """
    if scenario == "small":
        config = create_small_test_config()
        config.colony.tick_interval_seconds = 0.5

    elif scenario == "offline":
        # External policy wired to the offline stub: every decision
        # comes from the local fallback
        config = create_small_test_config()
        config.colony.tick_interval_seconds = 0.5
        config.decision.policy = "external"
        config.scenario_name = "offline"

    elif scenario == "default":
        config = create_default_config()

    else:
        raise ValueError(f"Unknown scenario: {scenario}")

    return config


def build_colony(config: SimulationConfig) -> Colony:
    """Wire the colony with file-backed persistence and the configured policy"""
    rng = np.random.default_rng(config.seed)

    source = None
    if config.decision.policy == "external":
        if config.scenario_name == "offline":
            source = OfflineDecisionSource()
        else:
            source = get_decision_source(config.decision)

    policy = create_policy(config.decision, rng, source=source,
                           system_prompt=build_system_prompt(config.agent))
    return Colony(
        config,
        store=JsonFileStore(config.storage.state_dir),
        policy=policy,
        rng=rng,
    )


def summarize(colony: Colony) -> Dict[str, Any]:
    """JSON-ready end-of-run summary"""
    summary = {
        "scenario": colony.config.scenario_name,
        "ticks": colony.tick_count,
        "alive": colony.alive_count,
        "food_stored": colony.food_count,
        "peak_in_flight": colony.peak_in_flight,
        "stats": colony.stats.to_dict(),
        "pheromones": colony.registry.get_statistics(),
        "top_trails": [
            {"url": e["url"], "intensity": round(e["effectiveIntensity"], 3), "visits": e["visits"]}
            for e in colony.registry.all_effective()[:5]
        ],
    }
    get_policy_stats = getattr(colony.policy, "get_statistics", None)
    if get_policy_stats is not None:
        summary["policy"] = get_policy_stats()
    return summary


async def run_colony(colony: Colony, n_ticks: Optional[int] = None,
                     reset: bool = False, probe: bool = True) -> Dict[str, Any]:
    """
    Initialize, run and close a colony.

    Args:
        colony: Colony to drive
        n_ticks: Number of ticks, None to run until cancelled
        reset: Start from an empty state instead of the persisted one
        probe: Check network reachability first

    Returns:
        Run summary
    """
    logger = logging.getLogger("antnet")
    if reset:
        await colony.reset(include_pheromones=True)
    await colony.init(probe=probe)

    try:
        if n_ticks is None:
            await colony.run()
        else:
            with tqdm(total=n_ticks, desc="Foraging", unit="tick") as bar:
                await colony.run(n_ticks, on_tick=lambda c: bar.update(1))
    finally:
        await colony.close()
        logger.info(f"Colony closed after {colony.tick_count} ticks")

    return summarize(colony)


def print_config_summary(config: SimulationConfig):
    """Print a summary of the configuration"""
    print("\n" + "="*60)
    print("Antnet Configuration Summary")
    print("="*60)
    print(f"Scenario: {config.scenario_name}")
    print(f"Initial colony: {config.colony.initial_colony_size} (cap {config.colony.max_colony_size})")
    print(f"Concurrency cap: {config.colony.concurrency_cap}")
    print(f"Tick interval: {config.colony.tick_interval_seconds}s")
    print(f"Decision policy: {config.decision.policy}")
    if config.decision.policy == "external":
        print(f"  - Model: {config.decision.model}")
        print(f"  - Timeout: {config.decision.timeout_seconds}s")
    print()
    print("Endpoints:")
    for endpoint in config.endpoints:
        print(f"  - [{endpoint.kind.value}] {endpoint.name}: {endpoint.url}")
    print(f"State directory: {config.storage.state_dir}")
    print("="*60 + "\n")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Antnet: a foraging colony over network endpoints",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Quick run with a small colony
  python -m antnet.main --scenario small --ticks 50

  # Decisions from a chat-completion model (OPENAI_API_KEY in the environment)
  python -m antnet.main --policy external --model gpt-4o-mini

  # Start over from an empty nest
  python -m antnet.main --reset --ticks 200
        """
    )

    parser.add_argument("--ticks", type=int, help="Number of ticks (default: run until interrupted)")
    parser.add_argument(
        "--scenario",
        choices=SCENARIOS,
        default="default",
        help="Benchmark scenario"
    )
    parser.add_argument("--policy", choices=["local", "external"], help="Decision policy")
    parser.add_argument("--model", type=str, help="Model for the external policy")
    parser.add_argument("--state-dir", type=str, help="Directory for persisted colony state")
    parser.add_argument("--seed", type=int, help="Random seed")
    parser.add_argument("--concurrency", type=int, help="Maximum in-flight forages")
    parser.add_argument("--tick-interval", type=float, help="Seconds between ticks")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Log level")
    parser.add_argument("--reset", action="store_true", help="Discard persisted state first")
    parser.add_argument("--no-probe", action="store_true", help="Skip the network reachability probe")
    parser.add_argument("--dump-config", type=str, help="Write the effective configuration as JSON and exit")

    return parser


def apply_overrides(config: SimulationConfig, args: argparse.Namespace) -> SimulationConfig:
    """Apply CLI overrides on top of a scenario"""
    if args.policy:
        config.decision.policy = args.policy
    if args.model:
        config.decision.model = args.model
    if args.state_dir:
        config.storage.state_dir = args.state_dir
    if args.seed is not None:
        config.seed = args.seed
    if args.concurrency:
        config.colony.concurrency_cap = args.concurrency
    if args.tick_interval is not None:
        config.colony.tick_interval_seconds = args.tick_interval
    if args.log_level:
        config.log_level = args.log_level
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point"""
    args = build_parser().parse_args(argv)

    config = apply_overrides(create_benchmark_config(args.scenario), args)
    try:
        config.validate()
    except AssertionError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    if args.dump_config:
        with open(args.dump_config, 'w') as f:
            json.dump(config_to_dict(config), f, indent=2)
        print(f"Saved configuration to {args.dump_config}")
        return 0

    setup_logging(config)
    print_config_summary(config)

    colony = build_colony(config)
    try:
        summary = asyncio.run(run_colony(colony, args.ticks, reset=args.reset, probe=not args.no_probe))
    except KeyboardInterrupt:
        print("\nInterrupted")
        summary = summarize(colony)

    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
