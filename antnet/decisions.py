"""
Antnet Decision Contract
=========================
Everything exchanged with the external decision source:

- the state snapshot and the prompts rendered from it
- the strict schema for decisions coming back
- parsing, validation against the live catalog, and the per-agent merge
  that backfills missing decisions from the local policy

Nothing here performs I/O.
"""

import re
import json
import logging
from typing import Any, Dict, List, Optional, Sequence, Set, TYPE_CHECKING
from dataclasses import dataclass

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from .config import AgentConfig
from .contracts import DecisionParseError, StateSnapshot

if TYPE_CHECKING:
    from .agent import Ant
    from .colony import ColonyView

logger = logging.getLogger("antnet.decisions")


@dataclass
class TargetDecision:
    """A chosen food endpoint for one ant"""
    agent_id: str
    url: str
    rationale: str = ""
    source: str = "local"  # "local" or "external"


# =============================================================================
# RESPONSE SCHEMA
# =============================================================================

class ExternalDecision(BaseModel):
    """One decision as returned by the external source"""
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    agent_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("antId", "agentId", "agent_id"),
    )
    target_url: str = Field(
        min_length=1,
        validation_alias=AliasChoices("targetUrl", "chosenEndpoint", "target_url"),
    )
    reasoning: str = Field(
        default="No reasoning provided",
        validation_alias=AliasChoices("reasoning", "rationale"),
    )


class DecisionBatch(BaseModel):
    """Envelope; items are validated one by one"""
    model_config = ConfigDict(extra="ignore")

    decisions: List[Any]


@dataclass
class ParsedDecisions:
    """Validated decisions plus the reasons individual items were dropped"""
    decisions: Dict[str, TargetDecision]
    rejected: List[str]


# =============================================================================
# PROMPTS
# =============================================================================

_PROMPT_HEAD = """You are the collective intelligence of an ant colony navigating a network of REST API endpoints. Your role is to make foraging decisions for all ants simultaneously.

SIMULATION CONTEXT:
- Ants live in a network topology where URLs are locations, not physical space
- Movement = HTTP request (costs energy proportional to round-trip latency)
- Food = JSON data from successful API calls
- Pheromones = stigmergic signals (positive attracts, negative repels)
- Energy = survival metric (gained on food delivery, decays every tick)

ANT ROLES:
1. SCOUT ants: explore novel or low-pheromone endpoints to discover new resources
2. WORKER ants: exploit high-pheromone trails to known food sources

DECISION RULES:
- Scouts prefer unexplored or weak trails (novelty-seeking)
- Workers prefer strong trails (exploitation)
- Both avoid negative pheromone (danger signals from HTTP errors)
- Low energy ants prefer fast endpoints
- High energy ants can afford slow endpoints

PHEROMONE INTERPRETATION:
- Positive (0 to +10): successful foraging trail, stronger = more proven
- Negative (-10 to 0): danger signal
- Zero/absent: unexplored territory

"""

_ENERGY_SECTION = """ENERGY CONSIDERATIONS:
- Each fetch costs {latency_penalty:g} energy per millisecond of round-trip time
- Ants die at energy <= 0
- Delivering food restores +{energy_gain:g} energy
- Energy decays by {energy_decay:g} per tick

YOUR TASK:
For each ant provided, select a target food URL that fits its role, its energy level and the colony's pheromone memory. Return the decisions as JSON.

"""

# Holds literal JSON braces; not a format string
_PROMPT_TAIL = """OUTPUT FORMAT (strict JSON only, no markdown):
{
  "decisions": [
    {
      "antId": "ant id from the list",
      "targetUrl": "one of the food source URLs",
      "reasoning": "one short sentence"
    }
  ]
}

IMPORTANT:
- Return ONLY valid JSON
- Use only ant ids and URLs that appear in the request
- Include a decision for every ant provided
- Keep reasoning under 100 characters"""


def build_system_prompt(agent_config: Optional[AgentConfig] = None) -> str:
    """System prompt with the energy rules of the given agent config"""
    agent_config = agent_config or AgentConfig()
    energy = _ENERGY_SECTION.format(
        latency_penalty=agent_config.latency_penalty_factor,
        energy_gain=agent_config.energy_gain_on_food,
        energy_decay=agent_config.energy_decay_per_tick,
    )
    return _PROMPT_HEAD + energy + _PROMPT_TAIL


SYSTEM_PROMPT = build_system_prompt()


def _outcome_label(entry) -> str:
    if entry.success:
        return f"food (nutrition {entry.nutrition:.1f})"
    danger = entry.danger.value if entry.danger else "failure"
    return f"{danger} (status {entry.status})"


def build_state_snapshot(agents: Sequence["Ant"], view: "ColonyView",
                         history_length: int = 5) -> StateSnapshot:
    """Structured snapshot of the colony for one decision request"""
    food_sources = []
    for node in view.topology.food_endpoints():
        record = view.registry.get_entry(node.url)
        intensity = view.registry.effective_intensity(node.url, view.now)
        avg_latency = None
        if record is not None and record.visits > 0:
            avg_latency = int(round(record.avg_latency))
        food_sources.append({
            "url": node.url,
            "name": node.name,
            "type": node.food_class.value if node.food_class else "unknown",
            "pheromoneIntensity": round(intensity, 2),
            "averageLatency": avg_latency,
            "visits": record.visits if record is not None else 0,
        })
    food_sources.sort(key=lambda fs: fs["pheromoneIntensity"], reverse=True)

    recent = list(view.recent_activity)[-history_length:] if history_length > 0 else []
    outcomes = []
    for entry in recent:
        node = view.topology.get_endpoint(entry.url)
        outcomes.append({
            "antRole": entry.role.value,
            "targetName": node.name if node is not None else entry.url,
            "outcome": _outcome_label(entry),
        })

    return {
        "colonyStats": {
            "totalAnts": view.population,
            "foodStored": view.food_stored,
            "tickCount": view.tick_count,
            "totalFood": view.stats.total_food,
            "totalBirths": view.stats.total_births,
            "totalDeaths": view.stats.total_deaths,
        },
        "ants": [
            {
                "id": ant.id,
                "role": ant.role.value,
                "energy": int(round(ant.energy)),
                "ticksAlive": ant.ticks_alive,
                "recentlyVisited": list(ant.recent_targets[-3:]),
            }
            for ant in agents
        ],
        "foodSources": food_sources,
        "topPheromoneTrails": [
            {"url": fs["url"], "intensity": fs["pheromoneIntensity"]}
            for fs in food_sources[:5]
        ],
        "recentOutcomes": outcomes,
    }


def format_user_prompt(snapshot: StateSnapshot) -> str:
    """Render the snapshot as the user message"""
    stats = snapshot["colonyStats"]
    lines = [
        f"COLONY STATE (Tick {stats['tickCount']}):",
        f"- Total Ants: {stats['totalAnts']}",
        f"- Food Stored: {stats['foodStored']}",
        "",
        f"ANTS AWAITING ORDERS ({len(snapshot['ants'])}):",
    ]
    for ant in snapshot["ants"]:
        lines.append(
            f"- {ant['id']}: {ant['role'].upper()}, Energy={ant['energy']}, Age={ant['ticksAlive']}"
        )
        if ant["recentlyVisited"]:
            lines.append(f"  Recently visited: {', '.join(ant['recentlyVisited'])}")

    lines.append("")
    lines.append("FOOD SOURCES:")
    for fs in snapshot["foodSources"]:
        intensity = fs["pheromoneIntensity"]
        if intensity > 0.5:
            trail = f"STRONG trail (+{intensity})"
        elif intensity < -0.5:
            trail = f"DANGER ({intensity})"
        elif intensity > 0:
            trail = f"weak trail (+{intensity})"
        else:
            trail = "UNEXPLORED"
        latency = f"~{fs['averageLatency']}ms RTT" if fs["averageLatency"] is not None else "unknown RTT"
        lines.append(f"- {fs['name']} ({fs['type']})")
        lines.append(f"  URL: {fs['url']}")
        lines.append(f"  Pheromone: {trail}, {latency}, {fs['visits']} visits")

    if snapshot["recentOutcomes"]:
        lines.append("")
        lines.append("RECENT OUTCOMES (for learning):")
        for outcome in snapshot["recentOutcomes"][-3:]:
            lines.append(f"- {outcome['antRole']} ant → {outcome['targetName']}: {outcome['outcome']}")

    lines.append("")
    lines.append(
        f"Provide target URL selections for all {len(snapshot['ants'])} ants in JSON format."
    )
    return "\n".join(lines)


# =============================================================================
# PARSING
# =============================================================================

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")


def strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", text))
    return text.strip()


def parse_decisions(response: str, agent_ids: Set[str], valid_urls: Set[str],
                    reasoning_chars: int = 100) -> ParsedDecisions:
    """
    Validate an external response against the submitted batch.

    Raises:
        DecisionParseError: the response as a whole is unusable

    Individual items with unknown ants, unknown endpoints or a bad shape
    are dropped and reported in `rejected`; the first valid decision for
    an ant wins.
    """
    if response is None or not str(response).strip():
        raise DecisionParseError("empty_response", raw=response or "")

    text = strip_code_fence(str(response))
    try:
        payload = json.loads(text)
    except ValueError as e:
        raise DecisionParseError(f"invalid_json: {e}", raw=response) from e

    try:
        batch = DecisionBatch.model_validate(payload)
    except ValidationError as e:
        raise DecisionParseError(
            f"missing_decisions_array: {e.error_count()} error(s)", raw=response
        ) from e

    decisions: Dict[str, TargetDecision] = {}
    rejected: List[str] = []
    for item in batch.decisions:
        try:
            decision = ExternalDecision.model_validate(item)
        except ValidationError as e:
            rejected.append(f"malformed decision: {e.error_count()} error(s)")
            continue
        if decision.agent_id not in agent_ids:
            rejected.append(f"unknown ant {decision.agent_id}")
            continue
        if decision.target_url not in valid_urls:
            rejected.append(f"invalid target {decision.target_url} for {decision.agent_id}")
            continue
        if decision.agent_id in decisions:
            rejected.append(f"duplicate decision for {decision.agent_id}")
            continue
        decisions[decision.agent_id] = TargetDecision(
            agent_id=decision.agent_id,
            url=decision.target_url,
            rationale=decision.reasoning[:reasoning_chars],
            source="external",
        )

    for reason in rejected:
        logger.debug(f"Rejected external decision: {reason}")
    return ParsedDecisions(decisions=decisions, rejected=rejected)


def merge_decisions(external: Dict[str, TargetDecision], agents: Sequence["Ant"],
                    fallback: Dict[str, TargetDecision]) -> Dict[str, TargetDecision]:
    """
    Per-agent merge: external decision if present, else the fallback.

    Pure; ants with neither are left out.
    """
    merged: Dict[str, TargetDecision] = {}
    for ant in agents:
        decision: Optional[TargetDecision] = external.get(ant.id) or fallback.get(ant.id)
        if decision is not None:
            merged[ant.id] = decision
    return merged
