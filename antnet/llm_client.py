"""
External decision sources.

OpenAIDecisionSource talks to any OpenAI-compatible chat completion API.
Credentials come from the environment (OPENAI_API_KEY, OPENAI_BASE_URL);
nothing is stored by the colony. OfflineDecisionSource answers every
request with an empty batch so the colony runs on its local fallback.
"""

import os
import json
import logging
from typing import Iterable, Optional

import openai

from .config import DecisionConfig
from .contracts import DecisionSourceError

logger = logging.getLogger("antnet.llm_client")

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag_enabled(keys: Iterable[str]) -> bool:
    for key in keys:
        value = os.getenv(key)
        if value is None:
            continue
        if value.strip().lower() in _TRUTHY:
            return True
    return False


def offline_enabled() -> bool:
    return _env_flag_enabled(("LLM_OFFLINE", "ANTNET_OFFLINE"))


class OpenAIDecisionSource:
    """Chat-completion backed decision source"""

    def __init__(self, model: str, api_key: Optional[str] = None,
                 base_url: Optional[str] = None,
                 client: Optional[openai.AsyncOpenAI] = None):
        self.model = model
        self.client = client or openai.AsyncOpenAI(api_key=api_key, base_url=base_url)

    async def complete(self, system_prompt: str, user_prompt: str,
                       max_tokens: int, temperature: float) -> str:
        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except openai.OpenAIError as e:
            raise DecisionSourceError(f"{e.__class__.__name__}: {e}") from e

        if not completion.choices:
            raise DecisionSourceError("empty_response: no choices")
        content = completion.choices[0].message.content
        if content is None or not content.strip():
            raise DecisionSourceError("empty_response")
        return content


class OfflineDecisionSource:
    """Stub source; every ant falls back to the local policy"""

    def __init__(self):
        self.calls = 0

    async def complete(self, system_prompt: str, user_prompt: str,
                       max_tokens: int, temperature: float) -> str:
        self.calls += 1
        return json.dumps({"decisions": []})


def get_decision_source(config: DecisionConfig):
    """Offline stub when requested via environment, otherwise the real client"""
    if offline_enabled():
        logger.info("LLM offline mode: external decisions disabled")
        return OfflineDecisionSource()
    try:
        return OpenAIDecisionSource(model=config.model)
    except openai.OpenAIError as e:
        # Missing credentials surface at client construction
        logger.warning(f"Decision source unavailable ({e}); running offline")
        return OfflineDecisionSource()
