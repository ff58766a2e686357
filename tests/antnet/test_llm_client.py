"""
Unit tests for antnet/llm_client.py
"""

import asyncio
import json
from types import SimpleNamespace

import pytest
from antnet.config import DecisionConfig
from antnet.contracts import DecisionSourceError
from antnet.llm_client import (
    OfflineDecisionSource, OpenAIDecisionSource, get_decision_source, offline_enabled,
)


class FakeCompletions:
    def __init__(self, content=None, error=None, choices=True):
        self.content = content
        self.error = error
        self.choices = choices
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        if not self.choices:
            return SimpleNamespace(choices=[])
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


class TestOfflineFlag:
    """Tests for the offline environment switch"""

    def test_disabled_by_default(self, monkeypatch):
        monkeypatch.delenv("LLM_OFFLINE", raising=False)
        monkeypatch.delenv("ANTNET_OFFLINE", raising=False)
        assert offline_enabled() is False

    @pytest.mark.parametrize("value", ["1", "true", "YES", " on "])
    def test_truthy_values(self, monkeypatch, value):
        monkeypatch.setenv("LLM_OFFLINE", value)
        assert offline_enabled() is True

    def test_falsy_value(self, monkeypatch):
        monkeypatch.setenv("LLM_OFFLINE", "0")
        monkeypatch.delenv("ANTNET_OFFLINE", raising=False)
        assert offline_enabled() is False


class TestSources:
    """Tests for decision sources"""

    def test_offline_source(self):
        source = OfflineDecisionSource()
        text = asyncio.run(source.complete("system", "user", 100, 0.5))
        assert json.loads(text) == {"decisions": []}
        assert source.calls == 1

    def test_openai_source_request(self):
        completions = FakeCompletions(content='{"decisions": []}')
        source = OpenAIDecisionSource("gpt-4o-mini", client=fake_client(completions))
        text = asyncio.run(source.complete("system", "user", 2000, 0.7))
        assert text == '{"decisions": []}'
        request = completions.requests[0]
        assert request["model"] == "gpt-4o-mini"
        assert request["messages"][0] == {"role": "system", "content": "system"}
        assert request["messages"][1] == {"role": "user", "content": "user"}
        assert request["max_tokens"] == 2000

    def test_empty_content(self):
        source = OpenAIDecisionSource("m", client=fake_client(FakeCompletions(content="  ")))
        with pytest.raises(DecisionSourceError):
            asyncio.run(source.complete("s", "u", 10, 0.0))

    def test_no_choices(self):
        source = OpenAIDecisionSource("m", client=fake_client(FakeCompletions(choices=False)))
        with pytest.raises(DecisionSourceError):
            asyncio.run(source.complete("s", "u", 10, 0.0))

    def test_api_error_wrapped(self):
        import openai
        completions = FakeCompletions(error=openai.OpenAIError("quota exceeded"))
        source = OpenAIDecisionSource("m", client=fake_client(completions))
        with pytest.raises(DecisionSourceError, match="quota exceeded"):
            asyncio.run(source.complete("s", "u", 10, 0.0))


class TestFactory:
    """Tests for get_decision_source"""

    def test_offline_env(self, monkeypatch):
        monkeypatch.setenv("LLM_OFFLINE", "1")
        assert isinstance(get_decision_source(DecisionConfig()), OfflineDecisionSource)

    def test_missing_credentials(self, monkeypatch):
        monkeypatch.delenv("LLM_OFFLINE", raising=False)
        monkeypatch.delenv("ANTNET_OFFLINE", raising=False)
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        assert isinstance(get_decision_source(DecisionConfig()), OfflineDecisionSource)

    def test_with_credentials(self, monkeypatch):
        monkeypatch.delenv("LLM_OFFLINE", raising=False)
        monkeypatch.delenv("ANTNET_OFFLINE", raising=False)
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        source = get_decision_source(DecisionConfig(model="gpt-4o-mini"))
        assert isinstance(source, OpenAIDecisionSource)
        assert source.model == "gpt-4o-mini"
