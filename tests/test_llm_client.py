from types import SimpleNamespace

import pytest

from support_triage.exceptions import LLMNotConfiguredError
from support_triage.llm.client import OpenAIChatModel
from support_triage.llm.parameters import GenerationParameterStore
from support_triage.llm.providers import ProviderRegistry
from support_triage.settings import TriageSettings


class _Completions:
    def __init__(self):
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        return SimpleNamespace(
            model="gpt-4o-mini-2024",
            choices=[
                SimpleNamespace(
                    message=SimpleNamespace(content="  Hello Jane  "), finish_reason="stop"
                )
            ],
            usage=SimpleNamespace(prompt_tokens=11, completion_tokens=7, total_tokens=18),
        )


def _fake_client():
    completions = _Completions()
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


async def test_complete_uses_task_defaults_and_model():
    client, completions = _fake_client()
    model = OpenAIChatModel(TriageSettings(draft_model="gpt-draft"), client=client)

    completion = await model.complete(system_prompt="sys", user_prompt="hi", task="drafting")

    assert completion.content == "Hello Jane"
    assert completion.model == "gpt-4o-mini-2024"
    assert (completion.input_tokens, completion.output_tokens) == (11, 7)
    assert completion.stop_reason == "stop"

    call = completions.calls[0]
    assert call["model"] == "gpt-draft"
    assert call["temperature"] == 0.7
    assert call["max_tokens"] == 1500
    assert call["messages"] == [
        {"role": "system", "content": "sys"},
        {"role": "user", "content": "hi"},
    ]


async def test_call_overrides_win():
    client, completions = _fake_client()
    model = OpenAIChatModel(TriageSettings(), client=client)
    await model.complete(
        system_prompt="s", user_prompt="u", task="classification", temperature=0.0, model="other"
    )
    call = completions.calls[0]
    assert call["temperature"] == 0.0
    assert call["max_tokens"] == 500
    assert call["model"] == "other"


async def test_unconfigured_model_raises(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    model = OpenAIChatModel(TriageSettings())
    assert not model.is_configured
    with pytest.raises(LLMNotConfiguredError):
        await model.complete(system_prompt="s", user_prompt="u", task="drafting")


def test_settings_key_configures_model(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    assert OpenAIChatModel(TriageSettings(openai_api_key="sk-test")).is_configured


def test_provider_registry(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    monkeypatch.setenv("AZURE_OPENAI_API_KEY", "az-key")
    monkeypatch.setenv("AZURE_OPENAI_ENDPOINT", "https://example.openai.azure.com")

    registry = ProviderRegistry({"OpenAI": {"api_key": "sk-override", "base_url": "http://proxy"}})
    openai = registry.get_credentials("openai")
    assert openai.api_key == "sk-override"
    assert openai.extras == {"base_url": "http://proxy"}

    azure = registry.get_credentials("azure")
    assert azure.configured
    assert azure.extras == {"base_url": "https://example.openai.azure.com"}

    assert not registry.get_credentials("anthropic").configured


def test_generation_parameter_store():
    store = GenerationParameterStore({"Drafting": {"max_tokens": 800}, "summary": {"temperature": 0.1}})
    assert store.defaults_for_task("drafting") == {"temperature": 0.7, "max_tokens": 800}
    assert store.defaults_for_task("summary") == {"temperature": 0.1}
    assert store.defaults_for_task("other") == {"temperature": 0.5}
    assert store.merge("classification", None, {"temperature": 0}) == {
        "temperature": 0,
        "max_tokens": 500,
    }
