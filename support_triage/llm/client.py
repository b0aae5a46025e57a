"""Chat-completion client used for classification and drafting.

The pipeline only needs one call shape: a system prompt plus a single user
prompt, returning text and token usage. ``LanguageModel`` captures that
contract so tests can script responses without touching the network.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from openai import AsyncOpenAI

from ..exceptions import LLMNotConfiguredError
from ..settings import TriageSettings
from .parameters import GenerationParameterStore
from .providers import ProviderRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Completion:
    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: Optional[str] = None


class LanguageModel(Protocol):
    """Minimal contract the pipeline requires from a language model."""

    @property
    def is_configured(self) -> bool: ...

    async def complete(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        task: str,
        **overrides: Any,
    ) -> Completion: ...


class OpenAIChatModel:
    """``LanguageModel`` backed by the OpenAI chat completions API."""

    def __init__(
        self,
        settings: TriageSettings,
        *,
        provider: str = "openai",
        registry: Optional[ProviderRegistry] = None,
        parameters: Optional[GenerationParameterStore] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        overrides = {}
        if settings.openai_api_key:
            overrides[provider] = {"api_key": settings.openai_api_key}
        self._credentials = (registry or ProviderRegistry(overrides)).get_credentials(provider)
        self._parameters = parameters or GenerationParameterStore()
        self._models = {
            "classification": settings.classifier_model,
            "drafting": settings.draft_model,
        }
        self._client = client

    @property
    def is_configured(self) -> bool:
        return self._client is not None or self._credentials.configured

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._credentials.configured:
                raise LLMNotConfiguredError(
                    f"No API key configured for provider '{self._credentials.provider}'"
                )
            self._client = AsyncOpenAI(
                api_key=self._credentials.api_key,
                base_url=self._credentials.extras.get("base_url"),
            )
        return self._client

    async def complete(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        task: str,
        **overrides: Any,
    ) -> Completion:
        client = self._get_client()
        params = self._parameters.merge(task, overrides)
        model = params.pop("model", None) or self._models.get(task, "gpt-4o-mini")
        response = await client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            **params,
        )
        choice = response.choices[0]
        usage = response.usage
        logger.debug(
            "LLM %s call on %s used %s tokens",
            task,
            model,
            usage.total_tokens if usage else "unknown",
        )
        return Completion(
            content=(choice.message.content or "").strip(),
            model=response.model or model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            stop_reason=choice.finish_reason,
        )


def build_language_model(settings: TriageSettings) -> OpenAIChatModel:
    return OpenAIChatModel(settings)
