"""Language-model access, generation defaults and agent instructions."""

from .client import Completion, LanguageModel, OpenAIChatModel, build_language_model

__all__ = ["Completion", "LanguageModel", "OpenAIChatModel", "build_language_model"]
