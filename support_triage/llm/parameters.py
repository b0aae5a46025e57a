"""Generation parameter defaults per pipeline task."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


class GenerationParameterStore:
    """Maintain task specific generation parameter defaults."""

    _DEFAULTS: Mapping[str, dict[str, Any]] = {
        "classification": {"temperature": 0.3, "max_tokens": 500},
        "drafting": {"temperature": 0.7, "max_tokens": 1500},
    }

    def __init__(self, overrides: Mapping[str, Mapping[str, Any]] | None = None):
        self._defaults: dict[str, dict[str, Any]] = {
            task: dict(params) for task, params in self._DEFAULTS.items()
        }
        if overrides:
            for task, params in overrides.items():
                merged = self._defaults.setdefault(task.lower(), {})
                merged.update(params)

    def defaults_for_task(self, task: str) -> dict[str, Any]:
        """Return defaults for ``task``."""

        return dict(self._defaults.get(task.lower(), {"temperature": 0.5}))

    def merge(self, task: str, *overrides: Mapping[str, Any] | None) -> dict[str, Any]:
        """Merge multiple overrides on top of task defaults."""

        params = self.defaults_for_task(task)
        for override in overrides:
            if override:
                params.update(override)
        return params
