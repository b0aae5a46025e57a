"""Live registry of active intents, refreshed on an interval."""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional

from .repository import IntentRepository
from .schemas import IntentDefinition

logger = logging.getLogger(__name__)


class IntentCatalog:
    """Cache the active intent set so new intents apply without a redeploy.

    Model output is validated against :meth:`active`, so an intent disabled
    in the store stops being accepted after the next refresh.
    """

    def __init__(
        self,
        repository: IntentRepository,
        *,
        refresh_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._repository = repository
        self._refresh_seconds = refresh_seconds
        self._clock = clock
        self._intents: Optional[Dict[str, IntentDefinition]] = None
        self._loaded_at = 0.0

    async def active(self) -> Dict[str, IntentDefinition]:
        """Return active intents keyed by slug, highest priority first."""

        stale = self._intents is None or self._clock() - self._loaded_at >= self._refresh_seconds
        if stale:
            try:
                intents = await self._repository.list_active_intents()
            except Exception as exc:
                logger.warning("Refreshing intent catalog failed: %s", exc)
                return dict(self._intents or {})
            self._intents = {intent.slug: intent for intent in intents}
            self._loaded_at = self._clock()
            logger.info("Loaded %d active intents", len(self._intents))
        return dict(self._intents or {})

    async def get(self, slug: str) -> Optional[IntentDefinition]:
        return (await self.active()).get(slug)

    def invalidate(self) -> None:
        self._intents = None
