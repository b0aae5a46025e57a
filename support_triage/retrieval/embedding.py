"""Query embeddings for semantic search.

The fastembed model is created lazily on first use so importing the package
does not download model weights.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol, Sequence

from fastembed import TextEmbedding

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    def embed(self, texts: Sequence[str]) -> List[List[float]]: ...


class FastEmbedEmbedder:
    """``Embedder`` backed by a local fastembed model."""

    def __init__(self, model_name: str = "BAAI/bge-small-en-v1.5") -> None:
        self.model_name = model_name
        self._model: Optional[TextEmbedding] = None

    def _get_model(self) -> TextEmbedding:
        if self._model is None:
            logger.info("Loading embedding model %s", self.model_name)
            self._model = TextEmbedding(model_name=self.model_name)
        return self._model

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        return [list(map(float, vector)) for vector in self._get_model().embed(list(texts))]
