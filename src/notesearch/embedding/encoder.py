"""Embedding model management."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Literal, Protocol, Sequence, runtime_checkable

import numpy as np
from sentence_transformers import SentenceTransformer

DEFAULT_MODEL = "sentence-transformers/all-MiniLM-L6-v2"

logger = logging.getLogger(__name__)


@runtime_checkable
class EmbeddingFunction(Protocol):
    """Capability used by the notes table to vectorize text.

    Query embeddings are computed at search time, source embeddings in
    batches when records are added.
    """

    def ndims(self) -> int: ...

    def embedding_data_type(self) -> np.dtype: ...

    async def compute_query_embedding(self, text: str) -> np.ndarray: ...

    async def compute_source_embeddings(self, texts: Sequence[str]) -> np.ndarray: ...


@dataclass(slots=True)
class EmbeddingConfig:
    model_name: str = DEFAULT_MODEL
    batch_size: int = 16
    normalize: bool = True
    backend: Literal["torch", "onnx", "openvino"] = "torch"
    device: str | None = None


class SentenceTransformerEmbedding:
    """`SentenceTransformer` exposed through the `EmbeddingFunction` interface.

    Encoding is CPU/GPU bound, so the async methods run it in a worker thread
    and keep the event loop free for the other concurrent lookups.
    """

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self.config = config or EmbeddingConfig()

        try:
            self._model = self._load_model()
        except Exception as e:
            if self.config.backend != "torch":
                logger.warning(
                    "Failed to load model with backend '%s': %s. Falling back to PyTorch.",
                    self.config.backend,
                    e,
                )
                self.config.backend = "torch"
                self._model = self._load_model()
            else:
                raise

        self.dimension = int(self._model.get_sentence_embedding_dimension())
        logger.info(
            "Loaded %s (backend: %s, dimension: %d)",
            self.config.model_name,
            self.config.backend,
            self.dimension,
        )

    def _load_model(self) -> SentenceTransformer:
        return SentenceTransformer(
            self.config.model_name,
            backend=self.config.backend,
            device=self.config.device,
        )

    def ndims(self) -> int:
        return self.dimension

    def embedding_data_type(self) -> np.dtype:
        return np.dtype("float32")

    def embed(self, texts: Sequence[str] | Iterable[str]) -> np.ndarray:
        """Return float32 embeddings for input texts."""
        sentences = list(texts)
        if not sentences:
            return np.empty((0, self.dimension), dtype="float32")
        embeddings = self._model.encode(
            sentences,
            batch_size=self.config.batch_size,
            show_progress_bar=False,
            convert_to_numpy=True,
            normalize_embeddings=self.config.normalize,
        )
        return embeddings.astype("float32", copy=False)

    async def compute_query_embedding(self, text: str) -> np.ndarray:
        embeddings = await asyncio.to_thread(self.embed, [text])
        return embeddings[0]

    async def compute_source_embeddings(self, texts: Sequence[str]) -> np.ndarray:
        return await asyncio.to_thread(self.embed, texts)
