"""Tests for the sentence-transformers embedding function."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from notesearch.embedding.encoder import (
    DEFAULT_MODEL,
    EmbeddingConfig,
    EmbeddingFunction,
    SentenceTransformerEmbedding,
)


@pytest.fixture
def mock_model():
    model = MagicMock()
    model.get_sentence_embedding_dimension.return_value = 4
    model.encode.side_effect = lambda sentences, **kwargs: np.ones(
        (len(sentences), 4), dtype="float64"
    )
    return model


class TestEmbeddingConfig:
    def test_defaults(self) -> None:
        config = EmbeddingConfig()

        assert config.model_name == DEFAULT_MODEL
        assert config.batch_size == 16
        assert config.normalize is True
        assert config.backend == "torch"
        assert config.device is None


class TestSentenceTransformerEmbedding:
    @patch("notesearch.embedding.encoder.SentenceTransformer")
    def test_init(self, mock_st: MagicMock, mock_model: MagicMock) -> None:
        mock_st.return_value = mock_model

        embedder = SentenceTransformerEmbedding(EmbeddingConfig(model_name="tiny-model"))

        mock_st.assert_called_once_with("tiny-model", backend="torch", device=None)
        assert embedder.ndims() == 4
        assert embedder.embedding_data_type() == np.dtype("float32")
        assert isinstance(embedder, EmbeddingFunction)

    @patch("notesearch.embedding.encoder.SentenceTransformer")
    def test_fallback_to_torch(self, mock_st: MagicMock, mock_model: MagicMock) -> None:
        mock_st.side_effect = [RuntimeError("onnx missing"), mock_model]

        embedder = SentenceTransformerEmbedding(EmbeddingConfig(backend="onnx"))

        assert embedder.config.backend == "torch"
        assert mock_st.call_count == 2
        assert mock_st.call_args[1]["backend"] == "torch"

    @patch("notesearch.embedding.encoder.SentenceTransformer")
    def test_torch_failure_raises(self, mock_st: MagicMock) -> None:
        mock_st.side_effect = RuntimeError("model not found")

        with pytest.raises(RuntimeError, match="model not found"):
            SentenceTransformerEmbedding()

    @patch("notesearch.embedding.encoder.SentenceTransformer")
    def test_embed_returns_float32(self, mock_st: MagicMock, mock_model: MagicMock) -> None:
        mock_st.return_value = mock_model
        embedder = SentenceTransformerEmbedding()

        embeddings = embedder.embed(["a", "b"])

        assert embeddings.shape == (2, 4)
        assert embeddings.dtype == np.float32
        kwargs = mock_model.encode.call_args[1]
        assert kwargs["normalize_embeddings"] is True
        assert kwargs["batch_size"] == 16

    @patch("notesearch.embedding.encoder.SentenceTransformer")
    def test_embed_empty(self, mock_st: MagicMock, mock_model: MagicMock) -> None:
        mock_st.return_value = mock_model
        embedder = SentenceTransformerEmbedding()

        assert embedder.embed([]).shape == (0, 4)
        mock_model.encode.assert_not_called()

    @pytest.mark.asyncio
    @patch("notesearch.embedding.encoder.SentenceTransformer")
    async def test_async_embeddings(self, mock_st: MagicMock, mock_model: MagicMock) -> None:
        mock_st.return_value = mock_model
        embedder = SentenceTransformerEmbedding()

        query = await embedder.compute_query_embedding("tent")
        sources = await embedder.compute_source_embeddings(["a", "b", "c"])

        assert query.shape == (4,)
        assert sources.shape == (3, 4)
