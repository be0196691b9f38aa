"""Tests for embedding providers."""

import asyncio

import pytest


class TestHashEmbeddingProvider:
    @pytest.fixture
    def provider(self):
        from georag.common.embedding_service import HashEmbeddingProvider
        return HashEmbeddingProvider(dimensions=64, batch_size=3)

    @pytest.mark.asyncio
    async def test_deterministic(self, provider):
        first = await provider.embed("Yosemite National Park granite cliffs")
        second = await provider.embed("Yosemite National Park granite cliffs")

        assert first == second
        assert len(first) == provider.dimensions() == 64

    @pytest.mark.asyncio
    async def test_normalized(self, provider):
        import numpy as np

        vector = await provider.embed("river delta wetlands")

        assert np.linalg.norm(vector) == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_empty_text_is_zero_vector(self, provider):
        vector = await provider.embed("   ")

        assert vector == [0.0] * 64

    @pytest.mark.asyncio
    async def test_shared_vocabulary_is_more_similar(self, provider):
        from georag.retriever.vector_store import cosine_similarity

        base = await provider.embed("national park with granite mountains")
        related = await provider.embed("granite mountains in a national park")
        unrelated = await provider.embed("harbor shipping container terminal")

        assert cosine_similarity(base, related) > cosine_similarity(base, unrelated)

    @pytest.mark.asyncio
    async def test_embed_batch_preserves_order(self, provider):
        texts = [f"text number {i}" for i in range(7)]

        batch = await provider.embed_batch(texts)
        singles = [await provider.embed(t) for t in texts]

        assert batch == singles

    @pytest.mark.asyncio
    async def test_embed_batch_bounds_concurrency(self):
        from georag.common.embedding_service import EmbeddingProvider

        class SlowProvider(EmbeddingProvider):
            def __init__(self):
                self.batch_size = 4
                self.active = 0
                self.peak = 0

            def dimensions(self):
                return 1

            async def embed(self, text):
                self.active += 1
                self.peak = max(self.peak, self.active)
                await asyncio.sleep(0)
                self.active -= 1
                return [float(len(text))]

        provider = SlowProvider()
        result = await provider.embed_batch(["a" * i for i in range(10)])

        assert provider.peak == 4
        assert result == [[float(i)] for i in range(10)]


class TestEmbeddingService:
    def test_missing_fastembed_logs_warning(self, caplog):
        import logging
        import sys
        from unittest.mock import patch
        from georag.common.embedding_service import EmbeddingService

        with patch.dict(sys.modules, {"fastembed": None}), \
             caplog.at_level(logging.WARNING, logger="georag.common.embedding_service"):
            service = EmbeddingService()

        assert not service.is_available
        assert "fastembed not available" in caplog.text

    @pytest.mark.asyncio
    async def test_embed_fails_without_model(self):
        import sys
        from unittest.mock import patch
        from georag.common.embedding_service import EmbeddingService

        with patch.dict(sys.modules, {"fastembed": None}):
            service = EmbeddingService()

        with pytest.raises(RuntimeError, match="not initialized"):
            await service.embed("text")

    @pytest.mark.asyncio
    async def test_embed_batch_uses_model(self):
        import sys
        from unittest.mock import MagicMock, patch
        from georag.common.embedding_service import EmbeddingService

        fake_model = MagicMock()
        fake_model.embed.side_effect = lambda texts: [[float(len(t)), 1.0] for t in texts]
        fake_module = MagicMock()
        fake_module.TextEmbedding.return_value = fake_model

        with patch.dict(sys.modules, {"fastembed": fake_module}):
            service = EmbeddingService(batch_size=2)

        vectors = await service.embed_batch(["a", "bb", "ccc"])

        assert vectors == [[1.0, 1.0], [2.0, 1.0], [3.0, 1.0]]
        assert fake_model.embed.call_count == 2
        assert service.dimensions() == 2


class TestCreateEmbeddingProvider:
    def test_hash_mode(self):
        from georag.common.embedding_service import HashEmbeddingProvider, create_embedding_provider

        provider = create_embedding_provider("hash", model="", dimensions=128, batch_size=5)

        assert isinstance(provider, HashEmbeddingProvider)
        assert provider.dimensions() == 128
        assert provider.batch_size == 5

    def test_unknown_mode_raises(self):
        from georag.common.embedding_service import create_embedding_provider

        with pytest.raises(ValueError, match="Unsupported embedding mode"):
            create_embedding_provider("magic", model="", dimensions=8, batch_size=1)
