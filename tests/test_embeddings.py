# FILE: tests/test_embeddings.py
"""
Tests for embedding text preparation and batched generation.

The OpenAI client is mocked; the scheduler is real but fast.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest


def _mock_client(dims=3):
    """Client whose embeddings.create returns one vector per input, out of order."""
    client = MagicMock()

    async def create(model, input):
        data = [
            SimpleNamespace(index=i, embedding=[float(i + 1)] * dims)
            for i in range(len(input))
        ]
        return SimpleNamespace(data=list(reversed(data)))

    client.embeddings.create = AsyncMock(side_effect=create)
    return client


class TestPrepareCode:

    def test_function_marker(self):
        from codeplanner.llm.embeddings import prepare_code_for_embedding

        assert prepare_code_for_embedding("function add(a, b) {\n  return a + b;\n}") == (
            "function code: function add(a, b) { return a + b; }"
        )
        assert prepare_code_for_embedding("def add(a, b):\n    return a + b").startswith("function code: ")

    def test_class_marker(self):
        from codeplanner.llm.embeddings import prepare_code_for_embedding
        assert prepare_code_for_embedding("class Repo:\n    pass").startswith("class definition: ")

    def test_interface_marker(self):
        from codeplanner.llm.embeddings import prepare_code_for_embedding
        assert prepare_code_for_embedding("interface User { id: string }").startswith("interface definition: ")

    def test_file_marker(self):
        from codeplanner.llm.embeddings import prepare_code_for_embedding
        assert prepare_code_for_embedding("  x = 1\n\n  y = 2  ") == "code file: x = 1 y = 2"

    def test_truncate(self):
        from codeplanner.llm.embeddings import TRUNCATION_MARKER, truncate_text

        assert truncate_text("short", 10) == "short"
        out = truncate_text("x" * 40, 10)
        assert out == "x" * 10 + TRUNCATION_MARKER


class TestEmbeddingGenerator:

    def _generator(self, client, batch_size=2):
        from codeplanner.llm.embeddings import EmbeddingGenerator
        from codeplanner.llm.scheduler import RateLimitedScheduler

        return EmbeddingGenerator(client, RateLimitedScheduler(6000, "embedding"), batch_size=batch_size)

    @pytest.mark.asyncio
    async def test_batches_and_progress(self):
        client = _mock_client()
        gen = self._generator(client, batch_size=2)
        progress = []

        async def on_batch(done, total):
            progress.append((done, total))

        vectors = await gen.embed_texts(["a", "b", "c", "d", "e"], on_batch=on_batch)

        assert len(vectors) == 5
        assert client.embeddings.create.await_count == 3
        assert progress == [(2, 5), (4, 5), (5, 5)]

    @pytest.mark.asyncio
    async def test_results_reordered_by_index(self):
        client = _mock_client(dims=1)
        gen = self._generator(client, batch_size=3)

        vectors = await gen.embed_texts(["a", "b", "c"])

        assert vectors == [[1.0], [2.0], [3.0]]

    @pytest.mark.asyncio
    async def test_embed_code_adds_markers(self):
        client = _mock_client()
        gen = self._generator(client)

        await gen.embed_code(["def f():\n    return 1"])

        sent = client.embeddings.create.await_args.kwargs["input"]
        assert sent == ["function code: def f(): return 1"]

    @pytest.mark.asyncio
    async def test_embed_query_has_no_marker(self):
        client = _mock_client()
        gen = self._generator(client)

        vector = await gen.embed("add caching to user lookups")

        assert vector == [1.0, 1.0, 1.0]
        assert client.embeddings.create.await_args.kwargs["input"] == ["add caching to user lookups"]

    @pytest.mark.asyncio
    async def test_count_mismatch_raises(self):
        client = MagicMock()
        client.embeddings.create = AsyncMock(return_value=SimpleNamespace(data=[]))
        gen = self._generator(client)

        with pytest.raises(ValueError):
            await gen.embed("query")

    @pytest.mark.asyncio
    async def test_throttled_call_retried(self):
        client = _mock_client()
        throttled = RuntimeError("Error code: 429 - rate limit")
        create = client.embeddings.create.side_effect
        calls = {"n": 0}

        async def flaky(**kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise throttled
            return await create(**kwargs)

        client.embeddings.create = AsyncMock(side_effect=flaky)
        gen = self._generator(client)

        vector = await gen.embed("query")

        assert vector == [1.0, 1.0, 1.0]
        assert calls["n"] == 2

    def test_from_settings_requires_key(self):
        from codeplanner.config import ProviderSettings
        from codeplanner.errors import ConfigurationError
        from codeplanner.llm.embeddings import EmbeddingGenerator
        from codeplanner.llm.scheduler import RateLimitedScheduler

        with pytest.raises(ConfigurationError):
            EmbeddingGenerator.from_settings(ProviderSettings(), RateLimitedScheduler(60), batch_size=20)

    @pytest.mark.asyncio
    async def test_sdk_does_not_retry_behind_scheduler(self, monkeypatch):
        import functools

        import httpx

        from codeplanner.config import ProviderSettings
        from codeplanner.errors import RateLimited
        from codeplanner.llm import embeddings
        from codeplanner.llm.retry import with_rate_limit_retry
        from codeplanner.llm.scheduler import RateLimitedScheduler

        async def no_sleep(delay):
            pass

        monkeypatch.setattr(
            embeddings, "with_rate_limit_retry", functools.partial(with_rate_limit_retry, sleep=no_sleep)
        )
        hits = []

        def handler(request):
            hits.append(request)
            return httpx.Response(429, json={"error": {"message": "Rate limit reached", "type": "requests"}})

        scheduler = RateLimitedScheduler(6000, "embedding")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            gen = embeddings.EmbeddingGenerator.from_settings(
                ProviderSettings(api_key="k", base_url="https://llm.test/v1"),
                scheduler,
                batch_size=20,
                http_client=http_client,
            )

            with pytest.raises(RateLimited):
                await gen.embed("hello")

        assert len(hits) == scheduler.dispatched == 6
