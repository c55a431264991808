"""Tests for the Gemini embedding client."""

from unittest.mock import AsyncMock

import pytest
from google.api_core import exceptions as google_exceptions
from tenacity import wait_none

from src.core.services.embedding import MAX_INPUT_CHARS, EmbeddingService
from src.utils.errors import ConfigurationError, EmbeddingFailure


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(EmbeddingService._embed_batch.retry, "wait", wait_none())


def _fake_embed(dimension=4):
    async def embed_content_async(model, content, task_type, output_dimensionality):
        return {"embedding": [[float(len(text))] * dimension for text in content]}

    return AsyncMock(side_effect=embed_content_async)


@pytest.mark.asyncio
async def test_documents_embedded_in_batches(monkeypatch):
    fake = _fake_embed()
    monkeypatch.setattr("src.core.services.embedding.genai.embed_content_async", fake)
    service = EmbeddingService(model="models/text-embedding-004", dimension=4, batch_size=2)

    vectors = await service.embed_documents(["a", "bb", "ccc", "dddd", "eeeee"])

    assert [v[0] for v in vectors] == [1.0, 2.0, 3.0, 4.0, 5.0]
    assert fake.await_count == 3
    first = fake.await_args_list[0].kwargs
    assert first["content"] == ["a", "bb"]
    assert first["task_type"] == "retrieval_document"
    assert first["output_dimensionality"] == 4


@pytest.mark.asyncio
async def test_query_uses_query_task(monkeypatch):
    fake = _fake_embed()
    monkeypatch.setattr("src.core.services.embedding.genai.embed_content_async", fake)
    service = EmbeddingService(dimension=4)

    vector = await service.embed_query("how do I\ninstall?")

    assert len(vector) == 4
    kwargs = fake.await_args.kwargs
    assert kwargs["task_type"] == "retrieval_query"
    assert kwargs["content"] == ["how do I install?"]


@pytest.mark.asyncio
async def test_empty_document_list_makes_no_call(monkeypatch):
    fake = _fake_embed()
    monkeypatch.setattr("src.core.services.embedding.genai.embed_content_async", fake)
    assert await EmbeddingService(dimension=4).embed_documents([]) == []
    fake.assert_not_awaited()


@pytest.mark.asyncio
async def test_long_input_truncated(monkeypatch):
    fake = _fake_embed()
    monkeypatch.setattr("src.core.services.embedding.genai.embed_content_async", fake)
    await EmbeddingService(dimension=4).embed_documents(["x" * (MAX_INPUT_CHARS * 2)])
    sent = fake.await_args.kwargs["content"][0]
    assert len(sent) == MAX_INPUT_CHARS + 3


@pytest.mark.asyncio
async def test_wrong_dimension_is_configuration_error(monkeypatch):
    monkeypatch.setattr("src.core.services.embedding.genai.embed_content_async", _fake_embed(dimension=3))
    service = EmbeddingService(dimension=4)
    with pytest.raises(ConfigurationError, match="3 dimensions"):
        await service.verify_dimension()


@pytest.mark.asyncio
async def test_transient_errors_are_retried(monkeypatch):
    fake = AsyncMock(side_effect=[
        google_exceptions.ServiceUnavailable("busy"),
        {"embedding": [[0.5] * 4]},
    ])
    monkeypatch.setattr("src.core.services.embedding.genai.embed_content_async", fake)

    vector = await EmbeddingService(dimension=4).embed_query("retry me")

    assert vector == [0.5] * 4
    assert fake.await_count == 2


@pytest.mark.asyncio
async def test_retries_exhausted_raise_embedding_failure(monkeypatch):
    fake = AsyncMock(side_effect=google_exceptions.ResourceExhausted("quota"))
    monkeypatch.setattr("src.core.services.embedding.genai.embed_content_async", fake)

    with pytest.raises(EmbeddingFailure, match="quota"):
        await EmbeddingService(dimension=4).embed_documents(["text"])
    assert fake.await_count == 3


@pytest.mark.asyncio
async def test_permanent_error_not_retried(monkeypatch):
    fake = AsyncMock(side_effect=google_exceptions.PermissionDenied("bad key"))
    monkeypatch.setattr("src.core.services.embedding.genai.embed_content_async", fake)

    with pytest.raises(EmbeddingFailure):
        await EmbeddingService(dimension=4).embed_query("text")
    assert fake.await_count == 1


@pytest.mark.asyncio
async def test_missing_vectors_are_embedding_failure(monkeypatch):
    fake = AsyncMock(return_value={"embedding": [[0.1] * 4]})
    monkeypatch.setattr("src.core.services.embedding.genai.embed_content_async", fake)

    with pytest.raises(EmbeddingFailure, match="1 vectors for 3 texts"):
        await EmbeddingService(dimension=4).embed_documents(["one", "two", "three"])
