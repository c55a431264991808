"""Tests for prompt assembly and the Gemini generation client."""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from google.api_core import exceptions as google_exceptions
from tenacity import wait_none

from src.core.models.chat import ConversationTurn, ImageInput, Role
from src.core.models.documents import ScoredPassage
from src.core.services.generation import (
    IMAGE_DESCRIPTION_PROMPT,
    GenerationService,
    format_passages,
)
from src.utils.errors import GenerationFailure, ImageAnalysisFailure


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(GenerationService._generate_content.retry, "wait", wait_none())


def _passage(doc_id, text, score=0.9, category="guides"):
    return ScoredPassage(
        chunk_id=f"{doc_id}#0",
        document_id=doc_id,
        text=text,
        score=score,
        metadata={"filepath": doc_id, "category": category}
    )


def _model_returning(*responses):
    model = MagicMock()
    model.generate_content_async = AsyncMock(side_effect=list(responses))
    factory = MagicMock(return_value=model)
    return factory, model


def test_format_passages_numbers_sources():
    text = format_passages([
        _passage("guides/install.md", "Run the installer."),
        _passage("faq.md", "Restart the service.", category=""),
    ])
    assert text.startswith("[1] Source: guides/install.md (category: guides)\nRun the installer.")
    assert "\n\n---\n\n[2] Source: faq.md\nRestart the service." in text


def test_build_contents_maps_history_roles():
    created = datetime(2024, 1, 1, tzinfo=timezone.utc)
    history = [
        ConversationTurn(session_id="s", role=Role.USER, content="hi", created_at=created),
        ConversationTurn(session_id="s", role=Role.ASSISTANT, content="hello", created_at=created),
    ]
    contents = GenerationService().build_contents(history, [], "what now?")

    assert [c["role"] for c in contents] == ["user", "model", "user"]
    assert contents[1]["parts"] == ["hello"]
    final = contents[-1]["parts"][0]
    assert final.startswith("Question: what now?")
    assert "(no matching documentation was found)" in final


def test_build_contents_attaches_image():
    image = ImageInput(mime_type="image/png", data=b"png")
    contents = GenerationService().build_contents([], [_passage("a.md", "alpha")], "what is this?", image)

    parts = contents[-1]["parts"]
    assert "[1] Source: a.md" in parts[0]
    assert parts[1] == {"mime_type": "image/png", "data": b"png"}


@pytest.mark.asyncio
async def test_generate_passes_system_prompt(monkeypatch):
    factory, model = _model_returning(SimpleNamespace(text="  Install with the wizard [1].  "))
    monkeypatch.setattr("src.core.services.generation.genai.GenerativeModel", factory)
    service = GenerationService(model="gemini-test")

    answer = await service.generate("Be precise.", [], [_passage("a.md", "wizard")], "how to install?")

    assert answer == "Install with the wizard [1]."
    factory.assert_called_once_with("gemini-test", system_instruction="Be precise.")
    contents = model.generate_content_async.await_args.args[0]
    assert "wizard" in contents[-1]["parts"][0]


@pytest.mark.asyncio
async def test_generate_retries_transient_error(monkeypatch):
    factory, model = _model_returning(
        google_exceptions.DeadlineExceeded("slow"),
        SimpleNamespace(text="ok"),
    )
    monkeypatch.setattr("src.core.services.generation.genai.GenerativeModel", factory)

    assert await GenerationService().generate("p", [], [], "q") == "ok"
    assert model.generate_content_async.await_count == 2


@pytest.mark.asyncio
async def test_generate_failure(monkeypatch):
    factory, _ = _model_returning(*[google_exceptions.ServiceUnavailable("down")] * 3)
    monkeypatch.setattr("src.core.services.generation.genai.GenerativeModel", factory)

    with pytest.raises(GenerationFailure):
        await GenerationService().generate("p", [], [], "q")


@pytest.mark.asyncio
async def test_empty_generation_is_failure(monkeypatch):
    factory, _ = _model_returning(SimpleNamespace(text="   "))
    monkeypatch.setattr("src.core.services.generation.genai.GenerativeModel", factory)

    with pytest.raises(GenerationFailure, match="empty"):
        await GenerationService().generate("p", [], [], "q")


@pytest.mark.asyncio
async def test_describe_image(monkeypatch):
    factory, model = _model_returning(SimpleNamespace(text="Error dialog E2001\n"))
    monkeypatch.setattr("src.core.services.generation.genai.GenerativeModel", factory)
    service = GenerationService(vision_model="gemini-vision-test")

    description = await service.describe_image(ImageInput(mime_type="image/jpeg", data=b"jpg"))

    assert description == "Error dialog E2001"
    factory.assert_called_once_with("gemini-vision-test")
    parts = model.generate_content_async.await_args.args[0][0]["parts"]
    assert parts[0] == IMAGE_DESCRIPTION_PROMPT


@pytest.mark.asyncio
async def test_describe_image_failure(monkeypatch):
    factory, _ = _model_returning(ValueError("blocked"))
    monkeypatch.setattr("src.core.services.generation.genai.GenerativeModel", factory)

    with pytest.raises(ImageAnalysisFailure):
        await GenerationService().describe_image(ImageInput(mime_type="image/png", data=b"png"))
