from typing import Any, Dict, List, Optional
import google.generativeai as genai
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type
from src.core.models.chat import ConversationTurn, ImageInput, Role
from src.core.models.documents import ScoredPassage
from src.core.services.embedding import TRANSIENT_ERRORS
from src.utils.errors import GenerationFailure, ImageAnalysisFailure
from src.utils.logging import logger
from src.config.settings import settings

IMAGE_DESCRIPTION_PROMPT = (
    "Describe this image for a documentation search. Transcribe any visible text, "
    "error codes, window titles and messages exactly, then summarize what the image shows."
)


def format_passages(passages: List[ScoredPassage]) -> str:
    """Render passages as numbered blocks the model can cite."""
    context_parts = []
    for i, passage in enumerate(passages, 1):
        filepath = passage.metadata.get("filepath", passage.document_id)
        header = f"[{i}] Source: {filepath}"
        category = passage.metadata.get("category")
        if category:
            header += f" (category: {category})"
        context_parts.append(f"{header}\n{passage.text}")
    return "\n\n---\n\n".join(context_parts)


def _image_part(image: ImageInput) -> Dict[str, Any]:
    return {"mime_type": image.mime_type, "data": image.data}


class GenerationService:
    def __init__(self, model: str = None, vision_model: str = None):
        genai.configure(api_key=settings.GOOGLE_API_KEY)
        self.model_name = model or settings.LLM_MODEL
        self.vision_model_name = vision_model or settings.VISION_MODEL

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        reraise=True
    )
    async def _generate_content(self, model: genai.GenerativeModel, contents: List[Dict[str, Any]]) -> str:
        response = await model.generate_content_async(contents)
        # .text raises ValueError when the candidate was blocked or empty
        return response.text

    def build_contents(
        self,
        history: List[ConversationTurn],
        passages: List[ScoredPassage],
        user_text: str,
        image: Optional[ImageInput] = None
    ) -> List[Dict[str, Any]]:
        contents = []
        for turn in history:
            contents.append({
                "role": "model" if turn.role == Role.ASSISTANT else "user",
                "parts": [turn.content]
            })

        if passages:
            documentation = format_passages(passages)
        else:
            documentation = "(no matching documentation was found)"
        parts: List[Any] = [f"Question: {user_text}\n\nRelevant documentation:\n{documentation}"]
        if image is not None:
            parts.append(_image_part(image))
        contents.append({"role": "user", "parts": parts})
        return contents

    async def generate(
        self,
        system_prompt: str,
        history: List[ConversationTurn],
        passages: List[ScoredPassage],
        user_text: str,
        image: Optional[ImageInput] = None
    ) -> str:
        """Generate the assistant reply for one chat turn."""
        model = genai.GenerativeModel(self.model_name, system_instruction=system_prompt)
        contents = self.build_contents(history, passages, user_text, image)
        try:
            text = await self._generate_content(model, contents)
        except Exception as e:
            logger.error(f"Error generating response: {e}")
            raise GenerationFailure(f"Generation failed: {e}") from e

        if not text or not text.strip():
            raise GenerationFailure("Generation returned an empty response")
        return text.strip()

    async def describe_image(self, image: ImageInput) -> str:
        model = genai.GenerativeModel(self.vision_model_name)
        contents = [{"role": "user", "parts": [IMAGE_DESCRIPTION_PROMPT, _image_part(image)]}]
        try:
            text = await self._generate_content(model, contents)
        except Exception as e:
            logger.error(f"Error describing image: {e}")
            raise ImageAnalysisFailure(f"Image description failed: {e}") from e
        return text.strip()
