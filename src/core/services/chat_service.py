import asyncio
import hashlib
from contextlib import asynccontextmanager
from typing import Dict, List, Optional
from uuid import uuid4
from src.config.settings import RagConfig, settings
from src.core.models.chat import (
    ConversationTurn,
    ImageInput,
    Role,
    SourceRef,
    TurnInput,
    TurnResult,
    TurnState,
)
from src.core.models.documents import ScoredPassage
from src.core.services.generation import GenerationService
from src.core.services.retriever import Retriever
from src.utils.errors import ConfigurationError, GenerationFailure, InvalidTurn, PersistenceFailure
from src.utils.logging import alert_logger, logger

NOT_FOUND_NOTICE = "I could not find this in the documentation."
GENERATION_FAILED_MESSAGE = (
    "Sorry, I could not generate a response right now. Please try again in a moment."
)
IMAGE_ONLY_PLACEHOLDER = "(image attached)"


class SessionLocks:
    """One asyncio.Lock per active session id.

    Turns of the same session run one at a time in arrival order; turns of
    different sessions never wait on each other. Entries are dropped once no
    task holds or waits for them.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, session_id: str):
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._holders[session_id] = self._holders.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[session_id] -= 1
            if self._holders[session_id] == 0:
                del self._holders[session_id]
                del self._locks[session_id]


def make_image_ref(image: ImageInput) -> str:
    return f"{image.mime_type};sha256={hashlib.sha256(image.data).hexdigest()}"


def ensure_not_found_notice(answer: str) -> str:
    if NOT_FOUND_NOTICE.lower() in answer.lower():
        return answer
    return f"{NOT_FOUND_NOTICE}\n\n{answer}"


class ChatService:
    """Runs one chat turn: RECEIVED -> IMAGE_DESCRIBED? -> RETRIEVED? -> GENERATING -> RESPONDED.

    Image description, retrieval and persistence failures degrade the turn;
    only a generation failure ends it in FAILED.
    """

    def __init__(
        self,
        retriever: Retriever,
        generation_service: GenerationService,
        conversation_store,
        config: RagConfig,
        system_prompt: str = None,
        retrieval_timeout: float = None,
        session_locks: Optional[SessionLocks] = None
    ):
        self.retriever = retriever
        self.generation_service = generation_service
        self.conversation_store = conversation_store
        self.config = config
        self.system_prompt = system_prompt or settings.SYSTEM_PROMPT
        self.retrieval_timeout = retrieval_timeout or settings.RETRIEVAL_TIMEOUT
        self.session_locks = session_locks or SessionLocks()

    async def _describe_image(self, image: ImageInput) -> str:
        try:
            return await self.generation_service.describe_image(image)
        except Exception as e:
            logger.warning(f"Image analysis failed, continuing text-only: {e}")
            return ""

    async def retrieve_relevant_chunks(self, query: str) -> List[ScoredPassage]:
        try:
            return await asyncio.wait_for(self.retriever.search(query), self.retrieval_timeout)
        except ConfigurationError:
            raise
        except asyncio.TimeoutError:
            logger.warning(f"Retrieval timed out after {self.retrieval_timeout}s, answering without documentation")
        except Exception as e:
            logger.warning(f"Retrieval failed, answering without documentation: {e}")
        return []

    async def _load_history(self, session_id: str) -> List[ConversationTurn]:
        try:
            return await self.conversation_store.history(session_id, self.config.history_window)
        except PersistenceFailure as e:
            alert_logger.error(f"Could not load history for session {session_id}: {e}")
            return []

    async def _persist(self, session_id: str, role: Role, content: str, image_ref: str = None):
        try:
            await self.conversation_store.append(session_id, role, content, image_ref)
        except PersistenceFailure as e:
            alert_logger.error(f"Could not persist {role.value} turn for session {session_id}: {e}")

    def prepare_sources(self, passages: List[ScoredPassage]) -> List[SourceRef]:
        """Distinct source documents in rank order."""
        sources = []
        seen = set()
        for passage in passages:
            if passage.document_id in seen:
                continue
            seen.add(passage.document_id)
            sources.append(SourceRef(
                document_id=passage.document_id,
                filepath=passage.metadata.get("filepath", passage.document_id),
                filename=passage.metadata.get("filename", passage.document_id.rsplit("/", 1)[-1]),
                category=passage.metadata.get("category", "")
            ))
        return sources

    async def handle_turn(self, turn: TurnInput) -> TurnResult:
        text = (turn.text or "").strip()
        if not text and turn.image is None:
            raise InvalidTurn("A chat turn needs text or an image")

        session_id = turn.session_id or uuid4().hex
        state = TurnState.RECEIVED

        async with self.session_locks.hold(session_id):
            query = text
            image_ref = None
            if turn.image is not None:
                image_ref = make_image_ref(turn.image)
                description = await self._describe_image(turn.image)
                if description:
                    query = f"{text}\n\nImage description: {description}".strip()
                    state = TurnState.IMAGE_DESCRIBED

            passages = await self.retrieve_relevant_chunks(query) if query else []
            if passages:
                state = TurnState.RETRIEVED

            history = await self._load_history(session_id)
            await self._persist(session_id, Role.USER, text or IMAGE_ONLY_PLACEHOLDER, image_ref)

            state = TurnState.GENERATING
            logger.info(f"Session {session_id}: generating with {len(passages)} passages, {len(history)} history turns")
            try:
                answer = await self.generation_service.generate(
                    system_prompt=self.system_prompt,
                    history=history,
                    passages=passages,
                    user_text=query or IMAGE_ONLY_PLACEHOLDER,
                    image=turn.image
                )
            except GenerationFailure as e:
                logger.error(f"Session {session_id}: generation failed: {e}")
                return TurnResult(
                    session_id=session_id,
                    answer=GENERATION_FAILED_MESSAGE,
                    failed=True,
                    state=TurnState.FAILED
                )

            if not passages:
                answer = ensure_not_found_notice(answer)

            await self._persist(session_id, Role.ASSISTANT, answer)
            state = TurnState.RESPONDED

        return TurnResult(
            session_id=session_id,
            answer=answer,
            sources=self.prepare_sources(passages),
            grounded=bool(passages),
            state=state
        )
