import asyncio
from fastapi import APIRouter, Depends, HTTPException
from src.api.models.chat import ChatRequest, ChatResponse, Source
from src.api.dependencies.auth import verify_token
from src.api.dependencies.services import get_container
from src.core.container import ServiceContainer
from src.utils.errors import AppError
from src.utils.logging import logger

router = APIRouter()

@router.post("/chat", response_model=ChatResponse)
async def chat_endpoint(
    request: ChatRequest,
    authenticated: bool = Depends(verify_token),
    container: ServiceContainer = Depends(get_container)
):
    try:
        # Cancelling the turn on timeout leaves no assistant turn behind
        result = await asyncio.wait_for(
            container.chat_service.handle_turn(request.to_turn_input()),
            container.settings.CHAT_TIMEOUT
        )
    except asyncio.TimeoutError:
        logger.error("Chat turn timed out")
        raise HTTPException(
            status_code=504,
            detail="The assistant took too long to respond. Please try again."
        )
    except AppError as e:
        logger.error(f"Error in chat endpoint: {e}")
        raise HTTPException(status_code=e.status_code, detail=str(e))

    if result.failed:
        raise HTTPException(status_code=502, detail=result.answer)

    return ChatResponse(
        session_id=result.session_id,
        answer=result.answer,
        sources=[Source(**s.model_dump()) for s in result.sources],
        grounded=result.grounded
    )
