from fastapi import APIRouter, Depends, HTTPException, status
from typing import Any, Dict
import logging

from ...models.chat import BackendStatus, LoadModelRequest
from ...core.deps import AppContext, get_app_context
from ...core.errors import AgentError, ModelNotAvailableError

router = APIRouter()
logger = logging.getLogger(__name__)

def _status(context: AppContext) -> BackendStatus:
    backend = context.chat_backend
    return BackendStatus(
        is_ready=backend.is_ready,
        is_loading_model=backend.is_loading_model,
        load_progress=backend.load_progress,
        status_message=backend.status_message,
        provider_description=backend.provider_description,
        loaded_model_id=backend.loaded_model_id,
        last_error=backend.last_error,
        generation_stats=backend.generation_stats,
        is_agent_connected=context.agent is not None and context.agent.is_agent_connected,
        active_threads=context.assembler.active_threads,
    )

@router.get("/status")
async def get_status(context: AppContext = Depends(get_app_context)) -> BackendStatus:
    """Readiness of the chat backend and the agent connection."""
    return _status(context)

@router.post("/model")
async def load_model(
    request: LoadModelRequest,
    context: AppContext = Depends(get_app_context)
) -> BackendStatus:
    """Switch the default model used by threads without their own binding."""
    try:
        await context.chat_backend.load_model(request.model_id)
        return _status(context)
    except ModelNotAvailableError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to load model: {str(e)}"
        )

@router.post("/agent/connect")
async def connect_agent(context: AppContext = Depends(get_app_context)) -> Dict[str, Any]:
    """(Re)connect to the configured agent and return its card."""
    if context.agent is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="No agent configured. Set AGENT_URL to enable agent threads."
        )
    try:
        return await context.agent.connect()
    except AgentError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
