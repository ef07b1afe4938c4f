from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask
from typing import AsyncGenerator, List
import logging

from ...models.chat import ChatRequest, ErrorNotice, StartConversationRequest
from ...models.thread import ThreadContainer
from ...services.conversation_service import ConversationService
from ...services.streaming import GenerationHandle
from ...core.deps import get_conversation_service
from ...core.errors import GenerationInProgressError, ThreadNotFoundError

router = APIRouter()
logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

def _stream_response(handle: GenerationHandle) -> StreamingResponse:
    async def stream_response() -> AsyncGenerator[str, None]:
        chunk_count = 0
        try:
            async for event in handle.stream():
                chunk_count += 1
                yield f"data: {event.model_dump_json()}\n\n"
            logger.info(f"[MESSAGE] Finished streaming thread {handle.thread_id} - total events: {chunk_count}, sending [DONE]")
            yield "data: [DONE]\n\n"
        except Exception as e:
            logger.error(f"[MESSAGE] Error in stream_response generator: {e}", exc_info=True)
            raise

    return StreamingResponse(
        stream_response(),
        media_type="text/event-stream",
        headers={**SSE_HEADERS, "X-Thread-Id": handle.thread_id},
        # Releases the thread if the client disconnects before the body is iterated
        background=BackgroundTask(handle.cancel),
    )

@router.post("/threads/{thread_id}/messages")
async def send_message(
    thread_id: str,
    request: ChatRequest,
    service: ConversationService = Depends(get_conversation_service)
) -> StreamingResponse:
    """Send a message to a thread and stream the reply."""
    try:
        logger.info(f"[MESSAGE] send_message called - thread_id: {thread_id}, message_preview: {request.message[:50] if request.message else 'None'}...")
        handle = service.send_message(thread_id, request.message, request.context)
        return _stream_response(handle)
    except ValueError as e:
        logger.warning(f"[MESSAGE] Rejected message for thread {thread_id}: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ThreadNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except GenerationInProgressError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to process message: {str(e)}"
        )

@router.post("/messages")
async def start_conversation(
    request: StartConversationRequest,
    service: ConversationService = Depends(get_conversation_service)
) -> StreamingResponse:
    """Start a new thread with its first message and stream the reply. The new id is in X-Thread-Id."""
    try:
        container = ThreadContainer.from_parts(request.container_kind, request.container_value)
        handle = service.start_conversation(
            request.message,
            request.context,
            container=container,
            model_id=request.model_id,
            provider_id=request.provider_id,
        )
        return _stream_response(handle)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to start conversation: {str(e)}"
        )

@router.post("/threads/{thread_id}/cancel")
async def cancel_generation(
    thread_id: str,
    service: ConversationService = Depends(get_conversation_service)
) -> dict:
    """Stop the in-flight reply for a thread. Nothing is committed for it."""
    return {"cancelled": service.cancel(thread_id)}

@router.get("/notices")
async def list_notices(
    service: ConversationService = Depends(get_conversation_service)
) -> List[ErrorNotice]:
    """Errors from failed generations that have not been dismissed yet."""
    return service.notices()

@router.delete("/notices/{thread_id}")
async def dismiss_notice(
    thread_id: str,
    service: ConversationService = Depends(get_conversation_service)
) -> dict:
    """Dismiss the error notice for a thread."""
    if not service.dismiss_notice(thread_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No notice for this thread"
        )
    return {"success": True}
