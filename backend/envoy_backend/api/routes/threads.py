from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import PlainTextResponse, Response
from typing import Dict, Optional
import logging

from ...models.chat import AssignModelRequest, CreateThreadRequest, RenameThreadRequest
from ...models.thread import Thread, ThreadContainer, ThreadFilter, ThreadFlag, ThreadListing
from ...services.thread_store import ThreadStore, Workspace
from ...core.deps import get_thread_store, get_workspace
from ...core.errors import ThreadNotFoundError

router = APIRouter()
logger = logging.getLogger(__name__)

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_thread(
    request: CreateThreadRequest,
    store: ThreadStore = Depends(get_thread_store)
) -> Thread:
    """Create a new thread."""
    try:
        return store.create(
            title=request.title,
            container=ThreadContainer.from_parts(request.container_kind, request.container_value),
            model_id=request.model_id,
            provider_id=request.provider_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create thread: {str(e)}"
        )

@router.get("")
async def list_threads(
    filter: ThreadFilter = ThreadFilter.ALL,
    agent: Optional[str] = None,
    q: Optional[str] = None,
    store: ThreadStore = Depends(get_thread_store)
) -> ThreadListing:
    """List threads: pinned first, then grouped by last activity."""
    try:
        return store.list(thread_filter=filter, agent_name=agent, search_text=q)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to list threads: {str(e)}"
        )

@router.get("/counts")
async def get_filter_counts(
    store: ThreadStore = Depends(get_thread_store)
) -> Dict[str, int]:
    """Number of threads under each filter."""
    return {thread_filter.value: count for thread_filter, count in store.filter_counts().items()}

@router.get("/{thread_id}")
async def get_thread(
    thread_id: str,
    store: ThreadStore = Depends(get_thread_store)
) -> Thread:
    """Get a specific thread with its messages."""
    try:
        return store.get(thread_id)
    except ThreadNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to get thread: {str(e)}"
        )

@router.patch("/{thread_id}")
async def rename_thread(
    thread_id: str,
    request: RenameThreadRequest,
    store: ThreadStore = Depends(get_thread_store)
) -> Thread:
    """Rename a thread. A blank title leaves the current one in place."""
    try:
        store.rename(thread_id, request.title)
        return store.get(thread_id)
    except ThreadNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to rename thread: {str(e)}"
        )

@router.delete("/{thread_id}")
async def delete_thread(
    thread_id: str,
    workspace: Workspace = Depends(get_workspace)
) -> dict:
    """Delete a thread."""
    try:
        workspace.remove(thread_id)
        return {"success": True}
    except ThreadNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to delete thread: {str(e)}"
        )

@router.post("/{thread_id}/flags/{flag}")
async def toggle_flag(
    thread_id: str,
    flag: ThreadFlag,
    workspace: Workspace = Depends(get_workspace)
) -> dict:
    """Toggle pinned, starred or archived."""
    try:
        value = workspace.toggle_flag(thread_id, flag)
        return {"thread_id": thread_id, "flag": flag.value, "value": value}
    except ThreadNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to toggle {flag.value}: {str(e)}"
        )

@router.put("/{thread_id}/model")
async def assign_model(
    thread_id: str,
    request: AssignModelRequest,
    store: ThreadStore = Depends(get_thread_store)
) -> Thread:
    """Bind a thread to a model and provider, or clear the binding with nulls."""
    try:
        store.assign_model(thread_id, request.model_id, request.provider_id)
        return store.get(thread_id)
    except ThreadNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to assign model: {str(e)}"
        )

@router.get("/{thread_id}/export")
async def export_thread(
    thread_id: str,
    format: str = Query("text", pattern="^(text|json)$"),
    store: ThreadStore = Depends(get_thread_store)
) -> Response:
    """Export a thread as plain text or JSON."""
    try:
        if format == "json":
            return Response(content=store.export_json(thread_id), media_type="application/json")
        return PlainTextResponse(store.export_text(thread_id))
    except ThreadNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to export thread: {str(e)}"
        )
