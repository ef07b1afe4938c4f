from fastapi import APIRouter, Depends, HTTPException, status
import logging

from ...models.chat import SelectionUpdate
from ...services.thread_store import Workspace
from ...core.deps import get_workspace
from ...core.errors import ThreadNotFoundError

router = APIRouter()
logger = logging.getLogger(__name__)

@router.get("")
async def get_selection(workspace: Workspace = Depends(get_workspace)) -> SelectionUpdate:
    """Get the currently selected thread id, if any."""
    return SelectionUpdate(thread_id=workspace.selected_thread_id)

@router.put("")
async def set_selection(
    request: SelectionUpdate,
    workspace: Workspace = Depends(get_workspace)
) -> SelectionUpdate:
    """Select a thread, or clear the selection with a null id."""
    try:
        workspace.select(request.thread_id)
        return SelectionUpdate(thread_id=workspace.selected_thread_id)
    except ThreadNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
