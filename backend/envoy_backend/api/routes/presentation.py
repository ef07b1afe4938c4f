from fastapi import APIRouter
from typing import Any, Dict, Optional

from ...models.presentation import AGENT_STYLES, FILTER_ICONS, ROLE_STYLES, date_group_titles, style_for
from ...models.thread import MessageRole

router = APIRouter()

@router.get("")
async def get_presentation() -> Dict[str, Any]:
    """Icons, colors and section titles for rendering threads."""
    return {
        "roles": {role.value: style._asdict() for role, style in ROLE_STYLES.items()},
        "agents": {name: style._asdict() for name, style in AGENT_STYLES.items()},
        "filters": {thread_filter.value: icon for thread_filter, icon in FILTER_ICONS.items()},
        "date_groups": date_group_titles(),
    }

@router.get("/style")
async def get_message_style(role: MessageRole, agent_name: Optional[str] = None) -> Dict[str, str]:
    """Icon and color for one message, preferring the answering agent's own style."""
    return style_for(role, agent_name)._asdict()
