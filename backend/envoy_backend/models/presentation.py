"""Icon and color lookups for clients, keyed by role, agent name and filter."""

from typing import Dict, NamedTuple, Optional

from .thread import DateGroup, MessageRole, ThreadFilter


class Style(NamedTuple):
    icon: str
    color: str


ROLE_STYLES: Dict[MessageRole, Style] = {
    MessageRole.USER: Style(icon="person.circle.fill", color="blue"),
    MessageRole.ASSISTANT: Style(icon="sparkles", color="purple"),
}

# Agent templates override the generic assistant style
AGENT_STYLES: Dict[str, Style] = {
    "Marcus Chen": Style(icon="target", color="orange"),
    "Jordan Rivers": Style(icon="figure.run", color="green"),
    "Elena Wordsworth": Style(icon="pencil.and.outline", color="purple"),
    "Sage Meadows": Style(icon="leaf", color="mint"),
    "Devon Debugger": Style(icon="ladybug", color="red"),
}

FILTER_ICONS: Dict[ThreadFilter, str] = {
    ThreadFilter.ALL: "tray.full",
    ThreadFilter.AGENTS: "sparkles",
    ThreadFilter.STARRED: "star",
    ThreadFilter.ARCHIVED: "archivebox",
}


def style_for(role: MessageRole, agent_name: Optional[str] = None) -> Style:
    if role == MessageRole.ASSISTANT and agent_name in AGENT_STYLES:
        return AGENT_STYLES[agent_name]
    return ROLE_STYLES[role]


def date_group_titles() -> Dict[str, str]:
    return {group.value: group.display_name for group in DateGroup}
