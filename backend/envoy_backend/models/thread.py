from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime, timedelta, timezone
from enum import Enum
from uuid import uuid4


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class MessageMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    model: Optional[str] = None
    provider: Optional[str] = None
    tokens: Optional[int] = None
    latency_ms: Optional[int] = None


class Message(BaseModel):
    """A single committed turn. Frozen: role and content never change after construction."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    role: MessageRole = Field(description="Role of the message sender (user/assistant)")
    content: str = Field(description="Content of the message")
    timestamp: datetime = Field(default_factory=utcnow)
    agent_name: Optional[str] = Field(default=None, description="Display name of the answering agent")
    metadata: Optional[MessageMetadata] = None

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role=MessageRole.USER, content=text)

    @classmethod
    def assistant(
        cls,
        text: str,
        agent_name: Optional[str] = None,
        metadata: Optional[MessageMetadata] = None,
    ) -> "Message":
        return cls(role=MessageRole.ASSISTANT, content=text, agent_name=agent_name, metadata=metadata)


class ContainerKind(str, Enum):
    GLOBAL = "global"
    SPACE = "space"
    AGENT = "agent"
    GROUP = "group"


class ThreadContainer(BaseModel):
    """Where a thread lives: a space, an agent DM, a group DM, or the global scope."""

    model_config = ConfigDict(frozen=True)

    kind: ContainerKind = ContainerKind.GLOBAL
    value: Optional[str] = None

    @classmethod
    def space(cls, space_id: str) -> "ThreadContainer":
        return cls(kind=ContainerKind.SPACE, value=space_id)

    @classmethod
    def agent(cls, name: str) -> "ThreadContainer":
        return cls(kind=ContainerKind.AGENT, value=name)

    @classmethod
    def group(cls, group_id: str) -> "ThreadContainer":
        return cls(kind=ContainerKind.GROUP, value=group_id)

    @classmethod
    def from_parts(cls, kind: ContainerKind, value: Optional[str] = None) -> "ThreadContainer":
        if kind == ContainerKind.GLOBAL:
            return cls()
        if not value:
            raise ValueError(f"A {kind.value} thread needs a container value")
        return cls(kind=kind, value=value)

    @property
    def space_id(self) -> Optional[str]:
        return self.value if self.kind == ContainerKind.SPACE else None

    @property
    def agent_name(self) -> Optional[str]:
        return self.value if self.kind == ContainerKind.AGENT else None

    @property
    def group_id(self) -> Optional[str]:
        return self.value if self.kind == ContainerKind.GROUP else None


class ThreadMode(str, Enum):
    AGENT = "agent"
    DIRECT_MODEL = "direct_model"
    UNBOUND = "unbound"


class Thread(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    id: str = Field(default_factory=_new_id, frozen=True)
    title: str = "New Thread"
    messages: List[Message] = Field(default_factory=list)
    container: ThreadContainer = Field(default_factory=ThreadContainer)
    participants: List[str] = Field(default_factory=list)
    is_pinned: bool = False
    is_starred: bool = False
    is_archived: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    context_id: Optional[str] = Field(default=None, description="A2A context id for agent continuity")
    model_id: Optional[str] = None
    provider_id: Optional[str] = None

    @property
    def agent_name(self) -> Optional[str]:
        return self.container.agent_name

    @property
    def mode(self) -> ThreadMode:
        """A model or provider binding wins over the agent name; such threads chat directly."""
        if self.model_id is not None or self.provider_id is not None:
            return ThreadMode.DIRECT_MODEL
        if self.agent_name is not None:
            return ThreadMode.AGENT
        return ThreadMode.UNBOUND

    @property
    def last_message(self) -> Optional[Message]:
        return self.messages[-1] if self.messages else None

    @property
    def preview(self) -> str:
        last = self.last_message
        return last.content[:100] if last else "No messages yet"

    def add_message(self, message: Message) -> None:
        """Append a message, advance updated_at and track the sender as a participant."""
        self.messages.append(message)
        self.updated_at = utcnow()

        if message.role == MessageRole.USER:
            sender = "user"
        else:
            sender = message.agent_name or "assistant"
        if sender not in self.participants:
            self.participants.append(sender)


class ThreadFilter(str, Enum):
    ALL = "all"
    AGENTS = "agents"
    STARRED = "starred"
    ARCHIVED = "archived"


class ThreadFlag(str, Enum):
    PINNED = "pinned"
    STARRED = "starred"
    ARCHIVED = "archived"

    @property
    def attribute(self) -> str:
        return f"is_{self.value}"


def _as_aware(value: datetime) -> datetime:
    # Naive datetimes are treated as UTC
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class DateGroup(str, Enum):
    """Display bucket for a thread's updated_at. Member order is display order."""

    TODAY = "today"
    YESTERDAY = "yesterday"
    THIS_WEEK = "this_week"
    LAST_WEEK = "last_week"
    THIS_MONTH = "this_month"
    OLDER = "older"

    @property
    def display_name(self) -> str:
        return _DATE_GROUP_NAMES[self]

    @classmethod
    def from_datetime(cls, value: datetime, now: Optional[datetime] = None) -> "DateGroup":
        """
        Classify a timestamp relative to now.

        Calendar days (today/yesterday) and months are evaluated in now's time zone;
        when now is omitted the local time zone is used.
        """
        now = _as_aware(now) if now is not None else datetime.now().astimezone()
        value = _as_aware(value).astimezone(now.tzinfo)

        if value.date() == now.date():
            return cls.TODAY
        if value.date() == (now - timedelta(days=1)).date():
            return cls.YESTERDAY
        if value > now - timedelta(days=7):
            return cls.THIS_WEEK
        if value > now - timedelta(days=14):
            return cls.LAST_WEEK
        if (value.year, value.month) == (now.year, now.month):
            return cls.THIS_MONTH
        return cls.OLDER


_DATE_GROUP_NAMES = {
    DateGroup.TODAY: "Today",
    DateGroup.YESTERDAY: "Yesterday",
    DateGroup.THIS_WEEK: "This Week",
    DateGroup.LAST_WEEK: "Last Week",
    DateGroup.THIS_MONTH: "This Month",
    DateGroup.OLDER: "Older",
}


class ThreadSection(BaseModel):
    group: DateGroup
    title: str
    threads: List[Thread] = Field(default_factory=list)


class ThreadListing(BaseModel):
    """Result of a thread query: pinned threads first, then non-empty date sections."""

    pinned: List[Thread] = Field(default_factory=list)
    sections: List[ThreadSection] = Field(default_factory=list)

    @property
    def threads(self) -> List[Thread]:
        flat = list(self.pinned)
        for section in self.sections:
            flat.extend(section.threads)
        return flat
