from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime
from enum import Enum

from .thread import ContainerKind, utcnow


class ContextKind(str, Enum):
    NONE = "none"
    DOCUMENT = "document"
    THREAD = "thread"
    TASK_LIST = "task_list"
    REVIEW_QUEUE = "review_queue"


class UIContext(BaseModel):
    """What the user is looking at when they send a message."""

    kind: ContextKind = ContextKind.NONE
    document_content: Optional[str] = None
    thread_id: Optional[str] = None

    @property
    def has_content(self) -> bool:
        return self.kind == ContextKind.DOCUMENT and bool(self.document_content)


class BuiltPrompt(BaseModel):
    prompt: str
    system_prompt: Optional[str] = None


class HistoryTurn(BaseModel):
    content: str
    is_user: bool


class GenerationStats(BaseModel):
    tokens_generated: int = 0
    total_duration_ms: int = 0
    time_to_first_token_ms: int = 0
    tokens_per_second: float = 0.0

    @property
    def formatted_tps(self) -> str:
        return f"{self.tokens_per_second:.1f} tok/s"

    @property
    def formatted_ttft(self) -> str:
        return f"{self.time_to_first_token_ms / 1000:.2f}s"


class ChatRequest(BaseModel):
    message: str
    context: UIContext = Field(default_factory=UIContext)


class StreamEvent(BaseModel):
    """One SSE frame of a generation: a fragment, or the terminal frame when done is set."""

    thread_id: str
    content: str = ""
    done: bool = False
    empty: bool = False
    cancelled: bool = False
    error: Optional[str] = None
    message_id: Optional[str] = None


class ErrorNotice(BaseModel):
    thread_id: str
    message: str
    created_at: datetime = Field(default_factory=utcnow)


class CreateThreadRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    title: str = "New Thread"
    container_kind: ContainerKind = ContainerKind.GLOBAL
    container_value: Optional[str] = None
    model_id: Optional[str] = None
    provider_id: Optional[str] = None


class RenameThreadRequest(BaseModel):
    title: str


class AssignModelRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: Optional[str] = None
    provider_id: Optional[str] = None


class SelectionUpdate(BaseModel):
    thread_id: Optional[str] = None


class LoadModelRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: str


class BackendStatus(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    is_ready: bool
    is_loading_model: bool
    load_progress: float
    status_message: str
    provider_description: str
    loaded_model_id: Optional[str] = None
    last_error: Optional[str] = None
    generation_stats: Optional[GenerationStats] = None
    is_agent_connected: bool = False
    active_threads: List[str] = Field(default_factory=list)


class StartConversationRequest(ChatRequest):
    """First message of a new thread; the thread is titled after it."""

    model_config = ConfigDict(protected_namespaces=())

    container_kind: ContainerKind = ContainerKind.GLOBAL
    container_value: Optional[str] = None
    model_id: Optional[str] = None
    provider_id: Optional[str] = None
