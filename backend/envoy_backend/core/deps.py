from dataclasses import dataclass
from typing import Optional
from fastapi import Depends, Request
import logging

from .config import Settings
from ..services.agent_client import AgentConnection
from ..services.chat_backend import ChatBackend
from ..services.conversation_service import ConversationService
from ..services.persistence import ThreadPersistence
from ..services.prompt_builder import ContextPromptBuilder
from ..services.streaming import StreamingAssembler
from ..services.thread_store import ThreadStore, Workspace

logger = logging.getLogger(__name__)

@dataclass
class AppContext:
    """Everything the API needs, wired once at startup and handed to routes through dependencies."""

    settings: Settings
    workspace: Workspace
    chat_backend: ChatBackend
    agent: Optional[AgentConnection]
    assembler: StreamingAssembler
    prompt_builder: ContextPromptBuilder
    conversations: ConversationService

    @property
    def store(self) -> ThreadStore:
        return self.workspace.store

    @classmethod
    def build(
        cls,
        settings: Settings,
        chat_backend: ChatBackend,
        agent: Optional[AgentConnection] = None,
        persistence: Optional[ThreadPersistence] = None,
    ) -> "AppContext":
        store = ThreadStore(persistence, about_me_space_id=settings.ABOUT_ME_SPACE_ID)
        if persistence is not None:
            store.load(persistence.load_all())

        workspace = Workspace(store)
        assembler = StreamingAssembler(store, chat_backend, agent)
        prompt_builder = ContextPromptBuilder.from_settings(settings)
        conversations = ConversationService(
            workspace, assembler, prompt_builder, max_message_length=settings.MAX_MESSAGE_LENGTH
        )
        return cls(
            settings=settings,
            workspace=workspace,
            chat_backend=chat_backend,
            agent=agent,
            assembler=assembler,
            prompt_builder=prompt_builder,
            conversations=conversations,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "AppContext":
        persistence = ThreadPersistence(settings.THREADS_DIR) if settings.THREADS_DIR else None
        agent = AgentConnection.from_settings(settings) if settings.AGENT_URL else None
        logger.info(
            f"Building app context (persistence={'on' if persistence else 'off'}, "
            f"agent={settings.AGENT_URL or 'none'}, model={settings.OPENAI_MODEL or 'none'})"
        )
        return cls.build(settings, ChatBackend.from_settings(settings), agent, persistence)

    async def aclose(self) -> None:
        if self.agent is not None:
            await self.agent.aclose()
        await self.chat_backend.client.close()

def get_app_context(request: Request) -> AppContext:
    """Get the app context created at startup."""
    return request.app.state.context

def get_workspace(context: AppContext = Depends(get_app_context)) -> Workspace:
    return context.workspace

def get_thread_store(context: AppContext = Depends(get_app_context)) -> ThreadStore:
    return context.store

def get_conversation_service(context: AppContext = Depends(get_app_context)) -> ConversationService:
    return context.conversations

def get_chat_backend(context: AppContext = Depends(get_app_context)) -> ChatBackend:
    return context.chat_backend
