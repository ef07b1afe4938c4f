from typing import List, Optional
import logging

from ..core.errors import GenerationInProgressError
from ..models.chat import ErrorNotice, HistoryTurn, UIContext
from ..models.thread import Message, MessageRole, Thread, ThreadContainer
from .prompt_builder import ContextPromptBuilder
from .streaming import GenerationHandle, StreamingAssembler
from .thread_store import Workspace

logger = logging.getLogger(__name__)

class ConversationService:
    """Service for sending user messages into threads and starting the response generation."""

    def __init__(
        self,
        workspace: Workspace,
        assembler: StreamingAssembler,
        prompt_builder: ContextPromptBuilder,
        max_message_length: int = 4000,
    ):
        self.workspace = workspace
        self.assembler = assembler
        self.prompt_builder = prompt_builder
        self.max_message_length = max_message_length

    @property
    def store(self):
        return self.workspace.store

    def validate_message(self, text: str) -> str:
        if not text or not text.strip():
            raise ValueError("Message content cannot be empty")
        if len(text) > self.max_message_length:
            raise ValueError(
                f"Message too long. Please keep messages under {self.max_message_length} characters."
            )
        return text

    @staticmethod
    def history_for(thread: Thread) -> List[HistoryTurn]:
        return [
            HistoryTurn(content=message.content, is_user=message.role == MessageRole.USER)
            for message in thread.messages
        ]

    def send_message(
        self,
        thread_id: str,
        text: str,
        context: Optional[UIContext] = None,
    ) -> GenerationHandle:
        """
        Append the user's message and begin generating the reply.

        The in-progress check happens before anything is appended, so a
        rejected send leaves the transcript untouched.
        """
        self.validate_message(text)
        thread = self.store.get(thread_id)
        if self.assembler.is_active(thread_id):
            raise GenerationInProgressError(thread_id)

        context = context or UIContext()
        built = self.prompt_builder.build(text, context)
        system_prompt = self.prompt_builder.system_prompt_for_thread(thread, context)
        history = self.history_for(thread)

        self.store.append(thread_id, Message.user(text))
        logger.info(f"[MESSAGE] thread={thread_id} context={context.kind.value} preview={text[:50]!r}")
        return self.assembler.begin(thread_id, built.prompt, history, system_prompt)

    def start_conversation(
        self,
        text: str,
        context: Optional[UIContext] = None,
        container: Optional[ThreadContainer] = None,
        model_id: Optional[str] = None,
        provider_id: Optional[str] = None,
    ) -> GenerationHandle:
        """Create a thread titled after the first message, select it, and send the message."""
        self.validate_message(text)
        title = text.strip().splitlines()[0][:50]
        thread = self.store.create(title=title, container=container, model_id=model_id, provider_id=provider_id)
        self.workspace.select(thread.id)
        return self.send_message(thread.id, text, context)

    def cancel(self, thread_id: str) -> bool:
        handle = self.assembler.get_handle(thread_id)
        if handle is None:
            return False
        handle.cancel()
        return True

    def notices(self) -> List[ErrorNotice]:
        return list(self.assembler.notices.values())

    def dismiss_notice(self, thread_id: str) -> bool:
        return self.assembler.dismiss_notice(thread_id)
