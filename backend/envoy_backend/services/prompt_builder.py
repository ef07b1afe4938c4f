from typing import Dict, Optional
import logging

from ..core.config import Settings
from ..models.chat import BuiltPrompt, ContextKind, UIContext
from ..models.thread import Thread
from .agent_templates import find_template

logger = logging.getLogger(__name__)

BASE_SYSTEM_PROMPT = "You are a helpful AI assistant in Envoy, an ambient intelligence app. Be concise and direct."

# Every ContextKind has an entry; None means the base instruction stands alone
CONTEXT_CLAUSES: Dict[ContextKind, Optional[str]] = {
    ContextKind.NONE: None,
    ContextKind.THREAD: None,
    ContextKind.DOCUMENT: (
        "You are a writing assistant helping with document editing, writing improvement, "
        "and content organization."
    ),
    ContextKind.TASK_LIST: "You help manage tasks, set priorities, and track progress.",
    ContextKind.REVIEW_QUEUE: "You help analyze options and make informed decisions.",
}

DOCUMENT_PROMPT_TEMPLATE = """Context: I'm currently working on a document with the following content:
---
{content}
---

User request: {request}"""


class ContextPromptBuilder:
    """Turns a user utterance plus the active UI context into the outbound prompt pair. Pure."""

    def __init__(self, base_prompt: str = BASE_SYSTEM_PROMPT, document_limit: int = 2000):
        self.base_prompt = base_prompt
        self.document_limit = document_limit

    @classmethod
    def from_settings(cls, settings: Settings) -> "ContextPromptBuilder":
        return cls(base_prompt=settings.BASE_SYSTEM_PROMPT, document_limit=settings.DOCUMENT_CONTEXT_LIMIT)

    def build_prompt(self, user_input: str, context: UIContext) -> str:
        if not context.has_content:
            return user_input
        # Hard character cutoff, not word aware
        truncated = context.document_content[: self.document_limit]
        return DOCUMENT_PROMPT_TEMPLATE.format(content=truncated, request=user_input)

    def system_prompt(self, context: UIContext) -> str:
        clause = CONTEXT_CLAUSES.get(context.kind)
        return f"{self.base_prompt} {clause}" if clause else self.base_prompt

    def build(self, user_input: str, context: Optional[UIContext] = None) -> BuiltPrompt:
        context = context or UIContext()
        return BuiltPrompt(
            prompt=self.build_prompt(user_input, context),
            system_prompt=self.system_prompt(context),
        )

    def system_prompt_for_thread(self, thread: Thread, context: Optional[UIContext] = None) -> str:
        """An agent template's persona wins over the context-derived system prompt."""
        template = find_template(thread.agent_name)
        if template is not None:
            logger.debug(f"Using agent template {template.id} for thread {thread.id}")
            return template.system_prompt
        return self.system_prompt(context or UIContext())
