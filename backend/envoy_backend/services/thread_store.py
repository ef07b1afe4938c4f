from typing import Dict, Iterable, List, Optional
from datetime import datetime
import json
import logging
import threading

from ..core.errors import ThreadNotFoundError
from ..models.thread import (
    DateGroup,
    Message,
    MessageRole,
    Thread,
    ThreadContainer,
    ThreadFilter,
    ThreadFlag,
    ThreadListing,
    ThreadSection,
)
from .persistence import ThreadPersistence

logger = logging.getLogger(__name__)


class ThreadStore:
    """
    Authoritative, insertion-ordered collection of threads.

    Queries are side-effect free. Mutations hold a lock and are mirrored to the
    optional persistence layer; a failed save is logged and never surfaces to
    the caller. Every operation taking a thread id raises ThreadNotFoundError
    for unknown ids.
    """

    def __init__(
        self,
        persistence: Optional[ThreadPersistence] = None,
        about_me_space_id: str = "about-me",
    ):
        self.persistence = persistence
        self.about_me_space_id = about_me_space_id
        self._threads: Dict[str, Thread] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Loading and persistence
    # ------------------------------------------------------------------

    def load(self, threads: Iterable[Thread]) -> None:
        """Bulk-insert threads (e.g. from disk) without re-saving them."""
        with self._lock:
            for thread in threads:
                self._threads[thread.id] = thread

    def _save(self, thread: Thread) -> None:
        if self.persistence is None:
            return
        try:
            self.persistence.save_thread(thread)
        except Exception as e:
            logger.error(f"Failed to persist thread {thread.id}: {e}")

    def _delete(self, thread_id: str) -> None:
        if self.persistence is None:
            return
        try:
            self.persistence.delete_thread(thread_id)
        except Exception as e:
            logger.error(f"Failed to delete persisted thread {thread_id}: {e}")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._threads)

    def __contains__(self, thread_id: object) -> bool:
        return thread_id in self._threads

    def get(self, thread_id: str) -> Thread:
        thread = self._threads.get(thread_id)
        if thread is None:
            raise ThreadNotFoundError(thread_id)
        return thread

    def _is_about_me(self, thread: Thread) -> bool:
        return thread.container.space_id == self.about_me_space_id

    def filter_threads(
        self,
        thread_filter: ThreadFilter = ThreadFilter.ALL,
        agent_name: Optional[str] = None,
        search_text: Optional[str] = None,
    ) -> List[Thread]:
        """Apply the about-me exclusion, agent filter, category filter and search, in that order."""
        with self._lock:
            threads = [thread for thread in self._threads.values() if not self._is_about_me(thread)]

        if agent_name is not None:
            threads = [thread for thread in threads if thread.agent_name == agent_name]

        if thread_filter == ThreadFilter.ALL:
            threads = [thread for thread in threads if not thread.is_archived]
        elif thread_filter == ThreadFilter.AGENTS:
            threads = [
                thread for thread in threads
                if (thread.agent_name is not None or thread.model_id is not None) and not thread.is_archived
            ]
        elif thread_filter == ThreadFilter.STARRED:
            threads = [thread for thread in threads if thread.is_starred and not thread.is_archived]
        elif thread_filter == ThreadFilter.ARCHIVED:
            threads = [thread for thread in threads if thread.is_archived]

        if search_text:
            needle = search_text.casefold()
            threads = [
                thread for thread in threads
                if needle in thread.title.casefold()
                or any(needle in message.content.casefold() for message in thread.messages)
            ]

        return threads

    def list(
        self,
        thread_filter: ThreadFilter = ThreadFilter.ALL,
        agent_name: Optional[str] = None,
        search_text: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ThreadListing:
        """
        Query threads for display.

        Pinned threads form a leading group; the rest are bucketed by the
        DateGroup of updated_at and emitted in DateGroup order with empty
        buckets dropped. Store insertion order is kept within every group.
        """
        threads = self.filter_threads(thread_filter, agent_name, search_text)

        pinned = [thread for thread in threads if thread.is_pinned]
        buckets: Dict[DateGroup, List[Thread]] = {}
        for thread in threads:
            if thread.is_pinned:
                continue
            buckets.setdefault(DateGroup.from_datetime(thread.updated_at, now), []).append(thread)

        sections = [
            ThreadSection(group=group, title=group.display_name, threads=buckets[group])
            for group in DateGroup
            if buckets.get(group)
        ]
        return ThreadListing(pinned=pinned, sections=sections)

    def filter_counts(self) -> Dict[ThreadFilter, int]:
        with self._lock:
            visible = [thread for thread in self._threads.values() if not self._is_about_me(thread)]
        active = [thread for thread in visible if not thread.is_archived]
        return {
            ThreadFilter.ALL: len(active),
            ThreadFilter.AGENTS: sum(1 for t in active if t.agent_name is not None or t.model_id is not None),
            ThreadFilter.STARRED: sum(1 for t in active if t.is_starred),
            ThreadFilter.ARCHIVED: sum(1 for t in visible if t.is_archived),
        }

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(
        self,
        title: str = "New Thread",
        container: Optional[ThreadContainer] = None,
        model_id: Optional[str] = None,
        provider_id: Optional[str] = None,
    ) -> Thread:
        thread = Thread(
            title=title.strip() or "New Thread",
            container=container or ThreadContainer(),
            model_id=model_id,
            provider_id=provider_id,
        )
        with self._lock:
            self._threads[thread.id] = thread
            self._save(thread)
        logger.info(f"Created thread {thread.id} ({thread.mode.value})")
        return thread

    def append(self, thread_id: str, message: Message) -> None:
        with self._lock:
            thread = self.get(thread_id)
            thread.add_message(message)
            self._save(thread)
        logger.debug(f"Appended {message.role.value} message {message.id} to thread {thread_id}")

    def toggle_flag(self, thread_id: str, flag: ThreadFlag) -> bool:
        """Flip a flag and return its new value."""
        with self._lock:
            thread = self.get(thread_id)
            value = not getattr(thread, flag.attribute)
            setattr(thread, flag.attribute, value)
            self._save(thread)
        return value

    def rename(self, thread_id: str, new_title: str) -> None:
        with self._lock:
            thread = self.get(thread_id)
            title = new_title.strip()
            if not title:
                return
            thread.title = title
            self._save(thread)

    def assign_model(self, thread_id: str, model_id: Optional[str], provider_id: Optional[str]) -> None:
        with self._lock:
            thread = self.get(thread_id)
            thread.model_id = model_id
            thread.provider_id = provider_id
            self._save(thread)
        logger.info(f"Thread {thread_id} now uses model={model_id} provider={provider_id}")

    def set_context_id(self, thread_id: str, context_id: Optional[str]) -> None:
        with self._lock:
            thread = self.get(thread_id)
            if thread.context_id == context_id:
                return
            thread.context_id = context_id
            self._save(thread)

    def remove(self, thread_id: str) -> None:
        with self._lock:
            self.get(thread_id)
            del self._threads[thread_id]
            self._delete(thread_id)
        logger.info(f"Removed thread {thread_id}")

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_text(self, thread_id: str) -> str:
        thread = self.get(thread_id)
        lines = [thread.title, "=" * len(thread.title), ""]
        for message in thread.messages:
            role = "User" if message.role == MessageRole.USER else "Assistant"
            lines.append(f"[{role}]")
            lines.append(message.content)
            lines.append("")
        return "\n".join(lines)

    def export_json(self, thread_id: str) -> str:
        thread = self.get(thread_id)
        export_data = {
            "title": thread.title,
            "created": thread.created_at.isoformat(),
            "updated": thread.updated_at.isoformat(),
            "messages": [
                {
                    "role": message.role.value,
                    "content": message.content,
                    "timestamp": message.timestamp.isoformat(),
                }
                for message in thread.messages
            ],
        }
        return json.dumps(export_data, indent=2, ensure_ascii=False)


class Workspace:
    """
    The thread store plus the client's current selection.

    Archiving or removing the selected thread clears the selection.
    """

    def __init__(self, store: ThreadStore):
        self.store = store
        self.selected_thread_id: Optional[str] = None

    def select(self, thread_id: Optional[str]) -> None:
        if thread_id is not None:
            self.store.get(thread_id)
        self.selected_thread_id = thread_id

    def toggle_flag(self, thread_id: str, flag: ThreadFlag) -> bool:
        value = self.store.toggle_flag(thread_id, flag)
        if flag == ThreadFlag.ARCHIVED and value and self.selected_thread_id == thread_id:
            self.selected_thread_id = None
        return value

    def remove(self, thread_id: str) -> None:
        self.store.remove(thread_id)
        if self.selected_thread_id == thread_id:
            self.selected_thread_id = None
