"""
On-disk storage for threads.

Each thread is a Markdown file named ``<thread id>.md`` with a frontmatter block
followed by the transcript:

    ---
    id: "3f0c..."
    title: "Planning session"
    agentName: "Marcus Chen"
    starred: true
    created: "2026-10-16T09:12:44+00:00"
    updated: "2026-10-16T09:13:02+00:00"
    ---

    [user] 2026-10-16T09:12:50+00:00 6b1e...
    How should I prepare?

    [assistant:Marcus Chen] 2026-10-16T09:13:02+00:00 c04d... {"model":"llama3","tokens":42}
    Start with the role description.

Frontmatter values are JSON scalars, so the block is also valid YAML. A message
header carries its timestamp, id and, when present, its metadata as a JSON
object. Message text is stored verbatim except that lines starting with ``[``
or ``\\`` get a leading backslash, so they are never read back as headers.
"""

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Tuple

from ..models.thread import (
    ContainerKind,
    Message,
    MessageMetadata,
    MessageRole,
    Thread,
    ThreadContainer,
)

logger = logging.getLogger(__name__)

_FRONTMATTER_DELIMITER = "---"
_HEADER_PATTERN = re.compile(
    r"^\[(user|assistant|agent)(?::([^\]\n]+))?\](?: (\S+))?(?: (\S+))?(?: (\{.*\}))?[ \t]*$",
    re.MULTILINE,
)
_ESCAPE = "\\"

_CONTAINER_KEYS = {
    ContainerKind.SPACE: "spaceId",
    ContainerKind.AGENT: "agentName",
    ContainerKind.GROUP: "groupId",
}


class ThreadFileError(ValueError):
    """A thread file could not be parsed."""


def _escape(content: str) -> str:
    return "\n".join(
        _ESCAPE + line if line.startswith(("[", _ESCAPE)) else line
        for line in content.split("\n")
    )


def _unescape(content: str) -> str:
    return "\n".join(
        line[len(_ESCAPE):] if line.startswith(_ESCAPE) else line
        for line in content.split("\n")
    )


def thread_to_markdown(thread: Thread) -> str:
    frontmatter: Dict[str, Any] = {"id": thread.id, "title": thread.title}

    container_key = _CONTAINER_KEYS.get(thread.container.kind)
    if container_key:
        frontmatter[container_key] = thread.container.value
    if thread.participants:
        frontmatter["participants"] = thread.participants
    if thread.is_starred:
        frontmatter["starred"] = True
    if thread.is_pinned:
        frontmatter["pinned"] = True
    if thread.is_archived:
        frontmatter["archived"] = True
    if thread.context_id:
        frontmatter["contextId"] = thread.context_id
    if thread.model_id:
        frontmatter["modelId"] = thread.model_id
    if thread.provider_id:
        frontmatter["providerId"] = thread.provider_id
    frontmatter["created"] = thread.created_at.isoformat()
    frontmatter["updated"] = thread.updated_at.isoformat()

    lines = [_FRONTMATTER_DELIMITER]
    lines.extend(f"{key}: {json.dumps(value, ensure_ascii=False)}" for key, value in frontmatter.items())
    lines.append(_FRONTMATTER_DELIMITER)

    blocks = []
    for message in thread.messages:
        if message.role == MessageRole.USER:
            sender = "user"
        else:
            sender = f"assistant:{message.agent_name}" if message.agent_name else "assistant"
        header = f"[{sender}] {message.timestamp.isoformat()} {message.id}"
        if message.metadata is not None:
            metadata = message.metadata.model_dump(exclude_none=True)
            header += " " + json.dumps(metadata, ensure_ascii=False, separators=(",", ":"))
        # Every block ends with a blank line; the reader strips exactly that
        blocks.append(f"{header}\n{_escape(message.content)}\n\n")

    return "\n".join(lines) + "\n\n" + "".join(blocks)


def _split_frontmatter(text: str) -> Tuple[Dict[str, Any], str]:
    opening = _FRONTMATTER_DELIMITER + "\n"
    closing = "\n" + _FRONTMATTER_DELIMITER + "\n"
    if not text.startswith(opening):
        raise ThreadFileError("missing frontmatter")
    end = text.find(closing, len(opening) - 1)
    if end == -1:
        raise ThreadFileError("unterminated frontmatter")

    values: Dict[str, Any] = {}
    for line in text[len(opening):end].split("\n"):
        key, separator, raw = line.partition(":")
        if not separator:
            continue
        try:
            values[key.strip()] = json.loads(raw.strip())
        except json.JSONDecodeError:
            values[key.strip()] = raw.strip()
    return values, text[end + len(closing):]


def _message_from_block(header: re.Match, content: str) -> Message:
    role_name, agent_name, timestamp, message_id, metadata = header.groups()
    fields: Dict[str, Any] = {
        "role": MessageRole.USER if role_name == "user" else MessageRole.ASSISTANT,
        "content": _unescape(content),
        "agent_name": agent_name if role_name != "user" else None,
    }
    if timestamp:
        try:
            fields["timestamp"] = datetime.fromisoformat(timestamp)
        except ValueError:
            logger.warning(f"Ignoring invalid message timestamp {timestamp!r}")
    if message_id:
        fields["id"] = message_id
    if metadata:
        try:
            fields["metadata"] = MessageMetadata(**json.loads(metadata))
        except (json.JSONDecodeError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring invalid message metadata {metadata!r}: {e}")
    return Message(**fields)


def _parse_messages(body: str) -> List[Message]:
    headers = list(_HEADER_PATTERN.finditer(body))
    messages: List[Message] = []
    for index, header in enumerate(headers):
        end = headers[index + 1].start() if index + 1 < len(headers) else len(body)
        content = body[header.end() + 1:end]
        if content.endswith("\n\n"):
            content = content[:-2]
        elif content.endswith("\n"):
            content = content[:-1]
        messages.append(_message_from_block(header, content))
    return messages


def thread_from_markdown(text: str) -> Thread:
    values, body = _split_frontmatter(text)
    if "id" not in values:
        raise ThreadFileError("frontmatter has no id")

    container = ThreadContainer()
    for kind, key in _CONTAINER_KEYS.items():
        if values.get(key):
            container = ThreadContainer(kind=kind, value=values[key])
            break

    fields: Dict[str, Any] = {
        "id": str(values["id"]),
        "title": values.get("title") or "Thread",
        "messages": _parse_messages(body),
        "container": container,
        "participants": values.get("participants") or [],
        "is_starred": bool(values.get("starred", False)),
        "is_pinned": bool(values.get("pinned", False)),
        "is_archived": bool(values.get("archived", False)),
        "context_id": values.get("contextId"),
        "model_id": values.get("modelId"),
        "provider_id": values.get("providerId"),
    }
    for key, field in (("created", "created_at"), ("updated", "updated_at")):
        if values.get(key):
            try:
                fields[field] = datetime.fromisoformat(values[key])
            except (TypeError, ValueError):
                raise ThreadFileError(f"invalid {key} timestamp: {values[key]!r}")
    return Thread(**fields)


class ThreadPersistence:
    """Saves and loads threads as Markdown files in a single directory."""

    def __init__(self, directory: str):
        self.directory = Path(directory).expanduser()

    def _path(self, thread_id: str) -> Path:
        return self.directory / f"{thread_id}.md"

    def save_thread(self, thread: Thread) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self._path(thread.id).write_bytes(thread_to_markdown(thread).encode("utf-8"))
        logger.debug(f"Saved thread {thread.id} to {self._path(thread.id)}")

    def delete_thread(self, thread_id: str) -> None:
        path = self._path(thread_id)
        if path.exists():
            path.unlink()
            logger.debug(f"Deleted thread file {path}")

    def load_all(self) -> List[Thread]:
        """Load every readable thread file, oldest first. Unreadable files are skipped."""
        if not self.directory.is_dir():
            return []

        threads: List[Thread] = []
        for path in sorted(self.directory.glob("*.md")):
            try:
                threads.append(thread_from_markdown(path.read_bytes().decode("utf-8")))
            except (OSError, UnicodeDecodeError, ValueError) as e:
                logger.warning(f"Skipping unreadable thread file {path}: {e}")
        threads.sort(key=lambda thread: thread.created_at)
        logger.info(f"Loaded {len(threads)} threads from {self.directory}")
        return threads
