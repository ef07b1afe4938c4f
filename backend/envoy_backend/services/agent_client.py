"""
Client for remote agents speaking the A2A protocol.

Messages go out as JSON-RPC ``SendStreamingMessage`` calls on ``<agent>/a2a``;
the agent answers with a Server-Sent Events stream whose ``data:`` lines are
JSON-RPC responses carrying message, artifact-update or status-update events.
"""

from typing import Any, AsyncGenerator, Callable, Dict, Iterator, Optional
from uuid import uuid4
import json
import logging

import httpx

from ..core.config import Settings
from ..core.errors import AgentError, AgentNotConnectedError

logger = logging.getLogger(__name__)

_FAILED_STATES = {"failed", "rejected", "canceled"}


def _text_parts(parts: Any) -> Iterator[str]:
    for part in parts or []:
        if isinstance(part, dict) and part.get("kind", "text") == "text" and part.get("text"):
            yield part["text"]


def _event_text(result: Dict[str, Any]) -> Iterator[str]:
    kind = result.get("kind")
    if kind == "artifact-update":
        yield from _text_parts((result.get("artifact") or {}).get("parts"))
    elif kind == "message":
        yield from _text_parts(result.get("parts"))


def _is_final(result: Dict[str, Any]) -> bool:
    return result.get("kind") == "status-update" and bool(result.get("final"))


def _failure_reason(result: Dict[str, Any]) -> Optional[str]:
    if result.get("kind") != "status-update":
        return None
    status = result.get("status") or {}
    if status.get("state") not in _FAILED_STATES:
        return None
    message = status.get("message") or {}
    return " ".join(_text_parts(message.get("parts"))) or f"task {status.get('state')}"


class AgentConnection:
    def __init__(self, base_url: Optional[str], client: Optional[httpx.AsyncClient] = None, timeout: float = 300.0):
        self.base_url = base_url
        self.client = client or (httpx.AsyncClient(base_url=base_url, timeout=timeout) if base_url else None)
        self.is_agent_connected = False
        self.agent_card: Optional[Dict[str, Any]] = None
        self._request_id = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> "AgentConnection":
        return cls(settings.AGENT_URL, timeout=settings.AGENT_TIMEOUT)

    @property
    def agent_name(self) -> Optional[str]:
        return (self.agent_card or {}).get("name")

    async def connect(self) -> Dict[str, Any]:
        """Fetch the agent card; the connection counts as established once it is read."""
        if self.client is None:
            raise AgentNotConnectedError()
        try:
            response = await self.client.get("/.well-known/agent.json")
            response.raise_for_status()
            self.agent_card = response.json()
        except (httpx.HTTPError, ValueError) as e:
            self.is_agent_connected = False
            logger.error(f"Failed to connect to agent at {self.base_url}: {e}")
            raise AgentError(str(e)) from e

        self.is_agent_connected = True
        logger.info(f"Connected to agent {self.agent_name or self.base_url}")
        return self.agent_card

    async def aclose(self) -> None:
        self.is_agent_connected = False
        if self.client is not None:
            await self.client.aclose()

    def _next_request(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        self._request_id += 1
        return {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params}

    async def send_message(
        self,
        prompt: str,
        context_id: Optional[str] = None,
        on_context_id: Optional[Callable[[str], None]] = None,
    ) -> AsyncGenerator[str, None]:
        """
        Stream text deltas of the agent's answer.

        Args:
            prompt: The user's message
            context_id: A2A context to continue, if any
            on_context_id: Called with the context id the agent reports, so callers can keep continuity

        Yields:
            str: Text fragments in delivery order
        """
        if not self.is_agent_connected or self.client is None:
            raise AgentNotConnectedError()

        message: Dict[str, Any] = {
            "message_id": str(uuid4()),
            "role": "user",
            "parts": [{"kind": "text", "text": prompt}],
        }
        if context_id:
            message["context_id"] = context_id
        payload = self._next_request(
            "SendStreamingMessage",
            {"message": message, "configuration": {"blocking": False, "accepted_output_modes": ["text"]}},
        )

        reported_context: Optional[str] = None
        try:
            async with self.client.stream(
                "POST", "/a2a", json=payload, headers={"Accept": "text/event-stream"}
            ) as response:
                if response.status_code != 200:
                    raise AgentError(f"unexpected HTTP status {response.status_code}")

                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if not data:
                        continue
                    try:
                        event = json.loads(data)
                    except json.JSONDecodeError as e:
                        raise AgentError(f"invalid event payload: {data[:80]}") from e

                    error = event.get("error")
                    if error:
                        raise AgentError(error.get("message", "unknown error"), error.get("code"))

                    result = event.get("result") or {}
                    context = result.get("context_id") or result.get("contextId")
                    if context and context != reported_context:
                        reported_context = context
                        if on_context_id is not None:
                            on_context_id(context)

                    reason = _failure_reason(result)
                    if reason:
                        raise AgentError(reason)

                    for text in _event_text(result):
                        yield text

                    if _is_final(result):
                        break
        except httpx.HTTPError as e:
            logger.error(f"Agent stream failed: {e}")
            raise AgentError(str(e)) from e
