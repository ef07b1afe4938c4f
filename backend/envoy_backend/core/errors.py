"""Domain errors raised by the thread store, the streaming assembler and the backends."""

from typing import Optional


class EnvoyError(Exception):
    """Base class for all service errors. ``str(error)`` is safe to show to users."""


class ThreadNotFoundError(EnvoyError):
    def __init__(self, thread_id: str):
        self.thread_id = thread_id
        super().__init__(f"Thread not found: {thread_id}")


class GenerationInProgressError(EnvoyError):
    def __init__(self, thread_id: str):
        self.thread_id = thread_id
        super().__init__(f"A response is already being generated for thread {thread_id}")


class GenerationFailedError(EnvoyError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Generation failed: {reason}")


class NoProviderSelectedError(EnvoyError):
    def __init__(self):
        super().__init__("No provider selected. Please select a model or provider first.")


class ModelNotAvailableError(EnvoyError):
    def __init__(self, model_id: str):
        self.model_id = model_id
        super().__init__(f"Model not available: {model_id}")


class AgentNotConnectedError(EnvoyError):
    def __init__(self):
        super().__init__("Not connected to agent. Please connect first or select a model.")


class AgentError(EnvoyError):
    """The agent answered with a JSON-RPC error or an unreadable response."""

    def __init__(self, message: str, code: Optional[int] = None):
        self.code = code
        super().__init__(f"Agent error ({code}): {message}" if code is not None else f"Agent error: {message}")
