import tiktoken
from functools import lru_cache
from typing import List, Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)

@lru_cache(maxsize=16)
def _get_encoding(model: Optional[str]):
    """Resolve a tiktoken encoding for a model name, falling back for local models."""
    model_for_encoding = (model or "").lower()
    try:
        if "gpt-4" in model_for_encoding:
            return tiktoken.encoding_for_model("gpt-4")
        if "gpt-3.5" in model_for_encoding:
            return tiktoken.encoding_for_model("gpt-3.5-turbo")
        return tiktoken.encoding_for_model(model_for_encoding)
    except (KeyError, ValueError):
        # Local models (llama, qwen, mistral...) are unknown to tiktoken; o200k_base is a close enough estimate
        try:
            logger.debug(f"Model {model} not found in tiktoken registry. Using o200k_base encoding.")
            return tiktoken.get_encoding("o200k_base")
        except (KeyError, ValueError):
            logger.debug(f"o200k_base not available, using cl100k_base encoding for model {model}")
            return tiktoken.get_encoding("cl100k_base")

def count_tokens(messages: List[Dict[str, Any]], model: Optional[str] = None) -> int:
    """
    Count the number of tokens in a list of chat messages.

    Args:
        messages: List of message dictionaries with 'role' and 'content' keys
        model: The model to count tokens for

    Returns:
        int: The total number of tokens, including a 5% safety margin
    """
    encoding = _get_encoding(model)

    num_tokens = 0
    for message in messages:
        num_tokens += 4  # Per-message overhead
        for value in message.values():
            num_tokens += len(encoding.encode(str(value)))
    num_tokens += 2  # Every reply is primed with <im_start>assistant

    return int(num_tokens * 1.05)

def truncate_messages_to_fit_limit(
    messages: List[Dict[str, Any]],
    model: Optional[str] = None,
    max_tokens: int = 28500,
) -> List[Dict[str, Any]]:
    """
    Drop the oldest history turns until the conversation fits within max_tokens.

    The leading system message and the final user message are always kept; the
    remaining turns are kept newest-first while they fit, and returned in their
    original order.

    Args:
        messages: [system, *history, user] message dictionaries
        model: Model to count tokens for
        max_tokens: Maximum allowed tokens

    Returns:
        List[Dict[str, Any]]: Truncated message list
    """
    current_tokens = count_tokens(messages, model)
    if current_tokens <= max_tokens or len(messages) <= 2:
        return messages

    logger.warning(
        f"Message token count ({current_tokens}) exceeds limit ({max_tokens}). "
        f"Dropping oldest history to fit."
    )

    head = [messages[0]] if messages[0]["role"] == "system" else []
    tail = [messages[-1]]
    history = messages[len(head):-1]

    token_budget = max_tokens - count_tokens(head + tail, model)
    kept: List[Dict[str, Any]] = []
    for message in reversed(history):
        message_tokens = count_tokens([message], model)
        if message_tokens > token_budget:
            break
        kept.append(message)
        token_budget -= message_tokens
    kept.reverse()

    result = head + kept + tail
    logger.info(f"Kept {len(kept)} of {len(history)} history messages ({count_tokens(result, model)} tokens)")
    return result
