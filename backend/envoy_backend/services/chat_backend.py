from typing import AsyncGenerator, Callable, List, Dict, Optional, Sequence
import logging
import time

import openai
from openai import AsyncOpenAI

from ..core.config import Settings
from ..core.errors import GenerationFailedError, ModelNotAvailableError, NoProviderSelectedError
from ..core.utils import truncate_messages_to_fit_limit
from ..models.chat import GenerationStats, HistoryTurn

logger = logging.getLogger(__name__)

class ChatBackend:
    """
    Streaming chat against any OpenAI-compatible endpoint.

    Local providers (Ollama, LM Studio, an MLX server) and hosted ones are all
    reached through the same client by pointing base_url at them.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        provider_name: str = "OpenAI",
        model_id: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 2048,
        max_context_tokens: int = 28500,
        default_system_prompt: str = "You are a helpful AI assistant. Be concise and direct in your responses.",
    ):
        self.client = client
        self.provider_name = provider_name
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_context_tokens = max_context_tokens
        self.default_system_prompt = default_system_prompt

        self.loaded_model_id: Optional[str] = model_id
        self.is_loading_model = False
        self.active_generations = 0
        self.load_progress = 1.0 if model_id else 0.0
        self.status_message = "Ready" if model_id else "No model loaded"
        # Both describe the most recently finished generation
        self.last_error: Optional[str] = None
        self.generation_stats: Optional[GenerationStats] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChatBackend":
        client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY, base_url=settings.OPENAI_BASE_URL)
        return cls(
            client,
            provider_name=settings.PROVIDER_NAME,
            model_id=settings.OPENAI_MODEL,
            temperature=settings.TEMPERATURE,
            max_tokens=settings.MAX_COMPLETION_TOKENS,
            max_context_tokens=settings.MAX_CONTEXT_TOKENS,
            default_system_prompt=settings.DEFAULT_SYSTEM_PROMPT,
        )

    @property
    def is_generating(self) -> bool:
        return self.active_generations > 0

    @property
    def is_ready(self) -> bool:
        return self.loaded_model_id is not None and not self.is_loading_model

    @property
    def provider_description(self) -> str:
        if self.loaded_model_id:
            return self.loaded_model_id.split("/")[-1]
        if self.provider_name:
            return self.provider_name
        return "No provider"

    async def load_model(self, model_id: str) -> None:
        """Make model_id the active model after checking that the provider serves it."""
        self.is_loading_model = True
        self.load_progress = 0.0
        self.status_message = f"Loading {model_id}..."
        self.last_error = None
        logger.info(f"Loading model {model_id} from {self.provider_name}")

        try:
            await self.client.models.retrieve(model_id)
        except openai.OpenAIError as e:
            logger.error(f"Model {model_id} is not available: {e}")
            self.last_error = str(ModelNotAvailableError(model_id))
            self.status_message = "Load failed"
            raise ModelNotAvailableError(model_id) from e
        finally:
            self.is_loading_model = False

        self.loaded_model_id = model_id
        self.load_progress = 1.0
        self.status_message = "Ready"
        logger.info(f"Model {model_id} ready")

    def build_messages(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        history: Sequence[HistoryTurn] = (),
        model_id: Optional[str] = None,
    ) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": system_prompt or self.default_system_prompt}]
        for turn in history:
            messages.append({"role": "user" if turn.is_user else "assistant", "content": turn.content})
        messages.append({"role": "user", "content": prompt})

        return truncate_messages_to_fit_limit(
            messages,
            model=model_id or self.loaded_model_id,
            max_tokens=self.max_context_tokens,
        )

    async def chat(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        history: Sequence[HistoryTurn] = (),
        model_id: Optional[str] = None,
        on_stats: Optional[Callable[[GenerationStats], None]] = None,
    ) -> AsyncGenerator[str, None]:
        """
        Stream response text fragments.

        Args:
            prompt: The user's (already contextualised) message
            system_prompt: Replaces the default system prompt when given
            history: Earlier turns, oldest first
            model_id: Per-thread model override; defaults to the loaded model
            on_stats: Receives this call's GenerationStats once the stream completes

        Raises:
            NoProviderSelectedError: No model given and none loaded
            GenerationFailedError: The provider failed before or during streaming
        """
        model = model_id or self.loaded_model_id
        if model is None:
            raise NoProviderSelectedError()

        messages = self.build_messages(prompt, system_prompt, history, model)
        self.active_generations += 1

        start_time = time.perf_counter()
        first_token_time: Optional[float] = None
        tokens_generated = 0
        chunk_count = 0

        try:
            stream = await self.client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                stream=True,
                stream_options={"include_usage": True},
            )
            try:
                async for chunk in stream:
                    if chunk.usage is not None:
                        tokens_generated = chunk.usage.completion_tokens
                    if not chunk.choices:
                        continue
                    delta = chunk.choices[0].delta.content
                    if delta:
                        if first_token_time is None:
                            first_token_time = time.perf_counter()
                        chunk_count += 1
                        yield delta
            finally:
                await stream.close()
        except openai.OpenAIError as e:
            self.last_error = str(e)
            logger.error(f"[STREAM] Generation with {model} failed: {e}")
            raise GenerationFailedError(str(e)) from e
        finally:
            self.active_generations -= 1

        total_duration = time.perf_counter() - start_time
        # Providers without usage reporting: one streamed chunk is roughly one token
        tokens_generated = tokens_generated or chunk_count
        stats = GenerationStats(
            tokens_generated=tokens_generated,
            total_duration_ms=int(total_duration * 1000),
            time_to_first_token_ms=int(((first_token_time or start_time) - start_time) * 1000),
            tokens_per_second=tokens_generated / total_duration if total_duration > 0 else 0.0,
        )
        logger.info(
            f"[STREAM] {tokens_generated} tokens in {total_duration:.2f}s "
            f"({stats.formatted_tps}, ttft {stats.formatted_ttft})"
        )
        self.last_error = None
        self.generation_stats = stats
        if on_stats is not None:
            on_stats(stats)
