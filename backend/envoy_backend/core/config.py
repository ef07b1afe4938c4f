from pydantic_settings import BaseSettings
from typing import List, Optional
from functools import lru_cache

class Settings(BaseSettings):
    # API Configuration
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Envoy API"

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Chat backend (any OpenAI-compatible endpoint: OpenAI, Ollama, LM Studio, MLX server)
    OPENAI_API_KEY: str = "not-needed"
    OPENAI_BASE_URL: Optional[str] = None
    OPENAI_MODEL: Optional[str] = None
    PROVIDER_NAME: str = "OpenAI"
    TEMPERATURE: float = 0.7
    MAX_COMPLETION_TOKENS: int = 2048
    MAX_CONTEXT_TOKENS: int = 28500  # Conservative limit with safety margin

    # Agent (A2A) connection
    AGENT_URL: Optional[str] = None
    AGENT_TIMEOUT: float = 300.0

    # Prompts
    DEFAULT_SYSTEM_PROMPT: str = "You are a helpful AI assistant. Be concise and direct in your responses."
    BASE_SYSTEM_PROMPT: str = "You are a helpful AI assistant in Envoy, an ambient intelligence app. Be concise and direct."
    DOCUMENT_CONTEXT_LIMIT: int = 2000

    # Threads
    MAX_MESSAGE_LENGTH: int = 4000
    ABOUT_ME_SPACE_ID: str = "about-me"
    THREADS_DIR: str = ""  # Empty disables on-disk persistence

    class Config:
        env_file = ".env"
        case_sensitive = True

@lru_cache()
def get_settings() -> Settings:
    return Settings()
