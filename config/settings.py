"""Application settings."""

import os
from typing import Optional
from pydantic import BaseModel


class Settings(BaseModel):
    """Application configuration settings."""

    # LLM Provider settings
    llm_provider: str = "openrouter"  # "openrouter", "openai" or "anthropic"
    llm_base_url: str = "https://openrouter.ai/api/v1"
    llm_model: Optional[str] = None  # Override the interpreter model from the routing table

    # API Keys
    openrouter_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None

    # Media generation endpoint
    media_api_base_url: Optional[str] = None
    media_api_key: Optional[str] = None

    # Static tables
    tiers_path: Optional[str] = None  # defaults to config/data/tiers.yaml
    model_routing_path: Optional[str] = None  # defaults to config/data/model_routing.yaml

    # Memory settings
    memory_enabled: bool = True
    db_path: str = "data/studio.db"
    max_recent_messages: int = 35

    # Timeouts (seconds)
    interpretation_timeout_seconds: float = 30.0
    generation_timeout_seconds: float = 300.0
    media_request_timeout_seconds: int = 240

    # Name used wherever a provider or model name would leak to users
    assistant_name: str = "Studio AI"

    # Logging
    verbose: bool = False

    def __init__(self, **data):
        # Auto-load API keys and endpoints from environment if not provided
        env_fields = {
            "openrouter_api_key": "OPENROUTER_API_KEY",
            "openai_api_key": "OPENAI_API_KEY",
            "anthropic_api_key": "ANTHROPIC_API_KEY",
            "media_api_base_url": "MEDIA_API_BASE_URL",
            "media_api_key": "MEDIA_API_KEY",
        }
        for field, env_var in env_fields.items():
            if data.get(field) is None:
                data[field] = os.environ.get(env_var)

        if data.get("db_path") is None and os.environ.get("STUDIO_DB_PATH"):
            data["db_path"] = os.environ["STUDIO_DB_PATH"]

        super().__init__(**{k: v for k, v in data.items() if v is not None or k in env_fields})

    def get_llm_api_key(self) -> Optional[str]:
        """Get the API key for the configured LLM provider."""
        if self.llm_provider == "openrouter":
            return self.openrouter_api_key
        elif self.llm_provider == "openai":
            return self.openai_api_key
        elif self.llm_provider == "anthropic":
            return self.anthropic_api_key
        return None
