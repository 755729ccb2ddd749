"""
Engine Configuration

All tunable constants of the dialogue engine live here instead of inline
literals. Values come from the environment (optionally a .env file), using the
TUTOR_ prefix, e.g. TUTOR_SIMPLE_TOKEN_CEILING=12.
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class TutorConfig(BaseModel):
    """Runtime configuration for the tutoring engine and its gateways."""

    # Memory
    memory_capacity: int = Field(100, ge=1, description="Max messages kept in session memory")
    analysis_window: int = Field(10, ge=1, description="Rolling QueryAnalysis history size")
    history_window: int = Field(20, ge=1, description="Messages rendered into the prompt")
    max_facts: int = Field(10, ge=1, description="Retained extracted facts")
    recall_top_n: int = Field(5, ge=1, description="Relevant messages returned by the retriever")
    cross_session_days: int = Field(7, ge=0, description="Look-back for cross-session carryover")
    use_tokenizer: bool = Field(True, description="Count context tokens with tiktoken")

    # Output shaping
    simple_token_ceiling: int = Field(15, ge=1, description="Hard ceiling for the simple tier")
    validate_replies: bool = Field(True, description="Check memory claims and arithmetic in replies")

    # Session lifecycle
    duplicate_window_seconds: float = Field(2.0, ge=0)
    end_session_clear_delay: float = Field(3.0, ge=0)

    # Gateways
    model: str = "gemini-2.0-flash"
    temperature: float = 0.7
    api_key: Optional[str] = None
    enable_web_search: bool = True
    search_cache_ttl_seconds: float = 300.0
    search_cache_size: int = 20
    search_min_interval_seconds: float = 1.0
    search_max_tracked_users: int = 100

    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "TutorConfig":
        """Build a config from TUTOR_* environment variables (after loading .env)."""
        load_dotenv(env_file)
        values = {}
        for name in cls.model_fields:
            raw = os.getenv(f"TUTOR_{name.upper()}")
            if raw is not None:
                values[name] = raw
        if "api_key" not in values:
            api_key = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
            if api_key:
                values["api_key"] = api_key
        return cls(**values)
