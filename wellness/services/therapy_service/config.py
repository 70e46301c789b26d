"""Therapy Service configuration."""
import os
from dataclasses import dataclass


@dataclass(frozen=True)
class TherapyConfig:
    """Configuration for the chat pipeline."""

    # Messages accepted per session per window
    rate_limit_per_minute: int = 20
    rate_limit_window_seconds: int = 60

    # Longest user message accepted, in characters
    max_message_length: int = 4000

    # Messages returned by GET /therapy/session/<id>
    session_view_size: int = 50

    # Prompt language and emergency-contact region
    language: str = "pt-BR"
    location: str = "pt-BR"

    # Used when the client sends no preference
    default_technique: str = "CBT"
    default_issue: str = "general emotional support"

    @classmethod
    def from_env(cls) -> "TherapyConfig":
        """Create configuration from environment variables."""
        return cls(
            rate_limit_per_minute=int(os.getenv("RATE_LIMIT_REQUESTS_PER_MINUTE", "20")),
            max_message_length=int(os.getenv("MAX_MESSAGE_LENGTH", "4000")),
            language=os.getenv("APP_LANGUAGE", "pt-BR"),
            location=os.getenv("USER_LOCATION", "pt-BR"),
        )
