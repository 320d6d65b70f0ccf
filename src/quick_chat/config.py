import os
from typing import Callable, Optional

from pydantic import BaseModel


def _env_number(name: str, default: str, convert: Callable):
    raw = os.getenv(name, default)
    try:
        return convert(raw)
    except ValueError:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from None


class Settings(BaseModel):
    """Runtime configuration read from the environment."""

    api_key: str = ""
    base_url: Optional[str] = None
    model_name: str = "gpt-4.1-mini"
    max_output_tokens: int = 1000
    temperature: float = 0.7
    max_duration: float = 30.0
    max_steps: int = 3
    system_prompt: Optional[str] = None
    timezone: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the environment.

        Raises:
            ValueError: if a numeric variable cannot be parsed
        """
        return cls(
            api_key=os.getenv("OPENAI_API_KEY", ""),
            base_url=os.getenv("OPENAI_BASE_URL") or None,
            model_name=os.getenv("QUICK_CHAT_MODEL", "gpt-4.1-mini"),
            max_output_tokens=_env_number("QUICK_CHAT_MAX_OUTPUT_TOKENS", "1000", int),
            temperature=_env_number("QUICK_CHAT_TEMPERATURE", "0.7", float),
            max_duration=_env_number("QUICK_CHAT_MAX_DURATION", "30", float),
            max_steps=_env_number("QUICK_CHAT_MAX_STEPS", "3", int),
            system_prompt=os.getenv("QUICK_CHAT_SYSTEM_PROMPT") or None,
            timezone=os.getenv("TZ") or None,
        )
