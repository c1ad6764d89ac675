"""AI completion interface."""
from app.ai.client import (
    AIServiceError,
    AIRateLimitError,
    AIQuotaExceededError,
    call_openai,
    complete_text,
    complete_json,
)

__all__ = [
    "AIServiceError",
    "AIRateLimitError",
    "AIQuotaExceededError",
    "call_openai",
    "complete_text",
    "complete_json",
]
