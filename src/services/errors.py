from __future__ import annotations


class InvalidChatRequest(Exception):
    """Raised when a chat payload cannot be processed."""


class RateLimitExceeded(Exception):
    def __init__(self, client_id: str, retry_after: float) -> None:
        super().__init__("Too many chat requests")
        self.client_id = client_id
        self.retry_after = max(0.0, retry_after)


class PermissionDenied(Exception):
    """A tool call violated an authentication, role or ownership rule."""

    def __init__(self, message: str, rule: str) -> None:
        super().__init__(message)
        self.rule = rule


class LLMRequestFailed(Exception):
    """The language model could not produce a reply for this turn."""
