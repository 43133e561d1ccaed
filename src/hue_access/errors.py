from __future__ import annotations

import enum
from typing import Any


class ApiFailure(Exception):
    def __init__(self, message: str, *, body: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.body = body


class ConnectionFailure(ApiFailure):
    pass


class AuthenticationFailure(ApiFailure):
    pass


class UnsupportedResourceType(ApiFailure):
    pass


class ResourceNotFound(ApiFailure):
    pass


class LightNotFound(ResourceNotFound):
    pass


class GroupNotFound(ResourceNotFound):
    pass


class SceneNotFound(ResourceNotFound):
    pass


class EmptyGroup(ApiFailure):
    pass


class AmbiguousName(ApiFailure):
    def __init__(self, message: str, *, candidates: list[str]) -> None:
        super().__init__(message)
        self.candidates = candidates


class WriteResult(enum.Enum):
    """Outcome of a state write that did not raise."""

    APPLIED = "applied"
    # The backend refused the change only because the target is currently off.
    LIGHT_OFF = "light_off"
