"""Outcome types returned by services and the identity layer.

`Result` is the uniform success/failure wrapper used by domain services:
either success with an optional payload, or failure with human-readable
messages. `IdentityResult` and `SignInResult` describe outcomes of the
identity collaborator and are returned to callers unchanged.
"""

from __future__ import annotations

from enum import Enum
from typing import Generic, Iterable, List, Optional, TypeVar, Union

from pydantic import BaseModel, Field

T = TypeVar("T")


class Result(BaseModel, Generic[T]):
    """Tagged success/failure outcome with an optional payload."""
    succeeded: bool
    messages: List[str] = Field(default_factory=list)
    data: Optional[T] = None

    @property
    def failed(self) -> bool:
        return not self.succeeded

    @classmethod
    def success(cls, data: Optional[T] = None, message: Optional[str] = None) -> "Result[T]":
        return cls(succeeded=True, messages=[message] if message else [], data=data)

    @classmethod
    def fail(cls, messages: Union[str, Iterable[str], None] = None) -> "Result[T]":
        if messages is None:
            messages = []
        elif isinstance(messages, str):
            messages = [messages]
        return cls(succeeded=False, messages=list(messages), data=None)


class IdentityResult(BaseModel):
    """Outcome of an identity store operation (create user, add role, reset password)."""
    succeeded: bool
    errors: List[str] = Field(default_factory=list)

    @classmethod
    def success(cls) -> "IdentityResult":
        return cls(succeeded=True)

    @classmethod
    def failed(cls, *errors: str) -> "IdentityResult":
        return cls(succeeded=False, errors=list(errors))


class SignInResult(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    LOCKED_OUT = "locked_out"
    REQUIRES_TWO_FACTOR = "requires_two_factor"
    NOT_ALLOWED = "not_allowed"

    @property
    def succeeded(self) -> bool:
        return self is SignInResult.SUCCEEDED
