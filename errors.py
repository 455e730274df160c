from __future__ import annotations
from enum import IntEnum
from typing import Optional, Tuple


class ErrorCode(IntEnum):
    E_UNKNOWN = -1
    E_SUCCESS = 0
    E_SYNTAX = 1
    E_3D = 2
    E_STREAM_R = 3
    E_STREAM_W = 4
    E_RUNTIME = 5


class StackoweyError(Exception):
    """Base class for interpreter errors."""

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode = ErrorCode.E_UNKNOWN,
        position: Optional[Tuple[int, int]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = ErrorCode(code)
        self.position = position
        self.step_index: Optional[int] = None

    @property
    def name(self) -> str:
        return f"{self.code.name}[{int(self.code)}]"


class StackoweySyntaxError(StackoweyError):
    """Raised for malformed playfields and directive lines."""

    def __init__(self, message: str, *, position: Optional[Tuple[int, int]] = None) -> None:
        super().__init__(message, code=ErrorCode.E_SYNTAX, position=position)


class StackoweyRuntimeError(StackoweyError):
    """Raised for runtime faults."""

    def __init__(self, message: str, *, position: Optional[Tuple[int, int]] = None) -> None:
        super().__init__(message, code=ErrorCode.E_RUNTIME, position=position)


class StackoweyStreamError(StackoweyError):
    def __init__(self, message: str, *, writing: bool, position: Optional[Tuple[int, int]] = None) -> None:
        code = ErrorCode.E_STREAM_W if writing else ErrorCode.E_STREAM_R
        super().__init__(message, code=code, position=position)
