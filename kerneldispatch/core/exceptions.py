"""
Custom exceptions for the kerneldispatch core system.

Every precondition failure has an ErrorKind and a matching exception class.
All of them are raised before any device work is issued, so no partial
device-side state is left behind.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Type


class ErrorKind(Enum):
    SHAPE_MISMATCH = "shape_mismatch"
    ALIASING_VIOLATION = "aliasing_violation"
    REPRESENTATION_KIND_MISMATCH = "representation_kind_mismatch"
    UNSUPPORTED_ELEMENT_COUNT = "unsupported_element_count"
    NO_CONVERTER_FOUND = "no_converter_found"
    TOO_MANY_STACK_MEMBERS = "too_many_stack_members"
    CONTEXT_MISMATCH = "context_mismatch"


class KernelDispatchError(Exception):
    """Base class for all kerneldispatch custom exceptions."""
    kind = None


class ShapeMismatchError(KernelDispatchError, ValueError):
    """Raised when co-invoked arrays disagree in extents or dimensionality."""
    kind = ErrorKind.SHAPE_MISMATCH


class AliasingViolationError(KernelDispatchError, ValueError):
    """Raised when source and destination are the same array."""
    kind = ErrorKind.ALIASING_VIOLATION


class RepresentationKindMismatchError(KernelDispatchError, TypeError):
    """Raised when linear buffers and formatted images are mixed."""
    kind = ErrorKind.REPRESENTATION_KIND_MISMATCH


class UnsupportedElementCountError(KernelDispatchError, ValueError):
    """Raised when a kernel's local working set exceeds the backend maximum."""
    kind = ErrorKind.UNSUPPORTED_ELEMENT_COUNT


class NoConverterFoundError(KernelDispatchError, KeyError):
    """Raised when the conversion registry has no entry for a kind pair."""
    kind = ErrorKind.NO_CONVERTER_FOUND

    def __str__(self):
        # KeyError quotes its argument; keep the plain message
        return str(self.args[0]) if self.args else ""


class TooManyStackMembersError(KernelDispatchError, ValueError):
    """Raised when a stack split/fusion receives more arrays than supported."""
    kind = ErrorKind.TOO_MANY_STACK_MEMBERS


class ContextMismatchError(KernelDispatchError, RuntimeError):
    """Raised when an array is used with a context that did not allocate it."""
    kind = ErrorKind.CONTEXT_MISMATCH


class ReleasedArrayError(KernelDispatchError, RuntimeError):
    """Raised when a released device array is used."""
    pass


class UnsupportedElementTypeError(KernelDispatchError, TypeError):
    """Raised when a host dtype has no device element type."""
    pass


class KernelNotFoundError(KernelDispatchError, KeyError):
    """Raised when a backend cannot resolve a kernel file/symbol pair."""

    def __str__(self):
        return str(self.args[0]) if self.args else ""


class KernelExecutionError(KernelDispatchError, RuntimeError):
    """Raised when the backend fails to execute a kernel."""

    def __init__(self, kernel_file: str, kernel_name: str, reason: str):
        self.kernel_file = kernel_file
        self.kernel_name = kernel_name
        self.reason = reason
        super().__init__(
            f"Kernel {kernel_name} from {kernel_file} failed. Reason: {reason}"
        )


_EXCEPTIONS_BY_KIND = {
    ErrorKind.SHAPE_MISMATCH: ShapeMismatchError,
    ErrorKind.ALIASING_VIOLATION: AliasingViolationError,
    ErrorKind.REPRESENTATION_KIND_MISMATCH: RepresentationKindMismatchError,
    ErrorKind.UNSUPPORTED_ELEMENT_COUNT: UnsupportedElementCountError,
    ErrorKind.NO_CONVERTER_FOUND: NoConverterFoundError,
    ErrorKind.TOO_MANY_STACK_MEMBERS: TooManyStackMembersError,
    ErrorKind.CONTEXT_MISMATCH: ContextMismatchError,
}


def exception_for(kind: ErrorKind) -> Type[KernelDispatchError]:
    """Return the exception class raised for an error kind."""
    return _EXCEPTIONS_BY_KIND[kind]


@dataclass(frozen=True)
class PreconditionViolation:
    """
    A failed precondition, returned (not raised) by check functions.

    Attributes:
        kind: The error kind
        message: Human readable description
    """
    kind: ErrorKind
    message: str

    def to_exception(self) -> KernelDispatchError:
        return exception_for(self.kind)(self.message)
