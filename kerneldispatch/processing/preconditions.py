"""
Precondition checks for kernel operations.

Each check returns None when satisfied and a PreconditionViolation when
not. Operations collect their checks and pass them to require(), which
raises the first violation before any device memory is allocated.
"""

import logging
from typing import TYPE_CHECKING, Optional, Tuple

from kerneldispatch.core.device_array import DeviceArray
from kerneldispatch.core.exceptions import ErrorKind, PreconditionViolation

if TYPE_CHECKING:
    from kerneldispatch.core.context import ComputeContext

logger = logging.getLogger(__name__)

Check = Optional[PreconditionViolation]


def check_different(source: DeviceArray, destination: DeviceArray) -> Check:
    """Source and destination must be distinct arrays."""
    if source is destination:
        return PreconditionViolation(
            ErrorKind.ALIASING_VIOLATION,
            f"Source and destination must be different arrays, got {source!r} twice",
        )
    return None


def check_dimensions(*arrays: DeviceArray) -> Check:
    """All arrays must have the same number of axes."""
    counts = {array.dimension for array in arrays}
    if len(counts) > 1:
        return PreconditionViolation(
            ErrorKind.SHAPE_MISMATCH,
            "Arrays have different dimensionality: "
            + ", ".join(repr(array) for array in arrays),
        )
    return None


def check_same_extents(*arrays: DeviceArray) -> Check:
    """All arrays must have identical extents."""
    extents = {array.dimensions for array in arrays}
    if len(extents) > 1:
        return PreconditionViolation(
            ErrorKind.SHAPE_MISMATCH,
            "Arrays have different extents: " + ", ".join(repr(array) for array in arrays),
        )
    return None


def check_extents(array: DeviceArray, expected: Tuple[int, ...]) -> Check:
    """The array must have exactly the expected (width, height[, depth]) extents."""
    if array.dimensions != tuple(expected):
        return PreconditionViolation(
            ErrorKind.SHAPE_MISMATCH,
            f"Expected extents {'x'.join(str(d) for d in expected)}, got {array!r}",
        )
    return None


def check_dimension(array: DeviceArray, *expected: int) -> Check:
    """The array must have one of the `expected` axis counts."""
    if array.dimension not in expected:
        return PreconditionViolation(
            ErrorKind.SHAPE_MISMATCH,
            f"Expected a {' or '.join(f'{n}D' for n in expected)} array, got {array!r}",
        )
    return None


def check_same_kind(*arrays: DeviceArray) -> Check:
    """All arrays must share one representation kind."""
    kinds = {array.kind for array in arrays}
    if len(kinds) > 1:
        return PreconditionViolation(
            ErrorKind.REPRESENTATION_KIND_MISMATCH,
            "Cannot mix buffers and images: " + ", ".join(repr(array) for array in arrays),
        )
    return None


def check_element_count(count: int, maximum: int, what: str = "kernel window") -> Check:
    """
    A kernel's local working set must fit the backend's fixed array size.

    Args:
        count: Number of elements the kernel holds per work item
        maximum: Largest supported count
        what: Description used in the message
    """
    if count > maximum:
        return PreconditionViolation(
            ErrorKind.UNSUPPORTED_ELEMENT_COUNT,
            f"The {what} holds {count} elements, more than the supported maximum of "
            f"{maximum}. Consider using a smaller window.",
        )
    return None


def check_stack_members(count: int, maximum: int) -> Check:
    """A stack split may produce at most `maximum` stacks."""
    if count > maximum:
        return PreconditionViolation(
            ErrorKind.TOO_MANY_STACK_MEMBERS,
            f"Cannot split into {count} stacks; at most {maximum} are supported",
        )
    return None


def check_context(context: "ComputeContext", *arrays: DeviceArray) -> Check:
    """Every array must have been allocated by context."""
    for array in arrays:
        if array.context is not context:
            return PreconditionViolation(
                ErrorKind.CONTEXT_MISMATCH,
                f"{array!r} belongs to {array.context!r}, not {context!r}",
            )
    return None


def require(*checks: Check) -> None:
    """
    Raise the exception of the first failed check.

    Raises:
        KernelDispatchError: The subclass matching the violation's kind
    """
    for violation in checks:
        if violation is not None:
            logger.debug("Precondition failed (%s): %s", violation.kind.value, violation.message)
            raise violation.to_exception()
