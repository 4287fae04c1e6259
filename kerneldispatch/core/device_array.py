"""
Device array implementation for kerneldispatch.

This module provides the DeviceArray class: a typed, shaped block of
backend-resident memory, either a linear buffer or a formatted image.
"""

import logging
from typing import TYPE_CHECKING, Any, Sequence, Tuple

from kerneldispatch.constants import ElementType, RepresentationKind
from kerneldispatch.core.exceptions import ReleasedArrayError
from kerneldispatch.core.utils import dimensions_to_shape

if TYPE_CHECKING:
    from kerneldispatch.core.context import ComputeContext

logger = logging.getLogger(__name__)


class DeviceArray:
    """
    Device-resident array with fixed extents, element type and representation.

    Extents, element type and representation kind are fixed at creation.
    Operations that produce another type or shape allocate a new DeviceArray.
    An array is owned by whoever created it until release() is called.

    Attributes:
        context: The ComputeContext that allocated the array
        handle: Backend-specific handle of the device memory
        dimensions: Axis extents in (width[, height[, depth]]) order
        element_type: The element type
        kind: Linear buffer or formatted image
    """

    __slots__ = ("_context", "_handle", "_dimensions", "_element_type", "_kind", "_released")

    def __init__(self, context: "ComputeContext", handle: Any,
                 dimensions: Tuple[int, ...], element_type: ElementType,
                 kind: RepresentationKind):
        self._context = context
        self._handle = handle
        self._dimensions = tuple(int(d) for d in dimensions)
        self._element_type = element_type
        self._kind = kind
        self._released = False
        self.validate_dimensions(self._dimensions)

    @staticmethod
    def validate_dimensions(dimensions: Sequence[int]) -> Tuple[int, ...]:
        """
        Check that dimensions are 1 to 3 positive extents.

        Returns:
            The extents as a tuple of ints

        Raises:
            ValueError: If the axis count or an extent is invalid
        """
        dimensions = tuple(int(d) for d in dimensions)
        if not 1 <= len(dimensions) <= 3:
            raise ValueError(f"Expected 1 to 3 dimensions, got {len(dimensions)}: {dimensions}")
        if any(d < 1 for d in dimensions):
            raise ValueError(f"All extents must be positive, got {dimensions}")
        return dimensions

    @property
    def context(self) -> "ComputeContext":
        return self._context

    @property
    def handle(self) -> Any:
        """Backend handle. Raises ReleasedArrayError once released."""
        if self._released:
            raise ReleasedArrayError(f"{self!r} has already been released")
        return self._handle

    @property
    def dimensions(self) -> Tuple[int, ...]:
        return self._dimensions

    @property
    def shape(self) -> Tuple[int, ...]:
        """Extents in NumPy order: ([depth,] [height,] width)."""
        return dimensions_to_shape(self._dimensions)

    @property
    def element_type(self) -> ElementType:
        return self._element_type

    @property
    def kind(self) -> RepresentationKind:
        return self._kind

    @property
    def dimension(self) -> int:
        """Number of axes (1 to 3)."""
        return len(self._dimensions)

    @property
    def width(self) -> int:
        return self._dimensions[0]

    @property
    def height(self) -> int:
        return self._dimensions[1] if len(self._dimensions) > 1 else 1

    @property
    def depth(self) -> int:
        return self._dimensions[2] if len(self._dimensions) > 2 else 1

    @property
    def plane_size(self) -> int:
        return self.width * self.height

    @property
    def size(self) -> int:
        """Total number of elements."""
        return self.plane_size * self.depth

    @property
    def nbytes(self) -> int:
        return self.size * self._element_type.itemsize

    @property
    def is_released(self) -> bool:
        return self._released

    def release(self) -> None:
        """
        Free the device memory behind this array.

        Releasing twice is a no-op. Backend failures propagate.
        """
        if self._released:
            return
        self._context.backend.release(self._handle)
        self._released = True
        self._handle = None

    def __enter__(self) -> "DeviceArray":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    def __repr__(self) -> str:
        state = " released" if self._released else ""
        return (f"DeviceArray({self._kind.value}, {self._element_type.value}, "
                f"{'x'.join(str(d) for d in self._dimensions)}{state})")
