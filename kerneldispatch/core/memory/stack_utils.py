"""
Stack utilities module for kerneldispatch.

This module provides the host-side ImageStack (an ordered list of equally
shaped 2D planes) and the functions for stacking 2D slices into a 3D array
and unstacking a 3D array into 2D slices.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Union

import numpy as np
import tifffile

from kerneldispatch.constants import ConversionKind, ElementType
from kerneldispatch.core.device_array import DeviceArray

logger = logging.getLogger(__name__)


def _is_2d(data: Any) -> bool:
    return hasattr(data, "shape") and len(data.shape) == 2


def _is_3d(data: Any) -> bool:
    return hasattr(data, "shape") and len(data.shape) == 3


def stack_slices(slices: List[np.ndarray]) -> np.ndarray:
    """
    Stack 2D slices into a 3D array of shape [Z, Y, X].

    Args:
        slices: List of 2D arrays of equal shape

    Returns:
        A new 3D array with the dtype of the first slice

    Raises:
        ValueError: If slices is empty, or a slice is not 2D or has another shape
    """
    if not slices:
        raise ValueError("Cannot stack empty list of slices")

    first_slice = slices[0]
    for i, slice_data in enumerate(slices):
        if not _is_2d(slice_data):
            raise ValueError(f"Slice at index {i} is not a 2D array. All slices must be 2D.")
        if slice_data.shape != first_slice.shape:
            raise ValueError(
                f"Slice at index {i} has shape {slice_data.shape}, expected {first_slice.shape}"
            )

    # Pre-allocate the result instead of stacking an intermediate list
    result = np.empty((len(slices),) + first_slice.shape, dtype=first_slice.dtype)
    for i, slice_data in enumerate(slices):
        result[i] = slice_data
    return result


def unstack_slices(array: np.ndarray, copy: bool = True) -> List[np.ndarray]:
    """
    Split a 3D array into 2D slices along axis 0.

    Args:
        array: 3D array to split
        copy: Return independent copies rather than views

    Returns:
        List of 2D slices

    Raises:
        ValueError: If array is not 3D
    """
    if not _is_3d(array):
        raise ValueError(f"Array must be 3D, got shape {getattr(array, 'shape', 'unknown')}")
    if copy:
        return [array[i].copy() for i in range(array.shape[0])]
    return [array[i] for i in range(array.shape[0])]


@dataclass(eq=False)
class ImageStack:
    """
    Host image stack: an ordered list of 2D planes plus a title.

    All planes share one shape and dtype. `dimension` records the axis
    count of the array the stack stands for, so a depth-1 volume stays 3D
    and a 1D array is held as a single one-row plane.

    Attributes:
        planes: The 2D planes, front to back
        title: Display name of the stack
        dimension: Axis count of to_array(); inferred from depth when None
    """
    planes: List[np.ndarray]
    title: str = field(default="stack")
    dimension: Optional[int] = None

    def __post_init__(self):
        if not self.planes:
            raise ValueError("An ImageStack needs at least one plane")
        first = self.planes[0]
        for i, plane in enumerate(self.planes):
            if not _is_2d(plane):
                raise ValueError(f"Plane {i} is not 2D (shape {getattr(plane, 'shape', None)})")
            if plane.shape != first.shape or plane.dtype != first.dtype:
                raise ValueError(
                    f"Plane {i} is {plane.dtype}{plane.shape}, expected {first.dtype}{first.shape}"
                )

        if self.dimension is None:
            self.dimension = 2 if self.depth == 1 else 3
        if self.dimension not in (1, 2, 3):
            raise ValueError(f"dimension must be 1, 2 or 3, got {self.dimension}")
        if self.dimension < 3 and self.depth != 1:
            raise ValueError(f"A {self.dimension}D stack holds one plane, got {self.depth}")
        if self.dimension == 1 and self.height != 1:
            raise ValueError(f"A 1D stack holds a single row, got height {self.height}")

    @property
    def width(self) -> int:
        return self.planes[0].shape[1]

    @property
    def height(self) -> int:
        return self.planes[0].shape[0]

    @property
    def depth(self) -> int:
        return len(self.planes)

    @property
    def dtype(self) -> np.dtype:
        return self.planes[0].dtype

    @property
    def element_type(self) -> ElementType:
        return ElementType.from_dtype(self.dtype)

    @property
    def shape(self):
        """NumPy shape of to_array(): (width,), (height, width) or (depth, height, width)."""
        return (self.depth, self.height, self.width)[3 - self.dimension:]

    @property
    def dimensions(self):
        """Extents in (width[, height[, depth]]) order."""
        return tuple(reversed(self.shape))

    @property
    def size(self) -> int:
        return self.width * self.height * self.depth

    @classmethod
    def from_array(cls, array: np.ndarray, title: str = "stack") -> "ImageStack":
        """
        Build a stack from a 1D, 2D or 3D host array. Planes are copies.

        Raises:
            ValueError: If the array has another number of axes
        """
        array = np.asarray(array)
        if array.ndim == 1:
            return cls([array.reshape(1, -1).copy()], title, dimension=1)
        if _is_2d(array):
            return cls([array.copy()], title, dimension=2)
        return cls(unstack_slices(array), title, dimension=3)

    def to_array(self) -> np.ndarray:
        """Return a new host array with `dimension` axes."""
        if self.depth == 1:
            return self.planes[0].reshape(self.shape).copy()
        return stack_slices(self.planes)

    def flat(self) -> np.ndarray:
        """All elements as one 1D array, plane after plane."""
        return np.concatenate([plane.ravel() for plane in self.planes])

    @classmethod
    def from_tiff(cls, path: Union[str, Path], title: Optional[str] = None) -> "ImageStack":
        """
        Read a 2D or 3D TIFF file into a stack.

        Raises:
            ValueError: If the file does not hold a 2D or 3D image
        """
        path = Path(path)
        data = tifffile.imread(str(path))
        if data.ndim not in (2, 3):
            raise ValueError(f"Expected a 2D or 3D TIFF, got shape {data.shape} from {path}")
        logger.debug("Read %s stack %s from %s", data.dtype, data.shape, path)
        return cls.from_array(data, title or path.stem)

    def to_tiff(self, path: Union[str, Path]) -> Path:
        """Write the stack to a TIFF file and return its path."""
        path = Path(path)
        tifffile.imwrite(str(path), self.to_array())
        logger.debug("Wrote stack %r (%dx%dx%d) to %s",
                     self.title, self.width, self.height, self.depth, path)
        return path

    def __repr__(self):
        return f"ImageStack({self.title!r}, {self.dtype}, {self.width}x{self.height}x{self.depth})"


def detect_kind(data: Any) -> ConversionKind:
    """
    Detect the conversion kind of a value.

    Args:
        data: A DeviceArray, ImageStack or NumPy array

    Returns:
        The matching ConversionKind

    Raises:
        TypeError: If the value is none of the four representations
    """
    if isinstance(data, DeviceArray):
        return ConversionKind.for_representation(data.kind)
    if isinstance(data, ImageStack):
        return ConversionKind.HOST_STACK
    if isinstance(data, np.ndarray):
        return ConversionKind.HOST_ARRAY

    # Fail loudly if we can't detect the kind
    raise TypeError(f"Could not detect conversion kind of {type(data).__name__}")
