"""
Chunked host/device transfer for kerneldispatch.

Host arrays are limited in how many elements they may address. Device
arrays larger than that limit are moved one plane at a time through a
single reused plane buffer, so the host never needs one array holding the
whole volume.
"""

import logging
from typing import TYPE_CHECKING, List, Optional, Union

import numpy as np

from kerneldispatch.constants import (PLANE_BUFFER_ELEMENT_TYPES,
                                      ConversionKind)
from kerneldispatch.core.device_array import DeviceArray
from kerneldispatch.core.exceptions import ShapeMismatchError
from kerneldispatch.core.memory.stack_utils import ImageStack, detect_kind

if TYPE_CHECKING:
    from kerneldispatch.core.context import ComputeContext

logger = logging.getLogger(__name__)


class ChunkedTransferEngine:
    """
    Moves device arrays to and from host image stacks.

    Arrays with at most max_host_array_elements elements go through one
    whole-array transfer. Larger arrays are transferred plane by plane with
    origin (0, 0, z) and region (width, height, 1).
    """

    def __init__(self, context: "ComputeContext", max_host_array_elements: Optional[int] = None):
        self._context = context
        if max_host_array_elements is None:
            max_host_array_elements = context.config.max_host_array_elements
        if max_host_array_elements < 1:
            raise ValueError(
                f"max_host_array_elements must be positive, got {max_host_array_elements}"
            )
        self.max_host_array_elements = max_host_array_elements

    def requires_chunking(self, array: DeviceArray) -> bool:
        """True if the array holds more elements than one host array may."""
        return array.size > self.max_host_array_elements

    def pull(self, array: DeviceArray) -> ImageStack:
        """
        Copy a device array into a new ImageStack.

        Element types without a typed plane buffer (e.g. uint32) come back
        as float32 planes.

        Args:
            array: The device array to read

        Returns:
            A stack with one plane per depth index
        """
        if array.element_type not in PLANE_BUFFER_ELEMENT_TYPES:
            return self._pull_generic(array)
        if self.requires_chunking(array):
            return self._pull_planes(array)
        return self._pull_whole(array)

    def pull_array(self, array: DeviceArray) -> np.ndarray:
        """Copy a device array into a new host array shaped like array.shape."""
        return self.pull(array).to_array().reshape(array.shape)

    def _pull_whole(self, array: DeviceArray) -> ImageStack:
        flat = np.asarray(self._context.backend.read(array.handle)).reshape(-1)
        plane_size = array.plane_size
        planes = [
            flat[z * plane_size:(z + 1) * plane_size].reshape(array.height, array.width).copy()
            for z in range(array.depth)
        ]
        return ImageStack(planes, title=_title(array), dimension=array.dimension)

    def _pull_planes(self, array: DeviceArray) -> ImageStack:
        if array.plane_size > self.max_host_array_elements:
            logger.warning("A single plane of %r exceeds %d elements; transferring it anyway",
                           array, self.max_host_array_elements)
        logger.debug("Chunked pull of %r in %d planes", array, array.depth)

        backend = self._context.backend
        handle = array.handle
        plane_buffer = np.empty(array.plane_size, dtype=array.element_type.dtype)
        region = (array.width, array.height, 1)
        planes: List[np.ndarray] = []
        for z in range(array.depth):
            backend.read_region(handle, (0, 0, z), region, out=plane_buffer)
            planes.append(plane_buffer.reshape(array.height, array.width).copy())
        return ImageStack(planes, title=_title(array), dimension=array.dimension)

    def _pull_generic(self, array: DeviceArray) -> ImageStack:
        logger.debug("Generic pull of %r through the host array converter", array)
        converter = self._context.converters.lookup(detect_kind(array), ConversionKind.HOST_ARRAY)
        data = np.asarray(converter.convert(array)).reshape(array.depth, array.height, array.width)
        planes = []
        for z in range(array.depth):
            plane = np.fromiter((float(value) for value in data[z].flat),
                                dtype=np.float32, count=array.plane_size)
            planes.append(plane.reshape(array.height, array.width))
        return ImageStack(planes, title=_title(array), dimension=array.dimension)

    def push(self, source: Union[ImageStack, np.ndarray], array: DeviceArray) -> DeviceArray:
        """
        Copy a host stack or array into an existing device array.

        Values are converted to the array's element type with saturation.

        Args:
            source: ImageStack or 1D to 3D host array with as many planes as the
                array has depth
            array: The destination device array

        Returns:
            The destination array

        Raises:
            ShapeMismatchError: If source and array extents differ
        """
        planes = _planes_of(source)
        if (len(planes) != array.depth
                or planes[0].shape != (array.height, array.width)):
            raise ShapeMismatchError(
                f"Cannot push {len(planes)} plane(s) of {planes[0].shape} "
                f"into {array!r}"
            )

        backend = self._context.backend
        handle = array.handle
        if not self.requires_chunking(array):
            if len(planes) == 1:
                backend.write(handle, planes[0])
            else:
                backend.write(handle, np.stack(planes))
            return array

        logger.debug("Chunked push into %r in %d planes", array, array.depth)
        region = (array.width, array.height, 1)
        for z, plane in enumerate(planes):
            backend.write_region(handle, plane, (0, 0, z), region)
        return array


def _planes_of(source: Union[ImageStack, np.ndarray]) -> List[np.ndarray]:
    if isinstance(source, ImageStack):
        return source.planes
    if isinstance(source, np.ndarray):
        if source.ndim == 1:
            return [source.reshape(1, -1)]
        if source.ndim == 2:
            return [source]
        if source.ndim == 3:
            return [source[z] for z in range(source.shape[0])]
        raise ShapeMismatchError(f"Host arrays must have 1 to 3 axes, got shape {source.shape}")
    raise TypeError(f"Cannot push {type(source).__name__}; expected ImageStack or ndarray")


def _title(array: DeviceArray) -> str:
    return f"{array.kind.value}-{'x'.join(str(d) for d in array.dimensions)}"
