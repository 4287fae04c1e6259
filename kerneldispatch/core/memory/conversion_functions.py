"""
Conversion functions for kerneldispatch.

One function per directed pair of representations: device buffer, device
image, host array and host image stack. Every function allocates or builds
a new value; none returns its input or a view of it.
"""

import logging
from typing import TYPE_CHECKING

import numpy as np

from kerneldispatch.constants import ElementType, RepresentationKind
from kerneldispatch.core.device_array import DeviceArray
from kerneldispatch.core.exceptions import ShapeMismatchError
from kerneldispatch.core.memory.stack_utils import ImageStack
from kerneldispatch.core.utils import shape_to_dimensions

if TYPE_CHECKING:
    from kerneldispatch.core.context import ComputeContext

logger = logging.getLogger(__name__)


def _device_to_device(context: "ComputeContext", source: DeviceArray,
                      kind: RepresentationKind) -> DeviceArray:
    target = context.create_like(source, kind=kind)
    try:
        context.ops.copy(source, target)
    except Exception:
        target.release()
        raise
    return target


def _device_to_host_array(context: "ComputeContext", source: DeviceArray) -> np.ndarray:
    data = np.asarray(context.backend.read(source.handle))
    return data.reshape(source.shape).copy()


def _host_to_device(context: "ComputeContext", data, dimensions, element_type: ElementType,
                    kind: RepresentationKind) -> DeviceArray:
    target = context.create(dimensions, element_type, kind)
    try:
        context.transfer.push(data, target)
    except Exception:
        target.release()
        raise
    return target


def _array_dimensions(data: np.ndarray):
    if not 1 <= data.ndim <= 3:
        raise ShapeMismatchError(f"Host arrays must have 1 to 3 axes, got shape {data.shape}")
    return shape_to_dimensions(data.shape)


def _stack_dimensions(stack: ImageStack):
    return stack.dimensions


# Device buffer to X

def _buffer_to_image(context: "ComputeContext", source: DeviceArray) -> DeviceArray:
    return _device_to_device(context, source, RepresentationKind.IMAGE)


def _buffer_to_host_array(context: "ComputeContext", source: DeviceArray) -> np.ndarray:
    return _device_to_host_array(context, source)


def _buffer_to_host_stack(context: "ComputeContext", source: DeviceArray) -> ImageStack:
    return context.transfer.pull(source)


# Device image to X

def _image_to_buffer(context: "ComputeContext", source: DeviceArray) -> DeviceArray:
    return _device_to_device(context, source, RepresentationKind.BUFFER)


def _image_to_host_array(context: "ComputeContext", source: DeviceArray) -> np.ndarray:
    return _device_to_host_array(context, source)


def _image_to_host_stack(context: "ComputeContext", source: DeviceArray) -> ImageStack:
    return context.transfer.pull(source)


# Host array to X

def _host_array_to_buffer(context: "ComputeContext", data: np.ndarray) -> DeviceArray:
    return _host_to_device(context, data, _array_dimensions(data),
                           ElementType.from_dtype(data.dtype), RepresentationKind.BUFFER)


def _host_array_to_image(context: "ComputeContext", data: np.ndarray) -> DeviceArray:
    return _host_to_device(context, data, _array_dimensions(data),
                           ElementType.from_dtype(data.dtype), RepresentationKind.IMAGE)


def _host_array_to_host_stack(context: "ComputeContext", data: np.ndarray) -> ImageStack:
    _array_dimensions(data)
    return ImageStack.from_array(data)


# Host stack to X

def _host_stack_to_buffer(context: "ComputeContext", stack: ImageStack) -> DeviceArray:
    return _host_to_device(context, stack, _stack_dimensions(stack),
                           stack.element_type, RepresentationKind.BUFFER)


def _host_stack_to_image(context: "ComputeContext", stack: ImageStack) -> DeviceArray:
    return _host_to_device(context, stack, _stack_dimensions(stack),
                           stack.element_type, RepresentationKind.IMAGE)


def _host_stack_to_host_array(context: "ComputeContext", stack: ImageStack) -> np.ndarray:
    return stack.to_array()
