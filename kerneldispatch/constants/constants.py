"""
Consolidated constants for kerneldispatch.

This module defines all constants related to element types, representation
kinds, conversion kinds and backend-imposed limits.
"""

from enum import Enum
from typing import FrozenSet, Tuple

import numpy as np


class ElementType(Enum):
    UINT8 = "uint8"
    UINT16 = "uint16"
    FLOAT32 = "float32"
    UINT32 = "uint32"

    @property
    def dtype(self) -> np.dtype:
        """NumPy dtype matching this element type."""
        return np.dtype(self.value)

    @property
    def itemsize(self) -> int:
        return self.dtype.itemsize

    @property
    def is_integer(self) -> bool:
        return self.dtype.kind in "ui"

    @classmethod
    def from_dtype(cls, dtype) -> "ElementType":
        """
        Map a NumPy dtype to an element type.

        Args:
            dtype: Anything np.dtype() accepts

        Returns:
            The matching ElementType

        Raises:
            UnsupportedElementTypeError: If the dtype has no device counterpart
        """
        name = np.dtype(dtype).name
        for element_type in cls:
            if element_type.value == name:
                return element_type

        from kerneldispatch.core.exceptions import UnsupportedElementTypeError
        raise UnsupportedElementTypeError(
            f"Unsupported element type: {name}. "
            f"Supported types are: {', '.join(e.value for e in cls)}"
        )


class RepresentationKind(Enum):
    BUFFER = "buffer"
    IMAGE = "image"


class ConversionKind(Enum):
    DEVICE_BUFFER = "device_buffer"
    DEVICE_IMAGE = "device_image"
    HOST_ARRAY = "host_array"
    HOST_STACK = "host_stack"

    @property
    def is_device(self) -> bool:
        return self in DEVICE_KINDS

    @property
    def representation(self) -> RepresentationKind:
        """Device representation kind for a device conversion kind."""
        if self is ConversionKind.DEVICE_BUFFER:
            return RepresentationKind.BUFFER
        if self is ConversionKind.DEVICE_IMAGE:
            return RepresentationKind.IMAGE
        raise ValueError(f"{self.value} is not a device conversion kind")

    @classmethod
    def for_representation(cls, kind: RepresentationKind) -> "ConversionKind":
        if kind is RepresentationKind.BUFFER:
            return cls.DEVICE_BUFFER
        if kind is RepresentationKind.IMAGE:
            return cls.DEVICE_IMAGE
        raise ValueError(f"Unknown representation kind: {kind!r}")


DEVICE_KINDS: FrozenSet[ConversionKind] = frozenset({
    ConversionKind.DEVICE_BUFFER,
    ConversionKind.DEVICE_IMAGE,
})
HOST_KINDS: FrozenSet[ConversionKind] = frozenset({
    ConversionKind.HOST_ARRAY,
    ConversionKind.HOST_STACK,
})

# Element types with a typed plane buffer in the chunked transfer path
PLANE_BUFFER_ELEMENT_TYPES: FrozenSet[ElementType] = frozenset({
    ElementType.UINT8,
    ElementType.UINT16,
    ElementType.FLOAT32,
})

# Mismatched arguments are always promoted to float, never to a wider integer
UNIFICATION_TARGET_TYPE = ElementType.FLOAT32

# Parameter names containing one of these substrings are kernel inputs
INPUT_NAME_MARKERS: Tuple[str, ...] = ("src", "input")

# Limits
DEFAULT_MAX_HOST_ARRAY_ELEMENTS = 2 ** 31 - 1
DEFAULT_MAX_KERNEL_ARRAY_SIZE = 1000
# Stack split kernels exist for 2 to MAX_SPLIT_STACKS outputs
MAX_SPLIT_STACKS = 12
DEFAULT_MAX_STACK_MEMBERS = MAX_SPLIT_STACKS
