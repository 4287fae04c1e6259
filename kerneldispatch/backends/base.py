"""
Abstract base class for compute backends.

This module defines the contract every compute backend must fulfill: typed
allocation, whole and region transfers, and execution of a named kernel
with named arguments. Shapes passed to a backend are in NumPy order; region
origins and extents are (x, y, z) triples.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np

from kerneldispatch.constants import ElementType, RepresentationKind

logger = logging.getLogger(__name__)


class ComputeBackend(ABC):
    """
    Abstract base class for a single-device compute backend.

    A backend instance is bound to one device and is not thread-safe; use
    one backend (through one ComputeContext) per thread.

    Subclasses call _record_allocation/_record_release so the counters below
    stay accurate.
    """

    name: str = "abstract"

    def __init__(self):
        self._allocation_count = 0
        self._release_count = 0
        self._live_bytes = 0

    @property
    def allocation_count(self) -> int:
        """Number of allocations made since construction."""
        return self._allocation_count

    @property
    def live_count(self) -> int:
        """Number of allocations not yet released."""
        return self._allocation_count - self._release_count

    @property
    def live_bytes(self) -> int:
        return self._live_bytes

    def _record_allocation(self, nbytes: int) -> None:
        self._allocation_count += 1
        self._live_bytes += nbytes

    def _record_release(self, nbytes: int) -> None:
        self._release_count += 1
        self._live_bytes -= nbytes

    @property
    @abstractmethod
    def device_name(self) -> str:
        """Name of the device this backend is bound to."""
        pass

    @abstractmethod
    def allocate(self, shape: Tuple[int, ...], element_type: ElementType,
                 kind: RepresentationKind) -> Any:
        """
        Allocate uninitialised device memory.

        Args:
            shape: Extents in NumPy order
            element_type: Element type of the new memory
            kind: Linear buffer or formatted image

        Returns:
            Backend handle for the allocation
        """
        pass

    @abstractmethod
    def release(self, handle: Any) -> None:
        """
        Free device memory.

        Raises:
            RuntimeError: If the backend cannot free the memory
        """
        pass

    @abstractmethod
    def read(self, handle: Any) -> np.ndarray:
        """Copy the whole device array to a new host array (NumPy order)."""
        pass

    @abstractmethod
    def read_region(self, handle: Any, origin: Sequence[int], region: Sequence[int],
                    out: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Copy a sub-region of a device array to the host.

        Args:
            handle: Backend handle
            origin: (x, y, z) offset of the region
            region: (width, height, depth) extent of the region
            out: Optional host buffer to fill; must hold region elements

        Returns:
            The filled host buffer, shaped (depth, height, width) unless out
            was given, in which case out is returned as passed
        """
        pass

    @abstractmethod
    def write(self, handle: Any, data: np.ndarray) -> None:
        """Copy a host array into the whole device array."""
        pass

    @abstractmethod
    def write_region(self, handle: Any, data: np.ndarray, origin: Sequence[int],
                     region: Sequence[int]) -> None:
        """Copy a host array into a sub-region of a device array."""
        pass

    @abstractmethod
    def execute(self, kernel_file: str, kernel_name: str, global_size: Tuple[int, ...],
                parameters: Dict[str, Any]) -> bool:
        """
        Execute a named kernel and block until it completes.

        Args:
            kernel_file: Kernel source file name, e.g. "math.cl"
            kernel_name: Kernel symbol, e.g. "addScalar_3d"
            global_size: Work size in NumPy order
            parameters: Parameter name -> handle or scalar

        Returns:
            True on success

        Raises:
            KernelNotFoundError: If the kernel cannot be resolved
            KernelExecutionError: If the kernel fails
        """
        pass
