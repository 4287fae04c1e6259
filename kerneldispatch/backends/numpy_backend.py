"""
NumPy host-emulation backend.

This backend implements the ComputeBackend contract on the CPU. Device
memory is NumPy arrays, kernels are the reference implementations in
host_kernels. It serves as the reference backend and works without a GPU.
"""

import logging
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np

from kerneldispatch.backends.base import ComputeBackend
from kerneldispatch.backends.host_kernels import HOST_KERNELS, saturate
from kerneldispatch.constants import ElementType, RepresentationKind
from kerneldispatch.core.exceptions import (KernelDispatchError,
                                            KernelExecutionError,
                                            KernelNotFoundError)

logger = logging.getLogger(__name__)


class HostBuffer:
    """Emulated device allocation."""

    __slots__ = ("data", "kind", "element_type")

    def __init__(self, data: np.ndarray, element_type: ElementType, kind: RepresentationKind):
        self.data = data
        self.element_type = element_type
        self.kind = kind

    def __repr__(self):
        return f"HostBuffer({self.kind.value}, {self.element_type.value}, {self.data.shape})"


def _region_slices(origin: Sequence[int], region: Sequence[int], ndim: int) -> Tuple[slice, ...]:
    x, y, z = (list(origin) + [0, 0, 0])[:3]
    w, h, d = (list(region) + [1, 1, 1])[:3]
    if (ndim < 3 and (z != 0 or d != 1)) or (ndim == 1 and (y != 0 or h != 1)):
        raise ValueError(f"Region origin {tuple(origin)} / extent {tuple(region)} invalid for {ndim}D array")
    if ndim == 1:
        return (slice(x, x + w),)
    if ndim == 2:
        return slice(y, y + h), slice(x, x + w)
    return slice(z, z + d), slice(y, y + h), slice(x, x + w)


class NumpyBackend(ComputeBackend):
    """Compute backend that emulates a device with host memory."""

    name = "numpy"

    def __init__(self, device_name: Optional[str] = None, kernels: Optional[Dict] = None):
        super().__init__()
        self._device_name = device_name or "host-emulation"
        self._kernels = HOST_KERNELS if kernels is None else kernels
        self._live: Dict[int, HostBuffer] = {}
        logger.debug("NumpyBackend initialized with %d kernels", len(self._kernels))

    @property
    def device_name(self) -> str:
        return self._device_name

    def allocate(self, shape, element_type, kind):
        data = np.zeros(tuple(shape), dtype=element_type.dtype)
        handle = HostBuffer(data, element_type, kind)
        self._live[id(handle)] = handle
        self._record_allocation(data.nbytes)
        return handle

    def release(self, handle):
        if self._live.pop(id(handle), None) is None:
            raise RuntimeError(f"Cannot release unknown or already released handle {handle!r}")
        self._record_release(handle.data.nbytes)
        handle.data = None

    def read(self, handle):
        return handle.data.copy()

    def read_region(self, handle, origin, region, out=None):
        view = handle.data[_region_slices(origin, region, handle.data.ndim)]
        if out is None:
            return view.copy()
        if out.size != view.size:
            raise ValueError(f"Output buffer holds {out.size} elements, region has {view.size}")
        out.reshape(view.shape)[...] = view
        return out

    def write(self, handle, data):
        data = np.asarray(data)
        if data.size != handle.data.size:
            raise ValueError(
                f"Cannot write {data.size} elements into device array of {handle.data.size}"
            )
        handle.data[...] = saturate(data.reshape(handle.data.shape), handle.data.dtype)

    def write_region(self, handle, data, origin, region):
        view = handle.data[_region_slices(origin, region, handle.data.ndim)]
        data = np.asarray(data)
        if data.size != view.size:
            raise ValueError(f"Cannot write {data.size} elements into region of {view.size}")
        view[...] = saturate(data.reshape(view.shape), view.dtype)

    def execute(self, kernel_file, kernel_name, global_size, parameters):
        kernel = self._kernels.get((kernel_file, kernel_name))
        if kernel is None:
            raise KernelNotFoundError(f"No kernel {kernel_name} in {kernel_file}")

        for name, value in parameters.items():
            if isinstance(value, HostBuffer) and value.data is None:
                raise KernelExecutionError(kernel_file, kernel_name,
                                           f"parameter {name} refers to released memory")

        try:
            kernel(parameters)
        except KernelDispatchError:
            raise
        except Exception as e:
            raise KernelExecutionError(kernel_file, kernel_name, str(e)) from e
        return True
