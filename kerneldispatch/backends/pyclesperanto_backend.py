"""
pyclesperanto OpenCL backend for kerneldispatch.

This backend runs kernels on an OpenCL device through pyclesperanto.
Kernel sources are plain OpenCL files looked up by name in a configured
kernel directory; this package does not ship or compile them itself.
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Union

import numpy as np

from kerneldispatch.backends.base import ComputeBackend
from kerneldispatch.core.exceptions import (KernelExecutionError,
                                            KernelNotFoundError)
from kerneldispatch.core.utils import _ensure_module

logger = logging.getLogger(__name__)


class PyclesperantoBackend(ComputeBackend):
    """Compute backend bound to one pyclesperanto device."""

    name = "pyclesperanto"

    def __init__(self, device_name: Optional[str] = None,
                 kernel_directory: Optional[Union[str, Path]] = None):
        """
        Initialize the backend and select its device.

        Args:
            device_name: Device name (or substring) to select, None for default
            kernel_directory: Directory holding the *.cl kernel sources

        Raises:
            ImportError: If pyclesperanto is not installed
        """
        super().__init__()
        self._cle = _ensure_module("pyclesperanto", install_hint="pyclesperanto")
        if device_name:
            self._device = self._cle.select_device(device_name)
        else:
            self._device = self._cle.get_device()
        self._kernel_directory = Path(kernel_directory) if kernel_directory else None
        self._sources: Dict[str, str] = {}
        self._live: Dict[int, int] = {}
        logger.info("pyclesperanto backend bound to device: %s", self.device_name)

    @property
    def device_name(self) -> str:
        return str(getattr(self._device, "name", self._device))

    def allocate(self, shape, element_type, kind):
        handle = self._cle.create(tuple(shape), dtype=element_type.dtype,
                                  mtype=kind.value, device=self._device)
        nbytes = int(np.prod(shape)) * element_type.itemsize
        self._live[id(handle)] = nbytes
        self._record_allocation(nbytes)
        return handle

    def release(self, handle):
        nbytes = self._live.pop(id(handle), None)
        if nbytes is None:
            raise RuntimeError(f"Cannot release unknown or already released handle {handle!r}")
        self._record_release(nbytes)
        # pyclesperanto frees device memory once the last reference is gone

    def read(self, handle):
        return np.asarray(self._cle.pull(handle))

    def read_region(self, handle, origin, region, out=None):
        x, y, z = (list(origin) + [0, 0, 0])[:3]
        w, h, d = (list(region) + [1, 1, 1])[:3]
        sub = self._cle.crop(handle, start_x=x, start_y=y, start_z=z,
                             width=w, height=h, depth=d, device=self._device)
        data = np.asarray(self._cle.pull(sub))
        if out is None:
            return data
        out.reshape(data.shape)[...] = data
        return out

    def write(self, handle, data):
        pushed = self._cle.push(np.ascontiguousarray(data).reshape(handle.shape), device=self._device)
        self._cle.copy(pushed, handle, device=self._device)

    def write_region(self, handle, data, origin, region):
        x, y, z = (list(origin) + [0, 0, 0])[:3]
        w, h, d = (list(region) + [1, 1, 1])[:3]
        shape = (d, h, w)[3 - len(handle.shape):]
        pushed = self._cle.push(np.ascontiguousarray(data).reshape(shape), device=self._device)
        self._cle.paste(pushed, handle, destination_x=x, destination_y=y,
                        destination_z=z, device=self._device)

    def _kernel_source(self, kernel_file: str) -> str:
        source = self._sources.get(kernel_file)
        if source is not None:
            return source
        if self._kernel_directory is None:
            raise KernelNotFoundError(
                f"No kernel directory configured; cannot load {kernel_file}. "
                f"Set DispatchConfig.kernel_directory or KERNELDISPATCH_KERNEL_DIR."
            )
        path = self._kernel_directory / kernel_file
        if not path.is_file():
            raise KernelNotFoundError(f"Kernel source not found: {path}")
        source = path.read_text()
        self._sources[kernel_file] = source
        return source

    def execute(self, kernel_file, kernel_name, global_size, parameters):
        source = self._kernel_source(kernel_file)
        try:
            self._cle.execute(kernel_source=source, kernel_name=kernel_name,
                              global_size=tuple(global_size), parameters=parameters,
                              device=self._device)
        except Exception as e:
            raise KernelExecutionError(kernel_file, kernel_name, str(e)) from e
        return True
