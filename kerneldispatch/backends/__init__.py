"""
Compute backend factory.

Creates the backend named by a DispatchConfig. The pyclesperanto backend is
imported lazily so the package works without an OpenCL stack.
"""

import logging
from typing import List

from kerneldispatch.backends.base import ComputeBackend
from kerneldispatch.backends.numpy_backend import NumpyBackend
from kerneldispatch.core.config import BackendType, DispatchConfig
from kerneldispatch.core.utils import optional_import

logger = logging.getLogger(__name__)

# Library each backend needs; None means always available
_BACKEND_MODULES = {
    BackendType.NUMPY: None,
    BackendType.PYCLESPERANTO: "pyclesperanto",
}


def available_backends() -> List[BackendType]:
    """Return the backend types whose libraries can be imported."""
    available = []
    for backend_type, module_name in _BACKEND_MODULES.items():
        if module_name is None or optional_import(module_name) is not None:
            available.append(backend_type)
        else:
            logger.debug("Backend %s unavailable: %s not installed", backend_type.value, module_name)
    return available


def create_backend(config: DispatchConfig) -> ComputeBackend:
    """
    Create the compute backend requested by config.

    Args:
        config: The dispatch configuration

    Returns:
        A new backend bound to the configured device

    Raises:
        ImportError: If the backend's library is not installed
        ValueError: If the backend type is unknown
    """
    if config.backend is BackendType.NUMPY:
        return NumpyBackend(device_name=config.device_name)
    if config.backend is BackendType.PYCLESPERANTO:
        from kerneldispatch.backends.pyclesperanto_backend import \
            PyclesperantoBackend
        return PyclesperantoBackend(device_name=config.device_name,
                                    kernel_directory=config.kernel_directory)
    raise ValueError(f"Unsupported backend: {config.backend!r}")


__all__ = ["ComputeBackend", "NumpyBackend", "available_backends", "create_backend"]
