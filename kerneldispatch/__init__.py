"""
kerneldispatch: dispatch and data-adaptation layer for GPU image kernels.

This module provides the public API for kerneldispatch. Importing it does not
select a device or allocate anything; create a ComputeContext for that.
"""

import logging

__version__ = "0.1.0"


# Set up basic logging configuration if none exists
def _ensure_basic_logging():
    """Ensure basic logging is configured if no configuration exists."""
    root_logger = logging.getLogger()

    # Only configure if no handlers exist and level is too high
    if not root_logger.handlers and root_logger.level > logging.INFO:
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )


_ensure_basic_logging()

from kerneldispatch.constants import (ConversionKind, ElementType,  # noqa: E402
                                      RepresentationKind)
from kerneldispatch.core.arguments import (ArgumentRole, KernelArguments,  # noqa: E402
                                           parameter_role)
from kerneldispatch.core.config import BackendType, DispatchConfig  # noqa: E402
from kerneldispatch.core.context import ComputeContext  # noqa: E402
from kerneldispatch.core.device_array import DeviceArray  # noqa: E402
from kerneldispatch.core.memory.stack_utils import ImageStack  # noqa: E402

__all__ = [
    "ArgumentRole",
    "BackendType",
    "ComputeContext",
    "ConversionKind",
    "DeviceArray",
    "DispatchConfig",
    "ElementType",
    "ImageStack",
    "KernelArguments",
    "RepresentationKind",
    "parameter_role",
]
