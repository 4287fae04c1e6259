"""
Global configuration dataclasses for kerneldispatch.

This module defines the configuration object handed to every ComputeContext.
Configuration is intended to be immutable and provided as Python objects;
from_env() is offered for deployments that configure through the environment.
"""

import logging
import os
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Optional

from kerneldispatch.constants import (DEFAULT_MAX_HOST_ARRAY_ELEMENTS,
                                      DEFAULT_MAX_KERNEL_ARRAY_SIZE,
                                      DEFAULT_MAX_STACK_MEMBERS,
                                      MAX_SPLIT_STACKS)

logger = logging.getLogger(__name__)

ENV_PREFIX = "KERNELDISPATCH_"


class BackendType(Enum):
    """Available compute backends."""
    NUMPY = "numpy"                    # Host emulation, no device required
    PYCLESPERANTO = "pyclesperanto"    # OpenCL through pyclesperanto


@dataclass(frozen=True)
class DispatchConfig:
    """Configuration for a compute context."""
    backend: BackendType = BackendType.NUMPY
    """Which compute backend executes kernels."""

    device_name: Optional[str] = None
    """Device name (or substring) to select. None selects the backend default."""

    kernel_directory: Optional[Path] = None
    """Directory holding OpenCL kernel sources (pyclesperanto backend only)."""

    max_host_array_elements: int = DEFAULT_MAX_HOST_ARRAY_ELEMENTS
    """Arrays with more elements than this are transferred plane by plane."""

    max_kernel_array_size: int = DEFAULT_MAX_KERNEL_ARRAY_SIZE
    """Largest local working set (e.g. median window) a kernel can hold."""

    max_stack_members: int = DEFAULT_MAX_STACK_MEMBERS
    """Largest number of output stacks a stack split may produce. At most MAX_SPLIT_STACKS."""

    def __post_init__(self):
        if self.max_host_array_elements < 1:
            raise ValueError(
                f"max_host_array_elements must be positive, got {self.max_host_array_elements}"
            )
        if self.max_kernel_array_size < 1:
            raise ValueError(
                f"max_kernel_array_size must be positive, got {self.max_kernel_array_size}"
            )
        if self.max_stack_members < 1:
            raise ValueError(
                f"max_stack_members must be positive, got {self.max_stack_members}"
            )
        if self.max_stack_members > MAX_SPLIT_STACKS:
            raise ValueError(
                f"max_stack_members cannot exceed {MAX_SPLIT_STACKS}, "
                f"the largest split with a kernel; got {self.max_stack_members}"
            )

    def with_overrides(self, **changes) -> "DispatchConfig":
        """Return a copy of this config with the given fields replaced."""
        return replace(self, **changes)

    @classmethod
    def from_env(cls, environ=None) -> "DispatchConfig":
        """
        Build a config from KERNELDISPATCH_* environment variables.

        Recognised variables: KERNELDISPATCH_BACKEND, KERNELDISPATCH_DEVICE,
        KERNELDISPATCH_KERNEL_DIR, KERNELDISPATCH_MAX_HOST_ARRAY_ELEMENTS,
        KERNELDISPATCH_MAX_KERNEL_ARRAY_SIZE, KERNELDISPATCH_MAX_STACK_MEMBERS.
        Unset variables keep their defaults.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            A new DispatchConfig

        Raises:
            ValueError: If a variable holds an invalid value
        """
        environ = os.environ if environ is None else environ
        kwargs = {}

        backend = environ.get(f"{ENV_PREFIX}BACKEND")
        if backend:
            try:
                kwargs["backend"] = BackendType(backend.strip().lower())
            except ValueError:
                raise ValueError(
                    f"Unsupported backend: {backend}. "
                    f"Supported backends are: {', '.join(b.value for b in BackendType)}"
                ) from None

        device = environ.get(f"{ENV_PREFIX}DEVICE")
        if device:
            kwargs["device_name"] = device

        kernel_dir = environ.get(f"{ENV_PREFIX}KERNEL_DIR")
        if kernel_dir:
            kwargs["kernel_directory"] = Path(kernel_dir)

        for field_name in ("max_host_array_elements", "max_kernel_array_size", "max_stack_members"):
            raw = environ.get(f"{ENV_PREFIX}{field_name.upper()}")
            if raw:
                kwargs[field_name] = int(raw)

        config = cls(**kwargs)
        logger.debug("Loaded configuration from environment: %s", config)
        return config


_default_config = DispatchConfig()


def get_default_config() -> DispatchConfig:
    """Return the process-wide default configuration."""
    return _default_config
