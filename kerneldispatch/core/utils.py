"""
Utility functions for the kerneldispatch package.
"""

import importlib
import logging
from typing import Any, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


def optional_import(module_name: str) -> Optional[Any]:
    """
    Import a module if available.

    Args:
        module_name: Name of the module to import

    Returns:
        The imported module, or None if it cannot be imported
    """
    try:
        return importlib.import_module(module_name)
    except ImportError:
        return None


def _ensure_module(module_name: str, install_hint: Optional[str] = None) -> Any:
    """
    Import a module that an operation cannot run without.

    Args:
        module_name: The name of the module to import
        install_hint: Package spec to suggest in the error message

    Returns:
        The imported module

    Raises:
        ImportError: If the module cannot be imported
    """
    try:
        return importlib.import_module(module_name)
    except ImportError:
        hint = install_hint or module_name
        raise ImportError(
            f"Module {module_name} is required for this operation but is not installed. "
            f"Install with: pip install {hint}"
        )


def dimensions_to_shape(dimensions: Sequence[int]) -> Tuple[int, ...]:
    """Convert (width, height[, depth]) extents to NumPy (depth, height, width) order."""
    return tuple(int(d) for d in reversed(tuple(dimensions)))


def shape_to_dimensions(shape: Sequence[int]) -> Tuple[int, ...]:
    """Convert a NumPy shape to (width, height[, depth]) extents."""
    return tuple(int(s) for s in reversed(tuple(shape)))
