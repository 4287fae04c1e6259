"""
Separable filter orchestration.

A separable N-dimensional filter runs as one 1-axis pass per axis, chained
through two float32 temporaries:

    2D: src -> temp1 -> dst
    3D: src -> temp2 -> temp1 -> dst

An axis whose parameter is zero or negative is skipped: its pass becomes a
plain copy from the pass input to the pass output.
"""

import logging
from typing import TYPE_CHECKING, Sequence

from kerneldispatch.constants import ElementType
from kerneldispatch.core.arguments import KernelArguments
from kerneldispatch.core.device_array import DeviceArray
from kerneldispatch.processing.preconditions import (check_context,
                                                     check_different,
                                                     check_dimension,
                                                     check_dimensions,
                                                     check_same_extents,
                                                     check_same_kind, require)

if TYPE_CHECKING:
    from kerneldispatch.core.context import ComputeContext

logger = logging.getLogger(__name__)


def sigma_to_kernel_size(sigma: float) -> int:
    """Odd kernel size covering +/- 4 sigma."""
    size = int(sigma * 8)
    if size % 2 == 0:
        size += 1
    return size


def radius_to_kernel_size(radius: int) -> int:
    return int(radius) * 2 + 1


class SeparableFilterOrchestrator:
    """Runs a separable kernel as a chain of single-axis passes."""

    def __init__(self, context: "ComputeContext"):
        self._context = context

    def execute(self, src: DeviceArray, dst: DeviceArray, kernel_file: str, kernel_name: str,
                kernel_sizes: Sequence[int], parameters: Sequence[float]) -> bool:
        """
        Execute a separable kernel along x, y and (for 3D) z.

        Args:
            src: Source array
            dst: Destination array, same dimensionality and kind as src
            kernel_file: Kernel source file
            kernel_name: Symbol of the 1-axis kernel
            kernel_sizes: Kernel size per axis (x, y, z)
            parameters: Filter parameter per axis (x, y, z); <= 0 skips the axis

        Returns:
            True on success

        Raises:
            AliasingViolationError: If src is dst
            RepresentationKindMismatchError: If src and dst differ in kind
            ShapeMismatchError: If src and dst differ in extents, or are not 2D or 3D
        """
        if len(kernel_sizes) < src.dimension or len(parameters) < src.dimension:
            raise ValueError(
                f"Need {src.dimension} kernel sizes and parameters, "
                f"got {len(kernel_sizes)} and {len(parameters)}"
            )
        require(
            check_context(self._context, src, dst),
            check_different(src, dst),
            check_same_kind(src, dst),
            check_dimensions(src, dst),
            check_dimension(src, 2, 3),
            check_same_extents(src, dst),
        )

        temp1 = self._context.create_like(src, element_type=ElementType.FLOAT32)
        try:
            temp2 = self._context.create_like(src, element_type=ElementType.FLOAT32)
            try:
                if src.dimension == 2:
                    chain = [(src, temp1), (temp1, dst)]
                else:
                    chain = [(src, temp2), (temp2, temp1), (temp1, dst)]
                for dim, (stage_src, stage_dst) in enumerate(chain):
                    self._run_stage(stage_src, stage_dst, kernel_file, kernel_name,
                                    int(kernel_sizes[dim]), float(parameters[dim]), dim)
            finally:
                temp2.release()
        finally:
            temp1.release()
        return True

    def _run_stage(self, src: DeviceArray, dst: DeviceArray, kernel_file: str, kernel_name: str,
                   kernel_size: int, parameter: float, dim: int) -> None:
        if parameter <= 0:
            logger.debug("Axis %d of %s is degenerate; copying", dim, kernel_name)
            self._context.ops.copy(src, dst)
            return

        arguments = KernelArguments()
        arguments["N"] = kernel_size
        arguments["s"] = parameter
        arguments["dim"] = dim
        arguments["src"] = src
        arguments["dst"] = dst
        self._context.execute(kernel_file, kernel_name, arguments)
