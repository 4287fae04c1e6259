"""
Kernel operations for kerneldispatch.

KernelOperations marshals the parameters of named kernels and checks
their preconditions before any device memory is allocated. Every call goes
through ComputeContext.execute, so mixed element types are unified.
"""

import logging
from typing import TYPE_CHECKING, List, Optional

import numpy as np

from kerneldispatch.constants import ElementType
from kerneldispatch.core.arguments import KernelArguments
from kerneldispatch.core.device_array import DeviceArray
from kerneldispatch.core.exceptions import ShapeMismatchError
from kerneldispatch.processing.preconditions import (check_context,
                                                     check_different,
                                                     check_dimension,
                                                     check_dimensions,
                                                     check_element_count,
                                                     check_extents,
                                                     check_same_extents,
                                                     check_stack_members,
                                                     require)
from kerneldispatch.processing.separable import (SeparableFilterOrchestrator,
                                                 radius_to_kernel_size,
                                                 sigma_to_kernel_size)

if TYPE_CHECKING:
    from kerneldispatch.core.context import ComputeContext

logger = logging.getLogger(__name__)


class KernelOperations:
    """
    Image operations bound to one ComputeContext.

    Destination arrays are always supplied by the caller; operations never
    allocate results, only short-lived temporaries.
    """

    def __init__(self, context: "ComputeContext"):
        self._context = context
        self._separable = SeparableFilterOrchestrator(context)

    def _execute(self, kernel_file: str, kernel_name: str, **parameters) -> bool:
        return self._context.execute(kernel_file, kernel_name, KernelArguments(parameters))

    # Duplication

    def copy(self, src: DeviceArray, dst: DeviceArray) -> bool:
        """
        Copy src into dst, converting element type and representation.

        Narrowing to an integer type saturates.
        """
        require(
            check_context(self._context, src, dst),
            check_different(src, dst),
            check_dimensions(src, dst),
            check_same_extents(src, dst),
        )
        return self._execute("duplication.cl", f"copy_{src.dimension}d", src=src, dst=dst)

    def copy_slice(self, src: DeviceArray, dst: DeviceArray, plane_index: int) -> bool:
        """
        Copy one plane between a 3D stack and a 2D image.

        3D src -> 2D dst extracts plane_index; 2D src -> 3D dst writes it.

        Raises:
            ShapeMismatchError: Unless one array is 3D and the other 2D
        """
        require(check_context(self._context, src, dst), check_different(src, dst))
        if src.dimension == 3 and dst.dimension == 2:
            stack, plane, kernel_name = src, dst, "copySlice"
        elif src.dimension == 2 and dst.dimension == 3:
            stack, plane, kernel_name = dst, src, "putSliceInStack"
        else:
            raise ShapeMismatchError(
                f"copy_slice needs a 3D and a 2D array, got {src!r} and {dst!r}"
            )
        require(check_extents(plane, stack.dimensions[:2]))
        if not 0 <= plane_index < stack.depth:
            raise IndexError(f"Plane {plane_index} out of range for {stack!r}")
        return self._execute("duplication.cl", kernel_name, src=src, dst=dst, slice=int(plane_index))

    def crop(self, src: DeviceArray, dst: DeviceArray, start_x: int, start_y: int,
             start_z: int = 0) -> bool:
        """Copy the dst-sized region of src starting at (start_x, start_y, start_z)."""
        require(
            check_context(self._context, src, dst),
            check_different(src, dst),
            check_dimensions(src, dst),
            check_dimension(src, 2, 3),
        )
        start = (start_x, start_y, start_z)[:src.dimension]
        for axis, (offset, extent, size) in enumerate(zip(start, dst.dimensions, src.dimensions)):
            if offset < 0 or offset + extent > size:
                raise IndexError(
                    f"Crop of {dst.dimensions} at {start} exceeds {src!r} along axis {axis}"
                )
        parameters = dict(src=src, dst=dst, start_x=int(start_x), start_y=int(start_y))
        if src.dimension == 3:
            parameters["start_z"] = int(start_z)
        return self._execute("duplication.cl", f"crop_{src.dimension}d", **parameters)

    def set(self, dst: DeviceArray, value: float) -> bool:
        """Set every element of dst to value."""
        require(check_context(self._context, dst))
        return self._execute("set.cl", f"set_{dst.dimension}d", dst=dst, value=float(value))

    # Arithmetic

    def _pixelwise(self, kernel_name: str, inputs: List[DeviceArray], dst: DeviceArray,
                   **scalars) -> bool:
        require(
            check_context(self._context, dst, *inputs),
            *(check_different(src, dst) for src in inputs),
            check_same_extents(dst, *inputs),
        )
        parameters = dict(scalars)
        for index, src in enumerate(inputs):
            parameters["src" if index == 0 else f"src{index}"] = src
        parameters["dst"] = dst
        return self._execute("math.cl", f"{kernel_name}_{dst.dimension}d", **parameters)

    def add_image_and_scalar(self, src: DeviceArray, dst: DeviceArray, scalar: float) -> bool:
        return self._pixelwise("addScalar", [src], dst, scalar=float(scalar))

    def multiply_image_and_scalar(self, src: DeviceArray, dst: DeviceArray, scalar: float) -> bool:
        return self._pixelwise("multiplyScalar", [src], dst, scalar=float(scalar))

    def add_images(self, src: DeviceArray, src1: DeviceArray, dst: DeviceArray) -> bool:
        return self._pixelwise("addPixelwise", [src, src1], dst)

    def add_images_weighted(self, src: DeviceArray, src1: DeviceArray, dst: DeviceArray,
                            factor: float, factor1: float) -> bool:
        """dst = src * factor + src1 * factor1"""
        return self._pixelwise("addWeightedPixelwise", [src, src1], dst,
                               factor=float(factor), factor1=float(factor1))

    def subtract_images(self, subtrahend: DeviceArray, minuend: DeviceArray,
                        dst: DeviceArray) -> bool:
        """dst = minuend - subtrahend"""
        return self.add_images_weighted(subtrahend, minuend, dst, -1.0, 1.0)

    def multiply_images(self, src: DeviceArray, src1: DeviceArray, dst: DeviceArray) -> bool:
        return self._pixelwise("multiplyPixelwise", [src, src1], dst)

    def absolute(self, src: DeviceArray, dst: DeviceArray) -> bool:
        return self._pixelwise("absolute", [src], dst)

    # Separable filters

    def _sep_kernel_name(self, prefix: str, src: DeviceArray) -> str:
        return f"{prefix}_image{src.dimension}d"

    def blur(self, src: DeviceArray, dst: DeviceArray, sigma_x: float, sigma_y: float,
             sigma_z: float = 0.0) -> bool:
        """
        Gaussian blur with one sigma per axis; a sigma of 0 leaves that axis unfiltered.
        """
        sigmas = (float(sigma_x), float(sigma_y), float(sigma_z))
        return self._separable.execute(
            src, dst, "blur.cl", self._sep_kernel_name("gaussian_blur_sep", src),
            [sigma_to_kernel_size(s) for s in sigmas], sigmas,
        )

    def _box(self, prefix: str, src: DeviceArray, dst: DeviceArray,
             radius_x: int, radius_y: int, radius_z: int) -> bool:
        radii = (int(radius_x), int(radius_y), int(radius_z))
        return self._separable.execute(
            src, dst, "filtering.cl", self._sep_kernel_name(prefix, src),
            [radius_to_kernel_size(r) for r in radii], radii,
        )

    def mean_box(self, src: DeviceArray, dst: DeviceArray, radius_x: int, radius_y: int,
                 radius_z: int = 0) -> bool:
        return self._box("mean_sep", src, dst, radius_x, radius_y, radius_z)

    def maximum_box(self, src: DeviceArray, dst: DeviceArray, radius_x: int, radius_y: int,
                    radius_z: int = 0) -> bool:
        return self._box("max_sep", src, dst, radius_x, radius_y, radius_z)

    def minimum_box(self, src: DeviceArray, dst: DeviceArray, radius_x: int, radius_y: int,
                    radius_z: int = 0) -> bool:
        return self._box("min_sep", src, dst, radius_x, radius_y, radius_z)

    # Median

    def _median(self, kernel_prefix: str, src: DeviceArray, dst: DeviceArray,
                kernel_size_x: int, kernel_size_y: int, kernel_size_z: Optional[int]) -> bool:
        sizes = [int(kernel_size_x), int(kernel_size_y)]
        if src.dimension == 3:
            if kernel_size_z is None:
                raise ValueError("A 3D median needs kernel_size_z")
            sizes.append(int(kernel_size_z))
        require(
            check_context(self._context, src, dst),
            check_different(src, dst),
            check_same_extents(src, dst),
            check_dimension(src, 2, 3),
            check_element_count(int(np.prod(sizes)), self._context.config.max_kernel_array_size,
                                "median window"),
        )
        parameters = dict(src=src, dst=dst, Nx=sizes[0], Ny=sizes[1])
        if src.dimension == 3:
            parameters["Nz"] = sizes[2]
        return self._execute("filtering.cl", f"{kernel_prefix}{src.dimension}d", **parameters)

    def median_box(self, src: DeviceArray, dst: DeviceArray, kernel_size_x: int,
                   kernel_size_y: int, kernel_size_z: Optional[int] = None) -> bool:
        """
        Median over a box window.

        Raises:
            UnsupportedElementCountError: If the window holds more elements than
                max_kernel_array_size
        """
        return self._median("median_box_image", src, dst, kernel_size_x, kernel_size_y, kernel_size_z)

    def median_sphere(self, src: DeviceArray, dst: DeviceArray, kernel_size_x: int,
                      kernel_size_y: int, kernel_size_z: Optional[int] = None) -> bool:
        """Median over an ellipsoidal window inscribed in the kernel box."""
        return self._median("median_image", src, dst, kernel_size_x, kernel_size_y, kernel_size_z)

    # Projections

    def _project(self, kernel_name: str, src: DeviceArray, **outputs: DeviceArray) -> bool:
        require(
            check_context(self._context, src, *outputs.values()),
            check_dimension(src, 3),
            *(check_extents(dst, src.dimensions[:2]) for dst in outputs.values()),
        )
        return self._execute("projections.cl", kernel_name, src=src, **outputs)

    def maximum_z_projection(self, src: DeviceArray, dst_max: DeviceArray) -> bool:
        return self._project("max_project_3d_2d", src, dst_max=dst_max)

    def minimum_z_projection(self, src: DeviceArray, dst_min: DeviceArray) -> bool:
        return self._project("min_project_3d_2d", src, dst_min=dst_min)

    def sum_z_projection(self, src: DeviceArray, dst: DeviceArray) -> bool:
        return self._project("sum_project_3d_2d", src, dst=dst)

    def mean_z_projection(self, src: DeviceArray, dst: DeviceArray) -> bool:
        return self._project("mean_project_3d_2d", src, dst=dst)

    def arg_maximum_z_projection(self, src: DeviceArray, dst_max: DeviceArray,
                                 dst_arg: DeviceArray) -> bool:
        """Maximum along z and the plane index where it occurs."""
        return self._project("arg_max_project_3d_2d", src, dst_max=dst_max, dst_arg=dst_arg)

    # Stack splitting

    def split_stack(self, src: DeviceArray, *dsts: DeviceArray) -> bool:
        """
        Deal the planes of src round-robin into the destination stacks.

        Plane z of src goes to plane z // n of destination z % n.

        Raises:
            ValueError: If no destination is given
            TooManyStackMembersError: If more destinations than max_stack_members
        """
        require(
            check_context(self._context, src, *dsts),
            *(check_different(src, dst) for dst in dsts),
            check_stack_members(len(dsts), self._context.config.max_stack_members),
        )
        if not dsts:
            raise ValueError("split_stack needs at least one destination stack")
        if len(dsts) == 1:
            return self.copy(src, dsts[0])

        require(check_dimension(src, 3), *(check_dimension(dst, 3) for dst in dsts))
        for index, dst in enumerate(dsts):
            # Destination index receives planes index, index + n, index + 2n, ...
            expected_depth = len(range(index, src.depth, len(dsts)))
            require(check_extents(dst, src.dimensions[:2] + (expected_depth,)))
        parameters = {f"dst{index}": dst for index, dst in enumerate(dsts)}
        return self._execute("stacksplitting.cl", f"split_{len(dsts)}_stacks", src=src, **parameters)

    # Reductions

    def _reduce(self, array: DeviceArray, project, element_type: ElementType) -> np.ndarray:
        require(check_context(self._context, array))
        if array.dimension < 3:
            return self._context.pull(array)
        reduced = self._context.create(array.dimensions[:2], element_type, array.kind)
        try:
            project(array, reduced)
            return self._context.pull(reduced)
        finally:
            reduced.release()

    def sum_pixels(self, array: DeviceArray) -> float:
        """Sum of all elements, accumulated in float32 on the device."""
        data = self._reduce(array, self.sum_z_projection, ElementType.FLOAT32)
        return float(np.sum(data, dtype=np.float64))

    def sum_pixels_slice_by_slice(self, array: DeviceArray) -> List[float]:
        """Sum of each plane; a 1D or 2D array yields one value."""
        if array.dimension < 3:
            return [self.sum_pixels(array)]
        plane = self._context.create(array.dimensions[:2], array.element_type, array.kind)
        try:
            sums = []
            for z in range(array.depth):
                self.copy_slice(array, plane, z)
                sums.append(self.sum_pixels(plane))
            return sums
        finally:
            plane.release()

    def maximum_of_all_pixels(self, array: DeviceArray) -> float:
        data = self._reduce(array, self.maximum_z_projection, array.element_type)
        return float(np.max(data))

    def minimum_of_all_pixels(self, array: DeviceArray) -> float:
        data = self._reduce(array, self.minimum_z_projection, array.element_type)
        return float(np.min(data))
