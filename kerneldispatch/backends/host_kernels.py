"""
Reference kernels for the NumPy host-emulation backend.

Each function emulates one named device kernel, keyed by the same
(kernel file, kernel symbol) pair a device backend resolves. Kernels read
their inputs as float64 and store results with the saturating conversion
device kernels use: values are truncated toward zero and clipped to the
destination range when the destination is an integer type.
"""

import logging
from typing import Any, Callable, Dict, Tuple

import numpy as np
from scipy import ndimage

from kerneldispatch.constants import MAX_SPLIT_STACKS

logger = logging.getLogger(__name__)

HostKernel = Callable[[Dict[str, Any]], None]

# Registry of emulated kernels by (kernel_file, kernel_name)
HOST_KERNELS: Dict[Tuple[str, str], HostKernel] = {}


def host_kernel(kernel_file: str, *kernel_names: str) -> Callable[[HostKernel], HostKernel]:
    """
    Register a function as the emulation of one or more named kernels.

    Args:
        kernel_file: Kernel source file the symbols live in
        *kernel_names: Kernel symbols this function emulates
    """
    def decorator(func: HostKernel) -> HostKernel:
        for kernel_name in kernel_names:
            key = (kernel_file, kernel_name)
            if key in HOST_KERNELS:
                raise ValueError(f"Host kernel already registered: {kernel_file}:{kernel_name}")
            HOST_KERNELS[key] = func
        return func
    return decorator


def saturate(values: Any, dtype: np.dtype) -> np.ndarray:
    """Convert values to dtype, truncating and clipping for integer types."""
    dtype = np.dtype(dtype)
    values = np.asarray(values, dtype=np.float64)
    if dtype.kind in "ui":
        info = np.iinfo(dtype)
        values = np.clip(np.trunc(np.nan_to_num(values)), info.min, info.max)
    return values.astype(dtype)


def store(target: np.ndarray, values: Any) -> None:
    """Write values into target in place with saturating conversion."""
    target[...] = saturate(values, target.dtype)


def _data(parameters: Dict[str, Any], name: str) -> np.ndarray:
    return parameters[name].data


def _read(parameters: Dict[str, Any], name: str) -> np.ndarray:
    return parameters[name].data.astype(np.float64)


def _axis(array: np.ndarray, dim: int) -> int:
    """Map a kernel axis (0=x, 1=y, 2=z) to a NumPy axis."""
    if not 0 <= dim < array.ndim:
        raise ValueError(f"Axis {dim} out of range for {array.ndim}D array")
    return array.ndim - 1 - dim


# duplication.cl

@host_kernel("duplication.cl", "copy_1d", "copy_2d", "copy_3d")
def copy(parameters):
    store(_data(parameters, "dst"), _data(parameters, "src"))


@host_kernel("duplication.cl", "copySlice")
def copy_slice(parameters):
    plane = int(parameters["slice"])
    store(_data(parameters, "dst"), _data(parameters, "src")[plane])


@host_kernel("duplication.cl", "putSliceInStack")
def put_slice_in_stack(parameters):
    plane = int(parameters["slice"])
    store(_data(parameters, "dst")[plane], _data(parameters, "src"))


@host_kernel("duplication.cl", "crop_2d", "crop_3d")
def crop(parameters):
    dst = _data(parameters, "dst")
    src = _data(parameters, "src")
    x = int(parameters["start_x"])
    y = int(parameters["start_y"])
    if dst.ndim == 3:
        z = int(parameters["start_z"])
        store(dst, src[z:z + dst.shape[0], y:y + dst.shape[1], x:x + dst.shape[2]])
    else:
        store(dst, src[y:y + dst.shape[0], x:x + dst.shape[1]])


# set.cl

@host_kernel("set.cl", "set_1d", "set_2d", "set_3d")
def set_value(parameters):
    store(_data(parameters, "dst"), float(parameters["value"]))


# math.cl

def _names(prefix: str) -> Tuple[str, ...]:
    return tuple(f"{prefix}_{n}d" for n in (1, 2, 3))


@host_kernel("math.cl", *_names("addScalar"))
def add_scalar(parameters):
    store(_data(parameters, "dst"), _read(parameters, "src") + float(parameters["scalar"]))


@host_kernel("math.cl", *_names("multiplyScalar"))
def multiply_scalar(parameters):
    store(_data(parameters, "dst"), _read(parameters, "src") * float(parameters["scalar"]))


@host_kernel("math.cl", *_names("addPixelwise"))
def add_pixelwise(parameters):
    store(_data(parameters, "dst"), _read(parameters, "src") + _read(parameters, "src1"))


@host_kernel("math.cl", *_names("addWeightedPixelwise"))
def add_weighted_pixelwise(parameters):
    result = (_read(parameters, "src") * float(parameters["factor"])
              + _read(parameters, "src1") * float(parameters["factor1"]))
    store(_data(parameters, "dst"), result)


@host_kernel("math.cl", *_names("multiplyPixelwise"))
def multiply_pixelwise(parameters):
    store(_data(parameters, "dst"), _read(parameters, "src") * _read(parameters, "src1"))


@host_kernel("math.cl", *_names("absolute"))
def absolute(parameters):
    store(_data(parameters, "dst"), np.abs(_read(parameters, "src")))


# blur.cl / filtering.cl: separable one-axis passes

def _gaussian_weights(kernel_size: int, sigma: float) -> np.ndarray:
    half = kernel_size // 2
    x = np.arange(-half, half + 1, dtype=np.float64)
    weights = np.exp(-(x * x) / (2.0 * sigma * sigma))
    return weights / weights.sum()


@host_kernel("blur.cl", "gaussian_blur_sep_image2d", "gaussian_blur_sep_image3d")
def gaussian_blur_separable(parameters):
    src = _read(parameters, "src")
    weights = _gaussian_weights(int(parameters["N"]), float(parameters["s"]))
    result = ndimage.correlate1d(src, weights, axis=_axis(src, int(parameters["dim"])), mode="nearest")
    store(_data(parameters, "dst"), result)


@host_kernel("filtering.cl", "mean_sep_image2d", "mean_sep_image3d")
def mean_separable(parameters):
    src = _read(parameters, "src")
    kernel_size = int(parameters["N"])
    weights = np.full(kernel_size, 1.0 / kernel_size)
    result = ndimage.correlate1d(src, weights, axis=_axis(src, int(parameters["dim"])), mode="nearest")
    store(_data(parameters, "dst"), result)


@host_kernel("filtering.cl", "max_sep_image2d", "max_sep_image3d")
def maximum_separable(parameters):
    src = _read(parameters, "src")
    result = ndimage.maximum_filter1d(src, size=int(parameters["N"]),
                                      axis=_axis(src, int(parameters["dim"])), mode="nearest")
    store(_data(parameters, "dst"), result)


@host_kernel("filtering.cl", "min_sep_image2d", "min_sep_image3d")
def minimum_separable(parameters):
    src = _read(parameters, "src")
    result = ndimage.minimum_filter1d(src, size=int(parameters["N"]),
                                      axis=_axis(src, int(parameters["dim"])), mode="nearest")
    store(_data(parameters, "dst"), result)


# filtering.cl: median

def _window_size(parameters: Dict[str, Any], ndim: int) -> Tuple[int, ...]:
    if ndim == 3:
        return int(parameters["Nz"]), int(parameters["Ny"]), int(parameters["Nx"])
    return int(parameters["Ny"]), int(parameters["Nx"])


def _ellipsoid_footprint(size: Tuple[int, ...]) -> np.ndarray:
    radii = [max((n - 1) / 2.0, 0.5) for n in size]
    grids = np.ogrid[tuple(slice(0, n) for n in size)]
    distance = sum(((g - (n - 1) / 2.0) / r) ** 2 for g, n, r in zip(grids, size, radii))
    return distance <= 1.0


@host_kernel("filtering.cl", "median_box_image2d", "median_box_image3d")
def median_box(parameters):
    src = _read(parameters, "src")
    result = ndimage.median_filter(src, size=_window_size(parameters, src.ndim), mode="nearest")
    store(_data(parameters, "dst"), result)


@host_kernel("filtering.cl", "median_image2d", "median_image3d")
def median_sphere(parameters):
    src = _read(parameters, "src")
    footprint = _ellipsoid_footprint(_window_size(parameters, src.ndim))
    result = ndimage.median_filter(src, footprint=footprint, mode="nearest")
    store(_data(parameters, "dst"), result)


# projections.cl

@host_kernel("projections.cl", "max_project_3d_2d")
def maximum_z_projection(parameters):
    store(_data(parameters, "dst_max"), _read(parameters, "src").max(axis=0))


@host_kernel("projections.cl", "min_project_3d_2d")
def minimum_z_projection(parameters):
    store(_data(parameters, "dst_min"), _read(parameters, "src").min(axis=0))


@host_kernel("projections.cl", "sum_project_3d_2d")
def sum_z_projection(parameters):
    store(_data(parameters, "dst"), _read(parameters, "src").sum(axis=0))


@host_kernel("projections.cl", "mean_project_3d_2d")
def mean_z_projection(parameters):
    store(_data(parameters, "dst"), _read(parameters, "src").mean(axis=0))


@host_kernel("projections.cl", "arg_max_project_3d_2d")
def arg_maximum_z_projection(parameters):
    src = _read(parameters, "src")
    store(_data(parameters, "dst_max"), src.max(axis=0))
    store(_data(parameters, "dst_arg"), src.argmax(axis=0))


# stacksplitting.cl

def _split_stacks(parameters):
    outputs = [parameters[name].data for name in sorted(
        (k for k in parameters if k.startswith("dst")), key=lambda k: int(k[3:]))]
    src = _data(parameters, "src")
    count = len(outputs)
    for index, output in enumerate(outputs):
        store(output, src[index::count][:output.shape[0]])


for _count in range(2, MAX_SPLIT_STACKS + 1):
    host_kernel("stacksplitting.cl", f"split_{_count}_stacks")(_split_stacks)
