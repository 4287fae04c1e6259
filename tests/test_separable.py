"""Tests for separable filter orchestration."""
import numpy as np
import pytest
from scipy import ndimage

from kerneldispatch import ElementType, RepresentationKind
from kerneldispatch.core.exceptions import (AliasingViolationError,
                                            RepresentationKindMismatchError,
                                            ShapeMismatchError)
from kerneldispatch.processing.separable import (SeparableFilterOrchestrator,
                                                 radius_to_kernel_size,
                                                 sigma_to_kernel_size)


@pytest.fixture
def noise_2d():
    return np.random.default_rng(7).integers(0, 200, size=(9, 11)).astype(np.uint8)


@pytest.fixture
def noise_3d():
    return np.random.default_rng(11).random((5, 6, 7)).astype(np.float32) * 100


class TestKernelSizes:

    @pytest.mark.parametrize("sigma, expected", [(1.0, 9), (2.0, 17), (0.5, 5), (0.3, 3), (0.0, 1)])
    def test_sigma_to_kernel_size(self, sigma, expected):
        assert sigma_to_kernel_size(sigma) == expected

    @pytest.mark.parametrize("radius, expected", [(0, 1), (1, 3), (3, 7)])
    def test_radius_to_kernel_size(self, radius, expected):
        assert radius_to_kernel_size(radius) == expected


class TestDegenerateAxes:

    def test_all_zero_sigmas_equal_copy_2d(self, context, noise_2d):
        src = context.push(noise_2d)
        dst = context.create(src.dimensions, ElementType.FLOAT32)

        context.ops.blur(src, dst, 0, 0)

        np.testing.assert_array_equal(context.pull(dst), noise_2d.astype(np.float32))

    def test_all_zero_radii_equal_copy_3d(self, context, noise_3d):
        src = context.push(noise_3d)
        dst = context.create(src.dimensions, ElementType.FLOAT32)

        context.ops.mean_box(src, dst, 0, 0, 0)

        np.testing.assert_array_equal(context.pull(dst), noise_3d)

    def test_skipped_axis_is_left_unfiltered(self, host_context, noise_2d):
        src = host_context.push(noise_2d)
        dst = host_context.create(src.dimensions, ElementType.FLOAT32)

        host_context.ops.mean_box(src, dst, 1, 0)

        expected = ndimage.uniform_filter1d(noise_2d.astype(np.float64), 3, axis=1, mode="nearest")
        np.testing.assert_allclose(host_context.pull(dst), expected, rtol=1e-5)


class TestFilters:

    def test_maximum_box_3d_matches_box_maximum(self, host_context, noise_3d):
        src = host_context.push(noise_3d)
        dst = host_context.create(src.dimensions, ElementType.FLOAT32)

        host_context.ops.maximum_box(src, dst, 1, 1, 1)

        np.testing.assert_array_equal(host_context.pull(dst),
                                      ndimage.maximum_filter(noise_3d, size=3, mode="nearest"))

    def test_minimum_box_into_uint8(self, host_context, noise_2d):
        src = host_context.push(noise_2d)
        dst = host_context.create(src.dimensions, ElementType.UINT8)

        host_context.ops.minimum_box(src, dst, 2, 1)

        expected = ndimage.minimum_filter(noise_2d, size=(3, 5), mode="nearest")
        np.testing.assert_array_equal(host_context.pull(dst), expected)

    def test_blur_preserves_constant_image(self, context):
        src = context.push(np.full((4, 8, 8), 42, dtype=np.uint16))
        dst = context.create(src.dimensions, ElementType.FLOAT32)

        context.ops.blur(src, dst, 1.5, 1.5, 1.0)

        np.testing.assert_allclose(context.pull(dst), 42.0, rtol=1e-5)

    def test_temporaries_are_released(self, context, noise_3d):
        src = context.push(noise_3d)
        dst = context.create(src.dimensions, ElementType.FLOAT32)
        live = context.backend.live_count
        allocations = context.backend.allocation_count

        context.ops.blur(src, dst, 1.0, 2.0, 0.5)

        assert context.backend.live_count == live
        assert context.backend.allocation_count == allocations + 2


class TestPreconditions:

    def test_aliasing(self, context, noise_2d):
        src = context.push(noise_2d)
        allocations = context.backend.allocation_count

        with pytest.raises(AliasingViolationError):
            context.ops.blur(src, src, 1.0, 1.0)

        assert context.backend.allocation_count == allocations

    def test_kind_mismatch(self, context, noise_2d):
        src = context.push(noise_2d, RepresentationKind.BUFFER)
        dst = context.create(src.dimensions, ElementType.FLOAT32, RepresentationKind.IMAGE)
        allocations = context.backend.allocation_count

        with pytest.raises(RepresentationKindMismatchError):
            context.ops.mean_box(src, dst, 1, 1)

        assert context.backend.allocation_count == allocations

    def test_dimension_mismatch(self, context, noise_3d):
        src = context.push(noise_3d)
        dst = context.create(src.dimensions[:2], ElementType.FLOAT32)

        with pytest.raises(ShapeMismatchError):
            context.ops.blur(src, dst, 1.0, 1.0, 1.0)

    def test_extent_mismatch_before_allocation(self, context):
        src = context.create((4, 4), ElementType.FLOAT32)
        dst = context.create((5, 4), ElementType.FLOAT32)
        allocations = context.backend.allocation_count

        with pytest.raises(ShapeMismatchError):
            context.ops.blur(src, dst, 1.0, 1.0)

        assert context.backend.allocation_count == allocations

    def test_1d_arrays_rejected(self, context):
        src = context.create((8,), ElementType.FLOAT32)
        dst = context.create((8,), ElementType.FLOAT32)
        allocations = context.backend.allocation_count

        with pytest.raises(ShapeMismatchError):
            context.ops.mean_box(src, dst, 1, 0)

        assert context.backend.allocation_count == allocations

    def test_too_few_parameters(self, context, noise_3d):
        src = context.push(noise_3d)
        dst = context.create(src.dimensions, ElementType.FLOAT32)
        orchestrator = SeparableFilterOrchestrator(context)

        with pytest.raises(ValueError):
            orchestrator.execute(src, dst, "blur.cl", "gaussian_blur_sep_image3d", [3, 3], [1.0, 1.0])
