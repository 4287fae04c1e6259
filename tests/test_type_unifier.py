"""Tests for argument type unification."""
import numpy as np
import pytest

from kerneldispatch import ComputeContext, ElementType, KernelArguments
from kerneldispatch.backends import NumpyBackend
from kerneldispatch.backends.host_kernels import HOST_KERNELS
from kerneldispatch.core.exceptions import KernelExecutionError
from kerneldispatch.processing.type_unifier import ArgumentTypeUnifier, unified


def _push(context, values, dtype):
    return context.push(np.asarray(values, dtype=dtype))


class TestOverflow:
    """Narrowing conversions saturate instead of wrapping."""

    def test_copy_uint16_to_uint8(self, context):
        src = _push(context, np.full((1, 1, 1), 255), np.uint16)
        dst = context.create((1, 1, 1), ElementType.UINT8)

        context.ops.copy(src, dst)

        assert context.pull(dst)[0, 0, 0] == 255

    def test_add_scalar_into_uint8_clips(self, context):
        src = _push(context, np.full((1, 1, 1), 255), np.uint16)
        dst = context.create((1, 1, 1), ElementType.UINT8)

        context.ops.add_image_and_scalar(src, dst, 1.0)

        assert context.pull(dst)[0, 0, 0] == 255

    def test_negative_values_clip_to_zero(self, context):
        src = _push(context, [[1.0, -3.5]], np.float32)
        dst = context.create((2, 1), ElementType.UINT16)

        context.ops.copy(src, dst)

        np.testing.assert_array_equal(context.pull(dst), [[1, 0]])


class TestInputUnification:

    def test_mixed_inputs_are_promoted(self, context):
        a = _push(context, [[1, 2], [3, 250]], np.uint8)
        b = _push(context, [[0.5, 0.5], [0.5, 10.0]], np.float32)
        dst = context.create((2, 2), ElementType.FLOAT32)
        live = context.backend.live_count

        context.ops.add_images(a, b, dst)

        np.testing.assert_allclose(context.pull(dst), [[1.5, 2.5], [3.5, 260.0]])
        assert context.backend.live_count == live

    def test_argument_map_is_restored(self, context):
        a = _push(context, [[1, 2]], np.uint8)
        b = _push(context, [[1, 2]], np.uint16)
        dst = context.create((2, 1), ElementType.FLOAT32)
        arguments = KernelArguments(src=a, src1=b, dst=dst)

        context.execute("math.cl", "addPixelwise_2d", arguments)

        assert arguments.array("src") is a
        assert arguments.array("src1") is b
        assert arguments.array("dst") is dst
        np.testing.assert_array_equal(context.pull(dst), [[2.0, 4.0]])

    def test_same_types_allocate_nothing(self, context):
        a = _push(context, [[1, 2]], np.uint8)
        b = _push(context, [[3, 4]], np.uint8)
        dst = context.create((2, 1), ElementType.UINT8)
        allocations = context.backend.allocation_count

        context.ops.add_images(a, b, dst)

        assert context.backend.allocation_count == allocations
        np.testing.assert_array_equal(context.pull(dst), [[4, 6]])

    def test_single_input_is_never_unified(self, context):
        src = _push(context, [[7, 8]], np.uint16)
        dst = context.create((2, 1), ElementType.FLOAT32)
        allocations = context.backend.allocation_count

        context.ops.multiply_image_and_scalar(src, dst, 0.5)

        assert context.backend.allocation_count == allocations
        np.testing.assert_allclose(context.pull(dst), [[3.5, 4.0]])


class TestOutputUnification:

    def test_outputs_are_copied_back_with_saturation(self, context):
        volume = np.zeros((3, 2, 2), dtype=np.float32)
        volume[1] = [[10, 300], [5, 1]]
        volume[2] = [[20, 1], [2, 400]]
        src = context.push(volume)
        dst_max = context.create((2, 2), ElementType.UINT8)
        dst_arg = context.create((2, 2), ElementType.FLOAT32)
        live = context.backend.live_count

        context.ops.arg_maximum_z_projection(src, dst_max, dst_arg)

        np.testing.assert_array_equal(context.pull(dst_max), [[20, 255], [5, 255]])
        np.testing.assert_array_equal(context.pull(dst_arg), [[2, 1], [1, 2]])
        assert context.backend.live_count == live

    def test_fix_and_unfix(self, host_context):
        src = host_context.push(np.ones((2, 2, 2), dtype=np.float32))
        dst_max = host_context.create((2, 2), ElementType.UINT16)
        dst_arg = host_context.create((2, 2), ElementType.FLOAT32)
        arguments = KernelArguments(src=src, dst_max=dst_max, dst_arg=dst_arg)
        unifier = ArgumentTypeUnifier(host_context, arguments)

        unifier.fix()
        temporary = arguments.array("dst_max")
        assert unifier.is_active
        assert temporary is not dst_max
        assert temporary.element_type is ElementType.FLOAT32
        assert temporary.dimensions == dst_max.dimensions
        assert arguments.array("dst_arg") is dst_arg
        assert unifier.replaced_inputs == {}

        unifier.unfix()
        assert not unifier.is_active
        assert arguments.array("dst_max") is dst_max
        assert temporary.is_released


def _failing_kernel(parameters):
    raise RuntimeError("device lost")


class _FlakyBackend(NumpyBackend):
    """Host backend whose allocations start failing after a budget."""

    def __init__(self, allocations_left):
        super().__init__()
        self.allocations_left = allocations_left

    def allocate(self, shape, element_type, kind):
        if self.allocations_left == 0:
            raise MemoryError("out of device memory")
        self.allocations_left -= 1
        return super().allocate(shape, element_type, kind)


class TestExceptionSafety:

    def test_kernel_failure_releases_temporaries(self):
        kernels = dict(HOST_KERNELS)
        kernels[("broken.cl", "explode")] = _failing_kernel
        context = ComputeContext(backend=NumpyBackend(kernels=kernels))
        a = context.push(np.ones((2, 2), dtype=np.uint8))
        b = context.push(np.ones((2, 2), dtype=np.float32))
        out = context.push(np.full((2, 2), 9, dtype=np.uint16))
        out2 = context.create((2, 2), ElementType.FLOAT32)
        arguments = KernelArguments(src=a, src1=b, dst=out, dst2=out2)
        live = context.backend.live_count

        with pytest.raises(KernelExecutionError, match="device lost"):
            context.execute("broken.cl", "explode", arguments)

        assert context.backend.live_count == live
        assert arguments.array("src") is a
        assert arguments.array("dst") is out
        # Outputs are not overwritten when the kernel fails
        np.testing.assert_array_equal(context.pull(out), np.full((2, 2), 9))

    def test_allocation_failure_during_fix(self):
        backend = _FlakyBackend(allocations_left=4)
        context = ComputeContext(backend=backend)
        a = context.create((2, 2), ElementType.UINT8)
        b = context.create((2, 2), ElementType.UINT16)
        c = context.create((2, 2), ElementType.FLOAT32)
        arguments = KernelArguments(src=a, src1=b, src2=c)

        # One budgeted allocation left: the first temporary succeeds, the second fails
        with pytest.raises(MemoryError):
            with unified(context, arguments):
                pytest.fail("body must not run")

        assert backend.live_count == 3
        assert arguments.array("src") is a
        assert arguments.array("src1") is b
