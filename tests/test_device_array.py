"""Tests for device arrays, configuration and the compute context."""
from pathlib import Path

import numpy as np
import pytest

from kerneldispatch import (BackendType, ComputeContext, DispatchConfig, ElementType,
                            RepresentationKind)
from kerneldispatch.constants import MAX_SPLIT_STACKS
from kerneldispatch.core.device_array import DeviceArray
from kerneldispatch.core.exceptions import ReleasedArrayError


class TestDeviceArray:

    def test_extents(self, context):
        array = context.create((6, 5, 4), ElementType.UINT16, RepresentationKind.IMAGE)
        assert array.dimensions == (6, 5, 4)
        assert array.shape == (4, 5, 6)
        assert (array.width, array.height, array.depth) == (6, 5, 4)
        assert array.dimension == 3
        assert array.plane_size == 30
        assert array.size == 120
        assert array.nbytes == 240
        assert array.kind is RepresentationKind.IMAGE

    def test_2d_depth_is_one(self, context):
        array = context.create((3, 2))
        assert array.depth == 1
        assert array.shape == (2, 3)

    def test_1d_extents(self, context):
        array = context.create((7,), ElementType.UINT8)
        assert array.dimension == 1
        assert array.shape == (7,)
        assert (array.width, array.height, array.depth) == (7, 1, 1)
        assert array.size == 7

    def test_1d_push_pull(self, context):
        data = np.arange(7, dtype=np.uint16)

        array = context.push(data)

        assert array.dimensions == (7,)
        pulled = context.pull(array)
        assert pulled.shape == (7,)
        np.testing.assert_array_equal(pulled, data)
        np.testing.assert_array_equal(context.pull_stack(array).to_array(), data)

    @pytest.mark.parametrize("dimensions", [(), (1, 2, 3, 4), (0,), (0, 2), (2, -1, 2)])
    def test_invalid_dimensions(self, context, dimensions):
        allocations = context.backend.allocation_count
        with pytest.raises(ValueError):
            context.create(dimensions)
        assert context.backend.allocation_count == allocations

    def test_repr_of_rejected_array(self):
        with pytest.raises(ValueError) as excinfo:
            DeviceArray(None, None, (0, 3), ElementType.UINT8, RepresentationKind.BUFFER)
        rejected = next(entry.locals["self"] for entry in excinfo.traceback
                        if isinstance(entry.locals.get("self"), DeviceArray))
        assert "0x3" in repr(rejected)

    def test_release_is_idempotent(self, context):
        array = context.create((3, 3))
        live = context.backend.live_count
        array.release()
        array.release()
        assert array.is_released
        assert context.backend.live_count == live - 1

    def test_handle_after_release(self, context):
        array = context.create((3, 3))
        array.release()
        with pytest.raises(ReleasedArrayError):
            array.handle

    def test_context_manager_releases(self, context):
        with context.create((3, 3)) as array:
            assert not array.is_released
        assert array.is_released
        assert context.backend.live_bytes == 0

    def test_create_like_overrides(self, context):
        array = context.create((3, 4), ElementType.UINT8)
        like = context.create_like(array, element_type=ElementType.FLOAT32,
                                   kind=RepresentationKind.IMAGE)
        assert like.dimensions == array.dimensions
        assert like.element_type is ElementType.FLOAT32
        assert like.kind is RepresentationKind.IMAGE


class TestDispatchConfig:

    def test_defaults(self):
        config = DispatchConfig()
        assert config.backend is BackendType.NUMPY
        assert config.max_host_array_elements == 2 ** 31 - 1
        assert config.max_kernel_array_size == 1000
        assert config.max_stack_members == 12

    def test_from_env(self):
        config = DispatchConfig.from_env({
            "KERNELDISPATCH_BACKEND": "NumPy",
            "KERNELDISPATCH_DEVICE": "host",
            "KERNELDISPATCH_KERNEL_DIR": "/tmp/kernels",
            "KERNELDISPATCH_MAX_HOST_ARRAY_ELEMENTS": "64",
            "KERNELDISPATCH_MAX_KERNEL_ARRAY_SIZE": "27",
        })
        assert config.backend is BackendType.NUMPY
        assert config.device_name == "host"
        assert config.kernel_directory == Path("/tmp/kernels")
        assert config.max_host_array_elements == 64
        assert config.max_kernel_array_size == 27
        assert config.max_stack_members == 12

    def test_from_env_rejects_unknown_backend(self):
        with pytest.raises(ValueError, match="Unsupported backend"):
            DispatchConfig.from_env({"KERNELDISPATCH_BACKEND": "cuda"})

    @pytest.mark.parametrize("field_name", [
        "max_host_array_elements", "max_kernel_array_size", "max_stack_members"])
    def test_limits_must_be_positive(self, field_name):
        with pytest.raises(ValueError):
            DispatchConfig(**{field_name: 0})

    def test_stack_members_capped_by_split_kernels(self):
        DispatchConfig(max_stack_members=MAX_SPLIT_STACKS)
        with pytest.raises(ValueError, match="cannot exceed"):
            DispatchConfig(max_stack_members=MAX_SPLIT_STACKS + 1)
        with pytest.raises(ValueError):
            DispatchConfig.from_env({"KERNELDISPATCH_MAX_STACK_MEMBERS": str(MAX_SPLIT_STACKS + 1)})

    def test_with_overrides_returns_copy(self):
        config = DispatchConfig()
        smaller = config.with_overrides(max_host_array_elements=10)
        assert smaller.max_host_array_elements == 10
        assert config.max_host_array_elements == 2 ** 31 - 1


class TestComputeContext:

    def test_contexts_are_independent(self):
        first = ComputeContext(DispatchConfig(device_name="first"))
        second = ComputeContext(DispatchConfig(device_name="second"))
        first.create((2, 2))
        assert first.backend.live_count == 1
        assert second.backend.live_count == 0
        assert first.backend.device_name == "first"

    def test_registry_is_per_context(self, host_context):
        other = ComputeContext()
        assert host_context.converters is not other.converters
        assert len(host_context.converters) == 12
