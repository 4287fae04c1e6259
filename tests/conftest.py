"""Global pytest configuration for kerneldispatch tests."""
import os

import numpy as np
import pytest

from kerneldispatch import BackendType, ComputeContext, DispatchConfig
from kerneldispatch.backends import available_backends

BACKEND_CHOICES = [backend.value for backend in BackendType]


def pytest_addoption(parser):
    """Add command-line options for backend selection."""

    # Helper function to get default from environment variable
    def env_default(env_var, default_value):
        return os.getenv(env_var, default_value)

    parser.addoption(
        "--kd-backend",
        action="store",
        default=env_default("KD_BACKEND", "numpy"),
        help="Comma-separated list of compute backends to test (default: numpy). "
             "Options: numpy,pyclesperanto. Use 'all' for full coverage."
    )


def pytest_configure(config):
    """Validate configuration options."""
    option_value = config.getoption("--kd-backend")
    if option_value == "all":
        return
    for value in (v.strip() for v in option_value.split(",")):
        if value not in BACKEND_CHOICES:
            raise pytest.UsageError(
                f"Invalid value '{value}' for --kd-backend. "
                f"Valid choices: {', '.join(BACKEND_CHOICES)} or 'all'"
            )


def _selected_backends(config):
    option_value = config.getoption("--kd-backend")
    if option_value == "all":
        return BACKEND_CHOICES
    selected = [v.strip() for v in option_value.split(",")]
    return [choice for choice in BACKEND_CHOICES if choice in selected]


def pytest_generate_tests(metafunc):
    """Parametrize backend_name over the selected backends."""
    if "backend_name" in metafunc.fixturenames:
        selected = _selected_backends(metafunc.config)
        metafunc.parametrize("backend_name", selected, ids=selected, scope="module")


@pytest.fixture
def dispatch_config(backend_name):
    """DispatchConfig for the backend under test, honouring KERNELDISPATCH_* variables."""
    if backend_name == BackendType.PYCLESPERANTO.value:
        if BackendType.PYCLESPERANTO not in available_backends():
            pytest.skip("pyclesperanto is not installed")
        if not os.getenv("KERNELDISPATCH_KERNEL_DIR"):
            pytest.skip("KERNELDISPATCH_KERNEL_DIR is not set")
    environ = dict(os.environ, KERNELDISPATCH_BACKEND=backend_name)
    return DispatchConfig.from_env(environ)


@pytest.fixture
def context(dispatch_config):
    return ComputeContext(dispatch_config)


@pytest.fixture
def make_context(dispatch_config):
    """Factory building contexts with overridden config fields."""
    def _make(**overrides):
        return ComputeContext(dispatch_config.with_overrides(**overrides))
    return _make


@pytest.fixture
def host_context():
    """Context on the host emulation backend, independent of --kd-backend."""
    return ComputeContext(DispatchConfig(backend=BackendType.NUMPY))


@pytest.fixture
def ramp_3d():
    """uint16 volume of shape (4, 5, 6) holding 0..119."""
    return np.arange(4 * 5 * 6, dtype=np.uint16).reshape(4, 5, 6)
