"""
Kernel invocation arguments for kerneldispatch.

A KernelArguments map holds the named parameters of one kernel call. Each
value is a tagged variant: ScalarArgument or ArrayArgument.

Role contract: a parameter whose name contains "src" or "input" is an
INPUT; every other array-valued parameter is an OUTPUT. The type unifier
relies on this rule alone to decide which arrays are copied in before a
call and which are copied out after it, so an output named "src_mask"
is classified as an input.
"""

from collections import OrderedDict
from collections.abc import MutableMapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, Tuple, Union

import numpy as np

from kerneldispatch.constants import INPUT_NAME_MARKERS
from kerneldispatch.core.device_array import DeviceArray


class ArgumentRole(Enum):
    INPUT = "input"
    OUTPUT = "output"


def parameter_role(name: str) -> ArgumentRole:
    """
    Classify a parameter name as kernel input or output.

    Args:
        name: The kernel parameter name

    Returns:
        ArgumentRole.INPUT if the name contains "src" or "input",
        ArgumentRole.OUTPUT otherwise
    """
    if any(marker in name for marker in INPUT_NAME_MARKERS):
        return ArgumentRole.INPUT
    return ArgumentRole.OUTPUT


@dataclass(frozen=True)
class ScalarArgument:
    value: Union[int, float, bool]


@dataclass(frozen=True, eq=False)
class ArrayArgument:
    array: DeviceArray


KernelArgument = Union[ScalarArgument, ArrayArgument]


def as_argument(value: Any) -> KernelArgument:
    """
    Wrap a raw value in its argument variant.

    Raises:
        TypeError: If the value is neither a scalar nor a DeviceArray
    """
    if isinstance(value, (ScalarArgument, ArrayArgument)):
        return value
    if isinstance(value, DeviceArray):
        return ArrayArgument(value)
    if isinstance(value, (bool, int, float, np.integer, np.floating, np.bool_)):
        return ScalarArgument(value.item() if isinstance(value, np.generic) else value)
    raise TypeError(
        f"Kernel arguments must be scalars or DeviceArrays, got {type(value).__name__}"
    )


class KernelArguments(MutableMapping):
    """
    Ordered mapping of parameter name to KernelArgument.

    Assigning a raw scalar or DeviceArray wraps it automatically; reading
    returns the variant.
    """

    def __init__(self, *args, **kwargs):
        self._entries: "OrderedDict[str, KernelArgument]" = OrderedDict()
        self.update(*args, **kwargs)

    def __getitem__(self, name: str) -> KernelArgument:
        return self._entries[name]

    def __setitem__(self, name: str, value: Any) -> None:
        if not isinstance(name, str):
            raise TypeError(f"Parameter names must be strings, got {type(name).__name__}")
        self._entries[name] = as_argument(value)

    def __delitem__(self, name: str) -> None:
        del self._entries[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        inner = ", ".join(f"{k}={_describe(v)}" for k, v in self._entries.items())
        return f"KernelArguments({inner})"

    def array(self, name: str) -> DeviceArray:
        """Return the DeviceArray bound to name."""
        argument = self._entries[name]
        if not isinstance(argument, ArrayArgument):
            raise TypeError(f"Parameter {name!r} is not an array argument")
        return argument.array

    def arrays(self) -> "OrderedDict[str, DeviceArray]":
        """All array-valued parameters in insertion order."""
        return OrderedDict(
            (name, arg.array) for name, arg in self._entries.items()
            if isinstance(arg, ArrayArgument)
        )

    def scalars(self) -> "OrderedDict[str, Union[int, float, bool]]":
        return OrderedDict(
            (name, arg.value) for name, arg in self._entries.items()
            if isinstance(arg, ScalarArgument)
        )

    def partition(self) -> Tuple["OrderedDict[str, DeviceArray]", "OrderedDict[str, DeviceArray]"]:
        """
        Split array parameters by role.

        Returns:
            (inputs, outputs) as ordered name -> DeviceArray maps
        """
        inputs: "OrderedDict[str, DeviceArray]" = OrderedDict()
        outputs: "OrderedDict[str, DeviceArray]" = OrderedDict()
        for name, array in self.arrays().items():
            if parameter_role(name) is ArgumentRole.INPUT:
                inputs[name] = array
            else:
                outputs[name] = array
        return inputs, outputs

    def to_backend(self) -> Dict[str, Any]:
        """Raw {name: handle-or-scalar} dict for a backend call."""
        raw = {}
        for name, arg in self._entries.items():
            if isinstance(arg, ArrayArgument):
                raw[name] = arg.array.handle
            else:
                raw[name] = arg.value
        return raw


def _describe(argument: KernelArgument) -> str:
    if isinstance(argument, ArrayArgument):
        return repr(argument.array)
    return repr(argument.value)
