"""
Argument type unification for kernel invocations.

Kernels are compiled for one element type per role. When the arrays of one
role (inputs or outputs, see parameter_role) disagree in element type, the
disagreeing arrays are swapped for float32 temporaries for the duration of
the call:

- input temporaries are filled by a type-converting copy before the call;
- output temporaries are copied back into the originals after the call,
  with saturation when the original is an integer type.

Temporaries are released and the argument map restored on every exit path.
"""

import logging
from collections import OrderedDict
from contextlib import contextmanager
from typing import TYPE_CHECKING, Dict, Iterator, Tuple

from kerneldispatch.constants import UNIFICATION_TARGET_TYPE
from kerneldispatch.core.arguments import KernelArguments
from kerneldispatch.core.device_array import DeviceArray

if TYPE_CHECKING:
    from kerneldispatch.core.context import ComputeContext

logger = logging.getLogger(__name__)

Replacement = Tuple[DeviceArray, DeviceArray]


class ArgumentTypeUnifier:
    """
    Swaps mixed-type arguments of one role for float32 temporaries.

    Usage:
        unifier = ArgumentTypeUnifier(context, arguments)
        unifier.fix()
        try:
            ...execute...
        finally:
            unifier.unfix()

    or, equivalently, `with unified(context, arguments): ...`.
    """

    def __init__(self, context: "ComputeContext", arguments: KernelArguments):
        self._context = context
        self._arguments = arguments
        self._replaced_inputs: "OrderedDict[str, Replacement]" = OrderedDict()
        self._replaced_outputs: "OrderedDict[str, Replacement]" = OrderedDict()

    @property
    def replaced_inputs(self) -> Dict[str, Replacement]:
        return dict(self._replaced_inputs)

    @property
    def replaced_outputs(self) -> Dict[str, Replacement]:
        return dict(self._replaced_outputs)

    @property
    def is_active(self) -> bool:
        """True while temporaries are substituted into the argument map."""
        return bool(self._replaced_inputs or self._replaced_outputs)

    def fix(self) -> None:
        """
        Substitute float32 temporaries where a role's element types disagree.

        If allocating or filling a temporary fails, every temporary created
        so far is released and the argument map restored before the error
        propagates.
        """
        inputs, outputs = self._arguments.partition()
        try:
            self._fix_set(inputs, self._replaced_inputs, copy_in=True)
            self._fix_set(outputs, self._replaced_outputs, copy_in=False)
        except BaseException:
            self.unfix(copy_back=False)
            raise

    def _fix_set(self, members: "OrderedDict[str, DeviceArray]",
                 replaced: "OrderedDict[str, Replacement]", copy_in: bool) -> None:
        if len(members) < 2:
            return
        if len({array.element_type for array in members.values()}) < 2:
            return

        for name, original in members.items():
            if original.element_type is UNIFICATION_TARGET_TYPE:
                continue
            temporary = self._context.create_like(original, element_type=UNIFICATION_TARGET_TYPE)
            replaced[name] = (original, temporary)
            self._arguments[name] = temporary
            logger.debug("Unifying %s: %r -> temporary %r", name, original, temporary)
            if copy_in:
                self._context.ops.copy(original, temporary)

    def unfix(self, copy_back: bool = True) -> None:
        """
        Copy output temporaries back, release all temporaries and restore
        the original arguments.

        Args:
            copy_back: Copy output temporaries into their originals; pass
                False when the kernel failed and the outputs are undefined

        Raises:
            Exception: The first copy-back or release failure, raised after
                every temporary has been dealt with
        """
        error = None
        for name, (original, temporary) in self._replaced_outputs.items():
            try:
                if copy_back:
                    self._context.ops.copy(temporary, original)
            except Exception as e:
                error = error or e
            finally:
                self._arguments[name] = original
                error = self._release(temporary, error)
        for name, (original, temporary) in self._replaced_inputs.items():
            self._arguments[name] = original
            error = self._release(temporary, error)

        self._replaced_outputs.clear()
        self._replaced_inputs.clear()
        if error is not None:
            raise error

    @staticmethod
    def _release(temporary: DeviceArray, error):
        try:
            temporary.release()
            logger.debug("Released unification temporary %r", temporary)
        except Exception as e:
            logger.error("Failed to release unification temporary %r: %s", temporary, e)
            return error or e
        return error


@contextmanager
def unified(context: "ComputeContext", arguments: KernelArguments) -> Iterator[ArgumentTypeUnifier]:
    """
    Unify argument types for the duration of a with block.

    Outputs are copied back only when the block completes normally.
    """
    unifier = ArgumentTypeUnifier(context, arguments)
    unifier.fix()
    try:
        yield unifier
    except BaseException:
        unifier.unfix(copy_back=False)
        raise
    unifier.unfix()
