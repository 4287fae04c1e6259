"""
Compute context for kerneldispatch.

A ComputeContext binds one backend (one device) to its configuration, its
conversion registry and its transfer engine. Contexts are created
explicitly and handed to whatever needs them; there is no global instance,
so several contexts (e.g. one per GPU, one per thread) can coexist.

A context is not thread-safe. Arrays belong to the context that created
them and cannot be used with another one.
"""

import logging
from typing import Any, Mapping, Optional, Sequence, Tuple, Union

from kerneldispatch.backends import ComputeBackend, create_backend
from kerneldispatch.constants import (ConversionKind, ElementType,
                                      RepresentationKind)
from kerneldispatch.core.arguments import KernelArguments
from kerneldispatch.core.config import DispatchConfig, get_default_config
from kerneldispatch.core.device_array import DeviceArray
from kerneldispatch.core.utils import dimensions_to_shape

logger = logging.getLogger(__name__)


class ComputeContext:
    """
    Entry point for allocating device arrays and executing kernels.

    Attributes:
        config: The DispatchConfig this context was built with
        backend: The compute backend executing kernels
        converters: ConversionRegistry populated with all default converters
        transfer: ChunkedTransferEngine for host/device stack transfers
    """

    def __init__(self, config: Optional[DispatchConfig] = None,
                 backend: Optional[ComputeBackend] = None):
        """
        Initialize a context.

        Args:
            config: Configuration; the process default when None
            backend: Backend to use; created from config when None
        """
        # Deferred imports: these modules depend on the context type
        from kerneldispatch.core.memory.converters import ConversionRegistry
        from kerneldispatch.core.memory.transfer import ChunkedTransferEngine

        self.config = config if config is not None else get_default_config()
        self.backend = backend if backend is not None else create_backend(self.config)
        self.converters = ConversionRegistry.with_defaults(self)
        self.transfer = ChunkedTransferEngine(self, self.config.max_host_array_elements)
        self._operations = None
        logger.info("Compute context ready on %s (%s backend)",
                    self.backend.device_name, self.backend.name)

    @property
    def ops(self):
        """KernelOperations bound to this context."""
        if self._operations is None:
            from kerneldispatch.processing.operations import KernelOperations
            self._operations = KernelOperations(self)
        return self._operations

    # Allocation

    def create(self, dimensions: Sequence[int],
               element_type: ElementType = ElementType.FLOAT32,
               kind: RepresentationKind = RepresentationKind.BUFFER) -> DeviceArray:
        """
        Allocate an uninitialised device array.

        Args:
            dimensions: Extents in (width[, height[, depth]]) order
            element_type: Element type of the new array
            kind: Linear buffer or formatted image

        Returns:
            A new DeviceArray owned by the caller

        Raises:
            ValueError: If dimensions are not 1 to 3 positive extents
        """
        dimensions = DeviceArray.validate_dimensions(dimensions)
        handle = self.backend.allocate(dimensions_to_shape(dimensions), element_type, kind)
        array = DeviceArray(self, handle, dimensions, element_type, kind)
        logger.debug("Allocated %r", array)
        return array

    def create_like(self, array: DeviceArray,
                    element_type: Optional[ElementType] = None,
                    kind: Optional[RepresentationKind] = None,
                    dimensions: Optional[Sequence[int]] = None) -> DeviceArray:
        """Allocate an array shaped like array, optionally overriding attributes."""
        return self.create(
            dimensions if dimensions is not None else array.dimensions,
            element_type if element_type is not None else array.element_type,
            kind if kind is not None else array.kind,
        )

    def owns(self, array: DeviceArray) -> bool:
        return array.context is self

    # Execution

    def execute(self, kernel_file: str, kernel_name: str,
                arguments: Union[KernelArguments, Mapping[str, Any]],
                global_size: Optional[Tuple[int, ...]] = None) -> bool:
        """
        Execute a named kernel with type unification.

        Array arguments of one role with disagreeing element types are
        promoted to float for the duration of the call; see
        ArgumentTypeUnifier.

        Args:
            kernel_file: Kernel source file name
            kernel_name: Kernel symbol
            arguments: Parameter name -> scalar or DeviceArray
            global_size: Work size in NumPy order; defaults to the shape of
                the first output array

        Returns:
            True on success

        Raises:
            ContextMismatchError: If an array belongs to another context
            KernelNotFoundError: If the backend cannot resolve the kernel
            KernelExecutionError: If the kernel fails
        """
        from kerneldispatch.processing.preconditions import (check_context,
                                                             require)
        from kerneldispatch.processing.type_unifier import unified

        if not isinstance(arguments, KernelArguments):
            arguments = KernelArguments(arguments)
        require(check_context(self, *arguments.arrays().values()))

        with unified(self, arguments):
            return self.execute_raw(kernel_file, kernel_name, arguments, global_size)

    def execute_raw(self, kernel_file: str, kernel_name: str, arguments: KernelArguments,
                    global_size: Optional[Tuple[int, ...]] = None) -> bool:
        """Execute a kernel exactly as given, without type unification."""
        if global_size is None:
            global_size = _default_global_size(arguments)
        logger.debug("Executing %s:%s with %r", kernel_file, kernel_name, arguments)
        return self.backend.execute(kernel_file, kernel_name, global_size, arguments.to_backend())

    # Host/device boundary

    def convert(self, data: Any, target_kind: ConversionKind) -> Any:
        """Convert data to target_kind through the conversion registry."""
        return self.converters.convert(data, target_kind)

    def push(self, data: Any, kind: RepresentationKind = RepresentationKind.BUFFER) -> DeviceArray:
        """Copy a host array or ImageStack to a new device array."""
        return self.convert(data, ConversionKind.for_representation(kind))

    def pull(self, array: DeviceArray):
        """Copy a device array to a new host ndarray."""
        return self.convert(array, ConversionKind.HOST_ARRAY)

    def pull_stack(self, array: DeviceArray):
        """Copy a device array to a new ImageStack, plane by plane if large."""
        return self.convert(array, ConversionKind.HOST_STACK)

    def __repr__(self):
        return f"ComputeContext({self.backend.name}, {self.backend.device_name})"


def _default_global_size(arguments: KernelArguments) -> Tuple[int, ...]:
    inputs, outputs = arguments.partition()
    for candidates in (outputs, inputs):
        for array in candidates.values():
            return array.shape
    return (1, 1, 1)
