from kerneldispatch.constants.constants import (DEFAULT_MAX_HOST_ARRAY_ELEMENTS,
                                                DEFAULT_MAX_KERNEL_ARRAY_SIZE,
                                                DEFAULT_MAX_STACK_MEMBERS,
                                                DEVICE_KINDS, HOST_KINDS,
                                                INPUT_NAME_MARKERS,
                                                MAX_SPLIT_STACKS,
                                                PLANE_BUFFER_ELEMENT_TYPES,
                                                UNIFICATION_TARGET_TYPE,
                                                ConversionKind, ElementType,
                                                RepresentationKind)

__all__ = [
    "DEFAULT_MAX_HOST_ARRAY_ELEMENTS",
    "DEFAULT_MAX_KERNEL_ARRAY_SIZE",
    "DEFAULT_MAX_STACK_MEMBERS",
    "DEVICE_KINDS",
    "HOST_KINDS",
    "INPUT_NAME_MARKERS",
    "MAX_SPLIT_STACKS",
    "PLANE_BUFFER_ELEMENT_TYPES",
    "UNIFICATION_TARGET_TYPE",
    "ConversionKind",
    "ElementType",
    "RepresentationKind",
]
