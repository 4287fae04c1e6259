"""
Conversion registry for kerneldispatch.

A converter turns a value of one ConversionKind into a new value of
another. The registry maps each (source, target) pair to exactly one
converter; lookups match exactly and never chain conversions.
"""

import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Tuple

from kerneldispatch.constants import ConversionKind
from kerneldispatch.core.exceptions import NoConverterFoundError
from kerneldispatch.core.memory import conversion_functions as cf
from kerneldispatch.core.memory.stack_utils import detect_kind

if TYPE_CHECKING:
    from kerneldispatch.core.context import ComputeContext

logger = logging.getLogger(__name__)

KindPair = Tuple[ConversionKind, ConversionKind]


class Converter:
    """
    Base class for converters.

    Subclasses set source_kind and target_kind and implement convert().
    A converter holds only its context and returns newly allocated values.
    """

    source_kind: ConversionKind = None
    target_kind: ConversionKind = None

    def __init__(self, context: "ComputeContext"):
        self.context = context

    @property
    def pair(self) -> KindPair:
        return self.source_kind, self.target_kind

    def convert(self, source: Any) -> Any:
        raise NotImplementedError(f"{type(self).__name__} does not implement convert()")

    def __repr__(self):
        return f"{type(self).__name__}({self.source_kind.value} -> {self.target_kind.value})"


class FunctionConverter(Converter):
    """Converter delegating to one of the directed conversion functions."""

    def __init__(self, context: "ComputeContext", source_kind: ConversionKind,
                 target_kind: ConversionKind, function: Callable[["ComputeContext", Any], Any]):
        super().__init__(context)
        self.source_kind = source_kind
        self.target_kind = target_kind
        self._function = function

    def convert(self, source: Any) -> Any:
        return self._function(self.context, source)


_DEFAULT_CONVERSIONS: List[Tuple[ConversionKind, ConversionKind, Callable]] = [
    (ConversionKind.DEVICE_BUFFER, ConversionKind.DEVICE_IMAGE, cf._buffer_to_image),
    (ConversionKind.DEVICE_BUFFER, ConversionKind.HOST_ARRAY, cf._buffer_to_host_array),
    (ConversionKind.DEVICE_BUFFER, ConversionKind.HOST_STACK, cf._buffer_to_host_stack),
    (ConversionKind.DEVICE_IMAGE, ConversionKind.DEVICE_BUFFER, cf._image_to_buffer),
    (ConversionKind.DEVICE_IMAGE, ConversionKind.HOST_ARRAY, cf._image_to_host_array),
    (ConversionKind.DEVICE_IMAGE, ConversionKind.HOST_STACK, cf._image_to_host_stack),
    (ConversionKind.HOST_ARRAY, ConversionKind.DEVICE_BUFFER, cf._host_array_to_buffer),
    (ConversionKind.HOST_ARRAY, ConversionKind.DEVICE_IMAGE, cf._host_array_to_image),
    (ConversionKind.HOST_ARRAY, ConversionKind.HOST_STACK, cf._host_array_to_host_stack),
    (ConversionKind.HOST_STACK, ConversionKind.DEVICE_BUFFER, cf._host_stack_to_buffer),
    (ConversionKind.HOST_STACK, ConversionKind.DEVICE_IMAGE, cf._host_stack_to_image),
    (ConversionKind.HOST_STACK, ConversionKind.HOST_ARRAY, cf._host_stack_to_host_array),
]


class ConversionRegistry:
    """Exact-match table of converters keyed by (source kind, target kind)."""

    def __init__(self):
        self._converters: Dict[KindPair, Converter] = {}

    @classmethod
    def with_defaults(cls, context: "ComputeContext") -> "ConversionRegistry":
        """Create a registry holding all twelve default converters for context."""
        registry = cls()
        for source_kind, target_kind, function in _DEFAULT_CONVERSIONS:
            registry.register(FunctionConverter(context, source_kind, target_kind, function))
        logger.debug("Conversion registry initialized with %d converters", len(registry))
        return registry

    def register(self, converter: Converter) -> None:
        """
        Register a converter under its declared kind pair.

        A converter registered for an existing pair replaces the previous one.

        Raises:
            ValueError: If the converter's kinds are missing or equal
        """
        if converter.source_kind is None or converter.target_kind is None:
            raise ValueError(f"{type(converter).__name__} must declare source_kind and target_kind")
        if converter.source_kind is converter.target_kind:
            raise ValueError(f"Refusing same-kind converter for {converter.source_kind.value}")
        if converter.pair in self._converters:
            logger.debug("Replacing converter for %s -> %s",
                         converter.source_kind.value, converter.target_kind.value)
        self._converters[converter.pair] = converter

    def lookup(self, source_kind: ConversionKind, target_kind: ConversionKind) -> Converter:
        """
        Return the converter for an exact kind pair.

        Raises:
            NoConverterFoundError: If no converter is registered for the pair
        """
        converter = self._converters.get((source_kind, target_kind))
        if converter is None:
            raise NoConverterFoundError(
                f"No converter registered from {source_kind.value} to {target_kind.value}"
            )
        logger.debug("Converter lookup %s -> %s: %r", source_kind.value, target_kind.value, converter)
        return converter

    def convert(self, data: Any, target_kind: ConversionKind) -> Any:
        """
        Convert data to target_kind.

        Args:
            data: A DeviceArray, ImageStack or NumPy array
            target_kind: The kind to convert to

        Returns:
            A newly allocated value of the target kind

        Raises:
            TypeError: If the kind of data cannot be detected
            NoConverterFoundError: If no converter handles the pair
        """
        return self.lookup(detect_kind(data), target_kind).convert(data)

    def registered_pairs(self) -> List[KindPair]:
        return list(self._converters)

    def __contains__(self, pair: KindPair) -> bool:
        return pair in self._converters

    def __len__(self) -> int:
        return len(self._converters)
