"""Core components of kerneldispatch: configuration, device arrays, arguments and contexts."""
