"""
Host/device memory boundary for kerneldispatch.

This package holds the host image stack model, the chunked transfer engine
and the conversion registry between device buffers, device images, host
arrays and host image stacks.
"""
