"""
Kernel dispatch processing: preconditions, type unification, separable
filter orchestration and the kernel operation layer.
"""
