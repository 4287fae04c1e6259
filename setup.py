from setuptools import setup, find_packages
import os

# Read version from __init__.py
def get_version():
    """Get version from kerneldispatch/__init__.py"""
    init_file = os.path.join(os.path.dirname(__file__), "kerneldispatch", "__init__.py")
    with open(init_file, "r") as f:
        for line in f:
            if line.startswith("__version__"):
                return line.split("=")[1].strip().strip('"\'')
    raise RuntimeError("Unable to find version string.")

# Installation Examples:
# - Host emulation backend only: pip install kerneldispatch
# - With OpenCL backend: pip install "kerneldispatch[gpu]"
# - Development: pip install -e ".[dev]"

extras_require = {
    # Development dependencies (CPU-only testing)
    "dev": [
        "pytest>=7.4.0",
        "pytest-cov>=4.1.0",
        "coverage>=7.3.2",
    ],

    # GPU acceleration dependencies
    "gpu": [
        "pyclesperanto>=0.17.1",
    ],
}

extras_require["all"] = list(extras_require["gpu"])

setup(
    name="kerneldispatch",
    version=get_version(),
    description="Dispatch and data-adaptation layer for named GPU image kernels",
    long_description=open("README.md", "r", encoding="utf-8").read(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Image Processing",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
    keywords="gpu, opencl, image-processing, kernels, microscopy",
    packages=find_packages(include=["kerneldispatch", "kerneldispatch.*"]),
    install_requires=[
        "numpy>=1.26.4",
        "scipy>=1.12.0",  # Host emulation kernels
        "tifffile>=2025.6.11",  # ImageStack TIFF I/O
    ],
    extras_require=extras_require,
)
