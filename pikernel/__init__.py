"""
pikernel - Raspberry Pi kernel maintenance tools.

This package provides tools for:
- Detecting when the published Raspberry Pi kernel package moved past the pinned source
- Resolving a package version to its upstream kernel commit
- Cross-compiling the pinned kernel into boot artifacts inside a container
"""

__version__ = "1.0.0"
__author__ = "pikernel contributors"

from pikernel.config import KernelConfig, SUPPORTED_CHANNELS
from pikernel.models import PackageVersion, UpdateResult, UpdateStatus

__all__ = [
    "__version__",
    "KernelConfig",
    "SUPPORTED_CHANNELS",
    "PackageVersion",
    "UpdateResult",
    "UpdateStatus",
]
