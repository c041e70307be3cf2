"""
SoftPool: exponentially weighted (softmax) pooling for 1D, 2D and 3D data.

Public API
----------
- Modules: `SoftPool1d`, `SoftPool2d`, `SoftPool3d`
- Functional: `soft_pool1d`, `soft_pool2d`, `soft_pool3d`
- Autograd functions: `SoftPool1dFn`, `SoftPool2dFn`, `SoftPool3dFn`
- Array kernels: `softpool{1,2,3}d_forward_cpu`, `softpool{1,2,3}d_backward_cpu`
- Configuration and errors: `LaunchConfig`, `KernelFaultError`
"""

from .domain._errors import BackwardBeforeForwardError, KernelFaultError
from .infrastructure._config import LaunchConfig
from .infrastructure._context import Context
from .infrastructure.ops.softpool_cpu import (
    softpool1d_forward_cpu,
    softpool2d_forward_cpu,
    softpool3d_forward_cpu,
    softpool1d_backward_cpu,
    softpool2d_backward_cpu,
    softpool3d_backward_cpu,
)
from .infrastructure.pooling import (
    SoftPool1d,
    SoftPool2d,
    SoftPool3d,
    SoftPool1dFn,
    SoftPool2dFn,
    SoftPool3dFn,
    soft_pool1d,
    soft_pool2d,
    soft_pool3d,
)

__version__ = "1.0.0"

__all__ = [
    "BackwardBeforeForwardError",
    "KernelFaultError",
    "LaunchConfig",
    "Context",
    "softpool1d_forward_cpu",
    "softpool2d_forward_cpu",
    "softpool3d_forward_cpu",
    "softpool1d_backward_cpu",
    "softpool2d_backward_cpu",
    "softpool3d_backward_cpu",
    "SoftPool1d",
    "SoftPool2d",
    "SoftPool3d",
    "SoftPool1dFn",
    "SoftPool2dFn",
    "SoftPool3dFn",
    "soft_pool1d",
    "soft_pool2d",
    "soft_pool3d",
]
