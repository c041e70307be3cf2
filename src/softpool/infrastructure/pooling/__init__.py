from ._softpool_function import (
    SoftPool1dFn,
    SoftPool2dFn,
    SoftPool3dFn,
    soft_pool1d,
    soft_pool2d,
    soft_pool3d,
)
from ._softpool_module import SoftPool1d, SoftPool2d, SoftPool3d, SoftPoolMeta

__all__ = [
    "SoftPool1dFn",
    "SoftPool2dFn",
    "SoftPool3dFn",
    "soft_pool1d",
    "soft_pool2d",
    "soft_pool3d",
    "SoftPool1d",
    "SoftPool2d",
    "SoftPool3d",
    "SoftPoolMeta",
]
