"""
SoftPool modules (1D, 2D, 3D).

High-level, stateless wrappers around the SoftPool `Function`s:

- `SoftPool1d` : (N, C, D)       -> (N, C, D // s)
- `SoftPool2d` : (N, C, H, W)    -> (N, C, H // s_h, W // s_w)
- `SoftPool3d` : (N, C, D, H, W) -> (N, C, D // s_d, H // s_h, W // s_w)

Each module keeps the `Context` of its most recent `forward` so that
`backward(grad_out)` can be called afterwards. Hyperparameters are held in
an immutable `SoftPoolMeta`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Type

import numpy as np

from ...domain._errors import BackwardBeforeForwardError
from ...domain._function import Function
from .._config import LaunchConfig
from .._context import Context
from ..ops._window import normalize_pool_args
from ._softpool_function import SoftPool1dFn, SoftPool2dFn, SoftPool3dFn


@dataclass(frozen=True)
class SoftPoolMeta:
    """
    Immutable SoftPool hyperparameters.

    Attributes
    ----------
    kernel_size : tuple[int, ...]
        Window extent per spatial axis.
    stride : tuple[int, ...]
        Stride per spatial axis (defaults to `kernel_size`).
    """

    kernel_size: Tuple[int, ...]
    stride: Tuple[int, ...]


class _SoftPoolNd:
    """Shared implementation of the rank-specific SoftPool modules."""

    _rank: int = 0
    _fn: Type[Function]

    def __init__(
        self,
        kernel_size: int | Sequence[int] = 2,
        *,
        stride: Optional[int | Sequence[int]] = None,
        config: Optional[LaunchConfig] = None,
    ) -> None:
        k, s = normalize_pool_args(kernel_size, stride, self._rank)
        self._meta = SoftPoolMeta(kernel_size=k, stride=s)
        self._config = config
        self._ctx: Optional[Context] = None

    @property
    def rank(self) -> int:
        return self._rank

    @property
    def kernel_size(self) -> Tuple[int, ...]:
        return self._meta.kernel_size

    @property
    def stride(self) -> Tuple[int, ...]:
        return self._meta.stride

    def parameters(self) -> List[np.ndarray]:
        return []

    def forward(self, x: np.ndarray) -> np.ndarray:
        """
        Pool `x` and keep the context for a later `backward`.

        Parameters
        ----------
        x : np.ndarray
            Input of shape (N, C, *spatial) or (C, *spatial).

        Returns
        -------
        np.ndarray
            Pooled output.
        """
        ctx = Context()
        y = self._fn.forward(
            ctx,
            x,
            kernel_size=self._meta.kernel_size,
            stride=self._meta.stride,
            config=self._config,
        )
        self._ctx = ctx
        return y

    def backward(self, grad_out: np.ndarray) -> np.ndarray:
        """
        Gradient w.r.t. the input of the most recent `forward`.

        Raises
        ------
        BackwardBeforeForwardError
            If `forward` has not been called yet.
        """
        if self._ctx is None:
            raise BackwardBeforeForwardError(type(self).__name__)
        (gx,) = self._fn.backward(self._ctx, grad_out)
        return gx

    def __call__(self, x: np.ndarray) -> np.ndarray:
        return self.forward(x)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kernel_size={self.kernel_size}, "
            f"stride={self.stride})"
        )


class SoftPool1d(_SoftPoolNd):
    """1D SoftPool module over (N, C, D) inputs."""

    _rank = 1
    _fn = SoftPool1dFn


class SoftPool2d(_SoftPoolNd):
    """
    2D SoftPool module (NCHW).

    Each output cell is the softmax-weighted sum of its window; windows that
    extend past the input border only use their in-bounds cells.

    Examples
    --------
    >>> pool = SoftPool2d(2)
    >>> y = pool(np.zeros((1, 1, 4, 4), dtype=np.float32))
    >>> y.shape
    (1, 1, 2, 2)
    """

    _rank = 2
    _fn = SoftPool2dFn


class SoftPool3d(_SoftPoolNd):
    """3D SoftPool module over (N, C, D, H, W) inputs."""

    _rank = 3
    _fn = SoftPool3dFn
