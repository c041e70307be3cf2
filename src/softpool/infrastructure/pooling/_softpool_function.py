"""
Autograd `Function` adapters for SoftPool (1D, 2D, 3D).

This module connects the array-level kernels in `ops.softpool_cpu` to the
`Function`/`Context` protocol. Each rank has its own `Function` subclass:

- `forward(ctx, x, *, kernel_size, stride=None, config=None)` pools `x` and
  saves `x` plus the normalized hyperparameters,
- `backward(ctx, grad_out)` allocates a zeroed input-gradient buffer and runs
  the scatter kernel into it.

Design notes
------------
- Weights are not saved: backward regenerates them from the saved input.
- `stride=None` means `stride=kernel_size`.
- Unbatched inputs, (C, *spatial), are accepted; a batch axis of size 1 is
  added for the kernel and removed from the result.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

import numpy as np

from ...domain._function import Function
from .._config import LaunchConfig
from .._context import Context
from ..ops._window import normalize_pool_args
from ..ops.softpool_cpu import softpool_backward_cpu, softpool_forward_cpu


def _softpool_forward(
    ctx: Context,
    x: np.ndarray,
    rank: int,
    kernel_size,
    stride,
    config: Optional[LaunchConfig],
) -> np.ndarray:
    x = np.asarray(x)
    unbatched = x.ndim == rank + 1
    if unbatched:
        x = x[np.newaxis]

    k, s = normalize_pool_args(kernel_size, stride, rank)
    y = softpool_forward_cpu(x, rank, k, s, config=config)

    ctx.save_for_backward(x)
    ctx.saved_meta["x_shape"] = x.shape
    ctx.saved_meta["rank"] = rank
    ctx.saved_meta["kernel_size"] = k
    ctx.saved_meta["stride"] = s
    ctx.saved_meta["unbatched"] = unbatched
    ctx.saved_meta["config"] = config

    return y[0] if unbatched else y


def _softpool_backward(ctx: Context, grad_out: np.ndarray) -> Tuple[np.ndarray]:
    (x,) = ctx.saved_tensors
    meta = ctx.saved_meta
    grad_out = np.asarray(grad_out)
    if meta["unbatched"]:
        grad_out = grad_out[np.newaxis]

    gx = softpool_backward_cpu(
        grad_out,
        x,
        meta["rank"],
        meta["kernel_size"],
        meta["stride"],
        config=meta["config"],
    )
    return (gx[0] if meta["unbatched"] else gx,)


class SoftPool1dFn(Function):
    """
    Autograd-enabled 1D SoftPool over (N, C, D) or (C, D) inputs.

    Saved context
    -------------
    - `saved_tensors`: [x]
    - `saved_meta`: "x_shape", "rank", "kernel_size", "stride",
      "unbatched", "config"
    """

    @staticmethod
    def forward(
        ctx: Context,
        x: np.ndarray,
        *,
        kernel_size: int | Sequence[int] = 2,
        stride: Optional[int | Sequence[int]] = None,
        config: Optional[LaunchConfig] = None,
    ) -> np.ndarray:
        return _softpool_forward(ctx, x, 1, kernel_size, stride, config)

    @staticmethod
    def backward(ctx: Context, grad_out: np.ndarray) -> Tuple[np.ndarray]:
        return _softpool_backward(ctx, grad_out)


class SoftPool2dFn(Function):
    """
    Autograd-enabled 2D SoftPool over (N, C, H, W) or (C, H, W) inputs.

    The forward pass computes the softmax-weighted sum of every window; the
    backward pass distributes `grad_out` over each window with the same
    weights, accumulating where windows overlap.
    """

    @staticmethod
    def forward(
        ctx: Context,
        x: np.ndarray,
        *,
        kernel_size: int | Sequence[int] = 2,
        stride: Optional[int | Sequence[int]] = None,
        config: Optional[LaunchConfig] = None,
    ) -> np.ndarray:
        """
        Compute 2D SoftPool and save the input for backward.

        Parameters
        ----------
        ctx : Context
            Context for storing the input and hyperparameters.
        x : np.ndarray
            Input of shape (N, C, H, W) or (C, H, W).
        kernel_size : int | tuple[int, int]
            Window size.
        stride : int | tuple[int, int] | None, optional
            Window stride. If None, defaults to `kernel_size`.
        config : LaunchConfig | None, optional
            Work partitioning for both passes.

        Returns
        -------
        np.ndarray
            Pooled output.
        """
        return _softpool_forward(ctx, x, 2, kernel_size, stride, config)

    @staticmethod
    def backward(ctx: Context, grad_out: np.ndarray) -> Tuple[np.ndarray]:
        """
        Backpropagate through 2D SoftPool.

        Returns
        -------
        tuple[np.ndarray]
            `(grad_x,)` with the shape of the forward input.
        """
        return _softpool_backward(ctx, grad_out)


class SoftPool3dFn(Function):
    """Autograd-enabled 3D SoftPool over (N, C, D, H, W) or (C, D, H, W)."""

    @staticmethod
    def forward(
        ctx: Context,
        x: np.ndarray,
        *,
        kernel_size: int | Sequence[int] = 2,
        stride: Optional[int | Sequence[int]] = None,
        config: Optional[LaunchConfig] = None,
    ) -> np.ndarray:
        return _softpool_forward(ctx, x, 3, kernel_size, stride, config)

    @staticmethod
    def backward(ctx: Context, grad_out: np.ndarray) -> Tuple[np.ndarray]:
        return _softpool_backward(ctx, grad_out)


def soft_pool1d(
    x: np.ndarray,
    kernel_size: int | Sequence[int] = 2,
    stride: Optional[int | Sequence[int]] = None,
) -> np.ndarray:
    """Functional 1D SoftPool (forward only)."""
    return SoftPool1dFn.forward(Context(), x, kernel_size=kernel_size, stride=stride)


def soft_pool2d(
    x: np.ndarray,
    kernel_size: int | Sequence[int] = 2,
    stride: Optional[int | Sequence[int]] = None,
) -> np.ndarray:
    """Functional 2D SoftPool (forward only)."""
    return SoftPool2dFn.forward(Context(), x, kernel_size=kernel_size, stride=stride)


def soft_pool3d(
    x: np.ndarray,
    kernel_size: int | Sequence[int] = 2,
    stride: Optional[int | Sequence[int]] = None,
) -> np.ndarray:
    """Functional 3D SoftPool (forward only)."""
    return SoftPool3dFn.forward(Context(), x, kernel_size=kernel_size, stride=stride)
