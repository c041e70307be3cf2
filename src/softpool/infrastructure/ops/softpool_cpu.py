"""
SoftPool forward/backward kernels (CPU, NumPy) for 1D, 2D and 3D inputs.

SoftPool replaces hard max/average pooling with a softmax-weighted sum over
each window:

    w_j = exp(x_j) / sum_i exp(x_i)        (over the window's valid cells)
    y   = sum_j w_j * x_j

The backward pass scatters each output gradient back over its window with
the same weights:

    grad_x[j] += grad_out * w_j

Implementation layout
---------------------
- `_forward_block` / `_backward_block` are the kernel bodies. Each call
  processes one block of output cells ("lanes") at once: the window is
  walked offset by offset, and every offset step is a vectorized NumPy
  operation over all lanes whose candidate input cell is in bounds.
- `launch_softpool_forward` / `launch_softpool_backward` run a body over the
  whole output index space via the data-parallel launcher.
- `softpool{1,2,3}d_forward_cpu` / `softpool{1,2,3}d_backward_cpu` are the
  array-level entry points: they normalize hyperparameters, validate dtypes,
  allocate outputs and call the launchers.

Numerics
--------
Every exponential, quotient, product and accumulation is clamped right after
it is computed (see `_safe_math`). Weights are recomputed from the input in
backward instead of being cached by forward. All arithmetic stays in the
input's dtype (float16, float32 or float64).

Assumes NC* layout: (N, C, D), (N, C, H, W) or (N, C, D, H, W).
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import numpy as np

from .._config import LaunchConfig
from ._launcher import AtomicAccumulator, LaunchStats, launch
from ._safe_math import clamp, clamp_magnitude, dtype_limits, safe_exp
from ._window import PoolGeometry, iter_window, normalize_pool_args

_SUPPORTED_DTYPES = (np.float16, np.float32, np.float64)

Window = Tuple[np.ndarray, np.ndarray]


# ---------------------------------------------------------------------
# Kernel bodies
# ---------------------------------------------------------------------


def _window_weight_sum(
    x_flat: np.ndarray, windows: Sequence[Window], lanes: int
) -> np.ndarray:
    """
    Pass 1: per-lane sum of `safe_exp` over the valid window cells, clamped
    into `[tiny, max]` so the later division can never be by zero.
    """
    tiny, hi = dtype_limits(x_flat.dtype)
    ws = np.zeros(lanes, dtype=x_flat.dtype)
    for valid, in_idx in windows:
        ws[valid] += safe_exp(x_flat[in_idx])
    return clamp(ws, tiny, hi)


def _forward_block(
    x_flat: np.ndarray,
    y_flat: np.ndarray,
    lanes: np.ndarray,
    geom: PoolGeometry,
) -> None:
    _, hi = dtype_limits(x_flat.dtype)
    zero = x_flat.dtype.type(0)
    windows: List[Window] = list(iter_window(lanes, geom))

    with np.errstate(over="ignore", under="ignore"):
        ws = _window_weight_sum(x_flat, windows, lanes.shape[0])

        acc = np.zeros(lanes.shape[0], dtype=x_flat.dtype)
        for valid, in_idx in windows:
            v = x_flat[in_idx]
            w = clamp_magnitude(safe_exp(v) / ws[valid], zero, hi)
            wx = clamp_magnitude(v * w, zero, hi)
            acc[valid] = clamp_magnitude(acc[valid] + wx, zero, hi)

    y_flat[lanes] = acc


def _backward_block(
    grad_out_flat: np.ndarray,
    x_flat: np.ndarray,
    grad_x: AtomicAccumulator,
    lanes: np.ndarray,
    geom: PoolGeometry,
) -> None:
    _, hi = dtype_limits(x_flat.dtype)
    zero = x_flat.dtype.type(0)
    windows: List[Window] = list(iter_window(lanes, geom))
    g = grad_out_flat[lanes]

    idx_parts: List[np.ndarray] = []
    val_parts: List[np.ndarray] = []
    with np.errstate(over="ignore", under="ignore"):
        ws = _window_weight_sum(x_flat, windows, lanes.shape[0])
        for valid, in_idx in windows:
            w = clamp_magnitude(safe_exp(x_flat[in_idx]) / ws[valid], zero, hi)
            idx_parts.append(in_idx)
            val_parts.append(clamp_magnitude(w * g[valid], zero, hi))

    grad_x.add(np.concatenate(idx_parts), np.concatenate(val_parts))


# ---------------------------------------------------------------------
# Launchers (flat buffers + geometry)
# ---------------------------------------------------------------------


def launch_softpool_forward(
    x: np.ndarray,
    y: np.ndarray,
    geom: PoolGeometry,
    config: Optional[LaunchConfig] = None,
) -> LaunchStats:
    """
    Run the forward kernel over every output cell of `geom`.

    Parameters
    ----------
    x : np.ndarray
        C-contiguous input buffer with `geom.in_shape` elements.
    y : np.ndarray
        C-contiguous output buffer with `geom.out_shape` elements; fully
        overwritten.
    geom : PoolGeometry
        Invocation geometry.
    config : LaunchConfig or None
        Work partitioning. Defaults to the environment configuration.

    Returns
    -------
    LaunchStats
        The executed launch plan.

    Notes
    -----
    No shape or layout validation happens here; use the
    `softpool*d_forward_cpu` entry points for checked calls.
    """
    x_flat = x.reshape(-1)
    y_flat = y.reshape(-1)
    return launch(
        "softpool_forward",
        geom.rank,
        lambda lanes: _forward_block(x_flat, y_flat, lanes, geom),
        geom.out_count,
        config,
    )


def launch_softpool_backward(
    grad_out: np.ndarray,
    x: np.ndarray,
    grad_x: np.ndarray,
    geom: PoolGeometry,
    config: Optional[LaunchConfig] = None,
) -> LaunchStats:
    """
    Run the backward scatter kernel over every output cell of `geom`.

    `grad_x` must be C-contiguous and zero-initialized by the caller; the
    kernel only adds into it. Overlapping windows (stride < kernel) make
    several blocks add into the same cell; those updates go through an
    `AtomicAccumulator`, so the summation order (and therefore the last bits
    of the result) may vary between runs.
    """
    go_flat = grad_out.reshape(-1)
    x_flat = x.reshape(-1)
    acc = AtomicAccumulator(grad_x)
    return launch(
        "softpool_backward",
        geom.rank,
        lambda lanes: _backward_block(go_flat, x_flat, acc, lanes, geom),
        geom.out_count,
        config,
    )


# ---------------------------------------------------------------------
# Array-level entry points
# ---------------------------------------------------------------------


def _check_input(x, rank: int, name: str = "x") -> np.ndarray:
    x = np.asarray(x)
    if x.dtype not in _SUPPORTED_DTYPES:
        raise TypeError(
            f"{name} must be float16/float32/float64 for softpool{rank}d, "
            f"got {x.dtype}"
        )
    if x.ndim != rank + 2:
        raise ValueError(
            f"softpool{rank}d expects {name} with {rank + 2} dims "
            f"(N, C, *spatial), got shape {x.shape}"
        )
    return np.ascontiguousarray(x)


def _check_buffer(
    buf: np.ndarray, shape: Tuple[int, ...], dtype: np.dtype, name: str
) -> None:
    if tuple(buf.shape) != tuple(shape):
        raise ValueError(f"{name} must have shape {shape}, got {buf.shape}")
    if buf.dtype != dtype:
        raise TypeError(f"{name} must have dtype {dtype}, got {buf.dtype}")
    if not buf.flags["C_CONTIGUOUS"]:
        raise ValueError(f"{name} must be C-contiguous")


def softpool_forward_cpu(
    x: np.ndarray,
    rank: int,
    kernel_size: int | Sequence[int],
    stride: Optional[int | Sequence[int]] = None,
    *,
    out: Optional[np.ndarray] = None,
    config: Optional[LaunchConfig] = None,
) -> np.ndarray:
    """
    Rank-generic SoftPool forward pass.

    Parameters
    ----------
    x : np.ndarray
        Input of shape (N, C, *spatial) with `len(spatial) == rank`.
    rank : int
        Number of spatial dimensions (1, 2 or 3).
    kernel_size : int or sequence[int]
        Window extent per spatial axis.
    stride : int or sequence[int] or None, optional
        Stride per spatial axis. If None, defaults to `kernel_size`.
    out : np.ndarray or None, optional
        Pre-allocated output of shape (N, C, *(spatial // stride)) and the
        dtype of `x`. Allocated when omitted.
    config : LaunchConfig or None, optional
        Work partitioning. Defaults to the environment configuration.

    Returns
    -------
    np.ndarray
        The pooled output (`out` itself when provided).

    Raises
    ------
    TypeError
        If `x` (or `out`) is not a supported floating dtype.
    ValueError
        If shapes, kernel or stride are invalid.
    KernelFaultError
        If the launch faulted.
    """
    x = _check_input(x, rank)
    k, s = normalize_pool_args(kernel_size, stride, rank)
    geom = PoolGeometry.from_input_shape(x.shape, k, s)

    if out is None:
        out = np.empty(geom.out_shape, dtype=x.dtype)
    else:
        _check_buffer(out, geom.out_shape, x.dtype, "out")

    launch_softpool_forward(x, out, geom, config)
    return out


def softpool_backward_cpu(
    grad_out: np.ndarray,
    x: np.ndarray,
    rank: int,
    kernel_size: int | Sequence[int],
    stride: Optional[int | Sequence[int]] = None,
    *,
    grad_x: Optional[np.ndarray] = None,
    config: Optional[LaunchConfig] = None,
) -> np.ndarray:
    """
    Rank-generic SoftPool backward pass.

    Parameters
    ----------
    grad_out : np.ndarray
        Gradient w.r.t. the pooled output, shape (N, C, *(spatial // stride)).
        Cast to the dtype of `x` if needed.
    x : np.ndarray
        The exact input used by the corresponding forward call.
    rank, kernel_size, stride, config
        Same as `softpool_forward_cpu`.
    grad_x : np.ndarray or None, optional
        Destination of shape `x.shape`. When provided it must already be
        zero-filled: the kernel accumulates into it and never overwrites.
        Allocated (zeroed) when omitted.

    Returns
    -------
    np.ndarray
        Gradient w.r.t. `x` (`grad_x` itself when provided).
    """
    x = _check_input(x, rank)
    k, s = normalize_pool_args(kernel_size, stride, rank)
    geom = PoolGeometry.from_input_shape(x.shape, k, s)

    grad_out = np.ascontiguousarray(np.asarray(grad_out), dtype=x.dtype)
    if tuple(grad_out.shape) != geom.out_shape:
        raise ValueError(
            f"grad_out must have shape {geom.out_shape}, got {grad_out.shape}"
        )

    if grad_x is None:
        grad_x = np.zeros(geom.in_shape, dtype=x.dtype)
    else:
        _check_buffer(grad_x, geom.in_shape, x.dtype, "grad_x")

    launch_softpool_backward(grad_out, x, grad_x, geom, config)
    return grad_x


def softpool1d_forward_cpu(
    x: np.ndarray,
    kernel_size: int | Sequence[int] = 2,
    stride: Optional[int | Sequence[int]] = None,
    *,
    out: Optional[np.ndarray] = None,
    config: Optional[LaunchConfig] = None,
) -> np.ndarray:
    """SoftPool forward over (N, C, D) inputs."""
    return softpool_forward_cpu(x, 1, kernel_size, stride, out=out, config=config)


def softpool2d_forward_cpu(
    x: np.ndarray,
    kernel_size: int | Sequence[int] = 2,
    stride: Optional[int | Sequence[int]] = None,
    *,
    out: Optional[np.ndarray] = None,
    config: Optional[LaunchConfig] = None,
) -> np.ndarray:
    """SoftPool forward over (N, C, H, W) inputs."""
    return softpool_forward_cpu(x, 2, kernel_size, stride, out=out, config=config)


def softpool3d_forward_cpu(
    x: np.ndarray,
    kernel_size: int | Sequence[int] = 2,
    stride: Optional[int | Sequence[int]] = None,
    *,
    out: Optional[np.ndarray] = None,
    config: Optional[LaunchConfig] = None,
) -> np.ndarray:
    """SoftPool forward over (N, C, D, H, W) inputs."""
    return softpool_forward_cpu(x, 3, kernel_size, stride, out=out, config=config)


def softpool1d_backward_cpu(
    grad_out: np.ndarray,
    x: np.ndarray,
    kernel_size: int | Sequence[int] = 2,
    stride: Optional[int | Sequence[int]] = None,
    *,
    grad_x: Optional[np.ndarray] = None,
    config: Optional[LaunchConfig] = None,
) -> np.ndarray:
    """SoftPool backward over (N, C, D) inputs."""
    return softpool_backward_cpu(
        grad_out, x, 1, kernel_size, stride, grad_x=grad_x, config=config
    )


def softpool2d_backward_cpu(
    grad_out: np.ndarray,
    x: np.ndarray,
    kernel_size: int | Sequence[int] = 2,
    stride: Optional[int | Sequence[int]] = None,
    *,
    grad_x: Optional[np.ndarray] = None,
    config: Optional[LaunchConfig] = None,
) -> np.ndarray:
    """SoftPool backward over (N, C, H, W) inputs."""
    return softpool_backward_cpu(
        grad_out, x, 2, kernel_size, stride, grad_x=grad_x, config=config
    )


def softpool3d_backward_cpu(
    grad_out: np.ndarray,
    x: np.ndarray,
    kernel_size: int | Sequence[int] = 2,
    stride: Optional[int | Sequence[int]] = None,
    *,
    grad_x: Optional[np.ndarray] = None,
    config: Optional[LaunchConfig] = None,
) -> np.ndarray:
    """SoftPool backward over (N, C, D, H, W) inputs."""
    return softpool_backward_cpu(
        grad_out, x, 3, kernel_size, stride, grad_x=grad_x, config=config
    )
