"""
Window geometry and index mapping for rank-generic SoftPool kernels.

This module owns everything that maps a flat output-cell index to the set of
input cells its pooling window covers, for 1, 2 or 3 spatial dimensions:

- hyperparameter normalization (`_single`, `_pair`, `_triple`, `_ntuple`)
- output geometry (`PoolGeometry`, floor-mode `input // stride` extents)
- flat index -> (batch, channel, spatial coordinates) decomposition
- the enumerated window offset table and the per-offset iteration used by
  both the forward and backward kernels

Window semantics
----------------
For output coordinate `po` the candidate input coordinate along axis `i` is

    po_i * stride_i + offset_i - kernel_i // 2,   offset_i in [0, kernel_i)

taken over the full Cartesian product of axes. Candidates outside
`[0, in_extent_i)` are skipped (no padding, no reflection), which yields
partial windows at the borders.

All index arithmetic is vectorized over a block of output cells ("lanes"),
so one call processes many output cells at once.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional, Sequence, Tuple

import numpy as np


def _ntuple(v: int | Sequence[int], n: int, name: str = "value") -> Tuple[int, ...]:
    """
    Normalize an integer or sequence into an `n`-tuple of ints.

    Raises
    ------
    ValueError
        If a sequence of the wrong length is provided.
    """
    if isinstance(v, (tuple, list)):
        if len(v) != n:
            raise ValueError(f"{name} must have {n} element(s), got {tuple(v)}")
        return tuple(int(e) for e in v)
    return (int(v),) * n


def _single(v: int | Sequence[int]) -> Tuple[int]:
    return _ntuple(v, 1)


def _pair(v: int | Sequence[int]) -> Tuple[int, int]:
    return _ntuple(v, 2)


def _triple(v: int | Sequence[int]) -> Tuple[int, int, int]:
    return _ntuple(v, 3)


def normalize_pool_args(
    kernel_size: int | Sequence[int],
    stride: Optional[int | Sequence[int]],
    rank: int,
) -> Tuple[Tuple[int, ...], Tuple[int, ...]]:
    """
    Normalize `(kernel_size, stride)` to `rank`-tuples.

    `stride=None` defaults to `kernel_size` (non-overlapping windows).

    Raises
    ------
    ValueError
        If any kernel or stride entry is not positive.
    """
    k = _ntuple(kernel_size, rank, "kernel_size")
    s = _ntuple(kernel_size if stride is None else stride, rank, "stride")
    if any(e <= 0 for e in k):
        raise ValueError(f"kernel_size must be positive, got {k}")
    if any(e <= 0 for e in s):
        raise ValueError(f"stride must be positive, got {s}")
    return k, s


@dataclass(frozen=True)
class PoolGeometry:
    """
    Immutable description of one SoftPool invocation.

    Attributes
    ----------
    batch : int
        Batch size N.
    channels : int
        Channel count C.
    in_spatial : tuple[int, ...]
        Input spatial extents (D,), (H, W) or (D, H, W).
    kernel : tuple[int, ...]
        Window extent per spatial axis.
    stride : tuple[int, ...]
        Stride per spatial axis.
    """

    batch: int
    channels: int
    in_spatial: Tuple[int, ...]
    kernel: Tuple[int, ...]
    stride: Tuple[int, ...]

    @classmethod
    def from_input_shape(
        cls,
        shape: Sequence[int],
        kernel: Sequence[int],
        stride: Sequence[int],
    ) -> "PoolGeometry":
        """Build a geometry from an `(N, C, *spatial)` shape."""
        N, C, *spatial = (int(e) for e in shape)
        return cls(
            batch=N,
            channels=C,
            in_spatial=tuple(spatial),
            kernel=tuple(int(e) for e in kernel),
            stride=tuple(int(e) for e in stride),
        )

    @property
    def rank(self) -> int:
        return len(self.in_spatial)

    @property
    def out_spatial(self) -> Tuple[int, ...]:
        # floor mode: trailing partial windows are dropped
        return tuple(e // s for e, s in zip(self.in_spatial, self.stride))

    @property
    def in_shape(self) -> Tuple[int, ...]:
        return (self.batch, self.channels, *self.in_spatial)

    @property
    def out_shape(self) -> Tuple[int, ...]:
        return (self.batch, self.channels, *self.out_spatial)

    @property
    def in_plane(self) -> int:
        """Number of input cells per (batch, channel) plane."""
        return int(np.prod(self.in_spatial, dtype=np.int64))

    @property
    def out_count(self) -> int:
        """Total number of output cells (one lane each)."""
        return int(np.prod(self.out_shape, dtype=np.int64))


def window_offsets(kernel: Sequence[int]) -> np.ndarray:
    """
    Enumerate all window offsets, last axis fastest.

    Parameters
    ----------
    kernel : sequence[int]
        Window extent per spatial axis.

    Returns
    -------
    np.ndarray
        int64 array of shape `(prod(kernel), rank)`.
    """
    kernel = tuple(int(e) for e in kernel)
    grid = np.indices(kernel, dtype=np.int64)
    return grid.reshape(len(kernel), -1).T


def unravel_output_index(
    flat,
    batch: int,
    channels: int,
    out_spatial: Sequence[int],
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Decompose flat output indices into `(n, c, spatial coordinates)`.

    The output is laid out as `[N, C, *out_spatial]` in row-major order; the
    decomposition peels the last spatial axis first with modulo/division.

    Parameters
    ----------
    flat : int or array-like of int
        Flat output-cell indices in `[0, N * C * prod(out_spatial))`.
    batch, channels : int
        N and C. `batch` is not needed for the arithmetic and is accepted so
        the signature describes the full layout.
    out_spatial : sequence[int]
        Output spatial extents.

    Returns
    -------
    tuple[np.ndarray, np.ndarray, np.ndarray]
        `n` and `c` with the shape of `flat`, and `coords` with shape
        `flat.shape + (rank,)`.
    """
    del batch
    rem = np.asarray(flat, dtype=np.int64)
    rank = len(out_spatial)
    coords = np.empty(rem.shape + (rank,), dtype=np.int64)
    for axis in range(rank - 1, -1, -1):
        extent = int(out_spatial[axis])
        coords[..., axis] = rem % extent
        rem = rem // extent
    c = rem % int(channels)
    n = rem // int(channels)
    return n, c, coords


def iter_window(
    flat_idx: np.ndarray, geom: PoolGeometry
) -> Iterator[Tuple[np.ndarray, np.ndarray]]:
    """
    Iterate the window of every lane, one offset at a time.

    Parameters
    ----------
    flat_idx : np.ndarray
        1-D int64 array of flat output indices (the lanes of one block).
    geom : PoolGeometry
        Invocation geometry.

    Yields
    ------
    tuple[np.ndarray, np.ndarray]
        `(valid, in_idx)` per window offset, where `valid` is a bool mask over
        lanes whose candidate coordinate lies inside the input, and `in_idx`
        holds the flat input indices of those lanes only (length
        `valid.sum()`).

    Notes
    -----
    Offsets are visited in the same order for every call, so re-enumerating
    a window (forward pass 2, backward) sees cells in the pass-1 order.
    """
    n, c, po = unravel_output_index(
        flat_idx, geom.batch, geom.channels, geom.out_spatial
    )
    base = (n * geom.channels + c) * geom.in_plane
    extent = np.asarray(geom.in_spatial, dtype=np.int64)
    origin = po * np.asarray(geom.stride, dtype=np.int64) - (
        np.asarray(geom.kernel, dtype=np.int64) // 2
    )

    for offset in window_offsets(geom.kernel):
        coords = origin + offset
        valid = np.all((coords >= 0) & (coords < extent), axis=-1)
        lin = np.zeros(coords.shape[:-1], dtype=np.int64)
        for axis in range(geom.rank):
            lin = lin * extent[axis] + coords[..., axis]
        yield valid, (base + lin)[valid]
