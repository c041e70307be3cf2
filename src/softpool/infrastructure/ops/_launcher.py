"""
Data-parallel launcher for SoftPool kernels.

A launch covers the flat output-cell index space `[0, cells)`. Cells are
grouped into blocks of `threads_per_block` lanes; blocks run on a thread pool
and each block processes its lanes as one vectorized NumPy step. When there
are more cells than `threads_per_block * max_blocks`, every lane walks the
index space with a grid stride:

    lane i handles cells i, i + grid_stride, i + 2 * grid_stride, ...

Fault model
-----------
Any exception raised by a block is recorded. After *all* blocks have
finished, the first fault (lowest block index) is raised as
`KernelFaultError` with the original exception chained. Nothing is retried
and partial results are not salvaged.

Shared writes
-------------
Blocks of the backward kernel write into overlapping input-gradient cells.
`AtomicAccumulator` serializes those scatter-adds; `np.add.at` is unbuffered,
so repeated indices inside one call are all accumulated.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Tuple

import numpy as np

from ...domain._errors import KernelFaultError
from .._config import LaunchConfig


@dataclass(frozen=True)
class LaunchStats:
    """
    Work partitioning of one launch, returned as the success signal.

    Attributes
    ----------
    cells : int
        Number of output cells covered.
    blocks : int
        Number of blocks launched.
    threads_per_block : int
        Lanes per block.
    grid_stride : int
        `blocks * threads_per_block`; the step of each lane's index walk.
    rounds : int
        Number of grid-stride iterations needed to cover every cell.
    """

    cells: int
    blocks: int
    threads_per_block: int
    grid_stride: int
    rounds: int


def plan_launch(cells: int, config: LaunchConfig) -> LaunchStats:
    """
    Compute block count and grid stride for `cells` output cells.

    Returns a plan with zero blocks when there is nothing to compute.
    """
    cells = int(cells)
    tpb = int(config.threads_per_block)
    if cells <= 0:
        return LaunchStats(
            cells=0, blocks=0, threads_per_block=tpb, grid_stride=0, rounds=0
        )
    blocks = min((cells + tpb - 1) // tpb, int(config.max_blocks))
    grid_stride = blocks * tpb
    rounds = (cells + grid_stride - 1) // grid_stride
    return LaunchStats(
        cells=cells,
        blocks=blocks,
        threads_per_block=tpb,
        grid_stride=grid_stride,
        rounds=rounds,
    )


def block_lanes(block: int, plan: LaunchStats) -> Iterator[np.ndarray]:
    """
    Yield the flat cell indices handled by `block`, one grid-stride round at
    a time.
    """
    for r in range(plan.rounds):
        start = r * plan.grid_stride + block * plan.threads_per_block
        if start >= plan.cells:
            break
        stop = min(start + plan.threads_per_block, plan.cells)
        yield np.arange(start, stop, dtype=np.int64)


class AtomicAccumulator:
    """
    Lock-guarded scatter-add into a shared flat buffer.

    Parameters
    ----------
    target : np.ndarray
        C-contiguous destination. Updates are written through a flat view, so
        the caller's array sees every addition.
    """

    def __init__(self, target: np.ndarray) -> None:
        if not target.flags["C_CONTIGUOUS"]:
            raise ValueError("AtomicAccumulator target must be C-contiguous")
        self._flat = target.reshape(-1)
        self._lock = threading.Lock()

    def add(self, idx: np.ndarray, values: np.ndarray) -> None:
        """Add `values` into `target.flat[idx]`; repeated indices accumulate."""
        with self._lock:
            np.add.at(self._flat, idx, values)


def launch(
    op: str,
    rank: int,
    body: Callable[[np.ndarray], None],
    cells: int,
    config: Optional[LaunchConfig] = None,
) -> LaunchStats:
    """
    Run `body` over every output cell.

    Parameters
    ----------
    op : str
        Kernel name, used in fault reports.
    rank : int
        Spatial rank, used in fault reports.
    body : Callable[[np.ndarray], None]
        Kernel body receiving a 1-D int64 array of flat cell indices.
    cells : int
        Size of the output index space.
    config : LaunchConfig or None
        Partitioning parameters. Defaults to `LaunchConfig.from_env()`.

    Returns
    -------
    LaunchStats
        The plan that was executed.

    Raises
    ------
    KernelFaultError
        If any block raised.
    """
    config = LaunchConfig.from_env() if config is None else config
    plan = plan_launch(cells, config)
    if plan.blocks == 0:
        return plan

    def run_block(block: int) -> None:
        for lanes in block_lanes(block, plan):
            body(lanes)

    faults: List[Tuple[int, BaseException]] = []

    if config.num_workers == 1 or plan.blocks == 1:
        for block in range(plan.blocks):
            try:
                run_block(block)
            except Exception as e:
                faults.append((block, e))
                break
    else:
        workers = min(int(config.num_workers), plan.blocks)
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {pool.submit(run_block, b): b for b in range(plan.blocks)}
            wait(futures)
        for fut, block in futures.items():
            exc = fut.exception()
            if exc is not None:
                faults.append((block, exc))

    if faults:
        block, exc = min(faults, key=lambda f: f[0])
        raise KernelFaultError(
            op, rank, block, f"{type(exc).__name__}: {exc}"
        ) from exc

    return plan
