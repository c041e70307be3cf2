"""
Execution-related exceptions for SoftPool.

Numeric range problems are never raised: the kernels absorb them by clamping
every intermediate value. The errors here cover the failures that remain:
a fault raised while a launch was executing, and misuse of the stateful
module wrappers.
"""

from __future__ import annotations

from typing import Optional


class KernelFaultError(RuntimeError):
    """
    Raised when a kernel launch detected a fault in one of its blocks.

    The launcher waits for every block to finish before checking for faults,
    so by the time this is raised no block is still running. The original
    exception is chained as `__cause__`.

    Attributes
    ----------
    op : str
        Kernel name (e.g., "softpool_forward").
    rank : int
        Spatial rank of the launch (1, 2 or 3).
    block : int or None
        Index of the first faulting block, if known.
    """

    def __init__(self, op: str, rank: int, block: Optional[int], reason: str) -> None:
        """
        Initialize the KernelFaultError.

        Parameters
        ----------
        op : str
            Kernel name.
        rank : int
            Spatial rank of the launch.
        block : int or None
            Index of the first faulting block.
        reason : str
            Human-readable fault description.
        """
        where = "" if block is None else f" (block {block})"
        super().__init__(f"{op}{rank}d kernel fault{where}: {reason}")
        self.op = op
        self.rank = rank
        self.block = block


class BackwardBeforeForwardError(RuntimeError):
    """
    Raised when a SoftPool module's `backward` is called before `forward`.

    The backward kernel regenerates its weights from the saved forward input,
    so there is nothing to differentiate until a forward pass has run.
    """

    def __init__(self, module: str) -> None:
        super().__init__(f"{module}.backward() called before forward().")
        self.module = module
