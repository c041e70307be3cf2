"""
Launch configuration for SoftPool kernels.

Values come from explicit arguments or from environment variables:

- `SOFTPOOL_THREADS_PER_BLOCK` : lanes per block (default 1024)
- `SOFTPOOL_MAX_BLOCKS`        : blocks per launch before grid-striding
                                 (default 65535)
- `SOFTPOOL_NUM_WORKERS`       : worker threads; 1 runs blocks inline
                                 (default `os.cpu_count()`)

Invalid environment values fall back to the default with a RuntimeWarning.
"""

from __future__ import annotations

import os
import warnings
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_THREADS_PER_BLOCK = 1024
DEFAULT_MAX_BLOCKS = 65535


def _default_num_workers() -> int:
    return max(1, os.cpu_count() or 1)


def _read_positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "")
    if not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        value = 0
    if value <= 0:
        warnings.warn(
            f"Ignoring {name}={raw!r}: expected a positive integer; "
            f"using default {default}.",
            RuntimeWarning,
            stacklevel=3,
        )
        return default
    return value


@dataclass(frozen=True)
class LaunchConfig:
    """
    Immutable work-partitioning parameters for one kernel launch.

    Attributes
    ----------
    threads_per_block : int
        Number of output cells (lanes) processed together as one block.
    max_blocks : int
        Maximum number of blocks per launch. When the output has more cells
        than `threads_per_block * max_blocks`, each lane walks the index space
        with a grid stride.
    num_workers : int
        Size of the worker pool executing blocks. 1 executes blocks inline on
        the calling thread.
    """

    threads_per_block: int = DEFAULT_THREADS_PER_BLOCK
    max_blocks: int = DEFAULT_MAX_BLOCKS
    num_workers: int = 1

    def __post_init__(self) -> None:
        for name in ("threads_per_block", "max_blocks", "num_workers"):
            if int(getattr(self, name)) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "LaunchConfig":
        """
        Build a configuration from `SOFTPOOL_*` environment variables.

        Parameters
        ----------
        env : Mapping[str, str] or None
            Mapping to read from. Defaults to `os.environ`.
        """
        env = os.environ if env is None else env
        return cls(
            threads_per_block=_read_positive_int(
                env, "SOFTPOOL_THREADS_PER_BLOCK", DEFAULT_THREADS_PER_BLOCK
            ),
            max_blocks=_read_positive_int(
                env, "SOFTPOOL_MAX_BLOCKS", DEFAULT_MAX_BLOCKS
            ),
            num_workers=_read_positive_int(
                env, "SOFTPOOL_NUM_WORKERS", _default_num_workers()
            ),
        )
