"""
SoftPool module interface.

Domain-level Protocol describing what a SoftPool module must provide,
independent of the NumPy backend that implements it.

Shape semantics
---------------
Input:
    x.shape == (N, C, *spatial)        with len(spatial) == rank

Output:
    y.shape == (N, C, *out_spatial)    out_spatial[i] = spatial[i] // stride[i]

Design constraints
------------------
- SoftPool modules MUST NOT own trainable parameters.
- SoftPool modules MUST preserve the batch and channel dimensions.
- Windows partially outside the input only use their in-bounds cells.
"""

from __future__ import annotations

from typing import Any, Iterable, Protocol, Tuple, runtime_checkable


@runtime_checkable
class ISoftPool(Protocol):
    """Protocol for rank-specific SoftPool modules."""

    @property
    def rank(self) -> int:
        """Number of pooled spatial dimensions (1, 2 or 3)."""
        ...

    @property
    def kernel_size(self) -> Tuple[int, ...]:
        """Window extent per spatial axis."""
        ...

    @property
    def stride(self) -> Tuple[int, ...]:
        """Stride per spatial axis."""
        ...

    def forward(self, x: Any) -> Any:
        """Pool `x` and remember it for `backward`."""
        ...

    def backward(self, grad_out: Any) -> Any:
        """Return the gradient w.r.t. the input of the last `forward`."""
        ...

    def parameters(self) -> Iterable[Any]:
        """Return trainable parameters (always empty)."""
        ...
