"""
Autograd function interface definitions.

Concrete subclasses of `Function` implement a forward computation and the
matching backward gradient computation. Values needed by backward are stored
on a per-invocation context object during forward.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence


class Function(ABC):
    """
    Abstract base class for differentiable operations.

    Subclasses must implement both `forward` and `backward` as static methods.

    Notes
    -----
    - Methods are declared as `@staticmethod` to avoid implicit state on the
      function object itself.
    - The `ctx` argument acts as a per-invocation context, allowing safe reuse
      of `Function` classes across calls.
    """

    @staticmethod
    @abstractmethod
    def forward(ctx, *inputs: Any, **kwargs: Any) -> Any:
        """
        Perform the forward computation and save what backward needs on `ctx`.
        """
        ...

    @staticmethod
    @abstractmethod
    def backward(ctx, grad_out: Any) -> Sequence[Optional[Any]]:
        """
        Compute gradients with respect to the inputs of `forward`.

        Returns
        -------
        tuple
            One gradient per differentiable input; entries may be None.
        """
        ...
