from typing import Any
from dataclasses import dataclass, field

import numpy as np


@dataclass
class Context:
    """
    Backward context produced by a SoftPool forward call.

    Attributes
    ----------
    saved_tensors : list[np.ndarray]
        Arrays saved during forward for use in backward. SoftPool saves the
        forward input, since backward regenerates its weights from it.
    saved_meta : dict[str, Any]
        Non-array metadata required for backward (shapes, kernel, stride,
        launch configuration).
    """

    saved_tensors: list[np.ndarray] = field(default_factory=list)
    saved_meta: dict[str, Any] = field(default_factory=dict)

    def save_for_backward(self, *tensors: np.ndarray) -> None:
        """
        Save arrays for use during the backward computation.

        Parameters
        ----------
        *tensors : np.ndarray
            Any number of arrays to be stored in `saved_tensors`.
        """
        self.saved_tensors.extend(tensors)
