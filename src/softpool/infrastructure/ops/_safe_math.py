"""
Overflow/underflow-guarded arithmetic for the SoftPool kernels.

Every elementary operation inside the SoftPool reduction (exponential,
divide, multiply, accumulate) is immediately followed by a clamp so that no
intermediate ever becomes `inf`, `nan`, or a negative weight. The helpers in
this module are the only place where those bounds are defined.

Notes
-----
- All helpers are dtype-preserving: bounds are materialized as scalars of the
  input's own dtype so float16 stays float16 (no in-kernel promotion).
- `clamp_magnitude` bounds |x| and restores the sign of x, so negative
  activations are bounded symmetrically instead of being truncated to zero.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np


def dtype_limits(dtype) -> Tuple[np.floating, np.floating]:
    """
    Return `(tiny, max)` for a floating-point dtype.

    Parameters
    ----------
    dtype : np.dtype or type
        A floating-point dtype (float16, float32, float64).

    Returns
    -------
    tuple[np.floating, np.floating]
        Smallest positive normal number and largest finite number, both as
        scalars of `dtype`.
    """
    info = np.finfo(dtype)
    t = np.dtype(dtype).type
    return t(info.tiny), t(info.max)


def sign(x):
    """Return -1, 0 or +1 elementwise, in the dtype of `x`."""
    return np.sign(x)


def clamp(x, lower, upper):
    """Plain elementwise clamp of `x` into `[lower, upper]`."""
    return np.minimum(np.maximum(x, lower), upper)


def clamp_magnitude(x, lower, upper):
    """
    Clamp |x| into `[lower, upper]` and restore the sign of `x`.

    Parameters
    ----------
    x : np.ndarray or np.floating
        Value(s) to clamp.
    lower, upper : np.floating
        Magnitude bounds (`0 <= lower <= upper`).

    Returns
    -------
    np.ndarray or np.floating
        `sign(x) * min(max(|x|, lower), upper)`.

    Notes
    -----
    Zero has sign 0 and therefore stays zero even when `lower > 0`.
    """
    return sign(x) * clamp(np.abs(x), lower, upper)


def safe_exp(x):
    """
    Exponential bounded into `[0, max]` of the dtype of `x`.

    Overflow to `inf` is clamped to the largest finite value; the NumPy
    overflow/underflow warnings are silenced because the clamp absorbs them.
    """
    x = np.asarray(x)
    _, hi = dtype_limits(x.dtype)
    with np.errstate(over="ignore", under="ignore"):
        e = np.exp(x)
    return clamp_magnitude(e, x.dtype.type(0), hi)
