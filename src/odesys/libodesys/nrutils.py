"""
Numerical utilities shared by the single-step and multistep integrators.

Holds the scalar kind aliases, the fatal-error and argument-assertion
helpers, and the workspace allocator.  Every precondition check in the
integrators goes through ``assertTrue`` / ``assertEq`` so a violated
precondition surfaces as ``InvalidArgumentError`` instead of silently
corrupting a workspace.

Allocation failure is not recoverable: ``allocate`` turns a
``MemoryError`` into ``nrerror``, which stops the process.
"""

import sys
from typing import Any, Tuple, Union

import numpy as np
from numpy.typing import NDArray

from .logger import get_logger

log = get_logger(__name__)

# ---------------------------------------------------------------------------
# Scalar kind aliases  (dp = real double, dpc = complex double)
# ---------------------------------------------------------------------------
dp = np.float64
dpc = np.complex128


class InvalidArgumentError(ValueError):
    """Raised when a caller breaks an integrator precondition."""


# ===================================================================
#  Assertion / error utilities
# ===================================================================

def nrerror(msg: str) -> None:
    """
    Report a fatal error and stop.

    Parameters
    ----------
    msg : str
        Error message printed to stderr.

    Raises
    ------
    SystemExit
    """
    log.error(msg)
    print(f"nrerror: {msg}", file=sys.stderr)
    raise SystemExit(msg)


def assertTrue(test: bool, msg: str = "Assertion failed") -> None:
    """
    Assert *test* is ``True``.

    Raises
    ------
    InvalidArgumentError
        If *test* is false.
    """
    if not test:
        raise InvalidArgumentError(msg)


def assertEq(*args: Any, msg: str = "Equality assertion failed") -> Any:
    """
    Assert all positional arguments are equal; return the common value.

    Parameters
    ----------
    *args
        Values that must be equal.
    msg : str
        Message on failure.

    Returns
    -------
    value
        The common value.

    Raises
    ------
    InvalidArgumentError
    """
    first = args[0]
    if all(a == first for a in args[1:]):
        return first
    raise InvalidArgumentError(f"{msg}: {args}")


def assertVector(v: Any, n: int, dtype: type, name: str = "vector") -> None:
    """
    Assert *v* is a 1-D ndarray of length *n* and dtype *dtype*.

    Integrators write through these arrays in place, so a silent cast or
    reshape would lose the result; only exact matches are accepted.
    """
    assertTrue(isinstance(v, np.ndarray), f"{name} must be a numpy array")
    assertTrue(v.ndim == 1, f"{name} must be one-dimensional, got ndim={v.ndim}")
    assertEq(v.shape[0], n, msg=f"{name} length does not match system size")
    assertTrue(
        v.dtype == dtype,
        f"{name} dtype {v.dtype} does not match {np.dtype(dtype)}",
    )


def assertDistinct(a: np.ndarray, b: np.ndarray, msg: str = "buffers overlap") -> None:
    """Assert two buffers do not share memory (input and output must differ)."""
    assertTrue(not np.may_share_memory(a, b), msg)


def assertStep(h: float) -> None:
    """Assert the grid step is finite and nonzero."""
    assertTrue(np.isfinite(h) and h != 0.0, f"grid step must be finite and nonzero, got {h}")


# ===================================================================
#  Workspace allocation
# ===================================================================

def allocate(
    shape: Union[int, Tuple[int, ...]],
    dtype: type = dp,
    what: str = "array",
) -> np.ndarray:
    """
    Return a zero-filled array for workspace storage.

    Parameters
    ----------
    shape : int or tuple of int
    dtype : numpy dtype
        ``dp`` or ``dpc``.
    what : str
        Name used in the fatal error message.

    Raises
    ------
    SystemExit
        Through ``nrerror`` when memory cannot be obtained.
    """
    try:
        return np.zeros(shape, dtype=dtype)
    except MemoryError:
        nrerror(f"Problem in {what} allocation of shape {shape}")


# ===================================================================
#  Zero right-hand side
# ===================================================================

def zero_derivative(
    x: float,
    y: NDArray,
    out: NDArray,
    *args: Any,
) -> None:
    """
    Derivative of the trivial system ``y' = 0``.

    Writes zeros into *out*; works for both ``dp`` and ``dpc`` states.
    Any extra arguments are ignored.
    """
    out[:] = 0.0
