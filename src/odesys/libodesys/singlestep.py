"""
Explicit single-step (Runge-Kutta) integrators.

Every public routine has a real (``_dp``, float64) and a complex
(``_dpc``, complex128) entry point sharing one implementation.  The
stage combinations run in a Numba kernel that is compiled once per
dtype, so both variants use the same source.

Implements:
    - 2nd-order Runge-Kutta, Heun form (rungekutta2)
    - Classic 4th-order Runge-Kutta (rungekutta4)
    - 6-stage 5th-order Runge-Kutta, Butcher table 236a (rungekutta5)
    - Fixed-step driver (simpleint)

Steppers share the signature ``(h, x, f, ws, y, ynext, args=())``: they
read ``y``, write the state at ``x + h`` into ``ynext`` and return
``x + h``.  ``f(x, y, out, *args)`` writes the derivative into ``out``.
All scratch storage lives in a ``RungeKuttaWorkspace`` built once per
run; a step allocates no arrays.

References
----------
D. Quinney, An introduction to the numerical solution of differential
equations, rev. ed., 1987, ch. 2.
J.C. Butcher, Numerical methods for ordinary differential equations,
3rd ed., table 236a.
"""

from dataclasses import dataclass, field as _field
from typing import Any, Callable, Tuple

import numpy as np
from numba import njit

from .logger import brief, get_logger
from .nrutils import (
    allocate,
    assertDistinct,
    assertEq,
    assertStep,
    assertTrue,
    assertVector,
    dp,
    dpc,
)

log = get_logger(__name__)

Derivative = Callable[..., None]

# Tolerance used when deciding how many grid steps fit in an interval.
_GRID_EPS = 1.0e-9


# ─── Stage weights ───────────────────────────────────────────────────
# Each row is applied as  out = y + scale * sum_s w[s] * k[s].

_RK2_STAGE2 = np.array([1.0])
_RK2_FINAL = np.array([1.0, 1.0])                       # scale h/2

_RK4_STAGE2 = np.array([1.0])                           # scale h/2
_RK4_STAGE3 = np.array([0.0, 1.0])                      # scale h/2
_RK4_STAGE4 = np.array([0.0, 0.0, 1.0])                 # scale h
_RK4_FINAL = np.array([1.0, 2.0, 2.0, 1.0])             # scale h/6

_RK5_NODES = (0.0, 0.25, 0.25, 0.5, 0.75, 1.0)
_RK5_STAGE2 = np.array([1.0])                           # scale h/4
_RK5_STAGE3 = np.array([1.0, 1.0])                      # scale h/8
_RK5_STAGE4 = np.array([0.0, 0.0, 1.0])                 # scale h/2
_RK5_STAGE5 = np.array([3.0, -6.0, 6.0, 9.0])           # scale h/16
_RK5_STAGE6 = np.array([-3.0, 8.0, 6.0, -12.0, 8.0])    # scale h/7
_RK5_FINAL = np.array([7.0, 0.0, 32.0, 12.0, 32.0, 7.0])  # scale h/90


@njit(cache=True)
def _stage(y, scale, weights, k, out):
    """out[i] = y[i] + scale * sum_s weights[s] * k[s, i]."""
    for i in range(y.shape[0]):
        acc = weights[0] * k[0, i]
        for s in range(1, weights.shape[0]):
            acc = acc + weights[s] * k[s, i]
        out[i] = y[i] + scale * acc


# ═════════════════════════════════════════════════════════════════════
#  Workspace
# ═════════════════════════════════════════════════════════════════════

@dataclass(slots=True, eq=False)
class RungeKuttaWorkspace:
    """Scratch storage for explicit Runge-Kutta steps.

    ``work`` holds six stage-derivative rows (``k1..k6``) followed by the
    stage-argument row.  RK2 touches 3 rows, RK4 5 and RK5 all 7.
    """

    size: int
    dtype: type = dp

    work: np.ndarray = _field(init=False, repr=False)
    k: Tuple[np.ndarray, ...] = _field(init=False, repr=False)
    karg: np.ndarray = _field(init=False, repr=False)

    NSTAGE = 6

    def __post_init__(self):
        assertTrue(int(self.size) >= 1, f"system size must be positive, got {self.size}")
        assertTrue(
            np.dtype(self.dtype) in (np.dtype(dp), np.dtype(dpc)),
            f"unsupported dtype {self.dtype}",
        )
        self.size = int(self.size)
        self.dtype = np.dtype(self.dtype).type
        self.work = allocate((self.NSTAGE + 1, self.size), self.dtype, "RungeKuttaWorkspace")
        self.k = tuple(self.work[s] for s in range(self.NSTAGE))
        self.karg = self.work[self.NSTAGE]
        log.debug("RungeKuttaWorkspace: size=%d dtype=%s", self.size, np.dtype(self.dtype).name)


def get_rungekutta_ws_dp(size: int) -> RungeKuttaWorkspace:
    """Return a fresh real Runge-Kutta workspace for *size* equations."""
    return RungeKuttaWorkspace(size, dp)


def get_rungekutta_ws_dpc(size: int) -> RungeKuttaWorkspace:
    """Return a fresh complex Runge-Kutta workspace for *size* equations."""
    return RungeKuttaWorkspace(size, dpc)


def _check(h, ws, y, ynext, dtype):
    assertStep(h)
    assertTrue(isinstance(ws, RungeKuttaWorkspace), "ws must be a RungeKuttaWorkspace")
    assertEq(np.dtype(ws.dtype), np.dtype(dtype), msg="workspace dtype mismatch")
    assertVector(y, ws.size, dtype, "y")
    assertVector(ynext, ws.size, dtype, "ynext")
    assertDistinct(y, ynext, "y and ynext must be distinct buffers")


# ═════════════════════════════════════════════════════════════════════
#  2nd-order Runge-Kutta  (Heun)
# ═════════════════════════════════════════════════════════════════════

def _rungekutta2(h, x, f, ws, y, ynext, args):
    k, karg = ws.work, ws.karg

    f(x, y, ws.k[0], *args)
    _stage(y, h, _RK2_STAGE2, k, karg)
    f(x + h, karg, ws.k[1], *args)

    _stage(y, 0.5 * h, _RK2_FINAL, k, ynext)
    return x + h


def rungekutta2_dp(h, x, f, ws, y, ynext, args=()):
    """RK2 step for real ODEs.  Writes ``ynext``.  Returns x + h."""
    _check(h, ws, y, ynext, dp)
    return _rungekutta2(h, x, f, ws, y, ynext, args)


def rungekutta2_dpc(h, x, f, ws, y, ynext, args=()):
    """RK2 step for complex ODEs.  Writes ``ynext``.  Returns x + h."""
    _check(h, ws, y, ynext, dpc)
    return _rungekutta2(h, x, f, ws, y, ynext, args)


# ═════════════════════════════════════════════════════════════════════
#  Classic 4th-order Runge-Kutta
# ═════════════════════════════════════════════════════════════════════

def _rungekutta4(h, x, f, ws, y, ynext, args):
    k, karg = ws.work, ws.karg

    f(x, y, ws.k[0], *args)
    _stage(y, 0.5 * h, _RK4_STAGE2, k, karg)
    f(x + 0.5 * h, karg, ws.k[1], *args)

    _stage(y, 0.5 * h, _RK4_STAGE3, k, karg)
    f(x + 0.5 * h, karg, ws.k[2], *args)

    _stage(y, h, _RK4_STAGE4, k, karg)
    f(x + h, karg, ws.k[3], *args)

    _stage(y, h / 6.0, _RK4_FINAL, k, ynext)
    return x + h


def rungekutta4_dp(h, x, f, ws, y, ynext, args=()):
    """Classic RK4 step for real ODEs.  Writes ``ynext``.  Returns x + h."""
    _check(h, ws, y, ynext, dp)
    return _rungekutta4(h, x, f, ws, y, ynext, args)


def rungekutta4_dpc(h, x, f, ws, y, ynext, args=()):
    """Classic RK4 step for complex ODEs.  Writes ``ynext``.  Returns x + h."""
    _check(h, ws, y, ynext, dpc)
    return _rungekutta4(h, x, f, ws, y, ynext, args)


# ═════════════════════════════════════════════════════════════════════
#  5th-order Runge-Kutta  (Butcher 236a)
# ═════════════════════════════════════════════════════════════════════

def _rungekutta5(h, x, f, ws, y, ynext, args):
    k, karg = ws.work, ws.karg
    c = _RK5_NODES

    f(x, y, ws.k[0], *args)
    _stage(y, h / 4.0, _RK5_STAGE2, k, karg)
    f(x + c[1] * h, karg, ws.k[1], *args)

    _stage(y, h / 8.0, _RK5_STAGE3, k, karg)
    f(x + c[2] * h, karg, ws.k[2], *args)

    _stage(y, h / 2.0, _RK5_STAGE4, k, karg)
    f(x + c[3] * h, karg, ws.k[3], *args)

    _stage(y, h / 16.0, _RK5_STAGE5, k, karg)
    f(x + c[4] * h, karg, ws.k[4], *args)

    _stage(y, h / 7.0, _RK5_STAGE6, k, karg)
    f(x + c[5] * h, karg, ws.k[5], *args)

    _stage(y, h / 90.0, _RK5_FINAL, k, ynext)
    return x + h


def rungekutta5_dp(h, x, f, ws, y, ynext, args=()):
    """5th-order RK step for real ODEs.  Writes ``ynext``.  Returns x + h."""
    _check(h, ws, y, ynext, dp)
    return _rungekutta5(h, x, f, ws, y, ynext, args)


def rungekutta5_dpc(h, x, f, ws, y, ynext, args=()):
    """5th-order RK step for complex ODEs.  Writes ``ynext``.  Returns x + h."""
    _check(h, ws, y, ynext, dpc)
    return _rungekutta5(h, x, f, ws, y, ynext, args)


# ═════════════════════════════════════════════════════════════════════
#  Simple fixed-step ODE driver  (simpleint)
#  Modifies y in-place.  Returns nok.
# ═════════════════════════════════════════════════════════════════════

def _simpleint(y, x1, x2, h1, f, ws, stepper, args):
    assertStep(h1)
    span = x2 - x1
    if span == 0.0:
        return 0

    h = np.copysign(abs(h1), span)
    nok = int(np.ceil(abs(span) / abs(h1) - _GRID_EPS))
    ynext = allocate(ws.size, ws.dtype, "simpleint buffer")
    log.debug("simpleint: x1=%g x2=%g h=%g nsteps=%d", x1, x2, h, nok)

    for n in range(nok):
        x = x1 + n * h
        # last step lands exactly on x2
        hn = h if n < nok - 1 else x2 - x
        stepper(hn, x, f, ws, y, ynext, args)
        y[:] = ynext

    log.debug("simpleint: reached x=%g after %d steps, y=%s", x2, nok, brief(y))
    return nok


def simpleint_dp(
    y: np.ndarray,
    x1: float,
    x2: float,
    h1: float,
    f: Derivative,
    ws: RungeKuttaWorkspace,
    stepper: Callable = rungekutta4_dp,
    args: Tuple[Any, ...] = (),
) -> int:
    """
    Simple fixed-step driver for real ODEs.

    Parameters
    ----------
    y : ndarray, float64 (modified in-place)
    x1, x2 : float — integration bounds (``x2 < x1`` integrates backwards)
    h1 : float — step size; only its magnitude is used
    f : callable(x, y, out, *args) — derivative function
    ws : RungeKuttaWorkspace — real workspace sized for ``y``
    stepper : callable — single-step method (rungekutta2/4/5_dp)
    args : tuple — extra arguments forwarded to ``f``

    Returns
    -------
    nok : int — number of steps taken
    """
    return _simpleint(y, x1, x2, h1, f, ws, stepper, args)


def simpleint_dpc(
    y: np.ndarray,
    x1: float,
    x2: float,
    h1: float,
    f: Derivative,
    ws: RungeKuttaWorkspace,
    stepper: Callable = rungekutta4_dpc,
    args: Tuple[Any, ...] = (),
) -> int:
    """
    Simple fixed-step driver for complex ODEs.

    Same interface as simpleint_dp but y is complex128.
    Returns nok.
    """
    return _simpleint(y, x1, x2, h1, f, ws, stepper, args)
