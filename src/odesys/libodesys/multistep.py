"""
Linear multistep integrators with fixed-size rolling history.

A method of order ``m`` combines the last ``m`` states and derivatives::

    y[k+1] = sum_{j=1..m} ( h*b[j]*y'[k+1-j] - a[j]*y[k+1-j] )  +  h*b[0]*y'[k+1]

The last term is only present for implicit (corrector) evaluation, which
is resolved by a caller-fixed number of fixed-point iterations seeded with
a prediction.  There is no convergence check: the iteration count is
authoritative.

Implements:
    - Multistep workspace with state / derivative histories (MultistepWorkspace)
    - History bootstrap from a Runge-Kutta stepper (init_multistep)
    - General predictor / corrector step (general_multistep)
    - History roll-forward after an accepted step (set_next_multistep)
    - Adams-Bashforth-Moulton predictor-corrector, order 4 and 6 (adams4pc, adams6pc)
    - Predictor-corrector built from arbitrary coefficient sets (predictor_corrector)
    - Fixed-step multistep driver (multistepint)

Every stepping routine has a real (``_dp``) and complex (``_dpc``) entry
point.  The sums run in Numba kernels compiled per dtype; the summation
order (increasing ``j``, one term at a time) is fixed so results are
reproducible bit for bit.

Typical loop::

    ws = get_multistep_ws_dp(4, n)
    x = init_multistep_dp(h, f, ws, y0)
    while x < xend:
        adams4pc_dp(h, x, f, ws, ynext, niter=1)
        x = set_next_multistep_dp(x + h, f, ws, ynext)

References
----------
D. Quinney, An introduction to the numerical solution of differential
equations, rev. ed., 1987, ch. 2.
W.H. Press et al., Numerical Recipes in C, 2nd ed., ch. 16.
"""

from dataclasses import dataclass, field as _field
from typing import Any, Callable, Optional, Tuple

import numpy as np
from numba import njit

from .coefficients import (
    ADAMS4_CORR,
    ADAMS4_LEFT,
    ADAMS4_PRED,
    ADAMS6_CORR,
    ADAMS6_LEFT,
    ADAMS6_PRED,
    MultistepCoefficients,
)
from .history import StepHistory
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
from .singlestep import (
    Derivative,
    RungeKuttaWorkspace,
    rungekutta4_dp,
    rungekutta4_dpc,
)

log = get_logger(__name__)

# Relative tolerance when checking that an interval is a whole number of steps.
_GRID_EPS = 1.0e-9


# ═════════════════════════════════════════════════════════════════════
#  Summation kernels
# ═════════════════════════════════════════════════════════════════════

@njit(cache=True)
def _add_history(out, h, a, b, states, s_head, derivs, d_head, order):
    """out[i] += sum_{j=1..m} (h*b[j]*der[j-1][i] - a[j]*y[j-1][i]), j increasing."""
    for i in range(out.shape[0]):
        for j in range(1, order + 1):
            rs = (s_head + j - 1) % order
            rd = (d_head + j - 1) % order
            out[i] = out[i] + h * b[j] * derivs[rd, i] - a[j] * states[rs, i]


@njit(cache=True)
def _predict(out, h, a, b, states, s_head, derivs, d_head, order):
    for i in range(out.shape[0]):
        out[i] = 0.0
    _add_history(out, h, a, b, states, s_head, derivs, d_head, order)


@njit(cache=True)
def _correct(out, h, a, b, states, s_head, derivs, d_head, order, dnext):
    for i in range(out.shape[0]):
        out[i] = h * b[0] * dnext[i]
    _add_history(out, h, a, b, states, s_head, derivs, d_head, order)


# ═════════════════════════════════════════════════════════════════════
#  Workspace
# ═════════════════════════════════════════════════════════════════════

@dataclass(slots=True, eq=False)
class MultistepWorkspace:
    """History storage for an ``order``-step method on ``size`` equations.

    ``states`` and ``derivs`` hold the last ``order`` solution points,
    block 0 being the most recent (grid point ``x``) and block ``j``
    lying at ``x - j*h``.  An implicit-capable workspace also owns
    ``dnext``, the derivative at the point being corrected.

    Lifecycle: ``x is None`` until the history is filled by
    ``init_multistep_*`` or ``load_history``; afterwards every accepted
    step goes through ``set_next_multistep_*``.
    """

    order: int
    size: int
    dtype: type = dp
    implicit: bool = True

    states: StepHistory = _field(init=False, repr=False)
    derivs: StepHistory = _field(init=False, repr=False)
    dnext: Optional[np.ndarray] = _field(init=False, repr=False)
    x: Optional[float] = _field(init=False, default=None)
    steps: int = _field(init=False, default=0)

    def __post_init__(self):
        assertTrue(int(self.order) >= 1, f"multistep order must be positive, got {self.order}")
        assertTrue(int(self.size) >= 1, f"system size must be positive, got {self.size}")
        assertTrue(
            np.dtype(self.dtype) in (np.dtype(dp), np.dtype(dpc)),
            f"unsupported dtype {self.dtype}",
        )
        self.order = int(self.order)
        self.size = int(self.size)
        self.dtype = np.dtype(self.dtype).type
        self.states = StepHistory(self.order, self.size, self.dtype, "state history")
        self.derivs = StepHistory(self.order, self.size, self.dtype, "derivative history")
        self.dnext = (
            allocate(self.size, self.dtype, "implicit derivative") if self.implicit else None
        )
        log.debug(
            "MultistepWorkspace: order=%d size=%d dtype=%s implicit=%s",
            self.order, self.size, np.dtype(self.dtype).name, self.implicit,
        )

    @property
    def ready(self) -> bool:
        """True once both histories are fully populated."""
        return self.x is not None and self.states.full and self.derivs.full

    def load_history(self, x: float, states, derivs) -> None:
        """Seed the histories by hand.

        Parameters
        ----------
        x : float
            Grid point of block 0 (the most recent state).
        states, derivs : array_like, shape (order, size)
            Blocks ordered newest to oldest.
        """
        states = self.states.validate(states)
        derivs = self.derivs.validate(derivs)
        self.states.load(states)
        self.derivs.load(derivs)
        self.x = x
        self.steps = 0
        log.debug("load_history: order=%d x=%g", self.order, x)

    def history(self) -> Tuple[np.ndarray, np.ndarray]:
        """Copies of the (states, derivs) blocks, newest to oldest."""
        return self.states.ordered(), self.derivs.ordered()

    def reset(self) -> None:
        """Forget the history; the workspace must be seeded again."""
        self.states.reset()
        self.derivs.reset()
        if self.dnext is not None:
            self.dnext[:] = 0.0
        self.x = None
        self.steps = 0


def get_multistep_ws_dp(order: int, size: int, implicit: bool = True) -> MultistepWorkspace:
    """Return a fresh real multistep workspace."""
    return MultistepWorkspace(order, size, dp, implicit)


def get_multistep_ws_dpc(order: int, size: int, implicit: bool = True) -> MultistepWorkspace:
    """Return a fresh complex multistep workspace."""
    return MultistepWorkspace(order, size, dpc, implicit)


def _check_ws(ws, dtype):
    assertTrue(isinstance(ws, MultistepWorkspace), "ws must be a MultistepWorkspace")
    assertEq(np.dtype(ws.dtype), np.dtype(dtype), msg="workspace dtype mismatch")


def _check_step(h, ws, a, b, niter, ynext, dtype):
    assertStep(h)
    _check_ws(ws, dtype)
    assertTrue(ws.ready, "multistep history is not initialised; call init_multistep first")
    assertVector(ynext, ws.size, dtype, "ynext")
    assertDistinct(ynext, ws.states.arena, "ynext must not alias the state history")
    assertDistinct(ynext, ws.derivs.arena, "ynext must not alias the derivative history")
    if ws.dnext is not None:
        assertDistinct(ynext, ws.dnext, "ynext must not alias the implicit derivative buffer")
    assertEq(len(a), len(b), ws.order + 1, msg="coefficient arrays must have order + 1 entries")
    assertTrue(int(niter) == niter and niter >= 0, f"iteration count must be >= 0, got {niter}")
    if niter > 0:
        assertTrue(ws.implicit, "corrector iterations need an implicit workspace")


# ═════════════════════════════════════════════════════════════════════
#  Bootstrap  (init_multistep)
#  Fills the history.  Returns the grid point of block 0.
# ═════════════════════════════════════════════════════════════════════

def _init_multistep(h, f, ws, y0, stepper, x0, args):
    states, derivs = ws.states, ws.derivs
    # y0 may be a view of the history about to be cleared
    if np.may_share_memory(y0, states.arena) or np.may_share_memory(y0, derivs.arena):
        y0 = y0.copy()
    ws.x = None
    states.reset()
    derivs.reset()

    states.push(y0)
    f(x0, states.newest, derivs.advance(), *args)

    wsrk = RungeKuttaWorkspace(ws.size, ws.dtype)
    for i in range(1, ws.order):
        xi = x0 + (i - 1) * h
        target = states.advance()
        stepper(h, xi, f, wsrk, states.block(1), target, args)
        f(x0 + i * h, target, derivs.advance(), *args)

    ws.x = x0 + (ws.order - 1) * h
    ws.steps = 0
    log.debug(
        "init_multistep: order=%d x0=%g h=%g y0=%s -> x=%g",
        ws.order, x0, h, brief(y0), ws.x,
    )
    return ws.x


def init_multistep_dp(h, f, ws, y0, stepper=rungekutta4_dp, x0=0.0, args=()):
    """
    Bootstrap the history of a real multistep workspace.

    Parameters
    ----------
    h : float — grid step
    f : callable(x, y, out, *args) — derivative function
    ws : MultistepWorkspace (modified) — real workspace
    y0 : ndarray, float64 — initial condition at ``x0``
    stepper : callable — single-step method (rungekutta2/4/5_dp)
    x0 : float — grid point of ``y0``
    args : tuple — extra arguments forwarded to ``f``

    Returns
    -------
    x : float — grid point of the newest history block, ``x0 + (m-1)*h``
    """
    assertStep(h)
    _check_ws(ws, dp)
    assertVector(y0, ws.size, dp, "y0")
    return _init_multistep(h, f, ws, y0, stepper, x0, args)


def init_multistep_dpc(h, f, ws, y0, stepper=rungekutta4_dpc, x0=0.0, args=()):
    """Bootstrap the history of a complex multistep workspace.  Returns x."""
    assertStep(h)
    _check_ws(ws, dpc)
    assertVector(y0, ws.size, dpc, "y0")
    return _init_multistep(h, f, ws, y0, stepper, x0, args)


# ═════════════════════════════════════════════════════════════════════
#  History roll-forward  (set_next_multistep)
#  Returns xnext.
# ═════════════════════════════════════════════════════════════════════

def _set_next_multistep(xnext, f, ws, ynext, args):
    newest = ws.states.push(ynext)
    f(xnext, newest, ws.derivs.advance(), *args)
    ws.x = xnext
    ws.steps += 1
    log.debug2("set_next_multistep: x=%g step=%d y=%s", xnext, ws.steps, brief(newest))
    return xnext


def set_next_multistep_dp(xnext, f, ws, ynext, args=()):
    """
    Accept ``ynext`` as the real solution at ``xnext``.

    Every block moves one slot older, ``ynext`` becomes block 0 and its
    derivative is evaluated into derivative block 0.  Call exactly once
    per accepted step, after any corrector iterations.
    """
    _check_ws(ws, dp)
    assertTrue(ws.ready, "multistep history is not initialised; call init_multistep first")
    assertVector(ynext, ws.size, dp, "ynext")
    return _set_next_multistep(xnext, f, ws, ynext, args)


def set_next_multistep_dpc(xnext, f, ws, ynext, args=()):
    """Accept ``ynext`` as the complex solution at ``xnext``.  Returns xnext."""
    _check_ws(ws, dpc)
    assertTrue(ws.ready, "multistep history is not initialised; call init_multistep first")
    assertVector(ynext, ws.size, dpc, "ynext")
    return _set_next_multistep(xnext, f, ws, ynext, args)


# ═════════════════════════════════════════════════════════════════════
#  General multistep step  (general_multistep)
#  Writes ynext.  Does NOT touch the history.
# ═════════════════════════════════════════════════════════════════════

def _general_multistep(h, x, f, ws, a, b, niter, ynext, args):
    states, derivs = ws.states, ws.derivs

    if niter == 0:
        _predict(
            ynext, h, a, b,
            states.arena, states.head, derivs.arena, derivs.head, ws.order,
        )
        log.debug2("general_multistep: explicit x=%g -> %g", x, x + h)
        return

    # implicit: ynext must already hold a prediction
    xnext = x + h
    dnext = ws.dnext
    for it in range(niter):
        f(xnext, ynext, dnext, *args)
        _correct(
            ynext, h, a, b,
            states.arena, states.head, derivs.arena, derivs.head, ws.order, dnext,
        )
        log.debug3("general_multistep: corrector x=%g iteration %d/%d", xnext, it + 1, niter)


def general_multistep_dp(h, x, f, ws, a, b, niter, ynext, args=()):
    """
    General multistep step for real ODEs.

    Parameters
    ----------
    h : float — grid step
    x : float — grid point of the newest history block
    f : callable(x, y, out, *args) — derivative function
    ws : MultistepWorkspace — bootstrapped real workspace
    a, b : ndarray, float64, length ``order + 1`` — method weights; ``a[0]``
        is never read
    niter : int — 0 for the explicit formula (``b[0]`` ignored), otherwise
        the number of corrector iterations
    ynext : ndarray, float64 — (OUTPUT) solution at ``x + h``;
        (INPUT) the prediction when ``niter > 0``
    args : tuple — extra arguments forwarded to ``f``
    """
    a = np.asarray(a, dtype=dp)
    b = np.asarray(b, dtype=dp)
    _check_step(h, ws, a, b, niter, ynext, dp)
    _general_multistep(h, x, f, ws, a, b, int(niter), ynext, args)


def general_multistep_dpc(h, x, f, ws, a, b, niter, ynext, args=()):
    """
    General multistep step for complex ODEs.

    Same interface as general_multistep_dp; ``a`` and ``b`` stay real.
    """
    a = np.asarray(a, dtype=dp)
    b = np.asarray(b, dtype=dp)
    _check_step(h, ws, a, b, niter, ynext, dpc)
    _general_multistep(h, x, f, ws, a, b, int(niter), ynext, args)


# ═════════════════════════════════════════════════════════════════════
#  Predictor-corrector schemes
# ═════════════════════════════════════════════════════════════════════

def _pc(h, x, f, ws, ynext, niter, args, left, pred, corr, dtype):
    _check_step(h, ws, left, pred, niter, ynext, dtype)
    _general_multistep(h, x, f, ws, left, pred, 0, ynext, args)
    if niter == 0:
        return
    _general_multistep(h, x, f, ws, left, corr, int(niter), ynext, args)


def adams4pc_dp(h, x, f, ws, ynext, niter=1, args=()):
    """4th-order Adams-Bashforth-Moulton step for real ODEs.  Writes ``ynext``."""
    assertEq(ws.order, 4, msg="adams4pc needs a workspace of order 4")
    _pc(h, x, f, ws, ynext, niter, args, ADAMS4_LEFT, ADAMS4_PRED, ADAMS4_CORR, dp)


def adams4pc_dpc(h, x, f, ws, ynext, niter=1, args=()):
    """4th-order Adams-Bashforth-Moulton step for complex ODEs.  Writes ``ynext``."""
    assertEq(ws.order, 4, msg="adams4pc needs a workspace of order 4")
    _pc(h, x, f, ws, ynext, niter, args, ADAMS4_LEFT, ADAMS4_PRED, ADAMS4_CORR, dpc)


def adams6pc_dp(h, x, f, ws, ynext, niter=1, args=()):
    """6th-order Adams-Bashforth-Moulton step for real ODEs.  Writes ``ynext``."""
    assertEq(ws.order, 6, msg="adams6pc needs a workspace of order 6")
    _pc(h, x, f, ws, ynext, niter, args, ADAMS6_LEFT, ADAMS6_PRED, ADAMS6_CORR, dp)


def adams6pc_dpc(h, x, f, ws, ynext, niter=1, args=()):
    """6th-order Adams-Bashforth-Moulton step for complex ODEs.  Writes ``ynext``."""
    assertEq(ws.order, 6, msg="adams6pc needs a workspace of order 6")
    _pc(h, x, f, ws, ynext, niter, args, ADAMS6_LEFT, ADAMS6_PRED, ADAMS6_CORR, dpc)


def predictor_corrector(
    predictor: MultistepCoefficients,
    corrector: Optional[MultistepCoefficients] = None,
) -> Callable:
    """
    Build a predictor-corrector step from two coefficient sets.

    The returned callable has the ``adams4pc_dp`` signature
    ``(h, x, f, ws, ynext, niter=1, args=())`` and dispatches on the
    workspace dtype.  Without a corrector, ``niter`` is ignored and the
    step is purely explicit.

    Only the predictor's ``a`` weights are used, for both stages; the two
    sets must share them.
    """
    if corrector is not None:
        assertEq(predictor.order, corrector.order, msg="predictor and corrector orders differ")
        assertTrue(
            np.array_equal(predictor.a, corrector.a),
            "predictor and corrector must share the a weights",
        )
    left, pred = predictor.a, predictor.b
    corr = corrector.b if corrector is not None else None

    def step(h, x, f, ws, ynext, niter=1, args=()):
        assertEq(ws.order, predictor.order, msg="workspace order does not match coefficients")
        if corr is None:
            niter = 0
        _pc(h, x, f, ws, ynext, niter, args, left, pred, corr, ws.dtype)

    return step


# ═════════════════════════════════════════════════════════════════════
#  Fixed-step multistep driver  (multistepint)
#  Modifies y in-place.  Returns nsteps.
# ═════════════════════════════════════════════════════════════════════

def _multistepint(y, x1, x2, h, f, ws, method, stepper, niter, args, init):
    assertStep(h)
    span = x2 - x1
    nsteps = int(round(span / h))
    assertTrue(nsteps >= 0, "grid step points away from x2")
    assertTrue(
        abs(nsteps * h - span) <= _GRID_EPS * max(abs(span), abs(h)),
        f"interval [{x1}, {x2}] is not a whole number of steps of {h}",
    )
    if nsteps == 0:
        return 0
    assertTrue(
        nsteps >= ws.order - 1,
        f"{nsteps} steps are fewer than the {ws.order - 1} needed to bootstrap",
    )

    log.debug("multistepint: x1=%g x2=%g h=%g nsteps=%d order=%d", x1, x2, h, nsteps, ws.order)
    init(h, f, ws, y, stepper, x1, args)
    ynext = allocate(ws.size, ws.dtype, "multistepint buffer")
    for k in range(ws.order - 1, nsteps):
        xk = x1 + k * h
        method(h, xk, f, ws, ynext, niter, args)
        _set_next_multistep(x1 + (k + 1) * h, f, ws, ynext, args)

    y[:] = ws.states.newest
    log.debug(
        "multistepint: reached x=%g after %d accepted steps, y=%s", ws.x, ws.steps, brief(y)
    )
    return nsteps


def multistepint_dp(
    y: np.ndarray,
    x1: float,
    x2: float,
    h: float,
    f: Derivative,
    ws: MultistepWorkspace,
    method: Callable = adams4pc_dp,
    stepper: Callable = rungekutta4_dp,
    niter: int = 1,
    args: Tuple[Any, ...] = (),
) -> int:
    """
    Fixed-step multistep driver for real ODEs.

    Bootstraps ``ws`` from ``y`` at ``x1`` with ``stepper`` and advances
    with ``method`` until ``x2``.  ``x2 - x1`` must be a whole number of
    steps ``h`` (negative ``h`` integrates backwards).

    Parameters
    ----------
    y : ndarray, float64 (modified in-place)
    x1, x2 : float — integration bounds
    h : float — grid step
    f : callable(x, y, out, *args) — derivative function
    ws : MultistepWorkspace — real workspace; its order must match ``method``
    method : callable — adams4pc_dp, adams6pc_dp or a predictor_corrector step
    stepper : callable — single-step method used for the bootstrap
    niter : int — corrector iterations per step
    args : tuple — extra arguments forwarded to ``f``

    Returns
    -------
    nsteps : int — number of grid steps from x1 to x2
    """
    return _multistepint(y, x1, x2, h, f, ws, method, stepper, niter, args, init_multistep_dp)


def multistepint_dpc(
    y: np.ndarray,
    x1: float,
    x2: float,
    h: float,
    f: Derivative,
    ws: MultistepWorkspace,
    method: Callable = adams4pc_dpc,
    stepper: Callable = rungekutta4_dpc,
    niter: int = 1,
    args: Tuple[Any, ...] = (),
) -> int:
    """
    Fixed-step multistep driver for complex ODEs.

    Same interface as multistepint_dp but y is complex128.
    Returns nsteps.
    """
    return _multistepint(y, x1, x2, h, f, ws, method, stepper, niter, args, init_multistep_dpc)
