"""
Coefficient sets for linear multistep methods.

A method of order ``m`` is described by two arrays ``a[0..m]`` and
``b[0..m]``::

    a[0]*y[k+1] + a[1]*y[k] + ... + a[m]*y[k+1-m]
        = h * (b[0]*y'[k+1] + b[1]*y'[k] + ... + b[m]*y'[k+1-m])

``a[0]`` is normalised to 1 and never read.  Predictor (explicit) sets
have ``b[0] == 0``; corrector (implicit) sets do not.

The ready-made Adams tables are kept as literal rationals.  The
``adams_*`` generators build the same layout for any number of steps
from exact rational arithmetic, so ``adams_bashforth(4)`` equals
``ADAMS4_PRED`` bit for bit.

References
----------
A. Iserles, A first course in the numerical analysis of differential
equations, 2nd ed., ch. 2.
E. Hairer, S.P. Norsett, G. Wanner, Solving ordinary differential
equations I, sec. III.1.
"""

from dataclasses import dataclass
from fractions import Fraction
from math import factorial
from typing import List

import numpy as np

from .nrutils import assertEq, assertTrue, dp


def _table(values) -> np.ndarray:
    arr = np.array(values, dtype=dp)
    arr.setflags(write=False)
    return arr


# ─── Adams 4th order (4 steps) ───────────────────────────────────────
ADAMS4_LEFT = _table([1.0, -1.0, 0.0, 0.0, 0.0])
ADAMS4_PRED = _table([0.0, 55.0 / 24, -59.0 / 24, 37.0 / 24, -9.0 / 24])
ADAMS4_CORR = _table([9.0 / 24, 19.0 / 24, -5.0 / 24, 1.0 / 24, 0.0])

# ─── Adams 6th order (6 steps) ───────────────────────────────────────
ADAMS6_LEFT = _table([1.0, -1.0, 0.0, 0.0, 0.0, 0.0, 0.0])
ADAMS6_PRED = _table([
    0.0, 4277.0 / 1440, -7923.0 / 1440, 9982.0 / 1440,
    -7298.0 / 1440, 2877.0 / 1440, -475.0 / 1440,
])
ADAMS6_CORR = _table([
    475.0 / 1440, 1427.0 / 1440, -798.0 / 1440, 482.0 / 1440,
    -173.0 / 1440, 27.0 / 1440, 0.0,
])


# ═════════════════════════════════════════════════════════════════════
#  Exact Adams coefficients
# ═════════════════════════════════════════════════════════════════════

def _polymul_linear(p: List[Fraction], c: int) -> List[Fraction]:
    """Multiply polynomial *p* (ascending powers) by ``(u + c)``."""
    out = [Fraction(0)] * (len(p) + 1)
    for k, pk in enumerate(p):
        out[k] += c * pk
        out[k + 1] += pk
    return out


def _integrate_unit(p: List[Fraction]) -> Fraction:
    """Integral of polynomial *p* over ``u`` in [0, 1]."""
    return sum((pk / (k + 1) for k, pk in enumerate(p)), Fraction(0))


def _adams_weights(npoints: int, shift: int) -> List[Fraction]:
    """Integrate the Lagrange basis on the nodes ``shift - k`` over one step.

    ``u`` measures the step in units of ``h`` from ``x_k``; node ``k``
    sits at ``u = shift - k``.  Weight ``j`` is

        (-1)^j / (j! (N-1-j)!)  *  int_0^1  prod_{k != j} (u + k - shift) du
    """
    weights = []
    for j in range(npoints):
        poly = [Fraction(1)]
        for k in range(npoints):
            if k != j:
                poly = _polymul_linear(poly, k - shift)
        sign = -1 if j % 2 else 1
        norm = factorial(j) * factorial(npoints - 1 - j)
        weights.append(sign * _integrate_unit(poly) / norm)
    return weights


def adams_left(m: int) -> np.ndarray:
    """Left-hand weights ``[1, -1, 0, ..., 0]`` of length ``m + 1``."""
    assertTrue(int(m) >= 1, f"multistep order must be positive, got {m}")
    a = np.zeros(int(m) + 1, dtype=dp)
    a[0], a[1] = 1.0, -1.0
    return a


def adams_bashforth(m: int) -> np.ndarray:
    """Explicit m-step Adams-Bashforth weights ``b`` (``b[0] = 0``)."""
    assertTrue(int(m) >= 1, f"multistep order must be positive, got {m}")
    m = int(m)
    b = np.zeros(m + 1, dtype=dp)
    b[1:] = [float(w) for w in _adams_weights(m, 0)]
    return b


def adams_moulton(m: int) -> np.ndarray:
    """Implicit (m-1)-step Adams-Moulton weights laid out for order ``m``.

    ``b[0]`` multiplies the derivative at the new point and ``b[m]`` is
    zero, which is the layout of ``ADAMS4_CORR`` / ``ADAMS6_CORR``.  For
    ``m == 1`` this is backward Euler, ``b = [1, 0]``.
    """
    assertTrue(int(m) >= 1, f"multistep order must be positive, got {m}")
    m = int(m)
    b = np.zeros(m + 1, dtype=dp)
    b[:m] = [float(w) for w in _adams_weights(m, 1)]
    return b


# ═════════════════════════════════════════════════════════════════════
#  Coefficient set container
# ═════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class MultistepCoefficients:
    """Weights ``a`` (states) and ``b`` (derivatives) of one method."""

    a: np.ndarray
    b: np.ndarray

    def __post_init__(self):
        a = np.ascontiguousarray(self.a, dtype=dp)
        b = np.ascontiguousarray(self.b, dtype=dp)
        assertTrue(a.ndim == 1 and a.size >= 2, "coefficient a must be 1-D with at least 2 entries")
        assertEq(a.shape, b.shape, msg="coefficients a and b must have the same length")
        object.__setattr__(self, "a", a)
        object.__setattr__(self, "b", b)

    @property
    def order(self) -> int:
        """Number of previous steps the method consumes."""
        return self.a.size - 1

    @property
    def explicit(self) -> bool:
        return self.b[0] == 0.0

    @classmethod
    def adams_predictor(cls, m: int) -> "MultistepCoefficients":
        return cls(adams_left(m), adams_bashforth(m))

    @classmethod
    def adams_corrector(cls, m: int) -> "MultistepCoefficients":
        return cls(adams_left(m), adams_moulton(m))


ADAMS4_PREDICTOR = MultistepCoefficients(ADAMS4_LEFT, ADAMS4_PRED)
ADAMS4_CORRECTOR = MultistepCoefficients(ADAMS4_LEFT, ADAMS4_CORR)
ADAMS6_PREDICTOR = MultistepCoefficients(ADAMS6_LEFT, ADAMS6_PRED)
ADAMS6_CORRECTOR = MultistepCoefficients(ADAMS6_LEFT, ADAMS6_CORR)
