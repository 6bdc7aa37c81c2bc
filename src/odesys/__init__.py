"""
odesys: fixed-step integration of ordinary differential equation systems.

This package provides explicit Runge-Kutta steppers (orders 2, 4 and 5)
and linear multistep predictor-corrector schemes (general coefficients,
with ready-made 4th- and 6th-order Adams-Bashforth-Moulton sets) for
real and complex systems ``y' = f(x, y)``.
"""

# Import main sub-packages
from . import libodesys

__all__ = [
    "libodesys",
]
