"""libodesys sub-package: integrators and their support utilities."""

# Import modules themselves (allows: from odesys.libodesys import multistep)
from . import coefficients
from . import history
from . import logger
from . import multistep
from . import nrutils
from . import singlestep

__all__ = [
    "coefficients",
    "history",
    "logger",
    "multistep",
    "nrutils",
    "singlestep",
]
