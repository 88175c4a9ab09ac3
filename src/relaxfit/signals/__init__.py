"""Forward signal equations.

``signal(model, sequence, params)`` dispatches on the pair of sequence kind
and tissue model kind. Equations are registered with
:func:`register_signal`; new pairs are added by registering another
function, without touching existing ones.
"""

from ._registry import register_signal, registered_pairs, signal, synthesize
from . import exchange, single
from .exchange import Pools, pools_from
from .single import ellipse_parameters

__all__ = [
    "Pools",
    "ellipse_parameters",
    "exchange",
    "pools_from",
    "register_signal",
    "registered_pairs",
    "signal",
    "single",
    "synthesize",
]
