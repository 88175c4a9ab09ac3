from .config import Despot1Config, Strategy, load_config
from .errors import ContractViolation, FitDivergedError, NumericalDomainError, RelaxfitError
from .models import Despot1
from .sequences import (
    AFI,
    IRSPGR,
    MPRAGE,
    MultiEcho,
    SequenceKind,
    SPGRFinite,
    SPGRSimple,
    SSFPEllipse,
    SSFPFinite,
    SSFPSimple,
)
from .signals import register_signal, signal, synthesize
from .tissue import SINGLE_COMPONENT, THREE_COMPONENT, TWO_COMPONENT, ModelKind, TissueModel, get_model

__all__ = [
    "__version__",
    "AFI",
    "ContractViolation",
    "Despot1",
    "Despot1Config",
    "FitDivergedError",
    "IRSPGR",
    "load_config",
    "get_model",
    "ModelKind",
    "MPRAGE",
    "MultiEcho",
    "NumericalDomainError",
    "register_signal",
    "RelaxfitError",
    "SequenceKind",
    "signal",
    "SINGLE_COMPONENT",
    "SPGRFinite",
    "SPGRSimple",
    "SSFPEllipse",
    "SSFPFinite",
    "SSFPSimple",
    "Strategy",
    "synthesize",
    "THREE_COMPONENT",
    "TissueModel",
    "TWO_COMPONENT",
]

__version__ = "0.1.0"
