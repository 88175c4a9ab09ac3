from .t1 import Despot1

__all__ = ["Despot1"]
