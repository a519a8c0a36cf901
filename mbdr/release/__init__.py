"""Vesicle release detection from sensor activation traces."""
from . import activation, carriers, engine, events, policies
from .engine import ReleaseReport, detect_releases, evaluate_release
from .events import ActivationEvent, ReleaseEvent

__all__ = [
    "activation",
    "carriers",
    "engine",
    "events",
    "policies",
    "ActivationEvent",
    "ReleaseEvent",
    "ReleaseReport",
    "detect_releases",
    "evaluate_release",
]
