"""
Decision engine.

Client-side feature-flag and experimentation decisions: deterministic
bucketing, segmentation, whitelisting, mutually exclusive groups and
sticky assignments, evaluated locally against a settings snapshot.
"""

from .client import DecisionEngine
from .models.builder import build_settings
from .models.context import Context
from .models.decision import FlagResult

__all__ = ["DecisionEngine", "FlagResult", "Context", "build_settings"]
