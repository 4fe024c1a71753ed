"""Module selection: preset expansion and constraint resolution."""

from stackforge.resolver.constraints import ConstraintResolver, Resolution
from stackforge.resolver.presets import PresetManager

__all__ = [
    "ConstraintResolver",
    "PresetManager",
    "Resolution",
]
