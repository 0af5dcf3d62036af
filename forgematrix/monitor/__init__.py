"""Terminal rendering of check sets, packages and dev environments."""

from forgematrix.monitor.renderer import CheckRenderer

__all__ = ["CheckRenderer"]
