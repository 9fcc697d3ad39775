"""Version information for lqsolve."""

__version__ = "0.1.0"
