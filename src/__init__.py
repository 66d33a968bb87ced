"""Bridge between a control-surface automation host and NewBlue Titler Live."""

from titlerbridge.version import __version__

__all__ = ["__version__"]
