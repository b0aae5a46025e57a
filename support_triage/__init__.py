"""Customer-support triage and response pipeline."""

from .__version__ import __version__

__all__ = ["__version__"]
