"""Encrypted and signed sensor payload delivery for IoT devices."""

from .errors import DeviceLinkError

__version__ = "0.3.0"

__all__ = ["DeviceLinkError", "__version__"]
