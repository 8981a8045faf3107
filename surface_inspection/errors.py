"""Exceptions raised by the inspection engine."""


class InspectionError(Exception):
    """Base class for surface inspection failures."""


class DecodeError(InspectionError, ValueError):
    """The payload is empty, malformed, or not an image."""


class UnsupportedFormatError(InspectionError, ValueError):
    """The image decoded but its pixels cannot be mapped to RGBA."""
