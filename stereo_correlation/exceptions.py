"""
Exception Hierarchy

Errors raised by the correlation engine. Computational degeneracies (no valid
match, empty search window, kernel off the buffer) are not errors; they show
up as invalid disparities.
"""


class StereoCorrelationError(Exception):
    """Base class for all engine errors."""


class ArgumentError(StereoCorrelationError, ValueError):
    """Malformed or mutually incompatible inputs, detected before computation."""


class FormatError(StereoCorrelationError, ValueError):
    """A conversion was asked to reconcile spatially mismatched buffers."""


class NoImplError(StereoCorrelationError, NotImplementedError):
    """An optional capability is not supported by this resource or view."""
