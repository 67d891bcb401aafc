"""
Exception types for rigcal.

Configuration problems are fatal and raised before detection starts.
Solve failures are caught by the session driver and reported.
A pattern missing from an image is not an error - it yields an empty
PointCorrespondences.
"""


class CalibrationError(Exception):
    """Base class for all rigcal errors."""


class InvalidConfiguration(CalibrationError, ValueError):
    """Settings that cannot produce a valid calibration run."""


class ResourceUnavailable(CalibrationError, OSError):
    """An image, settings file, marker map or camera could not be opened."""


class SolveFailure(CalibrationError, RuntimeError):
    """The numeric solver could not produce a usable result."""
