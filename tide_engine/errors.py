"""
Error taxonomy for the tide prediction engine.

Every failure the engine can produce is one of these types. None of them is
retried automatically and none is ever replaced by a default/mock result.
"""


class TideEngineError(Exception):
    """Base class for all tide engine errors."""


class InvalidCoordinateError(TideEngineError, ValueError):
    """Latitude or longitude outside the valid range."""

    def __init__(self, latitude: float, longitude: float):
        self.latitude = latitude
        self.longitude = longitude
        super().__init__(
            f"Invalid coordinates ({latitude}, {longitude}): latitude must be "
            f"between -90 and 90 and longitude between -180 and 180"
        )


class NotInitializedError(TideEngineError, RuntimeError):
    """A calculation was requested before initialize() succeeded."""


class InitializationError(TideEngineError):
    """Harmonic or station reference data is missing or malformed."""


class SynthesisError(TideEngineError, ArithmeticError):
    """A computed amplitude or level was NaN or infinite."""


class CacheCorruptionError(TideEngineError, ValueError):
    """A persisted cache record failed shape validation."""
