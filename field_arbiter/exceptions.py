"""
Exception hierarchy for the field arbiter.

Input validation and numeric failures are raised to the caller.
Persistence failures (StorageError, see field_arbiter.storage.base) are
logged by the owning component and never fail an in-memory operation.
"""


class ArbiterError(Exception):
    """Base exception for all field arbiter errors."""

    pass


class ResolutionError(ArbiterError):
    """Raised when a strategy cannot produce a resolution."""

    pass


class EmptyCandidateSetError(ResolutionError, ValueError):
    """Raised when a conflict context carries no candidate values."""

    def __init__(self, field_name: str = ""):
        self.field_name = field_name
        target = f" for field {field_name!r}" if field_name else ""
        super().__init__(f"no conflicting values provided{target}")


class NoValidNumericValuesError(ResolutionError):
    """Raised when no candidate can be parsed as a number."""

    def __init__(self) -> None:
        super().__init__("no valid numeric values found for averaging")


class ZeroConfidenceWeightError(ResolutionError):
    """Raised when numeric candidates carry a total confidence of zero."""

    def __init__(self) -> None:
        super().__init__("total confidence weight is zero")


class InvalidCorrectionError(ArbiterError, ValueError):
    """Raised when a submitted correction is missing required fields."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"invalid correction: {message}")


class PatternNotFoundError(ArbiterError, KeyError):
    """Raised when a learning pattern id is unknown."""

    def __init__(self, pattern_id: str):
        self.pattern_id = pattern_id
        super().__init__(f"pattern not found: {pattern_id}")

    def __str__(self) -> str:
        return f"pattern not found: {self.pattern_id}"


class UnserializableValueError(ResolutionError, ValueError):
    """Raised when a candidate value or context metadata cannot be stored as JSON."""

    def __init__(self, field_name: str, reason: str):
        self.field_name = field_name
        super().__init__(f"values for field {field_name!r} are not JSON-serializable: {reason}")
