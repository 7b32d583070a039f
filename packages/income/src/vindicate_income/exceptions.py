"""Custom exceptions for income reconciliation.

The reconciliation core reports uncertainty as data (confidence, status,
notes) and does not raise for well-typed input. These exceptions cover the
two places where a hard failure is correct: records that do not have the
expected shape at the boundary, and inconsistent tuning.

Example:
    try:
        extractions = parse_extractions(payload)
    except ValidationError as e:
        logger.error("bad_extraction_payload", **e.details)
"""

from typing import Any, Optional


class VindicateError(Exception):
    """Base exception for all Vindicate income errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context.
        recoverable: Whether the error is potentially recoverable.
    """

    def __init__(
        self,
        message: str,
        *,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"recoverable={self.recoverable!r})"
        )


class ValidationError(VindicateError):
    """Raised when an upstream record does not match the extraction shape.

    Attributes:
        index: Position of the offending record in the submitted list.
        errors: Field-level errors reported by pydantic.

    Example:
        >>> raise ValidationError(
        ...     "Extraction 3 is missing payer_name",
        ...     index=3,
        ...     errors=[{"loc": ("payer_name",), "msg": "Field required"}],
        ... )
        ValidationError: Extraction 3 is missing payer_name
    """

    def __init__(
        self,
        message: str,
        *,
        index: Optional[int] = None,
        errors: Optional[list[dict[str, Any]]] = None,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = True,
    ) -> None:
        """Initialize ValidationError.

        Args:
            message: Human-readable error description.
            index: Position of the record within the submitted batch.
            errors: Field-level error dictionaries.
            details: Optional dictionary with additional context.
            recoverable: Defaults to True since the caller can re-extract.
        """
        super().__init__(message, details=details, recoverable=recoverable)
        self.index = index
        self.errors = errors or []

        if index is not None:
            self.details["index"] = index
        if self.errors:
            self.details["errors"] = self.errors


class ConfigurationError(VindicateError):
    """Raised when reconciliation settings are inconsistent.

    Attributes:
        config_key: The configuration key that is problematic.
        expected: Description of the expected value or relationship.
        actual: The actual value found.
    """

    def __init__(
        self,
        message: str,
        *,
        config_key: Optional[str] = None,
        expected: Optional[str] = None,
        actual: Optional[Any] = None,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message, details=details, recoverable=recoverable)
        self.config_key = config_key
        self.expected = expected
        self.actual = actual

        if config_key:
            self.details["config_key"] = config_key
        if expected:
            self.details["expected"] = expected
        if actual is not None:
            self.details["actual"] = actual


__all__ = [
    "VindicateError",
    "ValidationError",
    "ConfigurationError",
]
