"""
Error taxonomy of the reporting service.

Every error carries a status code name (following the gRPC status names)
and the HTTP status it is reported with when raised before a stream is
opened. Errors raised after a stream opened terminate it with an error line
carrying the same code and message.

CHANGELOG:
- 2026-10-19: Initial creation
"""


class ReportingError(Exception):
    """Base class for all reporting errors.

    Attributes:
        code: Status code name.
        http_status: HTTP status used when the error precedes the stream.
    """

    code = "INTERNAL"
    http_status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        """Return the error as a JSON-serialisable status dict."""
        return {"code": self.code, "message": self.message}


class InvalidRequestError(ReportingError):
    """The request is malformed or violates a request invariant."""

    code = "INVALID_ARGUMENT"
    http_status = 422


class AggregationError(ReportingError):
    """A formula cannot be evaluated for the given microgrid and metric."""

    code = "FAILED_PRECONDITION"
    http_status = 422


class FormulaSyntaxError(InvalidRequestError, AggregationError):
    """The aggregation formula does not parse.

    Attributes:
        formula: The offending formula.
        position: Character offset at which parsing failed.
    """

    code = "INVALID_ARGUMENT"
    http_status = 422

    def __init__(self, formula: str, position: int, reason: str) -> None:
        super().__init__(
            f"Invalid aggregation formula {formula!r} at position {position}: {reason}"
        )
        self.formula = formula
        self.position = position


class UnknownComponentError(AggregationError):
    """A formula references a component the microgrid does not have."""

    code = "NOT_FOUND"
    http_status = 404


class UnsupportedMetricError(AggregationError):
    """A referenced component does not report the aggregated metric."""

    code = "FAILED_PRECONDITION"
    http_status = 422
