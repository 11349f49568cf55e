class PlanningError(Exception):
    """Base exception for Demand Planning errors.

    Subclasses set ``default_message`` for calls without a message and
    ``retryable`` when a caller may repeat the same request unchanged.
    """

    default_message = "An error occurred in the Demand Planning engine"
    retryable = False

    def __init__(self, message=None, code=None, details=None):
        self.message = message or self.default_message
        self.code = code
        self.details = details
        super().__init__(self.message)

    def __str__(self):
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message

    def to_dict(self):
        """Error payload for API responses and logs."""
        error_dict = {
            'error': self.__class__.__name__,
            'message': self.message,
            'retryable': self.retryable,
        }
        if self.code:
            error_dict['code'] = self.code
        if self.details:
            error_dict['details'] = self.details
        return error_dict


class ConfigError(PlanningError):
    """The network definition or settings file is unusable."""

    default_message = "Configuration error"


class DatabaseError(PlanningError):
    """Planner settings or forecasts could not be stored."""

    default_message = "Database error"


class ValidationError(PlanningError):
    """A caller supplied a value the engine cannot plan with."""

    default_message = "Validation error"


class DataUnavailableError(PlanningError):
    """An upstream source cannot be read.

    The engine keeps no state between calls, so callers may retry.
    """

    default_message = "Upstream data unavailable"
    retryable = True


class SourceSchemaError(DataUnavailableError):
    """An upstream payload is missing expected columns or has the wrong shape."""

    default_message = "Upstream data does not match the expected schema"
    retryable = False


class ForecastError(DatabaseError):
    """Channel forecast settings, weights or materialized rows failed to save."""

    default_message = "Forecasting error"


class RoutingError(PlanningError):
    """Demand cannot be attributed to a fulfilment location."""

    default_message = "Routing error"


class CalculationError(PlanningError):
    """A coverage or run-rate calculation received unusable numbers."""

    default_message = "Calculation error"


class NotFoundError(PlanningError):
    """A named location, channel or SKU is not in the network."""

    default_message = "Resource not found"
