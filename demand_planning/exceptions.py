class DemandPlanningError(Exception):
    """Base exception for Demand Planning Engine errors."""

    def __init__(self, message=None, code=None, details=None):
        """Initialize the exception.

        Args:
            message: Error message
            code: Error code
            details: Additional error details
        """
        self.message = message or "An error occurred in the Demand Planning Engine"
        self.code = code
        self.details = details
        super().__init__(self.message)

    def __str__(self):
        """String representation of the error."""
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message

    def to_dict(self):
        """Convert the exception to a dictionary."""
        error_dict = {
            'error': self.__class__.__name__,
            'message': self.message,
        }

        if self.code:
            error_dict['code'] = self.code

        if self.details:
            error_dict['details'] = self.details

        return error_dict


class DatabaseError(DemandPlanningError):
    """Exception raised for database-related errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Database error"
        super().__init__(message, code, details)


class ValidationError(DemandPlanningError):
    """Exception raised for input validation errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Validation error"
        super().__init__(message, code, details)


class NotFoundError(DemandPlanningError):
    """Exception raised when a requested record is not found."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Resource not found"
        super().__init__(message, code, details)


class ForecastError(DemandPlanningError):
    """Exception raised for forecasting-related errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Forecasting error"
        super().__init__(message, code, details)


class InsufficientDataError(ForecastError):
    """Exception raised when a demand series is too short to forecast."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Insufficient demand history"
        super().__init__(message, code, details)


class AccuracyError(DemandPlanningError):
    """Exception raised for forecast accuracy errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Forecast accuracy error"
        super().__init__(message, code, details)


class NoForecastDataError(AccuracyError):
    """Exception raised when no day in a period carries both actual and forecast."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "No forecast data available for accuracy calculation"
        super().__init__(message, code, details)


class SafetyStockError(DemandPlanningError):
    """Exception raised for safety stock calculation errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Safety stock calculation error"
        super().__init__(message, code, details)


class ReplenishmentError(DemandPlanningError):
    """Exception raised for replenishment recommendation errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Replenishment recommendation error"
        super().__init__(message, code, details)


class BatchProcessError(DemandPlanningError):
    """Exception raised for batch process errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Batch process error"
        super().__init__(message, code, details)
