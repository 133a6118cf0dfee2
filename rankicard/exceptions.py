"""
Standardized exception hierarchy for rankicard
Provides rich context, consistent logging, and user-friendly error messages
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


class RankicardError(Exception):
    """
    Base exception for all rankicard errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - User-friendly messages
    - Structured context
    - Automatic logging

    Example:
        raise RankicardError(
            message="Failed to save progress",
            user_id="user-123",
            operation="add_xp",
            context={"amount": 50}
        )
    """

    log_level: int = logging.ERROR

    def __init__(
        self,
        message: str,
        user_id: Optional[str] = None,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.request_id = request_id or str(uuid4())
        self.operation = operation
        self.context = context or {}
        self.cause = cause
        self.user_message = user_message or "An error occurred. Please try again."
        self.timestamp = datetime.now(timezone.utc)

        # Auto-log on creation
        self._log_error()

    def _log_error(self) -> None:
        """Log error with full context"""
        log_data = {
            "error_type": self.__class__.__name__,
            "error_message": self.message,  # Avoid conflict with logging's 'message' field
            "request_id": self.request_id,
            "user_id": self.user_id,
            "operation": self.operation,
            "error_context": self.context,
            "timestamp": self.timestamp.isoformat()
        }

        if self.cause:
            log_data["cause"] = str(self.cause)
            logger.log(
                self.log_level,
                f"{self.__class__.__name__}: {self.message}",
                extra=log_data,
                exc_info=self.cause
            )
        else:
            logger.log(self.log_level, f"{self.__class__.__name__}: {self.message}", extra=log_data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for API responses"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "user_message": self.user_message,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Validation Rejections (recovered locally, nothing mutated)
# ==========================================

class ValidationError(RankicardError):
    """
    Raised when a request is rejected by a game rule

    Examples:
    - Negative XP or gold amount
    - Unknown study session length
    - Purchase the user can't afford

    Example:
        raise ValidationError(
            message="Amount must be positive",
            field="amount",
            value=-5,
            user_id="user-123"
        )
    """

    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        user_message: Optional[str] = None,
        **kwargs
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=message,
            user_message=user_message or (f"Invalid {field}: {message}" if field else message),
            context={"field": field, "value": value},
            **kwargs
        )


class InsufficientGoldError(ValidationError):
    """Spending more gold than the user holds"""

    def __init__(self, balance: int, required: int, **kwargs):
        self.balance = balance
        self.required = required
        super().__init__(
            message=f"Insufficient gold: has {balance}, needs {required}",
            field="gold",
            value=required,
            user_message="Not enough gold!",
            **kwargs
        )


class LevelRequirementError(ValidationError):
    """User level is below an item's minimum level"""

    def __init__(self, level: int, min_level: int, **kwargs):
        self.level = level
        self.min_level = min_level
        super().__init__(
            message=f"Level {level} is below required level {min_level}",
            field="level",
            value=level,
            user_message=f"Requires level {min_level}",
            **kwargs
        )


class StudyCapExceededError(ValidationError):
    """Study XP grant would exceed the daily cap"""

    def __init__(self, today_xp: int, amount: int, cap: int, **kwargs):
        self.today_xp = today_xp
        self.amount = amount
        self.cap = cap
        super().__init__(
            message=f"Study XP {today_xp} + {amount} exceeds daily cap {cap}",
            field="study_xp",
            value=amount,
            user_message="Daily study limit reached!",
            **kwargs
        )


# ==========================================
# Database Errors
# ==========================================

class DatabaseError(RankicardError):
    """
    Base class for database-related errors
    """
    pass


class ConnectionError(DatabaseError):
    """Database connection failed"""

    def __init__(self, message: str = "Database connection failed", **kwargs):
        super().__init__(
            message=message,
            user_message="We're having trouble connecting to the database. Please try again in a moment.",
            **kwargs
        )


class QueryError(DatabaseError):
    """Database query execution failed"""

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        **kwargs
    ):
        self.query = query
        super().__init__(
            message=message,
            user_message="We encountered an issue saving your progress. Please try again.",
            context={"query": query},
            **kwargs
        )


class ConcurrencyConflictError(DatabaseError):
    """Conditional update lost against a concurrent writer"""

    log_level = logging.WARNING

    def __init__(
        self,
        message: str = "Progress was modified concurrently",
        expected_version: Optional[int] = None,
        **kwargs
    ):
        self.expected_version = expected_version
        super().__init__(
            message=message,
            user_message="Your progress changed while saving. Please try again.",
            context={"expected_version": expected_version},
            **kwargs
        )


# ==========================================
# External API Errors
# ==========================================

class ExternalAPIError(RankicardError):
    """
    Base class for external API failures
    """

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        status_code: Optional[int] = None,
        user_message: Optional[str] = None,
        **kwargs
    ):
        self.service = service
        self.status_code = status_code
        super().__init__(
            message=message,
            user_message=user_message or (
                f"We're having trouble connecting to {service or 'an external service'}. Please try again later."
            ),
            context={"service": service, "status_code": status_code},
            **kwargs
        )


class NetworkFailureError(ExternalAPIError):
    """Provider unreachable, timed out or answered with a server error (retryable)"""
    pass


class StaleCredentialError(ExternalAPIError):
    """Access token expired and could not be refreshed"""

    log_level = logging.WARNING

    def __init__(self, message: str = "Access token expired", **kwargs):
        kwargs.setdefault(
            "user_message",
            f"Your {kwargs.get('service') or 'account'} connection expired. Please reconnect."
        )
        super().__init__(message=message, **kwargs)


class ProviderNotConnectedError(StaleCredentialError):
    """User never linked the provider (no access and no refresh token)"""

    def __init__(self, message: str = "Provider not connected", **kwargs):
        kwargs.setdefault("user_message", f"Connect {kwargs.get('service') or 'the provider'} first.")
        super().__init__(message=message, **kwargs)


# ==========================================
# Helper Functions
# ==========================================

def wrap_external_exception(
    error: Exception,
    operation: str,
    user_id: Optional[str] = None,
    service: Optional[str] = None
) -> RankicardError:
    """
    Wrap external exceptions (psycopg, httpx, etc.) into our exception hierarchy

    Args:
        error: Original exception
        operation: What operation was being performed
        user_id: User ID if applicable
        service: External service name for HTTP errors

    Returns:
        Appropriate RankicardError subclass

    Example:
        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            raise wrap_external_exception(e, operation="fetch_activities", service="Strava")
    """
    # Import here to avoid circular dependencies
    import httpx
    import psycopg

    # Database errors
    if isinstance(error, psycopg.OperationalError):
        return ConnectionError(
            message=f"Database connection failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            cause=error
        )
    elif isinstance(error, psycopg.Error):
        return QueryError(
            message=f"Database query failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            cause=error
        )

    # HTTP errors
    elif isinstance(error, httpx.HTTPStatusError):
        status_code = error.response.status_code
        if status_code == 401:
            return StaleCredentialError(
                message=f"{service or 'API'} rejected the access token",
                service=service,
                status_code=status_code,
                user_id=user_id,
                operation=operation,
                cause=error
            )
        return NetworkFailureError(
            message=f"API returned error: {status_code}",
            service=service,
            status_code=status_code,
            user_id=user_id,
            operation=operation,
            cause=error
        )
    elif isinstance(error, httpx.TransportError):
        # Covers timeouts, connect and read errors
        return NetworkFailureError(
            message=f"API request failed: {type(error).__name__}: {str(error)}",
            service=service,
            user_id=user_id,
            operation=operation,
            cause=error
        )

    # Generic fallback
    else:
        return RankicardError(
            message=f"{operation} failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            cause=error
        )
