"""
Custom Exception Hierarchy - Domain-specific error types

Provides clear, typed exceptions for the failure modes of the weighting
and voting-session engine. All custom exceptions inherit from PollwiseError.

Expected edge cases (no groups, no votes, cache misses, empty batches) are
never exceptions: they resolve to neutral defaults or empty results.
Only persistence and transport failures are raised.
"""

from typing import Optional, Dict, Any


class PollwiseError(Exception):
    """Base exception for all Pollwise errors

    All custom exceptions inherit from this, enabling:
    - Catch all Pollwise errors with single except clause
    - Distinguish our errors from library errors
    - Add common attributes (context)
    - Check if error is retryable via is_retryable property
    """

    _retryable: bool = False

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Check if this error represents a transient failure that should be retried."""
        return self._retryable

    def __str__(self):
        base_msg = super().__str__()
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{base_msg} (context: {context_str})"
        return base_msg


# ========== Database Errors ==========


class DatabaseError(PollwiseError):
    """Weight cache storage failures

    Examples:
    - Query errors
    - Transaction rollbacks
    - Constraint violations
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        poll_id: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.operation = operation
        self.poll_id = poll_id
        self.original_error = original_error

        context = {}
        if operation:
            context['operation'] = operation
        if poll_id:
            context['poll_id'] = poll_id
        if original_error:
            context['original_error'] = str(original_error)

        super().__init__(message, context)


class DatabaseConnectionError(DatabaseError):
    """Failed to establish or maintain database connection"""
    _retryable = True


# ========== Batch Fetch Errors ==========


class BatchFetchError(PollwiseError):
    """Fetching the next statement batch failed (network or store fault)

    An empty batch is NOT an error - it means the poll has no more statements.
    """

    _retryable = True

    def __init__(
        self,
        message: str,
        poll_id: Optional[str] = None,
        batch_number: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ):
        self.poll_id = poll_id
        self.batch_number = batch_number
        self.original_error = original_error

        context = {}
        if poll_id:
            context['poll_id'] = poll_id
        if batch_number is not None:
            context['batch_number'] = batch_number
        if original_error:
            context['original_error'] = str(original_error)

        super().__init__(message, context)


# ========== Validation Errors ==========


class ValidationError(PollwiseError):
    """Data validation failures

    Examples:
    - Vote value outside {-1, 0, 1}
    - Stored weight row violating its mode invariants
    """

    def __init__(self, message: str, field: Optional[str] = None, value: Optional[Any] = None):
        self.field = field
        self.value = value

        context = {}
        if field:
            context['field'] = field
        if value is not None:
            context['value'] = str(value)

        super().__init__(message, context)
