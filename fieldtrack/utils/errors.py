"""Error handling utilities."""


class FieldTrackError(Exception):
    """Base exception for the fieldtrack backend."""
    pass


class InvalidInputError(FieldTrackError):
    """Request payload failed boundary validation."""
    pass


class InvalidTransitionError(FieldTrackError):
    """Task status change not allowed from the current status."""
    pass


class AuthorizationError(FieldTrackError):
    """Caller lacks the privileges for the operation."""
    pass


class TaskNotFoundError(FieldTrackError):
    """Task does not exist (rejected, expired or deleted)."""
    pass


class SessionNotFoundError(FieldTrackError):
    """No active time-accounting session for the user."""
    pass


class PersistenceError(FieldTrackError):
    """Store write or read failed."""
    pass


class SupabaseError(PersistenceError):
    """Supabase operation error."""
    pass


class AuthenticationError(FieldTrackError):
    """Request carries no authenticated caller."""
    pass
