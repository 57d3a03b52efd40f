"""
Exception hierarchy for steward.

Every error raised by the lifecycle, policy and session components derives from
StewardError. The action layer maps each branch to a caller-facing result code.
"""


class StewardError(Exception):
    """Base class for all steward errors."""

    retryable = False

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    default_message = "An error occurred."


class ConfigurationError(StewardError):
    """Raised when required configuration is missing or invalid."""

    default_message = "Invalid configuration."


# Validation errors: surfaced verbatim, never retried automatically.

class ValidationError(StewardError):
    """Base class for input validation failures."""

    default_message = "The request is invalid."


class NameMismatchError(ValidationError):
    """Typed organization name does not match the organization name."""

    default_message = "The organization name you typed does not match."


class PhraseMismatchError(ValidationError):
    """Typed confirmation phrase does not match the required phrase."""

    default_message = "The confirmation phrase you typed does not match."


class InvalidTransferTargetError(ValidationError):
    """The proposed new owner is not an admin or manager of the organization."""

    default_message = "Ownership can only be transferred to an admin or manager of this organization."


class InvalidRoleChangeError(ValidationError):
    """A role change that the membership guard refuses regardless of policy."""

    default_message = "This role change is not allowed."


# Authorization errors: deliberately generic.

class NotPermittedError(StewardError):
    """The caller is not permitted to perform the action."""

    default_message = "You are not permitted to perform this action."


# State conflicts: safe to retry after the caller refetches.

class StateConflictError(StewardError):
    """Base class for errors caused by a stale or incompatible state."""

    retryable = True
    default_message = "The organization has changed. Refresh and try again."


class StaleStateError(StateConflictError):
    """A compare-and-set guard observed a different version than expected."""

    default_message = "This record was modified by another request. Refresh and try again."


class InvalidStateTransitionError(StateConflictError):
    """The requested transition is not valid from the current state."""

    default_message = "This action is not available in the current state. Refresh and try again."


class TransferAlreadyPendingError(StateConflictError):
    """An ownership transfer is already proposed for this organization."""

    default_message = "There is already a pending ownership transfer for this organization."


class DeletionPendingError(StateConflictError):
    """A deletion request is in progress for this organization."""

    default_message = "This organization has a deletion request in progress."


class GracePeriodExpiredError(StateConflictError):
    """The soft-deletion grace period has elapsed."""

    default_message = "The grace period for restoring this organization has expired."


class TransferExpiredError(StateConflictError):
    """The ownership transfer request has expired."""

    default_message = "This ownership transfer request has expired."


class TerminalStateError(StateConflictError):
    """The record is in a terminal state and accepts no further transitions."""

    retryable = False
    default_message = "This organization has been permanently deleted."


# Dependent services.

class DependentServiceError(StewardError):
    """Base class for failures of an external collaborator."""

    default_message = "A dependent service failed."


class ExportFailedError(DependentServiceError):
    """The data export did not produce an artifact."""

    default_message = (
        "The data export failed. Retry the export or proceed without it; "
        "data will be unrecoverable after permanent deletion."
    )


class ExportTimeoutError(ExportFailedError):
    """The data export did not finish within its timeout."""

    default_message = (
        "The data export timed out. Retry the export or proceed without it; "
        "data will be unrecoverable after permanent deletion."
    )


class SessionStoreError(DependentServiceError):
    """Transport failure talking to the underlying session store."""

    retryable = True
    default_message = "The session store is unavailable. Try again."


# Lookups.

class NotFoundError(StewardError):
    """Base class for missing records."""

    default_message = "The requested record was not found."


class OrganizationNotFoundError(NotFoundError):
    default_message = "Organization not found."


class SessionNotFoundError(NotFoundError):
    default_message = "Session not found."


class TransferNotFoundError(NotFoundError):
    default_message = "Ownership transfer request not found."
