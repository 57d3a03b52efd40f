"""
Server actions consumed by the dashboard.

Each action authenticates the caller, delegates to the lifecycle components, and maps
every outcome to an ActionResult. Validation messages are passed through verbatim,
authorization failures stay generic, and anything unexpected is logged and reported
as an opaque internal error.
"""
import dataclasses
import functools
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from steward.audit import AuditLog
from steward.config import StewardConfig
from steward.exceptions import (
    DependentServiceError,
    ExportFailedError,
    NotFoundError,
    NotPermittedError,
    StateConflictError,
    ValidationError,
)
from steward.export import DataExportJob, normalize_categories
from steward.lifecycle import DeletionLifecycleManager, OwnershipTransferCoordinator
from steward.models import AuditAction, ExportFormat, ModelValidationError, Organization, Session
from steward.models.versioned_model import VersionedModel
from steward.policy import Action, require
from steward.repositories import MembershipRepository, OrganizationRepository
from steward.sessions import SessionRegistry
from . import results
from .results import ActionResult

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('name', 'description')


def to_data(value: Any) -> Any:
    """Convert domain objects into plain, JSON-friendly data."""
    if isinstance(value, VersionedModel):
        return value.as_dict(convert_datetime_to_iso_string=True)
    if isinstance(value, Session):
        return value.as_dict()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_data(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, dict):
        return {k: to_data(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_data(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def error_result(error: Exception, action: str) -> ActionResult:
    """Map an exception raised by a component to a failed ActionResult."""
    if isinstance(error, ModelValidationError):
        logger.debug("%s rejected: %s", action, error)
        return ActionResult.fail(results.VALIDATION_ERROR, str(error))
    if isinstance(error, ValidationError):
        logger.debug("%s rejected: %s", action, error.message)
        return ActionResult.fail(results.VALIDATION_ERROR, error.message)
    if isinstance(error, NotPermittedError):
        return ActionResult.fail(results.FORBIDDEN, NotPermittedError.default_message)
    if isinstance(error, NotFoundError):
        return ActionResult.fail(results.NOT_FOUND, error.message)
    if isinstance(error, StateConflictError):
        logger.info("%s conflicted: %s", action, error.message)
        return ActionResult.fail(results.CONFLICT, error.message, retryable=error.retryable)
    if isinstance(error, ExportFailedError):
        return ActionResult.fail(results.EXPORT_FAILED, error.message, retryable=True)
    if isinstance(error, DependentServiceError):
        return ActionResult.fail(results.SERVICE_UNAVAILABLE, error.message, retryable=error.retryable)
    logger.exception("Unexpected error in %s", action)
    return ActionResult.fail(results.INTERNAL_ERROR, "An unexpected error occurred. Please try again later.")


def server_action(func):
    """Require an authenticated actor and turn the outcome into an ActionResult."""

    @functools.wraps(func)
    def wrapper(self, actor_id, *args, **kwargs):
        if not actor_id:
            return ActionResult.fail(results.UNAUTHORIZED, "User not authenticated")
        try:
            return ActionResult.ok(to_data(func(self, actor_id, *args, **kwargs)))
        except Exception as e:  # pylint: disable=W0718
            return error_result(e, func.__name__)

    return wrapper


class OrganizationActions:
    def __init__(
        self,
        organizations: OrganizationRepository,
        memberships: MembershipRepository,
        deletion: DeletionLifecycleManager,
        transfers: OwnershipTransferCoordinator,
        sessions: SessionRegistry,
        audit_log: AuditLog,
        export_job: Optional[DataExportJob] = None,
        config: Optional[StewardConfig] = None,
    ):
        self.organizations = organizations
        self.memberships = memberships
        self.deletion = deletion
        self.transfers = transfers
        self.sessions = sessions
        self.audit_log = audit_log
        self.export_job = export_job
        self.config = config or StewardConfig()

    # Organization profile

    @server_action
    def update_organization_details(self, actor_id: str, organization_id: str, data: Dict[str, Any]) -> Organization:
        unknown = sorted(set(data) - set(EDITABLE_FIELDS))
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(unknown)}.")
        organization = self.organizations.get_by_id(organization_id)
        if organization is None or not self.deletion.visible_to(organization, actor_id):
            raise NotFoundError("Organization not found.")
        require(self.memberships.get_role(organization_id, actor_id), Action.edit_organization_profile)

        changes = {k: v for k, v in data.items() if getattr(organization, k) != v}
        for key, value in changes.items():
            setattr(organization, key, value)
        if changes:
            self.organizations.commit(
                self.organizations.stage_save(organization, changed_by_id=actor_id),
                self.audit_log.stage(AuditAction.organization_updated, organization_id, actor_id,
                                     metadata={'fields': sorted(changes)}),
            )
        return organization

    # Deletion

    @server_action
    def confirm_organization_name(self, actor_id: str, organization_id: str, typed_name: str):
        return self.deletion.confirm_name(organization_id, actor_id, typed_name)

    @server_action
    def confirm_deletion_phrase(self, actor_id: str, organization_id: str, typed_phrase: str):
        return self.deletion.confirm_phrase(organization_id, actor_id, typed_phrase)

    @server_action
    def initiate_organization_deletion(
        self,
        actor_id: str,
        organization_id: str,
        deletion_type: str,
        data_export_requested: bool = False,
        export_format: Optional[str] = None,
        reason: Optional[str] = None,
    ):
        return self.deletion.finalize(organization_id, actor_id, deletion_type,
                                      data_export_requested=data_export_requested,
                                      export_format=export_format, reason=reason)

    @server_action
    def restore_organization(self, actor_id: str, organization_id: str):
        return self.deletion.restore(organization_id, actor_id)

    @server_action
    def force_permanent_deletion(self, actor_id: str, organization_id: str, reason: Optional[str] = None):
        return self.deletion.force_purge(organization_id, actor_id, reason=reason)

    @server_action
    def cancel_organization_deletion(self, actor_id: str, organization_id: str):
        return self.deletion.cancel(organization_id, actor_id)

    @server_action
    def get_soft_deleted_organizations(self, actor_id: str):
        return self.deletion.soft_deleted_organizations(actor_id)

    @server_action
    def validate_organization_deletion(self, actor_id: str, organization_id: str):
        return self.deletion.validate_deletion(organization_id, actor_id)

    # Ownership transfer

    @server_action
    def initiate_ownership_transfer(self, actor_id: str, organization_id: str, to_user_id: str,
                                    message: Optional[str] = None, reason: Optional[str] = None):
        return self.transfers.propose(organization_id, actor_id, to_user_id, message=message, reason=reason)

    @server_action
    def accept_ownership_transfer(self, actor_id: str, organization_id: str):
        return self.transfers.accept(organization_id, actor_id)

    @server_action
    def accept_ownership_transfer_by_token(self, actor_id: str, token: str):
        return self.transfers.accept_by_token(token, actor_id)

    @server_action
    def cancel_ownership_transfer(self, actor_id: str, organization_id: str):
        return self.transfers.cancel(organization_id, actor_id)

    @server_action
    def get_pending_transfers(self, actor_id: str) -> List[Dict[str, Any]]:
        """Transfers awaiting the actor's acceptance, with the organization they concern."""
        pending = self.transfers.pending_for_user(actor_id)
        organizations = {o.entity_id: o for o in self.organizations.find_by_ids(
            [t.organization_id for t in pending])}
        return [
            {'transfer': transfer, 'organization': organizations.get(transfer.organization_id)}
            for transfer in pending
        ]

    # Data export

    @server_action
    def export_organization_data(self, actor_id: str, organization_id: str, export_format: str = 'json',
                                 categories: Optional[Iterable[str]] = None):
        try:
            export_format = ExportFormat(export_format)
        except ValueError as e:
            raise ValidationError(f"Unsupported export format {export_format!r}.") from e
        organization = self.organizations.get_by_id(organization_id)
        if organization is None or not self.deletion.visible_to(organization, actor_id):
            raise NotFoundError("Organization not found.")
        require(self.memberships.get_role(organization_id, actor_id), Action.export_organization_data)
        if self.export_job is None:
            raise ExportFailedError("Data export is not available.")

        categories = normalize_categories(categories, self.config.export_categories)
        result = self.export_job.run(organization_id, export_format, categories,
                                     timeout=self.config.export_timeout_seconds)
        self.audit_log.record(AuditAction.data_exported, organization_id, actor_id,
                              metadata={'format': str(export_format), 'categories': categories})
        return result

    # Sessions

    @server_action
    def get_user_sessions(self, actor_id: str, current_session_id: Optional[str] = None):
        return self.sessions.list_sessions(actor_id, current_session_id)

    @server_action
    def get_organization_sessions(self, actor_id: str, organization_id: str,
                                  current_session_id: Optional[str] = None):
        return self.sessions.list_organization_sessions(organization_id, actor_id, current_session_id)

    @server_action
    def revoke_session(self, actor_id: str, session_id: str, organization_id: Optional[str] = None):
        revoked = self.sessions.revoke(session_id, actor_id, organization_id=organization_id)
        return {'session_id': session_id, 'revoked': revoked}

    @server_action
    def revoke_all_other_sessions(self, actor_id: str, current_session_id: str):
        result = self.sessions.revoke_all_other_sessions(actor_id, current_session_id)
        return {'count': result.count, 'revoked': result.revoked, 'failures': result.failures}
