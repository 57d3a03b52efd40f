"""
Deletion lifecycle of an organization.

    none -> pending_confirm_1 -> pending_confirm_2 -> pending_deletion -> {restored | purged}
    pending_confirm_1 | pending_confirm_2 -> cancelled

Every transition is one transaction over the organization record and the deletion
request, guarded by the organization's version. The ownership transfer coordinator
takes the same guard, so a deletion and a transfer can never both commit against the
same view of the organization. The scheduled purge run by the sweeper goes through
that guard as well, which makes it authoritative over a racing restore.
"""
import logging
import math
from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from steward.audit import AuditLog
from steward.config import StewardConfig
from steward.data.base import Operation
from steward.exceptions import (
    DeletionPendingError,
    ExportFailedError,
    GracePeriodExpiredError,
    InvalidStateTransitionError,
    NameMismatchError,
    OrganizationNotFoundError,
    PhraseMismatchError,
    StaleStateError,
    StewardError,
    TerminalStateError,
    TransferAlreadyPendingError,
    ValidationError,
)
from steward.export import DataExportJob
from steward.messaging import EventPublisher, LifecycleEvent
from steward.models import (
    AuditAction,
    DeletionState,
    DeletionType,
    ExportFormat,
    InvitationStatus,
    Organization,
    OrganizationDeletionRequest,
    OrganizationStatus,
    Role,
)
from steward.models.versioned_model import default_datetime
from steward.policy import Action, require
from steward.repositories import (
    DeletionRequestRepository,
    InvitationRepository,
    MembershipRepository,
    OrganizationRepository,
    OwnershipTransferRepository,
)

logger = logging.getLogger(__name__)

CONFIRMATION_PHRASE = "DELETE ORGANIZATION"


@dataclass
class SoftDeletedOrganization:
    """A soft-deleted organization as listed to its owner."""
    organization: Organization
    request: Optional[OrganizationDeletionRequest]
    days_until_permanent_deletion: int
    can_restore: bool


@dataclass
class DeletionValidation:
    can_delete: bool
    related_data: Dict[str, int] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)


@dataclass
class PurgeReport:
    """Outcome of one sweeper run."""
    purged: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)


class DeletionLifecycleManager:
    def __init__(
        self,
        organizations: OrganizationRepository,
        memberships: MembershipRepository,
        invitations: InvitationRepository,
        deletion_requests: DeletionRequestRepository,
        transfers: OwnershipTransferRepository,
        audit_log: AuditLog,
        publisher: Optional[EventPublisher] = None,
        export_job: Optional[DataExportJob] = None,
        config: Optional[StewardConfig] = None,
        clock: Callable[[], datetime] = default_datetime,
    ):
        self.organizations = organizations
        self.memberships = memberships
        self.invitations = invitations
        self.deletion_requests = deletion_requests
        self.transfers = transfers
        self.audit_log = audit_log
        self.publisher = publisher
        self.export_job = export_job
        self.config = config or StewardConfig()
        self.clock = clock

    # Reads

    def _load_organization(self, organization_id: str) -> Organization:
        organization = self.organizations.get_by_id(organization_id)
        if organization is None:
            raise OrganizationNotFoundError()
        if organization.is_purged:
            raise TerminalStateError()
        return organization

    def _authorize(self, organization_id: str, actor_id: str) -> Role:
        role = self.memberships.get_role(organization_id, actor_id)
        require(role, Action.initiate_deletion)
        return role

    def _is_owner(self, organization_id: str, user_id: str) -> bool:
        return self.memberships.get_role(organization_id, user_id) == Role.owner

    def _member_ids(self, organization_id: str) -> List[str]:
        return [m.user_id for m in self.memberships.list_members(organization_id)]

    def _open_request(self, organization: Organization) -> Optional[OrganizationDeletionRequest]:
        """
        The organization's open request. A confirming request whose requester is no
        longer the owner is cancelled here and None is returned.
        """
        request = self.deletion_requests.get_open(organization.entity_id)
        if request is None:
            return None
        if request.state.is_confirming and not self._is_owner(organization.entity_id, request.requested_by):
            self._auto_cancel(organization, request)
            return None
        return request

    def _ensure_no_pending_transfer(self, organization_id: str, now: datetime):
        transfer = self.transfers.get_open(organization_id)
        if transfer is not None and transfer.is_pending(now):
            raise TransferAlreadyPendingError(
                "An ownership transfer is pending for this organization. Cancel it before deleting.")

    def get_active_request(self, organization_id: str) -> Optional[OrganizationDeletionRequest]:
        """
        The open deletion request, if any. A confirming request whose requester has since
        left or been demoted is reported as absent.
        """
        request = self.deletion_requests.get_open(organization_id)
        if request is None:
            return None
        if request.state.is_confirming and not self._is_owner(organization_id, request.requested_by):
            return None
        return request

    def visible_to(self, organization: Organization, user_id: str) -> bool:
        """Soft-deleted organizations stay visible to their owner only."""
        if organization.status == OrganizationStatus.active:
            return True
        if organization.status == OrganizationStatus.pending_deletion:
            return self._is_owner(organization.entity_id, user_id)
        return False

    def organizations_for(self, user_id: str) -> List[Organization]:
        memberships = self.memberships.find_organizations_by_member(user_id)
        organizations = self.organizations.find_by_ids([m.organization_id for m in memberships])
        return [o for o in organizations if self.visible_to(o, user_id)]

    def soft_deleted_organizations(self, user_id: str) -> List[SoftDeletedOrganization]:
        """Organizations owned by `user_id` that are within or past their grace period."""
        now = self.clock()
        owned = [m.organization_id for m in self.memberships.find_organizations_by_member(user_id)
                 if m.role == Role.owner]
        result = []
        for organization in self.organizations.find_by_ids(owned):
            if organization.status != OrganizationStatus.pending_deletion:
                continue
            request = self.deletion_requests.get_open(organization.entity_id)
            purge_at = organization.scheduled_purge_at
            remaining = (purge_at - now).total_seconds() / 86400 if purge_at else 0
            result.append(SoftDeletedOrganization(
                organization=organization,
                request=request,
                days_until_permanent_deletion=max(0, math.ceil(remaining)),
                can_restore=request is not None and request.within_grace_period(now),
            ))
        return sorted(result, key=lambda s: s.organization.scheduled_purge_at or now)

    def validate_deletion(self, organization_id: str, actor_id: str) -> DeletionValidation:
        """Summarize what a deletion would remove, and whether it can start now."""
        organization = self._load_organization(organization_id)
        self._authorize(organization_id, actor_id)
        now = self.clock()

        members = self.memberships.get_count({'organization_id': organization_id})
        invitations = self.invitations.get_count(
            {'organization_id': organization_id, 'status': InvitationStatus.pending})
        validation = DeletionValidation(
            can_delete=organization.is_active,
            related_data={'members': members, 'invitations': invitations},
        )
        if members > 1:
            validation.warnings.append(f"There are {members} members in this organization.")
        if invitations:
            validation.warnings.append(f"There are {invitations} pending invitations that will be revoked.")
        transfer = self.transfers.get_open(organization_id)
        if transfer is not None and transfer.is_pending(now):
            validation.can_delete = False
            validation.warnings.append("An ownership transfer is pending for this organization.")
        request = self.deletion_requests.get_open(organization_id)
        if request is not None and request.state == DeletionState.pending_deletion:
            validation.can_delete = False
            validation.warnings.append("This organization is already scheduled for deletion.")
        return validation

    # Transitions

    def _commit(self, organization: Organization, actor_id: Optional[str], *operations: Operation):
        """Commit `operations` together with a guarded rewrite of the organization record."""
        self.organizations.commit(
            self.organizations.stage_save(organization, changed_by_id=actor_id),
            *operations
        )

    def _auto_cancel(self, organization: Organization, request: OrganizationDeletionRequest):
        now = self.clock()
        request.state = DeletionState.cancelled
        request.resolved_at = now
        self._commit(
            organization, None,
            self.deletion_requests.stage_save(request),
            self.audit_log.stage(
                AuditAction.organization_deletion_cancelled, organization.entity_id, None,
                subject_user_id=request.requested_by,
                metadata={'request_id': request.entity_id, 'reason': 'requester_no_longer_owner'},
            ),
        )
        logger.info("Cancelled deletion request %s: requester %s is no longer owner",
                    request.entity_id, request.requested_by)

    def handle_owner_departure(self, organization_id: str, user_id: str) -> Optional[OrganizationDeletionRequest]:
        """Cancel a confirming request made by `user_id`, who just left or lost the owner role."""
        organization = self.organizations.get_by_id(organization_id)
        if organization is None or organization.is_purged:
            return None
        request = self.deletion_requests.get_open(organization_id)
        if request is None or not request.state.is_confirming or request.requested_by != user_id:
            return None
        if self._is_owner(organization_id, user_id):
            return None
        self._auto_cancel(organization, request)
        return request

    def confirm_name(self, organization_id: str, actor_id: str, typed_name: str) -> OrganizationDeletionRequest:
        """
        First confirmation step: the owner types the organization name exactly.

        Starting over from a later confirmation step resets the request to the first step.

        Raises:
            NameMismatchError: the typed name differs; nothing changes.
            DeletionPendingError: the organization is already scheduled for deletion.
            TransferAlreadyPendingError: an ownership transfer is in flight.
        """
        organization = self._load_organization(organization_id)
        self._authorize(organization_id, actor_id)
        now = self.clock()

        request = self._open_request(organization)
        if request is not None and request.state == DeletionState.pending_deletion:
            raise DeletionPendingError()
        self._ensure_no_pending_transfer(organization_id, now)

        if typed_name != organization.name:
            logger.debug("Name confirmation mismatch for organization %s", organization_id)
            raise NameMismatchError()

        if request is None:
            request = OrganizationDeletionRequest(organization_id=organization_id)
        request.requested_by = actor_id
        request.state = DeletionState.pending_confirm_1
        request.name_confirmed = True
        request.confirmation_phrase_verified = False
        request.confirmed_at = now

        self._commit(
            organization, actor_id,
            self.deletion_requests.stage_save(request, changed_by_id=actor_id),
            self.audit_log.stage(
                AuditAction.organization_deletion_confirmation_started, organization_id, actor_id,
                metadata={'request_id': request.entity_id},
            ),
        )
        return request

    def confirm_phrase(self, organization_id: str, actor_id: str, typed_phrase: str) -> OrganizationDeletionRequest:
        """
        Second confirmation step: the owner types the confirmation phrase exactly.

        Raises:
            PhraseMismatchError: the typed phrase differs; nothing changes.
            InvalidStateTransitionError: the name has not been confirmed.
        """
        organization = self._load_organization(organization_id)
        self._authorize(organization_id, actor_id)

        request = self._open_request(organization)
        if request is None or request.state != DeletionState.pending_confirm_1:
            raise InvalidStateTransitionError()
        if typed_phrase != CONFIRMATION_PHRASE:
            logger.debug("Confirmation phrase mismatch for organization %s", organization_id)
            raise PhraseMismatchError()

        request.state = DeletionState.pending_confirm_2
        request.confirmation_phrase_verified = True
        self._commit(organization, actor_id, self.deletion_requests.stage_save(request, changed_by_id=actor_id))
        return request

    def _purge_operations(self, organization: Organization, request: OrganizationDeletionRequest,
                          actor_id: Optional[str], now: datetime, metadata: dict) -> List[Operation]:
        """Stage the removal of everything scoped to the organization, leaving a purged tombstone."""
        organization_id = organization.entity_id
        organization.status = OrganizationStatus.purged
        organization.deleted_at = organization.deleted_at or now
        organization.deleted_by = organization.deleted_by or actor_id
        organization.scheduled_purge_at = None

        request.state = DeletionState.purged
        request.resolved_at = now
        request.resolved_by = actor_id
        return [
            self.deletion_requests.stage_save(request, changed_by_id=actor_id),
            self.memberships.stage_delete({'organization_id': organization_id}),
            self.invitations.stage_delete({'organization_id': organization_id}),
            self.transfers.stage_delete({'organization_id': organization_id}),
            self.audit_log.stage(
                AuditAction.organization_permanently_deleted, organization_id, actor_id,
                metadata=dict(metadata, request_id=request.entity_id, name=organization.name),
            ),
        ]

    def _run_export(self, organization_id: str, export_format: ExportFormat) -> str:
        if self.export_job is None:
            raise ExportFailedError()
        result = self.export_job.run(
            organization_id, export_format, self.config.export_categories,
            timeout=self.config.export_timeout_seconds
        )
        return result.export_url

    def _submit_export(self, organization_id: str, request_id: str, export_format: ExportFormat) -> Optional[Future]:
        if self.export_job is None:
            logger.warning("No export job configured; skipping export for organization %s", organization_id)
            return None
        future = self.export_job.submit(organization_id, export_format, self.config.export_categories)
        future.add_done_callback(lambda f: self._attach_export(request_id, f))
        return future

    def _attach_export(self, request_id: str, future: Future):
        if future.cancelled() or future.exception() is not None or not future.result().success:
            return
        request = self.deletion_requests.get_by_id(request_id)
        if request is None or request.state != DeletionState.pending_deletion:
            return
        request.export_url = future.result().export_url
        try:
            self.deletion_requests.save(request)
        except StaleStateError:
            logger.warning("Could not attach export to deletion request %s; it changed meanwhile", request_id)
            return
        self.audit_log.record(AuditAction.data_exported, request.organization_id, request.requested_by,
                              metadata={'request_id': request_id, 'format': str(request.export_format)})

    def finalize(
        self,
        organization_id: str,
        actor_id: str,
        deletion_type: DeletionType,
        data_export_requested: bool = False,
        export_format: Optional[ExportFormat] = None,
        reason: Optional[str] = None,
    ) -> OrganizationDeletionRequest:
        """
        Third step: enter pending deletion.

        A soft deletion hides the organization from its members for the grace period and
        schedules the purge. A permanent deletion purges in the same transaction; when an
        export was requested it must succeed, within the configured timeout, before anything
        is committed.

        Raises:
            InvalidStateTransitionError: both confirmations have not been given.
            ExportFailedError, ExportTimeoutError: the pre-deletion export did not complete.
            StaleStateError: a concurrent transition committed first.
        """
        try:
            deletion_type = DeletionType(deletion_type)
            export_format = ExportFormat(export_format or ExportFormat.json)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        organization = self._load_organization(organization_id)
        self._authorize(organization_id, actor_id)

        request = self._open_request(organization)
        if request is None or request.state != DeletionState.pending_confirm_2:
            raise InvalidStateTransitionError()

        request.deletion_type = deletion_type
        request.data_export_requested = bool(data_export_requested)
        request.export_format = export_format if data_export_requested else None
        request.reason = reason
        organization.deletion_reason = reason
        recipients = [user_id for user_id in self._member_ids(organization_id) if user_id != actor_id]

        if deletion_type == DeletionType.permanent:
            if data_export_requested:
                request.export_url = self._run_export(organization_id, export_format)
            now = self.clock()
            request.requested_at = now
            request.scheduled_purge_at = None
            self._commit(organization, actor_id,
                         *self._purge_operations(organization, request, actor_id, now,
                                                 {'deletion_type': str(deletion_type), 'reason': reason}))
            logger.info("Organization %s permanently deleted by %s", organization_id, actor_id)
            self._publish(LifecycleEvent.organization_purged, organization_id, actor_id, recipients,
                          {'name': organization.name, 'reason': reason})
            return request

        now = self.clock()
        purge_at = now + timedelta(days=self.config.deletion_grace_period_days)
        request.state = DeletionState.pending_deletion
        request.requested_at = now
        request.scheduled_purge_at = purge_at
        organization.status = OrganizationStatus.pending_deletion
        organization.deleted_at = now
        organization.deleted_by = actor_id
        organization.scheduled_purge_at = purge_at

        self._commit(
            organization, actor_id,
            self.deletion_requests.stage_save(request, changed_by_id=actor_id),
            self.audit_log.stage(
                AuditAction.organization_soft_deleted, organization_id, actor_id,
                metadata={'request_id': request.entity_id, 'scheduled_purge_at': purge_at.isoformat(),
                          'reason': reason},
            ),
        )
        logger.info("Organization %s soft-deleted by %s; purge scheduled for %s",
                    organization_id, actor_id, purge_at.isoformat())
        if data_export_requested:
            self._submit_export(organization_id, request.entity_id, export_format)
        self._publish(LifecycleEvent.organization_soft_deleted, organization_id, actor_id, recipients,
                      {'name': organization.name, 'scheduled_purge_at': purge_at, 'reason': reason})
        return request

    def restore(self, organization_id: str, actor_id: str) -> Organization:
        """
        Reinstate a soft-deleted organization within its grace period.

        Raises:
            GracePeriodExpiredError: the scheduled purge time has passed.
            TerminalStateError: the organization has been purged.
            InvalidStateTransitionError: the organization is not soft-deleted.
        """
        organization = self._load_organization(organization_id)
        self._authorize(organization_id, actor_id)

        request = self.deletion_requests.get_open(organization_id)
        if request is None or request.state != DeletionState.pending_deletion:
            raise InvalidStateTransitionError()
        now = self.clock()
        if not request.within_grace_period(now):
            raise GracePeriodExpiredError()

        request.state = DeletionState.restored
        request.resolved_at = now
        request.resolved_by = actor_id
        organization.status = OrganizationStatus.active
        organization.deleted_at = None
        organization.deleted_by = None
        organization.deletion_reason = None
        organization.scheduled_purge_at = None

        self._commit(
            organization, actor_id,
            self.deletion_requests.stage_save(request, changed_by_id=actor_id),
            self.audit_log.stage(AuditAction.organization_restored, organization_id, actor_id,
                                 metadata={'request_id': request.entity_id}),
        )
        logger.info("Organization %s restored by %s", organization_id, actor_id)
        recipients = [user_id for user_id in self._member_ids(organization_id) if user_id != actor_id]
        self._publish(LifecycleEvent.organization_restored, organization_id, actor_id, recipients,
                      {'name': organization.name})
        return organization

    def force_purge(self, organization_id: str, actor_id: str,
                    reason: Optional[str] = None) -> OrganizationDeletionRequest:
        """
        Purge a soft-deleted organization now instead of waiting out its grace period.

        Raises:
            InvalidStateTransitionError: the organization is not soft-deleted.
            TerminalStateError: the organization has already been purged.
            StaleStateError: a restore or the sweeper committed first.
        """
        organization = self._load_organization(organization_id)
        self._authorize(organization_id, actor_id)

        request = self.deletion_requests.get_open(organization_id)
        if request is None or request.state != DeletionState.pending_deletion:
            raise InvalidStateTransitionError("Only an organization pending deletion can be purged early.")

        recipients = [user_id for user_id in self._member_ids(organization_id) if user_id != actor_id]
        reason = reason or request.reason
        self._commit(organization, actor_id,
                     *self._purge_operations(organization, request, actor_id, self.clock(),
                                             {'deletion_type': str(DeletionType.permanent),
                                              'reason': reason, 'forced': True}))
        logger.info("Organization %s purged early by %s", organization_id, actor_id)
        self._publish(LifecycleEvent.organization_purged, organization_id, actor_id, recipients,
                      {'name': organization.name, 'reason': reason})
        return request

    def cancel(self, organization_id: str, actor_id: str) -> OrganizationDeletionRequest:
        """
        Abandon the confirmation protocol.

        Raises:
            InvalidStateTransitionError: no confirmation is in progress, or the deletion has
                already been finalized (restore a soft deletion instead).
        """
        organization = self._load_organization(organization_id)
        self._authorize(organization_id, actor_id)

        request = self._open_request(organization)
        if request is None:
            raise InvalidStateTransitionError("There is no deletion in progress to cancel.")
        if request.state == DeletionState.pending_deletion:
            raise InvalidStateTransitionError(
                "The deletion has already been finalized. Restore the organization instead.")

        request.state = DeletionState.cancelled
        request.resolved_at = self.clock()
        request.resolved_by = actor_id
        self._commit(
            organization, actor_id,
            self.deletion_requests.stage_save(request, changed_by_id=actor_id),
            self.audit_log.stage(AuditAction.organization_deletion_cancelled, organization_id, actor_id,
                                 metadata={'request_id': request.entity_id}),
        )
        return request

    # Sweeper

    def _purge_due(self, request: OrganizationDeletionRequest, now: datetime) -> bool:
        organization = self.organizations.get_by_id(request.organization_id)
        if organization is None or organization.status != OrganizationStatus.pending_deletion:
            logger.warning("Deletion request %s is due but organization %s is not pending deletion",
                           request.entity_id, request.organization_id)
            return False
        recipients = self._member_ids(organization.entity_id)
        self._commit(organization, None,
                     *self._purge_operations(organization, request, None, now,
                                             {'deletion_type': str(DeletionType.soft),
                                              'reason': 'grace_period_elapsed'}))
        self._publish(LifecycleEvent.organization_purged, organization.entity_id, None, recipients,
                      {'name': organization.name, 'reason': 'grace_period_elapsed'})
        return True

    def purge_due(self, now: Optional[datetime] = None) -> PurgeReport:
        """
        Purge every soft-deleted organization whose grace period has elapsed.

        Meant to be run periodically. A request that changed since it was listed (for
        instance, restored in time) is skipped; a failure purging one organization does not
        stop the others.
        """
        now = now or self.clock()
        report = PurgeReport()
        due = self.deletion_requests.find_due_for_purge(now)
        logger.info("Found %s organizations due for purge", len(due))
        for request in due:
            organization_id = request.organization_id
            try:
                if self._purge_due(request, now):
                    report.purged.append(organization_id)
                else:
                    report.skipped.append(organization_id)
            except StaleStateError:
                logger.info("Organization %s changed before it could be purged; skipping", organization_id)
                report.skipped.append(organization_id)
            except (StewardError, RuntimeError) as e:
                logger.error("Failed to purge organization %s: %s", organization_id, e)
                report.errors[organization_id] = str(e)
        logger.info("Purge completed. Purged: %s, skipped: %s, errors: %s",
                    len(report.purged), len(report.skipped), len(report.errors))
        return report

    def _publish(self, event: LifecycleEvent, organization_id: str, actor_id: Optional[str],
                 recipients: List[str], payload: dict):
        if self.publisher is not None:
            self.publisher.publish(event, organization_id, actor_id, recipient_ids=recipients, payload=payload)
