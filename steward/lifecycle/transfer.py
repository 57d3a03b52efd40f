"""
Ownership transfer of an organization.

    none -> proposed -> {accepted | expired | cancelled}

Expiry is evaluated on every read from `expires_at`; `expire_overdue` only records it.
Proposing, accepting and cancelling rewrite the organization record under the same
version guard the deletion lifecycle uses.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from steward.audit import AuditLog
from steward.auth import generate_transfer_token, validate_transfer_token
from steward.config import StewardConfig
from steward.data.base import Operation
from steward.exceptions import (
    DeletionPendingError,
    InvalidStateTransitionError,
    InvalidTransferTargetError,
    NotPermittedError,
    OrganizationNotFoundError,
    StaleStateError,
    TerminalStateError,
    TransferAlreadyPendingError,
    TransferExpiredError,
    TransferNotFoundError,
)
from steward.messaging import EventPublisher, LifecycleEvent
from steward.models import (
    AuditAction,
    Organization,
    OrganizationStatus,
    OwnershipTransferRequest,
    Role,
    TransferStatus,
)
from steward.models.versioned_model import default_datetime
from steward.policy import Action, require
from steward.repositories import (
    DeletionRequestRepository,
    MembershipRepository,
    OrganizationRepository,
    OwnershipTransferRepository,
)

logger = logging.getLogger(__name__)

ELIGIBLE_TARGET_ROLES = (Role.admin, Role.manager)


class OwnershipTransferCoordinator:
    def __init__(
        self,
        organizations: OrganizationRepository,
        memberships: MembershipRepository,
        deletion_requests: DeletionRequestRepository,
        transfers: OwnershipTransferRepository,
        audit_log: AuditLog,
        publisher: Optional[EventPublisher] = None,
        config: Optional[StewardConfig] = None,
        clock: Callable[[], datetime] = default_datetime,
    ):
        self.organizations = organizations
        self.memberships = memberships
        self.deletion_requests = deletion_requests
        self.transfers = transfers
        self.audit_log = audit_log
        self.publisher = publisher
        self.config = config or StewardConfig()
        self.clock = clock

    def _load_organization(self, organization_id: str) -> Organization:
        organization = self.organizations.get_by_id(organization_id)
        if organization is None:
            raise OrganizationNotFoundError()
        if organization.is_purged:
            raise TerminalStateError()
        if organization.status == OrganizationStatus.pending_deletion:
            raise DeletionPendingError()
        return organization

    def _commit(self, organization: Organization, actor_id: Optional[str], *operations: Operation):
        self.organizations.commit(
            self.organizations.stage_save(organization, changed_by_id=actor_id),
            *operations
        )

    def _stage_expiry(self, transfer: OwnershipTransferRequest) -> List[Operation]:
        transfer.status = TransferStatus.expired
        return [
            self.transfers.stage_save(transfer),
            self.audit_log.stage(
                AuditAction.ownership_transfer_expired, transfer.organization_id, None,
                subject_user_id=transfer.to_user_id,
                metadata={'transfer_id': transfer.entity_id, 'expires_at': transfer.expires_at.isoformat()},
            ),
        ]

    # Reads

    def status_of(self, transfer: OwnershipTransferRequest) -> TransferStatus:
        """Status of `transfer` as of now, reporting lapsed proposals as expired."""
        return transfer.effective_status(self.clock())

    def get_pending(self, organization_id: str) -> Optional[OwnershipTransferRequest]:
        """The organization's transfer that can still be accepted, if any."""
        transfer = self.transfers.get_open(organization_id)
        if transfer is None or not transfer.is_pending(self.clock()):
            return None
        return transfer

    def pending_for_user(self, user_id: str) -> List[OwnershipTransferRequest]:
        """Transfers awaiting acceptance by `user_id`."""
        now = self.clock()
        return [t for t in self.transfers.find_proposed_to(user_id) if t.is_pending(now)]

    def history(self, organization_id: str) -> List[OwnershipTransferRequest]:
        return self.transfers.history(organization_id)

    # Transitions

    def propose(
        self,
        organization_id: str,
        actor_id: str,
        to_user_id: str,
        message: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> OwnershipTransferRequest:
        """
        Propose handing ownership to `to_user_id`, an admin or manager of the organization.

        A stored proposal that has lapsed is recorded as expired in the same transaction.

        Raises:
            InvalidTransferTargetError: the target is not an admin or manager.
            TransferAlreadyPendingError: another proposal can still be accepted.
            DeletionPendingError: a deletion request is open.
        """
        organization = self._load_organization(organization_id)
        require(self.memberships.get_role(organization_id, actor_id), Action.initiate_ownership_transfer)
        now = self.clock()

        if self.deletion_requests.get_open(organization_id) is not None:
            raise DeletionPendingError(
                "This organization has a deletion request in progress. Cancel it before transferring ownership.")

        operations = []
        existing = self.transfers.get_open(organization_id)
        if existing is not None:
            if existing.is_pending(now):
                raise TransferAlreadyPendingError()
            operations.extend(self._stage_expiry(existing))

        if to_user_id == actor_id:
            raise InvalidTransferTargetError("You already own this organization.")
        if self.memberships.get_role(organization_id, to_user_id) not in ELIGIBLE_TARGET_ROLES:
            raise InvalidTransferTargetError()

        transfer = OwnershipTransferRequest(
            organization_id=organization_id,
            from_user_id=actor_id,
            to_user_id=to_user_id,
            message=message,
            reason=reason,
            status=TransferStatus.proposed,
            created_at=now,
            expires_at=now + timedelta(days=self.config.transfer_expiry_days),
        )
        secret = self.config.transfer_token_secret
        if secret:
            transfer.transfer_token = generate_transfer_token(transfer.entity_id, secret)

        operations.append(self.transfers.stage_save(transfer, changed_by_id=actor_id))
        operations.append(self.audit_log.stage(
            AuditAction.ownership_transfer_initiated, organization_id, actor_id,
            subject_user_id=to_user_id,
            metadata={'transfer_id': transfer.entity_id, 'to_user_id': to_user_id,
                      'expires_at': transfer.expires_at.isoformat(), 'reason': reason},
        ))
        self._commit(organization, actor_id, *operations)
        logger.info("Ownership transfer %s proposed for organization %s", transfer.entity_id, organization_id)

        self._publish(LifecycleEvent.ownership_transfer_proposed, organization_id, actor_id, [to_user_id], {
            'transfer_id': transfer.entity_id,
            'organization_name': organization.name,
            'from_user_id': actor_id,
            'message': message,
            'expires_at': transfer.expires_at,
            'transfer_token': transfer.transfer_token,
        })
        return transfer

    def _accept(self, organization: Organization, transfer: OwnershipTransferRequest,
                actor_id: str) -> OwnershipTransferRequest:
        organization_id = organization.entity_id
        if transfer.to_user_id != actor_id:
            raise NotPermittedError()
        now = self.clock()
        status = transfer.effective_status(now)
        if status == TransferStatus.expired:
            raise TransferExpiredError()
        if status != TransferStatus.proposed:
            raise InvalidStateTransitionError(f"This ownership transfer request was {status}.")

        new_owner = self.memberships.get_membership(organization_id, transfer.to_user_id)
        if new_owner is None or new_owner.role not in ELIGIBLE_TARGET_ROLES:
            raise InvalidTransferTargetError()
        old_owner = self.memberships.get_membership(organization_id, transfer.from_user_id)
        if old_owner is None or old_owner.role != Role.owner:
            raise InvalidStateTransitionError("The proposer no longer owns this organization.")

        old_owner.role = Role.admin
        new_owner.role = Role.owner
        transfer.status = TransferStatus.accepted
        transfer.accepted_at = now
        self._commit(
            organization, actor_id,
            self.memberships.stage_save(old_owner, changed_by_id=actor_id),
            self.memberships.stage_save(new_owner, changed_by_id=actor_id),
            self.transfers.stage_save(transfer, changed_by_id=actor_id),
            self.audit_log.stage(
                AuditAction.ownership_transfer_accepted, organization_id, actor_id,
                subject_user_id=transfer.from_user_id,
                metadata={'transfer_id': transfer.entity_id, 'from_user_id': transfer.from_user_id,
                          'to_user_id': transfer.to_user_id},
            ),
        )
        logger.info("Ownership of organization %s transferred from %s to %s",
                    organization_id, transfer.from_user_id, transfer.to_user_id)
        self._publish(LifecycleEvent.ownership_transfer_accepted, organization_id, actor_id,
                      [transfer.from_user_id, transfer.to_user_id],
                      {'transfer_id': transfer.entity_id, 'organization_name': organization.name})
        return transfer

    def accept(self, organization_id: str, actor_id: str) -> OwnershipTransferRequest:
        """
        Accept the organization's proposal. Only its recipient may accept, and only before
        it expires. The old owner becomes admin and the recipient becomes owner atomically.

        Raises:
            TransferNotFoundError: nothing was proposed.
            TransferExpiredError: the proposal has lapsed.
            NotPermittedError: the actor is not the recipient.
        """
        organization = self._load_organization(organization_id)
        transfer = self.transfers.get_open(organization_id)
        if transfer is None:
            raise TransferNotFoundError()
        return self._accept(organization, transfer, actor_id)

    def accept_by_token(self, token: str, actor_id: str) -> OwnershipTransferRequest:
        """Accept the transfer named by a signed token, as sent in the proposal notification."""
        secret = self.config.transfer_token_secret
        transfer_id = validate_transfer_token(token, secret) if secret and token else False
        if not transfer_id:
            raise TransferNotFoundError()
        transfer = self.transfers.find_by_token(token)
        if transfer is None or transfer.entity_id != transfer_id:
            raise TransferNotFoundError()
        organization = self._load_organization(transfer.organization_id)
        return self._accept(organization, transfer, actor_id)

    def cancel(self, organization_id: str, actor_id: str) -> OwnershipTransferRequest:
        """
        Withdraw a proposal. Only its proposer, still owner, may cancel. Once accepted,
        cancelling by either party is a no-op that returns the accepted request, even though
        the proposer is no longer owner.

        Raises:
            TransferNotFoundError: nothing was proposed.
            TransferExpiredError: the proposal has already lapsed.
        """
        organization = self._load_organization(organization_id)
        role = self.memberships.get_role(organization_id, actor_id)

        transfer = self.transfers.get_open(organization_id)
        if transfer is None:
            latest = next(iter(self.transfers.history(organization_id)), None)
            if (latest is not None and latest.status == TransferStatus.accepted
                    and actor_id in (latest.from_user_id, latest.to_user_id)):
                logger.debug("Transfer %s already accepted; nothing to cancel", latest.entity_id)
                return latest
            require(role, Action.initiate_ownership_transfer)
            raise TransferNotFoundError()
        if transfer.from_user_id != actor_id:
            raise NotPermittedError()
        require(role, Action.initiate_ownership_transfer)
        now = self.clock()
        if not transfer.is_pending(now):
            raise TransferExpiredError()

        transfer.status = TransferStatus.cancelled
        transfer.cancelled_at = now
        self._commit(
            organization, actor_id,
            self.transfers.stage_save(transfer, changed_by_id=actor_id),
            self.audit_log.stage(
                AuditAction.ownership_transfer_cancelled, organization_id, actor_id,
                subject_user_id=transfer.to_user_id,
                metadata={'transfer_id': transfer.entity_id},
            ),
        )
        self._publish(LifecycleEvent.ownership_transfer_cancelled, organization_id, actor_id,
                      [transfer.to_user_id], {'transfer_id': transfer.entity_id})
        return transfer

    def expire_overdue(self, now: Optional[datetime] = None) -> List[str]:
        """
        Record lapsed proposals as expired. Bookkeeping only: every decision already treats
        them as expired.
        """
        now = now or self.clock()
        expired = []
        for transfer in self.transfers.find_overdue(now):
            try:
                self.transfers.commit(*self._stage_expiry(transfer))
            except StaleStateError:
                logger.info("Transfer %s changed before it could be expired; skipping", transfer.entity_id)
                continue
            expired.append(transfer.entity_id)
        if expired:
            logger.info("Marked %s ownership transfers as expired", len(expired))
        return expired

    def _publish(self, event: LifecycleEvent, organization_id: str, actor_id: Optional[str],
                 recipients: List[str], payload: dict):
        if self.publisher is not None:
            self.publisher.publish(event, organization_id, actor_id, recipient_ids=recipients, payload=payload)
