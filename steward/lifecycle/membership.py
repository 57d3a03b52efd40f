"""
Role changes and removals of organization members.

Ownership never moves through here: promoting someone to owner, or changing or removing
the owner, is refused. Ownership changes only by an accepted transfer.
"""
import logging
from typing import Optional

from steward.audit import AuditLog
from steward.exceptions import (
    DeletionPendingError,
    InvalidRoleChangeError,
    NotFoundError,
    OrganizationNotFoundError,
    TerminalStateError,
)
from steward.models import AuditAction, Membership, Organization, Role
from steward.policy import Action, require
from steward.repositories import MembershipRepository, OrganizationRepository
from .deletion import DeletionLifecycleManager

logger = logging.getLogger(__name__)


class MembershipService:
    def __init__(
        self,
        organizations: OrganizationRepository,
        memberships: MembershipRepository,
        audit_log: AuditLog,
        deletion_manager: Optional[DeletionLifecycleManager] = None,
    ):
        self.organizations = organizations
        self.memberships = memberships
        self.audit_log = audit_log
        self.deletion_manager = deletion_manager

    def _load_organization(self, organization_id: str) -> Organization:
        organization = self.organizations.get_by_id(organization_id)
        if organization is None:
            raise OrganizationNotFoundError()
        if organization.is_purged:
            raise TerminalStateError()
        if not organization.is_active:
            raise DeletionPendingError()
        return organization

    def _load_member(self, organization_id: str, user_id: str) -> Membership:
        membership = self.memberships.get_membership(organization_id, user_id)
        if membership is None:
            raise NotFoundError("Member not found.")
        return membership

    def _after_departure(self, organization_id: str, user_id: str):
        if self.deletion_manager is not None:
            self.deletion_manager.handle_owner_departure(organization_id, user_id)

    def change_member_role(self, organization_id: str, actor_id: str, user_id: str, new_role: Role) -> Membership:
        """
        Raises:
            NotPermittedError: the actor's role does not allow this change.
            InvalidRoleChangeError: the change would create or remove an owner.
        """
        try:
            new_role = Role(new_role)
        except ValueError as e:
            raise InvalidRoleChangeError(f"Unknown role {new_role!r}.") from e

        self._load_organization(organization_id)
        target = self._load_member(organization_id, user_id)
        require(
            self.memberships.get_role(organization_id, actor_id),
            Action.change_member_role,
            is_acting_on_self=actor_id == user_id,
            target_role=target.role,
            new_role=new_role,
        )
        if Role.owner in (target.role, new_role):
            raise InvalidRoleChangeError("Ownership can only be changed through an ownership transfer.")
        if target.role == new_role:
            return target

        previous_role = target.role
        target.role = new_role
        self.memberships.commit(
            self.memberships.stage_save(target, changed_by_id=actor_id),
            self.audit_log.stage(
                AuditAction.member_role_updated, organization_id, actor_id,
                subject_user_id=user_id,
                metadata={'user_id': user_id, 'previous_role': str(previous_role), 'new_role': str(new_role)},
            ),
        )
        logger.info("Member %s of organization %s changed from %s to %s",
                    user_id, organization_id, previous_role, new_role)
        self._after_departure(organization_id, user_id)
        return target

    def remove_member(self, organization_id: str, actor_id: str, user_id: str) -> Membership:
        """
        Raises:
            NotPermittedError: the actor may not remove this member (owners are never removable).
        """
        self._load_organization(organization_id)
        target = self._load_member(organization_id, user_id)
        require(
            self.memberships.get_role(organization_id, actor_id),
            Action.remove_member,
            is_acting_on_self=actor_id == user_id,
            target_role=target.role,
        )
        self.memberships.commit(
            self.memberships.stage_delete({'organization_id': organization_id, 'user_id': user_id}),
            self.audit_log.stage(
                AuditAction.member_removed, organization_id, actor_id,
                subject_user_id=user_id,
                metadata={'user_id': user_id, 'role': str(target.role)},
            ),
        )
        logger.info("Member %s removed from organization %s", user_id, organization_id)
        self._after_departure(organization_id, user_id)
        return target
