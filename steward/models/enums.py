"""Enums shared by the steward models"""
from enum import Enum


class Role(str, Enum):
    """Organization membership role, ordered by privilege: owner > admin > manager > member."""
    owner = 'owner'
    admin = 'admin'
    manager = 'manager'
    member = 'member'

    @property
    def privilege(self) -> int:
        return _ROLE_PRIVILEGE[self]

    def at_least(self, other: 'Role') -> bool:
        return self.privilege >= Role(other).privilege

    def __str__(self):
        return str(self.value)


_ROLE_PRIVILEGE = {
    Role.owner: 3,
    Role.admin: 2,
    Role.manager: 1,
    Role.member: 0,
}


class OrganizationStatus(str, Enum):
    """Visibility state of an organization"""
    active = 'active'
    pending_deletion = 'pending_deletion'
    purged = 'purged'

    def __str__(self):
        return str(self.value)


class DeletionType(str, Enum):
    """Deletion flavour chosen at finalization"""
    soft = 'soft'
    permanent = 'permanent'

    def __str__(self):
        return str(self.value)


class DeletionState(str, Enum):
    """States of the deletion lifecycle"""
    none = 'none'
    pending_confirm_1 = 'pending_confirm_1'
    pending_confirm_2 = 'pending_confirm_2'
    pending_deletion = 'pending_deletion'
    restored = 'restored'
    purged = 'purged'
    cancelled = 'cancelled'

    @property
    def is_terminal(self) -> bool:
        return self in (DeletionState.restored, DeletionState.purged, DeletionState.cancelled)

    @property
    def is_confirming(self) -> bool:
        return self in (DeletionState.pending_confirm_1, DeletionState.pending_confirm_2)

    def __str__(self):
        return str(self.value)


class DeletionStatus(str, Enum):
    """Coarse status of a deletion request"""
    pending = 'pending'
    restored = 'restored'
    purged = 'purged'
    cancelled = 'cancelled'

    def __str__(self):
        return str(self.value)


class TransferStatus(str, Enum):
    """States of an ownership transfer request"""
    proposed = 'proposed'
    accepted = 'accepted'
    expired = 'expired'
    cancelled = 'cancelled'

    @property
    def is_terminal(self) -> bool:
        return self is not TransferStatus.proposed

    def __str__(self):
        return str(self.value)


class InvitationStatus(str, Enum):
    pending = 'pending'
    accepted = 'accepted'
    revoked = 'revoked'

    def __str__(self):
        return str(self.value)


class ExportFormat(str, Enum):
    json = 'json'
    csv = 'csv'

    def __str__(self):
        return str(self.value)


class AuditSeverity(str, Enum):
    info = 'info'
    warning = 'warning'
    critical = 'critical'

    def __str__(self):
        return str(self.value)


class AuditAction(str, Enum):
    """Activity log event types"""
    organization_updated = 'organization_updated'
    organization_deletion_confirmation_started = 'organization_deletion_confirmation_started'
    organization_deletion_cancelled = 'organization_deletion_cancelled'
    organization_soft_deleted = 'organization_soft_deleted'
    organization_permanently_deleted = 'organization_permanently_deleted'
    organization_restored = 'organization_restored'
    ownership_transfer_initiated = 'ownership_transfer_initiated'
    ownership_transfer_accepted = 'ownership_transfer_accepted'
    ownership_transfer_cancelled = 'ownership_transfer_cancelled'
    ownership_transfer_expired = 'ownership_transfer_expired'
    member_role_updated = 'member_role_updated'
    member_removed = 'member_removed'
    session_terminated = 'session_terminated'
    data_exported = 'data_exported'

    def __str__(self):
        return str(self.value)
