"""
Models for steward
"""

from .versioned_model import VersionedModel, ModelValidationError, default_datetime, get_uuid_hex
from .enums import (
    AuditAction,
    AuditSeverity,
    DeletionState,
    DeletionStatus,
    DeletionType,
    ExportFormat,
    InvitationStatus,
    OrganizationStatus,
    Role,
    TransferStatus,
)
from .organization import Organization
from .membership import Membership
from .invitation import Invitation
from .deletion_request import OrganizationDeletionRequest
from .ownership_transfer import OwnershipTransferRequest
from .audit_event import AuditEvent
from .session import Session
