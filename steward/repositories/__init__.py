from .base_repository import BaseRepository
from .organization_repository import OrganizationRepository
from .membership_repository import MembershipRepository
from .invitation_repository import InvitationRepository
from .deletion_request_repository import DeletionRequestRepository
from .ownership_transfer_repository import OwnershipTransferRepository
from .audit_event_repository import AuditEventRepository
