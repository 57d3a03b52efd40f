from .deletion import (
    CONFIRMATION_PHRASE,
    DeletionLifecycleManager,
    DeletionValidation,
    PurgeReport,
    SoftDeletedOrganization,
)
from .transfer import ELIGIBLE_TARGET_ROLES, OwnershipTransferCoordinator
from .membership import MembershipService
