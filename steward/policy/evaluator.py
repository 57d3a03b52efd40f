"""
Permission policy for organization actions.

This is the single place where role comparisons live. Every component consults it
before mutating state, including for the acting owner's own organization.
`can_perform` is total: unknown roles or actions are denied, never raised.
"""
import logging
from enum import Enum
from typing import Optional, Union

from steward.exceptions import NotPermittedError
from steward.models.enums import Role

logger = logging.getLogger(__name__)


class Action(str, Enum):
    edit_organization_profile = 'edit_organization_profile'
    manage_settings = 'manage_settings'
    manage_members = 'manage_members'
    manage_invitations = 'manage_invitations'
    change_member_role = 'change_member_role'
    remove_member = 'remove_member'
    access_security_settings = 'access_security_settings'
    initiate_deletion = 'initiate_deletion'
    initiate_ownership_transfer = 'initiate_ownership_transfer'
    toggle_require_2fa = 'toggle_require_2fa'
    terminate_other_session = 'terminate_other_session'
    export_organization_data = 'export_organization_data'

    def __str__(self):
        return str(self.value)


# Names used by the dashboard's server actions
_ACTION_ALIASES = {
    'editOrganizationProfile': Action.edit_organization_profile,
    'manageSettings': Action.manage_settings,
    'manageMembers': Action.manage_members,
    'manageInvitations': Action.manage_invitations,
    'changeMemberRole': Action.change_member_role,
    'removeMember': Action.remove_member,
    'accessSecuritySettings': Action.access_security_settings,
    'initiateDeletion': Action.initiate_deletion,
    'initiateOwnershipTransfer': Action.initiate_ownership_transfer,
    'toggleRequire2FA': Action.toggle_require_2fa,
    'terminateOtherSession': Action.terminate_other_session,
    'exportOrganizationData': Action.export_organization_data,
}

# Least privileged role allowed to perform each action
_MINIMUM_ROLE = {
    Action.edit_organization_profile: Role.admin,
    Action.manage_settings: Role.admin,
    Action.manage_members: Role.manager,
    Action.manage_invitations: Role.manager,
    Action.access_security_settings: Role.admin,
    Action.initiate_deletion: Role.owner,
    Action.initiate_ownership_transfer: Role.owner,
    Action.toggle_require_2fa: Role.owner,
    Action.export_organization_data: Role.manager,
}


def _coerce_role(value) -> Optional[Role]:
    if isinstance(value, Role):
        return value
    if isinstance(value, str):
        try:
            return Role(value)
        except ValueError:
            return None
    return None


def _coerce_action(value) -> Optional[Action]:
    if isinstance(value, Action):
        return value
    if isinstance(value, str):
        if value in _ACTION_ALIASES:
            return _ACTION_ALIASES[value]
        try:
            return Action(value)
        except ValueError:
            return None
    return None


def _can_change_role(actor: Role, is_acting_on_self: bool, target_role, new_role) -> bool:
    if is_acting_on_self:
        return False
    target = _coerce_role(target_role) if target_role is not None else None
    new = _coerce_role(new_role) if new_role is not None else None
    if (target_role is not None and target is None) or (new_role is not None and new is None):
        return False
    if Role.owner in (target, new):
        return actor == Role.owner
    return actor.at_least(Role.admin)


def _can_remove_member(actor: Role, is_acting_on_self: bool, target_role) -> bool:
    if is_acting_on_self:
        return False
    target = _coerce_role(target_role) if target_role is not None else None
    if target_role is not None and target is None:
        return False
    if target == Role.owner:
        return False
    return actor.at_least(Role.manager)


def can_perform(
    actor_role: Union[Role, str, None],
    action: Union[Action, str, None],
    is_acting_on_self: bool = False,
    target_role: Union[Role, str, None] = None,
    new_role: Union[Role, str, None] = None,
) -> bool:
    """
    Decide whether a member holding `actor_role` may perform `action`.

    Args:
        actor_role: The actor's role in the organization; None for non-members.
        action: An Action, its value, or its camelCase name.
        is_acting_on_self: Whether the target of the action is the actor.
        target_role: Current role of the member acted upon (role changes, removals).
        new_role: Role being assigned (role changes).
    """
    actor = _coerce_role(actor_role)
    resolved = _coerce_action(action)
    if actor is None or resolved is None:
        return False

    if resolved == Action.change_member_role:
        return _can_change_role(actor, bool(is_acting_on_self), target_role, new_role)
    if resolved == Action.remove_member:
        return _can_remove_member(actor, bool(is_acting_on_self), target_role)
    if resolved == Action.terminate_other_session:
        if is_acting_on_self:
            return True
        return can_perform(actor, Action.access_security_settings)
    minimum = _MINIMUM_ROLE.get(resolved)
    return minimum is not None and actor.at_least(minimum)


def require(
    actor_role: Union[Role, str, None],
    action: Union[Action, str],
    is_acting_on_self: bool = False,
    target_role: Union[Role, str, None] = None,
    new_role: Union[Role, str, None] = None,
) -> None:
    """
    Raise NotPermittedError unless `can_perform` allows the action.

    The error message never names the rule that failed.
    """
    if not can_perform(actor_role, action, is_acting_on_self, target_role, new_role):
        logger.info("Denied %s for role %s", action, actor_role)
        raise NotPermittedError()
