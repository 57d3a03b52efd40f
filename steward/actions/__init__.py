from .results import ActionError, ActionResult
from .organization_actions import OrganizationActions, error_result, server_action, to_data
