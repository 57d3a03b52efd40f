"""
Result envelope returned by the server actions.

Actions never raise: every outcome, including failures, is an ActionResult whose
error carries a stable code for the UI layer.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

UNAUTHORIZED = 'UNAUTHORIZED'
VALIDATION_ERROR = 'VALIDATION_ERROR'
FORBIDDEN = 'FORBIDDEN'
CONFLICT = 'CONFLICT'
NOT_FOUND = 'NOT_FOUND'
EXPORT_FAILED = 'EXPORT_FAILED'
SERVICE_UNAVAILABLE = 'SERVICE_UNAVAILABLE'
INTERNAL_ERROR = 'INTERNAL_ERROR'


@dataclass
class ActionError:
    code: str
    message: str
    retryable: bool = False


@dataclass
class ActionResult:
    success: bool
    data: Any = None
    error: Optional[ActionError] = None

    @classmethod
    def ok(cls, data: Any = None) -> 'ActionResult':
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, code: str, message: str, retryable: bool = False) -> 'ActionResult':
        return cls(success=False, error=ActionError(code, message, retryable))

    def as_dict(self) -> Dict[str, Any]:
        result = {'success': self.success}
        if self.data is not None:
            result['data'] = self.data
        if self.error is not None:
            result['error'] = {
                'code': self.error.code,
                'message': self.error.message,
                'retryable': self.error.retryable,
            }
        return result
