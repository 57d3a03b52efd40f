import copy
import logging
from uuid import uuid4, UUID
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from dateutil.parser import isoparse
from typing import Any, Dict, List, Optional, Union, get_type_hints, get_origin, get_args
from enum import Enum

logger = logging.getLogger(__name__)

# Fields every versioned record carries
BIG_6_FIELDS = ('entity_id', 'version', 'previous_version',
                'changed_on', 'changed_by_id', 'active')


def default_datetime():
    """
    Definition for default datetime
    """
    return datetime.now(timezone.utc)


def get_uuid_hex(_int=None):
    """
    Returns UUID in hex format. If _int is passed, it creates UUID with int base.
    """
    return uuid4().hex if _int is None else UUID(int=_int, version=4).hex


# Version of a record that has never been saved
UNSAVED_VERSION = get_uuid_hex(0)


class ModelValidationError(Exception):
    """
    Exception raised when one or more validation errors occur in the model.

    Attributes:
        errors (list): A list of error messages returned from validation methods.
    """

    def __init__(self, errors):
        if isinstance(errors, str):
            errors = [errors]
        elif not isinstance(errors, list):
            raise ValueError("Errors should be a string or a list of strings")
        self.errors = errors
        super().__init__("\n".join(self.errors))


def _convert_from_str(value: str, expected_type) -> Any:
    """Convert a serialized string back to the Enum or datetime named by `expected_type`."""
    if get_origin(expected_type) is Union:
        for arg in get_args(expected_type):
            if arg is type(None):
                continue
            converted = _convert_from_str(value, arg)
            if converted is not value:
                return converted
        return value
    if isinstance(expected_type, type) and issubclass(expected_type, Enum):
        try:
            return expected_type(value)
        except ValueError:
            return value
    if expected_type is datetime:
        try:
            return isoparse(value)
        except (ValueError, TypeError):
            return value
    return value


def _convert_for_dict(value: Any, convert_datetime_to_iso_string: bool) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat() if convert_datetime_to_iso_string else value
    if isinstance(value, UUID):
        return value.hex
    if isinstance(value, (dict, list)):
        return copy.deepcopy(value)
    return value


@dataclass(kw_only=True)
class VersionedModel:
    """A base class for versioned models with common (Big 6) attributes."""

    entity_id: str = field(default_factory=get_uuid_hex)
    version: str = field(default_factory=lambda: UNSAVED_VERSION)
    previous_version: Optional[str] = None
    active: bool = True
    changed_by_id: str = field(default_factory=lambda: get_uuid_hex(0))
    changed_on: datetime = field(default_factory=default_datetime)

    @classmethod
    def fields(cls) -> List[str]:
        """
        Get a list of field names for this model.
        """
        return [f.name for f in fields(cls)]

    @property
    def is_saved(self) -> bool:
        """True once this instance has been loaded from or written to a store."""
        return self.version != UNSAVED_VERSION

    def as_dict(self, convert_datetime_to_iso_string: bool = False) -> Dict[str, Any]:
        """
        Convert this model to a dictionary.

        Args:
            convert_datetime_to_iso_string (bool, optional): Whether to convert datetime to ISO strings.

        Returns:
            Dict[str, Any]: A dictionary representation of this model.
        """
        return {
            name: _convert_for_dict(getattr(self, name), convert_datetime_to_iso_string)
            for name in self.fields()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VersionedModel":
        """
        Load a model from a dict, restoring Enum and datetime values from their serialized form.
        Unknown keys (e.g. a store's own `_id`) are ignored.
        """
        hints = get_type_hints(cls)
        clean_data = {}
        for k, v in data.items():
            if k not in cls.fields():
                continue
            if isinstance(v, str) and k not in BIG_6_FIELDS[:3]:
                v = _convert_from_str(v, hints.get(k))
            elif isinstance(v, (dict, list)):
                v = copy.deepcopy(v)
            clean_data[k] = v
        return cls(**clean_data)

    def validate(self):
        """
        Validate all fields by calling corresponding `validate_<field_name>` methods if defined.
        Raise `ModelValidationError` if any validations fail.
        """
        errors = []
        for name in self.fields():
            validator = getattr(self, f"validate_{name}", None)
            if callable(validator):
                error = validator()
                if error:
                    errors.append(error)
        if errors:
            raise ModelValidationError(errors)

    def prepare_for_save(self, changed_by_id: Optional[str] = None):
        """
        Prepare this model for saving to the database: bump the version and stamp the change.

        Args:
            changed_by_id (str): The ID of the user making the change.
        """
        self.validate()
        if not self.entity_id:
            self.entity_id = get_uuid_hex()
        self.previous_version = self.version if self.version else UNSAVED_VERSION
        self.version = get_uuid_hex()
        self.changed_on = datetime.now(timezone.utc)
        if changed_by_id:
            self.changed_by_id = changed_by_id
