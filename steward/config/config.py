"""
Config classes that read settings from the environment and/or a .env file.
"""
import os
import logging
from abc import abstractmethod
from typing import List, Optional

from dotenv import load_dotenv

from steward.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class BaseConfig():
    """
    Config class that snapshots environment variables, optionally loaded from a .env file.
    """
    def __init__(self, dotenv_path: Optional[str] = None, env_vars: Optional[dict] = None):
        if env_vars is None:
            load_dotenv(dotenv_path)
            env_vars = {key: os.getenv(key) for key in os.environ}
        self.env_vars = dict(env_vars)

    def get_env_vars(self) -> dict:
        """
        Return the dictionary containing all environment variables
        """
        return self.env_vars

    def get_env_var(self, var_name: str, default=None):
        """
        Retrieve the value of the specified environment variable
        Args:
            var_name (str) : Name of the env var to fetch
            default : Value returned when the variable is not set
        """
        if var_name in self.env_vars:
            return self.env_vars[var_name]
        if default is None:
            logger.warning("Variable %s not found.", var_name)
        return default

    def get_var_as_list(self, var_name: str, default: Optional[List[str]] = None) -> Optional[List[str]]:
        """
        Returns a comma-delimited var as list
        """
        value = self.env_vars.get(var_name)
        if value is None:
            return default
        return [item.strip() for item in value.split(",") if item.strip()]

    def get_int(self, var_name: str, default: int) -> int:
        """
        Returns an integer var, or `default` when it is not set.
        """
        value = self.env_vars.get(var_name)
        if value is None or value == '':
            return default
        try:
            return int(value)
        except ValueError as e:
            raise ConfigurationError(f"{var_name} must be an integer, got {value!r}") from e

    @abstractmethod
    def validate_env_vars(self):
        """
        Abstract method for validation of the env vars.
        """


class StewardConfig(BaseConfig):
    """Settings for the organization lifecycle components."""

    DEFAULT_GRACE_PERIOD_DAYS = 30
    DEFAULT_TRANSFER_EXPIRY_DAYS = 7
    DEFAULT_EXPORT_TIMEOUT_SECONDS = 60
    DEFAULT_EVENTS_QUEUE = 'steward-events'
    DEFAULT_EXPORT_CATEGORIES = ['organization', 'members', 'invitations']

    @property
    def deletion_grace_period_days(self) -> int:
        return self.get_int('STEWARD_DELETION_GRACE_PERIOD_DAYS', self.DEFAULT_GRACE_PERIOD_DAYS)

    @property
    def transfer_expiry_days(self) -> int:
        return self.get_int('STEWARD_TRANSFER_EXPIRY_DAYS', self.DEFAULT_TRANSFER_EXPIRY_DAYS)

    @property
    def export_timeout_seconds(self) -> int:
        return self.get_int('STEWARD_EXPORT_TIMEOUT_SECONDS', self.DEFAULT_EXPORT_TIMEOUT_SECONDS)

    @property
    def events_queue(self) -> str:
        return self.get_env_var('STEWARD_EVENTS_QUEUE', self.DEFAULT_EVENTS_QUEUE)

    @property
    def transfer_token_secret(self) -> Optional[str]:
        return self.get_env_var('STEWARD_TRANSFER_TOKEN_SECRET')

    @property
    def export_categories(self) -> List[str]:
        return self.get_var_as_list('STEWARD_EXPORT_CATEGORIES', list(self.DEFAULT_EXPORT_CATEGORIES))

    def validate_env_vars(self):
        """
        Raises ConfigurationError if a required variable is missing or a window is not positive.
        """
        errors = []
        if not self.transfer_token_secret:
            errors.append("STEWARD_TRANSFER_TOKEN_SECRET is required.")
        for name, value in (
            ('STEWARD_DELETION_GRACE_PERIOD_DAYS', self.deletion_grace_period_days),
            ('STEWARD_TRANSFER_EXPIRY_DAYS', self.transfer_expiry_days),
            ('STEWARD_EXPORT_TIMEOUT_SECONDS', self.export_timeout_seconds),
        ):
            if value <= 0:
                errors.append(f"{name} must be positive.")
        if errors:
            raise ConfigurationError(" ".join(errors))
