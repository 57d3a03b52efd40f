"""
Tests for the Config classes from the config module
"""
import os
import tempfile

import pytest

from steward.config import BaseConfig, StewardConfig
from steward.exceptions import ConfigurationError


@pytest.fixture
def _env_setup():
    """
    declare an environment
    """
    os.environ["VAR_1"] = "value1"
    os.environ["TO_LIST_VAR"] = "A, B,C"
    yield
    del os.environ["VAR_1"]
    del os.environ["TO_LIST_VAR"]


def test_create_config(_env_setup):
    """
    Test retrieving the vars from the environment
    """
    config = BaseConfig()
    assert config.get_env_var("VAR_1") == "value1"
    assert config.get_env_var("MISSING_VAR") is None
    assert config.get_env_var("MISSING_VAR", "fallback") == "fallback"


def test_var_as_list(_env_setup):
    """
    Test reading a comma-delimited var as a list
    """
    config = BaseConfig()
    assert config.get_var_as_list("TO_LIST_VAR") == ["A", "B", "C"]
    assert config.get_var_as_list("MISSING_VAR", ["x"]) == ["x"]


def test_dotenv_file_is_loaded():
    """
    Test that variables from a .env file are picked up
    """
    with tempfile.NamedTemporaryFile('w', suffix='.env', delete=False) as env_file:
        env_file.write("STEWARD_TEST_DOTENV_VAR=from_file\n")
    try:
        config = BaseConfig(dotenv_path=env_file.name)
        assert config.get_env_var("STEWARD_TEST_DOTENV_VAR") == "from_file"
    finally:
        os.environ.pop("STEWARD_TEST_DOTENV_VAR", None)
        os.unlink(env_file.name)


def test_steward_defaults():
    """
    Test the lifecycle windows default to 30 and 7 days
    """
    config = StewardConfig(env_vars={})
    assert config.deletion_grace_period_days == 30
    assert config.transfer_expiry_days == 7
    assert config.export_timeout_seconds == 60
    assert config.events_queue == 'steward-events'
    assert config.export_categories == ['organization', 'members', 'invitations']


def test_steward_overrides():
    """
    Test that environment values override the defaults
    """
    config = StewardConfig(env_vars={
        'STEWARD_DELETION_GRACE_PERIOD_DAYS': '14',
        'STEWARD_EXPORT_CATEGORIES': 'organization,members',
        'STEWARD_TRANSFER_TOKEN_SECRET': 's3cret',
    })
    assert config.deletion_grace_period_days == 14
    assert config.export_categories == ['organization', 'members']
    config.validate_env_vars()


def test_non_integer_window_rejected():
    """
    Test that a malformed integer raises ConfigurationError
    """
    config = StewardConfig(env_vars={'STEWARD_TRANSFER_EXPIRY_DAYS': 'seven'})
    with pytest.raises(ConfigurationError):
        _ = config.transfer_expiry_days


def test_validate_requires_secret_and_positive_windows():
    """
    Test validation reports a missing secret and non-positive windows
    """
    config = StewardConfig(env_vars={'STEWARD_DELETION_GRACE_PERIOD_DAYS': '0'})
    with pytest.raises(ConfigurationError) as error:
        config.validate_env_vars()
    assert 'STEWARD_TRANSFER_TOKEN_SECRET' in error.value.message
    assert 'STEWARD_DELETION_GRACE_PERIOD_DAYS' in error.value.message
