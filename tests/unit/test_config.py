import pytest

from plsqlnav.config import NamingConfig
from plsqlnav.errors import ConfigurationError


def test_defaults():
    naming = NamingConfig()
    assert naming.role_for_extension(".pks") == "spec"
    assert naming.role_for_extension(".PKB") == "body"
    assert naming.role_for_extension(".sql") == "combined"
    assert naming.role_for_extension(".prc") == "standalone"
    assert naming.role_for_extension(".txt") is None
    assert ".bdy" in naming.all_extensions
    assert naming.workspace_scan is True


def test_from_settings_normalizes_extensions():
    naming = NamingConfig.from_settings(
        {"extensions": {"spec": ["PKS", ".Spec"], "body": "bdy"}}
    )
    assert naming.spec_extensions == (".pks", ".spec")
    assert naming.body_extensions == (".bdy",)


def test_with_settings_keeps_missing_keys():
    naming = NamingConfig(workspace_scan=False)
    updated = naming.with_settings({"fileNamePatterns": ["{name}", "pkg_{name}"]})
    assert updated.workspace_scan is False
    assert updated.base_name_patterns == ("{name}", "pkg_{name}")
    assert naming.with_settings(None) is naming
    assert naming.with_settings({}) is naming


def test_log_level_setting():
    naming = NamingConfig.from_settings({"logLevel": "debug"})
    assert naming.log_level == "debug"
    assert naming == NamingConfig()


@pytest.mark.parametrize(
    "settings",
    [
        "not an object",
        {"extensions": ["pks"]},
        {"extensions": {"header": [".h"]}},
        {"extensions": {"spec": [42]}},
        {"extensions": {"spec": ["."]}},
        {"extensions": {"spec": [".sql"]}},
        {"fileNamePatterns": "{name}"},
        {"fileNamePatterns": ["prefix_*"]},
        {"fileNamePatterns": ["{name}_{x}"]},
        {"fileNamePatterns": ["{name}{"]},
        {"fileNamePatterns": ["{name}_{0}"]},
        {"workspaceScan": "yes"},
    ],
)
def test_invalid_settings(settings):
    with pytest.raises(ConfigurationError):
        NamingConfig.from_settings(settings)


def test_configuration_error_is_value_error():
    with pytest.raises(ValueError):
        NamingConfig(body_extensions=(".pks",))
