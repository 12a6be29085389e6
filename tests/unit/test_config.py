"""Unit tests for configuration."""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from common.config import (
    AssemblerSettings,
    DataSourceFallback,
    ProjectSettings,
    SignInAliases,
    deep_merge,
    get_settings,
    load_context,
    load_project_settings,
)
from common.constants import AuthRole
from common.errors import ConfigurationError


def test_assembler_settings_loads_from_env_vars():
    """Test that assembler settings load from ASSEMBLER_* variables."""
    env_vars = {
        "ASSEMBLER_ROOT_DIR": "/srv/project",
        "ASSEMBLER_CONTEXT_FILE_PATTERN": "config/{env}.json",
        "ASSEMBLER_LOG_LEVEL": "DEBUG",
    }
    with patch.dict(os.environ, env_vars, clear=True):
        settings = AssemblerSettings(_env_file=None)
        assert settings.root_dir == Path("/srv/project")
        assert settings.context_file_pattern == "config/{env}.json"
        assert settings.log_level == "DEBUG"


def test_assembler_settings_has_sensible_defaults():
    """Test that assembler settings work with no environment."""
    with patch.dict(os.environ, {}, clear=True):
        settings = AssemblerSettings(_env_file=None)
        assert settings.root_dir == Path(".")
        assert settings.context_file_pattern == "context.{env}.json"
        assert settings.log_level == "INFO"


def test_get_settings_is_cached():
    """Test that get_settings returns the same instance."""
    get_settings.cache_clear()
    assert get_settings() is get_settings()
    get_settings.cache_clear()


class TestDeepMerge:
    """Tests for deep_merge."""

    def test_nested_dicts_merge(self):
        """Test nested keys merge instead of replacing the whole dict."""
        base = {"auth": {"selfSignUpEnabled": False, "autoVerify": {"email": True}}}
        override = {"auth": {"selfSignUpEnabled": True}}

        merged = deep_merge(base, override)

        assert merged == {"auth": {"selfSignUpEnabled": True, "autoVerify": {"email": True}}}
        assert base["auth"]["selfSignUpEnabled"] is False

    def test_non_dict_replaces(self):
        """Test lists and scalars are replaced."""
        assert deep_merge({"a": [1, 2], "b": 1}, {"a": [3]}) == {"a": [3], "b": 1}


class TestLoadContext:
    """Tests for load_context."""

    def test_requires_env(self, tmp_path):
        """Test a missing environment is fatal."""
        with pytest.raises(ConfigurationError):
            load_context({"namespace": "app"}, tmp_path)

    def test_without_file(self, tmp_path):
        """Test the context is returned unchanged when no file exists."""
        context = {"env": "dev", "namespace": "app"}

        assert load_context(context, tmp_path) == context

    def test_merges_file(self, tmp_path):
        """Test the environment file is deep-merged over the context."""
        (tmp_path / "context.dev.json").write_text(
            json.dumps({"namespace": "from-file", "auth": {"selfSignUpEnabled": True}})
        )

        context = load_context({"env": "dev", "namespace": "app", "auth": {}}, tmp_path)

        assert context["namespace"] == "from-file"
        assert context["auth"] == {"selfSignUpEnabled": True}

    def test_invalid_json(self, tmp_path):
        """Test an unreadable context file names the file."""
        (tmp_path / "context.dev.json").write_text("{not json")

        with pytest.raises(ConfigurationError) as exc_info:
            load_context({"env": "dev"}, tmp_path)

        assert "context.dev.json" in str(exc_info.value)


class TestLoadProjectSettings:
    """Tests for load_project_settings."""

    def test_requires_namespace(self):
        """Test a missing namespace is fatal."""
        with pytest.raises(ConfigurationError) as exc_info:
            load_project_settings({"env": "dev"})

        assert "namespace" in str(exc_info.value)

    def test_blank_namespace(self):
        """Test a whitespace namespace is rejected."""
        with pytest.raises(ConfigurationError):
            load_project_settings({"env": "dev", "namespace": "   "})

    def test_camel_case_keys(self):
        """Test nested camelCase keys are accepted."""
        settings = load_project_settings(
            {
                "env": "prod",
                "namespace": "shop",
                "unresolvedDataSource": "none",
                "auth": {
                    "allowUnauthenticatedIdentities": True,
                    "signInAliases": {"username": False, "email": True},
                    "passwordPolicy": {"minLength": 12},
                    "customAttributes": {"tier": {"type": "String", "maxLen": 16}},
                    "standardAttributes": {"givenName": {"required": True}},
                },
                "lambdas": {"hello": {"memory": 256, "bundleCommand": ["make", "dist"]}},
                "permissions": {
                    "lambdas": {"hello": {"storage": ["GetItem"]}},
                    "auth": {"authenticated": {"api": ["Query/*"]}},
                },
            }
        )

        assert settings.stack_id == "ShopProd"
        assert settings.unresolved_data_source is DataSourceFallback.NONE
        assert settings.auth.password_policy.min_length == 12
        assert settings.auth.custom_attributes["tier"].max_len == 16
        assert settings.auth.standard_attributes["givenName"].required is True
        assert settings.lambda_settings("hello").bundle_command == ["make", "dist"]
        assert settings.lambda_settings("other").memory == 128
        assert settings.permissions.auth.for_role(AuthRole.AUTHENTICATED).api == ["Query/*"]
        assert settings.permissions.auth.for_role(AuthRole.UNAUTHENTICATED).api == []

    def test_standard_attribute_keys_normalized(self):
        """Test snake_case standard attribute keys map to their camelCase names."""
        settings = ProjectSettings.model_validate(
            {"env": "dev", "namespace": "app", "auth": {"standardAttributes": {"family_name": {}}}}
        )

        assert list(settings.auth.standard_attributes) == ["familyName"]

    def test_unknown_standard_attribute(self):
        """Test an unknown standard attribute is rejected."""
        with pytest.raises(ConfigurationError):
            load_project_settings(
                {"env": "dev", "namespace": "app", "auth": {"standardAttributes": {"shoeSize": {}}}}
            )

    def test_invalid_lambda_memory(self):
        """Test out-of-range lambda settings are rejected."""
        with pytest.raises(ConfigurationError):
            load_project_settings({"env": "dev", "namespace": "app", "lambdas": {"x": {"memory": 64}}})


class TestSignInAliases:
    """Tests for sign-in alias combinations."""

    def test_username_with_aliases(self):
        """Test email and phone become aliases of the username."""
        aliases = SignInAliases(username=True, email=True, phone=True)

        assert aliases.username_attributes() == []
        assert aliases.alias_attributes() == ["email", "phone_number"]

    def test_email_as_username(self):
        """Test email replaces the username."""
        aliases = SignInAliases(username=False, email=True)

        assert aliases.username_attributes() == ["email"]
        assert aliases.alias_attributes() == []

    def test_nothing_enabled(self):
        """Test at least one sign-in option is required."""
        with pytest.raises(ValueError):
            SignInAliases(username=False)

    def test_preferred_username_requires_username(self):
        """Test preferred_username cannot be used without usernames."""
        with pytest.raises(ValueError):
            SignInAliases(username=False, email=True, preferred_username=True)
