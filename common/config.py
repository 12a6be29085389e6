"""Configuration for the backend assembler.

Two layers:

* :class:`AssemblerSettings` - process-level settings read from ``ASSEMBLER_*``
  environment variables (or ``.env``) with Pydantic Settings.
* :class:`ProjectSettings` - the configuration context of one stack (environment,
  namespace, auth, per-Lambda runtime settings, permissions map). It is built
  from Pulumi stack config deep-merged with an optional ``context.<env>.json``
  file and validated with Pydantic. Keys may be camelCase or snake_case.
"""

import json
import logging
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from common.constants import (
    DEFAULT_LAMBDA_HANDLER,
    DEFAULT_LAMBDA_MEMORY,
    DEFAULT_LAMBDA_RUNTIME,
    DEFAULT_LAMBDA_TIMEOUT,
    STANDARD_ATTRIBUTE_NAMES,
    AuthRole,
)
from common.errors import ConfigurationError
from common.naming import camel_case, format_resource_id

logger = logging.getLogger(__name__)


class AssemblerSettings(BaseSettings):
    """Process settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ASSEMBLER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Project root holding the src/ layout (defaults to the Pulumi program dir)
    root_dir: Path = Path(".")

    # Per-environment context file, relative to root_dir
    context_file_pattern: str = "context.{env}.json"

    log_level: str = "INFO"


@lru_cache
def get_settings() -> AssemblerSettings:
    """Get cached settings instance."""
    return AssemblerSettings()


class DataSourceFallback(str, Enum):
    """What to do when a template names a data source that was never created."""

    ERROR = "error"
    NONE = "none"


class _ContextModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# =============================================================================
# Auth
# =============================================================================


class SignInAliases(_ContextModel):
    """How users sign in.

    With ``username`` enabled the other flags become aliases of the
    username; without it email and/or phone replace the username and
    ``preferred_username`` is not available.
    """

    username: bool = True
    email: bool = False
    phone: bool = False
    preferred_username: bool = False

    @model_validator(mode="after")
    def _check_combination(self) -> "SignInAliases":
        if not self.username:
            if self.preferred_username:
                raise ValueError("preferredUsername requires username sign-in")
            if not (self.email or self.phone):
                raise ValueError("at least one of username, email or phone must be enabled")
        return self

    def username_attributes(self) -> list[str]:
        if self.username:
            return []
        return [name for name, on in (("email", self.email), ("phone_number", self.phone)) if on]

    def alias_attributes(self) -> list[str]:
        if not self.username:
            return []
        return [
            name
            for name, on in (
                ("email", self.email),
                ("phone_number", self.phone),
                ("preferred_username", self.preferred_username),
            )
            if on
        ]


class AutoVerify(_ContextModel):
    email: bool = False
    phone: bool = False


class PasswordPolicy(_ContextModel):
    min_length: int = 8
    require_lowercase: bool = True
    require_uppercase: bool = True
    require_digits: bool = True
    require_symbols: bool = True
    temp_password_validity_days: int = 7


class StandardAttribute(_ContextModel):
    required: bool = False
    mutable: bool = True


class CustomAttribute(_ContextModel):
    """A custom user pool attribute.

    ``type`` selects the attribute kind; the length bounds only apply to
    ``String`` and the value bounds only to ``Number``.
    """

    type: Literal["String", "Number", "Boolean", "DateTime"]
    mutable: bool = True
    min_len: int | None = None
    max_len: int | None = None
    min: int | None = None
    max: int | None = None


class EmailConfiguration(_ContextModel):
    from_name: str
    from_address: str


class AuthSettings(_ContextModel):
    allow_unauthenticated_identities: bool = False
    auto_verify: AutoVerify = Field(default_factory=AutoVerify)
    custom_attributes: dict[str, CustomAttribute] = Field(default_factory=dict)
    email_configuration: EmailConfiguration | None = None
    password_policy: PasswordPolicy | None = None
    self_sign_up_enabled: bool = False
    sign_in_aliases: SignInAliases = Field(default_factory=SignInAliases)
    standard_attributes: dict[str, StandardAttribute] = Field(default_factory=dict)

    @field_validator("standard_attributes")
    @classmethod
    def _known_standard_attributes(
        cls, value: dict[str, StandardAttribute]
    ) -> dict[str, StandardAttribute]:
        normalized = {}
        for key, attribute in value.items():
            name = camel_case(key)
            if name not in STANDARD_ATTRIBUTE_NAMES:
                raise ValueError(f"unknown standard attribute '{key}'")
            normalized[name] = attribute
        return normalized


# =============================================================================
# Lambdas
# =============================================================================


class LambdaSettings(_ContextModel):
    runtime: str = DEFAULT_LAMBDA_RUNTIME
    handler: str = DEFAULT_LAMBDA_HANDLER
    memory: int = Field(default=DEFAULT_LAMBDA_MEMORY, ge=128, le=10240)
    timeout: int = Field(default=DEFAULT_LAMBDA_TIMEOUT, ge=1, le=900)
    retries: int | None = Field(default=None, ge=0, le=2)
    environment: dict[str, str] = Field(default_factory=dict)
    # External build step; runs in the function dir with BUNDLE_OUTPUT_DIR set
    bundle_command: list[str] | None = None


# =============================================================================
# Permissions
# =============================================================================


class LambdaPermissions(_ContextModel):
    auth: list[str] = Field(default_factory=list)
    storage: list[str] = Field(default_factory=list)
    database: list[str] = Field(default_factory=list)
    messaging: list[str] = Field(default_factory=list)


class RolePermissions(_ContextModel):
    # GraphQL type paths, e.g. "Query/fields/hello" or "Mutation/*"
    api: list[str] = Field(default_factory=list)


class AuthPermissions(_ContextModel):
    authenticated: RolePermissions = Field(default_factory=RolePermissions)
    unauthenticated: RolePermissions = Field(default_factory=RolePermissions)

    def for_role(self, role: AuthRole) -> RolePermissions:
        return getattr(self, role.value)


class PermissionsSettings(_ContextModel):
    lambdas: dict[str, LambdaPermissions] = Field(default_factory=dict)
    auth: AuthPermissions = Field(default_factory=AuthPermissions)


# =============================================================================
# Project
# =============================================================================


class ProjectSettings(_ContextModel):
    """Validated configuration context for one provisioning run."""

    env: str
    namespace: str
    auth: AuthSettings = Field(default_factory=AuthSettings)
    lambdas: dict[str, LambdaSettings] = Field(default_factory=dict)
    permissions: PermissionsSettings = Field(default_factory=PermissionsSettings)
    unresolved_data_source: DataSourceFallback = DataSourceFallback.ERROR

    @field_validator("env", "namespace")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @property
    def stack_id(self) -> str:
        """Identifier prefix shared by every resource in the stack."""
        return format_resource_id(self.namespace, self.env)

    def lambda_settings(self, name: str) -> LambdaSettings:
        return self.lambdas.get(name) or LambdaSettings()


def deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge ``override`` into a copy of ``base``.

    Nested dicts merge key by key; any other value in ``override`` replaces
    the one in ``base``.
    """
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_context(
    context: dict[str, Any],
    root_dir: Path,
    context_file_pattern: str = "context.{env}.json",
) -> dict[str, Any]:
    """Deep-merge the per-environment context file (if any) over ``context``.

    Raises:
        ConfigurationError: If no environment is given or the file is not valid JSON.
    """
    env = context.get("env")
    if not env:
        raise ConfigurationError('Please specify an environment (via "env" config)')

    context_file = Path(root_dir) / context_file_pattern.format(env=env)
    if not context_file.is_file():
        return context

    try:
        file_context = json.loads(context_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in context file {context_file}: {e}") from e

    if not isinstance(file_context, dict):
        raise ConfigurationError(f"Context file {context_file} must contain a JSON object")

    logger.info(f"Merging context file {context_file}")
    return deep_merge(context, file_context)


def load_project_settings(context: dict[str, Any]) -> ProjectSettings:
    """Validate a raw configuration context.

    Raises:
        ConfigurationError: If env/namespace are missing or any value is invalid.
    """
    if not context.get("env"):
        raise ConfigurationError('Please specify an environment (via "env" config)')
    if not context.get("namespace"):
        raise ConfigurationError('Please specify a namespace (via "namespace" config)')

    try:
        return ProjectSettings.model_validate(context)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
