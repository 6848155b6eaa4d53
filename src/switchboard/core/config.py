"""
switchboard.core.config - Configuration Management
====================================================

This module provides the configuration system for Switchboard.
Configuration can be loaded from multiple sources with the following
priority (highest first):

    1. Explicit constructor arguments (load_config() passes the values of
       switchboard.yaml this way, so file values beat the environment)
    2. Environment variables (prefixed with SWITCHBOARD_)
    3. Default values defined in the models below

Architecture Context:
    The top-level SwitchboardConfig is created once at startup and handed
    to the components that need it:

        SwitchboardConfig
            ├── RouterConfig     → Router (duplicate policy), AuthMiddleware
            ├── ClientConfig     → Client (request timeout)
            ├── source_id        → Client / Broadcaster envelope source
            ├── max_handler_retries → RetryPolicy.from_config()
            └── log_level/format → configure_logging()

Usage:
    # Load from environment variables:
    config = SwitchboardConfig()

    # Load from YAML file:
    config = load_config("switchboard.yaml")

    # Explicit overrides:
    config = SwitchboardConfig(log_level="DEBUG", source_id="popup")

Environment Variables:
    SWITCHBOARD_LOG_LEVEL=DEBUG
    SWITCHBOARD_SOURCE_ID=side-panel
    SWITCHBOARD_CLIENT__REQUEST_TIMEOUT_SECONDS=10
    SWITCHBOARD_ROUTER__DUPLICATE_POLICY=reject
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings

from switchboard.core.enums import DuplicatePolicy
from switchboard.core.exceptions import ConfigurationError


# =============================================================================
# Router Configuration
# =============================================================================
class RouterConfig(BaseModel):
    """Configuration for Router instances.

    Attributes:
        duplicate_policy: What register() does when a type already has a
            handler. OVERWRITE keeps the last registration, REJECT raises.
        public_message_prefixes: Type prefixes AuthMiddleware lets through
            while the sender is unauthenticated (the auth handshake itself
            must be reachable before login).
    """

    duplicate_policy: DuplicatePolicy = Field(
        default=DuplicatePolicy.OVERWRITE,
        description="Re-registration policy: 'overwrite' or 'reject'",
    )
    public_message_prefixes: list[str] = Field(
        default_factory=lambda: ["AUTH_"],
        description="Message type prefixes allowed without authentication",
    )


# =============================================================================
# Client Configuration
# =============================================================================
class ClientConfig(BaseModel):
    """Configuration for Client instances.

    Attributes:
        request_timeout_seconds: How long a request waits for its reply
            before failing with RequestTimeoutError. None waits forever.
    """

    request_timeout_seconds: Optional[float] = Field(
        default=30.0,
        gt=0,
        description="Reply timeout in seconds (None = wait indefinitely)",
    )


# =============================================================================
# Main Configuration
# =============================================================================
# Environment Variable Mapping:
#   SWITCHBOARD_LOG_LEVEL                       → config.log_level
#   SWITCHBOARD_SOURCE_ID                       → config.source_id
#   SWITCHBOARD_CLIENT__REQUEST_TIMEOUT_SECONDS → config.client.request_timeout_seconds
#   SWITCHBOARD_ROUTER__DUPLICATE_POLICY        → config.router.duplicate_policy
# =============================================================================
class SwitchboardConfig(BaseSettings):
    """Top-level configuration for Switchboard.

    Attributes:
        log_level: Minimum level for structlog output.
        log_format: "console" for human-readable logs, "json" for log shipping.
        source_id: Endpoint identifier stamped on envelopes this process
            sends (e.g., "background", "popup", "side-panel").
        max_handler_retries: Default bound for retry-wrapped handlers.
        client: Client configuration (see ClientConfig).
        router: Router configuration (see RouterConfig).

    Example:
        >>> config = SwitchboardConfig(
        ...     source_id="popup",
        ...     client=ClientConfig(request_timeout_seconds=5.0),
        ... )
    """

    # -------------------------------------------------------------------------
    # General Settings
    # -------------------------------------------------------------------------
    log_level: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    log_format: Literal["console", "json"] = Field(
        default="console",
        description="Log renderer: 'console' or 'json'",
    )
    source_id: str = Field(
        default="background",
        min_length=1,
        description="Endpoint identifier stamped on outgoing envelopes",
    )
    max_handler_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Maximum retries for retry-wrapped handlers",
    )

    # -------------------------------------------------------------------------
    # Nested Configurations
    # -------------------------------------------------------------------------
    client: ClientConfig = Field(
        default_factory=ClientConfig,
        description="Client configuration",
    )
    router: RouterConfig = Field(
        default_factory=RouterConfig,
        description="Router configuration",
    )

    model_config = {
        "env_prefix": "SWITCHBOARD_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
    }


# =============================================================================
# Configuration Loader
# =============================================================================
def load_config(path: Optional[str] = None) -> SwitchboardConfig:
    """Load Switchboard configuration from a YAML file and/or environment.

    Args:
        path: Path to a YAML configuration file. If None, looks for
            'switchboard.yaml' in the current directory, falling back to
            pure defaults + environment variables.

    Returns:
        A fully validated SwitchboardConfig instance.

    Raises:
        ConfigurationError: If the YAML is malformed, its top level is not
            a mapping, or a value fails validation.
        FileNotFoundError: If an explicit path is provided but doesn't exist.
    """
    if path is None:
        default_path = Path("switchboard.yaml")
        if default_path.exists():
            path = str(default_path)

    yaml_data: dict[str, Any] = {}
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(config_path) as f:
            try:
                raw_data = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise ConfigurationError(
                    message=f"Invalid YAML in configuration file: {path}",
                    error_code="INVALID_YAML",
                    details={"path": str(path), "error": str(exc)},
                ) from exc

        if raw_data is None:
            raw_data = {}
        if not isinstance(raw_data, dict):
            raise ConfigurationError(
                message="Configuration file must contain a mapping at the top level",
                error_code="INVALID_CONFIG_SHAPE",
                details={"path": str(path), "type": type(raw_data).__name__},
            )
        yaml_data = raw_data

    try:
        return SwitchboardConfig(**yaml_data)
    except ValidationError as exc:
        raise ConfigurationError(
            message="Configuration failed validation",
            error_code="INVALID_CONFIG_VALUE",
            details={"errors": exc.errors(include_url=False)},
        ) from exc


def get_default_config() -> SwitchboardConfig:
    """Create a SwitchboardConfig with defaults and environment overrides."""
    return SwitchboardConfig()
