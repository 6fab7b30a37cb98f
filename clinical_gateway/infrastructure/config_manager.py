"""Configuration Manager for Secure Credential Handling.

This module provides a configuration manager for the platform credentials,
token verification settings and gateway tuning. It follows the same rules for
every group: values come from the environment (optionally seeded from a
``.env`` file) or a JSON file, and secrets never appear in logs.

Security Impact:
    - Client secrets and tokens are stored as SecretStr (never logged)
    - Configuration is validated before use
    - Prevents credential leakage in stack traces

Architecture:
    - Infrastructure layer, isolated from domain
    - Type-safe configuration using Pydantic models
    - Fail-fast validation of URLs and numeric bounds
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

logger = logging.getLogger(__name__)

ONTOLOGY_RID_PREFIX = "ri.ontology.main.ontology."
ONTOLOGY_API_PREFIX = "ontology-"


def to_api_ontology_id(ontology_rid: Optional[str]) -> str:
    """Convert an ontology resource id to the form the v2 API expects.

    ``ri.ontology.main.ontology.<uuid>`` becomes ``ontology-<uuid>``; values
    already in ``ontology-`` form, or in any other form, pass through.
    """
    if not ontology_rid:
        return ""
    value = ontology_rid.strip()
    if value.startswith(ONTOLOGY_RID_PREFIX):
        return ONTOLOGY_API_PREFIX + value[len(ONTOLOGY_RID_PREFIX):]
    return value


def _split_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.replace(",", " ").split() if item.strip()]


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes")


class PlatformConfig(BaseModel):
    """Backend platform connection settings.

    Parameters:
        host: Platform base URL
        ontology_rid: Ontology resource id (or API id)
        client_id: OAuth client id for the client-credentials grant
        client_secret: OAuth client secret (SecretStr - never logged)
        token_url: OAuth token endpoint (defaults under host)
        scopes: Scopes requested with platform tokens
        static_token: Pre-issued bearer token for the typed client (SecretStr)
        timeout_seconds: HTTP timeout for platform calls
    """

    host: str = Field(default="", description="Platform base URL")
    ontology_rid: Optional[str] = Field(None, description="Ontology resource id")
    client_id: Optional[str] = Field(None, description="OAuth client id")
    client_secret: Optional[SecretStr] = Field(None, description="OAuth client secret (secret)")
    token_url: Optional[str] = Field(None, description="OAuth token endpoint")
    scopes: List[str] = Field(default_factory=list, description="Scopes requested with platform tokens")
    static_token: Optional[SecretStr] = Field(None, description="Pre-issued bearer token (secret)")
    timeout_seconds: float = Field(default=30.0, gt=0, description="HTTP timeout for platform calls")

    @field_validator("host")
    @classmethod
    def validate_host(cls, v: str) -> str:
        """Strip trailing slashes and require an http(s) URL when set."""
        v = (v or "").strip().rstrip("/")
        if v and not v.startswith(("http://", "https://")):
            raise ValueError(f"Platform host must be an http(s) URL: {v}")
        return v

    @model_validator(mode="after")
    def default_token_url(self) -> 'PlatformConfig':
        if not self.token_url and self.host:
            self.token_url = f"{self.host}/multipass/api/oauth2/token"
        return self

    @property
    def api_ontology_id(self) -> str:
        return to_api_ontology_id(self.ontology_rid)

    @property
    def has_client_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret and self.client_secret.get_secret_value())


class ObjectTypeConfig(BaseModel):
    """Platform object type API names per caller-facing object type."""

    conditions: str = "Conditions"
    observations: str = "Observations"
    procedures: str = "Procedures"
    immunizations: str = "Immunizations"
    allergies: str = "AllergyIntolerances"
    clinical_notes: str = "ClinicalNotes"
    encounters: str = "FastenEncounters"
    profile: str = Field(default="A", description="Patient profile object type")
    vitals: str = Field(default="FastenVitals", description="Object type serving vital-signs observations")

    def as_mapping(self) -> Dict[str, str]:
        """Map caller-facing keys (route names) to platform object types."""
        return {
            "conditions": self.conditions,
            "observations": self.observations,
            "procedures": self.procedures,
            "immunizations": self.immunizations,
            "allergies": self.allergies,
            "clinical-notes": self.clinical_notes,
            "encounters": self.encounters,
        }


class AuthConfig(BaseModel):
    """Inbound token verification settings.

    Parameters:
        domain: Identity provider tenant domain
        audience: Expected token audience
        algorithms: Accepted signing algorithms for JWKS-verified tokens
        shared_secret: Optional HS256 secret (SecretStr) for local development
    """

    domain: Optional[str] = Field(None, description="Identity provider tenant domain")
    audience: str = Field(default="https://api.atlas.ai", description="Expected token audience")
    algorithms: List[str] = Field(default_factory=lambda: ["RS256"])
    shared_secret: Optional[SecretStr] = Field(None, description="HS256 secret for local tokens (secret)")

    @field_validator("domain")
    @classmethod
    def validate_domain(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().removeprefix("https://").rstrip("/")
        return v or None

    @property
    def issuer(self) -> Optional[str]:
        return f"https://{self.domain}/" if self.domain else None

    @property
    def jwks_url(self) -> Optional[str]:
        return f"https://{self.domain}/.well-known/jwks.json" if self.domain else None

    @property
    def is_configured(self) -> bool:
        return bool(self.domain) or bool(self.shared_secret and self.shared_secret.get_secret_value())


class GatewayConfig(BaseModel):
    """Gateway tuning."""

    cache_ttl_seconds: float = Field(default=30.0, gt=0)
    allow_query_override: bool = False
    native_id_prefixes: List[str] = Field(default_factory=lambda: ["auth0|"])
    rate_limit_default: int = Field(default=1000, ge=1)
    rate_limit_window: int = Field(default=60, ge=1)
    rate_limit_platform: int = Field(default=300, ge=1)


class ConfigManager:
    """Configuration manager for platform credentials and gateway settings.

    Example Usage:
        ```python
        config = ConfigManager.from_environment()
        platform = config.get_platform_config()

        config = ConfigManager.from_file("gateway.json")
        auth = config.get_auth_config()
        ```
    """

    def __init__(self, config_data: Dict[str, Any]):
        """Initialize configuration manager.

        Parameters:
            config_data: Configuration dictionary with optional "platform",
                "object_types", "auth" and "gateway" sections
        """
        self._config_data = config_data
        self._platform_config: Optional[PlatformConfig] = None
        self._object_type_config: Optional[ObjectTypeConfig] = None
        self._auth_config: Optional[AuthConfig] = None
        self._gateway_config: Optional[GatewayConfig] = None

    @classmethod
    def from_environment(cls, env_file: Optional[Path] = None) -> 'ConfigManager':
        """Load configuration from environment variables.

        Environment Variables:
            - PLATFORM_HOST, PLATFORM_ONTOLOGY_RID
            - PLATFORM_CLIENT_ID, PLATFORM_CLIENT_SECRET (secret), PLATFORM_TOKEN_URL, PLATFORM_SCOPES
            - PLATFORM_TOKEN (secret), PLATFORM_TIMEOUT
            - PLATFORM_<TYPE>_OBJECT_TYPE for each clinical type, PLATFORM_PROFILE_OBJECT_TYPE,
              PLATFORM_VITALS_OBJECT_TYPE
            - AUTH0_DOMAIN, AUTH0_AUDIENCE, AUTH_JWT_SECRET (secret)
            - GATEWAY_CACHE_TTL, GATEWAY_ALLOW_PATIENT_OVERRIDE, GATEWAY_NATIVE_ID_PREFIXES
            - RATE_LIMIT_DEFAULT, RATE_LIMIT_WINDOW, RATE_LIMIT_PLATFORM

        Parameters:
            env_file: .env file to load first (defaults to the project root .env)

        Returns:
            ConfigManager instance

        Security Impact:
            - Credentials are read from environment (never logged)
            - Existing environment variables are not overridden by .env values
        """
        env_path = env_file or Path(__file__).parent.parent.parent / ".env"
        if env_path.exists():
            load_dotenv(env_path, override=False)
            logger.debug(f"Loaded environment variables from {env_path}")

        object_types = {
            key: os.getenv(f"PLATFORM_{key.upper()}_OBJECT_TYPE")
            for key in ObjectTypeConfig.model_fields
        }

        config_data = {
            "platform": {
                "host": os.getenv("PLATFORM_HOST", ""),
                "ontology_rid": os.getenv("PLATFORM_ONTOLOGY_RID"),
                "client_id": os.getenv("PLATFORM_CLIENT_ID"),
                "client_secret": os.getenv("PLATFORM_CLIENT_SECRET"),
                "token_url": os.getenv("PLATFORM_TOKEN_URL"),
                "scopes": _split_list(os.getenv("PLATFORM_SCOPES")),
                "static_token": os.getenv("PLATFORM_TOKEN"),
                "timeout_seconds": float(os.getenv("PLATFORM_TIMEOUT", "30")),
            },
            "object_types": {key: value for key, value in object_types.items() if value},
            "auth": {
                "domain": os.getenv("AUTH0_DOMAIN"),
                "audience": os.getenv("AUTH0_AUDIENCE", "https://api.atlas.ai"),
                "shared_secret": os.getenv("AUTH_JWT_SECRET"),
            },
            "gateway": {
                "cache_ttl_seconds": float(os.getenv("GATEWAY_CACHE_TTL", "30")),
                "allow_query_override": _env_bool("GATEWAY_ALLOW_PATIENT_OVERRIDE", False),
                "native_id_prefixes": _split_list(os.getenv("GATEWAY_NATIVE_ID_PREFIXES")) or ["auth0|"],
                "rate_limit_default": int(os.getenv("RATE_LIMIT_DEFAULT", "1000")),
                "rate_limit_window": int(os.getenv("RATE_LIMIT_WINDOW", "60")),
                "rate_limit_platform": int(os.getenv("RATE_LIMIT_PLATFORM", "300")),
            },
        }

        return cls(config_data)

    @classmethod
    def from_file(cls, config_path: str) -> 'ConfigManager':
        """Load configuration from a JSON file.

        Parameters:
            config_path: Path to configuration file

        Returns:
            ConfigManager instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config file is invalid
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        stat_info = config_file.stat()
        if stat_info.st_mode & 0o077 != 0:
            logger.warning(
                f"Configuration file has overly permissive permissions: {config_path}. "
                "Consider setting to 600 for credential files."
            )

        try:
            with open(config_file, 'r') as f:
                config_data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file: {str(e)}")

        return cls(config_data)

    def _section(self, name: str) -> Dict[str, Any]:
        section = self._config_data.get(name) or {}
        return {key: value for key, value in section.items() if value is not None}

    def get_platform_config(self) -> PlatformConfig:
        if self._platform_config is None:
            self._platform_config = PlatformConfig(**self._section("platform"))
        return self._platform_config

    def get_object_type_config(self) -> ObjectTypeConfig:
        if self._object_type_config is None:
            self._object_type_config = ObjectTypeConfig(**self._section("object_types"))
        return self._object_type_config

    def get_auth_config(self) -> AuthConfig:
        if self._auth_config is None:
            self._auth_config = AuthConfig(**self._section("auth"))
        return self._auth_config

    def get_gateway_config(self) -> GatewayConfig:
        if self._gateway_config is None:
            self._gateway_config = GatewayConfig(**self._section("gateway"))
        return self._gateway_config

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key.

        Parameters:
            key: Configuration key (supports dot notation, e.g., "platform.host")
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split(".")
        value = self._config_data

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default
