"""
Configuration management for MDB_ODM.

Two layers of configuration exist:

* ``OdmSettings`` holds process defaults read from the environment
  (``MDB_ODM_*`` variables or a ``.env`` file). They seed the options of every
  ``MongoODM`` instance.
* ``ConnectionOptions`` validates the options handed to
  ``Connection.open_uri()``. Options are checked synchronously, before any
  network activity, so misconfiguration surfaces at the call site.

Example:
    settings = OdmSettings(mongo_uri="mongodb://db:27017/app")
    odm = MongoODM(settings=settings)
    await odm.connect()
"""

from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (DEFAULT_APP_NAME, DEFAULT_BUFFER_TIMEOUT_MS,
                        DEFAULT_MONGO_URI, DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
                        SECONDARY_INDEX_MESSAGE, SECONDARY_READ_PREFERENCES)
from .exceptions import ConfigurationError


class OdmSettings(BaseSettings):
    """Process-level defaults for MDB_ODM."""

    # =========================================================================
    # CONNECTION
    # =========================================================================
    mongo_uri: str = DEFAULT_MONGO_URI
    app_name: str = DEFAULT_APP_NAME
    server_selection_timeout_ms: int = Field(default=DEFAULT_SERVER_SELECTION_TIMEOUT_MS, ge=1)

    # =========================================================================
    # BUFFERING
    # =========================================================================
    buffer_commands: bool = True
    buffer_timeout_ms: int = Field(default=DEFAULT_BUFFER_TIMEOUT_MS, ge=0)

    # =========================================================================
    # MODELS
    # =========================================================================
    auto_index: bool = True
    auto_create: bool = True
    overwrite_models: bool = False

    model_config = SettingsConfigDict(
        env_prefix="MDB_ODM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def instance_options(self) -> dict[str, Any]:
        """Options in the form ``MongoODM.get()`` exposes them."""
        return {
            "bufferCommands": self.buffer_commands,
            "bufferTimeoutMS": self.buffer_timeout_ms,
            "autoIndex": self.auto_index,
            "autoCreate": self.auto_create,
            "overwriteModels": self.overwrite_models,
        }


class ConnectionOptions(BaseModel):
    """
    Options accepted by ``Connection.open_uri()``.

    Known keys are validated; any other key is forwarded untouched to
    ``AsyncIOMotorClient``.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow", arbitrary_types_allowed=True)

    buffer_commands: Optional[bool] = Field(default=None, alias="bufferCommands")
    buffer_timeout_ms: Optional[int] = Field(default=None, alias="bufferTimeoutMS", ge=0)
    auto_index: Optional[bool] = Field(default=None, alias="autoIndex")
    auto_create: Optional[bool] = Field(default=None, alias="autoCreate")
    db_name: Optional[str] = Field(default=None, alias="dbName")
    read_preference: Any = Field(default=None, alias="readPreference")
    server_selection_timeout_ms: Optional[int] = Field(
        default=None, alias="serverSelectionTimeoutMS", ge=1
    )
    user: Optional[str] = None
    password: Optional[str] = Field(default=None, alias="pass")
    auth: Optional[dict[str, Any]] = None
    config: dict[str, Any] = Field(default_factory=dict)

    @property
    def read_preference_mode(self) -> Optional[str]:
        """Read preference as a mode name, for strings and driver objects alike."""
        if self.read_preference is None or isinstance(self.read_preference, str):
            return self.read_preference
        return getattr(self.read_preference, "mongos_mode", None)

    def derived_config(self) -> dict[str, Any]:
        """
        Connection configuration derived from the options.

        Top-level keys take precedence over the nested ``config`` mapping.
        """
        derived = dict(self.config)
        for key, value in (
            ("autoIndex", self.auto_index),
            ("autoCreate", self.auto_create),
            ("bufferCommands", self.buffer_commands),
            ("bufferTimeoutMS", self.buffer_timeout_ms),
        ):
            if value is not None:
                derived[key] = value
        return derived

    def driver_options(self, **defaults: Any) -> dict[str, Any]:
        """Keyword arguments for ``AsyncIOMotorClient``."""
        kwargs: dict[str, Any] = dict(self.model_extra or {})
        if self.server_selection_timeout_ms is not None:
            kwargs["serverSelectionTimeoutMS"] = self.server_selection_timeout_ms
        if isinstance(self.read_preference, str):
            kwargs["readPreference"] = self.read_preference
        elif self.read_preference is not None:
            kwargs["read_preference"] = self.read_preference
        if self.user:
            kwargs["username"] = self.user
        if self.password:
            kwargs["password"] = self.password
        if self.auth:
            for key in ("authMechanism", "authSource", "authMechanismProperties"):
                if key in self.auth:
                    kwargs[key] = self.auth[key]
        for key, value in defaults.items():
            kwargs.setdefault(key, value)
        return kwargs


def resolve_connection_options(
    options: "Mapping[str, Any] | ConnectionOptions | None",
) -> ConnectionOptions:
    """
    Validate connection options and apply the read-preference rules.

    Connections reading from secondaries must not build indexes or create
    collections: ``autoIndex`` and ``autoCreate`` are switched off for them,
    and explicitly enabling either one is an error.

    Args:
        options: Raw options mapping (camelCase keys) or validated options

    Returns:
        Validated ``ConnectionOptions``

    Raises:
        ConfigurationError: If the options are invalid
    """
    if isinstance(options, ConnectionOptions):
        resolved = options.model_copy(deep=True)
    else:
        try:
            resolved = ConnectionOptions.model_validate(dict(options or {}))
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid connection options: {e}",
                context={"error_count": e.error_count()},
            ) from e

    mode = resolved.read_preference_mode
    if mode in SECONDARY_READ_PREFERENCES:
        requested = [
            key
            for key, value in (("autoCreate", resolved.auto_create), ("autoIndex", resolved.auto_index))
            if value is True or resolved.config.get(key) is True
        ]
        if requested:
            raise ConfigurationError(
                SECONDARY_INDEX_MESSAGE, config_key="readPreference", config_value=mode
            )
        resolved.auto_index = False
        resolved.auto_create = False

    return resolved


# =============================================================================
# GLOBAL SETTINGS (Lazy Initialization)
# =============================================================================

_settings: Optional[OdmSettings] = None


def get_settings() -> OdmSettings:
    """Get the process-wide settings, creating them from the environment."""
    global _settings
    if _settings is None:
        _settings = OdmSettings()
    return _settings


def set_settings(settings_instance: OdmSettings) -> None:
    """Replace the process-wide settings. Primarily for testing purposes."""
    global _settings
    _settings = settings_instance


def reset_settings() -> None:
    """Forget the process-wide settings so the next call re-reads the environment."""
    global _settings
    _settings = None
