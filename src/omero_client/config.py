"""omero-client configuration using pydantic-settings.

All configuration is strongly typed and supports environment variables
and .env files.
"""

from typing import TypeGuard

from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid.

    Example:
        >>> Settings(_env_file=None).require_credentials()  # doctest: +ELLIPSIS
        Traceback (most recent call last):
        ...
        ConfigError: OMERO username not configured. Set it in .env file or
        OMERO_USERNAME environment variable.
    """

    def __init__(self, key_name: str, env_var: str) -> None:
        """Initialize configuration error.

        Args:
            key_name: Human-readable name of the missing key.
            env_var: Environment variable name to set.
        """
        self.key_name = key_name
        self.env_var = env_var
        message = (
            f"{key_name} not configured. "
            f"Set it in .env file or {env_var} environment variable."
        )
        super().__init__(message)


class Settings(BaseSettings):
    """Application settings loaded from environment variables or .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    # Credentials
    OMERO_USERNAME: str | None = None
    OMERO_PASSWORD: str | None = None

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "console"  # "console" or "json"

    # HTTP transport
    REQUEST_TIMEOUT_SECONDS: float = 20.0
    REQUEST_RETRIES: int = 2  # extra attempts on connect errors
    MAX_CONNECTIONS: int = 16
    MAX_REQUESTS_PER_SECOND: int = 100

    # Session
    KEEPALIVE_INTERVAL_SECONDS: float = 60.0
    KEEPALIVE_FAILURE_THRESHOLD: int = 1  # consecutive missed pings

    # Browsing
    ORPHANED_IMAGES_BATCH_SIZE: int = 16
    THUMBNAIL_SIZE: int = 256

    # Pixels
    JPEG_QUALITY: float = 0.9  # 0-1, as sent to render_image_region
    PIXEL_BUFFER_PORT: int = 8082
    ALLOW_SMOOTH_INTERPOLATION: bool = False

    @staticmethod
    def _is_configured_secret(value: str | None) -> TypeGuard[str]:
        return value is not None and value.strip() != ""

    def require_credentials(self) -> tuple[str, str]:
        """Get the OMERO username and password, raising ConfigError if unset.

        Returns:
            A (username, password) tuple.

        Raises:
            ConfigError: If OMERO_USERNAME or OMERO_PASSWORD is not configured.
        """
        if not self._is_configured_secret(self.OMERO_USERNAME):
            raise ConfigError("OMERO username", "OMERO_USERNAME")
        if not self._is_configured_secret(self.OMERO_PASSWORD):
            raise ConfigError("OMERO password", "OMERO_PASSWORD")
        return self.OMERO_USERNAME, self.OMERO_PASSWORD


# Singleton instance for import convenience
settings = Settings()
