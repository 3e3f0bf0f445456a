"""
Configuration management for the report migrator.
Handles .env-based configuration for the report server connection and batch limits.
"""

from dataclasses import dataclass, field
from typing import Optional
from decouple import config as env_config


SERVICE_ENDPOINT = "ReportService2010.asmx"

DEFAULT_TIMEOUT = 60  # Large RDL payloads
DEFAULT_MAX_UPLOAD_ITEMS = 200


@dataclass(frozen=True)
class ConnectionContext:
    """
    Report server connection details.

    Immutable once constructed. The SOAP endpoint is derived from the server URL.
    """
    server_url: str
    username: str
    password: str = field(repr=False)

    @property
    def endpoint(self) -> str:
        """Normalized SOAP endpoint (e.g., http://host/ReportServer/ReportService2010.asmx)"""
        return f"{self.server_url.rstrip('/')}/{SERVICE_ENDPOINT}"

    def __repr__(self) -> str:
        """Safe representation without password"""
        return f"ConnectionContext(server_url={self.server_url}, username={self.username})"


@dataclass
class MigratorConfig:
    """
    Main configuration class for the migrator.
    Manages the report server connection, HTTP timeout and batch limits.
    """
    server_url: Optional[str] = None
    username: str = ""
    password: str = ""

    # HTTP client settings
    timeout: int = DEFAULT_TIMEOUT

    # Batch settings
    max_upload_items: int = DEFAULT_MAX_UPLOAD_ITEMS

    log_level: str = "INFO"

    def context(self) -> ConnectionContext:
        """
        Build the connection context for this configuration.

        Returns:
            ConnectionContext: Immutable connection details

        Raises:
            ValueError: If no server URL is configured
        """
        if not self.server_url:
            raise ValueError("Report server URL not configured. Set SSRS_SERVER_URL.")
        return ConnectionContext(
            server_url=self.server_url,
            username=self.username or "",
            password=self.password or "",
        )

    def __repr__(self) -> str:
        """Safe representation without password"""
        return (f"MigratorConfig(server_url={self.server_url}, username={self.username}, "
                f"timeout={self.timeout}, max_upload_items={self.max_upload_items})")

    @classmethod
    def from_env(cls) -> 'MigratorConfig':
        """
        Load configuration from environment variables (.env file).

        Returns:
            MigratorConfig: Configuration loaded from environment
        """
        return cls(
            server_url=env_config('SSRS_SERVER_URL', default=None),
            username=env_config('SSRS_USERNAME', default=''),
            password=env_config('SSRS_PASSWORD', default=''),
            timeout=env_config('SSRS_TIMEOUT', default=DEFAULT_TIMEOUT, cast=int),
            max_upload_items=env_config('SSRS_MAX_UPLOAD_ITEMS', default=DEFAULT_MAX_UPLOAD_ITEMS, cast=int),
            log_level=env_config('SSRS_LOG_LEVEL', default='INFO'),
        )

    @classmethod
    def from_dict(cls, config_dict: dict) -> 'MigratorConfig':
        """
        Load configuration from dictionary.

        Args:
            config_dict: Dictionary with configuration values

        Returns:
            MigratorConfig: Configuration loaded from dictionary
        """
        return cls(
            server_url=config_dict.get('server_url'),
            username=config_dict.get('username', ''),
            password=config_dict.get('password', ''),
            timeout=config_dict.get('timeout', DEFAULT_TIMEOUT),
            max_upload_items=config_dict.get('max_upload_items', DEFAULT_MAX_UPLOAD_ITEMS),
            log_level=config_dict.get('log_level', 'INFO'),
        )
