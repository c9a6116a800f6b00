"""
Type-safe configuration management for the bug tracker to GitHub migration.

This module provides structured configuration classes and validation
to ensure all required settings are present and properly formatted.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Optional
from pathlib import Path

from ..exceptions import ConfigurationError, ValidationError

DEFAULT_ROOT_URL = 'https://www.apsim.info/BugTracker/'
DEFAULT_GITHUB_OWNER = 'APSIMInitiative'
DEFAULT_GITHUB_REPO = 'APSIMClassic'
DEFAULT_FILE_STORE_HOST = 'www.apsim.info'

ATTACHMENT_FAILURE_POLICIES = ('abort', 'skip')


class MigrationMode(Enum):
    """Mutually exclusive operations selected at startup."""

    FULL_TRANSFER = 'full-transfer'
    FIX_LINKS = 'fix-links'
    FIX_LINKS_V2 = 'fix-links-v2'
    FIX_FORMATTING = 'fix-formatting'
    CLOSE_SYNC = 'close-sync'


@dataclass
class SourceConfig:
    """
    Configuration for the legacy bug tracker website.

    Attributes:
        root_url: Root URL of the bug tracker, with a trailing slash
        max_bugs: Maximum number of bugs to extract (<= 0 for unlimited)
    """
    root_url: str = DEFAULT_ROOT_URL
    max_bugs: int = 0

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.root_url or not self.root_url.strip():
            raise ValidationError("Bug tracker URL cannot be empty")
        self.root_url = self.root_url.strip()
        if not self.root_url.startswith(('http://', 'https://')):
            raise ValidationError(f"Bug tracker URL must be absolute: '{self.root_url}'")
        if not self.root_url.endswith('/'):
            self.root_url += '/'


@dataclass
class GitHubConfig:
    """
    Configuration for GitHub API access.

    Attributes:
        owner: GitHub repository owner (user or organization)
        repo: GitHub repository name
        token: GitHub personal access token
    """
    owner: str
    repo: str
    token: str

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.owner or not self.owner.strip():
            raise ValidationError("GitHub owner cannot be empty")
        if not self.repo or not self.repo.strip():
            raise ValidationError("GitHub repository cannot be empty")
        if not self.token or not self.token.strip():
            raise ValidationError("GitHub token cannot be empty")


@dataclass
class FileStoreConfig:
    """
    Configuration for the FTP server that re-hosts attachments.

    Attributes:
        host: FTP host, also the public web host of uploaded files
        port: FTP port
        web_root: Directory on the server that maps to the web root
        attachment_dir: Directory under web_root holding one folder per comment
        username: FTP user name (only needed when re-uploading)
        password: FTP password (only needed when re-uploading)
        scheme: Scheme of the public URL of uploaded files
    """
    host: str = DEFAULT_FILE_STORE_HOST
    port: int = 21
    web_root: str = 'APSIM'
    attachment_dir: str = 'BugAttachments'
    username: Optional[str] = None
    password: Optional[str] = None
    scheme: str = 'https'

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.host or not self.host.strip():
            raise ValidationError("File store host cannot be empty")
        self.host = self.host.strip().strip('/')
        try:
            self.port = int(self.port)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid file store port: '{self.port}'")
        if not 0 < self.port < 65536:
            raise ValidationError(f"Invalid file store port: '{self.port}'")
        self.attachment_dir = self.attachment_dir.strip('/')
        if not self.attachment_dir:
            raise ValidationError("Attachment directory cannot be empty")

    @property
    def has_credentials(self) -> bool:
        return bool(self.username) and self.password is not None

    def public_url(self, remote_path: str) -> str:
        """Public URL of a file stored at ``remote_path`` (relative to web_root)."""
        return f"{self.scheme}://{self.host}/{remote_path.lstrip('/')}"


@dataclass
class MigrationConfig:
    """
    Complete migration configuration.

    Attributes:
        source: Legacy bug tracker configuration
        github: GitHub API configuration
        file_store: Attachment file store configuration
        mode: Operation to run
        reupload: Whether to download and re-upload attachments
        resume_after_id: Bugs with an id at or below this value are treated as already migrated
        close_on_transfer: Whether to close issues for closed bugs while transferring
        attachment_failure_policy: 'abort' the run or 'skip' the bug when an attachment fails
        output_dir: Directory for the log file and staged attachments
        dry_run: Simulate GitHub writes
        verbosity: Console verbosity (0 quiet, 1 normal, 2+ verbose)
        log_file: Optional log file path
    """
    source: SourceConfig
    github: GitHubConfig
    file_store: FileStoreConfig = field(default_factory=FileStoreConfig)
    mode: MigrationMode = field(default=MigrationMode.FULL_TRANSFER)
    reupload: bool = field(default=False)
    resume_after_id: int = field(default=0)
    close_on_transfer: bool = field(default=False)
    attachment_failure_policy: str = field(default='abort')
    output_dir: str = field(default_factory=lambda: '.')
    dry_run: bool = field(default=False)
    verbosity: int = field(default=1)
    log_file: Optional[str] = field(default=None)

    def __post_init__(self):
        """Validate configuration after initialization."""
        if isinstance(self.mode, str):
            try:
                self.mode = MigrationMode(self.mode)
            except ValueError:
                raise ValidationError(f"Unknown migration mode: '{self.mode}'")

        if self.attachment_failure_policy not in ATTACHMENT_FAILURE_POLICIES:
            raise ValidationError(
                f"Invalid attachment failure policy '{self.attachment_failure_policy}'. "
                f"Expected one of: {', '.join(ATTACHMENT_FAILURE_POLICIES)}"
            )

        if self.reupload and not self.file_store.has_credentials:
            raise ValidationError("File store username and password are required to re-upload attachments")

        # Ensure output directory exists
        output_path = Path(self.output_dir)
        output_path.mkdir(parents=True, exist_ok=True)

    @property
    def attachment_staging_dir(self) -> Path:
        return Path(self.output_dir) / 'attachments_temp'


class ConfigValidator:
    """
    Validates configuration data before creating config objects.
    """

    @staticmethod
    def validate_github_data(data: Dict[str, Any]) -> None:
        """Validate GitHub configuration data."""
        required_fields = ['owner', 'repo', 'token']
        for field_name in required_fields:
            if field_name not in data:
                raise ConfigurationError(f"Missing required GitHub field: '{field_name}'")
            if not data[field_name] or not str(data[field_name]).strip():
                raise ValidationError(f"GitHub field '{field_name}' cannot be empty")

    @staticmethod
    def validate_section(name: str, data: Any) -> None:
        """Validate that an optional section is a JSON object."""
        if data is not None and not isinstance(data, dict):
            raise ConfigurationError(f"Section '{name}' must be an object, got {type(data).__name__}")


class ConfigLoader:
    """
    Loads and validates configuration from JSON files.
    """

    @staticmethod
    def read_file(config_path: str) -> Dict[str, Any]:
        """
        Read a JSON configuration file into a dictionary.

        Raises:
            ConfigurationError: If the file is missing, unreadable or not valid JSON
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        if not config_path.is_file():
            raise ConfigurationError(f"Configuration path is not a file: {config_path}")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                data = json.load(f)

        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in configuration file: {e}")
        except PermissionError:
            raise ConfigurationError(f"Permission denied reading configuration file: {config_path}")
        except UnicodeDecodeError as e:
            raise ConfigurationError(f"Configuration file encoding error: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError("Configuration file must contain a JSON object")
        return data

    @staticmethod
    def load_from_file(config_path: str) -> MigrationConfig:
        """
        Load and validate configuration from JSON file.

        Args:
            config_path: Path to the configuration JSON file

        Returns:
            Validated MigrationConfig object

        Raises:
            ConfigurationError: If configuration file is invalid or missing required keys
            ValidationError: If configuration data is invalid
        """
        return ConfigLoader.load_from_dict(ConfigLoader.read_file(config_path))

    @staticmethod
    def load_from_dict(data: Dict[str, Any]) -> MigrationConfig:
        """
        Load and validate configuration from dictionary.

        Args:
            data: Configuration dictionary

        Returns:
            Validated MigrationConfig object

        Raises:
            ConfigurationError: If configuration data is missing required keys
            ValidationError: If configuration data is invalid
        """
        if 'github' not in data:
            raise ConfigurationError("Missing required section 'github' in configuration data")

        ConfigValidator.validate_github_data(data['github'])
        ConfigValidator.validate_section('source', data.get('source'))
        ConfigValidator.validate_section('file_store', data.get('file_store'))

        try:
            source_config = SourceConfig(**(data.get('source') or {}))
            github_config = GitHubConfig(**data['github'])
            file_store_config = FileStoreConfig(**(data.get('file_store') or {}))

            return MigrationConfig(
                source=source_config,
                github=github_config,
                file_store=file_store_config,
                mode=data.get('mode', MigrationMode.FULL_TRANSFER.value),
                reupload=bool(data.get('reupload', False)),
                resume_after_id=int(data.get('resume_after_id', 0)),
                close_on_transfer=bool(data.get('close_on_transfer', False)),
                attachment_failure_policy=data.get('attachment_failure_policy', 'abort'),
                output_dir=data.get('output_dir', '.'),
                dry_run=bool(data.get('dry_run', False)),
                verbosity=int(data.get('verbosity', 1)),
                log_file=data.get('log_file')
            )

        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid configuration format: {e}")
