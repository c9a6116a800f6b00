"""
Secure configuration management for the bug tracker to GitHub migration.

Credentials never live in the main configuration file. The GitHub token is
read from the environment (optionally via a ``.env`` file) or from a secret
file; the FTP user name and password come from the environment or from a
``key=value`` credentials file.
"""

import os
from typing import Dict, Any, Optional, Tuple
from pathlib import Path

from dotenv import load_dotenv

from .migration_config import MigrationConfig, ConfigLoader
from ..exceptions import ConfigurationError, ValidationError

DEFAULT_SECRET_FILE = 'secret.txt'
DEFAULT_CREDENTIALS_FILE = 'credentials.txt'


class CredentialProvider:
    """
    Resolves secrets for the GitHub API and the attachment file store.

    Environment variables win over files so secrets can be injected without
    touching disk.
    """

    def __init__(self, secret_file: str = DEFAULT_SECRET_FILE,
                 credentials_file: str = DEFAULT_CREDENTIALS_FILE,
                 load_env: bool = True):
        self.secret_file = secret_file
        self.credentials_file = credentials_file
        if load_env:
            load_dotenv()

    @staticmethod
    def _read_text(path: str, description: str) -> str:
        try:
            return Path(path).read_text(encoding='utf-8')
        except FileNotFoundError:
            raise ConfigurationError(f"{description} not found: {path}")
        except PermissionError:
            raise ConfigurationError(f"Permission denied reading {description.lower()}: {path}")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigurationError(f"Unable to read {description.lower()} {path}: {e}")

    def get_github_token(self) -> str:
        """
        Return the GitHub personal access token.

        Raises:
            ConfigurationError: If no token is set and the secret file cannot be read
            ValidationError: If the token is empty
        """
        token = os.getenv('GITHUB_TOKEN') or os.getenv('GITHUB_API_TOKEN')
        if not token:
            token = self._read_text(self.secret_file, 'GitHub secret file').strip()
        if not token:
            raise ValidationError(f"GitHub token is empty. Set GITHUB_TOKEN or write it to {self.secret_file}.")
        return token

    def get_file_store_credentials(self) -> Tuple[str, str]:
        """
        Return the (username, password) pair for the file store.

        Raises:
            ConfigurationError: If the credentials cannot be found
        """
        username = os.getenv('FILESTORE_USERNAME')
        password = os.getenv('FILESTORE_PASSWORD')
        if username and password is not None:
            return username, password

        username, password = parse_credentials(
            self._read_text(self.credentials_file, 'Credentials file')
        )
        if not username or password is None:
            raise ConfigurationError(
                f"Credentials file {self.credentials_file} must contain 'username=' and 'password=' lines"
            )
        return username, password


def parse_credentials(text: str) -> Tuple[Optional[str], Optional[str]]:
    """Extract ``username=`` and ``password=`` values from a credentials file."""
    username = None
    password = None
    for line in text.splitlines():
        if line.startswith('username='):
            username = line[len('username='):]
        elif line.startswith('password='):
            password = line[len('password='):]
    return username, password


class SecureConfigLoader(ConfigLoader):
    """
    Configuration loader that injects secrets from a CredentialProvider.
    """

    @staticmethod
    def load(data: Dict[str, Any], credentials: CredentialProvider) -> MigrationConfig:
        """
        Fill in secrets and build a validated configuration.

        Args:
            data: Configuration dictionary (from file and/or command line)
            credentials: Provider used for any missing secret

        Returns:
            Validated MigrationConfig object
        """
        data = dict(data)
        github = dict(data.get('github') or {})
        if not github.get('token'):
            github['token'] = credentials.get_github_token()
        data['github'] = github

        if data.get('reupload'):
            file_store = dict(data.get('file_store') or {})
            if not file_store.get('username') or file_store.get('password') is None:
                file_store['username'], file_store['password'] = credentials.get_file_store_credentials()
            data['file_store'] = file_store

        SecureConfigLoader._validate_tokens(data)
        return ConfigLoader.load_from_dict(data)

    @staticmethod
    def _validate_tokens(data: Dict[str, Any]) -> None:
        """
        Validate token formats and presence.

        Raises:
            ValidationError: If the GitHub token is missing or malformed
        """
        gh_token = data.get('github', {}).get('token')
        if not gh_token:
            raise ValidationError("GitHub token is required. Set GITHUB_TOKEN environment variable or use a secret file.")
        if not SecureConfigLoader._is_valid_github_token(gh_token):
            raise ValidationError("Invalid GitHub token format. Expected a token without whitespace.")

    @staticmethod
    def _is_valid_github_token(token: str) -> bool:
        """
        Validate GitHub token format.

        Classic tokens (ghp_), fine-grained tokens (github_pat_) and the
        older 40 character hex tokens are all accepted.
        """
        return bool(token) and not any(c.isspace() for c in token)
