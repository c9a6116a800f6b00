#!/usr/bin/env python3
"""
Bug tracker to GitHub migration CLI.

Transfers bugs from a BugTracker.NET website to GitHub issues, or runs one
of the passes that repair issues created by an earlier transfer.
"""

import argparse
import sys
from typing import Any, Dict, List, Optional

from bugtracker_migration.exceptions import (
    MigrationError,
    ConfigurationError,
    ValidationError
)
from bugtracker_migration.config.migration_config import (
    ConfigLoader,
    DEFAULT_GITHUB_OWNER,
    DEFAULT_GITHUB_REPO,
    DEFAULT_ROOT_URL,
    MigrationMode
)
from bugtracker_migration.config.secure_config import (
    CredentialProvider,
    DEFAULT_CREDENTIALS_FILE,
    DEFAULT_SECRET_FILE,
    SecureConfigLoader
)
from bugtracker_migration.core.orchestrator import MigrationOrchestrator


def create_main_parser():
    """Create and configure the argument parser.

    Returns
    -------
    argparse.ArgumentParser
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(
        description='Transfer bugs from BugTracker.NET to GitHub issues',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
EXAMPLES:
  # Transfer every bug, re-hosting attachments on the FTP server
  python migrate_bugtracker_to_github.py --reupload

  # Resume a transfer that stopped after bug 1234
  python migrate_bugtracker_to_github.py --resume-after 1234

  # Close issues whose legacy bug is closed
  python migrate_bugtracker_to_github.py --close-issues

CREDENTIALS:
  The GitHub token is read from GITHUB_TOKEN (or a .env file) or from the
  secret file. FTP credentials are read from FILESTORE_USERNAME and
  FILESTORE_PASSWORD or from the credentials file (username=/password= lines).
        """
    )

    parser.add_argument('-q', '--quiet', action='count', default=0,
                        help='Print less output (repeatable)')
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help='Print more output (repeatable)')
    parser.add_argument('-n', dest='max_bugs', type=int, default=None,
                        help='Maximum number of bugs (or issues) to process; 0 or less for all')
    parser.add_argument('-u', '--url', default=None,
                        help=f'Root URL of the bug tracker (default: {DEFAULT_ROOT_URL})')
    parser.add_argument('--reupload', action='store_true', default=None,
                        help='Download attachments and upload them to the file store')

    modes = parser.add_mutually_exclusive_group()
    modes.add_argument('--fix-links', dest='mode', action='store_const', const=MigrationMode.FIX_LINKS.value,
                       help='Add the missing scheme to attachment links in migrated comments')
    modes.add_argument('--fix-links2', dest='mode', action='store_const', const=MigrationMode.FIX_LINKS_V2.value,
                       help='Point links to the bug tracker at the re-hosted attachments')
    modes.add_argument('--close-issues', dest='mode', action='store_const', const=MigrationMode.CLOSE_SYNC.value,
                       help='Close issues whose legacy bug is closed')
    modes.add_argument('--fix-formatting', dest='mode', action='store_const',
                       const=MigrationMode.FIX_FORMATTING.value,
                       help='Remove tab characters from migrated issues and comments')

    parser.add_argument('--config', help='Path to a JSON configuration file')
    parser.add_argument('--resume-after', dest='resume_after_id', type=int, default=None,
                        help='Skip bugs with an id at or below this value')
    parser.add_argument('--owner', default=None, help=f'GitHub owner (default: {DEFAULT_GITHUB_OWNER})')
    parser.add_argument('--repo', default=None, help=f'GitHub repository (default: {DEFAULT_GITHUB_REPO})')
    parser.add_argument('--secret-file', default=DEFAULT_SECRET_FILE,
                        help='File holding the GitHub token')
    parser.add_argument('--credentials-file', default=DEFAULT_CREDENTIALS_FILE,
                        help='File holding the FTP user name and password')
    parser.add_argument('--dry-run', action='store_true', default=None,
                        help='Simulate GitHub writes and attachment uploads')
    parser.add_argument('--skip-failed-attachments', action='store_true', default=False,
                        help='Skip bugs whose attachments cannot be re-hosted instead of stopping')
    parser.add_argument('--log-file', default=None, help='Also write a detailed log to this file')

    return parser


def build_config_data(args: argparse.Namespace) -> Dict[str, Any]:
    """Merge the configuration file (if any) with command line overrides.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments.

    Returns
    -------
    dict
        Configuration dictionary accepted by ``ConfigLoader.load_from_dict``.
    """
    data: Dict[str, Any] = ConfigLoader.read_file(args.config) if args.config else {}

    source = dict(data.get('source') or {})
    if args.url is not None:
        source['root_url'] = args.url
    if args.max_bugs is not None:
        source['max_bugs'] = args.max_bugs
    data['source'] = source

    github = dict(data.get('github') or {})
    github.setdefault('owner', DEFAULT_GITHUB_OWNER)
    github.setdefault('repo', DEFAULT_GITHUB_REPO)
    if args.owner:
        github['owner'] = args.owner
    if args.repo:
        github['repo'] = args.repo
    data['github'] = github

    if args.mode is not None:
        data['mode'] = args.mode
    if args.reupload is not None:
        data['reupload'] = args.reupload
    if args.resume_after_id is not None:
        data['resume_after_id'] = args.resume_after_id
    if args.dry_run is not None:
        data['dry_run'] = args.dry_run
    if args.skip_failed_attachments:
        data['attachment_failure_policy'] = 'skip'
    if args.log_file:
        data['log_file'] = args.log_file
    if args.quiet or args.verbose or 'verbosity' not in data:
        data['verbosity'] = 1 + args.verbose - args.quiet

    return data


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the migration CLI.

    Raises
    ------
    SystemExit
        Exits with code 1 on any migration error.
    """
    parser = create_main_parser()
    args = parser.parse_args(argv)

    try:
        data = build_config_data(args)
        credentials = CredentialProvider(args.secret_file, args.credentials_file)
        config = SecureConfigLoader.load(data, credentials)
    except ConfigurationError as e:
        print(f"❌ Configuration error: {e}")
        sys.exit(1)
    except ValidationError as e:
        print(f"❌ Validation error: {e}")
        sys.exit(1)

    try:
        MigrationOrchestrator(config).run()
    except KeyboardInterrupt:
        print("\n❌ Interrupted by user")
        sys.exit(1)
    except MigrationError as e:
        print(f"❌ {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
