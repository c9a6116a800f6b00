#!/usr/bin/env python3
"""
Bug tracker to GitHub migration script

Transfers bugs, comments and attachments from a BugTracker.NET website to
GitHub issues. See ``--help`` for the available passes.

Usage:
    python migrate_bugtracker_to_github.py [-v] [-n MAX] [--reupload]

Requirements:
    pip install -e .
"""

from bugtracker_migration.migrate_bugtracker_to_github import main


if __name__ == '__main__':
    main()
