"""
Issue migrator for the bug tracker to GitHub migration.

This module contains the IssueMigrator class that posts legacy bugs as
GitHub issues and runs the maintenance passes over issues that were
already migrated. Every write goes through the same throttle: GitHub
blocks accounts that create content too quickly, so writes are spaced
out and retried after an abuse-detection response.
"""

import random
import time
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from ..clients.github_client import GitHubClient
from ..services.attachment_handler import AttachmentHandler
from ..services.link_rewriter import LinkRewriter, get_legacy_id
from ..formatters.content_formatter import CommentContentFormatter, IssueContentFormatter
from ..exceptions import AbuseDetectionError, MigrationError
from ..models import Bug, Comment, MigrationRecord
from ..utils.logging_config import MigrationLogger

# Remaining quota below which we wait for the rate limit to reset
CREATE_LOW_WATER = 10
UPDATE_LOW_WATER = 5
LISTING_LOW_WATER = 5

RATE_LIMIT_SLEEP = 3600
ABUSE_BACKOFF = (60, 120)
WRITE_DELAY = (5, 10)


class IssueMigrator:
    """
    Handles migration of legacy bugs to GitHub issues.

    This class encapsulates the create-issue-and-comments protocol, the
    rate limit handling around it and the passes that repair issues
    created by earlier runs.
    """

    def __init__(self, gh_client: GitHubClient, attachment_handler: AttachmentHandler,
                 link_rewriter: LinkRewriter, logger: MigrationLogger,
                 issue_formatter: Optional[IssueContentFormatter] = None,
                 comment_formatter: Optional[CommentContentFormatter] = None,
                 close_on_transfer: bool = False, dry_run: bool = False,
                 sleep: Callable[[float], None] = time.sleep,
                 rng: Optional[random.Random] = None):
        """
        Initialize the IssueMigrator.

        Args:
            gh_client: GitHub API client
            attachment_handler: Attachment re-hosting service
            link_rewriter: Link rewriting service
            logger: Logger instance
            issue_formatter: Formatter for issue bodies
            comment_formatter: Formatter for comment bodies
            close_on_transfer: Close issues of closed bugs right after posting them
            dry_run: Skip the pauses between writes
            sleep: Blocking sleep function
            rng: Random source for backoff and delays
        """
        self.gh_client = gh_client
        self.attachment_handler = attachment_handler
        self.link_rewriter = link_rewriter
        self.logger = logger
        self.issue_formatter = issue_formatter or IssueContentFormatter()
        self.comment_formatter = comment_formatter or CommentContentFormatter()
        self.close_on_transfer = close_on_transfer
        self.dry_run = dry_run
        self.sleep = sleep
        self.rng = rng or random.Random()

    def _throttle(self, low_water: int) -> None:
        """Pause after a write, for an hour if the quota is nearly spent."""
        if self.dry_run:
            return
        remaining = self.gh_client.rate_limit_remaining
        if remaining < low_water:
            self.logger.warning(f"Only {remaining} API requests left; waiting for the rate limit to reset")
            self.sleep(RATE_LIMIT_SLEEP)
        else:
            self.sleep(self.rng.uniform(*WRITE_DELAY))

    def _write(self, description: str, low_water: int, call: Callable[..., Dict[str, Any]],
               *args, **kwargs) -> Dict[str, Any]:
        """
        Perform a GitHub write, waiting out abuse-detection blocks.

        The identical call is repeated after each block until it succeeds
        or fails with a different error.
        """
        while True:
            try:
                result = call(*args, **kwargs)
                break
            except AbuseDetectionError as e:
                delay = self.rng.uniform(*ABUSE_BACKOFF)
                self.logger.warning(f"Triggered abuse detection mechanism on {description}: {e}")
                self.logger.info(f"  Retrying in {delay:.0f} seconds")
                self.sleep(delay)

        self._throttle(low_water)
        return result

    def prepare_bug(self, bug: Bug, reupload: bool) -> Bug:
        """
        Return the bug with every reply attachment re-hosted.

        Runs before anything is posted, so a failing attachment leaves
        GitHub untouched.

        Raises:
            AttachmentError: If an attachment cannot be re-hosted
        """
        if not reupload:
            return bug
        replies = [self.attachment_handler.rehost(comment) for comment in bug.reply_comments]
        return bug.with_comments(bug.comments[:1] + tuple(replies))

    def migrate_bug(self, bug: Bug, reupload: bool = False) -> MigrationRecord:
        """
        Create the issue and comments for one legacy bug.

        Args:
            bug: Legacy bug with comments in chronological order
            reupload: Re-host reply attachments before posting

        Returns:
            Migration record for the bug

        Raises:
            AttachmentError: If an attachment cannot be re-hosted
            MigrationError: If GitHub rejects a write
        """
        prepared = self.prepare_bug(bug, reupload)

        self.logger.info(f"Migrating bug #{bug.id}: {bug.description}")
        issue = self._write(
            f"bug #{bug.id}", CREATE_LOW_WATER,
            self.gh_client.create_issue, bug.description, self.issue_formatter.format(prepared)
        )
        record = MigrationRecord(bug_id=bug.id, issue_number=issue['number'])

        for original, comment in zip(bug.reply_comments, prepared.reply_comments):
            self._write(
                f"comment {comment.id}", CREATE_LOW_WATER,
                self.gh_client.create_comment, issue['number'], self.comment_formatter.format(comment)
            )
            record.comments_posted += 1
            if comment.has_attachment and comment.attachment.url != original.attachment.url:
                record.attachments_rehosted += 1

        if self.close_on_transfer and bug.is_closed():
            self._write(
                f"closing issue #{issue['number']}", UPDATE_LOW_WATER,
                self.gh_client.update_issue, issue['number'], state='closed'
            )
            record.closed = True

        self.logger.info(f"  ✓ Created issue #{issue['number']} with {record.comments_posted} comments")
        return record

    def iter_issues(self, max_count: int = 0, label: str = "Fetching issues") -> Iterator[Dict[str, Any]]:
        """
        Yield repository issues, newest first, following pagination.

        Pull requests are skipped. Progress assumes issue numbers decrease
        from the first issue seen towards 1.

        Args:
            max_count: Stop after this many issues (<= 0 for all)
            label: Progress line label
        """
        count = 0
        first_number = None
        url = None
        while True:
            issues, url = self.gh_client.list_issues(url)
            for issue in issues:
                if 'pull_request' in issue:
                    continue
                if first_number is None:
                    first_number = issue['number']
                self.logger.progress(label, 100.0 * (first_number - issue['number']) / first_number)
                yield issue
                count += 1
                if 0 < max_count <= count:
                    self.logger.progress_done(label)
                    return

            if self.gh_client.rate_limit_remaining < LISTING_LOW_WATER:
                self.logger.warning("API rate limit nearly exhausted; waiting for it to reset")
                self.sleep(RATE_LIMIT_SLEEP)
            if not url:
                break
        self.logger.progress_done(label)

    def fetch_issues(self, max_count: int = 0) -> List[Dict[str, Any]]:
        """Fetch repository issues (see ``iter_issues``)."""
        return list(self.iter_issues(max_count))

    def match_legacy_bug(self, issue: Dict[str, Any], bugs: Sequence[Bug]) -> Optional[Bug]:
        """
        Find the bug an issue was created from.

        Issues carrying a legacy id are matched by that id only; the title
        is used only for issues without the marker.
        """
        legacy_id = get_legacy_id(issue.get('body'))
        if legacy_id >= 0:
            for bug in bugs:
                if bug.id == legacy_id:
                    return bug
            return None
        title = issue.get('title')
        for bug in bugs:
            if bug.description == title:
                return bug
        return None

    def find_legacy_bug(self, issue: Dict[str, Any], bugs: Sequence[Bug]) -> Bug:
        """
        Like ``match_legacy_bug`` but a missing match is an error.

        Raises:
            MigrationError: If no bug matches the issue
        """
        bug = self.match_legacy_bug(issue, bugs)
        if bug is None:
            raise MigrationError(
                f"Unable to find legacy bug for issue #{issue.get('number')}: '{issue.get('title')}'"
            )
        return bug

    @staticmethod
    def find_comment_with_content(bug: Bug, content: str) -> Comment:
        """
        Return the first comment of a bug whose text contains ``content``.

        Raises:
            MigrationError: If no comment contains the text
        """
        for comment in bug.comments:
            if content in comment.text:
                return comment
        raise MigrationError(f"Unable to find a comment of bug #{bug.id} containing '{content}'")

    def fix_links(self, max_count: int = 0) -> int:
        """
        Add the missing scheme to attachment links in posted comments.

        Returns:
            Number of comments updated
        """
        updated = 0
        for issue in self.iter_issues(max_count, "Fixing links"):
            for comment in self.gh_client.list_comments(issue['number']):
                body = comment.get('body') or ''
                if not self.link_rewriter.has_missing_scheme(body):
                    continue
                self.logger.debug(f"Fixing link in comment {comment['id']} on issue #{issue['number']}")
                self._write(
                    f"comment {comment['id']}", UPDATE_LOW_WATER,
                    self.gh_client.update_comment, comment['id'], self.link_rewriter.fix_missing_scheme(body)
                )
                updated += 1
        self.logger.info(f"Updated {updated} comments")
        return updated

    def fix_links_v2(self, bugs: Sequence[Bug], max_count: int = 0) -> int:
        """
        Point links to the bug tracker's attachment viewer at the re-hosted files.

        The file name is taken from the link text and the folder from the
        first legacy comment mentioning it.

        Returns:
            Number of comments updated

        Raises:
            MigrationError: If an issue or link cannot be matched to legacy data
        """
        updated = 0
        for issue in self.iter_issues(max_count, "Fixing links"):
            for comment in self.gh_client.list_comments(issue['number']):
                body = comment.get('body') or ''
                if not self.link_rewriter.find_tracker_links(body):
                    continue
                bug = self.find_legacy_bug(issue, bugs)

                def rehosted(link_text: str) -> str:
                    legacy = self.find_comment_with_content(bug, link_text)
                    return self.attachment_handler.rehosted_url(legacy.id, link_text)

                new_body = self.link_rewriter.rewrite_tracker_links(body, rehosted)
                self.logger.debug(f"Replacing comment {comment['id']} on issue #{issue['number']} with:\n{new_body}")
                self._write(
                    f"comment {comment['id']}", UPDATE_LOW_WATER,
                    self.gh_client.update_comment, comment['id'], new_body
                )
                updated += 1
        self.logger.info(f"Updated {updated} comments")
        return updated

    def fix_formatting(self, max_count: int = 0) -> int:
        """
        Strip tab characters from issue and comment bodies.

        Returns:
            Number of issues and comments updated
        """
        updated = 0
        for issue in self.iter_issues(max_count, "Fixing formatting"):
            body = issue.get('body') or ''
            if '\t' in body:
                self._write(
                    f"issue #{issue['number']}", UPDATE_LOW_WATER,
                    self.gh_client.update_issue, issue['number'], body=self.link_rewriter.strip_tabs(body)
                )
                updated += 1

            for comment in self.gh_client.list_comments(issue['number']):
                comment_body = comment.get('body') or ''
                if '\t' not in comment_body:
                    continue
                self._write(
                    f"comment {comment['id']}", UPDATE_LOW_WATER,
                    self.gh_client.update_comment, comment['id'], self.link_rewriter.strip_tabs(comment_body)
                )
                updated += 1
        self.logger.info(f"Updated {updated} issues and comments")
        return updated

    def close_issues(self, bugs: Sequence[Bug], max_count: int = 0) -> int:
        """
        Close open issues whose legacy bug is closed.

        Issues that match no legacy bug (created directly on GitHub) are left alone.

        Returns:
            Number of issues closed
        """
        closed = 0
        for issue in self.iter_issues(max_count, "Closing issues"):
            if issue.get('state') == 'closed':
                continue
            bug = self.match_legacy_bug(issue, bugs)
            if bug is None:
                self.logger.debug(f"Issue #{issue['number']} does not match a legacy bug")
                continue
            if not bug.is_closed():
                continue
            self._write(
                f"closing issue #{issue['number']}", UPDATE_LOW_WATER,
                self.gh_client.update_issue, issue['number'], state='closed'
            )
            self.logger.debug(f"Closed issue #{issue['number']} (legacy bug #{bug.id})")
            closed += 1
        self.logger.info(f"Closed {closed} issues")
        return closed
