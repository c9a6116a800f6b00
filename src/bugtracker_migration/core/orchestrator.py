"""
Migration orchestrator for the bug tracker to GitHub migration.

This module contains the MigrationOrchestrator class that builds the
clients and services from the configuration and runs the selected
operation: the full transfer or one of the maintenance passes.
"""

import random
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ..clients.bugtracker_client import BugTrackerClient
from ..clients.file_store_client import FileStoreClient
from ..clients.github_client import GitHubClient
from ..config.migration_config import MigrationConfig, MigrationMode
from ..services.attachment_handler import AttachmentHandler
from ..services.extractor import BugExtractor, ExtractionRules
from ..services.link_rewriter import LinkRewriter
from ..migration.issue_migrator import IssueMigrator, WRITE_DELAY
from ..exceptions import AttachmentError, DataDefectError, MigrationError
from ..models import Bug, MigrationRecord
from ..utils.logging_config import MigrationLogger, verbosity_to_level


@dataclass
class MigrationSummary:
    """Outcome of one orchestrator run."""

    mode: MigrationMode
    bugs_extracted: int = 0
    records: List[MigrationRecord] = field(default_factory=list)
    skipped_bug_ids: List[int] = field(default_factory=list)
    items_updated: int = 0


class MigrationOrchestrator:
    """
    High-level coordinator for the migration process.

    Exactly one mode runs per invocation. Everything is sequential: the
    tracker session and GitHub's abuse detection both punish bursts.
    """

    def __init__(self, config: MigrationConfig, logger: Optional[MigrationLogger] = None,
                 gh_client: Optional[GitHubClient] = None,
                 source_client: Optional[BugTrackerClient] = None,
                 file_store: Optional[FileStoreClient] = None,
                 rules: Optional[ExtractionRules] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 rng: Optional[random.Random] = None):
        """
        Initialize the MigrationOrchestrator.

        Args:
            config: Complete migration configuration
            logger: Optional logger instance
            gh_client: Optional GitHub client (built from config if omitted)
            source_client: Optional bug tracker client (built from config if omitted)
            file_store: Optional attachment file store (built from config if omitted)
            rules: Optional extraction rules
            sleep: Blocking sleep function
            rng: Random source for pauses
        """
        self.config = config

        if logger:
            self.logger = logger
        else:
            self.logger = MigrationLogger(
                log_level=verbosity_to_level(config.verbosity),
                log_file=config.log_file,
                dry_run=config.dry_run
            )

        self.sleep = sleep
        self.rng = rng or random.Random()

        self.gh_client = gh_client or GitHubClient(
            owner=config.github.owner,
            repo=config.github.repo,
            token=config.github.token,
            dry_run=config.dry_run
        )
        self.source_client = source_client or BugTrackerClient(config.source.root_url)
        self.file_store = file_store or FileStoreClient(config.file_store)

        self._setup_components(rules)

    def _setup_components(self, rules: Optional[ExtractionRules]) -> None:
        """Set up all migration services."""
        self.extractor = BugExtractor(self.source_client, rules, progress=self.logger)

        self.attachment_handler = AttachmentHandler(
            self.config.attachment_staging_dir,
            file_store=self.file_store,
            base_dir=self.config.file_store.attachment_dir,
            dry_run=self.config.dry_run
        )

        self.link_rewriter = LinkRewriter(
            host=self.config.file_store.host,
            tracker_root=self.config.source.root_url,
            scheme=self.config.file_store.scheme
        )

        self.issue_migrator = IssueMigrator(
            self.gh_client,
            self.attachment_handler,
            self.link_rewriter,
            self.logger,
            close_on_transfer=self.config.close_on_transfer,
            dry_run=self.config.dry_run,
            sleep=self.sleep,
            rng=self.rng
        )

    def run(self) -> MigrationSummary:
        """
        Run the configured operation.

        Returns:
            Summary of the run

        Raises:
            MigrationError: If the run fails; the error is logged first
        """
        mode = self.config.mode
        summary = MigrationSummary(mode=mode)

        try:
            self.logger.info("=" * 80)
            self.logger.info(f"STARTING {mode.value.upper()} ON {self.config.github.owner}/{self.config.github.repo}")
            self.logger.info("=" * 80)

            if self.config.dry_run:
                self.logger.info("DRY RUN MODE ENABLED")
                self.logger.info("This is a simulation - NO changes will be made to GitHub")

            if mode == MigrationMode.FULL_TRANSFER:
                self._run_full_transfer(summary)
            elif mode == MigrationMode.FIX_LINKS:
                summary.items_updated = self.issue_migrator.fix_links(self.config.source.max_bugs)
            elif mode == MigrationMode.FIX_FORMATTING:
                summary.items_updated = self.issue_migrator.fix_formatting(self.config.source.max_bugs)
            elif mode == MigrationMode.FIX_LINKS_V2:
                bugs = self._extract(summary)
                summary.items_updated = self.issue_migrator.fix_links_v2(bugs, self.config.source.max_bugs)
            elif mode == MigrationMode.CLOSE_SYNC:
                bugs = self._extract(summary)
                summary.items_updated = self.issue_migrator.close_issues(bugs, self.config.source.max_bugs)

            self._print_summary(summary)
            return summary

        except KeyboardInterrupt:
            self.logger.info("Migration interrupted by user")
            self._log_resume_hint(summary)
            raise
        except DataDefectError as e:
            self.logger.error(f"MIGRATION FAILED (bad source data in bug #{e.bug_id}): {e}")
            raise
        except MigrationError as e:
            self.logger.error(f"MIGRATION FAILED: {e}")
            self._log_resume_hint(summary)
            raise

    def _extract(self, summary: MigrationSummary) -> List[Bug]:
        """Extract every bug from the tracker (always the full list for matching)."""
        bugs = self.extractor.extract(self.config.source.max_bugs if self.config.mode == MigrationMode.FULL_TRANSFER else 0)
        summary.bugs_extracted = len(bugs)
        return bugs

    def _run_full_transfer(self, summary: MigrationSummary) -> None:
        bugs = self._extract(summary)
        threshold = self.config.resume_after_id

        for index, bug in enumerate(bugs):
            self.logger.progress("Posting bugs", 100.0 * index / len(bugs))
            if bug.id <= threshold:
                self.logger.debug(f"Skipping bug #{bug.id} (already migrated)")
                continue

            try:
                record = self.issue_migrator.migrate_bug(bug, self.config.reupload)
            except AttachmentError as e:
                comment = f" (comment {e.comment_id})" if e.comment_id is not None else ""
                if self.config.attachment_failure_policy != 'skip':
                    self.logger.error(f"Attachment transfer failed for bug #{bug.id}{comment}: {e}")
                    raise
                self.logger.warning(f"Skipping bug #{bug.id}: attachment transfer failed{comment}: {e}")
                summary.skipped_bug_ids.append(bug.id)
                continue
            except MigrationError:
                self.logger.error(f"Failed while migrating bug #{bug.id}")
                raise

            summary.records.append(record)
            if not self.config.dry_run:
                self.sleep(self.rng.uniform(*WRITE_DELAY))
        self.logger.progress_done("Posting bugs")

    def _log_resume_hint(self, summary: MigrationSummary) -> None:
        if summary.records:
            last = summary.records[-1].bug_id
            self.logger.info(f"Last migrated bug: #{last}. Resume with --resume-after {last}")

    def _print_summary(self, summary: MigrationSummary) -> None:
        self.logger.info("=" * 80)
        self.logger.info(f"Mode: {summary.mode.value}")
        if summary.bugs_extracted:
            self.logger.info(f"Bugs extracted: {summary.bugs_extracted}")
        if summary.mode == MigrationMode.FULL_TRANSFER:
            self.logger.info(f"Issues created: {len(summary.records)}")
            self.logger.info(f"Comments posted: {sum(r.comments_posted for r in summary.records)}")
            self.logger.info(f"Attachments re-hosted: {sum(r.attachments_rehosted for r in summary.records)}")
            if summary.skipped_bug_ids:
                skipped = ', '.join(f'#{i}' for i in summary.skipped_bug_ids)
                self.logger.warning(f"Bugs skipped after attachment failures: {skipped}")
        else:
            self.logger.info(f"Items updated: {summary.items_updated}")
        self.logger.info("=" * 80)
