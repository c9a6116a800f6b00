import requests
import logging
from pathlib import Path
from typing import Optional

from ..clients.file_store_client import FileStoreClient
from ..exceptions import AttachmentError
from ..models import Attachment, Comment

logger = logging.getLogger('bugtracker_migration')


class AttachmentHandler:
    def __init__(self, attachment_dir: Path, file_store: Optional[FileStoreClient] = None,
                 base_dir: str = 'BugAttachments', downloader=requests, dry_run: bool = False):
        self.attachment_dir = Path(attachment_dir)
        self.file_store = file_store
        self.base_dir = base_dir.strip('/')
        self.downloader = downloader
        self.dry_run = dry_run

    def download(self, attachment: Attachment) -> Path:
        """Download an attachment from the bug tracker into the staging directory.

        Args:
            attachment: The attachment to fetch

        Returns:
            Path of the downloaded file

        Raises:
            AttachmentError: If the download fails
        """
        self.attachment_dir.mkdir(parents=True, exist_ok=True)
        filepath = self.attachment_dir / attachment.clean_file_name()
        try:
            response = self.downloader.get(attachment.url, stream=True, timeout=60)
            response.raise_for_status()

            with open(filepath, 'wb') as f:
                for chunk in response.iter_content(chunk_size=8192):
                    f.write(chunk)
            return filepath
        except (requests.exceptions.RequestException, OSError) as e:
            logger.error("Failed to download attachment %s: %s", attachment.name, e)
            raise AttachmentError(f"Failed to download attachment {attachment.name}: {e}")

    def remote_dir(self, comment_id: int) -> str:
        return f"{self.base_dir}/{comment_id}"

    def upload(self, local_path: Path, comment_id: int) -> str:
        """Upload a downloaded attachment to the file store, keyed by comment id."""
        if self.file_store is None:
            raise AttachmentError("No file store configured for attachment upload", comment_id=comment_id)
        return self.file_store.upload(local_path, remote_dir=self.remote_dir(comment_id))

    def rehosted_url(self, comment_id: int, file_name: str) -> str:
        """Public URL of ``file_name`` once stored in the folder of ``comment_id``."""
        if self.file_store is None:
            raise AttachmentError("No file store configured for attachment upload", comment_id=comment_id)
        return self.file_store.config.public_url(
            f"{self.remote_dir(comment_id)}/{file_name.replace(' ', '_')}"
        )

    def expected_url(self, comment: Comment) -> str:
        """URL a comment's attachment has (or will have) once re-hosted."""
        if not comment.has_attachment:
            raise AttachmentError(f"Comment {comment.id} has no attachment", comment_id=comment.id)
        return self.rehosted_url(comment.id, comment.attachment.clean_file_name())

    def rehost(self, comment: Comment) -> Comment:
        """Move a comment's attachment to the file store.

        Returns:
            The comment unchanged if it has no attachment, otherwise a copy
            whose attachment points at the re-hosted file
        """
        if not comment.has_attachment:
            return comment

        if self.dry_run:
            logger.info("Would re-host attachment %s of comment %d", comment.attachment.name, comment.id)
            return comment.with_attachment_url(self.expected_url(comment))

        local_path = self.download(comment.attachment)
        try:
            url = self.upload(local_path, comment.id)
        except AttachmentError as e:
            if e.comment_id is None:
                e.comment_id = comment.id
            raise
        logger.info("Re-hosted attachment %s of comment %d at %s", comment.attachment.name, comment.id, url)
        return comment.with_attachment_url(url)
