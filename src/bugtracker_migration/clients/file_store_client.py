"""
FTP client for the web server that hosts re-uploaded attachments.
"""

import ftplib
import logging
from pathlib import Path
from typing import Callable

from ..config.migration_config import FileStoreConfig
from ..exceptions import AttachmentError

logger = logging.getLogger('bugtracker_migration')

CONNECT_TIMEOUT = 5


class FileStoreClient:
    """
    Uploads files below the web root of an FTP server.

    A new connection is opened per upload; uploads are rare and far apart
    because of the GitHub throttle.
    """

    def __init__(self, config: FileStoreConfig, ftp_factory: Callable[[], ftplib.FTP] = ftplib.FTP) -> None:
        self.config = config
        self.ftp_factory = ftp_factory

    def _make_dir(self, ftp: ftplib.FTP, remote_dir: str) -> None:
        try:
            ftp.mkd(remote_dir)
        except ftplib.error_perm as e:
            # 521 and 550 are also returned when the directory already exists
            if str(e)[:3] not in ('521', '550'):
                raise
            logger.debug("Directory %s not created: %s", remote_dir, e)

    def upload(self, local_path: Path, remote_dir: str) -> str:
        """
        Store a file under ``remote_dir`` and return its public URL.

        Args:
            local_path: File to upload
            remote_dir: Directory relative to the web root, created if absent

        Returns:
            Public URL of the uploaded file

        Raises:
            AttachmentError: If connecting, logging in or storing fails
        """
        local_path = Path(local_path)
        remote_dir = remote_dir.strip('/')
        remote_path = f"{remote_dir}/{local_path.name}"

        try:
            with self.ftp_factory() as ftp:
                ftp.connect(self.config.host, self.config.port, timeout=CONNECT_TIMEOUT)
                ftp.login(self.config.username or '', self.config.password or '')
                ftp.cwd(self.config.web_root)
                self._make_dir(ftp, remote_dir)
                with open(local_path, 'rb') as f:
                    ftp.storbinary(f"STOR {remote_path}", f)
        except ftplib.all_errors as e:
            raise AttachmentError(f"Failed to upload {local_path.name} to {self.config.host}: {e}")

        url = self.config.public_url(remote_path)
        logger.debug("Uploaded %s to %s", local_path.name, url)
        return url
