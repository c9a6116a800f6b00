"""
Shared pytest fixtures for unit and integration tests.

Provides HTML pages modelled on the bug tracker, and in-memory stand-ins
for the bug tracker site, GitHub and the attachment file store.
"""

import io
import random
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock
from urllib.parse import urljoin

import pytest

from bugtracker_migration.config.migration_config import FileStoreConfig
from bugtracker_migration.exceptions import AbuseDetectionError, APIError, AttachmentError
from bugtracker_migration.utils.logging_config import MigrationLogger

ROOT_URL = 'https://bugs.example.org/BugTracker/'

BUG_LIST_HTML = """
<html><body>
<table class="bugt">
<tr><th>id</th><th>priority</th><th>status</th><th>desc</th><th>project</th>
    <th>category</th><th>reported by</th><th>reported on</th><th>assigned to</th></tr>
<tr><td>1</td><td>high</td><td>open</td><td>Crash on startup</td><td>APSIM</td>
    <td>bug</td><td>jsmith:</td><td>8/16/2011 3:42:10 PM</td><td>hol353</td></tr>
<tr><td>2</td><td>low</td><td>Closed</td><td>Typo in docs</td><td>APSIM</td>
    <td>documentation</td><td>mdoe</td><td>1/2/2012 9:05:00 AM</td><td></td></tr>
</table>
</body></html>
"""

THREAD_1_HTML = """
<html><body>
<div class="cmt">
<table><tr><td><span class="pst">file&nbsp;102 posted by hol353 on 2011-8-17 10:05 AM, visible to all</span></td></tr></table>
<table><tr><td>Stack trace in crash log.txt</td></tr></table>
<span><img src="attach.gif"></span><span>crash log.txt</span><a href="view_attachment.aspx?id=55&amp;bug_id=1">view</a>
<span class="pst">size:&nbsp;2048 bytes</span>
</div>
<div class="cmt">
<table><tr><td><span class="pst">comment 101 posted by jsmith on 2011-8-16 3:42 PM, visible to all</span></td></tr></table>
<table><tr><td>The model crashes when loading a simulation.</td></tr></table>
</div>
</body></html>
"""

THREAD_2_HTML = """
<html><body>
<div class="cmt">
<table><tr><td><span class="pst">comment 201 posted by mdoe on 2012-1-2 9:05 AM, visible to all</span></td></tr></table>
<table><tr><td>The word "simulaton" is misspelt.</td></tr></table>
</div>
</body></html>
"""


class FakeBugTrackerClient:
    """In-memory bug tracker site."""

    def __init__(self, bug_list_html: str = BUG_LIST_HTML, threads: Optional[Dict[int, str]] = None,
                 root_url: str = ROOT_URL):
        self.root_url = root_url
        self.bug_list_html = bug_list_html
        self.threads = threads if threads is not None else {1: THREAD_1_HTML, 2: THREAD_2_HTML}
        self.loaded_threads: List[int] = []

    def resolve(self, relative_url: str) -> str:
        return urljoin(self.root_url, relative_url)

    def load_bug_list(self) -> str:
        return self.bug_list_html

    def load_thread(self, bug_id: int) -> str:
        self.loaded_threads.append(bug_id)
        return self.threads.get(bug_id, '<html><body></body></html>')


class FakeGitHubClient:
    """
    In-memory GitHub repository.

    ``fail_next`` holds exceptions raised (in order) by the next write calls.
    """

    def __init__(self, page_size: int = 100, rate_limit_remaining: int = 5000):
        self.owner = 'test-owner'
        self.repo = 'test-repo'
        self.dry_run = False
        self.page_size = page_size
        self.rate_limit_remaining = rate_limit_remaining
        self.issues: Dict[int, Dict[str, Any]] = {}
        self.comments: Dict[int, List[Dict[str, Any]]] = {}
        self.calls: List[tuple] = []
        self.fail_next: List[Exception] = []
        self._next_comment_id = 1000

    def _maybe_fail(self):
        if self.fail_next:
            raise self.fail_next.pop(0)

    def create_issue(self, title: str, body: str) -> Dict[str, Any]:
        self.calls.append(('create_issue', title, body))
        self._maybe_fail()
        number = len(self.issues) + 1
        issue = {'number': number, 'title': title, 'body': body, 'state': 'open'}
        self.issues[number] = issue
        self.comments[number] = []
        return dict(issue)

    def create_comment(self, issue_number: int, body: str) -> Dict[str, Any]:
        self.calls.append(('create_comment', issue_number, body))
        self._maybe_fail()
        if issue_number not in self.issues:
            raise APIError(f"Issue not found: {issue_number}", status_code=404)
        self._next_comment_id += 1
        comment = {'id': self._next_comment_id, 'body': body}
        self.comments[issue_number].append(comment)
        return dict(comment)

    def update_issue(self, issue_number: int, **kwargs) -> Dict[str, Any]:
        self.calls.append(('update_issue', issue_number, kwargs))
        self._maybe_fail()
        self.issues[issue_number].update(kwargs)
        return dict(self.issues[issue_number])

    def update_comment(self, comment_id: int, body: str) -> Dict[str, Any]:
        self.calls.append(('update_comment', comment_id, body))
        self._maybe_fail()
        for comments in self.comments.values():
            for comment in comments:
                if comment['id'] == comment_id:
                    comment['body'] = body
                    return dict(comment)
        raise APIError(f"Comment not found: {comment_id}", status_code=404)

    def list_issues(self, url: Optional[str] = None, state: str = 'all'):
        ordered = [dict(self.issues[n]) for n in sorted(self.issues, reverse=True)]
        start = int(url) if url else 0
        page = ordered[start:start + self.page_size]
        end = start + self.page_size
        return page, (str(end) if end < len(ordered) else None)

    def list_comments(self, issue_number: int) -> List[Dict[str, Any]]:
        return [dict(c) for c in self.comments.get(issue_number, [])]

    def writes(self) -> List[tuple]:
        return [c for c in self.calls if c[0] in ('create_issue', 'create_comment', 'update_issue', 'update_comment')]


class FakeFileStore:
    """Records uploads instead of talking to an FTP server."""

    def __init__(self, config: Optional[FileStoreConfig] = None, fail: bool = False):
        self.config = config or FileStoreConfig(host='files.example.org', username='ftp', password='secret')
        self.fail = fail
        self.uploads: List[tuple] = []

    def upload(self, local_path: Path, remote_dir: str) -> str:
        if self.fail:
            raise AttachmentError(f"Failed to upload {Path(local_path).name}")
        self.uploads.append((Path(local_path).name, remote_dir))
        return self.config.public_url(f"{remote_dir}/{Path(local_path).name}")


def abuse_error() -> AbuseDetectionError:
    return AbuseDetectionError(
        "You have triggered an abuse detection mechanism and have been temporarily blocked "
        "from content creation. Please retry your request again later.",
        status_code=403
    )


@pytest.fixture
def fake_source():
    return FakeBugTrackerClient()


@pytest.fixture
def fake_github():
    return FakeGitHubClient()


@pytest.fixture
def fake_file_store():
    return FakeFileStore()


@pytest.fixture
def quiet_logger():
    """MigrationLogger writing to an in-memory stream."""
    return MigrationLogger(log_level='DEBUG', stream=io.StringIO())


@pytest.fixture
def mock_logger():
    logger = MagicMock(spec=MigrationLogger)
    return logger


@pytest.fixture
def sleeps():
    """List collecting every requested sleep duration."""
    return []


@pytest.fixture
def fake_sleep(sleeps):
    return sleeps.append


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def mock_downloader():
    """Stand-in for the ``requests`` module used by AttachmentHandler."""
    downloader = MagicMock()
    response = MagicMock()
    response.iter_content.return_value = [b'line one\n', b'line two\n']
    response.raise_for_status.return_value = None
    downloader.get.return_value = response
    return downloader
