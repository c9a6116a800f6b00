"""
Data models for records scraped from the legacy bug tracker.

Records are immutable. Steps that change a record (re-hosting an
attachment, for example) return a new copy via ``dataclasses.replace``.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional, Sequence, Tuple


@dataclass(frozen=True)
class Attachment:
    """A file attached to a legacy comment."""

    name: str
    size: int
    url: str

    def is_empty(self) -> bool:
        """True for the zero value (no name, no size, no url)."""
        return not self.name and self.size == 0 and not self.url

    def clean_file_name(self) -> str:
        """File name safe to use as a local or remote path component."""
        return self.name.replace(' ', '_')

    def with_url(self, url: str) -> 'Attachment':
        return replace(self, url=url)


@dataclass(frozen=True)
class Comment:
    """
    A comment on a legacy bug.

    The first comment of a bug holds the bug's description body.
    """

    id: int
    author: str
    date: datetime
    text: str
    attachment: Optional[Attachment] = None

    @property
    def has_attachment(self) -> bool:
        return self.attachment is not None and not self.attachment.is_empty()

    def with_attachment_url(self, url: str) -> 'Comment':
        if self.attachment is None:
            raise ValueError(f"Comment {self.id} has no attachment")
        return replace(self, attachment=self.attachment.with_url(url))


@dataclass(frozen=True)
class Bug:
    """A legacy bug with its comments in chronological order."""

    id: int
    description: str
    priority: str
    status: str
    project: str
    category: str
    author: str
    date: datetime
    assignee: str
    comments: Tuple[Comment, ...] = field(default_factory=tuple)

    def is_closed(self) -> bool:
        return self.status.strip().lower() == 'closed'

    @property
    def body_comment(self) -> Optional[Comment]:
        """Comment folded into the issue body, if any."""
        return self.comments[0] if self.comments else None

    @property
    def reply_comments(self) -> Tuple[Comment, ...]:
        """Comments posted individually after the issue is created."""
        return self.comments[1:]

    def with_comments(self, comments: Sequence[Comment]) -> 'Bug':
        return replace(self, comments=tuple(comments))


@dataclass
class MigrationRecord:
    """Outcome of posting one bug to GitHub."""

    bug_id: int
    issue_number: int
    comments_posted: int = 0
    attachments_rehosted: int = 0
    closed: bool = False
