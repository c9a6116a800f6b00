from abc import ABC, abstractmethod
from datetime import datetime

from ..models import Attachment, Bug, Comment

DATE_FORMAT = '%Y-%m-%d %H:%M'


def format_date(date: datetime) -> str:
    return date.strftime(DATE_FORMAT)


def format_attachment(attachment: Attachment) -> str:
    """Markdown link to an attachment followed by its size in bytes."""
    return f"[{attachment.name}]({attachment.url})\nSize: {attachment.size}"


class ContentFormatter(ABC):
    """
    Abstract base class for content formatters.

    Content formatters render legacy records as GitHub markdown.
    """

    @abstractmethod
    def format(self, item, **kwargs) -> str:
        """
        Format content for GitHub.

        Args:
            item: The legacy record to format (bug or comment)
            **kwargs: Additional formatting options

        Returns:
            Markdown body
        """
        pass


class IssueContentFormatter(ContentFormatter):
    """
    Formatter for legacy bugs.

    The body starts with a ``Legacy Bug ID`` marker, which the maintenance
    passes use to match issues back to bugs, followed by the bug's metadata
    and the text of its first comment.
    """

    def format(self, bug: Bug, **kwargs) -> str:
        """
        Format a legacy bug as an issue body.

        Args:
            bug: Legacy bug, with comments in chronological order

        Returns:
            Issue body
        """
        first = bug.body_comment
        content = first.text if first is not None else ''

        body = f"""Legacy Bug ID: {bug.id}
Author: {bug.author}
Date: {format_date(bug.date)}
Priority: {bug.priority}
Status: {bug.status}
Project: {bug.project}
Category: {bug.category}
Assigned To: {bug.assignee}

---

{content}
"""
        return body


class CommentContentFormatter(ContentFormatter):
    """
    Formatter for legacy comments.
    """

    def format(self, comment: Comment, **kwargs) -> str:
        """
        Format a legacy comment as an issue comment.

        A comment with an attachment is rendered as a link to the file;
        its text is not repeated.

        Args:
            comment: Legacy comment

        Returns:
            Comment body
        """
        if comment.has_attachment:
            content = format_attachment(comment.attachment)
        else:
            content = comment.text

        return f"""Author: {comment.author}
Date: {format_date(comment.date)}

{content}
"""
