"""
Extraction of bugs and comments from the bug tracker's HTML pages.

The tracker has no API, so every field is read by position from its
markup. The parsing rules (selectors, date formats and the comments known
to be broken) live in ``ExtractionRules`` so tests can swap them out.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, List, Optional

from bs4 import BeautifulSoup

from ..clients.bugtracker_client import BugTrackerClient
from ..exceptions import DataDefectError
from ..models import Attachment, Bug, Comment
from ..utils.logging_config import MigrationLogger

logger = logging.getLogger('bugtracker_migration')

NBSP = '\xa0'

# Comments whose markup on the tracker is damaged beyond repair
DENYLISTED_COMMENT_IDS = frozenset({
    686, 688, 32121, 32124, 32125, 32284, 32287, 32295, 32311, 32331,
    32355, 32380, 32394, 32396, 32397, 32420, 32479, 32544, 32605, 32683,
    32717, 32774, 32775, 32848, 32767, 32938, 32939, 32984, 33012, 33438,
    33552, 33888, 33926, 33950, 33951, 34103, 34108, 34109, 34113, 34116,
    34128, 34131, 34132, 33525, 33542, 33666, 33945, 33955, 34122, 34134,
})

BUG_FIELD_COUNT = 9


@dataclass(frozen=True)
class ExtractionRules:
    """Selectors, formats and known defects of the bug tracker markup."""

    denylisted_comment_ids: FrozenSet[int] = field(default=DENYLISTED_COMMENT_IDS)
    bug_date_format: str = '%m/%d/%Y %I:%M:%S %p'
    comment_date_format: str = '%Y-%m-%d %I:%M %p'
    short_comment_date_format: str = '%Y-%m-%d'
    attachment_sentinel: str = 'file'
    bug_row_selector: str = 'table.bugt tr'
    comment_selector: str = '.cmt'
    metadata_selector: str = 'span.pst'
    attachment_info_selector: str = '.pst'
    comment_body_selector: str = 'table:nth-child(2)'


@dataclass(frozen=True)
class CommentMetadata:
    """Fields read from the 'posted by' line above a comment."""

    comment_id: int
    author: str
    date: datetime
    has_attachment: bool
    date_only: bool = False


def _defect(message: str, bug_id: Optional[int], metadata: str, index: int) -> DataDefectError:
    return DataDefectError(
        f"{message} in bug #{bug_id}; metadata: '{metadata}'; token index: {index}",
        bug_id=bug_id
    )


def parse_comment_metadata(text: str, rules: ExtractionRules = ExtractionRules(),
                           bug_id: Optional[int] = None) -> CommentMetadata:
    """
    Parse a comment metadata line such as
    ``comment 32001 posted by jsmith on 2011-8-16 3:42 PM, visible to all``.

    The date normally spans the three tokens ending four from the end. One
    comment on the tracker has no time component; it is recognised by the
    absence of a colon where the time would be.

    Args:
        text: Metadata text with non-breaking spaces already replaced
        rules: Extraction rules holding the date formats
        bug_id: Id of the owning bug, used in error messages

    Returns:
        Parsed CommentMetadata

    Raises:
        DataDefectError: If the line is too short, the id is not a number
            or the date cannot be parsed
    """
    tokens = text.split()
    if len(tokens) < 6:
        raise _defect("Comment metadata has too few tokens", bug_id, text, len(tokens))

    try:
        comment_id = int(tokens[1])
    except ValueError:
        raise _defect("Comment id is not a number", bug_id, text, 1)

    if ':' in tokens[-5]:
        index = len(tokens) - 6
        date_text = f"{tokens[-6]} {tokens[-5]} {tokens[-4].strip(',')}"
        date_format = rules.comment_date_format
        date_only = False
    else:
        index = len(tokens) - 4
        date_text = tokens[-4].strip(',')
        date_format = rules.short_comment_date_format
        date_only = True

    try:
        date = datetime.strptime(date_text, date_format)
    except ValueError:
        raise _defect(f"Unable to parse comment date '{date_text}'", bug_id, text, index)

    return CommentMetadata(
        comment_id=comment_id,
        author=tokens[4],
        date=date,
        has_attachment=tokens[0] == rules.attachment_sentinel,
        date_only=date_only
    )


def render_comment_date(date: datetime, date_only: bool = False) -> str:
    """Render a date the way the tracker prints it, without zero padding."""
    day = f"{date.year}-{date.month}-{date.day}"
    if date_only:
        return day
    hour = date.hour % 12 or 12
    meridiem = 'AM' if date.hour < 12 else 'PM'
    return f"{day} {hour}:{date.minute:02d} {meridiem}"


def normalize_comment_date(text: str) -> str:
    """
    Canonical form of a tracker date string: trailing commas and zero
    padding removed, so it compares equal to ``render_comment_date`` output.
    """
    parts = text.strip().rstrip(',').split()
    year, month, day = (int(p) for p in parts[0].split('-'))
    normalized = f"{year}-{month}-{day}"
    if len(parts) == 1:
        return normalized
    hour, minute = parts[1].split(':')
    return f"{normalized} {int(hour)}:{int(minute):02d} {parts[2].rstrip(',').upper()}"


class BugExtractor:
    """
    Builds Bug records from the tracker's bug list and thread pages.

    Any failure aborts the extraction; the pages are read-only, so a failed
    run is simply repeated.
    """

    def __init__(self, client: BugTrackerClient, rules: Optional[ExtractionRules] = None,
                 progress: Optional[MigrationLogger] = None) -> None:
        self.client = client
        self.rules = rules or ExtractionRules()
        self.progress = progress

    @staticmethod
    def _soup(html: str) -> BeautifulSoup:
        return BeautifulSoup(html, 'lxml')

    @staticmethod
    def _text(element) -> str:
        return element.get_text().replace(NBSP, ' ').strip() if element is not None else ''

    def extract(self, max_bugs: int = 0) -> List[Bug]:
        """
        Extract bugs in the order they appear on the bug list.

        Args:
            max_bugs: Maximum number of bugs to return (<= 0 for all)

        Returns:
            List of Bug records with their comments

        Raises:
            NetworkError: If a page cannot be fetched
            DataDefectError: If a row or comment cannot be parsed
        """
        logger.info("Downloading bug list from %s", self.client.root_url)
        soup = self._soup(self.client.load_bug_list())

        rows = [row for row in soup.select(self.rules.bug_row_selector) if self._is_bug_row(row)]
        if max_bugs > 0:
            rows = rows[:max_bugs]
        logger.debug("Found %d bugs to extract", len(rows))

        bugs = []
        for index, row in enumerate(rows):
            if self.progress:
                self.progress.progress("Processing bugs", 100.0 * index / len(rows))
            bug = self.parse_bug_row(row)
            comments = self.parse_thread(bug.id, self.client.load_thread(bug.id))
            bugs.append(bug.with_comments(comments))
        if self.progress:
            self.progress.progress_done("Processing bugs")

        logger.info("Extracted %d bugs", len(bugs))
        return bugs

    def _is_bug_row(self, row) -> bool:
        """Header rows hold no cells; footer rows do not start with a bug id."""
        cells = row.find_all('td', recursive=False)
        if not cells:
            return False
        return self._text(cells[0]).isdigit()

    def parse_bug_row(self, row) -> Bug:
        """
        Build a Bug (without comments) from one row of the bug table.

        Raises:
            DataDefectError: If the row is short or its date cannot be parsed
        """
        cells = [self._text(cell) for cell in row.find_all('td', recursive=False)]
        bug_id = int(cells[0]) if cells and cells[0].isdigit() else None
        if len(cells) < BUG_FIELD_COUNT:
            raise DataDefectError(
                f"Bug row has {len(cells)} cells, expected {BUG_FIELD_COUNT}", bug_id=bug_id
            )

        try:
            date = datetime.strptime(cells[7], self.rules.bug_date_format)
        except ValueError:
            raise DataDefectError(f"Error parsing date '{cells[7]}' in bug #{bug_id}", bug_id=bug_id)

        return Bug(
            id=bug_id,
            priority=cells[1],
            status=cells[2],
            description=cells[3],
            project=cells[4],
            category=cells[5],
            author=cells[6].replace(':', ''),
            date=date,
            assignee=cells[8]
        )

    def parse_thread(self, bug_id: int, html: str) -> List[Comment]:
        """
        Extract the comments of a bug in chronological order.

        The thread page lists the newest comment first.

        Raises:
            DataDefectError: If a comment block cannot be parsed
        """
        soup = self._soup(html)
        comments = []
        for block in soup.select(self.rules.comment_selector):
            comment = self._parse_comment(bug_id, block)
            if comment.id in self.rules.denylisted_comment_ids:
                logger.debug("Skipping denylisted comment %d of bug #%d", comment.id, bug_id)
                continue
            comments.append(comment)
        comments.reverse()
        return comments

    def _parse_comment(self, bug_id: int, block) -> Comment:
        text = ''.join(t.get_text() for t in block.select(self.rules.comment_body_selector)).strip()

        metadata_node = block.select_one(self.rules.metadata_selector)
        if metadata_node is None:
            raise DataDefectError(f"Comment without metadata in bug #{bug_id}", bug_id=bug_id)
        metadata = parse_comment_metadata(self._text(metadata_node), self.rules, bug_id)

        attachment = None
        if metadata.has_attachment:
            attachment = self._parse_attachment(bug_id, metadata.comment_id, block)

        return Comment(
            id=metadata.comment_id,
            author=metadata.author,
            date=metadata.date,
            text=text,
            attachment=attachment
        )

    def _parse_attachment(self, bug_id: int, comment_id: int, block) -> Attachment:
        img = block.find('img')
        name_node = img.parent.find_next_sibling() if img is not None and img.parent is not None else None
        if name_node is None:
            raise DataDefectError(
                f"Attachment name not found for comment {comment_id} in bug #{bug_id}",
                bug_id=bug_id, comment_id=comment_id
            )
        link_node = name_node.find_next_sibling()
        href = link_node.get('href', '') if link_node is not None else ''

        info = block.select(self.rules.attachment_info_selector)
        size_tokens = self._text(info[-1]).split() if info else []
        try:
            size = int(size_tokens[1])
        except (IndexError, ValueError):
            raise DataDefectError(
                f"Attachment size not found for comment {comment_id} in bug #{bug_id}",
                bug_id=bug_id, comment_id=comment_id
            )

        return Attachment(name=self._text(name_node), size=size, url=self.client.resolve(href))
