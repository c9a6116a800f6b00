"""
Tests for BugExtractor and the comment metadata parser.

Covers:
- Row counting with and without a cap
- Header and footer row handling
- Chronological comment order
- Denylisted comments
- Date disambiguation and the render/normalize round trip
- Attachment extraction
- Data defects
"""

from datetime import datetime

import pytest

from bugtracker_migration.exceptions import DataDefectError
from bugtracker_migration.services.extractor import (
    BugExtractor,
    CommentMetadata,
    ExtractionRules,
    normalize_comment_date,
    parse_comment_metadata,
    render_comment_date,
)

from conftest import FakeBugTrackerClient, ROOT_URL


def bug_row(bug_id, date='3/4/2010 11:15:00 AM', status='open'):
    return (f"<tr><td>{bug_id}</td><td>high</td><td>{status}</td><td>Bug {bug_id}</td>"
            f"<td>APSIM</td><td>bug</td><td>someone</td><td>{date}</td><td></td></tr>")


def bug_list(*rows, footer=False):
    header = "<tr><th>id</th><th>priority</th></tr>"
    tail = '<tr><td colspan="9">showing all bugs</td></tr>' if footer else ''
    return f"<html><body><table class='bugt'>{header}{''.join(rows)}{tail}</table></body></html>"


def comment_block(comment_id, date='2011-8-16 3:42 PM,', author='jsmith', text='text'):
    return (f'<div class="cmt"><table><tr><td><span class="pst">comment {comment_id} posted by {author} '
            f'on {date} visible to all</span></td></tr></table>'
            f'<table><tr><td>{text}</td></tr></table></div>')


def thread(*blocks):
    return f"<html><body>{''.join(blocks)}</body></html>"


class TestParseCommentMetadata:
    """Test the pure metadata parser."""

    def test_standard_format(self):
        """Test a metadata line with a time component."""
        meta = parse_comment_metadata("comment 101 posted by jsmith on 2011-8-16 3:42 PM, visible to all")

        assert meta == CommentMetadata(
            comment_id=101,
            author='jsmith',
            date=datetime(2011, 8, 16, 15, 42),
            has_attachment=False,
            date_only=False
        )

    def test_date_only_format(self):
        """Test the anomalous record without a time component."""
        meta = parse_comment_metadata("comment 500 posted by xyz on 2009-3-5, visible to all")

        assert meta.date == datetime(2009, 3, 5)
        assert meta.date_only is True
        assert meta.comment_id == 500
        assert meta.author == 'xyz'

    def test_attachment_sentinel(self):
        """Test that a leading 'file' token flags an attachment."""
        meta = parse_comment_metadata("file 102 posted by hol353 on 2011-8-17 10:05 AM, visible to all")

        assert meta.has_attachment is True
        assert meta.date == datetime(2011, 8, 17, 10, 5)

    def test_custom_sentinel(self):
        """Test that the sentinel comes from the rules."""
        rules = ExtractionRules(attachment_sentinel='attachment')
        meta = parse_comment_metadata("attachment 7 posted by a on 2011-8-17 10:05 AM, visible to all", rules)

        assert meta.has_attachment is True

    def test_unparsable_date_reports_context(self):
        """Test that a bad date raises a data defect naming bug, metadata and index."""
        text = "comment 9 posted by a on 2011-13-45 3:42 PM, visible to all"

        with pytest.raises(DataDefectError) as exc_info:
            parse_comment_metadata(text, bug_id=77)

        message = str(exc_info.value)
        assert "bug #77" in message
        assert text in message
        assert "token index: 6" in message
        assert exc_info.value.bug_id == 77
        assert exc_info.value.category == 'data-defect'

    def test_too_few_tokens(self):
        """Test that a truncated metadata line is a data defect."""
        with pytest.raises(DataDefectError, match="too few tokens"):
            parse_comment_metadata("comment 9 posted", bug_id=1)

    def test_non_numeric_id(self):
        """Test that a non-numeric comment id is a data defect."""
        with pytest.raises(DataDefectError, match="not a number"):
            parse_comment_metadata("comment abc posted by a on 2011-8-16 3:42 PM, visible to all")


class TestDateRoundTrip:
    """Test that rendering a parsed date gives back the normalized input."""

    @pytest.mark.parametrize("text", [
        "2011-8-16 3:42 PM,",
        "2011-08-16 03:42 PM",
        "2012-12-31 12:05 AM",
        "2010-1-1 12:00 PM",
    ])
    def test_standard_format(self, text):
        parsed = datetime.strptime(text.rstrip(','), ExtractionRules().comment_date_format)

        assert render_comment_date(parsed) == normalize_comment_date(text)

    @pytest.mark.parametrize("text", ["2009-3-5,", "2009-03-05"])
    def test_date_only_format(self, text):
        parsed = datetime.strptime(text.rstrip(','), ExtractionRules().short_comment_date_format)

        assert render_comment_date(parsed, date_only=True) == normalize_comment_date(text)

    def test_normalize_examples(self):
        assert normalize_comment_date("2011-08-16 03:42 PM,") == "2011-8-16 3:42 PM"
        assert normalize_comment_date("2009-03-05,") == "2009-3-5"


class TestBugListExtraction:
    """Test extraction of the bug list."""

    def test_extracts_all_bugs(self, fake_source):
        """Test that every data row becomes a bug and the header is skipped."""
        bugs = BugExtractor(fake_source).extract()

        assert [bug.id for bug in bugs] == [1, 2]

    def test_row_fields(self, fake_source):
        """Test the positional fields of a row."""
        bug = BugExtractor(fake_source).extract()[0]

        assert bug.priority == 'high'
        assert bug.status == 'open'
        assert bug.description == 'Crash on startup'
        assert bug.project == 'APSIM'
        assert bug.category == 'bug'
        assert bug.author == 'jsmith'
        assert bug.date == datetime(2011, 8, 16, 15, 42, 10)
        assert bug.assignee == 'hol353'

    @pytest.mark.parametrize("count,cap,expected", [
        (5, 0, 5),
        (5, -1, 5),
        (5, 3, 3),
        (5, 5, 5),
        (5, 10, 5),
        (0, 0, 0),
    ])
    def test_cap(self, count, cap, expected):
        """Test that a positive cap yields min(N, cap) bugs."""
        source = FakeBugTrackerClient(bug_list(*(bug_row(i) for i in range(1, count + 1))), threads={})

        bugs = BugExtractor(source).extract(max_bugs=cap)

        assert len(bugs) == expected
        assert len(source.loaded_threads) == expected

    def test_footer_row_skipped(self):
        """Test that a trailing row without a bug id is ignored."""
        source = FakeBugTrackerClient(bug_list(bug_row(1), bug_row(2), footer=True), threads={})

        assert [bug.id for bug in BugExtractor(source).extract()] == [1, 2]

    def test_preserves_list_order(self):
        """Test that bugs come out in the order of the list."""
        source = FakeBugTrackerClient(bug_list(bug_row(30), bug_row(10), bug_row(20)), threads={})

        assert [bug.id for bug in BugExtractor(source).extract()] == [30, 10, 20]

    def test_bad_bug_date_is_fatal(self):
        """Test that a malformed bug date aborts extraction."""
        source = FakeBugTrackerClient(bug_list(bug_row(1), bug_row(2, date='yesterday')), threads={})

        with pytest.raises(DataDefectError, match="bug #2") as exc_info:
            BugExtractor(source).extract()
        assert exc_info.value.bug_id == 2

    def test_short_row_is_fatal(self):
        """Test that a numeric row with missing cells is a data defect."""
        source = FakeBugTrackerClient(bug_list("<tr><td>4</td><td>high</td></tr>"), threads={})

        with pytest.raises(DataDefectError, match="expected 9"):
            BugExtractor(source).extract()


class TestThreadExtraction:
    """Test extraction of comments from a thread page."""

    def test_chronological_order(self):
        """Test that newest-first markup yields ascending comments."""
        html = thread(
            comment_block(3, date='2011-8-18 9:00 AM,'),
            comment_block(2, date='2011-8-17 9:00 AM,'),
            comment_block(1, date='2011-8-16 9:00 AM,'),
        )

        comments = BugExtractor(FakeBugTrackerClient()).parse_thread(1, html)

        assert [c.id for c in comments] == [1, 2, 3]
        assert all(a.date < b.date for a, b in zip(comments, comments[1:]))

    @pytest.mark.parametrize("position", [0, 1, 2])
    def test_denylisted_comment_dropped(self, position):
        """Test that a denylisted id never appears, wherever it sits."""
        ids = [11, 12, 13]
        ids[position] = 686
        html = thread(*(comment_block(i) for i in ids))

        comments = BugExtractor(FakeBugTrackerClient()).parse_thread(1, html)

        assert 686 not in [c.id for c in comments]
        assert len(comments) == 2

    def test_injected_denylist(self):
        """Test that tests can substitute a smaller denylist."""
        rules = ExtractionRules(denylisted_comment_ids=frozenset({12}))
        html = thread(comment_block(12), comment_block(686))

        comments = BugExtractor(FakeBugTrackerClient(), rules).parse_thread(1, html)

        assert [c.id for c in comments] == [686]

    def test_comment_fields(self, fake_source):
        """Test body text, author and date of a plain comment."""
        bug = BugExtractor(fake_source).extract()[0]
        first = bug.comments[0]

        assert first.id == 101
        assert first.author == 'jsmith'
        assert first.text == 'The model crashes when loading a simulation.'
        assert first.date == datetime(2011, 8, 16, 15, 42)
        assert first.attachment is None
        assert first.has_attachment is False

    def test_attachment(self, fake_source):
        """Test name, size and resolved url of an attachment."""
        bug = BugExtractor(fake_source).extract()[0]
        reply = bug.comments[1]

        assert reply.id == 102
        assert reply.has_attachment is True
        assert reply.attachment.name == 'crash log.txt'
        assert reply.attachment.size == 2048
        assert reply.attachment.url == ROOT_URL + 'view_attachment.aspx?id=55&bug_id=1'

    def test_missing_metadata_is_fatal(self):
        """Test that a comment block without metadata is a data defect."""
        html = thread('<div class="cmt"><table></table><table><tr><td>x</td></tr></table></div>')

        with pytest.raises(DataDefectError, match="without metadata"):
            BugExtractor(FakeBugTrackerClient()).parse_thread(5, html)

    def test_empty_thread(self):
        assert BugExtractor(FakeBugTrackerClient()).parse_thread(5, thread()) == []
