import re
import logging
from typing import Callable, List, Optional

logger = logging.getLogger('bugtracker_migration')

LEGACY_ID_PATTERN = re.compile(r'Legacy Bug ID: (\d+)')
# Issues created by the first version of the migration only carried a "Bug #N" header
OLD_LEGACY_ID_PATTERN = re.compile(r'Bug #(\d+)')


def get_legacy_id(body: Optional[str]) -> int:
    """
    Return the legacy bug id embedded in an issue body.

    Args:
        body: GitHub issue body

    Returns:
        The legacy bug id, or -1 if the body carries no marker
    """
    if not body:
        return -1
    for pattern in (LEGACY_ID_PATTERN, OLD_LEGACY_ID_PATTERN):
        match = pattern.search(body)
        if match:
            return int(match.group(1))
    return -1


class LinkRewriter:
    """
    Rewrites links in comments that were already posted to GitHub.

    Two generations of broken links exist:

    - attachment links written without a scheme (``[name](host/...)``),
      which GitHub renders as relative links
    - links that still point at the bug tracker's attachment viewer
    """

    def __init__(self, host: str, tracker_root: str, scheme: str = 'https'):
        """
        Args:
            host: Web host serving re-hosted attachments (e.g. www.apsim.info)
            tracker_root: Root URL of the legacy bug tracker
            scheme: Scheme added to links that lack one
        """
        self.host = host.strip('/')
        self.tracker_root = tracker_root.rstrip('/')
        self.scheme = scheme

        self.missing_scheme_pattern = re.compile(r'(\[[^\]]+\])\(' + re.escape(self.host))
        self.tracker_link_pattern = re.compile(
            r'\[([^\]]+)\]\(' + re.escape(self.tracker_root) + r'[^\)]*\)'
        )

    def has_missing_scheme(self, text: str) -> bool:
        return bool(text) and self.missing_scheme_pattern.search(text) is not None

    def fix_missing_scheme(self, text: str) -> str:
        """Prefix the scheme to markdown links that start with the bare host."""
        return self.missing_scheme_pattern.sub(
            lambda m: f"{m.group(1)}({self.scheme}://{self.host}", text
        )

    def find_tracker_links(self, text: str) -> List[str]:
        """Return the link texts of every link still pointing at the tracker."""
        if not text:
            return []
        return [m.group(1) for m in self.tracker_link_pattern.finditer(text)]

    def rewrite_tracker_links(self, text: str, url_for: Callable[[str], str]) -> str:
        """
        Point tracker links at their re-hosted location.

        Args:
            text: Comment body
            url_for: Called with each link text, returns the new target URL

        Returns:
            The rewritten text
        """
        def replace(match):
            link_text = match.group(1)
            url = url_for(link_text)
            logger.debug("Rewriting link '%s' to %s", link_text, url)
            return f"[{link_text}]({url})"

        return self.tracker_link_pattern.sub(replace, text)

    @staticmethod
    def strip_tabs(text: str) -> str:
        return text.replace('\t', '')
