"""
HTTP client for the legacy BugTracker.NET website.

The site only serves the printable bug list to a session that already
visited the query page, so listing bugs takes two requests sharing cookies.
"""

import logging
from typing import Optional
from urllib.parse import urljoin

import requests

from ..exceptions import NetworkError

logger = logging.getLogger('bugtracker_migration')

QUERY_PAGE = 'bugs.aspx?qu_id=1'
PRINT_PAGE = 'print_bugs.aspx'
THREAD_PAGE = 'edit_bug.aspx?id={bug_id}'


class BugTrackerClient:
    """
    Read-only client for the bug tracker pages.

    Attributes:
        root_url (str): Root URL of the tracker, ending with '/'
        session (requests.Session): Session used for every request
    """

    def __init__(self, root_url: str, session: Optional[requests.Session] = None,
                 timeout: float = 60.0) -> None:
        if not root_url.endswith('/'):
            root_url += '/'
        self.root_url = root_url
        self.session = session or requests.Session()
        self.timeout = timeout

    def resolve(self, relative_url: str) -> str:
        """Resolve a link found in a page against the tracker root."""
        return urljoin(self.root_url, relative_url)

    def _get(self, url: str, cookies=None) -> requests.Response:
        try:
            response = self.session.get(url, cookies=cookies, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"Unable to fetch {url}: {e}")
        if response.status_code >= 400:
            raise NetworkError(f"Unable to fetch {url}: HTTP {response.status_code}")
        return response

    def load_bug_list(self) -> str:
        """
        Fetch the printable list of all bugs.

        Returns:
            HTML of the bug list page

        Raises:
            NetworkError: If either request of the handshake fails
        """
        query_url = self.root_url + QUERY_PAGE
        logger.debug("Fetching session cookie from %s", query_url)
        query = self._get(query_url)

        print_url = self.root_url + PRINT_PAGE
        logger.debug("Fetching bug list from %s", print_url)
        return self._get(print_url, cookies=query.cookies).text

    def load_thread(self, bug_id: int) -> str:
        """
        Fetch the page holding every comment of a bug.

        Raises:
            NetworkError: If the request fails
        """
        return self._get(self.root_url + THREAD_PAGE.format(bug_id=bug_id)).text
