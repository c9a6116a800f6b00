"""
GitHub API client for the migration tool.

This module provides a focused client for the GitHub issues API,
encapsulating authentication, rate limit tracking, pagination and
error classification.
"""

import requests
import time
from typing import List, Dict, Any, Optional, Tuple

from ..exceptions import (
    AbuseDetectionError,
    APIError,
    AuthenticationError,
    NetworkError,
    ValidationError
)

# Fragments of the messages GitHub returns when it blocks content creation
ABUSE_MARKERS = (
    'abuse detection',
    'secondary rate limit',
    'temporarily blocked from content creation',
)


class GitHubClient:
    """
    Client for interacting with the GitHub issues API.

    Every response updates the tracked rate limit, so callers can read
    ``rate_limit_remaining`` after any call to decide whether to slow down.

    Attributes:
        owner (str): GitHub repository owner (user or organization)
        repo (str): GitHub repository name
        token (str): GitHub personal access token
        session (requests.Session): Authenticated session for API calls
        base_url (str): Base URL for repository API endpoints
    """

    def __init__(self, owner: str, repo: str, token: str, dry_run: bool = False,
                 session: Optional[requests.Session] = None) -> None:
        """
        Initialize the GitHub API client.

        Args:
            owner: GitHub repository owner (user or organization)
            repo: GitHub repository name
            token: GitHub personal access token
            dry_run: Whether to simulate write calls without making changes
            session: Optional pre-built session (used by tests)

        Raises:
            ValidationError: If any required parameter is empty
        """
        if not owner or not owner.strip():
            raise ValidationError("GitHub owner cannot be empty")
        if not repo or not repo.strip():
            raise ValidationError("GitHub repository cannot be empty")
        if not token or not token.strip():
            raise ValidationError("GitHub token cannot be empty")

        self.owner = owner
        self.repo = repo
        self.token = token
        self.dry_run = dry_run

        # Simulated counter for dry-run mode
        self.simulated_number_counter = 1

        # Rate limiting state for the core API resource
        self.rate_limits = {
            'core': {'limit': 5000, 'remaining': 5000, 'reset': 0, 'used': 0},
        }

        # Setup authenticated session
        self.session = session or requests.Session()
        self.session.headers.update({
            'Authorization': f'token {token}',
            'Accept': 'application/vnd.github.v3+json',
            'User-Agent': 'BugTracker-Migration-Tool/1.0'
        })

        # Base URL for repository API endpoints
        self.base_url = f"https://api.github.com/repos/{owner}/{repo}"

    @property
    def rate_limit_remaining(self) -> int:
        """Remaining core API quota as reported by the last response."""
        return self.rate_limits['core']['remaining']

    def _update_rate_limits_from_headers(self, headers) -> None:
        """
        Update rate limit tracking from response headers (free, no extra API call).

        Args:
            headers: Response headers from any GitHub API call
        """
        resource = headers.get('X-RateLimit-Resource', 'core')

        # Only track known resources
        if resource not in self.rate_limits:
            return

        try:
            self.rate_limits[resource].update({
                'limit': int(headers.get('X-RateLimit-Limit', self.rate_limits[resource]['limit'])),
                'remaining': int(headers.get('X-RateLimit-Remaining', self.rate_limits[resource]['remaining'])),
                'reset': int(headers.get('X-RateLimit-Reset', self.rate_limits[resource]['reset'])),
                'used': int(headers.get('X-RateLimit-Used', self.rate_limits[resource]['used']))
            })
        except (ValueError, TypeError):
            # If header parsing fails, keep existing values
            pass

    def _make_request_with_retry(self, method: str, url: str, max_retries: int = 3, **kwargs) -> requests.Response:
        """
        Make an HTTP request, retrying transient failures of read requests.

        Writes are sent exactly once: retrying a POST after a server error
        could create the same issue or comment twice.

        Args:
            method: HTTP method (GET, POST, PATCH)
            url: Request URL
            max_retries: Maximum number of retries for GET requests
            **kwargs: Additional arguments for requests

        Returns:
            Response object (possibly an error response)

        Raises:
            NetworkError: If the host cannot be reached
        """
        retries = max_retries if method.upper() == 'GET' else 0
        last_exception = None

        for attempt in range(retries + 1):
            try:
                response = self.session.request(method, url, **kwargs)
                self._update_rate_limits_from_headers(response.headers)

                if response.status_code >= 500 or response.status_code == 408:
                    if attempt < retries:
                        time.sleep(min(2 ** attempt, 30))
                        continue

                return response

            except requests.exceptions.RequestException as e:
                last_exception = e
                if attempt < retries:
                    time.sleep(min(2 ** attempt, 30))
                    continue
                break

        raise NetworkError(f"Network error communicating with GitHub API: {last_exception}")

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            return str(response.json().get('message', ''))
        except (ValueError, AttributeError):
            return getattr(response, 'text', '') or ''

    def _check_response(self, response: requests.Response, not_found: str) -> None:
        """
        Translate an error response into the matching exception.

        Args:
            response: Response to check
            not_found: Message used for 404 responses

        Raises:
            AbuseDetectionError: If GitHub temporarily blocked content creation
            AuthenticationError: If authentication or permissions fail
            ValidationError: If GitHub rejected the payload
            APIError: For any other error status
        """
        status = response.status_code
        if status < 400:
            return

        message = self._error_message(response)
        if status in (403, 429) and any(marker in message.lower() for marker in ABUSE_MARKERS):
            raise AbuseDetectionError(message, status_code=status)
        if status == 401:
            raise AuthenticationError("GitHub authentication failed. Please check your token.")
        if status == 403:
            raise AuthenticationError(f"GitHub API access forbidden: {message or 'check your token permissions'}")
        if status == 404:
            raise APIError(not_found, status_code=404)
        if status == 422:
            raise ValidationError(f"GitHub rejected the request: {message}")
        raise APIError(f"GitHub API error ({status}): {message}", status_code=status)

    def create_issue(self, title: str, body: str) -> Dict[str, Any]:
        """
        Create a GitHub issue.

        Args:
            title: Issue title
            body: Issue body content

        Returns:
            Created GitHub issue data (or simulated data in dry-run mode)

        Raises:
            ValidationError: If title is empty
            AbuseDetectionError: If GitHub temporarily blocked content creation
            APIError: If the API request fails
            AuthenticationError: If authentication fails
            NetworkError: If there's a network connectivity issue
        """
        if not title or not title.strip():
            raise ValidationError("Issue title cannot be empty")
        if not body:
            body = ""  # Body can be empty

        # In dry-run mode, return simulated data
        if self.dry_run:
            number = self.simulated_number_counter
            self.simulated_number_counter += 1
            return {
                'number': number,
                'title': title.strip(),
                'body': body,
                'state': 'open',
                'html_url': f"https://github.com/{self.owner}/{self.repo}/issues/{number}"
            }

        payload = {
            'title': title.strip(),
            'body': body,
        }

        response = self._make_request_with_retry('POST', f"{self.base_url}/issues", json=payload)
        self._check_response(response, f"Repository not found: {self.owner}/{self.repo}")
        return response.json()

    def create_comment(self, issue_number: int, body: str) -> Dict[str, Any]:
        """
        Create a comment on a GitHub issue.

        Args:
            issue_number: The issue number
            body: Comment text

        Returns:
            Created comment data (or simulated data in dry-run mode)

        Raises:
            ValidationError: If body is empty or issue_number is invalid
            AbuseDetectionError: If GitHub temporarily blocked content creation
            APIError: If the API request fails
            AuthenticationError: If authentication fails
            NetworkError: If there's a network connectivity issue
        """
        if not isinstance(issue_number, int) or issue_number <= 0:
            raise ValidationError("Issue number must be a positive integer")
        if not body or not body.strip():
            raise ValidationError("Comment body cannot be empty")

        # In dry-run mode, return simulated data
        if self.dry_run:
            return {
                'id': 1,  # Simulated comment ID
                'body': body,
                'html_url': f"https://github.com/{self.owner}/{self.repo}/issues/{issue_number}#issuecomment-1"
            }

        response = self._make_request_with_retry(
            'POST',
            f"{self.base_url}/issues/{issue_number}/comments",
            json={'body': body}
        )
        self._check_response(response, f"Issue not found: {issue_number}")
        return response.json()

    def update_issue(self, issue_number: int, **kwargs) -> Dict[str, Any]:
        """
        Update a GitHub issue.

        Args:
            issue_number: The issue number to update
            **kwargs: Fields to update (state, body, title, ...)

        Returns:
            Updated issue data (or simulated data in dry-run mode)

        Raises:
            ValidationError: If issue_number is invalid or no fields are given
            APIError: If the API request fails
            AuthenticationError: If authentication fails
            NetworkError: If there's a network connectivity issue
        """
        if not isinstance(issue_number, int) or issue_number <= 0:
            raise ValidationError("Issue number must be a positive integer")

        if not kwargs:
            raise ValidationError("No fields to update")

        # In dry-run mode, return simulated data
        if self.dry_run:
            return {
                'number': issue_number,
                'state': kwargs.get('state', 'open'),
                'html_url': f"https://github.com/{self.owner}/{self.repo}/issues/{issue_number}"
            }

        response = self._make_request_with_retry('PATCH', f"{self.base_url}/issues/{issue_number}", json=kwargs)
        self._check_response(response, f"Issue not found: {issue_number}")
        return response.json()

    def update_comment(self, comment_id: int, body: str) -> Dict[str, Any]:
        """
        Update a GitHub issue comment.

        Args:
            comment_id: The comment ID to update
            body: New comment text

        Returns:
            Updated comment data (or simulated data in dry-run mode)

        Raises:
            ValidationError: If comment_id is invalid or body is empty
            APIError: If the API request fails
            AuthenticationError: If authentication fails
            NetworkError: If there's a network connectivity issue
        """
        if not isinstance(comment_id, int) or comment_id <= 0:
            raise ValidationError("Comment ID must be a positive integer")
        if not body or not body.strip():
            raise ValidationError("Comment body cannot be empty")

        # In dry-run mode, return simulated data
        if self.dry_run:
            return {'id': comment_id, 'body': body}

        response = self._make_request_with_retry(
            'PATCH',
            f"{self.base_url}/issues/comments/{comment_id}",
            json={'body': body}
        )
        self._check_response(response, f"Comment not found: {comment_id}")
        return response.json()

    def list_issues(self, url: Optional[str] = None, state: str = 'all',
                    per_page: int = 100) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """
        Fetch one page of repository issues, newest first.

        Args:
            url: Next-page URL returned by a previous call, or None for the first page
            state: Issue state filter ('open', 'closed' or 'all')
            per_page: Page size for the first page

        Returns:
            Tuple of (issues on this page, URL of the next page or None)

        Raises:
            APIError: If the API request fails
            AuthenticationError: If authentication fails
            NetworkError: If there's a network connectivity issue
        """
        # Read operations are allowed in dry-run mode
        if url is None:
            response = self._make_request_with_retry(
                'GET', f"{self.base_url}/issues",
                params={'state': state, 'per_page': per_page, 'sort': 'created', 'direction': 'desc'}
            )
        else:
            response = self._make_request_with_retry('GET', url)
        self._check_response(response, f"Repository not found: {self.owner}/{self.repo}")

        next_link = (response.links or {}).get('next', {}).get('url')
        return response.json(), next_link

    def list_comments(self, issue_number: int) -> List[Dict[str, Any]]:
        """
        Fetch every comment on an issue, oldest first.

        Args:
            issue_number: The issue number

        Returns:
            List of comment data

        Raises:
            APIError: If the API request fails
            AuthenticationError: If authentication fails
            NetworkError: If there's a network connectivity issue
        """
        comments: List[Dict[str, Any]] = []
        response = self._make_request_with_retry(
            'GET', f"{self.base_url}/issues/{issue_number}/comments", params={'per_page': 100}
        )
        while True:
            self._check_response(response, f"Issue not found: {issue_number}")
            comments.extend(response.json())
            next_link = (response.links or {}).get('next', {}).get('url')
            if not next_link:
                return comments
            response = self._make_request_with_retry('GET', next_link)
