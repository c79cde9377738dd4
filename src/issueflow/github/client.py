"""GitHub API client for issue tracking.

This module provides an async wrapper around the GitHub REST API for one
repository, implementing the IssueStore port:
- Fetching and listing issues
- Managing labels (add/remove)
- Creating comments
- Opening and closing issues

Includes rate limiting and retry logic for API resilience.
"""

import asyncio
import logging
import random
import time
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import httpx

from src.issueflow.ports import PortFailure


logger = logging.getLogger(__name__)


class GitHubAPIError(PortFailure):
    """Raised when a GitHub API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response.
        response_body: Response body from GitHub API.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url


class RateLimitError(GitHubAPIError):
    """Raised when GitHub API rate limit is exceeded.

    Attributes:
        reset_at: Unix timestamp when the rate limit resets.
        retry_after: Seconds to wait before retrying.
    """

    def __init__(
        self,
        message: str,
        reset_at: Optional[int] = None,
        retry_after: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.reset_at = reset_at
        self.retry_after = retry_after


class GitHubClient:
    """Async GitHub issue client bound to one repository.

    Implements:

    - Automatic retry with exponential backoff and full jitter for
      transient failures (timeouts, connection errors, 408/429/5xx)
    - Rate limit detection from X-RateLimit-* and Retry-After headers
    - Support for both github.com and GitHub Enterprise Server

    Attributes:
        token: GitHub API token (PAT or GitHub App token).
        owner: Repository owner (user or organization).
        repo: Repository name.
        base_url: Base URL for GitHub API.
        max_retries: Maximum number of retry attempts for transient failures.
        base_delay: Base delay in seconds for exponential backoff.
        max_delay: Maximum delay in seconds between retries.
        timeout: Request timeout in seconds.

    Example:
        >>> async with GitHubClient("ghp_xxx", "octo", "widgets") as client:
        ...     await client.create_comment(123, "Hello!")
    """

    RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        base_url: str = "https://api.github.com",
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the GitHub client.

        Args:
            token: GitHub API token for authentication.
            owner: Repository owner.
            repo: Repository name.
            base_url: Base URL for GitHub API. Use this to support
                      GitHub Enterprise Server endpoints.
            max_retries: Maximum number of retry attempts.
            base_delay: Base delay in seconds for exponential backoff.
            max_delay: Maximum delay in seconds between retries.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.token = token
        self.owner = owner
        self.repo = repo
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    @property
    def repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "issueflow/0.1",
        }

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _calculate_backoff(self, attempt: int) -> float:
        """Exponential backoff with full jitter.

        Args:
            attempt: The current retry attempt (0-indexed).

        Returns:
            Delay in seconds before the next retry.
        """
        exponential_delay = self.base_delay * (2 ** attempt)
        capped_delay = min(exponential_delay, self.max_delay)
        return random.uniform(0, capped_delay)

    @staticmethod
    def _parse_int_header(headers: httpx.Headers, name: str) -> Optional[int]:
        value = headers.get(name)
        if value is not None:
            try:
                return int(value)
            except ValueError:
                return None
        return None

    def _rate_limit_error(self, response: httpx.Response) -> RateLimitError:
        """Build a RateLimitError from a rate-limited response."""
        reset_at = self._parse_int_header(response.headers, "x-ratelimit-reset")

        retry_after = None
        if reset_at is not None:
            retry_after = max(0, reset_at - int(time.time()))

        retry_after_header = self._parse_int_header(response.headers, "retry-after")
        if retry_after_header is not None:
            retry_after = retry_after_header

        logger.warning(
            "GitHub API rate limit exceeded",
            extra={
                "reset_at": reset_at,
                "retry_after": retry_after,
                "limit": self._parse_int_header(response.headers, "x-ratelimit-limit"),
            },
        )

        return RateLimitError(
            message="GitHub API rate limit exceeded",
            status_code=response.status_code,
            response_body=response.text,
            request_url=str(response.url),
            reset_at=reset_at,
            retry_after=retry_after,
        )

    def _is_rate_limited(self, response: httpx.Response) -> bool:
        if response.status_code == 429:
            return True
        if response.status_code == 403:
            remaining = self._parse_int_header(
                response.headers, "x-ratelimit-remaining"
            )
            return remaining == 0
        return False

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Make an HTTP request with retry logic.

        Args:
            method: HTTP method (GET, POST, PATCH, DELETE).
            path: API path relative to the base URL.
            json_data: Optional JSON body.
            params: Optional query parameters.

        Returns:
            The successful HTTP response.

        Raises:
            RateLimitError: If the rate limit is exhausted.
            GitHubAPIError: If the request fails after all retries or
                with a non-retryable status.
        """
        last_exception: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.request(
                    method=method,
                    url=path,
                    json=json_data,
                    params=params,
                )
            except (httpx.TimeoutException, httpx.RequestError) as e:
                last_exception = e
                if attempt < self.max_retries:
                    delay = self._calculate_backoff(attempt)
                    logger.warning(
                        "Request error, retrying",
                        extra={
                            "error": str(e),
                            "error_type": type(e).__name__,
                            "attempt": attempt + 1,
                            "max_retries": self.max_retries,
                            "delay": delay,
                            "path": path,
                        },
                    )
                    await asyncio.sleep(delay)
                continue

            if self._is_rate_limited(response):
                raise self._rate_limit_error(response)

            if (
                response.status_code in self.RETRYABLE_STATUS_CODES
                and attempt < self.max_retries
            ):
                delay = self._calculate_backoff(attempt)
                logger.warning(
                    "Retryable error from GitHub API",
                    extra={
                        "status_code": response.status_code,
                        "attempt": attempt + 1,
                        "max_retries": self.max_retries,
                        "delay": delay,
                        "path": path,
                    },
                )
                await asyncio.sleep(delay)
                continue

            if response.status_code >= 400:
                error_body = response.text
                log = logger.debug if response.status_code == 404 else logger.error
                log(
                    "GitHub API error",
                    extra={
                        "status_code": response.status_code,
                        "path": path,
                        "method": method,
                        "response_body": error_body[:500],
                    },
                )
                raise GitHubAPIError(
                    message=f"GitHub API error: {response.status_code}",
                    status_code=response.status_code,
                    response_body=error_body,
                    request_url=str(response.url),
                )

            return response

        logger.error(
            "GitHub API request failed after all retries",
            extra={
                "path": path,
                "method": method,
                "max_retries": self.max_retries,
                "last_error": str(last_exception),
            },
        )
        raise GitHubAPIError(
            message=f"Request failed after {self.max_retries} retries: {last_exception}",
            request_url=f"{self.base_url}{path}",
        )

    async def get_issue(self, issue_number: int) -> Dict[str, Any]:
        """Get issue details.

        Raises:
            GitHubAPIError: If the request fails.
        """
        logger.debug("Getting issue details", extra={"issue_number": issue_number})
        response = await self._request(
            "GET", f"{self.repo_path}/issues/{issue_number}"
        )
        return response.json()

    async def list_issues(self, state: str = "open") -> List[Dict[str, Any]]:
        """List issues (not pull requests) with the given tracker status.

        Args:
            state: "open", "closed" or "all".

        Returns:
            Issue payloads from the first page of results.
        """
        response = await self._request(
            "GET",
            f"{self.repo_path}/issues",
            params={"state": state, "per_page": 100},
        )
        return [item for item in response.json() if "pull_request" not in item]

    async def add_labels(self, issue_number: int, labels: Sequence[str]) -> None:
        """Add labels to an issue. An empty list makes no request."""
        if not labels:
            return

        logger.info(
            "Adding labels to issue",
            extra={"issue_number": issue_number, "labels": list(labels)},
        )
        await self._request(
            "POST",
            f"{self.repo_path}/issues/{issue_number}/labels",
            json_data={"labels": list(labels)},
        )

    async def remove_label(self, issue_number: int, label: str) -> None:
        """Remove a label from an issue.

        Raises:
            GitHubAPIError: If the request fails (except 404 which is ignored).
        """
        path = f"{self.repo_path}/issues/{issue_number}/labels/{quote(label, safe='')}"

        logger.info(
            "Removing label from issue",
            extra={"issue_number": issue_number, "label": label},
        )

        try:
            await self._request("DELETE", path)
        except GitHubAPIError as e:
            # 404 means the label wasn't on the issue
            if e.status_code == 404:
                logger.debug(
                    "Label not found on issue (already removed)",
                    extra={"issue_number": issue_number, "label": label},
                )
                return
            raise

    async def create_comment(self, issue_number: int, body: str) -> Dict[str, Any]:
        """Create a comment on an issue.

        Returns:
            The created comment data from GitHub API.
        """
        logger.info(
            "Creating comment on issue",
            extra={"issue_number": issue_number, "body_length": len(body)},
        )

        response = await self._request(
            "POST",
            f"{self.repo_path}/issues/{issue_number}/comments",
            json_data={"body": body},
        )
        return response.json()

    async def update_issue_state(self, issue_number: int, state: str) -> Dict[str, Any]:
        """Open or close an issue.

        Args:
            issue_number: Issue to update.
            state: "open" or "closed".

        Raises:
            ValueError: If state is neither "open" nor "closed".
        """
        if state not in ("open", "closed"):
            raise ValueError(f"Invalid issue state: {state}")

        logger.info(
            "Updating issue state",
            extra={"issue_number": issue_number, "issue_state": state},
        )
        response = await self._request(
            "PATCH",
            f"{self.repo_path}/issues/{issue_number}",
            json_data={"state": state},
        )
        return response.json()

    async def health_check(self) -> bool:
        """Check that the repository is reachable with the configured token."""
        try:
            await self._request("GET", self.repo_path)
            return True
        except GitHubAPIError as e:
            logger.warning(
                "GitHub health check failed",
                extra={"error": str(e), "status_code": e.status_code},
            )
            return False
