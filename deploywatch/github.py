"""
GitHub API access.

Resolves the tip commit of the watched branch with a single request to the
"get a commit" endpoint. There is no retry here; the scheduler's next tick is
the retry.
"""

import logging

import httpx

from .errors import ApiError, NetworkError, ParseError
from .models import RepositoryReference

logger = logging.getLogger(__name__)


class GitHubHeadResolver:
    """Looks up the latest commit SHA of a branch."""

    def __init__(
        self,
        api_url: str = "https://api.github.com",
        token: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {
            "User-Agent": "deploywatch",
            "Accept": "application/vnd.github+json",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def resolve_head(self, ref: RepositoryReference) -> str:
        """Return the SHA of the branch tip."""
        url = f"{self.api_url}{ref.commit_path}"

        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.get(url, headers=self._headers(), timeout=self.timeout)
        except httpx.HTTPError as e:
            raise NetworkError(f"Error contacting {url}: {e}") from e

        if response.status_code != 200:
            raise ApiError(response.status_code)

        try:
            sha = response.json()["sha"]
        except (ValueError, KeyError, TypeError) as e:
            raise ParseError(f"Unexpected response body from {url}") from e

        if not isinstance(sha, str) or not sha:
            raise ParseError(f"Missing commit sha in response from {url}")

        logger.debug(f"Head of {ref.full_name}@{ref.branch} is {sha}")
        return sha
