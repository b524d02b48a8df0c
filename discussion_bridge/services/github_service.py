"""GitHub Discussions API service (GraphQL) with token or GitHub App authentication."""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

import httpx
import jwt

from ..config import GitHubConfig

logger = logging.getLogger(__name__)


GET_REPOSITORY_ID_QUERY = """
query($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) {
    id
  }
}
"""

CREATE_DISCUSSION_MUTATION = """
mutation($repositoryId: ID!, $categoryId: ID!, $title: String!, $body: String!) {
  createDiscussion(input: {
    repositoryId: $repositoryId
    categoryId: $categoryId
    title: $title
    body: $body
  }) {
    discussion {
      id
      url
    }
  }
}
"""

ADD_COMMENT_MUTATION = """
mutation($discussionId: ID!, $body: String!) {
  addDiscussionComment(input: {discussionId: $discussionId, body: $body}) {
    comment {
      id
      url
    }
  }
}
"""

GET_DISCUSSION_URL_QUERY = """
query($id: ID!) {
  node(id: $id) {
    ... on Discussion {
      url
    }
  }
}
"""

LIST_CATEGORIES_QUERY = """
query($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) {
    discussionCategories(first: 100) {
      nodes {
        id
        name
        description
        emoji
      }
    }
  }
}
"""


class GitHubAPIError(Exception):
    """A GitHub API call failed (HTTP error or GraphQL errors)."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        errors: Optional[list[dict[str, Any]]] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
        self.errors = errors or []


@dataclass
class DiscussionRef:
    """Identifier and URL of a created discussion."""

    id: str
    url: str


@dataclass
class CommentRef:
    """Identifier and URL of a created discussion comment."""

    id: str
    url: str


class GitHubService:
    """GitHub Discussions interactions over the GraphQL API."""

    GITHUB_API_BASE = "https://api.github.com"

    def __init__(self, config: GitHubConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize GitHub service.

        Args:
            config: Repository coordinates and credentials.
            transport: Optional httpx transport (used by tests to mock the API).
        """
        self.config = config
        self._transport = transport
        self._token_cache: Optional[tuple[str, datetime]] = None
        self._repository_id: Optional[str] = None
        logger.debug(
            "GitHubService initialized for %s/%s (app auth: %s)",
            config.owner,
            config.repo,
            config.uses_app_auth,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=30.0)

    def _generate_jwt(self) -> str:
        """
        Generate JWT for GitHub App authentication.

        Returns:
            Signed JWT token.
        """
        # GitHub's max JWT lifetime is 10 minutes
        now = int(time.time())
        payload = {
            "iat": now - 60,  # allow for clock drift
            "exp": now + (10 * 60),
            "iss": self.config.app_id,
        }

        try:
            token = jwt.encode(payload, self.config.private_key.get_secret_value(), algorithm="RS256")
            logger.debug("Generated GitHub App JWT (expires in 10 minutes)")
            return token
        except Exception as e:
            logger.error("Failed to generate JWT: %s", e)
            raise

    async def _get_installation_token(self) -> str:
        """
        Get installation access token (cached for 50 minutes).

        Returns:
            Installation access token.
        """
        if self._token_cache:
            token, expiry = self._token_cache
            if datetime.now() < expiry:
                logger.debug("Using cached installation token")
                return token

        logger.debug("Fetching new installation access token...")

        jwt_token = self._generate_jwt()
        url = f"{self.GITHUB_API_BASE}/app/installations/{self.config.installation_id}/access_tokens"
        headers = {
            "Authorization": f"Bearer {jwt_token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

        async with self._client() as client:
            try:
                response = await client.post(url, headers=headers)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as e:
                logger.error(
                    "Failed to fetch installation token (HTTP %d): %s",
                    e.response.status_code,
                    e.response.text,
                )
                raise GitHubAPIError(
                    "Failed to fetch installation token",
                    status_code=e.response.status_code,
                    response_body=e.response.text,
                ) from e

        token = data["token"]
        # Tokens expire in 1 hour, refresh early
        self._token_cache = (token, datetime.now() + timedelta(minutes=50))
        logger.info("Fetched new installation access token (valid for 50 minutes)")
        return token

    async def _get_token(self) -> str:
        if self.config.token is not None:
            return self.config.token.get_secret_value()
        return await self._get_installation_token()

    async def graphql(self, query: str, variables: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """
        Execute a GraphQL query or mutation.

        Args:
            query: GraphQL document.
            variables: Variables for the document.

        Returns:
            The ``data`` object of the response.

        Raises:
            GitHubAPIError: On non-2xx responses or a GraphQL ``errors`` list.
        """
        token = await self._get_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        payload = {"query": query, "variables": variables or {}}

        async with self._client() as client:
            try:
                response = await client.post(
                    f"{self.GITHUB_API_BASE}/graphql", headers=headers, json=payload
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                logger.error(
                    "GraphQL request failed (HTTP %d): %s",
                    e.response.status_code,
                    e.response.text,
                )
                raise GitHubAPIError(
                    f"GraphQL request failed with status {e.response.status_code}",
                    status_code=e.response.status_code,
                    response_body=e.response.text,
                ) from e

        data = response.json()
        errors = data.get("errors")
        if errors:
            logger.error(
                "GraphQL request returned %d error(s): %s",
                len(errors),
                [error.get("message", str(error)) for error in errors],
            )
            raise GitHubAPIError(
                "GraphQL request returned errors",
                status_code=response.status_code,
                response_body=response.text,
                errors=errors,
            )

        return data.get("data") or {}

    async def get_repository_id(self) -> str:
        """Resolve the repository node ID (cached after the first call)."""
        if self._repository_id:
            return self._repository_id

        data = await self.graphql(
            GET_REPOSITORY_ID_QUERY,
            {"owner": self.config.owner, "name": self.config.repo},
        )
        repository = data.get("repository")
        if not repository:
            raise GitHubAPIError(f"Repository {self.config.owner}/{self.config.repo} not found")

        self._repository_id = repository["id"]
        logger.debug("Resolved repository id %s", self._repository_id)
        return self._repository_id

    async def create_discussion(self, title: str, body: str) -> DiscussionRef:
        """
        Create a discussion in the configured category.

        Args:
            title: Discussion title.
            body: Discussion body (markdown).

        Returns:
            DiscussionRef with the new discussion's node ID and URL.
        """
        repository_id = await self.get_repository_id()
        logger.info("Creating GitHub discussion: %s", title)

        data = await self.graphql(
            CREATE_DISCUSSION_MUTATION,
            {
                "repositoryId": repository_id,
                "categoryId": self.config.discussion_category_id,
                "title": title,
                "body": body,
            },
        )
        discussion = data["createDiscussion"]["discussion"]
        logger.info("Created discussion %s: %s", discussion["id"], discussion["url"])
        return DiscussionRef(id=discussion["id"], url=discussion["url"])

    async def add_comment(self, discussion_id: str, body: str) -> CommentRef:
        """
        Add a comment to a discussion.

        Args:
            discussion_id: Discussion node ID.
            body: Comment body (markdown).

        Returns:
            CommentRef with the new comment's node ID and URL.
        """
        logger.debug("Adding comment to discussion %s", discussion_id)
        data = await self.graphql(
            ADD_COMMENT_MUTATION,
            {"discussionId": discussion_id, "body": body},
        )
        comment = data["addDiscussionComment"]["comment"]
        logger.info("Added comment %s to discussion %s", comment["id"], discussion_id)
        return CommentRef(id=comment["id"], url=comment["url"])

    async def get_discussion_url(self, discussion_id: str) -> Optional[str]:
        """Look up a discussion's URL by node ID."""
        data = await self.graphql(GET_DISCUSSION_URL_QUERY, {"id": discussion_id})
        node = data.get("node") or {}
        return node.get("url")

    async def list_discussion_categories(self) -> list[dict[str, Any]]:
        """List the repository's discussion categories."""
        data = await self.graphql(
            LIST_CATEGORIES_QUERY,
            {"owner": self.config.owner, "name": self.config.repo},
        )
        repository = data.get("repository") or {}
        return (repository.get("discussionCategories") or {}).get("nodes") or []

    async def verify_connection(self) -> None:
        """Check the credentials and repository, and that the configured category exists.

        Raises:
            GitHubAPIError: If the repository cannot be resolved.
        """
        repository_id = await self.get_repository_id()
        logger.info(
            "Connected to repository %s/%s (%s)", self.config.owner, self.config.repo, repository_id
        )

        categories = await self.list_discussion_categories()
        category_ids = {category["id"] for category in categories}
        if self.config.discussion_category_id not in category_ids:
            logger.warning(
                "Discussion category %s not found; available: %s",
                self.config.discussion_category_id,
                ", ".join(f"{c['name']} ({c['id']})" for c in categories) or "none",
            )
