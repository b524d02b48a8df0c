"""Tests for the GitHub GraphQL client, using httpx's mock transport."""

import asyncio
import json

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from discussion_bridge.config import GitHubConfig
from discussion_bridge.services.github_service import GitHubAPIError, GitHubService


def _token_config() -> GitHubConfig:
    return GitHubConfig(
        owner="o",
        repo="r",
        discussion_category_id="DIC_1",
        webhook_secret="s3cret",
        token="ghp_x",
    )


class RecordingApi:
    """Serves canned GraphQL responses and records the requests."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.responses: list[httpx.Response] = []

    def queue(self, data=None, errors=None, status_code: int = 200) -> None:
        body = {}
        if data is not None:
            body["data"] = data
        if errors is not None:
            body["errors"] = errors
        self.responses.append(httpx.Response(status_code, json=body))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)

    def variables(self, index: int) -> dict:
        return json.loads(self.requests[index].content)["variables"]


class TestGitHubService:
    """Discussion and comment creation over GraphQL."""

    def setup_method(self):
        self.api = RecordingApi()
        self.service = GitHubService(_token_config(), transport=httpx.MockTransport(self.api))

    def test_create_discussion(self):
        self.api.queue({"repository": {"id": "R_1"}})
        self.api.queue(
            {"createDiscussion": {"discussion": {"id": "D_1", "url": "https://github.com/o/r/discussions/1"}}}
        )

        ref = asyncio.run(self.service.create_discussion("Bug: login fails", "Steps to repro…"))

        assert ref.id == "D_1"
        assert ref.url == "https://github.com/o/r/discussions/1"
        assert self.api.variables(1) == {
            "repositoryId": "R_1",
            "categoryId": "DIC_1",
            "title": "Bug: login fails",
            "body": "Steps to repro…",
        }
        assert self.api.requests[1].headers["Authorization"] == "Bearer ghp_x"
        assert str(self.api.requests[1].url) == "https://api.github.com/graphql"

    def test_repository_id_is_cached(self):
        self.api.queue({"repository": {"id": "R_1"}})
        self.api.queue({"createDiscussion": {"discussion": {"id": "D_1", "url": "u1"}}})
        self.api.queue({"createDiscussion": {"discussion": {"id": "D_2", "url": "u2"}}})

        async def runner():
            await self.service.create_discussion("a", "b")
            return await self.service.create_discussion("c", "d")

        ref = asyncio.run(runner())

        assert ref.id == "D_2"
        assert len(self.api.requests) == 3

    def test_add_comment(self):
        self.api.queue({"addDiscussionComment": {"comment": {"id": "DC_1", "url": "u#c1"}}})

        ref = asyncio.run(self.service.add_comment("D_1", "hello"))

        assert (ref.id, ref.url) == ("DC_1", "u#c1")
        assert self.api.variables(0) == {"discussionId": "D_1", "body": "hello"}

    def test_graphql_errors_raise(self):
        self.api.queue(data=None, errors=[{"message": "Could not resolve to a node"}])

        with pytest.raises(GitHubAPIError) as exc_info:
            asyncio.run(self.service.add_comment("D_missing", "hello"))

        assert exc_info.value.errors[0]["message"] == "Could not resolve to a node"
        assert exc_info.value.status_code == 200

    def test_http_errors_raise(self):
        self.api.queue(data={}, status_code=502)

        with pytest.raises(GitHubAPIError) as exc_info:
            asyncio.run(self.service.add_comment("D_1", "hello"))

        assert exc_info.value.status_code == 502

    def test_missing_repository_raises(self):
        self.api.queue({"repository": None})

        with pytest.raises(GitHubAPIError):
            asyncio.run(self.service.get_repository_id())

    def test_list_categories_and_discussion_url(self):
        self.api.queue(
            {"repository": {"discussionCategories": {"nodes": [{"id": "DIC_1", "name": "General"}]}}}
        )
        self.api.queue({"node": {"url": "https://github.com/o/r/discussions/1"}})

        async def runner():
            return (
                await self.service.list_discussion_categories(),
                await self.service.get_discussion_url("D_1"),
            )

        categories, url = asyncio.run(runner())

        assert categories == [{"id": "DIC_1", "name": "General"}]
        assert url == "https://github.com/o/r/discussions/1"


class TestAppAuthentication:
    """GitHub App installation tokens."""

    def setup_method(self):
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        self.public_key = key.public_key()
        pem = key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode()
        config = GitHubConfig(
            owner="o",
            repo="r",
            discussion_category_id="DIC_1",
            webhook_secret="s3cret",
            app_id="12345",
            private_key=pem,
            installation_id="678",
        )
        self.requests: list[httpx.Request] = []
        self.service = GitHubService(config, transport=httpx.MockTransport(self._handle))

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/app/installations/678/access_tokens":
            return httpx.Response(201, json={"token": "ghs_installation"})
        return httpx.Response(200, json={"data": {"repository": {"id": "R_1"}}})

    def test_installation_token_is_fetched_once(self):
        async def runner():
            await self.service.graphql("query { viewer { login } }")
            await self.service.graphql("query { viewer { login } }")

        asyncio.run(runner())

        token_requests = [r for r in self.requests if r.url.path.endswith("/access_tokens")]
        graphql_requests = [r for r in self.requests if r.url.path == "/graphql"]
        assert len(token_requests) == 1
        assert len(graphql_requests) == 2
        assert graphql_requests[0].headers["Authorization"] == "Bearer ghs_installation"

        app_jwt = token_requests[0].headers["Authorization"].removeprefix("Bearer ")
        claims = jwt.decode(app_jwt, self.public_key, algorithms=["RS256"])
        assert claims["iss"] == "12345"
