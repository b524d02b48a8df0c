"""Service layer for persistence and the GitHub API."""

from .archive_service import ArchiveService
from .database import DatabaseService
from .github_service import CommentRef, DiscussionRef, GitHubAPIError, GitHubService
from .mapping_service import MappingService

__all__ = [
    "ArchiveService",
    "CommentRef",
    "DatabaseService",
    "DiscussionRef",
    "GitHubAPIError",
    "GitHubService",
    "MappingService",
]
