"""GitHub remote store."""

from .client import GitHubContentsClient, git_blob_sha

__all__ = ["GitHubContentsClient", "git_blob_sha"]
