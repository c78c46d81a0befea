"""GitHub hosting adapter."""

from .client import GitHubClient, GitHubContentFetcher, PullRequestNotFound, UpstreamUnavailable

__all__ = [
    "GitHubClient",
    "GitHubContentFetcher",
    "PullRequestNotFound",
    "UpstreamUnavailable",
]
