"""GitHub REST adapter for pull-request metadata, file lists and raw contents."""

from __future__ import annotations

import json
import os
import time
from http.client import HTTPException
from typing import Any, Callable, List, Optional, Sequence
from urllib.error import HTTPError
from urllib.parse import quote
from urllib.request import Request, urlopen

from ..config import GitHubConfig
from ..logging import get_logger
from ..models import ChangedFile, FileStatus, PullRequestMetadata, PullRequestRef

_PAGE_SIZE = 100
_JSON_ACCEPT = "application/vnd.github+json"
_RAW_ACCEPT = "application/vnd.github.raw"

Opener = Callable[[Request, float], bytes]


class UpstreamUnavailable(RuntimeError):
    """Raised when the hosting API cannot provide pull-request data."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PullRequestNotFound(UpstreamUnavailable):
    """Raised when the referenced pull request does not exist or is not visible."""


def _default_opener(request: Request, timeout: float) -> bytes:
    with urlopen(request, timeout=timeout) as response:  # type: ignore[arg-type]
        return response.read()


class GitHubClient:
    """Thin urllib client for the three GitHub calls the engine needs."""

    ENV_TOKEN_KEYS = ("CONTEXTKEEPER_GITHUB_TOKEN", "GITHUB_TOKEN")

    def __init__(
        self,
        config: GitHubConfig | None = None,
        *,
        opener: Opener | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or GitHubConfig()
        self.token = self.config.token or self._first_env_value(self.ENV_TOKEN_KEYS)
        self._opener = opener or _default_opener
        self._sleep = sleep
        self.logger = get_logger("github")

    def fetch_pull_request_metadata(self, ref: PullRequestRef) -> PullRequestMetadata:
        url = f"{self._repo_url(ref)}/pulls/{ref.number}"
        try:
            payload = self._get_json(url)
        except UpstreamUnavailable as exc:
            if exc.status_code == 404:
                raise PullRequestNotFound(f"Pull request {ref} was not found", 404) from exc
            raise

        base = payload.get("base") if isinstance(payload, dict) else None
        base_sha = base.get("sha") if isinstance(base, dict) else None
        if not isinstance(base_sha, str) or not base_sha:
            raise UpstreamUnavailable(
                "Could not determine base commit SHA from pull request details."
            )
        head = payload.get("head")
        head_sha = head.get("sha") if isinstance(head, dict) else None
        title = payload.get("title")
        return PullRequestMetadata(
            base_revision=base_sha,
            head_revision=head_sha if isinstance(head_sha, str) else None,
            title=title if isinstance(title, str) else None,
        )

    def fetch_changed_files(self, ref: PullRequestRef) -> List[ChangedFile]:
        files: List[ChangedFile] = []
        for page in range(1, self.config.max_pages + 1):
            url = f"{self._repo_url(ref)}/pulls/{ref.number}/files?per_page={_PAGE_SIZE}&page={page}"
            payload = self._get_json(url)
            if not isinstance(payload, list):
                raise UpstreamUnavailable("GitHub API Error: Could not fetch file list.")
            for item in payload:
                changed = _changed_file(item)
                if changed is not None:
                    files.append(changed)
            if len(payload) < _PAGE_SIZE:
                break
        else:
            self.logger.warning(
                "File list for %s truncated after %d pages", ref, self.config.max_pages
            )
        self.logger.debug("Fetched %d changed files for %s", len(files), ref)
        return files

    def fetch_file_content(self, ref: PullRequestRef, filename: str, revision: str) -> str:
        """Return file contents at *revision*, or an empty string when unavailable."""
        url = "/".join(
            (
                self.config.raw_url,
                quote(ref.owner, safe=""),
                quote(ref.repo, safe=""),
                quote(revision, safe=""),
                quote(filename, safe="/"),
            )
        )
        return self.fetch_raw(url)

    def fetch_raw(self, url: str) -> str:
        """Return the body at *url* as text, or an empty string on any failure."""
        try:
            raw = self._fetch(url, accept=_RAW_ACCEPT)
        except UpstreamUnavailable as exc:
            self.logger.debug("Content unavailable at %s: %s", url, exc)
            return ""
        return raw.decode("utf-8", errors="replace")

    # ------------------------------------------------------------------
    # Internals

    def _repo_url(self, ref: PullRequestRef) -> str:
        return f"{self.config.api_url}/repos/{quote(ref.owner, safe='')}/{quote(ref.repo, safe='')}"

    def _get_json(self, url: str) -> Any:
        raw = self._fetch(url, accept=_JSON_ACCEPT)
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise UpstreamUnavailable("GitHub API returned invalid JSON") from exc

    def _fetch(self, url: str, *, accept: str) -> bytes:
        attempt = 0
        while True:
            request = self._build_request(url, accept)
            try:
                return self._opener(request, self.config.request_timeout)
            except HTTPError as exc:
                message = _error_message(exc)
                if exc.code >= 500 and attempt < self.config.max_retries:
                    attempt += 1
                    self._backoff(url, attempt, message)
                    continue
                raise UpstreamUnavailable(message, exc.code) from exc
            except (OSError, HTTPException) as exc:
                if attempt < self.config.max_retries:
                    attempt += 1
                    self._backoff(url, attempt, str(exc))
                    continue
                raise UpstreamUnavailable(f"GitHub request failed: {exc}") from exc

    def _backoff(self, url: str, attempt: int, reason: str) -> None:
        delay = self.config.retry_backoff * (2 ** (attempt - 1))
        self.logger.warning(
            "Retrying %s in %.2fs (attempt %d/%d): %s",
            url,
            delay,
            attempt,
            self.config.max_retries,
            reason,
        )
        if delay > 0:
            self._sleep(delay)

    def _build_request(self, url: str, accept: str) -> Request:
        headers = {"Accept": accept, "User-Agent": self.config.user_agent}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return Request(url, headers=headers, method="GET")

    @staticmethod
    def _first_env_value(keys: Sequence[str]) -> str | None:
        for key in keys:
            value = os.getenv(key)
            if value:
                return value
        return None


class GitHubContentFetcher:
    """Binds a client to one pull request for per-file content retrieval."""

    def __init__(
        self,
        client: GitHubClient,
        ref: PullRequestRef,
        *,
        head_revision: Optional[str] = None,
    ) -> None:
        self.client = client
        self.ref = ref
        self.head_revision = head_revision

    def fetch(self, file: ChangedFile, revision: Optional[str] = None) -> str:
        if revision is not None:
            return self.client.fetch_file_content(self.ref, file.filename, revision)
        if file.raw_url:
            return self.client.fetch_raw(file.raw_url)
        if self.head_revision:
            return self.client.fetch_file_content(self.ref, file.filename, self.head_revision)
        return ""


def _changed_file(item: object) -> Optional[ChangedFile]:
    if not isinstance(item, dict):
        return None
    filename = item.get("filename")
    if not isinstance(filename, str) or not filename:
        return None
    patch = item.get("patch")
    raw_url = item.get("raw_url")
    previous = item.get("previous_filename")
    return ChangedFile(
        filename=filename,
        status=FileStatus.from_upstream(str(item.get("status") or "")),
        patch=patch if isinstance(patch, str) else "",
        raw_url=raw_url if isinstance(raw_url, str) else None,
        previous_filename=previous if isinstance(previous, str) else None,
    )


def _error_message(exc: HTTPError) -> str:
    try:
        detail = exc.read().decode("utf-8", errors="ignore")
    except (OSError, HTTPException, AttributeError):
        detail = ""
    try:
        payload = json.loads(detail) if detail else {}
    except json.JSONDecodeError:
        payload = {}
    message = payload.get("message") if isinstance(payload, dict) else None
    if isinstance(message, str) and message:
        return message
    return f"GitHub API HTTP Error: {exc.code}"


__all__ = [
    "GitHubClient",
    "GitHubContentFetcher",
    "PullRequestNotFound",
    "UpstreamUnavailable",
]
