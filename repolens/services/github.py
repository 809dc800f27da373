"""
GitHub collaborator: URL validation and repository content download.

Content comes from one tarball request per repository rather than one request
per file, after a metadata request that tells missing, private and
rate-limited repositories apart.
"""
import io
import logging
import posixpath
import tarfile
from dataclasses import dataclass
from datetime import datetime, timezone
from fnmatch import fnmatch
from urllib.parse import urlparse

import requests

from repolens.core.config import Settings
from repolens.core.errors import (
    ExternalFetchError,
    InputError,
    PrivateRepositoryError,
    RateLimitError,
    RepositoryNotFoundError,
)

logger = logging.getLogger(__name__)

GITHUB_HOST = "github.com"
MAX_ARCHIVE_BYTES = 50 * 1024 * 1024

IGNORED_DIRECTORIES = frozenset({
    ".git", "node_modules", "__pycache__", ".venv", "venv", "env",
    "dist", "build", ".next", ".nuxt", ".cache", ".tox", ".idea", ".vscode",
    "coverage", "target", "vendor", ".gradle",
})
IGNORED_FILE_PATTERNS = (
    "package-lock.json", "yarn.lock", "pnpm-lock.yaml", "poetry.lock", "Pipfile.lock",
    "*.min.js", "*.min.css", "*.map", "*.lock",
    "*.png", "*.jpg", "*.jpeg", "*.gif", "*.ico", "*.svg", "*.webp", "*.pdf",
    "*.woff", "*.woff2", "*.ttf", "*.eot", "*.mp4", "*.mp3",
    "*.zip", "*.gz", "*.tar", "*.jar", "*.exe", "*.dll", "*.so", "*.dylib",
    "*.pyc", "*.pyo", "*.class", "*.o", "*.db", "*.sqlite", ".DS_Store",
)


@dataclass(frozen=True)
class FileContent:
    path: str
    content: str


@dataclass(frozen=True)
class RepoRef:
    owner: str
    repo: str
    ref: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


def is_valid_github_url(url: str | None) -> bool:
    """https://github.com/<owner>/<repo>[/...]; anything else is rejected."""
    if not url or not isinstance(url, str):
        return False
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    if parsed.scheme not in ("http", "https"):
        return False
    if (parsed.hostname or "").lower() != GITHUB_HOST:
        return False
    segments = [s for s in parsed.path.split("/") if s]
    return len(segments) >= 2


def parse_repo(url: str) -> RepoRef:
    if not is_valid_github_url(url):
        raise InputError("Invalid GitHub repository URL")
    segments = [s for s in urlparse(url.strip()).path.split("/") if s]
    owner, repo = segments[0], segments[1]
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    ref = None
    if len(segments) >= 4 and segments[2] == "tree":
        ref = "/".join(segments[3:])
    return RepoRef(owner=owner, repo=repo, ref=ref)


def clean_github_url(url: str) -> str:
    """Canonical form used as the job's url: https://github.com/<owner>/<repo> (branch kept as /tree/<ref>)."""
    r = parse_repo(url)
    base = f"https://{GITHUB_HOST}/{r.owner}/{r.repo}"
    return f"{base}/tree/{r.ref}" if r.ref else base


def should_ignore_path(path: str) -> bool:
    parts = [p for p in path.split("/") if p]
    if any(p in IGNORED_DIRECTORIES for p in parts[:-1]):
        return True
    basename = parts[-1] if parts else ""
    return any(fnmatch(basename, pattern) for pattern in IGNORED_FILE_PATTERNS)


class GitHubFetcher:
    def __init__(
        self,
        token: str = "",
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
        max_file_bytes: int = 100_000,
        max_files: int = 400,
        session: requests.Session | None = None,
    ):
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.max_file_bytes = max_file_bytes
        self.max_files = max_files
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, s: Settings) -> "GitHubFetcher":
        return cls(
            token=s.github_token,
            api_url=s.github_api_url,
            timeout=s.github_timeout,
            max_file_bytes=s.max_file_bytes,
            max_files=s.max_repo_files,
        )

    def _headers(self) -> dict[str, str]:
        h = {"Accept": "application/vnd.github+json", "X-GitHub-Api-Version": "2022-11-28"}
        if self.token:
            h["Authorization"] = f"Bearer {self.token}"
        return h

    def _get(self, path: str, repo: RepoRef) -> requests.Response:
        try:
            resp = self.session.get(f"{self.api_url}{path}", headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            raise ExternalFetchError(f"Could not reach GitHub for {repo.full_name}: {e}") from e
        self._raise_for_status(resp, repo)
        return resp

    @staticmethod
    def _raise_for_status(resp: requests.Response, repo: RepoRef) -> None:
        if resp.ok:
            return
        status = resp.status_code
        if status in (403, 429) and resp.headers.get("X-RateLimit-Remaining") == "0":
            reset = resp.headers.get("X-RateLimit-Reset")
            when = ""
            if reset and reset.isdigit():
                when = " (resets at %s)" % datetime.fromtimestamp(int(reset), timezone.utc).strftime("%H:%M UTC")
            raise RateLimitError(f"GitHub API rate limit exceeded{when}. Please try again later.")
        if status == 404:
            raise RepositoryNotFoundError(f"Repository {repo.full_name} not found")
        if status in (401, 403):
            raise PrivateRepositoryError(f"Repository {repo.full_name} is private or not accessible")
        raise ExternalFetchError(f"GitHub API error {status} for {repo.full_name}")

    def fetch(self, url: str) -> list[FileContent]:
        repo = parse_repo(url)
        meta = self._get(f"/repos/{repo.owner}/{repo.repo}", repo).json()
        if meta.get("private"):
            raise PrivateRepositoryError(f"Repository {repo.full_name} is private; only public repositories can be analyzed")
        ref = repo.ref or meta.get("default_branch") or "HEAD"
        logger.info("Downloading %s@%s", repo.full_name, ref)
        archive = self._get(f"/repos/{repo.owner}/{repo.repo}/tarball/{ref}", repo).content
        if len(archive) > MAX_ARCHIVE_BYTES:
            raise ExternalFetchError(f"Repository {repo.full_name} is too large to analyze")
        files = self._read_archive(archive, repo)
        logger.info("Read %s files from %s", len(files), repo.full_name)
        return files

    def _read_archive(self, archive: bytes, repo: RepoRef) -> list[FileContent]:
        files: list[FileContent] = []
        try:
            with tarfile.open(fileobj=io.BytesIO(archive), mode="r:*") as tar:
                for member in tar:
                    if not member.isfile():
                        continue
                    # Members are prefixed with "<owner>-<repo>-<sha>/"
                    _, _, rel_path = member.name.partition("/")
                    rel_path = posixpath.normpath(rel_path) if rel_path else ""
                    if not rel_path or rel_path.startswith("..") or should_ignore_path(rel_path):
                        continue
                    if member.size > self.max_file_bytes:
                        logger.debug("Skipping large file %s (%s bytes)", rel_path, member.size)
                        continue
                    fh = tar.extractfile(member)
                    if fh is None:
                        continue
                    try:
                        content = fh.read().decode("utf-8")
                    except UnicodeDecodeError:
                        continue
                    files.append(FileContent(path=rel_path, content=content))
                    if len(files) >= self.max_files:
                        logger.warning("%s has more than %s files; the rest are skipped", repo.full_name, self.max_files)
                        break
        except tarfile.TarError as e:
            raise ExternalFetchError(f"Could not read repository archive for {repo.full_name}: {e}") from e
        return files
