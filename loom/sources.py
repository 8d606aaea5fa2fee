"""
Source resolver - turns component source declarations into content references.

A decision function over descriptors: it validates, normalizes and hashes,
but never downloads anything. Remote bytes are verified against the
reference's digest by whoever fetches them.
"""

from typing import Any, Dict, Optional
from dataclasses import dataclass
from urllib.parse import urlparse
import hashlib
import logging
import posixpath
import re

from .errors import (
    IntegrityMismatchError,
    InvalidDigestFormatError,
    InvalidSourcePathError,
    InvalidSourceUrlError,
    SourceNotFoundError,
)
from .manifest import ComponentSource, InlineSource, LocalSource, RemoteSource


logger = logging.getLogger("loom.sources")

DIGEST_RE = re.compile(r"^sha256:[0-9a-f]{64}$")
REMOTE_SCHEMES = ("http", "https")


def sha256_digest(data: bytes) -> str:
    """Digest string in manifest form: ``sha256:<hex>``."""
    return "sha256:" + hashlib.sha256(data).hexdigest()


@dataclass(frozen=True)
class ContentReference:
    """
    Verified pointer to a component's bytes.

    Attributes:
        kind: "local", "inline" or "remote"
        location: Normalized path, inline origin, or URL
        digest: Expected digest, when one is known
    """

    kind: str
    location: str
    digest: Optional[str] = None

    def verify(self, data: bytes) -> None:
        """
        Check fetched bytes against the expected digest.

        Raises:
            IntegrityMismatchError: If the bytes hash differently
        """
        if self.digest is None:
            return
        actual = sha256_digest(data)
        if actual != self.digest:
            raise IntegrityMismatchError(self.location, self.digest, actual)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "location": self.location, "digest": self.digest}


class SourceResolver:
    """
    Resolves ComponentSource variants.

    Args:
        allow_parent_paths: Permit local paths that escape upward with '..'
        filesystem: Optional Filesystem collaborator for existence checks
    """

    def __init__(self, *, allow_parent_paths: bool = False, filesystem: Any = None):
        self.allow_parent_paths = allow_parent_paths
        self.filesystem = filesystem

    def resolve(self, component: str, source: ComponentSource) -> ContentReference:
        """
        Resolve one component source.

        Args:
            component: Owning component name, for diagnostics
            source: Source declaration

        Returns:
            ContentReference

        Raises:
            InvalidSourcePathError, SourceNotFoundError, InvalidSourceUrlError,
            InvalidDigestFormatError
        """
        if isinstance(source, LocalSource):
            return self._resolve_local(component, source)
        if isinstance(source, InlineSource):
            return self._resolve_inline(component, source)
        if isinstance(source, RemoteSource):
            return self._resolve_remote(component, source)
        raise TypeError(f"Unknown component source type: {type(source).__name__}")

    def _resolve_local(self, component: str, source: LocalSource) -> ContentReference:
        path = normalize_path(source.path)
        if not path:
            raise InvalidSourcePathError(component, source.path, "path is empty")
        if escapes_parent(path) and not self.allow_parent_paths:
            raise InvalidSourcePathError(
                component, source.path, "path escapes the application directory"
            )

        if self.filesystem is not None and not self.filesystem.exists(path):
            raise SourceNotFoundError(component, path)

        logger.debug("Component %s: local source %s", component, path)
        return ContentReference(kind="local", location=path)

    def _resolve_inline(self, component: str, source: InlineSource) -> ContentReference:
        digest = sha256_digest(source.content)
        logger.debug("Component %s: inline source (%d bytes)", component, len(source.content))
        return ContentReference(kind="inline", location=source.origin, digest=digest)

    def _resolve_remote(self, component: str, source: RemoteSource) -> ContentReference:
        parsed = urlparse(source.url)
        if parsed.scheme not in REMOTE_SCHEMES or not parsed.netloc:
            raise InvalidSourceUrlError(component, source.url)
        if not DIGEST_RE.match(source.digest or ""):
            raise InvalidDigestFormatError(component, source.digest)

        logger.debug("Component %s: remote source %s", component, source.url)
        return ContentReference(kind="remote", location=source.url, digest=source.digest)


def normalize_path(path: str) -> str:
    """POSIX-normalize a manifest-relative path ('' stays '')."""
    if not path or not path.strip():
        return ""
    normalized = posixpath.normpath(path.replace("\\", "/"))
    return "" if normalized == "." else normalized


def escapes_parent(path: str) -> bool:
    return path == ".." or path.startswith("../")


def fetch_remote(reference: ContentReference, fetcher: Any) -> bytes:
    """
    Materialize a remote reference through a NetworkFetch collaborator.

    Raises:
        IntegrityMismatchError: If the downloaded bytes do not match
    """
    if reference.kind != "remote":
        raise ValueError(f"Cannot fetch a {reference.kind} reference")
    data = fetcher.fetch(reference.location)
    reference.verify(data)
    return data
