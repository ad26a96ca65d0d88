"""
Recover the raw-bucket object key from a post's stored media_url.

Uploads reach the posts table as full public URLs, and their shape depends on
the backend that produced them:

    path style      http://74.208.158.126:9000/videos/u1/123-a.mp4
    virtual host    https://videos.s3.us-east-1.amazonaws.com/u1/123-a.mp4
    CDN rewrite     https://cdn.example.com/u1/123-a.mp4

Strategies are tried in order and the first non-empty key wins.
"""
import logging
from urllib.parse import unquote, urlsplit

from django.conf import settings

from .errors import ResolutionError

logger = logging.getLogger(__name__)


def _segments(path: str) -> list[str]:
    return [s for s in path.split("/") if s]


def _path_style(parts, bucket: str) -> str | None:
    """/<bucket>/<key> directly under the host."""
    segs = _segments(parts.path)
    if len(segs) > 1 and segs[0] == bucket:
        return "/".join(segs[1:])
    return None


def _virtual_host(parts, bucket: str) -> str | None:
    """<bucket>.<endpoint-host>/<key>"""
    host = (parts.hostname or "").lower()
    if host.startswith(f"{bucket.lower()}."):
        return "/".join(_segments(parts.path)) or None
    return None


def _trailing_path(parts, bucket: str) -> str | None:
    """
    Anything after a /<bucket>/ segment (reverse-proxy prefixes), else the
    whole path as served by a CDN mapped onto the bucket root.
    """
    segs = _segments(parts.path)
    if bucket in segs:
        rest = segs[segs.index(bucket) + 1:]
        return "/".join(rest) or None
    return "/".join(segs) or None


STRATEGIES = (
    ("path-style", _path_style),
    ("virtual-host", _virtual_host),
    ("trailing-path", _trailing_path),
)


class SourceResolver:
    def __init__(self, bucket: str | None = None):
        self.bucket = bucket or settings.S3_RAW_BUCKET

    def resolve(self, locator: str) -> str:
        """
        Return the object key of `locator` inside the raw bucket.
        Raises ResolutionError when no strategy yields a usable key.
        """
        if not locator or not locator.strip():
            raise ResolutionError("Post has no media_url")

        parts = urlsplit(locator.strip())
        if parts.scheme not in {"http", "https"} or not parts.netloc:
            raise ResolutionError(f"Not an object URL: {locator!r}")
        if parts.path.endswith("/"):
            raise ResolutionError(f"URL points at a prefix, not an object: {locator!r}")

        for name, strategy in STRATEGIES:
            key = strategy(parts, self.bucket)
            if key:
                key = unquote(key)
                logger.debug("Resolved %s -> %s/%s (%s)", locator, self.bucket, key, name)
                return key

        raise ResolutionError(f"Cannot derive an object key from {locator!r}")
