import re
from dataclasses import dataclass
from urllib.parse import unquote_plus, urlparse, urlunparse

TRACKING_PARAMS = ("utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content")
LINKEDIN_URL_RE = re.compile(r"^https://(www\.)?linkedin\.com/", re.IGNORECASE)
SUBSTACK_DOMAIN = "substack.com"


class UrlValidationError(ValueError):
    """Raised when a submitted URL is malformed or not on a supported platform."""

    def __init__(self, message: str, *, field: str = "url") -> None:
        super().__init__(message)
        self.field = field


@dataclass(frozen=True, slots=True)
class NormalizedUrl:
    url: str
    host: str
    path: str

    @property
    def key(self) -> tuple[str, str]:
        return self.host, self.path


def is_substack_url(raw_url: str) -> bool:
    try:
        host = (urlparse(raw_url.strip()).hostname or "").lower()
    except ValueError:
        return False
    return host == SUBSTACK_DOMAIN or host.endswith(f".{SUBSTACK_DOMAIN}")


def is_linkedin_url(raw_url: str) -> bool:
    return bool(LINKEDIN_URL_RE.match(raw_url.strip()))


def strip_tracking_params(raw_url: str) -> str:
    """Drop utm_* tracking parameters, leaving every other part of the URL untouched."""
    parsed = urlparse(raw_url.strip())
    pairs = parsed.query.split("&")
    # Kept pairs stay byte-for-byte; only keys are decoded for the comparison.
    kept = [pair for pair in pairs if unquote_plus(pair.partition("=")[0]) not in TRACKING_PARAMS]
    if len(kept) == len(pairs):
        return raw_url.strip()
    return urlunparse(parsed._replace(query="&".join(kept)))


def validate_content_url(raw_url: str) -> str:
    candidate = raw_url.strip() if isinstance(raw_url, str) else ""
    if not candidate:
        raise UrlValidationError("url is required")

    try:
        parsed = urlparse(candidate)
        hostname = parsed.hostname
    except ValueError as exc:
        raise UrlValidationError("url is malformed") from exc
    if parsed.scheme.lower() not in {"http", "https"} or not hostname:
        raise UrlValidationError("url must be an absolute http(s) URL")

    if not (is_linkedin_url(candidate) or is_substack_url(candidate)):
        raise UrlValidationError("Must be a valid LinkedIn or Substack URL")
    return candidate


def normalize_url(raw_url: str) -> NormalizedUrl:
    validated = validate_content_url(raw_url)
    cleaned = strip_tracking_params(validated)
    parsed = urlparse(cleaned)
    return NormalizedUrl(url=cleaned, host=(parsed.hostname or "").lower(), path=parsed.path or "/")


def host_path_key(raw_url: str) -> tuple[str, str] | None:
    """Host+path identity of a stored URL, or None when it cannot be parsed."""
    try:
        parsed = urlparse(strip_tracking_params(raw_url))
    except ValueError:
        return None
    if not parsed.hostname:
        return None
    return parsed.hostname.lower(), parsed.path or "/"
