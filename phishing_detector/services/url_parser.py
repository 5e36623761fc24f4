# phishing_detector/services/url_parser.py
import logging
from dataclasses import dataclass
from urllib.parse import urlparse, urlunparse

import idna

logger = logging.getLogger(__name__)

DEFAULT_PATH_SCHEMES = ('http', 'https')


class ParseError(ValueError):
    """Raised when a URL cannot be turned into a scorable ParsedURL"""


@dataclass(frozen=True)
class ParsedURL:
    """A URL split into the parts the scorer looks at"""
    scheme: str
    hostname: str
    path: str
    query: str
    href: str
    unicode_hostname: str = ''

    @property
    def domain_key(self) -> str:
        """Hostname used for whitelist / suspicious-set membership (leading www. stripped)"""
        return domain_key(self.hostname)

    @property
    def is_secure(self) -> bool:
        return self.scheme == 'https'


def domain_key(hostname: str) -> str:
    d = hostname.strip().lower().rstrip('.')
    if d.startswith('www.'):
        d = d[4:]
    return d


def site_key(value: str) -> str:
    """
    Domain key for a user-supplied site: a bare domain or a full URL.

    Raises:
        ValueError: empty input, or something that is neither a URL nor a
            bare hostname (ParseError for a malformed URL).
    """
    value = (value or '').strip()
    if '://' in value:
        return parse_url(value).domain_key

    if not value or any(c in value for c in '/:') or any(c.isspace() for c in value):
        raise ValueError(f"Not a domain: {value!r}")

    key = domain_key(value)
    if not key:
        raise ValueError(f"Not a domain: {value!r}")
    return key


def _decode_punycode(hostname: str) -> str:
    """
    Decode xn-- labels so look-alike characters become visible.
    Labels that fail to decode are kept as-is.
    """
    if 'xn--' not in hostname:
        return hostname

    labels = []
    for label in hostname.split('.'):
        if label.startswith('xn--'):
            try:
                label = idna.decode(label)
            except (idna.IDNAError, UnicodeError) as e:
                logger.debug(f"Could not decode punycode label {label}: {e}")
        labels.append(label)
    return '.'.join(labels)


def parse_url(url: str) -> ParsedURL:
    """
    Parse a raw URL string.

    Raises:
        ParseError: the URL is empty, has no scheme or hostname, or has an
            invalid port / IPv6 literal.
    """
    if not isinstance(url, str) or not url.strip():
        raise ParseError("URL is empty")

    raw = url.strip()
    try:
        parsed = urlparse(raw)
        hostname = parsed.hostname or ''
        port = parsed.port
    except ValueError as e:
        raise ParseError(f"Malformed URL {raw!r}: {e}") from e

    scheme = parsed.scheme.lower()
    if not scheme:
        raise ParseError(f"URL has no scheme: {raw!r}")

    hostname = hostname.lower().rstrip('.')
    if not hostname:
        raise ParseError(f"URL has no hostname: {raw!r}")

    # Default ports are dropped from the serialized form
    if port and not ((scheme == 'http' and port == 80) or (scheme == 'https' and port == 443)):
        netloc = f"{hostname}:{port}"
    else:
        netloc = hostname

    path = parsed.path
    if not path and scheme in DEFAULT_PATH_SCHEMES:
        path = '/'

    href = urlunparse(parsed._replace(scheme=scheme, netloc=netloc, path=path))

    return ParsedURL(
        scheme=scheme,
        hostname=hostname,
        path=path,
        query=parsed.query,
        href=href,
        unicode_hostname=_decode_punycode(hostname),
    )
