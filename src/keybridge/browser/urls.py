"""
URL validation and decomposition for credential matching.

Entry URLs are typed by users and page URLs come from an untrusted extension,
so nothing here raises on bad input (except require_valid). A URL that fails
validate() is simply never matched.

Schemeless input is read the way a browser address bar reads it:
``github.com/login`` and ``//github.com`` are HTTPS URLs with an implicit
scheme. ``http:/example.com`` is a scheme with no authority, hence no host.
"""
from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

from . import InvalidUrl

DEFAULT_SCHEME = "https"

# Schemes that never carry a network host
LOCAL_SCHEMES = frozenset({"cmd", "file"})

ILLEGAL_CHARACTERS = re.compile(r"[<>^`{|}*]")

_SCHEME_AUTHORITY = re.compile(r"^([A-Za-z][A-Za-z0-9+.\-]*)://")
_SCHEME_ONLY = re.compile(r"^([A-Za-z][A-Za-z0-9+\-]*):(?!\d+(/|$))")

# Registries that sell names one level below a two-label suffix
SECOND_LEVEL_SUFFIXES = frozenset({
    "co.uk", "org.uk", "ac.uk", "gov.uk", "me.uk", "ltd.uk", "plc.uk", "net.uk",
    "co.jp", "ne.jp", "or.jp", "ac.jp", "go.jp",
    "com.au", "net.au", "org.au", "edu.au", "gov.au",
    "co.nz", "org.nz", "net.nz",
    "com.br", "net.br", "org.br",
    "co.in", "net.in", "org.in",
    "co.za", "org.za",
    "com.cn", "net.cn", "org.cn",
    "com.mx", "com.ar", "com.tr", "com.tw", "com.hk", "com.sg",
    "co.kr", "or.kr", "co.il", "co.id",
})


@dataclass(frozen=True)
class ParsedUrl:
    """Structured form of a URL string. ``raw`` is never modified."""
    raw: str
    scheme: str
    host: str
    port: Optional[int] = None
    path: str = ""
    query: str = ""
    fragment: str = ""
    explicit_scheme: bool = True

    @property
    def origin(self) -> str:
        """scheme://host[:port], without path."""
        host = f"[{self.host}]" if ":" in self.host else self.host
        if self.port is not None:
            return f"{self.scheme}://{host}:{self.port}"
        return f"{self.scheme}://{host}"


def _split_authority(netloc: str):
    hostinfo = netloc.rpartition("@")[2]
    if hostinfo.startswith("["):
        host, _, rest = hostinfo[1:].partition("]")
        port_text = rest[1:] if rest.startswith(":") else ""
    else:
        host, _, port_text = hostinfo.partition(":")
    if not port_text:
        return host.lower(), None
    if not port_text.isdigit() or int(port_text) > 65535:
        return "", None
    return host.lower(), int(port_text)


def _split(raw: str, text: str, explicit: bool) -> ParsedUrl:
    try:
        parts = urlsplit(text)
    except ValueError:
        # Unbalanced IPv6 brackets and similar
        return ParsedUrl(raw=raw, scheme=text.partition(":")[0].lower(), host="",
                         explicit_scheme=explicit)
    host, port = _split_authority(parts.netloc)
    return ParsedUrl(
        raw=raw,
        scheme=parts.scheme.lower(),
        host=host,
        port=port,
        path=parts.path,
        query=parts.query,
        fragment=parts.fragment,
        explicit_scheme=explicit,
    )


def parse(raw: str) -> ParsedUrl:
    """Best-effort decomposition. A missing scheme reads as HTTPS."""
    if not isinstance(raw, str):
        raw = ""
    text = raw.strip()
    if _SCHEME_AUTHORITY.match(text):
        return _split(raw, text, explicit=True)
    if text.startswith("//"):
        return _split(raw, f"{DEFAULT_SCHEME}:{text}", explicit=False)
    match = _SCHEME_ONLY.match(text)
    if match:
        return ParsedUrl(raw=raw, scheme=match.group(1).lower(), host="",
                         path=text[match.end():])
    return _split(raw, f"{DEFAULT_SCHEME}://{text}", explicit=False)


def _valid_host(host: str) -> bool:
    if any(ch.isspace() for ch in host):
        return False
    if ":" in host:
        try:
            ipaddress.IPv6Address(host)
        except ValueError:
            return False
        return True
    return all(host.split("."))


def validate(raw: str) -> bool:
    """True when ``raw`` is safe to treat as a URL for matching."""
    if not isinstance(raw, str) or not raw or ILLEGAL_CHARACTERS.search(raw):
        return False
    url = parse(raw)
    if url.scheme in LOCAL_SCHEMES:
        return True
    return bool(url.host) and _valid_host(url.host)


def require_valid(raw: str) -> ParsedUrl:
    if not validate(raw):
        raise InvalidUrl(f"Not a valid URL: {raw!r}")
    return parse(raw)


def is_local_file(raw: str) -> bool:
    return isinstance(raw, str) and raw.lower().startswith("file://")


def _host_of(value: str) -> str:
    text = value.strip() if isinstance(value, str) else ""
    if not text:
        return ""
    if "/" not in text and ":" not in text:
        return text.lower()
    try:
        ipaddress.ip_address(text.strip("[]"))
        return text.strip("[]").lower()
    except ValueError:
        return parse(text).host


def base_domain(value: str) -> str:
    """Registrable domain of a URL or host.

    ``another.example.co.uk`` -> ``example.co.uk``, ``www.example.com`` ->
    ``example.com``. IP addresses are returned unchanged.
    """
    host = _host_of(value)
    if not host:
        return ""
    try:
        ipaddress.ip_address(host)
        return host
    except ValueError:
        pass
    labels = host.rstrip(".").split(".")
    if len(labels) <= 2:
        return ".".join(labels)
    keep = 3 if ".".join(labels[-2:]) in SECOND_LEVEL_SUFFIXES else 2
    return ".".join(labels[-keep:])


def hosts_related(first: str, second: str) -> bool:
    """Equal hosts, or one is a subdomain of the other (any depth)."""
    if not first or not second:
        return False
    return first == second or first.endswith("." + second) or second.endswith("." + first)


def same_site(candidate_host: str, site_host: str) -> bool:
    """Shared base domain and a subdomain relation between the two hosts."""
    return (
        base_domain(candidate_host) == base_domain(site_host)
        and hosts_related(candidate_host, site_host)
    )


def origin(raw: str) -> str:
    return parse(raw).origin


def strip_trailing_slash(raw: str) -> str:
    """Remove at most one trailing slash."""
    return raw[:-1] if raw.endswith("/") else raw


def strip_query(raw: str) -> str:
    """Drop the query string and fragment, keeping everything before them."""
    return raw.split("#", 1)[0].split("?", 1)[0]
