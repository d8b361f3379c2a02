"""
User-Agent parsing for the browser dimension.

This module maps a raw User-Agent string to a (browser, version) pair that
becomes part of the persisted browser counter key, so the rule table and its
order are effectively part of the storage format.

Key Design Decisions:
- Check crawlers and CLI clients first (they rarely pretend to be browsers)
- Check Chromium-based browsers before Chrome (Edge and Opera both carry Chrome/)
- Safari requires Version/ followed later by Safari, so Chrome is never Safari
- Never raise: any string, including an empty one, yields a result

The module also provides the short hash used to key user-agent detail
records. It is a 32-bit rolling hash, so two different strings can collide
and share a record. That is a known limitation of the stored format.
"""

import re
from dataclasses import dataclass

UNKNOWN_BROWSER = "Unknown"
MOBILE_BROWSER = "Mobile Browser"
UNKNOWN_VERSION = "0"


@dataclass(frozen=True)
class BrowserInfo:
    """
    Parsed browser information.

    Attributes:
        name: Browser or client family (Chrome, Firefox, Googlebot, etc.)
        version: Full dotted version as it appears in the UA, or "0"
    """
    name: str = UNKNOWN_BROWSER
    version: str = UNKNOWN_VERSION

    @property
    def key(self) -> str:
        """Composite key used in the browser index and counters."""
        return f"{self.name}:{self.version}"


# =============================================================================
# BROWSER DETECTION PATTERNS
# =============================================================================
# Order matters! First match wins.
# re.ASCII keeps \d to 0-9, so non-ASCII digits never form a version.
# Each tuple: (browser_name, compiled_pattern). Group 1, when present, is the version.

BROWSER_PATTERNS = [
    # Crawlers
    ("Googlebot", re.compile(r"Googlebot/([\d.]+)", re.ASCII)),
    ("Bingbot", re.compile(r"bingbot/([\d.]+)", re.ASCII)),
    ("Slurp", re.compile(r"Slurp/([\d.]+)", re.ASCII)),
    ("DuckDuckBot", re.compile(r"DuckDuckBot/([\d.]+)", re.ASCII)),

    # Command-line clients
    ("Curl", re.compile(r"curl/([\d.]+)", re.ASCII)),
    ("Wget", re.compile(r"Wget/([\d.]+)", re.ASCII)),

    # Chromium-based browsers (check before Chrome)
    ("Edge", re.compile(r"Edg(?:e|A|iOS)?/([\d.]+)", re.ASCII)),
    ("Opera", re.compile(r"(?:OPR|Opera)/([\d.]+)", re.ASCII)),
    ("Samsung", re.compile(r"SamsungBrowser/([\d.]+)", re.ASCII)),
    ("UC", re.compile(r"UCBrowser/([\d.]+)", re.ASCII)),

    ("Firefox", re.compile(r"Firefox/([\d.]+)", re.ASCII)),
    ("Chromium", re.compile(r"Chromium/([\d.]+)", re.ASCII)),
    ("Chrome", re.compile(r"Chrome/([\d.]+)", re.ASCII)),

    # Safari (after Chrome, which also contains Safari)
    ("Safari", re.compile(r"Version/([\d.]+).*Safari", re.ASCII)),

    ("Brave", re.compile(r"Brave", re.ASCII)),
    ("Vivaldi", re.compile(r"Vivaldi/([\d.]+)", re.ASCII)),

    # Text-mode browsers
    ("Lynx", re.compile(r"Lynx/([\d.]+)", re.ASCII)),
    ("w3m", re.compile(r"w3m/([\d.]+)", re.ASCII)),
    ("Links", re.compile(r"links?/([\d.]+)", re.IGNORECASE | re.ASCII)),
]

MOBILE_PATTERN = re.compile(r"Mobile", re.IGNORECASE)


def parse_browser(user_agent: str | None) -> BrowserInfo:
    """
    Classify a user-agent string.

    Args:
        user_agent: The User-Agent header value (may be empty or None)

    Returns:
        BrowserInfo for the first matching rule, "Mobile Browser" for
        unmatched strings mentioning Mobile, otherwise "Unknown"

    Examples:
        >>> parse_browser("Mozilla/5.0 (Windows NT 10.0) Chrome/120.0.0.0 Safari/537.36")
        BrowserInfo(name='Chrome', version='120.0.0.0')

        >>> parse_browser("")
        BrowserInfo(name='Unknown', version='0')
    """
    if not user_agent:
        return BrowserInfo()

    for name, pattern in BROWSER_PATTERNS:
        match = pattern.search(user_agent)
        if match:
            version = match.group(1) if match.lastindex else UNKNOWN_VERSION
            return BrowserInfo(name=name, version=version)

    if MOBILE_PATTERN.search(user_agent):
        return BrowserInfo(name=MOBILE_BROWSER)
    return BrowserInfo()


def _to_base36(n: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if n == 0:
        return "0"
    out = []
    while n:
        n, rem = divmod(n, 36)
        out.append(digits[rem])
    return "".join(reversed(out))


def hash_user_agent(user_agent: str) -> str:
    """
    Short, non-cryptographic hash of a user-agent string.

    Computes h = h * 31 + unit over the UTF-16 code units of the string in
    32-bit signed arithmetic, then renders abs(h) in base 36. Existing
    ua:{user}:{hash} records depend on this exact arithmetic.
    """
    data = user_agent.encode("utf-16-le", "surrogatepass")
    h = 0
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = (h * 31 + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return _to_base36(abs(h))
