"""
Referrer keys for traffic source breakdowns.

The referrer dimension is keyed by host only: the scheme is stripped and
everything from the first path separator on is dropped. Visits without a
referrer are counted under "direct".
"""

import re

DIRECT = "direct"

_SCHEME = re.compile(r"https?://")


def referrer_key(referer: str | None) -> str:
    """
    Reduce a Referer header to the key used by the referrer index.

    Examples:
        >>> referrer_key("https://github.com/someone/project")
        'github.com'
        >>> referrer_key("")
        'direct'
    """
    if not referer:
        return DIRECT
    host = _SCHEME.sub("", referer, count=1).split("/")[0]
    return host or DIRECT
