"""
SVG badge rendering.

Badges are two flat rounded segments (label and value) 20px high, in the
style of shields.io. Text widths are estimated from character counts rather
than measured, so very wide glyphs may overflow slightly. Characters are
counted in UTF-16 code units, so an emoji takes two character widths.

Rendering is a pure function of its inputs: the same label, value and colors
always give byte-identical output, which keeps badges cacheable.
"""

import math

from .config import BadgeColors

BADGE_HEIGHT = 20

# Approximate per-character widths for 11px Verdana
LABEL_CHAR_WIDTH = 6.5
LABEL_PADDING = 20
LABEL_MIN_WIDTH = 50
VALUE_CHAR_WIDTH = 7.5
VALUE_PADDING = 16
VALUE_MIN_WIDTH = 38

_XML_ESCAPES = [
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&apos;"),
]


def escape_xml(value) -> str:
    """Escape the five XML metacharacters."""
    text = str(value)
    for char, entity in _XML_ESCAPES:
        text = text.replace(char, entity)
    return text


def svg_number(n: float) -> str:
    """Format a coordinate: integral values print without a trailing .0."""
    if float(n).is_integer():
        return str(int(n))
    return repr(float(n))


def round_half_up(n: float) -> int:
    return math.floor(n + 0.5)


def utf16_len(text: str) -> int:
    """Length in UTF-16 code units; characters outside the BMP count twice."""
    return len(text.encode("utf-16-le", "surrogatepass")) // 2


def utf16_truncate(text: str, limit: int) -> str:
    """First `limit` UTF-16 code units of text.

    A surrogate pair cut in half is dropped rather than left dangling.
    """
    if utf16_len(text) <= limit:
        return text
    head = text.encode("utf-16-le", "surrogatepass")[: limit * 2]
    if head and 0xD8 <= head[-1] <= 0xDB:
        head = head[:-2]
    return head.decode("utf-16-le", "surrogatepass")


def render_badge(label: str, value, colors: BadgeColors | None = None) -> str:
    """
    Render a label/value badge.

    Args:
        label: Left segment text
        value: Right segment text (numbers are converted with str())
        colors: Segment and text colors (defaults to green value, grey label)

    Returns:
        Standalone SVG markup
    """
    colors = colors or BadgeColors()
    label = str(label)
    value_str = str(value)

    label_w = max(utf16_len(label) * LABEL_CHAR_WIDTH + LABEL_PADDING, LABEL_MIN_WIDTH)
    value_w = max(utf16_len(value_str) * VALUE_CHAR_WIDTH + VALUE_PADDING, VALUE_MIN_WIDTH)
    total_w = label_w + value_w
    label_x = round_half_up(label_w / 2)
    value_x = round_half_up(label_w + value_w / 2)

    w = svg_number(total_w)
    lw = svg_number(label_w)
    vw = svg_number(value_w)
    safe_label = escape_xml(label)
    safe_value = escape_xml(value_str)

    return f"""<svg xmlns="http://www.w3.org/2000/svg" width="{w}" height="{BADGE_HEIGHT}">
  <linearGradient id="a" x2="0" y2="100%">
    <stop offset="0" stop-color="#bbb" stop-opacity=".1"/>
    <stop offset="1" stop-opacity=".1"/>
  </linearGradient>
  <clipPath id="c"><rect rx="3" width="{w}" height="{BADGE_HEIGHT}"/></clipPath>
  <g clip-path="url(#c)">
    <rect width="{lw}" height="{BADGE_HEIGHT}" fill="{escape_xml(colors.label_color)}"/>
    <rect x="{lw}" width="{vw}" height="{BADGE_HEIGHT}" fill="{escape_xml(colors.color)}"/>
    <rect width="{w}" height="{BADGE_HEIGHT}" fill="url(#a)"/>
  </g>
  <g fill="{escape_xml(colors.text_color)}" text-anchor="middle" font-family="Verdana,Geneva,sans-serif" font-size="11">
    <text x="{label_x}" y="14" fill="#010101" fill-opacity=".3">{safe_label}</text>
    <text x="{label_x}" y="13">{safe_label}</text>
    <text x="{value_x}" y="14" fill="#010101" fill-opacity=".3">{safe_value}</text>
    <text x="{value_x}" y="13">{safe_value}</text>
  </g>
</svg>"""
