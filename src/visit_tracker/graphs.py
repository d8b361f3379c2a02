"""
SVG horizontal bar charts for ranked breakdowns.
"""

from dataclasses import dataclass

from .badges import escape_xml, svg_number, utf16_truncate
from .config import MAX_GRAPH_BARS, GraphColors

BAR_HEIGHT = 18
BAR_GAP = 4
PAD_LEFT = 140   # room for labels
PAD_RIGHT = 50   # room for value text
PAD_TOP_TITLED = 30
PAD_TOP = 12
PAD_BOTTOM = 12
TRACK_WIDTH = 460
MIN_BAR_WIDTH = 2
LABEL_MAX_CHARS = 18
FONT_FAMILY = "'SF Mono',Consolas,monospace"


@dataclass(frozen=True)
class GraphItem:
    """One bar: a label and its count."""
    label: str
    value: int


NO_DATA = GraphItem(label="no data", value=0)


def render_graph(
    title: str,
    items: list[GraphItem],
    colors: GraphColors | None = None,
    max_bars: int = MAX_GRAPH_BARS,
) -> str:
    """
    Render a ranked list as a horizontal bar chart.

    Items are drawn in the order given; callers sort them. Only the first
    max_bars items are drawn, and an empty list draws a single "no data" bar.
    Bar lengths are relative to the largest value.
    """
    colors = colors or GraphColors()
    rows = list(items[:max_bars]) or [NO_DATA]

    pad_top = PAD_TOP_TITLED if title else PAD_TOP
    max_val = max([row.value for row in rows] + [1])
    chart_h = len(rows) * (BAR_HEIGHT + BAR_GAP)
    total_h = pad_top + chart_h + PAD_BOTTOM
    total_w = PAD_LEFT + TRACK_WIDTH + PAD_RIGHT

    text_fill = escape_xml(colors.text_color)
    bar_fill = escape_xml(colors.effective_bar_color)

    bars = ""
    for i, row in enumerate(rows):
        y = pad_top + i * (BAR_HEIGHT + BAR_GAP)
        bar_w = max((row.value / max_val) * TRACK_WIDTH, MIN_BAR_WIDTH)
        label_x = PAD_LEFT - 8
        val_x = PAD_LEFT + bar_w + 8

        bars += f"""
  <text x="{label_x}" y="{y + 12}" text-anchor="end" fill="{text_fill}" font-family="{FONT_FAMILY}" font-size="11" opacity=".85">{escape_xml(utf16_truncate(str(row.label), LABEL_MAX_CHARS))}</text>
  <rect x="{PAD_LEFT}" y="{y}" width="{svg_number(bar_w)}" height="{BAR_HEIGHT}" rx="3" fill="{bar_fill}" opacity=".85"/>
  <text x="{svg_number(val_x)}" y="{y + 12}" fill="{text_fill}" font-family="{FONT_FAMILY}" font-size="11" font-weight="600">{escape_xml(row.value)}</text>"""

    title_svg = ""
    if title:
        title_svg = (
            f'<text x="{PAD_LEFT}" y="18" fill="{text_fill}" font-family="{FONT_FAMILY}" '
            f'font-size="13" font-weight="600" opacity=".9">{escape_xml(title)}</text>'
        )

    return f"""<svg xmlns="http://www.w3.org/2000/svg" width="{total_w}" height="{total_h}">
  <rect width="{total_w}" height="{total_h}" rx="6" fill="{escape_xml(colors.bg_color)}"/>
  {title_svg}
{bars}
</svg>"""
