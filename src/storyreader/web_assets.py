from __future__ import annotations

from urllib.parse import quote

THEME_COLORS = {
    "dark": {"background": "#0f1320", "text_color": "#f8fafc", "border_color": "#ffffff1a"},
    "light": {"background": "#f6f3ec", "text_color": "#1f2937", "border_color": "#0000001a"},
}


def build_favicon_svg(
    label: str = "SR",
    *,
    background: str = "#0f1320",
    text_color: str = "#f8fafc",
    border_color: str | None = "#ffffff1a",
) -> str:
    """Return a minimalist square SVG badge."""
    normalized = (label or "SR").strip() or "SR"
    normalized = normalized[:2]
    font_size = "26" if len(normalized) > 1 else "32"
    border_markup = (
        f'<rect x="1.5" y="1.5" width="61" height="61" rx="12" ry="12" fill="none" '
        f'stroke="{border_color}" stroke-width="1.5" />'
        if border_color
        else ""
    )
    return f"""<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 64 64" role="img" aria-label="{normalized} icon">
  <rect width="64" height="64" rx="14" ry="14" fill="{background}" />
  {border_markup}
  <text x="32" y="40" text-anchor="middle" font-family="Georgia, 'Hiragino Mincho ProN', serif"
        font-size="{font_size}" font-weight="700" fill="{text_color}">{normalized}</text>
</svg>"""


def favicon_data_url(label: str = "SR", *, theme: str = "dark") -> str:
    """Build the favicon for ``theme`` and wrap it in a data URL."""
    colors = THEME_COLORS.get(theme, THEME_COLORS["dark"])
    return "data:image/svg+xml," + quote(build_favicon_svg(label=label, **colors))


__all__ = ["build_favicon_svg", "favicon_data_url", "THEME_COLORS"]
