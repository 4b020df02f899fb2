"""
Theme definitions for NetShell-MCP previews.

Provides dark and light color palettes for rendering model previews.
Each theme defines colors for:
- Image background
- Text (title, shell labels)
- Edges
- Node outlines
"""

from __future__ import annotations
from dataclasses import dataclass


@dataclass
class ThemePalette:
    """Color palette for a theme."""

    # Image
    background: str

    # Text
    title_color: str
    label_color: str

    # Edges
    edge_color: str
    edge_alpha: int

    # Nodes
    node_outline: str

    # Shells: outline alpha on top of the category color
    shell_outline_alpha: int


# Catppuccin Mocha
DARK_THEME = ThemePalette(
    background="#11111b",
    title_color="#cdd6f4",
    label_color="#a6adc8",
    edge_color="#7f849c",
    edge_alpha=150,
    node_outline="#1e1e2e",
    shell_outline_alpha=170,
)


# Catppuccin Latte
LIGHT_THEME = ThemePalette(
    background="#ffffff",
    title_color="#1e1e2e",
    label_color="#4c4f69",
    edge_color="#8c8fa1",
    edge_alpha=170,
    node_outline="#eff1f5",
    shell_outline_alpha=200,
)


THEMES: dict[str, ThemePalette] = {
    "dark": DARK_THEME,
    "light": LIGHT_THEME,
}


def get_theme(name: str) -> ThemePalette:
    """Get a theme palette by name.

    Raises:
        ValueError: If theme name is not recognized
    """
    if name not in THEMES:
        valid = ", ".join(THEMES.keys())
        raise ValueError(f"Unknown theme '{name}'. Valid themes: {valid}")
    return THEMES[name]
