"""Preview renderer using Pillow — flat PNG projections of a built model.

The real scene renderer lives outside this package.  This one only
projects shells, edges and nodes onto a plane so a layout can be checked
at a glance:

    top   — looking down the y axis (x → right, z → down)
    side  — looking along the z axis (x → right, y → up)
"""

from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path
from typing import Optional

from PIL import Image, ImageColor, ImageDraw, ImageFont

from .models import UNCLASSIFIED_COLOR, ClusteredGraphModel
from .themes import ThemePalette, get_theme

logger = logging.getLogger(__name__)

VIEWS = ("top", "side")


# --- Font handling ---

def _load_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load a font, falling back to default if none available."""
    font_paths = [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
        "/usr/share/fonts/truetype/freefont/FreeSans.ttf",
        "/usr/share/fonts/TTF/DejaVuSans.ttf",
    ]
    for fp in font_paths:
        if Path(fp).exists():
            return ImageFont.truetype(fp, size)
    return ImageFont.load_default()


def _load_bold_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load a bold font, falling back to regular."""
    font_paths = [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
        "/usr/share/fonts/truetype/freefont/FreeSansBold.ttf",
        "/usr/share/fonts/TTF/DejaVuSans-Bold.ttf",
    ]
    for fp in font_paths:
        if Path(fp).exists():
            return ImageFont.truetype(fp, size)
    return _load_font(size)


# --- Color helpers ---

def _to_rgb(color: str) -> tuple[int, int, int]:
    """Convert any Pillow color string (hex or name) to an RGB tuple.

    Unparseable colors fall back to the unclassified gray.
    """
    try:
        rgb = ImageColor.getrgb(color)
    except ValueError:
        logger.warning(f"Unknown color {color!r}, using {UNCLASSIFIED_COLOR}")
        rgb = ImageColor.getrgb(UNCLASSIFIED_COLOR)
    return rgb[:3]


def _to_rgba(color: str, alpha: int = 255) -> tuple[int, int, int, int]:
    """Convert a color string to an RGBA tuple."""
    r, g, b = _to_rgb(color)
    return (r, g, b, alpha)


# --- Main renderer ---

class PreviewRenderer:
    """Renders a ClusteredGraphModel to a PNG image."""

    PADDING = 60
    TITLE_HEIGHT = 50
    NODE_RADIUS = 5
    EDGE_WIDTH = 1
    SHELL_BORDER_WIDTH = 2

    def __init__(
        self,
        scale: float = 1.0,
        width: int = 1600,
        height: int = 1200,
        theme: str = "dark",
    ):
        self.scale = scale
        self.width = width
        self.height = height
        self.theme: ThemePalette = get_theme(theme)
        self.font_title = _load_bold_font(int(24 * scale))
        self.font_label = _load_font(int(12 * scale))

    def render(
        self,
        model: ClusteredGraphModel,
        output_path: Optional[str] = None,
        view: str = "top",
        title: str = "",
        show_labels: bool = True,
    ) -> bytes:
        """Render the model to PNG bytes. Optionally save to file.

        Args:
            model: The built model.
            output_path: Optional path to save the PNG.
            view: "top" or "side".
            title: Optional title drawn above the diagram.
            show_labels: Draw each shell's label at its center.
        """
        if view not in VIEWS:
            raise ValueError(f"Unknown view '{view}'. Valid views: {', '.join(VIEWS)}")

        img_width = int(self.width * self.scale)
        img_height = int(self.height * self.scale)
        img = Image.new("RGBA", (img_width, img_height), _to_rgba(self.theme.background))

        transform = self._fit_transform(model, view, img_width, img_height)

        # Shells go on their own layer so their translucent fills blend
        shell_layer = Image.new("RGBA", img.size, (0, 0, 0, 0))
        shell_draw = ImageDraw.Draw(shell_layer)
        for shell in sorted(model.shells, key=lambda s: -s.radius):
            cx, cy = transform(shell.center)
            r = shell.radius * transform.factor
            fill_alpha = max(1, int(shell.opacity * 255))
            shell_draw.ellipse(
                [cx - r, cy - r, cx + r, cy + r],
                fill=_to_rgba(shell.color, fill_alpha),
                outline=_to_rgba(shell.color, self.theme.shell_outline_alpha),
                width=max(1, int(self.SHELL_BORDER_WIDTH * self.scale)),
            )
        img = Image.alpha_composite(img, shell_layer)

        edge_layer = Image.new("RGBA", img.size, (0, 0, 0, 0))
        edge_draw = ImageDraw.Draw(edge_layer)
        edge_color = _to_rgba(self.theme.edge_color, self.theme.edge_alpha)
        vertices = model.edge_vertices
        for i in range(0, len(vertices) - 5, 6):
            start = transform(vertices[i:i + 3])
            end = transform(vertices[i + 3:i + 6])
            edge_draw.line([start, end], fill=edge_color, width=max(1, int(self.EDGE_WIDTH * self.scale)))
        img = Image.alpha_composite(img, edge_layer)

        draw = ImageDraw.Draw(img)
        fills = {node.id: node.fill for node in model.nodes}
        node_r = self.NODE_RADIUS * self.scale
        for node_id, pos in model.positions_by_id.items():
            px, py = transform((pos.x, pos.y, pos.z))
            draw.ellipse(
                [px - node_r, py - node_r, px + node_r, py + node_r],
                fill=_to_rgba(fills.get(node_id, UNCLASSIFIED_COLOR)),
                outline=self.theme.node_outline,
            )

        if show_labels:
            for shell in model.shells:
                cx, cy = transform(shell.center)
                bbox = self.font_label.getbbox(shell.label)
                tw = bbox[2] - bbox[0]
                th = bbox[3] - bbox[1]
                draw.text((cx - tw / 2, cy - th / 2), shell.label,
                          fill=self.theme.label_color, font=self.font_label)

        if title:
            self._draw_title(draw, title, img_width)

        buf = BytesIO()
        img.save(buf, format="PNG", optimize=True)
        png_bytes = buf.getvalue()

        if output_path:
            Path(output_path).write_bytes(png_bytes)

        return png_bytes

    def _fit_transform(self, model: ClusteredGraphModel, view: str, img_width: int, img_height: int):
        """Build a world → image transform that fits every shell and node."""
        points: list[tuple[float, float, float]] = []
        for shell in model.shells:
            u, v = _project(shell.center, view)
            points.append((u, v, shell.radius))
        for pos in model.positions_by_id.values():
            u, v = _project((pos.x, pos.y, pos.z), view)
            points.append((u, v, 0.0))

        if points:
            min_u = min(u - r for u, _, r in points)
            max_u = max(u + r for u, _, r in points)
            min_v = min(v - r for _, v, r in points)
            max_v = max(v + r for _, v, r in points)
        else:
            min_u, max_u, min_v, max_v = -1.0, 1.0, -1.0, 1.0

        pad = self.PADDING * self.scale
        top = pad + self.TITLE_HEIGHT * self.scale
        avail_w = max(1.0, img_width - 2 * pad)
        avail_h = max(1.0, img_height - top - pad)
        span_u = max(max_u - min_u, 1e-9)
        span_v = max(max_v - min_v, 1e-9)
        factor = min(avail_w / span_u, avail_h / span_v)

        offset_x = pad + (avail_w - span_u * factor) / 2
        offset_y = top + (avail_h - span_v * factor) / 2

        def transform(point) -> tuple[float, float]:
            u, v = _project(point, view)
            return (offset_x + (u - min_u) * factor, offset_y + (v - min_v) * factor)

        transform.factor = factor
        return transform

    def _draw_title(self, draw: ImageDraw.ImageDraw, title: str, img_width: int):
        """Draw the title centered at the top."""
        bbox = self.font_title.getbbox(title)
        tw = bbox[2] - bbox[0]
        x = (img_width - tw) / 2
        draw.text((x, 15 * self.scale), title, fill=self.theme.title_color, font=self.font_title)


def _project(point, view: str) -> tuple[float, float]:
    """Project a 3D point to image-plane (u, v); v grows downward."""
    x, y, z = point[0], point[1], point[2]
    if view == "side":
        return (x, -y)
    return (x, z)
