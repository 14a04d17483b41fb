"""
Export service for generating PDF and image outputs.

Both backends replay the same draw commands the interactive view uses, so an
exported tree shows couple double strokes and child elbows exactly as on screen.
"""
import logging
from datetime import datetime
from typing import Dict, List, Mapping

import config
from errors import LayoutError
from models import ExportOptions, FamilyTree, LayoutOptions
from services.generation_service import build_links
from services.layout_service import calculate_layout
from services.render_service import (
    PALETTE,
    CameraTransform,
    CardCommand,
    DrawCommand,
    PathCommand,
    TextCommand,
    draw_commands,
    fit_transform,
)

logger = logging.getLogger(__name__)

MARGIN = 50


def _hex_to_rgb(color: str):
    color = color.lstrip("#")
    if len(color) == 3:
        color = "".join(ch * 2 for ch in color)
    return tuple(int(color[i:i + 2], 16) / 255 for i in (0, 2, 4))


def tree_positions(tree: FamilyTree) -> Dict[str, Dict[str, float]]:
    """Stored positions, or a fresh layout when any person has never been placed."""
    people = tree.people()
    if all(p.x is not None and p.y is not None for p in people):
        return {p.id: {"x": p.x, "y": p.y} for p in people}
    return calculate_layout(tree, LayoutOptions())


def build_draw_list(tree: FamilyTree, dark: bool = False):
    positions = tree_positions(tree)
    people = tree.people()
    commands = draw_commands(people, build_links(people), positions, dark=dark)
    return positions, commands


def export_tree(tree: FamilyTree, options: ExportOptions) -> str:
    """
    Export the family tree as an image or PDF.
    Returns the path to the generated file.
    """
    config.EXPORTS_DIR.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    try:
        if options.format == "pdf":
            return export_pdf(tree, options, timestamp)
        return export_image(tree, options, timestamp)
    except (LayoutError, OSError):
        raise
    except Exception as e:
        logger.exception("Draw pass failed during %s export", options.format)
        raise LayoutError(f"Export failed: {e}") from e


def _fit(positions: Mapping[str, Mapping[str, float]], width: float, height: float) -> CameraTransform:
    transform = fit_transform(positions, width - 2 * MARGIN, height - 2 * MARGIN, min_viewport=(1, 1))
    return CameraTransform(
        scale=transform.scale,
        translate_x=transform.translate_x + MARGIN,
        translate_y=transform.translate_y + MARGIN,
    )


def export_pdf(tree: FamilyTree, options: ExportOptions, timestamp: str) -> str:
    """Export tree as PDF."""
    from reportlab.lib.pagesizes import A4, A3, A2, A1, A0, B0, LETTER, LEGAL, TABLOID, landscape, portrait
    from reportlab.pdfgen import canvas
    from reportlab.lib.units import mm, inch

    page_sizes = {
        "A4": A4,
        "A3": A3,
        "A2": A2,
        "A1": A1,
        "A0": A0,
        "B0": B0,
        "Letter": LETTER,
        "Legal": LEGAL,
        "Tabloid": TABLOID,
        "Arch-E": (36 * inch, 48 * inch),
        "Custom-Large": (1200 * mm, 900 * mm),
    }

    page_size = page_sizes.get(options.page_size, A4)
    if options.orientation == "landscape":
        page_size = landscape(page_size)
    else:
        page_size = portrait(page_size)

    filepath = config.EXPORTS_DIR / f"family_tree_{timestamp}.pdf"

    c = canvas.Canvas(str(filepath), pagesize=page_size)
    width, height = page_size

    background = PALETTE[options.dark]["background"]
    c.setFillColorRGB(*_hex_to_rgb(background))
    c.rect(0, 0, width, height, stroke=0, fill=1)

    if not tree.persons:
        c.setFillColorRGB(*_hex_to_rgb(PALETTE[options.dark]["name"]))
        c.drawString(MARGIN, height - MARGIN, "Empty Family Tree")
        c.save()
        return str(filepath)

    positions, commands = build_draw_list(tree, options.dark)
    transform = _fit(positions, width, height)

    # reportlab puts the origin bottom-left
    def page_point(x, y):
        px, py = transform.apply(x, y)
        return px, height - py

    for command in commands:
        if isinstance(command, PathCommand):
            c.setStrokeColorRGB(*_hex_to_rgb(command.color))
            c.setLineWidth(command.width * transform.scale)
            c.setLineCap(1)
            c.setLineJoin(1)
            path = c.beginPath()
            path.moveTo(*page_point(*command.points[0]))
            for point in command.points[1:]:
                path.lineTo(*page_point(*point))
            c.drawPath(path, stroke=1, fill=0)
        elif isinstance(command, CardCommand):
            x0, y0 = page_point(command.x, command.y + command.height)
            c.setFillColorRGB(*_hex_to_rgb(command.fill))
            c.setStrokeColorRGB(*_hex_to_rgb(command.stroke))
            c.setLineWidth(1.4 * transform.scale)
            c.roundRect(
                x0, y0,
                command.width * transform.scale,
                command.height * transform.scale,
                command.radius * transform.scale,
                stroke=1, fill=1,
            )
        elif isinstance(command, TextCommand):
            font = "Helvetica-Bold" if command.bold else "Helvetica-Oblique" if command.italic else "Helvetica"
            c.setFillColorRGB(*_hex_to_rgb(command.color))
            c.setFont(font, max(command.size * transform.scale, 1))
            c.drawCentredString(*page_point(command.x, command.y), command.text)

    c.save()
    logger.info("Exported PDF: %s", filepath)
    return str(filepath)


def _load_fonts(scale: float):
    from PIL import ImageFont

    fonts = {}
    for size in (9, 10, 12, 14):
        pixel_size = max(int(size * scale), 6)
        try:
            fonts[(size, True)] = ImageFont.truetype("/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf", pixel_size)
            fonts[(size, False)] = ImageFont.truetype("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf", pixel_size)
        except OSError:
            fonts[(size, True)] = fonts[(size, False)] = ImageFont.load_default()
    return fonts


def _replay_on_image(draw, commands: List[DrawCommand], transform: CameraTransform):
    fonts = _load_fonts(transform.scale)
    default_font = fonts[(10, False)]

    for command in commands:
        if isinstance(command, PathCommand):
            points = [transform.apply(*p) for p in command.points]
            draw.line(points, fill=command.color, width=max(int(round(command.width * transform.scale)), 1), joint="curve")
        elif isinstance(command, CardCommand):
            x0, y0 = transform.apply(command.x, command.y)
            x1, y1 = transform.apply(command.x + command.width, command.y + command.height)
            draw.rounded_rectangle(
                [x0, y0, x1, y1],
                radius=max(int(command.radius * transform.scale), 1),
                fill=command.fill,
                outline=command.stroke,
                width=1,
            )
        elif isinstance(command, TextCommand):
            font = fonts.get((int(command.size), command.bold), default_font)
            x, y = transform.apply(command.x, command.y)
            bbox = draw.textbbox((0, 0), command.text, font=font)
            text_width = bbox[2] - bbox[0]
            text_height = bbox[3] - bbox[1]
            draw.text((x - text_width / 2, y - text_height), command.text, fill=command.color, font=font)


def export_image(tree: FamilyTree, options: ExportOptions, timestamp: str) -> str:
    """Export tree as PNG or JPG image."""
    from PIL import Image, ImageDraw

    width = options.width
    height = options.height
    palette = PALETTE[options.dark]

    img = Image.new("RGB", (width, height), palette["background"])
    draw = ImageDraw.Draw(img)

    if not tree.persons:
        draw.text((MARGIN, MARGIN), "Empty Family Tree", fill=palette["name"])
    else:
        positions, commands = build_draw_list(tree, options.dark)
        _replay_on_image(draw, commands, _fit(positions, width, height))

    ext = options.format if options.format in ["png", "jpg", "jpeg"] else "png"
    filepath = config.EXPORTS_DIR / f"family_tree_{timestamp}.{ext}"

    if ext in ["jpg", "jpeg"]:
        img.save(str(filepath), "JPEG", quality=options.quality)
    else:
        img.save(str(filepath), "PNG")

    logger.info("Exported image: %s", filepath)
    return str(filepath)
