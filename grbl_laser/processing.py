"""Unit and image helpers plus the raster pre-processing step.

Keep pure functions here for easy testing and reuse. Coordinates inside a job
are device pixels at the part's resolution (dots per inch).
"""

from __future__ import annotations
from typing import List, Tuple

import numpy as np

MM_PER_INCH = 25.4
DARK_THRESHOLD = 128


def px_to_mm(px: float, dpi: float) -> float:
    """Convert device pixels to millimetres."""
    return px * MM_PER_INCH / dpi


def mm_to_px(mm: float, dpi: float) -> int:
    """Convert millimetres to device pixels (rounded int)."""
    return int(round(mm * dpi / MM_PER_INCH))


def load_grayscale(source) -> np.ndarray:
    """Load an image path, file object or PIL image as a uint8 grayscale array."""
    from PIL import Image

    img = source if isinstance(source, Image.Image) else Image.open(source)
    return np.array(img.convert("L"), dtype=np.uint8)


def dark_runs(row: np.ndarray) -> List[Tuple[int, int, bool]]:
    """Split a boolean row into (start, end, is_dark) runs, end exclusive.

    Leading and trailing light pixels are dropped; an all-light row gives [].
    """
    cols = np.flatnonzero(row)
    if cols.size == 0:
        return []
    segment = row[cols[0] : cols[-1] + 1].astype(np.int8)
    changes = np.flatnonzero(np.diff(segment)) + 1
    bounds = [0, *changes.tolist(), segment.size]
    first = int(cols[0])
    return [
        (first + bounds[i], first + bounds[i + 1], bool(segment[bounds[i]]))
        for i in range(len(bounds) - 1)
    ]


def raster_to_vector(part, unidirectional: bool = False):
    """Convert a RasterPart into an equivalent VectorPart.

    Dark pixels are cut with the part's laser property ("black"), light gaps
    inside a row are crossed with the same property at power 0 ("white").
    Rows are engraved alternately left-to-right and right-to-left unless
    `unidirectional` is set.
    """
    from .job import LineTo, MoveTo, SetProperty, VectorPart

    black = part.laser_property
    white = black.with_power(0)
    dark = part.pixels < DARK_THRESHOLD

    commands = []
    forward = True
    for row_idx, row in enumerate(dark):
        runs = dark_runs(row)
        if not runs:
            continue
        y = part.y + row_idx
        if forward:
            commands.append(MoveTo(part.x + runs[0][0], y))
            ordered = [(end, is_dark) for _, end, is_dark in runs]
        else:
            commands.append(MoveTo(part.x + runs[-1][1], y))
            ordered = [(start, is_dark) for start, _, is_dark in reversed(runs)]

        current = None
        for edge, is_dark in ordered:
            prop = black if is_dark else white
            if prop is not current:
                commands.append(SetProperty(prop))
                current = prop
            commands.append(LineTo(part.x + edge, y))

        if not unidirectional:
            forward = not forward

    return VectorPart(commands=tuple(commands), dpi=part.dpi)
