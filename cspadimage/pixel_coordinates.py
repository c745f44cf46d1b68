"""
Pixel coordinate generation for CSPad 2x1 sections.

Based on psana PixCoords2x1 coordinate generation logic.
Handles the wide pixels on either side of the gap between the two ASICs.
"""

import numpy as np
from typing import Tuple, TYPE_CHECKING
from .geometry_definitions import (
    COLS_2X1, ROWS_2X1, ROWS_ASIC, PIXEL_SIZE_UM, WIDE_PIXEL_SIZE_UM
)

if TYPE_CHECKING:
    from numpy.typing import NDArray


def generate_2x1_row_coordinates(pixel_size: float = PIXEL_SIZE_UM,
                                 wide_pixel_size: float = WIDE_PIXEL_SIZE_UM) -> 'NDArray':
    """
    Generate coordinates of the 388 rows of a 2x1, centred on the section.

    Rows 193 and 194 are the wide pixels on each side of the ASIC gap. Each
    row centre sits half its own width past the far edge of the previous row.

    Args:
        pixel_size: Regular pixel size in μm
        wide_pixel_size: Wide pixel size in μm

    Returns:
        1D array of 388 row coordinates in micrometers
    """
    widths = np.full(ROWS_2X1, pixel_size, dtype=np.float64)
    widths[ROWS_ASIC - 1:ROWS_ASIC + 1] = wide_pixel_size

    rows = np.cumsum(widths) - widths / 2
    rows -= (rows[0] + rows[-1]) / 2
    return rows


def generate_2x1_col_coordinates(pixel_size: float = PIXEL_SIZE_UM) -> 'NDArray':
    """Generate coordinates of the 185 columns of a 2x1, centred on the section."""
    return (np.arange(COLS_2X1, dtype=np.float64) - (COLS_2X1 - 1) / 2) * pixel_size


def generate_2x1_coordinates(pixel_size: float = PIXEL_SIZE_UM,
                             wide_pixel_size: float = WIDE_PIXEL_SIZE_UM) -> Tuple['NDArray', 'NDArray']:
    """
    Generate local pixel coordinates for one 2x1 section.

    The local frame has its origin at the section centre, the u axis along the
    388 rows and the v axis along the 185 columns. Arrays are laid out like
    the raw data, [col][row].

    Args:
        pixel_size: Regular pixel size in μm
        wide_pixel_size: Wide pixel size in μm

    Returns:
        (u, v): Coordinate arrays of shape (185, 388) in micrometers
    """
    rows_um = generate_2x1_row_coordinates(pixel_size, wide_pixel_size)
    cols_um = generate_2x1_col_coordinates(pixel_size)

    # xy indexing gives shape (len(cols), len(rows)) = (185, 388)
    u, v = np.meshgrid(rows_um, cols_um)

    return u, v


def get_2x1_size_um(pixel_size: float = PIXEL_SIZE_UM,
                    wide_pixel_size: float = WIDE_PIXEL_SIZE_UM) -> Tuple[float, float]:
    """
    Physical extent of a 2x1 section.

    Returns:
        (length along rows, width along columns) in micrometers
    """
    length = (ROWS_2X1 - 2) * pixel_size + 2 * wide_pixel_size
    width = COLS_2X1 * pixel_size
    return length, width
