"""
Shared fixtures for the CSPad assembly tests.
"""

from functools import lru_cache
import numpy as np
from cspadimage.geometry import PixelCoordinateTable, TABLE_SHAPE
from cspadimage.geometry_definitions import IMAGE_SHAPE, SECTION_SHAPE

SOURCE = "CxiDs1.0:Cspad.0"


@lru_cache(maxsize=None)
def sequential_table(shift_x: int = 0) -> PixelCoordinateTable:
    """
    Table sending pixel number i (in [quad][sect][col][row] order) to image
    position (i // 1750 + shift_x, i % 1750). Without a shift every pixel
    lands on its own canvas position.
    """
    index = np.arange(np.prod(TABLE_SHAPE)).reshape(TABLE_SHAPE)
    x = index // IMAGE_SHAPE[1] + shift_x
    y = index % IMAGE_SHAPE[1]
    return PixelCoordinateTable(x, y)


def section_blocks(num_2x1: int, value=1, dtype=np.int16) -> np.ndarray:
    """Packed sections filled with a constant value."""
    return np.full((num_2x1,) + SECTION_SHAPE, value, dtype=dtype)


def numbered_blocks(num_2x1: int, dtype=np.int32) -> np.ndarray:
    """Packed sections where every sample has a distinct value, starting at 1."""
    count = num_2x1 * SECTION_SHAPE[0] * SECTION_SHAPE[1]
    return (np.arange(count) + 1).astype(dtype).reshape((num_2x1,) + SECTION_SHAPE)


def readonly(array: np.ndarray) -> np.ndarray:
    array = array.copy()
    array.flags.writeable = False
    return array
