"""
Pixel coordinate lookup table for CSPad image assembly.

The table gives, for every pixel of every 2x1 section of every quad, its
integer position in the 1750x1750 image and its sub-pixel position. It is
built once per calibration cycle and is read-only afterwards: all arrays are
flagged non-writeable so events can share one instance safely.

Arrays are indexed (quad, section, col, row), matching the raw data layout.
"""

import os
import numpy as np
from typing import Optional, Tuple, Union, TYPE_CHECKING
from .geometry_definitions import (
    NUM_QUADS, NUM_2X1_PER_QUAD, COLS_2X1, ROWS_2X1, IMAGE_SHAPE, PIXEL_SIZE_UM
)
from .pixel_coordinates import generate_2x1_coordinates
from .coordinate_transform import (
    place_section_in_quad, place_quad_in_detector,
    coordinates_to_pixel_indices, calculate_bounds
)
from .calibration import CSPadCalibPars

if TYPE_CHECKING:
    from numpy.typing import NDArray


TABLE_SHAPE = (NUM_QUADS, NUM_2X1_PER_QUAD, COLS_2X1, ROWS_2X1)


def _frozen(array: 'NDArray') -> 'NDArray':
    array = np.array(array, order='C')
    array.flags.writeable = False
    return array


class PixelCoordinateTable:
    """
    Precomputed pixel coordinates for one calibration cycle.

    Usage:
        table = PixelCoordinateTable.from_calib_pars(pars)
        ix, iy = table.lookup(quad=0, sect=3, row=100, col=20)
    """

    def __init__(self, x_pix: 'NDArray', y_pix: 'NDArray',
                 image_shape: Tuple[int, int] = IMAGE_SHAPE):
        """
        Args:
            x_pix, y_pix: Sub-pixel coordinates, shape (4, 8, 185, 388)
            image_shape: Canvas size used for bounds checking
        """
        x_pix = np.asarray(x_pix, dtype=np.float64)
        y_pix = np.asarray(y_pix, dtype=np.float64)
        if x_pix.shape != TABLE_SHAPE or y_pix.shape != TABLE_SHAPE:
            raise ValueError(f"Coordinate arrays must have shape {TABLE_SHAPE}, "
                             f"got {x_pix.shape} and {y_pix.shape}")

        self.image_shape = tuple(image_shape)
        self.x_pix = _frozen(x_pix)
        self.y_pix = _frozen(y_pix)

        x_int, y_int = coordinates_to_pixel_indices(x_pix, y_pix)
        self.x_int = _frozen(x_int)
        self.y_int = _frozen(y_int)

        nx, ny = self.image_shape
        in_canvas = (x_int >= 0) & (y_int >= 0) & (x_int < nx) & (y_int < ny)

        # Per-section flat image index, one entry per pixel in [col][row] order
        flat = x_int.astype(np.int64) * ny + y_int
        flat = flat.reshape(NUM_QUADS, NUM_2X1_PER_QUAD, -1)
        self.in_canvas = _frozen(in_canvas.reshape(NUM_QUADS, NUM_2X1_PER_QUAD, -1))
        self.flat_index = _frozen(np.where(self.in_canvas, flat, -1))

    @classmethod
    def from_calib_pars(cls, calib_pars: CSPadCalibPars, tilt_is_applied: bool = True,
                        pixel_size: float = PIXEL_SIZE_UM,
                        image_shape: Tuple[int, int] = IMAGE_SHAPE) -> 'PixelCoordinateTable':
        """
        Build the table from geometry calibration constants.

        Args:
            calib_pars: Section and quad alignment constants
            tilt_is_applied: Include the small tilt angles of sections and quads
            pixel_size: Pixel size in μm
            image_shape: Canvas size

        Returns:
            PixelCoordinateTable
        """
        u, v = generate_2x1_coordinates(pixel_size)
        centers = calib_pars.section_centers()
        section_angles = calib_pars.section_angles(tilt_is_applied)
        quad_angles = calib_pars.quad_angles(tilt_is_applied)
        quad_offsets = calib_pars.quad_offsets()

        x_pix = np.empty(TABLE_SHAPE)
        y_pix = np.empty(TABLE_SHAPE)

        for quad in range(NUM_QUADS):
            for sect in range(NUM_2X1_PER_QUAD):
                center = (centers[0, quad, sect], centers[1, quad, sect])
                xq, yq = place_section_in_quad(u, v, center, section_angles[quad, sect], pixel_size)
                offset = (quad_offsets[0, quad], quad_offsets[1, quad])
                x_pix[quad, sect], y_pix[quad, sect] = place_quad_in_detector(
                    xq, yq, quad_angles[quad], offset)

        return cls(x_pix, y_pix, image_shape)

    def lookup(self, quad: int, sect: int, row: int, col: int) -> Tuple[int, int]:
        """
        Integer image coordinate of one pixel.

        Args:
            quad: Quad index 0-3
            sect: Section slot 0-7
            row: Row 0-387 (along the long side of the 2x1)
            col: Column 0-184

        Returns:
            (x, y), not bounds-checked
        """
        return int(self.x_int[quad, sect, col, row]), int(self.y_int[quad, sect, col, row])

    def lookup_pix(self, quad: int, sect: int, row: int, col: int) -> Tuple[float, float]:
        """Sub-pixel coordinate of one pixel, for geometry diagnostics."""
        return float(self.x_pix[quad, sect, col, row]), float(self.y_pix[quad, sect, col, row])

    def section_indices(self, quad: int, sect: int) -> Tuple['NDArray', 'NDArray']:
        """
        Flat image indices and in-canvas mask of one section.

        Returns:
            (flat_index, in_canvas), each of length 185*388 in [col][row]
            order; flat_index is -1 where the pixel is off the canvas
        """
        return self.flat_index[quad, sect], self.in_canvas[quad, sect]

    def in_canvas_count(self, quad: Optional[int] = None, sect: Optional[int] = None) -> int:
        """Number of pixels that land on the canvas."""
        mask = self.in_canvas
        if quad is not None:
            mask = mask[quad]
            if sect is not None:
                mask = mask[sect]
        return int(np.count_nonzero(mask))

    def bounds(self) -> dict:
        """Sub-pixel coordinate bounds of the whole detector."""
        return calculate_bounds(self.x_pix, self.y_pix)

    def save(self, filename: Union[str, os.PathLike]):
        """Save the sub-pixel coordinates to a .npz file for fast loading."""
        np.savez(filename, x_pix=self.x_pix, y_pix=self.y_pix,
                 image_shape=np.array(self.image_shape))

    @classmethod
    def load(cls, filename: Union[str, os.PathLike]) -> 'PixelCoordinateTable':
        """Load a table saved with save()."""
        with np.load(filename) as data:
            image_shape = tuple(int(n) for n in data['image_shape'])
            return cls(data['x_pix'], data['y_pix'], image_shape)

