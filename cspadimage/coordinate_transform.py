"""
Coordinate transformation functions for CSPad geometry.

Based on psana PixCoordsQuad / PixCoordsCSPad coordinate transformation logic.
Implements the section-in-quad and quad-in-detector placements and the
conversion from physical coordinates to integer image indices.
"""

import numpy as np
from typing import Tuple, TYPE_CHECKING
from .geometry_definitions import QUAD_IMAGE_SHAPE, PIXEL_SIZE_UM

if TYPE_CHECKING:
    from numpy.typing import NDArray


def apply_rotation_z(x: 'NDArray', y: 'NDArray', angle_deg: float) -> Tuple['NDArray', 'NDArray']:
    """
    Apply rotation around Z-axis.

    Args:
        x, y: Coordinate arrays to rotate
        angle_deg: Rotation angle in degrees

    Returns:
        (x_rot, y_rot): Rotated coordinate arrays
    """
    if angle_deg == 0:
        return x, y

    angle_rad = np.radians(angle_deg)
    cos_a = np.cos(angle_rad)
    sin_a = np.sin(angle_rad)

    # Exact quarter turns, so nominal layouts land on whole pixels
    if angle_deg % 90 == 0:
        cos_a = np.round(cos_a)
        sin_a = np.round(sin_a)

    x_rot = x * cos_a - y * sin_a
    y_rot = x * sin_a + y * cos_a

    return x_rot, y_rot


def place_section_in_quad(u: 'NDArray', v: 'NDArray', center_pix: Tuple[float, float],
                          angle_deg: float, pixel_size: float = PIXEL_SIZE_UM) -> Tuple['NDArray', 'NDArray']:
    """
    Place a 2x1 section in its quad frame.

    Args:
        u, v: Local section coordinates in micrometers (see pixel_coordinates)
        center_pix: Section centre (x, y) in the quad frame, in pixels
        angle_deg: Section rotation (n*90 degrees plus optional tilt)
        pixel_size: Pixel size in μm used to convert to pixel units

    Returns:
        (x, y): Section coordinates in the quad frame, in pixels
    """
    x_rot, y_rot = apply_rotation_z(u, v, angle_deg)
    return center_pix[0] + x_rot / pixel_size, center_pix[1] + y_rot / pixel_size


def place_quad_in_detector(x: 'NDArray', y: 'NDArray', angle_deg: float,
                           offset_pix: Tuple[float, float],
                           quad_shape: Tuple[int, int] = QUAD_IMAGE_SHAPE) -> Tuple['NDArray', 'NDArray']:
    """
    Place quad-frame coordinates in the detector frame.

    The quad frame is rotated about the centre of its 850x850 box, so a
    quarter turn keeps the box in place, then shifted by the quad offset.

    Args:
        x, y: Quad-frame coordinates in pixels
        angle_deg: Quad rotation (n*90 degrees plus optional tilt)
        offset_pix: (x, y) position of the quad box in the detector frame
        quad_shape: Size of the quad box in pixels

    Returns:
        (x, y): Detector-frame coordinates in pixels
    """
    cx = (quad_shape[0] - 1) / 2
    cy = (quad_shape[1] - 1) / 2

    x_rot, y_rot = apply_rotation_z(x - cx, y - cy, angle_deg)

    return x_rot + cx + offset_pix[0], y_rot + cy + offset_pix[1]


def coordinates_to_pixel_indices(x_pix: 'NDArray', y_pix: 'NDArray') -> Tuple['NDArray', 'NDArray']:
    """
    Convert sub-pixel coordinates to integer image indices.

    Values are rounded to the nearest pixel. Nothing is clipped: indices may
    fall outside the image and must be bounds-checked by the caller.

    Returns:
        (ix, iy): int32 index arrays with the input shape
    """
    ix = np.floor(np.asarray(x_pix) + 0.5).astype(np.int32)
    iy = np.floor(np.asarray(y_pix) + 0.5).astype(np.int32)
    return ix, iy


def calculate_bounds(x_pix: 'NDArray', y_pix: 'NDArray') -> dict:
    """Get coordinate bounds of a set of pixel coordinates."""
    return {
        'x_min': float(np.min(x_pix)),
        'x_max': float(np.max(x_pix)),
        'y_min': float(np.min(y_pix)),
        'y_max': float(np.max(y_pix)),
    }
