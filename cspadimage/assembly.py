"""
CSPad image assembly.

Based on psana CSPadImageProducer::cspadImageFillForType(): the samples of
each active 2x1 section of a quad are routed through the pixel coordinate
table into a 1750x1750 image. One routine serves every combination of input
sample type and output image type.
"""

import numpy as np
from typing import Iterable, Tuple, TYPE_CHECKING
from .geometry_definitions import (
    NUM_2X1_PER_QUAD, SIZE_2X1, SECTION_SHAPE, IMAGE_SHAPE, QuadParameters, full_quad_parameters
)
from .geometry import PixelCoordinateTable

if TYPE_CHECKING:
    from numpy.typing import NDArray


# Output type selector -> image dtype; "asdata" keeps the input sample type
OUTPUT_TYPES = {
    'asdata': None,
    'int16': np.dtype(np.int16),
    'int': np.dtype(np.int32),
    'float': np.dtype(np.float32),
    'double': np.dtype(np.float64),
}


def resolve_output_dtype(out_type: str, sample_dtype) -> np.dtype:
    """
    Image dtype for an output type selector and an input sample type.

    Raises:
        ValueError: If the selector is unknown
    """
    if out_type not in OUTPUT_TYPES:
        raise ValueError(f"Unknown output type: {out_type}. "
                         f"Expected one of: {', '.join(OUTPUT_TYPES)}")
    dtype = OUTPUT_TYPES[out_type]
    return np.dtype(sample_dtype) if dtype is None else dtype


def make_image_buffer(dtype=np.float64, shape=IMAGE_SHAPE) -> 'NDArray':
    """Zeroed image buffer for one event."""
    return np.zeros(shape, dtype=dtype)


def as_section_blocks(data: 'NDArray') -> 'NDArray':
    """
    View packed quad data as [n2x1, 185, 388] without copying when possible.

    Raises:
        ValueError: If the data is not a whole number of sections
    """
    data = np.asarray(data)
    if data.size % SIZE_2X1:
        raise ValueError(f"Data size {data.size} is not a multiple of the 2x1 size {SIZE_2X1}")
    return data.reshape((-1,) + SECTION_SHAPE)


def fill_quad_image(data: 'NDArray', quad_pars: QuadParameters,
                    table: PixelCoordinateTable, image: 'NDArray') -> int:
    """
    Add one quad's samples to the image.

    The sections in `data` are packed in ascending slot order, restricted to
    the slots set in the ROI mask. Each sample goes to the image pixel the
    table gives for (quad, section, col, row); samples off the canvas are
    dropped. Values are cast directly to the image dtype and added, so a
    pixel reached twice accumulates both contributions.

    Args:
        data: Packed sections of the quad, [n2x1, 185, 388] or flat
        quad_pars: Quad number and ROI mask
        table: Pixel coordinate table for the current calibration cycle
        image: Image buffer, modified in place

    Returns:
        Number of sections consumed from `data`

    Raises:
        ValueError: If `data` holds fewer sections than the ROI mask needs
            or the image does not match the table's canvas
    """
    if image.shape != table.image_shape:
        raise ValueError(f"Image shape {image.shape} does not match table canvas {table.image_shape}")

    blocks = as_section_blocks(data)
    active = quad_pars.active_sections()
    if blocks.shape[0] < len(active):
        raise ValueError(f"Quad {quad_pars.quad_number}: ROI mask 0x{quad_pars.roi_mask:02x} needs "
                         f"{len(active)} sections, data holds {blocks.shape[0]}")

    if not image.flags.c_contiguous:
        raise ValueError("Image buffer must be C-contiguous")
    image_flat = image.reshape(-1)

    for ind_in_arr, sect in enumerate(active):
        flat_index, in_canvas = table.section_indices(quad_pars.quad_number, sect)
        values = blocks[ind_in_arr].reshape(-1)[in_canvas]
        np.add.at(image_flat, flat_index[in_canvas],
                  values.astype(image.dtype, casting='unsafe', copy=False))

    return len(active)


def assemble_image(sections: 'NDArray', table: PixelCoordinateTable, dtype=None) -> 'NDArray':
    """
    Assemble a full [32, 185, 388] array into an image.

    Args:
        sections: Samples of all 32 sections, quad-major
        table: Pixel coordinate table
        dtype: Image dtype (defaults to the sample dtype)

    Returns:
        Assembled 2D image
    """
    sections = as_section_blocks(sections)
    image = make_image_buffer(sections.dtype if dtype is None else dtype, table.image_shape)

    for quad in range(sections.shape[0] // NUM_2X1_PER_QUAD):
        quad_data = sections[quad * NUM_2X1_PER_QUAD:(quad + 1) * NUM_2X1_PER_QUAD]
        fill_quad_image(quad_data, full_quad_parameters(quad), table, image)

    return image


def active_pixel_maps(table: PixelCoordinateTable,
                      quads: Iterable[QuadParameters]) -> Tuple['NDArray', 'NDArray']:
    """
    Image-space maps of the pixels enabled by the ROI masks.

    Args:
        table: Pixel coordinate table
        quads: Resolved parameters of each quad read out

    Returns:
        (pixmap, pixnum): pixmap is int16 and counts the samples landing on
        each image pixel, which is the image of an all-ones input. pixnum is
        int32 and holds 1 + the flat pixel number (quad, section, col, row)
        of the sample placed last on each image pixel, 0 where none lands.
    """
    pixmap = make_image_buffer(np.int16, table.image_shape)
    pixnum = make_image_buffer(np.int32, table.image_shape)
    pixmap_flat = pixmap.reshape(-1)
    pixnum_flat = pixnum.reshape(-1)
    section_pixels = np.arange(SIZE_2X1, dtype=np.int32)

    for quad_pars in quads:
        for sect in quad_pars.active_sections():
            flat_index, in_canvas = table.section_indices(quad_pars.quad_number, sect)
            first_pixel = (quad_pars.quad_number * NUM_2X1_PER_QUAD + sect) * SIZE_2X1
            np.add.at(pixmap_flat, flat_index[in_canvas], 1)
            pixnum_flat[flat_index[in_canvas]] = first_pixel + 1 + section_pixels[in_canvas]

    return pixmap, pixnum
