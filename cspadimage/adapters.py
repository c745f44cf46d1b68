"""
Input adapters feeding the assembly engine.

An event can carry CSPad samples either as structured data (CsPad::DataV#
with one element per quad) or as a raw [N, 185, 388] array of one of several
sample types, read-only or writeable. Each combination is an InputVariant;
assemble_event() tries them in a fixed order and the first one present in the
event produces the image.
"""

import numpy as np
from typing import NamedTuple, Optional, Tuple, Union, TYPE_CHECKING
from .geometry_definitions import NUM_2X1_TOTAL, SECTION_SHAPE
from .data_types import DATA_TYPES, NDArrayType
from .event_store import Event
from .metadata import EventContext
from .geometry import PixelCoordinateTable
from .assembly import fill_quad_image, make_image_buffer, resolve_output_dtype

if TYPE_CHECKING:
    from numpy.typing import NDArray


# Sample types accepted for raw arrays
SAMPLE_DTYPES = (np.int16, np.uint16, np.int32, np.float32, np.float64)

# Sample type of structured CSPad data
STRUCTURED_SAMPLE_DTYPE = np.int16


class InputVariant(NamedTuple):
    """One accepted input form: a structured data version or a raw array type."""
    kind: str                            # 'structured' or 'ndarray'
    data_type: Union[type, NDArrayType]

    @property
    def name(self) -> str:
        if isinstance(self.data_type, NDArrayType):
            return self.data_type.name
        return self.data_type.__name__


INPUT_VARIANTS = tuple(
    [InputVariant('structured', data_type) for data_type in DATA_TYPES] +
    [InputVariant('ndarray', NDArrayType(np.dtype(dtype), 3, readonly))
     for dtype in SAMPLE_DTYPES for readonly in (True, False)]
)


def structured_adapter(evt: Event, source: str, key: str, data_type: type,
                       ctx: EventContext, table: PixelCoordinateTable,
                       out_type: str = 'asdata') -> Optional['NDArray']:
    """
    Assemble an image from structured CSPad data.

    Each element supplies its quad number and section count; the ROI mask
    from the context tells which slots those sections occupy.

    Returns:
        The image, or None if the event has no data of this type
    """
    data = evt.get(data_type, source, key)
    if data is None:
        return None

    num_quads = data.quads_shape()[0]
    sample_dtype = data.quads(0).data().dtype if num_quads else STRUCTURED_SAMPLE_DTYPE
    image = make_image_buffer(resolve_output_dtype(out_type, sample_dtype), table.image_shape)

    for i in range(num_quads):
        element = data.quads(i)
        quad_pars = ctx.resolve(element.quad(), element.num_2x1_stored)
        if quad_pars is None:
            continue
        fill_quad_image(element.data(), quad_pars, table, image)

    return image


def raw_array_adapter(evt: Event, source: str, key: str, array_type: NDArrayType,
                      ctx: EventContext, table: PixelCoordinateTable,
                      out_type: str = 'asdata') -> Optional['NDArray']:
    """
    Assemble an image from a raw [N, 185, 388] sample array.

    N == 32 means four complete quads. N < 32 is split quad by quad using
    the section counts in the context. Larger arrays are not recognised.

    Returns:
        The image, or None if the event has no array of this type
    """
    sections = evt.get(array_type, source, key)
    if sections is None or sections.shape[1:] != SECTION_SHAPE:
        return None

    if sections.shape[0] > NUM_2X1_TOTAL:
        return None

    image = make_image_buffer(resolve_output_dtype(out_type, sections.dtype), table.image_shape)
    num_sections = sections.shape[0]
    ind2x1_in_arr = 0

    for num_2x1, quad_pars in ctx.raw_array_layout(num_sections):
        if quad_pars is not None:
            if ind2x1_in_arr + num_2x1 > num_sections:
                ctx.counters.truncated_quads += 1
            else:
                fill_quad_image(sections[ind2x1_in_arr:ind2x1_in_arr + num_2x1], quad_pars, table, image)
        ind2x1_in_arr += num_2x1

    return image


def assemble_event(evt: Event, source: str, key: str, ctx: EventContext,
                   table: PixelCoordinateTable,
                   out_type: str = 'asdata') -> Tuple[Optional['NDArray'], Optional[InputVariant]]:
    """
    Try every input variant in order and assemble the first one found.

    Returns:
        (image, variant), or (None, None) if the event holds no usable data
    """
    for variant in INPUT_VARIANTS:
        if variant.kind == 'structured':
            image = structured_adapter(evt, source, key, variant.data_type, ctx, table, out_type)
        else:
            image = raw_array_adapter(evt, source, key, variant.data_type, ctx, table, out_type)

        if image is not None:
            return image, variant

    return None, None
