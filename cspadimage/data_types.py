"""
Data types for CSPad configuration and event data.

Mirrors the psana CsPad::ConfigV#, CsPad::DataV# and CsPad::ElementV#
interfaces closely enough for the image producer: each configuration version
reports a ROI mask and the number of stored ASICs per quad, and each element
carries its own quad number and a packed [n2x1, 185, 388] block of samples.
"""

import numpy as np
from typing import NamedTuple, Sequence, Tuple, TYPE_CHECKING
from .geometry_definitions import NUM_QUADS, COLS_2X1, ROWS_2X1, FULL_ROI_MASK

if TYPE_CHECKING:
    from numpy.typing import NDArray


class _CsPadConfigBase:
    """
    CSPad configuration common to versions 2-5.
    """
    version = 0

    def __init__(self, roi_masks: Sequence[int] = (FULL_ROI_MASK,) * NUM_QUADS,
                 num_asics_stored: Sequence[int] = None,
                 quad_mask: int = None):
        """
        Args:
            roi_masks: Per-quad mask of 2x1 sections read out
            num_asics_stored: Per-quad ASIC count (2 per 2x1); derived from
                the masks when omitted
            quad_mask: Mask of quads read out; derived from the masks when omitted
        """
        if len(roi_masks) != NUM_QUADS:
            raise ValueError(f"Expected {NUM_QUADS} ROI masks, got {len(roi_masks)}")
        self._roi_masks = tuple(int(m) for m in roi_masks)

        if num_asics_stored is None:
            num_asics_stored = [2 * bin(m & FULL_ROI_MASK).count("1") for m in self._roi_masks]
        if len(num_asics_stored) != NUM_QUADS:
            raise ValueError(f"Expected {NUM_QUADS} ASIC counts, got {len(num_asics_stored)}")
        self._num_asics_stored = tuple(int(n) for n in num_asics_stored)

        if quad_mask is None:
            quad_mask = sum(1 << q for q, m in enumerate(self._roi_masks) if m)
        self._quad_mask = int(quad_mask)

    def roi_mask(self, quad: int) -> int:
        return self._roi_masks[quad]

    def num_asics_stored(self, quad: int) -> int:
        return self._num_asics_stored[quad]

    def quad_mask(self) -> int:
        return self._quad_mask

    def num_quads(self) -> int:
        return bin(self._quad_mask).count("1")

    def __repr__(self):
        masks = ", ".join(f"0x{m:02x}" for m in self._roi_masks)
        return f"{type(self).__name__}(roi_masks=[{masks}], num_asics_stored={list(self._num_asics_stored)})"


class CsPadConfigV2(_CsPadConfigBase):
    version = 2


class CsPadConfigV3(_CsPadConfigBase):
    version = 3


class CsPadConfigV4(_CsPadConfigBase):
    version = 4


class CsPadConfigV5(_CsPadConfigBase):
    version = 5


# Known configuration versions, in the order they are tried
CONFIG_TYPES = (CsPadConfigV2, CsPadConfigV3, CsPadConfigV4, CsPadConfigV5)


class _CsPadElementBase:
    """
    Data of one quad: the packed sections read out for that quad.
    """
    version = 0

    def __init__(self, quad: int, data: 'NDArray'):
        """
        Args:
            quad: Quad number reported by the readout
            data: Samples shaped [n2x1, 185, 388]
        """
        data = np.asarray(data)
        if data.ndim != 3 or data.shape[1:] != (COLS_2X1, ROWS_2X1):
            raise ValueError(f"Element data must have shape (n, {COLS_2X1}, {ROWS_2X1}), got {data.shape}")
        self._quad = int(quad)
        self._data = data

    def quad(self) -> int:
        return self._quad

    def data(self) -> 'NDArray':
        return self._data

    @property
    def num_2x1_stored(self) -> int:
        return self._data.shape[0]


class CsPadElementV1(_CsPadElementBase):
    version = 1


class CsPadElementV2(_CsPadElementBase):
    version = 2


class _CsPadDataBase:
    """
    Event data: one element per quad read out.
    """
    version = 0
    element_type = _CsPadElementBase

    def __init__(self, elements: Sequence[_CsPadElementBase]):
        for el in elements:
            if not isinstance(el, self.element_type):
                raise TypeError(f"{type(self).__name__} holds {self.element_type.__name__}, "
                                f"got {type(el).__name__}")
        self._elements = tuple(elements)

    def quads_shape(self) -> Tuple[int]:
        return (len(self._elements),)

    def quads(self, index: int) -> _CsPadElementBase:
        return self._elements[index]


class CsPadDataV1(_CsPadDataBase):
    version = 1
    element_type = CsPadElementV1


class CsPadDataV2(_CsPadDataBase):
    version = 2
    element_type = CsPadElementV2


# Known structured data versions, in the order they are tried
DATA_TYPES = (CsPadDataV2, CsPadDataV1)


class NDArrayType(NamedTuple):
    """
    Type tag for raw sample arrays in the event store.

    Read-only arrays (writeable flag off) stand for the immutable array form,
    writeable arrays for the mutable one.
    """
    dtype: np.dtype
    ndim: int = 3
    readonly: bool = True

    def matches(self, value) -> bool:
        return (isinstance(value, np.ndarray)
                and value.dtype == np.dtype(self.dtype)
                and value.ndim == self.ndim
                and value.flags.writeable != self.readonly)

    @property
    def name(self) -> str:
        kind = "const" if self.readonly else "mutable"
        return f"ndarray<{kind} {np.dtype(self.dtype).name},{self.ndim}>"


def make_cspad_data(arrays_by_quad: dict, version: int = 2) -> _CsPadDataBase:
    """
    Build a structured data record from per-quad sample blocks.

    Args:
        arrays_by_quad: quad number -> samples [n2x1, 185, 388], in readout order
        version: Data version (1 or 2)
    """
    if version == 2:
        data_type = CsPadDataV2
    elif version == 1:
        data_type = CsPadDataV1
    else:
        raise ValueError(f"Unsupported CSPad data version: {version}")

    element_type = data_type.element_type
    return data_type([element_type(quad, block) for quad, block in arrays_by_quad.items()])
