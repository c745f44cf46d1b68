"""
Geometry definitions and data structures for CSPad image assembly.

Based on the psana CSPad conventions: 4 quads, each holding 8 "2x1" sections
of 185 columns x 388 rows. Raw section data is laid out as [col][row], so
the 388 rows of one column are contiguous in memory.
"""

from typing import List, NamedTuple


# Standard CSPad detector specifications
NUM_QUADS = 4
NUM_2X1_PER_QUAD = 8
NUM_2X1_TOTAL = NUM_QUADS * NUM_2X1_PER_QUAD   # 32
COLS_2X1 = 185
ROWS_2X1 = 388
ROWS_ASIC = ROWS_2X1 // 2                      # 194, two ASICs per 2x1
SIZE_2X1 = COLS_2X1 * ROWS_2X1                 # 71780
SECTION_SHAPE = (COLS_2X1, ROWS_2X1)

PIXEL_SIZE_UM = 109.92
WIDE_PIXEL_SIZE_UM = 274.8   # Rows 193 and 194, either side of the ASIC gap

QUAD_IMAGE_SHAPE = (850, 850)
IMAGE_SHAPE = (1750, 1750)

FULL_ROI_MASK = (1 << NUM_2X1_PER_QUAD) - 1    # 0xFF

# Calibration type group used for the calib directory layout
CALIB_TYPE_GROUP = "CsPad::CalibV1"


def popcount(mask: int) -> int:
    """Number of set bits among the 8 section slots of a ROI mask."""
    return bin(mask & FULL_ROI_MASK).count("1")


def lowest_sections_mask(num_2x1: int) -> int:
    """ROI mask with the first `num_2x1` section slots switched on."""
    num_2x1 = max(0, min(num_2x1, NUM_2X1_PER_QUAD))
    return (1 << num_2x1) - 1


class QuadParameters(NamedTuple):
    """
    Per-quad parameters consumed by the assembly engine.
    """
    quad_number: int      # Quad index 0-3
    roi_mask: int         # Bit s set if section slot s holds data
    num_2x1_stored: int   # Sections packed contiguously in the raw block

    @property
    def popcount(self) -> int:
        return popcount(self.roi_mask)

    @property
    def is_consistent(self) -> bool:
        """True if the ROI mask agrees with the stored section count."""
        return (0 <= self.quad_number < NUM_QUADS
                and self.popcount == self.num_2x1_stored)

    def active_sections(self) -> List[int]:
        """Section slots present in the raw block, in packing order."""
        return [sect for sect in range(NUM_2X1_PER_QUAD)
                if self.roi_mask & (1 << sect)]


def full_quad_parameters(quad_number: int) -> QuadParameters:
    """Parameters for a quad with all 8 sections present."""
    return QuadParameters(quad_number, FULL_ROI_MASK, NUM_2X1_PER_QUAD)
