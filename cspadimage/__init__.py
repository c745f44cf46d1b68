"""
CSPad Image Assembly Package

A lightweight Python library for assembling LCLS CSPad detector data into
2D images without the full psana framework. Provides:
- Pixel coordinate tables built from geometry calibration constants
- Per-quad ROI mask and section count resolution
- Image assembly from structured quad data or raw [N, 185, 388] arrays

License: MIT
"""

__version__ = "0.1.0"
__author__ = "LCLS Data Analysis"

from .geometry_definitions import (
    QuadParameters, full_quad_parameters, popcount,
    NUM_QUADS, NUM_2X1_PER_QUAD, NUM_2X1_TOTAL, COLS_2X1, ROWS_2X1, SIZE_2X1,
    IMAGE_SHAPE, PIXEL_SIZE_UM, FULL_ROI_MASK
)
from .calibration import (
    CSPadCalibPars, CalibrationManager, GeometryUnavailableError,
    create_default_calib_pars, save_calib_pars
)
from .geometry import PixelCoordinateTable
from .data_types import (
    CsPadConfigV2, CsPadConfigV3, CsPadConfigV4, CsPadConfigV5,
    CsPadElementV1, CsPadElementV2, CsPadDataV1, CsPadDataV2,
    NDArrayType, make_cspad_data
)
from .event_store import Event, ConfigStore, Env
from .metadata import (
    ConfigMetadata, DataQuad, EventContext, DiagnosticCounters,
    metadata_from_config, metadata_from_data
)
from .assembly import (
    fill_quad_image, assemble_image, active_pixel_maps, make_image_buffer,
    resolve_output_dtype, OUTPUT_TYPES
)
from .adapters import (
    InputVariant, INPUT_VARIANTS, assemble_event, structured_adapter, raw_array_adapter
)
from .image_producer import CSPadImageProducer, ProducerConfig, ProducerStats

__all__ = [
    'QuadParameters',
    'full_quad_parameters',
    'popcount',
    'NUM_QUADS',
    'NUM_2X1_PER_QUAD',
    'NUM_2X1_TOTAL',
    'COLS_2X1',
    'ROWS_2X1',
    'SIZE_2X1',
    'IMAGE_SHAPE',
    'PIXEL_SIZE_UM',
    'FULL_ROI_MASK',
    'CSPadCalibPars',
    'CalibrationManager',
    'GeometryUnavailableError',
    'create_default_calib_pars',
    'save_calib_pars',
    'PixelCoordinateTable',
    'CsPadConfigV2',
    'CsPadConfigV3',
    'CsPadConfigV4',
    'CsPadConfigV5',
    'CsPadElementV1',
    'CsPadElementV2',
    'CsPadDataV1',
    'CsPadDataV2',
    'NDArrayType',
    'make_cspad_data',
    'Event',
    'ConfigStore',
    'Env',
    'ConfigMetadata',
    'DataQuad',
    'EventContext',
    'DiagnosticCounters',
    'metadata_from_config',
    'metadata_from_data',
    'fill_quad_image',
    'assemble_image',
    'active_pixel_maps',
    'make_image_buffer',
    'resolve_output_dtype',
    'OUTPUT_TYPES',
    'InputVariant',
    'INPUT_VARIANTS',
    'assemble_event',
    'structured_adapter',
    'raw_array_adapter',
    'CSPadImageProducer',
    'ProducerConfig',
    'ProducerStats',
]
