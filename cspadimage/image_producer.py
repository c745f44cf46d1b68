"""
CSPad image producer.

Based on psana CSPadImageProducer. The producer follows the host framework
lifecycle (job, run, calibration cycle, event):

1. at run start, load the geometry calibration constants and build the pixel
   coordinate table for the run,
2. at each calibration cycle, capture the per-quad ROI masks from the
   configuration,
3. for each event, assemble the CSPad image from whichever input form is
   present and add it to the event.

Diagnostics are printed according to the print_bits bitmask:
    1  - input parameters
    2  - calibration constants and geometry
    4  - configuration metadata
    8  - per-event processing
    16 - events without data
    32 - end-of-job summary
"""

import time
from dataclasses import dataclass, field
from typing import Optional
import numpy as np
from .geometry_definitions import CALIB_TYPE_GROUP, NUM_QUADS, full_quad_parameters
from .calibration import CalibrationManager
from .geometry import PixelCoordinateTable
from .metadata import ConfigMetadata, DiagnosticCounters, EventContext, metadata_from_config
from .adapters import assemble_event
from .assembly import OUTPUT_TYPES, active_pixel_maps
from .event_store import Env, Event


PRINT_INPUT_PARS = 1
PRINT_CALIB = 2
PRINT_CONFIG = 4
PRINT_EVENT = 8
PRINT_NO_DATA = 16
PRINT_SUMMARY = 32


@dataclass
class ProducerConfig:
    """
    Configuration of the image producer.
    """
    source: str                          # Data source, e.g. "CxiDs1.0:Cspad.0"
    input_key: str = ""                  # Key of the input data ("" for raw data)
    image_key: str = "image"             # Key under which the image is added
    calib_dir: Optional[str] = None      # Root calibration directory (None for defaults)
    type_group: str = CALIB_TYPE_GROUP   # Calibration type group
    out_type: str = "asdata"             # Image type: asdata, int16, int, float, double
    tilt_is_applied: bool = True         # Apply section and quad tilt angles
    fname_pixmap: Optional[str] = None   # Save the active pixel count map (.npy)
    fname_pixnum: Optional[str] = None   # Save the active pixel number map (.npy)
    print_bits: int = 0                  # Diagnostic verbosity bitmask

    def __post_init__(self):
        """Validate configuration values."""
        if not self.source:
            raise ValueError("Data source must be specified")

        if self.out_type not in OUTPUT_TYPES:
            raise ValueError(f"Unknown output type: {self.out_type}. "
                             f"Expected one of: {', '.join(OUTPUT_TYPES)}")

        if self.print_bits < 0:
            raise ValueError(f"print_bits must be non-negative, got {self.print_bits}")


@dataclass
class ProducerStats:
    """Job-wide processing statistics."""
    events: int = 0
    images_published: int = 0
    events_without_data: int = 0
    config_found: int = 0
    processing_time_s: float = 0.0
    diagnostics: DiagnosticCounters = field(default_factory=DiagnosticCounters)


class CSPadImageProducer:
    """
    Produces the assembled CSPad image for each event.

    Usage:
        producer = CSPadImageProducer(ProducerConfig(source="CxiDs1.0:Cspad.0"))
        producer.begin_job(evt, env)
        producer.begin_run(evt, env)
        producer.begin_calib_cycle(evt, env)
        for evt in events:
            producer.event(evt, env)
            image = evt.get(NDArrayType(np.int16, 2, readonly=False), producer.config.source, "image")
    """

    def __init__(self, config: ProducerConfig, name: str = "CSPadImageProducer"):
        self.config = config
        self.name = name
        self.stats = ProducerStats()
        self.table: Optional[PixelCoordinateTable] = None
        self._table_is_fixed = False
        self._calib_pars = None
        self.config_metadata: Optional[ConfigMetadata] = None
        self._calib_manager = CalibrationManager(config.calib_dir, config.type_group)

    def _log(self, bits: int, message: str):
        if self.config.print_bits & bits:
            print(f"{self.name}: {message}")

    def set_pixel_coordinate_table(self, table: PixelCoordinateTable):
        """Use a prebuilt table instead of building one from calibration constants."""
        self.table = table
        self._table_is_fixed = True

    def begin_job(self, evt: Event, env: Env):
        """Called once at the beginning of the job."""
        cfg = self.config
        self._log(PRINT_INPUT_PARS,
                  f"Input parameters:\n"
                  f"  source          : {cfg.source}\n"
                  f"  input key       : '{cfg.input_key}'\n"
                  f"  image key       : '{cfg.image_key}'\n"
                  f"  calib dir       : {cfg.calib_dir}\n"
                  f"  type group      : {cfg.type_group}\n"
                  f"  out type        : {cfg.out_type}\n"
                  f"  tilt is applied : {cfg.tilt_is_applied}\n"
                  f"  pixmap file     : {cfg.fname_pixmap}\n"
                  f"  pixnum file     : {cfg.fname_pixnum}\n"
                  f"  print bits      : {cfg.print_bits}")

    def begin_run(self, evt: Event, env: Env):
        """
        Called at the beginning of each run.

        Raises:
            GeometryUnavailableError: If the calibration constants cannot be loaded
        """
        if not self._table_is_fixed:
            self._load_geometry(env.run_number)

        self._capture_config(env)

        if self.config.fname_pixmap or self.config.fname_pixnum:
            self._save_active_pixel_maps()

    def _load_geometry(self, run_number: int):
        pars = self._calib_manager.load_calib_pars(self.config.source, run_number)
        if pars is self._calib_pars:
            return

        self.table = PixelCoordinateTable.from_calib_pars(pars, self.config.tilt_is_applied)
        self._calib_pars = pars

        origins = ", ".join(f"{name}={origin}" for name, origin in pars.origins.items())
        self._log(PRINT_CALIB, f"Calibration constants for run {run_number}: {origins}")

        bounds = self.table.bounds()
        self._log(PRINT_CALIB,
                  f"Geometry: x {bounds['x_min']:.1f} to {bounds['x_max']:.1f}, "
                  f"y {bounds['y_min']:.1f} to {bounds['y_max']:.1f} pixels, "
                  f"{self.table.in_canvas_count():,} pixels on the canvas")

    def begin_calib_cycle(self, evt: Event, env: Env):
        """Called at the beginning of each calibration cycle."""
        self._capture_config(env)

    def _capture_config(self, env: Env):
        self.config_metadata = metadata_from_config(env.config_store, self.config.source)

        if self.config_metadata is None:
            self._log(PRINT_CONFIG, f"No CsPad configuration found for source {self.config.source}, "
                                    "using section counts from the data")
            return

        self.stats.config_found += 1
        masks = ", ".join(f"0x{m:02x}" for m in self.config_metadata.roi_masks)
        self._log(PRINT_CONFIG, f"CsPad::ConfigV{self.config_metadata.version}: "
                                f"roi masks [{masks}], "
                                f"2x1 stored {list(self.config_metadata.num_2x1_stored)}")

    def active_quad_parameters(self):
        """
        Quads enabled by the configuration, all sections of every quad
        when there is none. Quads with an inconsistent mask are left out.
        """
        if self.config_metadata is None:
            return [full_quad_parameters(q) for q in range(NUM_QUADS)]

        quads = (self.config_metadata.quad_parameters(q) for q in range(NUM_QUADS))
        return [pars for pars in quads if pars.num_2x1_stored and pars.is_consistent]

    def _save_active_pixel_maps(self):
        pixmap, pixnum = active_pixel_maps(self.table, self.active_quad_parameters())

        if self.config.fname_pixmap:
            np.save(self.config.fname_pixmap, pixmap)
            self._log(PRINT_CALIB, f"Active pixel map saved to: {self.config.fname_pixmap}")

        if self.config.fname_pixnum:
            np.save(self.config.fname_pixnum, pixnum)
            self._log(PRINT_CALIB, f"Active pixel numbers saved to: {self.config.fname_pixnum}")

    def event(self, evt: Event, env: Env):
        """
        Called for each event: assemble the image and add it to the event.

        Events without usable data produce no image and no error.
        """
        if self.table is None:
            self.begin_run(evt, env)

        self.stats.events += 1
        t0 = time.perf_counter()

        ctx = EventContext.capture(evt, self.config.source, self.config_metadata)
        image, variant = assemble_event(evt, self.config.source, self.config.input_key,
                                        ctx, self.table, self.config.out_type)

        self.stats.diagnostics.merge(ctx.counters)

        if image is None:
            self.stats.events_without_data += 1
            self._log(PRINT_NO_DATA, f"Event {self.stats.events}: no CSPad data for source "
                                     f"{self.config.source} key '{self.config.input_key}'")
            return

        evt.put(image, self.config.source, self.config.image_key)
        self.stats.images_published += 1

        dt = time.perf_counter() - t0
        self.stats.processing_time_s += dt
        self._log(PRINT_EVENT, f"Event {self.stats.events}: image from {variant.name}, "
                               f"dtype {image.dtype}, {dt * 1000:.1f} ms")

    def end_calib_cycle(self, evt: Event, env: Env):
        """Called at the end of each calibration cycle."""

    def end_run(self, evt: Event, env: Env):
        """Called at the end of each run."""

    def end_job(self, evt: Event, env: Env):
        """Called once at the end of the job."""
        stats = self.stats
        diag = stats.diagnostics
        mean_ms = 1000 * stats.processing_time_s / stats.images_published if stats.images_published else 0.0
        self._log(PRINT_SUMMARY,
                  f"Summary:\n"
                  f"  events              : {stats.events}\n"
                  f"  images published    : {stats.images_published}\n"
                  f"  events without data : {stats.events_without_data}\n"
                  f"  malformed quads     : {diag.malformed_quads}\n"
                  f"  truncated quads     : {diag.truncated_quads}\n"
                  f"  unresolved events   : {diag.unresolved_events}\n"
                  f"  mean time per image : {mean_ms:.1f} ms")
