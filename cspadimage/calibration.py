"""
CSPad geometry calibration constants.

Loads the alignment parameters that position the 2x1 sections inside each
quad and the quads inside the detector. Parameters live in the psana
calibration directory layout as whitespace-separated text matrices:

    calib_dir/
    └── CsPad::CalibV1/
        └── <source>/
            ├── center/
            │   └── 0-end.data
            ├── rotation/
            │   ├── 0-end.data
            │   └── 57-end.data
            └── ...

Parameters without a file fall back to nominal values.
"""

import re
import warnings
import numpy as np
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union, TYPE_CHECKING
from .geometry_definitions import (
    NUM_QUADS, NUM_2X1_PER_QUAD, CALIB_TYPE_GROUP
)

if TYPE_CHECKING:
    from numpy.typing import NDArray


class GeometryUnavailableError(Exception):
    """Raised when calibration constants needed for the geometry cannot be loaded."""
    pass


# Expected shape of each geometry parameter
PARAMETER_SHAPES = {
    'center':         (12, 8),   # x, y, z rows for each quad x 8 sections
    'center_corr':    (12, 8),
    'marg_gap_shift': (3, 4),    # x, y, z x (section margin, quad margin, gap, shift)
    'offset':         (3, 4),    # x, y, z x quad
    'offset_corr':    (3, 4),
    'rotation':       (4, 8),    # quad x section, n*90 degrees
    'tilt':           (4, 8),    # quad x section, small angles in degrees
    'quad_rotation':  (4,),
    'quad_tilt':      (4,),
}

# Nominal section centres inside the 850x850 quad frame, in pixels
_NOMINAL_CENTER_X = [198.5, 198.5, 310.5, 98.5, 627.5, 627.5, 711.5, 499.5]
_NOMINAL_CENTER_Y = [308.25, 95.25, 625.5, 625.5, 515.25, 727.25, 198.0, 198.0]
_NOMINAL_ROTATION = [0, 0, 270, 270, 180, 180, 270, 270]

_RUN_RANGE_PATTERN = re.compile(r'^(\d+)-(\d+|end)\.data$')


def _default_parameters() -> Dict[str, 'NDArray']:
    """Nominal values for every geometry parameter."""
    center = np.zeros(PARAMETER_SHAPES['center'])
    center[0:4, :] = _NOMINAL_CENTER_X
    center[4:8, :] = _NOMINAL_CENTER_Y

    return {
        'center': center,
        'center_corr': np.zeros(PARAMETER_SHAPES['center_corr']),
        'marg_gap_shift': np.array([[15.0, 40.0, 0.0, 38.0],
                                    [15.0, 40.0, 0.0, 38.0],
                                    [0.0, 0.0, 0.0, 0.0]]),
        'offset': np.array([[0.0, 0.0, 834.0, 834.0],
                            [0.0, 834.0, 834.0, 0.0],
                            [0.0, 0.0, 0.0, 0.0]]),
        'offset_corr': np.zeros(PARAMETER_SHAPES['offset_corr']),
        'rotation': np.tile(np.array(_NOMINAL_ROTATION, dtype=np.float64), (NUM_QUADS, 1)),
        'tilt': np.zeros(PARAMETER_SHAPES['tilt']),
        'quad_rotation': np.array([180.0, 90.0, 0.0, 270.0]),
        'quad_tilt': np.zeros(PARAMETER_SHAPES['quad_tilt']),
    }


@dataclass
class CSPadCalibPars:
    """
    Geometry calibration constants for one CSPad and one run.
    """
    center: 'NDArray'
    center_corr: 'NDArray'
    marg_gap_shift: 'NDArray'
    offset: 'NDArray'
    offset_corr: 'NDArray'
    rotation: 'NDArray'
    tilt: 'NDArray'
    quad_rotation: 'NDArray'
    quad_tilt: 'NDArray'
    source: str = ""
    run_number: int = 0
    origins: Dict[str, str] = field(default_factory=dict)   # parameter -> file path or "default"

    def __post_init__(self):
        """Validate parameter shapes."""
        for name, shape in PARAMETER_SHAPES.items():
            value = np.asarray(getattr(self, name), dtype=np.float64)
            if value.shape != shape:
                raise ValueError(f"Parameter '{name}' has shape {value.shape}, expected {shape}")
            setattr(self, name, value)

    def section_centers(self) -> 'NDArray':
        """
        Section centres in the quad frame including corrections and margin.

        Returns:
            Array of shape (3, 4, 8) indexed as (x/y/z, quad, section), in pixels
        """
        centers = np.reshape(self.center + self.center_corr, (3, NUM_QUADS, NUM_2X1_PER_QUAD))
        sec_offset = self.marg_gap_shift[:, 0]
        return centers + sec_offset[:, np.newaxis, np.newaxis]

    def section_angles(self, tilt_is_applied: bool = True) -> 'NDArray':
        """Section rotation angles in degrees, shape (4, 8)."""
        if tilt_is_applied:
            return self.rotation + self.tilt
        return self.rotation.copy()

    def quad_angles(self, tilt_is_applied: bool = True) -> 'NDArray':
        """Quad rotation angles in degrees, shape (4,)."""
        if tilt_is_applied:
            return self.quad_rotation + self.quad_tilt
        return self.quad_rotation.copy()

    def quad_offsets(self) -> 'NDArray':
        """
        Position of each quad box in the detector frame.

        Combines the measured offset with the quad margin, and the gap and
        shift terms whose signs depend on the quad's corner of the detector.

        Returns:
            Array of shape (3, 4) indexed as (x/y/z, quad), in pixels
        """
        quad_margin = self.marg_gap_shift[:, 1]
        quad_gap = self.marg_gap_shift[:, 2]
        quad_shift = self.marg_gap_shift[:, 3]

        gap_signs = np.array([[-1, -1, 1, 1],
                              [-1, 1, 1, -1],
                              [1, 1, 1, 1]])
        shift_signs = np.array([[1, -1, -1, 1],
                                [-1, -1, 1, 1],
                                [1, 1, 1, 1]])

        return (self.offset + self.offset_corr
                + quad_margin[:, np.newaxis]
                + quad_gap[:, np.newaxis] * gap_signs
                + quad_shift[:, np.newaxis] * shift_signs)

    def default_parameters(self) -> List[str]:
        """Names of the parameters that were not loaded from a file."""
        return [name for name in PARAMETER_SHAPES if self.origins.get(name, "default") == "default"]


def create_default_calib_pars(source: str = "", run_number: int = 0) -> CSPadCalibPars:
    """
    Create nominal calibration constants for testing or when no calibration
    directory is configured.
    """
    params = _default_parameters()
    origins = {name: "default" for name in params}
    return CSPadCalibPars(source=source, run_number=run_number, origins=origins, **params)


def parse_run_range(filename: str) -> Optional[Tuple[int, Optional[int]]]:
    """
    Parse a calibration file name of the form '<first>-<last>.data'.

    Returns:
        (first, last) with last=None for open-ended ranges, or None if the
        name does not follow the convention
    """
    match = _RUN_RANGE_PATTERN.match(filename)
    if not match:
        return None
    first = int(match.group(1))
    last = None if match.group(2) == 'end' else int(match.group(2))
    return first, last


class CalibrationManager:
    """
    Finds and loads CSPad geometry calibration constants for a run.
    """

    def __init__(self, calibration_dir: Optional[Union[str, Path]] = None,
                 type_group: str = CALIB_TYPE_GROUP):
        """
        Initialize calibration manager.

        Args:
            calibration_dir: Root calibration directory (None for defaults only)
            type_group: Calibration type group sub-directory
        """
        self.calibration_dir = Path(calibration_dir) if calibration_dir else None
        self.type_group = type_group
        self._pars_cache: Dict[Tuple[str, int], CSPadCalibPars] = {}

    def source_dir(self, source: str) -> Optional[Path]:
        if self.calibration_dir is None:
            return None
        return self.calibration_dir / self.type_group / source

    def load_calib_pars(self, source: str, run_number: int) -> CSPadCalibPars:
        """
        Load calibration constants for a detector source and run.

        Args:
            source: Detector source name (e.g. "CxiDs1.0:Cspad.0")
            run_number: Run number

        Returns:
            CSPadCalibPars, with defaults for parameters that have no file

        Raises:
            GeometryUnavailableError: If the calibration directory is missing
                or a parameter file cannot be used
        """
        cache_key = (source, run_number)
        if cache_key in self._pars_cache:
            return self._pars_cache[cache_key]

        if self.calibration_dir is None:
            pars = create_default_calib_pars(source, run_number)
            self._pars_cache[cache_key] = pars
            return pars

        if not self.calibration_dir.is_dir():
            raise GeometryUnavailableError(f"Calibration directory not found: {self.calibration_dir}")

        params = _default_parameters()
        origins = {}
        source_dir = self.source_dir(source)

        for name, shape in PARAMETER_SHAPES.items():
            calib_file = self.find_calibration_file(source_dir / name, run_number)
            if calib_file is None:
                origins[name] = "default"
                continue

            params[name] = self._load_parameter_file(calib_file, shape)
            origins[name] = str(calib_file)

        defaulted = [name for name, origin in origins.items() if origin == "default"]
        if defaulted:
            warnings.warn(f"No calibration files for {source} run {run_number} in {source_dir}, "
                          f"using default values for: {', '.join(defaulted)}")

        pars = CSPadCalibPars(source=source, run_number=run_number, origins=origins, **params)
        self._pars_cache[cache_key] = pars
        return pars

    def find_calibration_file(self, directory: Path, run_number: int) -> Optional[Path]:
        """
        Find the calibration file whose run range contains the run.

        When several ranges match, the one starting at the highest run wins.
        """
        if not directory.is_dir():
            return None

        candidates = []
        for path in directory.glob("*.data"):
            run_range = parse_run_range(path.name)
            if run_range is None:
                continue
            first, last = run_range
            if first <= run_number and (last is None or run_number <= last):
                candidates.append((first, path))

        if not candidates:
            return None

        candidates.sort(key=lambda c: c[0])
        return candidates[-1][1]

    def _load_parameter_file(self, file_path: Path, shape: Tuple[int, ...]) -> 'NDArray':
        """Load a text parameter file and check its shape."""
        try:
            values = np.loadtxt(file_path, dtype=np.float64, ndmin=len(shape))
        except ValueError as e:
            raise GeometryUnavailableError(f"Could not parse calibration file {file_path}: {e}") from e

        if values.size != int(np.prod(shape)):
            raise GeometryUnavailableError(f"Calibration file {file_path} has {values.size} values, "
                                           f"expected shape {shape}")

        return values.reshape(shape)


def save_calib_pars(pars: CSPadCalibPars, calibration_dir: Union[str, Path],
                    first_run: int = 0, type_group: str = CALIB_TYPE_GROUP) -> Path:
    """
    Write calibration constants in the calibration directory layout.

    Args:
        pars: Constants to save
        calibration_dir: Root calibration directory
        first_run: First run of the open-ended validity range
        type_group: Calibration type group sub-directory

    Returns:
        Path of the source directory written to
    """
    source_dir = Path(calibration_dir) / type_group / pars.source
    for name in PARAMETER_SHAPES:
        param_dir = source_dir / name
        param_dir.mkdir(parents=True, exist_ok=True)
        value = np.atleast_2d(getattr(pars, name))
        np.savetxt(param_dir / f"{first_run}-end.data", value, fmt="%.6f")
    return source_dir
