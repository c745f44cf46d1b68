"""
Test suite for CSPad geometry calibration constants.
"""

import tempfile
import warnings
import numpy as np
from pathlib import Path
from cspadimage.calibration import (
    CSPadCalibPars, CalibrationManager, GeometryUnavailableError, PARAMETER_SHAPES,
    create_default_calib_pars, parse_run_range, save_calib_pars
)

SOURCE = "CxiDs1.0:Cspad.0"


def _write_parameter(calib_dir, name, filename, value):
    param_dir = Path(calib_dir) / "CsPad::CalibV1" / SOURCE / name
    param_dir.mkdir(parents=True, exist_ok=True)
    np.savetxt(param_dir / filename, np.atleast_2d(value), fmt="%.6f")
    return param_dir / filename


def test_default_calibration():
    """Test nominal calibration constants"""
    print("Testing default calibration...")

    pars = create_default_calib_pars(SOURCE, 7)
    assert pars.source == SOURCE
    assert pars.run_number == 7

    for name, shape in PARAMETER_SHAPES.items():
        assert getattr(pars, name).shape == shape, f"{name} has wrong shape"
    assert set(pars.default_parameters()) == set(PARAMETER_SHAPES)

    centers = pars.section_centers()
    assert centers.shape == (3, 4, 8)
    # Nominal centre plus the 15 pixel section margin
    assert abs(centers[0, 0, 0] - (198.5 + 15)) < 1e-9
    assert abs(centers[1, 2, 5] - (727.25 + 15)) < 1e-9
    assert centers[2].max() == 0

    offsets = pars.quad_offsets()
    assert offsets.shape == (3, 4)
    # offset + quad margin + gap and shift terms signed by detector corner
    assert offsets[0].tolist() == [78.0, 2.0, 836.0, 912.0]
    assert offsets[1].tolist() == [2.0, 836.0, 912.0, 78.0]

    assert pars.quad_angles().tolist() == [180.0, 90.0, 0.0, 270.0]
    assert pars.section_angles()[1].tolist() == [0, 0, 270, 270, 180, 180, 270, 270]

    print("✓ Default calibration")


def test_calib_pars_validation():
    """Test parameter shape validation"""
    print("Testing calibration shape validation...")

    pars = create_default_calib_pars()
    values = {name: getattr(pars, name) for name in PARAMETER_SHAPES}
    values['rotation'] = np.zeros((8, 4))

    try:
        CSPadCalibPars(**values)
        assert False, "Should have raised ValueError"
    except ValueError as e:
        assert "rotation" in str(e)

    print("✓ Calibration shape validation")


def test_tilt_angles():
    """Test tilt angles are added only when requested"""
    print("Testing tilt angles...")

    pars = create_default_calib_pars()
    pars.tilt[2, 3] = 0.25
    pars.quad_tilt[1] = -0.1

    assert pars.section_angles(True)[2, 3] == 270.25
    assert pars.section_angles(False)[2, 3] == 270.0
    assert abs(pars.quad_angles(True)[1] - 89.9) < 1e-12
    assert pars.quad_angles(False)[1] == 90.0

    print("✓ Tilt angles")


def test_parse_run_range():
    """Test calibration file name parsing"""
    print("Testing run range parsing...")

    assert parse_run_range("0-end.data") == (0, None)
    assert parse_run_range("12-57.data") == (12, 57)
    assert parse_run_range("notes.data") is None
    assert parse_run_range("12-57.txt") is None

    print("✓ Run range parsing")


def test_default_manager():
    """Test manager without a calibration directory"""
    print("Testing manager defaults...")

    manager = CalibrationManager()
    pars = manager.load_calib_pars(SOURCE, 3)
    assert all(origin == "default" for origin in pars.origins.values())
    # Cached per source and run
    assert manager.load_calib_pars(SOURCE, 3) is pars
    assert manager.load_calib_pars(SOURCE, 4) is not pars

    print("✓ Manager defaults")


def test_calibration_file_selection():
    """Test the file with the highest matching first run wins"""
    print("Testing calibration file selection...")

    with tempfile.TemporaryDirectory() as temp_dir:
        _write_parameter(temp_dir, "rotation", "0-end.data", np.zeros((4, 8)))
        _write_parameter(temp_dir, "rotation", "10-end.data", np.full((4, 8), 90.0))
        _write_parameter(temp_dir, "rotation", "20-25.data", np.full((4, 8), 180.0))
        (Path(temp_dir) / "CsPad::CalibV1" / SOURCE / "rotation" / "readme.data").write_text("x")

        manager = CalibrationManager(temp_dir)
        directory = manager.source_dir(SOURCE) / "rotation"

        assert manager.find_calibration_file(directory, 5).name == "0-end.data"
        assert manager.find_calibration_file(directory, 12).name == "10-end.data"
        assert manager.find_calibration_file(directory, 22).name == "20-25.data"
        assert manager.find_calibration_file(directory, 30).name == "10-end.data"
        assert manager.find_calibration_file(manager.source_dir(SOURCE) / "tilt", 5) is None

        with warnings.catch_warnings(record=True):
            warnings.simplefilter("always")
            pars = manager.load_calib_pars(SOURCE, 22)

        assert (pars.rotation == 180.0).all()
        assert pars.origins["rotation"].endswith("20-25.data")

    print("✓ Calibration file selection")


def test_save_and_load_calibration():
    """Test writing constants and reading them back"""
    print("Testing calibration save/load...")

    pars = create_default_calib_pars(SOURCE)
    pars.offset_corr[0, 1] = 3.5
    pars.center_corr[4, 2] = -1.25
    pars.quad_tilt[:] = [0.1, 0.2, 0.3, 0.4]

    with tempfile.TemporaryDirectory() as temp_dir:
        save_calib_pars(pars, temp_dir, first_run=5)

        manager = CalibrationManager(temp_dir)
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            loaded = manager.load_calib_pars(SOURCE, 9)
        assert not caught, "All parameters should come from files"

        assert loaded.default_parameters() == []
        for name in PARAMETER_SHAPES:
            np.testing.assert_allclose(getattr(loaded, name), getattr(pars, name))

        # Before the first run of the range nothing matches
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            early = CalibrationManager(temp_dir).load_calib_pars(SOURCE, 2)
        assert len(caught) == 1
        assert set(early.default_parameters()) == set(PARAMETER_SHAPES)

    print("✓ Calibration save/load")


def test_missing_parameter_warns():
    """Test a missing parameter file falls back to its default with a warning"""
    print("Testing missing parameter fallback...")

    with tempfile.TemporaryDirectory() as temp_dir:
        _write_parameter(temp_dir, "quad_rotation", "0-end.data", [0.0, 90.0, 180.0, 270.0])

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            pars = CalibrationManager(temp_dir).load_calib_pars(SOURCE, 1)

        assert len(caught) == 1
        assert "center" in str(caught[0].message)
        assert pars.quad_rotation.tolist() == [0.0, 90.0, 180.0, 270.0]
        assert "quad_rotation" not in pars.default_parameters()
        assert "center" in pars.default_parameters()

    print("✓ Missing parameter fallback")


def test_unusable_calibration():
    """Test errors that make the geometry unavailable"""
    print("Testing unusable calibration...")

    try:
        CalibrationManager("/nonexistent/calib/dir").load_calib_pars(SOURCE, 1)
        assert False, "Should have raised GeometryUnavailableError"
    except GeometryUnavailableError:
        pass  # Expected

    with tempfile.TemporaryDirectory() as temp_dir:
        path = _write_parameter(temp_dir, "center", "0-end.data", np.zeros((12, 8)))
        path.write_text("not numbers\n")
        try:
            CalibrationManager(temp_dir).load_calib_pars(SOURCE, 1)
            assert False, "Should have raised GeometryUnavailableError"
        except GeometryUnavailableError as e:
            assert "0-end.data" in str(e)

    with tempfile.TemporaryDirectory() as temp_dir:
        _write_parameter(temp_dir, "rotation", "0-end.data", [0.0, 90.0, 180.0])
        try:
            CalibrationManager(temp_dir).load_calib_pars(SOURCE, 1)
            assert False, "Should have raised GeometryUnavailableError"
        except GeometryUnavailableError as e:
            assert "expected shape" in str(e)

    print("✓ Unusable calibration")


def run_all_calibration_tests():
    """Run all calibration tests"""
    print("Running Calibration Tests...\n")

    try:
        test_default_calibration()
        test_calib_pars_validation()
        test_tilt_angles()
        test_parse_run_range()
        test_default_manager()
        test_calibration_file_selection()
        test_save_and_load_calibration()
        test_missing_parameter_warns()
        test_unusable_calibration()

        print("\n✅ All calibration tests passed!")
        return True

    except Exception as e:
        print(f"\n❌ Calibration test failed: {e}")
        import traceback
        traceback.print_exc()
        return False


if __name__ == "__main__":
    import sys
    success = run_all_calibration_tests()
    sys.exit(0 if success else 1)
