"""
Test suite for per-quad metadata resolution and the data types it reads.
"""

import warnings
import numpy as np
from cspadimage.data_types import (
    CsPadConfigV2, CsPadConfigV3, CsPadConfigV5, CsPadDataV1, CsPadDataV2,
    CsPadElementV1, CsPadElementV2, NDArrayType, make_cspad_data
)
from cspadimage.event_store import ConfigStore, Event
from cspadimage.geometry_definitions import QuadParameters
from cspadimage.metadata import (
    ConfigMetadata, DataQuad, EventContext, DiagnosticCounters,
    metadata_from_config, metadata_from_data
)
from table_helpers import SOURCE, section_blocks


def test_config_types():
    """Test configuration objects"""
    print("Testing configuration objects...")

    config = CsPadConfigV3(roi_masks=[0xFF, 0x0F, 0x00, 0x81])
    assert config.roi_mask(1) == 0x0F
    assert config.num_asics_stored(0) == 16
    assert config.num_asics_stored(1) == 8
    assert config.num_asics_stored(3) == 4
    assert config.quad_mask() == 0b1011
    assert config.num_quads() == 3
    assert "0x81" in repr(config)

    try:
        CsPadConfigV2(roi_masks=[0xFF, 0xFF])
        assert False, "Should have raised ValueError"
    except ValueError:
        pass  # Expected

    print("✓ Configuration objects")


def test_data_types():
    """Test structured data records"""
    print("Testing structured data...")

    data = make_cspad_data({2: section_blocks(3), 0: section_blocks(8)})
    assert isinstance(data, CsPadDataV2)
    assert data.quads_shape() == (2,)
    # Readout order is kept
    assert data.quads(0).quad() == 2
    assert data.quads(0).num_2x1_stored == 3
    assert data.quads(1).data().shape == (8, 185, 388)

    assert isinstance(make_cspad_data({0: section_blocks(1)}, version=1), CsPadDataV1)

    try:
        CsPadDataV2([CsPadElementV1(0, section_blocks(1))])
        assert False, "Should have raised TypeError"
    except TypeError:
        pass  # Expected

    try:
        CsPadElementV2(0, np.zeros((2, 388, 185)))
        assert False, "Should have raised ValueError"
    except ValueError:
        pass  # Expected

    print("✓ Structured data")


def test_ndarray_type():
    """Test raw array type tags"""
    print("Testing array type tags...")

    array = section_blocks(2, dtype=np.float32)
    assert NDArrayType(np.float32, 3, readonly=False).matches(array)
    assert not NDArrayType(np.float32, 3, readonly=True).matches(array)
    assert not NDArrayType(np.float64, 3, readonly=False).matches(array)
    assert not NDArrayType(np.float32, 2, readonly=False).matches(array)

    array.flags.writeable = False
    assert NDArrayType(np.float32, 3, readonly=True).matches(array)
    assert NDArrayType(np.float32).name == "ndarray<const float32,3>"

    print("✓ Array type tags")


def test_metadata_from_config():
    """Test config metadata capture tries each version"""
    print("Testing config metadata...")

    store = ConfigStore()
    assert metadata_from_config(store, SOURCE) is None

    store.put(CsPadConfigV5(roi_masks=[0xFF, 0x03, 0x00, 0xF0],
                            num_asics_stored=[16, 4, 0, 8]), SOURCE)
    meta = metadata_from_config(store, SOURCE)
    assert meta.version == 5
    assert meta.roi_masks == (0xFF, 0x03, 0x00, 0xF0)
    assert meta.num_2x1_stored == (8, 2, 0, 4)
    assert meta.quad_parameters(3) == QuadParameters(3, 0xF0, 4)

    # Earlier versions are preferred when several are present
    store.put(CsPadConfigV2(), SOURCE)
    assert metadata_from_config(store, SOURCE).version == 2

    # Other sources are not seen
    assert metadata_from_config(store, "XppGon.0:Cspad.0") is None

    print("✓ Config metadata")


def test_metadata_from_data():
    """Test data metadata capture"""
    print("Testing data metadata...")

    evt = Event()
    assert metadata_from_data(evt, SOURCE) is None

    evt.put(make_cspad_data({3: section_blocks(2), 1: section_blocks(8)}, version=1), SOURCE)
    assert metadata_from_data(evt, SOURCE) == [DataQuad(3, 2), DataQuad(1, 8)]

    # Data under another key is not raw data
    other = Event()
    other.put(make_cspad_data({0: section_blocks(1)}), SOURCE, "calibrated")
    assert metadata_from_data(other, SOURCE) is None
    assert metadata_from_data(other, SOURCE, "calibrated") == [DataQuad(0, 1)]

    print("✓ Data metadata")


def test_resolve_with_config():
    """Test ROI mask resolution from the configuration"""
    print("Testing resolution with config...")

    config = ConfigMetadata(SOURCE, 3, (0xFF, 0b1010, 0xFF, 0xFF), (8, 2, 8, 8))
    ctx = EventContext(config=config)

    assert ctx.resolve(1, 2) == QuadParameters(1, 0b1010, 2)
    assert ctx.resolve(0, 8) == QuadParameters(0, 0xFF, 8)
    assert ctx.counters.malformed_quads == 0

    print("✓ Resolution with config")


def test_resolve_without_config():
    """Test sections fill the lowest slots without a configuration"""
    print("Testing resolution without config...")

    ctx = EventContext()
    assert ctx.resolve(2, 3) == QuadParameters(2, 0b111, 3)
    assert ctx.resolve(0, 8).roi_mask == 0xFF

    print("✓ Resolution without config")


def test_resolve_malformed():
    """Test inconsistent quads are skipped and counted"""
    print("Testing malformed quads...")

    config = ConfigMetadata(SOURCE, 2, (0xFF, 0xFF, 0xFF, 0xFF), (8, 8, 8, 8))
    ctx = EventContext(config=config)

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        assert ctx.resolve(1, 5) is None      # Mask says 8 sections
        assert ctx.resolve(6, 8) is None      # No such quad

    assert ctx.counters.malformed_quads == 2
    assert len(caught) == 2

    counters = DiagnosticCounters(truncated_quads=1)
    counters.merge(ctx.counters)
    counters.merge(ctx.counters)
    assert counters.malformed_quads == 4
    assert counters.truncated_quads == 1

    print("✓ Malformed quads")


def test_raw_array_layout():
    """Test splitting raw arrays into quads"""
    print("Testing raw array layout...")

    config = ConfigMetadata(SOURCE, 2, (0x0F, 0x00, 0xFF, 0x03), (4, 0, 8, 2))

    # A full array is always four complete quads
    layout = EventContext(config=config).raw_array_layout(32)
    assert [n for n, _ in layout] == [8, 8, 8, 8]
    assert all(pars.roi_mask == 0xFF for _, pars in layout)
    assert [pars.quad_number for _, pars in layout] == [0, 1, 2, 3]

    # Partial arrays follow the event data first
    ctx = EventContext(config=config, data_quads=[DataQuad(2, 8), DataQuad(0, 4)])
    layout = ctx.raw_array_layout(12)
    assert layout == [(8, QuadParameters(2, 0xFF, 8)), (4, QuadParameters(0, 0x0F, 4))]

    # then the configuration, skipping empty quads
    layout = EventContext(config=config).raw_array_layout(14)
    assert [pars.quad_number for _, pars in layout] == [0, 2, 3]
    assert [n for n, _ in layout] == [4, 8, 2]

    # Malformed quads keep their section count so later quads stay aligned
    with warnings.catch_warnings(record=True):
        warnings.simplefilter("always")
        ctx = EventContext(config=config, data_quads=[DataQuad(0, 3), DataQuad(2, 8)])
        layout = ctx.raw_array_layout(11)
    assert layout[0] == (3, None)
    assert layout[1] == (8, QuadParameters(2, 0xFF, 8))

    # Without any metadata nothing can be resolved
    ctx = EventContext()
    assert ctx.raw_array_layout(12) == []
    assert ctx.counters.unresolved_events == 1

    print("✓ Raw array layout")


def test_event_context_capture():
    """Test the context reads raw structured data from the event"""
    print("Testing event context capture...")

    evt = Event()
    evt.put(make_cspad_data({1: section_blocks(4)}), SOURCE)
    ctx = EventContext.capture(evt, SOURCE)
    assert ctx.config is None
    assert ctx.data_quads == [DataQuad(1, 4)]
    assert ctx.counters == DiagnosticCounters()

    assert EventContext.capture(Event(), SOURCE).data_quads is None

    print("✓ Event context capture")


def run_all_metadata_tests():
    """Run all metadata tests"""
    print("Running Metadata Tests...\n")

    try:
        test_config_types()
        test_data_types()
        test_ndarray_type()
        test_metadata_from_config()
        test_metadata_from_data()
        test_resolve_with_config()
        test_resolve_without_config()
        test_resolve_malformed()
        test_raw_array_layout()
        test_event_context_capture()

        print("\n✅ All metadata tests passed!")
        return True

    except Exception as e:
        print(f"\n❌ Metadata test failed: {e}")
        import traceback
        traceback.print_exc()
        return False


if __name__ == "__main__":
    import sys
    success = run_all_metadata_tests()
    sys.exit(0 if success else 1)
