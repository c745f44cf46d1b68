"""
Per-quad metadata resolution.

Two sources describe which sections of a quad are present:
- the configuration object (valid for a run or calibration cycle), giving a
  ROI mask and the number of stored ASICs per quad;
- the event's structured data, where each element reports its quad number
  and how many sections it carries.

EventContext gathers both for one event and turns them into the
QuadParameters the assembly engine needs.
"""

import warnings
from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional, Tuple
from .geometry_definitions import (
    NUM_QUADS, NUM_2X1_TOTAL, QuadParameters, full_quad_parameters, lowest_sections_mask
)
from .data_types import CONFIG_TYPES, DATA_TYPES
from .event_store import ConfigStore, Event


@dataclass(frozen=True)
class ConfigMetadata:
    """
    Per-quad layout captured from a CSPad configuration object.
    """
    source: str
    version: int                       # Configuration version found
    roi_masks: Tuple[int, ...]         # Per-quad ROI mask
    num_2x1_stored: Tuple[int, ...]    # Per-quad section count (ASICs / 2)

    def quad_parameters(self, quad: int) -> QuadParameters:
        return QuadParameters(quad, self.roi_masks[quad], self.num_2x1_stored[quad])


class DataQuad(NamedTuple):
    """Layout of one quad as reported by the event data."""
    quad_number: int
    num_2x1_stored: int


def metadata_from_config(config_store: ConfigStore, source: str) -> Optional[ConfigMetadata]:
    """
    Capture per-quad ROI masks and section counts from the configuration.

    Configuration versions are tried in turn; the first one found is used.

    Returns:
        ConfigMetadata, or None if no known configuration version is present
    """
    for config_type in CONFIG_TYPES:
        config = config_store.get(config_type, source)
        if config is None:
            continue

        return ConfigMetadata(
            source=source,
            version=config_type.version,
            roi_masks=tuple(config.roi_mask(q) for q in range(NUM_QUADS)),
            num_2x1_stored=tuple(config.num_asics_stored(q) // 2 for q in range(NUM_QUADS))
        )

    return None


def metadata_from_data(evt: Event, source: str, key: str = "") -> Optional[List[DataQuad]]:
    """
    Capture quad numbers and section counts from the event's structured data.

    Returns:
        One DataQuad per element in readout order, or None if no known data
        version is present
    """
    for data_type in DATA_TYPES:
        data = evt.get(data_type, source, key)
        if data is None:
            continue

        return [DataQuad(data.quads(i).quad(), data.quads(i).num_2x1_stored)
                for i in range(data.quads_shape()[0])]

    return None


@dataclass
class DiagnosticCounters:
    """Counts of quads skipped while assembling images."""
    malformed_quads: int = 0     # ROI mask disagrees with stored section count
    truncated_quads: int = 0     # Raw array too short for the expected sections
    unresolved_events: int = 0   # Partial raw array with no metadata at all

    def merge(self, other: 'DiagnosticCounters'):
        self.malformed_quads += other.malformed_quads
        self.truncated_quads += other.truncated_quads
        self.unresolved_events += other.unresolved_events


@dataclass
class EventContext:
    """
    Metadata for one event, built fresh for every event.

    Attributes:
        config: Configuration-derived layout for the current cycle, if any
        data_quads: Layout reported by this event's structured data, if any
        counters: Diagnostics collected while processing this event
    """
    config: Optional[ConfigMetadata] = None
    data_quads: Optional[List[DataQuad]] = None
    counters: DiagnosticCounters = field(default_factory=DiagnosticCounters)

    @classmethod
    def capture(cls, evt: Event, source: str,
                config: Optional[ConfigMetadata] = None) -> 'EventContext':
        """Build the context for an event, reading the raw structured data."""
        return cls(config=config, data_quads=metadata_from_data(evt, source))

    def resolve(self, quad_number: int, num_2x1_stored: int) -> Optional[QuadParameters]:
        """
        Combine a quad's stored section count with its ROI mask.

        The configured ROI mask says which slots the stored sections belong
        to. Without a configuration the sections are taken to fill the lowest
        slots.

        Returns:
            QuadParameters, or None if the mask and count disagree
        """
        if self.config is not None and 0 <= quad_number < NUM_QUADS:
            roi_mask = self.config.roi_masks[quad_number]
        else:
            roi_mask = lowest_sections_mask(num_2x1_stored)

        quad_pars = QuadParameters(quad_number, roi_mask, num_2x1_stored)
        if not quad_pars.is_consistent:
            self.counters.malformed_quads += 1
            warnings.warn(f"Skipping quad {quad_number}: ROI mask 0x{roi_mask:02x} has "
                          f"{quad_pars.popcount} sections but {num_2x1_stored} are stored")
            return None

        return quad_pars

    def raw_array_layout(self, num_sections: int) -> List[Tuple[int, Optional[QuadParameters]]]:
        """
        Layout of a raw [N, 185, 388] array, quad by quad.

        A full array of 32 sections is always four complete quads. A partial
        array follows the structured data of the event or, failing that, the
        configuration, in quad order.

        Returns:
            (sections consumed, QuadParameters or None to skip) per quad
        """
        if num_sections == NUM_2X1_TOTAL:
            return [(pars.num_2x1_stored, pars)
                    for pars in (full_quad_parameters(q) for q in range(NUM_QUADS))]

        if self.data_quads is not None:
            entries = [(dq.quad_number, dq.num_2x1_stored) for dq in self.data_quads]
        elif self.config is not None:
            entries = [(q, n) for q, n in enumerate(self.config.num_2x1_stored) if n > 0]
        else:
            self.counters.unresolved_events += 1
            return []

        return [(num_2x1, self.resolve(quad, num_2x1)) for quad, num_2x1 in entries]
