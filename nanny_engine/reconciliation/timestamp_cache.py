"""
Timestamp reconciliation cache.

The controller stamps each measurement with its own clock, which reads 0
before NTP sync and can jump after a restart. This cache assigns every
historical sample a stabilized epoch-ms value exactly once and keeps it
across reloads.

Resolution order for a sample seen for the first time:
1. A pending client-recorded manual trigger time (FIFO), when the sample
   belongs to a manual measurement
2. The raw value, when it is a plausible absolute epoch
3. A backfill of now - position_from_newest * measurement interval

An assigned value is never recomputed while the device still reports the
sample.

The device keeps a bounded ring of samples and drops the oldest on
overflow, so positions are not stable. Samples are keyed by a running
sequence number: each cycle the history is aligned against the previous
one and the sequence offset advances by the number of samples that fell
off the front.
"""
import hashlib
import logging
import math
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Sequence

from ..config import ReconciliationSettings
from ..domain.entities import DisplayMeasurement, Measurement
from ..storage.persistent_store import PersistentStore

logger = logging.getLogger(__name__)

MS_PER_HOUR = 3600 * 1000


@dataclass
class ReconcileResult:
    """Output of one reconciliation pass."""
    measurements: List[DisplayMeasurement] = field(default_factory=list)
    was_reset: bool = False
    new_samples: int = 0
    manual_matches: int = 0
    shift: int = 0
    expired_triggers: int = 0

    @property
    def changed(self) -> bool:
        """True when the cache state differs from before the pass."""
        return bool(self.new_samples or self.was_reset or self.shift or self.expired_triggers)


def fingerprint(measurement: Measurement) -> str:
    """Short digest of every reported field of a sample."""
    raw = "|".join(str(value) for value in (
        measurement.raw_timestamp,
        measurement.temperature,
        measurement.humidity,
        measurement.pump_activated,
        measurement.fan_activated,
        measurement.extractor_activated,
        measurement.stage_name,
        measurement.event,
    ))
    return hashlib.sha256(raw.encode()).hexdigest()[:12]


def detect_shift(previous: Sequence[str], current: Sequence[str]) -> int:
    """
    Number of samples dropped from the front since the previous history.

    Returns the smallest k for which the previous history without its
    first k entries is a prefix of the current one. Returns len(previous)
    when nothing overlaps.
    """
    size = len(previous)
    for k in range(size + 1):
        overlap = size - k
        if overlap > len(current):
            continue
        if list(previous[k:]) == list(current[:overlap]):
            return k
    return size


class TimestampCache:
    """
    Durable sample -> stabilized-timestamp mapping.

    Keys combine the running sequence number of a sample with its raw
    value, so repeated zero timestamps stay distinct. Only samples present
    in the latest device history are kept.
    """

    STATE_VERSION = 2

    def __init__(
        self,
        store: Optional[PersistentStore] = None,
        settings: Optional[ReconciliationSettings] = None,
    ):
        """
        Initialize the cache.

        Args:
            store: Durable store; state is kept in memory only when omitted.
            settings: Reconciliation settings.
        """
        self.store = store
        self.settings = settings or ReconciliationSettings()
        self._timestamps: Dict[str, int] = {}
        self._pending_triggers: Deque[int] = deque()
        self._last_count: Optional[int] = None
        self._sequence_offset = 0
        self._fingerprints: List[str] = []

    @staticmethod
    def key_for(sequence: int, raw_timestamp: int) -> str:
        return f"{sequence}:{raw_timestamp}"

    @property
    def size(self) -> int:
        return len(self._timestamps)

    @property
    def pending_triggers(self) -> List[int]:
        return list(self._pending_triggers)

    @property
    def last_count(self) -> Optional[int]:
        return self._last_count

    @property
    def sequence_offset(self) -> int:
        return self._sequence_offset

    def get(self, position: int, raw_timestamp: int) -> Optional[int]:
        """Return the stabilized value for a position in the latest history."""
        return self._timestamps.get(self.key_for(self._sequence_offset + position, raw_timestamp))

    def is_plausible_epoch(self, raw_timestamp: int) -> bool:
        return raw_timestamp >= self.settings.plausible_epoch_ms

    def record_manual_trigger(self, trigger_ms: int) -> None:
        """Queue the client time of a manually triggered measurement."""
        self._pending_triggers.append(int(trigger_ms))
        logger.debug(f"Queued manual trigger at {trigger_ms} ({len(self._pending_triggers)} pending)")

    def discard_manual_trigger(self, trigger_ms: int) -> bool:
        """Remove a queued trigger whose measurement never happened."""
        try:
            self._pending_triggers.remove(int(trigger_ms))
        except ValueError:
            return False
        logger.debug(f"Discarded manual trigger at {trigger_ms}")
        return True

    def reset(self) -> None:
        """Discard every mapping and pending trigger."""
        logger.info(
            f"Resetting timestamp cache ({len(self._timestamps)} entries, "
            f"{len(self._pending_triggers)} pending triggers)"
        )
        self._timestamps.clear()
        self._pending_triggers.clear()
        self._last_count = None
        self._sequence_offset = 0
        self._fingerprints = []

    def _expire_triggers(self, now_ms: int, max_age_ms: int) -> int:
        expired = 0
        while self._pending_triggers and now_ms - self._pending_triggers[0] > max_age_ms:
            stale = self._pending_triggers.popleft()
            expired += 1
            logger.info(f"Dropping manual trigger from {stale}, no matching sample appeared")
        return expired

    def reconcile(
        self,
        measurements: Sequence[Measurement],
        now_ms: int,
        interval_ms: int,
    ) -> ReconcileResult:
        """
        Assign stabilized timestamps to a device history.

        Args:
            measurements: History in device order.
            now_ms: Current client time (epoch ms).
            interval_ms: Currently configured measurement interval (ms).
                Manual triggers older than one interval are dropped.

        Returns:
            ReconcileResult with measurements sorted by stabilized timestamp.
        """
        result = ReconcileResult()
        count = len(measurements)

        if self._last_count is not None and count < self._last_count:
            logger.info(
                f"Device history shrank from {self._last_count} to {count}, "
                f"history was cleared on the device"
            )
            self.reset()
            result.was_reset = True
        self._last_count = count

        fingerprints = [fingerprint(m) for m in measurements]
        if self._fingerprints:
            result.shift = detect_shift(self._fingerprints, fingerprints)
            if result.shift:
                logger.debug(f"Device history rotated by {result.shift} samples")
                self._sequence_offset += result.shift
        self._fingerprints = fingerprints

        result.expired_triggers = self._expire_triggers(now_ms, interval_ms)

        keys = [
            self.key_for(self._sequence_offset + position, m.raw_timestamp)
            for position, m in enumerate(measurements)
        ]
        new_positions = [
            position for position, key in enumerate(keys)
            if key not in self._timestamps
        ]

        manual_positions = set()
        if self._pending_triggers and new_positions:
            manual_positions = set(new_positions[-len(self._pending_triggers):])

        assigned: Dict[str, int] = {}
        for position, key in enumerate(keys):
            if key in self._timestamps:
                assigned[key] = self._timestamps[key]
                continue
            measurement = measurements[position]
            if position in manual_positions:
                value = self._pending_triggers.popleft()
                result.manual_matches += 1
            elif self.is_plausible_epoch(measurement.raw_timestamp):
                value = measurement.raw_timestamp
            else:
                position_from_newest = count - 1 - position
                value = now_ms - position_from_newest * interval_ms
            assigned[key] = int(value)

        # Samples no longer reported by the device are forgotten
        self._timestamps = assigned
        result.new_samples = len(new_positions)

        display = [
            DisplayMeasurement.from_measurement(m, assigned[keys[position]])
            for position, m in enumerate(measurements)
        ]
        display.sort(key=lambda d: d.stabilized_timestamp)
        result.measurements = display

        if result.new_samples:
            logger.debug(
                f"Reconciled {result.new_samples} new samples "
                f"({result.manual_matches} manual) out of {count}"
            )
        return result

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible map."""
        return {
            "version": self.STATE_VERSION,
            "timestamps": dict(self._timestamps),
            "pending_triggers": list(self._pending_triggers),
            "last_count": self._last_count,
            "sequence_offset": self._sequence_offset,
            "fingerprints": list(self._fingerprints),
        }

    def load_dict(self, data: Optional[Dict[str, Any]]) -> None:
        """
        Restore state from a serialized map.

        Unusable state is discarded rather than raising.
        """
        self._timestamps = {}
        self._pending_triggers = deque()
        self._last_count = None
        self._sequence_offset = 0
        self._fingerprints = []

        if not data:
            return
        if not isinstance(data, dict) or data.get("version") != self.STATE_VERSION:
            logger.warning("Discarding persisted timestamp cache with unknown format")
            return

        timestamps = data.get("timestamps") or {}
        if isinstance(timestamps, dict):
            for key, value in timestamps.items():
                if isinstance(value, (int, float)) and math.isfinite(value):
                    self._timestamps[str(key)] = int(value)

        triggers = data.get("pending_triggers") or []
        if isinstance(triggers, list):
            self._pending_triggers.extend(
                int(t) for t in triggers
                if isinstance(t, (int, float)) and math.isfinite(t)
            )

        last_count = data.get("last_count")
        if isinstance(last_count, int) and last_count >= 0:
            self._last_count = last_count

        offset = data.get("sequence_offset")
        if isinstance(offset, int) and offset >= 0:
            self._sequence_offset = offset

        fingerprints = data.get("fingerprints") or []
        if isinstance(fingerprints, list) and all(isinstance(f, str) for f in fingerprints):
            self._fingerprints = list(fingerprints)

        logger.info(
            f"Loaded timestamp cache: {len(self._timestamps)} entries, "
            f"{len(self._pending_triggers)} pending triggers"
        )

    async def load(self) -> None:
        """Reload state from the store."""
        if self.store is None:
            return
        self.load_dict(await self.store.get(self.settings.storage_key))

    async def save(self) -> None:
        """Persist state to the store."""
        if self.store is None:
            return
        await self.store.set(self.settings.storage_key, self.to_dict())


def interval_hours_to_ms(hours: Optional[float], default_hours: float) -> int:
    """Convert a measurement interval in hours to milliseconds."""
    if hours is None or not math.isfinite(hours) or hours <= 0:
        hours = default_hours
    return int(hours * MS_PER_HOUR)
