"""
Measurement-related test data factories.
"""
import factory

from nanny_engine.domain.entities import DisplayMeasurement, Measurement

BASE_EPOCH_MS = 1_700_000_000_000
HOUR_MS = 3600 * 1000


class MeasurementFactory(factory.Factory):
    """
    Factory for decoded history samples.

    Usage:
        measurement = MeasurementFactory()
        measurement = MeasurementFactory(raw_timestamp=0, humidity=None)
    """

    class Meta:
        model = Measurement

    raw_timestamp = factory.Sequence(lambda n: BASE_EPOCH_MS + n * HOUR_MS)
    temperature = 24.0
    humidity = 60.0
    pump_activated = False
    fan_activated = False
    extractor_activated = False
    stage_name = "Vegetative"
    event = None


class DisplayMeasurementFactory(MeasurementFactory):
    """Factory for reconciled samples; stabilized timestamp follows the raw one."""

    class Meta:
        model = DisplayMeasurement

    stabilized_timestamp = factory.LazyAttribute(lambda o: o.raw_timestamp)


class MeasurementPayloadFactory(factory.Factory):
    """
    Factory for /loadMeasurement entries as the firmware emits them.

    Usage:
        entry = MeasurementPayloadFactory(epoch_ms=0)
    """

    class Meta:
        model = dict

    epoch_ms = factory.Sequence(lambda n: BASE_EPOCH_MS + n * HOUR_MS)
    temperature = 24.5
    humidity = 58.0
    pumpActivated = False
    fanActivated = False
    extractorActivated = False
    stage = "Vegetative"
