from datetime import datetime, timedelta, timezone

import pytest

from letterbox_sim import build_uplink, sensor_for

from letterbox.bitmap import BitmapSeries, series_path
from letterbox.codec import level_slot
from letterbox.errors import InvalidReading
from letterbox.eventlog import EventLog
from letterbox.layout import BOX_STATUS, LAYOUTS, RECEIVED_STATUS, Color
from letterbox.pipeline import UplinkProcessor
from letterbox.status import BoxStatus

T0 = datetime(2024, 3, 1, 7, 0, tzinfo=timezone.utc)


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)


class BrokenNotifier:
    def notify(self, event):
        raise RuntimeError("smtp down")


def _uplink(status, counter, sensor=None, device_id="A1", minutes=0, **kwargs):
    when = T0 + timedelta(minutes=minutes)
    return build_uplink(
        device_id, status, counter, sensor if sensor is not None else sensor_for(status), now=when, **kwargs
    )


def _at(minutes):
    return T0 + timedelta(minutes=minutes)


def _load(datadir, series_type, device_id="A1"):
    return BitmapSeries.load(series_path(datadir, device_id, series_type), LAYOUTS[series_type])


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def processor(tmp_path, notifier):
    return UplinkProcessor(tmp_path, aliases={"A1": "Front door"}, notifiers=[notifier])


def test_full_empty_full_produces_edges(tmp_path, processor, notifier):
    first = processor.process(_uplink("full", 1), _at(0))
    second = processor.process(_uplink("empty", 2), _at(15))
    third = processor.process(_uplink("full", 3), _at(30))

    assert [r.status for r in (first, second, third)] == [BoxStatus.FULL, BoxStatus.EMPTIED, BoxStatus.FILLED]
    assert [r.is_edge for r in (first, second, third)] == [False, True, True]
    assert [e.status for e in notifier.events] == [BoxStatus.EMPTIED, BoxStatus.FILLED]
    assert notifier.events[0].alias == "Front door"
    assert notifier.events[0].received_at == _at(15)

    level = _load(tmp_path, BOX_STATUS)
    base = level_slot(T0)
    assert [level.color_at(base + k) for k in range(3)] == [Color.FULL, Color.EMPTIED, Color.FILLED]
    assert level.read_cursor() == base + 2
    assert third.level_cursor == base + 2
    assert third.received_cursor == 3


def test_every_uplink_is_logged(tmp_path, processor):
    processor.process(_uplink("full", 1), _at(0))
    processor.process(_uplink("full", 2), _at(5))

    entries = list(EventLog(tmp_path).entries("A1"))

    assert [e.content["uplink_message"]["f_cnt"] for e in entries] == [1, 2]
    assert entries[0].received.startswith("2024-03-01T07:00:00")


def test_result_payload(processor):
    result = processor.process(_uplink("full", 4), _at(0))
    assert result.to_payload() == {
        "ok": True,
        "device_id": "A1",
        "status": "full",
        "edge": False,
        "counter": 4,
    }


@pytest.mark.parametrize(
    "content",
    [
        {"uplink_message": {"f_cnt": 1, "decoded_payload": {"box": "full", "sensor": 500}}},
        {"end_device_ids": {"device_id": "A1"}, "uplink_message": {"f_cnt": 1, "decoded_payload": {"sensor": 500}}},
        {"end_device_ids": {"device_id": "A1"}, "uplink_message": {"decoded_payload": {"box": "full", "sensor": -3}}},
        {"end_device_ids": {"device_id": "A1"}, "uplink_message": {"decoded_payload": {"box": "open", "sensor": 3}}},
        {"end_device_ids": {"device_id": "../etc"}, "uplink_message": {"decoded_payload": {"box": "full", "sensor": 3}}},
        {"end_device_ids": {"device_id": "A1"}, "uplink_message": {"f_cnt": 2**32, "decoded_payload": {"box": "full", "sensor": 3}}},
        ["not", "an", "object"],
    ],
)
def test_invalid_uplink_writes_nothing(tmp_path, processor, notifier, content):
    with pytest.raises(InvalidReading):
        processor.process(content, _at(0))

    assert list(tmp_path.iterdir()) == []
    assert notifier.events == []


def test_threshold_override_reclassifies_reading(tmp_path, notifier):
    processor = UplinkProcessor(tmp_path, thresholds={"A1": 30}, notifiers=[notifier])

    processor.process(_uplink("empty", 1, sensor=10), _at(0))
    result = processor.process(_uplink("empty", 2, sensor=300), _at(15))

    assert result.status is BoxStatus.FILLED
    assert result.is_edge is True
    assert [e.status for e in notifier.events] == [BoxStatus.FILLED]


def test_counter_gaps_reach_heartbeat_series(tmp_path, processor):
    processor.process(_uplink("full", 10), _at(0))
    processor.process(_uplink("full", 14), _at(15))

    heartbeat = _load(tmp_path, RECEIVED_STATUS)
    assert heartbeat.read_cursor() == 14
    assert [heartbeat.color_at(c) for c in range(10, 15)] == [
        Color.RECEIVED_OK,
        Color.RECEIVED_GAP,
        Color.RECEIVED_GAP,
        Color.RECEIVED_GAP,
        Color.RECEIVED_OK,
    ]


def test_uplink_without_counter_only_updates_level(tmp_path, processor):
    content = _uplink("full", 1)
    del content["uplink_message"]["f_cnt"]

    result = processor.process(content, _at(0))

    assert result.counter is None
    assert result.received_cursor is None
    assert _load(tmp_path, RECEIVED_STATUS).is_initialized is False
    assert _load(tmp_path, BOX_STATUS).is_initialized is True


def test_legacy_v2_uplink(tmp_path, processor):
    result = processor.process(_uplink("empty", 8, v2=True), _at(0))
    assert result.device_id == "A1"
    assert result.status is BoxStatus.EMPTY
    assert _load(tmp_path, RECEIVED_STATUS).read_cursor() == 8


def test_first_uplink_backfills_from_existing_logs(tmp_path, processor):
    log = EventLog(tmp_path)
    log.append("A1", _at(-60), _uplink("full", 1, minutes=-60))
    log.append("A1", _at(-30), _uplink("full", 2, minutes=-30))

    result = processor.process(_uplink("full", 3), _at(0))

    assert result.backfilled == {BOX_STATUS: True, RECEIVED_STATUS: True}
    heartbeat = _load(tmp_path, RECEIVED_STATUS)
    assert [heartbeat.color_at(c) for c in (1, 2, 3)] == [Color.RECEIVED_OK] * 3
    level = _load(tmp_path, BOX_STATUS)
    base = level_slot(_at(-60))
    assert all(level.color_at(base + k) is Color.FULL for k in range(5))
    assert len(list(log.entries("A1"))) == 3


def test_failing_notifier_does_not_break_ingest(tmp_path, notifier):
    processor = UplinkProcessor(tmp_path, notifiers=[BrokenNotifier(), notifier])

    processor.process(_uplink("empty", 1), _at(0))
    result = processor.process(_uplink("full", 2), _at(15))

    assert result.status is BoxStatus.FILLED
    assert [e.status for e in notifier.events] == [BoxStatus.FILLED]


def test_clock_supplies_receipt_time(tmp_path):
    processor = UplinkProcessor(tmp_path, clock=lambda: _at(45))
    result = processor.process(_uplink("full", 1))
    assert result.level_cursor == level_slot(_at(45))


def test_uplink_without_counter_does_not_block_later_uplinks(tmp_path, processor):
    first = _uplink("full", 0)
    del first["uplink_message"]["f_cnt"]
    processor.process(first, _at(0))

    results = [processor.process(_uplink("full", counter), _at(15 * counter)) for counter in (1, 2, 3)]

    assert [r.received_cursor for r in results] == [1, 2, 3]
    assert results[0].backfilled == {BOX_STATUS: False, RECEIVED_STATUS: False}
    heartbeat = _load(tmp_path, RECEIVED_STATUS)
    assert [heartbeat.color_at(c) for c in (1, 2, 3)] == [Color.RECEIVED_OK] * 3
    assert len(list(EventLog(tmp_path).entries("A1"))) == 4


@pytest.mark.parametrize(
    "field, value",
    [("sensor", True), ("sensor", 25.0), ("sensor", 2.5), ("threshold", False), ("threshold", 30.0)],
)
def test_payload_numbers_must_be_whole(tmp_path, processor, field, value):
    content = _uplink("full", 1)
    content["uplink_message"]["decoded_payload"][field] = value

    with pytest.raises(InvalidReading):
        processor.process(content, _at(0))
    assert list(tmp_path.iterdir()) == []


@pytest.mark.parametrize("value", [True, 7.0])
def test_frame_counter_must_be_whole(tmp_path, processor, value):
    content = _uplink("full", 1)
    content["uplink_message"]["f_cnt"] = value
    with pytest.raises(InvalidReading):
        processor.process(content, _at(0))

    legacy = _uplink("full", 1, v2=True)
    legacy["counter"] = value
    with pytest.raises(InvalidReading):
        processor.process(legacy, _at(0))


def test_digit_strings_are_accepted(processor):
    content = _uplink("full", 1)
    content["uplink_message"]["decoded_payload"]["sensor"] = "25"
    content["uplink_message"]["f_cnt"] = "9"

    result = processor.process(content, _at(0))

    assert result.status is BoxStatus.FULL
    assert result.counter == 9
