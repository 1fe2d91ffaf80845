from dataclasses import replace

import pytest

from conftest import SAMPLE_CSV
from usageflow.clients import PipelineClients
from usageflow.errors import InvalidTriggerShape, MalformedInputError, MissingConfigurationError, NotificationPublishError
from usageflow.io_landing import make_trigger_event
from usageflow.io_notify import InMemoryNotifier, Notifier
from usageflow.io_stores import InMemorySummaryTable, LocalObjectStore
from usageflow.io_upsert import UpsertStatus, decode_item
from usageflow.pipelines import calculate_notify, run_local, transform_to_json


def _land_and_transform(clients, settings, text, key="upload.csv"):
    clients.object_store.put("raw-usage", key, text.encode("utf-8"), content_type="text/csv")
    return transform_to_json.handle_event(make_trigger_event("raw-usage", key), clients, settings)


def test_two_day_batch_end_to_end(clients, settings, sample_csv_text):
    arrivals = run_local.TransformedArrivals(clients, settings)

    keys = _land_and_transform(clients, settings, sample_csv_text)
    assert [k.object_key for k in keys] == ["CUST-001/LOC-001/2024-01/energy-data.json"]
    assert [r.status for r in arrivals.drain()] == [UpsertStatus.NEW]

    stored = decode_item(clients.summary_table.get_item("CUST-001", "2024-01"))
    assert stored["summary"]["totalKwh"] == 96
    assert stored["summary"]["averages"]["daily"] == 48
    assert stored["recordCount"] == 48
    assert stored["city"] == "Springfield"

    # Same input again: re-triggered, but nothing written or announced.
    _land_and_transform(clients, settings, sample_csv_text)
    assert [r.status for r in arrivals.drain()] == [UpsertStatus.SKIPPED]
    assert clients.summary_table.put_count == 1
    assert len(clients.notifier.published) == 1

    # One reading changes: exactly one more write and notification.
    changed = sample_csv_text.replace("2024-01-01 00:00,1.5,", "2024-01-01 00:00,3.5,", 1)
    _land_and_transform(clients, settings, changed)
    assert [r.status for r in arrivals.drain()] == [UpsertStatus.UPDATED]
    assert clients.summary_table.put_count == 2
    assert len(clients.notifier.published) == 2
    assert clients.notifier.published[-1][1]["status"] == "UPDATED"
    assert clients.notifier.published[-1][1]["summary"]["totalKwh"] == 98


def test_stage_two_runs_after_stage_one_returns(clients, settings, sample_csv_text):
    arrivals = run_local.TransformedArrivals(clients, settings)

    _land_and_transform(clients, settings, sample_csv_text)

    assert arrivals.pending == [("transformed-json", "CUST-001/LOC-001/2024-01/energy-data.json")]
    assert clients.summary_table.get_item("CUST-001", "2024-01") is None

    arrivals.drain()
    assert arrivals.pending == []
    assert clients.summary_table.get_item("CUST-001", "2024-01") is not None


def test_stage_two_failure_is_logged_as_calculate(clients, settings, caplog):
    arrivals = run_local.TransformedArrivals(clients, settings)
    clients.object_store.put("transformed-json", "bad/energy-data.json", b"[\n")

    with pytest.raises(MalformedInputError):
        arrivals.drain()

    messages = [r.getMessage() for r in caplog.records]
    assert any(m.startswith("[CALCULATE]") for m in messages)
    assert not any(m.startswith("[TRANSFORM]") for m in messages)


def test_calculate_requires_table_and_topic(clients, settings):
    with pytest.raises(MissingConfigurationError):
        calculate_notify.handle_event(make_trigger_event("b", "k"), clients, replace(settings, table_name=""))
    with pytest.raises(MissingConfigurationError):
        calculate_notify.handle_event(make_trigger_event("b", "k"), clients, replace(settings, topic_id=""))


def test_transform_requires_bucket(clients, settings):
    with pytest.raises(MissingConfigurationError):
        transform_to_json.handle_event(make_trigger_event("raw", "k"), clients, replace(settings, transformed_bucket=""))


def test_transform_rejects_bad_event(clients, settings):
    with pytest.raises(InvalidTriggerShape):
        transform_to_json.handle_event({"Records": []}, clients, settings)


class FailingNotifier(Notifier):
    def publish(self, subject, message):
        raise NotificationPublishError("sink unavailable")


def test_publish_failure_keeps_written_summary(clients, settings, sample_csv_text):
    failing = PipelineClients(clients.object_store, clients.summary_table, FailingNotifier())
    arrivals = run_local.TransformedArrivals(failing, settings)
    _land_and_transform(failing, settings, sample_csv_text)

    with pytest.raises(NotificationPublishError):
        arrivals.drain()

    assert clients.summary_table.get_item("CUST-001", "2024-01") is not None


def test_run_local_repeat_on_disk(tmp_path, settings):
    clients = PipelineClients(
        object_store=LocalObjectStore(tmp_path / "buckets"),
        summary_table=InMemorySummaryTable(),
        notifier=InMemoryNotifier(),
    )

    results = run_local.run(SAMPLE_CSV, clients, settings, "raw-usage", repeat=2)

    assert [r.status for r in results] == [UpsertStatus.NEW, UpsertStatus.SKIPPED]
    assert (tmp_path / "buckets" / "transformed-json" / "CUST-001" / "LOC-001" / "2024-01" / "energy-data.json").exists()


def test_local_defaults_fill_only_missing(settings):
    filled = run_local.with_local_defaults(replace(settings, topic_id=""))
    assert filled.topic_id == run_local.LOCAL_DEFAULTS["topic_id"]
    assert filled.table_name == settings.table_name
