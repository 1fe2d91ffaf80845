import json

import pytest

from conftest import HEADER, SAMPLE_CSV, csv_row
from usageflow.pipelines import calculate_notify, run_local, transform_to_json

BATCH_KEY = "CUST-001/LOC-001/2024-01/energy-data.json"


@pytest.fixture
def cli_env(monkeypatch, tmp_path):
    for name in ["REDIS_URL", "NOTIFY_WEBHOOK_URL", "CALCULATED_ENERGY_TABLE", "SNS_TOPIC_CALCULATOR_SUM"]:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.setenv("USAGEFLOW_ENV_FILE", str(tmp_path / "missing.env"))
    monkeypatch.setenv("USAGEFLOW_STORAGE_ROOT", str(tmp_path / "buckets"))
    monkeypatch.setenv("TRANSFORMED_JSON_BUCKET", "transformed-json")
    monkeypatch.setenv("CALCULATED_ENERGY_TABLE_NAME", "calculated-energy")
    monkeypatch.setenv("SNS_TOPIC_CALCULATOR_SUMMARY", "energy-usage-summary")
    return tmp_path / "buckets"


def _statuses(out):
    return [json.loads(line)["status"] for line in out.splitlines() if line.startswith("{")]


def test_transform_cli_writes_batch(cli_env, capsys):
    assert transform_to_json.main([str(SAMPLE_CSV)]) == 0

    assert (cli_env / "transformed-json" / BATCH_KEY).exists()
    assert f"transformed-json/{BATCH_KEY}" in capsys.readouterr().out


def test_calculate_cli_is_idempotent_across_runs(cli_env, capsys):
    assert transform_to_json.main([str(SAMPLE_CSV)]) == 0
    capsys.readouterr()

    assert calculate_notify.main([BATCH_KEY]) == 0
    first = capsys.readouterr().out
    assert [json.loads(line) for line in first.splitlines() if line.startswith("{")] == [
        {"customerId": "CUST-001", "month": "2024-01", "status": "NEW"}
    ]

    assert calculate_notify.main([BATCH_KEY]) == 0
    assert _statuses(capsys.readouterr().out) == ["SKIPPED"]


def test_calculate_cli_missing_object_fails(cli_env, capsys):
    assert calculate_notify.main(["CUST-404/LOC-001/2024-01/energy-data.json"]) == 1
    assert "Calculation failed" in capsys.readouterr().err


def test_transform_cli_without_bucket_fails(cli_env, monkeypatch, capsys):
    monkeypatch.delenv("TRANSFORMED_JSON_BUCKET")

    assert transform_to_json.main([str(SAMPLE_CSV)]) == 1
    assert "transformed_bucket" in capsys.readouterr().err


def test_transform_cli_malformed_csv_fails(cli_env, tmp_path, capsys):
    bad = tmp_path / "bad.csv"
    bad.write_text("\n".join([HEADER, csv_row("2024-01-01 00:00", "n/a")]), encoding="utf-8")

    assert transform_to_json.main([str(bad)]) == 1
    assert "Transform failed" in capsys.readouterr().err
    assert not (cli_env / "transformed-json").exists()


def test_run_local_cli_repeat(cli_env, capsys):
    assert run_local.main([str(SAMPLE_CSV), "--repeat", "2"]) == 0

    out = capsys.readouterr().out
    assert "[1] CUST-001 2024-01: NEW" in out
    assert "[2] CUST-001 2024-01: SKIPPED" in out
    assert "totalKwh: 96.00" in out


def test_run_local_cli_second_invocation_skips(cli_env, capsys):
    assert run_local.main([str(SAMPLE_CSV)]) == 0
    capsys.readouterr()

    assert run_local.main([str(SAMPLE_CSV)]) == 0
    assert "[1] CUST-001 2024-01: SKIPPED" in capsys.readouterr().out
