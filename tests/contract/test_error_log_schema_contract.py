from __future__ import annotations

import json

from invoice_tracker.cli.__main__ import main

EXPECTED_KEYS = {"timestamp", "file", "row", "error_type", "message"}


def test_error_log_lines_have_fixed_keys(write_config, temp_workdir):
    (temp_workdir / "bad.xlsx").write_bytes(b"garbage")
    main(["upload", "bad.xlsx"])

    logs = sorted((temp_workdir / "logs").glob("errors-*.log"))
    assert len(logs) == 1
    lines = logs[0].read_text(encoding="utf-8").splitlines()
    assert lines
    for line in lines:
        record = json.loads(line)
        assert set(record) == EXPECTED_KEYS
        assert isinstance(record["row"], int)
        assert record["timestamp"].endswith("Z")
        assert record["error_type"].isupper()
    assert json.loads(lines[0])["file"] == "bad.xlsx"
    assert json.loads(lines[0])["row"] == -1


def test_no_error_log_when_nothing_failed(write_config, temp_workdir):
    main(["address", "list"])
    assert list((temp_workdir / "logs").glob("errors-*.log")) == []
