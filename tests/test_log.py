from __future__ import annotations

import json

from release_sync.log import configure_logging, get_logger, run_context


def test_logger_names_are_prefixed_once():
    configure_logging("INFO")
    assert get_logger("release_sync.diff").name == "release_sync.diff"
    assert get_logger("diff").name == "release_sync.diff"


def test_json_logs_carry_run_context(capsys):
    configure_logging("INFO", json_logs=True)
    logger = get_logger("tests.log")

    with run_context(repo="acme/widget"):
        logger.info("Downloaded file", path="v1/a.bin")
    logger.debug("Filtered out")

    lines = capsys.readouterr().err.strip().splitlines()
    record = json.loads(lines[-1])
    assert record["event"] == "Downloaded file"
    assert record["repo"] == "acme/widget"
    assert record["path"] == "v1/a.bin"
    assert record["logger"] == "release_sync.tests.log"
    assert record["level"] == "info"
