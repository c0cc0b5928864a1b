import json
import logging

import pytest

from gym_workers.logging import JSONFormatter, TextFormatter, setup_logging


def _record(**extra):
    record = logging.LogRecord("gym_workers.test", logging.WARNING, __file__, 1, "hello %s", ("gym",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_fields():
    entry = json.loads(JSONFormatter().format(_record()))
    assert entry["level"] == "WARNING"
    assert entry["logger"] == "gym_workers.test"
    assert entry["message"] == "hello gym"
    assert "exception" not in entry


def test_json_formatter_includes_gym_extras_only():
    entry = json.loads(JSONFormatter().format(_record(gym_member_id="m1", other="x")))
    assert entry["gym_member_id"] == "m1"
    assert "other" not in entry


def test_json_formatter_exception():
    try:
        raise RuntimeError("kaput")
    except RuntimeError:
        import sys

        record = logging.LogRecord("t", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
    entry = json.loads(JSONFormatter().format(record))
    assert "RuntimeError: kaput" in entry["exception"]


def test_text_formatter_appends_context():
    line = TextFormatter().format(_record(gym_member_id="m1", gym_job_id=7))
    assert line.endswith("hello gym [member_id=m1 job_id=7]")


def test_text_formatter_without_context():
    assert TextFormatter().format(_record()).endswith("gym_workers.test: hello gym")


def test_unknown_format_rejected():
    with pytest.raises(ValueError, match="Unknown log format 'xml'"):
        setup_logging("xml")
