"""Test the logfmt formatter."""

import logging
import sys

from s3simple.observability.logfmt import LogfmtFormatter


def make_record(msg: str, *args: object, **extra: object) -> logging.LogRecord:
    """Build a log record with extra fields."""
    record = logging.LogRecord("s3simple.bucket", logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_format_fixed_fields() -> None:
    """Test the fixed keys and their order."""
    line = LogfmtFormatter().format(make_record("Uploading part %d", 3))
    assert line.startswith("ts=")
    assert " level=info logger=s3simple.bucket " in line
    assert line.endswith('msg="Uploading part 3"')


def test_format_extra_fields() -> None:
    """Test that extra fields follow the fixed ones and are quoted when needed."""
    line = LogfmtFormatter().format(make_record("done", key="a b", size=5, empty=""))
    assert line.endswith('msg=done key="a b" size=5 empty=""')


def test_format_escapes_quotes_and_newlines() -> None:
    """Test escaping inside quoted values."""
    line = LogfmtFormatter().format(make_record('say "hi"\nbye'))
    assert line.endswith('msg="say \\"hi\\"\\nbye"')


def test_format_exception() -> None:
    """Test that the traceback is appended as the exc field."""
    try:
        msg = "boom"
        raise RuntimeError(msg)
    except RuntimeError:
        record = logging.LogRecord("s3simple", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
    line = LogfmtFormatter().format(record)
    assert " exc=" in line
    assert "RuntimeError: boom" in line
