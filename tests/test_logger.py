import io
import json
import logging
import uuid

from techcare.logger import JSONFormatter, StructuredLogger


def _record(**extra):
    record = logging.makeLogRecord(
        {"name": "techcare.test", "levelname": "INFO", "msg": "hello %s", "args": ("world",)}
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_core_fields(self):
        """Should render timestamp, level, logger name and message."""
        entry = json.loads(JSONFormatter().format(_record()))
        assert entry["level"] == "INFO"
        assert entry["logger_name"] == "techcare.test"
        assert entry["message"] == "hello world"
        assert "extra" not in entry and "event" not in entry

    def test_event_is_top_level(self):
        """Should lift the event tag and keep other extras nested."""
        entry = json.loads(JSONFormatter().format(_record(event="LOGIN", attempts=2, who=object())))
        assert entry["event"] == "LOGIN"
        assert entry["extra"]["attempts"] == 2
        assert isinstance(entry["extra"]["who"], str)


class TestStructuredLogger:
    def test_writes_json_to_stream(self, tmp_path, config):
        """Should emit one JSON line per call."""
        stream = io.StringIO()
        log = StructuredLogger(
            name=f"techcare.test.{uuid.uuid4().hex[:8]}",
            stream=stream,
            log_file=str(tmp_path / "out.log"),
            config=config,
        )
        log.info("Profile loaded.", extra={"event": "PROFILE_LOADED"})
        line = stream.getvalue().strip()
        assert json.loads(line)["event"] == "PROFILE_LOADED"
        assert (tmp_path / "out.log").read_text(encoding="utf-8").strip() == line

    def test_same_name_does_not_duplicate_handlers(self, tmp_path, config):
        """Should attach handlers once per logger name."""
        name = f"techcare.test.{uuid.uuid4().hex[:8]}"
        first = StructuredLogger(name=name, log_file=str(tmp_path / "a.log"), config=config)
        StructuredLogger(name=name, log_file=str(tmp_path / "a.log"), config=config)
        assert len(first.logger.handlers) == 2
