"""
Property-based tests for Audit Logger module.

Uses Hypothesis for property-based testing to verify dual-format output,
level filtering, sensitive data masking, and error context logging.
"""

import json
from io import StringIO

import pytest
from hypothesis import assume, given, settings
from hypothesis import strategies as st

from tracker_rules.audit_logger import LEVEL_ORDER, AuditLogger
from tracker_rules.enums import HTTPClientErrorCode, LogLevel
from tracker_rules.exceptions import HTTPClientError


# Strategies for generating valid test data

@st.composite
def component_name_strategy(draw) -> str:
    """Generate valid component names."""
    return draw(st.text(
        alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_-"),
        min_size=1,
        max_size=50,
    ))


@st.composite
def message_strategy(draw) -> str:
    """Generate valid log messages."""
    return draw(st.text(
        alphabet=st.characters(
            whitelist_categories=('L', 'N', 'P', 'S', 'Z'),
            blacklist_characters='\x00\n\r',
        ),
        min_size=1,
        max_size=200,
    ))


@st.composite
def non_sensitive_key_strategy(draw) -> str:
    """Generate keys that are NOT sensitive."""
    key = draw(st.text(
        alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz_"),
        min_size=1,
        max_size=20,
    ))
    for pattern in AuditLogger.SENSITIVE_KEYS:
        assume(pattern not in key)
    return key


@st.composite
def sensitive_key_strategy(draw) -> str:
    """Generate keys that ARE sensitive."""
    base = draw(st.sampled_from(sorted(AuditLogger.SENSITIVE_KEYS)))
    prefix = draw(st.sampled_from(['', 'my_', 'user_', 'app_']))
    suffix = draw(st.sampled_from(['', '_value', '_data', '_1']))
    return f"{prefix}{base}{suffix}"


class TestDualFormatProperty:
    """JSON and text output carry the same entry."""

    @given(
        level=st.sampled_from(list(LogLevel)),
        component=component_name_strategy(),
        message=message_strategy(),
        count=st.integers(min_value=0, max_value=1000),
    )
    @settings(max_examples=100)
    def test_both_formats_emitted(self, level: LogLevel, component: str, message: str, count: int) -> None:
        output = StringIO()
        logger = AuditLogger(output_format="both", output_stream=output, min_level=LogLevel.DEBUG)

        entry = logger.log(level, component, message, {"count": count})

        json_line, text_line = output.getvalue().rstrip("\n").split("\n")
        parsed = json.loads(json_line)
        assert parsed["level"] == level.value
        assert parsed["component"] == component
        assert parsed["message"] == message
        assert parsed["data"] == {"count": count}
        assert parsed["timestamp"] == entry.timestamp

        assert text_line.startswith(f"[{entry.timestamp}] {level.value.upper()} [{component}] ")
        assert message in text_line

    def test_text_without_data_has_no_payload(self) -> None:
        output = StringIO()
        logger = AuditLogger(output_format="text", output_stream=output)

        entry = logger.info("fetcher", "done")

        assert logger.get_text_output(entry).endswith("[fetcher] done")

    def test_invalid_format_rejected(self) -> None:
        with pytest.raises(ValueError):
            AuditLogger(output_format="xml")


class TestLevelFilterProperty:
    """Entries below the minimum level are dropped."""

    @given(min_level=st.sampled_from(list(LogLevel)), level=st.sampled_from(list(LogLevel)))
    @settings(max_examples=50)
    def test_filtering(self, min_level: LogLevel, level: LogLevel) -> None:
        output = StringIO()
        logger = AuditLogger(output_format="json", output_stream=output, min_level=min_level)

        entry = logger.log(level, "component", "message")

        if LEVEL_ORDER[level] >= LEVEL_ORDER[min_level]:
            assert entry is not None
            assert logger.entries == [entry]
        else:
            assert entry is None
            assert logger.entries == []
            assert output.getvalue() == ""

    @given(name=st.sampled_from(["debug", "INFO", "warn", "Warning", "error"]))
    @settings(max_examples=10)
    def test_from_level_name(self, name: str) -> None:
        logger = AuditLogger.from_level_name(name, output_stream=StringIO())

        expected = name.lower().replace("warning", "warn")
        assert logger.min_level == LogLevel(expected)

    def test_unknown_level_name_defaults_to_info(self) -> None:
        assert AuditLogger.from_level_name("loud", output_stream=StringIO()).min_level == LogLevel.INFO


class TestSensitiveDataMaskingProperty:
    """Values under sensitive keys are replaced at every nesting level."""

    @given(
        sensitive_key=sensitive_key_strategy(),
        sensitive_value=st.text(alphabet=st.sampled_from("QWXYZ"), min_size=5, max_size=20),
    )
    @settings(max_examples=100)
    def test_sensitive_data_masked(self, sensitive_key: str, sensitive_value: str) -> None:
        output = StringIO()
        logger = AuditLogger(output_format="json", output_stream=output)

        entry = logger.info("config", "loaded", {sensitive_key: sensitive_value})

        assert entry.data[sensitive_key] == AuditLogger.MASK_VALUE
        parsed = json.loads(output.getvalue().strip())
        assert parsed["data"][sensitive_key] == AuditLogger.MASK_VALUE
        assert sensitive_value not in output.getvalue()

    @given(key=non_sensitive_key_strategy(), value=st.text(min_size=1, max_size=50))
    @settings(max_examples=100)
    def test_non_sensitive_data_not_masked(self, key: str, value: str) -> None:
        logger = AuditLogger(output_format="json", output_stream=StringIO())

        entry = logger.info("config", "loaded", {key: value})

        assert entry.data[key] == value

    @given(sensitive_key=sensitive_key_strategy())
    @settings(max_examples=50)
    def test_nested_sensitive_data_masked(self, sensitive_key: str) -> None:
        logger = AuditLogger(output_format="json", output_stream=StringIO())

        entry = logger.info("config", "loaded", {
            "storage": {sensitive_key: "hidden", "other": "visible"},
            "items": [{sensitive_key: "hidden"}, "plain"],
        })

        assert entry.data["storage"][sensitive_key] == AuditLogger.MASK_VALUE
        assert entry.data["storage"]["other"] == "visible"
        assert entry.data["items"] == [{sensitive_key: AuditLogger.MASK_VALUE}, "plain"]


class TestErrorContextProperty:
    """log_error records the error type, message, code and request context."""

    @given(
        status=st.one_of(st.none(), st.sampled_from([400, 404, 500, 503])),
        url=st.one_of(st.none(), st.just("https://cdn.example/tds.json")),
    )
    @settings(max_examples=50)
    def test_error_context_included(self, status, url) -> None:
        logger = AuditLogger(output_format="json", output_stream=StringIO())
        error = HTTPClientError(HTTPClientErrorCode.STATUS_CODE.value, "unexpected status")

        entry = logger.log_error(
            "fetcher",
            "fetch failed",
            error=error,
            request_url=url,
            response_status_code=status,
            additional_data={"attempt": 2},
        )

        assert entry.level == LogLevel.ERROR
        assert entry.data["error_type"] == "HTTPClientError"
        assert entry.data["error_message"] == str(error)
        assert entry.data["error_code"] == error.code
        assert entry.data["attempt"] == 2
        assert ("request_url" in entry.data) == (url is not None)
        assert ("response_status_code" in entry.data) == (status is not None)

    def test_plain_exception_has_no_code(self) -> None:
        logger = AuditLogger(output_format="json", output_stream=StringIO())

        entry = logger.log_error("fetcher", "boom", error=RuntimeError("x"))

        assert entry.data["error_type"] == "RuntimeError"
        assert "error_code" not in entry.data

    @given(status=st.sampled_from([403, 429, 500, 503]))
    @settings(max_examples=10)
    def test_status_code_detail_fills_response_status(self, status: int) -> None:
        logger = AuditLogger(output_format="json", output_stream=StringIO())
        error = HTTPClientError("status_code", "unexpected status", {"status_code": status})

        entry = logger.log_error("fetcher", "fetch failed", error=error)

        assert entry.data["error_details"] == {"status_code": status}
        assert entry.data["response_status_code"] == status
