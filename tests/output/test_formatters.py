"""Tests for the format_result dispatcher and OutputSettings."""

import json

from faultpath.output.formatters import OutputSettings, format_result
from faultpath.services.result import ServiceError, ServiceResult


def _ok(op: str = "test", **data: object) -> ServiceResult:
    return ServiceResult(ok=True, op=op, data=dict(data))


def _err(op: str = "test", msg: str = "fail") -> ServiceResult:
    return ServiceResult(ok=False, op=op, error=ServiceError(code="NOT_FOUND", message=msg))


class TestOutputSettings:
    def test_defaults(self) -> None:
        s = OutputSettings()
        assert s.json_output is False
        assert s.quiet is False
        assert s.verbose is False


class TestFormatResult:
    def test_json_mode(self) -> None:
        output = format_result(_ok("get_node", node={"id": "n1"}), settings=OutputSettings(json_output=True))
        data = json.loads(output)
        assert data["ok"] is True
        assert data["data"]["node"]["id"] == "n1"

    def test_json_mode_error(self) -> None:
        data = json.loads(format_result(_err("get_node", "Bad"), settings=OutputSettings(json_output=True)))
        assert data["error"] == {"code": "NOT_FOUND", "message": "Bad", "detail": {}}

    def test_json_beats_quiet(self) -> None:
        output = format_result(_ok(), settings=OutputSettings(json_output=True, quiet=True))
        assert json.loads(output)["op"] == "test"

    def test_quiet(self) -> None:
        output = format_result(_ok("get_node", node={"id": "n1"}), settings=OutputSettings(quiet=True))
        assert output == "n1"

    def test_default_is_rich(self) -> None:
        assert format_result(_ok("get_node")).startswith("OK")
