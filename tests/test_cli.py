"""Tests for the command line interface."""

import json

import pytest
from typer.testing import CliRunner

from clinical_gateway import __version__
from clinical_gateway.cli import app, normalize_payload

runner = CliRunner()


class TestNormalizePayload:
    """Tests for normalize_payload."""

    def test_single_record(self):
        records = normalize_payload("conditions", {"condition_id": "c1"})
        assert len(records) == 1
        assert records[0]["conditionId"] == "c1"
        assert records[0]["id"] == "c1"

    def test_list_of_records(self):
        records = normalize_payload("conditions", [{"condition_id": "c1"}, {"conditionId": "c2"}])
        assert [r["conditionId"] for r in records] == ["c1", "c2"]

    def test_platform_page(self):
        records = normalize_payload("conditions", {"data": [{"properties": {"condition_id": "c1"}}]})
        assert records[0]["conditionId"] == "c1"

    def test_empty_page(self):
        assert normalize_payload("conditions", {"data": []}) == []

    def test_unknown_type(self):
        with pytest.raises(KeyError):
            normalize_payload("prescriptions", {})


class TestCommands:
    """Tests for CLI commands."""

    def test_normalize_command(self, tmp_path):
        source = tmp_path / "export.json"
        source.write_text(json.dumps({"data": [{"condition_id": "c1"}]}), encoding="utf-8")

        result = runner.invoke(app, ["normalize", "conditions", str(source)])

        assert result.exit_code == 0
        assert '"conditionId": "c1"' in result.stdout

    def test_normalize_invalid_json(self, tmp_path):
        source = tmp_path / "broken.json"
        source.write_text("{not json", encoding="utf-8")

        result = runner.invoke(app, ["normalize", "conditions", str(source)])

        assert result.exit_code == 1
        assert "Invalid JSON" in result.stdout

    def test_unknown_object_type(self, tmp_path):
        source = tmp_path / "export.json"
        source.write_text("{}", encoding="utf-8")

        result = runner.invoke(app, ["normalize", "prescriptions", str(source)])

        assert result.exit_code == 1
        assert "Unknown object type" in result.stdout

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout
