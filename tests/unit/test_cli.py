"""
Unit tests for the command-line entry point.

Every invocation runs against a fresh in-memory store.
"""

import json

import pytest
import yaml

from recordsync.cli import build_parser, main


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("RECORDSYNC_CONFIG", "RECORDSYNC_STORE", "VAULT_ENABLED", "METRICS_PORT", "LOG_LEVEL", "JSON_LOGGING"):
        monkeypatch.delenv(name, raising=False)


def run(capsys, *argv):
    code = main(["--store", "memory", *argv])
    return code, capsys.readouterr().out


class TestParser:
    """Test argument parsing."""

    def test_sync_arguments(self):
        args = build_parser().parse_args(["sync", "--domain", "quotes", "--dry-run"])

        assert args.command == "sync"
        assert args.domain == "quotes"
        assert args.dry_run is True

    def test_unknown_domain_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["sync", "--domain", "orders"])

    def test_init_db_domains_repeat(self):
        args = build_parser().parse_args(["init-db", "--domain", "quotes", "--domain", "invoices"])

        assert args.domain == ["quotes", "invoices"]


class TestMain:
    """Test command execution and exit codes."""

    def test_no_command(self, capsys):
        assert main([]) == 1

    def test_preview(self, capsys, invoice_csv):
        code, out = run(capsys, "preview", str(invoice_csv))

        assert code == 0
        result = json.loads(out)
        assert result["domain"] == "invoices"
        assert result["records"] == 3

    def test_upload(self, capsys, invoice_csv):
        code, out = run(capsys, "upload", str(invoice_csv))

        assert code == 0
        assert json.loads(out)["sync"]["inserted"] == 3

    def test_stage_payload_file(self, capsys, tmp_path):
        payload = tmp_path / "quotes.json"
        payload.write_text(json.dumps([{"quote": "Q-1", "name": "Acme"}]))

        code, out = run(capsys, "stage", "--domain", "quotes", "--payload", str(payload))

        assert code == 0
        assert json.loads(out) == {"domain": "quotes", "staged": 1}

    def test_unreadable_payload(self, capsys, tmp_path):
        code, out = run(capsys, "stage", "--domain", "quotes", "--payload", str(tmp_path / "missing.json"))

        assert code == 1
        assert "Cannot read staging payload" in json.loads(out)["error"]

    def test_wrong_prefix_fails(self, capsys, invoice_csv):
        code, out = run(capsys, "upload", str(invoice_csv), "--domain", "quotes")

        assert code == 1
        assert 'starting with "quote"' in json.loads(out)["error"]

    def test_annotate_missing_key(self, capsys):
        code, out = run(capsys, "annotate", "--domain", "invoices", "--key", "404", "--note", "hi")

        assert code == 1
        assert "404" in json.loads(out)["error"]

    def test_sync_on_empty_store(self, capsys):
        code, out = run(capsys, "sync", "--domain", "invoices")

        assert code == 0
        assert json.loads(out) == {"domain": "invoices", "deleted": 0, "inserted": 0, "dry_run": False}

    def test_export_prints_header(self, capsys):
        code, out = run(capsys, "export", "--domain", "quotes")

        assert code == 0
        assert out == '"Quote","Name","Total Amount","Note","Action Date"\n'

    def test_alerts_to_stdout(self, capsys):
        code, out = run(capsys, "alerts")

        assert code == 0
        assert len(yaml.safe_load(out)["groups"]) == 2

    def test_alerts_to_file(self, capsys, tmp_path):
        output = tmp_path / "rules.yml"

        code, out = run(capsys, "alerts", "--output", str(output))

        assert code == 0
        assert json.loads(out)["total_alerts"] == 6
        assert output.exists()

    def test_bad_config(self, capsys, tmp_path):
        assert main(["--config", str(tmp_path / "nope.yml"), "report", "--domain", "quotes"]) == 1
