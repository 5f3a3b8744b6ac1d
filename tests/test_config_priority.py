import pytest
from typer.testing import CliRunner

from ledger_import.cli import app
from ledger_import.config import load_settings

runner = CliRunner()


def test_priority_cli_over_env_over_config(tmp_path, monkeypatch):
    cfg = tmp_path / "config.yml"
    cfg.write_text(
        "\n".join([
            'base_url: "https://cfg.local"',
            'api_key: "cfg-key"',
        ]),
        encoding="utf-8",
    )
    csv_path = tmp_path / "in.csv"
    csv_path.write_text(
        "Source,SourceType,Amount0,CoA0,Description0,Direction0,Amount1,CoA1,Description1,Direction1\n"
        "Recharge,Income,1.00,3-A,a,Debit,1.00,3-B,b,Credit\n",
        encoding="utf-8",
    )

    # ENV overrides config
    monkeypatch.setenv("LEDGER_IMPORT_BASE_URL", "https://env.local")
    monkeypatch.setenv("LEDGER_IMPORT_API_KEY", "env-key")

    # CLI overrides env
    result = runner.invoke(
        app,
        [
            "--config",
            str(cfg),
            "--log-dir",
            str(tmp_path / "logs"),
            "--report-dir",
            str(tmp_path / "reports"),
            "--base-url",
            "https://cli.local",
            "validate",
            "--csv",
            str(csv_path),
        ],
    )
    assert result.exit_code == 0
    assert "base_url=https://cli.local" in result.stdout
    assert "api_key=***" in result.stdout
    assert "env-key" not in result.stdout
    assert "sources=['config', 'env', 'cli']" in result.stdout


def test_env_values_are_coerced(tmp_path, monkeypatch):
    cfg = tmp_path / "config.yml"
    cfg.write_text("retries: 1\nvalidate_coa: false\ntimeout_seconds: 5\n", encoding="utf-8")
    monkeypatch.setenv("LEDGER_IMPORT_RETRIES", "4")
    monkeypatch.setenv("LEDGER_IMPORT_VALIDATE_COA", "yes")

    loaded = load_settings(str(cfg), {"retries": None})

    assert loaded.settings.retries == 4
    assert loaded.settings.validate_coa is True
    assert loaded.settings.timeout_seconds == 5.0
    assert loaded.sources_used == ["config", "env"]


def test_defaults_without_sources(monkeypatch):
    monkeypatch.delenv("LEDGER_IMPORT_BASE_URL", raising=False)
    loaded = load_settings(None, {})

    assert loaded.settings.csv_delimiter == ","
    assert loaded.settings.auto_approve is False
    assert loaded.settings.retries == 3


def test_invalid_bool_env_is_rejected(monkeypatch):
    monkeypatch.setenv("LEDGER_IMPORT_AUTO_APPROVE", "maybe")

    with pytest.raises(ValueError):
        load_settings(None, {})
