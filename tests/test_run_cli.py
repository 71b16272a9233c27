import json
import os
from pathlib import Path

import run
from geogrid import config


def test_load_env_does_not_override_real_env(tmp_path: Path, monkeypatch):
    env_path = tmp_path / ".env"
    env_path.write_text("DATAFORSEO_LOGIN=from-dotenv\nDATAFORSEO_PASSWORD=pw-dotenv\n", encoding="utf-8")
    monkeypatch.setenv("DATAFORSEO_LOGIN", "from-env")
    monkeypatch.setenv("DATAFORSEO_PASSWORD", "placeholder")
    monkeypatch.delenv("DATAFORSEO_PASSWORD")

    run.load_env(root_dir=tmp_path)

    assert os.environ.get("DATAFORSEO_LOGIN") == "from-env"
    assert os.environ.get("DATAFORSEO_PASSWORD") == "pw-dotenv"


def test_load_env_missing_file_is_a_no_op(tmp_path: Path, monkeypatch):
    called = []
    monkeypatch.setattr(run, "load_dotenv", lambda **kwargs: called.append(kwargs))
    run.load_env(root_dir=tmp_path)
    assert called == []


def test_preflight_reports_missing_credentials(monkeypatch, capsys):
    monkeypatch.delenv(config.DATAFORSEO_LOGIN_ENV, raising=False)
    monkeypatch.delenv(config.DATAFORSEO_PASSWORD_ENV, raising=False)

    assert run.run_preflight(online=False, location_code=None, config_loaded=False) == 1
    out = capsys.readouterr().out
    assert "DataForSEO credentials: MISSING" in out
    assert "Preflight: FAIL" in out


def test_preflight_passes_offline_with_credentials(monkeypatch, capsys):
    monkeypatch.setenv(config.DATAFORSEO_LOGIN_ENV, "me@example.com")
    monkeypatch.setenv(config.DATAFORSEO_PASSWORD_ENV, "pw")

    assert run.run_preflight(online=False, location_code=2826, config_loaded=True) == 0
    out = capsys.readouterr().out
    assert "Default grid: OK" in out
    assert "Location code: 2826" in out
    assert "Preflight: PASS" in out


def test_location_name_resolves_to_code():
    args = run.parse_args(["--location", "London"])
    assert run.resolve_location_code(args) == 1006894
    args = run.parse_args(["--location", "London", "--location-code", "2840"])
    assert run.resolve_location_code(args) == 2840
    assert run.resolve_location_code(run.parse_args([])) is None


def test_missing_required_arguments(capsys):
    assert run.main(["--provider", "synthetic", "--keyword", "dentist"]) == 2
    assert "--business" in capsys.readouterr().err


def test_synthetic_run_writes_report(tmp_path, capsys):
    out_dir = tmp_path / "out"
    code = run.main(
        [
            "--provider",
            "synthetic",
            "--keyword",
            "dentist",
            "--business",
            "Harbor Dental",
            "--center-lat",
            "52.2297",
            "--center-lng",
            "21.0122",
            "--radius-km",
            "3",
            "--grid-size",
            "3",
            "--concurrency",
            "3",
            "--deadline",
            "30",
            "--config",
            str(tmp_path / "missing.json"),
            "--out",
            str(out_dir),
        ]
    )

    assert code == 0
    data = json.loads((out_dir / "report.json").read_text(encoding="utf-8"))
    assert len(data["results"]) == 9
    assert data["completion_rate"] == 1.0
    assert "AFPR:" in capsys.readouterr().out


def test_config_error_is_reported(tmp_path, capsys):
    code = run.main(
        [
            "--provider",
            "synthetic",
            "--keyword",
            "dentist",
            "--business",
            "Harbor Dental",
            "--center-lat",
            "0",
            "--center-lng",
            "0",
            "--grid-size",
            "2",
            "--shape",
            "circular",
            "--config",
            str(tmp_path / "missing.json"),
            "--out",
            str(tmp_path / "out"),
        ]
    )
    assert code == 1
    assert "no points" in capsys.readouterr().err
