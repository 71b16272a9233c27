import json

from geogrid import config


def test_load_engine_config_missing_file_returns_false(tmp_path):
    assert config.load_engine_config(str(tmp_path / "nope.json")) is False


def test_load_engine_config_overrides_values(tmp_path, monkeypatch):
    for name in (
        "POLL_INITIAL_WAIT_SECONDS",
        "SEARCH_DEPTH",
        "DEVICE",
        "TASK_BODY_EXTRA",
        "VISIBILITY_WEIGHTS",
        "RANK_GOOD_BELOW",
        "LOCATION_CODES",
    ):
        monkeypatch.setattr(config, name, getattr(config, name))

    path = tmp_path / "geogrid_config.json"
    path.write_text(
        json.dumps(
            {
                "poll_initial_wait_seconds": 5,
                "search_depth": 50,
                "device": "mobile",
                "task_body_extra": {"se_domain": "google.co.uk"},
                "visibility_weights": {"tss": 0.6},
                "thresholds": {"rank_good_below": 4},
                "location_codes": {"Warsaw": 1011604},
            }
        ),
        encoding="utf-8",
    )

    assert config.load_engine_config(str(path)) is True
    assert config.POLL_INITIAL_WAIT_SECONDS == 5.0
    assert config.SEARCH_DEPTH == 50
    assert config.DEVICE == "mobile"
    assert config.TASK_BODY_EXTRA == {"se_domain": "google.co.uk"}
    assert config.VISIBILITY_WEIGHTS.tss == 0.6
    assert config.VISIBILITY_WEIGHTS.afpr == 0.3
    assert config.RANK_GOOD_BELOW == 4.0
    assert config.LOCATION_CODES["Warsaw"] == 1011604
    assert config.LOCATION_CODES["London"] == 1006894


def test_lookup_location_code():
    assert config.lookup_location_code("New York") == 1022300
    assert config.lookup_location_code("new york") == 1022300
    assert config.lookup_location_code("Downtown Seattle, WA") == 1024497
    assert config.lookup_location_code("Atlantis") == config.DEFAULT_LOCATION_CODE
    assert config.lookup_location_code("") == config.DEFAULT_LOCATION_CODE
