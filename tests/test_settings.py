import json

from workout_tracker import settings


def test_defaults_created_on_first_load(settings_file):
    assert settings.get_value("default_rest_time") == 60
    assert settings.get_value("body_weight") == 75.0
    with settings_file.open() as fh:
        data = json.load(fh)
    assert [item["key"] for item in data][:2] == ["default_rest_time", "body_weight"]


def test_set_value_persists(settings_file):
    settings.set_value("weekly_volume_target", 8000)
    settings.set_value("units", "kg")
    settings.reset_cache()
    assert settings.get_value("weekly_volume_target") == 8000
    assert settings.get_value("units") == "kg"


def test_unreadable_file_falls_back_to_defaults(settings_file, caplog):
    settings_file.write_text("{broken")
    assert settings.get_value("stale_session_hours") == 24
    assert "Could not read settings" in caplog.text


def test_missing_keys_fall_back_to_defaults(settings_file):
    settings_file.write_text(json.dumps([{"key": "body_weight", "value": 90.0, "type": "float"}]))
    assert settings.get_value("body_weight") == 90.0
    assert settings.get_value("mutation_debounce") == 1.0
    assert settings.get_value("unknown", "fallback") == "fallback"
