import json
import logging

import pytest

from ultrasonic_pi.levels import Level, classify
from ultrasonic_pi.thresholds import ThresholdFile, ThresholdSet, ThresholdStore, parse_value


def test_save_then_load_returns_equal_set(tmp_path):
    persistence = ThresholdFile(str(tmp_path / "thresholds.json"))
    saved = ThresholdSet(normal=9.5, warning=6.25, alert=3.5, danger=1.75)
    persistence.save(saved)
    loaded = persistence.load()
    assert loaded == saved
    for name in ("normal", "warning", "alert", "danger"):
        assert getattr(loaded, name) == getattr(saved, name)


def test_load_missing_file_returns_defaults(tmp_path):
    assert ThresholdFile(str(tmp_path / "absent.json")).load() == ThresholdSet()


def test_load_corrupt_file_returns_defaults(tmp_path):
    path = tmp_path / "thresholds.json"
    path.write_text("{not json", encoding="utf-8")
    assert ThresholdFile(str(path)).load() == ThresholdSet()


def test_load_partial_file_fills_missing_fields(tmp_path):
    path = tmp_path / "thresholds.json"
    path.write_text(json.dumps({"alert": 2.5, "danger": "oops"}), encoding="utf-8")
    loaded = ThresholdFile(str(path)).load()
    assert loaded.alert == 2.5
    assert loaded.danger == ThresholdSet().danger
    assert loaded.normal == ThresholdSet().normal


def test_load_replaces_non_finite_and_out_of_range_values(tmp_path, caplog):
    path = tmp_path / "thresholds.json"
    path.write_text('{"normal": NaN, "warning": Infinity, "alert": 42.0, "danger": -1.0}', encoding="utf-8")
    with caplog.at_level(logging.WARNING):
        loaded = ThresholdFile(str(path)).load()
    assert loaded == ThresholdSet()
    assert caplog.text.count("Ignoring invalid") == 4
    assert classify(0.1, loaded) is Level.DANGER


def test_save_replaces_file_without_leaving_temp_files(tmp_path):
    path = tmp_path / "thresholds.json"
    persistence = ThresholdFile(str(path))
    persistence.save(ThresholdSet())
    persistence.save(ThresholdSet(normal=7.0))
    assert sorted(p.name for p in tmp_path.iterdir()) == ["thresholds.json"]
    assert json.loads(path.read_text(encoding="utf-8"))["normal"] == 7.0


def test_store_update_changes_memory_and_persists(state, store, tmp_path):
    store.update("warning", 4.5)
    assert store.snapshot().warning == 4.5
    assert state.thresholds.warning == 4.5
    assert ThresholdFile(str(tmp_path / "thresholds.json")).load().warning == 4.5


def test_store_accepts_misordered_update_with_warning(store, caplog):
    with caplog.at_level(logging.WARNING):
        updated = store.update("alert", 6.0)
    assert updated.alert == 6.0
    assert not updated.is_ordered()
    assert "not strictly descending" in caplog.text


def test_store_keeps_serving_when_persist_fails(state, tmp_path, caplog):
    broken = ThresholdStore(state, ThresholdFile(str(tmp_path / "missing-dir" / "thresholds.json")))
    with caplog.at_level(logging.ERROR):
        broken.update("danger", 1.0)
    assert broken.snapshot().danger == 1.0
    assert "Persist" in caplog.text


def test_store_load_mirrors_file(state, tmp_path):
    path = tmp_path / "thresholds.json"
    ThresholdFile(str(path)).save(ThresholdSet(normal=6.0, warning=4.0, alert=2.0, danger=1.0))
    ThresholdStore(state, ThresholdFile(str(path))).load()
    assert state.thresholds.alert == 2.0


def test_replace_rejects_unknown_field():
    with pytest.raises(KeyError):
        ThresholdSet().replace("extreme", 1.0)


@pytest.mark.parametrize("payload", ["abc", "", "nan", "inf", "-1", "10.5"])
def test_parse_value_rejects(payload):
    assert parse_value(payload) is None


def test_parse_value_accepts_number_in_range():
    assert parse_value(" 2.5 ") == 2.5
    assert parse_value("0") == 0.0
