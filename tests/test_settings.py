import json

from fieldsync.settings import PREFIX_KEY, Preferences, compose_label


def test_compose_label_strips_whitespace_and_uppercases():
    assert compose_label("DSC_", " 92 3a ") == "DSC_923A"
    assert compose_label("", "0042") == "0042"


def test_compose_label_without_digits_is_empty():
    assert compose_label("DSC_", "   ") == ""
    assert compose_label("DSC_", "") == ""


def test_prefix_defaults_and_persists(tmp_path):
    path = tmp_path / "prefs.json"
    prefs = Preferences(path)
    assert prefs.get_prefix() == "DSC_"

    prefs.set_prefix("IMG_")
    assert json.loads(path.read_text(encoding="utf-8"))[PREFIX_KEY] == "IMG_"
    assert Preferences(path).get_prefix() == "IMG_"


def test_unreadable_preferences_fall_back_to_default(tmp_path):
    path = tmp_path / "prefs.json"
    path.write_text("oops", encoding="utf-8")
    assert Preferences(path).get_prefix() == "DSC_"


def test_in_memory_preferences():
    prefs = Preferences()
    prefs.set_prefix("_MG")
    assert prefs.get_prefix() == "_MG"
