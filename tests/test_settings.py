import json

from core.settings import (
    SettingsManager, Difficulty, DifficultySettings, parse_difficulty, clamp_game_speed,
    MIN_GAME_SPEED_MS, MAX_GAME_SPEED_MS,
)


def test_defaults_without_file(tmp_path):
    settings = SettingsManager(path=str(tmp_path / "settings.json"))
    assert settings.game_speed_ms == 1000
    assert settings.get("auto_save") is True
    assert settings.get("auto_save_interval") == 4
    assert settings.difficulty == Difficulty.NORMAL


def test_saved_values_merge_with_defaults(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"game_speed_ms": 20, "difficulty": "hard"}))

    settings = SettingsManager(path=str(path))

    assert settings.game_speed_ms == MIN_GAME_SPEED_MS
    assert settings.difficulty == Difficulty.HARD
    assert settings.get("auto_save_interval") == 4


def test_set_persists_and_clamps(tmp_path):
    path = tmp_path / "settings.json"
    settings = SettingsManager(path=str(path))
    settings.set("game_speed_ms", 99999)

    assert json.loads(path.read_text())["game_speed_ms"] == MAX_GAME_SPEED_MS


def test_corrupt_file_falls_back_to_defaults(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("{not json")
    settings = SettingsManager(path=str(path))
    assert settings.game_speed_ms == 1000


def test_parse_difficulty_is_lenient():
    assert parse_difficulty("Easy") == Difficulty.EASY
    assert parse_difficulty("HARD") == Difficulty.HARD
    assert parse_difficulty(Difficulty.EASY) == Difficulty.EASY
    assert parse_difficulty("nightmare") == Difficulty.NORMAL
    assert parse_difficulty(None) == Difficulty.NORMAL


def test_clamp_game_speed_handles_garbage():
    assert clamp_game_speed("fast") == 1000
    assert clamp_game_speed(250) == 250


def test_harder_difficulty_means_more_crises():
    easy = DifficultySettings.get(Difficulty.EASY, "crisis_chance_multiplier")
    hard = DifficultySettings.get(Difficulty.HARD, "crisis_chance_multiplier")
    assert easy < 1.0 < hard
