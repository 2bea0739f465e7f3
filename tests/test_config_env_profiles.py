from pathlib import Path
import sys


PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from config import EnvConfigManager


def test_profiles_json_env_merges_with_default_profiles(monkeypatch):
    monkeypatch.setenv(
        "MDPREP_PROFILES_JSON",
        (
            '{"chat":{"animated":false,"citations_length":4},'
            '"custom":{"enable_latex":true,"fix_markdown_bold":true}}'
        ),
    )

    manager = EnvConfigManager()
    profiles = manager.get("preprocessing.profiles", {})

    assert profiles["chat"]["animated"] is False
    assert profiles["chat"]["citations_length"] == 4
    assert profiles["chat"]["enable_latex"] is True
    assert profiles["custom"]["enable_latex"] is True
    assert profiles["custom"]["fix_markdown_bold"] is True
    assert profiles["custom"]["allow_html"] is False
    assert profiles["plain"]["enable_latex"] is False


def test_invalid_profiles_json_keeps_builtin_profiles(monkeypatch):
    monkeypatch.setenv("MDPREP_PROFILES_JSON", "{not json")

    manager = EnvConfigManager()
    profiles = manager.get("preprocessing.profiles", {})

    assert set(profiles) == {"chat", "document", "plain"}


def test_profiles_file_is_merged_and_env_json_wins(monkeypatch, tmp_path):
    profiles_file = tmp_path / "profiles.yaml"
    profiles_file.write_text(
        "document:\n  fix_markdown_bold: true\n  animated: true\n"
        "review:\n  enable_custom_footnotes: true\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("MDPREP_PROFILES_FILE", str(profiles_file))
    monkeypatch.setenv("MDPREP_PROFILES_JSON", '{"document":{"animated":false}}')

    manager = EnvConfigManager()
    profiles = manager.get("preprocessing.profiles", {})

    assert profiles["document"]["fix_markdown_bold"] is True
    assert profiles["document"]["animated"] is False
    assert profiles["review"]["enable_custom_footnotes"] is True


def test_cache_capacity_is_coerced_and_validated(monkeypatch):
    monkeypatch.setenv("MDPREP_CACHE_CAPACITY", "12")
    assert EnvConfigManager().get_int("cache.capacity") == 12

    monkeypatch.setenv("MDPREP_CACHE_CAPACITY", "lots")
    assert EnvConfigManager().get_int("cache.capacity") == 50

    monkeypatch.setenv("MDPREP_CACHE_CAPACITY", "0")
    assert EnvConfigManager().get_int("cache.capacity") == 50


def test_bool_and_string_env_values(monkeypatch):
    monkeypatch.setenv("MDPREP_SERVER_ENABLE_PERFORMANCE_MONITOR", "yes")
    monkeypatch.setenv("MDPREP_PROFILE", "document")

    manager = EnvConfigManager()

    assert manager.get_bool("server.enable_performance_monitor") is True
    assert manager.get_string("preprocessing.active_profile") == "document"


def test_get_returns_copies_and_load_config_rereads_environment(monkeypatch):
    manager = EnvConfigManager()
    profiles = manager.get("preprocessing.profiles", {})
    profiles["chat"]["citations_length"] = 99
    assert manager.get("preprocessing.profiles")["chat"]["citations_length"] != 99

    monkeypatch.setenv("MDPREP_CACHE_CAPACITY", "7")
    assert manager.load_config() is None
    assert manager.get_int("cache.capacity") == 7
