"""Unit tests for settings defaults, YAML overlay and env overrides."""

from arena.config import Settings


def test_defaults(tmp_path):
    settings = Settings(_env_file=None, data_dir=tmp_path)

    assert settings.tournament.initial_bankroll == 10_000.0
    assert settings.tournament.markets_per_round == 15
    assert settings.budget.cap_usd == 100.0
    assert settings.budget.round_cost_estimate_usd == 3.0
    assert settings.forecast.retry_delays_seconds == [1.0, 2.0, 4.0]
    assert settings.forecast.max_retries == 3
    assert settings.data_dir.is_absolute()


def test_yaml_overlay_merges_sections(tmp_path):
    (tmp_path / "config.yaml").write_text(
        "budget:\n  cap_usd: 25\ntournament:\n  markets_per_round: 5\n"
    )
    settings = Settings(_env_file=None, data_dir=tmp_path)
    settings.load_yaml_config()

    assert settings.budget.cap_usd == 25
    assert settings.budget.round_cost_estimate_usd == 3.0
    assert settings.tournament.markets_per_round == 5
    assert settings.tournament.initial_bankroll == 10_000.0


def test_missing_yaml_keeps_defaults(tmp_path):
    settings = Settings(_env_file=None, data_dir=tmp_path)
    settings.load_yaml_config()
    assert settings.budget.cap_usd == 100.0


def test_nested_env_override(tmp_path, monkeypatch):
    monkeypatch.setenv("BUDGET__CAP_USD", "42.5")
    monkeypatch.setenv("OPENROUTER_API_KEY", "sk-test")

    settings = Settings(_env_file=None, data_dir=tmp_path)

    assert settings.budget.cap_usd == 42.5
    assert settings.openrouter_api_key == "sk-test"
