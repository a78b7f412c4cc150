import logging

from budgetledger import config


def test_defaults(monkeypatch):
    monkeypatch.delenv("BUDGETLEDGER_VARIANCE_CONVENTION", raising=False)
    monkeypatch.delenv("BUDGETLEDGER_NEAR_LIMIT_THRESHOLD", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)

    assert config.get_variance_convention() == "target_minus_actual"
    assert config.get_near_limit_threshold() == 0.8
    assert config.get_log_level() == logging.INFO


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("BUDGETLEDGER_VARIANCE_CONVENTION", "ACTUAL_MINUS_TARGET")
    monkeypatch.setenv("BUDGETLEDGER_NEAR_LIMIT_THRESHOLD", "0.9")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    assert config.get_variance_convention() == "actual_minus_target"
    assert config.get_near_limit_threshold() == 0.9
    assert config.get_log_level() == logging.DEBUG


def test_bad_threshold_falls_back(monkeypatch):
    for raw in ("lots", "1.5", "-0.1"):
        monkeypatch.setenv("BUDGETLEDGER_NEAR_LIMIT_THRESHOLD", raw)
        assert config.get_near_limit_threshold() == 0.8
