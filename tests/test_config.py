"""
Tests: configuration classes and app factory wiring.
"""

import pytest

from ehub.config import ProductionConfig, config


def test_testing_config_loaded(app):
    assert app.config["TESTING"] is True
    assert app.config["RATELIMIT_ENABLED"] is False
    assert app.config["SEED_TASKS_ON"] == "invite"


def test_blueprints_registered(app):
    assert {"health", "projects", "assignments", "notifications"} <= set(app.blueprints)


def test_config_mapping():
    assert set(config) == {"development", "testing", "production", "default"}


def test_production_requires_database_url(monkeypatch):
    monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", None)
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        ProductionConfig()


def test_production_requires_secret_key(monkeypatch):
    monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", "postgresql://db/ehub")
    monkeypatch.delenv("SECRET_KEY", raising=False)
    with pytest.raises(RuntimeError, match="SECRET_KEY"):
        ProductionConfig()
