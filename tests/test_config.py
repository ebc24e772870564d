import pytest

from config import UPDATE_MISSING_IGNORE, UPDATE_MISSING_NOT_FOUND, Settings

ENV_VARS = (
    "DATABASE_URL", "DATABASE_NAME", "UPLOAD_DIR", "PUBLIC_BASE_URL", "UPDATE_MISSING_PRODUCT",
    "ORDER_ID_MAX_ATTEMPTS", "LOG_LEVEL", "LOG_FILE", "PORT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = Settings.from_env()
    assert settings.database_url is None
    assert settings.upload_dir == "uploads"
    assert settings.update_missing_product == UPDATE_MISSING_IGNORE
    assert settings.order_id_max_attempts == 5
    assert settings.port == 8000


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "mongodb://db:27017")
    monkeypatch.setenv("DATABASE_NAME", "shop")
    monkeypatch.setenv("UPDATE_MISSING_PRODUCT", "NOT_FOUND")
    monkeypatch.setenv("ORDER_ID_MAX_ATTEMPTS", "0")
    monkeypatch.setenv("LOG_FILE", "")
    monkeypatch.setenv("PORT", "5001")

    settings = Settings.from_env()
    assert settings.database_name == "shop"
    assert settings.update_missing_product == UPDATE_MISSING_NOT_FOUND
    assert settings.order_id_max_attempts == 1
    assert settings.log_file is None
    assert settings.port == 5001


def test_rejects_unknown_update_mode(monkeypatch):
    monkeypatch.setenv("UPDATE_MISSING_PRODUCT", "maybe")
    with pytest.raises(ValueError):
        Settings.from_env()
