"""Environment validation tests for chaco-facturas."""

import sys

import pytest


def test_python_version() -> None:
    """Verify Python version is 3.12 or higher."""
    assert sys.version_info >= (3, 12), f"Python 3.12+ required, got {sys.version}"


def test_core_imports() -> None:
    """Verify core packages can be imported."""
    import httpx  # noqa: F401
    import lxml  # noqa: F401
    import pdfplumber  # noqa: F401
    import pymongo  # noqa: F401


def test_playwright_import() -> None:
    """Verify Playwright can be imported."""
    from playwright.sync_api import sync_playwright  # noqa: F401


def test_project_structure() -> None:
    """Verify project module structure."""
    from chaco_facturas import __version__
    from chaco_facturas.config import PROJECT_ROOT

    assert __version__ == "0.1.0"
    assert PROJECT_ROOT.exists()


def test_config_loads() -> None:
    """Verify config.json can be loaded."""
    from chaco_facturas.config import get_config

    config = get_config()
    assert "sources" in config
    assert "sameep" in config["sources"]
    assert "secheep" in config["sources"]


def test_shipped_config_matches_defaults() -> None:
    """Verify the shipped config produces the documented portal contract."""
    from chaco_facturas.config import PortalSettings, load_portal_settings

    assert load_portal_settings() == PortalSettings()


def test_settings_override_from_dict() -> None:
    """Verify config blocks override dataclass defaults."""
    from chaco_facturas.config import load_portal_settings, load_secheep_settings

    config = {
        "sources": {
            "sameep": {"retry": {"max_attempts": 5}, "tables": {"statements": 4}},
            "secheep": {"selectors": {"dropdown": "span.custom"}},
        },
    }
    settings = load_portal_settings(config)
    secheep = load_secheep_settings(config)

    assert settings.max_attempts == 5
    assert settings.statements_table == 4
    assert settings.backoff_seconds == 10.0
    assert secheep.selectors["dropdown"] == "span.custom"
    assert secheep.selectors["grid_table"]  # other selectors keep defaults


def test_data_directories_exist() -> None:
    """Verify data directories exist."""
    from chaco_facturas.config import ARTIFACT_DIR, CHECKPOINT_DIR, DATA_DIR, LOGS_DIR

    assert DATA_DIR.exists()
    assert CHECKPOINT_DIR.exists()
    assert ARTIFACT_DIR.exists()
    assert LOGS_DIR.exists()


def test_missing_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    """Verify unset credentials raise a login error before any browser work."""
    from chaco_facturas.config import load_credentials
    from chaco_facturas.errors import LoginError, LoginFailureReason

    monkeypatch.delenv("SAMEEP_USER", raising=False)
    monkeypatch.delenv("SAMEEP_PASS", raising=False)

    with pytest.raises(LoginError) as exc_info:
        load_credentials("SAMEEP")
    assert exc_info.value.reason is LoginFailureReason.CREDENTIALS_MISSING


def test_credentials_repr_hides_password(monkeypatch: pytest.MonkeyPatch) -> None:
    """Verify the password never appears in logs."""
    from chaco_facturas.config import load_credentials

    monkeypatch.setenv("SECHEEP_USER", "usuario")
    monkeypatch.setenv("SECHEEP_PASS", "s3cr3t")

    credentials = load_credentials("SECHEEP")
    assert credentials.password == "s3cr3t"
    assert "s3cr3t" not in repr(credentials)


def test_mongo_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Verify document-store settings come from the environment."""
    from chaco_facturas.config import load_mongo_settings

    monkeypatch.setenv("MONGO_URL", "mongodb://db:27017")
    monkeypatch.setenv("DB_NAME", "facturas")

    settings = load_mongo_settings()
    assert settings.url == "mongodb://db:27017"
    assert settings.database == "facturas"
    assert settings.statements_collection == "comprobantes"


@pytest.mark.skipif(
    not __import__("os").getenv("MONGO_URL"),
    reason="MONGO_URL not set",
)
def test_mongo_connection() -> None:
    """Verify the configured MongoDB answers (requires a server)."""
    from chaco_facturas.config import load_mongo_settings
    from chaco_facturas.store import MongoRepository

    repository = MongoRepository.connect(load_mongo_settings())
    repository.close()
