"""Configuration management for chaco-facturas.

This module centralizes file-system paths, environment variables, portal
settings, and logging used by the collection and retrieval phases.

Configuration file
------------------
``config/config.json`` holds the portal URLs, selector prefixes, table
positions, timeouts, and retry policy for each source (``sameep`` and
``secheep``). The values are fixed contracts with the target pages; the
dataclass defaults below mirror the shipped file so tests and ad-hoc
callers can build settings without it.

Environment variables
---------------------
``SAMEEP_USER``/``SAMEEP_PASS`` and ``SECHEEP_USER``/``SECHEEP_PASS`` hold
portal credentials. ``MONGO_URL`` and ``DB_NAME`` select the document
store, with optional ``MONGO_*_COLLECTION`` overrides. ``DATA_DIR`` and
``LOGS_DIR`` override default directories. Directories are created
eagerly on import so downstream callers can rely on their existence.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from chaco_facturas.errors import LoginError, LoginFailureReason

# Load environment variables from .env file
load_dotenv()

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"
DATA_DIR = Path(os.getenv("DATA_DIR", PROJECT_ROOT / "data"))
LOGS_DIR = Path(os.getenv("LOGS_DIR", PROJECT_ROOT / "logs"))
CHECKPOINT_DIR = DATA_DIR / "checkpoints"
ARTIFACT_DIR = DATA_DIR / "pdfs"

# Ensure directories exist
DATA_DIR.mkdir(parents=True, exist_ok=True)
LOGS_DIR.mkdir(parents=True, exist_ok=True)
CHECKPOINT_DIR.mkdir(parents=True, exist_ok=True)
ARTIFACT_DIR.mkdir(parents=True, exist_ok=True)


def get_config() -> dict[str, Any]:
    """Load the primary project configuration.

    Returns
    -------
    dict[str, Any]
        Parsed contents of ``config/config.json``.

    Raises
    ------
    FileNotFoundError
        If ``config/config.json`` is missing.
    json.JSONDecodeError
        If the file exists but is not valid JSON.
    """
    config_path = CONFIG_DIR / "config.json"
    if not config_path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise FileNotFoundError(msg)

    with Path(config_path).open(encoding="utf-8") as f:
        return json.load(f)  # type: ignore[no-any-return]


def setup_logging(name: str = "chaco_facturas") -> logging.Logger:
    """Configure a console+file logger if not already present.

    Parameters
    ----------
    name : str, optional
        Logger namespace; reused to avoid duplicate handlers.

    Returns
    -------
    logging.Logger
        Logger with INFO-level console handler and DEBUG-level daily file
        handler under ``LOGS_DIR``.
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        logger.setLevel(logging.DEBUG)

        # Console handler
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_format = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
        console_handler.setFormatter(console_format)
        logger.addHandler(console_handler)

        # File handler
        log_filename = f"{datetime.now(UTC).strftime('%Y-%m-%d')}_run.log"
        file_handler = logging.FileHandler(LOGS_DIR / log_filename)
        file_handler.setLevel(logging.DEBUG)
        file_format = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        file_handler.setFormatter(file_format)
        logger.addHandler(file_handler)

    return logger


# =============================================================================
# Portal Settings
# =============================================================================


@dataclass
class PortalSettings:
    """Settings for the SAMEEP legacy portal.

    Selector prefixes, table indices, and cell positions are a fixed
    contract with the rendered pages, not tuning knobs. Timeouts are in
    milliseconds because Playwright takes milliseconds.
    """

    login_url: str = "https://apps8.chaco.gob.ar/sameepweb/servlet/com.sameep.gamexamplelogin"
    home_url: str = "https://apps8.chaco.gob.ar/sameepweb/servlet/com.sameep.wpseleccionarcliente"
    servlet_base_url: str = "https://apps8.chaco.gob.ar/sameepweb/servlet/"
    post_login_pattern: str = "**/com.sameep.wpseleccionarcliente"

    username_placeholder: str = "Nombre de usuario"
    password_placeholder: str = "Contraseña"
    submit_button: str = "Iniciar Sesion"

    account_control_prefix: str = "span_vINGRESAR_"
    account_enter_link: str = "Ingresar"
    statement_link: str = "Saldo"
    document_control_prefix: str = "vIMPRIMIRSALDO_"
    popup_frame: str = "iframe#gxp0_ifrm"
    popup_close: str = "#gxp0_cls"

    account_header_table: int = 0
    supply_points_table: int = 1
    statements_table: int = 3
    document_cell: int = 14
    min_statement_cells: int = 15
    min_supply_point_cells: int = 8

    default_timeout_ms: int = 30000
    login_timeout_ms: int = 30000
    account_list_timeout_ms: int = 30000
    network_idle_timeout_ms: int = 30000
    settle_ms: int = 5000
    back_settle_ms: int = 3000
    popup_frame_timeout_ms: int = 15000
    popup_close_settle_ms: int = 1000

    max_attempts: int = 3
    backoff_seconds: float = 10.0

    min_document_size: int = 1000
    fetch_timeout_seconds: float = 60.0

    checkpoint_prefix: str = "sameep-datos"


@dataclass
class SecheepSettings:
    """Settings for the SECHEEP single-page billing portal."""

    login_url: str = "https://oficinavirtual.secheep.gob.ar/Identity/Account/Login"
    company: str = "SECHEEP"
    selectors: dict[str, str] = field(
        default_factory=lambda: {
            "username": "#Input_UserName",
            "password": "#Input_Password",
            "submit": 'button[type="submit"]',
            "invoices_menu": 'a:has-text("Facturas")',
            "dropdown": "span.e-ddl",
            "dropdown_items": ".e-popup-open .e-list-item",
            "dropdown_open": ".e-popup-open",
            "item_count": "span.e-pagecountmsg",
            "grid_table": 'table.e-table[id$="_content_table"]',
            "next_page": "div.e-next.e-icons.e-icon-next.e-nextpage.e-pager-default",
            "first_page": "div.e-first.e-icons.e-icon-first.e-firstpage.e-pager-default",
            "download_button": "button.e-control.e-btn.e-lib.e-link.e-primary.e-icon-btn",
        },
    )
    download_cell: int = 6
    default_timeout_ms: int = 300000
    navigation_timeout_ms: int = 240000
    login_timeout_ms: int = 20000
    dropdown_timeout_ms: int = 10000
    item_count_timeout_ms: int = 5000
    download_timeout_ms: int = 10000
    export_prefix: str = "secheep-facturas"


def load_portal_settings(config: dict[str, Any] | None = None) -> PortalSettings:
    """Build :class:`PortalSettings` from the ``sources.sameep`` config block.

    Parameters
    ----------
    config : dict[str, Any] | None, optional
        Parsed configuration, or ``None`` to load ``config/config.json``.

    Returns
    -------
    PortalSettings
        Settings with config values overriding the defaults.
    """
    if config is None:
        config = get_config()

    source = config.get("sources", {}).get("sameep", {})
    login = source.get("login", {})
    selectors = source.get("selectors", {})
    tables = source.get("tables", {})
    timeouts = source.get("timeouts_ms", {})
    retry = source.get("retry", {})
    documents = source.get("documents", {})
    defaults = PortalSettings()

    return PortalSettings(
        login_url=source.get("login_url", defaults.login_url),
        home_url=source.get("home_url", defaults.home_url),
        servlet_base_url=source.get("servlet_base_url", defaults.servlet_base_url),
        post_login_pattern=source.get("post_login_pattern", defaults.post_login_pattern),
        username_placeholder=login.get("username_placeholder", defaults.username_placeholder),
        password_placeholder=login.get("password_placeholder", defaults.password_placeholder),
        submit_button=login.get("submit_button", defaults.submit_button),
        account_control_prefix=selectors.get("account_control_prefix", defaults.account_control_prefix),
        account_enter_link=selectors.get("account_enter_link", defaults.account_enter_link),
        statement_link=selectors.get("statement_link", defaults.statement_link),
        document_control_prefix=selectors.get("document_control_prefix", defaults.document_control_prefix),
        popup_frame=selectors.get("popup_frame", defaults.popup_frame),
        popup_close=selectors.get("popup_close", defaults.popup_close),
        account_header_table=tables.get("account_header", defaults.account_header_table),
        supply_points_table=tables.get("supply_points", defaults.supply_points_table),
        statements_table=tables.get("statements", defaults.statements_table),
        document_cell=tables.get("document_cell", defaults.document_cell),
        min_statement_cells=tables.get("min_statement_cells", defaults.min_statement_cells),
        min_supply_point_cells=tables.get("min_supply_point_cells", defaults.min_supply_point_cells),
        default_timeout_ms=timeouts.get("default", defaults.default_timeout_ms),
        login_timeout_ms=timeouts.get("login", defaults.login_timeout_ms),
        account_list_timeout_ms=timeouts.get("account_list", defaults.account_list_timeout_ms),
        network_idle_timeout_ms=timeouts.get("network_idle", defaults.network_idle_timeout_ms),
        settle_ms=timeouts.get("settle", defaults.settle_ms),
        back_settle_ms=timeouts.get("back_settle", defaults.back_settle_ms),
        popup_frame_timeout_ms=timeouts.get("popup_frame", defaults.popup_frame_timeout_ms),
        popup_close_settle_ms=timeouts.get("popup_close_settle", defaults.popup_close_settle_ms),
        max_attempts=int(retry.get("max_attempts", defaults.max_attempts)),
        backoff_seconds=float(retry.get("backoff_seconds", defaults.backoff_seconds)),
        min_document_size=documents.get("min_size_bytes", defaults.min_document_size),
        fetch_timeout_seconds=float(documents.get("fetch_timeout_seconds", defaults.fetch_timeout_seconds)),
        checkpoint_prefix=source.get("checkpoint_prefix", defaults.checkpoint_prefix),
    )


def load_secheep_settings(config: dict[str, Any] | None = None) -> SecheepSettings:
    """Build :class:`SecheepSettings` from the ``sources.secheep`` config block."""
    if config is None:
        config = get_config()

    source = config.get("sources", {}).get("secheep", {})
    timeouts = source.get("timeouts_ms", {})
    defaults = SecheepSettings()

    return SecheepSettings(
        login_url=source.get("login_url", defaults.login_url),
        company=source.get("company", defaults.company),
        selectors={**defaults.selectors, **source.get("selectors", {})},
        download_cell=source.get("download_cell", defaults.download_cell),
        default_timeout_ms=timeouts.get("default", defaults.default_timeout_ms),
        navigation_timeout_ms=timeouts.get("navigation", defaults.navigation_timeout_ms),
        login_timeout_ms=timeouts.get("login", defaults.login_timeout_ms),
        dropdown_timeout_ms=timeouts.get("dropdown", defaults.dropdown_timeout_ms),
        item_count_timeout_ms=timeouts.get("item_count", defaults.item_count_timeout_ms),
        download_timeout_ms=timeouts.get("download", defaults.download_timeout_ms),
        export_prefix=source.get("export_prefix", defaults.export_prefix),
    )


# =============================================================================
# Credentials and Document Store
# =============================================================================


@dataclass(frozen=True)
class Credentials:
    """Portal login credentials."""

    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***')"


def load_credentials(prefix: str = "SAMEEP") -> Credentials:
    """Read ``<PREFIX>_USER`` and ``<PREFIX>_PASS`` from the environment.

    Parameters
    ----------
    prefix : str, optional
        Environment variable prefix (``"SAMEEP"`` or ``"SECHEEP"``).

    Returns
    -------
    Credentials
        Username and password for the portal.

    Raises
    ------
    LoginError
        With reason ``CREDENTIALS_MISSING`` when either variable is unset.
    """
    username = os.getenv(f"{prefix}_USER", "")
    password = os.getenv(f"{prefix}_PASS", "")
    if not username or not password:
        msg = f"{prefix}_USER and {prefix}_PASS must be set in the environment or .env"
        raise LoginError(msg, reason=LoginFailureReason.CREDENTIALS_MISSING)
    return Credentials(username=username, password=password)


@dataclass(frozen=True)
class MongoSettings:
    """Connection string, database, and collection names for the document store."""

    url: str = "mongodb://localhost:27017"
    database: str = "sameep"
    accounts_collection: str = "clientes"
    supply_points_collection: str = "suministros"
    statements_collection: str = "comprobantes"
    server_selection_timeout_ms: int = 5000


def load_mongo_settings() -> MongoSettings:
    """Read document-store settings from the environment."""
    defaults = MongoSettings()
    return MongoSettings(
        url=os.getenv("MONGO_URL", defaults.url),
        database=os.getenv("DB_NAME", defaults.database),
        accounts_collection=os.getenv("MONGO_ACCOUNTS_COLLECTION", defaults.accounts_collection),
        supply_points_collection=os.getenv(
            "MONGO_SUPPLY_POINTS_COLLECTION", defaults.supply_points_collection,
        ),
        statements_collection=os.getenv("MONGO_STATEMENTS_COLLECTION", defaults.statements_collection),
    )
