"""chaco-facturas: invoice collection from Chaco utility portals.

The package logs into the SAMEEP (water) GeneXus portal as an aggregator
account, walks every account, supply point, and statement, and stores the
invoice PDFs. A second collector reads the SECHEEP (electricity) virtual
office.

Architecture
------------
* ``scraper``: Playwright session, page parsers (lxml), navigation, popup capture, httpx fetch.
* ``collector``: Phase 1 walk with bounded retries, Phase 2 fetch of pending documents.
* ``store``: JSON checkpoints, content-hashed PDF files, MongoDB mirror (pymongo).
* ``extractor``: Optional PDF text extraction (pdfplumber).

Configuration and credentials
-----------------------------
Portal settings live in ``config/config.json``. Credentials come from
``SAMEEP_USER``/``SAMEEP_PASS`` and ``SECHEEP_USER``/``SECHEEP_PASS``; the
document store from ``MONGO_URL`` and ``DB_NAME``. Paths default to the
``data/`` tree but respect ``DATA_DIR`` and ``LOGS_DIR``.

Examples
--------
Collect references, then fetch documents:

    >>> python -m chaco_facturas.main phase1
    >>> python -m chaco_facturas.main phase2

Both phases in one go, without the document store:

    >>> python -m chaco_facturas.main all --no-db
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
