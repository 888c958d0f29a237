"""Content-addressed storage of invoice PDFs plus the MongoDB mirror.

Artifacts
---------
Files live under ``<artifact dir>/<account id>/<suggested filename>``. A
``manifest.json`` in the artifact directory maps SHA-256 content hashes to
relative paths; bytes whose hash is already in the manifest are never
written again, whichever statement they arrive with.

Document store
--------------
:class:`MongoRepository` keeps one record per account and per supply
point (replaced by ``id``) and one per statement, inserted only when no
record with the same ``(document number or invoice number, hash)`` key
exists. Statements with an already-known hash are not inserted at all.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pymongo import MongoClient
from pymongo.errors import PyMongoError

from chaco_facturas.config import ARTIFACT_DIR, MongoSettings, setup_logging
from chaco_facturas.errors import PersistenceError
from chaco_facturas.extractor.pdf_text import extract_text_from_bytes
from chaco_facturas.utils.parsing import sanitize_filename

if TYPE_CHECKING:
    from pymongo.database import Database

    from chaco_facturas.models import Account, CollectionRun, Statement, SupplyPoint

logger = setup_logging(__name__)

MANIFEST_NAME = "manifest.json"


def content_hash(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


@dataclass
class StoredArtifact:
    """Where a document ended up and whether this call wrote it."""

    path: Path
    hash: str
    created: bool


class MongoRepository:
    """Account, supply point, and statement records in MongoDB."""

    def __init__(
        self,
        database: Database,
        settings: MongoSettings | None = None,
        client: MongoClient | None = None,
    ) -> None:
        settings = settings or MongoSettings()
        self._client = client
        self.accounts = database[settings.accounts_collection]
        self.supply_points = database[settings.supply_points_collection]
        self.statements = database[settings.statements_collection]

    @classmethod
    def connect(cls, settings: MongoSettings) -> MongoRepository:
        """Open a client and verify the server answers.

        Raises
        ------
        PersistenceError
            If the server cannot be reached.
        """
        client: MongoClient = MongoClient(settings.url, serverSelectionTimeoutMS=settings.server_selection_timeout_ms)
        try:
            client.admin.command("ping")
        except PyMongoError as e:
            client.close()
            msg = f"Document store unreachable at {settings.url}: {e}"
            raise PersistenceError(msg) from e

        logger.info("Connected to MongoDB database %s", settings.database)
        return cls(client[settings.database], settings, client=client)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def upsert_account(self, account: Account) -> None:
        record = {
            "id": account.id,
            "listId": account.list_id,
            "displayName": account.display_name,
            "idConfirmed": account.id_confirmed,
            "status": account.status.value,
            "supplyPointIds": [sp.id for sp in account.supply_points],
        }
        self._write(lambda: self.accounts.replace_one({"id": account.id}, record, upsert=True))

    def upsert_supply_point(self, supply_point: SupplyPoint) -> None:
        record = supply_point.to_dict()
        record.pop("statements")
        record["statementIds"] = [s.id for s in supply_point.statements]
        self._write(lambda: self.supply_points.replace_one({"id": supply_point.id}, record, upsert=True))

    def insert_statement(self, statement: Statement) -> bool:
        """Insert ``statement`` unless its identity key is already stored.

        Returns
        -------
        bool
            ``True`` when a new record was created.
        """
        record = statement.to_dict()
        record["content"] = statement.content  # raw bytes map to BSON binary
        if statement.document_number:
            key: dict[str, Any] = {"documentNumber": statement.document_number, "hash": statement.hash}
        else:
            key = {"fullInvoiceNumber": statement.full_invoice_number, "hash": statement.hash}

        result = self._write(lambda: self.statements.update_one(key, {"$setOnInsert": record}, upsert=True))
        return result.upserted_id is not None

    def has_hash(self, digest: str) -> bool:
        try:
            return self.statements.find_one({"hash": digest}, {"_id": 1}) is not None
        except PyMongoError as e:
            msg = f"Document store lookup failed: {e}"
            raise PersistenceError(msg) from e

    def persist_run(self, run: CollectionRun) -> int:
        """Upsert the run's accounts and supply points; insert stored statements.

        Returns
        -------
        int
            Number of statement records created.
        """
        inserted = 0
        for account in run.accounts:
            self.upsert_account(account)
            for supply_point in account.supply_points:
                self.upsert_supply_point(supply_point)
                for statement in supply_point.statements:
                    if not statement.hash or self.has_hash(statement.hash):
                        continue
                    if self.insert_statement(statement):
                        inserted += 1
        logger.info("Persisted %d accounts, %d new statements", len(run.accounts), inserted)
        return inserted

    @staticmethod
    def _write(operation: Any) -> Any:
        try:
            return operation()
        except PyMongoError as e:
            msg = f"Document store write failed: {e}"
            raise PersistenceError(msg) from e


class ArtifactStore:
    """Write validated PDFs once per content hash."""

    def __init__(
        self,
        directory: Path = ARTIFACT_DIR,
        repository: MongoRepository | None = None,
        extract_text: bool = False,
        keep_binary: bool = False,
    ) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.repository = repository
        self.extract_text = extract_text
        self.keep_binary = keep_binary
        self._manifest = self._load_manifest()

    @property
    def manifest_path(self) -> Path:
        return self.directory / MANIFEST_NAME

    def _load_manifest(self) -> dict[str, str]:
        if not self.manifest_path.exists():
            return {}
        try:
            with self.manifest_path.open(encoding="utf-8") as f:
                return json.load(f)  # type: ignore[no-any-return]
        except (OSError, json.JSONDecodeError) as e:
            msg = f"Artifact manifest unreadable: {e}"
            raise PersistenceError(msg) from e

    def _save_manifest(self) -> None:
        with self.manifest_path.open("w", encoding="utf-8") as f:
            json.dump(self._manifest, f, indent=2, sort_keys=True)

    def contains(self, digest: str) -> bool:
        """Whether bytes with this hash are already stored."""
        if digest in self._manifest:
            return True
        return self.repository is not None and self.repository.has_hash(digest)

    def _target_path(self, account: Account, statement: Statement, digest: str) -> Path:
        folder = self.directory / sanitize_filename(account.id)
        name = sanitize_filename(statement.suggested_filename or f"{statement.full_invoice_number}.pdf")
        path = folder / name
        if path.exists():
            path = folder / f"{path.stem}-{digest[:12]}{path.suffix}"
        return path

    def save(self, account: Account, supply_point: SupplyPoint, statement: Statement, content: bytes) -> StoredArtifact:
        """Store ``content`` for ``statement`` unless identical bytes exist.

        Parameters
        ----------
        account : Account
            Owner account, used for the artifact folder.
        supply_point : SupplyPoint
            Owner supply point, mirrored to the document store.
        statement : Statement
            Statement the bytes belong to; its ``hash`` and
            ``artifact_path`` are set.
        content : bytes
            Validated PDF bytes.

        Returns
        -------
        StoredArtifact
            Final path, hash, and whether a new file was written.

        Raises
        ------
        PersistenceError
            If the file or manifest cannot be written, or the document
            store rejects the record.
        """
        digest = content_hash(content)
        existing = self._manifest.get(digest)

        if existing is not None:
            path = self.directory / existing
            created = False
            logger.info("Duplicate content for %s (same as %s)", statement.full_invoice_number, existing)
        else:
            path = self._target_path(account, statement, digest)
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(content)
                self._manifest[digest] = path.relative_to(self.directory).as_posix()
                self._save_manifest()
            except OSError as e:
                msg = f"Could not write artifact {path}: {e}"
                raise PersistenceError(msg) from e
            created = True
            logger.info("Stored %s (%d bytes)", path.name, len(content))

        statement.hash = digest
        statement.artifact_path = str(path)
        if self.extract_text:
            statement.text_content = extract_text_from_bytes(content)
        if self.keep_binary:
            statement.content = content

        if self.repository is not None:
            self.repository.upsert_account(account)
            self.repository.upsert_supply_point(supply_point)
            if not self.repository.has_hash(digest):
                self.repository.insert_statement(statement)

        return StoredArtifact(path=path, hash=digest, created=created)
