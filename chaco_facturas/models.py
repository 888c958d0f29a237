"""Data model for a collection run: accounts, supply points, and statements.

A :class:`CollectionRun` exclusively owns its account tree. Back references
(``account_id`` on a supply point, ``account_id``/``supply_point_id`` on a
statement) are lookup keys, not object references, so the tree survives a
JSON round trip unchanged. Lookups scan the tree.

Identifier lifecycle
--------------------
An account is discovered with a positional placeholder (``list_id``, the
suffix of its "enter" control such as ``"0001"``). ``list_id`` never
changes and is what navigation uses in both phases. ``id`` starts equal to
``list_id`` and is replaced exactly once, through
:meth:`Account.adopt_authoritative_id`, by the account number parsed from
the first statement row. Supply point ids are always
``f"{account_id}_{supply_number}"`` and are only changed through
:meth:`SupplyPoint.rebind`, which recomputes them.
"""

from __future__ import annotations

import base64
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any

PLACEHOLDER_NAME = "Por determinar"


class EntityStatus(str, Enum):
    """Processing state of an account or supply point."""

    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"


def supply_point_id(account_id: str, supply_number: str) -> str:
    """Derive the canonical supply point id."""
    return f"{account_id}_{supply_number}"


def _now() -> datetime:
    return datetime.now(UTC)


def _date_to_str(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


def _str_to_date(value: str | None) -> date | None:
    if not value:
        return None
    return date.fromisoformat(value[:10])


def _str_to_datetime(value: str | None) -> datetime:
    if not value:
        return _now()
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class DocumentRef:
    """A short-lived, session-scoped reference to a generated document."""

    url: str
    suggested_filename: str


@dataclass
class Statement:
    """One billing document entry (a row of the statements table)."""

    id: str
    account_id: str
    supply_point_id: str
    full_invoice_number: str
    issue_date: date | None = None
    period: str = ""
    internal_code: str = ""
    document_type: str = ""
    document_number: str = ""
    first_due_date: date | None = None
    second_due_date: date | None = None
    original_amount: float = 0.0
    surcharge: float = 0.0
    total_amount: float = 0.0
    has_document: bool = False
    document_url: str | None = None
    suggested_filename: str | None = None
    hash: str | None = None
    text_content: str | None = None
    content: bytes | None = None
    artifact_path: str | None = None
    processed_at: datetime = field(default_factory=_now)

    def attach_reference(self, ref: DocumentRef) -> None:
        """Record a captured document reference."""
        self.document_url = ref.url
        self.suggested_filename = ref.suggested_filename

    def to_dict(self) -> dict[str, Any]:
        """Serialize with camelCase keys; binary content is base64-encoded."""
        return {
            "id": self.id,
            "accountId": self.account_id,
            "supplyPointId": self.supply_point_id,
            "fullInvoiceNumber": self.full_invoice_number,
            "issueDate": _date_to_str(self.issue_date),
            "period": self.period,
            "internalCode": self.internal_code,
            "documentType": self.document_type,
            "documentNumber": self.document_number,
            "firstDueDate": _date_to_str(self.first_due_date),
            "secondDueDate": _date_to_str(self.second_due_date),
            "originalAmount": self.original_amount,
            "surcharge": self.surcharge,
            "totalAmount": self.total_amount,
            "hasDocument": self.has_document,
            "documentUrl": self.document_url,
            "suggestedFilename": self.suggested_filename,
            "hash": self.hash,
            "textContent": self.text_content,
            "content": base64.b64encode(self.content).decode("ascii") if self.content else None,
            "artifactPath": self.artifact_path,
            "processedAt": self.processed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Statement:
        """Rebuild a statement from :meth:`to_dict` output."""
        content = data.get("content")
        return cls(
            id=data["id"],
            account_id=data["accountId"],
            supply_point_id=data["supplyPointId"],
            full_invoice_number=data.get("fullInvoiceNumber", ""),
            issue_date=_str_to_date(data.get("issueDate")),
            period=data.get("period", ""),
            internal_code=data.get("internalCode", ""),
            document_type=data.get("documentType", ""),
            document_number=data.get("documentNumber", ""),
            first_due_date=_str_to_date(data.get("firstDueDate")),
            second_due_date=_str_to_date(data.get("secondDueDate")),
            original_amount=float(data.get("originalAmount", 0.0)),
            surcharge=float(data.get("surcharge", 0.0)),
            total_amount=float(data.get("totalAmount", 0.0)),
            has_document=bool(data.get("hasDocument", False)),
            document_url=data.get("documentUrl"),
            suggested_filename=data.get("suggestedFilename"),
            hash=data.get("hash"),
            text_content=data.get("textContent"),
            content=base64.b64decode(content) if content else None,
            artifact_path=data.get("artifactPath"),
            processed_at=_str_to_datetime(data.get("processedAt")),
        )


@dataclass
class SupplyPoint:
    """One physical service connection under an account."""

    id: str
    account_id: str
    supply_number: str
    street: str = ""
    house_number: str = ""
    floor: str = ""
    position: int = 0  # row order on the account page
    statements: list[Statement] = field(default_factory=list)
    status: EntityStatus = EntityStatus.PENDING

    @classmethod
    def create(
        cls,
        account_id: str,
        supply_number: str,
        street: str = "",
        house_number: str = "",
        floor: str = "",
        position: int = 0,
    ) -> SupplyPoint:
        """Create a supply point with its derived id."""
        return cls(
            id=supply_point_id(account_id, supply_number),
            account_id=account_id,
            supply_number=supply_number,
            street=street,
            house_number=house_number,
            floor=floor,
            position=position,
        )

    def rebind(self, account_id: str, supply_number: str) -> None:
        """Change account and/or supply number, recomputing every dependent key."""
        self.account_id = account_id
        self.supply_number = supply_number
        self.id = supply_point_id(account_id, supply_number)
        for statement in self.statements:
            statement.account_id = account_id
            statement.supply_point_id = self.id

    def id_is_consistent(self) -> bool:
        """Re-derive the id from its components and compare."""
        return self.id == supply_point_id(self.account_id, self.supply_number)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "accountId": self.account_id,
            "supplyNumber": self.supply_number,
            "street": self.street,
            "houseNumber": self.house_number,
            "floor": self.floor,
            "position": self.position,
            "status": self.status.value,
            "statements": [s.to_dict() for s in self.statements],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SupplyPoint:
        return cls(
            id=data["id"],
            account_id=data["accountId"],
            supply_number=data["supplyNumber"],
            street=data.get("street", ""),
            house_number=data.get("houseNumber", ""),
            floor=data.get("floor", ""),
            position=int(data.get("position", 0)),
            statements=[Statement.from_dict(s) for s in data.get("statements", [])],
            status=EntityStatus(data.get("status", EntityStatus.PENDING.value)),
        )


@dataclass
class Account:
    """One billing customer."""

    id: str
    list_id: str
    display_name: str = PLACEHOLDER_NAME
    supply_points: list[SupplyPoint] = field(default_factory=list)
    status: EntityStatus = EntityStatus.PENDING
    id_confirmed: bool = False

    @classmethod
    def discovered(cls, list_id: str) -> Account:
        """Create an account from its landing-page placeholder id."""
        return cls(id=list_id, list_id=list_id)

    def adopt_authoritative_id(self, real_id: str) -> bool:
        """Replace the placeholder id with the id parsed from billing data.

        Supply points are rebound so their ids stay derived from the new
        account id. Returns ``True`` when the id changed.
        """
        changed = real_id != self.id
        self.id = real_id
        self.id_confirmed = True
        for supply_point in self.supply_points:
            if supply_point.account_id != real_id:
                supply_point.rebind(real_id, supply_point.supply_number)
        return changed

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "listId": self.list_id,
            "displayName": self.display_name,
            "idConfirmed": self.id_confirmed,
            "status": self.status.value,
            "supplyPoints": [sp.to_dict() for sp in self.supply_points],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Account:
        return cls(
            id=data["id"],
            list_id=data.get("listId", data["id"]),
            display_name=data.get("displayName", PLACEHOLDER_NAME),
            supply_points=[SupplyPoint.from_dict(sp) for sp in data.get("supplyPoints", [])],
            status=EntityStatus(data.get("status", EntityStatus.PENDING.value)),
            id_confirmed=bool(data.get("idConfirmed", False)),
        )


@dataclass
class CollectionRun:
    """Checkpoint root: the account tree plus denormalized counters."""

    accounts: list[Account] = field(default_factory=list)
    total_accounts: int = 0
    total_supply_points: int = 0
    total_statements: int = 0
    total_statements_with_document: int = 0
    total_statements_without_document: int = 0
    accounts_processed: int = 0
    collected_at: datetime = field(default_factory=_now)

    def iter_supply_points(self) -> Iterator[tuple[Account, SupplyPoint]]:
        for account in self.accounts:
            for supply_point in account.supply_points:
                yield account, supply_point

    def iter_statements(self) -> Iterator[tuple[Account, SupplyPoint, Statement]]:
        for account, supply_point in self.iter_supply_points():
            for statement in supply_point.statements:
                yield account, supply_point, statement

    def expected_counters(self) -> dict[str, int]:
        """Aggregate the counters from the tree."""
        statements = [s for _, _, s in self.iter_statements()]
        with_document = sum(1 for s in statements if s.has_document)
        return {
            "total_accounts": len(self.accounts),
            "total_supply_points": sum(len(a.supply_points) for a in self.accounts),
            "total_statements": len(statements),
            "total_statements_with_document": with_document,
            "total_statements_without_document": len(statements) - with_document,
            "accounts_processed": sum(1 for a in self.accounts if a.status is EntityStatus.DONE),
        }

    def recount(self) -> None:
        """Recompute the tree totals (``accounts_processed`` is event-driven)."""
        expected = self.expected_counters()
        self.total_accounts = expected["total_accounts"]
        self.total_supply_points = expected["total_supply_points"]
        self.total_statements = expected["total_statements"]
        self.total_statements_with_document = expected["total_statements_with_document"]
        self.total_statements_without_document = expected["total_statements_without_document"]

    def counters_consistent(self) -> bool:
        """Compare stored counters against the tree aggregates."""
        expected = self.expected_counters()
        return all(getattr(self, name) == value for name, value in expected.items())

    def find_account(self, account_id: str) -> Account | None:
        return next((a for a in self.accounts if a.id == account_id), None)

    def find_supply_point(self, supply_point_id_: str) -> SupplyPoint | None:
        return next((sp for _, sp in self.iter_supply_points() if sp.id == supply_point_id_), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "accounts": [a.to_dict() for a in self.accounts],
            "totalAccounts": self.total_accounts,
            "totalSupplyPoints": self.total_supply_points,
            "totalStatements": self.total_statements,
            "totalStatementsWithDocument": self.total_statements_with_document,
            "totalStatementsWithoutDocument": self.total_statements_without_document,
            "accountsProcessed": self.accounts_processed,
            "collectedAt": self.collected_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CollectionRun:
        """Rebuild a run exactly as stored; counters are not recomputed here."""
        return cls(
            accounts=[Account.from_dict(a) for a in data.get("accounts", [])],
            total_accounts=int(data.get("totalAccounts", 0)),
            total_supply_points=int(data.get("totalSupplyPoints", 0)),
            total_statements=int(data.get("totalStatements", 0)),
            total_statements_with_document=int(data.get("totalStatementsWithDocument", 0)),
            total_statements_without_document=int(data.get("totalStatementsWithoutDocument", 0)),
            accounts_processed=int(data.get("accountsProcessed", 0)),
            collected_at=_str_to_datetime(data.get("collectedAt")),
        )
