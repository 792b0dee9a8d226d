"""
SQLite-based storage for invoices, projects and approval requests.

Uses explicit ``BEGIN IMMEDIATE`` transactions so that concurrent writers are
serialised by SQLite's database lock, and conditional updates (version checks,
status compare-and-swap) instead of read-then-write.
"""

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import date, datetime, UTC
from enum import IntEnum
from typing import Iterator, List, Optional, Sequence
from loguru import logger
from .store_base import AnalysisBatch, BatchCommitResult, InvoiceStoreBase
from ...models import ApprovalRequest, ApprovalStatus, Invoice, InvoiceStatus, Project

SCHEMA = """
CREATE TABLE IF NOT EXISTS projects (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    netvisor_project_key INTEGER NOT NULL UNIQUE,
    project_code TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    address TEXT,
    project_manager_email TEXT,
    start_date TEXT,
    end_date TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS invoices (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    netvisor_invoice_key INTEGER NOT NULL UNIQUE,
    invoice_number TEXT NOT NULL,
    vendor_name TEXT NOT NULL,
    amount REAL NOT NULL,
    invoice_date TEXT,
    due_date TEXT,
    ocr_text TEXT,
    ocr_processed_at TEXT,
    suggested_project_key INTEGER,
    suggested_project_id INTEGER REFERENCES projects(id),
    ai_confidence_score REAL,
    ai_reasoning TEXT,
    ai_analyzed_at TEXT,
    match_method TEXT,
    final_project_key INTEGER,
    final_project_id INTEGER REFERENCES projects(id),
    updated_to_accounting_system_at TEXT,
    status INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT,
    version INTEGER NOT NULL DEFAULT 0,
    CHECK (ai_confidence_score IS NULL
           OR (suggested_project_key IS NOT NULL AND ai_reasoning IS NOT NULL))
);

CREATE TABLE IF NOT EXISTS approval_requests (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    invoice_id INTEGER NOT NULL REFERENCES invoices(id) ON DELETE CASCADE,
    token TEXT NOT NULL UNIQUE,
    status INTEGER NOT NULL DEFAULT 0,
    suggested_project_key INTEGER,
    suggested_project_id INTEGER REFERENCES projects(id),
    confidence_score REAL,
    reasoning TEXT,
    approved_project_key INTEGER,
    approved_project_id INTEGER REFERENCES projects(id),
    rejection_reason TEXT,
    claimed_by TEXT,
    claimed_at TEXT,
    sent_at TEXT,
    responded_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT,
    CHECK (status IN (0, 10, 20, 30))
);

CREATE INDEX IF NOT EXISTS idx_invoices_status ON invoices(status);
CREATE INDEX IF NOT EXISTS idx_approvals_status ON approval_requests(status);

-- At most one pending approval request per invoice
CREATE UNIQUE INDEX IF NOT EXISTS idx_approvals_pending_invoice
    ON approval_requests(invoice_id) WHERE status = 0;
"""

PROJECT_COLUMNS = [
    "netvisor_project_key", "project_code", "name", "address", "project_manager_email",
    "start_date", "end_date", "is_active", "created_at", "updated_at",
]

INVOICE_INSERT_COLUMNS = [
    "netvisor_invoice_key", "invoice_number", "vendor_name", "amount", "invoice_date", "due_date",
    "ocr_text", "ocr_processed_at", "suggested_project_key", "suggested_project_id",
    "ai_confidence_score", "ai_reasoning", "ai_analyzed_at", "match_method",
    "final_project_key", "final_project_id", "updated_to_accounting_system_at",
    "status", "created_at", "updated_at", "version",
]

# Fields the analyzer may change
INVOICE_ANALYSIS_COLUMNS = [
    "ocr_text", "ocr_processed_at", "suggested_project_key", "suggested_project_id",
    "ai_confidence_score", "ai_reasoning", "ai_analyzed_at", "match_method",
    "final_project_key", "final_project_id", "updated_to_accounting_system_at",
    "status", "updated_at",
]

APPROVAL_INSERT_COLUMNS = [
    "invoice_id", "token", "status", "suggested_project_key", "suggested_project_id",
    "confidence_score", "reasoning", "sent_at", "created_at", "updated_at",
]


def _to_db(value):
    """Convert model values to SQLite-friendly scalars"""
    if isinstance(value, datetime):
        return value.isoformat(timespec="microseconds")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, IntEnum):
        return int(value)
    if isinstance(value, bool):
        return int(value)
    return value


def _values(model, columns: Sequence[str]) -> list:
    return [_to_db(getattr(model, column)) for column in columns]


class SQLiteInvoiceStore(InvoiceStoreBase):
    """
    SQLite-backed store with persistent storage.

    Features:
    - Persistent storage across application restarts
    - Foreign keys with cascade delete (approval requests follow their invoice)
    - Optimistic concurrency on invoices (``version`` column)
    - Compare-and-swap approval resolution
    """

    def __init__(self, db_path: str = "invoice_robot.db"):
        """
        Initialize store with database path.

        Args:
            db_path: Path to SQLite database file (default: invoice_robot.db)
        """
        self.db_path = db_path
        self._init_database()

    def _init_database(self):
        """Create tables and indexes if they don't exist"""
        with self._connect() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Connection in autocommit mode; transactions are opened explicitly"""
        conn = sqlite3.connect(self.db_path, timeout=30, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Write transaction holding the database write lock from the start"""
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except Exception:
                conn.execute("ROLLBACK")
                raise
            else:
                conn.execute("COMMIT")

    # Projects

    def save_projects(self, projects: Sequence[Project]) -> int:
        now = datetime.now(UTC)
        placeholders = ", ".join("?" for _ in PROJECT_COLUMNS)

        with self._transaction() as conn:
            for project in projects:
                values = _values(project, PROJECT_COLUMNS)
                values[PROJECT_COLUMNS.index("created_at")] = _to_db(project.created_at or now)
                conn.execute(
                    f"""
                    INSERT INTO projects ({', '.join(PROJECT_COLUMNS)})
                    VALUES ({placeholders})
                    ON CONFLICT(netvisor_project_key) DO UPDATE SET
                        name = excluded.name,
                        address = excluded.address,
                        is_active = excluded.is_active,
                        updated_at = ?
                    """,
                    (*values, _to_db(now)),
                )

        return len(projects)

    def list_projects(self, active_only: bool = True) -> List[Project]:
        query = "SELECT * FROM projects"
        if active_only:
            query += " WHERE is_active = 1"
        query += " ORDER BY project_code"

        with self._connect() as conn:
            rows = conn.execute(query).fetchall()
        return [Project.model_validate(dict(row)) for row in rows]

    def get_project_by_key(self, project_key: int) -> Optional[Project]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM projects WHERE netvisor_project_key = ?", (project_key,)
            ).fetchone()
        return Project.model_validate(dict(row)) if row else None

    # Invoices

    def add_invoice(self, invoice: Invoice) -> Invoice:
        invoice = invoice.model_copy(update={"created_at": invoice.created_at or datetime.now(UTC)})
        placeholders = ", ".join("?" for _ in INVOICE_INSERT_COLUMNS)

        with self._transaction() as conn:
            cursor = conn.execute(
                f"INSERT INTO invoices ({', '.join(INVOICE_INSERT_COLUMNS)}) VALUES ({placeholders})",
                _values(invoice, INVOICE_INSERT_COLUMNS),
            )
            invoice.id = cursor.lastrowid

        return invoice

    def get_invoice(self, invoice_id: int) -> Optional[Invoice]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM invoices WHERE id = ?", (invoice_id,)).fetchone()
        return Invoice.model_validate(dict(row)) if row else None

    def get_invoice_by_key(self, invoice_key: int) -> Optional[Invoice]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM invoices WHERE netvisor_invoice_key = ?", (invoice_key,)
            ).fetchone()
        return Invoice.model_validate(dict(row)) if row else None

    def list_invoices(self, status: InvoiceStatus | None = None) -> List[Invoice]:
        with self._connect() as conn:
            if status is None:
                rows = conn.execute("SELECT * FROM invoices ORDER BY id").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM invoices WHERE status = ? ORDER BY id", (int(status),)
                ).fetchall()
        return [Invoice.model_validate(dict(row)) for row in rows]

    def delete_invoice(self, invoice_id: int) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM invoices WHERE id = ?", (invoice_id,))
            return cursor.rowcount > 0

    def save_analysis_batch(self, batch: AnalysisBatch) -> BatchCommitResult:
        result = BatchCommitResult()
        now = datetime.now(UTC)
        assignments = ", ".join(f"{column} = ?" for column in INVOICE_ANALYSIS_COLUMNS)
        approval_placeholders = ", ".join("?" for _ in APPROVAL_INSERT_COLUMNS)

        with self._transaction() as conn:
            for invoice in batch.invoices:
                invoice.updated_at = now
                approvals = [a for a in batch.approval_requests if a.invoice_id == invoice.id]

                conn.execute("SAVEPOINT invoice_write")
                try:
                    cursor = conn.execute(
                        f"UPDATE invoices SET {assignments}, version = version + 1 "
                        "WHERE id = ? AND version = ?",
                        (*_values(invoice, INVOICE_ANALYSIS_COLUMNS), invoice.id, invoice.version),
                    )
                    if cursor.rowcount == 0:
                        raise _VersionConflict()

                    for approval in approvals:
                        approval.created_at = approval.created_at or now
                        approval.updated_at = now
                        cursor = conn.execute(
                            f"INSERT INTO approval_requests ({', '.join(APPROVAL_INSERT_COLUMNS)}) "
                            f"VALUES ({approval_placeholders})",
                            _values(approval, APPROVAL_INSERT_COLUMNS),
                        )
                        approval.id = cursor.lastrowid
                except (_VersionConflict, sqlite3.IntegrityError) as e:
                    conn.execute("ROLLBACK TO invoice_write")
                    conn.execute("RELEASE invoice_write")
                    logger.warning(
                        "Invoice changed concurrently, analysis result discarded",
                        invoice_id=invoice.id,
                        reason=type(e).__name__,
                    )
                    result.conflicted_invoice_ids.append(invoice.id)
                    continue

                conn.execute("RELEASE invoice_write")
                result.saved_invoice_ids.append(invoice.id)
                result.created_approvals.extend(approvals)

        for invoice in batch.invoices:
            if invoice.id in result.saved_invoice_ids:
                invoice.version += 1

        return result

    # Approval requests

    def get_approval_by_token(self, token: str) -> Optional[ApprovalRequest]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM approval_requests WHERE token = ?", (token,)
            ).fetchone()
        return ApprovalRequest.model_validate(dict(row)) if row else None

    def list_approvals(self, status: ApprovalStatus | None = None) -> List[ApprovalRequest]:
        with self._connect() as conn:
            if status is None:
                rows = conn.execute(
                    "SELECT * FROM approval_requests ORDER BY created_at DESC, id DESC"
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM approval_requests WHERE status = ? ORDER BY created_at DESC, id DESC",
                    (int(status),),
                ).fetchall()
        return [ApprovalRequest.model_validate(dict(row)) for row in rows]

    def claim_approval(self, token: str, stale_before: datetime) -> Optional[ApprovalRequest]:
        claimed_by = str(uuid.uuid4())
        now = datetime.now(UTC)

        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE approval_requests
                SET claimed_by = ?, claimed_at = ?
                WHERE token = ? AND status = ?
                  AND (claimed_by IS NULL OR claimed_at < ?)
                """,
                (claimed_by, _to_db(now), token, int(ApprovalStatus.PENDING), _to_db(stale_before)),
            )
            if cursor.rowcount == 0:
                return None

            row = conn.execute(
                "SELECT * FROM approval_requests WHERE token = ?", (token,)
            ).fetchone()

        return ApprovalRequest.model_validate(dict(row))

    def release_approval(self, approval: ApprovalRequest) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE approval_requests
                SET claimed_by = NULL, claimed_at = NULL
                WHERE id = ? AND status = ? AND claimed_by = ?
                """,
                (approval.id, int(ApprovalStatus.PENDING), approval.claimed_by),
            )

        if cursor.rowcount:
            approval.claimed_by = None
            approval.claimed_at = None
        return cursor.rowcount > 0

    def complete_approval(self, approval: ApprovalRequest, invoice: Invoice) -> bool:
        if approval.status is ApprovalStatus.PENDING:
            raise ValueError("complete_approval requires a resolved approval status")

        now = datetime.now(UTC)
        approval.updated_at = now
        invoice.updated_at = now

        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE approval_requests
                SET status = ?,
                    approved_project_key = ?,
                    approved_project_id = ?,
                    rejection_reason = ?,
                    responded_at = ?,
                    updated_at = ?,
                    claimed_by = NULL,
                    claimed_at = NULL
                WHERE id = ? AND status = ? AND claimed_by IS ?
                """,
                (
                    int(approval.status),
                    approval.approved_project_key,
                    approval.approved_project_id,
                    approval.rejection_reason,
                    _to_db(approval.responded_at),
                    _to_db(approval.updated_at),
                    approval.id,
                    int(ApprovalStatus.PENDING),
                    approval.claimed_by,
                ),
            )
            if cursor.rowcount == 0:
                return False

            cursor = conn.execute(
                """
                UPDATE invoices
                SET status = ?,
                    final_project_key = ?,
                    final_project_id = ?,
                    updated_to_accounting_system_at = ?,
                    updated_at = ?,
                    version = version + 1
                WHERE id = ?
                """,
                (
                    int(invoice.status),
                    invoice.final_project_key,
                    invoice.final_project_id,
                    _to_db(invoice.updated_to_accounting_system_at),
                    _to_db(invoice.updated_at),
                    invoice.id,
                ),
            )
            if cursor.rowcount == 0:
                raise LookupError(f"Invoice {invoice.id} of approval {approval.id} not found")

        invoice.version += 1
        approval.claimed_by = None
        approval.claimed_at = None
        return True

    def mark_approval_sent(self, approval_id: int, sent_at: datetime) -> None:
        with self._transaction() as conn:
            conn.execute(
                "UPDATE approval_requests SET sent_at = ?, updated_at = ? WHERE id = ?",
                (_to_db(sent_at), _to_db(datetime.now(UTC)), approval_id),
            )

    def expire_approvals(
        self, created_before: datetime, claim_stale_before: datetime | None = None
    ) -> List[ApprovalRequest]:
        now = datetime.now(UTC)
        # Without a staleness cutoff every claimed request is left alone
        stale_before = _to_db(claim_stale_before) if claim_stale_before else ""

        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM approval_requests
                WHERE status = ? AND created_at < ?
                  AND (claimed_by IS NULL OR claimed_at < ?)
                """,
                (int(ApprovalStatus.PENDING), _to_db(created_before), stale_before),
            ).fetchall()

            expired = []
            for row in rows:
                cursor = conn.execute(
                    """
                    UPDATE approval_requests
                    SET status = ?, updated_at = ?, claimed_by = NULL, claimed_at = NULL
                    WHERE id = ? AND status = ?
                    """,
                    (int(ApprovalStatus.EXPIRED), _to_db(now), row["id"], int(ApprovalStatus.PENDING)),
                )
                if cursor.rowcount:
                    approval = ApprovalRequest.model_validate(dict(row))
                    approval.status = ApprovalStatus.EXPIRED
                    approval.updated_at = now
                    approval.claimed_by = None
                    approval.claimed_at = None
                    expired.append(approval)

        return expired


class _VersionConflict(Exception):
    pass
