"""
CSV Import Engine

Imports a bank statement export into the user's transactions:
1. Parse the CSV and work out which columns hold date, amount, description
2. Mark the import job as processing
3. Parse every row, collecting per-row errors instead of failing
4. Drop rows whose dedup hash matches an existing or already-seen transaction
5. Insert the rest in batches, updating job progress after each batch
6. Mark the job completed with a truncated error log

Only problems with the file as a whole (empty, missing columns) are raised.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.imports.csv_parser import (
    BANK_PATTERNS,
    ColumnPatterns,
    detect_bank_format,
    find_column,
    generate_transaction_hash,
    normalize_amount,
    parse_amount,
    parse_csv,
    parse_date,
)
from app.models import ImportJob, ImportJobStatus, Transaction, generate_id, utc_now

logger = logging.getLogger(__name__)

EMPTY_CSV_MESSAGE = "CSV file is empty or invalid"
MISSING_COLUMNS_MESSAGE = "Could not find required columns (date, amount, description)"
CUSTOM_FORMAT = "custom"
IMPORT_SOURCE = "csv_import"

# Row numbers in the error log are 1-based and count the header line
HEADER_OFFSET = 2


class CsvImportError(Exception):
    """The file was rejected before any row was processed."""


class ImportJobNotFound(CsvImportError):
    """No import job with this id belongs to the user."""


class BatchFailurePolicy(str, Enum):
    """What to do when inserting one batch fails."""
    BEST_EFFORT = "best_effort"  # Record the batch and keep going
    ABORT = "abort"              # Record the batch and skip the rest


@dataclass
class ImportConfig:
    """Configuration for one import run."""
    batch_size: int = 100
    error_log_limit: int = 100
    batch_failure_policy: BatchFailurePolicy = BatchFailurePolicy.BEST_EFFORT

    @classmethod
    def from_settings(cls) -> "ImportConfig":
        return cls(
            batch_size=settings.CSV_IMPORT_BATCH_SIZE,
            error_log_limit=settings.CSV_IMPORT_ERROR_LOG_LIMIT,
            batch_failure_policy=(
                BatchFailurePolicy.ABORT
                if settings.CSV_IMPORT_ABORT_ON_BATCH_FAILURE
                else BatchFailurePolicy.BEST_EFFORT
            ),
        )


@dataclass
class ParsedRow:
    """One successfully parsed CSV line."""
    row_number: int
    date: str
    amount: Decimal  # already rounded to cents
    description: str

    @property
    def dedup_hash(self) -> str:
        return generate_transaction_hash(self.date, float(self.amount), self.description)


@dataclass
class ColumnIndices:
    date: int
    amount: int
    description: int


@dataclass
class ImportResult:
    """Outcome of an import run."""
    job_id: str
    bank_format: str
    total_rows: int = 0
    imported: int = 0
    duplicates: int = 0
    error_log: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def errors(self) -> int:
        return len(self.error_log)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "success": True,
            "imported": self.imported,
            "duplicates": self.duplicates,
            "errors": self.errors,
            "bankFormat": self.bank_format,
        }


def resolve_columns(
    headers: List[str],
    mapping: Optional[ColumnPatterns] = None,
) -> Tuple[str, ColumnIndices]:
    """
    Pick the column layout for a file.

    A caller mapping skips detection and reports the format as "custom".
    Raises CsvImportError if any of the three columns is missing.
    """
    if mapping is not None:
        bank_format, patterns = CUSTOM_FORMAT, mapping
    else:
        bank_format = detect_bank_format(headers)
        patterns = BANK_PATTERNS[bank_format]

    columns = ColumnIndices(
        date=find_column(headers, patterns.date_columns),
        amount=find_column(headers, patterns.amount_columns),
        description=find_column(headers, patterns.description_columns),
    )
    if -1 in (columns.date, columns.amount, columns.description):
        raise CsvImportError(MISSING_COLUMNS_MESSAGE)

    return bank_format, columns


def _cell(row: List[str], index: int) -> str:
    return row[index].strip() if index < len(row) else ""


def process_rows(
    rows: List[List[str]],
    columns: ColumnIndices,
    seen_hashes: Set[str],
) -> Tuple[List[ParsedRow], List[Dict[str, Any]], int]:
    """
    Parse and dedupe data rows.

    ``seen_hashes`` is extended with every accepted row, so a row repeated
    inside the same file counts as a duplicate too.

    Returns:
        Tuple of (rows to insert, row errors, duplicate count)
    """
    parsed: List[ParsedRow] = []
    errors: List[Dict[str, Any]] = []
    duplicates = 0

    for index, row in enumerate(rows):
        row_number = index + HEADER_OFFSET

        txn_date = parse_date(_cell(row, columns.date))
        if not txn_date:
            errors.append({"row": row_number, "error": "Invalid date format"})
            continue

        amount = parse_amount(_cell(row, columns.amount))
        if amount is not None:
            amount = normalize_amount(amount)
        if amount is None:
            errors.append({"row": row_number, "error": "Invalid amount format"})
            continue

        description = _cell(row, columns.description)
        if not description:
            errors.append({"row": row_number, "error": "Missing description"})
            continue

        candidate = ParsedRow(row_number=row_number, date=txn_date, amount=amount, description=description)
        dedup_hash = candidate.dedup_hash
        if dedup_hash in seen_hashes:
            duplicates += 1
            continue

        seen_hashes.add(dedup_hash)
        parsed.append(candidate)

    return parsed, errors, duplicates


class CsvImportEngine:
    """Imports one CSV upload for one user."""

    def __init__(self, db: AsyncSession, user_id: str, config: Optional[ImportConfig] = None):
        self.db = db
        self.user_id = user_id
        self.config = config or ImportConfig.from_settings()

    async def run(
        self,
        job_id: str,
        csv_content: str,
        mapping: Optional[ColumnPatterns] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ImportResult:
        """
        Run the import.

        Raises:
            ImportJobNotFound: job_id does not belong to the user
            CsvImportError: empty file or required columns missing
        """
        job = await self._get_job(job_id)
        if job is None:
            raise ImportJobNotFound(f"Import job {job_id} not found")

        logger.info(f"Processing import job {job_id} for user {self.user_id}")

        headers, rows = parse_csv(csv_content)
        if not headers or not rows:
            raise CsvImportError(EMPTY_CSV_MESSAGE)

        bank_format, columns = resolve_columns(headers, mapping)

        await self._update_job(
            job_id,
            status=ImportJobStatus.PROCESSING.value,
            total_rows=len(rows),
            started_at=utc_now(),
        )

        seen_hashes = await self._load_existing_hashes()
        parsed, errors, duplicates = process_rows(rows, columns, seen_hashes)

        result = ImportResult(
            job_id=job_id,
            bank_format=bank_format,
            total_rows=len(rows),
            duplicates=duplicates,
            error_log=errors,
        )

        await self._insert_in_batches(job_id, parsed, result, cancel_event)

        await self._update_job(
            job_id,
            status=ImportJobStatus.COMPLETED.value,
            processed_rows=len(rows),
            successful_rows=result.imported,
            failed_rows=result.errors,
            error_log=result.error_log[:self.config.error_log_limit],
            completed_at=utc_now(),
        )

        logger.info(
            f"Import complete: {result.imported} imported, {result.duplicates} duplicates skipped, "
            f"{result.errors} errors ({bank_format})"
        )
        return result

    # =========================================================================
    # Batch insertion
    # =========================================================================

    async def _insert_in_batches(
        self,
        job_id: str,
        parsed: List[ParsedRow],
        result: ImportResult,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        batch_size = self.config.batch_size

        for start in range(0, len(parsed), batch_size):
            batch = parsed[start:start + batch_size]

            if cancel_event is not None and cancel_event.is_set():
                result.error_log.append({
                    "row": batch[0].row_number,
                    "error": f"Import cancelled, {len(parsed) - start} rows not imported",
                })
                break

            try:
                await self._insert_batch(batch)
                result.imported += len(batch)
            except SQLAlchemyError as e:
                first, last = batch[0].row_number, batch[-1].row_number
                logger.error(f"Batch insert failed for job {job_id}, rows {first}-{last}: {e}")
                result.error_log.append({
                    "row": first,
                    "error": f"Batch insert failed for rows {first}-{last}: {e}",
                })
                if self.config.batch_failure_policy == BatchFailurePolicy.ABORT:
                    remaining = len(parsed) - (start + len(batch))
                    if remaining:
                        result.error_log.append({
                            "row": parsed[start + len(batch)].row_number,
                            "error": f"Import aborted, {remaining} rows not attempted",
                        })
                    break

            await self._update_job(
                job_id,
                processed_rows=min(start + batch_size, len(parsed)) + result.duplicates + result.errors,
                successful_rows=result.imported,
                failed_rows=result.errors,
            )

    async def _insert_batch(self, batch: List[ParsedRow]) -> None:
        """Insert one batch inside a savepoint so a failure leaves the session usable."""
        async with self.db.begin_nested():
            self.db.add_all([
                Transaction(
                    id=generate_id("txn"),
                    user_id=self.user_id,
                    transaction_date=date.fromisoformat(row.date),
                    amount=row.amount,
                    merchant=row.description,
                    category="uncategorized",
                    is_recurring=False,
                    source=IMPORT_SOURCE,
                )
                for row in batch
            ])
        await self.db.commit()

    # =========================================================================
    # Queries
    # =========================================================================

    async def _load_existing_hashes(self) -> Set[str]:
        """Dedup hashes of every transaction the user already has."""
        hashes = set()
        for txn_date, amount, merchant in await self._fetch_existing_transactions():
            date_text = txn_date.isoformat() if isinstance(txn_date, date) else str(txn_date)
            cents = normalize_amount(amount)
            if cents is None:
                continue
            hashes.add(generate_transaction_hash(date_text, float(cents), merchant or ""))
        return hashes

    async def _fetch_existing_transactions(self) -> List[Tuple[date, Decimal, Optional[str]]]:
        result = await self.db.execute(
            select(Transaction.transaction_date, Transaction.amount, Transaction.merchant).where(
                Transaction.user_id == self.user_id
            )
        )
        return [tuple(row) for row in result.all()]

    async def _get_job(self, job_id: str) -> Optional[ImportJob]:
        result = await self.db.execute(
            select(ImportJob).where(
                ImportJob.id == job_id,
                ImportJob.user_id == self.user_id,
            )
        )
        return result.scalar_one_or_none()

    async def _update_job(self, job_id: str, **values: Any) -> None:
        await self.db.execute(
            update(ImportJob)
            .where(ImportJob.id == job_id, ImportJob.user_id == self.user_id)
            .values(**values)
        )
        await self.db.commit()
