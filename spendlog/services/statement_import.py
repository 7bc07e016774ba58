"""
Statement Import Pipeline

upload -> parse -> categorize -> commit, with cancel at any non-terminal
point and a TTL sweep for anything left behind. Every operation is scoped
to one user; rows of other users are reported as not found.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from pypdf.errors import PdfReadError
from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from spendlog.config import settings
from spendlog.core.database import build_insert_ignore, build_upsert
from spendlog.core.datetime_utils import utcnow
from spendlog.core.exceptions import (
    DuplicateStatementError,
    ExternalServiceError,
    InvalidTransitionError,
    NotFoundError,
    SpendLogError,
    StorageError,
    ValidationFailedError,
)
from spendlog.models import (
    Category,
    CategoryMapping,
    Expense,
    ExtractedTransaction,
    ImportStatus,
    PaymentMethod,
    StatementImport,
)
from spendlog.services.categorizer import (
    ABORT_STATUSES,
    CategoryRef,
    RowToCategorize,
    TransactionCategorizer,
    extract_keywords,
)
from spendlog.services.statement_parser import (
    AIStatementExtractor,
    ParsedStatement,
    ParsedTransaction,
    StatementTextParser,
    chunk_pages,
    decrypt,
    extract_pages,
    hash_bytes,
    is_encrypted,
    open_pdf,
)
from spendlog.services.storage import LocalBlobStorage, storage as default_storage

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({ImportStatus.COMPLETED, ImportStatus.FAILED})

ALLOWED_TRANSITIONS: Dict[ImportStatus, frozenset] = {
    ImportStatus.PENDING: frozenset({
        ImportStatus.PROCESSING, ImportStatus.PASSWORD_REQUIRED, ImportStatus.FAILED
    }),
    ImportStatus.PASSWORD_REQUIRED: frozenset({
        ImportStatus.PROCESSING, ImportStatus.PASSWORD_REQUIRED, ImportStatus.FAILED
    }),
    ImportStatus.PROCESSING: frozenset({ImportStatus.EXTRACTED, ImportStatus.FAILED}),
    ImportStatus.EXTRACTED: frozenset({ImportStatus.CATEGORIZING, ImportStatus.FAILED}),
    ImportStatus.CATEGORIZING: frozenset({ImportStatus.READY, ImportStatus.FAILED}),
    ImportStatus.READY: frozenset({
        ImportStatus.CATEGORIZING, ImportStatus.COMPLETED, ImportStatus.FAILED
    }),
    ImportStatus.COMPLETED: frozenset(),
    ImportStatus.FAILED: frozenset(),
}

PDF_CONTENT_TYPES = {"application/pdf"}
DUPLICATE_AMOUNT_TOLERANCE = Decimal("0.01")

def ensure_transition(current, target, operation: str) -> None:
    if ImportStatus(target) not in ALLOWED_TRANSITIONS[ImportStatus(current)]:
        raise InvalidTransitionError(ImportStatus(current).value, operation)

def validate_statement_upload(file_name: str, content_type: Optional[str], size: int) -> None:
    """Runs before anything is stored"""
    if not file_name or not file_name.lower().endswith(".pdf"):
        raise ValidationFailedError("Please upload a PDF file")
    if content_type and content_type not in PDF_CONTENT_TYPES:
        raise ValidationFailedError("Please upload a PDF file")
    if size <= 0:
        raise ValidationFailedError("The uploaded file is empty")
    if size > settings.MAX_STATEMENT_BYTES:
        limit_mb = settings.MAX_STATEMENT_BYTES // (1024 * 1024)
        raise ValidationFailedError(f"File size must be less than {limit_mb}MB")

def _safe_file_name(file_name: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]", "_", file_name)[:120]

@dataclass
class ParseResult:
    success: bool
    password_required: bool = False
    message: Optional[str] = None
    bank_name: Optional[str] = None
    transaction_count: int = 0
    period_start: Optional[date] = None
    period_end: Optional[date] = None

@dataclass
class CategorizeResult:
    total_transactions: int
    categorized_count: int
    avg_confidence: int
    suggested_categories: List[Dict[str, str]] = field(default_factory=list)

@dataclass
class CommitSelection:
    transaction_id: int
    category_id: Optional[int] = None

@dataclass
class CommitResult:
    imported_count: int
    total_transactions: int

class StatementImportService:
    """
    Orchestrates statement imports for a single user
    """

    def __init__(
        self,
        db: AsyncSession,
        user_id: int,
        storage: Optional[LocalBlobStorage] = None,
        extractor: Optional[AIStatementExtractor] = None,
        categorizer: Optional[TransactionCategorizer] = None,
        parser: Optional[StatementTextParser] = None,
    ):
        self.db = db
        self.user_id = user_id
        self.storage = storage or default_storage
        self.extractor = extractor
        self.categorizer = categorizer or TransactionCategorizer()
        self.parser = parser or StatementTextParser()
        self.bucket = settings.STATEMENT_BUCKET

    # Queries

    async def get_import(self, import_id: int) -> StatementImport:
        result = await self.db.execute(
            select(StatementImport).where(
                StatementImport.id == import_id,
                StatementImport.user_id == self.user_id
            )
        )
        statement_import = result.scalar_one_or_none()
        if statement_import is None:
            raise NotFoundError("Import not found")
        return statement_import

    async def list_imports(self, limit: int = 20) -> List[StatementImport]:
        result = await self.db.execute(
            select(StatementImport)
            .where(StatementImport.user_id == self.user_id)
            .order_by(StatementImport.created_at.desc(), StatementImport.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_transactions(self, import_id: int) -> List[ExtractedTransaction]:
        await self.get_import(import_id)
        return await self._transactions(import_id)

    async def _transactions(self, import_id: int) -> List[ExtractedTransaction]:
        result = await self.db.execute(
            select(ExtractedTransaction)
            .where(
                ExtractedTransaction.import_id == import_id,
                ExtractedTransaction.user_id == self.user_id
            )
            .order_by(ExtractedTransaction.transaction_date, ExtractedTransaction.id)
        )
        return list(result.scalars().all())

    # State helpers

    async def _transition(self, statement_import: StatementImport, target: ImportStatus, operation: str):
        ensure_transition(statement_import.status, target, operation)
        logger.info(
            "[%s] import=%s %s -> %s",
            operation, statement_import.id, statement_import.status, target.value
        )
        statement_import.status = target.value
        await self.db.commit()

    async def _fail(self, import_id: int, message: str):
        """Mark failed after a rollback; the session's objects may be expired"""
        await self.db.rollback()
        await self.db.execute(
            update(StatementImport)
            .where(StatementImport.id == import_id, StatementImport.user_id == self.user_id)
            .values(status=ImportStatus.FAILED.value, error_message=message[:1000])
        )
        await self.db.commit()
        logger.warning("import=%s failed: %s", import_id, message)

    # Upload

    async def upload(self, file_name: str, content_type: Optional[str], data: bytes) -> StatementImport:
        validate_statement_upload(file_name, content_type, len(data))

        now = utcnow()
        path = f"{self.user_id}/{int(now.timestamp() * 1000)}-{_safe_file_name(file_name)}"
        await self.storage.upload(self.bucket, path, data)

        statement_import = StatementImport(
            user_id=self.user_id,
            file_name=file_name,
            file_path=path,
            status=ImportStatus.PENDING.value,
            expires_at=now + timedelta(hours=settings.IMPORT_TTL_HOURS)
        )
        self.db.add(statement_import)
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            await self.storage.remove(self.bucket, [path])
            raise
        await self.db.refresh(statement_import)

        logger.info("[upload] import=%s file=%s bytes=%d", statement_import.id, path, len(data))
        return statement_import

    # Parse

    async def parse(self, import_id: int, password: Optional[str] = None) -> ParseResult:
        statement_import = await self.get_import(import_id)
        status = ImportStatus(statement_import.status)
        if status not in (ImportStatus.PENDING, ImportStatus.PASSWORD_REQUIRED):
            raise InvalidTransitionError(status.value, "parse")

        try:
            data = await self.storage.download(self.bucket, statement_import.file_path)
        except StorageError:
            await self._fail(import_id, "Failed to download file from storage")
            raise

        try:
            reader = open_pdf(data)
        except ValidationFailedError as e:
            await self._fail(import_id, e.message)
            raise
        except Exception as e:
            logger.exception("[parse] import=%s unreadable PDF", import_id)
            await self._fail(import_id, "Could not read PDF")
            raise ValidationFailedError("Could not read PDF") from e

        if is_encrypted(reader):
            if not password:
                return await self._password_required(
                    statement_import, "This PDF is password protected. Please enter the password."
                )
            if not decrypt(reader, password):
                return await self._password_required(
                    statement_import, "Incorrect password. Please try again."
                )

        statement_import.file_hash = hash_bytes(data)
        statement_import.error_message = None
        await self._transition(statement_import, ImportStatus.PROCESSING, "parse")

        try:
            await self._check_duplicate_hash(statement_import)
            statement = await self._extract(reader)
            transactions = self._clean(statement.transactions)
            if not transactions:
                raise ValidationFailedError("No transactions found in the statement")

            duplicates = await self._find_duplicates(transactions)
            await self._store_transactions(import_id, transactions, duplicates)

            statement_import.bank_name = statement.bank_name
            statement_import.statement_period_start = statement.period_start
            statement_import.statement_period_end = statement.period_end
            statement_import.total_transactions = len(transactions)
            ensure_transition(statement_import.status, ImportStatus.EXTRACTED, "parse")
            statement_import.status = ImportStatus.EXTRACTED.value
            await self.db.commit()
        except SpendLogError as e:
            await self._fail(import_id, e.message)
            raise
        except Exception as e:
            logger.exception("[parse] import=%s unexpected error", import_id)
            await self._fail(import_id, "Failed to process statement")
            raise ExternalServiceError("Failed to process statement") from e

        logger.info(
            "[parse] import=%s bank=%s transactions=%d duplicates=%d",
            import_id, statement.bank_name, len(transactions), len(duplicates)
        )
        return ParseResult(
            success=True,
            bank_name=statement.bank_name,
            transaction_count=len(transactions),
            period_start=statement.period_start,
            period_end=statement.period_end,
        )

    async def _password_required(self, statement_import: StatementImport, message: str) -> ParseResult:
        statement_import.error_message = message
        await self._transition(statement_import, ImportStatus.PASSWORD_REQUIRED, "parse")
        return ParseResult(success=False, password_required=True, message=message)

    async def _check_duplicate_hash(self, statement_import: StatementImport):
        result = await self.db.execute(
            select(StatementImport.created_at)
            .where(
                StatementImport.user_id == self.user_id,
                StatementImport.file_hash == statement_import.file_hash,
                StatementImport.status == ImportStatus.COMPLETED.value,
                StatementImport.id != statement_import.id
            )
            .limit(1)
        )
        imported_at = result.scalar_one_or_none()
        if imported_at is not None:
            raise DuplicateStatementError(
                f"This statement was already imported on {imported_at:%d %b %Y}"
            )

    async def _extract(self, reader) -> ParsedStatement:
        try:
            pages = extract_pages(reader)
        except PdfReadError as e:
            raise ValidationFailedError(f"Could not read text from PDF: {e}")

        text = "\n".join(pages)
        if not text.strip():
            raise ValidationFailedError(
                "Could not extract text from PDF. The file may be scanned or image-based."
            )

        if self.extractor is not None and self.extractor.is_configured:
            statement = await self._extract_with_ai(pages)
            if statement.transactions:
                return statement
            logger.info("AI extraction found nothing, falling back to the line parser")

        return self.parser.parse(text)

    async def _extract_with_ai(self, pages: List[str]) -> ParsedStatement:
        chunks = chunk_pages(pages, settings.PDF_PAGES_PER_CHUNK)
        merged = ParsedStatement()
        last_error = None

        for index, chunk in enumerate(chunks):
            try:
                statement = await self.extractor.extract(chunk, is_chunk=len(chunks) > 1)
            except ExternalServiceError as e:
                if len(chunks) == 1 or e.upstream_status in ABORT_STATUSES:
                    raise
                logger.warning("Chunk %d/%d failed: %s", index + 1, len(chunks), e.message)
                last_error = e
                continue

            merged.bank_name = merged.bank_name or statement.bank_name
            merged.period_start = merged.period_start or statement.period_start
            merged.period_end = statement.period_end or merged.period_end
            merged.transactions.extend(statement.transactions)
            logger.info("Chunk %d/%d: %d transactions", index + 1, len(chunks), len(statement.transactions))

        if not merged.transactions and last_error is not None:
            raise last_error
        return merged

    @staticmethod
    def _clean(transactions: List[ParsedTransaction]) -> List[ParsedTransaction]:
        """Drop unusable rows and repeats of (date, amount, description prefix)"""
        seen = set()
        cleaned = []
        for transaction in transactions:
            if transaction.date is None or transaction.amount is None or transaction.amount <= 0:
                continue
            key = transaction.dedupe_key
            if key in seen:
                continue
            seen.add(key)
            cleaned.append(transaction)
        return cleaned

    async def _find_duplicates(self, transactions: List[ParsedTransaction]) -> Dict[int, int]:
        """Index into ``transactions`` -> id of an existing expense on the same day and amount"""
        dates = [t.date for t in transactions]
        result = await self.db.execute(
            select(Expense.id, Expense.date, Expense.amount).where(
                Expense.user_id == self.user_id,
                Expense.date >= min(dates),
                Expense.date <= max(dates)
            )
        )
        existing: Dict[object, List[Tuple[int, Decimal]]] = {}
        for expense_id, expense_date, amount in result.all():
            existing.setdefault(expense_date, []).append((expense_id, Decimal(str(amount))))

        duplicates = {}
        for index, transaction in enumerate(transactions):
            for expense_id, amount in existing.get(transaction.date, []):
                if abs(amount - transaction.amount) < DUPLICATE_AMOUNT_TOLERANCE:
                    duplicates[index] = expense_id
                    break
        return duplicates

    async def _store_transactions(
        self,
        import_id: int,
        transactions: List[ParsedTransaction],
        duplicates: Dict[int, int]
    ):
        batch_size = settings.EXTRACT_BATCH_SIZE
        for start in range(0, len(transactions), batch_size):
            rows = []
            for offset, transaction in enumerate(transactions[start:start + batch_size]):
                duplicate_of = duplicates.get(start + offset)
                rows.append(ExtractedTransaction(
                    import_id=import_id,
                    user_id=self.user_id,
                    transaction_date=transaction.date,
                    description=transaction.description[:500],
                    amount=transaction.amount,
                    transaction_type=transaction.transaction_type.value,
                    balance=transaction.balance,
                    raw_text=transaction.raw_text,
                    is_selected=duplicate_of is None,
                    is_duplicate=duplicate_of is not None,
                    duplicate_of=duplicate_of
                ))
            self.db.add_all(rows)
            await self.db.flush()

    # Categorize

    async def categorize(self, import_id: int) -> CategorizeResult:
        statement_import = await self.get_import(import_id)
        ensure_transition(statement_import.status, ImportStatus.CATEGORIZING, "categorize")

        transactions = await self._transactions(import_id)
        if not transactions:
            await self._fail(import_id, "No transactions to categorize")
            raise ValidationFailedError("No transactions to categorize")

        await self._transition(statement_import, ImportStatus.CATEGORIZING, "categorize")

        categories = await self._categories()
        mapping_rows = await self.db.execute(
            select(CategoryMapping.keyword, CategoryMapping.category_id)
            .where(CategoryMapping.user_id == self.user_id)
            .order_by(CategoryMapping.usage_count.desc(), CategoryMapping.id)
        )

        try:
            outcome = await self.categorizer.categorize(
                [RowToCategorize(t.id, t.description, Decimal(str(t.amount))) for t in transactions],
                categories,
                [(keyword, category_id) for keyword, category_id in mapping_rows.all()]
            )

            for transaction in transactions:
                if transaction.id in outcome.assignments:
                    category_id, confidence = outcome.assignments[transaction.id]
                    transaction.suggested_category_id = category_id
                    transaction.ai_confidence = Decimal(str(round(confidence, 2)))

            for keyword, category_id in outcome.learned:
                await self.db.execute(build_insert_ignore(
                    self.db,
                    CategoryMapping,
                    {"user_id": self.user_id, "keyword": keyword, "category_id": category_id, "usage_count": 1},
                    ["user_id", "keyword"]
                ))

            ensure_transition(statement_import.status, ImportStatus.READY, "categorize")
            statement_import.status = ImportStatus.READY.value
            await self.db.commit()
        except SpendLogError as e:
            await self._fail(import_id, e.message)
            raise
        except Exception as e:
            logger.exception("[categorize] import=%s unexpected error", import_id)
            await self._fail(import_id, "Failed to categorize transactions")
            raise ExternalServiceError("Failed to categorize transactions") from e

        categorized = [t for t in transactions if t.suggested_category_id is not None]
        total_confidence = sum(float(t.ai_confidence or 0) for t in categorized)
        avg_confidence = total_confidence / (len(categorized) or 1)

        logger.info(
            "[categorize] import=%s categorized=%d/%d avg_confidence=%.2f new_categories=%d",
            import_id, len(categorized), len(transactions), avg_confidence,
            len(outcome.suggested_categories)
        )
        return CategorizeResult(
            total_transactions=len(transactions),
            categorized_count=len(categorized),
            avg_confidence=int(round(avg_confidence * 100)),
            suggested_categories=outcome.suggested_categories,
        )

    async def _categories(self) -> List[CategoryRef]:
        result = await self.db.execute(
            select(Category.id, Category.name)
            .where(Category.user_id == self.user_id)
            .order_by(Category.name)
        )
        return [CategoryRef(id=category_id, name=name) for category_id, name in result.all()]

    async def _owned_category_ids(self) -> set:
        return {c.id for c in await self._categories()}

    # Review

    async def update_transaction(self, transaction_id: int, **changes) -> ExtractedTransaction:
        result = await self.db.execute(
            select(ExtractedTransaction).where(
                ExtractedTransaction.id == transaction_id,
                ExtractedTransaction.user_id == self.user_id
            )
        )
        transaction = result.scalar_one_or_none()
        if transaction is None:
            raise NotFoundError("Transaction not found")

        statement_import = await self.get_import(transaction.import_id)
        if ImportStatus(statement_import.status) not in (ImportStatus.EXTRACTED, ImportStatus.READY):
            raise InvalidTransitionError(statement_import.status, "edit")

        if "suggested_category_id" in changes:
            category_id = changes["suggested_category_id"]
            if category_id is not None and category_id not in await self._owned_category_ids():
                raise NotFoundError("Category not found")
            transaction.suggested_category_id = category_id

        if changes.get("is_selected") is not None:
            transaction.is_selected = changes["is_selected"]
            if transaction.is_duplicate:
                transaction.duplicate_override = changes["is_selected"]

        await self.db.commit()
        await self.db.refresh(transaction)
        return transaction

    # Commit

    async def commit(
        self,
        import_id: int,
        selections: Optional[List[CommitSelection]] = None
    ) -> CommitResult:
        statement_import = await self.get_import(import_id)
        ensure_transition(statement_import.status, ImportStatus.COMPLETED, "commit")

        transactions = await self._transactions(import_id)
        eligible = {
            t.id: t for t in transactions
            if t.is_selected and (not t.is_duplicate or t.duplicate_override)
        }

        if selections is None:
            chosen = [(t, t.suggested_category_id) for t in eligible.values()]
        else:
            chosen = []
            for selection in selections:
                transaction = eligible.get(selection.transaction_id)
                if transaction is None:
                    logger.info(
                        "[commit] import=%s skipping ineligible transaction %s",
                        import_id, selection.transaction_id
                    )
                    continue
                category_id = selection.category_id
                if category_id is None:
                    category_id = transaction.suggested_category_id
                chosen.append((transaction, category_id))

        if not chosen:
            raise ValidationFailedError("No transactions selected for import")
        if len(chosen) > settings.MAX_COMMIT_TRANSACTIONS:
            raise ValidationFailedError(
                f"Cannot import more than {settings.MAX_COMMIT_TRANSACTIONS} transactions at once"
            )

        owned = await self._owned_category_ids()
        for transaction, category_id in chosen:
            if category_id not in owned:
                category_id = None
            self.db.add(Expense(
                user_id=self.user_id,
                category_id=category_id,
                amount=transaction.amount,
                date=transaction.transaction_date,
                payment_method=PaymentMethod.BANK.value,
                note=transaction.description[:500],
                is_draft=False
            ))
            if category_id is not None:
                await self._learn_keywords(transaction.description, category_id)

        statement_import.imported_transactions = len(chosen)
        statement_import.status = ImportStatus.COMPLETED.value
        await self.db.execute(
            delete(ExtractedTransaction).where(ExtractedTransaction.import_id == import_id)
        )
        await self.db.commit()

        logger.info("[commit] import=%s imported=%d/%d", import_id, len(chosen), len(transactions))

        try:
            await self.storage.remove(self.bucket, [statement_import.file_path])
        except StorageError as e:
            # file_path stays set so the expiry sweep retries the removal
            logger.warning("[commit] import=%s file cleanup failed: %s", import_id, e.message)
        else:
            statement_import.file_path = ""
            await self.db.commit()

        return CommitResult(imported_count=len(chosen), total_transactions=len(transactions))

    async def _learn_keywords(self, description: str, category_id: int):
        for keyword in extract_keywords(description):
            await self.db.execute(build_upsert(
                self.db,
                CategoryMapping,
                {"user_id": self.user_id, "keyword": keyword, "category_id": category_id, "usage_count": 1},
                ["user_id", "keyword"],
                {"category_id": category_id, "usage_count": CategoryMapping.usage_count + 1}
            ))

    # Cancel

    async def cancel(self, import_id: int) -> None:
        statement_import = await self.get_import(import_id)
        if ImportStatus(statement_import.status) in TERMINAL_STATUSES:
            raise InvalidTransitionError(statement_import.status, "cancel")

        await self.storage.remove(self.bucket, [statement_import.file_path])
        await self.db.execute(
            delete(ExtractedTransaction).where(ExtractedTransaction.import_id == import_id)
        )
        await self.db.delete(statement_import)
        await self.db.commit()
        logger.info("[cancel] import=%s", import_id)

async def cleanup_expired(
    db: AsyncSession,
    blob_storage: Optional[LocalBlobStorage] = None,
    now: Optional[datetime] = None
) -> int:
    """
    Remove every import past its expiry that never completed, whatever its
    status. Imports whose file can't be removed are left for the next run.

    Completed imports keep their row; only a statement file left behind by
    a failed removal at commit time is deleted.
    """
    blob_storage = blob_storage or default_storage
    now = now or utcnow()

    leftovers = await db.execute(
        select(StatementImport).where(
            StatementImport.expires_at < now,
            StatementImport.status == ImportStatus.COMPLETED.value,
            StatementImport.file_path != ""
        )
    )
    for statement_import in leftovers.scalars().all():
        try:
            await blob_storage.remove(settings.STATEMENT_BUCKET, [statement_import.file_path])
        except StorageError as e:
            logger.error("File of completed import %s kept: %s", statement_import.id, e.message)
            continue
        statement_import.file_path = ""
        logger.info("Removed leftover file of completed import %s", statement_import.id)

    result = await db.execute(
        select(StatementImport).where(
            StatementImport.expires_at < now,
            StatementImport.status != ImportStatus.COMPLETED.value
        )
    )
    removed = 0
    for statement_import in result.scalars().all():
        try:
            await blob_storage.remove(settings.STATEMENT_BUCKET, [statement_import.file_path])
        except StorageError as e:
            logger.error("Expired import %s kept, file removal failed: %s", statement_import.id, e.message)
            continue

        await db.execute(
            delete(ExtractedTransaction).where(ExtractedTransaction.import_id == statement_import.id)
        )
        await db.delete(statement_import)
        removed += 1

    await db.commit()
    logger.info("Removed %d expired imports", removed)
    return removed
