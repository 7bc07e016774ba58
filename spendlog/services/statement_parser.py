"""
Bank Statement Parser
Reads PDF statements and turns their text into dated debit/credit rows.
Supports the common layouts of Indian bank statements (SBI, HDFC, ICICI, Axis, etc.)
"""

import hashlib
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from spendlog.core.exceptions import ExternalServiceError, ValidationFailedError
from spendlog.services.ai_client import AIClient

logger = logging.getLogger(__name__)

class TransactionType(Enum):
    DEBIT = "debit"
    CREDIT = "credit"

@dataclass
class ParsedTransaction:
    date: date
    description: str
    amount: Decimal
    transaction_type: TransactionType
    balance: Optional[Decimal] = None
    raw_text: Optional[str] = None

    @property
    def dedupe_key(self) -> Tuple[str, str, str]:
        return (self.date.isoformat(), str(self.amount), self.description[:30])

@dataclass
class ParsedStatement:
    bank_name: Optional[str] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    transactions: List[ParsedTransaction] = field(default_factory=list)

DATE_FORMATS = [
    "%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y",
    "%d/%m/%y", "%d-%m-%y",
    "%d %b %Y", "%d-%b-%Y", "%d %b %y", "%d-%b-%y",
    "%Y-%m-%d",
]

def parse_date(value: str) -> Optional[date]:
    """Try each known statement date format"""
    if not value:
        return None
    value = value.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None

def parse_amount(value) -> Optional[Decimal]:
    if value is None:
        return None
    text = str(value).replace(",", "").replace("₹", "").strip()
    if not text:
        return None
    try:
        return Decimal(text)
    except InvalidOperation:
        return None

# PDF helpers

def hash_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()

def open_pdf(data: bytes) -> PdfReader:
    try:
        return PdfReader(io.BytesIO(data))
    except PdfReadError as e:
        raise ValidationFailedError(f"Could not read PDF: {e}")

def is_encrypted(reader: PdfReader) -> bool:
    """
    Encrypted files that open with an empty user password don't need one
    """
    if not reader.is_encrypted:
        return False
    try:
        return not reader.decrypt("")
    except (PdfReadError, NotImplementedError):
        return True

def decrypt(reader: PdfReader, password: str) -> bool:
    """Decrypt in place; False on a wrong password"""
    try:
        return bool(reader.decrypt(password))
    except (PdfReadError, NotImplementedError) as e:
        logger.warning("Decrypt failed: %s", e)
        return False

def extract_pages(reader: PdfReader) -> List[str]:
    return [(page.extract_text() or "").strip() for page in reader.pages]

def chunk_pages(pages: List[str], pages_per_chunk: int) -> List[str]:
    return [
        "\n".join(pages[start:start + pages_per_chunk])
        for start in range(0, len(pages), pages_per_chunk)
    ]

class StatementTextParser:
    """
    Parses statement text line by line without any external service
    """

    def __init__(self):
        self.patterns = self._compile_patterns()

        self.credit_keywords = [
            'salary', 'credited', 'credit', 'refund', 'interest', 'deposit',
            'cashback', 'reversal', 'received'
        ]

        self.bank_keywords = {
            'State Bank of India': ['state bank of india', 'sbi'],
            'HDFC Bank': ['hdfc'],
            'ICICI Bank': ['icici'],
            'Axis Bank': ['axis bank'],
            'Kotak Mahindra Bank': ['kotak'],
            'Punjab National Bank': ['punjab national', 'pnb'],
            'Bank of Baroda': ['bank of baroda', 'baroda'],
            'Union Bank of India': ['union bank'],
            'Indian Bank': ['indian bank'],
            'Canara Bank': ['canara'],
            'Yes Bank': ['yes bank'],
            'IDFC First Bank': ['idfc'],
        }

    def _compile_patterns(self) -> Dict[str, re.Pattern]:
        date_token = (
            r'\d{1,2}[-/.]\d{1,2}[-/.]\d{2,4}'
            r'|\d{1,2}[\s-](?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*[\s-]\d{2,4}'
            r'|\d{4}-\d{2}-\d{2}'
        )
        patterns = {
            # Row starts with a date
            'row': rf'^\s*({date_token})\s+(.*)$',

            # Money always carries two decimals on statements
            'amount': r'(?<![\d.])(\d{1,3}(?:,\d{2,3})+\.\d{2}|\d+\.\d{2})(?![\d])',

            # Explicit Dr/Cr marker
            'marker': r'\b(dr|cr)\b\.?',

            # Statement period
            'period': (
                rf'(?:period|from)\s*:?\s*({date_token})\s*(?:to|-|till)\s*({date_token})'
            ),
        }
        return {key: re.compile(p, re.IGNORECASE) for key, p in patterns.items()}

    def detect_bank(self, text: str) -> Optional[str]:
        text_lower = text.lower()
        for bank, keywords in self.bank_keywords.items():
            if any(keyword in text_lower for keyword in keywords):
                return bank
        return None

    def detect_period(self, text: str) -> Tuple[Optional[date], Optional[date]]:
        match = self.patterns['period'].search(text)
        if not match:
            return None, None
        return parse_date(match.group(1)), parse_date(match.group(2))

    def _detect_type(self, rest: str, marker: Optional[str]) -> TransactionType:
        if marker:
            return TransactionType.CREDIT if marker.lower() == 'cr' else TransactionType.DEBIT
        rest_lower = rest.lower()
        for keyword in self.credit_keywords:
            if re.search(rf'\b{keyword}\b', rest_lower):
                return TransactionType.CREDIT
        return TransactionType.DEBIT

    def parse_line(self, line: str) -> Optional[ParsedTransaction]:
        """
        Parse a single statement row, or None when it isn't one
        """
        row = self.patterns['row'].match(line)
        if not row:
            return None

        txn_date = parse_date(row.group(1))
        rest = row.group(2)
        if txn_date is None:
            return None

        amounts = list(self.patterns['amount'].finditer(rest))
        if not amounts:
            return None

        # Last two money columns are amount and balance
        tail = amounts[-2:] if len(amounts) >= 2 else amounts[-1:]
        amount = parse_amount(tail[0].group(1))
        balance = parse_amount(tail[1].group(1)) if len(tail) == 2 else None

        description = rest[:tail[0].start()]
        description = self.patterns['marker'].sub(' ', description)
        description = re.sub(r'\s+', ' ', description).strip(' -/|')

        marker_match = self.patterns['marker'].search(rest[tail[0].start():])
        marker = marker_match.group(1) if marker_match else None

        if amount is None or amount == 0:
            return None

        return ParsedTransaction(
            date=txn_date,
            description=description or "Unknown transaction",
            amount=abs(amount),
            transaction_type=self._detect_type(rest, marker),
            balance=balance,
            raw_text=line.strip()
        )

    def parse(self, text: str) -> ParsedStatement:
        """
        Parse a statement's full text
        """
        statement = ParsedStatement(bank_name=self.detect_bank(text))
        statement.period_start, statement.period_end = self.detect_period(text)

        for line in text.splitlines():
            transaction = self.parse_line(line)
            if transaction:
                statement.transactions.append(transaction)

        if statement.transactions and statement.period_start is None:
            dates = [t.date for t in statement.transactions]
            statement.period_start, statement.period_end = min(dates), max(dates)

        return statement

EXTRACTION_PROMPT = """You are a bank statement parser. Extract ALL transactions from the provided bank statement text.

For each transaction extract:
- date: Transaction date in YYYY-MM-DD format
- description: The narration/description
- amount: Numeric amount (positive number, no currency symbols)
- type: "debit" for money out, "credit" for money in
- balance: Balance after the transaction if shown, otherwise null

Also identify:
- bankName: Bank name (e.g. SBI, HDFC, ICICI, Axis)
- periodStart: Statement start date YYYY-MM-DD (or null)
- periodEnd: Statement end date YYYY-MM-DD (or null)

Return ONLY valid JSON with no markdown:
{"bankName": "string", "periodStart": "YYYY-MM-DD or null", "periodEnd": "YYYY-MM-DD or null",
 "transactions": [{"date": "YYYY-MM-DD", "description": "string", "amount": 123.45, "type": "debit", "balance": null}]}

If no transactions are found, return {"error": "no_transactions", "transactions": []}."""

class AIStatementExtractor:
    """
    Statement extraction through the language model
    """

    def __init__(self, client: AIClient):
        self.client = client

    @property
    def is_configured(self) -> bool:
        return self.client.is_configured

    async def extract(self, text: str, is_chunk: bool = False) -> ParsedStatement:
        instruction = (
            "Extract ALL transactions from this section of the bank statement."
            if is_chunk else
            "Extract all transactions from this bank statement."
        )
        data = await self.client.chat_json(
            [
                {"role": "system", "content": EXTRACTION_PROMPT},
                {"role": "user", "content": f"{instruction}\n\n{text}"},
            ],
            temperature=0.1,
            max_tokens=16000
        )
        return self.to_statement(data)

    @staticmethod
    def to_statement(data: dict) -> ParsedStatement:
        """Convert the model's JSON into a ParsedStatement, dropping unusable rows"""
        if not isinstance(data, dict):
            raise ExternalServiceError("Unexpected AI response format")
        statement = ParsedStatement(
            bank_name=data.get("bankName") or None,
            period_start=parse_date(data.get("periodStart") or ""),
            period_end=parse_date(data.get("periodEnd") or ""),
        )
        for item in data.get("transactions") or []:
            if not isinstance(item, dict):
                continue
            txn_date = parse_date(str(item.get("date") or ""))
            amount = parse_amount(item.get("amount"))
            if txn_date is None or amount is None:
                continue
            statement.transactions.append(ParsedTransaction(
                date=txn_date,
                description=str(item.get("description") or "Unknown transaction")[:500],
                amount=abs(amount),
                transaction_type=(
                    TransactionType.CREDIT if item.get("type") == "credit" else TransactionType.DEBIT
                ),
                balance=parse_amount(item.get("balance")),
                raw_text=str(item)
            ))
        return statement
