from datetime import date
from decimal import Decimal

import pytest

from spendlog.core.exceptions import ValidationFailedError
from spendlog.services.statement_parser import (
    AIStatementExtractor,
    StatementTextParser,
    TransactionType,
    chunk_pages,
    decrypt,
    extract_pages,
    is_encrypted,
    open_pdf,
    parse_amount,
    parse_date
)

@pytest.fixture
def parser():
    return StatementTextParser()

def test_parse_debit_row(parser):
    result = parser.parse_line("05/03/2024 UPI-SWIGGY-BANGALORE 450.00 25,430.50")

    assert result.date == date(2024, 3, 5)
    assert result.amount == Decimal("450.00")
    assert result.balance == Decimal("25430.50")
    assert result.description == "UPI-SWIGGY-BANGALORE"
    assert result.transaction_type == TransactionType.DEBIT

def test_parse_credit_keyword(parser):
    result = parser.parse_line("07/03/2024 SALARY CREDIT ACME CORP 50,000.00 75,430.50")

    assert result.amount == Decimal("50000.00")
    assert result.transaction_type == TransactionType.CREDIT

def test_dr_cr_marker_wins(parser):
    debit = parser.parse_line("12-Mar-2024 ATM WDL MG ROAD 2,000.00 Dr 73,430.50")
    credit = parser.parse_line("13/03/24 NEFT ACME REFUND 500.00 Cr 73,930.50")

    assert debit.transaction_type == TransactionType.DEBIT
    assert debit.description == "ATM WDL MG ROAD"
    assert debit.date == date(2024, 3, 12)
    assert credit.transaction_type == TransactionType.CREDIT

def test_non_rows_are_ignored(parser):
    assert parser.parse_line("Opening balance 25,880.50") is None
    assert parser.parse_line("05/03/2024 no amount here") is None
    assert parser.parse_line("") is None

def test_full_statement(parser):
    text = "\n".join([
        "State Bank of India",
        "Account statement from 01/03/2024 to 31/03/2024",
        "05/03/2024 UBER TRIP 250.00 1,000.00",
        "06/03/2024 BIGBASKET 1,250.50 -250.50",
    ])
    statement = parser.parse(text)

    assert statement.bank_name == "State Bank of India"
    assert statement.period_start == date(2024, 3, 1)
    assert statement.period_end == date(2024, 3, 31)
    assert len(statement.transactions) == 2

def test_period_falls_back_to_row_dates(parser):
    statement = parser.parse("05/03/2024 UBER TRIP 250.00\n09/03/2024 OLA 120.00")

    assert statement.period_start == date(2024, 3, 5)
    assert statement.period_end == date(2024, 3, 9)

def test_parse_helpers():
    assert parse_date("2024-03-05") == date(2024, 3, 5)
    assert parse_date("31 Jan 24") == date(2024, 1, 31)
    assert parse_date("not a date") is None
    assert parse_amount("₹1,299.00") == Decimal("1299.00")
    assert parse_amount("abc") is None

def test_chunk_pages():
    assert chunk_pages(["a", "b", "c"], 2) == ["a\nb", "c"]

def test_ai_rows_without_date_or_amount_are_dropped():
    statement = AIStatementExtractor.to_statement({
        "bankName": "HDFC",
        "periodStart": "2024-03-01",
        "periodEnd": None,
        "transactions": [
            {"date": "2024-03-05", "description": "SWIGGY", "amount": -450, "type": "debit"},
            {"date": None, "description": "broken", "amount": 10},
            {"date": "2024-03-06", "description": "no amount", "amount": None},
            {"date": "2024-03-07", "description": "REFUND", "amount": "99.50", "type": "credit"},
        ]
    })

    assert statement.bank_name == "HDFC"
    assert statement.period_start == date(2024, 3, 1)
    assert [t.amount for t in statement.transactions] == [Decimal("450"), Decimal("99.50")]
    assert statement.transactions[1].transaction_type == TransactionType.CREDIT

def test_pdf_text_extraction(statement_pdf):
    reader = open_pdf(statement_pdf)

    assert not is_encrypted(reader)
    text = "\n".join(extract_pages(reader))
    assert "SWIGGY" in text

def test_locked_pdf(locked_statement_pdf):
    reader = open_pdf(locked_statement_pdf)

    assert is_encrypted(reader)
    assert not decrypt(reader, "wrong")
    assert decrypt(reader, "secret")
    assert "SWIGGY" in "\n".join(extract_pages(reader))

def test_garbage_is_not_a_pdf():
    with pytest.raises(ValidationFailedError):
        open_pdf(b"definitely not a pdf")
