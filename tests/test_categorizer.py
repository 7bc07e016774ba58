from decimal import Decimal

import pytest

from spendlog.core.exceptions import ExternalServiceError
from spendlog.services.categorizer import (
    CategoryRef,
    RowToCategorize,
    TransactionCategorizer,
    extract_keywords
)

from conftest import FakeAIClient

CATEGORIES = [
    CategoryRef(id=1, name="Food & Dining"),
    CategoryRef(id=2, name="Transportation"),
    CategoryRef(id=3, name="Shopping"),
]

def _rows(*descriptions):
    return [
        RowToCategorize(id=i + 1, description=description, amount=Decimal("100"))
        for i, description in enumerate(descriptions)
    ]

def test_extract_keywords_skips_banking_words():
    assert extract_keywords("UPI/SWIGGY/Bangalore/ref 1234") == ["swiggy", "bangalore", "1234"]
    assert extract_keywords("NEFT TRANSFER TO AB") == []

@pytest.mark.asyncio
async def test_learned_mappings_come_first():
    categorizer = TransactionCategorizer(ai_client=None, classifier=None)
    outcome = await categorizer.categorize(
        _rows("UPI-SWIGGY-BLR", "UBER TRIP 123"),
        CATEGORIES,
        [("swiggy", 1), ("uber", 2)]
    )

    assert outcome.assignments == {1: (1, 0.9), 2: (2, 0.9)}

@pytest.mark.asyncio
async def test_ai_assignments_are_clamped_and_learned():
    ai = FakeAIClient(replies=[{
        "categorizations": [
            {"transaction_id": 1, "category_id": 3, "confidence": 1.7, "keyword": "Amazon"},
            {"transaction_id": 2, "category_id": 99, "confidence": 0.8},
            {"transaction_id": 77, "category_id": 1, "confidence": 0.8},
        ],
        "new_category_suggestions": [{"name": "Pets", "icon": "paw", "color": "#FFAA00"}]
    }])
    categorizer = TransactionCategorizer(ai_client=ai, classifier=None)

    outcome = await categorizer.categorize(_rows("AMAZON PAY INDIA", "PETSMART"), CATEGORIES, [])

    assert outcome.assignments == {1: (3, 1.0)}
    assert outcome.learned == [("amazon", 3)]
    assert outcome.suggested_categories == [{"name": "Pets", "icon": "paw", "color": "#FFAA00"}]

@pytest.mark.asyncio
async def test_failed_batch_is_skipped():
    ai = FakeAIClient(replies=[
        ExternalServiceError("bad gateway", upstream_status=502),
        {"categorizations": [{"transaction_id": 2, "category_id": 2, "confidence": 0.7}]},
    ])
    categorizer = TransactionCategorizer(ai_client=ai, classifier=None, batch_size=1)

    outcome = await categorizer.categorize(_rows("MYSTERY ONE", "OLA CABS"), CATEGORIES, [])

    assert outcome.assignments == {2: (2, 0.7)}
    assert len(ai.calls) == 2

@pytest.mark.asyncio
async def test_rate_limit_aborts_the_run():
    ai = FakeAIClient(replies=[ExternalServiceError("Service is busy", upstream_status=429)])
    categorizer = TransactionCategorizer(ai_client=ai, classifier=None)

    with pytest.raises(ExternalServiceError):
        await categorizer.categorize(_rows("MYSTERY"), CATEGORIES, [])

@pytest.mark.asyncio
async def test_category_name_fallback():
    categorizer = TransactionCategorizer(ai_client=FakeAIClient(configured=False), classifier=None)

    outcome = await categorizer.categorize(
        _rows("ONLINE SHOPPING MALL", "SOMETHING ELSE"), CATEGORIES, []
    )

    assert outcome.assignments == {1: (3, 0.6)}

class StubClassifier:
    is_trained = True

    def predict_many(self, rows):
        return [("Transportation", 0.82, {}), ("Shopping", 0.3, {})]

@pytest.mark.asyncio
async def test_confident_classifier_predictions_are_used():
    categorizer = TransactionCategorizer(classifier=StubClassifier(), min_classifier_confidence=0.6)

    outcome = await categorizer.categorize(_rows("RAPIDO BIKE", "UNKNOWN MERCHANT"), CATEGORIES, [])

    assert outcome.assignments == {1: (2, 0.82)}
