"""
Category suggestions for extracted statement rows

Runs up to four passes, each only over rows the previous passes left
unmatched: learned keyword mappings, the local ML classifier, the language
model, and finally a plain category-name match.
"""

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from spendlog.config import settings
from spendlog.core.exceptions import ExternalServiceError
from spendlog.ml.models.category_classifier import CategoryClassifier
from spendlog.services.ai_client import AIClient

logger = logging.getLogger(__name__)

MAPPING_CONFIDENCE = 0.9
NAME_MATCH_CONFIDENCE = 0.6

# Upstream statuses that abort the whole run instead of skipping a batch
ABORT_STATUSES = {402, 429}

COMMON_WORDS = {
    'the', 'and', 'for', 'from', 'upi', 'neft', 'imps', 'rtgs',
    'transfer', 'payment', 'ref', 'txn'
}

KEYWORD_SPLIT = re.compile(r'[\s/\-_|:,.]+')

def extract_keywords(description: str, limit: int = 3) -> List[str]:
    """
    Learnable keywords from a narration: 3-20 chars, no common banking words
    """
    words = KEYWORD_SPLIT.split((description or "").lower())
    keywords = []
    for word in words:
        if 3 <= len(word) <= 20 and word not in COMMON_WORDS and word not in keywords:
            keywords.append(word)
        if len(keywords) == limit:
            break
    return keywords

@dataclass
class RowToCategorize:
    id: int
    description: str
    amount: Decimal

@dataclass
class CategoryRef:
    id: int
    name: str

@dataclass
class CategorizationOutcome:
    assignments: Dict[int, Tuple[Optional[int], float]] = field(default_factory=dict)
    learned: List[Tuple[str, int]] = field(default_factory=list)
    suggested_categories: List[Dict[str, str]] = field(default_factory=list)

    def assign(self, row_id: int, category_id: Optional[int], confidence: float):
        self.assignments[row_id] = (category_id, confidence)

    def add_suggestion(self, suggestion: dict):
        name = suggestion.get("name")
        if not name or any(s["name"] == name for s in self.suggested_categories):
            return
        self.suggested_categories.append({
            "name": name,
            "icon": suggestion.get("icon") or "tag",
            "color": suggestion.get("color") or "#3B82F6",
        })

def _category_list_prompt(categories: Sequence[CategoryRef]) -> str:
    if not categories:
        return (
            "You are an expense categorization assistant. The user has no categories yet, "
            "so suggest appropriate categories for their transactions.\n\n"
            'Respond with JSON: {"categorizations": [{"transaction_id": 1, "category_id": null, '
            '"confidence": 0, "keyword": "short keyword", "needs_new_category": true, '
            '"suggested_category": {"name": "Category Name", "icon": "icon-name", "color": "#HEX"}}], '
            '"new_category_suggestions": [{"name": "Category Name", "icon": "icon-name", '
            '"color": "#HEX", "for_transactions": [1]}]}\n\n'
            "Use common finance icons: utensils, car, shopping-bag, receipt, home, heart-pulse, "
            "graduation-cap, plane, gift, fuel, wifi, phone, briefcase.\n"
            "Return ONLY valid JSON."
        )

    category_list = "\n".join(f"- {c.name} (id: {c.id})" for c in categories)
    return (
        "You are an expense categorization assistant. Categorize each transaction into ONE "
        f"of the available categories.\n\nAvailable categories:\n{category_list}\n\n"
        'Respond with JSON: {"categorizations": [{"transaction_id": 1, "category_id": 2, '
        '"confidence": 0.8, "keyword": "short keyword from description for learning", '
        '"needs_new_category": false, "suggested_category": null}], '
        '"new_category_suggestions": [{"name": "Category Name", "icon": "icon-name", '
        '"color": "#HEX", "for_transactions": [1]}]}\n\n'
        "Set category_id to null and needs_new_category to true when nothing fits.\n"
        "Focus on Indian payment patterns: UPI, NEFT/IMPS, Swiggy, Zomato, Uber, Ola, "
        "utility bills, EMI.\nReturn ONLY valid JSON."
    )

class TransactionCategorizer:
    def __init__(
        self,
        ai_client: Optional[AIClient] = None,
        classifier: Optional[CategoryClassifier] = None,
        batch_size: Optional[int] = None,
        min_classifier_confidence: Optional[float] = None
    ):
        self.ai_client = ai_client
        self.classifier = classifier
        self.batch_size = batch_size or settings.CATEGORIZE_BATCH_SIZE
        self.min_classifier_confidence = (
            min_classifier_confidence
            if min_classifier_confidence is not None
            else settings.CLASSIFIER_MIN_CONFIDENCE
        )

    def match_mappings(
        self,
        rows: List[RowToCategorize],
        mappings: Sequence[Tuple[str, int]],
        outcome: CategorizationOutcome
    ) -> List[RowToCategorize]:
        """Mappings are expected most-used first; the first hit wins"""
        unmatched = []
        for row in rows:
            description = row.description.lower()
            for keyword, category_id in mappings:
                if keyword.lower() in description:
                    outcome.assign(row.id, category_id, MAPPING_CONFIDENCE)
                    break
            else:
                unmatched.append(row)
        return unmatched

    def match_classifier(
        self,
        rows: List[RowToCategorize],
        categories: Sequence[CategoryRef],
        outcome: CategorizationOutcome
    ) -> List[RowToCategorize]:
        if not rows or self.classifier is None or not self.classifier.is_trained:
            return rows

        by_name = {c.name.lower(): c.id for c in categories}
        predictions = self.classifier.predict_many(
            [(row.description, float(row.amount)) for row in rows]
        )

        unmatched = []
        for row, (name, confidence, _) in zip(rows, predictions):
            category_id = by_name.get(str(name).lower())
            if category_id is not None and confidence >= self.min_classifier_confidence:
                outcome.assign(row.id, category_id, round(confidence, 2))
            else:
                unmatched.append(row)
        return unmatched

    async def match_ai(
        self,
        rows: List[RowToCategorize],
        categories: Sequence[CategoryRef],
        outcome: CategorizationOutcome
    ) -> List[RowToCategorize]:
        if not rows or self.ai_client is None or not self.ai_client.is_configured:
            return rows

        valid_ids = {c.id for c in categories}
        system_prompt = _category_list_prompt(categories)

        for start in range(0, len(rows), self.batch_size):
            batch = rows[start:start + self.batch_size]
            transaction_list = "\n".join(
                f'{i + 1}. "{row.description}" (id: {row.id})' for i, row in enumerate(batch)
            )
            try:
                result = await self.ai_client.chat_json(
                    [
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": f"Categorize these transactions:\n{transaction_list}"},
                    ],
                    temperature=0.2,
                    max_tokens=3000
                )
            except ExternalServiceError as e:
                if e.upstream_status in ABORT_STATUSES:
                    raise
                logger.warning("AI categorization batch at %d skipped: %s", start, e.message)
                continue

            self._apply_ai_result(result, {row.id for row in batch}, valid_ids, outcome)

        return [row for row in rows if row.id not in outcome.assignments]

    def _apply_ai_result(self, result, batch_ids, valid_ids, outcome: CategorizationOutcome):
        if not isinstance(result, dict):
            return

        # A bare array reply arrives under "transactions"
        items = result.get("categorizations") or result.get("transactions") or []
        for item in items:
            if not isinstance(item, dict):
                continue
            try:
                row_id = int(item.get("transaction_id"))
            except (TypeError, ValueError):
                continue
            if row_id not in batch_ids:
                continue

            category_id = item.get("category_id")
            try:
                category_id = int(category_id) if category_id is not None else None
            except (TypeError, ValueError):
                category_id = None
            if category_id not in valid_ids:
                category_id = None
            if category_id is None:
                continue

            try:
                confidence = float(item.get("confidence") or 0.5)
            except (TypeError, ValueError):
                confidence = 0.5
            outcome.assign(row_id, category_id, min(max(confidence, 0.1), 1.0))

            keyword = (item.get("keyword") or "").strip().lower()
            if len(keyword) >= 3:
                outcome.learned.append((keyword[:50], category_id))

        for suggestion in result.get("new_category_suggestions") or []:
            if isinstance(suggestion, dict):
                outcome.add_suggestion(suggestion)

    def match_category_names(
        self,
        rows: List[RowToCategorize],
        categories: Sequence[CategoryRef],
        outcome: CategorizationOutcome
    ) -> List[RowToCategorize]:
        unmatched = []
        for row in rows:
            words = set(KEYWORD_SPLIT.split(row.description.lower()))
            for category in categories:
                name_words = {w for w in KEYWORD_SPLIT.split(category.name.lower()) if len(w) >= 3}
                if name_words & words:
                    outcome.assign(row.id, category.id, NAME_MATCH_CONFIDENCE)
                    break
            else:
                unmatched.append(row)
        return unmatched

    async def categorize(
        self,
        rows: List[RowToCategorize],
        categories: Sequence[CategoryRef],
        mappings: Sequence[Tuple[str, int]]
    ) -> CategorizationOutcome:
        outcome = CategorizationOutcome()

        remaining = self.match_mappings(rows, mappings, outcome)
        logger.info("Matched %d rows via learned mappings, %d left", len(rows) - len(remaining), len(remaining))

        remaining = self.match_classifier(remaining, categories, outcome)
        remaining = await self.match_ai(remaining, categories, outcome)
        remaining = self.match_category_names(remaining, categories, outcome)

        logger.info("Categorization left %d of %d rows unmatched", len(remaining), len(rows))
        return outcome
