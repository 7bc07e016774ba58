"""
Training script for the category classifier
Run with ``python -m spendlog.ml.training.train_classifier [--from-db]``
"""

import argparse
import asyncio
import logging
import os
from datetime import datetime, timedelta

import numpy as np
import pandas as pd
from sqlalchemy import select

from spendlog.config import settings
from spendlog.core.database import async_session
from spendlog.core.logging_config import configure_logging
from spendlog.ml.models.category_classifier import CategoryClassifier
from spendlog.models import Category, Expense

logger = logging.getLogger(__name__)

def generate_sample_data(n_samples: int = 1000) -> pd.DataFrame:
    """
    Generate statement-style narrations for training
    """
    rng = np.random.default_rng(42)

    merchants = {
        'Food & Dining': ['SWIGGY', 'ZOMATO', 'MCDONALDS', 'DOMINOS', 'CAFE COFFEE DAY'],
        'Groceries': ['BIGBASKET', 'DMART', 'BLINKIT', 'ZEPTO', 'RELIANCE FRESH'],
        'Transportation': ['UBER', 'OLA', 'RAPIDO', 'IOCL PETROL', 'METRO CARD'],
        'Entertainment': ['BOOKMYSHOW', 'NETFLIX', 'PVR CINEMAS', 'SPOTIFY'],
        'Shopping': ['AMAZON', 'FLIPKART', 'MYNTRA', 'AJIO', 'NYKAA'],
        'Bills & Utilities': ['AIRTEL', 'JIO RECHARGE', 'BESCOM', 'TATA POWER', 'ACT FIBERNET'],
        'Healthcare': ['APOLLO PHARMACY', 'PHARMEASY', 'MEDPLUS', 'PRACTO'],
    }

    amount_ranges = {
        'Food & Dining': (80, 900),
        'Groceries': (200, 3500),
        'Transportation': (40, 1500),
        'Entertainment': (100, 1200),
        'Shopping': (300, 6000),
        'Bills & Utilities': (200, 4000),
        'Healthcare': (100, 2500),
    }

    templates = [
        "UPI/{ref}/{merchant}/PAYMENT",
        "POS {ref} {merchant}",
        "UPI-{merchant}-{ref}@YBL",
        "NEFT/{merchant}/{ref}",
        "{merchant} BANGALORE IN",
    ]

    categories = list(merchants)
    start_date = datetime.now() - timedelta(days=365)
    data = []

    for _ in range(n_samples):
        category = rng.choice(categories)
        merchant = rng.choice(merchants[category])
        min_amt, max_amt = amount_ranges[category]
        template = rng.choice(templates)

        data.append({
            'description': template.format(merchant=merchant, ref=rng.integers(100000, 999999)),
            'amount': round(float(rng.uniform(min_amt, max_amt)), 2),
            'category': category,
            'timestamp': start_date + timedelta(days=int(rng.integers(0, 365))),
        })

    return pd.DataFrame(data).sort_values('timestamp').reset_index(drop=True)

async def load_expense_history() -> pd.DataFrame:
    """Categorized expenses with a note, across all users"""
    async with async_session() as session:
        result = await session.execute(
            select(Expense.note, Expense.amount, Category.name)
            .join(Category, Expense.category_id == Category.id)
            .where(Expense.note.isnot(None))
        )
        rows = result.all()

    return pd.DataFrame(
        [{'description': note, 'amount': float(amount), 'category': name} for note, amount, name in rows],
        columns=['description', 'amount', 'category']
    )

def train_category_classifier(df: pd.DataFrame, save_path: str) -> dict:
    classifier = CategoryClassifier()
    metrics = classifier.train(df)
    classifier.save_model(save_path)

    category, confidence, _ = classifier.predict("UPI/123456/SWIGGY/PAYMENT", 350.0)
    logger.info("Test prediction for SWIGGY 350: %s (confidence %.2f)", category, confidence)

    return metrics

def main(argv=None):
    parser = argparse.ArgumentParser(description="Train the statement category classifier")
    parser.add_argument("--from-db", action="store_true", help="train on stored expenses instead of sample data")
    parser.add_argument("--samples", type=int, default=1000)
    parser.add_argument("--output", default=settings.MODEL_PATH)
    args = parser.parse_args(argv)

    configure_logging()
    os.makedirs(args.output, exist_ok=True)

    if args.from_db:
        df = asyncio.run(load_expense_history())
        logger.info("Loaded %d labelled expenses", len(df))
    else:
        df = generate_sample_data(n_samples=args.samples)
        logger.info("Generated %d sample rows", len(df))

    metrics = train_category_classifier(df, args.output)
    for key, value in metrics.items():
        logger.info("%s: %s", key, value)
    return metrics

if __name__ == "__main__":
    main()
