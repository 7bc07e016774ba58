import logging
import os
from typing import Dict, List, Optional, Tuple

import joblib
import numpy as np
import pandas as pd
from scipy.sparse import hstack
from sklearn.ensemble import RandomForestClassifier
from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.metrics import accuracy_score, classification_report
from sklearn.model_selection import train_test_split
from sklearn.preprocessing import LabelEncoder

logger = logging.getLogger(__name__)

AMOUNT_BINS = [0, 100, 500, 1000, 5000, float('inf')]

class CategoryClassifier:
    """
    Suggests a category name for a statement row from its narration and amount
    """

    def __init__(self, model_path: str = None):
        self.model = None
        self.vectorizer = TfidfVectorizer(max_features=500, ngram_range=(1, 2))
        self.label_encoder = LabelEncoder()
        self.model_path = model_path

        if model_path and os.path.exists(f"{model_path}/category_classifier.pkl"):
            self.load_model(model_path)

    @property
    def is_trained(self) -> bool:
        return self.model is not None

    def preprocess_text(self, text: str) -> str:
        """Lowercase, strip punctuation and collapse whitespace"""
        if not text:
            return ""

        text = text.lower()
        text = ''.join(c if c.isalnum() or c.isspace() else ' ' for c in text)
        return ' '.join(text.split())

    def prepare_features(self, df: pd.DataFrame, fit: bool = False):
        """
        Features: TF-IDF over the description plus a binned amount
        """
        text = df['description'].fillna('').astype(str).apply(self.preprocess_text)

        if fit:
            text_features = self.vectorizer.fit_transform(text)
        else:
            text_features = self.vectorizer.transform(text)

        amount_bin = pd.cut(
            df['amount'].astype(float).abs(),
            bins=AMOUNT_BINS,
            labels=[0, 1, 2, 3, 4],
            include_lowest=True
        ).astype(float).fillna(0)

        return hstack([text_features, amount_bin.values.reshape(-1, 1)]).tocsr()

    def train(self, df: pd.DataFrame) -> Dict[str, float]:
        """
        Train on labelled history.

        Args:
            df: DataFrame with columns: description, amount, category

        Returns:
            Dict with training metrics
        """
        df = df.dropna(subset=['description', 'category']).reset_index(drop=True)
        if df['category'].nunique() < 2:
            raise ValueError("Need at least two categories to train")

        logger.info("Training category classifier with %d samples", len(df))

        X = self.prepare_features(df, fit=True)
        y = self.label_encoder.fit_transform(df['category'])

        # Stratified split needs two rows per class
        counts = np.bincount(y)
        can_split = len(df) >= 10 and counts.min() >= 2

        self.model = RandomForestClassifier(
            n_estimators=100,
            max_depth=20,
            min_samples_split=2 if len(df) < 50 else 10,
            min_samples_leaf=1 if len(df) < 50 else 5,
            random_state=42,
            n_jobs=-1
        )

        if not can_split:
            self.model.fit(X, y)
            return {
                "accuracy": None,
                "n_samples": len(df),
                "n_features": X.shape[1],
                "n_classes": len(self.label_encoder.classes_)
            }

        X_train, X_test, y_train, y_test = train_test_split(
            X, y, test_size=0.2, random_state=42, stratify=y
        )
        self.model.fit(X_train, y_train)

        y_pred = self.model.predict(X_test)
        accuracy = accuracy_score(y_test, y_pred)

        logger.info("Accuracy: %.4f", accuracy)
        logger.debug("Classification report:\n%s", classification_report(
            y_test, y_pred,
            labels=list(range(len(self.label_encoder.classes_))),
            target_names=list(self.label_encoder.classes_),
            zero_division=0
        ))

        return {
            "accuracy": accuracy,
            "n_samples": len(df),
            "n_features": X.shape[1],
            "n_classes": len(self.label_encoder.classes_)
        }

    def predict(self, description: str, amount: float) -> Tuple[str, float, Dict[str, float]]:
        """
        Predict a category for one row

        Returns:
            (predicted_category, confidence, all_probabilities)
        """
        predictions = self.predict_many([(description, amount)])
        return predictions[0]

    def predict_many(
        self, rows: List[Tuple[str, float]]
    ) -> List[Tuple[str, float, Dict[str, float]]]:
        if self.model is None:
            raise ValueError("Model not trained or loaded")
        if not rows:
            return []

        df = pd.DataFrame(
            [{'description': d or "", 'amount': float(a or 0)} for d, a in rows]
        )
        X = self.prepare_features(df, fit=False)

        results = []
        for probabilities in self.model.predict_proba(X):
            best = int(np.argmax(probabilities))
            category = self.label_encoder.inverse_transform([self.model.classes_[best]])[0]
            all_probs = {
                self.label_encoder.inverse_transform([cls])[0]: float(prob)
                for cls, prob in zip(self.model.classes_, probabilities)
            }
            results.append((category, float(probabilities[best]), all_probs))
        return results

    def save_model(self, path: str):
        """Save model, vectorizer, and label encoder"""
        os.makedirs(path, exist_ok=True)

        joblib.dump(self.model, f"{path}/category_classifier.pkl")
        joblib.dump(self.vectorizer, f"{path}/category_vectorizer.pkl")
        joblib.dump(self.label_encoder, f"{path}/category_label_encoder.pkl")

        logger.info("Model saved to %s", path)

    def load_model(self, path: str):
        """Load model, vectorizer, and label encoder"""
        self.model = joblib.load(f"{path}/category_classifier.pkl")
        self.vectorizer = joblib.load(f"{path}/category_vectorizer.pkl")
        self.label_encoder = joblib.load(f"{path}/category_label_encoder.pkl")

        logger.info("Model loaded from %s", path)

    @classmethod
    def from_path(cls, path: Optional[str]) -> Optional["CategoryClassifier"]:
        if not path or not os.path.exists(f"{path}/category_classifier.pkl"):
            return None
        return cls(path)
