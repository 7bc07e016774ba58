"""
ML Model Loader - Singleton pattern for loading the classifier once
"""

import logging
import pickle
from typing import Optional

from spendlog.config import settings
from spendlog.ml.models.category_classifier import CategoryClassifier

logger = logging.getLogger(__name__)

class ModelLoader:
    """
    Caches the trained category classifier for the process
    """
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(ModelLoader, cls).__new__(cls)
            cls._instance.category_classifier = None
            cls._instance.loaded = False
        return cls._instance

    def load_models(self, model_path: Optional[str] = None):
        """Load the classifier if it has been trained; missing files are not an error"""
        model_path = model_path or settings.MODEL_PATH
        try:
            self.category_classifier = CategoryClassifier.from_path(model_path)
        except (OSError, EOFError, ValueError, pickle.UnpicklingError) as e:
            logger.error("Error loading category classifier: %s", e)
            self.category_classifier = None

        if self.category_classifier is None:
            logger.warning("Category classifier not found in %s. Run training first.", model_path)
        else:
            logger.info("Category classifier loaded")
        self.loaded = True

    def get_category_classifier(self) -> Optional[CategoryClassifier]:
        if not self.loaded:
            self.load_models()
        return self.category_classifier

    def reload_models(self):
        """Reload after retraining"""
        self.loaded = False
        self.load_models()

# Global instance
model_loader = ModelLoader()
