import pandas as pd
import pytest

from spendlog.ml.inference.model_loader import ModelLoader
from spendlog.ml.models.category_classifier import CategoryClassifier
from spendlog.ml.training.train_classifier import generate_sample_data, train_category_classifier

@pytest.fixture(scope="module")
def training_data():
    return generate_sample_data(n_samples=300)

def test_sample_data_shape(training_data):
    assert list(training_data.columns[:3]) == ["description", "amount", "category"]
    assert training_data["category"].nunique() == 7

def test_train_predict_save_load(training_data, tmp_path):
    metrics = train_category_classifier(training_data, str(tmp_path))

    assert metrics["n_classes"] == 7
    assert metrics["accuracy"] > 0.8

    restored = CategoryClassifier.from_path(str(tmp_path))
    category, confidence, probabilities = restored.predict("UPI/555555/ZOMATO/PAYMENT", 420.0)
    assert category == "Food & Dining"
    assert 0 < confidence <= 1
    assert set(probabilities) == set(training_data["category"].unique())

def test_single_category_cannot_train():
    df = pd.DataFrame({"description": ["UBER", "OLA"], "amount": [100, 200], "category": ["Transportation"] * 2})

    with pytest.raises(ValueError):
        CategoryClassifier().train(df)

def test_untrained_classifier_refuses_predictions():
    with pytest.raises(ValueError):
        CategoryClassifier().predict("UBER", 100)

def test_loader_without_saved_model(tmp_path):
    loader = ModelLoader()
    loader.load_models(str(tmp_path))

    assert loader.get_category_classifier() is None
