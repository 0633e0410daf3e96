"""
Tests for the document classifier
"""

from datetime import date

import pytest

from conftest import FakeZeroShot
from smartscan.categories import CategoryRegistry
from smartscan.data_extractor import StructuredData
from smartscan.document_classifier import (
    METHOD_KEYWORD,
    METHOD_ML,
    METHOD_ML_UNAVAILABLE,
    DocumentClassifier,
    KeywordCalibration,
)


RICH_INVOICE = (
    "Rechnung\n"
    "Rechnungsnummer 123\n"
    "Rechnungsbetrag: 49,99 €\n"
    "MwSt 19%  Netto  Brutto"
)


@pytest.fixture
def classifier(registry):
    return DocumentClassifier(registry)


# ─── Keyword stage ────────────────────────────────────────────────────────────

def test_single_strong_keyword(classifier):
    """'zahlungsziel' is a strong invoice keyword and nothing else matches"""
    result = classifier.keyword_classify("Zahlungsziel: 14 Tage", StructuredData())

    assert result.category == "invoice"
    assert result.scores["invoice"] == 3
    assert result.scores["other"] == pytest.approx(0.1)
    assert 0 < result.confidence < 1
    assert result.confidence == pytest.approx(3 / 5)


def test_rich_invoice_is_confident(classifier, extractor):
    data = extractor.extract(RICH_INVOICE)
    result = classifier.keyword_classify(RICH_INVOICE, data)

    assert result.category == "invoice"
    assert result.method == METHOD_KEYWORD
    assert result.confidence == 1.0
    # amount bonus goes to both amount categories
    assert result.scores["receipt"] == 1


def test_empty_text_is_other(classifier):
    result = classifier.keyword_classify("", StructuredData())

    assert result.category == "other"
    assert result.confidence == pytest.approx(0.1 / 5)


def test_confidence_never_exceeds_one(classifier, extractor):
    text = " ".join(["Rechnung Rechnungsnummer Rechnungsbetrag MwSt"] * 20)
    result = classifier.keyword_classify(text, extractor.extract(text))
    assert result.confidence <= 1.0


def test_tie_keeps_configuration_order():
    registry = CategoryRegistry.from_entries([
        {"id": "alpha", "strong": ["foo"]},
        {"id": "beta", "strong": ["foo"]},
        {"id": "other"},
    ])
    result = DocumentClassifier(registry).keyword_classify("foo", StructuredData())

    assert result.scores["alpha"] == result.scores["beta"] == 3
    assert result.category == "alpha"


def test_custom_calibration(registry):
    classifier = DocumentClassifier(registry, config={"strong_weight": 10, "confidence_floor": 20})
    assert classifier.calibration == KeywordCalibration(strong_weight=10, confidence_floor=20)

    result = classifier.keyword_classify("Zahlungsziel", StructuredData())
    assert result.scores["invoice"] == 10
    assert result.confidence == pytest.approx(10 / 20)


# ─── ML refinement ────────────────────────────────────────────────────────────

def test_ml_overrides_weak_keyword_result(registry):
    ml = FakeZeroShot(top_label="Brief oder Schreiben", top_score=0.8)
    result = DocumentClassifier(registry, ml_backend=ml).classify("Hallo zusammen")

    assert result.category == "letter"
    assert result.method == METHOD_ML
    assert result.confidence == pytest.approx(0.8)
    assert result.all_scores[0]["label"] == "Brief oder Schreiben"
    assert len(ml.calls) == 1
    # every configured label is offered, none positional
    assert set(ml.calls[0][1]) == set(registry.ml_labels)


def test_ml_not_used_when_keywords_confident(registry):
    ml = FakeZeroShot()
    result = DocumentClassifier(registry, ml_backend=ml).classify(RICH_INVOICE)

    assert result.method == METHOD_KEYWORD
    assert ml.calls == []


def test_ml_less_confident_is_ignored(registry):
    ml = FakeZeroShot(top_score=0.01)
    result = DocumentClassifier(registry, ml_backend=ml).classify("Hallo zusammen")

    assert result.method == METHOD_KEYWORD
    assert result.category == "other"


def test_ml_error_keeps_keyword_result(registry):
    ml = FakeZeroShot(error=RuntimeError("CUDA out of memory"))
    result = DocumentClassifier(registry, ml_backend=ml).classify("Der Betrag")

    assert result.category == "invoice"
    assert result.method == METHOD_KEYWORD
    assert "CUDA out of memory" in result.reason


def test_ml_unavailable(registry):
    ml = FakeZeroShot(available=False)
    classifier = DocumentClassifier(registry, ml_backend=ml)

    result = classifier.classify("Hallo zusammen")
    assert result.method == METHOD_KEYWORD
    assert result.reason == METHOD_ML_UNAVAILABLE
    assert classifier.ml_classify("Hallo").method == METHOD_ML_UNAVAILABLE


def test_ml_input_truncated(registry):
    ml = FakeZeroShot()
    DocumentClassifier(registry, ml_backend=ml).classify("x" * 5000)
    assert len(ml.calls[0][0]) == 1000


# ─── Full result ──────────────────────────────────────────────────────────────

def test_classify_fills_document_fields(classifier):
    text = "Telekom Deutschland GmbH\nRechnung vom 15.03.2024 über 1.234,56 €"
    result = classifier.classify(text, today=date(2024, 4, 1))

    assert result.category == "invoice"
    assert result.date == "2024-03-15"
    assert result.amount == "1.234,56 €"
    assert result.sender == "Telekom Deutschland GmbH"
    assert result.name == "Rechnung Telekom Deutschland GmbH 1.234,56 €"


def test_classify_without_date(classifier):
    result = classifier.classify("Zahlungsziel 14 Tage", today=date(2024, 4, 1))
    assert result.date is None
    assert result.amount is None


def test_alternatives(classifier, extractor):
    result = classifier.keyword_classify(RICH_INVOICE, extractor.extract(RICH_INVOICE))
    alternatives = classifier.get_alternatives(result)

    assert len(alternatives) == 3
    assert alternatives[0]["category"] == "receipt"
    assert alternatives[0]["score"] == pytest.approx(1 / result.scores["invoice"])
    assert all(a["category"] != "invoice" for a in alternatives)


def test_alternatives_floor_at_one(classifier):
    result = classifier.keyword_classify("", StructuredData())
    alternatives = classifier.get_alternatives(result, limit=2)
    assert [a["score"] for a in alternatives] == [0.0, 0.0]


# ─── Document naming ──────────────────────────────────────────────────────────

def test_name_with_sender_and_largest_amount(classifier):
    data = StructuredData(amounts=("12,00 €", "49,99 €", "5,00 €"), sender="Stadtwerke Hannover AG")
    name = classifier.generate_document_name("invoice", data, "")
    assert name == "Rechnung Stadtwerke Hannover AG 49,99 €"


def test_name_from_first_line(classifier):
    data = StructuredData(amounts=("12,00 €",))
    name = classifier.generate_document_name("letter", data, "Stadtwerke Hannover\n\nSehr geehrte")
    # no amount for non-amount categories
    assert name == "Brief Stadtwerke Hannover"


def test_name_truncated(classifier):
    data = StructuredData(sender="A" * 80, amounts=("1.234.567,89 €",))
    name = classifier.generate_document_name("invoice", data, "")
    assert len(name) <= 60
    assert name.startswith("Rechnung " + "A" * 30)


def test_name_for_unknown_category_uses_fallback(classifier):
    name = classifier.generate_document_name("nope", StructuredData(), "")
    assert name == "Dokument"
