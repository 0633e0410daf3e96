"""
Document Classifier
===================
Assigns OCR text to one of the configured categories.

Two stages work in tandem:

  1. Keyword scoring  (always)
       +3  per strong keyword contained in the lowercased text
       +1  per medium keyword
       +1  to every amount-bonus category (invoice, receipt) when the
           extractor found at least one currency amount
       +2  per extractor keyword-pattern hit for the category
     The catch-all category starts at 0.1 so there is always a winner.

     confidence = min(best / max(total * 0.5, 5), 1)     (0.1 if total == 0)

     A category that dominates the total approaches 1.0; a flat spread of
     points across many categories keeps confidence low even when the
     winning score is high.

  2. Zero-shot ML refinement  (optional)
       Only when keyword confidence < 0.6 and a backend is available.
       The ML answer replaces the keyword answer only if it is strictly
       more confident. Any backend problem keeps the keyword answer.

Label phrases map to category ids through the registry's label → id
dict, so there is no positional coupling between two parallel lists.
"""

import re
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Dict, List, Optional

from loguru import logger

from smartscan.categories import CategoryRegistry
from smartscan.config import DEFAULT_CONFIG
from smartscan.data_extractor import (
    StructuredData,
    StructuredDataExtractor,
    extract_best_date,
    parse_amount,
)
from smartscan.ml_backend import ZeroShotBackend


METHOD_KEYWORD = "keyword"
METHOD_ML = "ml"
METHOD_ML_UNAVAILABLE = "ml-unavailable"
METHOD_ML_ERROR = "ml-error"

_FIRST_LINE_NAME = re.compile(r'^([A-Za-zäöüÄÖÜß\s&.\-]{3,25})')
_MAX_NAME_LENGTH = 60
_MAX_SENDER_IN_NAME = 30


@dataclass(frozen=True)
class KeywordCalibration:
    """Tunable constants of the keyword stage."""
    other_base_score: float = 0.1
    strong_weight: float = 3
    medium_weight: float = 1
    amount_bonus: float = 1
    extracted_keyword_weight: float = 2
    total_multiplier: float = 0.5
    confidence_floor: float = 5
    empty_confidence: float = 0.1

    @classmethod
    def from_config(cls, config: Optional[Dict] = None) -> "KeywordCalibration":
        values = dict(DEFAULT_CONFIG["classification"])
        values.update(config or {})
        return cls(**{k: float(values[k]) for k in cls.__dataclass_fields__ if k in values})


@dataclass
class ClassificationResult:
    category: str
    confidence: float
    scores: Dict[str, float] = field(default_factory=dict)
    method: str = METHOD_KEYWORD
    all_scores: List[Dict] = field(default_factory=list)
    reason: Optional[str] = None

    # Filled in by DocumentClassifier.classify()
    name: Optional[str] = None
    date: Optional[str] = None
    amount: Optional[str] = None
    sender: Optional[str] = None

    def to_dict(self) -> Dict:
        return asdict(self)


class DocumentClassifier:
    """
    Usage
    -----
    classifier = DocumentClassifier(registry, ml_backend=ZeroShotBackend(cfg["ml"]))
    result = classifier.classify(text, structured_data)
    alternatives = classifier.get_alternatives(result)
    """

    def __init__(
        self,
        registry: Optional[CategoryRegistry] = None,
        ml_backend: Optional[ZeroShotBackend] = None,
        config: Optional[Dict] = None,
        extractor: Optional[StructuredDataExtractor] = None,
    ):
        cfg = dict(DEFAULT_CONFIG["classification"])
        cfg.update(config or {})

        self.registry = registry or CategoryRegistry.load()
        self.ml_backend = ml_backend
        self.extractor = extractor or StructuredDataExtractor(self.registry)
        self.calibration = KeywordCalibration.from_config(cfg)
        self.ml_threshold = float(cfg["ml_threshold"])
        self.ml_max_chars = int(cfg["ml_max_chars"])

    # ── Public API ────────────────────────────────────────────────────────────

    def classify(
        self,
        text: str,
        data: Optional[StructuredData] = None,
        today: Optional[date] = None,
    ) -> ClassificationResult:
        """
        Classify `text` and attach name, best date, first amount and sender.

        Args:
            text:  Full OCR text
            data:  Extractor output for the same text (computed if None)
            today: Reference date for best-date selection (default: today)
        """
        text = text or ""
        if data is None:
            data = self.extractor.extract(text)

        result = self.keyword_classify(text, data)

        if result.confidence < self.ml_threshold and self.ml_backend is not None:
            if self.ml_backend.is_available():
                ml_result = self.ml_classify(text)
                if ml_result.method == METHOD_ML and ml_result.confidence > result.confidence:
                    logger.info(
                        f"[Classifier] ML override: {result.category} ({result.confidence:.2f}) "
                        f"→ {ml_result.category} ({ml_result.confidence:.2f})"
                    )
                    result = ml_result
                elif ml_result.method != METHOD_ML:
                    result.reason = ml_result.reason or ml_result.method
            else:
                result.reason = METHOD_ML_UNAVAILABLE

        best_date = extract_best_date(data.dates, today=today)
        result.name = self.generate_document_name(result.category, data, text)
        result.date = best_date.isoformat() if best_date else None
        result.amount = data.amounts[0] if data.amounts else None
        result.sender = data.sender

        logger.info(
            f"[Classifier] {result.category} conf={result.confidence:.2f} "
            f"method={result.method} name={result.name!r}"
        )
        return result

    def keyword_classify(self, text: str, data: StructuredData) -> ClassificationResult:
        """Rule-based scoring over the registry's keyword tables."""
        cal = self.calibration
        text_lower = (text or "").lower()
        fallback = self.registry.fallback_id

        scores: Dict[str, float] = {cid: 0.0 for cid in self.registry.ids}
        scores[fallback] = cal.other_base_score

        for category in self.registry:
            for keyword in category.strong_keywords:
                if keyword in text_lower:
                    scores[category.id] += cal.strong_weight
            for keyword in category.medium_keywords:
                if keyword in text_lower:
                    scores[category.id] += cal.medium_weight

        if data.amounts:
            for category in self.registry:
                if category.amount_bonus:
                    scores[category.id] += cal.amount_bonus

        for hit in data.keywords:
            if hit.category not in scores:
                logger.debug(f"[Classifier] Ignoring keyword hit for unknown category '{hit.category}'")
                continue
            scores[hit.category] += hit.count * cal.extracted_keyword_weight

        # Strictly-greater comparison: exact ties keep the earlier category
        best_category = fallback
        best_score = 0.0
        total_score = 0.0
        for category_id, score in scores.items():
            total_score += score
            if score > best_score:
                best_score = score
                best_category = category_id

        if total_score > 0:
            confidence = min(best_score / max(total_score * cal.total_multiplier, cal.confidence_floor), 1.0)
        else:
            confidence = cal.empty_confidence

        return ClassificationResult(
            category=best_category,
            confidence=confidence,
            scores=scores,
            method=METHOD_KEYWORD,
        )

    def ml_classify(self, text: str) -> ClassificationResult:
        """Zero-shot classification against the registry's label phrases."""
        fallback = self.registry.fallback_id
        label_map = self.registry.ml_labels

        if self.ml_backend is None or not label_map or not self.ml_backend.is_available():
            reason = getattr(self.ml_backend, "error", None) if self.ml_backend else "no ML backend configured"
            return ClassificationResult(
                category=fallback, confidence=0.0, method=METHOD_ML_UNAVAILABLE, reason=reason,
            )

        truncated = (text or "")[: self.ml_max_chars]
        try:
            labels, label_scores = self.ml_backend.classify(truncated, list(label_map))
        except Exception as e:
            logger.error(f"[Classifier] ML classification failed: {e}")
            return ClassificationResult(
                category=fallback, confidence=0.0, method=METHOD_ML_ERROR, reason=str(e),
            )

        if not labels:
            return ClassificationResult(
                category=fallback, confidence=0.0, method=METHOD_ML_ERROR, reason="empty ML result",
            )

        all_scores = [
            {"category": label_map.get(label, fallback), "label": label, "score": score}
            for label, score in zip(labels, label_scores)
        ]
        scores: Dict[str, float] = {}
        for entry in all_scores:
            scores.setdefault(entry["category"], entry["score"])

        return ClassificationResult(
            category=label_map.get(labels[0], fallback),
            confidence=float(label_scores[0]),
            scores=scores,
            method=METHOD_ML,
            all_scores=all_scores,
        )

    def get_alternatives(self, result: ClassificationResult, limit: int = 3) -> List[Dict]:
        """
        Runner-up categories by raw score, each scaled by the top score
        (floored at 1), a relative-strength hint for manual override.
        """
        if not result.scores:
            return []

        max_score = max(max(result.scores.values()), 1)
        others = [(cid, s) for cid, s in result.scores.items() if cid != result.category]
        others.sort(key=lambda item: item[1], reverse=True)
        return [
            {"category": cid, "score": score / max_score}
            for cid, score in others[:limit]
        ]

    def generate_document_name(self, category_id: str, data: StructuredData, text: str) -> str:
        """
        "<category name> <sender> <largest amount>", at most 60 characters.

        Without a sender, a company-like prefix of the first text line is
        used. The amount is only added for amount-bonus categories.
        """
        category = self.registry.get(category_id) or self.registry.fallback
        name = category.display_name or "Dokument"

        if data.sender:
            name = f"{name} {data.sender[:_MAX_SENDER_IN_NAME].strip()}"
        else:
            lines = [l.strip() for l in (text or "").split("\n") if len(l.strip()) > 3]
            if lines:
                match = _FIRST_LINE_NAME.match(lines[0])
                if match and match.group(1).strip():
                    name = f"{name} {match.group(1).strip()}"

        if category.amount_bonus and data.amounts:
            valued = [(parse_amount(a) or 0.0, a) for a in data.amounts]
            largest = max(valued, key=lambda v: v[0])
            name = f"{name} {largest[1]}"

        return name[:_MAX_NAME_LENGTH]
