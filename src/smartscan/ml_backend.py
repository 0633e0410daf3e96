"""
Zero-shot text classification backend (Hugging Face transformers).

Optional: install the `ml` extra. When transformers or the model cannot be
loaded the backend reports itself unavailable and classification stays
keyword-only.
"""

from typing import Dict, List, Optional, Tuple

from loguru import logger

from smartscan.backends import LazyBackend
from smartscan.config import DEFAULT_CONFIG


class ZeroShotBackend(LazyBackend):
    """
    Wraps a `zero-shot-classification` pipeline.

    classify(text, labels) → (labels sorted by score, scores)
    """

    name = "ZeroShot"

    def __init__(self, config: Optional[Dict] = None):
        cfg = dict(DEFAULT_CONFIG["ml"])
        cfg.update(config or {})
        super().__init__(init_timeout=cfg["init_timeout"], enabled=bool(cfg["enabled"]))
        self.model = cfg["model"]
        self.hypothesis_template = cfg.get("hypothesis_template")

    def _load(self):
        from transformers import pipeline

        logger.info(f"[{self.name}] Loading model {self.model}")
        return pipeline("zero-shot-classification", model=self.model)

    def classify(self, text: str, labels: List[str]) -> Tuple[List[str], List[float]]:
        kwargs = {"multi_label": False}
        if self.hypothesis_template:
            kwargs["hypothesis_template"] = self.hypothesis_template
        result = self.handle(text, labels, **kwargs)
        return list(result["labels"]), [float(s) for s in result["scores"]]
