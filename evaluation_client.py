from __future__ import annotations
import hashlib
import logging
from typing import Any, Dict, Optional

import requests

from config import GameSettings
from errors import EvaluatorUnavailable
from models import Verdict
from prompts import build_conversation

logger = logging.getLogger(__name__)

OPTIONAL_FIELDS = ("ai_detection_score", "coherence_score", "explanation")

class EvaluationClient:
    """
    Client for the external "is this answer basic?" judge.
    POSTs {"conversation": [...]} and expects {"final_score": float, ...} back.
    Never raises: any failure yields a locally derived fallback verdict.
    """
    def __init__(
        self,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        win_threshold: Optional[float] = None,
        settings: Optional[GameSettings] = None,
    ):
        settings = settings or GameSettings()
        self.api_url = api_url or settings.evaluator_url
        self.timeout = timeout if timeout is not None else settings.evaluator_timeout
        self.win_threshold = win_threshold if win_threshold is not None else settings.win_threshold
        logger.info("EvaluationClient using %s (timeout=%ss, threshold=%s)",
                    self.api_url, self.timeout, self.win_threshold)

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def evaluate(self, prompt: str, answer: str) -> Verdict:
        try:
            data = self._post({"conversation": build_conversation(prompt, answer)})
            return self._to_verdict(data)
        except EvaluatorUnavailable as e:
            logger.warning("Evaluator unavailable (%s): %s; using fallback verdict", e.kind, e.detail)
            return self.fallback_verdict(prompt, answer, e)

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = requests.post(self.api_url, json=payload, headers=self._headers(), timeout=self.timeout)
        except requests.Timeout as e:
            raise EvaluatorUnavailable("timeout", f"Evaluator timed out after {self.timeout}s: {e}") from e
        except requests.RequestException as e:
            raise EvaluatorUnavailable("transport", f"Evaluator request failed: {e}") from e

        if not 200 <= resp.status_code < 300:
            raise EvaluatorUnavailable("http_status", f"API response error: {resp.status_code}: {resp.text[:200]}")
        try:
            data = resp.json()
        except ValueError as e:
            raise EvaluatorUnavailable("bad_payload", f"Evaluator returned non-JSON body: {e}") from e
        if not isinstance(data, dict):
            raise EvaluatorUnavailable("bad_payload", "Evaluator returned a non-object body")
        return data

    def _to_verdict(self, data: Dict[str, Any]) -> Verdict:
        try:
            score = float(data.get("final_score") or 0.0)
        except (TypeError, ValueError) as e:
            raise EvaluatorUnavailable("bad_payload", f"Unusable final_score {data.get('final_score')!r}") from e
        score = min(1.0, max(0.0, score))

        diagnostics: Dict[str, Any] = {"final_score": score}
        for key in OPTIONAL_FIELDS:
            if data.get(key) is not None:
                diagnostics[key] = data[key]
        return Verdict(is_winner=score >= self.win_threshold, score=score,
                       used_fallback=False, diagnostics=diagnostics)

    def fallback_verdict(self, prompt: str, answer: str, error: EvaluatorUnavailable) -> Verdict:
        score = _hash_score(prompt, answer)
        return Verdict(
            is_winner=score >= self.win_threshold,
            score=score,
            used_fallback=True,
            diagnostics={
                "final_score": score,
                "error": error.detail,
                "fallback_reason": error.kind,
            },
        )

def _hash_score(prompt: str, answer: str) -> float:
    digest = hashlib.sha256(f"{prompt}\x00{answer}".encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") / float(2 ** 64)
