from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from typing import Any

import requests

from .types import LabelSource, LabelSourceError, Prediction, normalize_predictions


@dataclass
class GeminiLabelSource(LabelSource):
    """Ask the Google Gemini multimodal API for ranked object labels."""

    api_key: str
    model: str = "models/gemini-2.5-flash"
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    timeout: float = 20.0
    mime_type: str = "image/jpeg"

    def classify(self, image_bytes: bytes, top_k: int) -> list[Prediction]:
        if not self.api_key:
            raise LabelSourceError("Gemini API key is required to label images")

        payload = self._build_payload(image_bytes, top_k)
        url = f"{self.base_url.rstrip('/')}/{self.model}:generateContent"
        response_data = self._send_request(url, payload)
        message = self._extract_message_content(response_data)
        return normalize_predictions(self._parse_message(message), top_k)

    def _send_request(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = requests.post(
                url,
                params={"key": self.api_key},
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except Exception as exc:  # pragma: no cover - surfaced to caller
            raise LabelSourceError(f"Failed to reach Gemini API: {exc}") from exc

    def _build_payload(self, image_bytes: bytes, top_k: int) -> dict[str, Any]:
        encoded = base64.b64encode(image_bytes).decode("ascii")
        return {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": self._build_prompt(top_k)},
                        {
                            "inline_data": {
                                "mime_type": self.mime_type,
                                "data": encoded,
                            }
                        },
                    ],
                }
            ],
            "generationConfig": {
                "temperature": 0.0,
                "responseMimeType": "application/json",
            },
        }

    def _build_prompt(self, top_k: int) -> str:
        return (
            "You are an image classifier in the style of an ImageNet model. "
            f"List up to {top_k} short object labels describing the main item in the photo, "
            "most likely first. Mention the material (plastic, paper, glass, metal, wood) "
            "in a label when it is visible.\n"
            "Return a JSON object with a field 'predictions': a list of objects with "
            "'label' (lowercase text) and 'confidence' (float between 0 and 1)."
        )

    def _extract_message_content(self, data: dict[str, Any]) -> str:
        try:
            parts = data["candidates"][0]["content"]["parts"]
            return "".join(part.get("text", "") for part in parts)
        except (KeyError, IndexError, TypeError) as exc:
            raise LabelSourceError("Unexpected response format from Gemini API") from exc

    def _parse_message(self, message: str) -> list[Prediction]:
        try:
            payload = json.loads(message)
        except json.JSONDecodeError as exc:
            raise LabelSourceError("Gemini API response was not valid JSON") from exc

        entries = payload.get("predictions") if isinstance(payload, dict) else payload
        if not isinstance(entries, list):
            raise LabelSourceError("Gemini API response did not include predictions")

        predictions: list[Prediction] = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            label = entry.get("label") or entry.get("className")
            if not isinstance(label, str) or not label.strip():
                continue
            score_value = entry.get("confidence", entry.get("probability", 0.0))
            try:
                score = float(score_value)
            except (TypeError, ValueError):
                score = 0.0
            predictions.append(Prediction(label=label.strip().lower(), confidence=score))
        return predictions


__all__ = ["GeminiLabelSource"]
