from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any, Dict

import requests

from device.capture import Frame


class WasteSortClientError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class WasteSortHttpClient:
    base_url: str
    timeout: float = 30.0
    session: requests.Session = field(default_factory=requests.Session)

    def submit(
        self, frame: Frame, user_id: str | None = None, source: str | None = None
    ) -> Dict[str, Any]:
        payload = {
            "image_base64": base64.b64encode(frame.data).decode("ascii"),
            "user_id": user_id,
            "source": source or frame.source,
        }
        return self._request("POST", "/v1/classifications", json=payload)

    def balance(self, user_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/v1/users/{user_id}/points")

    def history(self, user_id: str, limit: int = 10) -> Dict[str, Any]:
        return self._request(
            "GET", f"/v1/users/{user_id}/points/history", params={"limit": limit}
        )

    def redeem(self, user_id: str, amount: int, reason: str = "Reward Redemption") -> Dict[str, Any]:
        return self._request(
            "POST",
            f"/v1/users/{user_id}/points/redeem",
            json={"amount": amount, "reason": reason},
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        url = f"{self.base_url.rstrip('/')}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as exc:  # pragma: no cover - network conditions
            raise WasteSortClientError("Timed out waiting for WasteSort API") from exc
        except requests.RequestException as exc:  # pragma: no cover - network conditions
            raise WasteSortClientError(f"Failed to call WasteSort API: {exc}") from exc
        if response.status_code >= 400:
            try:
                detail = response.json().get("detail")
            except ValueError:
                detail = response.text
            raise WasteSortClientError(
                f"WasteSort API returned {response.status_code}: {detail}",
                status_code=response.status_code,
            )
        return response.json()


__all__ = ["WasteSortClientError", "WasteSortHttpClient"]
