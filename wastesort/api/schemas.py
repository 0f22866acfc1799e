from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field


class ClassificationRequest(BaseModel):
    image_base64: str = Field(..., description="Base64 encoded image")
    user_id: str | None = Field(
        default=None, description="Authenticated user identifier; omit to skip rewards"
    )
    source: str = Field(default="upload", description="Upload path, e.g. camera or upload")


class DisposalGuidanceModel(BaseModel):
    category: str
    display_name: str
    instructions: str
    recyclable: bool
    environmental_impact: str
    tips: List[str] = Field(default_factory=list)


class ClassificationResponse(BaseModel):
    fingerprint: str
    category: str
    disposal_guidance: DisposalGuidanceModel
    top_label: str | None = None
    confidence: float = 0.0
    low_confidence: bool = False
    inference_available: bool = True
    awarded: bool = False
    points_delta: int = 0
    new_balance: int | None = None
    reward_status: str = "skipped"
    previous_category: str | None = None
    message: str | None = None


class BalanceResponse(BaseModel):
    user_id: str
    balance: int
    consistent: bool


class HistoryEntryModel(BaseModel):
    delta: int
    reason: str
    description: str | None = None
    fingerprint: str | None = None
    created_at: datetime


class HistoryResponse(BaseModel):
    user_id: str
    entries: List[HistoryEntryModel]


class RedeemRequest(BaseModel):
    amount: int = Field(..., gt=0, description="Points to spend")
    reason: str = Field(default="Reward Redemption")
    description: str | None = None


class RedeemResponse(BaseModel):
    user_id: str
    balance: int


__all__ = [
    "BalanceResponse",
    "ClassificationRequest",
    "ClassificationResponse",
    "DisposalGuidanceModel",
    "HistoryEntryModel",
    "HistoryResponse",
    "RedeemRequest",
    "RedeemResponse",
]
