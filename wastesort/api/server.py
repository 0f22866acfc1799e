from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException, Query

from .schemas import (
    BalanceResponse,
    ClassificationRequest,
    ClassificationResponse,
    DisposalGuidanceModel,
    HistoryEntryModel,
    HistoryResponse,
    RedeemRequest,
    RedeemResponse,
)
from .service import ClassificationService, InvalidSubmissionError
from ..ai import LabelSource, ScoringConfig
from ..ai.guidance import guidance_for
from ..ai.static import StaticLabelSource
from ..ai.types import DEFAULT_TOP_K
from ..ledger.ledger import POINTS_FOR_CLASSIFICATION, RewardLedger
from ..ledger.records import InsufficientPointsError, LedgerError
from ..ledger.storage import FileSystemLedgerStore, LedgerStore


logger = logging.getLogger(__name__)


def create_app(
    label_source: LabelSource | None = None,
    ledger_store: LedgerStore | None = None,
    ledger_path: Path | None = None,
    scoring: ScoringConfig | None = None,
    award_points: int = POINTS_FOR_CLASSIFICATION,
    top_k: int = DEFAULT_TOP_K,
    label_timeout_seconds: float = 10.0,
    label_workers: int = 16,
) -> FastAPI:
    selected_source = label_source or StaticLabelSource()
    store = ledger_store or FileSystemLedgerStore(ledger_path)
    ledger = RewardLedger(store, award_points=award_points)
    scoring_config = scoring or ScoringConfig()
    service = ClassificationService(
        label_source=selected_source,
        ledger=ledger,
        scoring=scoring_config,
        top_k=top_k,
        label_timeout_seconds=label_timeout_seconds,
        label_workers=label_workers,
    )

    app = FastAPI(title="WasteSort API", version="0.1.0")
    app.state.label_source = selected_source
    app.state.ledger = ledger
    app.state.scoring = scoring_config
    app.state.service = service

    def _guidance_model(category: str) -> DisposalGuidanceModel:
        payload: Dict[str, Any] = asdict(guidance_for(category))
        payload["tips"] = list(payload["tips"])
        return DisposalGuidanceModel(**payload)

    @app.get("/health", response_model=dict[str, str])
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/v1/classifications", response_model=ClassificationResponse)
    async def submit_classification(request: ClassificationRequest) -> ClassificationResponse:
        logger.info(
            "Ingest submission user=%s source=%s payload_bytes=%d",
            request.user_id,
            request.source,
            len(request.image_base64 or ""),
        )
        try:
            result = await asyncio.to_thread(service.process_submission, request.model_dump())
        except InvalidSubmissionError as exc:
            logger.warning("Rejected submission user=%s error=%s", request.user_id, exc)
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        logger.info(
            "Submission processed user=%s category=%s reward=%s",
            request.user_id,
            result.get("category"),
            result.get("reward_status"),
        )
        return ClassificationResponse(**result)

    @app.get("/v1/categories", response_model=List[DisposalGuidanceModel])
    def list_categories() -> List[DisposalGuidanceModel]:
        return [_guidance_model(category) for category in scoring_config.categories]

    @app.get("/v1/categories/{category}", response_model=DisposalGuidanceModel)
    def fetch_category(category: str) -> DisposalGuidanceModel:
        key = category.strip().lower()
        if key not in scoring_config.categories:
            raise HTTPException(status_code=404, detail=f"Unknown category: {category}")
        return _guidance_model(key)

    @app.get("/v1/users/{user_id}/points", response_model=BalanceResponse)
    def fetch_balance(user_id: str) -> BalanceResponse:
        try:
            balance = ledger.balance(user_id)
            consistent = ledger.verify_balance(user_id)
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        except LedgerError as exc:
            logger.error("Balance lookup failed user=%s error=%s", user_id, exc)
            raise HTTPException(status_code=503, detail="Ledger unavailable") from exc
        return BalanceResponse(user_id=user_id, balance=balance, consistent=consistent)

    @app.get("/v1/users/{user_id}/points/history", response_model=HistoryResponse)
    def fetch_history(
        user_id: str, limit: int = Query(default=10, ge=1, le=200)
    ) -> HistoryResponse:
        try:
            entries = ledger.history(user_id, limit)
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        except LedgerError as exc:
            logger.error("History lookup failed user=%s error=%s", user_id, exc)
            raise HTTPException(status_code=503, detail="Ledger unavailable") from exc
        return HistoryResponse(
            user_id=user_id,
            entries=[
                HistoryEntryModel(
                    delta=entry.delta,
                    reason=entry.reason,
                    description=entry.description,
                    fingerprint=entry.fingerprint,
                    created_at=entry.created_at,
                )
                for entry in entries
            ],
        )

    @app.post("/v1/users/{user_id}/points/redeem", response_model=RedeemResponse)
    def redeem_points(user_id: str, request: RedeemRequest) -> RedeemResponse:
        try:
            balance = ledger.deduct(
                user_id, request.amount, request.reason, request.description
            )
        except InsufficientPointsError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        except LedgerError as exc:
            logger.error("Redemption failed user=%s error=%s", user_id, exc)
            raise HTTPException(status_code=503, detail="Ledger unavailable") from exc
        return RedeemResponse(user_id=user_id, balance=balance)

    return app


__all__ = ["create_app"]
