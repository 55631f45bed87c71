"""Prediction and blog routes.

Reads are open to anonymous callers and masked per item for the viewer's tier.
Writes need an admin session plus X-CSRF-Token.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from heptabet_platform.access.tiers import Tier, effective_tier, is_admin
from heptabet_platform.ai.gemini import GeminiError, build_analysis_prompt, generate_content
from heptabet_platform.auth import get_optional_account, require_admin_mutation, require_csrf
from heptabet_platform.auth.deps import get_cfg
from heptabet_platform.auth.errors import NotFound, TierRequired, ValidationFailed
from heptabet_platform.config import Config
from heptabet_platform.content import blog, predictions
from heptabet_platform.db import connect


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


router = APIRouter(tags=["content"])


# -----------------------------
# Predictions
# -----------------------------


class PredictionCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    league: str
    home_team: str = Field(alias="homeTeam")
    away_team: str = Field(alias="awayTeam")
    date: str
    time: Optional[str] = None
    tip: str
    odds: Optional[float] = None
    confidence: Optional[int] = None
    min_tier: str = Field(default=Tier.FREE.value, alias="minTier")
    status: Optional[str] = None
    result: Optional[str] = None
    tipster_id: Optional[str] = Field(default=None, alias="tipsterId")
    analysis: Optional[str] = None
    score: Optional[str] = None


class PredictionUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    league: Optional[str] = None
    home_team: Optional[str] = Field(default=None, alias="homeTeam")
    away_team: Optional[str] = Field(default=None, alias="awayTeam")
    date: Optional[str] = None
    time: Optional[str] = None
    tip: Optional[str] = None
    odds: Optional[float] = None
    confidence: Optional[int] = None
    min_tier: Optional[str] = Field(default=None, alias="minTier")
    status: Optional[str] = None
    result: Optional[str] = None
    tipster_id: Optional[str] = Field(default=None, alias="tipsterId")
    analysis: Optional[str] = None
    score: Optional[str] = None


@router.get("/predictions")
def list_predictions(
    date: Optional[str] = Query(default=None, description="YYYY-MM-DD"),
    viewer: Optional[Dict[str, Any]] = Depends(get_optional_account),
    cfg: Config = Depends(get_cfg),
) -> List[Dict[str, Any]]:
    with connect(cfg.DB_DSN) as conn:
        rows = predictions.list_predictions(conn, match_date=date)
    return [predictions.view_prediction(r, viewer) for r in rows]


@router.get("/predictions/{prediction_id}")
def get_prediction(
    prediction_id: int,
    viewer: Optional[Dict[str, Any]] = Depends(get_optional_account),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        row = predictions.get_prediction(conn, prediction_id)
    if row is None:
        raise NotFound("prediction_not_found")
    return predictions.view_prediction(row, viewer)


@router.post("/predictions")
def create_prediction(
    payload: PredictionCreate,
    _admin: Dict[str, Any] = Depends(require_admin_mutation),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            row = predictions.create_prediction(conn, payload.model_dump(by_alias=True, exclude_none=True))
        except ValueError as e:
            raise ValidationFailed(str(e))
    return predictions.public_prediction(row)


@router.put("/predictions/{prediction_id}")
def update_prediction(
    prediction_id: int,
    payload: PredictionUpdate,
    _admin: Dict[str, Any] = Depends(require_admin_mutation),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        if predictions.get_prediction(conn, prediction_id) is None:
            raise NotFound("prediction_not_found")
        try:
            row = predictions.update_prediction(
                conn, prediction_id, payload.model_dump(by_alias=True, exclude_unset=True)
            )
        except ValueError as e:
            raise ValidationFailed(str(e))
    assert row is not None
    return predictions.public_prediction(row)


@router.delete("/predictions/{prediction_id}")
def delete_prediction(
    prediction_id: int,
    _admin: Dict[str, Any] = Depends(require_admin_mutation),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        if not predictions.delete_prediction(conn, prediction_id):
            raise NotFound("prediction_not_found")
    return {"ok": True}


@router.post("/predictions/{prediction_id}/analysis")
def analyze_prediction(
    prediction_id: int,
    account: Dict[str, Any] = Depends(require_csrf),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    """Premium-only AI match preview. Pass-through: nothing is stored."""
    if not is_admin(account) and effective_tier(account) is not Tier.PREMIUM:
        raise TierRequired()

    with connect(cfg.DB_DSN) as conn:
        row = predictions.get_prediction(conn, prediction_id)
    if row is None:
        raise NotFound("prediction_not_found")

    if not cfg.GEMINI_API_KEY:
        raise HTTPException(status_code=503, detail="ai_not_configured")

    try:
        text = generate_content(
            api_key=cfg.GEMINI_API_KEY,
            base_url=cfg.GEMINI_BASE_URL,
            model=cfg.GEMINI_MODEL,
            prompt=build_analysis_prompt(predictions.public_prediction(row)),
            timeout_seconds=int(cfg.AI_TIMEOUT_SECONDS),
        )
    except GeminiError as e:
        _debug(f"analysis failed prediction_id={prediction_id}: {e.message}")
        raise HTTPException(status_code=502, detail="ai_failed")
    return {"predictionId": int(prediction_id), "analysis": text}


# -----------------------------
# Blog
# -----------------------------


class BlogPostCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str
    content: str
    excerpt: Optional[str] = None
    author: Optional[str] = None
    date: Optional[str] = None
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    tier: str = Tier.FREE.value


@router.get("/blog")
def list_blog_posts(
    viewer: Optional[Dict[str, Any]] = Depends(get_optional_account),
    cfg: Config = Depends(get_cfg),
) -> List[Dict[str, Any]]:
    with connect(cfg.DB_DSN) as conn:
        rows = blog.list_posts(conn)
    return [blog.view_post(r, viewer) for r in rows]


@router.get("/blog/{post_id}")
def get_blog_post(
    post_id: int,
    viewer: Optional[Dict[str, Any]] = Depends(get_optional_account),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        row = blog.get_post(conn, post_id)
    if row is None:
        raise NotFound("post_not_found")
    return blog.view_post(row, viewer)


@router.post("/blog")
def create_blog_post(
    payload: BlogPostCreate,
    admin: Dict[str, Any] = Depends(require_admin_mutation),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            row = blog.create_post(
                conn,
                title=payload.title,
                content=payload.content,
                excerpt=payload.excerpt,
                author=payload.author or admin.get("name"),
                post_date=payload.date,
                image_url=payload.image_url,
                tier=payload.tier,
            )
        except ValueError as e:
            raise ValidationFailed(str(e))
    return blog.public_post(row)


@router.delete("/blog/{post_id}")
def delete_blog_post(
    post_id: int,
    _admin: Dict[str, Any] = Depends(require_admin_mutation),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        if not blog.delete_post(conn, post_id):
            raise NotFound("post_not_found")
    return {"ok": True}
