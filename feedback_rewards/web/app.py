"""
FastAPI Web Application - Feedback Rewards API
==============================================

JSON API for diners (feedback, points, vouchers) and restaurant staff
(reward catalog, voucher check-in).

The diner is identified by the ``user_id`` cookie set by the external
identity provider. Staff endpoints carry no identity of their own.
"""

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, File, Form, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..application import (
    FeedbackService,
    FeedbackTooShortError,
    PointsLedger,
    RedemptionService,
    ReviewNotFoundError,
    RewardCatalog,
)
from ..domain.models import (
    EarnResult,
    RedemptionError,
    RewardCatalogEntry,
    TranscriptionFailure,
    TranscriptionFailureReason,
)
from ..infrastructure.config import get_settings
from ..infrastructure.llm import StructuredReviewAnalyzer
from ..infrastructure.persistence import Database, init_database
from ..infrastructure.speech import LocalAudioArchive, TranscriptionRacer, build_providers

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# ── Globals ────────────────────────────────────────────────────────
db: Optional[Database] = None
ledger: Optional[PointsLedger] = None
catalog: Optional[RewardCatalog] = None
redemption: Optional[RedemptionService] = None
feedback_service: Optional[FeedbackService] = None

DEFAULT_RESTAURANT_NAME = "this restaurant"

_REDEMPTION_STATUS = {
    RedemptionError.REWARD_NOT_FOUND: 404,
    RedemptionError.INSUFFICIENT_POINTS: 409,
    RedemptionError.DAILY_REDEMPTION_LIMIT_REACHED: 409,
}


# ── Lifespan ───────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    global db, ledger, catalog, redemption, feedback_service
    settings = get_settings()
    for issue in settings.validate():
        logger.warning(issue)

    db = init_database(str(settings.database_file))
    ledger = PointsLedger(db, settings.points)
    catalog = RewardCatalog(db, restaurant_id=settings.default_restaurant_id)
    catalog.initialize_defaults()
    redemption = RedemptionService(db, catalog)

    archive = LocalAudioArchive(settings.speech.audio_archive_dir) if settings.speech.audio_archive_dir else None
    racer = TranscriptionRacer(
        build_providers(settings.speech),
        min_length=settings.speech.min_transcript_length,
        archive=archive,
    )
    feedback_service = FeedbackService(
        db, StructuredReviewAnalyzer(settings.llm), ledger, racer=racer, place_id=settings.google_place_id or None
    )
    logger.info("Database ready")
    yield


app = FastAPI(title="Feedback Rewards", description="Spoken feedback to loyalty rewards", lifespan=lifespan)


# ── Request bodies ─────────────────────────────────────────────────

class TextFeedbackIn(BaseModel):
    text: str
    restaurant_name: str = DEFAULT_RESTAURANT_NAME


class RewardIn(BaseModel):
    id: int = 0
    name: str
    point_cost: int
    category: str = "other"
    icon: str = ""
    active: bool = True


class CatalogIn(BaseModel):
    rewards: List[RewardIn]


# ── Helpers ────────────────────────────────────────────────────────

def _error(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "message": message})


def _get_current_user_id(request: Request) -> Optional[str]:
    """Get the caller's user id from cookie, or None."""
    uid = request.cookies.get("user_id", "").strip()
    return uid or None


def _not_signed_in() -> JSONResponse:
    return _error(401, "not_signed_in", "Sign in to continue.")


def _earn_payload(earn: EarnResult) -> dict:
    payload = {
        "status": earn.status.value,
        "points_awarded": earn.points_awarded,
        "balance": earn.balance,
    }
    if not earn.earned:
        payload["message"] = "You've already earned points today. Come back tomorrow!"
    return payload


def _transcription_error(failure: TranscriptionFailure) -> JSONResponse:
    status = 503 if failure.reason is TranscriptionFailureReason.NOT_CONFIGURED else 422
    return _error(status, failure.reason.value, failure.message)


# ── Health ─────────────────────────────────────────────────────────

@app.get("/health")
async def health():
    return {"status": "ok"}


# ── Feedback ───────────────────────────────────────────────────────

@app.post("/api/feedback/text")
async def submit_text_feedback(request: Request, body: TextFeedbackIn):
    user_id = _get_current_user_id(request)
    if not user_id:
        return _not_signed_in()

    settings = get_settings()
    try:
        outcome = await run_in_threadpool(
            feedback_service.submit_text,
            user_id, settings.default_restaurant_id, body.restaurant_name, body.text,
        )
    except FeedbackTooShortError as e:
        return _error(422, "feedback_too_short", str(e))

    return {"review": outcome.review.to_dict(), "points": _earn_payload(outcome.earn)}


@app.post("/api/feedback/audio")
async def submit_audio_feedback(
    request: Request,
    file: UploadFile = File(...),
    restaurant_name: str = Form(DEFAULT_RESTAURANT_NAME),
):
    user_id = _get_current_user_id(request)
    if not user_id:
        return _not_signed_in()

    audio = await file.read()
    if not audio:
        return _error(400, "empty_recording", "The recording is empty. Please try again.")

    settings = get_settings()
    outcome = await run_in_threadpool(
        feedback_service.submit_audio,
        user_id,
        settings.default_restaurant_id,
        restaurant_name,
        audio,
        file.filename or "feedback.wav",
        file.content_type or "audio/wav",
    )
    if isinstance(outcome, TranscriptionFailure):
        return _transcription_error(outcome)

    return {"review": outcome.review.to_dict(), "points": _earn_payload(outcome.earn)}


# ── Reviews ────────────────────────────────────────────────────────

@app.get("/api/reviews")
async def list_reviews(request: Request):
    user_id = _get_current_user_id(request)
    if not user_id:
        return _not_signed_in()
    return {"reviews": [r.to_dict() for r in feedback_service.reviews_for(user_id)]}


@app.post("/api/reviews/{review_id}/share")
async def share_review(request: Request, review_id: str):
    user_id = _get_current_user_id(request)
    if not user_id:
        return _not_signed_in()

    try:
        outcome = feedback_service.share_review(user_id, review_id)
    except ReviewNotFoundError:
        return _error(404, "review_not_found", "Review not found.")

    return {"text": outcome.text, "link": outcome.link, "points": _earn_payload(outcome.earn)}


# ── Points ─────────────────────────────────────────────────────────

@app.get("/api/points")
async def get_points(request: Request):
    user_id = _get_current_user_id(request)
    if not user_id:
        return _not_signed_in()

    summary = ledger.get_summary(user_id)
    summary["next_reward"] = ledger.next_reward(user_id, catalog.list_rewards())
    return summary


@app.get("/api/points/history")
async def get_points_history(request: Request, limit: int = Query(50, ge=1, le=500)):
    user_id = _get_current_user_id(request)
    if not user_id:
        return _not_signed_in()
    return {"transactions": [t.to_dict() for t in ledger.history(user_id, limit)]}


# ── Reward catalog (staff) ─────────────────────────────────────────

@app.get("/api/rewards")
async def list_rewards(include_inactive: bool = False):
    return {"rewards": [r.to_dict() for r in catalog.list_rewards(include_inactive=include_inactive)]}


@app.put("/api/rewards")
async def replace_rewards(body: CatalogIn):
    entries = [RewardCatalogEntry(**reward.model_dump()) for reward in body.rewards]
    try:
        saved = catalog.replace_all(entries)
    except ValueError as e:
        return _error(400, "invalid_catalog", str(e))
    return {"rewards": [r.to_dict() for r in saved]}


@app.post("/api/rewards/{reward_id}/deactivate")
async def deactivate_reward(reward_id: int):
    if not catalog.deactivate(reward_id):
        return _error(404, RedemptionError.REWARD_NOT_FOUND.value, "Reward not found.")
    return {"status": "deactivated", "reward_id": reward_id}


# ── Redemption ─────────────────────────────────────────────────────

@app.post("/api/rewards/{reward_id}/redeem")
async def redeem_reward(request: Request, reward_id: int):
    user_id = _get_current_user_id(request)
    if not user_id:
        return _not_signed_in()

    result = redemption.redeem(user_id, reward_id)
    if not result.ok:
        return _error(_REDEMPTION_STATUS[result.error], result.error.value, result.error.message)

    return {"voucher": result.voucher.to_dict(), "balance": ledger.get_balance(user_id)}


@app.get("/api/vouchers")
async def list_vouchers(request: Request):
    user_id = _get_current_user_id(request)
    if not user_id:
        return _not_signed_in()
    return {"vouchers": [v.to_dict() for v in redemption.active_vouchers(user_id)]}


@app.get("/api/vouchers/code/{code}")
async def find_voucher(code: str):
    voucher = redemption.find_voucher_by_code(code)
    if voucher is None:
        return _error(404, "voucher_not_found", "No voucher with that code.")
    return {"voucher": voucher.to_dict()}


@app.post("/api/vouchers/{voucher_id}/use")
async def use_voucher(voucher_id: str):
    if not redemption.mark_used(voucher_id):
        return _error(409, "voucher_not_redeemable", "Voucher is unknown, already used, or expired.")
    return {"status": "used", "voucher_id": voucher_id}
