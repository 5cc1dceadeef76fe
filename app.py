# app.py — Study Insights v1.2.0
# - One blocking chat-completion per request, no retries
# - ```json fence extraction with lenient defaults for omitted lists
# - Every failure published as {"error": ...}

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

import db
from engines.priority_analyzer import Publication, PriorityAnalyzer, publish_failure, publish_success
from engines.study_allocation import plan_allocations
from engines.score_review import ScoreReviewAnalyzer
from engines.validation import InvalidInputError
from env_validation import ProviderSettings, validate_environment
from llm_client import ModelInvoker
from schemas import AnalysisResult
from tour_flags import SQLiteKeyValueStore, TourProgress

logger = logging.getLogger(__name__)

APP_VERSION = "1.2.0"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


@asynccontextmanager
async def _lifespan(_: FastAPI):
    try:
        validate_environment()
        db.init()
        logger.info(
            "Provider: %s | model: %s | timeout: %ss",
            MODEL_INVOKER.settings.url,
            MODEL_INVOKER.settings.model_id,
            MODEL_INVOKER.settings.timeout_seconds,
        )
        yield
    except Exception as e:
        logger.error("Failed to initialize application: %s", str(e), exc_info=True)
        raise


app = FastAPI(title=f"Study Insights v{APP_VERSION}", version=APP_VERSION, lifespan=_lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)

MODEL_INVOKER = ModelInvoker(ProviderSettings.from_env())
PRIORITY_ANALYZER = PriorityAnalyzer(MODEL_INVOKER)
SCORE_REVIEW_ANALYZER = ScoreReviewAnalyzer(MODEL_INVOKER)
TOUR_PROGRESS = TourProgress(SQLiteKeyValueStore())


def _respond(publication: Publication) -> JSONResponse:
    headers = dict(CORS_HEADERS)
    headers.update(publication.headers)
    return JSONResponse(status_code=publication.status_code, content=publication.body, headers=headers)


def _preflight() -> Response:
    return Response(status_code=200, headers=CORS_HEADERS)


async def _read_json(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        raise InvalidInputError("Request body is required")
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise InvalidInputError("Request body must be valid JSON") from exc


@app.get("/")
def root():
    return {"service": "study-insights", "version": APP_VERSION}


@app.options("/analyze-difficulty")
def analyze_difficulty_preflight():
    return _preflight()


@app.post("/analyze-difficulty")
async def analyze_difficulty(request: Request):
    try:
        payload = await _read_json(request)
    except InvalidInputError as exc:
        return _respond(publish_failure(exc))
    topics = payload.get("topics") if isinstance(payload, dict) else None
    return _respond(await asyncio.to_thread(PRIORITY_ANALYZER.run, topics))


@app.options("/analyze-test-score")
def analyze_test_score_preflight():
    return _preflight()


@app.post("/analyze-test-score")
async def analyze_test_score(request: Request):
    try:
        payload = await _read_json(request)
    except InvalidInputError as exc:
        return _respond(publish_failure(exc))
    publication = await asyncio.to_thread(
        SCORE_REVIEW_ANALYZER.run,
        payload,
        request.headers.get("authorization"),
    )
    return _respond(publication)


@app.post("/study-allocation")
async def study_allocation(request: Request):
    try:
        body = AnalysisResult.model_validate(await _read_json(request))
    except InvalidInputError as exc:
        return _respond(publish_failure(exc))
    except ValidationError as exc:
        return _respond(publish_failure(InvalidInputError(f"Invalid analysis: {exc.errors()[0].get('msg', exc)}")))
    allocations = plan_allocations(body)
    return _respond(
        publish_success(
            {
                "allocations": [allocation.to_dict() for allocation in allocations],
                "total_minutes": sum(allocation.total_minutes for allocation in allocations),
            }
        )
    )


@app.get("/tours/{user_id}")
def tours_status(user_id: str):
    return {"user_id": user_id, "completed": TOUR_PROGRESS.completed_tours(user_id)}


@app.put("/tours/{user_id}/{tour_key}")
def tours_complete(user_id: str, tour_key: str):
    return {"user_id": user_id, "completed": TOUR_PROGRESS.mark_completed(user_id, tour_key)}


@app.delete("/tours/{user_id}/{tour_key}")
def tours_reset_one(user_id: str, tour_key: str):
    status = TOUR_PROGRESS.reset_tour(user_id, tour_key)
    return {"user_id": user_id, "completed": status, "message": f"{tour_key} tutorial has been reset!"}


@app.delete("/tours/{user_id}")
def tours_reset_all(user_id: str):
    TOUR_PROGRESS.reset_all_tours(user_id)
    return {
        "user_id": user_id,
        "completed": {},
        "message": "All tutorials have been reset. Navigate to any section to see the tour again!",
    }
