from __future__ import annotations  # FastAPI server exposing the topic-tree grading engine

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agents.prompts import bind_capabilities_from_file
from agents.response_analyzer import LlmResponseAnalyzer
from agents.scoring import LlmScoringStrategy, ScoringEngine
from agents.topic_analyzer import LlmTopicAnalyzer
from api.routes import get_service, router, set_service
from config.registry import RESPONSE_ANALYSIS_KEY, TOPIC_EXTRACTION_KEY, TURN_SCORING_KEY
from config.settings import settings
from services.engine import GradingService
from services.persistence import FileCheckpointAdapter

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).resolve().parent / "app_config.json"


def build_service(config_path: Path = CONFIG_PATH) -> GradingService:  # Wire LLM capabilities when configured
    adapter = FileCheckpointAdapter()
    if not config_path.exists():
        logger.info("no app config at %s, using heuristic capabilities", config_path)
        return GradingService(adapter=adapter)
    bound = set(bind_capabilities_from_file(config_path))
    logger.info("bound LLM capabilities: %s", sorted(bound))
    return GradingService(
        adapter=adapter,
        topic_analyzer=LlmTopicAnalyzer() if TOPIC_EXTRACTION_KEY in bound else None,
        response_analyzer=LlmResponseAnalyzer() if RESPONSE_ANALYSIS_KEY in bound else None,
        scoring_engine=ScoringEngine(LlmScoringStrategy()) if TURN_SCORING_KEY in bound else None,
    )


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:  # Auto-save while serving, flush on shutdown
    service = get_service()
    if settings.AUTOSAVE_INTERVAL_S > 0:
        service.sessions.start_autosave(settings.AUTOSAVE_INTERVAL_S)
    try:
        yield
    finally:
        service.close()


app = FastAPI(title="Topic Tree Grading API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
set_service(build_service())
app.include_router(router)


@app.get("/api/health")
def health() -> dict:
    return {"status": "ok"}
