"""
Special Spore API Server
========================

Presentation adapter: JSON boundary over lineage, held spores and the steal
action. Holds no state beyond the backend instance.

Endpoints:
- GET  /api/v1/spores/{origin}/valid     -> Existence predicate
- GET  /api/v1/spores/{origin}/lineage   -> Lineage and current holder
- GET  /api/v1/gardens/{did}/spores      -> Spores a garden holds
- POST /api/v1/spores/{origin}/steal     -> Capture attempt
- GET  /api/v1/audit                     -> Steal attempt summary

Usage:
    uvicorn spores.api.server:app --reload
"""
from contextlib import asynccontextmanager
from typing import Optional
import logging

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..config import SporeConfig
from ..engine import SporeBackend
from ..observability import configure_logging
from ..oracle import SPORE_THRESHOLD
from ..store.atproto import AtprotoSession
from .mapper import map_held, map_lineage, map_outcome, outcome_status

logger = logging.getLogger(__name__)


class StealRequest(BaseModel):
    thief_did: str = Field(min_length=1)
    previous_holder_label: Optional[str] = None


def create_app(backend: Optional[SporeBackend] = None) -> FastAPI:
    """
    Build the API.

    With an explicit backend (tests, embedding) it is used as-is; otherwise
    one is connected to the public services for the app's lifetime.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if backend is not None:
            app.state.backend = backend
            yield
            return

        config = SporeConfig.from_env()
        configure_logging(config.log_level)
        logger.info("Connecting spore backend (slingshot=%s, constellation=%s)",
                    config.endpoints.slingshot_url, config.endpoints.constellation_url)
        async with SporeBackend.connect(config, AtprotoSession.from_env()) as connected:
            app.state.backend = connected
            yield
        logger.info("Spore backend disconnected")

    app = FastAPI(
        title="Special Spore API",
        version="0.1.0",
        description="Lineage and capture for special spores",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    def get_backend() -> SporeBackend:
        current = getattr(app.state, "backend", None)
        if current is None:
            raise HTTPException(status_code=503, detail="Backend not initialized")
        return current

    @app.get("/health")
    async def health_check():
        current = get_backend()
        return {"status": "online", "acting_did": current.acting_did}

    @app.get("/api/v1/spores/{origin_did}/valid")
    async def spore_validity(origin_did: str):
        current = get_backend()
        return {
            "origin_did": origin_did,
            "valid": current.is_valid_spore(origin_did),
            "probability": current.spore_probability(origin_did),
            "threshold": SPORE_THRESHOLD,
        }

    @app.get("/api/v1/spores/{origin_did}/lineage")
    async def spore_lineage(origin_did: str):
        current = get_backend()
        lineage = await current.lineage(origin_did)
        labels = await current.display_labels([e.holder_did for e in lineage.entries])
        return map_lineage(lineage, labels)

    @app.get("/api/v1/gardens/{garden_did}/spores")
    async def held_spores(garden_did: str):
        current = get_backend()
        return map_held(garden_did, await current.held_spores(garden_did))

    @app.post("/api/v1/spores/{origin_did}/steal")
    async def steal_spore(origin_did: str, request: StealRequest):
        current = get_backend()
        outcome = await current.steal(origin_did, request.thief_did, request.previous_holder_label)
        return JSONResponse(status_code=outcome_status(outcome), content=map_outcome(outcome))

    @app.get("/api/v1/audit")
    async def audit_summary():
        return get_backend().audit_report()

    return app


app = create_app()
