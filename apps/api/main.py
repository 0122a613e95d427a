"""FastAPI application for the scan-to-environment service.

Accepts raw point arrays (and optional images), runs the modeler, and
serves the environment model plus the connection and constraint views
derived from it.
"""

from __future__ import annotations

import json
import logging

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from packages.core.types import EnvironmentModel
from packages.perception.cloud import PointCloudValidationError
from packages.perception.connections import find_connection_opportunities
from packages.perception.constraints import extract_constraints
from packages.perception.process import ScanRequest, process_request

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%H:%M:%S'
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Environment Model API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # permissive for local development; tighten for production
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── In-memory store (single-model MVP) ───────────────────────────────
_state: dict = {
    "model": None,  # EnvironmentModel or None
}


def _current_model() -> EnvironmentModel:
    if _state["model"] is None:
        raise HTTPException(404, "No model built yet")
    return _state["model"]


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/model")
def build_environment_model(req: ScanRequest, seed: int = 42):
    """Build a model from raw point clouds and images, and keep it."""
    logger.info(f"📥 Received {len(req.clouds)} cloud(s), {len(req.images)} image(s)")
    try:
        model = process_request(req, seed=seed)
    except PointCloudValidationError as e:
        raise HTTPException(422, f"Invalid point data: {e}")

    _state["model"] = model
    logger.info(f"✅ Model {model.id}: {len(model.surfaces)} surfaces, {len(model.obstacles)} obstacles")
    return {
        "id": model.id,
        "surfaces": len(model.surfaces),
        "obstacles": len(model.obstacles),
        "attachment_points": len(model.attachment_points),
        "confidence": model.metadata.confidence,
    }


@app.get("/model")
def get_model():
    """Return the full environment model JSON."""
    model = _current_model()
    logger.info(f"📐 Sending environment model {model.id}")
    return JSONResponse(content=json.loads(model.model_dump_json()))


@app.get("/connections")
def get_connections(max_distance: float = 20_000.0, require_clear_path: bool = False):
    """Top connection opportunities between attachment points."""
    model = _current_model()
    found = find_connection_opportunities(
        model, max_distance=max_distance, require_clear_path=require_clear_path,
    )
    return [o.model_dump(mode="json") for o in found]


@app.get("/constraints")
def get_constraints():
    model = _current_model()
    return [c.model_dump(mode="json") for c in extract_constraints(model)]
