"""End-to-end pipeline: point-array JSON → environment model JSON."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

from packages.core.config import ModelerConfig
from packages.core.types import CloudSource, EnvironmentModel, ImageInput
from packages.perception.cloud import PointCloud, load_from_array
from packages.perception.environment import EnvironmentModeler

logger = logging.getLogger(__name__)


class CloudPayload(BaseModel):
    """Raw points for one cloud: ``[{"x":…, "y":…, "z":…, "r"?:…}, …]``."""

    id: Optional[str] = None
    source: CloudSource = CloudSource()
    points: list[dict[str, Any]] = Field(default_factory=list)

    def to_cloud(self) -> PointCloud:
        return load_from_array(self.points, self.source, cloud_id=self.id)


class ScanRequest(BaseModel):
    clouds: list[CloudPayload] = Field(default_factory=list)
    images: list[ImageInput] = Field(default_factory=list)


def process_request(
    request: ScanRequest,
    *,
    config: ModelerConfig | None = None,
    seed: int | None = None,
) -> EnvironmentModel:
    """Ingest every cloud of *request* and build the model.

    *seed* overrides ``config.processing.seed``.
    """
    config = config or ModelerConfig()
    if seed is not None:
        config = config.model_copy(
            update={"processing": config.processing.model_copy(update={"seed": seed})}
        )
    clouds = [payload.to_cloud() for payload in request.clouds]
    logger.info("Building model from %d cloud(s) and %d image(s)", len(clouds), len(request.images))
    return EnvironmentModeler(config).build_model(clouds, request.images)


def process_scan(
    input_path: str | Path,
    *,
    config: ModelerConfig | None = None,
    seed: int | None = None,
) -> EnvironmentModel:
    """Run the full pipeline on a scan request JSON file."""
    input_path = Path(input_path)
    logger.info("Loading %s …", input_path.name)
    request = ScanRequest.model_validate_json(input_path.read_text())
    return process_request(request, config=config, seed=seed)


def process_scan_to_json(
    input_path: str | Path,
    output_path: str | Path | None = None,
    **kwargs,
) -> str:
    """Run the pipeline and write the environment model to a JSON file.

    Returns the JSON string.
    """
    model = process_scan(input_path, **kwargs)
    json_str = model.model_dump_json(indent=2)

    if output_path is None:
        output_path = Path(input_path).with_suffix(".environment.json")
    Path(output_path).write_text(json_str)
    logger.info("Wrote environment model → %s", output_path)
    return json_str


def load_model(path: str | Path) -> EnvironmentModel:
    return EnvironmentModel.model_validate_json(Path(path).read_text())
