"""Processing configuration, loadable from YAML."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


class SurfaceReconstruction(str, Enum):
    NONE = "none"
    POISSON = "poisson"
    BALL_PIVOTING = "ball-pivoting"
    ALPHA_SHAPE = "alpha-shape"


class ProcessingConfig(BaseModel):
    """Per-cloud conditioning and detection settings (millimetres)."""

    voxel_size: Optional[float] = Field(default=50.0, gt=0)
    remove_outliers: bool = True
    outlier_k: int = Field(default=20, ge=1)
    outlier_std_ratio: float = 2.0
    estimate_normals: bool = True
    normal_radius: float = Field(default=100.0, gt=0)
    detect_ground: bool = True
    min_wall_area: float = 500_000.0
    surface_reconstruction: SurfaceReconstruction = SurfaceReconstruction.NONE
    seed: Optional[int] = None


class ModelerConfig(BaseModel):
    processing: ProcessingConfig = ProcessingConfig()
    max_connection_distance: float = 20_000.0
    require_clear_path: bool = False


def load_config(path: str | Path) -> ModelerConfig:
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return ModelerConfig()
    if not isinstance(data, dict):
        raise ValueError("Configuration root must be a mapping.")
    return ModelerConfig.model_validate(data)
