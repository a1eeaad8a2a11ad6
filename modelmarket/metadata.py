"""Metadata documents for minted RL models.

A model's metadata_uri points at a JSON document like the one built here:
display name and image, descriptive attributes, and the initial training
parameters. Performance metrics start at zero; live values are held by
the registry and updated by the owner.

Usage:
    from modelmarket.metadata import ModelSpec, generate_model_metadata

    spec = ModelSpec(name="CartPole Solver v1", algorithm="DQN", ...)
    document = generate_model_metadata(spec)
"""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator


PLACEHOLDER_IMAGE = "https://gensyn.ai/placeholder-model-image.png"


class ModelSpec(BaseModel):
    """Description of a trained model. Accepts snake_case or camelCase keys."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: str = Field(alias="modelName", min_length=1)
    description: str = ""
    algorithm: str
    creator: str
    creation_date: str = Field(alias="creationDate")
    initial_params: dict[str, Any] = Field(default_factory=dict, alias="initialParams")
    architecture: str
    training_environment: str = Field(alias="trainingEnvironment")
    image_url: str | None = Field(default=None, alias="imageUrl")

    @field_validator("creation_date", mode="before")
    @classmethod
    def check_creation_date(cls, v: Any) -> Any:
        # YAML loads bare 2025-04-12 as a date
        if isinstance(v, date):
            return v.isoformat()
        return v


SAMPLE_MODEL = ModelSpec(
    name="CartPole Solver v1",
    description="An RL model trained to balance a pole on a moving cart",
    algorithm="DQN",
    creator="Alice",
    creation_date="2025-04-12",
    initial_params={
        "learningRate": 0.001,
        "discountFactor": 0.99,
        "explorationRate": 0.1,
    },
    architecture="3-layer MLP (64, 64)",
    training_environment="CartPole-v1",
    image_url="https://example.com/cartpole.png",
)


def generate_model_metadata(model: ModelSpec | dict[str, Any]) -> dict[str, Any]:
    """Build the metadata document for a model.

    Args:
        model: A ModelSpec, or a dict validated into one

    Raises:
        pydantic.ValidationError: If a dict is missing required fields
    """
    if not isinstance(model, ModelSpec):
        model = ModelSpec.model_validate(model)

    return {
        "name": model.name,
        "description": model.description,
        "image": model.image_url or PLACEHOLDER_IMAGE,
        "attributes": [
            {"trait_type": "Algorithm", "value": model.algorithm},
            {"trait_type": "Creator", "value": model.creator},
            {"trait_type": "Creation Date", "value": model.creation_date},
            {"trait_type": "Architecture", "value": model.architecture},
            {"trait_type": "Training Environment", "value": model.training_environment},
        ],
        "properties": {
            "initialParameters": dict(model.initial_params),
            "initialPerformanceMetrics": {
                "rewardRate": 0,
                "completionRate": 0,
                "contributionScore": 0,
            },
        },
    }


def load_model_spec(path: str | Path) -> ModelSpec:
    """Read a ModelSpec from a .json, .yaml or .yml file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Model file not found: {path}")
    with open(path) as f:
        if path.suffix == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping, got {type(data).__name__}")
    return ModelSpec.model_validate(data)
