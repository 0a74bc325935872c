"""Model catalog loading and selection helpers.

The catalog is a JSON list of model descriptors loaded once per session:

    [
      {"id": 1, "name": "SDXL", "owner": "stability-ai", "source": "replicate",
       "version": "39ed52f2...", "prompt_template": "{prompt}",
       "default_params": {"width": 1024, "height": 1024}, "checked": true},
      {"id": 2, "name": "DALL-E", "owner": "openai", "source": "openai",
       "version": "dall-e", "checked": true}
    ]

`checked` is selection state only. Selection helpers return new descriptor
lists and never mutate their input.
"""

import json
import logging
import os

from pydantic import ValidationError

from zoo.core.errors import ConfigurationError
from zoo.core.models import ModelDescriptor, ProviderKind


logger = logging.getLogger(__name__)


def parse_models(data) -> list[ModelDescriptor]:
    """Validate raw catalog entries.

    Raises:
        ConfigurationError: Not a list, an invalid entry, or duplicate ids.
    """
    if not isinstance(data, list):
        raise ConfigurationError("Model catalog must be a JSON list")

    models: list[ModelDescriptor] = []
    seen_ids = set()
    for position, item in enumerate(data):
        try:
            model = ModelDescriptor.model_validate(item)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid model catalog entry #{position}: {exc}") from exc
        if model.id in seen_ids:
            raise ConfigurationError(f"Duplicate model id in catalog: {model.id!r}")
        seen_ids.add(model.id)
        models.append(model)
    return models


def load_models(path: str) -> list[ModelDescriptor]:
    """Load and validate the model catalog at `path`."""
    if not os.path.exists(path):
        raise ConfigurationError(f"Model catalog not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Model catalog {path} is not valid JSON: {exc}") from exc

    models = parse_models(data)
    logger.info("Loaded %d model(s) from %s", len(models), path)
    return models


def selected_models(models: list[ModelDescriptor]) -> list[ModelDescriptor]:
    return [model for model in models if model.checked]


def with_checked(models: list[ModelDescriptor], names) -> list[ModelDescriptor]:
    """Check exactly the models whose name is in `names`."""
    names = set(names)
    return [model.model_copy(update={"checked": model.name in names}) for model in models]


def toggle(models: list[ModelDescriptor], model_id, checked: bool) -> list[ModelDescriptor]:
    return [
        model.model_copy(update={"checked": checked}) if str(model.id) == str(model_id) else model
        for model in models
    ]


def find_models(models: list[ModelDescriptor], keys) -> list[ModelDescriptor]:
    """Resolve ids or names to descriptors, in the order given.

    Raises:
        KeyError: A key matches no model.
    """
    by_key: dict[str, ModelDescriptor] = {}
    for model in models:
        by_key[str(model.id)] = model
        by_key[model.name.lower()] = model

    found = []
    for key in keys:
        model = by_key.get(str(key)) or by_key.get(str(key).lower())
        if model is None:
            raise KeyError(f"Unknown model: {key}")
        found.append(model)
    return found


def required_sources(models: list[ModelDescriptor]) -> set[ProviderKind]:
    return {model.source for model in models}
