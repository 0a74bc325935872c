import json

import pytest

from zoo.core.catalog import (
    find_models,
    load_models,
    parse_models,
    required_sources,
    selected_models,
    toggle,
    with_checked,
)
from zoo.core.errors import ConfigurationError
from zoo.core.models import ProviderKind


CATALOG = [
    {"id": 1, "name": "SDXL", "owner": "stability-ai", "source": "replicate", "version": "abc", "checked": True},
    {"id": 2, "name": "DALL-E", "owner": "openai", "source": "openai", "version": "dall-e", "checked": True},
    {"id": 3, "name": "Stable Diffusion XL", "source": "stability"},
]


def test_load_models_from_file(tmp_path):
    path = tmp_path / "models.json"
    path.write_text(json.dumps(CATALOG))

    models = load_models(str(path))

    assert [m.name for m in models] == ["SDXL", "DALL-E", "Stable Diffusion XL"]
    assert models[2].source == ProviderKind.STABILITY


def test_missing_catalog_raises(tmp_path):
    with pytest.raises(ConfigurationError):
        load_models(str(tmp_path / "nope.json"))


def test_invalid_json_raises(tmp_path):
    path = tmp_path / "models.json"
    path.write_text("[{")
    with pytest.raises(ConfigurationError):
        load_models(str(path))


@pytest.mark.parametrize(
    "data",
    [
        {"id": 1},
        [{"id": 1, "name": "x", "source": "midjourney"}],
        [{"id": 1, "name": "a", "source": "openai"}, {"id": 1, "name": "b", "source": "openai"}],
    ],
)
def test_parse_models_rejects_bad_catalogs(data):
    with pytest.raises(ConfigurationError):
        parse_models(data)


def test_selection_helpers_do_not_mutate_input():
    models = parse_models(CATALOG)

    assert [m.name for m in selected_models(models)] == ["SDXL", "DALL-E"]

    rechecked = with_checked(models, ["Stable Diffusion XL"])
    assert [m.name for m in selected_models(rechecked)] == ["Stable Diffusion XL"]
    assert models[0].checked

    toggled = toggle(models, 2, False)
    assert [m.name for m in selected_models(toggled)] == ["SDXL"]
    assert models[1].checked


def test_find_models_by_id_or_name():
    models = parse_models(CATALOG)
    assert [m.id for m in find_models(models, ["dall-e", 1, "3"])] == [2, 1, 3]
    with pytest.raises(KeyError):
        find_models(models, ["Imagen"])


def test_required_sources():
    models = parse_models(CATALOG)
    assert required_sources(selected_models(models)) == {ProviderKind.REPLICATE, ProviderKind.OPENAI}
