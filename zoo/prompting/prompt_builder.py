"""Prompt and provider-input assembly helpers used by provider adapters.

This module only builds strings and plain dicts from a `GenerationRequest`.
Provider selection, HTTP transport and status handling happen elsewhere.

Design constraints:
    - Deterministic construction for identical inputs.
    - No hidden side effects (no I/O, no global state mutation).

Prompt templates:
    Catalog entries may carry a `prompt_template` containing the `{prompt}`
    placeholder (fine-tunes usually need a trigger token such as
    "a photo of TOK, {prompt}"). The placeholder is substituted literally, so
    other braces in the template are left untouched.
"""

from typing import Any

PROMPT_PLACEHOLDER = "{prompt}"

# Params that describe the image grid rather than the model.
_DIMENSION_KEYS = ("width", "height")


# =========================================================
# PROMPT TEMPLATE
# =========================================================

def render_prompt(prompt: str, template: str | None) -> str:
    """Apply a catalog prompt template to the raw user prompt.

    Args:
        prompt: Raw user prompt.
        template: Optional template from the model descriptor.

    Returns:
        The rendered prompt. Without a template the stripped prompt is returned
        unchanged; a template lacking the placeholder is used as a prefix.
    """
    prompt = (prompt or "").strip()
    if not template:
        return prompt
    if PROMPT_PLACEHOLDER in template:
        return template.replace(PROMPT_PLACEHOLDER, prompt)
    return f"{template.strip()} {prompt}".strip()


# =========================================================
# IMAGE DIMENSIONS
# =========================================================

def resolve_dimensions(default_params: dict[str, Any], width: int, height: int) -> tuple[int, int]:
    """Return `(width, height)` from model params, falling back to configured defaults."""
    try:
        resolved_width = int(default_params.get("width") or width)
        resolved_height = int(default_params.get("height") or height)
    except (TypeError, ValueError):
        return width, height
    return resolved_width, resolved_height


def format_dimensions(width: int, height: int) -> str:
    return f"{width}x{height}"


def build_job_input(
    prompt: str,
    template: str | None,
    default_params: dict[str, Any],
    width: int,
    height: int,
) -> dict[str, Any]:
    """Build the `input` object of an async job-creation body.

    Model default params come first so the rendered prompt and resolved
    dimensions always win over stale catalog values. Each job produces exactly
    one output; the orchestrator fans out per output, so a catalog
    `num_outputs` is overridden.
    """
    resolved_width, resolved_height = resolve_dimensions(default_params, width, height)
    job_input = {key: value for key, value in default_params.items() if key not in _DIMENSION_KEYS}
    job_input.update(
        {
            "prompt": render_prompt(prompt, template),
            "width": resolved_width,
            "height": resolved_height,
            "image_dimensions": format_dimensions(resolved_width, resolved_height),
            "num_outputs": 1,
        }
    )
    return job_input
