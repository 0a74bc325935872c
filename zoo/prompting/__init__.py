"""Prompting package.

Deterministic prompt-template rendering and provider-input construction used by
the provider adapters. No HTTP, storage or orchestration happens here.
"""

from zoo.prompting.prompt_builder import build_job_input, render_prompt, resolve_dimensions

__all__ = ["build_job_input", "render_prompt", "resolve_dimensions"]
