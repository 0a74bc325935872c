"""
Command-line adapter for the prediction orchestrator.

Architectural role:
- Run one submission from the terminal and print every slot once settled.
- Re-open a stored submission by id and print its predictions.
- Delegate all provider work to `zoo.core.orchestrator.SubmissionOrchestrator`.

Request lifecycle:
1. Load `.env`, configure logging, build `ZooConfig` and load the catalog.
2. Resolve `--model` names/ids (default: the catalog's checked models).
3. Validate configuration for the selected providers (fails fast).
4. Submit, wait for every task to settle, print results in slot order.

Error handling strategy:
- `ConfigurationError`, unknown models and a negative `--num-outputs` print
  a message and exit with 2.
- Per-prediction failures are printed as failed slots; exit status is 1 when
  any slot failed.
- Ctrl-C cancels the running submission and exits with 130.
"""

from dotenv import load_dotenv

load_dotenv()

import argparse
import asyncio
import logging
import sys
import uuid

import httpx

from zoo.core.catalog import find_models, load_models, selected_models
from zoo.core.errors import ConfigurationError
from zoo.core.orchestrator import SubmissionOrchestrator
from zoo.core.reconciler import FailedSlot, PendingSlot, ResultCollection
from zoo.providers.provider_config import ZooConfig
from zoo.providers.registry import build_registry
from zoo.store.prediction_store import JsonPredictionStore


logger = logging.getLogger(__name__)

ARTIFACT_PREVIEW_CHARS = 96


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zoo",
        description="Fan one prompt out to several text-to-image models",
    )
    parser.add_argument("prompt", nargs="?", help="Prompt text")
    parser.add_argument(
        "-m", "--model", action="append", dest="models", default=None,
        help="Model id or name (repeatable); defaults to the catalog's checked models",
    )
    parser.add_argument("-n", "--num-outputs", type=int, default=3, help="Outputs per model")
    parser.add_argument("--models-file", default=None, help="Model catalog JSON")
    parser.add_argument("--store", default=None, help="Prediction store directory")
    parser.add_argument("--anon-id", default=None, help="Session identity recorded on predictions")
    parser.add_argument("--submission", default=None, help="Print a stored submission instead of running")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def _preview(artifact: str) -> str:
    if len(artifact) <= ARTIFACT_PREVIEW_CHARS:
        return artifact
    return artifact[:ARTIFACT_PREVIEW_CHARS] + "..."


def render_collection(collection: ResultCollection) -> list[str]:
    """Format one line per slot (plus one per artifact) in slot order."""
    lines = []
    for entry in collection.entries:
        label = f"[{entry.tag.model} #{entry.tag.output_index + 1}]"
        if isinstance(entry, PendingSlot):
            status = entry.snapshot.status.value if entry.snapshot else "starting"
            lines.append(f"{label} {status}")
        elif isinstance(entry, FailedSlot):
            lines.append(f"{label} failed: {entry.error}")
        else:
            prediction = entry.prediction
            lines.append(f"{label} {prediction.status.value} ({prediction.id})")
            for artifact in prediction.output:
                lines.append(f"    {_preview(artifact)}")
    return lines


async def run_submission(orchestrator, prompt, models, num_outputs, anon_id) -> ResultCollection:
    submission_id = await orchestrator.submit(prompt, models, num_outputs, anon_id=anon_id)
    print(f"Submission {submission_id}: {len(models)} model(s) x {num_outputs} output(s)")
    try:
        return await orchestrator.settle(submission_id)
    except asyncio.CancelledError:
        orchestrator.cancel(submission_id)
        raise


async def _run(args, config: ZooConfig, models) -> int:
    store = JsonPredictionStore(args.store or config.store_path)

    async with httpx.AsyncClient(timeout=config.http_timeout) as client:
        orchestrator = SubmissionOrchestrator(
            build_registry(config, client),
            store,
            poll_interval=config.poll_interval,
        )
        collection = await run_submission(
            orchestrator,
            args.prompt,
            models,
            args.num_outputs,
            args.anon_id or str(uuid.uuid4()),
        )

    for line in render_collection(collection):
        print(line)
    return 1 if collection.errors else 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    config = ZooConfig.from_env()

    if args.submission:
        store = JsonPredictionStore(args.store or config.store_path)
        orchestrator = SubmissionOrchestrator(registry=None, store=store)
        collection = orchestrator.open_submission(args.submission)
        if not len(collection):
            print(f"No predictions stored for submission {args.submission}")
            return 1
        print(f"Prompt: {collection.prompt}")
        for line in render_collection(collection):
            print(line)
        return 0

    if not args.prompt:
        print("A prompt is required unless --submission is given.", file=sys.stderr)
        return 2

    if args.num_outputs < 0:
        print("--num-outputs must be 0 or greater.", file=sys.stderr)
        return 2

    try:
        catalog = load_models(args.models_file or config.models_path)
        models = find_models(catalog, args.models) if args.models else selected_models(catalog)
        if not models:
            raise ConfigurationError("No model selected")
        config.validate({model.source for model in models})
    except (ConfigurationError, KeyError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    try:
        return asyncio.run(_run(args, config, models))
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
