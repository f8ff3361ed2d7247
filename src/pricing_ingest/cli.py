"""CLI entry point for pricing-ingest."""

from __future__ import annotations

import asyncio
import json
import logging
import mimetypes
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from pricing_ingest.classifier import profile_records, recommend_billing_model
from pricing_ingest.config import get_ingest_config
from pricing_ingest.errors import IngestError
from pricing_ingest.extraction import DocumentExtractor
from pricing_ingest.models import FileStatus, UploadedFile
from pricing_ingest.pipeline import IngestPipeline, collect_items

if TYPE_CHECKING:
    from collections.abc import Sequence

    from pricing_ingest.config import IngestConfig
    from pricing_ingest.models import BillingItem, FileState

FALLBACK_CONTENT_TYPE = "application/octet-stream"


def load_file(path: Path) -> UploadedFile:
    """Read a local file, guessing its MIME type from the name."""
    content_type, _ = mimetypes.guess_type(path.name)
    return UploadedFile(
        name=path.name,
        content_type=content_type or FALLBACK_CONTENT_TYPE,
        data=path.read_bytes(),
    )


def _state_summary(state: FileState) -> dict[str, Any]:
    summary: dict[str, Any] = {
        "file": state.name,
        "fileId": state.file_id,
        "status": state.status.value,
        "progress": state.progress,
    }
    if state.result is not None:
        summary["result"] = state.result.model_dump(mode="json", by_alias=True)
    if state.error is not None:
        summary["error"] = state.error
    return summary


def _echo_states(states: Sequence[FileState]) -> None:
    for state in states:
        if state.status is FileStatus.FAILED:
            click.echo(f"{state.name}: failed: {state.error}", err=True)
            continue
        result = state.result
        if result is None:
            continue
        click.echo(
            f"{state.name}: {len(result.items)} items "
            f"(method={result.method}, confidence={result.confidence})"
        )
        for item in result.items:
            click.echo(
                f"  {item.id}  {item.type:<9}  {item.price:>10}  {item.product}"
            )


def _echo_recommendation(items: Sequence[BillingItem], *, as_json: bool) -> None:
    if not items:
        click.echo("No items extracted; nothing to recommend.", err=True)
        return
    recommendation = recommend_billing_model(items)
    if as_json:
        payload = recommendation.model_dump(mode="json", by_alias=True)
        click.echo(json.dumps(payload, indent=2))
        return
    click.echo(
        f"Recommended model: {recommendation.model_type} "
        f"(confidence {recommendation.confidence_score})"
    )
    click.echo(f"  {recommendation.rationale}")
    click.echo(f"  {recommendation.structure_summary}")
    click.echo(f"  Estimated revenue: {recommendation.estimated_revenue_range}")


def _load_config() -> IngestConfig:
    try:
        return get_ingest_config()
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc


files_argument = click.argument(
    "files",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log progress to stderr.")
def cli(verbose: bool) -> None:
    """Pricing Ingest: turn pricing documents into billing items."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@files_argument
@click.option("--json", "as_json", is_flag=True, help="Emit results as JSON.")
@click.option(
    "--recommend", is_flag=True, help="Also recommend a billing model for the batch."
)
@click.pass_context
def extract(
    ctx: click.Context, files: tuple[Path, ...], as_json: bool, recommend: bool
) -> None:
    """Extract billing items from one or more files."""
    pipeline = IngestPipeline(config=_load_config())
    uploads = [load_file(path) for path in files]
    states = asyncio.run(pipeline.process(uploads))

    if not as_json:
        _echo_states(states)
        if recommend:
            _echo_recommendation(collect_items(states), as_json=False)
    elif recommend:
        items = collect_items(states)
        payload = {
            "files": [_state_summary(state) for state in states],
            "recommendation": (
                recommend_billing_model(items).model_dump(mode="json", by_alias=True)
                if items
                else None
            ),
        }
        click.echo(json.dumps(payload, indent=2))
    else:
        click.echo(json.dumps([_state_summary(state) for state in states], indent=2))

    if any(state.status is FileStatus.FAILED for state in states):
        ctx.exit(1)


@cli.command()
@files_argument
@click.option("--json", "as_json", is_flag=True, help="Emit the recommendation as JSON.")
@click.pass_context
def recommend(ctx: click.Context, files: tuple[Path, ...], as_json: bool) -> None:
    """Recommend a billing model for the items found in the files."""
    pipeline = IngestPipeline(config=_load_config())
    uploads = [load_file(path) for path in files]
    states = asyncio.run(pipeline.process(uploads))
    for state in states:
        if state.status is FileStatus.FAILED:
            click.echo(f"{state.name}: failed: {state.error}", err=True)

    items = collect_items(states)
    _echo_recommendation(items, as_json=as_json)
    if not items:
        ctx.exit(1)


@cli.command()
@click.option("--device", type=int, default=None, help="Camera device index.")
@click.option("--json", "as_json", is_flag=True, help="Emit the result as JSON.")
@click.pass_context
def capture(ctx: click.Context, device: int | None, as_json: bool) -> None:
    """Capture one camera frame and extract billing items from it."""
    pipeline = IngestPipeline(config=_load_config())
    state = asyncio.run(pipeline.process_capture(device))
    if as_json:
        click.echo(json.dumps(_state_summary(state), indent=2))
    else:
        _echo_states([state])
    if state.status is FileStatus.FAILED:
        ctx.exit(1)


@cli.command()
@click.argument(
    "file", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
def profile(file: Path) -> None:
    """Describe the billing structure of a file's raw records."""
    extractor = DocumentExtractor(config=_load_config())
    try:
        records = asyncio.run(extractor.read_records(load_file(file)))
    except IngestError as exc:
        raise click.ClickException(str(exc)) from exc
    result = profile_records(records)
    click.echo(json.dumps(result.model_dump(mode="json", by_alias=True), indent=2))
