"""CLI entry-point: submit, track and inspect generation tasks."""

import asyncio
import base64
import logging
import mimetypes
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from looklab.config import Settings, get_settings
from looklab.errors import LookLabError
from looklab.jobs.history import get_history
from looklab.jobs.models import GenerationTask, TaskStatus
from looklab.jobs.orchestrator import TaskOrchestrator
from looklab.jobs.persistence import get_task_state_store
from looklab.schemas.generation import (
    FabricOptions,
    GenerationRequest,
    ReferenceImage,
    TryOnOptions,
)
from looklab.storage.blob import get_blob_store
from looklab.vendor import get_adapter, get_normalizer, get_prompt_extractor
from looklab.vendor.validation import check_image_bytes

app = typer.Typer(help="LookLab: apparel image generation from the command line")
console = Console()

_STATUS_STYLE = {
    TaskStatus.QUEUED: "dim",
    TaskStatus.CREATING: "cyan",
    TaskStatus.POLLING: "cyan",
    TaskStatus.COMPLETED: "green",
    TaskStatus.FAILED: "red",
}


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log vendor calls and task transitions")):
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(message)s",
            datefmt="[%X]",
            handlers=[RichHandler(console=console, rich_tracebacks=True)],
        )
    else:
        logging.basicConfig(level=logging.WARNING)


def _fail(message: str) -> None:
    console.print(f"[red]Error: {message}[/red]")
    raise typer.Exit(1)


def _read_image(path: str) -> tuple[bytes, str]:
    p = Path(path)
    if not p.is_file():
        _fail(f"file not found: {path}")
    mime = mimetypes.guess_type(p.name)[0] or "application/octet-stream"
    return p.read_bytes(), mime


def _reference(value: str) -> ReferenceImage:
    """A reference from a URL or a local image path."""
    if value.startswith(("http://", "https://")):
        return ReferenceImage(url=value)
    content, mime = _read_image(value)
    data_url = f"data:{mime};base64,{base64.b64encode(content).decode('ascii')}"
    return ReferenceImage(data_url=data_url, mime_type=mime, size=len(content))


def _orchestrator(settings: Settings) -> TaskOrchestrator:
    try:
        blob_store = get_blob_store(settings)
    except LookLabError:
        blob_store = None
    return TaskOrchestrator(
        get_adapter(settings, blob_store=blob_store),
        get_normalizer(settings),
        store=get_task_state_store(settings),
        history=get_history(settings),
        max_concurrent=settings.looklab_max_concurrent_tasks,
        poll_interval=settings.looklab_poll_interval_seconds,
        tick_interval=settings.looklab_elapsed_tick_seconds,
        max_poll_errors=settings.looklab_max_poll_errors,
        elapsed_persist_interval=settings.looklab_elapsed_persist_seconds,
    )


def _print_tasks(tasks: list[GenerationTask]) -> None:
    if not tasks:
        console.print("No tasks.")
        return
    table = Table("Task", "Mode", "Status", "Progress", "Elapsed", "Result / error")
    for task in tasks:
        style = _STATUS_STYLE.get(task.status, "")
        table.add_row(
            task.client_id[:12],
            task.request.mode,
            f"[{style}]{task.status.value}[/{style}]" if style else task.status.value,
            f"{task.progress}%",
            f"{task.elapsed_seconds}s",
            task.result or task.error_message or "",
        )
    console.print(table)


async def _drive(settings: Settings, requests: list[GenerationRequest], resume: bool = False) -> list[GenerationTask]:
    orchestrator = _orchestrator(settings)
    client_ids: list[str] = []
    try:
        if resume:
            client_ids = [t.client_id for t in orchestrator.restore()]
        for request in requests:
            client_ids.append(orchestrator.submit_generation(request))
        with console.status("Generating...") as spinner:
            while orchestrator.has_pending_work():
                counts = orchestrator.counts()
                spinner.update(
                    f"Generating... {counts['running']} running, {counts['queued']} queued, "
                    f"{counts['completed']} done, {counts['failed']} failed"
                )
                try:
                    await orchestrator.wait_idle(timeout=1.0)
                except asyncio.TimeoutError:
                    continue
    finally:
        await orchestrator.aclose()
    return [t for t in (orchestrator.get_task(cid) for cid in client_ids) if t is not None]


def _run(settings: Settings, requests: list[GenerationRequest], resume: bool = False) -> None:
    try:
        tasks = asyncio.run(_drive(settings, requests, resume=resume))
    except LookLabError as e:
        _fail(str(e))
    _print_tasks(tasks)
    if any(t.status == TaskStatus.FAILED for t in tasks):
        raise typer.Exit(1)


@app.command()
def generate(
    prompt: str = typer.Argument(..., help="What to generate"),
    size: str = typer.Option("3:4", help="Aspect ratio, e.g. 1:1, 3:4, 16:9"),
    model: Optional[str] = typer.Option(None, help="Pin a model (default: picked from references)"),
    quality: str = typer.Option("2K", help="1K | 2K | 4K"),
    seed: Optional[int] = typer.Option(None, help="Seed for reproducible output"),
    ref: list[str] = typer.Option(default=[], help="Reference image URL or local path (repeatable)"),
    count: int = typer.Option(1, min=1, max=20, help="Number of tasks to submit"),
):
    """Text-to-image, or fusion when references are given."""
    settings = get_settings()
    try:
        request = GenerationRequest(
            prompt=prompt,
            model=model,
            size=size,
            quality=quality,
            seed=seed,
            reference_images=[_reference(r) for r in ref],
        )
    except ValueError as e:
        _fail(str(e))
    _run(settings, [request] * count)


@app.command()
def fabric(
    image: str = typer.Argument(..., help="Photo of the garment"),
    fabric_type: str = typer.Option("silk", "--fabric", help="silk | denim | knit | custom"),
    label: str = typer.Option("", help="Fabric label (required for custom)"),
    pattern: str = typer.Option("", help="Print or weave direction"),
    notes: str = typer.Option("", help="Art direction notes"),
    texture_strength: float = typer.Option(70, help="Texture strength, 10-100"),
    pattern_scale: float = typer.Option(100, help="Pattern scale, 40-200"),
    lock_identity: bool = typer.Option(False, "--lock-identity", help="Keep face, limbs and camera unchanged"),
    preserve_background: bool = typer.Option(True, "--preserve-background/--no-preserve-background"),
    size: str = typer.Option("3:4"),
):
    """Swap the garment's material."""
    settings = get_settings()
    try:
        request = GenerationRequest(
            size=size,
            mode="fabric_swap",
            reference_images=[_reference(image)],
            fabric=FabricOptions(
                fabric_type=fabric_type,
                fabric_label=label,
                pattern_prompt=pattern,
                advanced_prompt=notes,
                texture_strength=texture_strength,
                pattern_scale=pattern_scale,
                lock_identity=lock_identity,
                preserve_background=preserve_background,
            ),
        )
    except ValueError as e:
        _fail(str(e))
    _run(settings, [request])


@app.command("try-on")
def try_on(
    model_image: str = typer.Argument(..., help="Photo of the person (URL or path)"),
    garment_image: str = typer.Argument(..., help="Photo of the outfit (URL or path)"),
    prompt: str = typer.Option("", help="Override the default try-on instruction"),
    fit: float = typer.Option(50, help="Fit tightness, 0 (relaxed) to 100 (snug)"),
    notes: str = typer.Option("", help="Styling notes"),
    preserve_background: bool = typer.Option(True, "--preserve-background/--no-preserve-background"),
    lock_identity: bool = typer.Option(True, "--lock-identity/--no-lock-identity"),
    preserve_accessories: bool = typer.Option(True, "--preserve-accessories/--no-preserve-accessories"),
    size: str = typer.Option("3:4"),
):
    """Dress the person from the first photo in the outfit from the second."""
    settings = get_settings()
    request = GenerationRequest(
        prompt=prompt,
        size=size,
        mode="try_on",
        reference_images=[_reference(model_image), _reference(garment_image)],
        try_on=TryOnOptions(
            fit_tightness=fit,
            preserve_background=preserve_background,
            lock_identity=lock_identity,
            preserve_accessories=preserve_accessories,
            notes=notes,
        ),
    )
    _run(settings, [request])


@app.command()
def status(task_id: str = typer.Argument(..., help="Vendor task id")):
    """Fetch the normalized status of one vendor task."""
    settings = get_settings()
    try:
        result = asyncio.run(get_normalizer(settings).fetch_status(task_id))
    except LookLabError as e:
        _fail(str(e))
    console.print(f"Task: {result.task_id}")
    console.print(f"Status: {result.status} ({result.progress}%)")
    if result.result_url:
        console.print(f"[green]Result: {result.result_url}[/green]")
    elif result.status == "completed":
        console.print("[yellow]Vendor reports completion but no image URL yet.[/yellow]")
    if result.error_message:
        console.print(f"[red]{result.error_message}[/red]")


@app.command()
def resume():
    """Restore persisted tasks and run them to completion."""
    settings = get_settings()
    _run(settings, [], resume=True)


@app.command()
def tasks():
    """List persisted tasks."""
    _print_tasks(get_task_state_store(get_settings()).load())


@app.command()
def clear():
    """Forget all tasks, including persisted ones."""
    _orchestrator(get_settings()).reset_all()
    console.print("[green]Cleared task state.[/green]")


@app.command()
def history(
    clear: bool = typer.Option(False, "--clear", help="Delete the history"),
    remove: Optional[str] = typer.Option(None, help="Remove one entry by id"),
):
    """Show finished generations, newest first."""
    store = get_history(get_settings())
    if clear:
        store.clear()
        console.print("[green]History cleared.[/green]")
        return
    if remove:
        if not store.remove(remove):
            _fail(f"no history entry {remove}")
        console.print(f"Removed {remove}")
        return
    items = store.list()
    if not items:
        console.print("History is empty.")
        return
    table = Table("Id", "Tool", "Model", "Created", "Image")
    for item in items:
        table.add_row(item.id[:12], item.tool, item.model, item.created_at.strftime("%Y-%m-%d %H:%M"), item.image_url)
    console.print(table)


@app.command("extract-prompt")
def extract_prompt(
    image: str = typer.Argument(..., help="Image to describe"),
    hints: str = typer.Option("", help="Extra requirements for the prompt"),
):
    """Describe an image as a text-to-image prompt."""
    settings = get_settings()
    content, mime = _read_image(image)
    try:
        result = asyncio.run(get_prompt_extractor(settings).extract(content, mime, hints))
    except LookLabError as e:
        _fail(str(e))
    console.print(result.prompt)


@app.command()
def upload(path: str = typer.Argument(..., help="Image to upload")):
    """Upload a reference image to the blob store and print its URL."""
    settings = get_settings()
    content, mime = _read_image(path)
    try:
        check_image_bytes(content, mime)
        stored = get_blob_store(settings).put(content, mime)
    except LookLabError as e:
        _fail(str(e))
    console.print(stored.url)


if __name__ == "__main__":
    app()
