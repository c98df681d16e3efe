"""Thin CLI wrapper for cross_imagegen.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from cross_imagegen import __version__
from cross_imagegen.config import get_settings, print_settings_json

app = typer.Typer(
    name="cross-imagegen",
    help="Cross Image Generator - cached cross-compilation build environments",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"cross-imagegen version {__version__}")
        raise typer.Exit()


def configure_logging(level: str) -> None:
    """Route log records to stderr through Rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Cross Image Generator - cached cross-compilation build environments."""
    configure_logging("DEBUG" if verbose else get_settings().log_level)


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print_json(print_settings_json(settings))
        return

    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Images:[/bold]")
    console.print(f"  Target directory:    {settings.docker_dir}")
    console.print(f"  Organization:        {settings.organization}")
    console.print(f"  Image version:       {settings.image_version}")
    console.print(f"  Label namespace:     {settings.label_namespace}")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Cache directory:     {settings.cache_dir}")
    console.print(f"  Logs directory:      {settings.logs_dir}")
    console.print(f"  Docker executable:   {settings.docker_bin}")
    console.print()
    console.print("[bold]Operational:[/bold]")
    console.print(f"  Offline mode:        {settings.offline}")
    console.print(f"  Fail fast:           {settings.fail_fast}")
    console.print(f"  Log level:           {settings.log_level}")
    console.print(f"  Registry timeout:    {settings.registry_timeout}")
    console.print()
    console.print("[bold]CI stages:[/bold]")
    console.print(f"  Install:             {settings.install_command or '(none)'}")
    console.print(f"  Script:              {settings.script_command or '(none)'}")
    console.print(f"  After success:       {settings.after_success_command or '(none)'}")


def _run_matrix(
    target: str | None,
    fail_fast: bool,
    no_cache: bool,
    json_output: bool,
    with_stages: bool,
) -> None:
    from cross_imagegen.errors import CrossImageError, UnknownTargetError
    from cross_imagegen.matrix.orchestrator import RunMode
    from cross_imagegen.service import create_orchestrator
    from cross_imagegen.types import Criticality, TargetOutcome

    settings = get_settings()
    mode = RunMode.single(target) if target else RunMode.all()
    orchestrator = create_orchestrator(
        settings,
        use_cache=not no_cache,
        with_stages=with_stages,
        fail_fast=True if fail_fast else None,
    )

    try:
        report = orchestrator.run(mode)
    except UnknownTargetError as e:
        if json_output:
            console.print_json(
                data={"code": e.code, "message": str(e), "declared": e.declared}
            )
        else:
            console.print(f"[red]Unknown target: {escape(target or '')}[/red]")
            if e.declared:
                console.print(f"Declared targets: {', '.join(e.declared)}")
        raise typer.Exit(code=1) from None
    except (CrossImageError, OSError) as e:
        code = getattr(e, "code", "os_error")
        if json_output:
            console.print_json(data={"code": code, "target": target, "message": str(e)})
        else:
            console.print(f"[red]✗ {escape(target or '')}: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None

    if json_output:
        console.print_json(report.model_dump_json())
    else:
        console.print()
        console.print("[bold]Matrix Results:[/bold]")
        console.print(f"  Total targets: {report.total}")
        console.print(f"  [green]Ready: {report.succeeded}[/green]")
        console.print(f"  [blue]Cache hits: {report.cache_hits}[/blue]")
        console.print(f"  Built: {report.built}")
        if report.failed > 0:
            console.print(f"  [red]Failed: {report.failed}[/red]")
        if report.stopped_early:
            console.print("  [yellow]Stopped early (fail-fast mode)[/yellow]")

        console.print()
        console.print("[bold]Per-Target Results:[/bold]")
        for r in report.results:
            if r.succeeded:
                hit_marker = " (cache hit)" if r.outcome == TargetOutcome.CACHED else ""
                console.print(f"  [green]✓ {r.target}[/green] {r.image}{hit_marker}")
            else:
                stage = r.failed_stage.value if r.failed_stage else "unknown"
                allowed = (
                    " (allowed to fail)"
                    if r.criticality == Criticality.BEST_EFFORT
                    else ""
                )
                console.print(f"  [red]✗ {r.target}[/red] (failed in {stage}){allowed}")
                if r.error_message:
                    console.print(f"      Error: {escape(r.error_message)}")
                if r.log_path:
                    console.print(f"      Log: {r.log_path}")

    if not report.success:
        raise typer.Exit(code=1)


@app.command()
def build(
    target: Annotated[
        str | None,
        typer.Argument(help="Target to build (all declared targets if omitted)"),
    ] = None,
    fail_fast: Annotated[
        bool,
        typer.Option("--fail-fast", help="Stop at the first required target failure"),
    ] = False,
    no_cache: Annotated[
        bool,
        typer.Option("--no-cache", help="Do not restore or save cache archives"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Build target images, reusing cached images where possible."""
    _run_matrix(target, fail_fast, no_cache, json_output, with_stages=False)


@app.command()
def ci(
    target: Annotated[
        str | None,
        typer.Argument(help="Target to run (all declared targets if omitted)"),
    ] = None,
    fail_fast: Annotated[
        bool,
        typer.Option("--fail-fast", help="Stop at the first required target failure"),
    ] = False,
    no_cache: Annotated[
        bool,
        typer.Option("--no-cache", help="Do not restore or save cache archives"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Provision target images, then run the configured CI stages."""
    _run_matrix(target, fail_fast, no_cache, json_output, with_stages=True)


targets_app = typer.Typer(help="Inspect declared targets")
app.add_typer(targets_app, name="targets")


@targets_app.command("list")
def targets_list(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List declared targets."""
    from cross_imagegen.errors import InvalidTargetMetadataError
    from cross_imagegen.service import build_components

    components = build_components(get_settings())
    targets = sorted(components.registry.list_declared_targets())

    rows: list[dict[str, object]] = []
    invalid = False
    for target in targets:
        image = components.resolver.image_ref(target).tag
        try:
            description = components.registry.get_description(target)
        except InvalidTargetMetadataError as e:
            invalid = True
            rows.append({"target": target, "image": image, "error": str(e)})
            continue
        rows.append(
            {
                "target": target,
                "image": image,
                "criticality": description.criticality.value,
                "description": description.metadata.description,
            }
        )

    if json_output:
        console.print_json(data=rows)
    elif not rows:
        console.print(
            f"[yellow]No targets declared in {components.settings.docker_dir}[/yellow]"
        )
    else:
        console.print(f"[bold]Found {len(rows)} target(s):[/bold]")
        console.print()
        for row in rows:
            if "error" in row:
                console.print(f"  [red]{row['target']}[/red]")
                console.print(f"    Error: {escape(str(row['error']))}")
                continue
            console.print(f"  [green]{row['target']}[/green]")
            console.print(f"    Image: {row['image']}")
            console.print(f"    Criticality: {row['criticality']}")
            if row["description"]:
                console.print(f"    Description: {escape(str(row['description']))}")

    if invalid:
        raise typer.Exit(code=1)


@targets_app.command("show")
def targets_show(
    target: Annotated[str, typer.Argument(help="Target to show")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show a target's image tag, recipe hash and base images."""
    from cross_imagegen.cache.archive import ArchiveCacheStore
    from cross_imagegen.errors import CrossImageError
    from cross_imagegen.service import build_components
    from cross_imagegen.targets.recipe_hash import compute_recipe_hash

    components = build_components(get_settings())
    try:
        description = components.registry.get_description(target)
        base_images = description.base_images()
    except (CrossImageError, OSError) as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None

    recipe_hash = compute_recipe_hash(description)
    cache_entry = None
    if isinstance(components.cache, ArchiveCacheStore):
        cache_entry = components.cache.read_entry(target)

    info = {
        "target": target,
        "image": components.resolver.image_ref(target).tag,
        "recipe": str(description.recipe_path),
        "recipe_hash": recipe_hash,
        "criticality": description.criticality.value,
        "base_images": base_images,
        "build_args": description.metadata.build_args,
        "cached_recipe_hash": cache_entry.recipe_hash if cache_entry else None,
        "cache_fresh": cache_entry is not None and cache_entry.recipe_hash == recipe_hash,
    }

    if json_output:
        console.print_json(data=info)
        return

    console.print(f"[bold]{target}[/bold]")
    console.print(f"  Image: {info['image']}")
    console.print(f"  Recipe: {info['recipe']}")
    console.print(f"  Recipe hash: {recipe_hash}")
    console.print(f"  Criticality: {info['criticality']}")
    console.print(f"  Base images: {', '.join(base_images) or '(none)'}")
    for key, value in sorted(description.metadata.build_args.items()):
        console.print(f"  Build arg: {key}={escape(value)}")
    if cache_entry is None:
        console.print("  Cache: [yellow]no entry[/yellow]")
    elif info["cache_fresh"]:
        console.print("  Cache: [green]fresh[/green]")
    else:
        console.print("  Cache: [yellow]stale[/yellow]")


cache_app = typer.Typer(help="Manage image cache archives")
app.add_typer(cache_app, name="cache")


@cache_app.command("list")
def cache_list(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List cache archives."""
    from cross_imagegen.cache.archive import ArchiveCacheStore
    from cross_imagegen.images.docker import DockerClient

    settings = get_settings()
    store = ArchiveCacheStore(settings.cache_dir, DockerClient(settings.docker_bin))
    entries = store.list_entries()

    if json_output:
        console.print_json(data=[e.model_dump(mode="json") for e in entries])
        return
    if not entries:
        console.print(f"[yellow]No cache entries in {settings.cache_dir}[/yellow]")
        return

    console.print(f"[bold]Found {len(entries)} cache entries:[/bold]")
    console.print()
    for e in entries:
        console.print(f"  [green]{e.target}[/green]")
        console.print(f"    Image: {e.image}")
        console.print(f"    Recipe hash: {e.recipe_hash}")
        console.print(f"    Layers: {len(e.layers)}")
        console.print(f"    Size: {e.size_bytes} bytes")
        console.print(f"    Created: {e.created_at.isoformat()}")


@cache_app.command("save")
def cache_save(
    target: Annotated[str, typer.Argument(help="Target whose image to save")],
) -> None:
    """Save a target's image to its cache archive."""
    from cross_imagegen.cache.archive import ArchiveCacheStore
    from cross_imagegen.errors import CrossImageError
    from cross_imagegen.images.models import recipe_hash_label
    from cross_imagegen.service import build_components
    from cross_imagegen.targets.schema import is_valid_target_id

    if not is_valid_target_id(target):
        console.print(f"[red]Unknown target: {escape(target)}[/red]")
        raise typer.Exit(code=1)

    settings = get_settings()
    components = build_components(settings)
    store = ArchiveCacheStore(settings.cache_dir, components.docker)
    image = components.resolver.image_ref(target)

    try:
        labels = components.docker.image_labels(image.tag)
        if labels is None:
            console.print(f"[red]Image not present: {image}[/red]")
            raise typer.Exit(code=1)
        recipe_hash = labels.get(recipe_hash_label(settings.label_namespace))
        if not recipe_hash:
            console.print(f"[red]Image {image} carries no recipe hash label[/red]")
            raise typer.Exit(code=1)
        entry = store.persist(target, image, recipe_hash)
    except CrossImageError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None

    console.print(
        f"[green]Saved {image} ({len(entry.layers)} layers, {entry.size_bytes} bytes)[/green]"
    )


@cache_app.command("restore")
def cache_restore(
    target: Annotated[str, typer.Argument(help="Target whose archive to restore")],
) -> None:
    """Restore a target's cache archive into the local image store.

    Restoring is best-effort: a missing, stale or corrupt archive is
    reported but never fails the command.
    """
    from cross_imagegen.errors import CacheRestoreError, CrossImageError
    from cross_imagegen.service import build_components
    from cross_imagegen.targets.recipe_hash import compute_recipe_hash

    components = build_components(get_settings())
    try:
        recipe_hash = compute_recipe_hash(components.registry.get_description(target))
    except CrossImageError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None

    try:
        restored = components.cache.restore(target, recipe_hash)
    except CacheRestoreError as e:
        console.print(f"[yellow]Cache restore failed, continuing: {escape(str(e))}[/yellow]")
        return

    if restored:
        console.print(f"[green]Restored cache entry for {target}[/green]")
    else:
        console.print(f"[yellow]No usable cache entry for {target}[/yellow]")


@cache_app.command("remove")
def cache_remove(
    target: Annotated[str, typer.Argument(help="Target whose archive to delete")],
) -> None:
    """Delete a target's cache archive."""
    from cross_imagegen.cache.archive import ArchiveCacheStore
    from cross_imagegen.errors import UnknownTargetError
    from cross_imagegen.images.docker import DockerClient

    settings = get_settings()
    store = ArchiveCacheStore(settings.cache_dir, DockerClient(settings.docker_bin))
    try:
        removed = store.remove(target)
    except UnknownTargetError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None
    if removed:
        console.print(f"[green]Removed cache entry for {target}[/green]")
    else:
        console.print(f"[yellow]No cache entry for {target}[/yellow]")


if __name__ == "__main__":
    app()
