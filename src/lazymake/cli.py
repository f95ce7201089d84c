from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional, Tuple

import typer

from lazymake.build.engine import BuildEngine
from lazymake.build.options import BuildOptions
from lazymake.buildfile.load import DEFAULT_BUILDFILE, Buildfile, load_buildfile
from lazymake.deps.postprocess import normalize_raw_artifact
from lazymake.deps.store import DependencyStore
from lazymake.errors import BuildfileError

app = typer.Typer(help="lazymake: incremental builds with lazily loaded dependency records")

EXIT_BUILD_FAILED = 1
EXIT_BAD_BUILDFILE = 2


# -----------------------------
# Helpers
# -----------------------------

def _locate(file: Optional[Path], directory: Optional[Path]) -> Tuple[Path, Path]:
    """Return (buildfile, root). Targets are relative to the root."""
    base = (directory or Path(".")).expanduser().resolve()
    path = file.expanduser() if file else base / DEFAULT_BUILDFILE
    if not path.is_absolute():
        path = base / path
    root = base if directory else path.parent
    return path.resolve(), root


def _keep_going_flag(keep_going: bool, stop: bool) -> Optional[bool]:
    if keep_going and stop:
        raise typer.BadParameter("--keep-going and --stop are mutually exclusive")
    if keep_going:
        return True
    if stop:
        return False
    return None


def _engine(
    file: Optional[Path],
    directory: Optional[Path],
    verbose: bool = False,
    **overrides,
) -> BuildEngine:
    path, root = _locate(file, directory)
    try:
        bf: Buildfile = load_buildfile(path)
        options = BuildOptions.from_config(bf.options, root=root, **overrides)
    except (BuildfileError, ValueError) as e:
        typer.secho(f"lazymake: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=EXIT_BAD_BUILDFILE)

    if verbose:
        options.logger.setLevel(logging.DEBUG)
    return BuildEngine(bf.graph, options, default_goal=bf.default_goal)


# -----------------------------
# build
# -----------------------------

@app.command()
def build(
    goals: Optional[List[str]] = typer.Argument(None, help="Targets to build (default: first rule)"),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="Buildfile (default: lazymake.yaml)"),
    directory: Optional[Path] = typer.Option(None, "--directory", "-C", help="Build root"),
    jobs: Optional[int] = typer.Option(None, "--jobs", "-j", min=1, help="Concurrent actions"),
    keep_going: bool = typer.Option(False, "--keep-going", "-k", help="Finish independent goals after a failure"),
    stop: bool = typer.Option(False, "--stop", "-S", help="Stop at the first failure"),
    profile: Optional[str] = typer.Option(None, "--profile", help="serial | default | parallel"),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Print commands without running them"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Build the goals, rebuilding only stale targets."""
    engine = _engine(
        file,
        directory,
        verbose=verbose,
        jobs=jobs,
        keep_going=_keep_going_flag(keep_going, stop),
        profile=profile,
    )

    try:
        result = engine.run(goals, dry_run=dry_run)
    except BuildfileError as e:
        typer.secho(f"lazymake: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=EXIT_BAD_BUILDFILE)

    if dry_run:
        typer.echo(f"Would run {len(result.executed)} action(s)")

    for o in result.outcomes:
        if o.status == "FAILED":
            typer.secho(f"lazymake: *** [{o.goal}] failed: {o.reason}", fg=typer.colors.RED)
        elif o.status == "SKIPPED":
            typer.secho(f"lazymake: [{o.goal}] skipped", fg=typer.colors.YELLOW)

    if not result.ok:
        raise typer.Exit(code=EXIT_BUILD_FAILED)


# -----------------------------
# deps
# -----------------------------

@app.command()
def deps(
    raw: Path = typer.Argument(..., help="Raw compiler dependency output (e.g. from -MMD -MF)"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Dependency record (default: RAW with .d suffix)"),
    source: Optional[str] = typer.Option(None, "--source", help="Primary source to drop from the list"),
    keep_raw: bool = typer.Option(False, "--keep-raw", help="Do not delete RAW afterwards"),
):
    """Normalize a raw dependency artifact into a one-line dependency record."""
    raw = raw.expanduser().resolve()
    out = (out.expanduser() if out else raw.with_suffix(".d")).resolve()
    if out == raw:
        raise typer.BadParameter("--out must differ from the raw artifact")

    store = DependencyStore(out.parent)
    prereqs = normalize_raw_artifact(raw, store, out.name, source=source, keep_raw=keep_raw)
    if prereqs is None:
        typer.secho(f"No dependency data in {raw}", fg=typer.colors.YELLOW)
        raise typer.Exit(code=EXIT_BUILD_FAILED)

    typer.secho(f"Wrote {out} ({len(prereqs)} prerequisite(s))", fg=typer.colors.GREEN)


# -----------------------------
# plan
# -----------------------------

@app.command()
def plan(
    goals: Optional[List[str]] = typer.Argument(None, help="Targets to plan (default: first rule)"),
    file: Optional[Path] = typer.Option(None, "--file", "-f"),
    directory: Optional[Path] = typer.Option(None, "--directory", "-C"),
):
    """Print what a build would do, as JSON, without running anything."""
    engine = _engine(file, directory)
    try:
        p = engine.plan(goals)
    except BuildfileError as e:
        typer.secho(f"lazymake: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=EXIT_BAD_BUILDFILE)

    doc = {
        "goals": p.goals,
        "errors": {g: str(e) for g, e in p.errors.items()},
        "providers_invoked": p.providers_invoked,
        "targets": [p.targets[n].to_dict() for n in p.order],
    }
    typer.echo(json.dumps(doc, indent=2))
    if p.errors:
        raise typer.Exit(code=EXIT_BUILD_FAILED)


if __name__ == "__main__":
    app()
