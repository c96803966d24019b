"""
Command line interface for graft.

``graft review BASE`` is the main command: it collects the changes between
``BASE`` and ``HEAD``, asks the configured AI provider for a summary and a
review order, and then shows the diffs file by file in that order.
Auxiliary commands manage the review cache (``graft cache``), the
configuration file (``graft config``) and list provider models
(``graft models``).

Exit codes are listed below; a review declined at the confirmation prompt
is a success.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional

import click

from graft import __version__
from graft.analysis.cache import AnalysisCache, get_or_analyze
from graft.cache.review_cache import CacheError, ReviewCache
from graft.cancellation import CancellationToken, ReviewCancelled
from graft.config.loader import (
    ConfigError,
    get_config_path,
    get_config_value,
    load_config,
    set_config_value,
)
from graft.provider.base import Provider, ProviderError
from graft.provider.registry import ProviderRegistry, create_registry
from graft.render.console import (
    ProgressIndicator,
    print_error,
    print_info,
    print_success,
    print_summary_box,
    print_warning,
)
from graft.render.prompts import TerminalReviewUI, confirm_analysis, select_model
from graft.render.renderer import Renderer, find_delta
from graft.review.orchestrator import ReviewOptions, ReviewOrchestrator
from graft.vcs.git_client import GitClient, GitError, NotARepositoryError, RefNotFoundError


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------
EXIT_SUCCESS = 0
EXIT_GENERIC_ERROR = 1
EXIT_NO_REPO = 3
EXIT_NO_CHANGES = 4
EXIT_CONFIG_ERROR = 5
EXIT_VCS_FAILURE = 6
EXIT_BAD_REF = 9
EXIT_CANCELLED = 10

KNOWN_PROVIDERS = ("ollama", "anthropic", "mock")


def _plural(n: int, word: str) -> str:
    return f"{n} {word}{'' if n == 1 else 's'}"


def _load_config_or_exit(ctx: click.Context) -> Dict[str, Any]:
    try:
        return load_config(ctx.obj.get("config_path"))
    except ConfigError as exc:
        print_error(f"Configuration error: {exc}")
        raise click.exceptions.Exit(EXIT_CONFIG_ERROR)


def _open_repo_or_exit() -> GitClient:
    try:
        return GitClient.open(Path.cwd())
    except NotARepositoryError:
        print_error("Not in a git repository.")
        raise click.exceptions.Exit(EXIT_NO_REPO)


def resolve_provider(registry: ProviderRegistry, name: Optional[str]) -> Optional[Provider]:
    """Pick the provider for this run.

    Returns ``None`` (AI disabled, with a warning) when the provider is known
    but cannot be used, e.g. ``anthropic`` without an API key.

    Raises
    ------
    click.exceptions.Exit
        With :data:`EXIT_CONFIG_ERROR` for an unknown provider name.
    """
    name = name or registry.default_name
    if name not in KNOWN_PROVIDERS:
        print_error(f"Unknown provider '{name}'; available: {', '.join(KNOWN_PROVIDERS)}")
        raise click.exceptions.Exit(EXIT_CONFIG_ERROR)
    if not registry.has(name):
        print_warning(f"Provider '{name}' is not configured (for anthropic, set ANTHROPIC_API_KEY).")
        print_info("Skipping AI analysis. Use --no-summary --no-order to suppress this warning.")
        return None
    return registry.get(name)


def repo_context(repo_root: Path, refresh: bool, assume_yes: bool) -> str:
    """Return the repository analysis block for the ordering prompt.

    The first analysis of a repository needs the user's permission; later
    runs reuse ``.graft/analysis.json`` unless ``refresh`` is set.
    """
    cache = AnalysisCache(repo_root)
    if not refresh:
        cached = cache.load()
        if cached is not None:
            logger.debug("Using cached repository analysis")
            return cached.format_context()
    if not cache.exists() and not confirm_analysis(assume_yes):
        return ""
    if refresh:
        print_info("Refreshing repository analysis...")

    with ProgressIndicator("Analyzing repository structure", inline=False):
        analysis, is_new = get_or_analyze(repo_root, refresh=True)
    if is_new:
        detected = analysis.type.value
        if analysis.languages:
            detected += f" ({', '.join(analysis.languages)})"
        if analysis.frameworks:
            detected += f" with {', '.join(analysis.frameworks)}"
        print_info(f"Detected: {detected}")
        print_info(f"Analysis cached at {cache.path}")
    return analysis.format_context()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@click.group()
@click.option("--verbose", is_flag=True, help="Enable verbose (debug) output.")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="GRAFT_CONFIG",
    help="Path of the configuration file.",
)
@click.version_option(version=__version__, prog_name="graft")
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_path: Optional[Path]) -> None:
    """AI-assisted code review: summarize a branch and walk its diffs in a logical order."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
        force=True,
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@main.command()
@click.argument("base_ref")
@click.option("--no-summary", is_flag=True, help="Skip the AI summary.")
@click.option("--no-order", is_flag=True, help="Skip AI ordering and use the diff order.")
@click.option("--provider", "provider_name", help="AI provider to use (default from config).")
@click.option("--model", help="Model to use (default from config).")
@click.option("--no-delta", is_flag=True, help="Disable delta rendering.")
@click.option("--tests-first", is_flag=True, help="Show test files before implementation.")
@click.option("--refresh", is_flag=True, help="Ignore cached analysis and AI output.")
@click.option("--no-analyze", is_flag=True, help="Skip repository structure analysis.")
@click.option("--no-cache", is_flag=True, help="Neither read nor write the review cache.")
@click.option("--deep-review", is_flag=True, help="Also request a detailed AI review.")
@click.option("--timeout", type=click.FloatRange(min=0, min_open=True), help="Abort after this many seconds.")
@click.option("--yes", "yes", is_flag=True, help="Do not prompt; accept every default.")
@click.pass_context
def review(
    ctx: click.Context,
    base_ref: str,
    no_summary: bool,
    no_order: bool,
    provider_name: Optional[str],
    model: Optional[str],
    no_delta: bool,
    tests_first: bool,
    refresh: bool,
    no_analyze: bool,
    no_cache: bool,
    deep_review: bool,
    timeout: Optional[float],
    yes: bool,
) -> None:
    """Review the changes between BASE_REF and HEAD.

    \b
    Examples:
      graft review main         Review changes against main
      graft review origin/main  Review changes against remote main
      graft review HEAD~5       Review the last 5 commits
    """
    config = _load_config_or_exit(ctx)
    git = _open_repo_or_exit()
    cancel = CancellationToken(timeout=timeout)
    registry: Optional[ProviderRegistry] = None

    try:
        try:
            git.validate_ref(base_ref, cancel)
            branch = git.get_current_branch(cancel)
            print_info(f"Reviewing {click.style(branch, fg='cyan', bold=True)} against {base_ref}")
            diff = git.get_diff(base_ref, cancel)
        except RefNotFoundError as exc:
            print_error(str(exc))
            raise click.exceptions.Exit(EXIT_BAD_REF)
        except GitError as exc:
            print_error(f"Git error: {exc}")
            raise click.exceptions.Exit(EXIT_VCS_FAILURE)

        if not diff.files:
            print_warning(f"No changes found between {branch} and {base_ref}")
            raise click.exceptions.Exit(EXIT_NO_CHANGES)
        print_info(
            f"Found {_plural(len(diff.files), 'changed file')} across {_plural(len(diff.commits), 'commit')}"
        )

        provider = None
        if not no_summary or not no_order or deep_review:
            registry = create_registry(config, model_override=model)
            provider = resolve_provider(registry, provider_name)

        context = ""
        if provider is not None and not no_order and not no_analyze:
            try:
                context = repo_context(git.repo_root, refresh, yes)
            except OSError as exc:
                logger.debug("Repository analysis failed", exc_info=True)
                print_warning(f"Failed to analyze repository: {exc}")

        delta = None
        if not no_delta:
            delta = find_delta(config.get("delta_path") or None)
            if delta is None:
                print_info("delta not found, using basic diff rendering.")
                print_info("Install delta for better rendering: https://github.com/dandavison/delta", indent=1)

        renderer = Renderer(git, base_ref, delta=delta)
        orchestrator = ReviewOrchestrator(
            provider,
            ui=TerminalReviewUI(renderer, assume_yes=yes),
            cache=None if no_cache else ReviewCache(git.repo_root),
            options=ReviewOptions(
                skip_summary=no_summary,
                skip_ordering=no_order,
                tests_first=tests_first,
                use_cache=not no_cache,
                refresh=refresh,
                deep_review=deep_review,
                repo_context=context,
            ),
        )
        if provider is not None and not no_summary:
            print_info(f"Analyzing changes with {provider.name}...")
        plan = orchestrator.plan(diff, cancel, load_full_diff=lambda: git.get_full_diff(base_ref, cancel))
        if plan.from_cache:
            print_info("Using cached AI results (run with --refresh to regenerate)")

        if plan.declined:
            click.echo("Review cancelled.")
            raise click.exceptions.Exit(EXIT_SUCCESS)

        failed = 0
        for position, total, f in plan.iter_files():
            renderer.render_file_header(f, position, total)
            try:
                renderer.render_file_diff(f.path, cancel)
            except GitError as exc:
                failed += 1
                print_warning(f"Failed to render diff for {f.path}: {exc}")

        items = [f"Files reviewed: {len(plan.files)}", f"Commits: {len(diff.commits)}"]
        items.append(f"+{diff.stats.additions} / -{diff.stats.deletions} lines")
        if failed:
            items.append(f"Diffs not shown: {failed}")
        if plan.warnings:
            items.append(f"Warnings: {len(plan.warnings)}")
        print_summary_box("Review complete", items)

    except ReviewCancelled as exc:
        print_error(f"Review cancelled: {exc}")
        raise click.exceptions.Exit(EXIT_CANCELLED)
    except KeyboardInterrupt:
        cancel.cancel("interrupted")
        click.echo("")
        print_error("Interrupted.")
        raise click.exceptions.Exit(EXIT_CANCELLED)
    finally:
        if registry is not None:
            registry.close()


# ---------------------------------------------------------------------------
# graft cache
# ---------------------------------------------------------------------------
@main.group()
def cache() -> None:
    """Manage cached AI reviews of this repository."""


@cache.command("clear")
@click.option("--stale", is_flag=True, help="Only remove entries older than cache_max_age_days.")
@click.option("--yes", "yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def cache_clear(ctx: click.Context, stale: bool, yes: bool) -> None:
    """Remove cached reviews."""
    git = _open_repo_or_exit()
    review_cache = ReviewCache(git.repo_root)
    try:
        if stale:
            config = _load_config_or_exit(ctx)
            days = config.get("cache_max_age_days", 7)
            cleared = review_cache.clear_stale(timedelta(days=days))
            if cleared:
                print_success(f"Cleared {cleared} stale cache entr{'y' if cleared == 1 else 'ies'}")
            else:
                print_info(f"No cache entries older than {days} days")
            return

        count = review_cache.count()
        if count == 0:
            print_info("No cached reviews to clear.")
            return
        if not yes and not click.confirm(f"Remove {_plural(count, 'cached review')}?", default=False):
            print_info("Nothing removed.")
            return
        review_cache.clear_all()
        print_success(f"Cleared {_plural(count, 'cached review')}")
    except CacheError as exc:
        print_error(str(exc))
        raise click.exceptions.Exit(EXIT_GENERIC_ERROR)


@cache.command("list")
def cache_list() -> None:
    """List cached reviews, oldest first."""
    git = _open_repo_or_exit()
    records = ReviewCache(git.repo_root).list()
    if not records:
        print_info("No cached reviews.")
        return
    for record in records:
        parts = [name for name in ("summary", "ordering", "review") if getattr(record, name) is not None]
        click.echo(
            f"{click.style(record.cache_key, fg='cyan')}  {record.base_ref:<20} "
            f"{_plural(len(record.commit_hashes), 'commit'):<12} "
            f"{record.cached_at.strftime('%Y-%m-%d %H:%M')}  {', '.join(parts) or '-'}"
        )


# ---------------------------------------------------------------------------
# graft config
# ---------------------------------------------------------------------------
@main.group("config")
def config_group() -> None:
    """Show or change configuration values."""


@config_group.command("get")
@click.argument("key")
@click.option("--reveal", is_flag=True, help="Show secrets unmasked.")
@click.pass_context
def config_get(ctx: click.Context, key: str, reveal: bool) -> None:
    """Print the effective value of KEY."""
    try:
        click.echo(get_config_value(key, ctx.obj.get("config_path"), reveal=reveal))
    except ConfigError as exc:
        print_error(str(exc))
        raise click.exceptions.Exit(EXIT_CONFIG_ERROR)


@config_group.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str) -> None:
    """Store VALUE for KEY in the configuration file."""
    try:
        set_config_value(key, value, ctx.obj.get("config_path"))
    except ConfigError as exc:
        print_error(str(exc))
        raise click.exceptions.Exit(EXIT_CONFIG_ERROR)
    print_success(f"Set {key}")


@config_group.command("path")
@click.pass_context
def config_path_cmd(ctx: click.Context) -> None:
    """Print the configuration file location."""
    click.echo(str(get_config_path(ctx.obj.get("config_path"))))


# ---------------------------------------------------------------------------
# graft models
# ---------------------------------------------------------------------------
@main.command()
@click.option("--provider", "provider_name", help="Provider to query (default from config).")
@click.option("--select", is_flag=True, help="Choose a model and save it as the default.")
@click.pass_context
def models(ctx: click.Context, provider_name: Optional[str], select: bool) -> None:
    """List the models offered by a provider."""
    config = _load_config_or_exit(ctx)
    registry = create_registry(config)
    try:
        provider = resolve_provider(registry, provider_name)
        if provider is None:
            raise click.exceptions.Exit(EXIT_CONFIG_ERROR)
        lister = provider.model_lister()
        if lister is None:
            print_error(f"Provider '{provider.name}' does not support listing models")
            raise click.exceptions.Exit(EXIT_GENERIC_ERROR)
        try:
            available = lister.list_models(CancellationToken(timeout=float(config["request_timeout"])))
        except (ProviderError, ReviewCancelled) as exc:
            print_error(f"Could not list models: {exc}")
            raise click.exceptions.Exit(EXIT_GENERIC_ERROR)

        if not available:
            print_info("No models available.")
            return
        if not select:
            for model in available:
                marker = "*" if model.id == provider.model else " "
                click.echo(f"{marker} {model.display_name}")
            return

        chosen = select_model(available)
        try:
            set_config_value("model", chosen, ctx.obj.get("config_path"))
            if provider.name != registry.default_name:
                set_config_value("provider", provider.name, ctx.obj.get("config_path"))
        except ConfigError as exc:
            print_error(str(exc))
            raise click.exceptions.Exit(EXIT_CONFIG_ERROR)
        print_success(f"Default model set to {chosen}")
    finally:
        registry.close()


if __name__ == "__main__":  # pragma: no cover
    main()
