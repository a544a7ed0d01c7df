"""Command line interface: `release-sync` and `release-sync-generate`."""

from __future__ import annotations

import asyncio
import json
import traceback
from typing import TYPE_CHECKING, Annotated

import click
import pydantic
import typer as t

from release_sync.build import SiteBuilder
from release_sync.diff import compute_diff
from release_sync.exceptions import ReleaseSyncError, TransferError, ValidationError
from release_sync.ingest import ReleaseIngestor
from release_sync.log import configure_logging, get_logger, run_context
from release_sync.models import Config
from release_sync.orchestrator import TransferOptions, TransferOrchestrator
from release_sync.settings import SyncSettings
from release_sync.transport import Target
from release_sync.workspace import Workspace


if TYPE_CHECKING:
    from collections.abc import Sequence

    import httpx

    from release_sync.build import Publisher
    from release_sync.orchestrator import Fetcher
    from release_sync.report import ReconciliationReport


logger = get_logger(__name__)

EXIT_INTERRUPTED = 130

REPO_HELP = "Repository full name, e.g. owner/name"
VERBOSE_HELP = "Enable debug logging"
JSON_LOGS_HELP = "Log as JSON lines"
TOKEN_HELP = "GitHub API token"
REDUCE_HELP = "Keep at most major[,minor[,patch]] versions, '*' for unlimited"
IGNORE_EMPTY_HELP = "Ignore releases without assets"

sync_cli = t.Typer(
    help="Mirror release assets of a repository and publish the release site.",
    add_completion=False,
    pretty_exceptions_enable=False,
)
generate_cli = t.Typer(
    help="Generate the config document of a repository's releases.",
    add_completion=False,
    pretty_exceptions_enable=False,
)


def load_source_config(path: str) -> Config:
    """Load a config document given instead of ingesting one."""
    try:
        return Config.load(path)
    except FileNotFoundError as e:
        msg = f"Config file does not exist: {path}"
        raise ValidationError(msg) from e
    except (pydantic.ValidationError, UnicodeDecodeError) as e:
        msg = f"Failed to parse config file {path}: {e}"
        raise ValidationError(msg) from e
    except ValueError as e:
        # fsspec rejects unknown protocols with a ValueError
        msg = f"Unsupported config location {path}: {e}"
        raise ValidationError(msg) from e


async def ingest(settings: SyncSettings, client: httpx.AsyncClient | None = None) -> Config:
    async with ReleaseIngestor(
        settings.repo,
        token=settings.token,
        client=client,
        reduce=settings.reduce,
        ignore_empty_assets=settings.ignore_empty_assets,
    ) as ingestor:
        return await ingestor.ingest()


async def run_sync(
    settings: SyncSettings,
    *,
    client: httpx.AsyncClient | None = None,
    fetcher: Fetcher | None = None,
    publisher: Publisher | None = None,
) -> ReconciliationReport:
    """Run a complete sync.

    Args:
        settings: Options of the run
        client: HTTP client for ingestion
        fetcher: Downloader passed to the orchestrator
        publisher: Site build collaborator (a SiteBuilder from the settings if None)

    Returns:
        Counts of the run
    """
    with run_context(repo=settings.repo):
        compare = settings.load_compare()
        logger.info("Starting release sync")
        report = await _sync(settings, compare, client, fetcher, publisher)
    logger.info("Release sync finished", repo=settings.repo)
    return report


async def _sync(
    settings: SyncSettings,
    compare: Config | None,
    client: httpx.AsyncClient | None,
    fetcher: Fetcher | None,
    publisher: Publisher | None,
) -> ReconciliationReport:
    with Workspace(settings.repo) as workspace:
        logger.info("Working directory", path=str(workspace.path))
        if settings.from_config:
            config = load_source_config(settings.from_config)
        else:
            config = await ingest(settings, client)
        workspace.config_path.write_text(config.to_json(), encoding="utf-8")

        diff = compute_diff(config, compare, url_template=settings.url_template)
        workspace.record_path.write_text(json.dumps(diff.to_dict(), indent=2), encoding="utf-8")

        if publisher is None:
            publisher = SiteBuilder(
                settings.build_command,
                build_base=settings.build_base,
                www_root=settings.www_root,
            )
        orchestrator = TransferOrchestrator(
            workspace.path,
            target=Target(settings.download_target) if settings.download_target else None,
            fetcher=fetcher,
            publisher=publisher,
            options=TransferOptions(
                url_template=settings.url_template,
                fail_fast=settings.fast_fail,
                fast_sync=settings.fast_sync,
                concurrency=settings.concurrency,
                retries=settings.retries,
            ),
        )
        report = await orchestrator.run(diff, config, compare)

    if settings.save:
        try:
            config.save(settings.save)
        except OSError as e:
            msg = f"Failed to save config to {settings.save}: {e}"
            raise TransferError(msg) from e
        logger.info("Saved config", path=settings.save)
    return report


@sync_cli.command()
def sync(
    repo: Annotated[str, t.Argument(help=REPO_HELP)],
    download_target: Annotated[
        str | None,
        t.Option("-d", "--download-target", help="Directory or URL release files are mirrored to"),
    ] = None,
    url_template: Annotated[
        str | None,
        t.Option("-t", "--url-template", help="Template for user-facing download URLs"),
    ] = None,
    fast_fail: Annotated[
        bool | None,
        t.Option("--fast-fail/--no-fast-fail", help="Abort on the first failed download"),
    ] = None,
    fast_sync: Annotated[
        bool | None,
        t.Option("--fast-sync/--no-fast-sync", help="Move files into the target right away"),
    ] = None,
    concurrency: Annotated[
        int | None, t.Option("--concurrency", help="Maximum parallel downloads")
    ] = None,
    retries: Annotated[int | None, t.Option("--retries", help="Retries per download")] = None,
    build_base: Annotated[
        str | None, t.Option("-b", "--build-base", help="Base URL of the built site")
    ] = None,
    www_root: Annotated[
        str | None, t.Option("--www-root", help="Directory or URL the site is published to")
    ] = None,
    save: Annotated[
        str | None, t.Option("-o", "--save", help="Save the current config document here")
    ] = None,
    compare: Annotated[
        str | None, t.Option("-c", "--compare", help="Config document of the previous run")
    ] = None,
    from_config: Annotated[
        str | None, t.Option("--from-config", help="Use this config instead of the API")
    ] = None,
    build_command: Annotated[
        str | None,
        t.Option(
            "--build-command",
            envvar="RELEASE_SYNC_BUILD_COMMAND",
            help="Site build command ({config} and {out_dir} are substituted)",
        ),
    ] = None,
    token: Annotated[
        str | None, t.Option("--token", envvar="GITHUB_TOKEN", help=TOKEN_HELP)
    ] = None,
    reduce: Annotated[str | None, t.Option("--reduce", help=REDUCE_HELP)] = None,
    ignore_empty_assets: Annotated[
        bool | None,
        t.Option("--ignore-empty-assets/--keep-empty-assets", help=IGNORE_EMPTY_HELP),
    ] = None,
    settings_file: Annotated[
        str | None, t.Option("--settings", help="YAML file with default options")
    ] = None,
    verbose: Annotated[bool, t.Option("-v", "--verbose", help=VERBOSE_HELP)] = False,
    json_logs: Annotated[bool, t.Option("--json-logs", help=JSON_LOGS_HELP)] = False,
) -> None:
    """Mirror the releases of a repository and publish the release site."""
    configure_logging("DEBUG" if verbose else "INFO", json_logs=json_logs)
    try:
        settings = SyncSettings.create(
            settings_file,
            repo=repo,
            download_target=download_target,
            url_template=url_template,
            fast_fail=fast_fail,
            fast_sync=fast_sync,
            concurrency=concurrency,
            retries=retries,
            build_base=build_base,
            www_root=www_root,
            save=save,
            compare=compare,
            from_config=from_config,
            build_command=build_command,
            token=token,
            reduce=reduce,
            ignore_empty_assets=ignore_empty_assets,
        )
        report = asyncio.run(run_sync(settings))
    except ReleaseSyncError as e:
        t.echo(f"Error: {e}", err=True)
        raise t.Exit(e.exit_code) from e
    t.echo(report.summary())


@generate_cli.command()
def generate(
    repo: Annotated[str, t.Argument(help=REPO_HELP)],
    output: Annotated[
        str | None, t.Option("-o", "--output", help="Output file (stdout if omitted)")
    ] = None,
    token: Annotated[
        str | None, t.Option("--token", envvar="GITHUB_TOKEN", help=TOKEN_HELP)
    ] = None,
    reduce: Annotated[str | None, t.Option("--reduce", help=REDUCE_HELP)] = None,
    ignore_empty_assets: Annotated[
        bool, t.Option("--ignore-empty-assets", help=IGNORE_EMPTY_HELP)
    ] = False,
    verbose: Annotated[bool, t.Option("-v", "--verbose", help=VERBOSE_HELP)] = False,
    json_logs: Annotated[bool, t.Option("--json-logs", help=JSON_LOGS_HELP)] = False,
) -> None:
    """Write the config document of a repository to a file or stdout."""
    configure_logging("DEBUG" if verbose else "INFO", json_logs=json_logs)
    try:
        settings = SyncSettings.create(
            repo=repo,
            token=token,
            reduce=reduce,
            ignore_empty_assets=ignore_empty_assets,
        )
        config = asyncio.run(ingest(settings))
    except ReleaseSyncError as e:
        t.echo(f"Error: {e}", err=True)
        raise t.Exit(e.exit_code) from e
    if output:
        config.save(output)
        logger.info("Saved config", path=output)
    else:
        t.echo(config.to_json())


def _run(app: t.Typer, argv: Sequence[str] | None, prog_name: str) -> int:
    try:
        result = app(args=argv, prog_name=prog_name, standalone_mode=False)
    except click.ClickException as e:
        e.show()
        return 1
    except (click.exceptions.Abort, KeyboardInterrupt):
        t.echo("Interrupted.", err=True)
        return EXIT_INTERRUPTED
    except Exception:  # noqa: BLE001
        traceback.print_exc()
        return ReleaseSyncError.exit_code
    return result if isinstance(result, int) else 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point of `release-sync`."""
    return _run(sync_cli, argv, "release-sync")


def generate_main(argv: Sequence[str] | None = None) -> int:
    """Entry point of `release-sync-generate`."""
    return _run(generate_cli, argv, "release-sync-generate")


if __name__ == "__main__":
    raise SystemExit(main())
