from __future__ import annotations
"""Command-line entry points."""
import functools
import logging
import os
import threading

import click
from tqdm import tqdm

from .aliases import AliasStorage
from .checksums import SUPPORTED_ALGORITHMS
from .controller import S3CliController
from .errors import S3CliError, TransportError
from .formatter import format_json_line, format_listing_line, human_size, render
from .patterns import parse_size
from .progress import ListingSummary, TransferProgress
from .settings import MIN_PART_SIZE, ClientSettings, SettingsStorage
from .ui_utils import load_package_info, parse_remote_path

LOGGER = logging.getLogger(__name__)

PACKAGE_INFO = load_package_info()
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
QUIET_LOGGERS = ("botocore", "boto3", "urllib3", "s3transfer")
SETTINGS_STORAGE_KEY = "pys3c.settings_storage"


def configure_logging(debug: bool) -> None:
    logging.basicConfig(level=logging.DEBUG if debug else logging.WARNING, format=LOG_FORMAT)
    if not debug:
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def reports_errors(func):
    """Turn domain errors into a click error message and exit code 1."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except S3CliError as exc:
            LOGGER.debug("Command failed", exc_info=True)
            raise click.ClickException(str(exc)) from exc

    return wrapper


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.version_option(
    PACKAGE_INFO.version,
    "-v",
    "--version",
    prog_name=PACKAGE_INFO.name,
    help="Show the version and exit.",
)
@click.option(
    "-C",
    "--config-dir",
    type=click.Path(file_okay=False),
    envvar="PYS3C_CONFIG_DIR",
    help="Directory holding config.json and settings.json (default: ~/.pys3c).",
)
@click.option("--debug", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, config_dir: str | None, debug: bool) -> None:
    """Command-line client for S3-compatible object stores."""

    configure_logging(debug)
    storage = SettingsStorage(config_dir)
    ctx.meta[SETTINGS_STORAGE_KEY] = storage
    if ctx.obj is None:
        ctx.obj = S3CliController(aliases=AliasStorage(config_dir), settings=storage.load())


@cli.group()
def alias() -> None:
    """Manage endpoint aliases."""


@alias.command(name="set")
@click.argument("name")
@click.argument("url")
@click.argument("access_key")
@click.argument("secret_key")
@click.option("--keychain", is_flag=True, help="Keep the secret key in the OS keychain.")
@click.option("--verify/--no-verify", default=True, show_default=True, help="List buckets before saving.")
@click.pass_obj
@reports_errors
def alias_set(
    controller: S3CliController,
    name: str,
    url: str,
    access_key: str,
    secret_key: str,
    keychain: bool,
    verify: bool,
) -> None:
    """Add or replace alias NAME."""

    controller.set_alias(
        name,
        url=url,
        access_key=access_key,
        secret_key=secret_key,
        use_keychain=keychain,
        verify=verify,
    )
    click.echo(f"Added `{name}` successfully.")


@alias.command(name="list")
@click.argument("name", required=False)
@click.pass_obj
@reports_errors
def alias_list(controller: S3CliController, name: str | None) -> None:
    """Show all aliases, or only NAME."""

    for alias_name, config in controller.list_aliases(name):
        click.echo(alias_name)
        click.echo(f"  URL       : {config.url}")
        click.echo(f"  AccessKey : {config.access_key}")
        click.echo(f"  SecretKey : {'*' * len(config.secret_key)}")
        click.echo(f"  API       : {config.api}")
        click.echo(f"  Path      : {config.path}")
        if config.src:
            click.echo(f"  Src       : {config.src}")


@alias.command(name="remove")
@click.argument("name")
@click.pass_obj
@reports_errors
def alias_remove(controller: S3CliController, name: str) -> None:
    controller.remove_alias(name)
    click.echo(f"Removed `{name}` successfully.")


@alias.command(name="export")
@click.argument("name")
@click.pass_obj
@reports_errors
def alias_export(controller: S3CliController, name: str) -> None:
    """Print alias NAME as JSON."""

    click.echo(controller.export_alias(name))


@alias.command(name="import")
@click.argument("name")
@click.argument("source", type=click.File("r"), default="-")
@click.pass_obj
@reports_errors
def alias_import(controller: S3CliController, name: str, source) -> None:
    """Import alias NAME from JSON (stdin by default)."""

    controller.import_alias(name, source.read())
    click.echo(f"Imported `{name}` successfully.")


@cli.group(name="settings")
def settings_group() -> None:
    """Show or change client defaults."""


def _settings_storage(ctx: click.Context) -> SettingsStorage:
    return ctx.meta[SETTINGS_STORAGE_KEY]


def _echo_settings(settings: ClientSettings) -> None:
    click.echo(f"part_size       : {human_size(settings.part_size)}")
    click.echo(f"parallel        : {settings.parallel}")
    click.echo(f"list_queue_size : {settings.list_queue_size}")
    click.echo(f"region          : {settings.region}")


@settings_group.command(name="show")
@click.pass_context
def settings_show(ctx: click.Context) -> None:
    """Print the saved defaults."""

    _echo_settings(_settings_storage(ctx).load())


@settings_group.command(name="set")
@click.option("--part-size", help="Default part size, e.g. 16MiB (at least 5MiB).")
@click.option("--parallel", type=click.IntRange(min=1), help="Default number of parts uploaded at once.")
@click.option("--list-queue-size", type=click.IntRange(min=1), help="Records buffered ahead of the output.")
@click.option("--region", help="Region used for new buckets.")
@click.pass_context
@reports_errors
def settings_set(
    ctx: click.Context,
    part_size: str | None,
    parallel: int | None,
    list_queue_size: int | None,
    region: str | None,
) -> None:
    """Change and save one or more defaults."""

    storage = _settings_storage(ctx)
    settings = storage.load()
    if part_size is not None:
        size = parse_size(part_size)
        if size < MIN_PART_SIZE:
            raise click.BadParameter(f"must be at least {human_size(MIN_PART_SIZE)}", param_hint="--part-size")
        settings.part_size = size
    if parallel is not None:
        settings.parallel = parallel
    if list_queue_size is not None:
        settings.list_queue_size = list_queue_size
    if region:
        settings.region = region
    storage.save(settings)
    _echo_settings(settings)


@cli.command(name="ls")
@click.argument("path")
@click.option("-r", "--recursive", is_flag=True, help="List objects under every prefix.")
@click.option("--versions", is_flag=True, help="List all object versions.")
@click.option("--summarize", is_flag=True, help="Print totals after the listing.")
@click.option("--json", "as_json", is_flag=True, help="Print one JSON document per line.")
@click.pass_obj
@reports_errors
def ls(
    controller: S3CliController,
    path: str,
    recursive: bool,
    versions: bool,
    summarize: bool,
    as_json: bool,
) -> None:
    """List buckets, prefixes and objects under PATH (alias[/bucket[/prefix]])."""

    summary = ListingSummary()
    error = None
    with controller.list(path, recursive=recursive, versions=versions) as stream:
        for record in stream:
            if record.is_error:
                error = record.error
                continue
            # Version listings repeat keys on purpose.
            if not summary.observe(record) and not versions:
                continue
            click.echo(format_json_line(record) if as_json else format_listing_line(record))
    if summarize:
        for line in summary.summary_lines():
            click.echo(line)
    LOGGER.debug("Listing finished in %.2fs", summary.elapsed)
    if error:
        raise TransportError(error)


@cli.command()
@click.argument("path")
@click.option("--name", help="Wildcard matched against the object's base name.")
@click.option("--path", "path_pattern", help="Wildcard matched against the path below PATH.")
@click.option("--regex", help="Regular expression searched in the path below PATH.")
@click.option("--ignore", help="Wildcard of paths to exclude.")
@click.option("--older-than", help="Only objects at least this old, e.g. 7d10h.")
@click.option("--newer-than", help="Only objects younger than this, e.g. 30m.")
@click.option("--larger", help="Only objects larger than this size, e.g. 10MB.")
@click.option("--smaller", help="Only objects smaller than this size.")
@click.option("--metadata", multiple=True, help="KEY=REGEX matched against user metadata.")
@click.option("--tags", multiple=True, help="KEY=REGEX matched against object tags.")
@click.option("--print", "print_format", help="Output template, e.g. '{base} {size}'.")
@click.option("--json", "as_json", is_flag=True, help="Print one JSON document per line.")
@click.pass_obj
@reports_errors
def find(
    controller: S3CliController,
    path: str,
    name: str | None,
    path_pattern: str | None,
    regex: str | None,
    ignore: str | None,
    older_than: str | None,
    newer_than: str | None,
    larger: str | None,
    smaller: str | None,
    metadata: tuple[str, ...],
    tags: tuple[str, ...],
    print_format: str | None,
    as_json: bool,
) -> None:
    """Find objects under PATH matching every given condition."""

    criteria = controller.compile_criteria(
        path,
        ignore=ignore,
        name=name,
        path=path_pattern,
        regex=regex,
        older_than=older_than,
        newer_than=newer_than,
        larger=larger,
        smaller=smaller,
        metadata=metadata,
        tags=tags,
    )
    remote = parse_remote_path(path)
    root = f"{remote.alias}/{remote.bucket}/" if remote.bucket else f"{remote.alias}/"
    error = None
    with controller.find(path, criteria) as records:
        for record in records:
            if record.is_error:
                error = record.error
                continue
            if print_format:
                click.echo(render(print_format, record))
            elif as_json:
                click.echo(format_json_line(record))
            else:
                click.echo(f"{root}{record.key}")
    if error:
        raise TransportError(error)


@cli.command()
@click.argument("source", type=click.Path(exists=True, dir_okay=False))
@click.argument("target")
@click.option(
    "--checksum",
    type=click.Choice(SUPPORTED_ALGORITHMS, case_sensitive=False),
    help="Checksum sent with every part.",
)
@click.option("-P", "--parallel", type=click.IntRange(min=1), help="Parts uploaded concurrently.")
@click.option("-s", "--part-size", help="Size of each part, e.g. 16MiB.")
@click.option("--disable-multipart", is_flag=True, help="Send the file in a single request.")
@click.option("-q", "--quiet", is_flag=True, help="Hide the progress bar.")
@click.pass_obj
@reports_errors
def put(
    controller: S3CliController,
    source: str,
    target: str,
    checksum: str | None,
    parallel: int | None,
    part_size: str | None,
    disable_multipart: bool,
    quiet: bool,
) -> None:
    """Upload SOURCE to TARGET (alias/bucket[/key])."""

    chunk_size = parse_size(part_size) if part_size else None
    total = os.path.getsize(source)
    cancel = threading.Event()
    with tqdm(
        total=total,
        unit="B",
        unit_scale=True,
        unit_divisor=1024,
        desc=os.path.basename(source),
        disable=quiet,
    ) as bar:
        try:
            destination, size = controller.put(
                source,
                target,
                part_size=chunk_size,
                parallel=parallel,
                checksum=checksum,
                disable_multipart=disable_multipart,
                progress=TransferProgress(total, bar),
                cancel_event=cancel,
            )
        except KeyboardInterrupt:
            cancel.set()
            raise
    if not quiet:
        click.echo(f"Uploaded `{source}` to `{destination}` ({human_size(size)}).")


@cli.command()
@click.argument("path")
@click.option("--region", help="Region to create the bucket in.")
@click.option("-p", "--ignore-existing", is_flag=True, help="Succeed if the bucket already exists.")
@click.pass_obj
@reports_errors
def mb(controller: S3CliController, path: str, region: str | None, ignore_existing: bool) -> None:
    """Make bucket PATH (alias/bucket)."""

    if controller.make_bucket(path, region=region, ignore_existing=ignore_existing):
        click.echo(f"Bucket created successfully `{path}`.")
    else:
        click.echo(f"Bucket `{path}` already exists.")


@cli.command()
@click.argument("path")
@click.pass_obj
@reports_errors
def rb(controller: S3CliController, path: str) -> None:
    """Remove empty bucket PATH (alias/bucket)."""

    controller.remove_bucket(path)
    click.echo(f"Removed `{path}` successfully.")


@cli.command()
@click.argument("path")
@click.option("-r", "--recursive", is_flag=True, help="Remove every object under PATH.")
@click.option("--force", is_flag=True, help="Confirm a recursive removal.")
@click.pass_obj
@reports_errors
def rm(controller: S3CliController, path: str, recursive: bool, force: bool) -> None:
    """Remove an object, or all objects under a prefix."""

    remote = parse_remote_path(path, require_bucket=True)
    for key in controller.remove(path, recursive=recursive, force=force):
        click.echo(f"Removed `{remote.alias}/{remote.bucket}/{key}`.")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
