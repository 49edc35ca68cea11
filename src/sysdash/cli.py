"""CLI commands for sysdash."""

from pathlib import Path

import click

from sysdash.config import Config


def _load_config(ctx: click.Context) -> Config:
    try:
        return Config.load(ctx.obj)
    except ValueError as e:
        raise click.ClickException(str(e)) from e


@click.group(invoke_without_command=True)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file to use instead of the default location.",
)
@click.version_option(package_name="sysdash")
@click.pass_context
def main(ctx: click.Context, config_path: Path | None) -> None:
    """Live system telemetry dashboard."""
    ctx.obj = config_path
    if ctx.invoked_subcommand is None:
        ctx.invoke(run)


@main.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Launch interactive dashboard."""
    from sysdash import logging as sysdash_logging
    from sysdash.app import run as run_app

    config = _load_config(ctx)
    sysdash_logging.configure(config)
    run_app(config)


@main.command()
@click.option("--top", default=10, show_default=True, help="Number of processes to list.")
@click.option(
    "--interval",
    default=1.0,
    show_default=True,
    help="Seconds between the baseline and the measured sample.",
)
@click.pass_context
def snapshot(ctx: click.Context, top: int, interval: float) -> None:
    """Print one metrics sample and the largest processes."""
    import time

    from sysdash.aggregator import MetricsAggregator
    from sysdash.hardware import PsutilCounters, PsutilHardwareSource
    from sysdash.processes import ProcessTable, enumerate_processes

    config = _load_config(ctx)
    source = PsutilHardwareSource()
    aggregator = MetricsAggregator(
        PsutilCounters(), network_min_interval=config.sampling.network_min_interval
    )
    # CPU load and network rates need a baseline read
    source.read()
    time.sleep(interval)
    metrics = aggregator.sample(source.read())

    table = ProcessTable()
    table.reconcile(enumerate_processes())

    click.echo(
        f"CPU      {metrics.cpu_usage_percent:5.1f}%  {metrics.cpu_temperature_celsius:.0f}°C"
    )
    click.echo(
        f"GPU      {metrics.gpu_usage_percent:5.1f}%  {metrics.gpu_temperature_celsius:.0f}°C"
    )
    click.echo(
        f"Memory   {metrics.memory_used_gib:.1f}/{metrics.memory_total_gib:.1f} GiB "
        f"({metrics.memory_usage_percent:.0f}%)"
    )
    click.echo(
        f"Network  up {metrics.network_upload_mbps:.2f} MB/s, "
        f"down {metrics.network_download_mbps:.2f} MB/s"
    )
    click.echo(f"\nProcesses: {len(table)}")
    largest = sorted(table, key=lambda entry: entry.memory_mib, reverse=True)[:top]
    for entry in largest:
        click.echo(f"  {entry.pid:>7}  {entry.memory_mib:9.1f} MiB  {entry.name}")


@main.group()
def config() -> None:
    """Manage the config file."""
    pass


@config.command("path")
@click.pass_context
def config_path_cmd(ctx: click.Context) -> None:
    """Print the config file location."""
    click.echo(ctx.obj or Config().config_path)


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Print the effective configuration as TOML."""
    click.echo(_load_config(ctx).to_toml(), nl=False)


@config.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing config file.")
@click.pass_context
def config_init(ctx: click.Context, force: bool) -> None:
    """Write a config file with the default values."""
    config = Config()
    path = ctx.obj or config.config_path
    if path.exists() and not force:
        raise click.ClickException(f"Config already exists at {path} (use --force to overwrite)")
    config.save(path)
    click.echo(f"Created config at {path}")
