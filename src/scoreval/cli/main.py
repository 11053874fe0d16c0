"""
Main CLI entry point for scoreval.

Provides subcommands:
  - scoreval validate: Run the full validation and instability protocol
  - scoreval check-config: Validate a configuration file without running
"""

import click

from scoreval import __version__


@click.group()
@click.version_option(version=__version__, prog_name="scoreval")
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase verbosity (-v for DEBUG)",
)
@click.pass_context
def cli(ctx, verbose):
    """
    scoreval: external validation of clinical risk scores

    Discrimination, calibration, net benefit and bootstrap instability of
    parsimonious logistic risk models on a fixed reference cohort.
    """
    from scoreval.utils.random import apply_seed_global

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    # Apply SEED_GLOBAL if set (for single-threaded reproducibility debugging)
    seed_applied = apply_seed_global()
    if seed_applied is not None:
        ctx.obj["seed_global"] = seed_applied


@cli.command("validate")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    help="Path to YAML configuration file",
)
@click.option(
    "--infile",
    type=click.Path(exists=True),
    default=None,
    help="Input CSV with subject id, outcome and predictor columns",
)
@click.option(
    "--outdir",
    type=click.Path(),
    default=None,
    help="Output directory for results",
)
@click.option(
    "--n-boot",
    type=int,
    default=None,
    help="Number of bootstrap iterations (default: 200)",
)
@click.option(
    "--n-jobs",
    type=int,
    default=None,
    help="Parallel workers for bootstrap iterations (-1 = all cores)",
)
@click.option(
    "--seed",
    type=int,
    default=None,
    help="Bootstrap base seed",
)
@click.option(
    "--log-file",
    type=click.Path(),
    default=None,
    help="Also write the log to this file",
)
@click.option(
    "--override",
    multiple=True,
    help="Override config values (format: key=value or nested.key=value)",
)
@click.pass_context
def validate(ctx, config, log_file, **kwargs):
    """Validate a risk score and quantify bootstrap instability."""
    from scoreval.cli.validate import run_validate
    from scoreval.config.validation import ConfigurationError
    from scoreval.data.imputation import DataInsufficiency

    cli_args = {k: v for k, v in kwargs.items() if k != "override"}
    overrides = list(kwargs.get("override", []))

    try:
        run_validate(
            config_file=config,
            cli_args=cli_args,
            overrides=overrides,
            log_file=log_file,
            verbose=ctx.obj.get("verbose", 0),
        )
    except (ConfigurationError, DataInsufficiency, FileNotFoundError) as e:
        click.echo(f"Error: {e}", err=True)
        raise click.Abort() from e


@cli.command("check-config")
@click.argument("config_file", type=click.Path(exists=True))
@click.option(
    "--override",
    multiple=True,
    help="Override config values (format: key=value or nested.key=value)",
)
@click.option(
    "--strict",
    is_flag=True,
    help="Treat warnings as errors",
)
@click.pass_context
def check_config(ctx, config_file, override, strict):
    """Validate configuration file and report issues."""
    from pathlib import Path

    from scoreval.cli.config_tools import run_check_config

    ok = run_check_config(
        config_file=Path(config_file),
        overrides=list(override),
        strict=strict,
        verbose=ctx.obj.get("verbose", 0),
    )
    ctx.exit(0 if ok else 1)


def main():
    """Entry point for console script."""
    cli(obj={})
