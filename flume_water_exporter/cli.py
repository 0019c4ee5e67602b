"""
CLI entry point for the Flume water exporter.

Loads the configuration, sets up logging and runs the exporter.
"""

import asyncio
import logging

import typer
import yaml

from flume_water_exporter.app import EXIT_CODE_FATAL, EXIT_CODE_OK, run
from flume_water_exporter.config import load_configuration

app = typer.Typer(add_completion=False)

_LOGGER = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@app.command()
def main(
    config: str = typer.Argument(..., help="Path to the YAML configuration file"),
    log_level: str = typer.Option(
        "INFO",
        "--log-level",
        "-l",
        envvar="FLUME_WATER_LOG_LEVEL",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    ),
):
    """Export Flume water usage, budgets and device status to Prometheus."""
    logging.basicConfig(level=log_level.upper(), format=LOG_FORMAT)

    try:
        configuration = load_configuration(config)
    except (OSError, ValueError, yaml.YAMLError) as e:
        _LOGGER.error("Unable to load %s: %s", config, e)
        raise typer.Exit(EXIT_CODE_FATAL)

    try:
        exit_code = asyncio.run(run(configuration))
    except KeyboardInterrupt:
        exit_code = EXIT_CODE_OK
    raise typer.Exit(exit_code)
