"""CLI entry-point for the scan-to-environment pipeline."""

from __future__ import annotations

import json
import logging

import click

from packages.core.config import ModelerConfig, load_config
from packages.perception.cloud import PointCloudValidationError
from packages.perception.connections import find_connection_opportunities
from packages.perception.constraints import extract_constraints
from packages.perception.process import load_model, process_scan_to_json

DEFAULT_SEED = 42


@click.group()
def main():
    """Point-cloud to environment-model pipeline."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(levelname)s | %(name)s | %(message)s",
    )


@main.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False))
@click.option("-o", "--output", "output_file", default=None, help="Output JSON path.")
@click.option(
    "--config", "config_file", default=None,
    type=click.Path(exists=True, dir_okay=False), help="YAML processing config.",
)
@click.option(
    "--seed", default=None, type=int,
    help=f"RANSAC random seed [default: config seed, else {DEFAULT_SEED}].",
)
def model(input_file: str, output_file: str | None, config_file: str | None, seed: int | None):
    """Build an environment model from a point-array JSON file."""
    config = load_config(config_file) if config_file else ModelerConfig()
    if seed is None:
        seed = config.processing.seed if config.processing.seed is not None else DEFAULT_SEED
    try:
        json_str = process_scan_to_json(
            input_file, output_path=output_file, config=config, seed=seed,
        )
    except PointCloudValidationError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(json_str)


@main.command()
@click.argument("model_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--max-distance", default=None, type=float, help="Max link length (mm); defaults to the config value.")
@click.option("--require-clear-path", is_flag=True, help="Mark obstructed links as not clear.")
@click.option(
    "--config", "config_file", default=None,
    type=click.Path(exists=True, dir_okay=False), help="YAML config with connection defaults.",
)
def connections(
    model_file: str,
    max_distance: float | None,
    require_clear_path: bool,
    config_file: str | None,
):
    """List the best connection opportunities in a saved model."""
    config = load_config(config_file) if config_file else ModelerConfig()
    env = load_model(model_file)
    found = find_connection_opportunities(
        env,
        max_distance=max_distance or config.max_connection_distance,
        require_clear_path=require_clear_path or config.require_clear_path,
    )
    click.echo(json.dumps([o.model_dump(mode="json") for o in found], indent=2))


@main.command()
@click.argument("model_file", type=click.Path(exists=True, dir_okay=False))
def constraints(model_file: str):
    """Project a saved model into engineering constraints."""
    env = load_model(model_file)
    click.echo(json.dumps([c.model_dump(mode="json") for c in extract_constraints(env)], indent=2))


if __name__ == "__main__":
    main()
