"""Command line interface for synthesising deployment descriptors."""
import dataclasses
import json
import logging
import sys
from typing import List, Optional

import click
from pydantic import ValidationError

from platform_infra.exceptions import DescriptorError
from platform_infra.image.tag_resolver import ImageTagResolver
from platform_infra.settings import (
    LOG_LEVELS,
    TOPOLOGY_NAMES,
    PlatformConfig,
    get_settings,
    get_settings_with_env_file,
)
from platform_infra.state.state_manager import DEFAULT_STATE_FILE, StateManager
from platform_infra.topologies import build_descriptor

logger = logging.getLogger(__name__)


def _platform_config(ctx: click.Context, topology: Optional[str] = None,
                     require_pinned_tag: bool = False) -> PlatformConfig:
    config = ctx.obj["settings"].to_platform_config()
    changes = {}
    if topology:
        changes["topology"] = topology
    if require_pinned_tag:
        changes["require_pinned_tag"] = True
    return dataclasses.replace(config, **changes) if changes else config


def _write(text: str, out: str):
    if out == "-":
        click.echo(text)
        return
    with open(out, 'w') as f:
        f.write(text + "\n")
    logger.info(f"Wrote {out}")


@click.group()
@click.option('--env-file', default=None, help='Extra .env file loaded before settings are read')
@click.option('--state-file', default=DEFAULT_STATE_FILE, show_default=True, help='Descriptor state file')
@click.option('--log-level', type=click.Choice(LOG_LEVELS, case_sensitive=False), default=None,
              help='Override LOG_LEVEL')
@click.pass_context
def cli(ctx: click.Context, env_file: Optional[str], state_file: str, log_level: Optional[str]):
    """Platform infrastructure descriptor CLI"""
    settings = get_settings_with_env_file(env_file) if env_file else get_settings()
    logging.getLogger().setLevel((log_level or settings.log_level).upper())
    ctx.obj = {"settings": settings, "state_file": state_file}


@cli.command()
@click.option('--topology', type=click.Choice(TOPOLOGY_NAMES), default=None,
              help='Topology to synthesise (defaults to TOPOLOGY)')
@click.option('--out', default='-', show_default=True, help='Write the descriptor here instead of stdout')
@click.option('--reveal-secrets', is_flag=True, help='Render secret values in plaintext')
@click.option('--require-pinned-tag', is_flag=True, help='Fail instead of deploying a floating image tag')
@click.pass_context
def synth(ctx: click.Context, topology: Optional[str], out: str, reveal_secrets: bool,
          require_pinned_tag: bool):
    """Build the declaration graph and render the engine hand-off document"""
    config = _platform_config(ctx, topology, require_pinned_tag)
    resolver = ImageTagResolver(config)
    graph = build_descriptor(config, image_resolver=resolver)

    if reveal_secrets:
        logger.warning("Rendering secrets in plaintext")
    _write(graph.render_json(reveal_secrets=reveal_secrets), out)

    StateManager(ctx.obj["state_file"]).record_synthesis(graph, resolver.resolve().uri)


@cli.command('image-tag')
@click.option('--verify', is_flag=True, help='Check that the image exists in ECR')
@click.pass_context
def image_tag(ctx: click.Context, verify: bool):
    """Print the server image the next synth will deploy"""
    config = _platform_config(ctx)
    if verify:
        config = dataclasses.replace(config, verify_image=True)
    click.echo(ImageTagResolver(config).resolve().uri)


@cli.command()
@click.argument('outputs_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--topology', type=click.Choice(TOPOLOGY_NAMES), default=None,
              help='Topology the outputs belong to (defaults to the recorded one)')
@click.option('--out', default='-', show_default=True, help='Write the resolved descriptor here')
@click.pass_context
def outputs(ctx: click.Context, outputs_file: str, topology: Optional[str], out: str):
    """Apply engine outputs and render the resolved descriptor"""
    manager = StateManager(ctx.obj["state_file"])
    config = _platform_config(ctx, topology or manager.state.get("topology"))
    graph = build_descriptor(config)

    recorded = manager.state.get("descriptor_digest")
    if recorded and recorded != graph.digest():
        logger.warning("Descriptor differs from the last synth; outputs may not match")

    with open(outputs_file, 'r') as f:
        resolved = json.load(f)
    graph.apply_resolved_outputs(resolved)

    document = graph.to_document()
    _write(json.dumps(document, indent=2, sort_keys=True), out)
    manager.record_outputs(document["outputs"])


@cli.command('export-env')
@click.option('--output', 'env_file', default='.env.platform', show_default=True, help='Environment file to write')
@click.pass_context
def export_env(ctx: click.Context, env_file: str):
    """Export resolved stack outputs for downstream tooling"""
    written = StateManager(ctx.obj["state_file"]).export_env_file(env_file)
    if written is None:
        raise click.ClickException("No resolved outputs recorded")
    click.echo(f"Outputs exported to {written}")


@cli.command()
@click.pass_context
def status(ctx: click.Context):
    """Show the recorded descriptor state"""
    click.echo(json.dumps(StateManager(ctx.obj["state_file"]).status(), indent=2))


@cli.command()
@click.pass_context
def clear(ctx: click.Context):
    """Clear the recorded descriptor state"""
    StateManager(ctx.obj["state_file"]).clear_state()
    click.echo("Descriptor state cleared")


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point; returns a process exit code."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )
    try:
        cli.main(args=argv, prog_name="platform-infra", standalone_mode=False)
    except click.ClickException as e:
        e.show()
        return e.exit_code
    except click.Abort:
        logger.error("Aborted")
        return 1
    except (DescriptorError, ValidationError) as e:
        logger.error(f"Descriptor build failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
