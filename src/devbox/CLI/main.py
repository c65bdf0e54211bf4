"""
Command Line Interface for devbox.
"""
import os
import time

import click

from ..BUILDERS.dockerfile_linter import DockerfileLinter
from ..BUILDERS.dockerfile_renderer import DockerfileRenderer
from ..BUILDERS.image_builder import ImageBuilder
from ..BUILDERS.stages import standard_plan
from ..errors import ProvisionError
from ..MANAGERS.container_manager import ContainerManager
from ..MANAGERS.image_verifier import ImageVerifier
from ..MODELS.build_args import BuildArgs
from ..MODELS.dockerfile_ast import DockerfileAST
from ..MODELS.provision_config import ProvisionConfig
from ..PARSERS.config_parser import ConfigParser
from ..PARSERS.dockerfile_parser import DockerfileParser
from ..RUNNERS.host_executor import HostExecutor
from ..RUNNERS.pipeline import Pipeline

DEFAULT_CONFIG = 'devbox.yml'
DEFAULT_TAG = 'devbox:latest'


def build_arg_options(f):
    """UID/GID options shared by the commands that need them."""
    f = click.option('--env-file', type=click.Path(dir_okay=False),
                     help='Read UID and GID from a dotenv file.')(f)
    f = click.option('--match-host', is_flag=True,
                     help="Use the invoking user's own UID and GID.")(f)
    f = click.option('--gid', envvar='DEVBOX_GID', help='Group id of the development user.')(f)
    f = click.option('--uid', envvar='DEVBOX_UID', help='User id of the development user.')(f)
    return f


@click.group()
@click.option('--config', '-c', default=DEFAULT_CONFIG, help='Configuration file path')
@click.pass_context
def cli(ctx, config):
    """
    devbox - reproducible development containers.

    Builds an image with system packages, a non-root user matching your
    UID/GID and per-user tooling, whose default process idles forever.
    """
    ctx.ensure_object(dict)
    ctx.obj['config_file'] = config
    try:
        if os.path.exists(config):
            ctx.obj['config'] = ConfigParser().parse(config)
        else:
            ctx.obj['config'] = ProvisionConfig()
    except ProvisionError as e:
        raise click.ClickException(str(e))


@cli.command()
@click.pass_context
def plan(ctx):
    """Show the provisioning steps and who runs them."""
    config = ctx.obj['config']
    provision_plan = standard_plan(config)
    click.echo(f"{'#':3} {'STEP':24} {'RUNS AS':10} INSTRUCTION")
    click.echo("-" * 72)
    for number, step in enumerate(provision_plan.steps, start=1):
        first, *rest = step.describe().splitlines()
        click.echo(f"{number:<3} {step.name:24} {step.run_as or 'root':10} {first}")
        for line in rest:
            click.echo(f"{'':39} {line}")
    click.echo(f"\nDevelopment user: {provision_plan.user} ({config.working_dir})")


@cli.command()
@click.option('--out', '-o', type=click.Path(dir_okay=False), help='Write to a file instead of stdout')
@click.pass_context
def render(ctx, out):
    """Render the Dockerfile."""
    provision_plan = standard_plan(ctx.obj['config'])
    renderer = DockerfileRenderer()
    if out:
        renderer.write(provision_plan, out)
        click.echo(f"Dockerfile written to {out}")
    else:
        click.echo(renderer.render(provision_plan), nl=False)


@cli.command()
@click.argument('dockerfile', type=click.Path(exists=True, dir_okay=False), default='Dockerfile')
def lint(dockerfile):
    """Check a Dockerfile for ordering mistakes."""
    ast = DockerfileAST(instructions=DockerfileParser().parse(dockerfile))
    report = DockerfileLinter().lint(ast.instructions)
    for finding in report.findings:
        click.echo(f"{dockerfile}: {finding}")
    if not report.ok:
        raise click.ClickException(f"{len(report.errors)} error(s) in {dockerfile}")
    final_user = ast.last("USER")
    click.echo(f"{dockerfile}: ok (runs as {final_user.text if final_user else 'root'})")


@cli.command()
@build_arg_options
@click.option('--tag', '-t', default=DEFAULT_TAG, help='Image tag')
@click.option('--no-cache', is_flag=True, help='Build without the layer cache')
@click.option('--check-base', is_flag=True, help='Confirm the base image exists in its registry first')
@click.pass_context
def build(ctx, uid, gid, match_host, env_file, tag, no_cache, check_base):
    """Build the development image."""
    try:
        build_args = BuildArgs.resolve(uid, gid, env_file=env_file, match_host=match_host)
        provision_plan = standard_plan(ctx.obj['config'])
        result = ImageBuilder(base_dir=".").build(
            provision_plan, build_args, tag, no_cache=no_cache, check_base=check_base)
    except ProvisionError as e:
        raise click.ClickException(str(e))
    click.echo(f"Image {result.tag} built (log: {result.log_file}).")


@cli.command()
@build_arg_options
@click.option('--dry-run', is_flag=True, help='Only list what would be executed')
@click.option('--idle', is_flag=True, help='Start the default process afterwards and wait')
@click.pass_context
def provision(ctx, uid, gid, match_host, env_file, dry_run, idle):
    """Apply the provisioning steps to this machine."""
    try:
        build_args = BuildArgs.resolve(uid, gid, env_file=env_file, match_host=match_host)
        config = ctx.obj['config']
        executor = HostExecutor(config, build_args, base_dir=".")
        report = Pipeline(standard_plan(config).steps, executor).run(dry_run=dry_run)
    except ProvisionError as e:
        raise click.ClickException(str(e))

    for result in report.results:
        click.echo(f"{result.step.name:24} {result.status.value:10} {result.detail}")
    if dry_run or not idle:
        return

    runner = executor.start_default_process()
    click.echo(f"Default process running ({runner.process_status()})... Press Ctrl+C to stop.")
    try:
        while runner.is_running():
            time.sleep(1)
        click.echo(f"Default process exited with status {runner.get_exit_code()}.")
    except KeyboardInterrupt:
        click.echo("\nStopping default process...")
    finally:
        runner.stop()


@cli.command()
@build_arg_options
@click.option('--tag', '-t', default=DEFAULT_TAG, help='Image tag')
@click.option('--settle', default=5.0, show_default=True, help='Seconds the container must stay up')
@click.pass_context
def verify(ctx, uid, gid, match_host, env_file, tag, settle):
    """Check a built image: ids, working directory, tool ownership, idle process."""
    try:
        build_args = BuildArgs.resolve(uid, gid, env_file=env_file, match_host=match_host)
        verifier = ImageVerifier(ContainerManager(), ctx.obj['config'])
        report = verifier.verify(tag, build_args, settle=settle)
    except ProvisionError as e:
        raise click.ClickException(str(e))

    for check in report.checks:
        click.echo(f"{'PASS' if check.passed else 'FAIL':5} {check.name:24} {check.detail}")
    if not report.ok:
        raise click.ClickException(f"{len(report.failed())} check(s) failed for {tag}")


def main():
    """
    Main entry point for the CLI.
    """
    cli(obj={})

if __name__ == '__main__':
    main()
