# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.


"""
Command Line Interface for dfbuild.
"""
import logging
import sys

import click

from ..BUILDERS.context_archiver import ContextArchiver
from ..BUILDERS.image_builder import BuildOrchestrator
from ..exceptions import DfbuildError
from ..PARSERS.dockerfile_parser import DockerfileAnalyzer
from ..settings import get_settings


def _fail(error: DfbuildError):
    click.echo(f"Error: {error}", err=True)
    sys.exit(1)


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, verbose):
    """
    dfbuild - build container images from a Dockerfile with BuildKit.
    """
    ctx.ensure_object(dict)
    level = logging.DEBUG if verbose else getattr(logging, get_settings().log_level)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@cli.command()
@click.argument('dockerfile', type=click.File('r'))
def port(dockerfile):
    """Print the port exposed by DOCKERFILE, if any."""
    analyzer = DockerfileAnalyzer()
    try:
        found = analyzer.extract_exposed_port(analyzer.parse(dockerfile.read()))
    except DfbuildError as e:
        _fail(e)
    if found:
        click.echo(found)


@cli.command()
@click.argument('dockerfile', type=click.File('r'))
@click.option('--out', '-o', type=click.File('wb'), required=True, help='Output .tar.gz path')
def context(dockerfile, out):
    """Write the build context for DOCKERFILE."""
    try:
        data = ContextArchiver().build_context(dockerfile.read())
    except DfbuildError as e:
        _fail(e)
    out.write(data)
    click.echo(f"Wrote {len(data)} bytes.")


@cli.command()
@click.argument('dockerfile', type=click.File('r'))
@click.option('--tag', '-t', required=True, help='Image tag, also used as the build session')
@click.option('--region', '-r', default=None, help='AWS region for private base images')
def build(dockerfile, tag, region):
    """Build DOCKERFILE on the local Docker daemon."""
    orchestrator = BuildOrchestrator()
    try:
        with orchestrator.connect() as handle:
            for event in orchestrator.build(handle, tag, dockerfile.read(), region=region):
                click.echo(f"{event.id or 'aux'}: {event.payload}")
    except DfbuildError as e:
        _fail(e)
    click.echo(f"Built {tag}.")


def main():
    """
    Main entry point for the CLI.
    """
    cli(obj={})


if __name__ == '__main__':
    main()
