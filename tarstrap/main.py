import click
import logging
from pbr.version import VersionInfo
from shakenfist_utilities import logs
import sys

from tarstrap import archiver
from tarstrap import constants
from tarstrap import exceptions


LOG = logs.setup_console(__name__)


def get_version():
    try:
        return VersionInfo('tarstrap').version_string()
    except Exception:
        return '0.0.0'


def _envvar(name):
    return '%s_%s' % (constants.ENV_PREFIX, name)


@click.group()
@click.option('--verbose', is_flag=True)
@click.option('--overwrite', is_flag=True, default=False,
              envvar=_envvar('OVERWRITE'),
              help='Replace existing files instead of failing')
@click.option('--mkdir/--no-mkdir', default=True, envvar=_envvar('MKDIR'),
              help='Create missing directories leading to the destination')
@click.option('--implicit-top-level-folder', is_flag=True, default=False,
              envvar=_envvar('IMPLICIT_TOP_LEVEL_FOLDER'),
              help='Nest loose files in a folder named after the archive')
@click.option('--continue-on-error', is_flag=True, default=False,
              envvar=_envvar('CONTINUE_ON_ERROR'),
              help='Log errors on single files and carry on')
@click.option('--level', type=click.IntRange(-1, 9),
              default=constants.DEFAULT_COMPRESSION_LEVEL,
              envvar=_envvar('LEVEL'),
              help='gzip compression level, -1 for the zlib default')
@click.pass_context
def cli(ctx, verbose=None, overwrite=None, mkdir=None,
        implicit_top_level_folder=None, continue_on_error=None, level=None):
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
        LOG.setLevel(logging.DEBUG)

    if not ctx.obj:
        ctx.obj = {}
    ctx.obj['OPTIONS'] = {
        'overwrite_existing': overwrite,
        'mkdir_all': mkdir,
        'implicit_top_level_folder': implicit_top_level_folder,
        'continue_on_error': continue_on_error,
    }
    ctx.obj['LEVEL'] = level


def _reader(ctx, source):
    with open(source, 'rb') as f:
        return archiver.by_header(f, **ctx.obj['OPTIONS'])


def _run(fn, *args):
    try:
        return fn(*args)
    except (exceptions.ArchiveError, OSError) as e:
        click.echo('Error: %s' % e, err=True)
        sys.exit(1)


@click.command('archive')
@click.argument('sources', nargs=-1, required=True)
@click.argument('destination')
@click.pass_context
def archive_cmd(ctx, sources, destination):
    """Pack SOURCES into the archive DESTINATION.

    The format follows the extension of DESTINATION: .tar, or .tar.gz and
    .tgz for gzip compressed archives.
    """
    def _archive():
        tar = archiver.by_extension(
            destination, compression_level=ctx.obj['LEVEL'],
            **ctx.obj['OPTIONS'])
        tar.archive(list(sources), destination)

    _run(_archive)


cli.add_command(archive_cmd)


@click.command('unarchive')
@click.argument('source')
@click.argument('destination')
@click.pass_context
def unarchive_cmd(ctx, source, destination):
    """Unpack the archive SOURCE into the folder DESTINATION."""
    _run(lambda: _reader(ctx, source).unarchive(source, destination))


cli.add_command(unarchive_cmd)


@click.command('extract')
@click.argument('source')
@click.argument('target')
@click.argument('destination')
@click.pass_context
def extract_cmd(ctx, source, target, destination):
    """Extract TARGET, a file or directory, from SOURCE into DESTINATION."""
    _run(lambda: _reader(ctx, source).extract(source, target, destination))


cli.add_command(extract_cmd)


@click.command('list')
@click.argument('source')
@click.pass_context
def list_cmd(ctx, source):
    """List the entries of the archive SOURCE."""
    def _show(ent):
        line = '%-12s %o %10d %s' % (ent.kind, ent.mode, ent.size, ent.name)
        if ent.linkname:
            line += ' -> %s' % ent.linkname
        click.echo(line)

    _run(lambda: _reader(ctx, source).walk(source, _show))


cli.add_command(list_cmd)


@click.command('version')
def version_cmd():
    """Show the tarstrap version."""
    click.echo(get_version())


cli.add_command(version_cmd)
