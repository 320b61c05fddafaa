"""Archive level operations: pack, unpack, walk and extract.

A Tar is an ordinary configuration value. Each operation builds a small
pipeline, an entry source feeding an entry output (optionally through a
filter), and pumps entries through it while applying the continue-on-error
policy. Compression is a wrapping value held by the Tar and passed on to
every archive handle it opens.
"""

import logging
import os

from tarstrap import compression
from tarstrap import constants
from tarstrap import exceptions
from tarstrap import filesystem
from tarstrap import paths
from tarstrap import tarformat
from tarstrap.filters.subtree import SubtreeFilter
from tarstrap.inputs.directory import DirectorySource
from tarstrap.inputs.tarfile import ArchiveSource, list_names
from tarstrap.outputs.directory import DirWriter
from tarstrap.outputs.tarfile import TarWriter
from tarstrap.outputs.visitor import VisitorOutput


LOG = logging.getLogger(__name__)
LOG.setLevel(logging.INFO)

EXTENSIONS = {
    constants.COMPRESSION_NONE: constants.TAR_EXTENSIONS,
    constants.COMPRESSION_GZIP: constants.TARGZ_EXTENSIONS,
}

# Errors which may be skipped for a single entry while packing or unpacking
ENTRY_ERRORS = (OSError, exceptions.ArchiveError)


class Tar(object):
    def __init__(self, overwrite_existing=False, mkdir_all=False,
                 implicit_top_level_folder=False, continue_on_error=False,
                 compression=None, fs=None, logger=None):
        """Configure a tar archiver.

        Args:
            overwrite_existing: Replace existing files when packing or
                unpacking, instead of failing.
            mkdir_all: Create missing directories leading to the
                destination.
            implicit_top_level_folder: Nest everything in one folder named
                after the archive when the files being packed or unpacked
                do not share a single root, rather than littering the
                destination with loose files.
            continue_on_error: Log errors on a single entry and carry on
                with the rest of the operation.
            compression: A wrapping from the compression module. Defaults
                to a plain, uncompressed tar archive.
            fs: File system collaborator, a LocalFilesystem by default.
            logger: Logger for non-fatal errors, this module's by default.
        """
        self.overwrite_existing = overwrite_existing
        self.mkdir_all = mkdir_all
        self.implicit_top_level_folder = implicit_top_level_folder
        self.continue_on_error = continue_on_error
        self.compression = compression or _passthrough()
        self.fs = fs or filesystem.LocalFilesystem()
        self.log = logger or LOG

    @property
    def extensions(self):
        return EXTENSIONS[self.compression.compression_type]

    def handle(self):
        return tarformat.TarHandle(self.compression)

    def create(self, sink):
        """Return a new archive handle writing to sink."""
        h = self.handle()
        h.create(sink)
        return h

    def open(self, source):
        """Return a new archive handle reading from source."""
        h = self.handle()
        h.open(source)
        return h

    def _handle_error(self, description, exc):
        if isinstance(exc, exceptions.FATAL_ERRORS):
            raise exc
        if not self.continue_on_error:
            raise exc
        self.log.error('%s: %s' % (description, exc))

    def _pump(self, source, output, description, entry_errors=ENTRY_ERRORS):
        entries = source.fetch()
        try:
            for ent in entries:
                try:
                    output.process_entry(ent)
                except exceptions.StopWalk:
                    LOG.debug('Walk stopped at %s' % ent.name)
                    break
                except entry_errors as e:
                    self._handle_error('%s %s' % (description, ent.name), e)
        finally:
            entries.close()
        output.finalize()

    def archive(self, sources, destination):
        """Create an archive at destination containing sources.

        Files are stored at the root of the archive, directories are added
        recursively under their own name.

        Raises:
            InvalidDestinationError: If destination has the wrong extension.
            DestinationExistsError: If destination exists and overwriting
                is disabled. Nothing has been opened at this point.
        """
        if not destination.endswith(self.extensions):
            raise exceptions.InvalidDestinationError(
                'output filename must have %s extension'
                % ' or '.join(self.extensions))
        if not self.overwrite_existing and self.fs.exists(destination):
            raise exceptions.DestinationExistsError(
                'file already exists: %s' % destination)

        destination_abs = os.path.abspath(destination)
        if self.mkdir_all:
            self.fs.mkdir_all(os.path.dirname(destination_abs))

        top_level_folder = None
        if self.implicit_top_level_folder:
            names = [os.path.basename(os.path.abspath(s)) for s in sources]
            if paths.multiple_top_levels(names):
                top_level_folder = paths.folder_name_from_file_name(
                    destination)
                LOG.info('Sources do not share a root, nesting them in %s'
                         % top_level_folder)

        LOG.info('Creating %s' % destination)
        source = DirectorySource(sources, top_level_folder=top_level_folder,
                                 fs=self.fs, on_error=self._handle_error,
                                 exclude=[destination_abs])
        with self.fs.create_for_write(destination_abs) as out:
            with self.create(out) as handle:
                self._pump(source, TarWriter(handle), 'writing')

    def _add_top_level_folder(self, source, destination):
        with self.fs.open_for_read(source) as f:
            with self.open(f) as handle:
                names = list_names(handle)

        if paths.multiple_top_levels(names):
            destination = os.path.join(
                destination, paths.folder_name_from_file_name(source))
            LOG.info('Archive entries do not share a root, extracting to %s'
                     % destination)
        return destination

    def unarchive(self, source, destination):
        """Unpack the archive at source into the destination folder."""
        if self.mkdir_all and not self.fs.exists(destination):
            self.fs.mkdir_all(destination)

        # If the files in the archive do not all share a common root, then
        # make sure we extract to a single subfolder rather than
        # potentially littering the destination.
        if self.implicit_top_level_folder:
            destination = self._add_top_level_folder(source, destination)

        LOG.info('Extracting %s to %s' % (source, destination))
        output = DirWriter(destination, fs=self.fs,
                           overwrite_existing=self.overwrite_existing)
        with self.fs.open_for_read(source) as f:
            with self.open(f) as handle:
                self._pump(ArchiveSource(handle), output, 'extracting')

    def walk(self, source, visitor):
        """Call visitor with each entry in the archive at source.

        The visitor may raise exceptions.StopWalk to end the walk early.
        Nothing is written to disk.
        """
        with self.fs.open_for_read(source) as f:
            with self.open(f) as handle:
                self._pump(ArchiveSource(handle), VisitorOutput(visitor),
                           'walking', entry_errors=(Exception,))

    def extract(self, source, target, destination):
        """Extract one member of the archive at source into destination.

        If target names a directory, the whole directory is extracted.

        Raises:
            EntryNotFoundError: If nothing in the archive matches target.
        """
        if self.mkdir_all and not self.fs.exists(destination):
            self.fs.mkdir_all(destination)

        LOG.info('Extracting %s from %s to %s'
                 % (target, source, destination))
        output = SubtreeFilter(
            DirWriter(destination, fs=self.fs,
                      overwrite_existing=self.overwrite_existing),
            target)
        with self.fs.open_for_read(source) as f:
            with self.open(f) as handle:
                self._pump(ArchiveSource(handle), output, 'extracting')

    def list(self, source):
        """Return the entries of the archive at source, without content."""
        entries = []
        self.walk(source, entries.append)
        for ent in entries:
            ent.discard()
        return entries


def _passthrough():
    return compression.Passthrough()


def new_tar(**options):
    return Tar(**options)


def new_targz(compression_level=constants.DEFAULT_COMPRESSION_LEVEL,
              **options):
    return Tar(compression=compression.Gzip(compression_level), **options)


def default_tar():
    """A plain tar archiver with the conventional defaults."""
    return new_tar(mkdir_all=True)


def default_targz():
    """A gzip compressed tar archiver with the conventional defaults."""
    return new_targz(mkdir_all=True)


def by_extension(filename,
                 compression_level=constants.DEFAULT_COMPRESSION_LEVEL,
                 **options):
    """Pick an archiver for filename based on its extension."""
    if filename.endswith(constants.TARGZ_EXTENSIONS):
        return new_targz(compression_level, **options)
    if filename.endswith(constants.TAR_EXTENSIONS):
        return new_tar(**options)
    raise exceptions.UnknownFormatError(
        '%s: unrecognized archive extension' % filename)


def by_header(fileobj, **options):
    """Pick an archiver for a seekable stream based on its magic bytes."""
    compression_type = compression.detect_compression(fileobj)
    if compression_type == constants.COMPRESSION_GZIP:
        return new_targz(**options)
    if compression_type == constants.COMPRESSION_NONE:
        return new_tar(**options)
    raise exceptions.UnknownFormatError('unrecognized archive format')
