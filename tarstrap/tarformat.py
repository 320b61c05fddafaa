# Tar stream codec for tarstrap.
#
# An archive handle is bound to exactly one stream at a time, either for
# writing entries or for reading them. The format for each written header is
# chosen individually: USTAR by default (smaller output), PAX when the member
# needs it. Each PAX extended header adds ~1KB, which adds up on trees with
# many long names.

import enum
import gzip
import logging
import tarfile
import zlib

from tarstrap import compression
from tarstrap import constants
from tarstrap import entry as tarstrap_entry
from tarstrap import exceptions


LOG = logging.getLogger(__name__)

# USTAR format limits (POSIX.1-1988)
#
# USTAR stores paths using two fields:
#   - name: 100 bytes for the filename
#   - prefix: 155 bytes for the directory path
#
# Combined, this allows paths up to 256 characters (prefix + '/' + name)
# without requiring extended headers.
USTAR_MAX_PATH = 256
USTAR_MAX_NAME = 100
USTAR_MAX_PREFIX = 155
USTAR_MAX_LINKNAME = 100
USTAR_MAX_SIZE = 8 * 1024 * 1024 * 1024 - 1  # 8 GiB - 1 byte
USTAR_MAX_ID = 0o7777777  # 2097151 (max value in 8-byte octal field)
USTAR_MAX_MTIME = 0o77777777777

# Errors from the decoder which mean the stream itself is bad
DECODE_ERRORS = (tarfile.TarError, EOFError, zlib.error, gzip.BadGzipFile)


def needs_pax_format(member):
    """
    Check if a TarInfo member requires PAX format due to USTAR limitations.

    Args:
        member: A TarInfo object to check.

    Returns:
        bool: True if PAX format is required, False if USTAR suffices.
    """
    if len(member.name) > USTAR_MAX_PATH:
        return True

    # Directory names get a trailing '/' when the header is built.
    name = member.name
    if member.isdir() and not name.endswith('/'):
        name += '/'
    if not _fits_ustar_name(name):
        return True

    if member.linkname and len(member.linkname) > USTAR_MAX_LINKNAME:
        return True

    if member.size > USTAR_MAX_SIZE:
        return True

    if member.uid > USTAR_MAX_ID or member.gid > USTAR_MAX_ID:
        return True

    if not 0 <= member.mtime <= USTAR_MAX_MTIME:
        return True

    # USTAR only supports ASCII
    try:
        member.name.encode('ascii')
        member.linkname.encode('ascii')
        member.uname.encode('ascii')
        member.gname.encode('ascii')
    except UnicodeEncodeError:
        return True

    return False


def _fits_ustar_name(name):
    # The path must be splittable at a '/' boundary where the basename
    # fits in 100 chars and the dirname in 155 chars.
    if len(name) <= USTAR_MAX_NAME:
        return True
    components = name.split('/')
    for i in range(1, len(components)):
        if (len('/'.join(components[:i])) <= USTAR_MAX_PREFIX and
                len('/'.join(components[i:])) <= USTAR_MAX_NAME):
            return True
    return False


class HandleState(enum.Enum):
    CLOSED = 'closed'
    WRITING = 'writing'
    READING = 'reading'


class TarHandle(object):
    """A tar archive bound to one stream, for writing or for reading.

    The handle never closes the raw stream it was given. Closing the handle
    finalizes the tar stream and then the compression wrapping, after which
    the owner of the raw stream may close it.
    """

    def __init__(self, wrapping=None):
        """Initialize a closed handle.

        Args:
            wrapping: A compression wrapping (compression.Passthrough or
                compression.Gzip). Defaults to no compression.
        """
        self.wrapping = wrapping or compression.Passthrough()
        self.state = HandleState.CLOSED
        self._tar = None
        self._cleanup = None
        self._current = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def __iter__(self):
        while True:
            ent = self.read_next()
            if ent is None:
                return
            yield ent

    def _check_state(self, wanted):
        if self.state != wanted:
            raise exceptions.HandleStateError(
                'tar archive is %s, it must be %s for this operation'
                % (self.state.value, wanted.value))

    def _check_closed(self):
        if self.state != HandleState.CLOSED:
            raise exceptions.HandleStateError(
                'tar archive is already open (%s)' % self.state.value)

    def create(self, sink):
        """Bind the handle to sink for writing."""
        self._check_closed()
        stream, cleanup = self.wrapping.wrap_writer(sink)
        try:
            self._tar = tarfile.open(fileobj=stream, mode='w|',
                                     format=tarfile.USTAR_FORMAT)
        except Exception:
            cleanup()
            raise

        self._cleanup = cleanup
        self.state = HandleState.WRITING
        LOG.debug('Opened tar archive for writing (%s)'
                  % self.wrapping.compression_type)

    def open(self, source):
        """Bind the handle to source for reading.

        Raises:
            ArchiveFormatError: If the stream is not a readable archive.
        """
        self._check_closed()
        stream, cleanup = self.wrapping.wrap_reader(source)
        try:
            self._tar = tarfile.open(fileobj=stream, mode='r|',
                                     tarinfo=_StrictTarInfo)
        except DECODE_ERRORS as e:
            cleanup()
            raise exceptions.ArchiveFormatError(
                'opening tar archive for reading: %s' % e)
        except Exception:
            cleanup()
            raise

        self._cleanup = cleanup
        self.state = HandleState.READING
        LOG.debug('Opened tar archive for reading (%s)'
                  % self.wrapping.compression_type)

    def write(self, ent):
        """Write one entry, which must carry content if it is a regular file.

        Raises:
            InvalidEntryError: If the entry has no name, or is a regular
                file without readable content.
            UnsupportedEntryError: If the entry kind cannot be archived.
            OSError, ShortContentError: If the content could not be read in
                full. The member is still written, zero filled to the size
                in its header.
        """
        self._check_state(HandleState.WRITING)
        if not ent.name:
            raise exceptions.InvalidEntryError('missing entry name')
        if ent.isreg() and not hasattr(ent.content, 'read'):
            raise exceptions.InvalidEntryError(
                '%s: no way to read file contents' % ent.name)

        ti = ent.to_tarinfo()
        if needs_pax_format(ti):
            self._tar.format = tarfile.PAX_FORMAT
        else:
            self._tar.format = tarfile.USTAR_FORMAT

        if ent.isreg():
            content = _ZeroFillReader(ent.name, ent.content, ti.size)
            self._tar.addfile(ti, content)
            if content.error is not None:
                # The member was padded to its declared size, so the
                # stream is still aligned for the next entry.
                raise content.error
        else:
            self._tar.addfile(ti)

    def read_next(self):
        """Return the next entry, or None at the end of the archive.

        The content of the previously returned entry becomes invalid and
        any unread part of it is skipped.

        Raises:
            ArchiveFormatError: If the stream is corrupt or truncated.
        """
        self._check_state(HandleState.READING)
        self._release_current()

        while True:
            try:
                ti = self._tar.next()
            except DECODE_ERRORS as e:
                raise exceptions.ArchiveFormatError(
                    'reading next tar header: %s' % e)
            if ti is None:
                return None

            ent = tarstrap_entry.Entry.from_tarinfo(ti)
            if ent.kind == constants.KIND_GLOBAL_HEADER:
                LOG.debug('Skipping global extended header')
                continue
            if ent.isreg():
                ent.content = tarstrap_entry.ContentStream(
                    ent.name, _DecodeErrorReader(self._tar.extractfile(ti)))
            self._current = ent
            return ent

    def _release_current(self):
        if self._current is not None:
            self._current.discard()
            self._current = None

    def close(self):
        """Finalize and unbind the handle. Safe to call more than once."""
        if self.state == HandleState.CLOSED:
            return

        self._release_current()
        tar, cleanup = self._tar, self._cleanup
        self._tar = None
        self._cleanup = None
        self.state = HandleState.CLOSED
        try:
            tar.close()
        finally:
            cleanup()


class _DecodeErrorReader(object):
    """Reports decoder failures while reading content as format errors."""

    def __init__(self, fileobj):
        self._fileobj = fileobj

    def read(self, size=-1):
        try:
            return self._fileobj.read(size)
        except DECODE_ERRORS as e:
            raise exceptions.ArchiveFormatError(
                'reading tar member content: %s' % e)


class _StrictTarInfo(tarfile.TarInfo):
    """Treats a bad or cut off header anywhere in the stream as an error.

    tarfile only reports these for the first header of an archive. Later
    on it returns None from next(), which looks like a clean end of archive.
    """

    @classmethod
    def fromtarfile(cls, tar):
        try:
            return super().fromtarfile(tar)
        except (tarfile.InvalidHeaderError,
                tarfile.TruncatedHeaderError) as e:
            raise exceptions.ArchiveFormatError(
                'reading tar header at offset %d: %s' % (tar.offset, e))


class _ZeroFillReader(object):
    """Reads exactly size bytes of member content for tarfile.addfile().

    If the source fails or ends early the error is recorded and the rest
    of the member is filled with zeros.
    """

    def __init__(self, name, fileobj, size):
        self.name = name
        self.error = None
        self._fileobj = fileobj
        self._remaining = size

    def read(self, size):
        size = min(size, self._remaining)
        data = b''
        if self.error is None:
            try:
                data = self._fileobj.read(size)
            except (OSError, exceptions.ArchiveError) as e:
                LOG.debug('Reading %s failed: %s' % (self.name, e))
                self.error = e
            else:
                if len(data) < size:
                    self.error = exceptions.ShortContentError(
                        '%s: content ended %d bytes short of its header size'
                        % (self.name, self._remaining - len(data)))

        if len(data) < size:
            data += b'\0' * (size - len(data))
        self._remaining -= size
        return data
