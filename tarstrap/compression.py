"""Stream wrapping for tar archives.

A wrapping turns a raw byte sink or source into the stream the tar codec
actually reads or writes. Plain tar archives use the identity wrapping,
compressed archives use gzip framing. Each wrap call returns the wrapped
stream and a cleanup callable which must run exactly once, before the owner
of the raw stream closes it.
"""

import gzip

from tarstrap import constants
from tarstrap import exceptions


# Magic bytes for compression format detection
GZIP_MAGIC = b'\x1f\x8b'
TAR_MAGIC = b'ustar'
TAR_MAGIC_OFFSET = 257


def _noop():
    pass


def detect_compression(data):
    """Detect compression format from magic bytes.

    Args:
        data: Bytes or a seekable file-like object.

    Returns:
        One of COMPRESSION_GZIP, COMPRESSION_NONE or COMPRESSION_UNKNOWN.
    """
    if hasattr(data, 'read'):
        if not hasattr(data, 'seek'):
            raise ValueError(
                'Cannot detect compression on non-seekable stream')
        pos = data.tell()
        head = data.read(TAR_MAGIC_OFFSET + len(TAR_MAGIC))
        data.seek(pos)
    else:
        head = data[:TAR_MAGIC_OFFSET + len(TAR_MAGIC)]

    if len(head) < 2:
        return constants.COMPRESSION_UNKNOWN
    if head[:2] == GZIP_MAGIC:
        return constants.COMPRESSION_GZIP
    if head[TAR_MAGIC_OFFSET:TAR_MAGIC_OFFSET + len(TAR_MAGIC)] == TAR_MAGIC:
        return constants.COMPRESSION_NONE
    return constants.COMPRESSION_UNKNOWN


class Passthrough(object):
    """Identity wrapping used for plain tar archives."""

    compression_type = constants.COMPRESSION_NONE

    def wrap_writer(self, raw):
        return raw, _noop

    def wrap_reader(self, raw):
        return raw, _noop


class Gzip(object):
    """gzip (RFC 1952) wrapping for compressed tar archives."""

    compression_type = constants.COMPRESSION_GZIP

    def __init__(self, level=constants.DEFAULT_COMPRESSION_LEVEL):
        """Initialize the wrapping.

        Args:
            level: Compression level used when writing, 0-9, or -1 for the
                zlib default. Decoding does not need a level.

        Raises:
            ValueError: If the level is out of range.
        """
        if level != -1 and not 0 <= level <= 9:
            raise ValueError('Invalid gzip compression level: %s' % level)
        self.level = level

    def wrap_writer(self, raw):
        gz = gzip.GzipFile(fileobj=raw, mode='wb', compresslevel=self.level)
        # GzipFile.close() writes the CRC32 and size trailer but leaves a
        # passed in fileobj open.
        return gz, gz.close

    def wrap_reader(self, raw):
        seekable = getattr(raw, 'seekable', None)
        if seekable is not None and seekable():
            pos = raw.tell()
            magic = raw.read(len(GZIP_MAGIC))
            raw.seek(pos)
            if magic != GZIP_MAGIC:
                raise exceptions.ArchiveFormatError(
                    'Not a gzip stream: bad magic %r' % magic)

        gz = gzip.GzipFile(fileobj=raw, mode='rb')
        return gz, gz.close
