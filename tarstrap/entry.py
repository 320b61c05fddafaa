import os
import stat
import tarfile

from tarstrap import constants
from tarstrap import exceptions
from tarstrap import paths


TARFILE_TYPE_MAP = {
    tarfile.REGTYPE: constants.KIND_REGULAR,
    tarfile.AREGTYPE: constants.KIND_REGULAR,
    tarfile.CONTTYPE: constants.KIND_REGULAR,
    tarfile.GNUTYPE_SPARSE: constants.KIND_REGULAR,
    tarfile.DIRTYPE: constants.KIND_DIRECTORY,
    tarfile.SYMTYPE: constants.KIND_SYMLINK,
    tarfile.LNKTYPE: constants.KIND_HARDLINK,
    tarfile.CHRTYPE: constants.KIND_CHAR_DEVICE,
    tarfile.BLKTYPE: constants.KIND_BLOCK_DEVICE,
    tarfile.FIFOTYPE: constants.KIND_FIFO,
    tarfile.XGLTYPE: constants.KIND_GLOBAL_HEADER,
}

KIND_TARFILE_MAP = {
    constants.KIND_REGULAR: tarfile.REGTYPE,
    constants.KIND_DIRECTORY: tarfile.DIRTYPE,
    constants.KIND_SYMLINK: tarfile.SYMTYPE,
    constants.KIND_HARDLINK: tarfile.LNKTYPE,
    constants.KIND_CHAR_DEVICE: tarfile.CHRTYPE,
    constants.KIND_BLOCK_DEVICE: tarfile.BLKTYPE,
    constants.KIND_FIFO: tarfile.FIFOTYPE,
}


class ContentStream(object):
    """Read-once view of an entry's payload inside an archive stream.

    The view reads straight from the decoder's current record, so it is
    invalidated as soon as the archive handle moves to the next entry.
    """

    def __init__(self, name, fileobj):
        self.name = name
        self._fileobj = fileobj

    def readable(self):
        return self._fileobj is not None

    def read(self, size=-1):
        if self._fileobj is None:
            raise exceptions.StaleContentError(
                '%s: content is no longer available, the archive has '
                'advanced to a later entry' % self.name)
        return self._fileobj.read(size)

    def invalidate(self):
        self._fileobj = None


class Entry(object):
    def __init__(self, name, kind, size=0, mode=0, mtime=0, linkname='',
                 content=None, uid=0, gid=0, uname='', gname='',
                 devmajor=0, devminor=0, typeflag=None):
        self.name = name
        self.kind = kind
        self.size = size if kind == constants.KIND_REGULAR else 0
        self.mode = mode
        self.mtime = mtime
        self.linkname = linkname if kind in constants.LINK_KINDS else ''
        self.content = content
        self.uid = uid
        self.gid = gid
        self.uname = uname
        self.gname = gname
        self.devmajor = devmajor
        self.devminor = devminor
        self.typeflag = typeflag

    def __repr__(self):
        return '<Entry %s %s size=%d>' % (self.kind, self.name, self.size)

    def isdir(self):
        return self.kind == constants.KIND_DIRECTORY

    def isreg(self):
        return self.kind == constants.KIND_REGULAR

    def discard(self):
        """Drop the content without reading it."""
        if isinstance(self.content, ContentStream):
            self.content.invalidate()
        self.content = None

    @classmethod
    def from_tarinfo(cls, ti, content=None):
        return cls(paths.normalize_name(ti.name),
                   TARFILE_TYPE_MAP.get(ti.type, constants.KIND_UNSUPPORTED),
                   size=ti.size, mode=ti.mode, mtime=int(ti.mtime),
                   linkname=ti.linkname, content=content,
                   uid=ti.uid, gid=ti.gid, uname=ti.uname, gname=ti.gname,
                   devmajor=ti.devmajor, devminor=ti.devminor,
                   typeflag=ti.type)

    @classmethod
    def from_stat(cls, name, st, linkname='', content=None):
        """Build an entry from an os.stat_result (from lstat, not stat)."""
        mode = st.st_mode
        devmajor = devminor = 0
        if stat.S_ISREG(mode):
            kind = constants.KIND_HARDLINK if linkname else \
                constants.KIND_REGULAR
        elif stat.S_ISDIR(mode):
            kind = constants.KIND_DIRECTORY
        elif stat.S_ISLNK(mode):
            kind = constants.KIND_SYMLINK
        elif stat.S_ISFIFO(mode):
            kind = constants.KIND_FIFO
        elif stat.S_ISCHR(mode) or stat.S_ISBLK(mode):
            kind = (constants.KIND_CHAR_DEVICE if stat.S_ISCHR(mode)
                    else constants.KIND_BLOCK_DEVICE)
            devmajor = os.major(st.st_rdev)
            devminor = os.minor(st.st_rdev)
        else:
            kind = constants.KIND_UNSUPPORTED

        return cls(name, kind, size=st.st_size, mode=stat.S_IMODE(mode),
                   mtime=int(st.st_mtime), linkname=linkname,
                   content=content, uid=st.st_uid, gid=st.st_gid,
                   devmajor=devmajor, devminor=devminor)

    def to_tarinfo(self):
        if self.kind not in KIND_TARFILE_MAP:
            raise exceptions.UnsupportedEntryError(
                '%s: entries of kind %s cannot be archived'
                % (self.name, self.kind))

        ti = tarfile.TarInfo(self.name)
        ti.type = KIND_TARFILE_MAP[self.kind]
        ti.size = self.size
        ti.mode = self.mode
        ti.mtime = self.mtime
        ti.linkname = self.linkname
        ti.uid = self.uid
        ti.gid = self.gid
        ti.uname = self.uname
        ti.gname = self.gname
        ti.devmajor = self.devmajor
        ti.devminor = self.devminor
        return ti

