import logging
import os
import stat

from tarstrap import entry as tarstrap_entry
from tarstrap import filesystem
from tarstrap import paths
from tarstrap.inputs.base import EntrySource


LOG = logging.getLogger(__name__)
LOG.setLevel(logging.INFO)


def raise_error(description, exc):
    raise exc


class DirectorySource(EntrySource):
    """Walks file system paths depth first and yields an entry per node.

    Directories are yielded before their children and children are visited
    in name order. Symbolic links are recorded, not followed. A regular
    file which shares an inode with one already yielded becomes a hard
    link to that earlier entry.
    """

    def __init__(self, sources, top_level_folder=None, fs=None,
                 on_error=raise_error, exclude=None):
        """Initialize the source.

        Args:
            sources: File system paths to walk.
            top_level_folder: Optional folder to nest every entry under.
            fs: File system collaborator, a LocalFilesystem by default.
            on_error: Called as on_error(description, exception) for an
                error on a single node. It either raises, aborting the walk,
                or returns and the walk moves on to the next node.
            exclude: Absolute paths to skip, usually the archive being
                written.
        """
        self.sources = sources
        self.top_level_folder = top_level_folder
        self.fs = fs or filesystem.LocalFilesystem()
        self.on_error = on_error
        self.exclude = set(exclude or [])
        self._inodes = {}

    def fetch(self):
        for source in self.sources:
            source_abs = os.path.abspath(source)
            LOG.info('Walking %s' % source_abs)
            yield from self._visit(source_abs, source_abs)

    def _visit(self, source, path):
        if path in self.exclude:
            LOG.debug('Skipping excluded path %s' % path)
            return

        try:
            st = self.fs.lstat(path)
        except OSError as e:
            self.on_error('%s: stat' % path, e)
            return

        name = paths.name_in_archive(source, path, self.top_level_folder)
        mode = st.st_mode

        if stat.S_ISDIR(mode):
            if name:
                yield tarstrap_entry.Entry.from_stat(name, st)
            try:
                children = self.fs.listdir(path)
            except OSError as e:
                self.on_error('%s: listing' % path, e)
                return
            for child in children:
                yield from self._visit(source, os.path.join(path, child))

        elif stat.S_ISLNK(mode):
            try:
                linkname = self.fs.readlink(path)
            except OSError as e:
                self.on_error('%s: reading link' % path, e)
                return
            yield tarstrap_entry.Entry.from_stat(name, st, linkname=linkname)

        elif stat.S_ISREG(mode):
            inode = (st.st_dev, st.st_ino)
            if st.st_nlink > 1 and inode in self._inodes:
                yield tarstrap_entry.Entry.from_stat(
                    name, st, linkname=self._inodes[inode])
                return

            try:
                f = self.fs.open_for_read(path)
            except OSError as e:
                self.on_error('%s: opening' % path, e)
                return
            with f:
                yield tarstrap_entry.Entry.from_stat(name, st, content=f)

            # Only a member which was actually archived can be linked to
            if st.st_nlink > 1:
                self._inodes[inode] = name

        else:
            # Devices and fifos are header only, sockets are refused when
            # the entry is written.
            yield tarstrap_entry.Entry.from_stat(name, st)
