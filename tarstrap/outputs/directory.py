import logging
import os
import shutil

from tarstrap import constants
from tarstrap import exceptions
from tarstrap import filesystem
from tarstrap import paths
from tarstrap.outputs.base import EntryOutput


LOG = logging.getLogger(__name__)
LOG.setLevel(logging.INFO)


class DirWriter(EntryOutput):
    """Materializes entries beneath a destination directory.

    Every path written, and every link target, must stay inside the
    destination. Character devices, block devices and fifos are written as
    empty regular files since creating device nodes needs privileges.
    """

    def __init__(self, destination, fs=None, overwrite_existing=False):
        self.destination = destination
        self.fs = fs or filesystem.LocalFilesystem()
        self.overwrite_existing = overwrite_existing
        self.count = 0

        # We defer changing the permissions of directories until later
        # so that permissions don't affect the writing of files.
        self._deferred = []

    def process_entry(self, ent):
        if ent.kind == constants.KIND_GLOBAL_HEADER:
            return
        if ent.kind == constants.KIND_UNSUPPORTED:
            raise exceptions.UnknownEntryTypeError(ent.name, ent.typeflag)

        target = paths.path_in_destination(self.destination, ent.name)
        paths.ensure_contained(self.destination, target)

        if not ent.isdir() and self.fs.exists(target):
            if not self.overwrite_existing:
                raise exceptions.OverwriteError(
                    'file already exists: %s' % target)
            if not self.fs.isdir(target):
                # Never write through a link left at the target path
                self.fs.remove(target)

        if ent.isdir():
            self.fs.mkdir_all(target)
            self._deferred.append((target, ent))
        elif ent.kind in constants.FILE_LIKE_KINDS:
            self._write_file(target, ent)
        elif ent.kind == constants.KIND_SYMLINK:
            paths.ensure_link_contained(
                self.destination, target, ent.linkname)
            self.fs.mkdir_all(os.path.dirname(target))
            self.fs.create_symlink(target, ent.linkname)
        elif ent.kind == constants.KIND_HARDLINK:
            existing = paths.ensure_link_contained(
                self.destination, target, ent.linkname, hard=True)
            self.fs.mkdir_all(os.path.dirname(target))
            self.fs.create_hardlink(target, existing)

        self.count += 1

    def _write_file(self, target, ent):
        self.fs.mkdir_all(os.path.dirname(target))
        mode = ent.mode & constants.PERMISSION_MASK
        with self.fs.create_for_write(target, mode) as f:
            if ent.content is not None:
                shutil.copyfileobj(ent.content, f, constants.COPY_BUFSIZE)
        self.fs.set_mtime(target, ent.mtime)

    def finalize(self):
        # Deepest directories first, so a read only parent never blocks
        # updating a child.
        for target, ent in sorted(self._deferred, key=lambda d: d[0],
                                  reverse=True):
            self.fs.chmod(target, ent.mode & constants.PERMISSION_MASK)
            self.fs.set_mtime(target, ent.mtime)
        LOG.info('Extracted %d entries to %s' % (self.count, self.destination))
