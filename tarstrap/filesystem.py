"""The host file system as seen by the archive engine.

Everything the pack and unpack paths do to the file system goes through an
instance of LocalFilesystem, so tests and callers can substitute their own.
"""

import os

from tarstrap import constants


class LocalFilesystem(object):
    def open_for_read(self, path):
        return open(path, 'rb')

    def create_for_write(self, path, mode=constants.DEFAULT_FILE_MODE):
        """Create (or truncate) a file for writing with the given mode.

        The mode is applied explicitly after creation so the process umask
        does not mask it.
        """
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
        try:
            os.fchmod(fd, mode)
        except Exception:
            os.close(fd)
            raise
        return os.fdopen(fd, 'wb')

    def stat(self, path):
        return os.stat(path)

    def lstat(self, path):
        return os.lstat(path)

    def readlink(self, path):
        return os.readlink(path)

    def listdir(self, path):
        return sorted(os.listdir(path))

    def exists(self, path):
        return os.path.lexists(path)

    def isdir(self, path):
        return os.path.isdir(path) and not os.path.islink(path)

    def mkdir_all(self, path, mode=constants.DEFAULT_DIR_MODE):
        os.makedirs(path, mode=mode, exist_ok=True)

    def create_symlink(self, path, target):
        os.symlink(target, path)

    def create_hardlink(self, path, existing_path):
        os.link(existing_path, path, follow_symlinks=False)

    def remove(self, path):
        os.unlink(path)

    def chmod(self, path, mode):
        os.chmod(path, mode)

    def set_mtime(self, path, mtime):
        os.utime(path, (mtime, mtime))
