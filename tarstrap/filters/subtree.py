import logging
import posixpath

from tarstrap import constants
from tarstrap import exceptions
from tarstrap import paths
from tarstrap.filters.base import EntryFilter


LOG = logging.getLogger(__name__)
LOG.setLevel(logging.INFO)


class SubtreeFilter(EntryFilter):
    """Passes through one archive member, or one directory and its contents.

    A non-directory target is renamed to its base name and the walk stops
    right after it. A directory target is rebased so it appears under its
    own base name, and the walk stops at the first entry after its subtree.
    Archives which omit the directory header itself are handled by treating
    the first entry nested under the target as the start of the subtree.
    """

    def __init__(self, wrapped_output, target):
        super().__init__(wrapped_output)
        self.target = paths.normalize_name(target)
        self.found = False
        self._done = False

        # Set once the target is known to be a directory. Entries are
        # renamed relative to this.
        self._parent = None

    def _rebase(self, name):
        if not self._parent:
            return name
        return name[len(self._parent) + 1:]

    def process_entry(self, ent):
        if self._done:
            raise exceptions.StopWalk()

        inside = paths.within(self.target, ent.name)
        if self._parent is None and inside:
            if ent.name != self.target or ent.isdir():
                self._parent = posixpath.dirname(self.target)

        if inside:
            self.found = True
            if self._parent is None:
                ent.name = posixpath.basename(ent.name)
            else:
                ent.name = self._rebase(ent.name)
                if (ent.kind == constants.KIND_HARDLINK and
                        paths.within(self.target, ent.linkname)):
                    ent.linkname = self._rebase(
                        paths.normalize_name(ent.linkname))

            LOG.debug('Selected %s' % ent.name)
            if self._parent is None:
                # A single member. Stop at the next entry even if writing
                # this one fails and the error is skipped.
                self._done = True
                self._wrapped.process_entry(ent)
                raise exceptions.StopWalk()
            self._wrapped.process_entry(ent)

        elif self._parent is not None:
            # Finished walking the entire directory
            raise exceptions.StopWalk()

    def finalize(self):
        if not self.found:
            raise exceptions.EntryNotFoundError(
                '%s: not found in archive' % self.target)
        super().finalize()
