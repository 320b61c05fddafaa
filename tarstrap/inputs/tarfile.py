import logging

from tarstrap.inputs.base import EntrySource


LOG = logging.getLogger(__name__)
LOG.setLevel(logging.INFO)


class ArchiveSource(EntrySource):
    """Yields the entries of an archive handle open for reading."""

    def __init__(self, handle):
        self.handle = handle

    def fetch(self):
        count = 0
        for ent in self.handle:
            count += 1
            LOG.debug('Read %s' % ent.name)
            yield ent
        LOG.info('Read %d entries' % count)


def list_names(handle):
    """Return the names of every entry left in an open archive handle."""
    return [ent.name for ent in handle]
