import logging

from tarstrap.outputs.base import EntryOutput


LOG = logging.getLogger(__name__)
LOG.setLevel(logging.INFO)


class TarWriter(EntryOutput):
    """Writes entries to an archive handle open for writing.

    The handle belongs to the caller, who closes it after finalize() so the
    end of archive blocks and any compression trailer are flushed.
    """

    def __init__(self, handle):
        self.handle = handle
        self.count = 0

    def process_entry(self, ent):
        LOG.debug('Writing %s (%s)' % (ent.name, ent.kind))
        self.handle.write(ent)
        self.count += 1

    def finalize(self):
        LOG.info('Wrote %d entries to tar archive' % self.count)
