from abc import ABC, abstractmethod


class EntrySource(ABC):
    """Abstract base class for entry sources.

    Entry sources walk something (a directory tree, an archive stream) and
    yield Entry objects in a standard format for an EntryOutput to consume.
    """

    @abstractmethod
    def fetch(self):
        """Yield entries one at a time.

        Each yielded entry's content is only valid until the next entry is
        requested.
        """
        pass
