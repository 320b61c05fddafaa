from abc import ABC, abstractmethod


class EntryOutput(ABC):
    """Abstract base class for entry outputs.

    Outputs receive entries from an entry source and write them to some
    destination (an archive stream, a directory tree, a caller's visitor).
    """

    @abstractmethod
    def process_entry(self, ent):
        """Process a single entry.

        Args:
            ent: An Entry. Its content, if any, must be consumed here or it
                is discarded when the source advances.
        """
        pass

    @abstractmethod
    def finalize(self):
        """Complete the output operation.

        This is called once after every entry has been processed. It is not
        called when the operation is aborted by an error.
        """
        pass
