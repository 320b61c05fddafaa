from abc import ABC, abstractmethod

from tarstrap.outputs.base import EntryOutput


class EntryFilter(EntryOutput, ABC):
    """Abstract base class for entry filters.

    Filters wrap an EntryOutput and can select, rename or inspect entries
    as they pass through the pipeline. Filters implement the EntryOutput
    interface so they can be chained together:
        source -> filter1 -> filter2 -> output
    """

    def __init__(self, wrapped_output):
        self._wrapped = wrapped_output

    @abstractmethod
    def process_entry(self, ent):
        pass

    def finalize(self):
        if self._wrapped is not None:
            self._wrapped.finalize()
