from tarstrap.filters.base import EntryFilter
from tarstrap.filters.subtree import SubtreeFilter

__all__ = ['EntryFilter', 'SubtreeFilter']
