from tarstrap.archiver import (
    Tar, by_extension, by_header, default_tar, default_targz, new_tar,
    new_targz
)
from tarstrap.entry import Entry
from tarstrap.exceptions import ArchiveError, StopWalk
from tarstrap.tarformat import TarHandle

__all__ = ['Tar', 'by_extension', 'by_header', 'default_tar', 'default_targz',
           'new_tar', 'new_targz', 'Entry', 'ArchiveError', 'StopWalk',
           'TarHandle']
