"""Path mapping between the file system and archive member names.

Archive member names always use forward slashes and are never absolute.
This module also holds the two pieces of path logic shared by the pack and
unpack paths: the top-level folder heuristic, which stops an archive from
littering a directory with many loose files, and the containment checks
which keep extracted entries inside the requested destination.
"""

import os
import posixpath

from tarstrap import exceptions


def normalize_name(name):
    """Normalize an archive member name.

    Leading slashes, './' prefixes and trailing slashes are removed.
    Parent references are kept so the safety checks can see them.
    """
    name = name.lstrip('/')
    if not name:
        return '.'
    return posixpath.normpath(name)


def within(target, candidate):
    """Is candidate equal to, or lexically nested under, target?

    Both are archive member names. This only selects entries, it says
    nothing about where an entry ends up on disk.
    """
    target = normalize_name(target)
    candidate = normalize_name(candidate)
    if target == '.':
        return True
    return candidate == target or candidate.startswith(target + '/')


def _top_level(path):
    path = normalize_name(path.replace('\\', '/'))
    return path.split('/', 1)[0]


def multiple_top_levels(paths):
    """Return True if paths do not all share one top-level component.

    The top-level component of a path at depth zero is its own name, so
    two loose files count as two top levels.
    """
    if len(paths) < 2:
        return False

    first_top = None
    for path in paths:
        top = _top_level(path)
        if top == '.':
            continue
        if first_top is None:
            first_top = top
        elif top != first_top:
            return True
    return False


def folder_name_from_file_name(filename):
    """Name a folder after a file, everything before the first dot.

    'backup.tar.gz' becomes 'backup'.
    """
    base = os.path.basename(filename)
    first_dot = base.find('.')
    if first_dot > 0:
        return base[:first_dot]
    return base


def name_in_archive(source, path, top_level_folder=None):
    """Map a visited path to its archive member name.

    Args:
        source: The absolute source path passed to the pack operation.
        path: The absolute path being visited, source itself or a
            descendant of it.
        top_level_folder: Optional synthetic folder to nest everything in.

    Returns:
        The archive member name. A file source is stored at the root of
        the archive, a directory source keeps its own name as the first
        component.
    """
    parts = []
    if top_level_folder:
        parts.append(top_level_folder)
    parts.append(os.path.basename(source))

    rel = os.path.relpath(path, source)
    if rel != os.curdir:
        parts.append(rel.replace(os.sep, '/'))
    return posixpath.join(*parts)


def path_in_destination(root, name):
    """Map an archive member name to a path beneath root."""
    name = normalize_name(name)
    if name == '.':
        return root
    return os.path.join(root, *name.split('/'))


def _is_within_fs(root, path):
    if path == root:
        return True
    return path.startswith(root.rstrip(os.sep) + os.sep)


def ensure_contained(root, path):
    """Raise PathEscapeError unless path stays beneath root.

    The check is lexical first, then repeated on the resolved parent
    directory so a symbolic link written by an earlier entry cannot be
    used to redirect later writes.
    """
    root_abs = os.path.abspath(root)
    path_abs = os.path.abspath(path)
    if not _is_within_fs(root_abs, path_abs):
        raise exceptions.PathEscapeError(
            '%s is outside of the destination %s' % (path, root))

    root_real = os.path.realpath(root_abs)
    parent_real = os.path.realpath(os.path.dirname(path_abs))
    if not _is_within_fs(root_real, parent_real):
        raise exceptions.PathEscapeError(
            '%s resolves outside of the destination %s' % (path, root))
    return path_abs


def ensure_link_contained(root, link_path, link_target, hard=False):
    """Raise PathEscapeError if a link would point outside of root.

    Symbolic link targets are resolved relative to the directory holding
    the link, hard link targets relative to root.

    Returns:
        The resolved file system path the link points at.
    """
    if hard:
        resolved = path_in_destination(root, link_target)
    else:
        resolved = os.path.normpath(
            os.path.join(os.path.dirname(link_path), link_target))

    try:
        ensure_contained(root, resolved)
    except exceptions.PathEscapeError:
        raise exceptions.PathEscapeError(
            '%s: link target %s is outside of the destination %s'
            % (link_path, link_target, root))

    if not _is_within_fs(os.path.realpath(root), os.path.realpath(resolved)):
        raise exceptions.PathEscapeError(
            '%s: link target %s resolves outside of the destination %s'
            % (link_path, link_target, root))
    return resolved
