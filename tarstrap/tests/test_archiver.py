import errno
import io
import os
import shutil
import stat
import tarfile
import tempfile
import unittest
from unittest import mock

from tarstrap import archiver
from tarstrap import constants
from tarstrap import exceptions
from tarstrap import filesystem
from tarstrap.inputs.tarfile import ArchiveSource


def _make_archive(path, members, mode='w'):
    """Write a tar archive from (name, typeflag, data_or_linkname) tuples."""
    with tarfile.open(path, mode) as tar:
        for name, typeflag, data in members:
            ti = tarfile.TarInfo(name)
            ti.type = typeflag
            ti.mtime = 1600000000
            if typeflag == tarfile.DIRTYPE:
                ti.mode = 0o755
                tar.addfile(ti)
            elif typeflag in (tarfile.SYMTYPE, tarfile.LNKTYPE):
                ti.mode = 0o777
                ti.linkname = data
                tar.addfile(ti)
            elif data is None:
                ti.mode = 0o644
                tar.addfile(ti)
            else:
                ti.mode = 0o644
                ti.size = len(data)
                tar.addfile(ti, io.BytesIO(data))


def _read(path):
    with open(path, 'rb') as f:
        return f.read()


def _write(path, data, mode=0o644):
    with open(path, 'wb') as f:
        f.write(data)
    os.chmod(path, mode)


class RecordingSource(ArchiveSource):
    seen = []

    def fetch(self):
        for ent in super().fetch():
            RecordingSource.seen.append(ent.name)
            yield ent


class FailingFilesystem(filesystem.LocalFilesystem):
    def open_for_read(self, path):
        if path.endswith('bad.txt'):
            raise PermissionError(13, 'Permission denied', path)
        return super().open_for_read(path)


class FailingReader(io.BytesIO):
    """Answers the first read, then fails like a bad disk."""

    def __init__(self, data):
        super().__init__(data)
        self.reads = 0

    def read(self, size=-1):
        self.reads += 1
        if self.reads > 1:
            raise OSError(errno.EIO, 'Input/output error')
        return super().read(size)


class FlakyFilesystem(filesystem.LocalFilesystem):
    def open_for_read(self, path):
        if path.endswith('flaky.txt'):
            with open(path, 'rb') as f:
                return FailingReader(f.read())
        return super().open_for_read(path)


class ArchiverTestCase(unittest.TestCase):
    def setUp(self):
        super().setUp()
        self.tmp = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.tmp)

    def path(self, *parts):
        return os.path.join(self.tmp, *parts)


class TestArchiveRoundTrip(ArchiverTestCase):
    def setUp(self):
        super().setUp()
        src = self.path('src')
        os.mkdir(src)
        _write(os.path.join(src, 'a.txt'), b'alpha', 0o640)
        os.utime(os.path.join(src, 'a.txt'), (1000000, 1000000))
        os.link(os.path.join(src, 'a.txt'), os.path.join(src, 'hard.txt'))
        os.mkdir(os.path.join(src, 'sub'))
        _write(os.path.join(src, 'sub', 'b.txt'), b'bravo')
        os.symlink('b.txt', os.path.join(src, 'sub', 'link'))
        os.chmod(os.path.join(src, 'sub'), 0o750)
        os.utime(os.path.join(src, 'sub'), (2000000, 2000000))
        self.src = src

    def test_archive_layout(self):
        out = self.path('out.tar')
        archiver.new_tar().archive([self.src], out)

        with tarfile.open(out) as tar:
            self.assertEqual(
                ['src', 'src/a.txt', 'src/hard.txt', 'src/sub',
                 'src/sub/b.txt', 'src/sub/link'],
                tar.getnames())
            hard = tar.getmember('src/hard.txt')
            self.assertTrue(hard.islnk())
            self.assertEqual('src/a.txt', hard.linkname)
            link = tar.getmember('src/sub/link')
            self.assertTrue(link.issym())
            self.assertEqual('b.txt', link.linkname)
            self.assertEqual(0o640, tar.getmember('src/a.txt').mode)

    def test_round_trip(self):
        out = self.path('out.tar')
        dest = self.path('dest')
        archiver.new_tar().archive([self.src], out)
        archiver.new_tar(mkdir_all=True).unarchive(out, dest)

        a = os.path.join(dest, 'src', 'a.txt')
        self.assertEqual(b'alpha', _read(a))
        self.assertEqual(0o640, stat.S_IMODE(os.stat(a).st_mode))
        self.assertEqual(1000000, int(os.stat(a).st_mtime))
        self.assertTrue(os.path.samefile(
            a, os.path.join(dest, 'src', 'hard.txt')))

        sub = os.path.join(dest, 'src', 'sub')
        self.assertEqual(0o750, stat.S_IMODE(os.stat(sub).st_mode))
        self.assertEqual(2000000, int(os.stat(sub).st_mtime))
        self.assertEqual(b'bravo', _read(os.path.join(sub, 'b.txt')))
        self.assertEqual('b.txt', os.readlink(os.path.join(sub, 'link')))

    def test_gzip_round_trip(self):
        out = self.path('nested', 'out.tar.gz')
        dest = self.path('dest')
        archiver.default_targz().archive([self.src], out)

        with open(out, 'rb') as f:
            self.assertEqual(b'\x1f\x8b', f.read(2))
            f.seek(0)
            tar = archiver.by_header(f, mkdir_all=True)
        self.assertEqual(constants.COMPRESSION_GZIP,
                         tar.compression.compression_type)
        tar.unarchive(out, dest)
        self.assertEqual(
            b'bravo', _read(os.path.join(dest, 'src', 'sub', 'b.txt')))

    def test_file_sources_are_stored_at_the_root(self):
        out = self.path('out.tar')
        archiver.new_tar().archive(
            [os.path.join(self.src, 'a.txt'),
             os.path.join(self.src, 'sub', 'b.txt')], out)
        with tarfile.open(out) as tar:
            self.assertEqual(['a.txt', 'b.txt'], tar.getnames())

    def test_destination_exists(self):
        out = self.path('out.tar')
        _write(out, b'original')
        tar = archiver.new_tar()
        with mock.patch.object(tar.fs, 'create_for_write') as create:
            with self.assertRaises(exceptions.DestinationExistsError):
                tar.archive([self.src], out)
            create.assert_not_called()
        self.assertEqual(b'original', _read(out))

    def test_destination_exists_overwrite(self):
        out = self.path('out.tar')
        _write(out, b'original')
        archiver.new_tar(overwrite_existing=True).archive([self.src], out)
        with tarfile.open(out) as tar:
            self.assertIn('src/a.txt', tar.getnames())

    def test_bad_extension(self):
        with self.assertRaises(exceptions.InvalidDestinationError):
            archiver.new_tar().archive([self.src], self.path('out.zip'))
        with self.assertRaises(exceptions.InvalidDestinationError):
            archiver.new_targz().archive([self.src], self.path('out.tar'))
        self.assertFalse(os.path.exists(self.path('out.tar')))

    def test_archive_inside_source_is_skipped(self):
        out = os.path.join(self.src, 'self.tar')
        archiver.new_tar().archive([self.src], out)
        with tarfile.open(out) as tar:
            self.assertNotIn('src/self.tar', tar.getnames())

    def test_list(self):
        out = self.path('out.tar')
        archiver.new_tar().archive([self.src], out)
        entries = archiver.new_tar().list(out)
        self.assertEqual(6, len(entries))
        self.assertEqual(constants.KIND_DIRECTORY, entries[0].kind)
        self.assertEqual(5, entries[1].size)
        for ent in entries:
            self.assertIsNone(ent.content)

    @unittest.skipUnless(hasattr(os, 'mkfifo'), 'no fifo support')
    def test_fifo_is_archived_as_a_header(self):
        os.mkfifo(os.path.join(self.src, 'pipe'))
        out = self.path('out.tar')
        archiver.new_tar().archive([self.src], out)
        with tarfile.open(out) as tar:
            self.assertTrue(tar.getmember('src/pipe').isfifo())


class TestTopLevelFolder(ArchiverTestCase):
    def test_unarchive_loose_files(self):
        out = self.path('backup.tar')
        _make_archive(out, [('one.txt', tarfile.REGTYPE, b'1'),
                            ('two.txt', tarfile.REGTYPE, b'2')])
        dest = self.path('dest')
        archiver.new_tar(mkdir_all=True,
                         implicit_top_level_folder=True).unarchive(out, dest)
        self.assertEqual(['backup'], os.listdir(dest))
        self.assertEqual(
            b'2', _read(os.path.join(dest, 'backup', 'two.txt')))

    def test_unarchive_common_root(self):
        out = self.path('backup.tar')
        _make_archive(out, [('root', tarfile.DIRTYPE, None),
                            ('root/one.txt', tarfile.REGTYPE, b'1'),
                            ('root/two.txt', tarfile.REGTYPE, b'2')])
        dest = self.path('dest')
        archiver.new_tar(mkdir_all=True,
                         implicit_top_level_folder=True).unarchive(out, dest)
        self.assertEqual(['root'], os.listdir(dest))

    def test_archive_loose_files(self):
        for name in ('f1.txt', 'f2.txt'):
            _write(self.path(name), name.encode())
        out = self.path('bundle.tar.gz')
        archiver.new_targz(implicit_top_level_folder=True).archive(
            [self.path('f1.txt'), self.path('f2.txt')], out)
        with tarfile.open(out, 'r:gz') as tar:
            self.assertEqual(['bundle/f1.txt', 'bundle/f2.txt'],
                             tar.getnames())

    def test_archive_single_directory(self):
        os.mkdir(self.path('only'))
        _write(self.path('only', 'f.txt'), b'f')
        out = self.path('bundle.tar')
        archiver.new_tar(implicit_top_level_folder=True).archive(
            [self.path('only')], out)
        with tarfile.open(out) as tar:
            self.assertEqual(['only', 'only/f.txt'], tar.getnames())


class TestExtract(ArchiverTestCase):
    def setUp(self):
        super().setUp()
        self.archive = self.path('in.tar')
        _make_archive(self.archive, [
            ('top', tarfile.DIRTYPE, None),
            ('top/a', tarfile.DIRTYPE, None),
            ('top/a/c.txt', tarfile.REGTYPE, b'charlie'),
            ('top/a/d/e.txt', tarfile.REGTYPE, b'echo'),
            ('top/y.txt', tarfile.REGTYPE, b'yankee'),
            ('top/z.txt', tarfile.REGTYPE, b'zulu'),
        ])
        self.dest = self.path('dest')
        os.mkdir(self.dest)

    def test_extract_file(self):
        archiver.new_tar().extract(self.archive, 'top/a/c.txt', self.dest)
        self.assertEqual(['c.txt'], os.listdir(self.dest))
        self.assertEqual(b'charlie', _read(os.path.join(self.dest, 'c.txt')))

    def test_extract_directory(self):
        RecordingSource.seen = []
        with mock.patch('tarstrap.archiver.ArchiveSource', RecordingSource):
            archiver.new_tar().extract(self.archive, 'top/a/', self.dest)

        self.assertEqual(['a'], os.listdir(self.dest))
        self.assertEqual(
            b'echo', _read(os.path.join(self.dest, 'a', 'd', 'e.txt')))
        self.assertEqual(
            b'charlie', _read(os.path.join(self.dest, 'a', 'c.txt')))

        # The walk stops at the first entry after the subtree
        self.assertIn('top/y.txt', RecordingSource.seen)
        self.assertNotIn('top/z.txt', RecordingSource.seen)

    def test_extract_directory_without_header(self):
        out = self.path('noheader.tar')
        _make_archive(out, [('top/a/c.txt', tarfile.REGTYPE, b'charlie')])
        archiver.new_tar().extract(out, 'top/a', self.dest)
        self.assertEqual(
            b'charlie', _read(os.path.join(self.dest, 'a', 'c.txt')))

    def test_extract_file_failure_still_stops(self):
        with open(os.path.join(self.dest, 'c.txt'), 'wb') as f:
            f.write(b'old')
        logger = mock.MagicMock()
        RecordingSource.seen = []
        with mock.patch('tarstrap.archiver.ArchiveSource', RecordingSource):
            archiver.new_tar(continue_on_error=True, logger=logger).extract(
                self.archive, 'top/a/c.txt', self.dest)

        self.assertEqual(1, logger.error.call_count)
        self.assertEqual(['c.txt'], os.listdir(self.dest))
        self.assertEqual(b'old', _read(os.path.join(self.dest, 'c.txt')))
        self.assertNotIn('top/y.txt', RecordingSource.seen)

    def test_extract_missing(self):
        with self.assertRaises(exceptions.EntryNotFoundError):
            archiver.new_tar().extract(self.archive, 'top/nope', self.dest)

    def test_extract_hardlink_inside_directory(self):
        out = self.path('links.tar')
        _make_archive(out, [
            ('top/a/c.txt', tarfile.REGTYPE, b'charlie'),
            ('top/a/h.txt', tarfile.LNKTYPE, 'top/a/c.txt'),
        ])
        archiver.new_tar().extract(out, 'top/a', self.dest)
        self.assertTrue(os.path.samefile(
            os.path.join(self.dest, 'a', 'c.txt'),
            os.path.join(self.dest, 'a', 'h.txt')))


class TestUnarchiveSafety(ArchiverTestCase):
    def setUp(self):
        super().setUp()
        self.dest = self.path('box', 'dest')
        os.makedirs(self.dest)
        self.tar = archiver.new_tar(continue_on_error=True,
                                    logger=mock.MagicMock())

    def test_symlink_escape(self):
        out = self.path('evil.tar')
        _make_archive(out, [('evil', tarfile.SYMTYPE, '../../etc')])
        with self.assertRaises(exceptions.PathEscapeError):
            self.tar.unarchive(out, self.dest)
        self.assertFalse(os.path.lexists(os.path.join(self.dest, 'evil')))

    def test_hardlink_escape(self):
        _write(self.path('box', 'secret'), b'secret')
        out = self.path('evil.tar')
        _make_archive(out, [('h', tarfile.LNKTYPE, '../secret')])
        with self.assertRaises(exceptions.PathEscapeError):
            self.tar.unarchive(out, self.dest)
        self.assertFalse(os.path.lexists(os.path.join(self.dest, 'h')))

    def test_parent_reference_escape(self):
        out = self.path('evil.tar')
        _make_archive(out, [('../escape.txt', tarfile.REGTYPE, b'x')])
        with self.assertRaises(exceptions.PathEscapeError):
            self.tar.unarchive(out, self.dest)
        self.assertFalse(os.path.exists(self.path('box', 'escape.txt')))

    def test_write_through_contained_symlink(self):
        out = self.path('evil.tar')
        _make_archive(out, [('inner', tarfile.DIRTYPE, None),
                            ('link', tarfile.SYMTYPE, 'inner'),
                            ('link/f.txt', tarfile.REGTYPE, b'ok')])
        self.tar.unarchive(out, self.dest)
        self.assertEqual(
            b'ok', _read(os.path.join(self.dest, 'inner', 'f.txt')))

    def test_unknown_type_is_fatal(self):
        out = self.path('odd.tar')
        _make_archive(out, [('odd', b'Z', None),
                            ('fine.txt', tarfile.REGTYPE, b'x')])
        with self.assertRaises(exceptions.UnknownEntryTypeError):
            self.tar.unarchive(out, self.dest)

    def test_devices_become_empty_files(self):
        out = self.path('dev.tar')
        _make_archive(out, [('null', tarfile.CHRTYPE, None),
                            ('pipe', tarfile.FIFOTYPE, None)])
        archiver.new_tar().unarchive(out, self.dest)
        for name in ('null', 'pipe'):
            path = os.path.join(self.dest, name)
            self.assertTrue(os.path.isfile(path))
            self.assertEqual(0, os.path.getsize(path))


class TestOverwrite(ArchiverTestCase):
    def setUp(self):
        super().setUp()
        self.archive = self.path('in.tar')
        _make_archive(self.archive, [('a.txt', tarfile.REGTYPE, b'new'),
                                     ('b.txt', tarfile.REGTYPE, b'bravo')])
        self.dest = self.path('dest')
        os.mkdir(self.dest)
        _write(os.path.join(self.dest, 'a.txt'), b'old')

    def test_refused(self):
        with self.assertRaises(exceptions.OverwriteError):
            archiver.new_tar().unarchive(self.archive, self.dest)
        self.assertEqual(b'old', _read(os.path.join(self.dest, 'a.txt')))

    def test_continue_on_error(self):
        logger = mock.MagicMock()
        archiver.new_tar(continue_on_error=True, logger=logger).unarchive(
            self.archive, self.dest)
        self.assertEqual(1, logger.error.call_count)
        self.assertEqual(b'old', _read(os.path.join(self.dest, 'a.txt')))
        self.assertEqual(b'bravo', _read(os.path.join(self.dest, 'b.txt')))

    def test_allowed(self):
        archiver.new_tar(overwrite_existing=True).unarchive(
            self.archive, self.dest)
        self.assertEqual(b'new', _read(os.path.join(self.dest, 'a.txt')))

    def test_existing_symlink_is_replaced_not_followed(self):
        _write(self.path('victim'), b'victim')
        os.symlink(self.path('victim'), os.path.join(self.dest, 'b.txt'))
        archiver.new_tar(overwrite_existing=True).unarchive(
            self.archive, self.dest)
        self.assertEqual(b'victim', _read(self.path('victim')))
        self.assertFalse(os.path.islink(os.path.join(self.dest, 'b.txt')))


class TestWalk(ArchiverTestCase):
    def setUp(self):
        super().setUp()
        self.archive = self.path('in.tar')
        _make_archive(self.archive, [('a.txt', tarfile.REGTYPE, b'a'),
                                     ('b.txt', tarfile.REGTYPE, b'b'),
                                     ('c.txt', tarfile.REGTYPE, b'c')])

    def test_content_is_readable(self):
        contents = []
        archiver.new_tar().walk(
            self.archive, lambda ent: contents.append(ent.content.read()))
        self.assertEqual([b'a', b'b', b'c'], contents)

    def test_stop_walk(self):
        names = []

        def visitor(ent):
            names.append(ent.name)
            if ent.name == 'b.txt':
                raise exceptions.StopWalk()

        archiver.new_tar().walk(self.archive, visitor)
        self.assertEqual(['a.txt', 'b.txt'], names)

    def test_visitor_error(self):
        def visitor(ent):
            raise ValueError('bad visitor')

        with self.assertRaises(ValueError):
            archiver.new_tar().walk(self.archive, visitor)

    def test_visitor_error_continue(self):
        names = []

        def visitor(ent):
            names.append(ent.name)
            raise ValueError('bad visitor')

        logger = mock.MagicMock()
        archiver.new_tar(continue_on_error=True, logger=logger).walk(
            self.archive, visitor)
        self.assertEqual(['a.txt', 'b.txt', 'c.txt'], names)
        self.assertEqual(3, logger.error.call_count)

    def test_nothing_is_written(self):
        before = sorted(os.listdir(self.tmp))
        archiver.new_tar().walk(self.archive, lambda ent: None)
        self.assertEqual(before, sorted(os.listdir(self.tmp)))


class TestPackErrors(ArchiverTestCase):
    def setUp(self):
        super().setUp()
        os.mkdir(self.path('src'))
        _write(self.path('src', 'bad.txt'), b'bad')
        _write(self.path('src', 'good.txt'), b'good')

    def test_stops(self):
        with self.assertRaises(PermissionError):
            archiver.new_tar(fs=FailingFilesystem()).archive(
                [self.path('src')], self.path('out.tar'))

    def test_continue_on_error(self):
        logger = mock.MagicMock()
        archiver.new_tar(fs=FailingFilesystem(), continue_on_error=True,
                         logger=logger).archive(
            [self.path('src')], self.path('out.tar'))
        self.assertEqual(1, logger.error.call_count)
        with tarfile.open(self.path('out.tar')) as tar:
            self.assertEqual(['src', 'src/good.txt'], tar.getnames())

    def test_missing_source(self):
        with self.assertRaises(FileNotFoundError):
            archiver.new_tar().archive(
                [self.path('missing')], self.path('out.tar'))

    def test_read_failure_mid_file(self):
        _write(self.path('src', 'flaky.txt'), b'f' * 40000)
        logger = mock.MagicMock()
        archiver.new_tar(fs=FlakyFilesystem(), continue_on_error=True,
                         logger=logger).archive(
            [self.path('src')], self.path('out.tar'))
        self.assertEqual(1, logger.error.call_count)

        # The failed member keeps its declared size, so later members
        # are still where the headers say they are.
        with tarfile.open(self.path('out.tar')) as tar:
            self.assertEqual(
                ['src', 'src/bad.txt', 'src/flaky.txt', 'src/good.txt'],
                tar.getnames())
            self.assertEqual(40000, tar.getmember('src/flaky.txt').size)
            self.assertEqual(
                b'good', tar.extractfile('src/good.txt').read())

    def test_unreadable_file_is_not_a_link_target(self):
        os.link(self.path('src', 'bad.txt'), self.path('src', 'other.txt'))
        logger = mock.MagicMock()
        archiver.new_tar(fs=FailingFilesystem(), continue_on_error=True,
                         logger=logger).archive(
            [self.path('src')], self.path('out.tar'))
        self.assertEqual(1, logger.error.call_count)

        with tarfile.open(self.path('out.tar')) as tar:
            self.assertEqual(['src', 'src/good.txt', 'src/other.txt'],
                             tar.getnames())
            other = tar.getmember('src/other.txt')
            self.assertTrue(other.isreg())
            self.assertEqual(b'bad', tar.extractfile(other).read())


class TestFactories(unittest.TestCase):
    def test_by_extension(self):
        self.assertEqual(
            constants.COMPRESSION_GZIP,
            archiver.by_extension('a.tgz').compression.compression_type)
        self.assertEqual(
            constants.COMPRESSION_GZIP,
            archiver.by_extension('a.tar.gz').compression.compression_type)
        self.assertEqual(
            constants.COMPRESSION_NONE,
            archiver.by_extension('a.tar').compression.compression_type)
        with self.assertRaises(exceptions.UnknownFormatError):
            archiver.by_extension('a.zip')

    def test_by_extension_options(self):
        tar = archiver.by_extension('a.tar.gz', compression_level=9,
                                    overwrite_existing=True)
        self.assertEqual(9, tar.compression.level)
        self.assertTrue(tar.overwrite_existing)

    def test_by_header_unknown(self):
        with self.assertRaises(exceptions.UnknownFormatError):
            archiver.by_header(io.BytesIO(b'x' * 600))

    def test_defaults(self):
        self.assertTrue(archiver.default_tar().mkdir_all)
        self.assertEqual(('.tar.gz', '.tgz'),
                         archiver.default_targz().extensions)
        self.assertFalse(archiver.new_tar().continue_on_error)
