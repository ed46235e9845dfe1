"""Tests for the directory walker."""
import pytest

from mtpup.exceptions import (
    CallbackAbort,
    DeviceCommunicationError,
    PathNotFoundError,
)
from mtpup.models import EntryInfo
from mtpup.services.memory_session import MemoryDeviceSession
from mtpup.use_cases.walk import WalkDirectoryUseCase

SID = 0x00010001


def _build_session() -> MemoryDeviceSession:
    """
    /Download
        a.txt, .hidden, .DS_Store, ._junk
        Music/  song.mp3, .nomedia, Sub/deep.txt
        Photos/ pic.jpg
    """
    session = MemoryDeviceSession()
    session.add_file(SID, "/Download/a.txt", b"abc")
    session.add_file(SID, "/Download/.hidden", b"h")
    session.add_file(SID, "/Download/.DS_Store", b"ds")
    session.add_file(SID, "/Download/._junk", b"j")
    session.add_file(SID, "/Download/Music/song.mp3", b"x" * 10)
    session.add_file(SID, "/Download/Music/.nomedia")
    session.add_file(SID, "/Download/Music/Sub/deep.txt", b"deep")
    session.add_file(SID, "/Download/Photos/pic.jpg", b"p" * 7)
    return session


class _Recorder:
    def __init__(self, stop_at=None, raise_at=None):
        self.entries = []
        self._stop_at = stop_at
        self._raise_at = raise_at

    def __call__(self, entry: EntryInfo):
        self.entries.append(entry)
        if self._raise_at is not None and len(self.entries) == self._raise_at:
            raise RuntimeError("visitor exploded")
        if self._stop_at is not None and len(self.entries) == self._stop_at:
            return False
        return None

    @property
    def paths(self):
        return [e.path for e in self.entries]


class TestNonRecursiveWalk:
    @pytest.mark.asyncio
    async def test_lists_immediate_children_only(self):
        visitor = _Recorder()
        async with _build_session() as session:
            result = await WalkDirectoryUseCase().execute(
                session, SID, "/Download", recursive=False, visit=visitor
            )

        assert result.success
        assert result.root.path == "/Download"
        assert sorted(visitor.paths) == [
            "/Download/.hidden",
            "/Download/Music",
            "/Download/Photos",
            "/Download/a.txt",
        ]
        assert result.total_files == 2
        assert result.total_dirs == 2
        assert len(visitor.entries) == result.total_files + result.total_dirs

    @pytest.mark.asyncio
    async def test_counts_match_visitor_kinds(self):
        visitor = _Recorder()
        async with _build_session() as session:
            result = await WalkDirectoryUseCase().execute(session, SID, "/Download", visit=visitor)

        assert result.total_files == sum(1 for e in visitor.entries if not e.is_dir)
        assert result.total_dirs == sum(1 for e in visitor.entries if e.is_dir)

    @pytest.mark.asyncio
    async def test_disallowed_entries_kept_when_not_skipped(self):
        visitor = _Recorder()
        async with _build_session() as session:
            result = await WalkDirectoryUseCase().execute(
                session, SID, "/Download", skip_disallowed=False, visit=visitor
            )

        assert "/Download/.DS_Store" in visitor.paths
        assert "/Download/._junk" in visitor.paths
        assert result.total_files == 4

    @pytest.mark.asyncio
    async def test_path_is_normalized(self):
        async with _build_session() as session:
            result = await WalkDirectoryUseCase().execute(session, SID, "Download/")
        assert result.success
        assert result.root.path == "/Download"

    @pytest.mark.asyncio
    async def test_storage_root(self):
        visitor = _Recorder()
        async with _build_session() as session:
            result = await WalkDirectoryUseCase().execute(session, SID, "/", visit=visitor)
        assert visitor.paths == ["/Download"]
        assert result.total_dirs == 1


class TestRecursiveWalk:
    @pytest.mark.asyncio
    async def test_counts_whole_tree(self):
        session = MemoryDeviceSession()
        session.add_file(SID, "/Root/a/b/one.txt", b"1")
        session.add_file(SID, "/Root/a/two.txt", b"22")
        session.add_file(SID, "/Root/c/three.txt", b"333")
        session.add_folder(SID, "/Root/empty")

        visitor = _Recorder()
        async with session:
            result = await WalkDirectoryUseCase().execute(
                session, SID, "/Root", recursive=True, visit=visitor
            )

        assert result.total_files == 3
        assert result.total_dirs == 4  # a, a/b, c, empty
        assert "/Root" not in visitor.paths

    @pytest.mark.asyncio
    async def test_containers_visited_before_descendants(self):
        visitor = _Recorder()
        async with _build_session() as session:
            await WalkDirectoryUseCase().execute(
                session, SID, "/Download", recursive=True, visit=visitor
            )

        paths = visitor.paths
        assert paths.index("/Download/Music") < paths.index("/Download/Music/song.mp3")
        assert paths.index("/Download/Music/Sub") < paths.index("/Download/Music/Sub/deep.txt")

    @pytest.mark.asyncio
    async def test_skip_hidden_reduces_counts(self):
        async with _build_session() as session:
            walker = WalkDirectoryUseCase()
            shown = _Recorder()
            full = await walker.execute(session, SID, "/Download", recursive=True, visit=shown)
            filtered_visitor = _Recorder()
            filtered = await walker.execute(
                session, SID, "/Download", recursive=True, skip_hidden=True, visit=filtered_visitor
            )

        assert full.total_files == 6
        assert full.total_dirs == 3
        assert filtered.total_files == 4
        assert filtered.total_dirs == 3
        assert not any(e.name.startswith(".") for e in filtered_visitor.entries)

    @pytest.mark.asyncio
    async def test_excluded_container_not_descended(self):
        session = MemoryDeviceSession()
        session.add_file(SID, "/Root/.git/config", b"x")
        session.add_file(SID, "/Root/__MACOSX/meta", b"x")
        session.add_file(SID, "/Root/keep.txt", b"x")

        visitor = _Recorder()
        async with session:
            result = await WalkDirectoryUseCase().execute(
                session, SID, "/Root", recursive=True, skip_hidden=True, visit=visitor
            )

        assert visitor.paths == ["/Root/keep.txt"]
        assert result.total_files == 1
        assert result.total_dirs == 0


class TestWalkAbort:
    @pytest.fixture
    def five_files(self):
        session = MemoryDeviceSession()
        for i in range(1, 6):
            session.add_file(SID, f"/Five/e{i}.txt", b"x")
        return session

    @pytest.mark.asyncio
    async def test_visitor_stop_on_third_of_five(self, five_files):
        visitor = _Recorder(stop_at=3)
        async with five_files as session:
            result = await WalkDirectoryUseCase().execute(session, SID, "/Five", visit=visitor)

        assert len(visitor.entries) == 3
        assert isinstance(result.error, CallbackAbort)
        assert not result.success

    @pytest.mark.asyncio
    async def test_visitor_exception_aborts_and_chains(self, five_files):
        visitor = _Recorder(raise_at=3)
        async with five_files as session:
            result = await WalkDirectoryUseCase().execute(session, SID, "/Five", visit=visitor)

        assert len(visitor.entries) == 3
        assert isinstance(result.error, CallbackAbort)
        assert isinstance(result.error.__cause__, RuntimeError)
        with pytest.raises(CallbackAbort):
            result.raise_for_error()

    @pytest.mark.asyncio
    async def test_async_visitor(self, five_files):
        seen = []

        async def visit(entry):
            seen.append(entry.name)
            return len(seen) < 2

        async with five_files as session:
            result = await WalkDirectoryUseCase().execute(session, SID, "/Five", visit=visit)

        assert len(seen) == 2
        assert isinstance(result.error, CallbackAbort)


class TestWalkFailures:
    @pytest.mark.asyncio
    async def test_missing_root(self):
        visitor = _Recorder()
        async with _build_session() as session:
            result = await WalkDirectoryUseCase().execute(session, SID, "/Nope", visit=visitor)

        assert isinstance(result.error, PathNotFoundError)
        assert result.root is None
        assert visitor.entries == []

    @pytest.mark.asyncio
    async def test_root_is_a_file(self):
        async with _build_session() as session:
            result = await WalkDirectoryUseCase().execute(session, SID, "/Download/a.txt")
        assert isinstance(result.error, PathNotFoundError)

    @pytest.mark.asyncio
    async def test_device_error_propagates(self):
        session = _build_session()
        session.fail_listing = "/Download/Music"
        async with session:
            result = await WalkDirectoryUseCase().execute(
                session, SID, "/Download", recursive=True
            )
        assert isinstance(result.error, DeviceCommunicationError)
