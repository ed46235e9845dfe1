"""Tests for callback and device path helpers."""
import pytest

from mtpup.exceptions import CallbackAbort, ProgressCallbackError
from mtpup.utils import (
    invoke_callback,
    join_device_path,
    normalize_device_path,
    parent_and_name,
    split_device_path,
)


class TestInvokeCallback:
    @pytest.mark.asyncio
    async def test_none_callback(self):
        assert await invoke_callback(None, 1) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("outcome", [None, True, 0, "keep going"])
    async def test_continue(self, outcome):
        assert await invoke_callback(lambda value: outcome, 1) is None

    @pytest.mark.asyncio
    async def test_false_stops(self):
        error = await invoke_callback(lambda value: False, 1, label="visitor")
        assert isinstance(error, CallbackAbort)
        assert "visitor requested stop" in str(error)

    @pytest.mark.asyncio
    async def test_async_callback(self):
        async def stop(value):
            return False

        assert isinstance(await invoke_callback(stop, 1), CallbackAbort)

    @pytest.mark.asyncio
    async def test_exception_is_wrapped(self):
        def explode(value):
            raise KeyError(value)

        error = await invoke_callback(explode, "x", error_cls=ProgressCallbackError)
        assert isinstance(error, ProgressCallbackError)
        assert isinstance(error.__cause__, KeyError)

    @pytest.mark.asyncio
    async def test_raised_abort_of_requested_type_is_returned(self):
        abort = ProgressCallbackError("user cancelled")

        def cancel(value):
            raise abort

        assert await invoke_callback(cancel, 1, error_cls=ProgressCallbackError) is abort

    @pytest.mark.asyncio
    async def test_raised_abort_is_converted(self):
        def cancel(value):
            raise CallbackAbort("user cancelled")

        error = await invoke_callback(cancel, 1, error_cls=ProgressCallbackError)
        assert isinstance(error, ProgressCallbackError)
        assert isinstance(error.__cause__, CallbackAbort)


class TestDevicePaths:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("", "/"),
            ("/", "/"),
            ("Download", "/Download"),
            ("/Download/", "/Download"),
            ("//Music/./Rock//", "/Music/Rock"),
            ("/Music/../DCIM", "/DCIM"),
            ("/..", "/"),
            ("\\Download\\Sub", "/Download/Sub"),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_device_path(raw) == expected

    def test_split(self):
        assert split_device_path("/a/b/c") == ["a", "b", "c"]
        assert split_device_path(None) == []

    def test_join(self):
        assert join_device_path("/", "a.txt") == "/a.txt"
        assert join_device_path("/Download/", "a.txt") == "/Download/a.txt"

    def test_parent_and_name(self):
        assert parent_and_name("/Download/a.txt") == ("/Download", "a.txt")
        assert parent_and_name("/a.txt") == ("/", "a.txt")
        assert parent_and_name("/") == ("/", "")
