"""Unit tests for the watch and mutate CLI modules."""

from __future__ import annotations

import json
from argparse import Namespace
from pathlib import Path
from unittest.mock import patch

import pytest

from resourcesync.cli import mutate as mutate_cli
from resourcesync.cli import watch as watch_cli
from resourcesync.config.settings import Settings
from resourcesync.models.cache import EntryState, ErrorInfo, ResourceState
from resourcesync.sync.client import SyncClient
from resourcesync.utils.errors import TransportError
from tests.conftest import FakeTransport


# ======================================================================
# Shared helpers
# ======================================================================


def _client_factory(transport: FakeTransport):
    """Build a SyncClient replacement that always uses *transport*."""

    def factory(settings=None, **kwargs) -> SyncClient:  # noqa: ANN001
        return SyncClient(transport=transport, settings=settings)

    return factory


def _watch_args(tmp_path: Path, **overrides) -> Namespace:
    defaults = {
        "path": "/items",
        "method": "GET",
        "interval_ms": 20,
        "count": 1,
        "base_url": "http://testserver",
        "config": str(tmp_path / "absent.yaml"),
        "path_param": None,
        "query": None,
        "quiet": True,
    }
    defaults.update(overrides)
    return Namespace(**defaults)


# ======================================================================
# Argument helpers
# ======================================================================


class TestParsePairs:
    def test_single_and_repeated_names(self) -> None:
        result = watch_cli.parse_pairs(["a=1", "b=x", "a=2", "a=3"], "--query")
        assert result == {"a": ["1", "2", "3"], "b": "x"}

    def test_value_may_contain_equals(self) -> None:
        assert watch_cli.parse_pairs(["expr=a=b"], "--query") == {"expr": "a=b"}

    def test_missing_separator_raises(self) -> None:
        with pytest.raises(ValueError, match="--path-param"):
            watch_cli.parse_pairs(["id"], "--path-param")

    def test_none_is_empty(self) -> None:
        assert watch_cli.parse_pairs(None, "--query") == {}


class TestBuildParams:
    def test_sections_are_only_present_when_given(self, tmp_path: Path) -> None:
        args = _watch_args(tmp_path, path_param=["id=7"])
        assert watch_cli.build_params(args) == {"path": {"id": "7"}}

        args = _watch_args(tmp_path)
        assert watch_cli.build_params(args) == {}

    def test_overrides_replace_base_url_and_quiet_level(self, tmp_path: Path) -> None:
        settings = watch_cli.apply_overrides(_watch_args(tmp_path, base_url="http://api:9000/"))
        assert isinstance(settings, Settings)
        assert settings.base_url == "http://api:9000"
        assert settings.log_level == "WARNING"


class TestParser:
    def test_watch_defaults(self) -> None:
        args = watch_cli._build_parser().parse_args(["/logical-things"])
        assert args.method == "GET"
        assert args.interval_ms == 1000
        assert args.count == 0
        assert args.quiet is False

    def test_mutate_arguments(self) -> None:
        args = mutate_cli._build_parser().parse_args(
            ["DELETE", "/things/{id}", "--path-param", "id=7", "-q"]
        )
        assert args.method == "DELETE"
        assert args.path_param == ["id=7"]
        assert args.data is None
        assert args.quiet is True

    def test_non_positive_interval_exits(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            watch_cli.main(["/items", "--interval-ms", "0"])
        assert exc_info.value.code == 2


class TestFormatState:
    def test_value_is_printed_as_json(self) -> None:
        state = ResourceState(data={"a": 1}, is_loading=False, state=EntryState.FRESH)
        assert json.loads(watch_cli.format_state(state)) == {"a": 1}

    def test_failure_prints_error(self) -> None:
        state = ResourceState(
            error=ErrorInfo(type="TransportError", message="down", status_code=503),
            is_loading=False,
            state=EntryState.FAILED,
        )
        assert json.loads(watch_cli.format_state(state))["error"]["status_code"] == 503


# ======================================================================
# Runners
# ======================================================================


class TestWatchRun:
    @pytest.mark.asyncio
    async def test_prints_fresh_values(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        transport = FakeTransport()
        transport.route("GET", "/items", [1, 2])

        with patch("resourcesync.sync.client.SyncClient", _client_factory(transport)), \
             patch("resourcesync.cli.watch.configure_logging"):
            exit_code = await watch_cli._run(_watch_args(tmp_path))

        assert exit_code == 0
        assert json.loads(capsys.readouterr().out) == [1, 2]
        assert transport.closed is True

    @pytest.mark.asyncio
    async def test_prints_failures(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        transport = FakeTransport()
        transport.route("GET", "/items", TransportError("down", status_code=503))

        with patch("resourcesync.sync.client.SyncClient", _client_factory(transport)), \
             patch("resourcesync.cli.watch.configure_logging"):
            exit_code = await watch_cli._run(_watch_args(tmp_path))

        assert exit_code == 0
        assert json.loads(capsys.readouterr().out)["error"]["status_code"] == 503

    @pytest.mark.asyncio
    async def test_invalid_shape_returns_2(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        transport = FakeTransport()

        with patch("resourcesync.sync.client.SyncClient", _client_factory(transport)), \
             patch("resourcesync.cli.watch.configure_logging"):
            exit_code = await watch_cli._run(_watch_args(tmp_path, path="/items/{id}"))

        assert exit_code == 2
        assert "id" in capsys.readouterr().err
        assert transport.calls == []


class TestMutateRun:
    @pytest.mark.asyncio
    async def test_prints_response(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        transport = FakeTransport()
        transport.route("POST", "/items", lambda query, body: {"created": body})
        args = _watch_args(tmp_path, method="POST", data='{"name": "x"}')

        with patch("resourcesync.sync.client.SyncClient", _client_factory(transport)), \
             patch("resourcesync.cli.mutate.configure_logging"):
            exit_code = await mutate_cli._run(args)

        assert exit_code == 0
        assert json.loads(capsys.readouterr().out) == {"created": {"name": "x"}}

    @pytest.mark.asyncio
    async def test_failure_returns_1(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        transport = FakeTransport()
        transport.route("POST", "/items", TransportError("conflict", status_code=409))
        args = _watch_args(tmp_path, method="POST", data=None)

        with patch("resourcesync.sync.client.SyncClient", _client_factory(transport)), \
             patch("resourcesync.cli.mutate.configure_logging"):
            exit_code = await mutate_cli._run(args)

        assert exit_code == 1
        assert "conflict" in capsys.readouterr().err

    def test_invalid_json_exits_2(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        argv = ["POST", "/items", "--data", "{broken", "--config", str(tmp_path / "absent.yaml")]
        with patch("resourcesync.cli.mutate.configure_logging"), \
             pytest.raises(SystemExit) as exc_info:
            mutate_cli.main(argv)
        assert exc_info.value.code == 2
        assert "not valid JSON" in capsys.readouterr().err
