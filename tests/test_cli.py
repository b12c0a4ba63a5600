"""Tests for the command-line interface."""

import asyncio
import io
import logging
import threading

import pytest
from conftest import ControlledFetcher, make_registry, settle
from typer.testing import CliRunner

import tile_prefetch.cli.app as cli_app
from tile_prefetch import __version__
from tile_prefetch.__main__ import _error_context
from tile_prefetch.exceptions import ConfigurationError, UnknownLayerError
from tile_prefetch.models.layers import LayerId

runner = CliRunner()

BBOX = "52.50,13.35,52.52,13.40"


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    path = tmp_path / "config" / "config.ini"
    monkeypatch.setattr(cli_app, "CONFIG_FILE", path)
    return path


def _init(tmp_path):
    return runner.invoke(
        cli_app.app,
        [
            "init",
            "--bbox",
            BBOX,
            "--cache-dir",
            str(tmp_path / "tiles"),
            "--min-zoom",
            "10",
            "--max-zoom",
            "11",
        ],
    )


class TestCli:
    """Tests for the tile-prefetch commands."""

    def test_version(self):
        result = runner.invoke(cli_app.app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_init_writes_config(self, config_file, tmp_path):
        result = _init(tmp_path)
        assert result.exit_code == 0, result.output
        assert config_file.is_file()
        assert "bbox" in config_file.read_text(encoding="utf-8")

    def test_init_rejects_bad_bbox(self, config_file):
        result = runner.invoke(cli_app.app, ["init", "--bbox", "1,2,3"])
        assert result.exit_code == 1
        assert not config_file.exists()

    def test_validate_after_init(self, config_file, tmp_path):
        _init(tmp_path)
        result = runner.invoke(cli_app.app, ["validate"])
        assert result.exit_code == 0, result.output
        assert "Validated" in result.output

    def test_validate_without_config(self, config_file):
        result = runner.invoke(cli_app.app, ["validate"])
        assert result.exit_code == 1

    def test_plan_lists_both_layers(self, config_file, tmp_path):
        _init(tmp_path)
        result = runner.invoke(cli_app.app, ["plan"])
        assert result.exit_code == 0, result.output
        assert "aerial" in result.output
        assert "mapnik" in result.output
        assert "tiles needed" in result.output

    def test_download_rejects_unknown_layer(self, config_file, tmp_path):
        _init(tmp_path)
        result = runner.invoke(cli_app.app, ["download", "--layer", "terrain"])
        assert result.exit_code == 1
        assert "Unknown tile layer" in result.output

    def test_purge_cache(self, config_file, tmp_path):
        _init(tmp_path)
        tile = tmp_path / "tiles" / "mapnik" / "10" / "550" / "335.png"
        tile.parent.mkdir(parents=True)
        tile.write_bytes(b"tile")

        result = runner.invoke(cli_app.app, ["purge-cache", "--all", "--force"])

        assert result.exit_code == 0, result.output
        assert not tile.exists()

    def test_interrupted_download_prints_summary_and_exits_cleanly(
        self, config_file, tmp_path, monkeypatch
    ):
        _init(tmp_path)

        async def _interrupted(self, registry, layers, quit_event=None):
            raise KeyboardInterrupt

        monkeypatch.setattr(cli_app.PrefetchManager, "run", _interrupted)
        result = runner.invoke(cli_app.app, ["download"])

        assert result.exit_code == 0, result.output
        assert "Session Summary" in result.output
        assert "Downloads stopped by user" in result.output


class TestCommandReader:
    """The interactive controller reading toggle commands from stdin."""

    @pytest.mark.asyncio
    async def test_toggles_layers_then_quits(self, monkeypatch):
        monkeypatch.setattr(cli_app.sys, "stdin", io.StringIO("a\n\nm\nq\nm\n"))
        aerial, mapnik = ControlledFetcher(), ControlledFetcher()
        registry = make_registry(["a1", "a2"], ["m1"], aerial, mapnik)
        quit_event = asyncio.Event()

        reader = cli_app._start_command_reader(
            registry, asyncio.get_running_loop(), quit_event
        )
        await asyncio.wait_for(quit_event.wait(), timeout=2)
        await settle()
        reader.join(timeout=2)

        assert not reader.is_alive()
        assert registry.queue(LayerId.AERIAL).running
        assert registry.queue(LayerId.MAPNIK).running
        assert registry.active_count == 2
        assert aerial.calls == ["a2"]
        assert mapnik.calls == ["m1"]

    @pytest.mark.asyncio
    async def test_long_names_and_unknown_commands(self, monkeypatch, caplog):
        monkeypatch.setattr(
            cli_app.sys, "stdin", io.StringIO("Aerial\nsatellite\naerial\n")
        )
        registry = make_registry(["a1"], aerial_fetcher=ControlledFetcher())
        quit_event = asyncio.Event()

        with caplog.at_level(logging.WARNING, logger="tile_prefetch"):
            reader = cli_app._start_command_reader(
                registry, asyncio.get_running_loop(), quit_event
            )
            # EOF ends the session like 'q'
            await asyncio.wait_for(quit_event.wait(), timeout=2)
            await settle()
        reader.join(timeout=2)

        assert registry.queue(LayerId.AERIAL).running is False
        assert registry.active_count == 0
        assert "Unknown command 'satellite'" in caplog.text

    @pytest.mark.asyncio
    async def test_stops_reading_once_session_is_over(self, monkeypatch):
        monkeypatch.setattr(cli_app.sys, "stdin", io.StringIO("a\nm\n"))
        registry = make_registry(["a1"], ["m1"], ControlledFetcher(), ControlledFetcher())
        quit_event = asyncio.Event()
        quit_event.set()

        reader = cli_app._start_command_reader(
            registry, asyncio.get_running_loop(), quit_event
        )
        reader.join(timeout=2)
        await settle()

        assert not reader.is_alive()
        assert registry.active_count == 0

    def test_closed_loop_ends_reader_quietly(self, monkeypatch):
        monkeypatch.setattr(cli_app.sys, "stdin", io.StringIO("a\nq\n"))
        loop = asyncio.new_event_loop()
        loop.close()
        registry = make_registry(["a1"])
        errors = []
        monkeypatch.setattr(threading, "excepthook", errors.append)

        reader = cli_app._start_command_reader(registry, loop, asyncio.Event())
        reader.join(timeout=2)

        assert not reader.is_alive()
        assert errors == []
        assert registry.active_count == 0


class TestErrorContext:
    def test_configuration_errors_name_the_config_file(self):
        context = _error_context(ConfigurationError("bad"))
        assert context == {"config_file": str(cli_app.CONFIG_FILE)}

    def test_other_errors(self):
        assert _error_context(UnknownLayerError("terrain")) is None
        assert _error_context(RuntimeError("boom")) == {"type": "Unexpected"}
