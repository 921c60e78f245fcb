"""
Tests for the carton CLI.

This test suite covers:
1. init: writing the default settings file
2. check: resolving and registering plugins
3. run --once: startup and shutdown, exit codes for failures
"""

from pathlib import Path

import pytest

from carton.cli import create_parser, main

FIXTURE_PLUGINS = Path(__file__).resolve().parents[1] / "fixtures" / "plugins"


def write_config(path: Path, plugins: list[str], plugin_directory: Path = FIXTURE_PLUGINS, extra: str = "") -> Path:
    """Write a settings file loading ``plugins`` from ``plugin_directory``."""
    names = ", ".join(f'"{name}"' for name in plugins)
    path.write_text(
        "[carton]\n"
        f'plugin_directory = "{plugin_directory.as_posix()}"\n'
        f"plugins = [{names}]\n"
        "timeout = 5\n"
        f"{extra}"
    )
    return path


class TestParser:
    """Test argument parsing."""

    def test_run_arguments(self):
        """run accepts a config file, a timeout override and --once."""
        args = create_parser().parse_args(["run", "-c", "x.toml", "--timeout", "2.5", "--once"])

        assert args.command == "run"
        assert args.config == Path("x.toml")
        assert args.timeout == 2.5
        assert args.once is True

    def test_defaults(self):
        """The settings file defaults to carton.toml."""
        args = create_parser().parse_args(["check"])

        assert args.config == Path("carton.toml")

    def test_no_command(self, capsys):
        """Without a command the help is printed."""
        assert main([]) == 0
        assert "usage: carton" in capsys.readouterr().out


class TestInit:
    """Test `carton init`."""

    def test_writes_file(self, tmp_path, capsys):
        """init writes a loadable settings file."""
        path = tmp_path / "carton.toml"

        assert main(["init", str(path)]) == 0

        assert "[carton]" in path.read_text()
        assert f"Wrote {path}" in capsys.readouterr().out

    def test_existing_file(self, tmp_path, capsys):
        """init refuses to overwrite unless forced."""
        path = tmp_path / "carton.toml"
        path.write_text("# mine\n")

        assert main(["init", str(path)]) == 1
        assert "already exists" in capsys.readouterr().err

        assert main(["init", str(path), "--force"]) == 0
        assert "[carton]" in path.read_text()


class TestCheck:
    """Test `carton check`."""

    def test_lists_plugins(self, tmp_path, capsys):
        """check registers the configured plugins without starting them."""
        config = write_config(tmp_path / "carton.toml", ["a", "b", "c"])

        assert main(["check", "-c", str(config)]) == 0

        assert capsys.readouterr().out.splitlines() == [
            "a: inactive",
            "b: inactive",
            "c: inactive",
        ]

    @pytest.mark.parametrize("name", ["missing", "broken", "invalid"])
    def test_unusable_plugin(self, tmp_path, capsys, name):
        """Missing, broken or invalid plugins exit with status 1."""
        config = write_config(tmp_path / "carton.toml", [name])

        assert main(["check", "-c", str(config)]) == 1
        assert f"Cannot use plugin '{name}'" in capsys.readouterr().err

    def test_bad_config(self, tmp_path, capsys):
        """Invalid settings exit with status 1."""
        config = tmp_path / "carton.toml"
        config.write_text("[carton]\ntimeout = \"soon\"\n")

        assert main(["check", "-c", str(config)]) == 1
        assert "Field 'timeout'" in capsys.readouterr().err

    def test_missing_config(self, tmp_path, capsys):
        """A missing settings file exits with status 1."""
        assert main(["check", "-c", str(tmp_path / "carton.toml")]) == 1
        assert "not found" in capsys.readouterr().err


class TestRun:
    """Test `carton run --once`."""

    def test_start_and_end(self, tmp_path, capsys):
        """Plugins start in dependency order and end again."""
        config = write_config(
            tmp_path / "carton.toml",
            ["a", "b", "c"],
            extra="\n[plugins.c]\nincrement_after = 0.01\n",
        )

        assert main(["run", "-c", str(config), "--once"]) == 0

        out = capsys.readouterr().out
        assert "Started: c, a, b" in out
        assert "Ended" in out

    def test_no_plugins(self, tmp_path, capsys):
        """A container without plugins starts and ends."""
        config = write_config(tmp_path / "carton.toml", [])

        assert main(["run", "-c", str(config), "--once"]) == 0
        assert "Started: no plugins" in capsys.readouterr().out

    def test_failed_start(self, tmp_path, capsys):
        """A failing plugin start exits with status 1 after ending the plugins that started."""
        plugins = tmp_path / "plugins"
        plugins.mkdir()
        (plugins / "db.py").write_text(
            "from pathlib import Path\n"
            "\n"
            "def start(container):\n"
            "    pass\n"
            "\n"
            "def end(container):\n"
            "    Path(__file__).with_name('db_ended').write_text('yes')\n"
        )
        (plugins / "api.py").write_text(
            "async def start(container):\n"
            "    await container.await_plugins('db')\n"
            "    raise RuntimeError('cannot connect')\n"
        )
        config = write_config(tmp_path / "carton.toml", ["db", "api"], plugin_directory=plugins)

        assert main(["run", "-c", str(config), "--once"]) == 1

        err = capsys.readouterr().err
        assert "failed to start" in err
        assert "api=failed" in err
        assert (plugins / "db_ended").read_text() == "yes"

    def test_timeout(self, tmp_path, capsys):
        """A plugin that never starts hits the --timeout override."""
        plugins = tmp_path / "plugins"
        plugins.mkdir()
        (plugins / "hangs.py").write_text(
            "import asyncio\n"
            "\n"
            "async def start(container):\n"
            "    await asyncio.Event().wait()\n"
        )
        config = write_config(tmp_path / "carton.toml", ["hangs"], plugin_directory=plugins)

        assert main(["run", "-c", str(config), "--once", "--timeout", "0.05"]) == 1

        err = capsys.readouterr().err
        assert "timed out" in err
        assert "hangs=pending" in err

    def test_failed_end(self, tmp_path, capsys):
        """A failing plugin end exits with status 2."""
        plugins = tmp_path / "plugins"
        plugins.mkdir()
        (plugins / "sticky.py").write_text(
            "def start(container):\n"
            "    pass\n"
            "\n"
            "def end(container):\n"
            "    raise OSError('port still bound')\n"
        )
        config = write_config(tmp_path / "carton.toml", ["sticky"], plugin_directory=plugins)

        assert main(["run", "-c", str(config), "--once"]) == 2

        err = capsys.readouterr().err
        assert "failed to shut down" in err
        assert "still running: sticky" in err
