import importlib.util
import io
from pathlib import Path

import pytest

CLI_PATH = Path(__file__).resolve().parent.parent / "aoc.py"


@pytest.fixture(scope="module")
def cli():
    # aoc.py shares its name with the package, so load it from its path
    spec = importlib.util.spec_from_file_location("aoc_cli_under_test", CLI_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def feed(monkeypatch, cli, lines):
    pending = iter(lines)

    async def fake_ainput(prompt):
        return next(pending, "")

    monkeypatch.setattr(cli, "ainput", fake_ainput)


@pytest.mark.asyncio
async def test_repl_echoes_values_and_keeps_state(cli, monkeypatch, capsys):
    feed(monkeypatch, cli, ["x = 2\n", "x * 21\n", '"abc"\n', "exit\n"])
    assert await cli.main([]) == 0
    out = capsys.readouterr().out
    assert out.startswith("AOC REPL v0.1\nType 'exit' or press Ctrl+D to quit.\n")
    assert "42\n" in out
    assert "abc\n" in out
    assert "Exiting." not in out


@pytest.mark.asyncio
async def test_repl_prints_output_but_not_null(cli, monkeypatch, capsys):
    feed(monkeypatch, cli, ['print("hi")\n', "null\n", "exit\n"])
    await cli.main([])
    out = capsys.readouterr().out
    assert out.endswith("hi\n")
    assert "null" not in out


@pytest.mark.asyncio
async def test_repl_reports_errors_and_continues(cli, monkeypatch, capsys):
    feed(monkeypatch, cli, ["nope\n", "\n", "[1, 'a']\n"])
    assert await cli.main([]) == 0
    captured = capsys.readouterr()
    assert "Error on line 1, col 1: RuntimeError: undefined variable 'nope'" in captured.err
    assert "[1, 'a']\n" in captured.out
    assert captured.out.endswith("\nExiting.\n")


@pytest.mark.asyncio
async def test_script_mode_success(cli, tmp_path, capsys):
    script = tmp_path / "ok.aoc"
    script.write_text('print("done")', encoding="utf-8")
    assert await cli.main([str(script)]) == 0
    assert "done\n" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_script_mode_runtime_error(cli, tmp_path, capsys):
    script = tmp_path / "bad.aoc"
    script.write_text("1 / 0", encoding="utf-8")
    assert await cli.run_script_file(str(script)) == 1
    assert "Error on line 1, col 1: RuntimeError: division by zero" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_script_mode_missing_file(cli, tmp_path, capsys):
    missing = tmp_path / "missing.aoc"
    assert await cli.run_script_file(str(missing)) == 1
    assert f"Error: file not found: {missing}" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_repl_input_reads_following_lines(cli, monkeypatch, capsys):
    monkeypatch.setattr("sys.stdin", io.StringIO("typed line\n"))
    feed(monkeypatch, cli, ["input()\n", "exit\n"])
    await cli.main([])
    assert "typed line\n" in capsys.readouterr().out


def test_run_reports_internal_errors_with_failure_status(cli, monkeypatch, capsys):
    async def crashing_main(argv=None):
        raise RuntimeError("boom")

    monkeypatch.setattr(cli, "configure_recursion", lambda: None)
    monkeypatch.setattr(cli, "main", crashing_main)
    assert cli.run([]) == 1
    err = capsys.readouterr().err
    assert "Internal error:" in err
    assert "RuntimeError: boom" in err


def test_run_returns_main_status(cli, monkeypatch):
    async def failing_main(argv=None):
        return 1

    monkeypatch.setattr(cli, "configure_recursion", lambda: None)
    monkeypatch.setattr(cli, "main", failing_main)
    assert cli.run(["script.aoc"]) == 1
