import json
import sys
from pathlib import Path
from typing import Any

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from kaleido import kaleido_cli
from kaleido.kaleido_config import PrecedenceTable

SOURCE = "def add(a b) a+b; add(3, 4)"


def test_run_kaleido_string_prints_ir(capsys: pytest.CaptureFixture[str]) -> None:
    session = kaleido_cli.run_kaleido(SOURCE, is_string=True)
    out = capsys.readouterr().out
    assert 'define double @"add"(double %"a", double %"b")' in out
    assert session is not None
    assert session.errors == 0
    assert session.results == []


def test_run_kaleido_file_input(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    for name in ("prog.kal", "prog.ks"):
        path = tmp_path / name
        path.write_text("extern sin(x)\ndef f(x) sin(x)*2\n")
        kaleido_cli.run_kaleido(str(path))
        out = capsys.readouterr().out
        assert 'declare double @"sin"(double %"x")' in out
        assert 'define double @"f"' in out


def test_run_kaleido_rejects_other_extensions() -> None:
    with pytest.raises(ValueError, match=r"Only \.kal and \.ks files are supported\."):
        kaleido_cli.run_kaleido("example.txt")


def test_run_kaleido_missing_file(tmp_path: Path) -> None:
    with pytest.raises(OSError):
        kaleido_cli.run_kaleido(str(tmp_path / "missing.kal"))


def test_run_kaleido_execute(capsys: pytest.CaptureFixture[str]) -> None:
    session = kaleido_cli.run_kaleido(SOURCE, is_string=True, execute=True)
    out = capsys.readouterr().out
    assert "Evaluated to 7.0" in out
    assert "define double" not in out
    assert session is not None
    assert session.results == [7.0]


def test_run_kaleido_pretty(capsys: pytest.CaptureFixture[str]) -> None:
    kaleido_cli.run_kaleido(SOURCE, is_string=True, pretty=True, execute=True)
    out = capsys.readouterr().out
    assert out.index("<<< OUTPUT >>>") < out.index("Evaluated to 7.0")
    assert "LLVM IR" in out


def test_run_kaleido_writes_output_file(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    out_file = tmp_path / "out.ll"
    kaleido_cli.run_kaleido(SOURCE, is_string=True, out=str(out_file), pretty=True)
    written = out_file.read_text()
    assert written.index('define double @"add"') < written.index('define double @"__anon_expr0"()')
    assert f"(wrote to {out_file})" in capsys.readouterr().out


def test_run_kaleido_ast_mode(capsys: pytest.CaptureFixture[str]) -> None:
    result = kaleido_cli.run_kaleido("def f(x) x*2; extern g()", is_string=True, ast=True)
    assert result is None
    nodes = json.loads(capsys.readouterr().out)
    assert [node["kind"] for node in nodes] == ["function", "prototype"]
    assert nodes[0]["prototype"]["name"] == "f"


def test_run_kaleido_ast_mode_stops_on_syntax_error() -> None:
    with pytest.raises(SyntaxError, match="Expected '\\(' in prototype"):
        kaleido_cli.run_kaleido("def f x", is_string=True, ast=True)


def test_run_kaleido_ast_mode_long_chain_is_syntax_error() -> None:
    with pytest.raises(SyntaxError, match="nested too deeply"):
        kaleido_cli.run_kaleido("1" + "+1" * 2000, is_string=True, ast=True)


def test_run_kaleido_reports_and_continues(capsys: pytest.CaptureFixture[str]) -> None:
    session = kaleido_cli.run_kaleido("foo(1); def g(x) x", is_string=True)
    captured = capsys.readouterr()
    assert "[error] >>> Unknown function referenced 'foo'" in captured.err
    assert 'define double @"g"' in captured.out
    assert session is not None
    assert session.errors == 1


def test_run_kaleido_custom_precedence(capsys: pytest.CaptureFixture[str]) -> None:
    table = PrecedenceTable.from_defaults()
    table.configure({"+": 50})
    session = kaleido_cli.run_kaleido("2*3+4", is_string=True, execute=True, precedence=table)
    assert session is not None
    assert session.results == [14.0]


def test_load_precedence(tmp_path: Path) -> None:
    assert kaleido_cli.load_precedence(None).get("*") == 40
    path = tmp_path / "prec.json"
    path.write_text('{"/": 40}')
    assert kaleido_cli.load_precedence(str(path)).get("/") == 40


def test_main_cli_parses(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(sys, "argv", ["kaleido", "-s", "1+2", "-e", "--verbose"])
    called: dict[str, Any] = {}

    def dummy_run(**kwargs: Any) -> None:
        called.update(kwargs)

    monkeypatch.setattr(kaleido_cli, "run_kaleido", dummy_run)
    kaleido_cli.main()
    assert called["source"] == "1+2"
    assert called["is_string"] is True
    assert called["execute"] is True
    assert called["verbose"] is True
    assert called["precedence"].get("+") == 20


def test_main_calls_repl_on_no_args(monkeypatch: pytest.MonkeyPatch) -> None:
    called = {}

    def fake_repl(*args: Any, **kwargs: Any) -> None:
        called["ran"] = True

    monkeypatch.setattr(sys, "argv", ["kaleido"])
    monkeypatch.setattr(kaleido_cli, "start_repl", fake_repl)
    kaleido_cli.main()
    assert called.get("ran") is True


def test_main_repl_flag_calls_repl(monkeypatch: pytest.MonkeyPatch) -> None:
    called_args: dict[str, Any] = {}

    def fake_repl(*, precedence: Any, verbose: Any, dump_module: Any) -> None:
        called_args["precedence"] = precedence
        called_args["verbose"] = verbose
        called_args["dump_module"] = dump_module

    monkeypatch.setattr(kaleido_cli, "start_repl", fake_repl)
    monkeypatch.setattr(sys, "argv", ["kaleido", "--repl", "--verbose", "--dump-module"])
    kaleido_cli.main()
    assert called_args["verbose"] is True
    assert called_args["dump_module"] is True
    assert isinstance(called_args["precedence"], PrecedenceTable)


def test_main_bad_precedence_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    path = tmp_path / "prec.json"
    path.write_text('{"a": 1, "/": -3}')
    monkeypatch.setattr(sys, "argv", ["kaleido", "--precedence", str(path), "-s", "1"])
    with pytest.raises(SystemExit) as e:
        kaleido_cli.main()
    assert e.value.code == 2
    err = capsys.readouterr().err
    assert "Invalid precedence configuration" in err
    assert "'a': character cannot be used as an operator" in err


def test_main_bad_extension_exits(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(sys, "argv", ["kaleido", "prog.txt"])
    with pytest.raises(SystemExit) as e:
        kaleido_cli.main()
    assert e.value.code == 1
    assert "[error] >>> Only .kal and .ks files are supported." in capsys.readouterr().err


def test_main_ast_syntax_error_exits(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(sys, "argv", ["kaleido", "--ast", "-s", "extern 3"])
    with pytest.raises(SystemExit) as e:
        kaleido_cli.main()
    assert e.value.code == 1


@settings(suppress_health_check=[HealthCheck.function_scoped_fixture], max_examples=50)  # type: ignore[misc]
@given(st.text(alphabet="abdefnrtx0123456789.+-*<(),; #\n", max_size=40))  # type: ignore[misc]
def test_run_kaleido_random_input_does_not_crash(source: str) -> None:
    try:
        kaleido_cli.run_kaleido(source, is_string=True)
    except Exception:
        pytest.fail("Should not crash on random input")
