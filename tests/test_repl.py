import builtins
import io

import pytest

from kaleido.kaleido_config import PrecedenceTable
from kaleido.kaleido_jit import JITEngine
from kaleido.kaleido_lexer import CharacterStream
from kaleido.kaleido_repl import Session, start_repl


def make_session(
    source: str, execute: bool = True, precedence: PrecedenceTable | None = None, verbose: bool = False
) -> tuple[Session, io.StringIO, io.StringIO]:
    out, diag = io.StringIO(), io.StringIO()
    session = Session(
        CharacterStream(source),
        jit=JITEngine() if execute else None,
        precedence=precedence,
        verbose=verbose,
        out=out,
        diag=diag,
    )
    session.run()
    return session, out, diag


def test_end_to_end_evaluation() -> None:
    session, out, diag = make_session("def add(a b) a+b; add(3, 4); 1+2*3")
    assert session.results == [7.0, 7.0]
    assert "Evaluated to 7.0" in out.getvalue()
    assert "Read function definition:" in diag.getvalue()
    assert "Read top-level expression:" in diag.getvalue()
    assert session.errors == 0


def test_extern_reported() -> None:
    session, _, diag = make_session("extern foo(a b)", execute=False)
    assert "Read extern:" in diag.getvalue()
    assert len(session.units) == 1


def test_codegen_error_then_recovery() -> None:
    session, out, diag = make_session("bar(1, 2); def f(a) a+b; def f(a) a*2; f(4)")
    assert session.errors == 2
    text = diag.getvalue()
    assert "[error] >>> Unknown function referenced 'bar'" in text
    assert "[error] >>> Unknown variable name 'b'" in text
    assert session.results == [8.0]


def test_parse_error_resynchronizes() -> None:
    session, _, diag = make_session("def f(a, b) a; def g(x) x+1; g(1)")
    assert session.errors == 1
    assert "Expected ')' in prototype" in diag.getvalue()
    assert session.results == [2.0]


def test_parse_error_in_expression_resynchronizes() -> None:
    session, _, _ = make_session("(1 + ; 5")
    assert session.errors == 1
    assert session.results == [5.0]


def test_parse_error_in_extern_resynchronizes() -> None:
    session, _, _ = make_session("extern 1(); 2")
    assert session.errors == 1
    assert session.results == [2.0]


def test_redefinition_reported() -> None:
    session, _, diag = make_session("def foo(a b) a+b\ndef foo(a) a\nfoo(1, 2)")
    assert "with different # args" in diag.getvalue()
    assert session.results == [3.0]
    entry = session.codegen.registry.lookup("foo")
    assert entry is not None
    assert entry.arity == 2


def test_unresolved_extern_reported() -> None:
    session, _, diag = make_session("extern nowhereToBeFound(x); nowhereToBeFound(1); 3")
    assert "unresolved external function" in diag.getvalue()
    assert session.results == [3.0]


def test_verbose_dumps_ir() -> None:
    _, _, diag = make_session("def sq(x) x*x", execute=False, verbose=True)
    assert 'define double @"sq"' in diag.getvalue()


def test_without_jit_nothing_is_evaluated() -> None:
    session, out, _ = make_session("1+1", execute=False)
    assert session.results == []
    assert out.getvalue() == ""
    assert session.units[0].anonymous


def test_custom_operator_without_lowering_is_reported() -> None:
    table = PrecedenceTable.from_defaults()
    table.configure({"/": 40})
    session, _, diag = make_session("8/2; 1", precedence=table)
    assert "invalid binary operator '/'" in diag.getvalue()
    assert session.results == [1.0]


def test_comments_and_empty_statements() -> None:
    session, _, _ = make_session("# leading comment\n;;\n2*3 # trailing\n;")
    assert session.results == [6.0]


def test_dump_module() -> None:
    session, _, _ = make_session("extern sin(x); def g(y) sin(y)", execute=False)
    dump = session.dump_module()
    assert 'declare double @"sin"' in dump
    assert 'define double @"g"' in dump


def test_start_repl_reads_until_eof(capsys: pytest.CaptureFixture[str]) -> None:
    lines = iter(["def twice(x) x*2;", "twice(21);"])

    def reader(prompt: str) -> str:
        assert prompt == "ready> "
        try:
            return next(lines)
        except StopIteration:
            raise EOFError from None

    session = start_repl(reader=reader, dump_module=True)
    captured = capsys.readouterr()
    assert "Kaleido REPL" in captured.out
    assert "Evaluated to 42.0" in captured.out
    assert "Exiting Kaleido REPL." in captured.out
    assert 'define double @"twice"' in captured.err
    assert session.results == [42.0]


def test_start_repl_uses_input_by_default(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    calls = iter(["1+1"])

    def fake_input(prompt: str) -> str:
        try:
            return next(calls)
        except StopIteration:
            raise EOFError from None

    monkeypatch.setattr(builtins, "input", fake_input)
    start_repl(execute=False)
    captured = capsys.readouterr()
    assert "Read top-level expression:" in captured.err


def test_start_repl_keyboard_interrupt(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    def interrupt(prompt: str) -> str:
        raise KeyboardInterrupt

    monkeypatch.setattr(builtins, "input", interrupt)
    start_repl(execute=False)
    assert "Exiting Kaleido REPL." in capsys.readouterr().out


def test_long_operator_chain_reported_and_session_continues() -> None:
    session, _, diag = make_session("1" + "+1" * 2000 + "; 2+2")
    assert session.errors == 1
    assert "Expression nested too deeply" in diag.getvalue()
    assert session.results == [4.0]
    assert len(session.codegen.registry) == 0


def test_parse_error_does_not_swallow_next_line() -> None:
    session, _, diag = make_session("foo(1 2)\n1+2*3\n")
    assert "Expected ')' or ',' in argument list at line 1, col 7" in diag.getvalue()
    assert session.results == [7.0]


def test_repl_parse_error_does_not_swallow_next_line(capsys: pytest.CaptureFixture[str]) -> None:
    lines = iter(["foo(1 2)", "1+2*3"])

    def reader(prompt: str) -> str:
        try:
            return next(lines)
        except StopIteration:
            raise EOFError from None

    session = start_repl(reader=reader)
    assert session.errors == 1
    assert session.results == [7.0]
    assert "Evaluated to 7.0" in capsys.readouterr().out


def test_start_repl_verbose_reports_precedence(capsys: pytest.CaptureFixture[str]) -> None:
    def reader(prompt: str) -> str:
        raise EOFError

    start_repl(reader=reader, verbose=True, execute=False)
    out = capsys.readouterr().out
    assert "[precedence] >>>" in out
    assert "* → 40" in out
