"""
End-to-end tests: Fern source through parsing, resolution and evaluation
"""

import sys

import pytest

import main as fern_main
from error_handling import FernHostError, FernInternalError
from values import make_integer, make_unit


class TestExamplePrograms:
  """Run the programs under examples/"""

  @pytest.mark.parametrize("name,expected", [
      ("hello.fern", "Hello, world!\n"),
      ("shapes.fern", "24\n7\n"),
      ("words.fern", "the\nquick\nbrown\nfox\n4\n10\n"),
      ("closures.fern", "12\n25\n10\nok\n"),
  ])
  def test_example_output(self, run_source, examples_dir, name, expected):
    source = (examples_dir / name).read_text(encoding="utf-8")
    _result, out = run_source(source)
    assert out == expected


class TestPrograms:
  """Small programs exercising the whole pipeline"""

  def test_double(self, run_source):
    result, _out = run_source("double = \\x -> x + x.\nmain _ = double 21.")
    assert result == make_integer(42)

  def test_factorial(self, run_source):
    source = "fact n = if n < 2 then 1 else n * fact (n - 1).\nmain _ = fact 20."
    result, _out = run_source(source)
    assert result == make_integer(2432902008176640000)

  def test_overflow(self, run_source):
    source = "fact n = if n < 2 then 1 else n * fact (n - 1).\nmain _ = fact 21."
    with pytest.raises(FernInternalError, match="overflow"):
      run_source(source)

  def test_closures_capture_definition_scope(self, run_source):
    source = (
        "make_adder n = \\x -> x + n.\n"
        "main _ = let add5 = make_adder 5 in let n = 100 in add5 1."
    )
    result, _out = run_source(source)
    assert result == make_integer(6)

  def test_option_pipeline(self, run_source):
    source = (
        "type Opt = Some Int | None.\n"
        "safe_div a b = if b == 0 then None else Some (a / b).\n"
        "show o = match o with | Some n -> printi n | None -> print \"none\".\n"
        "main _ = show (safe_div 7 2); print \" \"; show (safe_div 1 0)."
    )
    result, out = run_source(source)
    assert out == "3 none"
    assert result == make_unit()

  def test_records_and_tuples(self, run_source):
    source = (
        "type Point = { x : Int, y : Int }.\n"
        "swap p = {x = p.y, y = p.x}.\n"
        "main _ = let p = swap {x = 1, y = 2} in (p.x, p.y).0 * 10 + p.y."
    )
    result, _out = run_source(source)
    assert result == make_integer(21)

  def test_custom_entry(self, run_source):
    result, _out = run_source("start _ = 7.", entry="start")
    assert result == make_integer(7)

  def test_read_file(self, run_source, tmp_path):
    path = tmp_path / "numbers.txt"
    path.write_text("12,30", encoding="utf-8")
    source = (
        f'main _ = let parts = string_split (read_file "{path.as_posix()}", ",") in\n'
        "  parse_int parts.0 + parse_int parts.1."
    )
    result, _out = run_source(source)
    assert result == make_integer(42)

  def test_host_error_propagates(self, run_source):
    with pytest.raises(FernHostError):
      run_source('main _ = parse_int "twelve".')

  def test_deep_recursion(self, run_source):
    source = "count n = if n == 0 then 0 else 1 + count (n - 1).\nmain _ = count 10000."
    result, _out = run_source(source)
    assert result == make_integer(10000)

  def test_mixed_precedence_levels(self, run_source):
    source = 'main _ = if "a" == "a" and 2 > 1 or 0 then 1 + 2 * 3 else 0.'
    result, _out = run_source(source)
    assert result == make_integer(7)


class TestCommandLine:
  """The fern command"""

  @pytest.fixture
  def script(self, tmp_path):
    path = tmp_path / "prog.fern"
    path.write_text("main _ = printi 6; print \"\\n\"; 6 * 7.\n", encoding="utf-8")
    return path

  def run_cli(self, monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["fern", *args])
    fern_main.main()

  def test_run_script(self, monkeypatch, capsys, script):
    self.run_cli(monkeypatch, str(script))
    assert capsys.readouterr().out == "6\n"

  def test_show_result(self, monkeypatch, capsys, script):
    self.run_cli(monkeypatch, "--show-result", str(script))
    assert capsys.readouterr().out == "6\n\n=> 42\n"

  def test_parse_only(self, monkeypatch, capsys, script):
    self.run_cli(monkeypatch, "--parse", str(script))
    out = capsys.readouterr().out
    assert "Parsed 1 declarations" in out
    assert "FUNCTION_DEF" in out

  def test_analyze_only(self, monkeypatch, capsys, script):
    self.run_cli(monkeypatch, "--analyze", str(script))
    out = capsys.readouterr().out
    assert "Definitions (1)" in out
    assert "LAMBDA _" in out

  def test_missing_entry_exits_with_status_1(self, monkeypatch, capsys, script):
    with pytest.raises(SystemExit) as exc_info:
      self.run_cli(monkeypatch, "--entry", "start", str(script))
    assert exc_info.value.code == 1
    assert "entry point 'start' not found" in capsys.readouterr().out

  def test_runtime_error_report(self, monkeypatch, capsys, tmp_path):
    path = tmp_path / "boom.fern"
    path.write_text("main _ = 1 / 0.\n", encoding="utf-8")
    with pytest.raises(SystemExit):
      self.run_cli(monkeypatch, str(path))
    out = capsys.readouterr().out
    assert "Runtime Error" in out
    assert "division by zero" in out

  def test_semantics_error_report(self, monkeypatch, capsys, tmp_path):
    path = tmp_path / "bad.fern"
    path.write_text("main _ = missing.\n", encoding="utf-8")
    with pytest.raises(SystemExit):
      self.run_cli(monkeypatch, str(path))
    assert "unbound identifier: missing" in capsys.readouterr().out

  def test_parse_error_report(self, monkeypatch, capsys, tmp_path):
    path = tmp_path / "bad.fern"
    path.write_text("main _ = 1\n", encoding="utf-8")
    with pytest.raises(SystemExit):
      self.run_cli(monkeypatch, str(path))
    assert "Parse error" in capsys.readouterr().out

  def test_nonexistent_script(self, monkeypatch, capsys, tmp_path):
    with pytest.raises(SystemExit):
      self.run_cli(monkeypatch, str(tmp_path / "nope.fern"))
    assert "does not exist" in capsys.readouterr().out


class TestInteractiveMode:
  """The REPL keeps a session of declarations"""

  def run_repl(self, monkeypatch, lines):
    pending = list(lines)

    def fake_input(prompt=""):
      if not pending:
        raise EOFError
      return pending.pop(0)

    monkeypatch.setattr(fern_main, "setup_readline", lambda: None)
    monkeypatch.setattr("builtins.input", fake_input)
    fern_main.run_interactive_mode()

  def test_definitions_accumulate(self, monkeypatch, capsys):
    self.run_repl(monkeypatch, [
        "double x = x * 2.",
        "quad x = double (double x).",
        "quad 3",
        ":env",
        "exit.",
    ])
    out = capsys.readouterr().out
    assert "Defined function: double" in out
    assert "Defined function: quad" in out
    assert "=> 12" in out
    assert "  quad : " in out

  def test_types_and_constructors(self, monkeypatch, capsys):
    self.run_repl(monkeypatch, [
        "type Opt = Some Int | None.",
        "Some 4",
        ":types",
    ])
    out = capsys.readouterr().out
    assert "Defined type: Opt" in out
    assert "=> Some 4" in out
    assert "Opt (sum): Some, None" in out
    assert "Goodbye!" in out

  def test_errors_do_not_end_the_session(self, monkeypatch, capsys):
    self.run_repl(monkeypatch, [
        "nope",
        "1 / 0",
        "1 +",
        "40 + 2",
        "exit.",
    ])
    out = capsys.readouterr().out
    assert "Semantic error" in out
    assert "division by zero" in out
    assert "Parse error" in out
    assert "=> 42" in out

  def test_failed_declaration_is_not_kept(self, monkeypatch, capsys):
    self.run_repl(monkeypatch, [
        "broken x = missing.",
        "broken 1",
        "exit.",
    ])
    out = capsys.readouterr().out
    assert "Defined function: broken" not in out
    assert out.count("Semantic error") == 2
