import pytest

from xla.xla_cli import main, default_resources


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("XLA_RESOURCES", raising=False)
    return tmp_path


def write_script(path, text):
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_usage_without_arguments(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main([])
    assert excinfo.value.code == 1
    assert "usage: xla FILE" in capsys.readouterr().err


def test_usage_with_too_many_arguments(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["a.xla", "b.xla"])
    assert excinfo.value.code == 1


def test_missing_file(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["nope.xla"])
    assert excinfo.value.code == 1
    assert "file not found: nope.xla" in capsys.readouterr().err


def test_runs_script_and_prints_final_value(isolated, capsys):
    path = write_script(isolated / "prog.xla", "#! (def x 5) (put x) !")
    main([path])
    assert capsys.readouterr().out == "5\n5\n"


def test_error_exits_non_zero_and_keeps_output(isolated, capsys):
    path = write_script(isolated / "bad.xla", "(put before)\n(nope 1)")
    with pytest.raises(SystemExit) as excinfo:
        main([path])
    assert excinfo.value.code == 1
    captured = capsys.readouterr()
    assert captured.out == "before\n"
    assert "Error on line 2, col 2: EvalError: Expected a procedure, got 'nope'" in captured.err


def test_parse_error_reports_position(isolated, capsys):
    path = write_script(isolated / "open.xla", "(put x")
    with pytest.raises(SystemExit):
        main([path])
    assert "Error on line 1, col 7: ParseError: Unclosed '('" in capsys.readouterr().err


def test_resources_from_environment(isolated, monkeypatch, capsys):
    res = isolated / "res"
    (res / "prompts").mkdir(parents=True)
    (res / "prompts" / "hi.txt").write_text("hi {{who}}", encoding="utf-8")
    monkeypatch.setenv("XLA_RESOURCES", str(res))
    path = write_script(isolated / "p.xla", "(def who there) (put <@prompts/hi>)")
    main([path])
    assert capsys.readouterr().out == "hi there\nhi there\n"


def test_default_resources_directory(isolated, monkeypatch):
    assert default_resources() is None
    (isolated / "resources").mkdir()
    assert default_resources() == "resources"
    monkeypatch.setenv("XLA_RESOURCES", "/elsewhere")
    assert default_resources() == "/elsewhere"


def test_bad_resources_directory(isolated, monkeypatch, capsys):
    monkeypatch.setenv("XLA_RESOURCES", str(isolated / "absent"))
    path = write_script(isolated / "p.xla", "(put x)")
    with pytest.raises(SystemExit):
        main([path])
    assert "resources path does not exist" in capsys.readouterr().err
