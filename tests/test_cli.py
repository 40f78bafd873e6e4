import json

import pytest

from fsm_backend import cli


DOCUMENT = {
    "nodes": [{"x": 100, "y": 100, "text": "q_0"}, {"x": 300, "y": 100, "text": "q_1"}],
    "links": [{"type": "Link", "nodeA": 0, "nodeB": 1, "text": "a"}],
}


def run_cli(argv, capsys):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(argv)
    assert excinfo.value.code == 0
    return json.loads(capsys.readouterr().out)


def test_export_svg(tmp_path, capsys):
    source = tmp_path / "diagram.json"
    source.write_text(json.dumps(DOCUMENT))
    output = tmp_path / "diagram.svg"

    result = run_cli(["export", str(source), "-o", str(output)], capsys)

    assert result == {"status": "exported", "file_path": str(output), "format": "svg",
                      "nodes": 2, "links": 1}
    assert "q&#8320;" in output.read_text()


def test_export_png_by_flag(tmp_path, capsys):
    source = tmp_path / "diagram.json"
    source.write_text(json.dumps(DOCUMENT))
    output = tmp_path / "out.img"

    result = run_cli(["export", str(source), "-o", str(output), "--format", "png",
                      "--width", "320", "--height", "200"], capsys)

    assert result["format"] == "png"
    assert output.read_bytes().startswith(b"\x89PNG")


def test_export_missing_file(tmp_path, capsys):
    result = run_cli(["export", str(tmp_path / "nope.json"), "-o", str(tmp_path / "x.svg")], capsys)
    assert result["status"] == "error"


def test_unreachable_server_reports_error(monkeypatch, capsys):
    monkeypatch.setattr(cli.config, "API_BASE", "http://127.0.0.1:9/api")
    result = run_cli(["get"], capsys)
    assert result["status"] == "error"
    assert "Connection failed" in result["error"]
