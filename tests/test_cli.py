from anycdc.cli import HEADER, main, print_header


def test_header(capsys):
    print_header()
    out = capsys.readouterr().out
    assert out == HEADER
    assert "AnyCDC" in out


def test_missing_config_dir_fails(tmp_path, capsys):
    assert main(["--config-dir", str(tmp_path / "absent")]) == 1
    assert "AnyCDC" in capsys.readouterr().out


def test_invalid_connectors_fail(tmp_path):
    (tmp_path / "config.yaml").write_text("data_dir: .\n")
    (tmp_path / "connectors.yaml").write_text("connectors:\n  - host: h\n")
    assert main(["--config-dir", str(tmp_path)]) == 1