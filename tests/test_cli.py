from pathlib import Path

from treecopy.cli import EXIT_INVALID_CONFIG, EXIT_PARTIAL_FAILURES, EXIT_RUNTIME_OR_CONFIG_ERROR, EXIT_SUCCESS, main


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def test_copy_prints_summary(tmp_path: Path, capsys) -> None:
    source = tmp_path / "root"
    destination = tmp_path / "dest"
    _write(source / "a.txt", "hi")
    _write(source / "sub" / "b.txt", "bye")

    exit_code = main([str(source), str(destination), "--workers", "2"])

    output = capsys.readouterr().out
    assert exit_code == EXIT_SUCCESS
    assert "files=2" in output
    assert "directories=2" in output
    assert (destination / "sub" / "b.txt").read_text(encoding="utf-8") == "bye"


def test_cli_excludes_extend_config_excludes(tmp_path: Path, capsys) -> None:
    source = tmp_path / "root"
    destination = tmp_path / "dest"
    _write(source / "keep.txt", "k")
    _write(source / "drop.log", "d")
    _write(source / "cache" / "blob.bin", "b")

    config_file = tmp_path / "copy.yaml"
    config_file.write_text(
        """
workers: 4
excludes:
  - "*.log"
""".strip(),
        encoding="utf-8",
    )

    exit_code = main([
        str(source),
        str(destination),
        "--config",
        str(config_file),
        "--workers",
        "1",
        "--exclude",
        "cache/",
    ])

    output = capsys.readouterr().out
    assert exit_code == EXIT_SUCCESS
    assert "skipped=2" in output
    assert (destination / "keep.txt").exists()
    assert not (destination / "drop.log").exists()
    assert not (destination / "cache").exists()


def test_config_excludes_apply_without_cli_excludes(tmp_path: Path, capsys) -> None:
    source = tmp_path / "root"
    destination = tmp_path / "dest"
    _write(source / "keep.txt", "k")
    _write(source / "drop.log", "d")

    config_file = tmp_path / "copy.json"
    config_file.write_text('{"excludes": ["*.log"]}', encoding="utf-8")

    exit_code = main([str(source), str(destination), "--config", str(config_file)])

    assert exit_code == EXIT_SUCCESS
    assert (destination / "keep.txt").exists()
    assert not (destination / "drop.log").exists()


def test_invalid_config_returns_invalid_config_exit(tmp_path: Path, capsys) -> None:
    source = tmp_path / "root"
    _write(source / "a.txt", "a")
    config_file = tmp_path / "copy.yaml"
    config_file.write_text("onSymlink: sideways", encoding="utf-8")

    exit_code = main([str(source), str(tmp_path / "dest"), "--config", str(config_file)])

    err = capsys.readouterr().err
    assert exit_code == EXIT_INVALID_CONFIG
    assert "Invalid config" in err


def test_destination_inside_source_is_rejected(tmp_path: Path, capsys) -> None:
    source = tmp_path / "root"
    _write(source / "a.txt", "a")

    exit_code = main([str(source), str(source / "copy")])

    err = capsys.readouterr().err
    assert exit_code == EXIT_INVALID_CONFIG
    assert "inside source" in err


def test_missing_source_returns_runtime_error(tmp_path: Path, capsys) -> None:
    exit_code = main([str(tmp_path / "missing"), str(tmp_path / "dest")])

    err = capsys.readouterr().err
    assert exit_code == EXIT_RUNTIME_OR_CONFIG_ERROR
    assert "Copy failed" in err


def test_continue_on_error_reports_partial_failure(tmp_path: Path, capsys) -> None:
    exit_code = main([str(tmp_path / "missing"), str(tmp_path / "dest"), "--continue-on-error"])

    output = capsys.readouterr().out
    assert exit_code == EXIT_PARTIAL_FAILURES
    assert "failed=1" in output


def test_cli_gitignore_flag_keeps_config_excludes(tmp_path: Path, capsys) -> None:
    source = tmp_path / "root"
    destination = tmp_path / "dest"
    _write(source / ".gitignore", "*.tmp\n")
    _write(source / "keep.txt", "k")
    _write(source / "drop.log", "d")
    _write(source / "scratch.tmp", "t")

    config_file = tmp_path / "copy.json"
    config_file.write_text('{"excludes": ["*.log"]}', encoding="utf-8")

    exit_code = main([str(source), str(destination), "--config", str(config_file), "--gitignore"])

    assert exit_code == EXIT_SUCCESS
    assert (destination / "keep.txt").exists()
    assert not (destination / "drop.log").exists()
    assert not (destination / "scratch.tmp").exists()
