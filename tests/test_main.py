"""Tests covering the command line launcher."""

from pathlib import Path

from sendrecv.main import EXIT_USAGE, build_parser, run


def test_missing_peer_id_is_a_usage_error(capsys) -> None:
    assert run([]) == EXIT_USAGE
    assert "usage:" in capsys.readouterr().err


def test_unknown_profile_fails() -> None:
    assert run(["--peer-id", "1234", "--profile", "nowhere"]) == 1


def test_invalid_server_fails() -> None:
    assert run(["--peer-id", "1234", "--server", "http://signalling.test"]) == 1


def test_missing_profiles_file_fails(tmp_path: Path) -> None:
    assert run(["--peer-id", "1234", "--profiles", str(tmp_path / "absent.yaml")]) == 1


def test_parser_flags() -> None:
    args = build_parser().parse_args(
        ["--peer-id=1234", "--server=ws://127.0.0.1:8443", "--rtmp-uri=rtmp://relay/live", "--insecure"]
    )

    assert args.peer_id == "1234"
    assert args.server_url == "ws://127.0.0.1:8443"
    assert args.rtmp_uri == "rtmp://relay/live"
    assert args.insecure is True
