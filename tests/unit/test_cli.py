"""
Unit tests for argument parsing and the CLI entry point.
"""

import io
import socket

import pytest

from stdinhttp import __version__
from stdinhttp.__main__ import build_config, build_parser, main


@pytest.fixture
def parser():
    return build_parser()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "STDINHTTP_ADDR",
        "STDINHTTP_CONTENT_TYPE",
        "STDINHTTP_STATUS",
        "STDINHTTP_WORKERS",
        "STDINHTTP_MAX_WORKERS",
        "STDINHTTP_TIMEOUT",
        "STDINHTTP_LOG_LEVEL",
        "STDINHTTP_LOG_FORMAT",
    ):
        monkeypatch.delenv(name, raising=False)


class BrokenStream(io.RawIOBase):
    def readable(self):
        return True

    def readall(self):
        raise OSError(5, "Input/output error")

    read = readall


class TestParser:

    def test_defaults(self, parser):
        args = parser.parse_args([])

        assert args.address is None
        assert args.content_type is None
        assert args.status is None
        assert args.header == []

    def test_all_options(self, parser):
        args = parser.parse_args([
            "0.0.0.0:3000",
            "-t", "application/json",
            "-s", "503",
            "-H", "Retry-After: 60",
            "-H", "X-Stub: yes",
            "-w", "2",
            "-l", "debug",
            "--log-format", "json",
            "--timeout", "1.5",
        ])

        assert args.address == "0.0.0.0:3000"
        assert args.content_type == "application/json"
        assert args.status == 503
        assert args.header == ["Retry-After: 60", "X-Stub: yes"]
        assert args.workers == 2
        assert args.log_level == "DEBUG"
        assert args.log_format == "json"
        assert args.timeout == 1.5

    def test_version(self, parser, capsys):
        with pytest.raises(SystemExit) as exc_info:
            parser.parse_args(["--version"])

        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_bad_log_level(self, parser):
        with pytest.raises(SystemExit) as exc_info:
            parser.parse_args(["-l", "chatty"])
        assert exc_info.value.code == 2


class TestBuildConfig:

    def test_defaults(self, parser):
        config = build_config(parser.parse_args([]), environ={})

        assert config.address == "127.0.0.1:8080"
        assert config.content_type == "text/html; charset=utf-8"
        assert config.status == 200

    def test_cli_overrides_environment(self, parser):
        environ = {
            "STDINHTTP_ADDR": "0.0.0.0:9000",
            "STDINHTTP_CONTENT_TYPE": "text/plain",
            "STDINHTTP_STATUS": "404",
        }
        args = parser.parse_args([":7000", "-s", "503"])

        config = build_config(args, environ=environ)

        assert (config.host, config.port) == ("0.0.0.0", 7000)
        assert config.status == 503
        assert config.content_type == "text/plain"

    def test_workers_sets_kept_workers_only(self, parser):
        config = build_config(parser.parse_args(["-w", "3"]), environ={})

        assert config.min_workers == 3
        assert config.max_workers is None

    def test_max_workers(self, parser):
        config = build_config(parser.parse_args(["-w", "2", "--max-workers", "5"]), environ={})

        assert (config.min_workers, config.max_workers) == (2, 5)

    def test_headers_parsed(self, parser):
        args = parser.parse_args(["-H", "X-A: 1", "-H", "Cache-Control: no-store"])

        config = build_config(args, environ={})

        assert config.headers == [("X-A", "1"), ("Cache-Control", "no-store")]

    @pytest.mark.parametrize("argv", [
        ["127.0.0.1:notaport"],
        ["-s", "299"],
        ["-H", "NoColon"],
        ["-H", "Content-Length: 5"],
        ["-t", "text/plain\r\nX-Evil: 1"],
        ["-w", "0"],
        ["--timeout", "-1"],
        ["--timeout", "nan"],
        ["-w", "4", "--max-workers", "2"],
    ])
    def test_invalid_input(self, parser, argv):
        with pytest.raises(ValueError):
            build_config(parser.parse_args(argv), environ={})


class TestMain:

    def test_invalid_argument_exits_2(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["-s", "299"], stdin=io.BytesIO(b"x"))

        assert exc_info.value.code == 2
        assert "299" in capsys.readouterr().err

    def test_unreadable_stdin_exits_1(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["127.0.0.1:0"], stdin=BrokenStream())

        assert exc_info.value.code == 1
        assert "Error:" in capsys.readouterr().err

    def test_bind_failure_exits_1(self, capsys):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as occupier:
            occupier.bind(("127.0.0.1", 0))
            occupier.listen(1)
            port = occupier.getsockname()[1]

            with pytest.raises(SystemExit) as exc_info:
                main([f"127.0.0.1:{port}", "-l", "critical"], stdin=io.BytesIO(b"x"))

        assert exc_info.value.code == 1
        assert "Error:" in capsys.readouterr().err

    def test_closed_stdin_exits_1(self, monkeypatch, capsys):
        monkeypatch.setattr("sys.stdin", None)

        with pytest.raises(SystemExit) as exc_info:
            main(["127.0.0.1:0"])

        assert exc_info.value.code == 1
        assert "stdin is closed" in capsys.readouterr().err
