"""
Brief: Tests for the tinydns CLI entrypoint (argument handling and lifecycle).

Inputs:
  - None

Outputs:
  - None
"""

import os
import signal
import threading

import pytest

from tinydns import main as main_mod
from tinydns.config.config_schema import ConfigError
from tinydns.options import DEFAULT_OPTIONS
from tinydns.public_servers import get_public_dns_servers


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch):
    monkeypatch.setattr(main_mod, "init_logging", lambda cfg: [])


def _args(*argv):
    return main_mod.build_arg_parser().parse_args(list(argv))


def test_cli_flags_override_options():
    opts = main_mod.apply_cli_overrides(
        DEFAULT_OPTIONS,
        _args(
            "--listen",
            "0.0.0.0:5353",
            "--net",
            "tcp",
            "--no-disk",
            "--upstream",
            "9.9.9.9",
            "--upstream",
            "8.8.8.8:53",
        ),
    )
    assert opts.listen_address == "0.0.0.0:5353"
    assert opts.net == "tcp"
    assert opts.disk_cache is False
    assert opts.upstream_servers == ("9.9.9.9", "8.8.8.8:53")


def test_cli_without_flags_keeps_options():
    assert main_mod.apply_cli_overrides(DEFAULT_OPTIONS, _args()) == DEFAULT_OPTIONS


def test_cli_provider_and_unknown_provider():
    opts = main_mod.apply_cli_overrides(DEFAULT_OPTIONS, _args("--provider", "google"))
    assert list(opts.upstream_servers) == get_public_dns_servers("google")
    with pytest.raises(ConfigError):
        main_mod.apply_cli_overrides(DEFAULT_OPTIONS, _args("--provider", "nowhere"))


def test_cli_overrides_config_file(tmp_path):
    """
    Brief: Values given on the command line win over the config file.

    Inputs:
      - Config file with listen address and log level, CLI flags for both

    Outputs:
      - None: Asserts merged options and logging section
    """
    cfg = tmp_path / "tinydns.yaml"
    cfg.write_text(
        "listen: {address: '127.0.0.1:5300'}\n"
        "upstream: {retries: 4}\n"
        "logging: {level: info}\n"
    )
    loaded = main_mod.load_runtime_config(
        _args("--config", str(cfg), "--listen", "127.0.0.1:5400", "--log-level", "debug")
    )
    assert loaded.options.listen_address == "127.0.0.1:5400"
    assert loaded.options.upstream_retries == 4
    assert loaded.logging["level"] == "debug"


def test_main_invalid_config_returns_1(tmp_path, capsys):
    cfg = tmp_path / "bad.yaml"
    cfg.write_text("records:\n  - {domain: a.example, type: A}\n")
    assert main_mod.main(["--config", str(cfg)]) == 1
    assert "must have 'value' or 'values'" in capsys.readouterr().out


def test_main_bad_listen_address_returns_1():
    assert main_mod.main(["--listen", "127.0.0.1:99999", "--no-disk"]) == 1


def test_main_runs_until_sigterm(tmp_path):
    """
    Brief: main serves until SIGTERM, then closes the cache and query log.

    Inputs:
      - Config with an on-disk cache path and a JSON query log

    Outputs:
      - None: Asserts exit code 0, created files and restored signal handler
    """
    cache_dir = tmp_path / "cache"
    qlog = tmp_path / "queries.jsonl"
    cfg = tmp_path / "tinydns.yaml"
    cfg.write_text(
        f"cache: {{enabled: true, path: '{cache_dir}'}}\n"
        f"querylog: {{json_file: '{qlog}'}}\n"
    )
    before = signal.getsignal(signal.SIGTERM)

    timer = threading.Timer(0.3, os.kill, args=(os.getpid(), signal.SIGTERM))
    timer.start()
    try:
        code = main_mod.main(["--config", str(cfg), "--listen", "127.0.0.1:0"])
    finally:
        timer.cancel()

    assert code == 0
    assert (cache_dir / "cache.db").exists()
    assert qlog.read_text().count("\n") == 1
    assert signal.getsignal(signal.SIGTERM) is before


def test_main_corrupt_cache_db_returns_1(tmp_path, caplog):
    cache_dir = tmp_path / "cache"
    cache_dir.mkdir()
    (cache_dir / "cache.db").write_bytes(b"this is not a sqlite database" * 64)
    cfg = tmp_path / "tinydns.yaml"
    cfg.write_text(f"cache: {{enabled: true, path: '{cache_dir}'}}\n")

    assert main_mod.main(["--config", str(cfg), "--listen", "127.0.0.1:0"]) == 1
    assert "Failed to start" in caplog.text
