from datetime import timedelta

import pytest

from parca.config.config import (
    Config,
    ConfigError,
    PprofProfilingConfig,
    ProfilingConfig,
    ScrapeConfig,
    Secret,
    StaticConfig,
    check_target_address,
    default_scrape_config,
    load,
    load_file,
    parse_duration,
)
from parca.debuginfo.cacheconfig import BucketConfig, DebugInfoConfig, ValidationError

COMPLEX_YAML = """
scrape_configs:
  - job_name: 'parca'
    scrape_interval: 10s
    static_configs:
      - targets: [ 'localhost:10902' ]
    profiling_config:
      pprof_config:
        memory:
          enabled: true
          path: /parca/debug/pprof/allocs
        fgprof:
          enabled: true
          path: /debug/fgprof
  - job_name: 'empty-profiling-config'
    profiling_config: {}
"""

PREFIX_YAML = """
scrape_configs:
  - job_name: 'parca'
    scrape_interval: 10s
    static_configs:
      - targets: [ 'localhost:10902' ]
    profiling_config:
      path_prefix: /test/prefix
      pprof_config:
        memory:
          enabled: true
          path: /parca/debug/pprof/allocs
        fgprof:
          enabled: true
          path: /debug/fgprof
  - job_name: 'empty-profiling-config'
    profiling_config: {}
"""


def _static():
    return [StaticConfig(targets=[{"__address__": "localhost:10902"}], labels=None, source="0")]


def test_load():
    cfg = load(
        """scrape_configs:
- job_name: 'test'
  static_configs:
  - targets: ['localhost:8080']"""
    )
    assert cfg.scrape_configs[0].job_name == "test"
    assert cfg.scrape_configs[0].static_configs[0].targets == [{"__address__": "localhost:8080"}]


def test_load_complex():
    expected = Config(
        scrape_configs=[
            ScrapeConfig(
                job_name="parca",
                scrape_interval=timedelta(seconds=10),
                scrape_timeout=timedelta(seconds=10),
                scheme="http",
                profiling_config=ProfilingConfig(
                    pprof_config={
                        "memory": PprofProfilingConfig(enabled=True, path="/parca/debug/pprof/allocs"),
                        "block": PprofProfilingConfig(enabled=True, path="/debug/pprof/block"),
                        "goroutine": PprofProfilingConfig(enabled=True, path="/debug/pprof/goroutine"),
                        "mutex": PprofProfilingConfig(enabled=True, path="/debug/pprof/mutex"),
                        "process_cpu": PprofProfilingConfig(
                            enabled=True, delta=True, path="/debug/pprof/profile"
                        ),
                        "fgprof": PprofProfilingConfig(enabled=True, path="/debug/fgprof"),
                    }
                ),
                static_configs=_static(),
            ),
            ScrapeConfig(
                job_name="empty-profiling-config",
                scrape_interval=timedelta(seconds=10),
                scrape_timeout=timedelta(seconds=10),
                scheme="http",
                profiling_config=default_scrape_config().profiling_config,
            ),
        ]
    )
    cfg = load(COMPLEX_YAML)
    assert len(cfg.scrape_configs) == 2
    assert cfg == expected


def test_load_prefix_config():
    expected = Config(
        scrape_configs=[
            ScrapeConfig(
                job_name="parca",
                scrape_interval=timedelta(seconds=10),
                scrape_timeout=timedelta(seconds=10),
                scheme="http",
                profiling_config=ProfilingConfig(
                    path_prefix="/test/prefix",
                    pprof_config={
                        "memory": PprofProfilingConfig(
                            enabled=True, path="/test/prefix/parca/debug/pprof/allocs"
                        ),
                        "block": PprofProfilingConfig(enabled=True, path="/test/prefix/debug/pprof/block"),
                        "goroutine": PprofProfilingConfig(
                            enabled=True, path="/test/prefix/debug/pprof/goroutine"
                        ),
                        "mutex": PprofProfilingConfig(enabled=True, path="/test/prefix/debug/pprof/mutex"),
                        "process_cpu": PprofProfilingConfig(
                            enabled=True, delta=True, path="/test/prefix/debug/pprof/profile"
                        ),
                        "fgprof": PprofProfilingConfig(enabled=True, path="/test/prefix/debug/fgprof"),
                    },
                ),
                static_configs=_static(),
            ),
            ScrapeConfig(
                job_name="empty-profiling-config",
                scrape_interval=timedelta(seconds=10),
                scrape_timeout=timedelta(seconds=10),
                scheme="http",
                profiling_config=default_scrape_config().profiling_config,
            ),
        ]
    )
    cfg = load(PREFIX_YAML)
    assert len(cfg.scrape_configs) == 2
    assert cfg == expected


@pytest.mark.parametrize(
    "config",
    [
        Config(debug_info=None),
        Config(debug_info=DebugInfoConfig(bucket=None)),
        Config(debug_info=DebugInfoConfig(bucket=BucketConfig(config={"directory": "./tmp"}))),
        Config(debug_info=DebugInfoConfig(bucket=BucketConfig(type="FILESYSTEM"))),
    ],
    ids=["nilDebug", "nilBucket", "emptyType", "emptyConfig"],
)
def test_config_validation(config):
    with pytest.raises(ValidationError):
        config.validate()


def test_valid_debug_info_config():
    cfg = load(
        """debug_info:
  bucket:
    type: "FILESYSTEM"
    config:
      directory: "./tmp"
  cache:
    type: "FILESYSTEM"
    config:
      directory: "./tmp"
"""
    )
    cfg.validate()
    assert cfg.debug_info.bucket.type == "FILESYSTEM"
    assert cfg.debug_info.cache.config == {"directory": "./tmp"}


@pytest.mark.parametrize(
    "text,expected",
    [
        ("0", timedelta(0)),
        ("10s", timedelta(seconds=10)),
        ("1h30m", timedelta(hours=1, minutes=30)),
        ("500ms", timedelta(milliseconds=500)),
        ("1d", timedelta(days=1)),
    ],
)
def test_parse_duration(text, expected):
    assert parse_duration(text) == expected


@pytest.mark.parametrize("text", ["", "10", "1x", "s"])
def test_parse_duration_invalid(text):
    with pytest.raises(ConfigError):
        parse_duration(text)


def test_default_scrape_config():
    cfg = default_scrape_config()
    assert cfg.scrape_interval == timedelta(seconds=10)
    assert cfg.scheme == "http"
    assert cfg.profiling_config.pprof_config["process_cpu"].delta is True
    assert cfg.profiling_config.pprof_config["memory"].path == "/debug/pprof/allocs"


def test_timeout_greater_than_interval():
    with pytest.raises(ConfigError, match="scrape timeout must be smaller"):
        load(
            """scrape_configs:
- job_name: 'x'
  scrape_interval: 5s
  scrape_timeout: 10s
"""
        )


def test_process_cpu_needs_two_seconds():
    with pytest.raises(ConfigError, match="process_cpu scrape_timeout must be at least 2 seconds in x"):
        load(
            """scrape_configs:
- job_name: 'x'
  scrape_interval: 1s
"""
        )


def test_process_cpu_disabled_allows_short_interval():
    cfg = load(
        """scrape_configs:
- job_name: 'x'
  scrape_interval: 1s
  profiling_config:
    pprof_config:
      process_cpu:
        enabled: false
"""
    )
    sc = cfg.scrape_configs[0]
    assert sc.scrape_timeout == timedelta(seconds=1)
    assert sc.profiling_config.pprof_config["process_cpu"].enabled is False
    assert sc.profiling_config.pprof_config["process_cpu"].path == "/debug/pprof/profile"


def test_empty_job_name():
    with pytest.raises(ConfigError, match="job_name is empty"):
        load("scrape_configs:\n- scrape_interval: 10s\n")


def test_url_target_rejected():
    with pytest.raises(ConfigError, match="is not a valid hostname"):
        load(
            """scrape_configs:
- job_name: 'x'
  static_configs:
  - targets: ['http://localhost:8080']
"""
        )


def test_url_target_allowed_with_relabeling():
    cfg = load(
        """scrape_configs:
- job_name: 'x'
  relabel_configs:
  - action: keep
  static_configs:
  - targets: ['http://localhost:8080']
"""
    )
    assert cfg.scrape_configs[0].relabel_configs == [{"action": "keep"}]


def test_null_relabel_rule():
    with pytest.raises(ConfigError, match="empty or null target relabeling rule"):
        load(
            """scrape_configs:
- job_name: 'x'
  relabel_configs:
  -
"""
        )


def test_unknown_field_rejected():
    with pytest.raises(ConfigError, match="unknown_option"):
        load("scrape_configs:\n- job_name: 'x'\n  unknown_option: 1\n")


def test_duplicate_key_rejected():
    with pytest.raises(ConfigError, match="already set"):
        load("scrape_configs:\n- job_name: 'x'\n  job_name: 'y'\n")


def test_invalid_yaml():
    with pytest.raises(ConfigError):
        load("{")


def test_check_target_address():
    check_target_address("localhost:8080")
    with pytest.raises(ConfigError, match='"a/b" is not a valid hostname'):
        check_target_address("a/b")


def test_bearer_token_conflicts():
    with pytest.raises(ConfigError, match="at most one of bearer_token & bearer_token_file"):
        load(
            """scrape_configs:
- job_name: 'x'
  bearer_token: token
  bearer_token_file: token.txt
"""
        )


def test_load_file_sets_directory(tmp_path):
    path = tmp_path / "parca.yaml"
    path.write_text(
        """scrape_configs:
- job_name: 'x'
  bearer_token_file: token.txt
  tls_config:
    ca_file: ca.pem
    cert_file: /abs/cert.pem
"""
    )
    cfg = load_file(str(path))
    http = cfg.scrape_configs[0].http_client_config
    assert http["tls_config"]["ca_file"] == str(tmp_path / "ca.pem")
    assert http["tls_config"]["cert_file"] == "/abs/cert.pem"
    assert http["authorization"] == {
        "type": "Bearer",
        "credentials_file": str(tmp_path / "token.txt"),
    }


def test_load_file_wraps_parse_errors(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("{")
    with pytest.raises(ConfigError, match="parsing YAML file"):
        load_file(str(path))


def test_string_masks_secrets():
    cfg = load(
        """scrape_configs:
- job_name: 'x'
  bearer_token: token
"""
    )
    text = str(cfg)
    assert "<secret>" in text
    assert "credentials: token" not in text
    assert "job_name: x" in text


def test_secret_repr_hides_value():
    assert repr(Secret("token")) == "Secret('<secret>')"
    assert Secret("token") == "token"