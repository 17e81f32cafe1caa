"""Parca configuration: debug info storage and scrape jobs, loaded from YAML."""

from __future__ import annotations

import json
import os
import posixpath
import re
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

import yaml

from parca.debuginfo.cacheconfig import (
    BucketConfig,
    CacheConfig,
    DebugInfoConfig,
    ValidationError,
)

PPROF_MEMORY = "memory"
PPROF_BLOCK = "block"
PPROF_GOROUTINE = "goroutine"
PPROF_MUTEX = "mutex"
PPROF_PROCESS_CPU = "process_cpu"

ADDRESS_LABEL = "__address__"

_MIN_PROCESS_CPU_TIMEOUT = timedelta(seconds=2)

_DURATION_RE = re.compile(
    r"^(?:(\d+)y)?(?:(\d+)w)?(?:(\d+)d)?(?:(\d+)h)?(?:(\d+)m)?(?:(\d+)s)?(?:(\d+)ms)?$"
)
_DURATION_UNITS = (
    ("y", 365 * 24 * 3600 * 1000),
    ("w", 7 * 24 * 3600 * 1000),
    ("d", 24 * 3600 * 1000),
    ("h", 3600 * 1000),
    ("m", 60 * 1000),
    ("s", 1000),
    ("ms", 1),
)
_LABEL_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

_TOP_LEVEL_KEYS = {"debug_info", "scrape_configs"}
_BUCKET_KEYS = {"type", "config", "prefix"}
_CACHE_KEYS = {"type", "config"}
_SCRAPE_KEYS = {
    "job_name",
    "params",
    "scrape_interval",
    "scrape_timeout",
    "scheme",
    "profiling_config",
    "relabel_configs",
    "static_configs",
}
_PROFILING_KEYS = {"pprof_config", "path_prefix"}
_PPROF_KEYS = {"enabled", "path", "delta"}
_STATIC_KEYS = {"targets", "labels"}

_TLS_KEYS = {"ca_file", "cert_file", "key_file", "server_name", "insecure_skip_verify", "min_version"}
_TLS_FILE_KEYS = ("ca_file", "cert_file", "key_file")
_HTTP_CLIENT_SECTIONS: Dict[str, tuple] = {
    "basic_auth": ({"username", "password", "password_file"}, {"password"}),
    "authorization": ({"type", "credentials", "credentials_file"}, {"credentials"}),
    "oauth2": (
        {
            "client_id",
            "client_secret",
            "client_secret_file",
            "scopes",
            "token_url",
            "endpoint_params",
            "tls_config",
            "proxy_url",
        },
        {"client_secret"},
    ),
    "tls_config": (_TLS_KEYS, set()),
}
_HTTP_CLIENT_KEYS = set(_HTTP_CLIENT_SECTIONS) | {
    "bearer_token",
    "bearer_token_file",
    "proxy_url",
    "follow_redirects",
    "enable_http2",
}


class ConfigError(ValueError):
    """Raised when a configuration document cannot be parsed or is inconsistent."""


class Secret(str):
    """A string whose value is hidden when the configuration is printed."""

    def __repr__(self) -> str:
        return "Secret('<secret>')" if self else "Secret('')"


@dataclass
class PprofProfilingConfig:
    enabled: Optional[bool] = None
    path: str = ""
    delta: bool = False


@dataclass
class ProfilingConfig:
    pprof_config: Optional[Dict[str, Optional[PprofProfilingConfig]]] = None
    path_prefix: str = ""


@dataclass
class StaticConfig:
    """A group of statically configured targets sharing a set of labels."""

    targets: List[Dict[str, str]] = field(default_factory=list)
    labels: Optional[Dict[str, str]] = None
    source: str = ""


def _join_dir(directory: str, path: Any) -> Any:
    if not path or os.path.isabs(path):
        return path
    return os.path.join(directory, path)


def _set_tls_directory(tls: Any, directory: str) -> None:
    if isinstance(tls, dict):
        for key in _TLS_FILE_KEYS:
            if key in tls:
                tls[key] = _join_dir(directory, tls[key])


@dataclass
class ScrapeConfig:
    """A scraping unit: one job, its targets and what profiles to fetch."""

    job_name: str = ""
    params: Dict[str, List[str]] = field(default_factory=dict)
    scrape_interval: timedelta = timedelta(0)
    scrape_timeout: timedelta = timedelta(0)
    scheme: str = ""
    profiling_config: Optional[ProfilingConfig] = None
    relabel_configs: List[Dict[str, Any]] = field(default_factory=list)
    static_configs: List[StaticConfig] = field(default_factory=list)
    http_client_config: Dict[str, Any] = field(default_factory=dict)

    def set_directory(self, directory: str) -> None:
        """Join relative file paths in the HTTP client settings with directory."""
        http = self.http_client_config
        _set_tls_directory(http.get("tls_config"), directory)
        if "bearer_token_file" in http:
            http["bearer_token_file"] = _join_dir(directory, http["bearer_token_file"])
        basic = http.get("basic_auth")
        if isinstance(basic, dict) and "password_file" in basic:
            basic["password_file"] = _join_dir(directory, basic["password_file"])
        auth = http.get("authorization")
        if isinstance(auth, dict) and "credentials_file" in auth:
            auth["credentials_file"] = _join_dir(directory, auth["credentials_file"])
        oauth2 = http.get("oauth2")
        if isinstance(oauth2, dict):
            if "client_secret_file" in oauth2:
                oauth2["client_secret_file"] = _join_dir(directory, oauth2["client_secret_file"])
            _set_tls_directory(oauth2.get("tls_config"), directory)


@dataclass
class Config:
    """All of Parca's configuration."""

    debug_info: Optional[DebugInfoConfig] = None
    scrape_configs: List[ScrapeConfig] = field(default_factory=list)

    def validate(self) -> None:
        """Raise ValidationError unless debug info storage is properly configured."""
        if self.debug_info is None:
            raise ValidationError("debug_info: cannot be blank.")
        if not isinstance(self.debug_info, DebugInfoConfig):
            raise ValidationError("debug_info: DebugInfo is invalid.")
        try:
            self.debug_info.validate()
        except ValidationError as exc:
            raise ValidationError(f"debug_info: ({exc}).") from exc

    def set_directory(self, directory: str) -> None:
        """Join any relative file paths with directory."""
        for scrape_config in self.scrape_configs:
            scrape_config.set_directory(directory)

    def __str__(self) -> str:
        data = {
            "debug_info": _plain(self.debug_info),
        }
        if self.scrape_configs:
            data["scrape_configs"] = [_scrape_data(sc) for sc in self.scrape_configs]
        try:
            return yaml.safe_dump(data, sort_keys=False)
        except yaml.YAMLError as exc:
            return f"<error creating config string: {exc}>"


def default_scrape_config() -> ScrapeConfig:
    """Return a scrape configuration holding every default value."""
    return ScrapeConfig(
        scrape_interval=timedelta(seconds=10),
        scrape_timeout=timedelta(0),
        scheme="http",
        profiling_config=ProfilingConfig(
            pprof_config={
                PPROF_MEMORY: PprofProfilingConfig(enabled=True, path="/debug/pprof/allocs"),
                PPROF_BLOCK: PprofProfilingConfig(enabled=True, path="/debug/pprof/block"),
                PPROF_GOROUTINE: PprofProfilingConfig(enabled=True, path="/debug/pprof/goroutine"),
                PPROF_MUTEX: PprofProfilingConfig(enabled=True, path="/debug/pprof/mutex"),
                PPROF_PROCESS_CPU: PprofProfilingConfig(
                    enabled=True, delta=True, path="/debug/pprof/profile"
                ),
            }
        ),
    )


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as "1h30m", "10s" or "500ms"."""
    if text == "":
        raise ConfigError("empty duration string")
    if text == "0":
        return timedelta(0)
    match = _DURATION_RE.match(text)
    if not match:
        raise ConfigError(f"not a valid duration string: {json.dumps(text)}")
    total = sum(
        int(amount) * unit_ms
        for amount, (_, unit_ms) in zip(match.groups(), _DURATION_UNITS)
        if amount
    )
    return timedelta(milliseconds=total)


def _format_duration(value: timedelta) -> str:
    remaining = int(value / timedelta(milliseconds=1))
    if remaining == 0:
        return "0s"
    parts = []
    for unit, unit_ms in _DURATION_UNITS:
        amount, remaining = divmod(remaining, unit_ms)
        if amount:
            parts.append(f"{amount}{unit}")
    return "".join(parts)


def check_target_address(address: str) -> None:
    """Raise ConfigError if a target address looks like a URL rather than host:port."""
    if "/" in address:
        raise ConfigError(f"{json.dumps(address)} is not a valid hostname")


class _StrictLoader(yaml.SafeLoader):
    """A safe loader that rejects duplicate keys in a mapping."""

    def construct_mapping(self, node, deep=False):
        if isinstance(node, yaml.MappingNode):
            seen = set()
            for key_node, _ in node.value:
                if key_node.tag == "tag:yaml.org,2002:merge":
                    continue
                key = self.construct_object(key_node, deep=deep)
                try:
                    duplicate = key in seen
                except TypeError:
                    continue
                if duplicate:
                    raise yaml.constructor.ConstructorError(
                        None, None, f"key {key!r} already set in map", key_node.start_mark
                    )
                seen.add(key)
        return super().construct_mapping(node, deep=deep)


def _mapping(value: Any, where: str) -> Dict[Any, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{where}: expected a mapping")
    return value


def _check_keys(data: Dict[Any, Any], allowed: set, where: str) -> None:
    unknown = sorted(str(key) for key in data if key not in allowed)
    if unknown:
        raise ConfigError(f"{where}: field {unknown[0]} not found")


def _string(value: Any, where: str) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    raise ConfigError(f"{where}: expected a string")


def _optional_bool(value: Any, where: str) -> Optional[bool]:
    if value is None or isinstance(value, bool):
        return value
    raise ConfigError(f"{where}: expected a boolean")


def _list(value: Any, where: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(f"{where}: expected a list")
    return value


def _duration(value: Any, where: str) -> timedelta:
    try:
        return parse_duration(_string(value, where))
    except ConfigError as exc:
        raise ConfigError(f"{where}: {exc}") from exc


def _parse_bucket(raw: Any) -> Optional[BucketConfig]:
    if raw is None:
        return None
    data = _mapping(raw, "bucket")
    _check_keys(data, _BUCKET_KEYS, "bucket")
    return BucketConfig(type=_string(data.get("type"), "bucket.type"), config=data.get("config"))


def _parse_cache(raw: Any) -> Optional[CacheConfig]:
    if raw is None:
        return None
    data = _mapping(raw, "cache")
    _check_keys(data, _CACHE_KEYS, "cache")
    return CacheConfig(type=_string(data.get("type"), "cache.type"), config=data.get("config"))


def _parse_debug_info(raw: Any) -> Optional[DebugInfoConfig]:
    if raw is None:
        return None
    data = _mapping(raw, "debug_info")
    _check_keys(data, {"bucket", "cache"}, "debug_info")
    return DebugInfoConfig(bucket=_parse_bucket(data.get("bucket")), cache=_parse_cache(data.get("cache")))


def _parse_params(raw: Any) -> Dict[str, List[str]]:
    params: Dict[str, List[str]] = {}
    for name, values in _mapping(raw, "params").items():
        params[_string(name, "params")] = [
            _string(v, f"params.{name}") for v in _list(values, f"params.{name}")
        ]
    return params


def _parse_pprof(raw: Any, where: str) -> Optional[PprofProfilingConfig]:
    if raw is None:
        return None
    data = _mapping(raw, where)
    _check_keys(data, _PPROF_KEYS, where)
    return PprofProfilingConfig(
        enabled=_optional_bool(data.get("enabled"), f"{where}.enabled"),
        path=_string(data.get("path"), f"{where}.path"),
        delta=bool(_optional_bool(data.get("delta"), f"{where}.delta")),
    )


def _parse_profiling(raw: Any) -> Optional[ProfilingConfig]:
    if raw is None:
        return None
    data = _mapping(raw, "profiling_config")
    _check_keys(data, _PROFILING_KEYS, "profiling_config")
    pprof_raw = data.get("pprof_config")
    pprof: Optional[Dict[str, Optional[PprofProfilingConfig]]] = None
    if pprof_raw is not None:
        pprof = {
            _string(name, "pprof_config"): _parse_pprof(value, f"pprof_config.{name}")
            for name, value in _mapping(pprof_raw, "pprof_config").items()
        }
    return ProfilingConfig(
        pprof_config=pprof,
        path_prefix=_string(data.get("path_prefix"), "profiling_config.path_prefix"),
    )


def _parse_static_configs(raw: Any) -> List[StaticConfig]:
    groups = []
    for index, entry in enumerate(_list(raw, "static_configs")):
        if entry is None:
            raise ConfigError("empty or null section in static_configs")
        data = _mapping(entry, "static_configs")
        _check_keys(data, _STATIC_KEYS, "static_configs")
        targets = [
            {ADDRESS_LABEL: _string(target, "static_configs.targets")}
            for target in _list(data.get("targets"), "static_configs.targets")
        ]
        labels = None
        if "labels" in data and data["labels"] is not None:
            labels = {}
            for name, value in _mapping(data["labels"], "static_configs.labels").items():
                name = _string(name, "static_configs.labels")
                if not _LABEL_NAME_RE.match(name):
                    raise ConfigError(f"{json.dumps(name)} is not a valid label name")
                labels[name] = _string(value, f"static_configs.labels.{name}")
        groups.append(StaticConfig(targets=targets, labels=labels, source=str(index)))
    return groups


def _parse_section(raw: Any, allowed: set, secrets: set, where: str) -> Dict[str, Any]:
    data = _mapping(raw, where)
    _check_keys(data, allowed, where)
    section = {}
    for key, value in data.items():
        if key in secrets:
            section[key] = Secret(_string(value, f"{where}.{key}"))
        elif key == "tls_config":
            section[key] = _parse_section(value, _TLS_KEYS, set(), f"{where}.tls_config")
        else:
            section[key] = value
    return section


def _parse_http_client(data: Dict[Any, Any]) -> Dict[str, Any]:
    http: Dict[str, Any] = {}
    for key in _HTTP_CLIENT_KEYS:
        if key not in data:
            continue
        value = data[key]
        if key in _HTTP_CLIENT_SECTIONS:
            if value is None:
                continue
            allowed, secrets = _HTTP_CLIENT_SECTIONS[key]
            http[key] = _parse_section(value, allowed, secrets, key)
        elif key == "bearer_token":
            http[key] = Secret(_string(value, key))
        else:
            http[key] = value
    return http


def _validate_http_client(http: Dict[str, Any]) -> None:
    bearer = http.get("bearer_token") or ""
    bearer_file = http.get("bearer_token_file") or ""
    basic = http.get("basic_auth")
    oauth2 = http.get("oauth2")
    auth = http.get("authorization")

    if bearer and bearer_file:
        raise ConfigError("at most one of bearer_token & bearer_token_file must be configured")
    if (basic is not None or oauth2 is not None) and (bearer or bearer_file):
        raise ConfigError(
            "at most one of basic_auth, oauth2, bearer_token & bearer_token_file must be configured"
        )
    if basic is not None and basic.get("password") and basic.get("password_file"):
        raise ConfigError("at most one of basic_auth password & password_file must be configured")
    if auth is not None:
        if bearer or bearer_file:
            raise ConfigError("authorization is not compatible with bearer_token & bearer_token_file")
        if auth.get("credentials") and auth.get("credentials_file"):
            raise ConfigError(
                "at most one of authorization credentials & credentials_file must be configured"
            )
        auth_type = _string(auth.get("type"), "authorization.type").strip() or "Bearer"
        auth["type"] = auth_type
        if auth_type.lower() == "basic":
            raise ConfigError('authorization type cannot be set to "basic", use "basic_auth" instead')
        if basic is not None or oauth2 is not None:
            raise ConfigError("at most one of basic_auth, oauth2 & authorization must be configured")
    else:
        if bearer:
            http["authorization"] = {"type": "Bearer", "credentials": Secret(bearer)}
            http.pop("bearer_token", None)
        if bearer_file:
            http["authorization"] = {"type": "Bearer", "credentials_file": bearer_file}
            http.pop("bearer_token_file", None)
    if basic is not None and oauth2 is not None:
        raise ConfigError("at most one of basic_auth, oauth2 & authorization must be configured")


def _join_path(*parts: str) -> str:
    joined = "/".join(part for part in parts if part)
    if not joined:
        return ""
    cleaned = posixpath.normpath(joined)
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def _merge_profiling(profiling: Optional[ProfilingConfig], defaults: ScrapeConfig) -> ProfilingConfig:
    default_profiling = defaults.profiling_config
    assert default_profiling is not None and default_profiling.pprof_config is not None
    if profiling is None or profiling.pprof_config is None:
        profiling = default_profiling
    else:
        for name, default in default_profiling.pprof_config.items():
            current = profiling.pprof_config.get(name)
            if current is None:
                profiling.pprof_config[name] = default
                continue
            if current.enabled is None:
                current.enabled = True
            if not current.path:
                current.path = default.path  # type: ignore[union-attr]

    for name, pprof in (profiling.pprof_config or {}).items():
        if pprof is None:
            raise ConfigError(f"empty or null section in pprof_config: {name}")

    if profiling.path_prefix:
        for pprof in (profiling.pprof_config or {}).values():
            pprof.path = _join_path(profiling.path_prefix, pprof.path)  # type: ignore[union-attr]
    return profiling


def _parse_scrape_config(raw: Any) -> ScrapeConfig:
    if raw is None:
        raise ConfigError("empty or null scrape config section")
    data = _mapping(raw, "scrape config")
    _check_keys(data, _SCRAPE_KEYS | _HTTP_CLIENT_KEYS, "scrape config")
    defaults = default_scrape_config()

    config = ScrapeConfig(
        job_name=_string(data.get("job_name"), "job_name"),
        params=_parse_params(data.get("params")),
        scrape_interval=defaults.scrape_interval,
        scrape_timeout=defaults.scrape_timeout,
        scheme=defaults.scheme,
    )
    if data.get("scrape_interval") is not None:
        config.scrape_interval = _duration(data["scrape_interval"], "scrape_interval")
    if data.get("scrape_timeout") is not None:
        config.scrape_timeout = _duration(data["scrape_timeout"], "scrape_timeout")
    if "scheme" in data:
        config.scheme = _string(data["scheme"], "scheme")
    config.static_configs = _parse_static_configs(data.get("static_configs"))
    relabel_configs = _list(data.get("relabel_configs"), "relabel_configs")
    config.http_client_config = _parse_http_client(data)
    config.profiling_config = _merge_profiling(_parse_profiling(data.get("profiling_config")), defaults)

    if not config.job_name:
        raise ConfigError("job_name is empty")

    _validate_http_client(config.http_client_config)

    # Catch URLs put in target groups.
    if not relabel_configs:
        for group in config.static_configs:
            for target in group.targets:
                check_target_address(target[ADDRESS_LABEL])

    for rule in relabel_configs:
        if rule is None:
            raise ConfigError("empty or null target relabeling rule in scrape config")
        config.relabel_configs.append(_mapping(rule, "relabel_configs"))

    if config.scrape_timeout > config.scrape_interval:
        raise ConfigError(
            f"scrape timeout must be smaller or equal to inverval for: {config.job_name}"
        )
    if config.scrape_timeout == timedelta(0):
        config.scrape_timeout = config.scrape_interval

    cpu = (config.profiling_config.pprof_config or {}).get(PPROF_PROCESS_CPU)
    if cpu is not None and cpu.enabled and config.scrape_timeout < _MIN_PROCESS_CPU_TIMEOUT:
        raise ConfigError(
            f"{PPROF_PROCESS_CPU} scrape_timeout must be at least 2 seconds in {config.job_name}"
        )
    return config


def _parse_config(raw: Any) -> Config:
    data = _mapping(raw, "config")
    _check_keys(data, _TOP_LEVEL_KEYS, "config")
    return Config(
        debug_info=_parse_debug_info(data.get("debug_info")),
        scrape_configs=[
            _parse_scrape_config(item) for item in _list(data.get("scrape_configs"), "scrape_configs")
        ],
    )


def load(text: str) -> Config:
    """Parse a YAML document into a Config, rejecting unknown fields."""
    try:
        raw = yaml.load(text, Loader=_StrictLoader)
    except yaml.YAMLError as exc:
        raise ConfigError(str(exc)) from exc
    return _parse_config(raw)


def load_file(filename: str) -> Config:
    """Parse a YAML file into a Config, resolving relative paths against its directory."""
    with open(filename, encoding="utf-8") as f:
        content = f.read()
    try:
        config = load(content)
    except ConfigError as exc:
        raise ConfigError(f"parsing YAML file {filename}: {exc}") from exc
    config.set_directory(os.path.dirname(filename))
    return config


def _plain(value: Any) -> Any:
    if isinstance(value, Secret):
        return "<secret>" if value else None
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, timedelta):
        return _format_duration(value)
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _plain(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def _without_empty(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in data.items() if value not in (None, "", False, [], {})}


def _scrape_data(sc: ScrapeConfig) -> Dict[str, Any]:
    data: Dict[str, Any] = {"job_name": sc.job_name}
    if sc.params:
        data["params"] = _plain(sc.params)
    if sc.scrape_interval:
        data["scrape_interval"] = _format_duration(sc.scrape_interval)
    if sc.scrape_timeout:
        data["scrape_timeout"] = _format_duration(sc.scrape_timeout)
    if sc.scheme:
        data["scheme"] = sc.scheme
    if sc.profiling_config is not None:
        profiling: Dict[str, Any] = {}
        if sc.profiling_config.pprof_config:
            profiling["pprof_config"] = {
                name: _without_empty(_plain(pprof)) if pprof is not None else None
                for name, pprof in sc.profiling_config.pprof_config.items()
            }
        if sc.profiling_config.path_prefix:
            profiling["path_prefix"] = sc.profiling_config.path_prefix
        data["profiling_config"] = profiling
    if sc.relabel_configs:
        data["relabel_configs"] = _plain(sc.relabel_configs)
    for key, value in sc.http_client_config.items():
        plain = _plain(value)
        if isinstance(plain, dict):
            plain = {k: v for k, v in plain.items() if v is not None}
        if plain is not None:
            data[key] = plain
    return data