# parca

Building blocks for a continuous profiling server:

- **Configuration** (`parca.config.config`): loading and validating the YAML
  configuration that describes debug information storage and scrape jobs,
  with the built-in pprof endpoint defaults (`memory`, `block`, `goroutine`,
  `mutex`, `process_cpu`), path prefixes and timeout checks.
- **Configuration reloading** (`parca.config.reloader`): polling the
  configuration file and handing each newly loaded, valid configuration to a
  list of `ComponentReloader`s.
- **Metastore** (`parca.metastore`): content-addressed keys for mappings,
  functions, locations and stacktraces (`parca.metastore.kv`), an in-memory
  store with get-or-create semantics and tracking of unsymbolized locations
  (`parca.metastore.memory`), and an in-process client over it
  (`parca.metastore.client`).
- **Debug information** (`parca.debuginfo`): cache and bucket configuration
  with build ID validation (`parca.debuginfo.cacheconfig`), filesystem and
  in-memory object buckets (`parca.debuginfo.bucket`), and clients for
  upstream debuginfod servers, optionally storing what they download in a
  bucket (`parca.debuginfo.debuginfod`).
- **Hashing** (`parca.hashing`): XXH64 digests of files and streams.
- **Logging** (`parca.logger`): a leveled logger printing logfmt or JSON to
  standard error.

Python 3.10 or later is required. The package depends on `pyyaml` and
`requests`; the `test` extra adds `pytest` and `responses`.

## Loading a configuration

```python
from parca.config.config import ConfigError, load, load_file

config = load("""
debug_info:
  bucket:
    type: "FILESYSTEM"
    config:
      directory: "./data"
  cache:
    type: "FILESYSTEM"
    config:
      directory: "./cache"
scrape_configs:
  - job_name: "default"
    scrape_interval: "10s"
    static_configs:
      - targets: ["127.0.0.1:7070"]
""")
config.validate()
```

Unknown fields, an empty `job_name`, a `scrape_timeout` larger than the
`scrape_interval`, a `process_cpu` timeout under two seconds, or a target
containing a `/` raise `ConfigError`. `Config.validate` raises
`ValidationError` when `debug_info` or its bucket `type`/`config` is missing.
Scrape jobs without a `profiling_config` get the default pprof endpoints, and
a `scrape_timeout` left at zero takes the interval's value. `load_file` reads
a file and resolves relative file paths in the HTTP client settings against
its directory. `parse_duration` accepts durations such as `1h30m`, `10s` or
`500ms`.

## Reloading on change

```python
import threading

from parca.config.reloader import ComponentReloader, ConfigReloader

reloader = ConfigReloader(
    "parca.yaml",
    [ComponentReloader(name="print", reloader=lambda cfg: print(cfg))],
    poll_interval=1.0,
)
stop = threading.Event()
threading.Thread(target=reloader.run, args=(stop,)).start()
# ... later
stop.set()
```

`run` checks the file's modification time and size every `poll_interval`
seconds and reloads when they change; failures are logged and watching
continues. `reload_file` performs one load-validate-apply cycle, returns the
new `Config` and raises `ConfigError` on failure. `last_reload_successful`
and `last_reload_success_timestamp` record the outcome of the last attempt.

## Using the metastore

```python
from parca.metastore.client import InProcessClient, new_test_metastore
from parca.metastore.kv import Location, Mapping

client = InProcessClient(new_test_metastore())
[mapping] = client.get_or_create_mappings([Mapping(start=0x1000, limit=0x2000, build_id="abcd")])
[location] = client.get_or_create_locations([Location(address=0x1234, mapping_id=mapping.id)])
assert client.unsymbolized_locations() == [location]
```

Identical objects always receive the same ID. Lookups by ID
(`mappings`, `functions`, `locations`, `stacktraces`) raise
`KeyNotFoundError` for unknown IDs; `location_lines` returns `None` for
locations not yet symbolized. `create_location_lines` stores the lines of
locations and removes them from the unsymbolized set.

## Debug information

```python
from parca.debuginfo.bucket import InMemoryBucket
from parca.debuginfo.cacheconfig import CacheConfig, new_cache, validate_input
from parca.debuginfo.debuginfod import (
    DebugInfodClientObjectStorageCache,
    HTTPDebugInfodClient,
)

validate_input("abcd")  # raises ValidationError for non-hex or too short input
cache = new_cache(CacheConfig(config={"directory": "./cache"}))

upstream = HTTPDebugInfodClient(["https://debuginfod.example.com"], timeout=30)
client = DebugInfodClientObjectStorageCache(upstream, InMemoryBucket())
with client.get_debug_info("d278249792061c6b74d1693ca59513be1def13f2") as reader:
    data = reader.read()
```

`HTTPDebugInfodClient` requests `/buildid/<BUILDID>/debuginfo` from each
server in turn and raises `DebugInfoNotFoundError` when none has the file.
`NopDebugInfodClient` never finds anything. The caching client uploads what
is read to `<build id>/debuginfo` in the bucket; the upload finishes when the
reader is closed. `new_bucket` builds a `FilesystemBucket` from a
`FILESYSTEM` `BucketConfig`.

## Hashing

```python
from parca.hashing import hash_file

digest = hash_file("build/app.debug")  # 16 hex digits
```

## What this package does not do

There is no command, no server and no network service: nothing here accepts
profiles, scrapes targets or serves queries. Debug information can be stored
in buckets and fetched from debuginfod servers, but there is no store that
tracks upload state per build ID, validates uploaded ELF files or streams
uploads and downloads in chunks. The metastore keeps everything in memory
and nothing survives the process.