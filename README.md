# rpcplug

Building blocks for the server side of RPC services: plugins that a server
calls as connections are accepted and requests are read and answered,
service registries that keep a key/value store up to date, and a few small
utilities.

## Installation

```
pip install rpcplug
```

To run the test suite from a checkout:

```
pip install ".[test]"
pytest
```

## Utilities

- `rpcplug.bufferpool.LimitedPool(min_size, max_size)` – reusable
  `bytearray` buffers in size classes that double from `min_size` up to
  `max_size`. `get(size)` returns a buffer of exactly `size` bytes;
  `put(buf)` returns one to the pool (buffers outside the size range are
  dropped). `find_pool_size` and `find_put_pool_size` tell which size class
  a request or a returned buffer maps to.
- `rpcplug.compress` – `zip_bytes` and `unzip_bytes` for gzip payloads.
  `unzip_bytes` raises `EOFError` on empty input.
- `rpcplug.converter` – `bytes_to_str` / `str_to_bytes`, a lossless pair
  even for invalid UTF-8, and `copy_meta(src, dst)`.
- `rpcplug.net`
  - `get_free_port()` – a TCP port on 127.0.0.1 that is free now.
  - `parse_rpcx_address("tcp@127.0.0.1:8972")` → `("tcp", "127.0.0.1", 8972)`
    as a named tuple (`network`, `ip`, `port`); raises `ValueError` on a
    malformed address.
  - `meta_to_map` parses a query-encoded metadata string (the first value of
    a key wins; malformed input gives `{}`); `map_to_meta` encodes a mapping
    with its keys sorted.
  - `external_ipv4()` – the first IPv4 address of an interface that is up
    and not loopback; `external_ipv6()` – the first address of either family
    on such an interface. Both raise `OSError` when there is none.

## Request context and shared types

- `rpcplug.context.ShareContext` – a context with its own lock-protected
  values that falls back to its parent for keys it does not hold. Use it as
  a context manager to hold its lock. `new_context(parent)` creates one that
  `is_share_context` recognises; `with_value` and `with_local_value` add
  values (a `None` key raises `ValueError`, an unhashable one `TypeError`).
- `rpcplug.share` – well-known names (`DEFAULT_RPC_PATH`, `AUTH_KEY`, …),
  the codec table `CODECS` (empty until `register_codec` fills it), and the
  dataclasses `FileTransferArgs`, `FileTransferReply`, `DownloadFileArgs`,
  `StreamServiceArgs` and `StreamServiceReply`.
- `rpcplug.tracing` – `MetadataCarrier`, and `inject(ctx, propagator)` /
  `extract(ctx, propagator)`, which hand a carrier over the request metadata
  of a context to any propagator with `inject(ctx, carrier)` and
  `extract(ctx, carrier)` methods.

## Server plugins

Plugins receive the objects a server hands them: connections with
`getpeername()`/`recv()`, and requests and responses with `service_path`,
`service_method` and `metadata` attributes.

- `rpcplug.metrics` – a `Registry` of `Counter`, `Meter` and `Histogram`
  metrics created on first use, and `MetricsPlugin(registry, prefix="")`,
  which counts registered services, accepted connections, per-method read
  and write rates, and call times when the context carries a start time.
- `rpcplug.alias.AliasPlugin` – `alias(alias_path, alias_method, path,
  method)` serves a method under another name and restores the alias in the
  response.
- `rpcplug.access.BlacklistPlugin` / `WhitelistPlugin` – refuse, or accept
  only, connections from listed addresses or networks (`"172.17.0.0/16"`).
- `rpcplug.ratelimit` – `TokenBucket(fill_interval, capacity)`,
  `RateLimitingPlugin` for connections, and `ReqRateLimitingPlugin` for
  requests, which either waits (`block=True`) or raises
  `RequestLimitError`.
- `rpcplug.tee.TeeConnPlugin(writer)` – wraps each accepted connection in a
  `TeeConn` that copies every received chunk to `writer`; `update(writer)`
  changes the writer for later connections.

## Service registries

`rpcplug.registry.RegisterPlugin` records each service at
`<base>/<service>/<address>` in a key/value store, with a TTL of twice the
update interval. `start()` creates the base path and, with a positive
`update_interval` (seconds), starts a background thread that calls
`refresh()`, rewriting each node with the current `calls` and `connections`
rates and re-creating nodes that were lost. `stop()` removes the nodes and
ends that thread. `register`, `register_function` and `unregister` manage
services; an empty name raises `ValueError`.

Backends:

- `rpcplug.consul.ConsulRegisterPlugin` – talks to the Consul HTTP API of
  the first of `consul_servers`; TTLs use Consul sessions.
- `rpcplug.redis_registry.RedisRegisterPlugin` – speaks the Redis protocol
  to the first of `redis_servers`; the base path is used as given.
- `rpcplug.zookeeper.ZooKeeperRegisterPlugin` – opens a session with the
  first reachable of `zookeeper_servers`; nodes with a TTL are ephemeral.
- `rpcplug.kvstore.MemoryStore` – an in-memory store with TTLs. Passing any
  store as `store=` skips the network backend entirely.

The Consul and ZooKeeper plugins drop a leading `/` from the base path. A
backend store is only connected when first needed.

```python
from rpcplug.consul import ConsulRegisterPlugin
from rpcplug.kvstore import MemoryStore
from rpcplug.metrics import Registry

plugin = ConsulRegisterPlugin(
    service_address="tcp@127.0.0.1:8972",
    consul_servers=["127.0.0.1:8500"],
    base_path="/rpcx_test",
    store=MemoryStore(),
    metrics=Registry(),
    update_interval=60.0,
)
plugin.start()
plugin.register("Arith", object(), "")
print(plugin.services)   # ['Arith']
plugin.stop()
```

## What this package does not do

It contains no RPC server, client or wire protocol: the plugins are hooks
that a server of your own calls. No codecs are registered by default.
Metrics stay in process; there is no reporter that sends them to an
external monitoring system, and no tracing plugin beyond the metadata
carrier in `rpcplug.tracing`.