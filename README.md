# pilotkit

Small building blocks for administration scripts: filesystem operations with
readable error messages, whole-tree moves, table merging, string splitting,
and TCP sockets (plain or TLS) whose timeouts bound each whole call.

The package has no runtime dependencies.

## Modules

### `pilotkit.fsops`

Every failure raises `FileOperationError` with a message naming the path.

- `create_directory(path, ignore_if_exists=False)` creates `path` and any
  missing parents. An existing directory is never an error. An existing
  non-directory is an error unless `ignore_if_exists` is true.
- `parse_mode(mode)` accepts an octal string (`"755"`) or an integer and
  returns the mode as an int. It raises `ValueError` for malformed values and
  for values outside `0..0o7777`, and `TypeError` for other types.
- `set_mode(path, mode)` changes the permission bits. `get_mode(path)` returns
  them, masked to `0o777`. Both follow symlinks.
- `remove_file(path)` removes a file or an empty directory, which must exist.
- `rename(old_path, new_path)` renames a file or directory. An existing
  destination file is replaced. Empty paths, a missing source and identical
  paths are refused.
- `remove_path(path)` removes a file, a symlink or an empty directory.
- `remove_tree(path)` removes a directory and everything below it. A symlink
  is removed, not followed.

### `pilotkit.movetree`

`move_tree(source, destination)` moves a directory tree. If the destination
does not exist, a single rename is tried first. When the destination already
exists, or lies on another filesystem, entries are moved one by one:

- directories are created,
- files are renamed, or copied and then removed across filesystems,
- symlinks are recreated at the end.

A symlink with an absolute target inside the source is pointed at the matching
place in the destination. Other targets are kept as they are. A destination
that resolves to the source or to a path inside it is refused. Failures raise
`MoveTreeError`.

`is_within(base, candidate)` tells whether `candidate` is `base` or lies
below it. The comparison is lexical and made component by component.

### `pilotkit.tables`

`merge_tables(*tables)` merges two or more mappings or sequences into a new
dict:

- values under numeric keys, and sequence items, are appended under
  consecutive integer keys starting at 1,
- values under any other key are copied, with later tables winning.

### `pilotkit.text`

`split(text, delimiter=None, max_splits=-1)` splits on a single-character
delimiter. With no delimiter, or an empty one, the text is split into its
characters. `max_splits=-1` means no limit.

### Sockets

- `pilotkit.network`
  - `connect(host, port, timeout=None)`: the timeout, in seconds, bounds the
    connection phase only.
  - `connect_tls(host, port, options=None)`
  - `listen(host, port, backlog=None)`: the backlog defaults to 16. Address
    reuse is enabled, and an empty host means all interfaces.

  Each of these returns a `pilotkit.sockets.Socket`.
- `Socket` has these methods: `send`, `recv(count)` (1 byte to 16 MB),
  `recv_line`, `recv_all`, `accept`, `close`, `set_timeout(seconds)`, `peer`,
  `sockname` and `starttls(options)`. It also has the properties `closed`,
  `listening`, `is_tls` and `timeout_ms`, and it works as a context manager.
- `set_timeout` sets one deadline for each whole later call. A value of 0
  disables it.
  - A timeout raises `SocketTimeout`.
  - A peer that has closed raises `SocketClosed`. Its `partial` attribute
    holds the bytes of an unfinished line from `recv_line`.
  - Other failures raise `SocketError`.
- `recv_line` strips `\n` or `\r\n`. If it times out partway through a line,
  the bytes already read are kept, and the next call continues that line.
- `pilotkit.tls` handles TLS.
  - `parse_tls_options` reads the option keys `verify` (default `True`),
    `ca_cert`, `ca_path`, `hostname`, `min_version` (`"1.2"` or `"1.3"`) and
    `timeout` (seconds), and returns a `TlsOptions`.
  - `create_context`, `wrap` and `handshake` build on those options.
  - TLS failures raise `TlsError`, a subclass of `SocketError`.
  - `Socket.starttls` with verification on requires `hostname`.
- `pilotkit.netbase` holds the exceptions, `Deadline`, `make_deadline`,
  `parse_timeout` and `wait_ready`.

## Examples

```python
from pilotkit.fsops import create_directory, set_mode, get_mode

create_directory("build/out", ignore_if_exists=True)
set_mode("build/out", "755")
assert get_mode("build/out") == 0o755
```

```python
from pilotkit.text import split
from pilotkit.tables import merge_tables

split("a,b,c", ",", 1)             # ["a", "b,c"]
merge_tables([1, 2], {"k": "v"})   # {1: 1, 2: 2, "k": "v"}
```

```python
from pilotkit.network import connect_tls

with connect_tls("irc.example.com", 6697, {"timeout": 10}) as sock:
    sock.set_timeout(1)
    sock.send(b"PING :hello\r\n")
    print(sock.recv_line())
```

## What it does not do

- pilotkit is a library only. It has no command-line tool and no script
  interpreter.
- It has no file hashing, no signal handling and no sleep helper.
- Its TLS support is client-side only: there is no TLS server.
- It has no UDP.

## Running the tests

```
pip install -e ".[test]"
pytest
```