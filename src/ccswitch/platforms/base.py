# Platform adapter base utilities
from collections.abc import Callable
from pathlib import Path
from typing import Any

import tomlkit

from ccswitch.errors import FormatError, ValidationFailedError
from ccswitch.merge import REMOVE, Replace, merge, merge_into
from ccswitch.models import (
    Document,
    HttpTransport,
    McpServer,
    SseTransport,
    StdioTransport,
    Transport,
)
from ccswitch.utils.atomic import LiveTransaction
from ccswitch.utils.codec import (
    decode_json,
    decode_toml,
    decode_toml_document,
    encode_json,
    encode_toml_document,
)

# ABOUTME: Explicit type tags accepted in native files, mapped to canonical kinds
TRANSPORT_ALIASES = {
    "stdio": "stdio",
    "http": "http",
    "streamable-http": "http",
    "streamable_http": "http",
    "streamableHttp": "http",
    "sse": "sse",
}


def read_json_document(tx: LiveTransaction, path: Path) -> Document | None:
    """Read a JSON live file through the transaction.

    ABOUTME: Returns None if the file doesn't exist
    ABOUTME: Raises FormatError for invalid JSON
    """
    return decode_json(tx.read_bytes(path), path)


def write_json_document(tx: LiveTransaction, path: Path, document: Document) -> None:
    """Stage a JSON live file."""
    tx.stage(path, encode_json(document))


def read_toml_document(tx: LiveTransaction, path: Path) -> Document | None:
    """Read a TOML live file through the transaction.

    ABOUTME: Returns None if the file doesn't exist
    ABOUTME: Raises FormatError for invalid TOML
    """
    return decode_toml(tx.read_bytes(path), path)


def patch_toml_document(
    tx: LiveTransaction, path: Path, *patches: Document, prune: str | None = None
) -> None:
    """Apply merge patches to a TOML live file in place and stage it.

    ABOUTME: Comments, key order and layout of everything not patched are kept
    ABOUTME: prune names a table the patches may leave empty: it is dropped again
    ABOUTME: if it was absent before, otherwise kept as an explicit empty table

    Raises:
        FormatError: If the existing file is not valid TOML
    """
    document = decode_toml_document(tx.read_bytes(path), path)
    had_pruned = prune is not None and prune in document
    for patch in patches:
        merge_into(document, patch)
    if prune is not None and prune in document and not document[prune]:
        if had_pruned:
            document[prune] = tomlkit.table()
        else:
            del document[prune]
    tx.stage(path, encode_toml_document(document))


def parse_json_snippet(snippet: str | None) -> Document:
    """Parse a JSON common config snippet.

    ABOUTME: Blank snippets parse to {}

    Raises:
        ValidationFailedError: If the snippet is not a JSON object
    """
    if not snippet or not snippet.strip():
        return {}
    try:
        return decode_json(snippet) or {}
    except FormatError as e:
        raise ValidationFailedError(f"Invalid common config snippet: {e}") from e


def parse_toml_snippet(snippet: str | None) -> Document:
    """Parse a TOML common config snippet.

    Raises:
        ValidationFailedError: If the snippet is not valid TOML
    """
    if not snippet or not snippet.strip():
        return {}
    try:
        return decode_toml(snippet) or {}
    except FormatError as e:
        raise ValidationFailedError(f"Invalid common config snippet: {e}") from e


def classify_transport(entry: dict[str, Any], url_default: str = "http") -> str:
    """Decide the transport kind of a native MCP entry.

    ABOUTME: Priority: explicit type > command > httpUrl > url
    ABOUTME: A bare url means url_default, since apps disagree on its meaning

    Args:
        entry: Native server record
        url_default: Kind to use for a record carrying only "url"

    Returns:
        "stdio", "http" or "sse"

    Raises:
        ValueError: If the type tag is unknown or nothing identifies the transport

    Examples:
        >>> classify_transport({"httpUrl": "http://x:1"})
        'http'
        >>> classify_transport({"command": "echo"})
        'stdio'
        >>> classify_transport({"type": "sse", "command": "echo"})
        'sse'
    """
    explicit = entry.get("type")
    if explicit is not None:
        if explicit not in TRANSPORT_ALIASES:
            raise ValueError(f"unknown transport type '{explicit}'")
        return TRANSPORT_ALIASES[explicit]
    if entry.get("command"):
        return "stdio"
    if entry.get("httpUrl"):
        return "http"
    if entry.get("url"):
        return url_default
    raise ValueError("no type, command or url to infer the transport from")


def seconds_from_ms(milliseconds: int | float) -> int | float:
    """Convert a millisecond timeout to seconds, keeping whole values integral.

    Examples:
        >>> seconds_from_ms(30000)
        30
        >>> seconds_from_ms(1500)
        1.5
    """
    if milliseconds % 1000 == 0:
        return int(milliseconds // 1000)
    return milliseconds / 1000


def ms_from_seconds(seconds: int | float) -> int:
    """Convert a timeout in seconds to whole milliseconds."""
    return int(round(seconds * 1000))


def string_map(value: Any, field_name: str) -> dict[str, str]:
    """Validate a native {str: str} map such as env or headers."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"'{field_name}' must be a table/object")
    return {str(k): str(v) for k, v in value.items()}


def string_list(value: Any, field_name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"'{field_name}' must be a list")
    return [str(v) for v in value]


def stdio_from_entry(entry: dict[str, Any]) -> StdioTransport:
    command = entry.get("command")
    if not command or not isinstance(command, str):
        raise ValueError("stdio server requires a 'command'")
    return StdioTransport(
        command=command,
        args=string_list(entry.get("args"), "args"),
        env=string_map(entry.get("env"), "env"),
        cwd=entry.get("cwd"),
    )


def stdio_to_entry(transport: StdioTransport) -> dict[str, Any]:
    result: dict[str, Any] = {"command": transport.command}
    if transport.args:
        result["args"] = list(transport.args)
    if transport.env:
        result["env"] = dict(transport.env)
    if transport.cwd:
        result["cwd"] = transport.cwd
    return result


def remote_transport(
    kind: str,
    url: Any,
    headers: dict[str, str],
    startup_timeout_sec: int | float | None = None,
    tool_timeout_sec: int | float | None = None,
) -> Transport:
    if not url or not isinstance(url, str):
        raise ValueError(f"{kind} server requires a url")
    cls = HttpTransport if kind == "http" else SseTransport
    return cls(
        url=url,
        headers=headers,
        startup_timeout_sec=startup_timeout_sec,
        tool_timeout_sec=tool_timeout_sec,
    )


def parse_native_servers(
    app: str,
    native: Any,
    parse_entry: Any,
) -> tuple[dict[str, McpServer], list[str]]:
    """Turn a native MCP map into canonical servers enabled for app.

    ABOUTME: Errors are collected per entry; one bad entry never aborts the rest
    """
    servers: dict[str, McpServer] = {}
    errors: list[str] = []
    if native is None:
        return servers, errors
    if not isinstance(native, dict):
        return servers, [f"{app}: MCP server map is not a table/object"]

    for server_id, entry in native.items():
        if not isinstance(entry, dict):
            errors.append(f"{server_id}: entry is not a table/object")
            continue
        try:
            transport = parse_entry(entry)
        except ValueError as e:
            errors.append(f"{server_id}: {e}")
            continue
        servers[server_id] = McpServer(
            id=server_id,
            transport=transport,
            apps={app: True},
        )
    return servers, errors


def mcp_map_patch(
    key: str,
    native_entries: dict[str, dict[str, Any]],
    removed: set[str],
) -> Document:
    """Patch owning <key>.<id> for each rendered entry and dropping removed ids.

    ABOUTME: Rendered entries replace the whole native record for that id
    ABOUTME: Ids neither rendered nor removed are left untouched
    """
    entries: Document = {sid: REMOVE for sid in removed if sid not in native_entries}
    for sid, entry in native_entries.items():
        entries[sid] = Replace(entry)
    return {key: entries}


def apply_mcp_patch(existing: Document, key: str, patch: Document) -> Document:
    """Merge an mcp_map_patch and drop the map entirely if it ends up empty
    and was absent before."""
    had_key = key in existing
    result = merge(existing, patch)
    if not had_key and not result.get(key):
        result.pop(key, None)
    return result


def stage_prompt(tx: LiveTransaction, path: Path, content: str | None) -> None:
    """Stage the prompt file (None removes it)."""
    tx.stage_text(path, content)


def _parses_to(
    entry: Any, transport: Transport, parse_entry: Callable[[dict], Transport]
) -> bool:
    if not isinstance(entry, dict):
        return False
    try:
        return parse_entry(entry) == transport
    except ValueError:
        return False


def render_changed_entries(
    servers: dict[str, McpServer],
    native: Any,
    parse_entry: Callable[[dict], Transport],
    render_entry: Callable[[Transport], dict[str, Any]],
) -> dict[str, dict[str, Any]]:
    """Render the servers whose native entry does not already describe them.

    ABOUTME: An entry that parses to the same transport is left exactly as written,
    ABOUTME: so untyped entries and keys this tool does not model survive a sync
    """
    existing = native if isinstance(native, dict) else {}
    return {
        sid: render_entry(server.transport)
        for sid, server in servers.items()
        if not _parses_to(existing.get(sid), server.transport, parse_entry)
    }
