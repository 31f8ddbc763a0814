"""KV v2 path helpers.

The KV v2 engine splits a logical secret path such as ``secret/app/db``
into ``secret/data/app/db`` (values), ``secret/metadata/app/db`` (version
history) and ``secret/delete/app/db`` (soft delete).
"""

from typing import Literal, NamedTuple, get_args

KV_MOUNT = "secret"

Operation = Literal["data", "metadata", "delete"]

OPERATIONS = get_args(Operation)


class SecretPath(NamedTuple):
    engine: str
    path: str
    is_kv2: bool


def create_kv2_path(path: str, operation: Operation = "data") -> str:
    """Build the KV v2 API path for a logical secret path.

    A path that already names a KV v2 sub-path (``secret/data/app/db``)
    has that segment replaced rather than a second one inserted.

    Args:
        path: Logical path, with or without the ``secret/`` mount prefix
        operation: Which KV v2 sub-path to address

    Returns:
        Path relative to ``/v1/``, e.g. ``secret/data/app/db``
    """
    path = path.strip("/")
    prefix = f"{KV_MOUNT}/"
    if path.startswith(prefix):
        base = path[len(prefix):]
        segment, sep, rest = base.partition("/")
        if sep and rest and segment in OPERATIONS:
            base = rest
    else:
        base = path
    return f"{KV_MOUNT}/{operation}/{base}"


def parse_secret_path(full_path: str) -> SecretPath:
    """Split a path into its engine mount and the remainder."""
    engine, _, rest = full_path.strip("/").partition("/")
    return SecretPath(engine=engine, path=rest, is_kv2=engine == KV_MOUNT)


def api_path(path: str) -> str:
    """Prefix a backend path with the ``/v1/`` API root."""
    return f"/v1/{path.lstrip('/')}"
