"""
Connection string parsing.

Connection strings are parsed with pymongo's ``uri_parser`` so the accepted
syntax is exactly the driver's. ``mongodb+srv://`` strings need DNS lookups,
so ``resolve_connection_string`` runs the parse in a worker thread.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional

from pymongo import uri_parser
from pymongo.errors import ConfigurationError as PyMongoConfigurationError

from ..exceptions import ParseError

SRV_SCHEME = "mongodb+srv://"


@dataclass(frozen=True)
class ConnectionTarget:
    """Parsed form of a connection string."""

    uri: str
    hosts: tuple[tuple[str, Optional[int]], ...]
    database: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    replica_set: Optional[str] = None
    options: dict[str, Any] = field(default_factory=dict)

    @property
    def host(self) -> Optional[str]:
        return self.hosts[0][0] if self.hosts else None

    @property
    def port(self) -> Optional[int]:
        return self.hosts[0][1] if self.hosts else None


def parse_connection_string(uri: str) -> ConnectionTarget:
    """
    Parse a connection string.

    Args:
        uri: ``mongodb://`` or ``mongodb+srv://`` connection string

    Returns:
        The parsed ``ConnectionTarget``

    Raises:
        ParseError: If the string is not a valid connection string
    """
    try:
        parsed = uri_parser.parse_uri(uri)
    except (PyMongoConfigurationError, ValueError) as e:
        raise ParseError(
            f"Invalid connection string: {e}",
            context={"error_type": type(e).__name__},
        ) from e

    options = dict(parsed.get("options") or {})
    return ConnectionTarget(
        uri=uri,
        hosts=tuple(tuple(node) for node in parsed.get("nodelist") or ()),
        database=parsed.get("database"),
        username=parsed.get("username"),
        password=parsed.get("password"),
        replica_set=options.get("replicaset"),
        options=options,
    )


async def resolve_connection_string(uri: str) -> ConnectionTarget:
    """Parse a connection string without blocking the event loop on SRV lookups."""
    if uri.startswith(SRV_SCHEME):
        return await asyncio.to_thread(parse_connection_string, uri)
    return parse_connection_string(uri)
