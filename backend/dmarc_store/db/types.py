from __future__ import annotations

import ipaddress
from typing import Any, Optional

from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import JSON, LargeBinary, TypeDecorator


JSON_PAYLOAD = JSON().with_variant(JSONB(), "postgresql")


class IPAddress(TypeDecorator):
    """Store IPv4/IPv6 addresses in packed binary form while presenting strings to the ORM."""

    impl = LargeBinary(16)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect) -> Optional[bytes]:  # noqa: ANN001
        if value is None:
            return None
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        return ipaddress.ip_address(str(value).strip()).packed

    def process_result_value(self, value: Any, dialect) -> Optional[str]:  # noqa: ANN001
        if value is None:
            return None
        return str(ipaddress.ip_address(bytes(value)))


def normalize_ip(value: str) -> str:
    """Return the canonical text form of an address; raises ValueError when invalid."""
    return str(ipaddress.ip_address(value.strip()))
