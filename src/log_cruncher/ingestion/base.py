"""
Data model for raw access-log records.

A RawLogRecord carries unresolved dimension values (path, referer, user
agent, client IP, ASN) plus the scalar attributes of one request. The
Ingester turns it into dictionary ids and a fact row.
"""

import ipaddress
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from ..pipeline.timestamps import parse_timestamp
from .exceptions import MalformedRecordError


@dataclass
class RawLogRecord:
    """
    One request as read from a log source, before dictionary encoding.

    Required Fields:
        url_path: Request URL path
        status: HTTP response status code
        response_bytes: Total response size in bytes (>= 0)
        response_duration: Time to serve the response in seconds (>= 0)
        request_start_time: Request start (aware UTC datetime)

    Optional Fields:
        client_ip: Client address, normalized to its compressed form
        asn: Autonomous system number of the client network
        asn_name: Name of that autonomous system, when the source knows it
        country_code: Two-letter client country code
        requests: Requests served on the connection so far
        ipv6: Client connected over IPv6
        http2: Request used HTTP/2
        referer: Referer header
        user_agent: User-Agent header
        cache_state: CDN cache state (HIT, MISS, PASS, ...)
    """

    url_path: str
    status: int
    response_bytes: int
    response_duration: float
    request_start_time: datetime

    client_ip: Optional[str] = None
    asn: Optional[int] = None
    asn_name: Optional[str] = None
    country_code: Optional[str] = None
    requests: Optional[int] = None
    ipv6: bool = False
    http2: bool = False
    referer: Optional[str] = None
    user_agent: Optional[str] = None
    cache_state: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "url_path": self.url_path,
            "status": self.status,
            "response_bytes": self.response_bytes,
            "response_duration": self.response_duration,
            "request_start_time": self.request_start_time.isoformat(),
            "client_ip": self.client_ip,
            "asn": self.asn,
            "asn_name": self.asn_name,
            "country_code": self.country_code,
            "requests": self.requests,
            "ipv6": self.ipv6,
            "http2": self.http2,
            "referer": self.referer,
            "user_agent": self.user_agent,
            "cache_state": self.cache_state,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RawLogRecord":
        """
        Create a RawLogRecord from a dictionary of raw values.

        Numeric fields may arrive as numbers or numeric strings. Empty
        strings count as absent.

        Raises:
            MalformedRecordError: If a required field is missing or a value
                has the wrong type or range
        """
        url_path = _optional_str(data.get("url_path"))
        if url_path is None:
            raise MalformedRecordError("Missing required field", field="url_path")

        status = _required_int(data, "status")
        if not 100 <= status <= 599:
            raise MalformedRecordError(
                "Status is not an HTTP status code", field="status", value=status
            )

        response_bytes = _required_int(data, "response_bytes")
        if response_bytes < 0:
            raise MalformedRecordError(
                "Value must be >= 0", field="response_bytes", value=response_bytes
            )

        response_duration = _required_float(data, "response_duration")
        if response_duration < 0:
            raise MalformedRecordError(
                "Value must be >= 0",
                field="response_duration",
                value=response_duration,
            )

        raw_time = data.get("request_start_time")
        try:
            request_start_time = parse_timestamp(raw_time)
        except ValueError as e:
            raise MalformedRecordError(
                f"Invalid timestamp: {e}", field="request_start_time", value=raw_time
            ) from e

        client_ip = _optional_str(data.get("client_ip"))
        ip_version = None
        if client_ip is not None:
            try:
                address = ipaddress.ip_address(client_ip)
            except ValueError as e:
                raise MalformedRecordError(
                    "Invalid IP address", field="client_ip", value=client_ip
                ) from e
            client_ip = address.compressed
            ip_version = address.version

        asn = _optional_int(data, "asn")
        if asn is not None and asn < 0:
            raise MalformedRecordError("ASN must be >= 0", field="asn", value=asn)

        ipv6 = data.get("ipv6")
        return cls(
            url_path=url_path,
            status=status,
            response_bytes=response_bytes,
            response_duration=response_duration,
            request_start_time=request_start_time,
            client_ip=client_ip,
            asn=asn,
            asn_name=_optional_str(data.get("asn_name")),
            country_code=_optional_str(data.get("country_code")),
            requests=_optional_int(data, "requests"),
            ipv6=_to_bool(ipv6) if ipv6 is not None else ip_version == 6,
            http2=_to_bool(data.get("http2")),
            referer=_optional_str(data.get("referer")),
            user_agent=_optional_str(data.get("user_agent")),
            cache_state=_optional_str(data.get("cache_state")),
        )


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value)
    return value if value.strip() else None


def _number(data: dict, field_name: str) -> Optional[float]:
    """Read a numeric field; None when absent, MalformedRecordError when not a number."""
    value = data.get(field_name)
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise MalformedRecordError("Value is not numeric", field=field_name, value=value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise MalformedRecordError(
            "Value is not numeric", field=field_name, value=value
        ) from None
    if not math.isfinite(number):
        raise MalformedRecordError("Value is not finite", field=field_name, value=value)
    return number


def _required_float(data: dict, field_name: str) -> float:
    number = _number(data, field_name)
    if number is None:
        raise MalformedRecordError("Missing required field", field=field_name)
    return number


def _required_int(data: dict, field_name: str) -> int:
    value = _optional_int(data, field_name)
    if value is None:
        raise MalformedRecordError("Missing required field", field=field_name)
    return value


def _optional_int(data: dict, field_name: str) -> Optional[int]:
    number = _number(data, field_name)
    if number is None:
        return None
    if not number.is_integer():
        raise MalformedRecordError(
            "Value is not an integer", field=field_name, value=data.get(field_name)
        )
    return int(number)


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "t"}
    return bool(value)
