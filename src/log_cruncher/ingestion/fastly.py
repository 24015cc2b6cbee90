"""
Fastly real-time log reader.

Reads files written by a Fastly JSON logging endpoint, e.g.:

    { "clientIP": "%{json.escape(req.http.fastly-client-ip)}V",
      "ispID": "%{json.escape(client.as.number)}V",
      "countryCode": "%{json.escape(client.geo.country_code)}V",
      "requests": "%{json.escape(client.requests)}V",
      "isIPv6": "%{json.escape(req.is_ipv6)}V",
      "isH2": "%{json.escape(fastly_info.is_h2)}V",
      "urlPath": "%{json.escape(req.url.path)}V",
      "httpReferer": "%{json.escape(req.http.referer)}V",
      "httpUA": "%{json.escape(req.http.user-agent)}V",
      "cacheState": "%{json.escape(fastly_info.state)}V",
      "respStatus": "%{json.escape(resp.status)}V",
      "respTotalBytes": "%{json.escape(resp.bytes_written)}V",
      "timeElapsed": "%{json.escape(time.elapsed.usec)}V",
      "reqStartTime": "%{json.escape(time.start)}V",
    }

Quirks handled here:
- Objects may end in a trailing comma (`..., }`), which strict JSON rejects.
- Files are a stream of concatenated objects, not one document per file
  and not necessarily one object per line.
- Every value is a string; absent values are rendered as `(null)` or "".
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Union

from .exceptions import ParseError
from .file_utils import discover_log_files, open_file_auto_decompress

logger = logging.getLogger(__name__)


# Record field -> Fastly field names, first match wins
FIELD_ALIASES: dict[str, list[str]] = {
    "client_ip": ["clientIP", "client_ip"],
    "asn": ["ispID", "asn"],
    "asn_name": ["ispName", "asn_name"],
    "country_code": ["countryCode", "country_code"],
    "requests": ["requests"],
    "ipv6": ["isIPv6", "ipv6"],
    "http2": ["isH2", "http2"],
    "url_path": ["urlPath", "url_path"],
    "referer": ["httpReferer", "referer"],
    "user_agent": ["httpUA", "user_agent"],
    "cache_state": ["cacheState", "cache_state"],
    "status": ["respStatus", "status"],
    "response_bytes": ["respTotalBytes", "response_bytes"],
    "request_start_time": ["reqStartTime", "request_start_time"],
}

# Fastly reports elapsed time in microseconds
ELAPSED_USEC_FIELD = "timeElapsed"

NULL_PLACEHOLDERS = frozenset(["", "(null)"])

TRAILING_COMMA = re.compile(r",\s*}\s*$")

# An object spanning more than this many characters is treated as corrupt
MAX_OBJECT_CHARS = 1024 * 1024


def repair_trailing_comma(text: str) -> str:
    """Drop a trailing comma before the closing brace at the end of the text."""
    return TRAILING_COMMA.sub("}\n", text)


def _clean(value: Any) -> Any:
    if isinstance(value, str) and value.strip() in NULL_PLACEHOLDERS:
        return None
    return value


class FastlyLogReader:
    """
    Decode Fastly log files into raw record dictionaries.

    The dictionaries use RawLogRecord field names; validation happens when
    the ingester builds the record. Values that are not JSON objects are
    passed through untouched so the ingester can count them as malformed.
    """

    def __init__(self, field_aliases: Optional[dict[str, list[str]]] = None):
        self.field_aliases = field_aliases or FIELD_ALIASES

    def read_path(self, path: Union[str, Path]) -> Iterator[Any]:
        """Read every log file under path (a file or a directory)."""
        for file_path in discover_log_files(path):
            yield from self.read_file(file_path)

    def read_file(self, file_path: Union[str, Path]) -> Iterator[Any]:
        """
        Read one (optionally gzip-compressed) log file.

        Raises:
            ParseError: If the file ends in an incomplete or invalid object
        """
        logger.info(f"Reading Fastly log file: {file_path}")
        count = 0
        with open_file_auto_decompress(file_path) as f:
            for obj in self.iter_objects(f):
                count += 1
                yield self.map_record(obj) if isinstance(obj, dict) else obj
        logger.info(f"Read {count} records from {file_path}")

    def iter_objects(self, lines: Iterable[str]) -> Iterator[Any]:
        """
        Decode a stream of concatenated JSON values.

        Objects may span lines, share lines, and carry a trailing comma
        before their closing brace.
        """
        decoder = json.JSONDecoder()
        buffer = ""
        buffer_line = 1

        for line_number, line in enumerate(lines, start=1):
            if not buffer:
                buffer_line = line_number
            buffer = repair_trailing_comma(buffer + line)

            while True:
                buffer = buffer.lstrip()
                if not buffer:
                    break
                try:
                    obj, end = decoder.raw_decode(buffer)
                except json.JSONDecodeError:
                    # Incomplete object, wait for more lines
                    break
                yield obj
                buffer = buffer[end:]
                buffer_line = line_number

            if len(buffer) > MAX_OBJECT_CHARS:
                raise ParseError(
                    "Invalid JSON object in log stream",
                    line_number=buffer_line,
                    line_content=buffer,
                )

        if buffer.strip():
            raise ParseError(
                "Incomplete or invalid JSON at end of log stream",
                line_number=buffer_line,
                line_content=buffer.strip(),
            )

    def map_record(self, obj: dict) -> dict:
        """Map Fastly field names to record field names."""
        record = {}
        for field_name, aliases in self.field_aliases.items():
            for alias in aliases:
                if alias in obj:
                    record[field_name] = _clean(obj[alias])
                    break

        if "response_duration" in obj:
            record["response_duration"] = _clean(obj["response_duration"])
        elif ELAPSED_USEC_FIELD in obj:
            record["response_duration"] = self._usec_to_seconds(
                _clean(obj[ELAPSED_USEC_FIELD])
            )

        return record

    @staticmethod
    def _usec_to_seconds(value: Any) -> Any:
        """Convert microseconds to seconds; non-numeric values pass through."""
        if value is None or isinstance(value, bool):
            return value
        try:
            return float(value) / 1_000_000
        except (TypeError, ValueError):
            return value
