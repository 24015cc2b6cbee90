"""
Ingestion errors.

Record-level problems (ValidationError and its subclasses) make the ingester
skip the record and carry on. File-level problems (ParseError,
SourceValidationError) stop the file being read.
"""

from typing import Optional

# Longest excerpt of a bad log line quoted in a ParseError message
MAX_EXCERPT_CHARS = 100


class IngestionError(Exception):
    """Base exception for ingestion errors."""

    pass


class ValidationError(IngestionError):
    """
    A record value failed validation.

    Attributes:
        field: RawLogRecord field that failed, if known
        value: The offending value, if any
    """

    def __init__(
        self, message: str, field: Optional[str] = None, value: object = None
    ):
        self.field = field
        self.value = value
        self.message = message
        if field and value is not None:
            message = f"{message} (field='{field}', value={value!r})"
        elif field:
            message = f"{message} (field='{field}')"
        super().__init__(message)


class MalformedRecordError(ValidationError):
    """
    Raised for a single log record that cannot be stored.

    Missing path, non-numeric status / bytes / duration, negative sizes and
    unparseable timestamps all land here. The record is skipped; ingestion
    of the records after it continues.
    """

    pass


class ParseError(IngestionError):
    """
    A log stream could not be decoded as JSON objects.

    `line_number` is where the undecodable object starts.
    """

    def __init__(
        self,
        message: str,
        line_number: Optional[int] = None,
        line_content: Optional[str] = None,
    ):
        self.line_number = line_number
        self.line_content = line_content
        self.message = message
        if line_number is not None:
            where = f"line {line_number}"
            if line_content:
                excerpt = line_content[:MAX_EXCERPT_CHARS]
                if len(line_content) > MAX_EXCERPT_CHARS:
                    excerpt += "..."
                where += f": {excerpt!r}"
            message = f"{message} ({where})"
        super().__init__(message)


class SourceValidationError(IngestionError):
    """An input path is missing, empty or holds no log files."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        self.message = message
        super().__init__(f"{message}: {path}" if path else message)
