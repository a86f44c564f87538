"""FTP reply parsing for the ftpengine protocol client.

Provides ReplyCategory enum, ReplyMessage dataclass and ReplyParser,
which turns control-connection lines into one ReplyMessage per
logical (possibly multi-line) reply, RFC 959 section 4.2.
"""

import io
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List

from ftpengine.ftp.exceptions import MalformedReplyError

# Longest control line accepted, terminator included
MAX_LINE = 8192

REPLY_LINE = re.compile(r"^([1-5]\d\d)([ -])(.*)$", re.DOTALL)

# Type alias for a line source such as a buffered socket file's readline
LineReader = Callable[[int], bytes]


class ReplyCategory(Enum):
    """Reply category, taken from the first digit of the code."""
    POSITIVE_PRELIMINARY = 1
    POSITIVE_COMPLETION = 2
    POSITIVE_INTERMEDIATE = 3
    TRANSIENT_NEGATIVE = 4
    PERMANENT_NEGATIVE = 5


@dataclass(frozen=True)
class ReplyMessage:
    """One logical server reply."""
    code: int
    lines: List[str] = field(default_factory=list)

    @property
    def category(self) -> ReplyCategory:
        """Category derived from the first digit of the code."""
        return ReplyCategory(self.code // 100)

    @property
    def text(self) -> str:
        """All reply lines joined with newlines."""
        return "\n".join(self.lines)

    @property
    def is_preliminary(self) -> bool:
        """True for 1xx replies."""
        return self.category == ReplyCategory.POSITIVE_PRELIMINARY

    @property
    def is_success(self) -> bool:
        """True for 2xx replies."""
        return self.category == ReplyCategory.POSITIVE_COMPLETION

    @property
    def is_intermediate(self) -> bool:
        """True for 3xx replies."""
        return self.category == ReplyCategory.POSITIVE_INTERMEDIATE

    @property
    def is_error(self) -> bool:
        """True for 4xx and 5xx replies."""
        return self.code >= 400

    def __str__(self) -> str:
        return f"{self.code} {self.text}"


class ReplyParser:
    """Parser for FTP server replies."""

    def __init__(self, encoding: str = "utf-8"):
        """
        Initialize the parser.

        Args:
            encoding: Character set used to decode control lines
        """
        self.encoding = encoding

    def read_reply(self, readline: LineReader) -> ReplyMessage:
        """
        Read exactly one logical reply from a line source.

        Lines are pulled one at a time, so nothing after the final
        line of the reply is consumed.

        Args:
            readline: Callable taking a size limit and returning one
                line of bytes (empty bytes at end of stream)

        Returns:
            ReplyMessage for the reply

        Raises:
            MalformedReplyError: If the first line is not a reply line,
                a line is too long, or the stream ends mid-reply
        """
        first = self._next_line(readline, started=False)
        match = REPLY_LINE.match(first)
        if not match:
            raise MalformedReplyError("Invalid reply line", first)

        code_text, separator, text = match.groups()
        lines = [text]
        if separator == "-":
            terminator = code_text + " "
            while True:
                line = self._next_line(readline, started=True)
                if line.startswith(terminator):
                    lines.append(line[len(terminator):])
                    break
                lines.append(line)

        return ReplyMessage(code=int(code_text), lines=lines)

    def parse(self, data: bytes) -> ReplyMessage:
        """
        Parse one complete reply held in memory.

        Args:
            data: Raw reply bytes including line terminators

        Returns:
            ReplyMessage for the first reply in data
        """
        return self.read_reply(io.BytesIO(data).readline)

    def _next_line(self, readline: LineReader, started: bool) -> str:
        """Read one line, strip its terminator and decode it."""
        raw = readline(MAX_LINE + 1)
        if len(raw) > MAX_LINE:
            raise MalformedReplyError(f"Reply line longer than {MAX_LINE} bytes")
        if not raw:
            if started:
                raise MalformedReplyError("Connection closed in the middle of a reply")
            raise MalformedReplyError("Connection closed before a reply was received")
        if not raw.endswith(b"\n"):
            raise MalformedReplyError(
                "Connection closed in the middle of a reply line",
                raw.decode(self.encoding, errors="replace"),
            )
        return raw.rstrip(b"\r\n").decode(self.encoding, errors="replace")
