"""Forward-only scanner for OAuth2 token responses.

Token endpoints answer with a JSON object whose shape varies by
provider; only a handful of scalar fields matter. ``TokenFieldReader``
walks the bytes once and yields ``(name, value)`` for every string or
number it meets, at any depth up to ``MAX_NESTING_DEPTH``, without building
a document tree.

Uses only stdlib (codecs), no additional dependencies.
"""

from __future__ import annotations

import codecs

from pathlib import Path
from types import TracebackType
from typing import IO, TYPE_CHECKING

from ..exceptions import TokenStreamError


if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator


_WHITESPACE = " \t\n\r"
_DIGITS = "0123456789"
_HEX_DIGITS = "0123456789abcdefABCDEF"
_ESCAPES = {
    '"': '"',
    "\\": "\\",
    "/": "/",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
}
_LITERALS = {"t": "true", "f": "false", "n": "null"}

# Objects and arrays nested deeper than this are rejected
MAX_NESTING_DEPTH = 64


class TokenFieldReader:
    """Stream ``(name, value)`` pairs out of a JSON object.

    Strings are yielded decoded, numbers as their literal text
    (``3600`` becomes ``"3600"``). ``true``/``false``/``null`` are
    validated but not yielded. Scalars inside an array are reported
    under the name of the field holding the array.

    Parameters
    ----------
    source : bytes, binary file object, or iterable of bytes
        The raw response. File objects are read in ``chunk_size`` pieces
        and closed by ``close()``; iterables (such as
        ``httpx.Response.iter_bytes()``) are consumed lazily.
    chunk_size : int
        Read size for file objects (default 4096).

    Raises
    ------
    TokenStreamError
        From ``read()``/iteration when the input is not a single
        well-formed JSON object.

    Examples
    --------
    >>> reader = TokenFieldReader(b'{"access_token":"tok1","expires_in":3600}')
    >>> list(reader)
    [('access_token', 'tok1'), ('expires_in', '3600')]
    """

    def __init__(
        self,
        source: bytes | IO[bytes] | Iterable[bytes],
        chunk_size: int = 4096,
    ) -> None:
        """Initialize the reader over ``source``."""
        self._file: IO[bytes] | None = None
        self._chunks: Iterator[bytes]
        if isinstance(source, (bytes, bytearray, memoryview)):
            self._chunks = iter((bytes(source),))
        elif hasattr(source, "read"):
            stream = source
            self._file = stream
            self._chunks = iter(lambda: stream.read(chunk_size), b"")
        else:
            self._chunks = iter(source)

        # utf-8-sig drops a leading byte order mark
        self._decoder = codecs.getincrementaldecoder("utf-8-sig")()
        self._buffer = ""
        self._index = 0
        self._offset = 0
        self._exhausted = False
        self._pairs = self._scan()

        self.name: str | None = None
        self.value: str | None = None

    @classmethod
    def open(cls, path: str | Path) -> TokenFieldReader:
        """Open a JSON file for scanning; use as a context manager to close it."""
        return cls(Path(path).open("rb"))  # noqa: SIM115

    # ── Public API ──────────────────────────────────────────────────

    def read(self) -> bool:
        """Advance to the next scalar field.

        Returns
        -------
        bool
            True with ``name``/``value`` set, or False at the clean end
            of the object.
        """
        try:
            self.name, self.value = next(self._pairs)
        except StopIteration:
            self.name = None
            self.value = None
            return False
        return True

    def __iter__(self) -> TokenFieldReader:
        """Return the reader itself; it can only be consumed once."""
        return self

    def __next__(self) -> tuple[str, str]:
        """Return the next ``(name, value)`` pair."""
        if not self.read():
            raise StopIteration
        return self.name, self.value  # type: ignore[return-value]

    def close(self) -> None:
        """Close the underlying file object, if the reader owns one."""
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> TokenFieldReader:
        """Enter the context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Close the source on exit."""
        self.close()

    # ── Grammar ─────────────────────────────────────────────────────

    def _scan(self) -> Iterator[tuple[str, str]]:
        ch = self._skip_whitespace()
        if not ch:
            raise self._error("Empty token response")
        if ch != "{":
            raise self._unexpected(ch, "a JSON object")
        yield from self._object(1)
        trailing = self._skip_whitespace()
        if trailing:
            raise self._unexpected(trailing, "end of input")

    def _object(self, depth: int) -> Iterator[tuple[str, str]]:
        self._check_depth(depth)
        self._expect("{")
        if self._skip_whitespace() == "}":
            self._index += 1
            return
        while True:
            ch = self._skip_whitespace()
            if ch != '"':
                raise self._unexpected(ch, "a field name")
            name = self._string()
            self._skip_whitespace()
            self._expect(":")
            yield from self._value(name, depth)
            ch = self._skip_whitespace()
            if ch == ",":
                self._index += 1
            elif ch == "}":
                self._index += 1
                return
            else:
                raise self._unexpected(ch, "',' or '}'")

    def _array(self, name: str, depth: int) -> Iterator[tuple[str, str]]:
        self._check_depth(depth)
        self._expect("[")
        if self._skip_whitespace() == "]":
            self._index += 1
            return
        while True:
            yield from self._value(name, depth)
            ch = self._skip_whitespace()
            if ch == ",":
                self._index += 1
            elif ch == "]":
                self._index += 1
                return
            else:
                raise self._unexpected(ch, "',' or ']'")

    def _value(self, name: str, depth: int) -> Iterator[tuple[str, str]]:
        ch = self._skip_whitespace()
        if ch == "{":
            yield from self._object(depth + 1)
        elif ch == "[":
            yield from self._array(name, depth + 1)
        elif ch == '"':
            yield name, self._string()
        elif ch == "-" or (ch and ch in _DIGITS):
            yield name, self._number()
        elif ch and ch in _LITERALS:
            self._literal(_LITERALS[ch])
        else:
            raise self._unexpected(ch, "a value")

    def _string(self) -> str:
        self._expect('"')
        parts: list[str] = []
        while True:
            ch = self._advance()
            if ch == '"':
                return "".join(parts)
            if ch == "\\":
                parts.append(self._escape(self._advance()))
            elif ch < " ":
                raise self._error("Unescaped control character in string")
            else:
                parts.append(ch)

    def _escape(self, esc: str) -> str:
        if esc == "u":
            return self._unicode_escape()
        try:
            return _ESCAPES[esc]
        except KeyError:
            raise self._error(f"Invalid escape sequence '\\{esc}'") from None

    def _unicode_escape(self) -> str:
        code = self._hex4()
        if not 0xD800 <= code <= 0xDBFF or self._peek() != "\\":
            return chr(code)
        # High surrogate followed by another escape: pair it when possible
        self._index += 1
        esc = self._advance()
        if esc != "u":
            return chr(code) + self._escape(esc)
        low = self._hex4()
        if 0xDC00 <= low <= 0xDFFF:
            return chr(0x10000 + ((code - 0xD800) << 10) + (low - 0xDC00))
        return chr(code) + chr(low)

    def _hex4(self) -> int:
        digits = "".join(self._advance() for _ in range(4))
        if any(d not in _HEX_DIGITS for d in digits):
            raise self._error(f"Invalid unicode escape '\\u{digits}'")
        return int(digits, 16)

    def _number(self) -> str:
        chars: list[str] = []
        if self._peek() == "-":
            chars.append(self._advance())
        ch = self._peek()
        if ch == "0":
            chars.append(self._advance())
        elif ch and ch in "123456789":
            chars.extend(self._digits())
        else:
            raise self._unexpected(ch, "a digit")
        if self._peek() == ".":
            chars.append(self._advance())
            chars.extend(self._required_digits())
        if self._peek() in ("e", "E"):
            chars.append(self._advance())
            if self._peek() in ("+", "-"):
                chars.append(self._advance())
            chars.extend(self._required_digits())
        return "".join(chars)

    def _digits(self) -> list[str]:
        digits: list[str] = []
        while True:
            ch = self._peek()
            if not ch or ch not in _DIGITS:
                return digits
            digits.append(ch)
            self._index += 1

    def _required_digits(self) -> list[str]:
        digits = self._digits()
        if not digits:
            raise self._unexpected(self._peek(), "a digit")
        return digits

    def _literal(self, word: str) -> None:
        for expected in word:
            if self._advance() != expected:
                raise self._error(f"Invalid literal, expected '{word}'")

    # ── Character stream ────────────────────────────────────────────

    def _fill(self) -> bool:
        """Replace the consumed buffer with the next decoded chunk."""
        while not self._exhausted:
            try:
                chunk = next(self._chunks)
            except StopIteration:
                self._exhausted = True
                text = self._decode(b"", final=True)
            else:
                text = self._decode(chunk)
            if text:
                self._offset += len(self._buffer)
                self._buffer = text
                self._index = 0
                return True
        return False

    def _decode(self, chunk: bytes, final: bool = False) -> str:
        try:
            return self._decoder.decode(chunk, final)
        except UnicodeDecodeError as exc:
            raise self._error(f"Invalid UTF-8 in token response: {exc.reason}") from exc

    def _peek(self) -> str:
        """Return the next character without consuming it, or "" at end of input."""
        if self._index >= len(self._buffer) and not self._fill():
            return ""
        return self._buffer[self._index]

    def _advance(self) -> str:
        ch = self._peek()
        if not ch:
            raise self._error("Unexpected end of token response")
        self._index += 1
        return ch

    def _expect(self, expected: str) -> None:
        ch = self._peek()
        if ch != expected:
            raise self._unexpected(ch, repr(expected))
        self._index += 1

    def _skip_whitespace(self) -> str:
        while True:
            ch = self._peek()
            if not ch or ch not in _WHITESPACE:
                return ch
            self._index += 1

    def _error(self, message: str) -> TokenStreamError:
        return TokenStreamError(message, position=self._offset + self._index)

    def _unexpected(self, ch: str, expected: str) -> TokenStreamError:
        found = repr(ch) if ch else "end of input"
        return self._error(f"Expected {expected}, found {found}")

    def _check_depth(self, depth: int) -> None:
        if depth > MAX_NESTING_DEPTH:
            raise self._error("Token response nested too deeply")
