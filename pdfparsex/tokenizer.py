"""Lexer turning raw content stream bytes into primitive tokens."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterator

from .exceptions import MalformedTokenError

__all__ = ["ContentStreamTokenizer", "Token", "TokenType", "tokenize"]


class TokenType(Enum):
    NUMBER = "number"
    NAME = "name"
    STRING = "string"
    ARRAY_START = "array_start"
    ARRAY_END = "array_end"
    DICT_START = "dict_start"
    DICT_END = "dict_end"
    OPERATOR = "operator"
    COMMENT = "comment"
    INLINE_DATA = "inline_data"


@dataclass(slots=True, frozen=True)
class Token:
    """Classified lexical unit with the byte offset at which it starts."""

    type: TokenType
    value: object
    offset: int


_WHITESPACE = b"\x00\t\n\r\f "
_DELIMITERS = b"()<>[]{}/%"
_NUMBER_START = b"+-.0123456789"
_NUMBER_RE = re.compile(rb"[+-]?(?:\d+(?:\.\d*)?|\.\d+)")
_HEX_DIGITS = b"0123456789abcdefABCDEF"
_ESCAPES = {
    ord("n"): b"\n",
    ord("r"): b"\r",
    ord("t"): b"\t",
    ord("b"): b"\b",
    ord("f"): b"\f",
    ord("("): b"(",
    ord(")"): b")",
    ord("\\"): b"\\",
}


def _is_regular(byte: int) -> bool:
    return byte not in _WHITESPACE and byte not in _DELIMITERS


class ContentStreamTokenizer:
    """Restartable token sequence over one content stream.

    Every call to :meth:`__iter__` lexes ``data`` again from the start, so the
    same tokenizer can be iterated any number of times.
    """

    def __init__(self, data: bytes) -> None:
        self.data = bytes(data)

    def __iter__(self) -> Iterator[Token]:
        return self._tokens()

    # -- Lexing --------------------------------------------------------------

    def _tokens(self) -> Iterator[Token]:
        data = self.data
        length = len(data)
        index = 0
        while True:
            while index < length and data[index] in _WHITESPACE:
                index += 1
            if index >= length:
                return
            start = index
            byte = data[index]
            if byte == ord("%"):
                end = index
                while end < length and data[end] not in b"\r\n":
                    end += 1
                yield Token(TokenType.COMMENT, data[index + 1 : end], start)
                index = end
            elif byte == ord("/"):
                value, index = self._read_name(index + 1)
                yield Token(TokenType.NAME, value, start)
            elif byte == ord("("):
                value, index = self._read_literal_string(index)
                yield Token(TokenType.STRING, value, start)
            elif byte == ord("<"):
                if index + 1 < length and data[index + 1] == ord("<"):
                    yield Token(TokenType.DICT_START, "<<", start)
                    index += 2
                else:
                    value, index = self._read_hex_string(index)
                    yield Token(TokenType.STRING, value, start)
            elif byte == ord(">"):
                if index + 1 < length and data[index + 1] == ord(">"):
                    yield Token(TokenType.DICT_END, ">>", start)
                    index += 2
                else:
                    raise MalformedTokenError("Unexpected '>' outside of a hex string", start)
            elif byte == ord("["):
                yield Token(TokenType.ARRAY_START, "[", start)
                index += 1
            elif byte == ord("]"):
                yield Token(TokenType.ARRAY_END, "]", start)
                index += 1
            elif byte == ord(")"):
                raise MalformedTokenError("Unbalanced ')' outside of a string", start)
            elif byte in b"{}":
                yield Token(TokenType.OPERATOR, chr(byte), start)
                index += 1
            else:
                end = index
                while end < length and _is_regular(data[end]):
                    end += 1
                raw = data[index:end]
                index = end
                if raw[0] in _NUMBER_START:
                    yield Token(TokenType.NUMBER, self._parse_number(raw, start), start)
                    continue
                operator = raw.decode("latin-1")
                yield Token(TokenType.OPERATOR, operator, start)
                if operator == "ID":
                    payload, index = self._read_inline_data(index, start)
                    yield Token(TokenType.INLINE_DATA, payload, start + 2)

    @staticmethod
    def _parse_number(raw: bytes, offset: int) -> int | float:
        if _NUMBER_RE.fullmatch(raw) is None:
            raise MalformedTokenError(f"Ill-formed numeric token {raw!r}", offset)
        if b"." in raw:
            return float(raw)
        return int(raw)

    def _read_name(self, index: int) -> tuple[str, int]:
        data = self.data
        length = len(data)
        buffer = bytearray()
        while index < length and _is_regular(data[index]):
            byte = data[index]
            if (
                byte == ord("#")
                and index + 2 < length
                and data[index + 1] in _HEX_DIGITS
                and data[index + 2] in _HEX_DIGITS
            ):
                buffer.append(int(data[index + 1 : index + 3], 16))
                index += 3
                continue
            buffer.append(byte)
            index += 1
        return bytes(buffer).decode("latin-1"), index

    def _read_literal_string(self, index: int) -> tuple[bytes, int]:
        data = self.data
        length = len(data)
        start = index
        index += 1
        depth = 1
        buffer = bytearray()
        while index < length:
            byte = data[index]
            if byte == ord("\\"):
                index += 1
                if index >= length:
                    break
                escaped = data[index]
                if escaped in _ESCAPES:
                    buffer += _ESCAPES[escaped]
                    index += 1
                elif escaped in b"01234567":
                    end = index
                    while end < length and end - index < 3 and data[end] in b"01234567":
                        end += 1
                    buffer.append(int(data[index:end], 8) & 0xFF)
                    index = end
                elif escaped == ord("\r"):
                    index += 1
                    if index < length and data[index] == ord("\n"):
                        index += 1
                elif escaped == ord("\n"):
                    index += 1
                else:
                    buffer.append(escaped)
                    index += 1
                continue
            if byte == ord("("):
                depth += 1
            elif byte == ord(")"):
                depth -= 1
                if depth == 0:
                    return bytes(buffer), index + 1
            elif byte == ord("\r"):
                buffer.append(ord("\n"))
                index += 1
                if index < length and data[index] == ord("\n"):
                    index += 1
                continue
            buffer.append(byte)
            index += 1
        raise MalformedTokenError("Unterminated literal string", start)

    def _read_hex_string(self, index: int) -> tuple[bytes, int]:
        data = self.data
        length = len(data)
        start = index
        index += 1
        digits = bytearray()
        while index < length:
            byte = data[index]
            if byte == ord(">"):
                if len(digits) % 2:
                    digits.append(ord("0"))
                return bytes.fromhex(digits.decode("ascii")), index + 1
            if byte in _HEX_DIGITS:
                digits.append(byte)
            elif byte not in _WHITESPACE:
                raise MalformedTokenError(f"Invalid hex digit {chr(byte)!r}", index)
            index += 1
        raise MalformedTokenError("Unterminated hex string", start)

    def _read_inline_data(self, index: int, operator_offset: int) -> tuple[bytes, int]:
        data = self.data
        length = len(data)
        # A single whitespace byte separates ID from the image data.
        if index < length and data[index] in _WHITESPACE:
            index += 1
        start = index
        search = index
        while True:
            found = data.find(b"EI", search)
            if found == -1:
                raise MalformedTokenError("Unterminated inline image data", operator_offset)
            before_ok = found == start or data[found - 1] in _WHITESPACE
            after = found + 2
            after_ok = after >= length or data[after] in _WHITESPACE or data[after] in _DELIMITERS
            if before_ok and after_ok:
                end = found
                if end > start and data[end - 1] in _WHITESPACE:
                    end -= 1
                return data[start:end], found
            search = found + 1


def tokenize(data: bytes) -> list[Token]:
    """Lex ``data`` eagerly into a list of tokens."""

    return list(ContentStreamTokenizer(data))
