"""
Classification of decoded scanner strings.

The scanner hands over whatever text it decoded. This module decides whether
that text is a shipment code, an item code, or nothing usable. It never
raises: every failure comes back as a ParseError inside the ParseResult, so
the caller can prompt for another scan without a try/except around each read.

Recognized shapes (all prefixes/patterns come from CodeGrammar):
    SHIPMENT:<id>                      -> shipment <id>
    SHP-4521                           -> shipment SHP-4521
    ITEM:<id>                          -> item <id>
    cnt-9f2a-771b                      -> item CNT-9F2A-771B
    BOX-0007                           -> item BOX-0007 (sequence 7)
    {"shipmentHash": "0xab"}           -> shipment 0xab
    {"containerId": "CNT-1", ...}      -> item CNT-1 (shipment hint from JSON)
"""

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Pattern

from models import ItemReference
from settings import CodeGrammar


class CodeKind(str, Enum):
    SHIPMENT = "shipment"
    ITEM = "item"


class ParseError(str, Enum):
    EMPTY = "empty"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class ParsedCode:
    """A recognized code. `value` is the identifier extracted from `raw`."""
    kind: CodeKind
    value: str
    raw: str
    sequence: Optional[int] = None
    shipment_hint: Optional[str] = None

    def to_item_reference(self) -> ItemReference:
        return ItemReference(item_id=self.value, sequence=self.sequence)


@dataclass(frozen=True)
class ParseResult:
    """Either `code` or `error` is set, never both."""
    code: Optional[ParsedCode] = None
    error: Optional[ParseError] = None

    @property
    def ok(self) -> bool:
        return self.code is not None


_SEQUENCE_RE = re.compile(r'(\d+)$')


class CodeParser:
    """
    Classifies raw decoded strings according to a CodeGrammar.

    Prefix matching is case-insensitive. A prefix ending in ':' is a label and
    is stripped (`ITEM:abc` -> `abc`); any other prefix is part of the
    identifier itself (`CNT-1` stays `CNT-1`, upper-cased).
    """

    def __init__(self, grammar: Optional[CodeGrammar] = None):
        self.grammar = grammar or CodeGrammar()
        self._item_patterns: Tuple[Pattern, ...] = tuple(
            re.compile(p, re.IGNORECASE) for p in self.grammar.item_patterns
        )

    def parse(self, raw) -> ParseResult:
        if not isinstance(raw, str) or not raw.strip():
            return ParseResult(error=ParseError.EMPTY)

        text = raw.strip()

        if text.startswith('{'):
            if not self.grammar.accept_json:
                return ParseResult(error=ParseError.UNRECOGNIZED)
            return self._parse_json(text, raw)

        value = self._match_prefix(text, self.grammar.shipment_prefixes)
        if value:
            return ParseResult(code=ParsedCode(CodeKind.SHIPMENT, value, raw))

        value = self._match_prefix(text, self.grammar.item_prefixes)
        if value:
            return ParseResult(code=ParsedCode(CodeKind.ITEM, value, raw))

        for pattern in self._item_patterns:
            if pattern.match(text):
                value = text.upper()
                return ParseResult(code=ParsedCode(CodeKind.ITEM, value, raw, sequence=_trailing_sequence(value)))

        return ParseResult(error=ParseError.UNRECOGNIZED)

    @staticmethod
    def _match_prefix(text: str, prefixes) -> Optional[str]:
        upper = text.upper()
        for prefix in prefixes:
            if not upper.startswith(prefix.upper()):
                continue
            if prefix.endswith(':'):
                value = text[len(prefix):].strip()
            else:
                # Prefix is part of the id; require something after it
                value = upper if len(upper) > len(prefix) else ''
            if value:
                return value
        return None

    def _parse_json(self, text: str, raw: str) -> ParseResult:
        try:
            payload = json.loads(text)
        except ValueError:
            return ParseResult(error=ParseError.UNRECOGNIZED)

        if not isinstance(payload, dict):
            return ParseResult(error=ParseError.UNRECOGNIZED)

        container_id = payload.get('containerId')
        shipment_hash = payload.get('shipmentHash')

        if isinstance(container_id, str) and container_id.strip():
            value = container_id.strip().upper()
            hint = shipment_hash if isinstance(shipment_hash, str) and shipment_hash else None
            return ParseResult(code=ParsedCode(CodeKind.ITEM, value, raw, shipment_hint=hint))

        if isinstance(shipment_hash, str) and shipment_hash.strip():
            return ParseResult(code=ParsedCode(CodeKind.SHIPMENT, shipment_hash.strip(), raw))

        return ParseResult(error=ParseError.UNRECOGNIZED)


def _trailing_sequence(value: str) -> Optional[int]:
    """BOX-0007 -> 7. Ids without a positive trailing number have no sequence."""
    match = _SEQUENCE_RE.search(value)
    if not match:
        return None
    number = int(match.group(1))
    return number if number > 0 else None
