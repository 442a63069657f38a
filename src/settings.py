"""
Settings for the Receiving Tool, read from config.ini.

Every value has a default, so a missing config file is not an error. Values
that are present but unusable (non-numeric timeouts, broken regular
expressions) raise ValidationError at load time rather than surfacing later
in the middle of a scan.

Example config.ini:
    [Scanner]
    DebounceMs = 1500
    SameCodeLockout = true

    [Codes]
    ShipmentPrefixes = SHIPMENT:, SHP-
    ItemPrefixes = ITEM:, CNT-
    ItemPatterns = ^BOX-\\d+$
    AcceptJson = true

    [Ledger]
    ConfirmTimeoutSeconds = 10
    ResolveTimeoutSeconds = 10

    [Session]
    IdleTimeoutMinutes = 30
    RecentScansShown = 5
"""

import configparser
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Tuple

from exceptions import ValidationError
from logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = 'config.ini'

DEFAULT_SHIPMENT_PREFIXES = ('SHIPMENT:', 'SHP-')
DEFAULT_ITEM_PREFIXES = ('ITEM:', 'CNT-')
DEFAULT_ITEM_PATTERNS = (r'^BOX-\d+$',)


@dataclass(frozen=True)
class CodeGrammar:
    """
    Which decoded strings count as shipment codes and which as item codes.

    Calling surfaces print different labels (shipment hashes, CNT- container
    ids, BOX-0000 demo ids), so the grammar is configuration.
    """
    shipment_prefixes: Tuple[str, ...] = DEFAULT_SHIPMENT_PREFIXES
    item_prefixes: Tuple[str, ...] = DEFAULT_ITEM_PREFIXES
    item_patterns: Tuple[str, ...] = DEFAULT_ITEM_PATTERNS
    accept_json: bool = True


@dataclass(frozen=True)
class ReceivingSettings:
    """All tunables of the receiving workflow."""
    debounce_ms: int = 1500
    same_code_lockout: bool = True
    grammar: CodeGrammar = field(default_factory=CodeGrammar)
    confirm_timeout_seconds: float = 10.0
    resolve_timeout_seconds: float = 10.0
    idle_timeout_minutes: float = 30.0
    recent_scans_shown: int = 5


def _split_list(raw: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(',') if part.strip())


def _read_number(config: configparser.ConfigParser, section: str, key: str, fallback: float,
                 minimum: float = 0) -> float:
    try:
        value = config.getfloat(section, key, fallback=fallback)
    except ValueError:
        raise ValidationError(f"[{section}] {key} must be a number, got {config.get(section, key)!r}")
    if value < minimum:
        raise ValidationError(f"[{section}] {key} must be >= {minimum}, got {value}")
    return value


def _read_bool(config: configparser.ConfigParser, section: str, key: str, fallback: bool) -> bool:
    try:
        return config.getboolean(section, key, fallback=fallback)
    except ValueError:
        raise ValidationError(f"[{section}] {key} must be true or false, got {config.get(section, key)!r}")


def _read_grammar(config: configparser.ConfigParser) -> CodeGrammar:
    shipment_prefixes = _split_list(config.get('Codes', 'ShipmentPrefixes', fallback=''))
    item_prefixes = _split_list(config.get('Codes', 'ItemPrefixes', fallback=''))
    item_patterns = _split_list(config.get('Codes', 'ItemPatterns', fallback=''))

    grammar = CodeGrammar(
        shipment_prefixes=shipment_prefixes or DEFAULT_SHIPMENT_PREFIXES,
        item_prefixes=item_prefixes or DEFAULT_ITEM_PREFIXES,
        item_patterns=item_patterns or DEFAULT_ITEM_PATTERNS,
        accept_json=_read_bool(config, 'Codes', 'AcceptJson', True),
    )
    validate_grammar(grammar)
    return grammar


def validate_grammar(grammar: CodeGrammar) -> None:
    """
    Check that a grammar is usable.

    Raises:
        ValidationError: If a pattern does not compile or a prefix is claimed
                         by both shipment and item codes
    """
    for pattern in grammar.item_patterns:
        try:
            re.compile(pattern)
        except re.error as e:
            raise ValidationError(f"Invalid item pattern {pattern!r}: {e}")

    overlap = ({p.upper() for p in grammar.shipment_prefixes}
               & {p.upper() for p in grammar.item_prefixes})
    if overlap:
        raise ValidationError(f"Prefixes used for both shipments and items: {sorted(overlap)}")


def load_settings(config_path: str = DEFAULT_CONFIG_PATH) -> ReceivingSettings:
    """
    Load ReceivingSettings from config.ini.

    Args:
        config_path: Path to the ini file; missing files give defaults

    Returns:
        ReceivingSettings with defaults for every absent key

    Raises:
        ValidationError: If a present value is invalid
    """
    config = configparser.ConfigParser()

    if not Path(config_path).exists():
        logger.debug(f"Config file not found: {config_path}, using defaults")
        return ReceivingSettings()

    config.read(config_path, encoding='utf-8')
    logger.info(f"Configuration loaded from {config_path}")

    settings = ReceivingSettings(
        debounce_ms=int(_read_number(config, 'Scanner', 'DebounceMs', 1500)),
        same_code_lockout=_read_bool(config, 'Scanner', 'SameCodeLockout', True),
        grammar=_read_grammar(config),
        confirm_timeout_seconds=_read_number(config, 'Ledger', 'ConfirmTimeoutSeconds', 10.0, minimum=0.001),
        resolve_timeout_seconds=_read_number(config, 'Ledger', 'ResolveTimeoutSeconds', 10.0, minimum=0.001),
        idle_timeout_minutes=_read_number(config, 'Session', 'IdleTimeoutMinutes', 30.0),
        recent_scans_shown=int(_read_number(config, 'Session', 'RecentScansShown', 5)),
    )

    logger.debug(f"Receiving settings: {settings}")
    return settings


def describe(settings: ReceivingSettings) -> List[str]:
    """Human-readable lines summarising the active settings (for startup logs)."""
    grammar = settings.grammar
    return [
        f"Debounce window: {settings.debounce_ms} ms (same-code lockout: {settings.same_code_lockout})",
        f"Shipment prefixes: {', '.join(grammar.shipment_prefixes)}",
        f"Item prefixes: {', '.join(grammar.item_prefixes)}",
        f"Item patterns: {', '.join(grammar.item_patterns)}",
        f"Ledger confirm timeout: {settings.confirm_timeout_seconds}s",
        f"Idle session timeout: {settings.idle_timeout_minutes} min",
    ]
