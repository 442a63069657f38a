"""Tests for config.ini loading."""

import textwrap

import pytest

from exceptions import ValidationError
from settings import CodeGrammar, ReceivingSettings, describe, load_settings, validate_grammar


def write_config(tmp_path, body):
    path = tmp_path / "config.ini"
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return str(path)


def test_missing_file_gives_defaults(tmp_path):
    assert load_settings(str(tmp_path / "absent.ini")) == ReceivingSettings()


def test_full_config(tmp_path):
    path = write_config(tmp_path, r"""
        [Scanner]
        DebounceMs = 800
        SameCodeLockout = no

        [Codes]
        ShipmentPrefixes = LOT:, SHP-
        ItemPrefixes = CASE:
        ItemPatterns = ^BOX-\d+$, ^PAL\d{3}$
        AcceptJson = false

        [Ledger]
        ConfirmTimeoutSeconds = 3.5
        ResolveTimeoutSeconds = 4

        [Session]
        IdleTimeoutMinutes = 15
        RecentScansShown = 8
    """)

    settings = load_settings(path)

    assert settings.debounce_ms == 800
    assert settings.same_code_lockout is False
    assert settings.grammar == CodeGrammar(
        shipment_prefixes=("LOT:", "SHP-"),
        item_prefixes=("CASE:",),
        item_patterns=(r"^BOX-\d+$", r"^PAL\d{3}$"),
        accept_json=False,
    )
    assert settings.confirm_timeout_seconds == 3.5
    assert settings.resolve_timeout_seconds == 4.0
    assert settings.idle_timeout_minutes == 15
    assert settings.recent_scans_shown == 8


def test_partial_config_keeps_defaults(tmp_path):
    path = write_config(tmp_path, """
        [Scanner]
        DebounceMs = 500
    """)
    settings = load_settings(path)
    assert settings.debounce_ms == 500
    assert settings.grammar == CodeGrammar()
    assert settings.confirm_timeout_seconds == 10.0


@pytest.mark.parametrize("section,key,value", [
    ("Scanner", "DebounceMs", "fast"),
    ("Scanner", "DebounceMs", "-1"),
    ("Scanner", "SameCodeLockout", "maybe"),
    ("Ledger", "ConfirmTimeoutSeconds", "0"),
    ("Session", "RecentScansShown", "lots"),
])
def test_invalid_values(tmp_path, section, key, value):
    path = write_config(tmp_path, f"""
        [{section}]
        {key} = {value}
    """)
    with pytest.raises(ValidationError):
        load_settings(path)


def test_broken_pattern(tmp_path):
    path = write_config(tmp_path, """
        [Codes]
        ItemPatterns = ^BOX-(\\d+$
    """)
    with pytest.raises(ValidationError, match="Invalid item pattern"):
        load_settings(path)


def test_prefix_overlap():
    with pytest.raises(ValidationError, match="both shipments and items"):
        validate_grammar(CodeGrammar(shipment_prefixes=("X-",), item_prefixes=("x-",)))


def test_describe_mentions_key_values():
    lines = describe(ReceivingSettings(debounce_ms=900))
    assert any("900 ms" in line for line in lines)
    assert any("SHIPMENT:" in line for line in lines)
