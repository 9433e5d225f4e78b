#!/usr/bin/env python3
"""Protocol and token identifiers for Starknet yield venues."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

PROTOCOL_ZKLEND = "zkLend"
PROTOCOL_EKUBO = "ekubo"

KIND_LENDING = "lending"
KIND_AMM = "amm"

PROTOCOL_KINDS = {
    PROTOCOL_ZKLEND: KIND_LENDING,
    PROTOCOL_EKUBO: KIND_AMM,
}

DISPLAY_NAMES = {
    PROTOCOL_ZKLEND: "zkLend",
    PROTOCOL_EKUBO: "Ekubo",
}

_ALIASES = {
    "zklend": PROTOCOL_ZKLEND,
    "zk_lend": PROTOCOL_ZKLEND,
    "zk-lend": PROTOCOL_ZKLEND,
    "ekubo": PROTOCOL_EKUBO,
    "ekubo_amm": PROTOCOL_EKUBO,
}

# Starknet mainnet L2 addresses.
TOKEN_ADDRESSES = {
    "ETH": "0x049d36570d4e46f48e99674bd3fcc84644ddd6b96f7c741b1562b82f9e004dc7",
    "USDC": "0x053c91253bc9682c04929ca02ed00b3e423f6710d2ee7e0d5ebb06f3ecf368a8",
    "USDT": "0x068f5c6a61780768455de69077e07e89787839bf8166decfbf92b645209c0fb8",
    "STRK": "0x04718f5a0fc34cc1af16a1cdee98ffb20c31f5cd61d6ab07201858f4287c938d",
}

TOKEN_DECIMALS = {
    "ETH": 18,
    "USDC": 6,
    "USDT": 6,
    "STRK": 18,
}

SUPPORTED_TOKENS = tuple(TOKEN_ADDRESSES.keys())

# Contracts that receive deposits / liquidity.
PROTOCOL_CONTRACTS = {
    PROTOCOL_ZKLEND: "0x04c0a5193d58f74fbace4b74dcf65481e734ed1714121bdc571da345540efa05",
    PROTOCOL_EKUBO: "0x00000005dd3d2f4429af886cd1a3b08289dbcea99a294197e9eb43b0e0325b4b",
}


def normalize_protocol(value: str) -> str:
    """Map protocol aliases (any case) to canonical identifiers."""
    raw = str(value or "").strip()
    if not raw:
        return ""
    return _ALIASES.get(raw.lower(), raw)


def normalize_token(value: str) -> str:
    return str(value or "").strip().upper()


def protocol_kind(protocol: str) -> Optional[str]:
    return PROTOCOL_KINDS.get(normalize_protocol(protocol))


def is_amm(protocol: str) -> bool:
    return protocol_kind(protocol) == KIND_AMM


def token_address(symbol: str) -> Optional[str]:
    return TOKEN_ADDRESSES.get(normalize_token(symbol))


def parse_supported_tokens(values: Iterable[str] | str | None) -> List[str]:
    """Canonical, de-duplicated token allow-list; empty input means all known tokens."""
    if values is None:
        return list(SUPPORTED_TOKENS)
    if isinstance(values, str):
        values = [p for p in values.split(",")]
    out: List[str] = []
    seen = set()
    for value in values:
        norm = normalize_token(value)
        if not norm or norm in seen:
            continue
        seen.add(norm)
        out.append(norm)
    return out or list(SUPPORTED_TOKENS)


def display_name(protocol: str) -> str:
    norm = normalize_protocol(protocol)
    return DISPLAY_NAMES.get(norm, norm)


def known_protocols() -> Dict[str, str]:
    return dict(PROTOCOL_KINDS)
