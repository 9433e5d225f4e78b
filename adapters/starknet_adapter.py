#!/usr/bin/env python3
"""
Starknet execution adapter.

Maps a lending allocation to ``approve`` + ``deposit`` on the protocol's
market contract and an AMM allocation to ``approve`` x2 + ``add_liquidity``
with the pool's token addresses, fee and tick spacing. USD amounts are
converted to token base units with the latest prices from ``set_prices``.

The account is injected and duck-typed:
    await account.execute(calls) -> tx hash (str/int) or object with .transaction_hash
    await account.wait_for_transaction(tx_hash)
"""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any, Dict, List, Optional

from logging_utils import get_logger
from protocols import (
    KIND_AMM,
    PROTOCOL_CONTRACTS,
    TOKEN_ADDRESSES,
    TOKEN_DECIMALS,
    normalize_protocol,
    normalize_token,
    protocol_kind,
)

from .base import ExecutionAdapter, ExecutionFailure

MAX_RETRIES = 3
RETRY_DELAY_SECONDS = 5.0
ATTEMPT_TIMEOUT_SECONDS = 60.0
EXPLORER_TX_URL = "https://starkscan.co/tx/{tx_hash}"

_U128 = 1 << 128


def split_u256(value: int) -> List[int]:
    """Cairo u256 calldata: [low, high]."""
    value = int(value)
    if value < 0:
        raise ValueError("u256 cannot be negative")
    return [value % _U128, value // _U128]


def usd_to_base_units(amount_usd: float, price_usd: float, decimals: int) -> int:
    if price_usd <= 0:
        raise ValueError(f"invalid price {price_usd}")
    tokens = Decimal(str(amount_usd)) / Decimal(str(price_usd))
    return int(tokens * (Decimal(10) ** int(decimals)))


def _tx_hash(result: Any) -> str:
    raw = getattr(result, "transaction_hash", result)
    if isinstance(raw, int):
        return hex(raw)
    return str(raw)


class StarknetAdapter(ExecutionAdapter):
    def __init__(
        self,
        account: Any,
        *,
        log=None,
        contracts: Optional[Dict[str, str]] = None,
        max_retries: int = MAX_RETRIES,
        retry_delay_seconds: float = RETRY_DELAY_SECONDS,
        attempt_timeout_seconds: float = ATTEMPT_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__(log or get_logger("starknet_adapter"))
        self.account = account
        self.contracts = dict(PROTOCOL_CONTRACTS)
        for protocol, address in (contracts or {}).items():
            if address:
                self.contracts[normalize_protocol(protocol)] = str(address)
        self.max_retries = max(1, int(max_retries))
        self.retry_delay_seconds = float(retry_delay_seconds)
        self.attempt_timeout_seconds = float(attempt_timeout_seconds)
        self._prices: Dict[str, float] = {}

    def set_prices(self, prices: Dict[str, float]) -> None:
        self._prices = {normalize_token(k): float(v) for k, v in (prices or {}).items()}

    def explorer_url(self, transaction_id: str) -> str:
        return EXPLORER_TX_URL.format(tx_hash=transaction_id)

    # ------------------------------------------------------------------
    # Call building
    # ------------------------------------------------------------------

    def _base_units(self, token: str, amount_usd: float) -> int:
        sym = normalize_token(token)
        if sym not in TOKEN_DECIMALS:
            raise ExecutionFailure(f"unsupported token {token}")
        price = self._prices.get(sym)
        if not price or price <= 0:
            raise ExecutionFailure(f"no price for {sym}; cannot size {amount_usd:.2f} USD")
        return usd_to_base_units(amount_usd, price, TOKEN_DECIMALS[sym])

    @staticmethod
    def _approve(token_address: str, spender: str, amount: int) -> Dict[str, Any]:
        return {
            "contract_address": token_address,
            "entrypoint": "approve",
            "calldata": [int(spender, 16), *split_u256(amount)],
        }

    def build_calls(
        self,
        protocol: str,
        token: str,
        amount: float,
        pool_data: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        protocol = normalize_protocol(protocol)
        contract = self.contracts.get(protocol)
        if not contract:
            raise ExecutionFailure(f"no contract configured for {protocol}")

        if protocol_kind(protocol) == KIND_AMM:
            symbols = [s.strip() for s in str(token).split("/") if s.strip()]
            if len(symbols) != 2:
                raise ExecutionFailure(f"AMM allocation needs a token pair, got {token!r}")
            pool_data = pool_data or {}
            addr0 = pool_data.get("token0_address") or TOKEN_ADDRESSES.get(normalize_token(symbols[0]))
            addr1 = pool_data.get("token1_address") or TOKEN_ADDRESSES.get(normalize_token(symbols[1]))
            if not addr0 or not addr1:
                raise ExecutionFailure(f"missing token addresses for {token}")
            # Liquidity is provided 50/50 by USD value.
            amount0 = self._base_units(symbols[0], amount / 2)
            amount1 = self._base_units(symbols[1], amount / 2)
            fee = int(str(pool_data.get("fee", "0")), 0)
            tick_spacing = int(pool_data.get("tick_spacing") or 0)
            return [
                self._approve(addr0, contract, amount0),
                self._approve(addr1, contract, amount1),
                {
                    "contract_address": contract,
                    "entrypoint": "add_liquidity",
                    "calldata": [
                        int(addr0, 16),
                        int(addr1, 16),
                        fee,
                        tick_spacing,
                        *split_u256(amount0),
                        *split_u256(amount1),
                    ],
                },
            ]

        token_address = TOKEN_ADDRESSES.get(normalize_token(token))
        if not token_address:
            raise ExecutionFailure(f"unsupported token {token}")
        base = self._base_units(token, amount)
        return [
            self._approve(token_address, contract, base),
            {
                "contract_address": contract,
                "entrypoint": "deposit",
                "calldata": [int(token_address, 16), *split_u256(base)],
            },
        ]

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def _execute_once(self, calls: List[Dict[str, Any]]) -> str:
        result = await self.account.execute(calls)
        tx_hash = _tx_hash(result)
        await self.account.wait_for_transaction(tx_hash)
        return tx_hash

    async def submit(
        self,
        protocol: str,
        token: str,
        amount: float,
        pool_data: Optional[Dict[str, Any]] = None,
    ) -> str:
        calls = self.build_calls(protocol, token, amount, pool_data)
        last_err = ""
        for attempt in range(1, self.max_retries + 1):
            try:
                tx_hash = await asyncio.wait_for(self._execute_once(calls), timeout=self.attempt_timeout_seconds)
                self.log.info(f"{protocol} {token} {amount:.2f} USD submitted: {self.explorer_url(tx_hash)}")
                return tx_hash
            except asyncio.TimeoutError:
                last_err = f"timed out after {self.attempt_timeout_seconds:.0f}s"
            except Exception as exc:
                last_err = f"{type(exc).__name__}: {exc}"
            self.log.warning(
                f"Submission retry {attempt}/{self.max_retries} failed for {protocol} {token}: {last_err}"
            )
            if attempt < self.max_retries:
                await asyncio.sleep(self.retry_delay_seconds)

        self.log.error(f"Submission failed after {self.max_retries} attempts for {protocol} {token}: {last_err}")
        raise ExecutionFailure(
            f"submission failed after {self.max_retries} attempts: {last_err}",
            attempts=self.max_retries,
        )
