from __future__ import annotations

import re
from collections import OrderedDict
from decimal import Decimal, InvalidOperation
from typing import Iterable, Iterator, Sequence

import structlog

from .models import (
    AllocationItem,
    AllocationReport,
    AssetRecord,
    ProtocolGroup,
    ProtocolGrouping,
    SkippedRecord,
)

log = structlog.get_logger()

# Leaf collections on a position node, in dedup precedence order.
ASSET_LEAF_KEYS = ("assets", "supplyAssets", "rewardAssets")
NESTED_POSITIONS_KEY = "protocolPositions"
DEFAULT_DECIMALS = 18

_DIGITS = re.compile(r"^[0-9]*$")


class BalanceParseError(ValueError):
    pass


def to_fixed_point(balance: str, decimals: int) -> int:
    """Exact integer amount of a human-readable balance at ``decimals`` places.

    Extra fractional digits are truncated, never rounded.
    """
    if decimals < 0:
        raise BalanceParseError(f"negative decimals {decimals}")
    text = (balance or "").strip()
    if not text:
        raise BalanceParseError("empty balance")
    parts = text.split(".")
    if len(parts) > 2:
        raise BalanceParseError(f"malformed balance {balance!r}")
    integer_part = parts[0]
    fraction = parts[1] if len(parts) == 2 else ""
    if not _DIGITS.match(integer_part) or not _DIGITS.match(fraction) or not (integer_part or fraction):
        raise BalanceParseError(f"malformed balance {balance!r}")
    fraction = fraction.ljust(decimals, "0")[:decimals]
    return int((integer_part or "0") + fraction)


def from_fixed_point(amount: int, decimals: int) -> str:
    if amount < 0:
        raise ValueError(f"negative amount {amount}")
    if decimals == 0:
        return str(amount)
    digits = str(amount).rjust(decimals + 1, "0")
    integer_part, fraction = digits[:-decimals], digits[-decimals:].rstrip("0")
    return f"{integer_part}.{fraction}" if fraction else integer_part


def parse_usd(value) -> Decimal | None:
    if value is None:
        return None
    try:
        parsed = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not parsed.is_finite() or parsed <= 0:
        return None
    return parsed


def _parse_decimals(raw) -> int:
    if raw is None or raw == "":
        return DEFAULT_DECIMALS
    return int(raw)


def _asset_record(asset: dict, context: dict) -> AssetRecord:
    return AssetRecord(
        balance=str(asset.get("balance") or "0"),
        decimals=_parse_decimals(asset.get("decimal", asset.get("decimals"))),
        usd_value=None if asset.get("value") is None else str(asset.get("value")),
        chain_contract=asset.get("chainContract"),
        contract=asset.get("contract"),
        symbol=asset.get("symbol"),
        name=asset.get("name"),
        logo=asset.get("imgSmall") or asset.get("imgLarge"),
        **context,
    )


def _visit_position(node: dict, context: dict) -> Iterator[AssetRecord]:
    for key in ASSET_LEAF_KEYS:
        for asset in node.get(key) or []:
            if not isinstance(asset, dict):
                continue
            try:
                yield _asset_record(asset, context)
            except ValueError as exc:
                log.warning(
                    "asset_record_invalid",
                    chain_contract=asset.get("chainContract"),
                    position_type=context.get("position_type"),
                    error=str(exc),
                )
    for nested in node.get(NESTED_POSITIONS_KEY) or []:
        if isinstance(nested, dict):
            yield from _visit_position(nested, context)


def _children(node: dict, key: str, level: str) -> Iterator[tuple[str, dict]]:
    children = node.get(key) or {}
    if not isinstance(children, dict):
        log.warning("portfolio_node_invalid", level=level, key=key, type=type(children).__name__)
        return
    for child_key, child in children.items():
        if not isinstance(child, dict):
            log.warning("portfolio_node_invalid", level=level, key=child_key, type=type(child).__name__)
            continue
        yield child_key, child


def extract_assets(portfolio: dict) -> list[AssetRecord]:
    """Flatten protocol -> chain -> position -> asset leaves, depth first.

    Malformed nodes are skipped with a warning; the rest of the tree is still read.
    """
    records: list[AssetRecord] = []
    if not isinstance(portfolio, dict):
        log.warning("portfolio_node_invalid", level="portfolio", type=type(portfolio).__name__)
        return records
    for protocol_key, protocol in _children(portfolio, "assetByProtocols", "protocol"):
        protocol_context = {
            "protocol_key": protocol_key,
            "protocol_name": protocol.get("name") or protocol_key,
            "protocol_logo": protocol.get("imgSmall") or protocol.get("imgLarge"),
        }
        for chain_key, chain in _children(protocol, "chains", "chain"):
            for position_key, position in _children(chain, "protocolPositions", "position"):
                context = dict(protocol_context, chain_key=chain_key, position_type=position_key)
                records.extend(_visit_position(position, context))
    log.info("portfolio_assets_extracted", address=portfolio.get("address"), assets=len(records))
    return records


def extract_portfolio_assets(portfolios: Iterable[dict]) -> list[AssetRecord]:
    records: list[AssetRecord] = []
    for portfolio in portfolios:
        records.extend(extract_assets(portfolio))
    return records


def _sort_key(item: AllocationItem):
    if item.usd_value is not None:
        return (0, -item.usd_value, -item.amount)
    return (1, 0.0, -item.amount)


def _contract_address(record: AssetRecord, contract_key: str) -> str:
    return (record.contract or contract_key.split(":")[-1]).lower()


def aggregate_with_report(records: Sequence[AssetRecord]) -> AllocationReport:
    """Deduplicate by contract key (first occurrence wins) and weight by USD value."""
    seen: set[str] = set()
    duplicates = 0
    skipped: list[SkippedRecord] = []
    kept: list[tuple[AssetRecord, str, int, Decimal | None]] = []

    for record in records:
        contract_key = record.contract_key
        if contract_key in seen:
            duplicates += 1
            log.debug("allocation_duplicate_dropped", contract_key=contract_key, usd_value=record.usd_value)
            continue
        seen.add(contract_key)
        try:
            amount = to_fixed_point(record.balance, record.decimals)
        except BalanceParseError as exc:
            skipped.append(SkippedRecord(contract_key=contract_key, reason=str(exc)))
            log.warning("allocation_record_skipped", contract_key=contract_key, error=str(exc))
            continue
        kept.append((record, contract_key, amount, parse_usd(record.usd_value)))

    total = sum((usd for _, _, _, usd in kept if usd is not None), Decimal(0))
    items = []
    for record, contract_key, amount, usd in kept:
        pct = 0.0
        if usd is not None and total > 0:
            pct = min(100.0, float(usd / total * 100))
        items.append(AllocationItem(
            contract_key=contract_key,
            contract_address=_contract_address(record, contract_key),
            amount=amount,
            balance=record.balance,
            decimals=record.decimals,
            percent_of_total=pct,
            usd_value=float(usd) if usd is not None else None,
            label=record.symbol or record.name or "UNKNOWN",
            logo=record.logo,
            protocol_key=record.protocol_key,
            protocol_name=record.protocol_name,
            protocol_logo=record.protocol_logo,
            chain_key=record.chain_key,
            position_type=record.position_type,
        ))
    items.sort(key=_sort_key)

    if duplicates:
        log.info("allocation_duplicates_dropped", count=duplicates)
    log.info(
        "allocations_aggregated",
        records=len(records),
        items=len(items),
        skipped=len(skipped),
        total_value=f"{total:.2f}",
    )
    return AllocationReport(
        items=items,
        total_value=float(total),
        duplicates_dropped=duplicates,
        skipped=skipped,
    )


def aggregate(records: Sequence[AssetRecord]) -> list[AllocationItem]:
    return aggregate_with_report(records).items


def group_by_protocol(items: Sequence[AllocationItem]) -> ProtocolGrouping:
    buckets: OrderedDict[str, list[AllocationItem]] = OrderedDict()
    ungrouped: list[AllocationItem] = []
    for item in items:
        if not item.protocol_key:
            ungrouped.append(item)
            continue
        buckets.setdefault(item.protocol_key.lower(), []).append(item)

    groups = []
    for key, members in buckets.items():
        first = members[0]
        usd_values = [m.usd_value for m in members if m.usd_value is not None]
        groups.append(ProtocolGroup(
            protocol_key=key,
            protocol_name=first.protocol_name or first.protocol_key,
            protocol_logo=first.protocol_logo,
            items=sorted(members, key=_sort_key),
            total_usd=sum(usd_values) if usd_values else None,
            percent_of_total=min(100.0, sum(m.percent_of_total for m in members)),
        ))
    groups.sort(key=lambda g: (g.total_usd is None, -(g.total_usd or 0.0), -sum(m.amount for m in g.items)))
    return ProtocolGrouping(groups=groups, ungrouped=ungrouped)
