from __future__ import annotations

from decimal import Decimal


def convert_to_assets(share_amount: int, decimals_offset: int, total_assets: int, total_supply: int) -> int:
    """Asset value of ``share_amount`` shares using the virtual-offset form.

    ``+1`` on assets and ``+10**offset`` on supply keep the denominator
    positive for an empty vault and blunt first-depositor price inflation.
    """
    if decimals_offset < 0:
        raise ValueError(f"decimals_offset must be >= 0, got {decimals_offset}")
    return share_amount * (total_assets + 1) // (total_supply + 10 ** decimals_offset)


def decimals_offset(vault_decimals: int, asset_decimals: int) -> int:
    return vault_decimals - asset_decimals


def one_share(vault_decimals: int) -> int:
    return 10 ** vault_decimals


def price_per_share(vault_decimals: int, asset_decimals: int, total_assets: int, total_supply: int) -> int:
    return convert_to_assets(
        one_share(vault_decimals),
        decimals_offset(vault_decimals, asset_decimals),
        total_assets,
        total_supply,
    )


def period_prices(period, vault_decimals: int, asset_decimals: int) -> tuple[int, int]:
    """(start price, net end price) of a period; the end uses net supply so fee shares are excluded."""
    start = price_per_share(vault_decimals, asset_decimals, period.total_assets_at_start, period.total_supply_at_start)
    end = price_per_share(vault_decimals, asset_decimals, period.total_assets_at_end, period.net_supply_at_end)
    return start, end


def to_display_price(price: int, asset_decimals: int) -> float:
    """Price per share in whole asset units, for charts only."""
    return float(Decimal(price) / (Decimal(10) ** asset_decimals))
