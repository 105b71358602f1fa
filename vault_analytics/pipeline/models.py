from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, computed_field, field_serializer


class PeriodSummary(BaseModel):
    """One accounting interval for a vault, as reported by the indexer.

    Share and asset amounts are raw token units; integer strings from the
    subgraph are accepted and coerced to ``int`` without a float detour.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: Optional[str] = None
    vault: Optional[str] = None
    block_number: Optional[int] = Field(default=None, alias="blockNumber")
    start_timestamp: int = Field(
        validation_alias=AliasChoices("start_timestamp", "startTimestamp", "blockTimestamp"),
    )
    duration: int = Field(ge=0)
    total_assets_at_start: int = Field(ge=0, validation_alias=AliasChoices("total_assets_at_start", "totalAssetsAtStart"))
    total_supply_at_start: int = Field(ge=0, validation_alias=AliasChoices("total_supply_at_start", "totalSupplyAtStart"))
    total_assets_at_end: int = Field(ge=0, validation_alias=AliasChoices("total_assets_at_end", "totalAssetsAtEnd"))
    total_supply_at_end: int = Field(ge=0, validation_alias=AliasChoices("total_supply_at_end", "totalSupplyAtEnd"))
    net_supply_at_end: int = Field(
        ge=0,
        validation_alias=AliasChoices("net_supply_at_end", "netSupplyAtEnd", "netTotalSupplyAtEnd"),
    )

    @property
    def end_timestamp(self) -> int:
        return self.start_timestamp + self.duration

    @field_serializer(
        "total_assets_at_start",
        "total_supply_at_start",
        "total_assets_at_end",
        "total_supply_at_end",
        "net_supply_at_end",
        when_used="json",
    )
    def _big_int_as_str(self, value: int) -> str:
        return str(value)


class PriceReference(BaseModel):
    model_config = ConfigDict(frozen=True)

    price: int
    effective_timestamp: int


class ChartPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: int
    value: float
    rolling_avg: Optional[float] = None


class RangeStats(BaseModel):
    avg: float = 0.0
    min: float = 0.0
    max: float = 0.0


class AssetRecord(BaseModel):
    """A single leaf balance pulled out of a portfolio tree, with its context."""
    model_config = ConfigDict(frozen=True)

    balance: str = "0"
    decimals: int = 18
    usd_value: Optional[str] = None
    chain_contract: Optional[str] = None
    contract: Optional[str] = None
    symbol: Optional[str] = None
    name: Optional[str] = None
    logo: Optional[str] = None
    protocol_key: Optional[str] = None
    protocol_name: Optional[str] = None
    protocol_logo: Optional[str] = None
    chain_key: Optional[str] = None
    position_type: Optional[str] = None

    @property
    def contract_key(self) -> str:
        if self.chain_contract:
            return self.chain_contract.lower()
        return f"{self.chain_key or ''}:{self.contract or ''}".lower()


class AllocationItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    contract_key: str
    contract_address: str
    amount: int
    balance: str
    decimals: int
    percent_of_total: float = Field(ge=0.0, le=100.0)
    usd_value: Optional[float] = None
    label: str
    logo: Optional[str] = None
    protocol_key: Optional[str] = None
    protocol_name: Optional[str] = None
    protocol_logo: Optional[str] = None
    chain_key: Optional[str] = None
    position_type: Optional[str] = None

    @field_serializer("amount", when_used="json")
    def _amount_as_str(self, value: int) -> str:
        return str(value)


class SkippedRecord(BaseModel):
    contract_key: str
    reason: str


class AllocationReport(BaseModel):
    items: list[AllocationItem] = Field(default_factory=list)
    total_value: float = 0.0
    duplicates_dropped: int = 0
    skipped: list[SkippedRecord] = Field(default_factory=list)


class ProtocolGroup(BaseModel):
    protocol_key: str
    protocol_name: str
    protocol_logo: Optional[str] = None
    items: list[AllocationItem] = Field(default_factory=list)
    total_usd: Optional[float] = None
    percent_of_total: float = 0.0

    @computed_field
    @property
    def item_count(self) -> int:
        return len(self.items)


class ProtocolGrouping(BaseModel):
    groups: list[ProtocolGroup] = Field(default_factory=list)
    ungrouped: list[AllocationItem] = Field(default_factory=list)
