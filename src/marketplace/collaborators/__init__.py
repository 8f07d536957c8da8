"""Collaborator factory.

Each external system the marketplace talks to sits behind a port with an
in-memory adapter used by default. ``get_*`` returns the active adapter,
``set_*`` swaps it (tests, production wiring), ``reset_collaborators``
restores the defaults.
"""

from marketplace.collaborators.catalog import CatalogPort, InMemoryCatalog
from marketplace.collaborators.commission import CommissionEngine, PercentageCommissionEngine
from marketplace.collaborators.events import EventSink, InMemoryEventSink
from marketplace.collaborators.pricing import CouponCalculator, TaxCalculator
from marketplace.collaborators.sellers import InMemorySellerDirectory, SellerDirectory
from marketplace.collaborators.wallet import InMemoryWalletLedger, WalletLedger

_catalog: CatalogPort | None = None
_sellers: SellerDirectory | None = None
_wallet: WalletLedger | None = None
_commission: CommissionEngine | None = None
_event_sink: EventSink | None = None
_coupons: CouponCalculator | None = None
_tax: TaxCalculator | None = None


def _default_platform_percent() -> int:
    from marketplace.domain import marketplace

    return int(marketplace.config.get("custom", {}).get("platform_commission_percent", 10))


def get_catalog() -> CatalogPort:
    global _catalog
    if _catalog is None:
        _catalog = InMemoryCatalog()
    return _catalog


def set_catalog(catalog: CatalogPort) -> None:
    global _catalog
    _catalog = catalog


def get_sellers() -> SellerDirectory:
    global _sellers
    if _sellers is None:
        _sellers = InMemorySellerDirectory()
    return _sellers


def set_sellers(sellers: SellerDirectory) -> None:
    global _sellers
    _sellers = sellers


def get_wallet() -> WalletLedger:
    global _wallet
    if _wallet is None:
        _wallet = InMemoryWalletLedger()
    return _wallet


def set_wallet(wallet: WalletLedger) -> None:
    global _wallet
    _wallet = wallet


def get_commission_engine() -> CommissionEngine:
    global _commission
    if _commission is None:
        _commission = PercentageCommissionEngine(platform_fee_percent=_default_platform_percent())
    return _commission


def set_commission_engine(engine: CommissionEngine) -> None:
    global _commission
    _commission = engine


def get_event_sink() -> EventSink:
    global _event_sink
    if _event_sink is None:
        _event_sink = InMemoryEventSink()
    return _event_sink


def set_event_sink(sink: EventSink) -> None:
    global _event_sink
    _event_sink = sink


def get_coupon_calculator() -> CouponCalculator | None:
    return _coupons


def set_coupon_calculator(calculator: CouponCalculator | None) -> None:
    global _coupons
    _coupons = calculator


def get_tax_calculator() -> TaxCalculator | None:
    return _tax


def set_tax_calculator(calculator: TaxCalculator | None) -> None:
    global _tax
    _tax = calculator


def reset_collaborators() -> None:
    """Reset every collaborator to its default in-memory adapter."""
    global _catalog, _sellers, _wallet, _commission, _event_sink, _coupons, _tax
    _catalog = None
    _sellers = None
    _wallet = None
    _commission = None
    _event_sink = None
    _coupons = None
    _tax = None
