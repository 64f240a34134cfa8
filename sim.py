"""
Core Certificate Marketplace Simulation Module

This module contains the single-entity simulation logic for the data
certificate marketplace. It includes the sigmoid brand participation ramp,
the assumption bundle with its validation, revenue splitting, the rolling
12-month certificate window and the monthly simulation engine that tracks
minting, licensing and cumulative stakeholder revenue.
"""

import logging
import math
from dataclasses import dataclass, field, fields, asdict
from types import MappingProxyType
from typing import List, Dict, Any, Optional, Sequence, Mapping

import numpy as np

logger = logging.getLogger(__name__)

SIMULATION_MONTHS = 36
CERTIFICATE_LIFETIME_MONTHS = 12
RAMP_STEEPNESS = 0.15


class AssumptionError(ValueError):
    """Invalid or inconsistent simulation input, tagged with the offending field"""

    def __init__(self, field_name: str, message: str, entity: Optional[str] = None):
        self.field = field_name
        self.entity = entity
        prefix = f"{entity}: " if entity else ""
        super().__init__(f"{prefix}{field_name}: {message}")


def check_number(field_name: str, value: Any, entity: Optional[str] = None) -> None:
    """Reject booleans, non-numeric values, NaN and Infinity"""
    if isinstance(value, bool) or not isinstance(value, (int, float, np.integer, np.floating)):
        raise AssumptionError(field_name, f"must be a number, got {value!r}", entity=entity)
    if not math.isfinite(value):
        raise AssumptionError(field_name, f"must be finite, got {value}", entity=entity)


def check_horizon(months: Any) -> None:
    if isinstance(months, bool) or not isinstance(months, (int, np.integer)) or months < 1:
        raise AssumptionError('months', f"horizon must be a whole number of months >= 1, got {months!r}")


@dataclass(frozen=True)
class RevenueSplit:
    """Named fractions of a gross revenue amount, e.g. {'retailer': 0.5, 'consumer': 0.5}"""

    shares: Mapping[str, float]

    def __post_init__(self):
        # Read-only copy; split tables are shared between bundles and presets
        object.__setattr__(self, 'shares', MappingProxyType(dict(self.shares)))
        for name, fraction in self.shares.items():
            check_number(name, fraction)
            if not 0 <= fraction <= 1:
                raise AssumptionError(name, f"split fraction must be within [0, 1], got {fraction}")

    @property
    def total(self) -> float:
        return sum(self.shares.values())

    def validate(self, field_name: str) -> None:
        if self.total > 1 + 1e-9:
            raise AssumptionError(
                field_name,
                f"split fractions sum to {self.total:.1%}, must not exceed 100% "
                f"({', '.join(f'{k}={v:.1%}' for k, v in self.shares.items())})"
            )

    def get(self, name: str) -> float:
        return self.shares.get(name, 0.0)


DEFAULT_MINTING_SPLIT = RevenueSplit({'retailer': 0.50, 'consumer': 0.50})
DEFAULT_LICENSING_SPLIT = RevenueSplit({
    'retailer': 0.06,
    'brand': 0.30,
    'consumer': 0.60,
    'data_agent': 0.02,
    'operator': 0.02,
})


def split_gross_revenue(gross: float, split: RevenueSplit) -> Dict[str, float]:
    """
    Divide a gross amount into named recipient shares

    Recipients absent from the split table receive nothing; callers read
    shares with dict.get(name, 0.0).
    """
    return {name: gross * fraction for name, fraction in split.shares.items()}


@dataclass(frozen=True)
class Assumptions:
    """Assumption bundle for one marketplace entity (a retailer)"""

    # Population and opt-in
    total_customers: float = 120_000_000  # Total addressable shoppers
    wallet_adoption: float = 0.70  # Probability a shopper adopts the data wallet
    active_consent: float = 0.80  # Probability an adopter actively consents
    annual_transactions: float = 65  # Transactions per opted-in shopper per year

    # Brand participation ramp (sigmoid)
    brand_start_pct: float = 0.05  # Participation at launch
    brand_end_pct: float = 1.0  # Asymptotic participation
    months_to_full: float = 36  # Ramp length; midpoint sits at half of this

    # Eligible items per transaction, interpolated by participation
    item_floor: float = 2
    item_ceiling: float = 8

    # Pricing
    minting_fee: float = 0.10  # USD per certificate minted
    license_fee: float = 0.175  # USD per licensing (reuse) event
    uses_per_cert_per_year: float = 4  # Reuse events per active certificate per year

    # Revenue splits
    minting_split: RevenueSplit = field(default_factory=lambda: DEFAULT_MINTING_SPLIT)
    licensing_split: RevenueSplit = field(default_factory=lambda: DEFAULT_LICENSING_SPLIT)

    # Cost structure (derived metrics only)
    royalty_margin: float = 0.95
    bank_share: float = 0.02
    data_agent_share: float = 0.02
    platform_fee: float = 0.05  # Operating overhead
    sga_overhead: float = 0.04

    def __post_init__(self):
        """Validate inputs once so the monthly recurrence never sees NaN or Infinity"""
        for name in self.field_names():
            if name not in ('minting_split', 'licensing_split'):
                check_number(name, getattr(self, name))
        for name in ('minting_split', 'licensing_split'):
            if not isinstance(getattr(self, name), RevenueSplit):
                raise AssumptionError(name, f"must be a RevenueSplit, got {getattr(self, name)!r}")
        if not self.total_customers > 0:
            raise AssumptionError('total_customers', f"population must be positive, got {self.total_customers}")
        for name in ('wallet_adoption', 'active_consent'):
            value = getattr(self, name)
            if not 0 < value <= 1:
                raise AssumptionError(name, f"probability must be within (0, 1], got {value}")
        if not self.annual_transactions >= 0:
            raise AssumptionError('annual_transactions', f"must be non-negative, got {self.annual_transactions}")
        if not self.months_to_full > 0:
            raise AssumptionError('months_to_full', f"ramp length must be positive, got {self.months_to_full}")
        if not 0 <= self.brand_start_pct <= 1:
            raise AssumptionError('brand_start_pct', f"must be within [0, 1], got {self.brand_start_pct}")
        if not 0 <= self.brand_end_pct <= 1:
            raise AssumptionError('brand_end_pct', f"must be within [0, 1], got {self.brand_end_pct}")
        if not self.brand_end_pct >= self.brand_start_pct:
            raise AssumptionError(
                'brand_end_pct',
                f"ramp end ({self.brand_end_pct:.1%}) is below ramp start ({self.brand_start_pct:.1%})"
            )
        if not self.item_floor >= 0:
            raise AssumptionError('item_floor', f"must be non-negative, got {self.item_floor}")
        if not self.item_ceiling >= self.item_floor:
            raise AssumptionError(
                'item_ceiling', f"ceiling ({self.item_ceiling}) is below floor ({self.item_floor})"
            )
        for name in ('minting_fee', 'license_fee', 'uses_per_cert_per_year'):
            value = getattr(self, name)
            if not value >= 0:
                raise AssumptionError(name, f"must be non-negative, got {value}")
        self.minting_split.validate('minting_split')
        self.licensing_split.validate('licensing_split')
        for name in ('royalty_margin', 'bank_share', 'data_agent_share', 'platform_fee', 'sga_overhead'):
            value = getattr(self, name)
            if not 0 <= value <= 1:
                raise AssumptionError(name, f"must be within [0, 1], got {value}")

    @property
    def effective_opt_in(self) -> float:
        return self.wallet_adoption * self.active_consent

    @property
    def opted_in_customers(self) -> float:
        return self.total_customers * self.effective_opt_in

    @property
    def cost_share_total(self) -> float:
        return self.bank_share + self.data_agent_share + self.platform_fee + self.sga_overhead

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]


def brand_participation(month: float, start_pct: float, end_pct: float, months_to_full: float) -> float:
    """
    Sigmoid brand participation ramp

    Uses formula: start + (end - start) / (1 + e^(-k × (month - months_to_full / 2)))
    with fixed steepness k = 0.15. Defined for any real month; phased
    callers must not pass a month before their launch.

    Args:
        month: Month on the ramp (1-based for a standalone entity)
        start_pct: Participation fraction the curve starts near
        end_pct: Participation fraction the curve approaches
        months_to_full: Ramp length in months

    Returns:
        Fraction of eligible brands participating
    """
    x = RAMP_STEEPNESS * (month - months_to_full / 2)
    # Exponent kept non-positive so far-off months cannot overflow
    if x >= 0:
        fraction = 1 / (1 + math.exp(-x))
    else:
        z = math.exp(x)
        fraction = z / (1 + z)
    return start_pct + (end_pct - start_pct) * fraction


def participation_curve(months: Sequence[float], start_pct: float, end_pct: float,
                        months_to_full: float) -> np.ndarray:
    """Vectorised ramp for charting"""
    months = np.asarray(months, dtype=float)
    x = RAMP_STEEPNESS * (months - months_to_full / 2)
    z = np.exp(-np.abs(x))
    fraction = np.where(x >= 0, 1 / (1 + z), z / (1 + z))
    return start_pct + (end_pct - start_pct) * fraction


class MintingHistory:
    """
    Fixed-capacity ring buffer of monthly minted certificate counts

    Only the count minted one lifetime ago is ever read back, so the buffer
    holds exactly `lifetime` entries regardless of simulation length.
    """

    def __init__(self, lifetime: int = CERTIFICATE_LIFETIME_MONTHS):
        self.lifetime = lifetime
        self._buffer = [0.0] * lifetime
        self._months = 0

    def __len__(self):
        return self._months

    def push(self, minted: float) -> float:
        """Record this month's minting and return the count expiring out of the window"""
        slot = self._months % self.lifetime
        expired = self._buffer[slot] if self._months >= self.lifetime else 0.0
        self._buffer[slot] = minted
        self._months += 1
        return expired

    def window_total(self) -> float:
        """Sum of the certificates still inside the window"""
        return sum(self._buffer[:min(self._months, self.lifetime)])


@dataclass(frozen=True)
class MonthlyRecord:
    """One entity's results for one month"""

    month: int
    brand_participation: float = 0.0
    avg_eligible_items: float = 0.0
    effective_opt_in: float = 0.0
    certs_minted: float = 0.0
    expired_certs: float = 0.0
    active_cert_pool: float = 0.0
    licensing_events: float = 0.0

    total_minting_revenue: float = 0.0
    retailer_minting_revenue: float = 0.0
    consumer_minting_benefit: float = 0.0

    gross_licensing_revenue: float = 0.0
    retailer_licensing: float = 0.0
    brand_revenue: float = 0.0
    consumer_licensing: float = 0.0
    data_agent_revenue: float = 0.0
    operator_revenue: float = 0.0

    retailer_total: float = 0.0
    consumer_total: float = 0.0

    cumulative_certs_minted: float = 0.0
    cumulative_retailer_rev: float = 0.0
    cumulative_consumer_rev: float = 0.0
    cumulative_brand_rev: float = 0.0
    cumulative_data_agent_rev: float = 0.0
    cumulative_operator_rev: float = 0.0
    cumulative_minting_rev: float = 0.0
    cumulative_licensing_rev: float = 0.0
    cumulative_gmv: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def metric_names(cls) -> List[str]:
        return [f.name for f in fields(cls) if f.name != 'month']


class EntityLedger:
    """
    Month-by-month state for a single entity

    Holds the rolling minting window, the active pool and every running
    total. Both the standalone simulation and the multi-entity network
    advance entities through this one recurrence so the two cannot drift.
    """

    def __init__(self, assumptions: Assumptions):
        self.assumptions = assumptions
        self.history = MintingHistory()
        self.active_cert_pool = 0.0
        self._totals = {
            'certs_minted': 0.0,
            'retailer': 0.0,
            'consumer': 0.0,
            'brand': 0.0,
            'data_agent': 0.0,
            'operator': 0.0,
            'minting': 0.0,
            'licensing': 0.0,
        }

    def advance(self, month: int, ramp_month: float, license_fee: Optional[float] = None) -> MonthlyRecord:
        """
        Run one month of the recurrence

        Args:
            month: Calendar month of the record (1-based)
            ramp_month: Position on the participation ramp
            license_fee: Fee per licensing event; defaults to the assumption's fee

        Returns:
            MonthlyRecord for this month
        """
        a = self.assumptions
        if license_fee is None:
            license_fee = a.license_fee

        participation = brand_participation(ramp_month, a.brand_start_pct, a.brand_end_pct, a.months_to_full)
        avg_eligible_items = a.item_floor + participation * (a.item_ceiling - a.item_floor)

        # Participation scales both items per basket and the share of transactions that mint
        monthly_transactions = a.opted_in_customers * (a.annual_transactions / 12)
        certs_minted = monthly_transactions * avg_eligible_items * participation

        expired = self.history.push(certs_minted)
        self.active_cert_pool = self.active_cert_pool + certs_minted - expired

        total_minting_revenue = certs_minted * a.minting_fee
        minting = split_gross_revenue(total_minting_revenue, a.minting_split)

        licensing_events = self.active_cert_pool * a.uses_per_cert_per_year / 12
        gross_licensing_revenue = licensing_events * license_fee
        licensing = split_gross_revenue(gross_licensing_revenue, a.licensing_split)

        retailer_minting = minting.get('retailer', 0.0)
        consumer_minting = minting.get('consumer', 0.0)
        retailer_licensing = licensing.get('retailer', 0.0)
        consumer_licensing = licensing.get('consumer', 0.0)
        retailer_total = retailer_minting + retailer_licensing
        consumer_total = consumer_minting + consumer_licensing

        totals = self._totals
        totals['certs_minted'] += certs_minted
        totals['retailer'] += retailer_total
        totals['consumer'] += consumer_total
        totals['brand'] += licensing.get('brand', 0.0)
        totals['data_agent'] += licensing.get('data_agent', 0.0)
        totals['operator'] += licensing.get('operator', 0.0)
        totals['minting'] += total_minting_revenue
        totals['licensing'] += gross_licensing_revenue

        return MonthlyRecord(
            month=month,
            brand_participation=participation,
            avg_eligible_items=avg_eligible_items,
            effective_opt_in=a.effective_opt_in,
            certs_minted=certs_minted,
            expired_certs=expired,
            active_cert_pool=self.active_cert_pool,
            licensing_events=licensing_events,
            total_minting_revenue=total_minting_revenue,
            retailer_minting_revenue=retailer_minting,
            consumer_minting_benefit=consumer_minting,
            gross_licensing_revenue=gross_licensing_revenue,
            retailer_licensing=retailer_licensing,
            brand_revenue=licensing.get('brand', 0.0),
            consumer_licensing=consumer_licensing,
            data_agent_revenue=licensing.get('data_agent', 0.0),
            operator_revenue=licensing.get('operator', 0.0),
            retailer_total=retailer_total,
            consumer_total=consumer_total,
            cumulative_certs_minted=totals['certs_minted'],
            cumulative_retailer_rev=totals['retailer'],
            cumulative_consumer_rev=totals['consumer'],
            cumulative_brand_rev=totals['brand'],
            cumulative_data_agent_rev=totals['data_agent'],
            cumulative_operator_rev=totals['operator'],
            cumulative_minting_rev=totals['minting'],
            cumulative_licensing_rev=totals['licensing'],
            cumulative_gmv=totals['minting'] + totals['licensing'],
        )


class CertificateSimulation:
    """
    Single-entity certificate marketplace simulation

    Steps one entity through a fixed horizon of months, in order, since each
    month's pool depends on the previous month and the trailing window.
    """

    def __init__(self, assumptions: Assumptions, months: int = SIMULATION_MONTHS):
        """
        Initialize simulation with an assumption bundle

        Args:
            assumptions: Validated assumption bundle
            months: Horizon length in months
        """
        check_horizon(months)
        self.assumptions = assumptions
        self.months = months
        self.records: List[MonthlyRecord] = []
        self.results = {}

    def run_simulation(self) -> List[MonthlyRecord]:
        """
        Run the complete monthly simulation from month 1

        Returns:
            Ordered list of MonthlyRecord, one per month
        """
        ledger = EntityLedger(self.assumptions)
        self.records = [ledger.advance(month, month) for month in range(1, self.months + 1)]

        self.results = {'months': np.arange(1, self.months + 1)}
        for name in MonthlyRecord.metric_names():
            self.results[name] = np.array([getattr(r, name) for r in self.records])
        self.results['assumptions'] = self.assumptions

        final = self.records[-1]
        logger.debug(
            "Simulated %d months: pool=%.0f certs=%.0f retailer=%.2f consumer=%.2f gmv=%.2f",
            self.months, final.active_cert_pool, final.cumulative_certs_minted,
            final.cumulative_retailer_rev, final.cumulative_consumer_rev, final.cumulative_gmv
        )
        return self.records

    def get_summary_metrics(self) -> Dict[str, float]:
        """
        Calculate summary metrics from simulation results

        Returns:
            Dictionary of key performance indicators
        """
        if not self.records:
            raise ValueError("Simulation must be run before calculating metrics")
        return summarize_records(self.records, self.assumptions)


def summarize_records(records: Sequence[MonthlyRecord], assumptions: Assumptions) -> Dict[str, float]:
    """Headline metrics over a full record sequence"""
    final = records[-1]
    years = len(records) / 12
    opted_in = assumptions.opted_in_customers
    revenue = final.cumulative_retailer_rev
    ebit = revenue * assumptions.royalty_margin - revenue * assumptions.cost_share_total

    return {
        'cumulative_retailer_revenue': revenue,
        'cumulative_consumer_earnings': final.cumulative_consumer_rev,
        'cumulative_brand_revenue': final.cumulative_brand_rev,
        'cumulative_gmv': final.cumulative_gmv,
        'cumulative_certs_minted': final.cumulative_certs_minted,
        'final_active_cert_pool': final.active_cert_pool,
        'opted_in_customers': opted_in,
        'avg_revenue_per_certificate': (
            final.cumulative_gmv / final.cumulative_certs_minted if final.cumulative_certs_minted > 0 else 0.0
        ),
        'ebit': ebit,
        'ebit_margin': ebit / revenue if revenue > 0 else 0.0,
        'ebit_per_customer': ebit / opted_in if opted_in > 0 else 0.0,
        'consumer_annual_dividend': (
            final.cumulative_consumer_rev / opted_in / years if opted_in > 0 and years > 0 else 0.0
        ),
    }


def simulate_entity(assumptions: Assumptions, months: int = SIMULATION_MONTHS) -> List[MonthlyRecord]:
    """Run a standalone entity simulation and return its monthly records"""
    return CertificateSimulation(assumptions, months).run_simulation()
