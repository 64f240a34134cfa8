"""
Network Effect Models

Two independent ways of valuing a multi-retailer certificate network:

- A heuristic scaler that re-prices one retailer's existing series as if it
  enjoyed the reuse, adoption and price benefits of an n-retailer network.
- A Metcalfe's-Law simulation that phases in a roster of retailers, each
  with its own minting history and pool, and couples them only through a
  shared license-fee multiplier driven by the number of active retailers.

The two models are not expected to agree numerically.
"""

import logging
import math
from dataclasses import dataclass, field, replace, asdict
from typing import List, Dict, Any, Optional, Sequence

from sim import (
    SIMULATION_MONTHS,
    Assumptions,
    AssumptionError,
    EntityLedger,
    MonthlyRecord,
    check_horizon,
    check_number,
)

logger = logging.getLogger(__name__)

# Heuristic model parameters
BASE_REUSE_RATE = 4  # Reuses per certificate per year the multiplier is anchored to
REUSE_INCREASE_PER_RETAILER = 0.4
MAX_REUSE_RATE = 8
ADOPTION_LIFT_PER_RETAILER = 0.04
MAX_ADOPTION = 0.85
PRICE_PREMIUM_PER_RETAILER = 0.12
MAX_PRICE_PREMIUM = 0.50

# Metcalfe model parameters
MAX_NETWORK_SIZE = 10
DEFAULT_NETWORK_COEFFICIENT = 0.5

COMPARISON_SIZES = (1, 2, 3, 5)


def reuse_multiplier(num_retailers: int, base_reuse: float = BASE_REUSE_RATE) -> float:
    """Relative reuse rate, capping the absolute rate at MAX_REUSE_RATE per year"""
    new_reuse = base_reuse * (1 + (num_retailers - 1) * REUSE_INCREASE_PER_RETAILER)
    return min(new_reuse, MAX_REUSE_RATE) / base_reuse


def adoption_lift(num_retailers: int, base_adoption: float) -> float:
    """Effective adoption with network credibility, capped at MAX_ADOPTION"""
    return min(base_adoption + (num_retailers - 1) * ADOPTION_LIFT_PER_RETAILER, MAX_ADOPTION)


def price_premium(num_retailers: int) -> float:
    """License price multiplier for cross-retailer data, capped at +50%"""
    return 1 + min((num_retailers - 1) * PRICE_PREMIUM_PER_RETAILER, MAX_PRICE_PREMIUM)


def _check_heuristic_inputs(network_size: int, base_adoption: float) -> None:
    if isinstance(network_size, bool) or not isinstance(network_size, int) or network_size < 1:
        raise AssumptionError('network_size', f"must be an integer >= 1, got {network_size!r}")
    if not base_adoption > 0:
        raise AssumptionError('base_adoption', f"effective adoption must be positive, got {base_adoption}")


def network_multipliers(network_size: int, base_adoption: float) -> Dict[str, float]:
    """
    Snapshot of every heuristic multiplier for one network size

    Args:
        network_size: Number of retailers in the network
        base_adoption: Standalone effective opt-in rate

    Returns:
        Dictionary with reuse, adoption and price terms
    """
    _check_heuristic_inputs(network_size, base_adoption)
    reuse = reuse_multiplier(network_size)
    lifted = adoption_lift(network_size, base_adoption)
    return {
        'network_size': network_size,
        'reuse_multiplier': reuse,
        'reuse_rate': BASE_REUSE_RATE * reuse,
        'adoption': lifted,
        'adoption_factor': lifted / base_adoption,
        'price_premium': price_premium(network_size),
    }


@dataclass(frozen=True)
class ScaledRecord:
    """One month of a heuristically scaled retailer series"""

    month: int
    retailer_total: float
    minting_component: float
    licensing_component: float
    active_cert_pool: float
    consumer_total: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def scale_for_network_size(base_records: Sequence[MonthlyRecord], network_size: int,
                           base_adoption: float) -> List[ScaledRecord]:
    """
    Re-price a standalone series as if the retailer belonged to a larger network

    Minting grows only with adoption (more shoppers mint). Licensing and
    consumer earnings grow with adoption, reuse and price together. The pool
    tracks population, so it only takes the adoption factor.

    Args:
        base_records: Standalone series from simulate_entity
        network_size: Number of retailers in the network (n >= 1)
        base_adoption: Standalone effective opt-in rate

    Returns:
        List of ScaledRecord, one per input month
    """
    _check_heuristic_inputs(network_size, base_adoption)

    reuse = reuse_multiplier(network_size)
    premium = price_premium(network_size)
    adoption_factor = adoption_lift(network_size, base_adoption) / base_adoption

    scaled = []
    for record in base_records:
        minting = record.retailer_minting_revenue * adoption_factor
        licensing = record.retailer_licensing * adoption_factor * reuse * premium
        scaled.append(ScaledRecord(
            month=record.month,
            retailer_total=minting + licensing,
            minting_component=minting,
            licensing_component=licensing,
            active_cert_pool=record.active_cert_pool * adoption_factor,
            consumer_total=(record.consumer_minting_benefit + record.consumer_licensing)
            * adoption_factor * reuse * premium,
        ))

    logger.debug(
        "Scaled %d months to network size %d (adoption x%.3f, reuse x%.3f, price x%.3f)",
        len(scaled), network_size, adoption_factor, reuse, premium
    )
    return scaled


def network_lift_percent(standalone_total: float, network_total: float) -> float:
    """Incremental gain of the network total over the standalone total, in percent"""
    if standalone_total > 0:
        return (network_total / standalone_total - 1) * 100
    return 0.0


def compare_network_sizes(base_records: Sequence[MonthlyRecord], base_adoption: float,
                          sizes: Sequence[int] = COMPARISON_SIZES) -> List[Dict[str, float]]:
    """36-month retailer totals for several network sizes, relative to standalone"""
    standalone = sum(r.retailer_total for r in base_records)
    rows = []
    for size in sizes:
        scaled = scale_for_network_size(base_records, size, base_adoption)
        total = sum(r.retailer_total for r in scaled)
        rows.append({
            'network_size': size,
            'total': total,
            'minting': sum(r.minting_component for r in scaled),
            'licensing': sum(r.licensing_component for r in scaled),
            'multiple': total / standalone if standalone > 0 else 0.0,
        })
    return rows


@dataclass(frozen=True)
class NetworkEntity:
    """A retailer in a phased Metcalfe rollout"""

    name: str
    assumptions: Assumptions
    launch_month: int = 0  # 0-based month the retailer starts minting
    color: str = '#1f77b4'  # Display only

    @property
    def population(self) -> float:
        return self.assumptions.total_customers


@dataclass(frozen=True)
class NetworkState:
    """Network-wide results for one month"""

    month: int
    month_index: int
    active_count: int
    network_multiplier: float
    entities: Dict[str, MonthlyRecord] = field(default_factory=dict)
    total_certs_minted: float = 0.0
    total_cert_pool: float = 0.0
    total_retailer_revenue: float = 0.0
    total_consumer_earnings: float = 0.0
    total_gmv: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        row = {
            'month': self.month,
            'active_count': self.active_count,
            'network_multiplier': self.network_multiplier,
            'total_certs_minted': self.total_certs_minted,
            'total_cert_pool': self.total_cert_pool,
            'total_retailer_revenue': self.total_retailer_revenue,
            'total_consumer_earnings': self.total_consumer_earnings,
            'total_gmv': self.total_gmv,
        }
        for name, record in self.entities.items():
            row[f'{name} retailer_total'] = record.retailer_total
            row[f'{name} consumer_total'] = record.consumer_total
            row[f'{name} active_cert_pool'] = record.active_cert_pool
        return row


def metcalfe_multiplier(active_count: int, network_coefficient: float,
                        max_network_size: int = MAX_NETWORK_SIZE) -> float:
    """License-fee multiplier: 1 + k × (active / max_size)²"""
    return 1 + network_coefficient * (active_count / max_network_size) ** 2


def _safe_value(value: Any, entity: str, metric: str, month: int) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool) and not math.isnan(value):
        return value
    logger.warning("Month %d: %s has non-numeric %s (%r); counted as 0 in network totals",
                   month, entity, metric, value)
    return 0.0


def aggregate_entities(month: int, records: Dict[str, MonthlyRecord]) -> Dict[str, float]:
    """
    Sum per-entity values into network totals

    Non-numeric values (None, NaN) count as 0 and are logged with the entity
    name so they can be told apart from genuine zeros.
    """
    totals = {
        'total_certs_minted': 0.0,
        'total_cert_pool': 0.0,
        'total_retailer_revenue': 0.0,
        'total_consumer_earnings': 0.0,
        'total_gmv': 0.0,
    }
    for name, record in records.items():
        totals['total_certs_minted'] += _safe_value(record.certs_minted, name, 'certs_minted', month)
        totals['total_cert_pool'] += _safe_value(record.active_cert_pool, name, 'active_cert_pool', month)
        totals['total_retailer_revenue'] += _safe_value(record.retailer_total, name, 'retailer_total', month)
        totals['total_consumer_earnings'] += _safe_value(record.consumer_total, name, 'consumer_total', month)
        gross = _safe_value(record.total_minting_revenue, name, 'total_minting_revenue', month) + \
            _safe_value(record.gross_licensing_revenue, name, 'gross_licensing_revenue', month)
        totals['total_gmv'] += gross
    return totals


class MetcalfeNetworkSimulation:
    """
    Phased multi-retailer simulation with Metcalfe-style license pricing

    Each retailer keeps its own minting history and pool; retailers only
    earn on certificates they mint. The active retailer count for a month
    sets a shared license-fee multiplier before any retailer is advanced,
    so retailers within a month are independent of one another.
    """

    def __init__(self, roster: Sequence[NetworkEntity], minting_fee: float, license_fee: float,
                 reuse_rate: float, network_coefficient: float = DEFAULT_NETWORK_COEFFICIENT,
                 months: int = SIMULATION_MONTHS):
        """
        Initialize the network simulation

        Args:
            roster: Retailers with their assumptions and launch months
            minting_fee: Network-wide fee per certificate minted
            license_fee: Network-wide base fee per licensing event
            reuse_rate: Network-wide reuses per certificate per year
            network_coefficient: Strength k of the Metcalfe multiplier
            months: Horizon length in months
        """
        self.roster = list(roster)
        self.minting_fee = minting_fee
        self.license_fee = license_fee
        self.reuse_rate = reuse_rate
        self.network_coefficient = network_coefficient
        self.months = months
        self.states: List[NetworkState] = []
        self._validate()

    def _validate(self) -> None:
        check_horizon(self.months)
        if not self.roster:
            raise AssumptionError('roster', "at least one retailer is required")
        for name in ('minting_fee', 'license_fee', 'reuse_rate', 'network_coefficient'):
            value = getattr(self, name)
            check_number(name, value)
            if not value >= 0:
                raise AssumptionError(name, f"must be non-negative, got {value}")
        seen = set()
        for entity in self.roster:
            if entity.name in seen:
                raise AssumptionError('name', "duplicate retailer name in roster", entity=entity.name)
            seen.add(entity.name)
            launch = entity.launch_month
            if isinstance(launch, bool) or not isinstance(launch, int) or not 0 <= launch < self.months:
                raise AssumptionError(
                    'launch_month',
                    f"must be an integer month within [0, {self.months}), got {launch!r}",
                    entity=entity.name
                )

    def _entity_assumptions(self, entity: NetworkEntity) -> Assumptions:
        return replace(
            entity.assumptions,
            minting_fee=self.minting_fee,
            license_fee=self.license_fee,
            uses_per_cert_per_year=self.reuse_rate,
        )

    def run_simulation(self) -> List[NetworkState]:
        """
        Run every retailer through the horizon, month by month

        Returns:
            Ordered list of NetworkState, one per month
        """
        ledgers = {e.name: EntityLedger(self._entity_assumptions(e)) for e in self.roster}
        self.states = []

        for month_index in range(self.months):
            month = month_index + 1
            active_count = sum(1 for e in self.roster if e.launch_month <= month_index)
            multiplier = metcalfe_multiplier(active_count, self.network_coefficient)
            fee = self.license_fee * multiplier

            records = {}
            for entity in self.roster:
                if month_index < entity.launch_month:
                    records[entity.name] = MonthlyRecord(month=month)
                    continue
                ramp_month = month_index - entity.launch_month + 1
                records[entity.name] = ledgers[entity.name].advance(month, ramp_month, license_fee=fee)

            self.states.append(NetworkState(
                month=month,
                month_index=month_index,
                active_count=active_count,
                network_multiplier=multiplier,
                entities=records,
                **aggregate_entities(month, records)
            ))
            logger.debug("Month %d: %d active retailers, multiplier %.4f", month, active_count, multiplier)

        return self.states

    def entity_series(self, name: str) -> List[MonthlyRecord]:
        """All monthly records for one retailer"""
        if not self.states:
            raise ValueError("Simulation must be run before reading entity series")
        return [state.entities[name] for state in self.states]

    def get_summary_metrics(self) -> Dict[str, Any]:
        """
        Calculate summary metrics from network results

        Returns:
            Dictionary of network totals and per-retailer cumulative revenue
        """
        if not self.states:
            raise ValueError("Simulation must be run before calculating metrics")

        final = self.states[-1]
        full_rollout_month: Optional[int] = next(
            (s.month for s in self.states if s.active_count == len(self.roster)), None
        )
        return {
            'total_retailer_revenue': sum(s.total_retailer_revenue for s in self.states),
            'total_consumer_earnings': sum(s.total_consumer_earnings for s in self.states),
            'total_gmv': sum(s.total_gmv for s in self.states),
            'final_cert_pool': final.total_cert_pool,
            'final_network_multiplier': final.network_multiplier,
            'full_rollout_month': full_rollout_month,
            'entity_retailer_revenue': {
                name: record.cumulative_retailer_rev for name, record in final.entities.items()
            },
            'entity_consumer_earnings': {
                name: record.cumulative_consumer_rev for name, record in final.entities.items()
            },
        }


def simulate_network(roster: Sequence[NetworkEntity], minting_fee: float, license_fee: float,
                     reuse_rate: float, network_coefficient: float = DEFAULT_NETWORK_COEFFICIENT,
                     months: int = SIMULATION_MONTHS) -> List[NetworkState]:
    """Run a phased Metcalfe network simulation and return its monthly states"""
    return MetcalfeNetworkSimulation(
        roster, minting_fee, license_fee, reuse_rate, network_coefficient, months
    ).run_simulation()
