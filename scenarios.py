"""
Scenario presets and override merging for the certificate marketplace model.
Contains the predefined market scenarios and the default phased retailer roster.
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Dict, Any, List, Mapping

from sim import Assumptions, AssumptionError, RevenueSplit
from network import NetworkEntity

# Predefined market scenarios (skeptical / realistic / enthusiastic)
PRESETS: Mapping[str, Assumptions] = MappingProxyType({
    'Low': Assumptions(
        total_customers=120_000_000,
        wallet_adoption=0.40,
        active_consent=0.70,
        annual_transactions=50,
        brand_start_pct=0.05,
        brand_end_pct=1.0,
        months_to_full=36,
        item_floor=1,
        item_ceiling=3,
        minting_fee=0.10,
        license_fee=0.100,
        uses_per_cert_per_year=2,
        royalty_margin=0.95,
        platform_fee=0.06,
        sga_overhead=0.05,
    ),
    'Base': Assumptions(
        total_customers=120_000_000,
        wallet_adoption=0.70,
        active_consent=0.80,
        annual_transactions=65,
        brand_start_pct=0.05,
        brand_end_pct=1.0,
        months_to_full=36,
        item_floor=2,
        item_ceiling=8,
        minting_fee=0.10,
        license_fee=0.175,
        uses_per_cert_per_year=4,
        royalty_margin=0.95,
        platform_fee=0.05,
        sga_overhead=0.04,
    ),
    'High': Assumptions(
        total_customers=120_000_000,
        wallet_adoption=0.90,
        active_consent=0.85,
        annual_transactions=80,
        brand_start_pct=0.05,
        brand_end_pct=1.0,
        months_to_full=36,
        item_floor=3,
        item_ceiling=12,
        minting_fee=0.10,
        license_fee=0.200,
        uses_per_cert_per_year=6,
        royalty_margin=0.95,
        platform_fee=0.04,
        sga_overhead=0.03,
    ),
})

DEFAULT_SCENARIO = 'Base'


def get_preset(name: str) -> Assumptions:
    try:
        return PRESETS[name]
    except KeyError:
        raise AssumptionError('scenario', f"unknown preset {name!r}; choose one of {', '.join(PRESETS)}") from None


def merge_overrides(base: Assumptions, overrides: Mapping[str, Any]) -> Assumptions:
    """
    Apply sparse field overrides to an assumption bundle

    Fields not named in `overrides` keep their base values. Split tables may
    be given as plain dicts. The merged bundle is validated on construction.
    """
    known = set(Assumptions.field_names())
    changes = {}
    for name, value in overrides.items():
        if name not in known:
            raise AssumptionError(name, "not an assumption field")
        if name in ('minting_split', 'licensing_split') and not isinstance(value, RevenueSplit):
            value = RevenueSplit(dict(value))
        changes[name] = value
    return replace(base, **changes)


@dataclass(frozen=True)
class ScenarioContext:
    """
    The scenario a caller is currently working with

    A named preset plus the sparse overrides layered on it since it was
    selected. Callers hold and pass this value explicitly.
    """

    preset: str = DEFAULT_SCENARIO
    overrides: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_custom(self) -> bool:
        return bool(self.overrides)

    @property
    def label(self) -> str:
        return f"{self.preset} (custom)" if self.is_custom else self.preset

    def resolve(self) -> Assumptions:
        return merge_overrides(get_preset(self.preset), self.overrides)

    def with_override(self, name: str, value: Any) -> 'ScenarioContext':
        """New context with one more field overridden, keeping earlier overrides"""
        return self.with_overrides({name: value})

    def with_overrides(self, overrides: Mapping[str, Any]) -> 'ScenarioContext':
        merged = dict(self.overrides)
        merged.update(overrides)
        context = ScenarioContext(self.preset, merged)
        context.resolve()
        return context

    def select_preset(self, name: str) -> 'ScenarioContext':
        """Switch to a named preset, dropping custom overrides"""
        get_preset(name)
        return ScenarioContext(name)

    def reset(self) -> 'ScenarioContext':
        return ScenarioContext(DEFAULT_SCENARIO)

    def changed_fields(self) -> Dict[str, Any]:
        """Overrides whose value differs from the preset"""
        preset = get_preset(self.preset)
        resolved = self.resolve()
        return {
            name: getattr(resolved, name)
            for name in self.overrides
            if getattr(resolved, name) != getattr(preset, name)
        }


def build_roster(base: Assumptions, retailers: List[Dict[str, Any]]) -> List[NetworkEntity]:
    """Roster from per-retailer dicts of name, launch_month, color and assumption overrides"""
    roster = []
    for entry in retailers:
        entry = dict(entry)
        name = entry.pop('name')
        launch_month = entry.pop('launch_month', 0)
        color = entry.pop('color', '#1f77b4')
        try:
            assumptions = merge_overrides(base, entry)
        except AssumptionError as e:
            raise AssumptionError(e.field, str(e).split(': ', 1)[-1], entity=name) from e
        roster.append(NetworkEntity(name=name, assumptions=assumptions, launch_month=launch_month, color=color))
    return roster


DEFAULT_NETWORK_RETAILERS = [
    {'name': 'Anchor Retailer', 'launch_month': 0, 'color': '#10B981', 'total_customers': 120_000_000},
    {'name': 'Grocery Chain', 'launch_month': 6, 'color': '#3B82F6', 'total_customers': 60_000_000,
     'annual_transactions': 80},
    {'name': 'Pharmacy Chain', 'launch_month': 12, 'color': '#F59E0B', 'total_customers': 45_000_000,
     'annual_transactions': 30, 'item_ceiling': 5},
    {'name': 'Home Improvement', 'launch_month': 18, 'color': '#8B5CF6', 'total_customers': 35_000_000,
     'annual_transactions': 20},
    {'name': 'Regional Grocer', 'launch_month': 24, 'color': '#6B7280', 'total_customers': 15_000_000,
     'annual_transactions': 70},
]

DEFAULT_NETWORK_ROSTER = build_roster(PRESETS[DEFAULT_SCENARIO], DEFAULT_NETWORK_RETAILERS)
