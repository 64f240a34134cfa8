import io

import pandas as pd
import pytest

from sim import MonthlyRecord, simulate_entity
from network import scale_for_network_size, simulate_network
from scenarios import PRESETS, DEFAULT_NETWORK_ROSTER
from export import (
    assumptions_export,
    assumptions_to_dict,
    metric_grid,
    network_metric_grid,
    records_to_frame,
    to_csv,
)


@pytest.fixture
def base_records():
    return simulate_entity(PRESETS['Base'])


def test_records_to_frame(base_records):
    frame = records_to_frame(base_records)
    assert len(frame) == 36
    assert list(frame['month']) == list(range(1, 37))
    assert frame['certs_minted'].iloc[5] == base_records[5].certs_minted


def test_metric_grid_shape(base_records):
    grid = metric_grid(base_records)
    assert list(grid.index) == MonthlyRecord.metric_names()
    assert list(grid.columns) == [f"Month {m}" for m in range(1, 37)]
    assert grid.loc['active_cert_pool', 'Month 36'] == base_records[-1].active_cert_pool


def test_metric_grid_empty():
    assert metric_grid([]).empty


def test_csv_is_plain_decimal(base_records):
    text = to_csv(base_records)
    assert text.splitlines()[0].startswith('Metric,Month 1,Month 2')
    assert 'e+' not in text and 'e-' not in text
    parsed = pd.read_csv(io.StringIO(text), index_col='Metric')
    assert parsed.loc['cumulative_gmv', 'Month 36'] == pytest.approx(base_records[-1].cumulative_gmv)


def test_scaled_records_grid(base_records):
    scaled = scale_for_network_size(base_records, 2, PRESETS['Base'].effective_opt_in)
    grid = metric_grid(scaled)
    assert 'licensing_component' in grid.index
    assert grid.shape == (5, 36)


def test_network_grid_flattens_entities():
    base = PRESETS['Base']
    states = simulate_network(DEFAULT_NETWORK_ROSTER, base.minting_fee, base.license_fee,
                              base.uses_per_cert_per_year, 0.5)
    grid = metric_grid(states)
    assert 'network_multiplier' in grid.index
    assert 'total_retailer_revenue' in grid.index
    assert 'Pharmacy Chain retailer_total' in grid.index
    assert 'month_index' not in grid.index
    assert grid.loc['Pharmacy Chain retailer_total', 'Month 12'] == 0.0


def test_assumptions_to_dict():
    flat = assumptions_to_dict(PRESETS['Base'])
    assert flat['license_fee'] == 0.175
    assert flat['minting_split.retailer'] == 0.5
    assert flat['licensing_split.brand'] == 0.30
    assert flat['effective_opt_in'] == pytest.approx(0.56)


def test_assumptions_export():
    text = assumptions_export(PRESETS['Base'], label='Base (custom)')
    lines = text.splitlines()
    assert lines[0] == 'scenario: Base (custom)'
    assert 'license_fee: 0.175' in lines
    assert 'total_customers: 120000000' in lines
    assert 'licensing_split.consumer: 0.6' in lines


def test_network_metric_grid_includes_every_entity_metric():
    base = PRESETS['Base']
    states = simulate_network(DEFAULT_NETWORK_ROSTER, base.minting_fee, base.license_fee,
                              base.uses_per_cert_per_year, 0.5)
    grid = network_metric_grid(states)
    names = [e.name for e in DEFAULT_NETWORK_ROSTER]
    assert list(grid.index[:7]) == [
        'active_count', 'network_multiplier', 'total_certs_minted', 'total_cert_pool',
        'total_retailer_revenue', 'total_consumer_earnings', 'total_gmv',
    ]
    assert grid.shape == (7 + len(names) * len(MonthlyRecord.metric_names()), 36)
    grocer = states[-1].entities['Grocery Chain']
    assert grid.loc['Grocery Chain licensing_events', 'Month 36'] == grocer.licensing_events
    assert grid.loc['Regional Grocer certs_minted', 'Month 24'] == 0.0


def test_network_metric_grid_selected_metrics():
    base = PRESETS['Base']
    states = simulate_network(DEFAULT_NETWORK_ROSTER[:2], base.minting_fee, base.license_fee,
                              base.uses_per_cert_per_year, 0.5, months=12)
    grid = network_metric_grid(states, entity_metrics=['certs_minted'])
    assert list(grid.index[7:]) == ['Anchor Retailer certs_minted', 'Grocery Chain certs_minted']
    assert network_metric_grid([]).empty
