import math
import warnings

import pytest

from sim import (
    Assumptions,
    AssumptionError,
    CertificateSimulation,
    MintingHistory,
    MonthlyRecord,
    RevenueSplit,
    SIMULATION_MONTHS,
    brand_participation,
    participation_curve,
    simulate_entity,
    split_gross_revenue,
)
from scenarios import PRESETS


@pytest.fixture
def base():
    return PRESETS['Base']


@pytest.fixture
def base_records(base):
    return simulate_entity(base)


class TestBrandParticipation:
    def test_monotonic_in_month(self):
        values = [brand_participation(m, 0.05, 1.0, 36) for m in range(-10, 80)]
        assert all(a <= b for a, b in zip(values, values[1:]))

    def test_approaches_end_fraction(self):
        assert brand_participation(500, 0.05, 0.9, 36) == pytest.approx(0.9)

    def test_midpoint(self):
        assert brand_participation(18, 0.1, 0.9, 36) == pytest.approx(0.5)

    def test_flat_when_start_equals_end(self):
        assert brand_participation(7, 0.4, 0.4, 24) == 0.4

    def test_vectorised_curve_matches_scalar(self):
        months = list(range(1, SIMULATION_MONTHS + 1))
        curve = participation_curve(months, 0.05, 1.0, 36)
        for month, value in zip(months, curve):
            assert value == pytest.approx(brand_participation(month, 0.05, 1.0, 36))

    def test_far_before_midpoint_stays_at_start(self):
        assert brand_participation(-5000, 0.05, 1.0, 36) == pytest.approx(0.05)
        assert brand_participation(1, 0.05, 1.0, 1e9) == pytest.approx(0.05)

    def test_vectorised_curve_handles_extreme_months(self):
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            curve = participation_curve([-1e6, 18, 1e6], 0.05, 1.0, 36)
        assert list(curve) == pytest.approx([0.05, 0.525, 1.0])


class TestMintingHistory:
    def test_nothing_expires_within_first_year(self):
        history = MintingHistory()
        assert [history.push(float(m)) for m in range(1, 13)] == [0.0] * 12

    def test_expires_value_minted_twelve_months_earlier(self):
        history = MintingHistory()
        expired = [history.push(float(m)) for m in range(1, 40)]
        for month in range(13, 40):
            assert expired[month - 1] == float(month - 12)
        assert len(history) == 39

    def test_window_total(self):
        history = MintingHistory()
        for m in range(1, 20):
            history.push(float(m))
        assert history.window_total() == sum(range(8, 20))


class TestRevenueSplit:
    def test_split_gross_revenue(self):
        shares = split_gross_revenue(1000.0, RevenueSplit({'retailer': 0.06, 'consumer': 0.60}))
        assert shares == {'retailer': pytest.approx(60.0), 'consumer': pytest.approx(600.0)}

    def test_fraction_out_of_range(self):
        with pytest.raises(AssumptionError) as exc:
            RevenueSplit({'retailer': 1.2})
        assert exc.value.field == 'retailer'

    def test_shares_are_read_only(self):
        split = PRESETS['Base'].minting_split
        with pytest.raises(TypeError):
            split.shares['retailer'] = 0.9
        assert PRESETS['Low'].minting_split.get('retailer') == 0.5

    def test_caller_dict_is_copied(self):
        table = {'retailer': 0.5, 'consumer': 0.5}
        split = RevenueSplit(table)
        table['retailer'] = 0.9
        assert split.get('retailer') == 0.5

    def test_non_numeric_fraction(self):
        with pytest.raises(AssumptionError) as exc:
            RevenueSplit({'consumer': 'half'})
        assert exc.value.field == 'consumer'


class TestAssumptionValidation:
    @pytest.mark.parametrize('field_name, value', [
        ('total_customers', 0),
        ('total_customers', -5),
        ('wallet_adoption', 0),
        ('active_consent', 1.5),
        ('months_to_full', 0),
        ('annual_transactions', -1),
        ('license_fee', -0.01),
        ('royalty_margin', 1.2),
    ])
    def test_rejects_invalid_field(self, field_name, value):
        with pytest.raises(AssumptionError) as exc:
            Assumptions(**{field_name: value})
        assert exc.value.field == field_name
        assert field_name in str(exc.value)

    @pytest.mark.parametrize('value', [float('nan'), float('inf'), float('-inf')])
    @pytest.mark.parametrize('field_name', [
        'total_customers',
        'annual_transactions',
        'months_to_full',
        'item_floor',
        'item_ceiling',
        'minting_fee',
        'license_fee',
        'uses_per_cert_per_year',
    ])
    def test_rejects_non_finite(self, field_name, value):
        with pytest.raises(AssumptionError) as exc:
            Assumptions(**{field_name: value})
        assert exc.value.field == field_name

    @pytest.mark.parametrize('value', ['abc', None, True])
    def test_rejects_non_numeric(self, value):
        with pytest.raises(AssumptionError) as exc:
            Assumptions(total_customers=value)
        assert exc.value.field == 'total_customers'

    def test_ramp_end_below_start(self):
        with pytest.raises(AssumptionError) as exc:
            Assumptions(brand_start_pct=0.6, brand_end_pct=0.4)
        assert exc.value.field == 'brand_end_pct'

    def test_item_ceiling_below_floor(self):
        with pytest.raises(AssumptionError) as exc:
            Assumptions(item_floor=5, item_ceiling=3)
        assert exc.value.field == 'item_ceiling'

    def test_split_over_one(self):
        with pytest.raises(AssumptionError) as exc:
            Assumptions(licensing_split=RevenueSplit({'retailer': 0.5, 'consumer': 0.6}))
        assert exc.value.field == 'licensing_split'

    def test_is_a_value_error(self):
        with pytest.raises(ValueError):
            Assumptions(total_customers=0)


class TestSimulateEntity:
    @pytest.mark.parametrize('preset', ['Low', 'Base', 'High'])
    def test_length_and_non_negative(self, preset):
        records = simulate_entity(PRESETS[preset])
        assert len(records) == SIMULATION_MONTHS
        assert [r.month for r in records] == list(range(1, 37))
        for r in records:
            for name in MonthlyRecord.metric_names():
                value = getattr(r, name)
                assert math.isfinite(value)
                assert value >= 0, name

    def test_rolling_window_recurrence(self, base_records):
        previous_pool = 0.0
        for t, record in enumerate(base_records, start=1):
            expiring = base_records[t - 13].certs_minted if t > 12 else 0.0
            assert record.expired_certs == expiring
            assert record.active_cert_pool == previous_pool + record.certs_minted - expiring
            previous_pool = record.active_cert_pool

    def test_pool_is_trailing_twelve_month_sum(self, base_records):
        for t, record in enumerate(base_records, start=1):
            window = base_records[max(0, t - 12):t]
            assert record.active_cert_pool == pytest.approx(sum(r.certs_minted for r in window), rel=1e-9)

    def test_participation_compounds_in_minting(self, base, base_records):
        record = base_records[4]
        transactions = base.opted_in_customers * base.annual_transactions / 12
        expected = transactions * record.avg_eligible_items * record.brand_participation
        assert record.certs_minted == pytest.approx(expected)
        assert record.avg_eligible_items == pytest.approx(
            base.item_floor + record.brand_participation * (base.item_ceiling - base.item_floor)
        )

    def test_revenue_splits(self, base_records):
        r = base_records[20]
        assert r.retailer_minting_revenue == pytest.approx(r.total_minting_revenue * 0.5)
        assert r.consumer_minting_benefit == pytest.approx(r.total_minting_revenue * 0.5)
        assert r.licensing_events == pytest.approx(r.active_cert_pool * 4 / 12)
        assert r.gross_licensing_revenue == pytest.approx(r.licensing_events * 0.175)
        assert r.retailer_licensing == pytest.approx(r.gross_licensing_revenue * 0.06)
        assert r.brand_revenue == pytest.approx(r.gross_licensing_revenue * 0.30)
        assert r.consumer_licensing == pytest.approx(r.gross_licensing_revenue * 0.60)
        assert r.data_agent_revenue == pytest.approx(r.gross_licensing_revenue * 0.02)
        assert r.operator_revenue == pytest.approx(r.gross_licensing_revenue * 0.02)

    @pytest.mark.parametrize('cumulative, monthly', [
        ('cumulative_certs_minted', 'certs_minted'),
        ('cumulative_retailer_rev', 'retailer_total'),
        ('cumulative_consumer_rev', 'consumer_total'),
        ('cumulative_brand_rev', 'brand_revenue'),
        ('cumulative_data_agent_rev', 'data_agent_revenue'),
        ('cumulative_operator_rev', 'operator_revenue'),
        ('cumulative_minting_rev', 'total_minting_revenue'),
        ('cumulative_licensing_rev', 'gross_licensing_revenue'),
    ])
    def test_cumulative_consistency(self, base_records, cumulative, monthly):
        for t in range(1, len(base_records) + 1):
            expected = sum(getattr(r, monthly) for r in base_records[:t])
            assert getattr(base_records[t - 1], cumulative) == pytest.approx(expected)

    def test_cumulative_gmv(self, base_records):
        last = base_records[-1]
        assert last.cumulative_gmv == pytest.approx(
            sum(r.total_minting_revenue + r.gross_licensing_revenue for r in base_records)
        )

    def test_idempotent(self, base):
        assert simulate_entity(base) == simulate_entity(base)

    def test_base_example(self, base_records):
        first, last = base_records[0], base_records[-1]
        assert 0 < first.certs_minted < last.certs_minted
        assert first.brand_participation < 0.15
        assert last.cumulative_retailer_rev > 1e9
        assert last.cumulative_retailer_rev > 36 * first.retailer_total

    def test_longer_horizon(self, base):
        records = simulate_entity(base, months=60)
        assert len(records) == 60
        assert records[59].active_cert_pool == pytest.approx(sum(r.certs_minted for r in records[48:]))

    @pytest.mark.parametrize('months', [0, -3, 2.5, True, '36'])
    def test_rejects_bad_horizon(self, base, months):
        with pytest.raises(AssumptionError) as exc:
            simulate_entity(base, months=months)
        assert exc.value.field == 'months'

    def test_very_slow_ramp(self):
        records = simulate_entity(Assumptions(months_to_full=10_000))
        assert len(records) == SIMULATION_MONTHS
        for r in records:
            assert r.brand_participation == pytest.approx(0.05)
            assert all(math.isfinite(getattr(r, name)) for name in MonthlyRecord.metric_names())


class TestSummaryMetrics:
    def test_requires_run(self, base):
        with pytest.raises(ValueError):
            CertificateSimulation(base).get_summary_metrics()

    def test_derived_metrics(self, base):
        sim = CertificateSimulation(base)
        records = sim.run_simulation()
        summary = sim.get_summary_metrics()
        revenue = records[-1].cumulative_retailer_rev
        opted_in = base.opted_in_customers

        expected_ebit = revenue * 0.95 - revenue * (0.02 + 0.02 + 0.05 + 0.04)
        assert summary['ebit'] == pytest.approx(expected_ebit)
        assert summary['ebit_margin'] == pytest.approx(0.95 - 0.13)
        assert summary['ebit_per_customer'] == pytest.approx(expected_ebit / opted_in)
        assert summary['consumer_annual_dividend'] == pytest.approx(
            records[-1].cumulative_consumer_rev / opted_in / 3
        )
        assert summary['avg_revenue_per_certificate'] == pytest.approx(
            records[-1].cumulative_gmv / records[-1].cumulative_certs_minted
        )

    def test_results_arrays(self, base):
        sim = CertificateSimulation(base)
        sim.run_simulation()
        assert len(sim.results['months']) == SIMULATION_MONTHS
        assert sim.results['active_cert_pool'][-1] == sim.records[-1].active_cert_pool

    def test_zero_transactions_guards_per_certificate_metric(self):
        sim = CertificateSimulation(Assumptions(annual_transactions=0))
        sim.run_simulation()
        summary = sim.get_summary_metrics()
        assert summary['avg_revenue_per_certificate'] == 0.0
        assert summary['ebit_margin'] == 0.0
