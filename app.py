"""
Streamlit Web Application for the Certificate Marketplace Model

This application provides an interactive interface for exploring 36-month
projections of the shopper data certificate marketplace. Users pick a market
scenario, override individual assumptions, and compare the standalone
retailer against both network-effect models using Altair charts.
"""

import logging

import streamlit as st
import altair as alt
import numpy as np
import pandas as pd

from sim import (
    AssumptionError,
    CertificateSimulation,
    SIMULATION_MONTHS,
    participation_curve,
)
from network import (
    COMPARISON_SIZES,
    DEFAULT_NETWORK_COEFFICIENT,
    MetcalfeNetworkSimulation,
    compare_network_sizes,
    network_lift_percent,
    network_multipliers,
    scale_for_network_size,
)
from scenarios import PRESETS, DEFAULT_SCENARIO, DEFAULT_NETWORK_RETAILERS, ScenarioContext, build_roster
from export import CSV_FLOAT_FORMAT, records_to_frame, network_metric_grid, to_csv, assumptions_export

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)

# Configure Streamlit page
st.set_page_config(
    page_title="Certificate Marketplace Model",
    page_icon=None,
    layout="wide",
    initial_sidebar_state="expanded"
)

# (field, label, min, max, step, format)
BASIC_CONTROLS = [
    ('wallet_adoption', "Wallet Adoption", 0.10, 1.00, 0.05, "%.2f"),
    ('active_consent', "Active Consent", 0.10, 1.00, 0.05, "%.2f"),
    ('annual_transactions', "Transactions per Year", 10.0, 150.0, 5.0, "%.0f"),
    ('license_fee', "License Fee ($/use)", 0.05, 0.50, 0.005, "%.3f"),
    ('uses_per_cert_per_year', "Reuse Rate (per year)", 1.0, 12.0, 0.5, "%.1f"),
]

ADVANCED_CONTROLS = [
    ('item_floor', "Eligible Items Floor", 0.0, 10.0, 1.0, "%.0f"),
    ('item_ceiling', "Eligible Items Ceiling", 1.0, 20.0, 1.0, "%.0f"),
    ('brand_start_pct', "Brand Participation Start", 0.0, 1.0, 0.01, "%.2f"),
    ('brand_end_pct', "Brand Participation End", 0.0, 1.0, 0.01, "%.2f"),
    ('months_to_full', "Months to Full Participation", 6.0, 60.0, 1.0, "%.0f"),
    ('minting_fee', "Minting Fee ($/cert)", 0.0, 0.50, 0.01, "%.2f"),
    ('royalty_margin', "Royalty Margin", 0.50, 1.00, 0.05, "%.2f"),
    ('bank_share', "Bank Share", 0.0, 0.05, 0.005, "%.3f"),
    ('data_agent_share', "Data Agent Share", 0.0, 0.05, 0.005, "%.3f"),
    ('platform_fee', "Operating Overhead", 0.0, 0.10, 0.005, "%.3f"),
    ('sga_overhead', "SG&A Overhead", 0.0, 0.10, 0.005, "%.3f"),
]


def format_currency(value: float) -> str:
    if value >= 1e9:
        return f"${value / 1e9:.2f}B"
    if value >= 1e6:
        return f"${value / 1e6:.0f}M"
    if value >= 1e3:
        return f"${value / 1e3:.0f}K"
    return f"${value:.2f}"


def format_count(value: float) -> str:
    if value >= 1e9:
        return f"{value / 1e9:.2f}B"
    if value >= 1e6:
        return f"{value / 1e6:.0f}M"
    return f"{value:,.0f}"


def create_sidebar_config() -> tuple[str, dict, bool, int, float]:
    """
    Create sidebar configuration interface

    Returns:
        Tuple of (preset name, overrides, show network effects, network size, network coefficient)
    """
    st.sidebar.title("Model Configuration")
    st.sidebar.markdown("Pick a scenario, then adjust assumptions to build a custom case")

    preset = st.sidebar.selectbox(
        "Scenario",
        list(PRESETS),
        index=list(PRESETS).index(DEFAULT_SCENARIO),
        help="Low, Base and High differ in adoption, transactions, items, pricing, reuse and cost shares."
    )
    base = PRESETS[preset]
    overrides = {}

    def add_controls(controls):
        for name, label, lo, hi, step, fmt in controls:
            current = float(getattr(base, name))
            value = st.number_input(
                label,
                min_value=min(lo, current), max_value=max(hi, current),
                value=current, step=step, format=fmt,
                key=f"{preset}:{name}"
            )
            if value != current:
                overrides[name] = value

    with st.sidebar.expander("Basic Assumptions", expanded=True):
        add_controls(BASIC_CONTROLS)

    with st.sidebar.expander("Advanced Assumptions", expanded=False):
        add_controls(ADVANCED_CONTROLS)

    with st.sidebar.expander("Network Effects", expanded=True):
        show_network = st.checkbox("Show Network Effects", value=False)
        network_size = st.select_slider(
            "Retailers in Network", options=[s for s in COMPARISON_SIZES if s > 1], value=2,
            disabled=not show_network
        )
        coefficient = st.slider(
            "Network Strength (k)", min_value=0.0, max_value=1.0,
            value=DEFAULT_NETWORK_COEFFICIENT, step=0.05,
            help="Metcalfe coefficient applied to the license fee as the phased roster comes online."
        )

    return preset, overrides, show_network, network_size, coefficient


def create_summary(context: ScenarioContext, sim: CertificateSimulation, scaled, show_network: bool) -> None:
    """Headline KPI row"""
    summary = sim.get_summary_metrics()
    standalone_total = summary['cumulative_retailer_revenue']
    network_total = sum(r.retailer_total for r in scaled)
    network_consumer = sum(r.consumer_total for r in scaled)

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric(
            "Retailer Revenue (36 mo)",
            format_currency(network_total if show_network else standalone_total),
            f"+{network_lift_percent(standalone_total, network_total):.1f}%" if show_network else None
        )
    with col2:
        st.metric(
            "Consumer Earnings (36 mo)",
            format_currency(network_consumer if show_network else summary['cumulative_consumer_earnings'])
        )
    with col3:
        st.metric(
            "Active Certificate Pool (M36)",
            format_count(scaled[-1].active_cert_pool if show_network else summary['final_active_cert_pool'])
        )
    with col4:
        st.metric("EBIT Margin", f"{summary['ebit_margin'] * 100:.1f}%")

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("EBIT per Opted-In Customer", f"${summary['ebit_per_customer']:.2f}")
    with col2:
        st.metric("Consumer Annual Dividend", f"${summary['consumer_annual_dividend']:.2f}")
    with col3:
        st.metric("Avg Revenue per Certificate", f"${summary['avg_revenue_per_certificate']:.3f}")
    with col4:
        st.metric("Effective Opt-In", f"{context.resolve().effective_opt_in * 100:.1f}%")


def create_charts(sim: CertificateSimulation) -> None:
    """Standalone revenue, pool and ramp charts"""
    alt.data_transformers.enable('json')
    results = sim.results

    st.subheader("Revenue Over 36 Months")
    revenue_df = pd.DataFrame({
        'Month': results['months'],
        'Retailer': results['retailer_total'] / 1e6,
        'Consumers': results['consumer_total'] / 1e6,
        'Brands': results['brand_revenue'] / 1e6,
        'Others': (results['data_agent_revenue'] + results['operator_revenue']) / 1e6,
    })
    revenue_melted = revenue_df.melt(id_vars=['Month'], var_name='Recipient', value_name='Revenue ($M)')
    revenue_chart = alt.Chart(revenue_melted).mark_line(strokeWidth=3).encode(
        x=alt.X('Month:Q', title='Months'),
        y=alt.Y('Revenue ($M):Q', title='Revenue ($M)'),
        color=alt.Color('Recipient:N', scale=alt.Scale(
            domain=['Retailer', 'Consumers', 'Brands', 'Others'],
            range=['#10B981', '#3B82F6', '#F59E0B', '#6B7280']
        )),
        tooltip=[
            alt.Tooltip('Month:Q', title='Month'),
            alt.Tooltip('Recipient:N', title='Recipient'),
            alt.Tooltip('Revenue ($M):Q', title='Revenue ($M)', format='.1f')
        ]
    ).properties(height=400).interactive()
    st.altair_chart(revenue_chart, use_container_width=True)

    col1, col2 = st.columns(2)
    with col1:
        st.subheader("Active Certificate Pool")
        st.caption("Certificates minted in the trailing 12 months, eligible for paid reuse.")
        pool_df = pd.DataFrame({
            'Month': results['months'],
            'Minted (Millions)': results['certs_minted'] / 1e6,
            'Active Pool (Millions)': results['active_cert_pool'] / 1e6,
        }).melt(id_vars=['Month'], var_name='Series', value_name='Certificates (Millions)')
        pool_chart = alt.Chart(pool_df).mark_area(opacity=0.6, line={'strokeWidth': 2}).encode(
            x=alt.X('Month:Q', title='Months'),
            y=alt.Y('Certificates (Millions):Q', stack=None),
            color=alt.Color('Series:N', scale=alt.Scale(range=['#9467bd', '#1f77b4'])),
            tooltip=[
                alt.Tooltip('Month:Q', title='Month'),
                alt.Tooltip('Series:N'),
                alt.Tooltip('Certificates (Millions):Q', format='.1f')
            ]
        ).properties(height=320)
        st.altair_chart(pool_chart, use_container_width=True)

    with col2:
        st.subheader("Brand Participation Ramp")
        a = sim.assumptions
        months = np.arange(1, SIMULATION_MONTHS + 1)
        ramp_df = pd.DataFrame({
            'Month': months,
            'Participation (%)': participation_curve(
                months, a.brand_start_pct, a.brand_end_pct, a.months_to_full
            ) * 100,
        })
        ramp_chart = alt.Chart(ramp_df).mark_line(strokeWidth=3, color='#F59E0B').encode(
            x=alt.X('Month:Q', title='Months'),
            y=alt.Y('Participation (%):Q', scale=alt.Scale(domain=[0, 100])),
            tooltip=[alt.Tooltip('Month:Q'), alt.Tooltip('Participation (%):Q', format='.1f')]
        ).properties(height=320)
        st.altair_chart(ramp_chart, use_container_width=True)


def create_network_section(sim: CertificateSimulation, network_size: int) -> None:
    """Heuristic multi-retailer comparison"""
    st.subheader("Network Effects: Multi-Retailer Value Comparison")
    base_adoption = sim.assumptions.effective_opt_in

    comparison = pd.DataFrame(compare_network_sizes(sim.records, base_adoption))
    comparison['Retailers'] = comparison['network_size'].map(
        lambda n: "Standalone" if n == 1 else f"{n} Retailers"
    )
    bars = comparison.melt(
        id_vars=['Retailers'], value_vars=['minting', 'licensing'],
        var_name='Component', value_name='Revenue'
    )
    bars['Revenue ($B)'] = bars['Revenue'] / 1e9
    bar_chart = alt.Chart(bars).mark_bar().encode(
        y=alt.Y('Retailers:N', sort=list(comparison['Retailers']), title=None),
        x=alt.X('Revenue ($B):Q', stack='zero'),
        color=alt.Color('Component:N', scale=alt.Scale(range=['#059669', '#10B981'])),
        tooltip=[alt.Tooltip('Retailers:N'), alt.Tooltip('Component:N'),
                 alt.Tooltip('Revenue ($B):Q', format='.2f')]
    ).properties(height=260)
    st.altair_chart(bar_chart, use_container_width=True)

    m = network_multipliers(network_size, base_adoption)
    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("Price Premium", f"{m['price_premium']:.2f}x")
    with col2:
        st.metric("Reuse Rate", f"{m['reuse_rate']:.1f}x per year")
    with col3:
        st.metric("Adoption", f"{m['adoption'] * 100:.1f}%")


def create_metcalfe_section(context: ScenarioContext, coefficient: float) -> None:
    """Phased rollout of the default retailers under the Metcalfe license multiplier"""
    st.subheader("Phased Rollout (Metcalfe Network Value)")
    assumptions = context.resolve()
    roster = build_roster(assumptions, DEFAULT_NETWORK_RETAILERS)
    network = MetcalfeNetworkSimulation(
        roster,
        minting_fee=assumptions.minting_fee,
        license_fee=assumptions.license_fee,
        reuse_rate=assumptions.uses_per_cert_per_year,
        network_coefficient=coefficient,
    )
    states = network.run_simulation()
    summary = network.get_summary_metrics()

    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("Network Retailer Revenue", format_currency(summary['total_retailer_revenue']))
    with col2:
        st.metric("Network Consumer Earnings", format_currency(summary['total_consumer_earnings']))
    with col3:
        st.metric("Final License Multiplier", f"{summary['final_network_multiplier']:.3f}x")

    rows = []
    for state in states:
        for name, record in state.entities.items():
            rows.append({'Month': state.month, 'Retailer': name, 'Revenue ($M)': record.retailer_total / 1e6})
    entity_df = pd.DataFrame(rows)
    colors = alt.Scale(
        domain=[e.name for e in roster],
        range=[e.color for e in roster]
    )
    entity_chart = alt.Chart(entity_df).mark_area(opacity=0.7).encode(
        x=alt.X('Month:Q', title='Months'),
        y=alt.Y('Revenue ($M):Q', stack='zero'),
        color=alt.Color('Retailer:N', scale=colors),
        tooltip=[alt.Tooltip('Month:Q'), alt.Tooltip('Retailer:N'),
                 alt.Tooltip('Revenue ($M):Q', format='.1f')]
    ).properties(height=360).interactive()
    st.altair_chart(entity_chart, use_container_width=True)

    csv = network_metric_grid(states).to_csv(float_format=CSV_FLOAT_FORMAT)
    st.download_button(
        label="Download Network Results (CSV)",
        data=csv,
        file_name="network_rollout_results.csv",
        mime="text/csv"
    )


def create_data_export(context: ScenarioContext, sim: CertificateSimulation) -> None:
    with st.expander("Data Export", expanded=False):
        st.dataframe(records_to_frame(sim.records).head(12), use_container_width=True)
        st.download_button(
            label="Download Monthly Results (CSV)",
            data=to_csv(sim.records),
            file_name="certificate_marketplace_results.csv",
            mime="text/csv"
        )
        st.code(assumptions_export(sim.assumptions, label=context.label), language="yaml")


def main():
    """Main Streamlit application"""

    st.title("Shopper Data Marketplace: 36-Month Economic Model")
    st.markdown("""
    **Project retailer revenue, consumer earnings and the active certificate pool**

    Certificates are minted from eligible items in opted-in transactions and stay licensable for
    12 months. Adjust assumptions in the sidebar to explore scenarios.
    """)

    preset, overrides, show_network, network_size, coefficient = create_sidebar_config()
    context = ScenarioContext(preset, overrides)

    try:
        assumptions = context.resolve()
        sim = CertificateSimulation(assumptions)
        sim.run_simulation()
        scaled = scale_for_network_size(
            sim.records, network_size if show_network else 1, assumptions.effective_opt_in
        )
    except AssumptionError as e:
        logger.info("Rejected assumptions for %s: %s", context.label, e)
        st.error(f"Invalid assumptions: {e}")
        st.stop()

    st.caption(
        f"Scenario: {context.label} | {assumptions.effective_opt_in * 100:.0f}% opt-in | "
        f"{assumptions.annual_transactions:.0f} transactions/year | "
        f"{assumptions.uses_per_cert_per_year:.1f}x reuse rate"
    )

    create_summary(context, sim, scaled, show_network)
    create_charts(sim)
    create_network_section(sim, network_size if show_network else 1)
    try:
        create_metcalfe_section(context, coefficient)
    except AssumptionError as e:
        st.error(f"Invalid network configuration: {e}")
    create_data_export(context, sim)


if __name__ == "__main__":
    main()
