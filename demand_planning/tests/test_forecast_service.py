"""
Tests for ChannelForecastService against an in-memory database.
"""
import unittest
from datetime import date

from demand_planning.core.types import BaselineResult, ForecastMonthConfig, SkuShare, SkuWeight
from demand_planning.exceptions import ValidationError
from demand_planning.models import ChannelForecastSetting, ChannelSkuDistribution, DemandForecast
from demand_planning.services.forecast_service import ChannelForecastService
from demand_planning.tests.helpers import DatabaseTestCase, make_network

APRIL = date(2025, 4, 1)
MAY = date(2025, 5, 1)


class TestChannelForecastService(DatabaseTestCase):
    """Test cases for settings, SKU weights and materialized forecasts."""

    def setUp(self):
        super().setUp()
        self.service = ChannelForecastService(self.session, make_network(), today=date(2025, 3, 15))

    def save_us_scope(self):
        self.service.save_settings('Retail', 'united states', [
            {'forecast_month': '2025-04-01', 'baseline_drr': 15, 'lift_pct': 10},
            {'forecast_month': '2025-05-01', 'baseline_drr': 15, 'mom_growth_pct': 5}
        ], updated_by='planner')
        self.service.save_sku_distribution('Retail', 'UNITED STATES', [
            {'sku': 'AA01', 'auto_weight_pct': 60},
            {'sku': 'AG01', 'auto_weight_pct': 40}
        ])

    def test_scope(self):
        self.assertEqual(self.service.scope('b2c', 'INDIA'), ('B2C', 'ALL'))
        self.assertEqual(self.service.scope('Retail', 'india'), ('Retail', 'INDIA'))

        with self.assertRaises(ValidationError):
            self.service.scope('Retail')
        with self.assertRaises(ValidationError):
            self.service.scope('Fax', 'INDIA')

    def test_save_settings_upserts(self):
        self.save_us_scope()
        self.service.save_settings('Retail', 'UNITED STATES', [ForecastMonthConfig(APRIL, baseline_drr=20)])

        settings = self.service.get_settings('Retail', 'UNITED STATES')

        self.assertEqual([s.forecast_month for s in settings], [APRIL, MAY])
        self.assertEqual(settings[0].baseline_drr, 20)
        self.assertEqual(settings[1].mom_growth_pct, 5)

    def test_save_settings_rejects_months_outside_horizon(self):
        for month in (date(2025, 3, 1), date(2024, 4, 1), date(2026, 4, 1), date(2025, 4, 15)):
            with self.assertRaises(ValidationError):
                self.service.save_settings('Retail', 'INDIA', [ForecastMonthConfig(APRIL), ForecastMonthConfig(month)])

        with self.assertRaises(ValidationError):
            self.service.save_settings('Retail', 'INDIA', [ForecastMonthConfig(APRIL), ForecastMonthConfig(APRIL)])

        self.assertEqual(self.service.get_settings('Retail', 'INDIA'), [])

    def test_horizon_months(self):
        months = self.service.horizon_months()

        self.assertEqual(len(months), 12)
        self.assertEqual(months[0], APRIL)
        self.assertEqual(months[-1], date(2026, 3, 1))

    def test_save_settings_rejects_bad_rows(self):
        with self.assertRaises(ValidationError):
            self.service.save_settings('Retail', 'INDIA', [{'baseline_drr': 3}])
        with self.assertRaises(ValidationError):
            self.service.save_settings('Retail', 'INDIA', [
                {'forecast_month': '2025-04-01', 'distribution_method': 'random'}
            ])
        with self.assertRaises(ValidationError):
            self.service.save_sku_distribution('Retail', 'INDIA', [{'auto_weight_pct': 50}])
        with self.assertRaises(ValidationError):
            self.service.save_sku_distribution('Retail', 'INDIA', [{'sku': 'AA01', 'auto_weight_pct': 'lots'}])

    def test_projection(self):
        self.save_us_scope()

        projection = self.service.get_projection('Retail', 'UNITED STATES')

        # Unsaved months carry May forward with no lift or growth
        self.assertEqual([m['final_units'] for m in projection['months']], [495] + [520] * 11)
        self.assertEqual(projection['total_units'], 6215)
        self.assertEqual(len(projection['sku_units']['AA01']), 12)
        self.assertEqual(projection['sku_units']['AA01']['2025-04-01'], 297)
        self.assertEqual(projection['sku_units']['AA01']['2025-05-01'], 312)
        self.assertIn('Ring Air', projection['families'])
        self.assertIsNone(projection['warning'])

    def test_projection_without_settings(self):
        projection = self.service.get_projection('Marketplace')

        self.assertEqual(len(projection['months']), 12)
        self.assertEqual(projection['months'][0]['forecast_month'], '2025-04-01')
        self.assertEqual(projection['total_units'], 0)

    def test_projection_across_separate_saves(self):
        self.save_us_scope()
        self.service.save_settings('Retail', 'UNITED STATES', [
            {'forecast_month': '2025-07-01', 'baseline_drr': 15, 'lift_pct': 20},
            {'forecast_month': '2025-08-01', 'baseline_drr': 15, 'mom_growth_pct': 10}
        ])

        months = self.service.get_projection('Retail', 'UNITED STATES')['months']

        self.assertEqual(len(months), 12)
        self.assertEqual(months[2]['forecast_month'], '2025-06-01')
        self.assertEqual(months[2]['lift_pct'], 0.0)
        self.assertEqual([m['final_units'] for m in months[:6]], [495, 520, 520, 624, 686, 686])
        self.assertEqual(months[-1]['final_units'], 686)

    def test_partial_save_fills_the_horizon(self):
        self.service.save_settings('Retail', 'INDIA', [ForecastMonthConfig(date(2025, 6, 1), baseline_drr=10)])

        months = self.service.get_projection('Retail', 'INDIA')['months']

        self.assertEqual([m['forecast_month'] for m in months[:2]], ['2025-04-01', '2025-05-01'])
        self.assertEqual(len(months), 12)
        # April has 30 days and runs at the saved June rate
        self.assertEqual(months[0]['base_units'], 300)
        self.assertEqual({m['final_units'] for m in months}, {300})

    def test_stale_settings_are_ignored(self):
        for month in range(1, 13):
            self.session.add(ChannelForecastSetting(
                channel_group='Retail', country_bucket='INDIA', forecast_month=date(2024, month, 1),
                baseline_drr=99, lift_pct=50
            ))
        self.session.commit()

        projection = self.service.get_projection('Retail', 'INDIA')

        self.assertEqual(projection['months'][0]['forecast_month'], '2025-04-01')
        self.assertEqual(projection['months'][-1]['forecast_month'], '2026-03-01')
        self.assertEqual(projection['total_units'], 0)
        self.assertEqual(len(self.service.get_settings('Retail', 'INDIA')), 12)

    def test_projection_warns_on_over_allocation(self):
        self.service.save_sku_distribution('Marketplace', None, [
            SkuWeight('AA01', manual_weight_pct=80, is_override=True),
            SkuWeight('AG01', manual_weight_pct=40, is_override=True)
        ])

        projection = self.service.get_projection('Marketplace')

        self.assertIsNotNone(projection['warning'])
        self.assertEqual(projection['override_total'], 120)

    def test_generate_replaces_scope(self):
        self.save_us_scope()
        self.session.add(DemandForecast(
            channel_group='Retail', country_bucket='INDIA', sku='AA01', forecast_month=APRIL, forecast_units=7
        ))
        self.session.commit()

        self.assertEqual(self.service.generate_forecasts('Retail', 'UNITED STATES', created_by='planner'), 24)
        self.assertEqual(self.service.generate_forecasts('Retail', 'UNITED STATES'), 24)

        rows = self.session.query(DemandForecast).filter(DemandForecast.country_bucket == 'UNITED STATES').all()
        self.assertEqual(len(rows), 24)
        self.assertEqual(sum(row.forecast_units for row in rows), 6215)
        self.assertEqual(
            self.session.query(DemandForecast).filter(DemandForecast.country_bucket == 'INDIA').count(), 1
        )

    def test_generate_without_weights_writes_nothing(self):
        self.service.save_settings('Retail', 'INDIA', [ForecastMonthConfig(APRIL, baseline_drr=5)])

        self.assertEqual(self.service.generate_forecasts('Retail', 'INDIA'), 0)

    def test_forecast_summary(self):
        self.save_us_scope()
        self.service.generate_forecasts('Retail', 'UNITED STATES')

        summary = self.service.get_forecast_summary()

        self.assertEqual(len(summary['forecasts']), 12)
        self.assertEqual(summary['forecasts'][0]['month_label'], 'Apr 2025')
        self.assertEqual(summary['forecasts'][0]['forecast_units'], 495)
        self.assertEqual(summary['forecasts'][0]['sku_count'], 2)

        status = summary['channel_status'][0]
        self.assertEqual(status['channel_group'], 'Retail')
        self.assertEqual(status['regions'], ['UNITED STATES'])
        self.assertEqual(status['month_count'], 12)
        self.assertEqual(status['total_units'], 6215)

    def test_refresh_auto_weights_keeps_overrides(self):
        self.service.save_sku_distribution('Retail', 'INDIA', [
            SkuWeight('AA01', auto_weight_pct=10, manual_weight_pct=50, is_override=True),
            SkuWeight('YY01', auto_weight_pct=90)
        ])
        baseline = BaselineResult(
            channel_group='Retail', country_bucket='INDIA', ring_basis='activated',
            start_date=date(2025, 3, 1), end_date=date(2025, 3, 10),
            total_units=100, days=10, daily_run_rate=10.0,
            sku_breakdown=(SkuShare('AA01', 70, 70.0), SkuShare('AS01', 30, 30.0))
        )

        self.service.refresh_auto_weights(baseline)

        weights = {w.sku: w for w in self.service.get_sku_distribution('Retail', 'INDIA')}
        self.assertEqual(sorted(weights), ['AA01', 'AS01'])
        self.assertTrue(weights['AA01'].is_override)
        self.assertEqual(weights['AA01'].auto_weight_pct, 70.0)
        self.assertEqual(self.session.query(ChannelSkuDistribution).count(), 2)


if __name__ == '__main__':
    unittest.main()
