"""
Tests for the stock status report and the replenishment plan.
"""
import unittest
from datetime import date

from demand_planning.core.types import INFINITE_COVER_DISPLAY
from demand_planning.exceptions import DatabaseError, NotFoundError, ValidationError
from demand_planning.models import DemandForecast
from demand_planning.services.replenishment_service import ReplenishmentService
from demand_planning.services.stock_analysis_service import StockAnalysisService
from demand_planning.tests.helpers import (
    TRAILING_OBSERVATIONS, TRAILING_STOCK, DatabaseTestCase, FakeDemandSource, FakeOrderSource,
    FakeStockSource, make_network, make_snapshot
)

TODAY = date(2025, 3, 15)


class TestStockReport(unittest.TestCase):
    """Test cases for StockAnalysisService.build_report."""

    def setUp(self):
        self.demand_source = FakeDemandSource(TRAILING_OBSERVATIONS)
        self.service = StockAnalysisService(
            demand_source=self.demand_source,
            stock_source=FakeStockSource(make_snapshot(TRAILING_STOCK)),
            network=make_network(),
            today=TODAY
        )

    def test_window(self):
        report = self.service.build_report(window_days=30)

        self.assertEqual(self.demand_source.windows, [(date(2025, 2, 14), TODAY)])
        self.assertEqual(report['window']['days'], 30)

    def test_fleet_rows(self):
        report = self.service.build_report(window_days=30)

        self.assertEqual([row['sku'] for row in report['skus']], ['AA01', 'BB02'])
        aa01, bb02 = report['skus']
        self.assertEqual(aa01['assessment']['stock'], 490)
        self.assertEqual(aa01['assessment']['daily_demand'], 6.5)
        self.assertEqual(aa01['channel_demand'], {'Marketplace': 5.0, 'B2C': 1.0, 'Retail': 0.5})
        self.assertEqual(aa01['unrouted_demand'], 0.5)
        self.assertEqual(aa01['family'], 'Ring Air')
        self.assertEqual(bb02['assessment']['days_of_cover'], INFINITE_COVER_DISPLAY)

    def test_zero_stock_and_demand_left_out_of_location(self):
        report = self.service.build_report(window_days=30)

        aa01 = report['skus'][0]
        self.assertNotIn('WH-B', aa01['locations'])
        self.assertEqual(aa01['locations']['TH-2']['days_of_cover'], 50.0)

        locations = {summary['location']: summary for summary in report['locations']}
        self.assertEqual(locations['WH-B']['sku_count'], 0)
        self.assertEqual(locations['WH-A']['status'], 'overstock')
        self.assertEqual(locations['US-FBA']['status'], 'understock')
        self.assertEqual(locations['US-FBA']['replenishment_needed'], 45)
        self.assertEqual(locations['TH-1']['group'], 'fulfillment')

    def test_summary(self):
        summary = self.service.build_report(window_days=30)['summary']

        self.assertEqual(summary['total_skus'], 2)
        self.assertEqual(summary['infinite_cover_skus'], 1)
        self.assertEqual(summary['overstock'], 2)
        self.assertEqual(summary['unrouted_daily_demand'], 0.5)

    def test_pendency(self):
        self.service.order_source = FakeOrderSource([
            {'warehouse_code': 'WH-TH2'},
            {'warehouse_code': 'US-FBA'},
            {'warehouse_code': 'ELSEWHERE'}
        ])

        report = self.service.build_report(include_pendency=True, window_days=30)

        self.assertEqual(report['pendency'], {'TH-2': 1, 'US-FBA': 1, 'unmapped': 1})
        locations = {summary['location']: summary for summary in report['locations']}
        self.assertEqual(locations['TH-2']['open_orders'], 1)
        self.assertEqual(locations['TH-1']['open_orders'], 0)

    def test_pendency_skipped_without_token(self):
        self.service.order_source = FakeOrderSource([], configured=False)

        report = self.service.build_report(include_pendency=True, window_days=30)

        self.assertNotIn('pendency', report)


class TestLocationTargets(DatabaseTestCase):
    """Test cases for saved target days of cover."""

    def setUp(self):
        super().setUp()
        self.service = StockAnalysisService(
            self.session, FakeDemandSource(), FakeStockSource(make_snapshot()), network=make_network()
        )

    def test_defaults_from_network(self):
        targets = self.service.get_location_targets()

        self.assertEqual(targets['WH-A'], 7)
        self.assertEqual(targets['US-FBA'], 45)

    def test_saved_targets_override(self):
        self.service.save_location_targets({'US-FBA': 30}, updated_by='planner')
        self.service.save_location_targets({'US-FBA': 20, 'TH-1': 0})

        targets = self.service.get_location_targets()

        self.assertEqual(targets['US-FBA'], 20)
        self.assertEqual(targets['TH-1'], 0)
        self.assertEqual(targets['WH-A'], 7)

    def test_invalid_targets(self):
        with self.assertRaises(ValidationError):
            self.service.save_location_targets({'US-FBA': -1})
        with self.assertRaises(ValidationError):
            self.service.save_location_targets({'US-FBA': '30'})

    def test_aliases_resolve_to_location_name(self):
        self.service.save_location_targets({'TH- 2': 10})

        self.assertEqual(self.service.get_location_targets()['TH-2'], 10)

    def test_unknown_location(self):
        with self.assertRaises(NotFoundError):
            self.service.save_location_targets({'Moon': 10})

    def test_needs_session(self):
        service = StockAnalysisService(
            None, FakeDemandSource(), FakeStockSource(make_snapshot()), network=make_network()
        )

        with self.assertRaises(DatabaseError):
            service.save_location_targets({'US-FBA': 30})


class TestReplenishmentPlan(DatabaseTestCase):
    """Test cases for ReplenishmentService.build_plan."""

    def setUp(self):
        super().setUp()
        for channel, country, month, units in (
            ('Marketplace', 'ALL', date(2025, 2, 1), 999),
            ('Marketplace', 'ALL', date(2025, 3, 1), 500),
            ('Marketplace', 'ALL', date(2025, 4, 1), 1000),
            ('Retail', 'UNITED STATES', date(2025, 4, 1), 300)
        ):
            self.session.add(DemandForecast(
                channel_group=channel, country_bucket=country, sku='AA01',
                forecast_month=month, forecast_units=units
            ))
        self.session.commit()

        self.service = ReplenishmentService(
            self.session,
            FakeDemandSource(TRAILING_OBSERVATIONS),
            FakeStockSource(make_snapshot(TRAILING_STOCK)),
            network=make_network(),
            today=TODAY
        )

    def test_fulfillment_locations_by_cover(self):
        plan = self.service.build_plan(window_days=30)

        self.assertEqual([entry['location'] for entry in plan['locations']], ['US-FBA', 'TH-2', 'TH-1'])
        self.assertEqual(plan['summary']['total_locations'], 3)
        self.assertEqual(plan['summary']['total_units_needed'], 45)
        self.assertEqual(plan['summary']['understock'], 1)

    def test_location_entry(self):
        plan = self.service.build_plan(window_days=30)

        us = plan['locations'][0]
        self.assertEqual(us['geography'], 'United States')
        self.assertEqual(us['sku_count'], 1)
        self.assertEqual(us['channel_breakdown'], [{'channel': 'Marketplace', 'daily_demand': 3.0}])
        self.assertEqual(us['skus'][0]['channel_breakdown'], {'Marketplace': 3.0})
        self.assertEqual(us['skus'][0]['replenishment_needed'], 45)

        th1 = plan['locations'][2]
        self.assertEqual([sku['sku'] for sku in th1['skus']], ['AA01', 'BB02'])
        self.assertEqual(th1['skus'][1]['days_of_cover'], INFINITE_COVER_DISPLAY)

    def test_monthly_forecast(self):
        plan = self.service.build_plan(window_days=30)
        locations = {entry['location']: entry for entry in plan['locations']}

        us = locations['US-FBA']['monthly_forecast']
        self.assertEqual([month['month'] for month in us], ['2025-03', '2025-04'])
        self.assertEqual([month['forecast_units'] for month in us], [300, 600])

        # TH-1 holds 50 of the 120 units at Thai locations
        th1 = locations['TH-1']['monthly_forecast']
        self.assertEqual([month['forecast_units'] for month in th1], [83, 167])
        self.assertEqual(th1[1]['channel_breakdown'], {'Marketplace': 167})

    def test_target_override(self):
        plan = self.service.build_plan(target_days=30, window_days=30)

        self.assertEqual(plan['summary']['target_days'], 30)
        self.assertEqual(plan['locations'][0]['status'], 'balanced')
        self.assertEqual(plan['summary']['total_units_needed'], 0)

    def test_negative_target(self):
        with self.assertRaises(ValidationError):
            self.service.build_plan(target_days=-5)

    def test_without_database(self):
        service = ReplenishmentService(
            None,
            FakeDemandSource(TRAILING_OBSERVATIONS),
            FakeStockSource(make_snapshot(TRAILING_STOCK)),
            network=make_network(),
            today=TODAY
        )

        plan = service.build_plan(window_days=30)

        self.assertEqual(plan['locations'][0]['monthly_forecast'], [])


if __name__ == '__main__':
    unittest.main()
