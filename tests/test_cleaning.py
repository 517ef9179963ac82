"""Tests for gap imputation and data quality scoring."""

from datetime import date, timedelta

import pytest

from pulse.models.series_models import TimeSeriesPoint
from pulse.transforms.cleaning import assess_data_quality, impute_missing


def _rows(values):
    return [{'v': v} for v in values]


class TestImputeMissing:
    def test_linear_fills_interior_gap(self):
        result = impute_missing(_rows([1, None, None, 4]), ['v'], 'linear')
        assert [r['v'] for r in result] == pytest.approx([1, 2, 3, 4])

    def test_linear_edges_take_nearest_value(self):
        result = impute_missing(_rows([None, 2, 4, None]), ['v'], 'linear')
        assert [r['v'] for r in result] == pytest.approx([2, 2, 4, 4])

    def test_forward_fill(self):
        result = impute_missing(_rows([None, 5, float('nan'), 'x', 8]), ['v'], 'forward_fill')
        assert [r['v'] for r in result] == [0.0, 5, 5.0, 5.0, 8]

    def test_backward_fill(self):
        result = impute_missing(_rows([1, None, 3, None]), ['v'], 'backward_fill')
        assert [r['v'] for r in result] == [1, 3.0, 3, 0.0]

    def test_mean_fill(self):
        result = impute_missing(_rows([2, None, 4]), ['v'], 'mean')
        assert result[1]['v'] == pytest.approx(3.0)

    def test_long_gaps_left_untouched(self):
        values = [1] + [None] * 6 + [8]
        result = impute_missing(_rows(values), ['v'], 'linear', max_gap_size=5)
        assert [r['v'] for r in result] == values

    def test_absent_field_counts_as_missing(self):
        rows = [{'v': 1}, {}, {'v': 3}]
        assert impute_missing(rows, ['v'], 'linear')[1]['v'] == pytest.approx(2.0)

    def test_input_untouched(self):
        rows = _rows([1, None, 3])
        impute_missing(rows, ['v'])
        assert rows[1]['v'] is None

    def test_seasonal_fill_uses_cycle_position(self):
        values = [1, 2, 3, 1, None, 3, 1, 2, 3]
        result = impute_missing(_rows(values), ['v'], 'seasonal', seasonal_period=3)
        assert result[4]['v'] == pytest.approx(2.0)

    def test_seasonal_fill_without_known_position(self):
        result = impute_missing(_rows([None, 2, None, 2]), ['v'], 'seasonal', seasonal_period=2)
        assert [r['v'] for r in result] == [0.0, 2, 0.0, 2]

    def test_all_missing_is_left_alone(self):
        rows = _rows([None, None])
        assert impute_missing(rows, ['v']) == rows


class TestAssessDataQuality:
    def _series(self, values, start=date(2024, 1, 1)):
        return [TimeSeriesPoint(date=start + timedelta(days=i), value=v) for i, v in enumerate(values)]

    def test_clean_series_scores_high(self):
        report = assess_data_quality(self._series([10, 11, 12, 11, 10, 12, 11]))
        assert report.completeness == 100
        assert report.consistency == 100
        assert report.timeliness == 100
        assert report.accuracy == 95
        assert report.issues == []
        assert report.overall == pytest.approx((100 + 100 + 100 + 95) / 4)

    def test_duplicate_dates_reduce_consistency(self):
        series = self._series([1, 2, 3])
        series.append(TimeSeriesPoint(date=series[-1].date, value=4))
        report = assess_data_quality(series)
        assert report.consistency == 80
        assert 'duplicate_timestamps' in [i.type for i in report.issues]

    def test_missing_values_reduce_completeness(self):
        report = assess_data_quality(self._series([1.0, float('nan'), 3.0, 4.0]))
        assert report.completeness == pytest.approx(75.0)
        missing = [i for i in report.issues if i.type == 'missing_values'][0]
        assert missing.affected_points == [1]
        assert missing.severity == 'high'

    def test_irregular_spacing_flagged(self):
        start = date(2024, 1, 1)
        days = [0, 1, 2, 3, 10, 11, 12]
        series = [TimeSeriesPoint(date=start + timedelta(days=d), value=1.0) for d in days]
        report = assess_data_quality(series)
        irregular = [i for i in report.issues if i.type == 'irregular_intervals'][0]
        assert irregular.affected_points == [3]
        assert irregular.severity == 'low'

    def test_extreme_outlier_flagged(self):
        values = [10.0] * 30 + [1000.0]
        report = assess_data_quality(self._series(values))
        outliers = [i for i in report.issues if i.type == 'extreme_outliers'][0]
        assert outliers.affected_points == [30]
