from datetime import date

import pytest

from dompet.dates import format_month, month_range, parse_date, same_month, to_month_start, today


class TestMonthParsing:
	"""Tests for YYYY-MM month parameters."""

	def test_month_start(self):
		assert to_month_start("2024-05") == date(2024, 5, 1)

	def test_empty_means_current_month(self):
		assert to_month_start(None) == today().replace(day=1)
		assert to_month_start("") == today().replace(day=1)

	@pytest.mark.parametrize("value", ["2024-5", "2024/05", "May 2024", "2024-05-01"])
	def test_rejects_bad_format(self, value):
		with pytest.raises(ValueError):
			to_month_start(value)

	@pytest.mark.parametrize("value", ["2024-00", "2024-13"])
	def test_rejects_month_out_of_range(self, value):
		with pytest.raises(ValueError):
			to_month_start(value)


class TestMonthRange:
	def test_half_open_range(self):
		assert month_range(date(2024, 5, 1)) == (date(2024, 5, 1), date(2024, 6, 1))

	def test_december_rolls_over(self):
		assert month_range(date(2023, 12, 1)) == (date(2023, 12, 1), date(2024, 1, 1))

	def test_mid_month_is_truncated(self):
		assert month_range(date(2024, 2, 17))[0] == date(2024, 2, 1)


def test_format_month_pads():
	assert format_month(date(2024, 3, 1)) == "2024-03"


def test_same_month():
	assert same_month(date(2024, 5, 1), date(2024, 5, 31))
	assert not same_month(date(2024, 5, 31), date(2024, 6, 1))
	assert not same_month(date(2023, 5, 1), date(2024, 5, 1))


class TestParseDate:
	def test_plain_date(self):
		assert parse_date("2024-05-10") == date(2024, 5, 10)

	def test_iso_datetime(self):
		assert parse_date("2024-05-10T08:30:00Z") == date(2024, 5, 10)

	def test_empty_is_today(self):
		assert parse_date("") == today()

	def test_garbage(self):
		with pytest.raises(ValueError):
			parse_date("kemarin")
