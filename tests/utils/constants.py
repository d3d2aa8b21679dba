"""Identifiers shared by fixtures and tests."""

import datetime as dt

PHONE = "79991234567"
COMPANY_ID = 962302
TODAY = dt.date(2024, 1, 1)
NOW = dt.datetime.combine(TODAY, dt.time(9, 0))
