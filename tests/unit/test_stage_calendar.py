from __future__ import annotations

from beg_migration.db import tables
from beg_migration.stages.calendar import import_monthly_hours, import_vat_rates, import_workloads


def test_workloads(run_stages, storage):
    result = run_stages("workloads")["workloads"]
    assert result.inserted_rows == 2
    assert result.skipped_records == 2
    assert "User 99: user with ID 99 not found" in result.reasons
    assert "User 2: Missing required fields" in result.reasons
    values = sorted((w["month"], w["workload"]) for w in storage.select(tables.WORKLOADS))
    assert values == [(1, 80), (2, 100)]


def test_workloads_without_snapshot(ctx):
    assert import_workloads(ctx).is_noop


def test_vat_rates(ctx, storage):
    result = import_vat_rates(ctx)
    assert result.inserted_rows == 30
    rates = {r["year"]: r["rate"] for r in storage.select(tables.VAT_RATES)}
    assert rates[1995] == 6.5
    assert rates[2010] == 7.6
    assert rates[2018] == 7.7
    assert rates[2024] == 8.1


def test_monthly_hours(ctx, storage, legacy_dataset):
    result = import_monthly_hours(ctx)
    assert result.inserted_rows == 2
    assert result.skipped_records == 1
    hours = {(h["year"], h["month"]): h["amountOfHours"] for h in storage.select(tables.MONTHLY_HOURS)}
    assert hours == {(2024, 1): 168.0, (2024, 2): 160.5}
