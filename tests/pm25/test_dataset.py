"""
PM2.5 dataset loading, preparation and validation.

Preparation must leave one row per date on a complete daily grid and fail
loud on inputs it cannot repair (duplicates, missing columns).
"""

import numpy as np
import pandas as pd
import pytest

from src.pm25.dataset import (
    load_dataset,
    prepare_dataset,
    print_validation_report,
    target_filled,
    validate_daily_index,
)

REGRESSORS = ["inversion", "inversion_diff", "wind_speed", "precipitation", "fireworks"]


@pytest.mark.smoke
class TestLoadDataset:
    """Pre-serialized table formats"""

    def test_pickle_roundtrip(self, raw_pm25, tmp_path):
        path = tmp_path / "pm25.pkl"
        raw_pm25.to_pickle(path)

        loaded = load_dataset(path)
        pd.testing.assert_frame_equal(loaded, raw_pm25)

    def test_csv_with_date_column(self, raw_pm25, tmp_path, config):
        path = tmp_path / "pm25.csv"
        raw_pm25.to_csv(path)

        loaded = load_dataset(path)
        assert "date" in loaded.columns

        prepared = prepare_dataset(loaded, config)
        assert len(prepared) == len(raw_pm25)

    def test_parquet(self, raw_pm25, tmp_path):
        path = tmp_path / "pm25.parquet"
        raw_pm25.to_parquet(path)

        loaded = load_dataset(path)
        assert len(loaded) == len(raw_pm25)

    @pytest.mark.fail_loud
    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_dataset(tmp_path / "nope.pkl")

    @pytest.mark.fail_loud
    def test_unsupported_suffix_raises(self, tmp_path):
        path = tmp_path / "pm25.xlsx"
        path.write_text("not really excel")

        with pytest.raises(ValueError, match="Unsupported"):
            load_dataset(path)


class TestPrepareDataset:
    """Canonical [ds, y, regressors...] frame"""

    def test_canonical_columns(self, prepared):
        assert list(prepared.columns) == ["ds", "y"] + REGRESSORS
        assert prepared["ds"].is_monotonic_increasing
        assert prepared["ds"].dt.tz is None

    def test_booleans_become_floats(self, prepared):
        assert prepared["inversion"].dtype == float
        assert set(prepared["fireworks"].unique()) <= {0.0, 1.0}

    def test_one_row_per_date_on_full_grid(self, raw_pm25, config):
        gappy = raw_pm25.drop(raw_pm25.index[[10, 11, 50]])

        prepared = prepare_dataset(gappy, config)

        assert len(prepared) == len(raw_pm25)
        assert prepared["ds"].is_unique
        assert prepared["ds"].diff().dropna().eq(pd.Timedelta(days=1)).all()

    def test_reinserted_days_have_missing_target_and_filled_regressors(self, raw_pm25, config):
        gappy = raw_pm25.drop(raw_pm25.index[[10, 11]])

        prepared = prepare_dataset(gappy, config)

        reinserted = prepared[prepared["ds"].isin(raw_pm25.index[[10, 11]])]
        assert reinserted["y"].isna().all()
        assert prepared[REGRESSORS].notna().all().all()

    def test_missing_pm25_kept_as_nan(self, raw_pm25, prepared):
        assert prepared["y"].isna().sum() == raw_pm25["pm25"].isna().sum()

    def test_date_column_instead_of_index(self, raw_pm25, prepared, config):
        from_column = prepare_dataset(raw_pm25.reset_index(), config)
        pd.testing.assert_frame_equal(from_column, prepared)

    def test_inversion_change_derived_when_absent(self, raw_pm25, prepared, config):
        without_change = raw_pm25.drop(columns=["inversion_diff"])

        derived = prepare_dataset(without_change, config)

        np.testing.assert_array_equal(
            derived["inversion_diff"].to_numpy(),
            prepared["inversion_diff"].to_numpy(),
        )
        assert derived["inversion_diff"].iloc[0] == 0.0

    @pytest.mark.parametrize("with_change_column", [False, True])
    def test_inversion_change_across_missing_day(self, config, with_change_column):
        dates = pd.to_datetime(["2020-01-01", "2020-01-02", "2020-01-04", "2020-01-05"])
        raw = pd.DataFrame(
            {
                "pm25": [10.0, 20.0, 22.0, 12.0],
                "inversion": [False, True, True, False],
                "wind_speed": [3.0, 1.0, 1.0, 4.0],
                "precipitation": 0.0,
                "fireworks": False,
            },
            index=pd.DatetimeIndex(dates, name="date"),
        )
        if with_change_column:
            raw["inversion_diff"] = [0, 1, 0, -1]

        prepared = prepare_dataset(raw, config)

        # 2020-01-03 is inserted with the previous day's inversion state
        np.testing.assert_array_equal(prepared["inversion"].to_numpy(), [0.0, 1.0, 1.0, 1.0, 0.0])
        np.testing.assert_array_equal(prepared["inversion_diff"].to_numpy(), [0.0, 1.0, 0.0, 0.0, -1.0])
        np.testing.assert_array_equal(
            prepared["inversion_diff"].to_numpy(),
            prepared["inversion"].diff().fillna(0.0).to_numpy(),
        )

    @pytest.mark.fail_loud
    def test_duplicate_dates_raise(self, raw_pm25, config):
        duplicated = pd.concat([raw_pm25, raw_pm25.iloc[[10]]])

        with pytest.raises(ValueError, match="Duplicate dates"):
            prepare_dataset(duplicated, config)

    @pytest.mark.fail_loud
    def test_missing_target_column_raises(self, raw_pm25, config):
        with pytest.raises(ValueError, match="target"):
            prepare_dataset(raw_pm25.drop(columns=["pm25"]), config)

    @pytest.mark.fail_loud
    def test_missing_regressor_raises(self, raw_pm25, config):
        with pytest.raises(ValueError, match="wind_speed"):
            prepare_dataset(raw_pm25.drop(columns=["wind_speed"]), config)

    @pytest.mark.fail_loud
    def test_empty_raises(self, raw_pm25, config):
        with pytest.raises(ValueError, match="empty"):
            prepare_dataset(raw_pm25.iloc[0:0], config)


class TestValidateDailyIndex:
    """Integrity report on a prepared frame"""

    def test_prepared_frame_is_valid(self, prepared):
        result = validate_daily_index(prepared)

        assert result.is_valid
        assert result.n_duplicates == 0
        assert result.n_missing_days == 0
        assert result.n_nulls == prepared["y"].isna().sum()

    @pytest.mark.fail_loud
    def test_gap_detected(self, prepared):
        gappy = prepared.drop(index=[5, 6])

        result = validate_daily_index(gappy)

        assert not result.is_valid
        assert result.n_missing_days == 2
        assert result.missing_days[0] == prepared["ds"].iloc[5]

    @pytest.mark.fail_loud
    def test_duplicate_detected(self, prepared):
        duplicated = pd.concat([prepared, prepared.iloc[[3]]]).sort_values("ds")

        result = validate_daily_index(duplicated)

        assert not result.is_valid
        assert result.n_duplicates == 2


class TestTargetFilled:
    """Gap filling for models that reject missing observations"""

    def test_no_gaps_and_observed_unchanged(self, prepared):
        filled = target_filled(prepared)
        observed = prepared["y"].notna().to_numpy()

        assert np.isfinite(filled).all()
        np.testing.assert_allclose(filled[observed], prepared["y"].to_numpy()[observed])

    def test_interior_gap_interpolated(self):
        df = pd.DataFrame({
            "ds": pd.date_range("2020-01-01", periods=5, freq="D"),
            "y": [np.nan, 10.0, np.nan, 20.0, np.nan],
        })

        np.testing.assert_allclose(target_filled(df), [10.0, 10.0, 15.0, 20.0, 20.0])

    @pytest.mark.fail_loud
    def test_all_missing_raises(self):
        df = pd.DataFrame({
            "ds": pd.date_range("2020-01-01", periods=3, freq="D"),
            "y": [np.nan] * 3,
        })

        with pytest.raises(ValueError):
            target_filled(df)


def test_validation_report_printed(prepared, capsys):
    print_validation_report(validate_daily_index(prepared.drop(index=[5])))

    out = capsys.readouterr().out
    assert "Validation Report: FAIL" in out
    assert "Missing days: 1" in out
