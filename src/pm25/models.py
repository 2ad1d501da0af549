"""
PM2.5 model wrappers.

Six forecasters behind one interface:
1. OLS with regressors (statsmodels)
2. Random forest with regressors (scikit-learn)
3. Exponential smoothing state-space model (statsforecast AutoETS)
4. TBATS (statsforecast AutoTBATS)
5. ARIMA with regressors, automatic order search (statsforecast AutoARIMA)
6. Additive model with changepoints and regressors (Prophet)

Every model takes the canonical frame [ds, y, regressors...]. Regressor values
over the forecast horizon come in through `future` and are treated as known.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Type

import numpy as np
import pandas as pd

from .dataset import target_filled
from .features import build_design_matrix, informative_columns

logger = logging.getLogger(__name__)

logging.getLogger("cmdstanpy").setLevel(logging.WARNING)
logging.getLogger("prophet").setLevel(logging.WARNING)


def _format_number(value) -> str:
    if isinstance(value, (int, float, np.number)) and np.isfinite(value):
        return f"{float(value):.2f}"
    return "n/a"


class ForecastModel(ABC):
    """Base class for forecasting models"""

    def __init__(self, regressors: Sequence[str] = ()):
        self.regressors = list(regressors)
        self.train_ds: Optional[pd.Series] = None

    @abstractmethod
    def fit(self, train: pd.DataFrame) -> "ForecastModel":
        """Fit model to training frame [ds, y, regressors...]"""

    @abstractmethod
    def predict(self, future: pd.DataFrame) -> np.ndarray:
        """Forecast one value per row of `future` [ds, regressors...]"""

    @abstractmethod
    def fitted(self) -> np.ndarray:
        """In-sample predictions aligned to the training rows"""

    @abstractmethod
    def get_name(self) -> str:
        """Model name"""

    def summary(self) -> str:
        """Human-readable description of the fitted model"""
        return self.get_name()

    @property
    def is_fitted(self) -> bool:
        return self.train_ds is not None

    def _check_fitted(self) -> None:
        if not self.is_fitted:
            raise RuntimeError(f"{self.get_name()} must be fitted before predicting")

    def _remember_train(self, train: pd.DataFrame) -> None:
        if train.empty:
            raise ValueError(f"{self.get_name()}: empty training frame")
        self.train_ds = pd.to_datetime(train["ds"]).reset_index(drop=True)


class _RegressionModel(ForecastModel):
    """Shared plumbing for models that regress y on a design matrix"""

    calendar = "none"

    def __init__(self, regressors: Sequence[str] = ()):
        super().__init__(regressors)
        self.feature_cols: List[str] = []
        self._train_X: Optional[pd.DataFrame] = None

    def _design(self, df: pd.DataFrame) -> pd.DataFrame:
        X, _ = build_design_matrix(df, self.regressors, calendar=self.calendar)
        return X

    def _observed(self, train: pd.DataFrame):
        mask = train["y"].notna().to_numpy()
        if mask.sum() == 0:
            raise ValueError(f"{self.get_name()}: no observed target values")
        n_dropped = int((~mask).sum())
        if n_dropped:
            logger.debug("%s: dropped %s rows with missing target", self.get_name(), n_dropped)
        return mask, train["y"].to_numpy(dtype=float)[mask]


class OLSModel(_RegressionModel):
    """Ordinary least squares on regressors + cyclic calendar terms"""

    calendar = "cyclic"

    def __init__(self, regressors: Sequence[str] = ()):
        super().__init__(regressors)
        self.result = None

    def _exog(self, X: pd.DataFrame) -> pd.DataFrame:
        import statsmodels.api as sm

        return sm.add_constant(X[self.feature_cols], has_constant="add")

    def fit(self, train: pd.DataFrame) -> "OLSModel":
        import statsmodels.api as sm

        self._remember_train(train)
        mask, y = self._observed(train)

        X = self._design(train)
        self.feature_cols = informative_columns(X.loc[mask])
        self._train_X = X

        self.result = sm.OLS(y, self._exog(X.loc[mask])).fit()
        logger.debug("OLS fitted: R^2=%.3f on %s rows", self.result.rsquared, len(y))
        return self

    def predict(self, future: pd.DataFrame) -> np.ndarray:
        self._check_fitted()
        return np.asarray(self.result.predict(self._exog(self._design(future))), dtype=float)

    def fitted(self) -> np.ndarray:
        self._check_fitted()
        return np.asarray(self.result.predict(self._exog(self._train_X)), dtype=float)

    def summary(self) -> str:
        self._check_fitted()
        return self.result.summary().as_text()

    def get_name(self) -> str:
        return "ols"


class RandomForestModel(_RegressionModel):
    """Random forest on regressors + raw calendar fields"""

    calendar = "calendar"

    def __init__(
        self,
        regressors: Sequence[str] = (),
        n_estimators: int = 500,
        min_samples_leaf: int = 3,
        random_state: int = 42,
        n_jobs: int = -1,
    ):
        super().__init__(regressors)
        self.n_estimators = n_estimators
        self.min_samples_leaf = min_samples_leaf
        self.random_state = random_state
        self.n_jobs = n_jobs
        self.model = None

    def fit(self, train: pd.DataFrame) -> "RandomForestModel":
        from sklearn.ensemble import RandomForestRegressor

        self._remember_train(train)
        mask, y = self._observed(train)

        X = self._design(train)
        self.feature_cols = list(X.columns)
        self._train_X = X

        self.model = RandomForestRegressor(
            n_estimators=self.n_estimators,
            min_samples_leaf=self.min_samples_leaf,
            random_state=self.random_state,
            n_jobs=self.n_jobs,
        )
        self.model.fit(X.loc[mask].to_numpy(), y)
        return self

    def predict(self, future: pd.DataFrame) -> np.ndarray:
        self._check_fitted()
        X = self._design(future)[self.feature_cols]
        return self.model.predict(X.to_numpy())

    def fitted(self) -> np.ndarray:
        self._check_fitted()
        return self.model.predict(self._train_X.to_numpy())

    def feature_importance(self) -> pd.DataFrame:
        self._check_fitted()
        return (
            pd.DataFrame({"feature": self.feature_cols, "importance": self.model.feature_importances_})
            .sort_values("importance", ascending=False)
            .reset_index(drop=True)
        )

    def summary(self) -> str:
        importance = self.feature_importance()
        lines = [f"RandomForestRegressor(n_estimators={self.n_estimators}, "
                 f"min_samples_leaf={self.min_samples_leaf})", "Feature importance:"]
        lines += [f"  {row.feature:<16} {row.importance:.4f}" for row in importance.itertuples()]
        return "\n".join(lines)

    def get_name(self) -> str:
        return "random_forest"


class _StatsForecastModel(ForecastModel):
    """
    statsforecast model used through its array API (fit / predict /
    predict_in_sample). These models need a gap-free target, so missing
    PM2.5 days are interpolated before fitting.
    """

    uses_regressors = False

    def __init__(self, regressors: Sequence[str] = (), season_length: int = 7):
        super().__init__(regressors)
        self.season_length = season_length
        self.model = None
        self.exog_cols: List[str] = []

    @abstractmethod
    def _build(self, n_obs: int):
        """Construct the unfitted statsforecast model"""

    def _exog(self, df: pd.DataFrame) -> Optional[np.ndarray]:
        if not self.exog_cols:
            return None
        return df[self.exog_cols].to_numpy(dtype=float)

    def _check_contiguous(self, future: pd.DataFrame) -> None:
        ds = pd.DatetimeIndex(pd.to_datetime(future["ds"]))
        expected = pd.date_range(self.train_ds.iloc[-1] + pd.Timedelta(days=1), periods=len(ds), freq="D")
        if not (ds == expected).all():
            raise ValueError(
                f"{self.get_name()}: future dates must continue the training series daily "
                f"from {expected[0].date()}"
            )

    def fit(self, train: pd.DataFrame) -> "_StatsForecastModel":
        self._remember_train(train)
        y = target_filled(train)

        if self.uses_regressors and self.regressors:
            X, _ = build_design_matrix(train, self.regressors)
            self.exog_cols = informative_columns(X)

        self.model = self._build(len(y))
        self.model.fit(y=y, X=self._exog(train))
        logger.debug("%s fitted on %s days", self.get_name(), len(y))
        return self

    def predict(self, future: pd.DataFrame) -> np.ndarray:
        self._check_fitted()
        self._check_contiguous(future)
        out = self.model.predict(h=len(future), X=self._exog(future))
        return np.asarray(out["mean"], dtype=float)

    def fitted(self) -> np.ndarray:
        self._check_fitted()
        return np.asarray(self.model.predict_in_sample()["fitted"], dtype=float)

    def _fitted_info(self) -> Dict:
        info = getattr(self.model, "model_", None)
        return info if isinstance(info, dict) else {}


class ExponentialSmoothingModel(_StatsForecastModel):
    """ETS state-space model with automatic component selection"""

    def _build(self, n_obs: int):
        from statsforecast.models import AutoETS

        return AutoETS(season_length=self.season_length, model="ZZZ")

    def summary(self) -> str:
        self._check_fitted()
        info = self._fitted_info()
        return (
            f"AutoETS(season_length={self.season_length}) "
            f"method={info.get('method', 'n/a')} aic={_format_number(info.get('aic'))}"
        )

    def get_name(self) -> str:
        return "ets"


class TBATSModel(_StatsForecastModel):
    """TBATS with weekly (and, given enough history, yearly) seasonality"""

    def __init__(self, regressors: Sequence[str] = (), season_length=(7, 365)):
        if isinstance(season_length, int):
            season_length = (season_length,)
        super().__init__(regressors, season_length=season_length)
        self.periods_used: List[int] = []

    def _build(self, n_obs: int):
        from statsforecast.models import AutoTBATS

        periods = [int(p) for p in self.season_length if 2 * p <= n_obs]
        if not periods:
            periods = [int(min(self.season_length))]
        dropped = sorted(set(self.season_length) - set(periods))
        if dropped:
            logger.info("TBATS: %s days of history, skipping seasonal periods %s", n_obs, dropped)
        self.periods_used = periods
        return AutoTBATS(season_length=periods)

    def summary(self) -> str:
        self._check_fitted()
        info = self._fitted_info()
        return f"AutoTBATS(season_length={self.periods_used}) aic={_format_number(info.get('aic'))}"

    def get_name(self) -> str:
        return "tbats"


class ARIMAXModel(_StatsForecastModel):
    """Auto-ARIMA with the regressors as external variables"""

    uses_regressors = True

    def _build(self, n_obs: int):
        from statsforecast.models import AutoARIMA

        return AutoARIMA(season_length=self.season_length)

    def summary(self) -> str:
        from statsforecast.arima import arima_string

        self._check_fitted()
        return f"{arima_string(self.model.model_)} regressors={self.exog_cols}"

    def get_name(self) -> str:
        return "arimax"


class ProphetModel(ForecastModel):
    """Prophet additive model with changepoints and extra regressors"""

    def __init__(
        self,
        regressors: Sequence[str] = (),
        changepoint_prior_scale: float = 0.05,
        yearly_seasonality="auto",
        weekly_seasonality=True,
    ):
        super().__init__(regressors)
        self.changepoint_prior_scale = changepoint_prior_scale
        self.yearly_seasonality = yearly_seasonality
        self.weekly_seasonality = weekly_seasonality
        self.model = None
        self.regressors_used: List[str] = []
        self._train_frame: Optional[pd.DataFrame] = None

    def fit(self, train: pd.DataFrame) -> "ProphetModel":
        from prophet import Prophet

        self._remember_train(train)
        if train["y"].notna().sum() < 2:
            raise ValueError("prophet: fewer than 2 observed target values")

        if self.regressors:
            X, _ = build_design_matrix(train, self.regressors)
            self.regressors_used = informative_columns(X)

        self.model = Prophet(
            yearly_seasonality=self.yearly_seasonality,
            weekly_seasonality=self.weekly_seasonality,
            daily_seasonality=False,
            changepoint_prior_scale=self.changepoint_prior_scale,
            interval_width=0.95,
        )
        for col in self.regressors_used:
            self.model.add_regressor(col)

        frame = train[["ds", "y"] + self.regressors_used].reset_index(drop=True)
        self.model.fit(frame)
        self._train_frame = frame
        return self

    def predict(self, future: pd.DataFrame) -> np.ndarray:
        self._check_fitted()
        frame = future[["ds"] + self.regressors_used].reset_index(drop=True)
        return self.model.predict(frame)["yhat"].to_numpy(dtype=float)

    def fitted(self) -> np.ndarray:
        self._check_fitted()
        return self.predict(self._train_frame)

    def summary(self) -> str:
        self._check_fitted()
        lines = [
            f"Prophet(changepoint_prior_scale={self.changepoint_prior_scale}) "
            f"changepoints={len(self.model.changepoints)}"
        ]
        if self.regressors_used:
            from prophet.utilities import regressor_coefficients

            coefs = regressor_coefficients(self.model)
            lines.append(coefs[["regressor", "coef_lower", "coef", "coef_upper"]].to_string(index=False))
        return "\n".join(lines)

    def get_name(self) -> str:
        return "prophet"


class ModelFactory:
    """Factory for creating model instances"""

    _models: Dict[str, Type[ForecastModel]] = {
        "ols": OLSModel,
        "random_forest": RandomForestModel,
        "ets": ExponentialSmoothingModel,
        "tbats": TBATSModel,
        "arimax": ARIMAXModel,
        "prophet": ProphetModel,
    }

    @classmethod
    def create(cls, model_name: str, regressors: Sequence[str] = (), **kwargs) -> ForecastModel:
        """Create model by name"""
        if model_name not in cls._models:
            raise ValueError(f"Unknown model: {model_name}. Available: {cls.list_models()}")

        return cls._models[model_name](regressors=regressors, **kwargs)

    @classmethod
    def list_models(cls) -> List[str]:
        """List available models"""
        return list(cls._models.keys())
