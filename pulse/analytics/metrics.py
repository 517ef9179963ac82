"""Regression helpers, accuracy measures and residual diagnostics."""

import math
from typing import Optional, Sequence, Tuple

import numpy as np
from scipy import stats
import warnings
warnings.filterwarnings('ignore')

from .base_models import AccuracyMetrics, ResidualDiagnostics


def linear_regression(xs: Sequence[float], ys: Sequence[float]) -> Tuple[float, float]:
    """
    Closed-form ordinary least squares.

    Returns:
        (slope, intercept); (0, 0) for fewer than two points
    """
    n = min(len(xs), len(ys))
    if n < 2:
        return 0.0, 0.0

    x = np.asarray(xs[:n], dtype=float)
    y = np.asarray(ys[:n], dtype=float)

    sum_x, sum_y = x.sum(), y.sum()
    sum_xy, sum_xx = (x * y).sum(), (x * x).sum()

    denominator = n * sum_xx - sum_x * sum_x
    if denominator == 0:
        denominator = 1.0

    slope = (n * sum_xy - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n
    return float(slope), float(intercept)


def r_squared(actual: Sequence[float], fitted: Sequence[float]) -> float:
    """Coefficient of determination; 1 for a constant series, 0 when not finite."""
    a = np.asarray(actual, dtype=float)
    f = np.asarray(fitted, dtype=float)
    if a.size == 0:
        return 0.0

    ss_tot = float(((a - a.mean()) ** 2).sum())
    if ss_tot == 0:
        return 1.0

    ss_res = float(((a - f) ** 2).sum())
    value = 1 - ss_res / ss_tot
    return value if math.isfinite(value) else 0.0


def accuracy_metrics(
    actual: Sequence[float],
    predicted: Sequence[float],
    n_params: Optional[int] = None
) -> AccuracyMetrics:
    """
    Compute MAE, RMSE, MAPE and SMAPE (plus AIC/BIC when n_params is given).

    MAPE skips zero actuals and SMAPE skips points where both values are zero.

    Args:
        actual: Observed values
        predicted: Model values aligned with `actual`
        n_params: Number of fitted parameters for the information criteria

    Returns:
        AccuracyMetrics (all zeros for empty input)
    """
    n = min(len(actual), len(predicted))
    if n == 0:
        return AccuracyMetrics()

    a = np.asarray(actual[:n], dtype=float)
    p = np.asarray(predicted[:n], dtype=float)
    errors = a - p

    mae = float(np.mean(np.abs(errors)))
    rmse = float(np.sqrt(np.mean(errors ** 2)))

    nonzero = a != 0
    mape = float(np.mean(np.abs(errors[nonzero] / a[nonzero])) * 100) if nonzero.any() else 0.0

    denom = np.abs(a) + np.abs(p)
    valid = denom != 0
    smape = float(np.mean(2 * np.abs(errors[valid]) / denom[valid]) * 100) if valid.any() else 0.0

    aic = bic = None
    if n_params is not None:
        log_rmse = math.log(max(rmse, 1e-10))
        aic = 2 * n_params + 2 * n * log_rmse
        bic = n_params * math.log(n) + 2 * n * log_rmse

    return AccuracyMetrics(mae=mae, rmse=rmse, mape=mape, smape=smape, aic=aic, bic=bic)


def _finite_or_zero(value) -> float:
    value = float(value)
    return value if math.isfinite(value) else 0.0


def residual_diagnostics(residuals: Sequence[float]) -> ResidualDiagnostics:
    """Ljung-Box Q, Jarque-Bera and ARCH LM statistics for model residuals."""
    resid = np.asarray(residuals, dtype=float)
    resid = resid[np.isfinite(resid)]
    diagnostics = {'ljung_box': 0.0, 'jarque_bera': 0.0, 'arch': 0.0}

    if resid.size < 4 or np.allclose(resid, resid[0]):
        return ResidualDiagnostics(**diagnostics)

    from statsmodels.stats.diagnostic import acorr_ljungbox, het_arch

    lags = max(1, min(10, resid.size // 2 - 1))

    try:
        table = acorr_ljungbox(resid, lags=[lags], return_df=True)
        diagnostics['ljung_box'] = _finite_or_zero(table['lb_stat'].iloc[-1])
    except (ValueError, np.linalg.LinAlgError):
        pass

    try:
        diagnostics['jarque_bera'] = _finite_or_zero(stats.jarque_bera(resid).statistic)
    except ValueError:
        pass

    try:
        diagnostics['arch'] = _finite_or_zero(het_arch(resid, nlags=lags)[0])
    except (ValueError, np.linalg.LinAlgError, IndexError):
        pass

    return ResidualDiagnostics(**diagnostics)
