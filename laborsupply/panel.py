"""
Panel data -- differencing out the individual disutility scale

The same agents are observed under several tax regimes. X, Z and betai
are drawn once and kept; wage and non-labor income shocks are new every
period. Because log(betai) is fixed within an agent, first differences
(two periods) or within-agent demeaning (any number of periods) remove it
from the estimating equation and recover -eta and gamma even when betai
is correlated with X.
"""

import numpy as np
import pandas as pd

from .params import TaxRegime
from .simulate import simulate_cross_section, _draw_betai
from .utils import ols_fit, add_const, require_columns
from .ols import estimate


def simulate_panel(params, taxes, rng=None):
    """
    Simulate one cross-section per tax regime for a fixed set of agents.

    Parameters
    ----------
    params : SimulationParams
        Settings shared by all periods. params.tax is ignored.
    taxes : sequence of TaxRegime
        One regime per period.
    rng : numpy.random.Generator or None
        Random source. Defaults to np.random.default_rng(params.seed).

    Returns
    -------
    pandas.DataFrame
        Stacked period tables with an extra column t = 0, 1, ...
    """
    if len(taxes) < 1:
        raise ValueError("need at least one tax regime")
    if rng is None:
        rng = np.random.default_rng(params.seed)

    n = params.n
    X = rng.normal(0, 1, n)
    Z = rng.normal(0, 1, n) if params.instrument else None
    betai = _draw_betai(X, rng) if params.heterogeneity else None

    periods = []
    for t, tax in enumerate(taxes):
        if not isinstance(tax, TaxRegime):
            tax = TaxRegime(**tax)
        period = simulate_cross_section(
            params.model_copy(update=dict(tax=tax)),
            X=X, Z=Z, betai=betai, rng=rng,
        )
        periods.append(period.assign(t=t))
    return pd.concat(periods, ignore_index=True)


def first_difference(before, after):
    """
    Join two period tables on agent id and difference the log FOC terms.

    Only agents who participate in both periods are kept.

    Returns
    -------
    pandas.DataFrame
        Columns i, d_lw, d_log_c, d_log_h.
    """
    cols = ["i", "lw", "c", "h", "p1"]
    require_columns(before, *cols)
    require_columns(after, *cols)

    both = pd.merge(before[cols], after[cols], on="i",
                    suffixes=("_0", "_1"), how="inner")
    both = both[both["p1_0"].to_numpy(dtype=bool)
                & both["p1_1"].to_numpy(dtype=bool)]
    return pd.DataFrame(dict(
        i=both["i"].to_numpy(),
        d_lw=(both["lw_1"] - both["lw_0"]).to_numpy(),
        d_log_c=np.log(both["c_1"].to_numpy()) - np.log(both["c_0"].to_numpy()),
        d_log_h=np.log(both["h_1"].to_numpy()) - np.log(both["h_0"].to_numpy()),
    ))


def estimate_first_difference(before, after):
    """
    Regress d_lw on d_log_c and d_log_h.

    The constant absorbs the change in -log(rho) between the two regimes.

    Returns
    -------
    dict with the keys of `estimate` plus eta_hat, gamma_hat, n.
    """
    diff = first_difference(before, after)
    X = add_const(np.column_stack([diff["d_log_c"], diff["d_log_h"]]))
    res = estimate(X, diff["d_lw"].to_numpy())
    res.update(eta_hat=-res["beta"][1], gamma_hat=res["beta"][2], n=len(diff))
    return res


def within_demean(y, X, unit_ids):
    """
    Demean y and X within each unit for fixed-effects estimation.

    Parameters
    ----------
    y : ndarray, shape (n,)
        Outcome vector (stacked panel).
    X : ndarray, shape (n,) or (n, k)
        Regressor(s) (stacked panel).
    unit_ids : ndarray, shape (n,)
        Unit identifiers for each observation.

    Returns
    -------
    dict with keys:
        y_demean : demeaned y
        X_demean : demeaned X, always 2-d
    """
    X = np.asarray(X, dtype=float)
    X = X[:, None] if X.ndim == 1 else X
    frame = pd.DataFrame(np.column_stack([y, X]))
    means = frame.groupby(np.asarray(unit_ids)).transform("mean").to_numpy()
    demeaned = frame.to_numpy() - means
    return dict(y_demean=demeaned[:, 0], X_demean=demeaned[:, 1:])


def clustered_se(X_dm, residuals, unit_ids):
    """
    Arellano (1987) clustered standard errors for the within estimator.

    V = (X'X)^{-1} B (X'X)^{-1} * G/(G-1) * (N-1)/(N-K),
    B = sum_g (X_g' e_g)(X_g' e_g)'.
    """
    unit_ids = np.asarray(unit_ids)
    N, K = X_dm.shape
    G = len(np.unique(unit_ids))
    if G < 2:
        raise ValueError("clustered SEs need at least two units")

    scores = pd.DataFrame(X_dm * residuals[:, None]).groupby(unit_ids).sum()
    B = scores.to_numpy().T @ scores.to_numpy()
    bread = np.linalg.pinv(X_dm.T @ X_dm)
    dof_corr = (G / (G - 1)) * ((N - 1) / (N - K))
    return np.sqrt(np.diag(bread @ B @ bread) * dof_corr)


def estimate_fe(y, X, unit_ids):
    """
    Fixed-effects (within) estimation with clustered standard errors.

    Parameters
    ----------
    y : ndarray, shape (n,)
    X : ndarray, shape (n,) or (n, k)
    unit_ids : ndarray, shape (n,)

    Returns
    -------
    dict with keys:
        beta_fe    : within coefficients, shape (k,)
        se_homosk  : homoskedastic SEs
        se_cluster : clustered SEs
        residuals  : within residuals
    """
    dm = within_demean(y, X, unit_ids)
    Xd, yd = dm["X_demean"], dm["y_demean"]
    b, se, e, _ = ols_fit(Xd, yd)
    return dict(
        beta_fe=b,
        se_homosk=se,
        se_cluster=clustered_se(Xd, e, unit_ids),
        residuals=e,
    )


def estimate_panel_fe(panel):
    """
    Within estimator of lw on log(c), log(h) for agents working every period.

    Period dummies absorb the -log(rho_t) term when the net-of-tax wage
    multiplier changes between periods.

    Returns
    -------
    dict with the keys of `estimate_fe` plus eta_hat, gamma_hat, n.
    """
    require_columns(panel, "i", "t", "lw", "c", "h", "p1")
    n_periods = panel["t"].nunique()
    always = panel.groupby("i")["p1"].transform("sum").to_numpy() == n_periods
    sample = panel[always]

    t = sample["t"].to_numpy()
    dummies = [(t == s).astype(float) for s in np.unique(t)[1:]]
    X = np.column_stack([np.log(sample["c"].to_numpy()),
                         np.log(sample["h"].to_numpy()), *dummies])
    res = estimate_fe(sample["lw"].to_numpy(), X, sample["i"].to_numpy())
    res.update(eta_hat=-res["beta_fe"][0], gamma_hat=res["beta_fe"][1],
               n=sample["i"].nunique())
    return res
