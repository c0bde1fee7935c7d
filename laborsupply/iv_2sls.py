"""
Instrumental Variables (IV / 2SLS)

With per-agent betai the error term log(betai) in
    lw = -eta*log(c) + gamma*log(h) + log(betai)
is correlated with consumption and hours. Controlling for X removes the
part of log(betai) that loads on X; the remaining noise is independent of
the instrument Z, which moves non-labor income (and through it c and h)
but not wages or preferences. Z and Z^2 instrument the two endogenous
regressors.
"""

import numpy as np

from .utils import ols_fit, add_const, participants, require_columns
from .ols import column


def first_stage(Z, X_endog):
    """
    First stage of 2SLS: regress each endogenous column on the instruments.

    Parameters
    ----------
    Z : ndarray, shape (n, m)
        Instrument matrix (constant, exogenous controls, excluded instruments).
    X_endog : ndarray, shape (n,) or (n, p)
        Endogenous regressor(s).

    Returns
    -------
    dict with keys:
        X_hat     : fitted values, shape (n, p)
        gamma     : first-stage coefficients, shape (m, p)
        residuals : first-stage residuals, shape (n, p)
        r2        : first-stage R^2 for each endogenous column
    """
    X_endog = np.asarray(X_endog, dtype=float)
    X_endog = X_endog[:, None] if X_endog.ndim == 1 else X_endog
    fits = [ols_fit(Z, X_endog[:, j]) for j in range(X_endog.shape[1])]
    coefs = np.column_stack([f[0] for f in fits])
    resid = np.column_stack([f[2] for f in fits])
    tss = ((X_endog - X_endog.mean(axis=0)) ** 2).sum(axis=0)
    return dict(
        X_hat=Z @ coefs,
        gamma=coefs,
        residuals=resid,
        r2=1 - (resid ** 2).sum(axis=0) / tss,
    )


def second_stage(X_hat, X_actual, y):
    """
    Second stage of 2SLS with standard errors built from structural residuals.

    Parameters
    ----------
    X_hat : ndarray, shape (n, k)
        Full second-stage design (constant, exogenous, fitted endogenous).
    X_actual : ndarray, shape (n, k)
        Same design with the actual endogenous columns.
    y : ndarray, shape (n,)

    Returns
    -------
    dict with keys:
        beta      : 2SLS coefficients
        se_hom    : homoskedastic SEs
        se_robust : HC1 robust SEs
        residuals : y - X_actual @ beta
    """
    n, k = X_hat.shape
    b = ols_fit(X_hat, y)[0]

    # residuals use actual X, not X_hat
    e = y - X_actual @ b
    sigma2 = (e @ e) / (n - k)
    bread = np.linalg.pinv(X_hat.T @ X_hat)
    se_hom = np.sqrt(np.diag(sigma2 * bread))

    meat = (X_hat.T * e ** 2) @ X_hat
    V_rob = bread @ meat @ bread * (n / (n - k))
    se_rob = np.sqrt(np.diag(V_rob))

    return dict(beta=b, se_hom=se_hom, se_robust=se_rob, residuals=e)


def estimate_2sls(Z_excluded, X_endog, y, X_exog=None):
    """
    Full 2SLS pipeline.

    Parameters
    ----------
    Z_excluded : ndarray, shape (n,) or (n, m)
        Excluded instruments.
    X_endog : ndarray, shape (n,) or (n, p)
        Endogenous regressors, m >= p.
    y : ndarray, shape (n,)
    X_exog : ndarray, shape (n,) or (n, q), or None
        Exogenous controls, used in both stages. A constant is always added.

    Returns
    -------
    dict with keys:
        beta, se_hom, se_robust, residuals : from second_stage, ordered as
            [const, exogenous..., endogenous...]
        ols_beta    : OLS coefficients on the same design, for comparison
        first_stage : first_stage output
    """
    n = len(y)
    Z_excluded = np.asarray(Z_excluded, dtype=float).reshape(n, -1)
    X_endog = np.asarray(X_endog, dtype=float).reshape(n, -1)
    if Z_excluded.shape[1] < X_endog.shape[1]:
        raise ValueError(
            f"need at least as many instruments as endogenous regressors, "
            f"got {Z_excluded.shape[1]} < {X_endog.shape[1]}"
        )
    exog = (np.ones((n, 1)) if X_exog is None
            else add_const(np.asarray(X_exog, dtype=float)))

    Z = np.column_stack([exog, Z_excluded])
    fs = first_stage(Z, X_endog)
    X_actual = np.column_stack([exog, X_endog])
    X_hat = np.column_stack([exog, fs["X_hat"]])
    ss = second_stage(X_hat, X_actual, y)

    return dict(
        beta=ss["beta"],
        se_hom=ss["se_hom"],
        se_robust=ss["se_robust"],
        residuals=ss["residuals"],
        ols_beta=ols_fit(X_actual, y)[0],
        first_stage=fs,
    )


def instrument_labor_supply(table):
    """
    2SLS of lw on log(c), log(h) among participants, controlling for X and
    instrumenting with Z and Z^2.

    Returns
    -------
    dict with the keys of `estimate_2sls` plus eta_hat, gamma_hat,
    eta_ols, gamma_ols, n.
    """
    require_columns(table, "Z")
    sample = participants(table)
    z = column(sample, "Z")
    res = estimate_2sls(
        np.column_stack([z, z ** 2]),
        np.column_stack([column(sample, "log_c"), column(sample, "log_h")]),
        column(sample, "lw"),
        X_exog=column(sample, "X"),
    )
    res.update(
        eta_hat=-res["beta"][2],
        gamma_hat=res["beta"][3],
        eta_ols=-res["ols_beta"][2],
        gamma_ols=res["ols_beta"][3],
        n=len(sample),
    )
    return res
