"""
OLS -- recovering preferences from the first-order condition

Taking logs of the interior first-order condition
    rho*w * c^eta = betai * h^gamma
gives the estimating equation
    lw = -log(rho) - eta*log(c) + gamma*log(h) + log(betai).

With a common beta the regression of lw on log(c) and log(h) among
participants is exact. With per-agent betai, leaving log(betai) out
biases both slopes, since betai also moves c and h.
"""

import numpy as np

from .utils import ols_fit, add_const, r_squared, require_columns, participants


def column(table, name):
    """
    Fetch a regressor from a simulated table.

    Names of the form 'log_<col>' return np.log of column <col> unless the
    table already carries a column with that exact name.
    """
    if name in table.columns:
        return table[name].to_numpy(dtype=float)
    if name.startswith("log_"):
        require_columns(table, name[4:])
        return np.log(table[name[4:]].to_numpy(dtype=float))
    raise ValueError(f"table requires column '{name}'")


def design(table, names):
    """Constant plus the named regressors, as an (n, 1 + len(names)) matrix."""
    return add_const(np.column_stack([column(table, nm) for nm in names]))


def estimate(X, y):
    """
    OLS estimation: beta_hat = (X'X)^{-1} X'y.

    Parameters
    ----------
    X : ndarray, shape (n, k)
        Design matrix (include a constant column for intercept).
    y : ndarray, shape (n,)
        Outcome vector.

    Returns
    -------
    dict with keys:
        beta      : coefficient vector
        se        : standard errors (homoskedastic)
        residuals : OLS residuals
        s2        : estimated error variance
        fitted    : fitted values X @ beta
        r2        : R-squared
    """
    b, se, e, s2 = ols_fit(X, y)
    return dict(beta=b, se=se, residuals=e, s2=s2, fitted=X @ b,
                r2=r_squared(y, e))


def recover_preferences(table, controls=()):
    """
    Regress lw on log(c), log(h) and optional controls among participants.

    Parameters
    ----------
    table : pandas.DataFrame
        Output of simulate_cross_section.
    controls : sequence of str
        Extra regressors, e.g. ("log_betai",) or ("X",).

    Returns
    -------
    dict with the keys of `estimate` plus:
        names     : regressor names in coefficient order
        eta_hat   : minus the coefficient on log(c)
        gamma_hat : coefficient on log(h)
        n         : number of participants used
    """
    names = ["log_c", "log_h", *controls]
    sample = participants(table)
    res = estimate(design(sample, names), column(sample, "lw"))
    res.update(
        names=["const", *names],
        eta_hat=-res["beta"][1],
        gamma_hat=res["beta"][2],
        n=len(sample),
    )
    return res


def ovb_formula(X_included, omitted, beta_omitted):
    """
    Omitted variable bias of every coefficient in the short regression.

        b_short - b_long = delta * beta_omitted,
        delta = (X'X)^{-1} X' omitted

    Parameters
    ----------
    X_included : ndarray, shape (n, k)
        Design matrix of the short regression.
    omitted : ndarray, shape (n,)
        The left-out regressor.
    beta_omitted : float
        Its coefficient in the long regression.

    Returns
    -------
    ndarray, shape (k,)
        Additive bias of each short-regression coefficient.
    """
    delta = ols_fit(X_included, omitted)[0]
    return delta * beta_omitted


def omitted_heterogeneity(table):
    """
    Long vs short preference regressions on a heterogeneous-beta table.

    Returns
    -------
    dict with keys:
        long       : recover_preferences with log(betai) as a control
        short      : recover_preferences without it
        bias       : short minus long coefficients on [const, log c, log h]
        ovb        : the same bias predicted by ovb_formula
    """
    long_ = recover_preferences(table, controls=("log_betai",))
    short = recover_preferences(table)

    sample = participants(table)
    ovb = ovb_formula(design(sample, ["log_c", "log_h"]),
                      column(sample, "log_betai"), long_["beta"][3])
    return dict(
        long=long_,
        short=short,
        bias=short["beta"] - long_["beta"][:3],
        ovb=ovb,
    )
