"""
Shared helpers for the regression exercises: least squares, design
matrices and column checks on simulated agent tables.
"""

import numpy as np


def ols_fit(X, y):
    """
    Least-squares coefficients, residuals and classical standard errors.

    Coefficients come from np.linalg.lstsq; the covariance s2 * (X'X)^+
    uses the pseudo-inverse so an exactly collinear design still returns.
    Returns the tuple (b, se, e, s2), with s2 = e'e / (n - k).
    Raises ValueError unless n > k.
    """
    n, k = X.shape
    if n <= k:
        raise ValueError(f"need more observations than regressors, got n={n}, k={k}")
    b = np.linalg.lstsq(X, y, rcond=None)[0]
    e = y - X @ b
    s2 = (e @ e) / (n - k)
    se = np.sqrt(np.diag(s2 * np.linalg.pinv(X.T @ X)))
    return b, se, e, s2


def add_const(x):
    """Design matrix [1, x]; a 1-d x becomes a single column."""
    x = np.atleast_2d(x).T if x.ndim == 1 else x
    return np.column_stack([np.ones(x.shape[0]), x])


def r_squared(y, e):
    """Centered R^2 = 1 - e'e / sum((y - ybar)^2)."""
    tss = np.sum((y - np.mean(y)) ** 2)
    return 1 - (e @ e) / tss


def require_columns(table, *names):
    """Raise ValueError naming the first column missing from `table`."""
    for name in names:
        if name not in table.columns:
            raise ValueError(f"table requires column '{name}'")


def participants(table):
    """Rows of a simulated table with p1 == True."""
    require_columns(table, "p1")
    return table[table["p1"].to_numpy(dtype=bool)]
