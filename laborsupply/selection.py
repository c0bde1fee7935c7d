"""
Selection -- wages are only observed for participants

Agents with a low wage draw are more likely to stay out of work, so among
participants the wage shock is no longer mean zero given X and the OLS
wage equation lw ~ X is biased.

The grouped correction splits the sample into cells, measures the
participation share p_g in each cell, and adds the inverse Mills ratio
phi(Phi^{-1}(p_g)) / p_g as a control. Cells built on a variable that
moves participation but not wages (the instrument Z) identify the
correction separately from X.

Under the default parameters about nine in ten agents work and the naive
wage equation is already close to lb; the correction matters once the
fixed cost beta0 or the participation index moves more agents out.
"""

import numpy as np
import pandas as pd
from scipy import stats

from .utils import require_columns
from .ols import estimate, design, column


def inverse_mills_ratio(p):
    """
    Inverse Mills ratio implied by a participation probability.

    lambda(p) = phi(Phi^{-1}(p)) / p, with p clipped into (0, 1) so that
    cells where everybody (or nobody) works stay finite.

    Parameters
    ----------
    p : float or ndarray
        Participation probability.

    Returns
    -------
    float or ndarray
        Non-negative, decreasing in p, zero in the limit p -> 1.
    """
    p = np.clip(np.asarray(p, dtype=float), 1e-10, 1 - 1e-10)
    lam = stats.norm.pdf(stats.norm.ppf(p)) / p
    return float(lam) if lam.ndim == 0 else lam


def group_participation(table, by=("X",), n_bins=10):
    """
    Participation share and inverse Mills ratio by cell.

    Each variable in `by` is cut into `n_bins` quantile bins; cells are
    the combinations of bins.

    Parameters
    ----------
    table : pandas.DataFrame
        Output of simulate_cross_section.
    by : sequence of str
        Columns used to form cells.
    n_bins : int
        Number of quantile bins per variable.

    Returns
    -------
    pandas.DataFrame
        One row per agent: i, cell, share, imr.
    """
    if n_bins < 1:
        raise ValueError(f"n_bins must be at least 1, got {n_bins}")
    require_columns(table, "i", "p1", *by)

    bins = {
        f"bin_{name}": pd.qcut(table[name], n_bins, labels=False,
                               duplicates="drop").to_numpy()
        for name in by
    }
    cells = pd.DataFrame(bins).astype(str).agg("-".join, axis=1)
    share = (
        pd.Series(table["p1"].to_numpy(dtype=float))
        .groupby(cells.to_numpy())
        .transform("mean")
        .to_numpy()
    )
    return pd.DataFrame(dict(
        i=table["i"].to_numpy(),
        cell=cells.to_numpy(),
        share=share,
        imr=inverse_mills_ratio(share),
    ))


def estimate_wage_equation(table, by=("X", "Z"), n_bins=5):
    """
    Wage equation lw ~ X on participants, naive and selection-corrected.

    Parameters
    ----------
    table : pandas.DataFrame
        Output of simulate_cross_section (with Z when Z is in `by`).
    by, n_bins :
        Cell definition, passed to group_participation.

    Returns
    -------
    dict with keys:
        naive        : estimate dict for lw ~ const + X
        corrected    : estimate dict for lw ~ const + X + imr
        lb_naive     : naive coefficient on X
        lb_corrected : corrected coefficient on X
        cells        : output of group_participation
    """
    cells = group_participation(table, by=by, n_bins=n_bins)
    works = table["p1"].to_numpy(dtype=bool)
    sample = table[works].assign(imr=cells["imr"].to_numpy()[works])

    y = column(sample, "lw")
    naive = estimate(design(sample, ["X"]), y)
    corrected = estimate(design(sample, ["X", "imr"]), y)
    return dict(
        naive=naive,
        corrected=corrected,
        lb_naive=naive["beta"][1],
        lb_corrected=corrected["beta"][1],
        cells=cells,
    )
