"""
Cross-section simulation of the static labor-supply model

Draws covariates and shocks for N agents, derives wages, non-labor income
and disutility scales, solves every agent's hours with the Newton solver,
and derives consumption, the two utilities and participation.

The table is assembled once from finished columns; nothing is written back
into it afterwards.
"""

from typing import NamedTuple, Optional

import numpy as np
import pandas as pd

from .params import SimulationParams
from .solver import solve_hours


class Agent(NamedTuple):
    """One simulated agent, read-only."""
    i: int
    X: float
    lw: float
    w: float
    mu: float
    betai: float
    h: float
    c: float
    u1: float
    u0: float
    p1: bool
    converged: bool
    Z: Optional[float] = None


def _supplied(name, values, n):
    values = np.asarray(values, dtype=float)
    if values.shape != (n,):
        raise ValueError(
            f"{name} must have shape ({n},), got {values.shape}"
        )
    return values


def _draw_betai(X, rng):
    """Per-agent disutility scale betai = exp(0.5*X + 0.1*e_b)."""
    return np.exp(0.5 * X + 0.1 * rng.normal(0, 1, len(X)))


def simulate_cross_section(params=None, X=None, Z=None, betai=None, rng=None):
    """
    Simulate one cross-section of agents.

    DGP:
        X      ~ N(0, 1)
        Z      ~ N(0, 1)                              (instrument only)
        lw     = lb*X + 0.2*e_w,         w = exp(lw)
        mu     = exp(0.3*X [+ 0.4*Z] + 0.2*e_mu)
        betai  = exp(0.5*X + 0.1*e_b)                 (heterogeneity only)
        h      = Newton solution of rho*w*(rho*w*h + R)^eta = betai*h^gamma
                 with R = mu - r - beta0
        c      = rho*w*h - r + mu - beta0
        u1     = c^(1+eta)/(1+eta) - betai*h^(1+gamma)/(1+gamma)
        u0     = mu^(1+eta)/(1+eta)
        p1     = u1 > u0

    Parameters
    ----------
    params : SimulationParams or None
        Model and simulation settings. Defaults to SimulationParams().
    X : ndarray, shape (n,) or None
        Covariate to reuse (e.g. across panel periods). Drawn if None.
    Z : ndarray, shape (n,) or None
        Instrument to reuse. Only allowed when params.instrument is set.
    betai : ndarray, shape (n,) or None
        Disutility scales to reuse. Only allowed when params.heterogeneity
        is set.
    rng : numpy.random.Generator or None
        Random source. Defaults to np.random.default_rng(params.seed).

    Returns
    -------
    pandas.DataFrame
        One row per agent with columns
        i, X, [Z], lw, w, mu, betai, h, c, u1, u0, p1, converged.
    """
    if params is None:
        params = SimulationParams()
    if rng is None:
        rng = np.random.default_rng(params.seed)
    if Z is not None and not params.instrument:
        raise ValueError("Z was supplied but params.instrument is False")
    if betai is not None and not params.heterogeneity:
        raise ValueError("betai was supplied but params.heterogeneity is False")

    n = params.n
    prefs = params.preferences
    tax = params.tax

    # --- draws ---
    X = _supplied("X", X, n) if X is not None else rng.normal(0, 1, n)
    if params.instrument:
        Z = _supplied("Z", Z, n) if Z is not None else rng.normal(0, 1, n)

    lw = params.lb * X + 0.2 * rng.normal(0, 1, n)
    w = np.exp(lw)

    log_mu = 0.3 * X + 0.2 * rng.normal(0, 1, n)
    if params.instrument:
        log_mu = log_mu + 0.4 * Z
    mu = np.exp(log_mu)

    if params.heterogeneity:
        if betai is None:
            betai = _draw_betai(X, rng)
        else:
            betai = _supplied("betai", betai, n)
            if np.any(betai <= 0):
                raise ValueError("betai must be strictly positive")
    else:
        betai = np.full(n, prefs.beta)

    # --- hours ---
    wage = tax.rho * w
    R = mu - tax.r - prefs.beta0
    h0 = np.maximum(-R, 0) / wage + 1
    sol = solve_hours(h0, wage, R, prefs.eta, prefs.gamma, betai,
                      n_iter=params.n_iter, tol=params.tol)
    h = sol["h"]

    # --- outcomes ---
    c = np.where(h > 0, wage * h + R, mu - tax.r)
    eta, gamma = prefs.eta, prefs.gamma
    u1 = c ** (1 + eta) / (1 + eta) - betai * h ** (1 + gamma) / (1 + gamma)
    u0 = mu ** (1 + eta) / (1 + eta)

    columns = dict(i=np.arange(n), X=X)
    if params.instrument:
        columns["Z"] = Z
    columns.update(
        lw=lw, w=w, mu=mu, betai=betai, h=h, c=c,
        u1=u1, u0=u0, p1=u1 > u0, converged=sol["converged"],
    )
    return pd.DataFrame(columns)


def to_agents(table):
    """Yield the rows of a simulated table as immutable Agent records."""
    has_z = "Z" in table.columns
    for row in table.to_dict("records"):
        yield Agent(
            i=int(row["i"]),
            X=row["X"],
            lw=row["lw"],
            w=row["w"],
            mu=row["mu"],
            betai=row["betai"],
            h=row["h"],
            c=row["c"],
            u1=row["u1"],
            u0=row["u0"],
            p1=bool(row["p1"]),
            converged=bool(row["converged"]),
            Z=row["Z"] if has_z else None,
        )
