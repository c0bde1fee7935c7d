"""
Hours choice -- Newton solver for the labor-supply first-order condition

An agent facing net wage w (already multiplied by rho) and non-wage
resources R = mu - r - beta0 chooses hours h to satisfy

    w * (w*h + R)^eta = beta * h^gamma.

The root of f(h) = w*(w*h + R)^eta - beta*h^gamma is found by repeated
Newton steps. Two clamps after each step keep the consumption argument
w*h + R and the hours h strictly positive, so no fractional power is ever
taken of a non-positive number.
"""

import logging

import numpy as np

_log = logging.getLogger("laborsupply")

# Distance kept from the boundaries w*h + R = 0 and h = 0.
EPSILON = 1e-4


def _as_output(x):
    """Return a Python float for 0-d results, the array otherwise."""
    return float(x) if np.ndim(x) == 0 else x


def _check_inputs(h, w, R, eta, gamma, beta):
    if np.any(w <= 0):
        raise ValueError(f"wage must be positive, got min {np.min(w)}")
    if eta == -1:
        raise ValueError("eta must differ from -1")
    if gamma == 0:
        raise ValueError("gamma must be non-zero")
    if np.any(beta <= 0):
        raise ValueError(f"beta must be positive, got min {np.min(beta)}")
    if np.any(h <= 0):
        raise ValueError(f"hours must be positive (h == 0 included), got min {np.min(h)}")
    if np.any(w * h + R <= 0):
        raise ValueError("w*h + R must be positive before taking powers")


def foc_residual(h, w, R, eta, gamma, beta):
    """
    First-order condition residual f(h) = w*(w*h + R)^eta - beta*h^gamma.

    Positive values mean the agent would like to work more, negative values
    less. Zero at the interior optimum.
    """
    h = np.asarray(h, dtype=float)
    w = np.asarray(w, dtype=float)
    return _as_output(w * (w * h + R) ** eta - beta * h ** gamma)


def solve_hours_step(h, w, R, eta, gamma, beta):
    """
    One damped Newton step on the first-order condition.

    Parameters
    ----------
    h : float or ndarray
        Current hours, strictly positive with w*h + R > 0.
    w : float or ndarray
        Net wage rho * exp(lw), strictly positive.
    R : float or ndarray
        Non-wage resources mu - r - beta0 (any sign).
    eta : float
        Consumption curvature (negative).
    gamma : float
        Hours curvature (positive).
    beta : float or ndarray
        Disutility scale, scalar or one value per agent.

    Returns
    -------
    float or ndarray
        Updated hours. After the step:
          1. if w*h' + R <= 0 then h' = -R/w + EPSILON
          2. if h' < 0 then h' = EPSILON
        so w*h' + R > 0 and h' >= 0 hold on return. An exact landing on
        h' == 0 is not moved by clamp 2 and is rejected by the next call.
    """
    h = np.asarray(h, dtype=float)
    w = np.asarray(w, dtype=float)
    R = np.asarray(R, dtype=float)
    beta = np.asarray(beta, dtype=float)
    _check_inputs(h, w, R, eta, gamma, beta)

    c = w * h + R
    f = w * c ** eta - beta * h ** gamma
    df = eta * w ** 2 * c ** (eta - 1) - gamma * beta * h ** (gamma - 1)
    h_next = h - f / df

    h_next = np.where(w * h_next + R <= 0, -R / w + EPSILON, h_next)
    # h_next == 0.0 exactly passes clamp 2; the next entry check rejects it.
    h_next = np.where(h_next < 0, EPSILON, h_next)
    return _as_output(h_next)


def solve_hours(h0, w, R, eta, gamma, beta, n_iter=30, tol=1e-8):
    """
    Iterate the Newton step a fixed number of times.

    The loop always runs `n_iter` steps; convergence is checked once at the
    end. Agents whose relative residual |f| / (beta*h^gamma) exceeds `tol`
    are flagged rather than rejected.

    Parameters
    ----------
    h0 : float or ndarray
        Starting hours (see `solve_hours_step` for the admissible region).
    w, R, eta, gamma, beta :
        As in `solve_hours_step`.
    n_iter : int
        Number of Newton steps.
    tol : float
        Relative residual tolerance for the `converged` flag.

    Returns
    -------
    dict with keys:
        h         : hours after n_iter steps
        residual  : relative FOC residual at h
        converged : bool (array), residual <= tol
    """
    if n_iter < 1:
        raise ValueError(f"n_iter must be at least 1, got {n_iter}")

    h = h0
    for _ in range(n_iter):
        h = solve_hours_step(h, w, R, eta, gamma, beta)

    residual = np.abs(foc_residual(h, w, R, eta, gamma, beta)) / (
        np.asarray(beta, dtype=float) * np.asarray(h, dtype=float) ** gamma
    )
    converged = residual <= tol

    n_bad = int(np.size(converged) - np.count_nonzero(converged))
    if n_bad:
        _log.warning(
            "%d of %d agents did not converge after %d Newton steps "
            "(max relative residual %.3e)",
            n_bad, np.size(converged), n_iter, np.max(residual),
        )
    return dict(h=h, residual=_as_output(residual),
                converged=converged if np.ndim(converged) else bool(converged))
