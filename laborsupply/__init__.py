"""
laborsupply -- simulation of a static labor-supply model and from-scratch
regressions that recover its preference parameters.

Each sub-module covers one step or one identification problem, using only
numpy / scipy / pandas linear algebra.
"""

from .params import Preferences, TaxRegime, SimulationParams
from .solver import solve_hours_step, solve_hours, foc_residual
from .simulate import simulate_cross_section, to_agents, Agent
from .utils import ols_fit, add_const
from . import ols
from . import selection
from . import panel
from . import iv_2sls
