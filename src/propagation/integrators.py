"""
===============================================================================
ORBITDYN - Dormand-Prince 5(4) Integrator
===============================================================================
Adaptive Dormand-Prince 5(4) pair driven one step at a time through
``scipy.integrate.RK45``, so that the propagator can search events in each
accepted step before taking the next one.

Only the first ``n_controlled`` components take part in the error control
(their absolute tolerance is the one configured); the remaining ones, the
variational equations, get an infinite tolerance and follow the steps
chosen for the orbit.

Between step ends, states come from the solver's dense output (the
quartic interpolant of the pair).
===============================================================================
"""

import logging
from typing import Callable

import numpy as np
from scipy.integrate import RK45

from core.errors import PropagationError

logger = logging.getLogger(__name__)

Derivatives = Callable[[float, np.ndarray], np.ndarray]


class DormandPrince54Integrator:
    """
    Parameters
    ----------
    min_step, max_step : float
        Bounds on the step size magnitude (s). A step shorter than
        ``min_step`` is an error unless it ends the propagation.
    abs_tol : float or np.ndarray
        Absolute tolerance, scalar or one value per controlled component.
    rel_tol : float
        Relative tolerance.
    initial_step : float, optional
        First trial step; estimated by the solver when omitted.
    """

    def __init__(self, min_step: float, max_step: float, abs_tol=1.0e-3,
                 rel_tol: float = 1.0e-10, initial_step: float = None) -> None:
        if min_step <= 0.0 or max_step < min_step:
            raise ValueError(f"invalid step bounds [{min_step}, {max_step}]")
        self.min_step = float(min_step)
        self.max_step = float(max_step)
        self.abs_tol = abs_tol
        self.rel_tol = float(rel_tol)
        self.initial_step = initial_step
        self.n_controlled = None

    def absolute_tolerances(self, n: int) -> np.ndarray:
        """Per-component absolute tolerances for a vector of size *n*."""
        controlled = n if self.n_controlled is None else min(n, self.n_controlled)
        atol = np.full(n, np.inf)
        given = np.asarray(self.abs_tol, dtype=np.float64)
        atol[:controlled] = given if given.ndim == 0 else given[:controlled]
        return atol

    def create_solver(self, f: Derivatives, t0: float, y0: np.ndarray, t_bound: float) -> RK45:
        """Solver stepping from (t0, y0) towards *t_bound*, backward if t_bound < t0."""
        first_step = None
        if self.initial_step is not None:
            first_step = min(abs(self.initial_step), self.max_step, abs(t_bound - t0))
        return RK45(f, t0, np.array(y0, dtype=np.float64), t_bound,
                    max_step=self.max_step, rtol=self.rel_tol,
                    atol=self.absolute_tolerances(len(y0)), first_step=first_step)

    def step(self, solver: RK45):
        """
        Advance *solver* by one accepted step.

        Returns
        -------
        DenseOutput
            Interpolant over the step just taken.

        Raises
        ------
        PropagationError
            If the solver fails or the step falls below ``min_step``.
        """
        t_old = solver.t
        message = solver.step()
        if solver.status == 'failed':
            raise PropagationError(f"integration failed at t={t_old:.3f} s: {message}")
        if abs(solver.t - t_old) < self.min_step and solver.t != solver.t_bound:
            raise PropagationError(
                f"integration step {abs(solver.t - t_old):.3e} s at t={t_old:.3f} s is below "
                f"the minimum step {self.min_step} s")
        logger.debug("RK45 step %.3f -> %.3f s (%d evaluations)", t_old, solver.t, solver.nfev)
        return solver.dense_output()
