from __future__ import annotations

from typing import Callable, Optional, Tuple

import numpy as np

from .linalg import clip_to_simplex


def refine_slsqp(
    objective: Callable[[np.ndarray], float],
    w0: np.ndarray,
    Aeq: Optional[np.ndarray] = None,
    beq: Optional[np.ndarray] = None,
    maxiter: int = 300,
) -> Tuple[np.ndarray, bool]:
    """
    SLSQP polish on the long-only, fully invested simplex.
    Minimizes objective; extra equality rows (Aeq w = beq) are optional.
    Returns the projected candidate and the solver's success flag.
    """

    from scipy.optimize import Bounds, LinearConstraint, minimize

    n = w0.size
    cons = [LinearConstraint(np.ones((1, n)), lb=1.0, ub=1.0)]
    if Aeq is not None and beq is not None:
        cons.append(LinearConstraint(np.atleast_2d(Aeq), lb=beq, ub=beq))

    res = minimize(
        objective,
        clip_to_simplex(w0),
        method="SLSQP",
        bounds=Bounds(0.0, 1.0),
        constraints=cons,
        options=dict(maxiter=maxiter, ftol=1e-12, disp=False),
    )
    w = clip_to_simplex(res.x if res.success else w0)
    return w, bool(res.success)
