import warnings
import torch

from .line_search import Bisection, LinesearchMethod
from .method import Method, NextDirectioner, Needs

__all__ = ['Newton']

_max_modifications = 20
_min_tau = 1e-3


class Newton(Method, NextDirectioner):
    """Newton's method with a modified Cholesky factorization.

    The search direction solves ``(H + tau * I) d = -g``. `tau` starts at 0
    when the diagonal of the Hessian is positive and at
    ``1e-3 - min(diag(H))`` otherwise, and is multiplied by `increase` until
    the matrix is positive definite ("Cholesky with added multiple of the
    identity", Nocedal & Wright, 2006; Algorithm 3.3). If every modification
    fails the steepest descent direction is used.

    Parameters
    ----------
    linesearcher : Linesearcher, optional
        Defaults to :class:`Bisection`.
    increase : float
        Growth factor of `tau`, larger than 1.
    """
    needs = Needs(gradient=True, hessian=True)

    def __init__(self, linesearcher=None, increase=5.):
        if linesearcher is None:
            linesearcher = Bisection()
        if increase <= 1:
            raise ValueError('increase must be larger than 1.')
        self.linesearcher = linesearcher
        self.increase = increase

    def init(self, loc):
        self._ls = LinesearchMethod(self.linesearcher, self, self.needs)
        return self._ls.init(loc)

    def iterate(self, loc):
        return self._ls.iterate(loc)

    def init_direction(self, loc, d):
        return self.next_direction(loc, d)

    def next_direction(self, loc, d):
        hess, g = loc.hess, loc.grad
        min_diag = float(hess.diagonal().min())
        tau = 0. if min_diag > 0 else _min_tau - min_diag
        I = None
        for _ in range(_max_modifications):
            if tau == 0:
                H = hess
            else:
                if I is None:
                    I = torch.eye(hess.shape[0], dtype=hess.dtype,
                                  device=hess.device)
                H = torch.add(hess, I, alpha=tau)
            L, info = torch.linalg.cholesky_ex(H)
            if info == 0:
                d.copy_(torch.cholesky_solve(g.neg().unsqueeze(1), L).squeeze(1))
                return 1.
            tau = max(self.increase * tau, _min_tau)

        warnings.warn('Hessian modification failed; using the steepest '
                      'descent direction.')
        torch.neg(g, out=d)
        return 1.
