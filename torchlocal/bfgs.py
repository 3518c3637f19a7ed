from abc import ABC, abstractmethod
import torch

from .line_search import Bisection, LinesearchMethod
from .method import Method, NextDirectioner, Needs

__all__ = ['HessianUpdateStrategy', 'InverseBFGSUpdate', 'LimitedMemoryUpdate',
           'BFGS', 'LBFGS']


class HessianUpdateStrategy(ABC):
    def __init__(self):
        self.n_updates = 0

    @abstractmethod
    def solve(self, grad):
        pass

    @abstractmethod
    def _update(self, s, y, rho_inv):
        pass

    def update(self, s, y):
        rho_inv = y.dot(s)
        eps = torch.finfo(s.dtype).eps
        if not rho_inv > eps * s.norm() * y.norm():
            # curvature is not positive; do not update
            return False
        self._update(s, y, rho_inv)
        self.n_updates += 1
        return True


class LimitedMemoryUpdate(HessianUpdateStrategy):
    """Inverse Hessian of L-BFGS, kept as the last `history_size` pairs
    ``(s, y)`` and applied with the two-loop recursion."""
    def __init__(self, x, history_size=15):
        super().__init__()
        self.y = []
        self.s = []
        self.rho = []
        self.H_diag = 1.
        self.alpha = x.new_empty(history_size)
        self.history_size = history_size

    def solve(self, grad):
        mem_size = len(self.y)
        d = grad.neg()
        for i in reversed(range(mem_size)):
            self.alpha[i] = self.s[i].dot(d) * self.rho[i]
            d.add_(self.y[i], alpha=-self.alpha[i])
        d.mul_(self.H_diag)
        for i in range(mem_size):
            beta_i = self.y[i].dot(d) * self.rho[i]
            d.add_(self.s[i], alpha=self.alpha[i] - beta_i)

        return d

    def _update(self, s, y, rho_inv):
        if len(self.y) == self.history_size:
            self.y.pop(0)
            self.s.pop(0)
            self.rho.pop(0)
        self.y.append(y)
        self.s.append(s)
        self.rho.append(rho_inv.reciprocal())
        self.H_diag = rho_inv / y.dot(y)


class InverseBFGSUpdate(HessianUpdateStrategy):
    """Dense BFGS approximation of the inverse Hessian."""
    def __init__(self, x):
        super().__init__()
        self.I = torch.eye(x.numel(), device=x.device, dtype=x.dtype)
        self.H = self.I.clone()

    def solve(self, grad):
        return torch.matmul(self.H, grad.neg())

    def _update(self, s, y, rho_inv):
        rho = rho_inv.reciprocal()
        if self.n_updates == 0:
            # scale the initial approximation before the first update
            # (Nocedal & Wright, 2006; eq. 6.20)
            self.H.mul_(rho_inv / y.dot(y))
        R = torch.addr(self.I, s, y, alpha=-rho)
        torch.addr(
            torch.linalg.multi_dot((R, self.H, R.t())),
            s, s, alpha=rho, out=self.H)


class _QuasiNewton(Method, NextDirectioner):
    needs = Needs(gradient=True, hessian=False)

    def __init__(self, linesearcher=None):
        if linesearcher is None:
            linesearcher = Bisection()
        self.linesearcher = linesearcher

    @abstractmethod
    def _new_hessian(self, x):
        pass

    def init(self, loc):
        self._ls = LinesearchMethod(self.linesearcher, self, self.needs)
        return self._ls.init(loc)

    def iterate(self, loc):
        return self._ls.iterate(loc)

    def init_direction(self, loc, d):
        self.hess = self._new_hessian(loc.x)
        self.x_prev = loc.x.clone()
        self.g_prev = loc.grad.clone()
        torch.neg(loc.grad, out=d)
        return min(1., float(loc.grad.norm(p=1).reciprocal()))

    def next_direction(self, loc, d):
        s = loc.x.sub(self.x_prev)
        y = loc.grad.sub(self.g_prev)
        self.hess.update(s, y)
        d.copy_(self.hess.solve(loc.grad))
        self.x_prev.copy_(loc.x)
        self.g_prev.copy_(loc.grad)
        return 1.


class BFGS(_QuasiNewton):
    """Broyden-Fletcher-Goldfarb-Shanno quasi-Newton method.

    A dense approximation of the inverse Hessian is updated from every
    accepted step; updates with non-positive curvature ``s.y`` are skipped
    so the approximation stays positive definite.

    Parameters
    ----------
    linesearcher : Linesearcher, optional
        Defaults to :class:`Bisection`.
    """
    def _new_hessian(self, x):
        return InverseBFGSUpdate(x)


class LBFGS(_QuasiNewton):
    """Limited-memory BFGS.

    Only the last `history_size` step and gradient-difference pairs are
    kept, so memory grows linearly with the dimension.

    Parameters
    ----------
    linesearcher : Linesearcher, optional
        Defaults to :class:`Bisection`.
    history_size : int
        Number of stored pairs.
    """
    def __init__(self, linesearcher=None, history_size=15):
        super().__init__(linesearcher)
        if history_size < 1:
            raise ValueError('history_size must be positive.')
        self.history_size = history_size

    def _new_hessian(self, x):
        return LimitedMemoryUpdate(x, self.history_size)
