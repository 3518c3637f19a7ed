import math
import torch

from .line_search import Bisection, FirstOrderStepSize, LinesearchMethod
from .method import Method, NextDirectioner, Needs

__all__ = ['CG', 'FletcherReeves', 'HestenesStiefel', 'PolakRibierePolyak',
           'DaiYuan', 'HagerZhang']

dot = lambda u,v: torch.dot(u.view(-1), v.view(-1))


# =============================
#     Beta formulas
# =============================
# Each variant computes the scalar beta of the update
#     d_k = -g_k + beta_k * d_{k-1}
# from the current gradient and the previous gradient and direction.
# References are to Hager & Zhang, "A survey of nonlinear conjugate
# gradient methods" (2006). Scalars stay tensors until the end so that a
# vanishing denominator gives inf/NaN (and a restart) instead of raising.


class FletcherReeves(object):
    """beta = |g_k|^2 / |g_{k-1}|^2"""
    def init(self, loc):
        pass

    def beta(self, g, g_prev, d_prev):
        return float(dot(g, g) / dot(g_prev, g_prev))


class HestenesStiefel(object):
    """beta = g_k.y / d_{k-1}.y  with  y = g_k - g_{k-1}"""
    def init(self, loc):
        pass

    def beta(self, g, g_prev, d_prev):
        y = g - g_prev
        return float(dot(g, y) / dot(d_prev, y))


class PolakRibierePolyak(object):
    """beta = max(0, g_k.y / |g_{k-1}|^2)"""
    def init(self, loc):
        pass

    def beta(self, g, g_prev, d_prev):
        y = g - g_prev
        beta = float(dot(g, y) / dot(g_prev, g_prev))
        return max(0., beta)


class DaiYuan(object):
    """beta = |g_k|^2 / d_{k-1}.y"""
    def init(self, loc):
        pass

    def beta(self, g, g_prev, d_prev):
        y = g - g_prev
        return float(dot(g, g) / dot(d_prev, y))


class HagerZhang(object):
    """Hager-Zhang beta with the lower bound of CG_DESCENT.

    beta = (y - theta * d_{k-1} |y|^2 / d_{k-1}.y).g_k / d_{k-1}.y, bounded
    below by ``-1 / (|d_{k-1}| min(eta, |g_{k-1}|))``.
    """
    def __init__(self, eta=0.01, theta=2.):
        self.eta = eta
        self.theta = theta

    def init(self, loc):
        pass

    def beta(self, g, g_prev, d_prev):
        y = g - g_prev
        dy = dot(d_prev, y)
        gy = dot(g, y)
        gd = dot(g, d_prev)
        y_norm2 = dot(y, y)
        beta = float((gy - self.theta * gd * y_norm2 / dy) / dy)
        eta = float(-1 / (d_prev.norm() * g_prev.norm().clamp(max=self.eta)))
        return max(beta, eta)


# =============================
#     CG method
# =============================


class CG(Method, NextDirectioner):
    """Nonlinear conjugate gradient.

    The algorithm is described in Nocedal & Wright (2006) chapter 5.2.

    Parameters
    ----------
    linesearcher : Linesearcher, optional
        Defaults to :class:`Bisection` with ``grad_const=0.1``; the strong
        Wolfe conditions with a small curvature constant keep the directions
        of most variants descent directions.
    variant : optional
        Beta formula. Defaults to :class:`HestenesStiefel`.
    initial_step : optional
        Policy for the first trial step. Defaults to
        :class:`FirstOrderStepSize`.
    iteration_restart_factor : float
        The method restarts with the steepest descent direction every
        ``ceil(iteration_restart_factor * n)`` iterations. A value of 0
        disables periodic restarts.
    angle_restart_threshold : float
        The method also restarts when the cosine of the angle between the
        new direction and the negative gradient is not larger than this
        value, which includes every non-descent direction.
    """
    needs = Needs(gradient=True, hessian=False)

    def __init__(self, linesearcher=None, variant=None, initial_step=None,
                 iteration_restart_factor=1., angle_restart_threshold=0.):
        if linesearcher is None:
            linesearcher = Bisection(grad_const=0.1)
        if variant is None:
            variant = HestenesStiefel()
        if initial_step is None:
            initial_step = FirstOrderStepSize()
        if iteration_restart_factor < 0:
            raise ValueError('iteration_restart_factor must be non-negative.')
        if not -1 <= angle_restart_threshold < 1:
            raise ValueError('angle_restart_threshold must be in [-1, 1).')
        self.linesearcher = linesearcher
        self.variant = variant
        self.initial_step = initial_step
        self.iteration_restart_factor = iteration_restart_factor
        self.angle_restart_threshold = angle_restart_threshold

    def init(self, loc):
        self._ls = LinesearchMethod(self.linesearcher, self, self.needs)
        return self._ls.init(loc)

    def iterate(self, loc):
        return self._ls.iterate(loc)

    def init_direction(self, loc, d):
        n = loc.x.numel()
        self.restart_after = math.ceil(self.iteration_restart_factor * n)
        self.iter_from_restart = 0

        # the initial direction is always steepest descent
        torch.neg(loc.grad, out=d)
        self.d_prev = d.clone()
        self.g_prev = loc.grad.clone()
        self.variant.init(loc)
        return self.initial_step.init(loc, d)

    def next_direction(self, loc, d):
        g = loc.grad
        torch.neg(g, out=d)

        self.iter_from_restart += 1
        restart = False
        if self.iteration_restart_factor > 0:
            restart = self.iter_from_restart >= self.restart_after
        if not restart:
            beta = self.variant.beta(g, self.g_prev, self.d_prev)
            d.add_(self.d_prev, alpha=beta)
            cos = float(-dot(d, g) / (d.norm() * g.norm()))
            # also catches NaN from a degenerate beta
            restart = not cos > self.angle_restart_threshold
        if restart:
            torch.neg(g, out=d)
            self.iter_from_restart = 0

        self.g_prev.copy_(g)
        self.d_prev.copy_(d)
        return self.initial_step.step_size(loc, d)
