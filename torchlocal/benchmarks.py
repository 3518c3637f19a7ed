"""
Standard test problems for unconstrained minimization.

Most problems are taken from Moré, Garbow & Hillstrom, "Testing
unconstrained optimization software" (1981). Each class exposes ``func``,
``grad`` and (where implemented) ``hess`` so it can be handed to
:func:`torchlocal.local` directly; `minimum` holds the known optimal value.
"""
import math
import numpy as np
import torch

__all__ = ['rosen', 'rosen_der', 'rosen_hess', 'rosen_hess_prod',
           'Quadratic', 'ExtendedRosenbrock', 'Beale', 'BrownAndDennis',
           'HelicalValley', 'Gaussian', 'VariablyDimensioned',
           'ExtendedPowellSingular']


# =============================
#     Rosenbrock function
# =============================


def rosen(x, reduce=True):
    val = 100. * (x[...,1:] - x[...,:-1]**2)**2 + (1 - x[...,:-1])**2
    if reduce:
        return val.sum()
    else:
        # don't reduce batch dimensions
        return val.sum(-1)


def rosen_der(x):
    xm = x[..., 1:-1]
    xm_m1 = x[..., :-2]
    xm_p1 = x[..., 2:]
    der = torch.zeros_like(x)
    der[..., 1:-1] = (200 * (xm - xm_m1**2) -
                      400 * (xm_p1 - xm**2) * xm - 2 * (1 - xm))
    der[..., 0] = -400 * x[..., 0] * (x[..., 1] - x[..., 0]**2) - 2 * (1 - x[..., 0])
    der[..., -1] = 200 * (x[..., -1] - x[..., -2]**2)
    return der


def rosen_hess(x):
    H = torch.diag_embed(-400*x[..., :-1], 1) - \
        torch.diag_embed(400*x[..., :-1], -1)
    diagonal = torch.zeros_like(x)
    diagonal[..., 0] = 1200*x[..., 0].square() - 400*x[..., 1] + 2
    diagonal[..., -1] = 200
    diagonal[..., 1:-1] = 202 + 1200*x[..., 1:-1].square() - 400*x[..., 2:]
    H.diagonal(dim1=-2, dim2=-1).add_(diagonal)
    return H


def rosen_hess_prod(x, p):
    Hp = torch.zeros_like(x)
    Hp[..., 0] = (1200 * x[..., 0]**2 - 400 * x[..., 1] + 2) * p[..., 0] - \
                 400 * x[..., 0] * p[..., 1]
    Hp[..., 1:-1] = (-400 * x[..., :-2] * p[..., :-2] +
                     (202 + 1200 * x[..., 1:-1]**2 - 400 * x[..., 2:]) * p[..., 1:-1] -
                     400 * x[..., 1:-1] * p[..., 2:])
    Hp[..., -1] = -400 * x[..., -2] * p[..., -2] + 200*p[..., -1]
    return Hp


class ExtendedRosenbrock(object):
    """Chained Rosenbrock function in any dimension >= 2. Minimum 0 at
    ``x = (1, ..., 1)``."""
    minimum = 0.

    def func(self, x):
        return rosen(x)

    def grad(self, x):
        return rosen_der(x)

    def hess(self, x):
        return rosen_hess(x)


# =============================
#     Other test problems
# =============================


class Quadratic(object):
    """Convex quadratic bowl ``0.5 * sum(w * x**2)``. Minimum 0 at the
    origin."""
    minimum = 0.

    def __init__(self, weights):
        self.weights = torch.as_tensor(weights, dtype=torch.float64)

    def func(self, x):
        w = self.weights.to(x)
        return 0.5 * w.mul(x.square()).sum()

    def grad(self, x):
        return self.weights.to(x).mul(x)

    def hess(self, x):
        return torch.diag(self.weights.to(x))


class Beale(object):
    """Beale function, 2 variables. Minimum 0 at ``(3, 0.5)``."""
    minimum = 0.
    _c = (1.5, 2.25, 2.625)

    def _residuals(self, x):
        x1, x2 = x[0], x[1]
        p = torch.stack([x2, x2**2, x2**3])
        r = x.new_tensor(self._c) - x1 * (1 - p)
        return r, p

    def _jacobian(self, x, p):
        x1, x2 = x[0], x[1]
        dp = torch.stack([torch.ones_like(x2), 2*x2, 3*x2**2])
        return torch.stack([p - 1, x1 * dp], dim=1), dp

    def func(self, x):
        r, _ = self._residuals(x)
        return r.square().sum()

    def grad(self, x):
        r, p = self._residuals(x)
        J, _ = self._jacobian(x, p)
        return 2 * J.t().mv(r)

    def hess(self, x):
        r, p = self._residuals(x)
        J, dp = self._jacobian(x, p)
        x1, x2 = x[0], x[1]
        d2p = torch.stack([torch.zeros_like(x2), 2*torch.ones_like(x2), 6*x2])
        H = 2 * J.t().mm(J)
        h12 = 2 * r.dot(dp)
        H[0, 1] += h12
        H[1, 0] += h12
        H[1, 1] += 2 * x1 * r.dot(d2p)
        return H


class BrownAndDennis(object):
    """Brown and Dennis function, 4 variables. Minimum about 85822.2."""
    minimum = 85822.20162635634

    def _terms(self, x):
        t = torch.arange(1, 21, dtype=x.dtype, device=x.device) / 5
        a = x[0] + t * x[1] - t.exp()
        b = x[2] + x[3] * t.sin() - t.cos()
        c = a.square() + b.square()
        zeros, ones = torch.zeros_like(t), torch.ones_like(t)
        U = torch.stack([ones, t, zeros, zeros], dim=1)
        V = torch.stack([zeros, zeros, ones, t.sin()], dim=1)
        return a, b, c, U, V

    def func(self, x):
        _, _, c, _, _ = self._terms(x)
        return c.square().sum()

    def grad(self, x):
        a, b, c, U, V = self._terms(x)
        G = 2 * a.unsqueeze(1) * U + 2 * b.unsqueeze(1) * V
        return 2 * G.t().mv(c)

    def hess(self, x):
        a, b, c, U, V = self._terms(x)
        G = 2 * a.unsqueeze(1) * U + 2 * b.unsqueeze(1) * V
        cU = c.unsqueeze(1) * U
        cV = c.unsqueeze(1) * V
        return 2 * G.t().mm(G) + 4 * (U.t().mm(cU) + V.t().mm(cV))


class HelicalValley(object):
    """Helical valley function, 3 variables. Minimum 0 at ``(1, 0, 0)``."""
    minimum = 0.

    def _theta(self, x):
        theta = torch.atan(x[1] / x[0]) / (2 * math.pi)
        if x[0] < 0:
            theta = theta + 0.5
        return theta

    def func(self, x):
        theta = self._theta(x)
        r = torch.hypot(x[0], x[1])
        return 100 * ((x[2] - 10*theta)**2 + (r - 1)**2) + x[2]**2

    def grad(self, x):
        x1, x2, x3 = x[0], x[1], x[2]
        theta = self._theta(x)
        r2 = x1**2 + x2**2
        r = r2.sqrt()
        s = x3 - 10*theta
        q = 10 / (2 * math.pi * r2)
        return torch.stack([
            200 * (s * q * x2 + (r - 1) * x1 / r),
            200 * (-s * q * x1 + (r - 1) * x2 / r),
            200 * s + 2 * x3,
        ])


class Gaussian(object):
    """Gaussian function, 3 variables. Minimum about 1.12793e-8."""
    minimum = 1.12793276961912e-08
    _y = np.array([0.0009, 0.0044, 0.0175, 0.0540, 0.1295, 0.2420, 0.3521,
                   0.3989, 0.3521, 0.2420, 0.1295, 0.0540, 0.0175, 0.0044,
                   0.0009])
    _t = (7 - np.arange(15)) / 2

    def _terms(self, x):
        y = torch.from_numpy(self._y).to(x)
        t = torch.from_numpy(self._t).to(x)
        dt = t - x[2]
        b = torch.exp(-x[1] * dt.square() / 2)
        r = x[0] * b - y
        return r, b, dt

    def func(self, x):
        r, _, _ = self._terms(x)
        return r.square().sum()

    def grad(self, x):
        r, b, dt = self._terms(x)
        J = torch.stack([b,
                         -x[0] * b * dt.square() / 2,
                         x[0] * b * x[1] * dt], dim=1)
        return 2 * J.t().mv(r)


class VariablyDimensioned(object):
    """Variably dimensioned function. Minimum 0 at ``x = (1, ..., 1)``."""
    minimum = 0.

    @staticmethod
    def initial_point(dim):
        return torch.tensor([(dim - i - 1) / dim for i in range(dim)],
                            dtype=torch.float64)

    def _terms(self, x):
        j = torch.arange(1, x.numel() + 1, dtype=x.dtype, device=x.device)
        s = j.dot(x - 1)
        return j, s

    def func(self, x):
        _, s = self._terms(x)
        return (x - 1).square().sum() + s**2 + s**4

    def grad(self, x):
        j, s = self._terms(x)
        return 2 * (x - 1) + (2*s + 4*s**3) * j

    def hess(self, x):
        j, s = self._terms(x)
        H = torch.outer(j, j).mul_(2 + 12*s**2)
        H.diagonal().add_(2)
        return H


class ExtendedPowellSingular(object):
    """Extended Powell singular function, dimension a multiple of 4. Minimum
    0 at the origin, where the Hessian is singular."""
    minimum = 0.

    def _blocks(self, x):
        if x.numel() % 4 != 0:
            raise ValueError('dimension must be a multiple of 4.')
        X = x.view(-1, 4)
        return X[:, 0], X[:, 1], X[:, 2], X[:, 3]

    def func(self, x):
        x1, x2, x3, x4 = self._blocks(x)
        return ((x1 + 10*x2)**2 + 5*(x3 - x4)**2 + (x2 - 2*x3)**4 +
                10*(x1 - x4)**4).sum()

    def grad(self, x):
        x1, x2, x3, x4 = self._blocks(x)
        u, v = x1 + 10*x2, x3 - x4
        p, q = x2 - 2*x3, x1 - x4
        g = torch.stack([2*u + 40*q**3,
                         20*u + 4*p**3,
                         10*v - 8*p**3,
                         -10*v - 40*q**3], dim=1)
        return g.reshape(-1)

    def hess(self, x):
        x1, x2, x3, x4 = self._blocks(x)
        n = x.numel()
        a = 12 * (x2 - 2*x3)**2
        b = 120 * (x1 - x4)**2
        H = x.new_zeros(n, n)
        for k in range(n // 4):
            i = 4 * k
            ak, bk = a[k], b[k]
            H[i:i+4, i:i+4] = torch.stack([
                torch.stack([2 + bk, 20 + 0*bk, 0*bk, -bk]),
                torch.stack([20 + 0*ak, 200 + ak, -2*ak, 0*ak]),
                torch.stack([0*ak, -2*ak, 10 + 4*ak, -10 + 0*ak]),
                torch.stack([-bk, 0*bk, -10 + 0*bk, 10 + bk]),
            ])
        return H
