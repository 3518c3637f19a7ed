import math
import torch
import torch.autograd as autograd

from ._optimize import EvaluationError, SettingsError
from .method import Operation

__all__ = ['Location', 'ScalarFunction', 'AutogradFunction', 'ProblemInfo']


class Location(object):
    """An evaluated point: position `x`, value `f` and optional derivatives."""
    def __init__(self, x, f=float('nan'), grad=None, hess=None):
        self.x = x
        self.f = f
        self.grad = grad
        self.hess = hess

    def copy(self):
        return Location(
            self.x.clone(), self.f,
            None if self.grad is None else self.grad.clone(),
            None if self.hess is None else self.hess.clone())

    def copy_from(self, other):
        self.x = other.x.clone()
        self.f = other.f
        self.grad = None if other.grad is None else other.grad.clone()
        self.hess = None if other.hess is None else other.hess.clone()

    def __repr__(self):
        return 'Location(x={}, f={})'.format(self.x, self.f)


class ScalarFunction(object):
    """Scalar objective assembled from separate callables.

    Parameters
    ----------
    fun : callable
        Objective value ``fun(x)``.
    grad : callable, optional
        Gradient ``grad(x)``, a tensor shaped like `x`.
    hess : callable, optional
        Hessian ``hess(x)``, a symmetric ``(n, n)`` tensor.
    """
    def __init__(self, fun, grad=None, hess=None):
        self.func = fun
        self.grad = grad
        self.hess = hess


class AutogradFunction(ScalarFunction):
    """Scalar objective with autograd backend.

    Derivatives of `fun` are computed with :mod:`torch.autograd`. Hessians
    are only provided when ``hess=True`` so that methods which need them can
    be matched against the capabilities of the objective. The optimizer
    works on flat vectors; if `x_shape` is given, `fun` receives ``x``
    reshaped to it.
    """
    def __init__(self, fun, x_shape=None, hess=False):
        self._fun = fun
        self._x_shape = None if x_shape is None else tuple(x_shape)
        super().__init__(self._value, grad=self._gradient,
                         hess=self._hessian if hess else None)

    def _call(self, x):
        if self._x_shape is not None:
            x = x.view(self._x_shape)
        f = self._fun(x)
        if f.numel() != 1:
            raise EvaluationError('AutogradFunction was supplied a function '
                                  'that does not return scalar outputs.')
        return f

    def _value(self, x):
        return self._call(x.detach()).detach()

    def _gradient(self, x):
        x = x.detach().requires_grad_(True)
        with torch.enable_grad():
            f = self._call(x)
            grad = autograd.grad(f, x)[0]
        return grad.detach()

    def _hessian(self, x):
        x = x.detach().requires_grad_(True)
        with torch.enable_grad():
            f = self._call(x)
            grad = autograd.grad(f, x, create_graph=True)[0]
            if grad.grad_fn is None:
                raise EvaluationError('A 2nd-order derivative was requested '
                                      'but the objective is not '
                                      'twice-differentiable.')
            I = torch.eye(x.numel(), dtype=x.dtype, device=x.device)
            hess = autograd.grad(grad, x, I.view(-1, *x.shape),
                                 is_grads_batched=True)[0]
        return hess.detach().view(x.numel(), x.numel())


class ProblemInfo(object):
    """Evaluation capabilities of an objective, resolved once per run.

    An objective is either an object with a ``func`` method and optional
    ``grad``/``hess`` methods, or a plain callable (value only).
    """
    def __init__(self, problem):
        func = getattr(problem, 'func', None)
        if callable(func):
            grad = getattr(problem, 'grad', None)
            hess = getattr(problem, 'hess', None)
        elif callable(problem):
            func, grad, hess = problem, None, None
        else:
            raise SettingsError('objective must be callable or provide a '
                                '`func` method.')
        self.func = func
        self.grad = grad if callable(grad) else None
        self.hess = hess if callable(hess) else None

    @property
    def has_gradient(self):
        return self.grad is not None

    @property
    def has_hessian(self):
        return self.hess is not None

    def satisfies(self, needs):
        if needs.gradient and not self.has_gradient:
            return False
        if needs.hessian and not self.has_hessian:
            return False
        return True


def as_value(f):
    if torch.is_tensor(f):
        if f.numel() != 1:
            raise EvaluationError('objective returned a tensor with {} '
                                  'elements; expected a scalar.'
                                  .format(f.numel()))
        f = f.item()
    f = float(f)
    if math.isnan(f) or f == -math.inf:
        raise EvaluationError('objective returned {}.'.format(f))
    return f


def as_gradient(g, x):
    g = torch.as_tensor(g, dtype=x.dtype, device=x.device)
    if g.numel() != x.numel():
        raise EvaluationError('gradient has {} elements; expected {}.'
                              .format(g.numel(), x.numel()))
    return g.detach().reshape(-1).clone(memory_format=torch.contiguous_format)


def as_hessian(h, x):
    n = x.numel()
    h = torch.as_tensor(h, dtype=x.dtype, device=x.device)
    if h.numel() != n * n:
        raise EvaluationError('Hessian has shape {}; expected ({}, {}).'
                              .format(tuple(h.shape), n, n))
    return h.detach().reshape(n, n).clone(memory_format=torch.contiguous_format)


def evaluate(p, loc, op, stats):
    """Perform the evaluations requested by `op` at ``loc.x``.

    Counters in `stats` are incremented once per evaluation kind. A value of
    ``+inf`` is accepted since it marks a point outside the objective's
    domain, but derivatives at a finite value must be finite.
    """
    x = loc.x
    if op & Operation.FUNC_EVALUATION:
        stats.func_evaluations += 1
        loc.f = as_value(p.func(x))
    if op & Operation.GRAD_EVALUATION:
        if p.grad is None:
            raise RuntimeError('gradient evaluation requested but the '
                               'objective has no gradient.')
        stats.grad_evaluations += 1
        loc.grad = as_gradient(p.grad(x), x)
    if op & Operation.HESS_EVALUATION:
        if p.hess is None:
            raise RuntimeError('Hessian evaluation requested but the '
                               'objective has no Hessian.')
        stats.hess_evaluations += 1
        loc.hess = as_hessian(p.hess(x), x)
    check_derivatives(loc, op)


def check_derivatives(loc, op):
    """Derivatives listed in `op` must be finite wherever ``loc.f`` is."""
    if math.isfinite(loc.f):
        if (op & Operation.GRAD_EVALUATION) and not loc.grad.isfinite().all():
            raise EvaluationError('non-finite gradient encountered at a '
                                  'finite function value.')
        if (op & Operation.HESS_EVALUATION) and not loc.hess.isfinite().all():
            raise EvaluationError('non-finite Hessian encountered at a '
                                  'finite function value.')
