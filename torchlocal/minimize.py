import math
import time
from dataclasses import fields, replace
import torch
from scipy.optimize import OptimizeResult

from ._optimize import Status, SettingsError, EvaluationError, MethodError
from .bfgs import BFGS, LBFGS
from .cg import CG
from .function import (AutogradFunction, Location, ProblemInfo, as_value,
                       as_gradient, as_hessian, check_derivatives, evaluate)
from .gradient_descent import GradientDescent
from .method import Operation, EVALUATIONS, needed_evaluations
from .nelder_mead import NelderMead
from .newton import Newton
from .settings import FunctionConverge, FunctionConvergence, Settings, Stats

__all__ = ['local', 'minimize', 'default_method']


def default_method(problem):
    """L-BFGS if the objective has a gradient, Nelder-Mead otherwise."""
    if not isinstance(problem, ProblemInfo):
        problem = ProblemInfo(problem)
    if problem.has_gradient:
        return LBFGS()
    return NelderMead()


def _starting_location(p, x, needs, settings, stats):
    loc = Location(x)
    op = needed_evaluations(needs)
    if not settings.use_initial_data:
        evaluate(p, loc, op, stats)
        if not math.isfinite(loc.f):
            raise EvaluationError('objective is {} at the starting point.'
                                  .format(loc.f))
        return loc
    # warm start: use the supplied data, nothing is counted
    loc.f = as_value(settings.initial_value)
    if needs.gradient:
        loc.grad = as_gradient(settings.initial_gradient, x)
    if needs.hessian:
        loc.hess = as_hessian(settings.initial_hessian, x)
    check_derivatives(loc, op)
    return loc


def _check_location_convergence(loc, settings, converger):
    if loc.grad is not None:
        if loc.grad.norm(p=float('inf')) < settings.gradient_threshold:
            return Status.GRADIENT_THRESHOLD
    if loc.f < settings.function_threshold:
        return Status.FUNCTION_THRESHOLD
    if converger is not None:
        return converger.update(loc.f)
    return Status.NOT_TERMINATED


def _check_evaluation_limits(settings, stats):
    if settings.func_evaluations and \
            stats.func_evaluations >= settings.func_evaluations:
        return Status.FUNCTION_EVALUATION_LIMIT
    if settings.grad_evaluations and \
            stats.grad_evaluations >= settings.grad_evaluations:
        return Status.GRADIENT_EVALUATION_LIMIT
    if settings.hess_evaluations and \
            stats.hess_evaluations >= settings.hess_evaluations:
        return Status.HESSIAN_EVALUATION_LIMIT
    return Status.NOT_TERMINATED


def _check_iteration_limits(settings, stats, max_major):
    if max_major and stats.major_iterations >= max_major:
        return Status.ITERATION_LIMIT
    if settings.iterations and stats.iterations >= settings.iterations:
        return Status.ITERATION_LIMIT
    if settings.runtime and stats.runtime >= settings.runtime:
        return Status.RUNTIME_LIMIT
    return Status.NOT_TERMINATED


@torch.no_grad()
def local(problem, x0, settings=None, method=None, callback=None):
    """Minimize a scalar function of one or more variables with a local
    optimization method.

    Parameters
    ----------
    problem : object or callable
        The objective. Either an object with a ``func(x)`` method and
        optional ``grad(x)`` and ``hess(x)`` methods (see
        :class:`ScalarFunction` and :class:`AutogradFunction`), or a plain
        callable, which only provides function values.
    x0 : Tensor
        Initialization point.
    settings : Settings, optional
        Termination criteria, limits and warm-start data. Defaults to
        :meth:`Settings.default`. The object is not modified.
    method : Method, optional
        The minimization method. Defaults to :class:`LBFGS` when the
        objective provides a gradient and to :class:`NelderMead` otherwise.
    callback : callable, optional
        Function to call after each major iteration with the current
        parameter state, e.g. ``callback(x)``.

    Returns
    -------
    result : OptimizeResult
        Result of the optimization routine. ``x``, ``fun``, ``grad`` and
        ``hess`` describe the best location found; ``status`` is a
        :class:`Status`.

    Raises
    ------
    SettingsError
        If the inputs are inconsistent. Raised before any iteration.
    EvaluationError
        If the objective returns an unusable value.
    """
    x0 = torch.as_tensor(x0)
    if not x0.is_floating_point():
        x0 = x0.to(torch.float64)
    if x0.numel() == 0:
        raise SettingsError('x0 must have at least one element.')
    x = x0.detach().reshape(-1).clone(memory_format=torch.contiguous_format)
    dim = x.numel()

    p = ProblemInfo(problem)
    if method is None:
        method = default_method(p)
    needs = method.needs
    if not p.satisfies(needs):
        raise SettingsError('{} needs {} but the objective does not provide '
                            'it.'.format(type(method).__name__,
                                         'the Hessian' if needs.hessian
                                         else 'the gradient'))
    if settings is None:
        settings = Settings.default()
    settings.validate(dim, needs)
    disp = int(settings.disp)
    max_major = settings.major_iterations
    if max_major is None:
        max_major = dim * 200

    stats = Stats()
    start_time = time.perf_counter()

    # compute initial f(x) and whatever derivatives the method needs
    loc = _starting_location(p, x, needs, settings, stats)
    if disp > 1:
        print('initial fval: %0.4f' % loc.f)
    best = loc.copy()

    # function convergence is the stopping rule of gradient-free methods
    converger = None
    if settings.function_converge is not None and not needs.gradient:
        converger = FunctionConvergence(settings.function_converge, loc.f)

    status = _check_location_convergence(loc, settings, converger)
    message = None
    if status == Status.NOT_TERMINATED:
        try:
            status = _minimize_loop(p, loc, best, method, settings, stats,
                                    converger, max_major, start_time, disp,
                                    callback)
        except MethodError as err:
            status = Status.FAILURE
            message = '{}: {}'.format(status.message, err)
    stats.runtime = time.perf_counter() - start_time
    if message is None:
        message = status.message

    if disp:
        print(message)
        print("         Current function value: %f" % best.f)
        print("         Iterations: %d" % stats.major_iterations)
        print("         Function evaluations: %d" % stats.func_evaluations)
        if needs.gradient:
            print("         Gradient evaluations: %d" % stats.grad_evaluations)
        if needs.hessian:
            print("         Hessian evaluations: %d" % stats.hess_evaluations)

    return OptimizeResult(
        x=best.x.view_as(x0), fun=best.f,
        grad=None if best.grad is None else best.grad.view_as(x0),
        hess=best.hess, status=status, success=status.success,
        message=message, nit=stats.major_iterations,
        nfev=stats.func_evaluations, njev=stats.grad_evaluations,
        nhev=stats.hess_evaluations, runtime=stats.runtime,
        method=type(method).__name__)


def _minimize_loop(p, loc, best, method, settings, stats, converger,
                   max_major, start_time, disp, callback):
    op = method.init(loc)
    while True:
        if op & EVALUATIONS:
            if op & ~EVALUATIONS:
                raise RuntimeError('evaluations cannot be combined with {!r}.'
                                   .format(op))
            evaluate(p, loc, op, stats)
            status = _check_evaluation_limits(settings, stats)
        elif op == Operation.MAJOR_ITERATION:
            stats.major_iterations += 1
            best.copy_from(loc)
            if disp > 1:
                print('iter %3d - fval: %0.4f' % (stats.major_iterations,
                                                  best.f))
            if callback is not None:
                callback(best.x)
            status = _check_location_convergence(best, settings, converger)
        elif op == Operation.METHOD_DONE:
            status = Status(method.status())
            if status == Status.NOT_TERMINATED:
                raise RuntimeError('{} finished without a terminal status.'
                                   .format(type(method).__name__))
        else:
            raise RuntimeError('invalid operation {!r} encountered.'
                               .format(op))

        if status == Status.NOT_TERMINATED:
            stats.runtime = time.perf_counter() - start_time
            status = _check_iteration_limits(settings, stats, max_major)
        if status != Status.NOT_TERMINATED:
            return status

        stats.iterations += 1
        op = method.iterate(loc)


# =============================
#     String dispatch
# =============================

_methods = {
    'gd': GradientDescent,
    'cg': CG,
    'bfgs': BFGS,
    'l-bfgs': LBFGS,
    'newton': Newton,
    'nelder-mead': NelderMead,
}

_settings_keys = frozenset(f.name for f in fields(Settings))


def minimize(fun, x0, method='l-bfgs', max_iter=None, tol=None, options=None,
             callback=None, disp=0):
    """Minimize a scalar function of one or more variables.

    .. note::
        This is a convenience wrapper that builds the method named by
        `method` and calls :func:`local`.

    Parameters
    ----------
    fun : callable
        Scalar objective function to minimize. A plain callable is assumed
        to be differentiable by autograd; objects with a ``func`` method are
        passed to :func:`local` unchanged.
    x0 : Tensor
        Initialization point.
    method : str
        The minimization routine to use. Should be one of

            - 'gd'
            - 'cg'
            - 'bfgs'
            - 'l-bfgs'
            - 'newton'
            - 'nelder-mead'

    max_iter : int, optional
        Maximum number of major iterations. Defaults to ``200 * x0.numel()``.
    tol : float, optional
        Tolerance for termination: the gradient threshold, or for
        'nelder-mead' the absolute function convergence tolerance.
    options : dict, optional
        Keyword arguments for the method constructor. Keys that name a
        :class:`Settings` field are used for the settings instead.
    callback : callable, optional
        Function to call after each major iteration, ``callback(x)``.
    disp : int or bool
        Display (verbosity) level. Set to >0 to print status messages.

    Returns
    -------
    result : OptimizeResult
        Result of the optimization routine.
    """
    x0 = torch.as_tensor(x0)
    method = method.lower()
    if method not in _methods:
        raise ValueError('invalid method "{}" encountered.'.format(method))
    options = {} if options is None else dict(options)
    settings_kw = {k: options.pop(k) for k in list(options)
                   if k in _settings_keys}
    opt = _methods[method](**options)

    settings = replace(Settings.default(), **settings_kw)
    if max_iter is not None:
        settings.major_iterations = max_iter
    if tol is not None:
        if method == 'nelder-mead':
            fc = settings.function_converge or FunctionConverge()
            settings.function_converge = replace(fc, absolute=tol)
        else:
            settings.gradient_threshold = tol
    if disp:
        settings.disp = disp

    if not callable(getattr(fun, 'func', None)):
        fun = AutogradFunction(fun, x0.shape, hess=opt.needs.hessian)
    return local(fun, x0, settings=settings, method=opt, callback=callback)
