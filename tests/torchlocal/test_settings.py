"""
Test settings validation, limits, evaluation errors and method failures of
the `local` driver.
"""
import copy
import math

import pytest
import torch

from torchlocal import (local, Settings, FunctionConverge, Status,
                        ScalarFunction, GradientDescent, BFGS, Newton,
                        NelderMead, ConstantStepSize, SettingsError,
                        EvaluationError, Method, Operation)
from torchlocal.benchmarks import ExtendedRosenbrock, HelicalValley, Quadratic
from torchlocal.settings import FunctionConvergence


def _x(*values):
    return torch.tensor(values, dtype=torch.float64)


# =============================================================================
# Settings validation
# =============================================================================

@pytest.mark.parametrize('kwargs', [
    dict(gradient_threshold=-1.),
    dict(function_threshold=float('nan')),
    dict(major_iterations=-1),
    dict(iterations=-1),
    dict(func_evaluations=-1),
    dict(grad_evaluations=-1),
    dict(hess_evaluations=-1),
    dict(runtime=-1.),
    dict(function_converge=FunctionConverge(absolute=-1.)),
])
def test_invalid_settings(kwargs):
    with pytest.raises(SettingsError):
        local(ExtendedRosenbrock(), _x(-1.2, 1.), Settings(**kwargs), BFGS())


def test_initial_data_validation():
    f = ExtendedRosenbrock()
    x0 = _x(-1.2, 1.)

    # no initial value
    settings = Settings(use_initial_data=True)
    with pytest.raises(SettingsError):
        local(f, x0, settings, BFGS())

    # gradient needed but missing
    settings = Settings(use_initial_data=True, initial_value=f.func(x0))
    with pytest.raises(SettingsError):
        local(f, x0, settings, BFGS())

    # gradient of the wrong size
    settings.initial_gradient = torch.zeros(3, dtype=torch.float64)
    with pytest.raises(SettingsError):
        local(f, x0, settings, BFGS())

    # gradient supplied to a gradient-free method
    settings.initial_gradient = f.grad(x0)
    with pytest.raises(SettingsError):
        local(f, x0, settings, NelderMead())

    # Hessian needed but missing
    with pytest.raises(SettingsError):
        local(f, x0, settings, Newton())


@pytest.mark.parametrize('kwargs', [
    dict(initial_value=float('nan')),
    dict(initial_value=math.inf),
    dict(initial_gradient=torch.tensor([math.nan, 0.], dtype=torch.float64)),
    dict(initial_hessian=torch.full((2, 2), math.inf, dtype=torch.float64)),
])
def test_initial_data_not_finite(kwargs):
    f = ExtendedRosenbrock()
    x0 = _x(-1.2, 1.)
    data = dict(initial_value=f.func(x0), initial_gradient=f.grad(x0),
                initial_hessian=f.hess(x0))
    data.update(kwargs)
    settings = Settings(use_initial_data=True, **data)
    with pytest.raises(SettingsError):
        local(f, x0, settings, Newton())


def test_missing_capability():
    # Newton needs a Hessian the objective does not have
    with pytest.raises(SettingsError):
        local(HelicalValley(), _x(-1., 0., 0.), method=Newton())

    # gradient methods need a gradient
    with pytest.raises(SettingsError):
        local(lambda x: x.square().sum(), _x(1., 1.), method=BFGS())

    with pytest.raises(SettingsError):
        local(object(), _x(1., 1.))


def test_empty_x0():
    with pytest.raises(SettingsError):
        local(Quadratic([]), torch.zeros(0, dtype=torch.float64))


def test_settings_not_mutated():
    settings = Settings(major_iterations=50, disp=0)
    expected = copy.deepcopy(settings)
    local(ExtendedRosenbrock(), _x(-1.2, 1.), settings, BFGS())
    assert settings == expected


def test_integer_x0_is_promoted():
    f = Quadratic([1., 2.])
    result = local(f, torch.tensor([1, 2]), method=BFGS())
    assert result.x.is_floating_point()
    assert result.status == Status.GRADIENT_THRESHOLD


# =============================================================================
# Termination
# =============================================================================

def test_converged_at_start():
    f = Quadratic([1., 2., 3.])
    result = local(f, torch.zeros(3, dtype=torch.float64), method=BFGS())
    assert result.status == Status.GRADIENT_THRESHOLD
    assert result.nit == 0
    assert result.nfev == 1
    assert result.njev == 1


def test_function_threshold():
    f = Quadratic([1., 2., 4.])
    result = local(f, _x(1., 1., 1.), Settings(function_threshold=1.),
                   BFGS())
    assert result.status == Status.FUNCTION_THRESHOLD
    assert result.success
    assert result.fun < 1.


@pytest.mark.parametrize('kwargs,method,status,counter', [
    (dict(func_evaluations=5), GradientDescent,
     Status.FUNCTION_EVALUATION_LIMIT, 'nfev'),
    (dict(grad_evaluations=3), BFGS,
     Status.GRADIENT_EVALUATION_LIMIT, 'njev'),
    (dict(hess_evaluations=2), Newton,
     Status.HESSIAN_EVALUATION_LIMIT, 'nhev'),
    (dict(major_iterations=3), BFGS, Status.ITERATION_LIMIT, 'nit'),
])
def test_limits(kwargs, method, status, counter):
    settings = Settings(**kwargs)
    result = local(ExtendedRosenbrock(), _x(-1.2, 1.), settings, method())
    assert result.status == status
    assert not result.success
    assert result[counter] == list(kwargs.values())[0]


def test_iteration_limit():
    result = local(ExtendedRosenbrock(), _x(-1.2, 1.),
                   Settings(iterations=4), GradientDescent())
    assert result.status == Status.ITERATION_LIMIT


def test_runtime_limit():
    result = local(ExtendedRosenbrock(), _x(-1.2, 1.),
                   Settings(runtime=1e-12), BFGS())
    assert result.status == Status.RUNTIME_LIMIT
    assert result.runtime >= 1e-12


def test_function_convergence_tracker():
    fc = FunctionConvergence(FunctionConverge(absolute=1e-3, iterations=3),
                             10.)
    assert fc.update(9.) == Status.NOT_TERMINATED
    assert fc.update(9.0001) == Status.NOT_TERMINATED
    assert fc.update(8.9999) == Status.NOT_TERMINATED
    assert fc.update(8.9999) == Status.FUNCTION_CONVERGENCE

    # iterations = 0 disables the check
    fc = FunctionConvergence(FunctionConverge(iterations=0), 1.)
    for _ in range(5):
        assert fc.update(1.) == Status.NOT_TERMINATED


def test_function_convergence_gradient_methods():
    """Function convergence does not stop gradient-based methods."""
    f = Quadratic([1., 2.])
    settings = Settings(function_converge=FunctionConverge(absolute=1e3,
                                                           iterations=1))
    result = local(f, _x(1., 1.), settings, BFGS())
    assert result.status == Status.GRADIENT_THRESHOLD


# =============================================================================
# Evaluation errors and failures
# =============================================================================

def _quadratic(x):
    return float(x.square().sum())


@pytest.mark.parametrize('objective', [
    ScalarFunction(lambda x: float('nan'), grad=lambda x: x),
    ScalarFunction(lambda x: float('-inf'), grad=lambda x: x),
    ScalarFunction(lambda x: x.clone(), grad=lambda x: x),
    ScalarFunction(_quadratic, grad=lambda x: x[:1]),
    ScalarFunction(_quadratic, grad=lambda x: torch.full_like(x, math.inf)),
])
def test_evaluation_errors(objective):
    with pytest.raises(EvaluationError):
        local(objective, _x(1., 1.), method=GradientDescent())


def _right_half_plane(x):
    if x[0] < 0:
        return math.inf
    return _quadratic(x)


_half_plane = ScalarFunction(_right_half_plane, grad=lambda x: 2 * x)


@pytest.mark.parametrize('objective,method', [
    (lambda x: math.inf, NelderMead),
    (_half_plane, NelderMead),
    (_half_plane, GradientDescent),
    (_half_plane, BFGS),
])
def test_infinite_start_value(objective, method):
    """A start outside the domain of the objective is an evaluation error,
    not a converged run."""
    with pytest.raises(EvaluationError):
        local(objective, _x(-1., 2.), method=method())


def test_infinite_value_rejects_step():
    """A value of +inf marks a point outside the domain; the line search
    backs off from it."""
    def func(x):
        if x[0] >= 1.5:
            return math.inf
        return float((x[0] - 1)**2)

    objective = ScalarFunction(func, grad=lambda x: 2 * (x - 1))
    method = GradientDescent(step_sizer=ConstantStepSize(10.))
    result = local(objective, _x(-3.), method=method)
    assert result.status == Status.GRADIENT_THRESHOLD
    torch.testing.assert_close(result.x, _x(1.), rtol=0, atol=1e-6)


def test_method_failure():
    """A gradient pointing the wrong way makes the line search fail; the
    start is returned as the best location."""
    objective = ScalarFunction(_quadratic, grad=lambda x: -2 * x)
    x0 = _x(1., -2.)
    result = local(objective, x0, method=GradientDescent())
    assert result.status == Status.FAILURE
    assert not result.success
    assert torch.equal(result.x, x0)
    assert result.fun == 5.
    assert result.nit == 0


class _JumpToOrigin(Method):
    """Moves to the origin in one step and then reports `final`."""
    def __init__(self, final=None):
        self.final = final

    def init(self, loc):
        self.moved = False
        loc.x = torch.zeros_like(loc.x)
        return Operation.FUNC_EVALUATION

    def iterate(self, loc):
        if self.moved:
            return Operation.METHOD_DONE
        self.moved = True
        return Operation.MAJOR_ITERATION

    def status(self):
        if self.final is None:
            return super().status()
        return self.final


def test_method_done():
    result = local(Quadratic([1., 2.]), _x(1., 1.),
                   method=_JumpToOrigin(Status.SUCCESS))
    assert result.status == Status.SUCCESS
    assert result.success
    assert torch.equal(result.x, _x(0., 0.))
    assert result.fun == 0.
    assert result.nit == 1
    assert result.nfev == 2


@pytest.mark.parametrize('final', [None, Status.NOT_TERMINATED])
def test_method_done_without_status(final):
    with pytest.raises(RuntimeError):
        local(Quadratic([1., 2.]), _x(1., 1.), method=_JumpToOrigin(final))


def test_disp(capsys):
    settings = Settings(disp=2, major_iterations=2)
    local(ExtendedRosenbrock(), _x(-1.2, 1.), settings, BFGS())
    out = capsys.readouterr().out
    assert 'initial fval: 24.2000' in out
    assert 'iter   1 - fval:' in out
    assert Status.ITERATION_LIMIT.message in out
    assert 'Gradient evaluations:' in out
