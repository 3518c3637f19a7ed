"""
Test the linesearchers, the initial step size policies and the line search
method adapter on one-dimensional problems with known answers.
"""
import math

import pytest
import torch

from torchlocal import (Backtracking, Bisection, ConstantStepSize,
                        QuadraticStepSize, FirstOrderStepSize, GradientDescent,
                        Location, Operation, LinesearchError,
                        NonDescentDirectionError, NoProgressError)
from torchlocal.line_search import (armijo_condition_met,
                                    strong_wolfe_conditions_met)


def phi(t):
    """(t - 1)^2 along the line."""
    return (t - 1)**2


def dphi(t):
    return 2 * (t - 1)


def run_linesearch(ls, step):
    op = ls.init(phi(0), dphi(0), step)
    for _ in range(100):
        op, step = ls.iterate(phi(step), dphi(step))
        if op == Operation.MAJOR_ITERATION:
            return step
    raise AssertionError('line search did not finish')


# =============================================================================
# Conditions
# =============================================================================

def test_armijo_condition():
    assert armijo_condition_met(0.5, 1., -2., 0.25, 1e-4)
    assert not armijo_condition_met(1., 1., -2., 0.25, 1e-4)
    assert not armijo_condition_met(math.inf, 1., -2., 0.25, 1e-4)


def test_strong_wolfe_conditions():
    # sufficient decrease, flat enough
    assert strong_wolfe_conditions_met(0.5, -0.1, 1., -2., 0.5, 1e-4, 0.9)
    # sufficient decrease, too steep
    assert not strong_wolfe_conditions_met(0.5, -1.9, 1., -2., 0.5, 1e-4, 0.5)
    # no decrease
    assert not strong_wolfe_conditions_met(2., 0., 1., -2., 0.5, 1e-4, 0.9)


# =============================================================================
# Linesearchers
# =============================================================================

@pytest.mark.parametrize('ls', [Backtracking(), Bisection()])
def test_non_descent_direction(ls):
    with pytest.raises(NonDescentDirectionError):
        ls.init(1., 0.5, 1.)
    with pytest.raises(NonDescentDirectionError):
        ls.init(1., float('nan'), 1.)


@pytest.mark.parametrize('ls', [Backtracking(), Bisection()])
@pytest.mark.parametrize('step', [0., -1., math.inf])
def test_invalid_initial_step(ls, step):
    with pytest.raises(LinesearchError):
        ls.init(1., -1., step)


@pytest.mark.parametrize('cls,kwargs', [
    (Backtracking, dict(decrease=1.)),
    (Backtracking, dict(decrease=0.)),
    (Backtracking, dict(fun_const=1.)),
    (Bisection, dict(grad_const=0.)),
    (Bisection, dict(grad_const=1.)),
])
def test_invalid_parameters(cls, kwargs):
    with pytest.raises(ValueError):
        cls(**kwargs)


def test_backtracking():
    ls = Backtracking()
    assert ls.init(phi(0), dphi(0), 4.) == Operation.FUNC_EVALUATION
    # phi(4) = 9 is worse; halve
    assert ls.iterate(phi(4.), math.nan) == (Operation.FUNC_EVALUATION, 2.)
    # phi(2) = 1 is not a strict decrease; halve
    assert ls.iterate(phi(2.), math.nan) == (Operation.FUNC_EVALUATION, 1.)
    assert ls.iterate(phi(1.), math.nan) == (Operation.MAJOR_ITERATION, 1.)


def test_backtracking_gives_up():
    ls = Backtracking()
    ls.init(1., -1., 1.)
    with pytest.raises(LinesearchError):
        for _ in range(200):
            ls.iterate(2., math.nan)


def test_bisection_accepts_first_step():
    ls = Bisection()
    assert ls.init(phi(0), dphi(0), 0.25) == \
        Operation.FUNC_EVALUATION | Operation.GRAD_EVALUATION
    assert ls.iterate(phi(0.25), dphi(0.25)) == \
        (Operation.MAJOR_ITERATION, 0.25)


@pytest.mark.parametrize('step', [0.25, 4., 100.])
def test_bisection(step):
    ls = Bisection(grad_const=0.1)
    t = run_linesearch(ls, step)
    assert strong_wolfe_conditions_met(phi(t), dphi(t), phi(0), dphi(0), t,
                                       0., 0.1)
    assert t == pytest.approx(1., abs=0.1)


def test_bisection_expands():
    ls = Bisection(grad_const=0.1)
    ls.init(phi(0), dphi(0), 0.25)
    assert ls.iterate(phi(0.25), dphi(0.25))[1] == 0.5
    assert ls.iterate(phi(0.5), dphi(0.5))[1] == 1.
    assert ls.iterate(phi(1.), dphi(1.)) == (Operation.MAJOR_ITERATION, 1.)


def test_bisection_diverges():
    # unbounded below along the line
    ls = Bisection()
    ls.init(0., -1., 1.)
    with pytest.raises(LinesearchError):
        t = 1.
        for _ in range(2000):
            _, t = ls.iterate(-t, -1.)


# =============================================================================
# Initial step sizes
# =============================================================================

def _loc(x, f, g):
    x = torch.tensor(x, dtype=torch.float64)
    g = torch.tensor(g, dtype=torch.float64)
    return Location(x, f, g)


def test_constant_step_size():
    loc = _loc([2.], 4., [4.])
    sizer = ConstantStepSize(2.)
    assert sizer.init(loc, -loc.grad) == 2.
    assert sizer.step_size(loc, -loc.grad) == 2.


def test_initial_step_scaling():
    # the first step is scaled so the largest component of the step is 1
    loc = _loc([2.], 4., [4.])
    assert QuadraticStepSize().init(loc, -loc.grad) == 0.25
    assert FirstOrderStepSize().init(loc, -loc.grad) == 0.25

    loc = _loc([0.25], 0.0625, [0.5])
    assert QuadraticStepSize().init(loc, -loc.grad) == 1.


def test_quadratic_step_size():
    # f(x) = x^2; a step of 0.25 along -4 from x = 2 ends at x = 1
    sizer = QuadraticStepSize()
    loc = _loc([2.], 4., [4.])
    sizer.init(loc, -loc.grad)
    loc = _loc([1.], 1., [2.])
    # the quadratic through f(2), f'(2) and f(1) has its minimum at x = 0
    assert sizer.step_size(loc, -loc.grad) == 0.5


def test_quadratic_step_size_bounds():
    sizer = QuadraticStepSize(min_step_size=0.75)
    loc = _loc([2.], 4., [4.])
    sizer.init(loc, -loc.grad)
    loc = _loc([1.], 1., [2.])
    assert sizer.step_size(loc, -loc.grad) == 0.75


def test_quadratic_step_size_equal_values():
    # no change in value: twice the previous step
    sizer = QuadraticStepSize()
    loc = _loc([2.], 4., [4.])
    sizer.init(loc, -loc.grad)
    loc = _loc([1.], 4., [8.])
    assert sizer.step_size(loc, -loc.grad) == 0.5


def test_first_order_step_size():
    sizer = FirstOrderStepSize()
    loc = _loc([2.], 4., [4.])
    sizer.init(loc, -loc.grad)
    loc = _loc([1.], 1., [2.])
    # previous step 0.25 scaled by g.d ratio (-16 / -4)
    assert sizer.step_size(loc, -loc.grad) == 1.

    sizer = FirstOrderStepSize(max_step_size=0.5)
    loc = _loc([2.], 4., [4.])
    sizer.init(loc, -loc.grad)
    loc = _loc([1.], 1., [2.])
    assert sizer.step_size(loc, -loc.grad) == 0.5


# =============================================================================
# Line search method
# =============================================================================

def test_linesearch_method_completes_location():
    """An accepted step is evaluated completely before it is reported."""
    method = GradientDescent()
    loc = _loc([1.], 1., [2.])
    op = method.init(loc)
    assert op == Operation.FUNC_EVALUATION
    assert torch.equal(loc.x, torch.zeros(1, dtype=torch.float64))

    loc.f = 0.
    op = method.iterate(loc)
    assert op == Operation.GRAD_EVALUATION

    loc.grad = torch.zeros(1, dtype=torch.float64)
    op = method.iterate(loc)
    assert op == Operation.MAJOR_ITERATION


def test_linesearch_method_non_descent():
    method = GradientDescent()
    loc = _loc([1.], 1., [0.])
    with pytest.raises(NonDescentDirectionError):
        method.init(loc)


def test_linesearch_method_no_progress():
    method = GradientDescent(step_sizer=ConstantStepSize(1e-300))
    loc = _loc([1.], 1., [2.])
    with pytest.raises(NoProgressError):
        method.init(loc)
