import math
from abc import ABC, abstractmethod
import torch

from ._optimize import (LinesearchError, NonDescentDirectionError,
                        NoProgressError)
from .method import Operation, EVALUATIONS, needed_evaluations

__all__ = ['Linesearcher', 'Backtracking', 'Bisection', 'LinesearchMethod',
           'armijo_condition_met', 'strong_wolfe_conditions_met',
           'ConstantStepSize', 'QuadraticStepSize', 'FirstOrderStepSize']

# smallest step backtracking will try before giving up
_min_backtracking_step = 1e-20


def armijo_condition_met(f, f0, gtd0, t, c1):
    """Sufficient decrease condition ``f(t) <= f(0) + c1 * t * f'(0)``."""
    return f <= f0 + c1 * t * gtd0


def strong_wolfe_conditions_met(f, gtd, f0, gtd0, t, c1, c2):
    """Armijo condition plus the strong curvature condition
    ``|f'(t)| <= c2 * |f'(0)|``."""
    if not armijo_condition_met(f, f0, gtd0, t, c1):
        return False
    return abs(gtd) <= c2 * abs(gtd0)


# =============================
#     Linesearchers
# =============================


class Linesearcher(ABC):
    """One-dimensional search for a step length along a descent direction.

    `init` receives the value and directional derivative at the start of the
    line and the first trial step and returns the evaluations needed at the
    trial point. `iterate` receives the value and directional derivative
    (NaN if the gradient was not evaluated) at the last trial point and
    returns ``(op, step)``: either the next trial or ``MAJOR_ITERATION``
    when `step` is accepted.
    """
    @abstractmethod
    def init(self, f, gtd, step):
        pass

    @abstractmethod
    def iterate(self, f, gtd):
        pass

    @staticmethod
    def _check_init(gtd, step):
        if not gtd < 0:
            raise NonDescentDirectionError(
                'line search started along a non-descent direction.')
        if not (step > 0 and math.isfinite(step)):
            raise LinesearchError('invalid initial step size {}.'.format(step))


class Backtracking(Linesearcher):
    """Backtracking line search with the Armijo condition.

    The trial step is multiplied by `decrease` until the function value
    satisfies the sufficient decrease condition with constant `fun_const`
    and is strictly lower than at the start of the line. Only function
    values are evaluated.
    """
    def __init__(self, decrease=0.5, fun_const=1e-4):
        if not 0 < decrease < 1:
            raise ValueError('decrease must be in (0, 1), got {}.'
                             .format(decrease))
        if not 0 < fun_const < 1:
            raise ValueError('fun_const must be in (0, 1), got {}.'
                             .format(fun_const))
        self.decrease = decrease
        self.fun_const = fun_const

    def init(self, f, gtd, step):
        self._check_init(gtd, step)
        self.step = step
        self.f0 = f
        self.gtd0 = gtd
        return Operation.FUNC_EVALUATION

    def iterate(self, f, gtd):
        if f < self.f0 and armijo_condition_met(f, self.f0, self.gtd0,
                                                self.step, self.fun_const):
            return Operation.MAJOR_ITERATION, self.step
        self.step *= self.decrease
        if self.step < _min_backtracking_step:
            raise LinesearchError('step size has reached the minimum '
                                  'threshold.')
        return Operation.FUNC_EVALUATION, self.step


class Bisection(Linesearcher):
    """Bisection line search for the strong Wolfe conditions.

    The step is doubled until the minimum along the line is bracketed, then
    the bracket is halved until the curvature condition with constant
    `grad_const` holds at a point no worse than the best seen so far.
    Function values and gradients are evaluated at every trial.
    """
    def __init__(self, grad_const=0.9):
        if not 0 < grad_const < 1:
            raise ValueError('grad_const must be in (0, 1), got {}.'
                             .format(grad_const))
        self.grad_const = grad_const

    def init(self, f, gtd, step):
        self._check_init(gtd, step)
        self.min_step = 0.
        self.max_step = math.inf
        self.step = step
        self.f0 = f
        self.min_f = f
        self.max_f = math.nan
        self.gtd0 = gtd
        return Operation.FUNC_EVALUATION | Operation.GRAD_EVALUATION

    def iterate(self, f, gtd):
        min_f = self.f0
        if self.max_f < min_f:
            min_f = self.max_f
        if self.min_f < min_f:
            min_f = self.min_f
        if strong_wolfe_conditions_met(f, gtd, min_f, self.gtd0, self.step,
                                       0., self.grad_const):
            return Operation.MAJOR_ITERATION, self.step

        if math.isinf(self.max_step):
            # minimum not bracketed yet
            if gtd > 0:
                # sign change of the derivative, this is the new upper bound
                self.max_step = self.step
                self.max_f = f
                return self._next_step((self.min_step + self.max_step) / 2)
            if f <= self.min_f:
                # still descending, go further
                self.min_step = self.step
                self.min_f = f
                return self._next_step(self.step * 2)
            # increase in value with negative derivative: a local minimum
            # was skipped
            self.max_step = self.step
            self.max_f = f
            return self._next_step((self.min_step + self.max_step) / 2)

        # the minimum lies between min_step and max_step, in either order
        if f <= self.min_f:
            # new best point; keep the bracket end on its descent side
            if (gtd < 0) == (self.min_step > self.step):
                self.max_step = self.min_step
                self.max_f = self.min_f
            self.min_step = self.step
            self.min_f = f
        else:
            self.max_step = self.step
            self.max_f = f
        return self._next_step((self.min_step + self.max_step) / 2)

    def _next_step(self, step):
        if step == self.step:
            raise LinesearchError('bisection cannot shrink the interval '
                                  'any further.')
        if not math.isfinite(step):
            raise LinesearchError('bisection step size diverged.')
        self.step = step
        return Operation.FUNC_EVALUATION | Operation.GRAD_EVALUATION, step


# =============================
#     Initial step sizes
# =============================


def _equal_within_rel(a, b, tol):
    if a == b:
        return True
    return abs(a - b) <= tol * max(abs(a), abs(b))


class ConstantStepSize(object):
    """Always start the line search from `size`."""
    def __init__(self, size=1.):
        self.size = size

    def init(self, loc, d):
        return self.size

    def step_size(self, loc, d):
        return self.size


class QuadraticStepSize(object):
    """Initial step from the minimizer of a quadratic interpolant.

    The quadratic interpolates the previous function value, the previous
    directional derivative and the current function value (Nocedal & Wright,
    2006; eq. 3.60). When the two values are relatively equal within
    `threshold` or the interpolant is not convex, twice the previous step is
    used instead. The result is clamped to ``[min_step_size, max_step_size]``.
    """
    def __init__(self, threshold=1e-12, initial_step_factor=1.,
                 min_step_size=1e-3, max_step_size=1.):
        self.threshold = threshold
        self.initial_step_factor = initial_step_factor
        self.min_step_size = min_step_size
        self.max_step_size = max_step_size

    def init(self, loc, d):
        step = self.initial_step_factor
        d_norm = float(d.norm(p=float('inf')))
        if d_norm > 1:
            step /= d_norm
        self.f_prev = loc.f
        self.d_prev_norm = d_norm
        self.gtd_prev = float(loc.grad.dot(d))
        self.x_prev = loc.x.clone()
        return step

    def step_size(self, loc, d):
        step_prev = float((loc.x - self.x_prev).norm(p=float('inf'))) \
            / self.d_prev_norm
        gtd = float(loc.grad.dot(d))
        step = 2 * step_prev
        if not _equal_within_rel(self.f_prev, loc.f, self.threshold):
            # finite-difference slope along the previous direction
            df = (loc.f - self.f_prev) / step_prev
            quad_test = df - self.gtd_prev
            if quad_test > 0:
                step = -self.gtd_prev * step_prev / quad_test / 2
        step = max(step, self.min_step_size)
        step = min(step, self.max_step_size)

        self.f_prev = loc.f
        self.d_prev_norm = float(d.norm(p=float('inf')))
        self.gtd_prev = gtd
        self.x_prev.copy_(loc.x)
        return step


class FirstOrderStepSize(object):
    """Initial step that keeps the first-order change of the function.

    The previous step is scaled by the ratio of the previous to the current
    directional derivative (Nocedal & Wright, 2006; eq. 3.59), bounded above
    by `max_step_size`.
    """
    def __init__(self, initial_step_factor=1., max_step_size=1.):
        self.initial_step_factor = initial_step_factor
        self.max_step_size = max_step_size

    def init(self, loc, d):
        step = self.initial_step_factor
        d_norm = float(d.norm(p=float('inf')))
        if d_norm > 1:
            step /= d_norm
        self.d_prev_norm = d_norm
        self.gtd_prev = float(loc.grad.dot(d))
        self.x_prev = loc.x.clone()
        return step

    def step_size(self, loc, d):
        step_prev = float((loc.x - self.x_prev).norm(p=float('inf'))) \
            / self.d_prev_norm
        gtd = float(loc.grad.dot(d))
        step = step_prev * self.gtd_prev / gtd if gtd != 0 else math.inf
        step = min(step, self.max_step_size)

        self.d_prev_norm = float(d.norm(p=float('inf')))
        self.gtd_prev = gtd
        self.x_prev.copy_(loc.x)
        return step


# =============================
#     Line search methods
# =============================


class LinesearchMethod(object):
    """Glue between a :class:`Linesearcher` and a
    :class:`~torchlocal.method.NextDirectioner`.

    Implements the ``init``/``iterate`` protocol of
    :class:`~torchlocal.method.Method` for every line search based method.
    Each accepted step is completed with the evaluations listed in `needs`
    before ``MAJOR_ITERATION`` is returned, so the reported location is
    always fully evaluated.
    """
    def __init__(self, linesearcher, next_directioner, needs):
        self.linesearcher = linesearcher
        self.next_directioner = next_directioner
        self.needed = needed_evaluations(needs)
        self.last_op = Operation.NO_OPERATION

    def init(self, loc):
        if loc.grad is None:
            raise RuntimeError('line search methods require the gradient at '
                               'the starting location.')
        self.x = loc.x.clone(memory_format=torch.contiguous_format)
        self.d = torch.empty_like(self.x)
        self.last_op = Operation.NO_OPERATION
        step = self.next_directioner.init_direction(loc, self.d)
        return self._init_next_linesearch(loc, step)

    def iterate(self, loc):
        if self.last_op == Operation.MAJOR_ITERATION:
            # the accepted point did not terminate the run; continue from it
            self.x.copy_(loc.x)
            step = self.next_directioner.next_direction(loc, self.d)
            return self._init_next_linesearch(loc, step)
        if not self.last_op & EVALUATIONS:
            raise RuntimeError('LinesearchMethod.iterate called without a '
                               'pending evaluation.')

        self.evaluated |= self.last_op
        if self.accepted:
            self.last_op = Operation.MAJOR_ITERATION
            return self.last_op

        gtd = math.nan
        if self.evaluated & Operation.GRAD_EVALUATION:
            gtd = float(loc.grad.dot(self.d))
        op, step = self.linesearcher.iterate(loc.f, gtd)
        if op == Operation.MAJOR_ITERATION:
            # request whatever is still missing at the accepted point
            self.accepted = True
            missing = Operation(int(self.needed) & ~int(self.evaluated))
            if missing == Operation.NO_OPERATION:
                missing = Operation.MAJOR_ITERATION
            self.last_op = missing
            return self.last_op
        return self._evaluate_at(loc, step, op)

    def _init_next_linesearch(self, loc, step):
        gtd = float(loc.grad.dot(self.d))
        if not gtd < 0:
            self.last_op = Operation.NO_OPERATION
            raise NonDescentDirectionError(
                'search direction is not a descent direction '
                '(directional derivative {}).'.format(gtd))
        op = self.linesearcher.init(loc.f, gtd, step)
        self.accepted = False
        return self._evaluate_at(loc, step, op)

    def _evaluate_at(self, loc, step, op):
        x_new = self.x + self.d.mul(step)
        if torch.equal(x_new, self.x):
            self.last_op = Operation.NO_OPERATION
            raise NoProgressError('step {} along the search direction does '
                                  'not change x.'.format(step))
        loc.x = x_new
        self.evaluated = Operation.NO_OPERATION
        self.last_op = op
        return op
