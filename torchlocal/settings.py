import math
from dataclasses import dataclass, field
from typing import Optional

import torch
from torch import Tensor

from ._optimize import SettingsError, Status

__all__ = ['FunctionConverge', 'Settings', 'Stats']


@dataclass
class FunctionConverge:
    """Function-value convergence window.

    The run converges once the best function value has not decreased by
    more than ``absolute + relative * |f|`` during `iterations` consecutive
    major iterations.
    """
    absolute: float = 1e-10
    relative: float = 0.
    iterations: int = 20


class FunctionConvergence(object):
    """Tracks a :class:`FunctionConverge` window during one run."""
    def __init__(self, criterion, f):
        self.criterion = criterion
        self.best = f
        self.iter = 0

    def update(self, f):
        c = self.criterion
        if c.iterations == 0:
            return Status.NOT_TERMINATED
        tol = c.absolute
        if c.relative > 0:
            tol += c.relative * max(abs(f), abs(self.best))
        if f < self.best and self.best - f > tol:
            self.best = f
            self.iter = 0
            return Status.NOT_TERMINATED
        self.iter += 1
        if self.iter < c.iterations:
            return Status.NOT_TERMINATED
        return Status.FUNCTION_CONVERGENCE


@dataclass
class Settings:
    """Termination criteria, limits and warm-start data of a run.

    Limits left as ``None`` (or 0) are not enforced, except
    `major_iterations` which defaults to ``200 * n``. Function convergence
    only applies to methods that do not use the gradient.

    Setting `use_initial_data` skips the evaluation of the starting point:
    `initial_value` (and `initial_gradient`/`initial_hessian` when the
    method needs them) are used instead and are not counted as evaluations.
    """
    gradient_threshold: float = 1e-6
    function_threshold: float = -math.inf
    function_converge: Optional[FunctionConverge] = field(
        default_factory=FunctionConverge)

    major_iterations: Optional[int] = None
    iterations: Optional[int] = None
    func_evaluations: Optional[int] = None
    grad_evaluations: Optional[int] = None
    hess_evaluations: Optional[int] = None
    runtime: Optional[float] = None

    disp: int = 0

    use_initial_data: bool = False
    initial_value: Optional[float] = None
    initial_gradient: Optional[Tensor] = None
    initial_hessian: Optional[Tensor] = None

    @classmethod
    def default(cls):
        return cls()

    def validate(self, dim, needs):
        if not self.gradient_threshold >= 0:
            raise SettingsError('gradient_threshold must be non-negative, '
                                'got {}.'.format(self.gradient_threshold))
        if math.isnan(self.function_threshold):
            raise SettingsError('function_threshold must not be NaN.')
        for name in ['major_iterations', 'iterations', 'func_evaluations',
                     'grad_evaluations', 'hess_evaluations', 'runtime']:
            value = getattr(self, name)
            if value is not None and value < 0:
                raise SettingsError('{} must be non-negative, got {}.'
                                    .format(name, value))
        fc = self.function_converge
        if fc is not None:
            if fc.iterations < 0 or fc.absolute < 0 or fc.relative < 0:
                raise SettingsError('function_converge parameters must be '
                                    'non-negative.')
        if self.use_initial_data:
            self._validate_initial_data(dim, needs)

    def _validate_initial_data(self, dim, needs):
        if self.initial_value is None:
            raise SettingsError('use_initial_data requires initial_value.')
        if not math.isfinite(float(self.initial_value)):
            raise SettingsError('initial_value must be finite, got {}.'
                                .format(self.initial_value))
        if needs.gradient:
            if self.initial_gradient is None:
                raise SettingsError('the method needs the gradient but no '
                                    'initial_gradient was supplied.')
            g = torch.as_tensor(self.initial_gradient)
            if g.numel() != dim:
                raise SettingsError('initial_gradient has {} elements; '
                                    'expected {}.'.format(g.numel(), dim))
            if not g.isfinite().all():
                raise SettingsError('initial_gradient must be finite.')
        elif self.initial_gradient is not None:
            raise SettingsError('initial_gradient supplied for a method that '
                                'does not use the gradient.')
        if needs.hessian:
            if self.initial_hessian is None:
                raise SettingsError('the method needs the Hessian but no '
                                    'initial_hessian was supplied.')
            h = torch.as_tensor(self.initial_hessian)
            if h.numel() != dim * dim:
                raise SettingsError('initial_hessian has shape {}; expected '
                                    '({}, {}).'.format(tuple(h.shape), dim, dim))
            if not h.isfinite().all():
                raise SettingsError('initial_hessian must be finite.')
        elif self.initial_hessian is not None:
            raise SettingsError('initial_hessian supplied for a method that '
                                'does not use the Hessian.')


@dataclass
class Stats:
    """Counters of one run, owned by the driver."""
    major_iterations: int = 0
    iterations: int = 0
    func_evaluations: int = 0
    grad_evaluations: int = 0
    hess_evaluations: int = 0
    runtime: float = 0.
