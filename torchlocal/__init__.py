from ._optimize import (Status, OptimizeError, SettingsError, EvaluationError,
                        MethodError, LinesearchError, NonDescentDirectionError,
                        NoProgressError)
from .bfgs import BFGS, LBFGS
from .cg import (CG, FletcherReeves, HestenesStiefel, PolakRibierePolyak,
                 DaiYuan, HagerZhang)
from .function import Location, ScalarFunction, AutogradFunction
from .gradient_descent import GradientDescent
from .line_search import (Backtracking, Bisection, ConstantStepSize,
                          QuadraticStepSize, FirstOrderStepSize)
from .method import Operation, Needs, Method, NextDirectioner
from .minimize import local, minimize
from .nelder_mead import NelderMead
from .newton import Newton
from .settings import Settings, FunctionConverge, Stats

__all__ = ['local', 'minimize', 'Settings', 'FunctionConverge', 'Stats',
           'Status', 'Operation', 'Needs', 'Method', 'NextDirectioner',
           'Location', 'ScalarFunction', 'AutogradFunction',
           'GradientDescent', 'CG', 'BFGS', 'LBFGS', 'Newton', 'NelderMead',
           'FletcherReeves', 'HestenesStiefel', 'PolakRibierePolyak',
           'DaiYuan', 'HagerZhang', 'Backtracking', 'Bisection',
           'ConstantStepSize', 'QuadraticStepSize', 'FirstOrderStepSize',
           'OptimizeError', 'SettingsError', 'EvaluationError', 'MethodError',
           'LinesearchError', 'NonDescentDirectionError', 'NoProgressError']

__version__ = "0.1.0"
