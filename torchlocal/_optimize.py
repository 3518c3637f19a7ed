# **** Optimization Utilities ****
#
# This module contains general utilities shared by the driver and the
# methods: the termination `Status` codes with their messages and the
# exceptions raised during a run.
from enum import IntEnum

from scipy.optimize._optimize import _status_message

__all__ = ['Status', 'OptimizeError', 'SettingsError', 'EvaluationError',
           'MethodError', 'LinesearchError', 'NonDescentDirectionError',
           'NoProgressError']


class Status(IntEnum):
    """Reason why a call to :func:`torchlocal.local` stopped."""
    NOT_TERMINATED = 0
    SUCCESS = 1
    GRADIENT_THRESHOLD = 2
    FUNCTION_THRESHOLD = 3
    FUNCTION_CONVERGENCE = 4
    ITERATION_LIMIT = 5
    RUNTIME_LIMIT = 6
    FUNCTION_EVALUATION_LIMIT = 7
    GRADIENT_EVALUATION_LIMIT = 8
    HESSIAN_EVALUATION_LIMIT = 9
    FAILURE = 10

    @property
    def success(self):
        return self in _successful

    @property
    def message(self):
        return _messages[self]


_successful = frozenset([
    Status.SUCCESS,
    Status.GRADIENT_THRESHOLD,
    Status.FUNCTION_THRESHOLD,
    Status.FUNCTION_CONVERGENCE,
])

# standard status messages (partly derived from SciPy)
_messages = {
    Status.NOT_TERMINATED: 'Optimization has not terminated.',
    Status.SUCCESS: _status_message['success'],
    Status.GRADIENT_THRESHOLD: 'Gradient norm dropped below the threshold.',
    Status.FUNCTION_THRESHOLD: 'Function value dropped below the threshold.',
    Status.FUNCTION_CONVERGENCE: 'Function value converged.',
    Status.ITERATION_LIMIT: _status_message['maxiter'],
    Status.RUNTIME_LIMIT: 'Maximum runtime has been exceeded.',
    Status.FUNCTION_EVALUATION_LIMIT: _status_message['maxfev'],
    Status.GRADIENT_EVALUATION_LIMIT:
        'Maximum number of gradient evaluations has been exceeded.',
    Status.HESSIAN_EVALUATION_LIMIT:
        'Maximum number of Hessian evaluations has been exceeded.',
    Status.FAILURE: 'The optimization method failed.',
}


class OptimizeError(Exception):
    """Base class of all torchlocal errors."""


class SettingsError(OptimizeError, ValueError):
    """Malformed or inconsistent input, detected before iterating."""


class EvaluationError(OptimizeError, RuntimeError):
    """The objective returned a value that cannot be used."""


class MethodError(OptimizeError):
    """A method could not produce the next iterate.

    The driver reports these as ``Status.FAILURE`` together with the best
    location found so far.
    """


class LinesearchError(MethodError):
    pass


class NonDescentDirectionError(MethodError):
    pass


class NoProgressError(MethodError):
    pass
