from abc import ABC, abstractmethod
from collections import namedtuple
from enum import IntFlag

__all__ = ['Operation', 'Needs', 'Method', 'NextDirectioner']


class Operation(IntFlag):
    """Request made by a method to the driver.

    The evaluation flags can be combined; ``MAJOR_ITERATION`` and
    ``METHOD_DONE`` are always returned on their own.
    """
    NO_OPERATION = 0
    FUNC_EVALUATION = 1
    GRAD_EVALUATION = 2
    HESS_EVALUATION = 4
    MAJOR_ITERATION = 8
    METHOD_DONE = 16


EVALUATIONS = (Operation.FUNC_EVALUATION | Operation.GRAD_EVALUATION |
               Operation.HESS_EVALUATION)

# evaluation capabilities a method requires from the objective
Needs = namedtuple('Needs', ['gradient', 'hessian'])


def needed_evaluations(needs):
    """Return the evaluations that make a location complete for `needs`."""
    op = Operation.FUNC_EVALUATION
    if needs.gradient:
        op |= Operation.GRAD_EVALUATION
    if needs.hessian:
        op |= Operation.HESS_EVALUATION
    return op


class Method(ABC):
    """An iterative minimization algorithm driven by :func:`local`.

    The driver hands a :class:`Location` to `init` and then to every call of
    `iterate`. A method writes the next point it wants into ``loc.x`` and
    returns the evaluations it needs there. Returning ``MAJOR_ITERATION``
    tells the driver that ``loc`` holds a new, fully evaluated iterate that
    should be checked for convergence.
    """
    needs = Needs(gradient=False, hessian=False)

    @abstractmethod
    def init(self, loc):
        pass

    @abstractmethod
    def iterate(self, loc):
        pass

    def status(self):
        """Terminal status reported after ``METHOD_DONE``."""
        raise RuntimeError('{} does not report a status.'
                           .format(type(self).__name__))


class NextDirectioner(ABC):
    """Strategy producing the search directions of a line search method.

    Both functions fill `d` in-place and return the initial trial step.
    """
    @abstractmethod
    def init_direction(self, loc, d):
        pass

    @abstractmethod
    def next_direction(self, loc, d):
        pass
