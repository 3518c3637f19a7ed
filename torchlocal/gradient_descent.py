import torch

from .line_search import Backtracking, LinesearchMethod, QuadraticStepSize
from .method import Method, NextDirectioner, Needs

__all__ = ['GradientDescent']


class GradientDescent(Method, NextDirectioner):
    """Steepest descent with a line search.

    Parameters
    ----------
    linesearcher : Linesearcher, optional
        Line search along the negative gradient. Defaults to
        :class:`Backtracking`.
    step_sizer : optional
        Policy for the first trial step of every line search. Defaults to
        :class:`QuadraticStepSize`.
    """
    needs = Needs(gradient=True, hessian=False)

    def __init__(self, linesearcher=None, step_sizer=None):
        if linesearcher is None:
            linesearcher = Backtracking()
        if step_sizer is None:
            step_sizer = QuadraticStepSize()
        self.linesearcher = linesearcher
        self.step_sizer = step_sizer

    def init(self, loc):
        self._ls = LinesearchMethod(self.linesearcher, self, self.needs)
        return self._ls.init(loc)

    def iterate(self, loc):
        return self._ls.iterate(loc)

    def init_direction(self, loc, d):
        torch.neg(loc.grad, out=d)
        return self.step_sizer.init(loc, d)

    def next_direction(self, loc, d):
        torch.neg(loc.grad, out=d)
        return self.step_sizer.step_size(loc, d)
