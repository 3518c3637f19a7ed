import bisect
import torch

from ._optimize import SettingsError
from .method import Method, Needs, Operation

__all__ = ['NelderMead']

# stages of a Nelder-Mead iteration
_INITIALIZE = 'initialize'
_MAJOR = 'major'
_REFLECTED = 'reflected'
_EXPANDED = 'expanded'
_CONTRACTED_OUTSIDE = 'contracted_outside'
_CONTRACTED_INSIDE = 'contracted_inside'
_SHRINK = 'shrink'


class NelderMead(Method):
    """Derivative-free downhill simplex method of Nelder and Mead.

    Every iteration the worst vertex of the simplex is reflected through the
    centroid of the others, and the reflection is then expanded or
    contracted. When neither improves on the worst vertex, the simplex is
    shrunk towards the best one. Only function values are used, so a run can
    only converge through the function value criteria.

    Parameters
    ----------
    initial_vertices : Tensor, optional
        ``(n + 1, n)`` initial simplex. By default the simplex is the
        starting point plus ``simplex_size`` along each coordinate.
    initial_values : sequence of float, optional
        Function values at `initial_vertices`. Evaluated if not given.
    reflection, expansion, contraction, shrink : float
        Coefficients of the simplex transformations.
    simplex_size : float
        Edge length of the default initial simplex.
    """
    needs = Needs(gradient=False, hessian=False)

    def __init__(self, initial_vertices=None, initial_values=None,
                 reflection=1., expansion=2., contraction=0.5, shrink=0.5,
                 simplex_size=0.05):
        if reflection <= 0:
            raise ValueError('reflection must be positive.')
        if expansion <= 1:
            raise ValueError('expansion must be larger than 1.')
        if not 0 < contraction < 1:
            raise ValueError('contraction must be in (0, 1).')
        if not 0 < shrink < 1:
            raise ValueError('shrink must be in (0, 1).')
        if initial_values is not None and initial_vertices is None:
            raise ValueError('initial_values requires initial_vertices.')
        self.initial_vertices = initial_vertices
        self.initial_values = initial_values
        self.reflection = reflection
        self.expansion = expansion
        self.contraction = contraction
        self.shrink = shrink
        self.simplex_size = simplex_size

    def init(self, loc):
        dim = loc.x.numel()
        if self.initial_vertices is not None:
            vertices = torch.as_tensor(self.initial_vertices, dtype=loc.x.dtype,
                                       device=loc.x.device)
            if vertices.shape != (dim + 1, dim):
                raise SettingsError('initial_vertices has shape {}; expected '
                                    '({}, {}).'.format(tuple(vertices.shape),
                                                       dim + 1, dim))
            self.vertices = [v.clone() for v in vertices]
            if self.initial_values is not None:
                if len(self.initial_values) != dim + 1:
                    raise SettingsError('initial_values must have {} entries.'
                                        .format(dim + 1))
                self.values = [float(v) for v in self.initial_values]
                self._sort()
                return self._return_next(_MAJOR, loc)
            self.values = [float('nan')] * (dim + 1)
            self.fill_idx = 0
        else:
            self.vertices = []
            for i in range(dim):
                v = loc.x.clone()
                v[i] += self.simplex_size
                self.vertices.append(v)
            self.vertices.append(loc.x.clone())
            self.values = [float('nan')] * dim + [loc.f]
            self.fill_idx = 0
        self.last_iter = _INITIALIZE
        loc.x = self.vertices[0].clone()
        return Operation.FUNC_EVALUATION

    def iterate(self, loc):
        dim = len(self.vertices) - 1
        stage = self.last_iter

        if stage == _INITIALIZE:
            self.values[self.fill_idx] = loc.f
            self.fill_idx += 1
            n_fill = dim if self.initial_vertices is None else dim + 1
            if self.fill_idx < n_fill:
                loc.x = self.vertices[self.fill_idx].clone()
                return Operation.FUNC_EVALUATION
            self._sort()
            return self._return_next(_MAJOR, loc)

        if stage == _MAJOR:
            return self._return_next(_REFLECTED, loc)

        if stage == _REFLECTED:
            self.reflected_point = loc.x.clone()
            self.reflected_value = loc.f
            if self.values[0] <= loc.f < self.values[dim - 1]:
                self._replace_worst(loc.x, loc.f)
                return self._return_next(_MAJOR, loc)
            if loc.f < self.values[0]:
                return self._return_next(_EXPANDED, loc)
            if loc.f < self.values[dim]:
                return self._return_next(_CONTRACTED_OUTSIDE, loc)
            return self._return_next(_CONTRACTED_INSIDE, loc)

        if stage == _EXPANDED:
            if loc.f < self.reflected_value:
                self._replace_worst(loc.x, loc.f)
            else:
                self._replace_worst(self.reflected_point, self.reflected_value)
            return self._return_next(_MAJOR, loc)

        if stage == _CONTRACTED_OUTSIDE:
            if loc.f <= self.reflected_value:
                self._replace_worst(loc.x, loc.f)
                return self._return_next(_MAJOR, loc)
            self.fill_idx = 1
            return self._return_next(_SHRINK, loc)

        if stage == _CONTRACTED_INSIDE:
            if loc.f < self.values[dim]:
                self._replace_worst(loc.x, loc.f)
                return self._return_next(_MAJOR, loc)
            self.fill_idx = 1
            return self._return_next(_SHRINK, loc)

        if stage == _SHRINK:
            self.vertices[self.fill_idx] = loc.x.clone()
            self.values[self.fill_idx] = loc.f
            self.fill_idx += 1
            if self.fill_idx <= dim:
                return self._return_next(_SHRINK, loc)
            self._sort()
            return self._return_next(_MAJOR, loc)

        raise RuntimeError('NelderMead.iterate called before init.')

    def _return_next(self, stage, loc):
        self.last_iter = stage
        dim = len(self.vertices) - 1
        if stage == _MAJOR:
            # report the best vertex
            loc.x = self.vertices[0].clone()
            loc.f = self.values[0]
            return Operation.MAJOR_ITERATION
        if stage == _SHRINK:
            # x_i <- x_best + shrink * (x_i - x_best)
            best = self.vertices[0]
            loc.x = best + (self.vertices[self.fill_idx] - best).mul(self.shrink)
            return Operation.FUNC_EVALUATION

        # x_new = centroid + scale * (centroid - x_worst)
        if stage == _REFLECTED:
            scale = self.reflection
        elif stage == _EXPANDED:
            scale = self.reflection * self.expansion
        elif stage == _CONTRACTED_OUTSIDE:
            scale = self.reflection * self.contraction
        else:
            scale = -self.contraction
        centroid = self.centroid
        loc.x = centroid + (centroid - self.vertices[dim]).mul(scale)
        return Operation.FUNC_EVALUATION

    def _sort(self):
        order = sorted(range(len(self.values)), key=self.values.__getitem__)
        self.vertices = [self.vertices[i] for i in order]
        self.values = [self.values[i] for i in order]
        self._compute_centroid()

    def _replace_worst(self, x, f):
        self.vertices.pop()
        self.values.pop()
        idx = bisect.bisect_right(self.values, f)
        self.vertices.insert(idx, x.clone())
        self.values.insert(idx, f)
        self._compute_centroid()

    def _compute_centroid(self):
        dim = len(self.vertices) - 1
        self.centroid = torch.stack(self.vertices[:dim]).sum(0).div(dim)
