"""Shared pytest fixtures for torchlocal tests."""
import pytest
import torch

from torchlocal import benchmarks


# =============================================================================
# Objective Function Fixtures
# =============================================================================
# To add a new test problem, create a fixture that returns a dict with:
#   - 'objective': object with func/grad (and optionally hess) methods
#   - 'x0': Tensor, initial point
#   - 'solution': Tensor or None, known optimal solution
#   - 'name': str, descriptive name for the problem


def _problem(objective, x0, solution, name):
    return {
        'objective': objective,
        'x0': torch.tensor(x0, dtype=torch.float64),
        'solution': None if solution is None else
                    torch.tensor(solution, dtype=torch.float64),
        'name': name,
    }


@pytest.fixture(scope='session')
def quadratic_problem():
    """Convex quadratic bowl centered at the origin."""
    return _problem(benchmarks.Quadratic([1., 2., 4., 8.]),
                    [1., -1., 1., -1.], [0., 0., 0., 0.], 'quadratic')


@pytest.fixture(scope='session')
def rosenbrock_problem():
    """Rosenbrock function (banana function) from the classic start."""
    return _problem(benchmarks.ExtendedRosenbrock(), [-1.2, 1.], [1., 1.],
                    'rosenbrock')


@pytest.fixture(scope='session')
def beale_problem():
    return _problem(benchmarks.Beale(), [1., 1.], [3., 0.5], 'beale')


@pytest.fixture(scope='session')
def least_squares_problem():
    """
    Generate a least squares problem for testing optimization algorithms.

    Creates a linear regression problem: min ||Y - X @ B||^2
    where X is N x D, Y is N x M, and B is D x M.

    This is a session-scoped fixture, so the same problem instance is used
    across all tests for consistency.

    Returns
    -------
    dict
        Dictionary containing:
        - objective: callable, the objective function
        - x0: Tensor, initial parameter values (zeros)
        - solution: Tensor, the true solution
        - name: str
    """
    torch.manual_seed(42)
    N, D, M = 100, 7, 5
    X = torch.randn(N, D, dtype=torch.float64)
    Y = torch.randn(N, M, dtype=torch.float64)

    def objective(B):
        return torch.sum((Y - X @ B) ** 2)

    # target B
    trueB = torch.linalg.lstsq(X, Y).solution # XB = Y (solve for B)

    # initial B
    B0 = torch.zeros(D, M, dtype=torch.float64)

    return {
        'objective': objective,
        'x0': B0,
        'solution': trueB,
        'name': 'least_squares',
    }
