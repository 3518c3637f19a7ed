"""Test that all public APIs are importable and accessible."""
import pytest


def test_import_main_package():
    """Test importing the main torchlocal package."""
    import torchlocal
    assert hasattr(torchlocal, '__version__')


def test_import_core_functions():
    """Test importing the driver, settings and methods."""
    from torchlocal import (local, minimize, Settings, Status, GradientDescent,
                            CG, BFGS, LBFGS, Newton, NelderMead)


def test_import_benchmarks():
    """Test importing benchmark functions."""
    from torchlocal.benchmarks import rosen, ExtendedRosenbrock


@pytest.mark.parametrize('method', [
    'gd',
    'cg',
    'bfgs',
    'l-bfgs',
    'newton',
    'nelder-mead',
])
def test_method_available(method):
    """Test that all advertised methods are available and callable."""
    import torch
    from torchlocal import minimize

    # Simple quadratic objective: f(x) = ||x||^2
    x0 = torch.zeros(2)
    result = minimize(lambda x: x.square().sum(), x0, method=method, max_iter=1)
    assert result is not None
