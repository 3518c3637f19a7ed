"""
A comparison of torchlocal methods to the analogous solvers from
scipy.optimize on the Rosenbrock function.

Both libraries receive the analytic derivatives, so the numbers of
evaluations printed by the two are directly comparable.
"""
import torch
from scipy import optimize

from torchlocal import local, Settings, BFGS, LBFGS, CG, Newton, NelderMead
from torchlocal.benchmarks import ExtendedRosenbrock


def print_header(title, num_breaks=1):
    print('\n'*num_breaks + '='*50)
    print(' '*20 + title)
    print('='*50 + '\n')


def compare(title, method, scipy_method, x0, **scipy_kwargs):
    print_header(title)

    print('-'*18 + ' torchlocal ' + '-'*18)
    settings = Settings(gradient_threshold=1e-5, disp=1)
    local(ExtendedRosenbrock(), x0, settings, method)

    print('\n' + '-'*20 + ' scipy ' + '-'*20)
    optimize.minimize(
        optimize.rosen, x0.numpy(),
        method=scipy_method,
        tol=1e-5,
        options=dict(disp=True),
        **scipy_kwargs
    )


def main():
    torch.manual_seed(991)
    x0 = torch.randn(20, dtype=torch.float64)

    print('\ninitial loss: %0.4f\n' % ExtendedRosenbrock().func(x0))

    compare('BFGS', BFGS(), 'bfgs', x0, jac=optimize.rosen_der)
    compare('L-BFGS', LBFGS(), 'l-bfgs-b', x0, jac=optimize.rosen_der)
    compare('CG', CG(), 'cg', x0, jac=optimize.rosen_der)

    # NOTE: scipy has no line search Newton method with an explicit
    # Hessian; trust-exact also factorizes the Hessian with Cholesky.
    compare('Newton', Newton(), 'trust-exact', x0, jac=optimize.rosen_der,
            hess=optimize.rosen_hess)

    # Nelder-Mead only stops through function convergence
    compare('Nelder-Mead', NelderMead(), 'nelder-mead', x0[:4].clone())


if __name__ == '__main__':
    main()
