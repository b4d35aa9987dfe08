#########################################################################################
##
##              proflik example: logistic growth fitted from noisy counts
##
##  Model:   du/dt = lambda * u * (1 - u / K),   u(0) = u0
##  Data:    Noisy observations of one trajectory at 25 time points.
##  Output:  Profile likelihoods for (lambda, K, u0) with sigma held in the
##           data, refined afterwards to a fixed number of points, and the
##           joint region of (lambda, K).
##
#########################################################################################

# IMPORTS ===============================================================================

import numpy as np
import matplotlib.pyplot as plt
from scipy.integrate import solve_ivp

from proflik import (
    LikelihoodProblem,
    Optimiser,
    bivariate_profile,
    gaussian_loglikelihood,
    mle,
    profile,
)


# DATA ==================================================================================

t_meas = np.linspace(0, 10, 25)
true_params = (0.8, 12.0, 0.6)


def solve_logistic(params, t):
    lam, K, u0 = params
    sol = solve_ivp(
        lambda _t, u: lam * u * (1 - u / K),
        (t[0], t[-1]), [u0], t_eval=t, rtol=1e-8, atol=1e-10,
    )
    return sol.y[0]


rng = np.random.default_rng(3)
sigma = 0.4
u_meas = solve_logistic(true_params, t_meas) + rng.normal(0.0, sigma, t_meas.size)


# MODEL DEFINITION ======================================================================

def loglik(theta, data):
    t, u, sigma = data
    predicted = solve_logistic(theta, t)
    if predicted.size != u.size:
        return -np.inf
    return gaussian_loglikelihood(u, predicted, sigma, u.size)


prob = LikelihoodProblem(
    loglik,
    theta0=[0.5, 10.0, 1.0],
    data=(t_meas, u_meas, sigma),
    lower_bounds=[0.1, 5.0, 0.05],
    upper_bounds=[2.0, 20.0, 3.0],
    names=["lambda", "K", "u0"],
)


# Run Example ===========================================================================

if __name__ == '__main__':

    opt = Optimiser("L-BFGS-B", options={"ftol": 1e-12, "maxiter": 400})
    sol = mle(prob, opt)
    print(sol)

    prof = profile(
        prob, sol,
        resolution=60,
        min_steps=8,
        next_initial_estimate_method="interp",
        parallel=True,
    )
    prof.refine_profile(["lambda", "K", "u0"], target_number=30)
    prof.display()

    biv = bivariate_profile(
        prob, sol, ("lambda", "K"),
        resolution=30,
        min_layers=4,
        next_initial_estimate_method="nearest",
        parallel=True,
    )
    biv.display()

    fig, axes = prof.plot()
    fig.tight_layout()
    biv.plot()
    plt.show()
