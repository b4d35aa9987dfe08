#########################################################################################
##
##              proflik example: profile likelihoods of a straight-line fit
##
##  Model:   y = beta0 + beta1 * x + e,   e ~ Normal(0, sigma^2)
##  Data:    Synthetic measurements with known coefficients.
##  Output:  95% profile confidence intervals for sigma, beta0 and beta1 and
##           the joint 95% confidence region of (beta0, beta1).
##
#########################################################################################

# IMPORTS ===============================================================================

import logging

import numpy as np
import matplotlib.pyplot as plt

from proflik import (
    LikelihoodProblem,
    LoggerManager,
    bivariate_profile,
    gaussian_loglikelihood,
    mle,
    profile,
)


# DATA ==================================================================================

rng = np.random.default_rng(42)

x_meas = np.linspace(0, 10, 80)
y_meas = 1.5 + 0.8 * x_meas + rng.normal(0.0, 0.5, x_meas.size)


# MODEL DEFINITION ======================================================================

def loglik(theta, data):
    sigma, beta0, beta1 = theta
    x, y = data
    return gaussian_loglikelihood(y, beta0 + beta1 * x, sigma, y.size)


prob = LikelihoodProblem(
    loglik,
    theta0=[1.0, 0.0, 0.5],
    data=(x_meas, y_meas),
    lower_bounds=[0.1, -2.0, 0.0],
    upper_bounds=[2.0, 5.0, 2.0],
    names=["sigma", "beta0", "beta1"],
)


# Run Example ===========================================================================

if __name__ == '__main__':

    LoggerManager().configure(logging.INFO)

    sol = mle(prob)
    print(sol)

    # Univariate profiles, both directions of every parameter in parallel
    prof = profile(prob, sol, resolution=100, parallel=True)
    prof.display()

    # Joint region of the two coefficients
    biv = bivariate_profile(prob, sol, ("beta0", "beta1"), resolution=60, outer_layers=2)
    biv.display()

    fig, axes = prof.plot()
    fig.tight_layout()

    fig2, axes2 = biv.plot()
    axes2[0].set_title("95% confidence region")
    plt.show()
