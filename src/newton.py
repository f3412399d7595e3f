"""Newton root finders used by the variational updates.

None of these raise on non-convergence: hitting ``niter`` simply returns the
best iterate found, since coordinate ascent only needs each step not to make
the bound worse.
"""

import logging

import numpy as np
from scipy.special import digamma, polygamma

from helpers import positive

logger = logging.getLogger("vbtopics")

# Cap on the step halvings in a single Newton iteration.
MAX_HALVINGS = 50


def trigamma(x):
    return polygamma(1, x)


def logistic_normal_mean(lam, vsq, logzeta, invsigma, mu, weighted_counts, size, niter, ntol):
    """Damped Newton ascent on the mean of a diagonal logistic-normal posterior.

    Maximises, for one document,

        f(lam) = -1/2 (lam - mu)' invsigma (lam - mu) + weighted_counts . lam
                 - size * sum(exp(lam + vsq / 2 - logzeta))

    where ``weighted_counts`` is ``phi @ counts`` and ``size`` the token total.
    The Newton step solves ``(invsigma + size * diag(exp(...))) step = grad``
    and is halved while it would decrease ``f``.

    Returns the updated mean (a new array).
    """

    def objective(x):
        dev = x - mu
        return (
            -0.5 * dev @ invsigma @ dev
            + weighted_counts @ x
            - size * np.exp(x + 0.5 * vsq - logzeta).sum()
        )

    lam = lam.copy()
    current = objective(lam)
    for _ in range(niter):
        expected = size * np.exp(lam + 0.5 * vsq - logzeta)
        grad = invsigma @ (mu - lam) + weighted_counts - expected
        if np.linalg.norm(grad) < ntol:
            break

        negative_hess = invsigma + np.diag(expected)
        step = np.linalg.solve(negative_hess, grad)

        rho = 1.0
        candidate = lam + step
        value = objective(candidate)
        halvings = 0
        while not value >= current and halvings < MAX_HALVINGS:
            rho *= 0.5
            candidate = lam + rho * step
            value = objective(candidate)
            halvings += 1
        if not value >= current:
            break

        lam, current = candidate, value
    else:
        logger.debug("Logistic-normal mean Newton stopped after %d iterations.", niter)

    return lam


def logistic_normal_variance(lam, vsq, logzeta, invsigma_diag, size, niter, ntol):
    """Per-coordinate Newton with back-tracking on the posterior variances.

    The bound is separable in ``vsq``, so each coordinate is a scalar root
    find of

        g_i(v) = -1/2 (invsigma_ii + size * exp(lam_i + v / 2 - logzeta) - 1 / v)

    with the step halved while it would make ``v`` non-positive.
    """
    vsq = vsq.copy()
    for i in range(len(vsq)):
        for _ in range(niter):
            expected = size * np.exp(lam[i] + 0.5 * vsq[i] - logzeta)
            grad = -0.5 * (invsigma_diag[i] + expected - 1 / vsq[i])
            invhess = -1 / (0.25 * expected + 0.5 / vsq[i] ** 2)
            p = invhess * grad

            rho = 1.0
            while vsq[i] - rho * p <= 0:
                rho *= 0.5
            vsq[i] -= rho * p

            if rho * abs(grad) < ntol:
                break
        else:
            logger.debug("Variance Newton for coordinate %d stopped after %d iterations.", i, niter)

    return positive(vsq)


def dirichlet_concentration(alpha, elogtheta_sum, n_docs, niter, ntol):
    """Interior-point Newton for a Dirichlet prior shared by ``n_docs`` documents.

    Maximises ``n_docs * (lgamma(sum alpha) - sum lgamma(alpha)) + (alpha - 1) . elogtheta_sum``
    plus a log-barrier ``nu * sum(log alpha)``. The barrier weight starts at K
    and is halved every iteration. The Hessian is diagonal plus a rank-one
    term, so each step is solved with Sherman-Morrison. Steps are halved while
    any coordinate would leave the positive orthant.
    """
    alpha = alpha.astype(float).copy()
    k = len(alpha)
    nu = float(k)

    for _ in range(niter):
        rho = 1.0
        alpha_sum = alpha.sum()
        grad = nu / alpha + n_docs * (digamma(alpha_sum) - digamma(alpha)) + elogtheta_sum
        hess_diag = -(n_docs * trigamma(alpha) + nu / alpha ** 2)
        hess_rank_one = n_docs * trigamma(alpha_sum)

        b = np.sum(grad / hess_diag) / (1 / hess_rank_one + np.sum(1 / hess_diag))
        p = (grad - b) / hess_diag

        while np.min(alpha - rho * p) <= 0:
            rho *= 0.5
        alpha = alpha - rho * p

        if rho * np.linalg.norm(grad) < ntol and nu / k < ntol:
            break
        nu *= 0.5
    else:
        logger.debug("Dirichlet concentration Newton stopped after %d iterations.", niter)

    return positive(alpha)
