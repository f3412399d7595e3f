import numpy as np
from scipy.special import digamma, gammaln, softmax

# Floor used before taking logs of probabilities that may underflow to zero.
EPSILON = np.finfo(float).eps
TINY = np.finfo(float).tiny


def _invert_dict(d):
    return {v: k for k, v in d.items()}


def safe_log(x):
    return np.log(np.maximum(x, EPSILON))


def positive(x):
    """Clamp an array of concentrations/variances into the open positive orthant."""
    return np.maximum(x, TINY)


def additive_logistic(x, axis=0):
    """Map unnormalised log weights onto the simplex along ``axis``."""
    return softmax(x, axis=axis)


def dirichlet_expectation(gamma):
    """E[log theta] for theta ~ Dirichlet(gamma); works on the last axis."""
    return digamma(gamma) - digamma(np.sum(gamma, axis=-1, keepdims=True))


def dirichlet_entropy(gamma):
    """Entropy of Dirichlet(gamma), as scipy.stats.dirichlet(gamma).entropy()."""
    gamma0 = gamma.sum()
    k = len(gamma)
    log_beta = gammaln(gamma).sum() - gammaln(gamma0)
    return log_beta + (gamma0 - k) * digamma(gamma0) - np.dot(gamma - 1, digamma(gamma))


def gamma_entropy(shape, rate):
    """Elementwise entropy of Gamma(shape, rate).

    Same as ``scipy.stats.gamma.entropy(shape, scale=1 / rate)``, without the
    distribution object.
    """
    return shape - np.log(rate) + gammaln(shape) + (1 - shape) * digamma(shape)


def gamma_log_prior(prior_shape, prior_rate, expectation, log_expectation):
    """Elementwise E_q[log Gamma(x | prior_shape, prior_rate)]."""
    return (
        prior_shape * np.log(prior_rate)
        - gammaln(prior_shape)
        + (prior_shape - 1) * log_expectation
        - prior_rate * expectation
    )


def bernoulli_entropy(p):
    q = 1 - p
    return -(p * safe_log(p) + q * safe_log(q))


def categorical_entropy(phi, axis=0):
    """Entropy of each categorical distribution laid out along ``axis``."""
    return -np.sum(phi * safe_log(phi), axis=axis)


def is_stochastic(matrix, axis=-1, atol=1e-6):
    if matrix.size == 0:
        return True
    return bool(
        np.all(matrix >= 0) and np.allclose(matrix.sum(axis=axis), 1, atol=atol)
    )


def is_positive_definite(matrix):
    if not np.allclose(matrix, matrix.T):
        return False
    try:
        np.linalg.cholesky(matrix)
    except np.linalg.LinAlgError:
        return False
    return True


def all_finite_positive(x):
    x = np.asarray(x)
    return bool(np.all(np.isfinite(x)) and np.all(x > 0))


__all__ = [
    "EPSILON",
    "TINY",
    "safe_log",
    "positive",
    "additive_logistic",
    "dirichlet_expectation",
    "dirichlet_entropy",
    "gamma_entropy",
    "gamma_log_prior",
    "bernoulli_entropy",
    "categorical_entropy",
    "is_stochastic",
    "is_positive_definite",
    "all_finite_positive",
]
