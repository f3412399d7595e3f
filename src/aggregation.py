# aggregation.py

import numpy as np


class Accumulator:
    """Zero-initialised buffer that collects sufficient statistics over an epoch.

    Every document scatters its contribution into the columns selected by its
    term (or user) ids with ``scatter``. Ids are unique within a document, so a
    plain fancy-indexed add is enough; accumulation across documents is a sum
    and does not depend on document order. ``normalize`` turns the buffer into
    the new parameter, keeps the previous parameter as ``old`` and zeroes the
    buffer for the next epoch.

    Parameters
    ----------
    shape : tuple
        Shape of the parameter, ``(K, V)`` for topic-term matrices or ``(V,)``
        for a single distribution. Columns are always the last axis.
    """

    def __init__(self, shape):
        self.shape = tuple(shape)
        self.buffer = np.zeros(self.shape)

    def scatter(self, columns, values):
        self.buffer[..., columns] += values

    def reset(self):
        self.buffer = np.zeros(self.shape)

    def is_clear(self):
        return not np.any(self.buffer)

    def take(self):
        """Return the raw buffer and start a fresh one."""
        out = self.buffer
        self.reset()
        return out

    def normalize(self):
        """Normalise the buffer along its last axis, then clear it.

        Rows with zero mass are left at zero instead of producing NaNs.
        """
        out = normalize_rows(self.buffer)
        self.reset()
        return out


def normalize_rows(x):
    totals = x.sum(axis=-1, keepdims=True)
    return x / np.where(totals == 0, 1, totals)


def logistic_normal_prior(lam, vsq):
    """Closed-form update of the logistic-normal prior from the document posteriors.

    ``lam`` and ``vsq`` are ``(M, K)`` arrays of posterior means and variances.

        mu    = mean_d lam_d
        sigma = (diag(sum_d vsq_d) + sum_d (lam_d - mu)(lam_d - mu)') / M

    Returns ``(mu, sigma, invsigma)``.
    """
    n_docs = lam.shape[0]
    mu = lam.mean(axis=0)
    dev = lam - mu
    sigma = (np.diag(vsq.sum(axis=0)) + dev.T @ dev) / n_docs
    sigma = 0.5 * (sigma + sigma.T)
    invsigma = np.linalg.inv(sigma)
    return mu, sigma, 0.5 * (invsigma + invsigma.T)


def mixing_rate(tau, counts, sizes_total):
    """Fraction of tokens attributed to topics rather than the background."""
    if sizes_total == 0:
        return 0.5
    return float(np.dot(tau, counts) / sizes_total)
