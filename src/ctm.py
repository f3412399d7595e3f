import numpy as np
from scipy.special import logsumexp

from aggregation import logistic_normal_prior
from filtering import FilterMixin
from helpers import additive_logistic, all_finite_positive, categorical_entropy, is_positive_definite, safe_log
from newton import logistic_normal_mean, logistic_normal_variance
from topic_model import MultinomialTopicModel

LOG_2PI = np.log(2 * np.pi)


class CTM(MultinomialTopicModel):
    """
    Correlated topic model trained by variational Bayes.

    Document topic weights are the additive-logistic transform of a
    Gaussian draw eta_d ~ N(mu, sigma), which lets topics co-occur with a
    learnt covariance. The posterior of eta_d is a diagonal Gaussian with
    mean ``lam[d]`` and variances ``vsq[d]``; ``logzeta[d]`` is the free
    parameter of the bound on the log-normaliser.

    Attributes
    ----------
    mu : ndarray of shape (K,)
    sigma : ndarray of shape (K, K)
    invsigma : ndarray of shape (K, K)
    beta : ndarray of shape (K, V)
    lam : ndarray of shape (M, K)
    vsq : ndarray of shape (M, K)
    logzeta : ndarray of shape (M,)

    """

    model_name = "correlated topic model"

    def __init__(self, corpus, n_topics, seed=None, log_file="vbtopics.log"):
        super().__init__(corpus, n_topics, seed=seed, log_file=log_file)

        self.mu = np.zeros(self.K)
        self.sigma = np.eye(self.K)
        self.invsigma = np.eye(self.K)

        self.lam = np.zeros((self.M, self.K))
        self.lam_old = self.lam.copy()
        self.vsq = np.ones((self.M, self.K))
        self.logzeta = np.full(self.M, 0.5)

    def _invariants(self):
        yield from super()._invariants()
        yield from self._beta_invariants()
        yield self.mu.shape == (self.K,)
        yield bool(np.all(np.isfinite(self.mu)))
        yield self.sigma.shape == (self.K, self.K)
        yield is_positive_definite(self.sigma)
        yield self.invsigma.shape == (self.K, self.K)
        yield is_positive_definite(self.invsigma)
        yield self.lam.shape == (self.M, self.K)
        yield bool(np.all(np.isfinite(self.lam)))
        yield self.lam_old.shape == (self.M, self.K)
        yield bool(np.all(np.isfinite(self.lam_old)))
        yield self.vsq.shape == (self.M, self.K)
        yield all_finite_positive(self.vsq)
        yield self.logzeta.shape == (self.M,)
        yield bool(np.all(np.isfinite(self.logzeta)))

    def _fit_document(self, d, niter, ntol, viter, vtol):
        terms, counts = self.flat.tokens(d)
        log_beta = self._log_beta(terms)

        for _ in range(viter):
            self._update_phi(d, log_beta)
            self._update_filter(d, terms, log_beta)
            self._update_logzeta(d)
            self._update_lam(d, counts, niter, ntol)
            self._update_vsq(d, niter, ntol)
            if np.linalg.norm(self.lam[d] - self.lam_old[d]) < vtol:
                break

        self._accumulate(d, terms, counts)

    def _update_phi(self, d, log_beta):
        self.phi = additive_logistic(self._token_weights(d) * log_beta + self.lam[d][:, None])

    def _update_logzeta(self, d):
        self.logzeta[d] = logsumexp(self.lam[d] + 0.5 * self.vsq[d])

    def _update_lam(self, d, counts, niter, ntol):
        self.lam_old[d] = self.lam[d]
        self.lam[d] = logistic_normal_mean(
            self.lam[d], self.vsq[d], self.logzeta[d], self.invsigma, self.mu,
            self.phi @ counts, self.C[d], niter, ntol,
        )

    def _update_vsq(self, d, niter, ntol):
        self.vsq[d] = logistic_normal_variance(
            self.lam[d], self.vsq[d], self.logzeta[d], np.diag(self.invsigma), self.C[d], niter, ntol,
        )

    def _update_globals(self, niter, ntol):
        self._update_beta()
        if self.M:
            self.mu, self.sigma, self.invsigma = logistic_normal_prior(self.lam, self.vsq)

    def _document_elbo(self, d):
        terms, counts = self.flat.tokens(d)
        phi = additive_logistic(
            self._token_weights_old(d) * safe_log(self.beta_old[:, terms]) + self.lam_old[d][:, None]
        )
        lam, vsq, logzeta = self.lam[d], self.vsq[d], self.logzeta[d]
        dev = lam - self.mu

        elogp_eta = 0.5 * (
            np.linalg.slogdet(self.invsigma)[1]
            - self.K * LOG_2PI
            - np.dot(np.diag(self.invsigma), vsq)
            - dev @ self.invsigma @ dev
        )
        elogp_z = np.dot(phi @ counts, lam) - self.C[d] * (np.exp(lam + 0.5 * vsq - logzeta).sum() + logzeta - 1)
        elogp_w = np.sum(phi * safe_log(self.beta[:, terms]) * (counts * self._token_weights(d)))
        elogq_eta = -0.5 * (self.K * (1 + LOG_2PI) + np.log(vsq).sum())
        elogq_z = -np.dot(counts, categorical_entropy(phi))

        return elogp_eta + elogp_z + elogp_w - elogq_eta - elogq_z

    def compute_elbo(self):
        return float(sum(self._document_elbo(d) for d in range(self.M)))

    def _sample_topic_weights(self, rng):
        return additive_logistic(rng.multivariate_normal(self.mu, self.sigma))


class FilteredCTM(FilterMixin, CTM):
    """CTM with background-word filtering, see ``FilteredLDA``."""

    model_name = "filtered correlated topic model"

    def __init__(self, corpus, n_topics, seed=None, mixing_rate=0.5, learn_mixing_rate=False, log_file="vbtopics.log"):
        super().__init__(corpus, n_topics, seed=seed, log_file=log_file)
        self._init_filter(mixing_rate, learn_mixing_rate)
