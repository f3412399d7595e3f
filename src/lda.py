import numpy as np
from scipy.special import digamma, gammaln

from filtering import FilterMixin
from helpers import (
    additive_logistic,
    all_finite_positive,
    categorical_entropy,
    dirichlet_entropy,
    dirichlet_expectation,
    safe_log,
)
from newton import dirichlet_concentration
from topic_model import MultinomialTopicModel


class LDA(MultinomialTopicModel):
    """
    Latent Dirichlet allocation trained by variational Bayes.

    Each document has topic weights theta ~ Dirichlet(alpha) and every token
    draws a topic from theta and then a term from that topic's row of
    ``beta``. The variational posterior of theta is Dirichlet(gamma_d).

    Parameters
    ----------
    corpus : Corpus
    n_topics : int
    seed : int, default=None

    Attributes
    ----------
    alpha : ndarray of shape (K,)
        Concentration of the Dirichlet prior, learnt by interior-point Newton.

    beta : ndarray of shape (K, V)
        Row-stochastic topic-term matrix.

    gamma : ndarray of shape (M, K)
        Variational Dirichlet parameters of every document.

    Elogtheta : ndarray of shape (M, K)
        E[log theta_d] under Dirichlet(gamma_d).

    """

    model_name = "latent Dirichlet allocation"

    def __init__(self, corpus, n_topics, seed=None, log_file="vbtopics.log"):
        super().__init__(corpus, n_topics, seed=seed, log_file=log_file)

        self.alpha = np.ones(self.K)
        self.gamma = np.ones((self.M, self.K))
        self.Elogtheta = np.full((self.M, self.K), digamma(1) - digamma(self.K))
        self.Elogtheta_old = self.Elogtheta.copy()

    def _invariants(self):
        yield from super()._invariants()
        yield from self._beta_invariants()
        yield self.alpha.shape == (self.K,)
        yield all_finite_positive(self.alpha)
        yield self.gamma.shape == (self.M, self.K)
        yield all_finite_positive(self.gamma)
        yield self.Elogtheta.shape == (self.M, self.K)
        yield bool(np.all(np.isfinite(self.Elogtheta)) and np.all(self.Elogtheta <= 0))
        yield self.Elogtheta_old.shape == (self.M, self.K)
        yield bool(np.all(np.isfinite(self.Elogtheta_old)) and np.all(self.Elogtheta_old <= 0))

    def _fit_document(self, d, niter, ntol, viter, vtol):
        terms, counts = self.flat.tokens(d)
        log_beta = self._log_beta(terms)

        for _ in range(viter):
            self._update_phi(d, log_beta)
            self._update_filter(d, terms, log_beta)
            self._update_gamma(d, counts)
            self._update_elogtheta(d)
            if np.linalg.norm(self.Elogtheta[d] - self.Elogtheta_old[d]) < vtol:
                break

        self._accumulate(d, terms, counts)

    def _update_phi(self, d, log_beta):
        self.phi = additive_logistic(self._token_weights(d) * log_beta + self.Elogtheta[d][:, None])

    def _update_gamma(self, d, counts):
        self.gamma[d] = self.alpha + self.phi @ counts

    def _update_elogtheta(self, d):
        self.Elogtheta_old[d] = self.Elogtheta[d]
        self.Elogtheta[d] = dirichlet_expectation(self.gamma[d])

    def _update_globals(self, niter, ntol):
        self._update_beta()
        if self.M:
            self.alpha = dirichlet_concentration(self.alpha, self.Elogtheta.sum(axis=0), self.M, niter, ntol)

    def _document_elbo(self, d):
        terms, counts = self.flat.tokens(d)
        phi = additive_logistic(
            self._token_weights_old(d) * safe_log(self.beta_old[:, terms]) + self.Elogtheta_old[d][:, None]
        )
        elogtheta = self.Elogtheta[d]

        elogp_theta = gammaln(self.alpha.sum()) - gammaln(self.alpha).sum() + np.dot(self.alpha - 1, elogtheta)
        elogp_z = np.dot(phi @ counts, elogtheta)
        elogp_w = np.sum(phi * safe_log(self.beta[:, terms]) * (counts * self._token_weights(d)))
        elogq_theta = -dirichlet_entropy(self.gamma[d])
        elogq_z = -np.dot(counts, categorical_entropy(phi))

        return elogp_theta + elogp_z + elogp_w - elogq_theta - elogq_z

    def compute_elbo(self):
        return float(sum(self._document_elbo(d) for d in range(self.M)))

    def _sample_topic_weights(self, rng):
        return rng.dirichlet(self.alpha)


class FilteredLDA(FilterMixin, LDA):
    """
    LDA with background-word filtering.

    Tokens are thematic with prior probability ``mixing_rate`` and otherwise
    drawn from the corpus-wide background distribution ``kappa``. Set
    ``learn_mixing_rate=True`` to re-estimate the mixing rate every epoch as
    the posterior fraction of thematic tokens.
    """

    model_name = "filtered latent Dirichlet allocation"

    def __init__(self, corpus, n_topics, seed=None, mixing_rate=0.5, learn_mixing_rate=False, log_file="vbtopics.log"):
        super().__init__(corpus, n_topics, seed=seed, log_file=log_file)
        self._init_filter(mixing_rate, learn_mixing_rate)
