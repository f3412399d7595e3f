import numbers

import numpy as np
from scipy.special import digamma, gammaln, logsumexp

from aggregation import Accumulator, normalize_rows
from helpers import additive_logistic, all_finite_positive, gamma_entropy, gamma_log_prior
from topic_model import TopicModel

DEFAULT_PRIORS = {
    "term_shape": 0.1,
    "term_rate": 0.1,
    "content_shape": 0.1,
    "content_rate": 0.1,
    "user_shape": 0.1,
    "user_rate": 0.1,
    "feedback_shape": 0.1,
    "feedback_rate": 0.1,
}


def _log_gamma_mean(shape, rate):
    return digamma(shape) - np.log(rate)


class CTPF(TopicModel):
    """
    Collaborative topic Poisson factorization.

    Documents have Gamma-distributed topic intensities theta_d (content) and
    offsets epsilon_d (feedback), topics have term intensities beta_k and
    users have topic preferences eta_u. Term counts are Poisson(theta_d .
    beta_j) and ratings are Poisson(eta_u . (theta_d + epsilon_d)). Every
    latent variable has a Gamma variational posterior; the rates of theta,
    epsilon, beta and eta are shared across documents, terms and users.

    Parameters
    ----------
    corpus : Corpus
        Documents with terms and reader ratings.

    n_topics : int

    seed : int, default=None

    priors : dict, default=None
        Overrides of the Gamma hyperparameters in ``DEFAULT_PRIORS``. Every
        value must be a positive number.

    Attributes
    ----------
    term_shape : ndarray of shape (K, V)
    term_rate : ndarray of shape (K,)
    content_shape : ndarray of shape (M, K)
    content_rate : ndarray of shape (K,)
    feedback_shape : ndarray of shape (M, K)
    feedback_rate : ndarray of shape (K,)
    user_shape : ndarray of shape (K, U)
    user_rate : ndarray of shape (K,)

    scores : ndarray of shape (M, U)
        Expected rating of every user for every document, after ``fit``.

    drecs : list of ndarray
        For every document, the users who have not read it, best first.

    urecs : list of ndarray
        For every user, the documents they have not read, best first.

    libs : list of list of int
        Documents read by every user.

    """

    model_name = "collaborative topic Poisson factorization"

    def __init__(self, corpus, n_topics, seed=None, priors=None, log_file="vbtopics.log"):
        super().__init__(corpus, n_topics, seed=seed, log_file=log_file)

        self.priors = dict(DEFAULT_PRIORS)
        if priors is not None:
            unknown = set(priors) - set(DEFAULT_PRIORS)
            if unknown:
                raise ValueError(f"Unknown priors: {', '.join(sorted(unknown))}.")
            self.priors.update(priors)
        for name, value in self.priors.items():
            if not isinstance(value, numbers.Real) or not np.isfinite(value) or value <= 0:
                raise ValueError(f"Prior '{name}' must be a positive number, got {value!r}.")

        if self.V:
            self.term_shape = np.exp(self.rng.dirichlet(np.ones(self.V), self.K) - 0.5)
        else:
            self.term_shape = np.ones((self.K, 0))
        self.term_rate = np.ones(self.K)
        self.user_shape = np.ones((self.K, self.U))
        self.user_rate = np.ones(self.K)
        self.content_shape = np.ones((self.M, self.K))
        self.content_shape_old = self.content_shape.copy()
        self.content_rate = np.ones(self.K)
        self.feedback_shape = np.ones((self.M, self.K))
        self.feedback_rate = np.ones(self.K)

        self._term_acc = Accumulator((self.K, self.V))
        self._user_acc = Accumulator((self.K, self.U))

        self.phi = np.full((self.K, self.N[0] if self.M else 0), 1 / self.K)
        self.xi = np.full((2 * self.K, self.R[0] if self.M else 0), 1 / (2 * self.K))

        self.libs = self.flat.libraries()
        self.scores = None
        self.drecs = None
        self.urecs = None

    def _invariants(self):
        yield from super()._invariants()
        yield sorted(self.priors) == sorted(DEFAULT_PRIORS)
        yield all_finite_positive(list(self.priors.values()))
        for name, shape in (
            ("term_shape", (self.K, self.V)),
            ("term_rate", (self.K,)),
            ("content_shape", (self.M, self.K)),
            ("content_shape_old", (self.M, self.K)),
            ("content_rate", (self.K,)),
            ("feedback_shape", (self.M, self.K)),
            ("feedback_rate", (self.K,)),
            ("user_shape", (self.K, self.U)),
            ("user_rate", (self.K,)),
        ):
            value = getattr(self, name)
            yield value.shape == shape
            yield all_finite_positive(value)
        yield self._term_acc.is_clear()
        yield self._user_acc.is_clear()
        yield len(self.libs) == self.U

    def _fit_document(self, d, niter, ntol, viter, vtol):
        terms, counts = self.flat.tokens(d)
        readers, ratings = self.flat.feedback(d)

        log_beta = _log_gamma_mean(self.term_shape[:, terms], self.term_rate[:, None])
        log_eta = _log_gamma_mean(self.user_shape[:, readers], self.user_rate[:, None])

        for _ in range(viter):
            self.content_shape_old[d] = self.content_shape[d]
            log_theta = _log_gamma_mean(self.content_shape[d], self.content_rate)
            log_eps = _log_gamma_mean(self.feedback_shape[d], self.feedback_rate)

            self.phi = additive_logistic(log_theta[:, None] + log_beta)
            self.xi = additive_logistic(np.vstack([log_theta[:, None] + log_eta, log_eps[:, None] + log_eta]))

            self.feedback_shape[d] = self.priors["feedback_shape"] + self.xi[self.K:] @ ratings
            self.content_shape[d] = self.priors["content_shape"] + self.phi @ counts + self.xi[:self.K] @ ratings

            if np.linalg.norm(self.content_shape[d] - self.content_shape_old[d]) < vtol:
                break

        self._term_acc.scatter(terms, self.phi * counts)
        self._user_acc.scatter(readers, (self.xi[:self.K] + self.xi[self.K:]) * ratings)

    def _update_globals(self, niter, ntol):
        # Each rate sees the rates updated before it, shapes come last.
        p = self.priors
        term_total = self.term_shape.sum(axis=1) / self.term_rate
        user_total = self.user_shape.sum(axis=1) / self.user_rate
        self.content_rate = p["content_rate"] + term_total + user_total
        self.feedback_rate = p["feedback_rate"] + user_total

        content_total = self.content_shape.sum(axis=0) / self.content_rate
        feedback_total = self.feedback_shape.sum(axis=0) / self.feedback_rate
        self.term_rate = p["term_rate"] + content_total
        self.user_rate = p["user_rate"] + content_total + feedback_total

        self.term_shape = p["term_shape"] + self._term_acc.take()
        self.user_shape = p["user_shape"] + self._user_acc.take()

    def compute_elbo(self):
        """Evidence lower bound at the current Gamma parameters.

        The token and rating allocations are taken at their optimum given the
        Gamma posteriors, which turns their part of the bound into a
        log-sum-exp per observation. The bound includes the expected rate of
        the unobserved entries, ``E[theta_d] . sum_j E[beta_j]`` and
        ``E[theta_d + epsilon_d] . sum_u E[eta_u]``.
        """
        p, f = self.priors, self.flat

        Ebeta = self.term_shape / self.term_rate[:, None]
        Elogbeta = _log_gamma_mean(self.term_shape, self.term_rate[:, None])
        Eeta = self.user_shape / self.user_rate[:, None]
        Elogeta = _log_gamma_mean(self.user_shape, self.user_rate[:, None])
        Etheta = self.content_shape / self.content_rate
        Elogtheta = _log_gamma_mean(self.content_shape, self.content_rate)
        Eeps = self.feedback_shape / self.feedback_rate
        Elogeps = _log_gamma_mean(self.feedback_shape, self.feedback_rate)

        elbo = 0.0
        elbo += np.sum(gamma_log_prior(p["term_shape"], p["term_rate"], Ebeta, Elogbeta))
        elbo += np.sum(gamma_entropy(self.term_shape, self.term_rate[:, None]))
        elbo += np.sum(gamma_log_prior(p["user_shape"], p["user_rate"], Eeta, Elogeta))
        elbo += np.sum(gamma_entropy(self.user_shape, self.user_rate[:, None]))
        elbo += np.sum(gamma_log_prior(p["content_shape"], p["content_rate"], Etheta, Elogtheta))
        elbo += np.sum(gamma_entropy(self.content_shape, self.content_rate))
        elbo += np.sum(gamma_log_prior(p["feedback_shape"], p["feedback_rate"], Eeps, Elogeps))
        elbo += np.sum(gamma_entropy(self.feedback_shape, self.feedback_rate))

        elbo -= np.sum(Etheta @ Ebeta.sum(axis=1))
        elbo -= np.sum((Etheta + Eeps) @ Eeta.sum(axis=1))

        token_rates = Elogtheta[f.token_docs] + Elogbeta[:, f.terms].T
        elbo += np.dot(f.counts, logsumexp(token_rates, axis=1)) - gammaln(f.counts + 1).sum()

        reader_rates = Elogeta[:, f.readers].T
        rating_rates = np.hstack([Elogtheta[f.rating_docs] + reader_rates, Elogeps[f.rating_docs] + reader_rates])
        elbo += np.dot(f.ratings, logsumexp(rating_rates, axis=1)) - gammaln(f.ratings + 1).sum()

        return float(elbo)

    def topic_term_matrix(self):
        return normalize_rows(self.term_shape / self.term_rate[:, None])

    def _sample_topic_weights(self, rng):
        weights = rng.gamma(self.priors["content_shape"], 1 / self.priors["content_rate"], self.K)
        total = weights.sum()
        if total == 0:
            return np.full(self.K, 1 / self.K)
        return weights / total

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    def _after_training(self):
        self._update_rankings()

    def _update_rankings(self):
        Etheta = self.content_shape / self.content_rate
        Eeps = self.feedback_shape / self.feedback_rate
        Eeta = self.user_shape / self.user_rate[:, None]
        self.scores = (Etheta + Eeps) @ Eeta

        self.drecs = []
        for d in range(self.M):
            readers, _ = self.flat.feedback(d)
            candidates = np.setdiff1d(np.arange(self.U), readers)
            order = np.argsort(-self.scores[d, candidates], kind="stable")
            self.drecs.append(candidates[order])

        self.urecs = []
        for u in range(self.U):
            candidates = np.setdiff1d(np.arange(self.M), self.libs[u])
            order = np.argsort(-self.scores[candidates, u], kind="stable")
            self.urecs.append(candidates[order])

    def recommend_users(self, d):
        """Users who have not read document ``d``, most likely readers first."""
        assert self.drecs is not None, "You need to fit the model before asking for recommendations."
        return self.drecs[d]

    def recommend_documents(self, u):
        """Documents user ``u`` has not read, most relevant first."""
        assert self.urecs is not None, "You need to fit the model before asking for recommendations."
        return self.urecs[u]
