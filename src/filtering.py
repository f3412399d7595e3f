import numpy as np
from scipy.special import expit

from aggregation import Accumulator, mixing_rate
from helpers import bernoulli_entropy, is_stochastic, safe_log


class FilterMixin:
    """Background-word filtering for the multinomial topic models.

    Every token of a filtered model is either thematic, drawn from the topics,
    or background, drawn from a single corpus-wide distribution ``kappa``. The
    prior probability of a token being thematic is the mixing rate ``eta`` and
    ``tau`` holds the posterior probability for every token of the corpus, in
    the flat token order of ``self.flat``.

    The mixin only overrides the hooks of ``MultinomialTopicModel`` and calls
    ``super()`` for the topic part, so it must come first in the bases:
    ``class FilteredLDA(FilterMixin, LDA)``.
    """

    def _init_filter(self, mixing_rate=0.5, learn_mixing_rate=False):
        if not 0 <= mixing_rate <= 1:
            raise ValueError("Mixing rate must lie in [0, 1].")

        self.eta = float(mixing_rate)
        self.learn_mixing_rate = learn_mixing_rate

        if self.V:
            self.kappa = self.rng.dirichlet(np.ones(self.V))
        else:
            self.kappa = np.zeros(0)
        self.kappa_old = self.kappa.copy()
        self._kappa_acc = Accumulator((self.V,))

        self.tau = np.full(self.flat.n_tokens, self.eta)
        self.tau_old = self.tau.copy()

    def _filter_invariants(self):
        yield 0 <= self.eta <= 1
        yield self.kappa.shape == (self.V,)
        yield is_stochastic(self.kappa)
        yield self.kappa_old.shape == (self.V,)
        yield is_stochastic(self.kappa_old)
        yield self._kappa_acc.is_clear()
        yield self.tau.shape == (self.flat.n_tokens,)
        yield bool(np.all((self.tau >= 0) & (self.tau <= 1)))
        yield self.tau_old.shape == (self.flat.n_tokens,)

    def _invariants(self):
        yield from super()._invariants()
        yield from self._filter_invariants()

    def _token_weights(self, d):
        return self.tau[self.flat.token_slice(d)]

    def _token_weights_old(self, d):
        return self.tau_old[self.flat.token_slice(d)]

    def _update_filter(self, d, terms, log_beta):
        s = self.flat.token_slice(d)
        self.tau_old[s] = self.tau[s]

        with np.errstate(divide="ignore"):
            prior_odds = np.log(self.eta) - np.log1p(-self.eta)
        # tau = eta / (eta + (1 - eta) * kappa_j * exp(-sum_i phi_i log beta_ij))
        self.tau[s] = expit(prior_odds + np.sum(self.phi * log_beta, axis=0) - safe_log(self.kappa[terms]))

    def _accumulate(self, d, terms, counts):
        super()._accumulate(d, terms, counts)
        self._kappa_acc.scatter(terms, (1 - self._token_weights(d)) * counts)

    def _update_globals(self, niter, ntol):
        super()._update_globals(niter, ntol)

        kappa = self._kappa_acc.normalize()
        self.kappa_old = self.kappa
        if kappa.any():
            self.kappa = kappa
        if self.learn_mixing_rate:
            self.eta = mixing_rate(self.tau, self.flat.counts, self.C.sum())

    def _document_elbo(self, d):
        terms, counts = self.flat.tokens(d)
        tau = self._token_weights(d)

        thematic = np.dot(tau, counts)
        elogp_c = thematic * safe_log(self.eta) + (self.C[d] - thematic) * safe_log(1 - self.eta)
        elogp_w = np.dot((1 - tau) * counts, safe_log(self.kappa[terms]))
        elogq_c = -np.dot(counts, bernoulli_entropy(tau))

        return super()._document_elbo(d) + elogp_c + elogp_w - elogq_c

    def _draw_terms(self, topic_draws, lexicon, laplace_smooth, rng):
        words = super()._draw_terms(topic_draws, lexicon, laplace_smooth, rng)

        background = rng.random(len(words)) >= self.eta
        if np.any(background):
            smoothed = (self.kappa + laplace_smooth) / (1 + laplace_smooth * self.V)
            smoothed = smoothed / smoothed.sum()
            words[background] = rng.choice(self.V, size=int(background.sum()), p=smoothed)
        return words
