import numbers
from datetime import datetime

import numpy as np
from tqdm.auto import tqdm

from aggregation import Accumulator
from convergence import ElboMonitor, validate_training_args
from corpus import Corpus, CorpusError, Document, check_corp
from encoding import FlatCorpus
from helpers import is_stochastic, safe_log
from logger import setup_logger
from validation import check_model


class TopicModel:
    """
    Base class of the variational topic models.

    A model attaches to a private copy of a corpus, draws its global
    parameters from their prior family and is then trained in place with
    ``fit``. Subclasses provide the local step (``_fit_document``), the
    global step (``_update_globals``), the bound (``compute_elbo``), their
    invariants (``_invariants``) and the generative pieces.

    Parameters
    ----------
    corpus : Corpus
        The training corpus. It is copied, so later changes to it (or to its
        documents) do not reach the model.

    n_topics : int
        Number of topics K.

    seed : int, default=None
        Seed for the parameter initialisation and for sampling.

    log_file : str or None, default="vbtopics.log"
        File the training log is written to, on top of the console.

    Attributes
    ----------
    topics : list of ndarray
        For every topic, the term ids sorted by decreasing weight. Filled at
        the end of ``fit``.

    elbo : float
        Last evaluated evidence lower bound.

    elbo_history : list of (int, float)
        Every evaluated ``(epoch, elbo)`` pair, epoch 0 being the bound before
        training.

    """

    model_name = "topic model"

    corp = None
    flat = None
    topics = None
    rng = None

    def __init__(self, corpus, n_topics, seed=None, log_file="vbtopics.log"):
        self.start_time = datetime.now()

        check_corp(corpus)
        if not isinstance(n_topics, numbers.Integral) or isinstance(n_topics, bool) or n_topics <= 0:
            raise ValueError("Number of topics must be a positive integer.")
        if sorted(corpus.vocab) != list(range(corpus.n_terms)) or sorted(corpus.users) != list(range(corpus.n_users)):
            raise CorpusError("Vocabulary and user ids must be contiguous from 0.")

        self.K = int(n_topics)
        self.corp = corpus.copy()
        self.M = len(self.corp)
        self.V = self.corp.n_terms
        self.U = self.corp.n_users

        self.flat = FlatCorpus.from_corpus(self.corp)
        self.N = self.flat.doc_lengths()
        self.C = self.flat.doc_sizes()
        self.R = self.flat.doc_readers()

        self.rng = np.random.default_rng(seed)
        self.logger = setup_logger(log_file=log_file)

        self.topics = [np.arange(self.V) for _ in range(self.K)]
        self.elbo = 0.0
        self.elbo_history = []
        self.epochs_run = 0

    def __repr__(self):
        return f"{type(self).__name__}: {self.model_name} with {self.K} topics"

    def check(self):
        check_model(self)

    def _corpus_invariants(self):
        yield sorted(self.corp.vocab) == list(range(self.V))
        yield sorted(self.corp.users) == list(range(self.U))
        yield self.M == len(self.corp)
        yield np.array_equal(self.N, [len(doc.terms) for doc in self.corp])
        yield np.array_equal(self.C, [doc.size for doc in self.corp])
        yield np.array_equal(self.R, [len(doc.readers) for doc in self.corp])

    def _invariants(self):
        yield from self._corpus_invariants()
        yield np.isfinite(self.elbo)

    def fit(self, iterations=150, tol=1.0, niter=1000, ntol=None, viter=10, vtol=None, check_elbo=1, silent=False):
        """Coordinate ascent on the evidence lower bound.

        Every epoch runs the local updates of each document (at most ``viter``
        inner iterations, stopping when the document posterior moves less
        than ``vtol``), then the global updates. The bound is evaluated every
        ``check_elbo`` epochs and training stops when it changes by less than
        ``tol`` or after ``iterations`` epochs.

        Args:
            iterations: Epoch cap. A corpus without tokens always runs 0 epochs.
            tol: Tolerance on the absolute ELBO change.
            niter: Iteration cap of the Newton root finders.
            ntol: Gradient tolerance of the Newton root finders, default 1/K^2.
            viter: Cap of inner iterations per document.
            vtol: Tolerance of the inner loop, default 1/K^2.
            check_elbo: Positive integer cadence, or ``math.inf`` to never
                evaluate the bound.
            silent: If True, hides the progress bar and the summary log lines.

        Raises:
            ValueError: If any of the options is out of range.
            TopicModelError: If the model is in an invalid state.
        """
        ntol = 1 / self.K ** 2 if ntol is None else ntol
        vtol = 1 / self.K ** 2 if vtol is None else vtol
        validate_training_args(iterations, tol, niter, ntol, viter, vtol, check_elbo)
        check_model(self)

        if all(len(doc) == 0 for doc in self.corp):
            iterations = 0

        if not silent:
            self.logger.info(f"Training {self!r} on {self.M} documents for at most {iterations} epochs.")

        self._before_training(iterations)
        monitor = ElboMonitor(self, check_elbo, tol, iterations, self.logger)
        monitor.start()

        self.epochs_run = 0
        for epoch in tqdm(range(1, iterations + 1), disable=silent):
            self._run_epoch(niter, ntol, viter, vtol)
            self.epochs_run = epoch
            if monitor.step(epoch):
                break

        self._after_training()
        self._update_topics()

        if not silent:
            self.logger.info(
                f"Done {self.epochs_run} epochs in "
                f"{(datetime.now() - self.start_time).total_seconds() / 60.0:.2f} minutes."
            )

    def _before_training(self, iterations):
        pass

    def _after_training(self):
        pass

    def _run_epoch(self, niter, ntol, viter, vtol):
        for d in range(self.M):
            self._fit_document(d, niter, ntol, viter, vtol)
        self._update_globals(niter, ntol)

    def _fit_document(self, d, niter, ntol, viter, vtol):
        raise NotImplementedError

    def _update_globals(self, niter, ntol):
        raise NotImplementedError

    def compute_elbo(self):
        raise NotImplementedError

    def topic_term_matrix(self):
        raise NotImplementedError

    def _update_topics(self):
        self.topics = [np.argsort(-row, kind="stable") for row in self.topic_term_matrix()]

    # ------------------------------------------------------------------
    # Generative model
    # ------------------------------------------------------------------

    def _sample_topic_weights(self, rng):
        raise NotImplementedError

    def _draw_terms(self, topic_draws, lexicon, laplace_smooth, rng):
        words = np.empty(len(topic_draws), dtype=np.int64)
        for k in range(self.K):
            mask = topic_draws == k
            if np.any(mask):
                words[mask] = rng.choice(self.V, size=int(mask.sum()), p=lexicon[k])
        return words

    def gendoc(self, laplace_smooth=0.0, rng=None):
        """Sample one artificial document from the generative model.

        The number of tokens is Poisson around the mean document size of the
        training corpus. Each token draws a topic from topic weights sampled
        from the prior, then a term from that topic's term distribution with
        ``laplace_smooth`` added to every entry before renormalising.
        """
        if laplace_smooth < 0:
            raise ValueError("laplace_smooth parameter must be nonnegative.")
        rng = self.rng if rng is None else rng

        mean_size = self.C.mean() if self.M else 0.0
        size = rng.poisson(mean_size)
        theta = self._sample_topic_weights(rng)
        lexicon = (self.topic_term_matrix() + laplace_smooth) / (1 + laplace_smooth * self.V)
        lexicon = lexicon / lexicon.sum(axis=1, keepdims=True)

        topic_draws = rng.choice(self.K, size=size, p=theta)
        words = self._draw_terms(topic_draws, lexicon, laplace_smooth, rng)
        terms, counts = np.unique(words, return_counts=True)

        return Document(terms, counts=counts)

    def gencorp(self, corp_size, laplace_smooth=0.0, seed=None):
        """Generate an artificial corpus of ``corp_size`` documents.

        With a ``seed`` the corpus is reproducible and the model's own random
        state is left untouched.
        """
        if not isinstance(corp_size, numbers.Integral) or corp_size <= 0:
            raise ValueError("corp_size parameter must be a positive integer.")
        if laplace_smooth < 0:
            raise ValueError("laplace_smooth parameter must be nonnegative.")

        rng = self.rng if seed is None else np.random.default_rng(seed)
        docs = [self.gendoc(laplace_smooth, rng=rng) for _ in range(corp_size)]

        return Corpus(docs=docs, vocab=self.corp.vocab, users=self.corp.users)


class MultinomialTopicModel(TopicModel):
    """Topic models with a row-stochastic topic-term matrix ``beta``.

    Holds what LDA and CTM share: the ``beta`` accumulator, its one-epoch-old
    snapshot, the token-topic distribution ``phi`` of the document currently
    being processed, and the no-op filter hooks that the filtered variants
    override.
    """

    def __init__(self, corpus, n_topics, seed=None, log_file="vbtopics.log"):
        super().__init__(corpus, n_topics, seed=seed, log_file=log_file)

        if self.V:
            self.beta = self.rng.dirichlet(np.ones(self.V), self.K)
        else:
            self.beta = np.zeros((self.K, 0))
        self.beta_old = self.beta.copy()
        self._beta_acc = Accumulator((self.K, self.V))

        first = self.N[0] if self.M else 0
        self.phi = np.full((self.K, first), 1 / self.K)

    def topic_term_matrix(self):
        return self.beta

    def _beta_invariants(self):
        yield self.beta.shape == (self.K, self.V)
        yield is_stochastic(self.beta, axis=1)
        yield self.beta_old.shape == (self.K, self.V)
        yield is_stochastic(self.beta_old, axis=1)
        yield self._beta_acc.is_clear()

    def _token_weights(self, d):
        """Probability that each token of ``d`` is thematic (1 when unfiltered)."""
        return 1.0

    def _token_weights_old(self, d):
        return 1.0

    def _update_filter(self, d, terms, log_beta):
        pass

    def _log_beta(self, terms):
        return safe_log(self.beta[:, terms])

    def _accumulate(self, d, terms, counts):
        self._beta_acc.scatter(terms, self.phi * (counts * self._token_weights(d)))

    def _update_beta(self):
        beta = self._beta_acc.normalize()
        # Topics that received no mass keep their previous row.
        empty = ~beta.any(axis=1)
        beta[empty] = self.beta[empty]
        self.beta_old = self.beta
        self.beta = beta
