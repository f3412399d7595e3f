import numbers

import numpy as np

from backend import load_backend
from ctpf import CTPF
from helpers import is_stochastic


class GpuCTPF(CTPF):
    """
    CTPF trained by data-parallel kernels.

    Same model and bound as ``CTPF``, but an epoch is a fixed pipeline of
    kernel launches over the flat corpus instead of a loop over documents.
    Parameters live on the device during ``fit`` and are copied back to the
    host at the end of training and whenever the bound is evaluated.

    Parameters
    ----------
    backend : str, default="auto"
        Kernel backend, see ``backend.load_backend``.

    Notes
    -----
    The inner loop stops once ``sum_d ||content_shape_d - content_shape_old_d||``
    drops below ``M * vtol``, a corpus-wide version of the per-document test
    of ``CTPF``. ``niter`` and ``ntol`` are unused.

    Token and rating allocations are kept for the whole corpus: ``phi`` is
    (n_tokens, K) and ``xi`` is (n_ratings, 2K).
    """

    model_name = "collaborative topic Poisson factorization (kernels)"

    def __init__(self, corpus, n_topics, seed=None, priors=None, backend="auto", log_file="vbtopics.log"):
        super().__init__(corpus, n_topics, seed=seed, priors=priors, log_file=log_file)

        self.kernels, self.backend = load_backend(backend)
        self.logger.info(f"Using {self.backend} backend for {type(self).__name__}.")

        self.phi = np.full((self.flat.n_tokens, self.K), 1 / self.K)
        self.xi = np.full((self.flat.n_ratings, 2 * self.K), 1 / (2 * self.K))

        self._buffers = None
        self._device_ahead = False

    def _invariants(self):
        yield from super()._invariants()
        yield self.phi.shape == (self.flat.n_tokens, self.K)
        yield is_stochastic(self.phi, axis=1)
        yield self.xi.shape == (self.flat.n_ratings, 2 * self.K)
        yield is_stochastic(self.xi, axis=1)

    def fit(self, iterations=150, tol=1.0, niter=1000, ntol=None, viter=10, vtol=None, check_elbo=1, silent=False):
        """Same as ``CTPF.fit``, but ``iterations`` and ``viter`` must be positive.

        Raises:
            ValueError: If ``iterations`` or ``viter`` is zero, or for any of
                the reasons of ``CTPF.fit``.
        """
        for name, value in (("iterations", iterations), ("viter", viter)):
            if isinstance(value, numbers.Integral) and value == 0:
                raise ValueError(f"Iteration parameter '{name}' must be positive for {type(self).__name__}.")

        super().fit(iterations=iterations, tol=tol, niter=niter, ntol=ntol, viter=viter, vtol=vtol,
                    check_elbo=check_elbo, silent=silent)

    def _before_training(self, iterations):
        if iterations > 0:
            self._load_buffers()

    def _load_buffers(self):
        to_device, f = self.kernels.to_device, self.flat
        self._buffers = {
            "token_docs": to_device(f.token_docs),
            "terms": to_device(f.terms),
            "counts": to_device(f.counts),
            "token_offsets": to_device(f.token_offsets),
            "rating_docs": to_device(f.rating_docs),
            "readers": to_device(f.readers),
            "ratings": to_device(f.ratings),
            "rating_offsets": to_device(f.rating_offsets),
            "term_order": to_device(f.term_order),
            "term_offsets": to_device(f.term_offsets),
            "reader_order": to_device(f.reader_order),
            "user_offsets": to_device(f.user_offsets),
            "term_shape": to_device(self.term_shape.T),
            "term_rate": to_device(self.term_rate),
            "user_shape": to_device(self.user_shape.T),
            "user_rate": to_device(self.user_rate),
            "content_shape": to_device(self.content_shape),
            "content_rate": to_device(self.content_rate),
            "feedback_shape": to_device(self.feedback_shape),
            "feedback_rate": to_device(self.feedback_rate),
            "phi": to_device(self.phi),
            "xi": to_device(self.xi),
        }
        self._device_ahead = False

    def _update_host(self):
        to_host, b = self.kernels.to_host, self._buffers
        self.term_shape = to_host(b["term_shape"]).T.copy()
        self.term_rate = to_host(b["term_rate"])
        self.user_shape = to_host(b["user_shape"]).T.copy()
        self.user_rate = to_host(b["user_rate"])
        self.content_shape = to_host(b["content_shape"])
        self.content_rate = to_host(b["content_rate"])
        self.feedback_shape = to_host(b["feedback_shape"])
        self.feedback_rate = to_host(b["feedback_rate"])
        self.phi = to_host(b["phi"])
        self.xi = to_host(b["xi"])
        self._device_ahead = False

    def _launch(self, name, *args):
        getattr(self.kernels, name)(*args)
        self.kernels.synchronize()

    def _run_epoch(self, niter, ntol, viter, vtol):
        b, p = self._buffers, self.priors

        for _ in range(viter):
            self._launch("update_rating_topics", b["rating_docs"], b["readers"], b["content_shape"],
                         b["content_rate"], b["feedback_shape"], b["feedback_rate"], b["user_shape"],
                         b["user_rate"], b["xi"])
            self._launch("update_token_topics", b["token_docs"], b["terms"], b["content_shape"],
                         b["content_rate"], b["term_shape"], b["term_rate"], b["phi"])
            self._launch("update_feedback_shape", b["rating_offsets"], b["ratings"], b["xi"],
                         p["feedback_shape"], b["feedback_shape"])
            self._launch("update_content_shape", b["token_offsets"], b["rating_offsets"], b["counts"],
                         b["ratings"], b["phi"], b["xi"], p["content_shape"], b["content_shape"])

            self.content_shape_old = self.content_shape
            self.content_shape = self.kernels.to_host(b["content_shape"])
            if np.linalg.norm(self.content_shape - self.content_shape_old, axis=1).sum() < self.M * vtol:
                break

        self._launch("update_content_rate", b["term_shape"], b["term_rate"], b["user_shape"], b["user_rate"],
                     p["content_rate"], b["content_rate"])
        self._launch("update_feedback_rate", b["user_shape"], b["user_rate"], p["feedback_rate"],
                     b["feedback_rate"])
        self._launch("update_term_rate", b["content_shape"], b["content_rate"], p["term_rate"], b["term_rate"])
        self._launch("update_user_rate", b["content_shape"], b["content_rate"], b["feedback_shape"],
                     b["feedback_rate"], p["user_rate"], b["user_rate"])
        self._launch("update_term_shape", b["term_offsets"], b["term_order"], b["counts"], b["phi"],
                     p["term_shape"], b["term_shape"])
        self._launch("update_user_shape", b["user_offsets"], b["reader_order"], b["ratings"], b["xi"],
                     p["user_shape"], b["user_shape"])

        self._device_ahead = True

    def compute_elbo(self):
        if self._device_ahead:
            self._update_host()
        return super().compute_elbo()

    def _after_training(self):
        if self._device_ahead:
            self._update_host()
        self._buffers = None
        super()._after_training()
