import numpy as np
from scipy.special import digamma, softmax

"""Numpy reference implementations of the CTPF kernels.

Every function has the exact same call-signature across all back-ends
(NumPy, Numba, CuPy) so that ``GpuCTPF`` can dispatch to any of them
without if/else logic. Kernels write their result in place into the last
argument. Device layouts are token-major: ``phi`` is (n_tokens, K), ``xi``
is (n_ratings, 2K) with the content half first, and the shape parameters
of terms, users, contents and feedback are (V, K), (U, K), (M, K), (M, K).

Segmented reductions use the offsets produced by ``FlatCorpus``; an empty
segment contributes nothing.
"""

__all__ = [
    "to_device",
    "to_host",
    "synchronize",
    "update_token_topics",
    "update_rating_topics",
    "update_feedback_shape",
    "update_content_shape",
    "update_content_rate",
    "update_feedback_rate",
    "update_term_rate",
    "update_user_rate",
    "update_term_shape",
    "update_user_shape",
]


def to_device(array):
    return np.array(array, copy=True, order="C")


def to_host(array):
    return np.array(array, copy=True)


def synchronize():
    pass


def _segment_sum(values, offsets):
    out = np.zeros((len(offsets) - 1,) + values.shape[1:])
    starts = offsets[:-1]
    nonempty = offsets[1:] > starts
    if np.any(nonempty):
        out[nonempty] = np.add.reduceat(values, starts[nonempty], axis=0)
    return out


# ---------------------------------------------------------------------------
# Topic allocations (one worker per token / rating)
# ---------------------------------------------------------------------------

def update_token_topics(token_docs, terms, content_shape, content_rate, term_shape, term_rate, phi):
    log_theta = digamma(content_shape) - np.log(content_rate)
    log_beta = digamma(term_shape) - np.log(term_rate)
    phi[...] = softmax(log_theta[token_docs] + log_beta[terms], axis=1)


def update_rating_topics(rating_docs, readers, content_shape, content_rate, feedback_shape, feedback_rate,
                         user_shape, user_rate, xi):
    log_eta = (digamma(user_shape) - np.log(user_rate))[readers]
    log_theta = (digamma(content_shape) - np.log(content_rate))[rating_docs]
    log_eps = (digamma(feedback_shape) - np.log(feedback_rate))[rating_docs]
    xi[...] = softmax(np.hstack([log_theta + log_eta, log_eps + log_eta]), axis=1)


# ---------------------------------------------------------------------------
# Document shapes (one worker per document)
# ---------------------------------------------------------------------------

def update_feedback_shape(rating_offsets, ratings, xi, prior_shape, feedback_shape):
    K = feedback_shape.shape[1]
    feedback_shape[...] = prior_shape + _segment_sum(xi[:, K:] * ratings[:, None], rating_offsets)


def update_content_shape(token_offsets, rating_offsets, counts, ratings, phi, xi, prior_shape, content_shape):
    K = content_shape.shape[1]
    content_shape[...] = (
        prior_shape
        + _segment_sum(phi * counts[:, None], token_offsets)
        + _segment_sum(xi[:, :K] * ratings[:, None], rating_offsets)
    )


# ---------------------------------------------------------------------------
# Rates (one worker per topic)
# ---------------------------------------------------------------------------

def update_content_rate(term_shape, term_rate, user_shape, user_rate, prior_rate, content_rate):
    content_rate[...] = prior_rate + term_shape.sum(axis=0) / term_rate + user_shape.sum(axis=0) / user_rate


def update_feedback_rate(user_shape, user_rate, prior_rate, feedback_rate):
    feedback_rate[...] = prior_rate + user_shape.sum(axis=0) / user_rate


def update_term_rate(content_shape, content_rate, prior_rate, term_rate):
    term_rate[...] = prior_rate + content_shape.sum(axis=0) / content_rate


def update_user_rate(content_shape, content_rate, feedback_shape, feedback_rate, prior_rate, user_rate):
    user_rate[...] = (
        prior_rate
        + content_shape.sum(axis=0) / content_rate
        + feedback_shape.sum(axis=0) / feedback_rate
    )


# ---------------------------------------------------------------------------
# Term and user shapes (one worker per term / user segment)
# ---------------------------------------------------------------------------

def update_term_shape(term_offsets, term_order, counts, phi, prior_shape, term_shape):
    weighted = phi[term_order] * counts[term_order][:, None]
    term_shape[...] = prior_shape + _segment_sum(weighted, term_offsets)


def update_user_shape(user_offsets, reader_order, ratings, xi, prior_shape, user_shape):
    K = user_shape.shape[1]
    ordered = xi[reader_order]
    weighted = (ordered[:, :K] + ordered[:, K:]) * ratings[reader_order][:, None]
    user_shape[...] = prior_shape + _segment_sum(weighted, user_offsets)
