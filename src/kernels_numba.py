import math
import sys

# Numba backend unsupported on Windows (native llvmlite/Numba crashes).
if sys.platform.startswith(("win", "cygwin")):
    raise ImportError("Numba backend is not supported on Windows.")

from numba import njit, prange

from kernels_numpy import synchronize, to_device, to_host

"""Numba-accelerated CTPF kernels.

These have the same public API as `kernels_numpy.py` but are compiled with
Numba's `njit`. Each parallel loop gives one iteration to a token, a
rating, a document, a topic or a term/user segment, and every iteration
only writes its own slots.
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


@njit(cache=True)
def _digamma(x):
    # Recurrence up to x >= 6, then the asymptotic series.
    result = 0.0
    while x < 6.0:
        result -= 1.0 / x
        x += 1.0
    f = 1.0 / (x * x)
    series = f * (1.0 / 12 - f * (1.0 / 120 - f * (1.0 / 252 - f * (1.0 / 240 - f / 132))))
    return result + math.log(x) - 0.5 / x - series


@njit(cache=True)
def _normalize_row(row):
    top = row[0]
    for i in range(1, row.shape[0]):
        if row[i] > top:
            top = row[i]
    total = 0.0
    for i in range(row.shape[0]):
        row[i] = math.exp(row[i] - top)
        total += row[i]
    for i in range(row.shape[0]):
        row[i] /= total


# ---------------------------------------------------------------------------
# Topic allocations
# ---------------------------------------------------------------------------

@njit(parallel=True, cache=True)
def update_token_topics(token_docs, terms, content_shape, content_rate, term_shape, term_rate, phi):
    n_tokens, K = phi.shape
    for n in prange(n_tokens):
        d = token_docs[n]
        j = terms[n]
        for i in range(K):
            phi[n, i] = (
                _digamma(content_shape[d, i]) - math.log(content_rate[i])
                + _digamma(term_shape[j, i]) - math.log(term_rate[i])
            )
        _normalize_row(phi[n])


@njit(parallel=True, cache=True)
def update_rating_topics(rating_docs, readers, content_shape, content_rate, feedback_shape, feedback_rate,
                         user_shape, user_rate, xi):
    n_ratings = xi.shape[0]
    K = content_shape.shape[1]
    for r in prange(n_ratings):
        d = rating_docs[r]
        u = readers[r]
        for i in range(K):
            log_eta = _digamma(user_shape[u, i]) - math.log(user_rate[i])
            xi[r, i] = _digamma(content_shape[d, i]) - math.log(content_rate[i]) + log_eta
            xi[r, K + i] = _digamma(feedback_shape[d, i]) - math.log(feedback_rate[i]) + log_eta
        _normalize_row(xi[r])


# ---------------------------------------------------------------------------
# Document shapes
# ---------------------------------------------------------------------------

@njit(parallel=True, cache=True)
def update_feedback_shape(rating_offsets, ratings, xi, prior_shape, feedback_shape):
    n_docs, K = feedback_shape.shape
    for d in prange(n_docs):
        for i in range(K):
            acc = 0.0
            for r in range(rating_offsets[d], rating_offsets[d + 1]):
                acc += ratings[r] * xi[r, K + i]
            feedback_shape[d, i] = prior_shape + acc


@njit(parallel=True, cache=True)
def update_content_shape(token_offsets, rating_offsets, counts, ratings, phi, xi, prior_shape, content_shape):
    n_docs, K = content_shape.shape
    for d in prange(n_docs):
        for i in range(K):
            acc = 0.0
            for n in range(token_offsets[d], token_offsets[d + 1]):
                acc += counts[n] * phi[n, i]
            for r in range(rating_offsets[d], rating_offsets[d + 1]):
                acc += ratings[r] * xi[r, i]
            content_shape[d, i] = prior_shape + acc


# ---------------------------------------------------------------------------
# Rates
# ---------------------------------------------------------------------------

@njit(parallel=True, cache=True)
def update_content_rate(term_shape, term_rate, user_shape, user_rate, prior_rate, content_rate):
    K = content_rate.shape[0]
    for i in prange(K):
        terms_total = 0.0
        for j in range(term_shape.shape[0]):
            terms_total += term_shape[j, i]
        users_total = 0.0
        for u in range(user_shape.shape[0]):
            users_total += user_shape[u, i]
        content_rate[i] = prior_rate + terms_total / term_rate[i] + users_total / user_rate[i]


@njit(parallel=True, cache=True)
def update_feedback_rate(user_shape, user_rate, prior_rate, feedback_rate):
    K = feedback_rate.shape[0]
    for i in prange(K):
        users_total = 0.0
        for u in range(user_shape.shape[0]):
            users_total += user_shape[u, i]
        feedback_rate[i] = prior_rate + users_total / user_rate[i]


@njit(parallel=True, cache=True)
def update_term_rate(content_shape, content_rate, prior_rate, term_rate):
    K = term_rate.shape[0]
    for i in prange(K):
        docs_total = 0.0
        for d in range(content_shape.shape[0]):
            docs_total += content_shape[d, i]
        term_rate[i] = prior_rate + docs_total / content_rate[i]


@njit(parallel=True, cache=True)
def update_user_rate(content_shape, content_rate, feedback_shape, feedback_rate, prior_rate, user_rate):
    K = user_rate.shape[0]
    for i in prange(K):
        content_total = 0.0
        feedback_total = 0.0
        for d in range(content_shape.shape[0]):
            content_total += content_shape[d, i]
            feedback_total += feedback_shape[d, i]
        user_rate[i] = prior_rate + content_total / content_rate[i] + feedback_total / feedback_rate[i]


# ---------------------------------------------------------------------------
# Term and user shapes (segmented over the sorted order)
# ---------------------------------------------------------------------------

@njit(parallel=True, cache=True)
def update_term_shape(term_offsets, term_order, counts, phi, prior_shape, term_shape):
    n_terms, K = term_shape.shape
    for j in prange(n_terms):
        for i in range(K):
            acc = 0.0
            for w in range(term_offsets[j], term_offsets[j + 1]):
                n = term_order[w]
                acc += counts[n] * phi[n, i]
            term_shape[j, i] = prior_shape + acc


@njit(parallel=True, cache=True)
def update_user_shape(user_offsets, reader_order, ratings, xi, prior_shape, user_shape):
    n_users, K = user_shape.shape
    for u in prange(n_users):
        for i in range(K):
            acc = 0.0
            for w in range(user_offsets[u], user_offsets[u + 1]):
                r = reader_order[w]
                acc += ratings[r] * (xi[r, i] + xi[r, K + i])
            user_shape[u, i] = prior_shape + acc
