import numpy as np

try:
    import cupy as cp  # noqa: F401 – optional dependency

    # Run a trivial operation to verify that the CUDA runtime is functional
    _ = cp.arange(1)

except Exception as _cupy_err:  # pragma: no cover – handled by backend loader
    # Any problem (missing package, missing CUDA driver, etc.) converts into a
    # plain ImportError so that `backend.load_backend()` can gracefully fall
    # back to a slower implementation.
    raise ImportError(
        "CuPy backend selected, but CuPy or a functional CUDA toolkit is not "
        "available."
    ) from _cupy_err

"""CUDA kernels for the CTPF pipeline, compiled once at import.

Same public API as `kernels_numpy.py`. Arrays passed to the kernels must
already live on the device (see ``to_device``); integer arrays are int64
and floating point arrays are float64. Launches are one thread per token,
rating, document, topic or term/user segment.
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

_THREADS = 128

_SOURCE = r"""
__device__ double digamma(double x) {
    double result = 0.0;
    while (x < 6.0) {
        result -= 1.0 / x;
        x += 1.0;
    }
    double f = 1.0 / (x * x);
    double series = f * (1.0 / 12 - f * (1.0 / 120 - f * (1.0 / 252 - f * (1.0 / 240 - f / 132))));
    return result + log(x) - 0.5 / x - series;
}

__device__ void normalize_row(double* row, long long k) {
    double top = row[0];
    for (long long i = 1; i < k; i++) top = fmax(top, row[i]);
    double total = 0.0;
    for (long long i = 0; i < k; i++) {
        row[i] = exp(row[i] - top);
        total += row[i];
    }
    for (long long i = 0; i < k; i++) row[i] /= total;
}

extern "C" {

__global__ void update_token_topics(long long n_tokens, long long K,
        const long long* token_docs, const long long* terms,
        const double* content_shape, const double* content_rate,
        const double* term_shape, const double* term_rate, double* phi) {
    long long n = blockIdx.x * (long long)blockDim.x + threadIdx.x;
    if (n >= n_tokens) return;
    long long d = token_docs[n], j = terms[n];
    for (long long i = 0; i < K; i++) {
        phi[n * K + i] = digamma(content_shape[d * K + i]) - log(content_rate[i])
                       + digamma(term_shape[j * K + i]) - log(term_rate[i]);
    }
    normalize_row(phi + n * K, K);
}

__global__ void update_rating_topics(long long n_ratings, long long K,
        const long long* rating_docs, const long long* readers,
        const double* content_shape, const double* content_rate,
        const double* feedback_shape, const double* feedback_rate,
        const double* user_shape, const double* user_rate, double* xi) {
    long long r = blockIdx.x * (long long)blockDim.x + threadIdx.x;
    if (r >= n_ratings) return;
    long long d = rating_docs[r], u = readers[r];
    for (long long i = 0; i < K; i++) {
        double log_eta = digamma(user_shape[u * K + i]) - log(user_rate[i]);
        xi[r * 2 * K + i] = digamma(content_shape[d * K + i]) - log(content_rate[i]) + log_eta;
        xi[r * 2 * K + K + i] = digamma(feedback_shape[d * K + i]) - log(feedback_rate[i]) + log_eta;
    }
    normalize_row(xi + r * 2 * K, 2 * K);
}

__global__ void update_feedback_shape(long long n_docs, long long K,
        const long long* rating_offsets, const long long* ratings, const double* xi,
        double prior_shape, double* feedback_shape) {
    long long d = blockIdx.x * (long long)blockDim.x + threadIdx.x;
    if (d >= n_docs) return;
    for (long long i = 0; i < K; i++) {
        double acc = 0.0;
        for (long long r = rating_offsets[d]; r < rating_offsets[d + 1]; r++)
            acc += ratings[r] * xi[r * 2 * K + K + i];
        feedback_shape[d * K + i] = prior_shape + acc;
    }
}

__global__ void update_content_shape(long long n_docs, long long K,
        const long long* token_offsets, const long long* rating_offsets,
        const long long* counts, const long long* ratings,
        const double* phi, const double* xi,
        double prior_shape, double* content_shape) {
    long long d = blockIdx.x * (long long)blockDim.x + threadIdx.x;
    if (d >= n_docs) return;
    for (long long i = 0; i < K; i++) {
        double acc = 0.0;
        for (long long n = token_offsets[d]; n < token_offsets[d + 1]; n++)
            acc += counts[n] * phi[n * K + i];
        for (long long r = rating_offsets[d]; r < rating_offsets[d + 1]; r++)
            acc += ratings[r] * xi[r * 2 * K + i];
        content_shape[d * K + i] = prior_shape + acc;
    }
}

__global__ void update_content_rate(long long K, long long n_terms, long long n_users,
        const double* term_shape, const double* term_rate,
        const double* user_shape, const double* user_rate,
        double prior_rate, double* content_rate) {
    long long i = blockIdx.x * (long long)blockDim.x + threadIdx.x;
    if (i >= K) return;
    double terms_total = 0.0, users_total = 0.0;
    for (long long j = 0; j < n_terms; j++) terms_total += term_shape[j * K + i];
    for (long long u = 0; u < n_users; u++) users_total += user_shape[u * K + i];
    content_rate[i] = prior_rate + terms_total / term_rate[i] + users_total / user_rate[i];
}

__global__ void update_feedback_rate(long long K, long long n_users,
        const double* user_shape, const double* user_rate,
        double prior_rate, double* feedback_rate) {
    long long i = blockIdx.x * (long long)blockDim.x + threadIdx.x;
    if (i >= K) return;
    double users_total = 0.0;
    for (long long u = 0; u < n_users; u++) users_total += user_shape[u * K + i];
    feedback_rate[i] = prior_rate + users_total / user_rate[i];
}

__global__ void update_term_rate(long long K, long long n_docs,
        const double* content_shape, const double* content_rate,
        double prior_rate, double* term_rate) {
    long long i = blockIdx.x * (long long)blockDim.x + threadIdx.x;
    if (i >= K) return;
    double docs_total = 0.0;
    for (long long d = 0; d < n_docs; d++) docs_total += content_shape[d * K + i];
    term_rate[i] = prior_rate + docs_total / content_rate[i];
}

__global__ void update_user_rate(long long K, long long n_docs,
        const double* content_shape, const double* content_rate,
        const double* feedback_shape, const double* feedback_rate,
        double prior_rate, double* user_rate) {
    long long i = blockIdx.x * (long long)blockDim.x + threadIdx.x;
    if (i >= K) return;
    double content_total = 0.0, feedback_total = 0.0;
    for (long long d = 0; d < n_docs; d++) {
        content_total += content_shape[d * K + i];
        feedback_total += feedback_shape[d * K + i];
    }
    user_rate[i] = prior_rate + content_total / content_rate[i] + feedback_total / feedback_rate[i];
}

__global__ void update_term_shape(long long n_terms, long long K,
        const long long* term_offsets, const long long* term_order,
        const long long* counts, const double* phi,
        double prior_shape, double* term_shape) {
    long long j = blockIdx.x * (long long)blockDim.x + threadIdx.x;
    if (j >= n_terms) return;
    for (long long i = 0; i < K; i++) {
        double acc = 0.0;
        for (long long w = term_offsets[j]; w < term_offsets[j + 1]; w++) {
            long long n = term_order[w];
            acc += counts[n] * phi[n * K + i];
        }
        term_shape[j * K + i] = prior_shape + acc;
    }
}

__global__ void update_user_shape(long long n_users, long long K,
        const long long* user_offsets, const long long* reader_order,
        const long long* ratings, const double* xi,
        double prior_shape, double* user_shape) {
    long long u = blockIdx.x * (long long)blockDim.x + threadIdx.x;
    if (u >= n_users) return;
    for (long long i = 0; i < K; i++) {
        double acc = 0.0;
        for (long long w = user_offsets[u]; w < user_offsets[u + 1]; w++) {
            long long r = reader_order[w];
            acc += ratings[r] * (xi[r * 2 * K + i] + xi[r * 2 * K + K + i]);
        }
        user_shape[u * K + i] = prior_shape + acc;
    }
}

}
"""

_module = cp.RawModule(code=_SOURCE)
_module.compile()


def to_device(array):
    return cp.asarray(np.ascontiguousarray(array))


def to_host(array):
    return cp.asnumpy(array)


def synchronize():
    cp.cuda.get_current_stream().synchronize()


def _launch(name, n, args):
    if n == 0:
        return
    blocks = (int(n) + _THREADS - 1) // _THREADS
    _module.get_function(name)((blocks,), (_THREADS,), args)


def _i(x):
    return np.int64(x)


def _f(x):
    return np.float64(x)


# ---------------------------------------------------------------------------
# Topic allocations
# ---------------------------------------------------------------------------

def update_token_topics(token_docs, terms, content_shape, content_rate, term_shape, term_rate, phi):
    n_tokens, K = phi.shape
    _launch("update_token_topics", n_tokens,
            (_i(n_tokens), _i(K), token_docs, terms, content_shape, content_rate, term_shape, term_rate, phi))


def update_rating_topics(rating_docs, readers, content_shape, content_rate, feedback_shape, feedback_rate,
                         user_shape, user_rate, xi):
    n_ratings = xi.shape[0]
    K = content_shape.shape[1]
    _launch("update_rating_topics", n_ratings,
            (_i(n_ratings), _i(K), rating_docs, readers, content_shape, content_rate,
             feedback_shape, feedback_rate, user_shape, user_rate, xi))


# ---------------------------------------------------------------------------
# Document shapes
# ---------------------------------------------------------------------------

def update_feedback_shape(rating_offsets, ratings, xi, prior_shape, feedback_shape):
    n_docs, K = feedback_shape.shape
    _launch("update_feedback_shape", n_docs,
            (_i(n_docs), _i(K), rating_offsets, ratings, xi, _f(prior_shape), feedback_shape))


def update_content_shape(token_offsets, rating_offsets, counts, ratings, phi, xi, prior_shape, content_shape):
    n_docs, K = content_shape.shape
    _launch("update_content_shape", n_docs,
            (_i(n_docs), _i(K), token_offsets, rating_offsets, counts, ratings, phi, xi,
             _f(prior_shape), content_shape))


# ---------------------------------------------------------------------------
# Rates
# ---------------------------------------------------------------------------

def update_content_rate(term_shape, term_rate, user_shape, user_rate, prior_rate, content_rate):
    K = content_rate.shape[0]
    _launch("update_content_rate", K,
            (_i(K), _i(term_shape.shape[0]), _i(user_shape.shape[0]), term_shape, term_rate,
             user_shape, user_rate, _f(prior_rate), content_rate))


def update_feedback_rate(user_shape, user_rate, prior_rate, feedback_rate):
    K = feedback_rate.shape[0]
    _launch("update_feedback_rate", K,
            (_i(K), _i(user_shape.shape[0]), user_shape, user_rate, _f(prior_rate), feedback_rate))


def update_term_rate(content_shape, content_rate, prior_rate, term_rate):
    K = term_rate.shape[0]
    _launch("update_term_rate", K,
            (_i(K), _i(content_shape.shape[0]), content_shape, content_rate, _f(prior_rate), term_rate))


def update_user_rate(content_shape, content_rate, feedback_shape, feedback_rate, prior_rate, user_rate):
    K = user_rate.shape[0]
    _launch("update_user_rate", K,
            (_i(K), _i(content_shape.shape[0]), content_shape, content_rate, feedback_shape, feedback_rate,
             _f(prior_rate), user_rate))


# ---------------------------------------------------------------------------
# Term and user shapes
# ---------------------------------------------------------------------------

def update_term_shape(term_offsets, term_order, counts, phi, prior_shape, term_shape):
    n_terms, K = term_shape.shape
    _launch("update_term_shape", n_terms,
            (_i(n_terms), _i(K), term_offsets, term_order, counts, phi, _f(prior_shape), term_shape))


def update_user_shape(user_offsets, reader_order, ratings, xi, prior_shape, user_shape):
    n_users, K = user_shape.shape
    _launch("update_user_shape", n_users,
            (_i(n_users), _i(K), user_offsets, reader_order, ratings, xi, _f(prior_shape), user_shape))
