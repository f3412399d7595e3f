import numpy as np


def _offsets(lengths):
    """Monotonic segment boundaries: segment ``i`` is ``[out[i], out[i + 1])``."""
    out = np.zeros(len(lengths) + 1, dtype=np.int64)
    np.cumsum(lengths, out=out[1:])
    return out


class FlatCorpus:
    """Arena layout of a corpus.

    Tokens and ratings of every document are concatenated into flat arrays and
    each document becomes a ``(start, end)`` range given by ``token_offsets``
    and ``rating_offsets``. For the term and user side the entries are also
    stably sorted by target id (``term_order``, ``reader_order``) so that all
    entries sharing a term or a user sit in one contiguous segment delimited by
    ``term_offsets`` / ``user_offsets``. A parallel reduction can then give one
    worker per segment and never write to the same slot twice.
    """

    def __init__(self, terms, counts, readers, ratings, token_offsets, rating_offsets, n_terms, n_users):
        self.terms = terms
        self.counts = counts
        self.readers = readers
        self.ratings = ratings
        self.token_offsets = token_offsets
        self.rating_offsets = rating_offsets
        self.n_docs = len(token_offsets) - 1
        self.n_terms = n_terms
        self.n_users = n_users

        self.token_docs = np.repeat(np.arange(self.n_docs, dtype=np.int64), np.diff(token_offsets))
        self.rating_docs = np.repeat(np.arange(self.n_docs, dtype=np.int64), np.diff(rating_offsets))

        self.term_order = np.argsort(terms, kind="stable").astype(np.int64)
        self.term_offsets = _offsets(np.bincount(terms, minlength=n_terms)[:n_terms])

        self.reader_order = np.argsort(readers, kind="stable").astype(np.int64)
        self.user_offsets = _offsets(np.bincount(readers, minlength=n_users)[:n_users])

    @classmethod
    def from_corpus(cls, corp, n_terms=None, n_users=None):
        n_terms = corp.n_terms if n_terms is None else n_terms
        n_users = corp.n_users if n_users is None else n_users

        def concat(arrays):
            if not arrays:
                return np.zeros(0, dtype=np.int64)
            return np.concatenate(arrays).astype(np.int64)

        return cls(
            terms=concat([doc.terms for doc in corp]),
            counts=concat([doc.counts for doc in corp]),
            readers=concat([doc.readers for doc in corp]),
            ratings=concat([doc.ratings for doc in corp]),
            token_offsets=_offsets([len(doc.terms) for doc in corp]),
            rating_offsets=_offsets([len(doc.readers) for doc in corp]),
            n_terms=n_terms,
            n_users=n_users,
        )

    @property
    def n_tokens(self):
        return len(self.terms)

    @property
    def n_ratings(self):
        return len(self.readers)

    def token_slice(self, d):
        return slice(self.token_offsets[d], self.token_offsets[d + 1])

    def rating_slice(self, d):
        return slice(self.rating_offsets[d], self.rating_offsets[d + 1])

    def tokens(self, d):
        """Views of the term ids and counts of document ``d``."""
        s = self.token_slice(d)
        return self.terms[s], self.counts[s]

    def feedback(self, d):
        """Views of the reader ids and ratings of document ``d``."""
        s = self.rating_slice(d)
        return self.readers[s], self.ratings[s]

    def doc_lengths(self):
        return np.diff(self.token_offsets)

    def doc_sizes(self):
        """Token totals per document."""
        if self.n_tokens == 0:
            return np.zeros(self.n_docs, dtype=np.int64)
        return np.bincount(self.token_docs, weights=self.counts, minlength=self.n_docs).astype(np.int64)

    def doc_readers(self):
        return np.diff(self.rating_offsets)

    def libraries(self):
        """Documents read by each user, in document order."""
        libs = [[] for _ in range(self.n_users)]
        for r in range(self.n_ratings):
            libs[self.readers[r]].append(int(self.rating_docs[r]))
        return libs
