import numpy as np


class CorpusError(Exception):
    """Raised when a document or corpus breaks one of its structural invariants."""


class Document:
    """
    Sparse bag-of-words document with optional reader feedback.

    Parameters
    ----------
    terms : sequence of int
        Zero-based term ids, unique within the document.

    counts : sequence of int, optional
        Positive count for each term. Defaults to ones.

    readers : sequence of int, optional
        Zero-based ids of the users who interacted with the document, unique.

    ratings : sequence of int, optional
        Positive rating for each reader. Defaults to ones.

    stamp : float, optional
        Timestamp attached to the document.

    title : str, default=""
        Free-form title, only used for labelled output.

    """

    __slots__ = ("terms", "counts", "readers", "ratings", "stamp", "title")

    def __init__(self, terms=(), counts=None, readers=(), ratings=None, stamp=None, title=""):
        self.terms = np.asarray(terms, dtype=np.int64).ravel()
        if counts is None:
            counts = np.ones(len(self.terms), dtype=np.int64)
        self.counts = np.asarray(counts, dtype=np.int64).ravel()

        self.readers = np.asarray(readers, dtype=np.int64).ravel()
        if ratings is None:
            ratings = np.ones(len(self.readers), dtype=np.int64)
        self.ratings = np.asarray(ratings, dtype=np.int64).ravel()

        self.stamp = stamp
        self.title = title

    def __len__(self):
        return len(self.terms)

    def __repr__(self):
        return f"Document(terms={len(self.terms)}, tokens={self.size}, readers={len(self.readers)})"

    @property
    def size(self):
        """Total number of tokens, i.e. the sum of the counts."""
        return int(self.counts.sum())

    def copy(self):
        return Document(
            self.terms.copy(),
            counts=self.counts.copy(),
            readers=self.readers.copy(),
            ratings=self.ratings.copy(),
            stamp=self.stamp,
            title=self.title,
        )

    def check(self):
        if len(self.terms) != len(self.counts):
            raise CorpusError("Document terms and counts must have the same length.")
        if len(self.readers) != len(self.ratings):
            raise CorpusError("Document readers and ratings must have the same length.")
        if np.any(self.terms < 0):
            raise CorpusError("Document term ids must be non-negative.")
        if len(np.unique(self.terms)) != len(self.terms):
            raise CorpusError("Document term ids must be unique.")
        if np.any(self.counts <= 0):
            raise CorpusError("Document counts must be positive.")
        if np.any(self.readers < 0):
            raise CorpusError("Document reader ids must be non-negative.")
        if len(np.unique(self.readers)) != len(self.readers):
            raise CorpusError("Document reader ids must be unique.")
        if np.any(self.ratings <= 0):
            raise CorpusError("Document ratings must be positive.")
        if self.stamp is not None and not np.isfinite(self.stamp):
            raise CorpusError("Document stamp must be finite.")


class Corpus:
    """
    Collection of documents plus the vocabulary and user dictionaries.

    ``vocab`` maps term ids to labels and ``users`` maps user ids to labels.
    When a dictionary is not given it is derived from the largest id found in
    the documents, using the id's string as label.

    Documents are never shared between corpora: ``copy`` duplicates every
    document, and models attach to a copy of the corpus they are given.
    """

    def __init__(self, docs=None, vocab=None, users=None):
        self.docs = list(docs) if docs is not None else []

        if vocab is None:
            n_terms = max((int(doc.terms.max()) + 1 for doc in self.docs if len(doc.terms)), default=0)
            vocab = {j: str(j) for j in range(n_terms)}
        if users is None:
            n_users = max((int(doc.readers.max()) + 1 for doc in self.docs if len(doc.readers)), default=0)
            users = {u: str(u) for u in range(n_users)}

        self.vocab = dict(vocab)
        self.users = dict(users)

    def __len__(self):
        return len(self.docs)

    def __iter__(self):
        return iter(self.docs)

    def __getitem__(self, index):
        return self.docs[index]

    def __repr__(self):
        return f"Corpus(docs={len(self)}, vocab={self.n_terms}, users={self.n_users})"

    @property
    def n_terms(self):
        return len(self.vocab)

    @property
    def n_users(self):
        return len(self.users)

    def append(self, doc):
        self.docs.append(doc)

    def copy(self):
        return Corpus(
            docs=[doc.copy() for doc in self.docs],
            vocab=self.vocab,
            users=self.users,
        )

    def check(self):
        check_corp(self)


def check_corp(corp):
    """Validate every document and the id dictionaries of ``corp``."""
    if not isinstance(corp, Corpus):
        raise CorpusError("Expected a Corpus instance.")

    for key in corp.vocab:
        if not isinstance(key, (int, np.integer)) or key < 0:
            raise CorpusError("Vocabulary keys must be non-negative integers.")
    for key in corp.users:
        if not isinstance(key, (int, np.integer)) or key < 0:
            raise CorpusError("User keys must be non-negative integers.")

    for doc in corp:
        doc.check()
        if not all(int(j) in corp.vocab for j in doc.terms):
            raise CorpusError("Documents contain term ids missing from the vocabulary.")
        if not all(int(u) in corp.users for u in doc.readers):
            raise CorpusError("Documents contain reader ids missing from the users.")
