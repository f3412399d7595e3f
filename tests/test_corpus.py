import numpy as np
import pytest

from corpus import Corpus, CorpusError, Document, check_corp


def test_document_defaults_to_unit_counts():
    doc = Document([3, 1, 2])

    assert np.array_equal(doc.counts, [1, 1, 1])
    assert len(doc) == 3
    assert doc.size == 3
    assert len(doc.readers) == 0 and len(doc.ratings) == 0


def test_document_size_is_sum_of_counts():
    doc = Document([0, 4], counts=[2, 5], readers=[1], ratings=[3])

    assert doc.size == 7
    assert doc.readers.dtype == np.int64


@pytest.mark.parametrize(
    "kwargs, message",
    [
        (dict(terms=[0, 1], counts=[1]), "same length"),
        (dict(terms=[0, 0]), "unique"),
        (dict(terms=[-1]), "non-negative"),
        (dict(terms=[0], counts=[0]), "positive"),
        (dict(terms=[0], readers=[1, 1]), "unique"),
        (dict(terms=[0], readers=[0], ratings=[-2]), "positive"),
        (dict(terms=[0], readers=[0, 1], ratings=[1]), "same length"),
        (dict(terms=[0], stamp=float("nan")), "finite"),
    ],
)
def test_document_check_rejects_broken_documents(kwargs, message):
    with pytest.raises(CorpusError, match=message):
        Document(**kwargs).check()


def test_copy_is_independent():
    doc = Document([0, 1], counts=[2, 3], title="a")
    other = doc.copy()
    other.counts[0] = 10

    assert doc.counts[0] == 2
    assert other.title == "a"


def test_corpus_derives_dictionaries_from_ids():
    corp = Corpus(docs=[Document([0, 5]), Document([2], readers=[3])])

    assert corp.n_terms == 6
    assert corp.n_users == 4
    assert corp.vocab[5] == "5"
    check_corp(corp)


def test_corpus_copy_duplicates_documents():
    corp = Corpus(docs=[Document([0, 1])])
    other = corp.copy()
    other[0].terms[0] = 1

    assert corp[0].terms[0] == 0
    assert len(other) == 1


def test_append_and_iteration():
    corp = Corpus(vocab={0: "a", 1: "b"})
    corp.append(Document([1]))

    assert [len(doc) for doc in corp] == [1]


def test_check_corp_rejects_ids_outside_the_vocabulary():
    corp = Corpus(docs=[Document([0, 3])], vocab={0: "a", 1: "b"})

    with pytest.raises(CorpusError, match="vocabulary"):
        check_corp(corp)


def test_check_corp_rejects_unknown_readers():
    corp = Corpus(docs=[Document([0], readers=[2])], vocab={0: "a"}, users={0: "u"})

    with pytest.raises(CorpusError, match="users"):
        corp.check()


def test_check_corp_rejects_non_integer_keys():
    corp = Corpus(docs=[], vocab={"a": "a"})

    with pytest.raises(CorpusError):
        check_corp(corp)


def test_check_corp_requires_a_corpus():
    with pytest.raises(CorpusError):
        check_corp([Document([0])])
