import logging

import numpy as np
import pandas as pd

from corpus import Corpus, Document
from helpers import _invert_dict

pd.options.mode.chained_assignment = None


class DataHandler:
    """Build a ``Corpus`` from long-format frames and label model output.

    ``terms`` has one row per ``(document, term, count)`` and the optional
    ``ratings`` one row per ``(document, user, rating)``; only the first three
    columns of each frame are used. Labels are mapped to zero-based ids in
    sorted order and the mappings are kept to translate results back.
    """

    docs_dict = None
    terms_dict = None
    users_dict = None

    def __init__(self):
        pass

    @staticmethod
    def _get_data(path_):
        return pd.read_csv(path_, sep=None, usecols=[0, 1, 2], engine="python")

    @staticmethod
    def _check_data(df):
        assert df.isnull().sum().sum() == 0, "Data contains missing values. Aborting."

    @staticmethod
    def _create_values_dict(x):
        values = sorted(set(x))
        return {str(b): int(a) for (a, b) in enumerate(values)}

    @staticmethod
    def _standardize(data, columns):
        data = data.iloc[:, :3].copy()
        data.columns = columns
        DataHandler._check_data(data)

        data[columns[0]] = data[columns[0]].astype(str)
        data[columns[1]] = data[columns[1]].astype(str)
        values = pd.to_numeric(data[columns[2]])
        fractional = values != np.floor(values)
        if fractional.any():
            logger = logging.getLogger("vbtopics")
            logger.warning(f"Dropping {int(fractional.sum())} rows with a non-integer {columns[2]}.")
            data, values = data[~fractional], values[~fractional]
        data[columns[2]] = values.astype(int)

        return data

    @staticmethod
    def _drop_non_positive(data, column):
        bad = data[column] <= 0
        if bad.any():
            logger = logging.getLogger("vbtopics")
            logger.warning(f"Dropping {int(bad.sum())} rows with a non-positive {column}.")
            data = data[~bad]
        return data

    @staticmethod
    def _sum_duplicates(data, keys, column):
        if data.duplicated(subset=keys).any():
            logger = logging.getLogger("vbtopics")
            logger.warning(f"Summing the {column} of repeated ({', '.join(keys)}) pairs.")
            data = data.groupby(keys, as_index=False, sort=False)[column].sum()
        return data

    def _check_ratings_in_terms(self, ratings):
        rated = set(ratings["document"])
        dif = rated.difference(self.docs_dict.keys())
        if len(dif):
            logger = logging.getLogger("vbtopics")
            logger.warning(
                f"The documents {', '.join(sorted(dif))} have ratings but no terms so I'll remove their ratings."
            )
            ratings = ratings[~ratings["document"].isin(dif)]

        return ratings

    def format_corpus(self, terms, ratings=None):
        """Return a ``Corpus`` for the given frames (see the class docstring)."""
        terms = self._standardize(terms, ["document", "term", "count"])
        terms = self._drop_non_positive(terms, "count")
        terms = self._sum_duplicates(terms, ["document", "term"], "count")

        self.docs_dict = self._create_values_dict(terms["document"])
        self.terms_dict = self._create_values_dict(terms["term"])

        if ratings is not None:
            ratings = self._standardize(ratings, ["document", "user", "rating"])
            ratings = self._drop_non_positive(ratings, "rating")
            ratings = self._sum_duplicates(ratings, ["document", "user"], "rating")
            ratings = self._check_ratings_in_terms(ratings)
            self.users_dict = self._create_values_dict(ratings["user"])
        else:
            self.users_dict = {}

        terms["doc_id"] = terms["document"].map(self.docs_dict)
        terms["term_id"] = terms["term"].map(self.terms_dict)
        feedback = {}
        if ratings is not None and len(ratings):
            ratings["doc_id"] = ratings["document"].map(self.docs_dict)
            ratings["user_id"] = ratings["user"].map(self.users_dict)
            for d, group in ratings.sort_values(["doc_id", "user_id"]).groupby("doc_id"):
                feedback[d] = (group["user_id"].values, group["rating"].values)

        titles = _invert_dict(self.docs_dict)
        docs = []
        for d, group in terms.sort_values(["doc_id", "term_id"]).groupby("doc_id"):
            readers, stars = feedback.get(d, (np.zeros(0, dtype=np.int64), None))
            docs.append(
                Document(
                    group["term_id"].values,
                    counts=group["count"].values,
                    readers=readers,
                    ratings=stars,
                    title=titles[d],
                )
            )

        return Corpus(
            docs=docs,
            vocab=_invert_dict(self.terms_dict),
            users=_invert_dict(self.users_dict),
        )

    def read_corpus(self, terms_path, ratings_path=None):
        terms = self._get_data(terms_path)
        ratings = self._get_data(ratings_path) if ratings_path is not None else None
        return self.format_corpus(terms, ratings)

    @staticmethod
    def return_original_indices(x, dict_):
        inverted = _invert_dict(dict_)
        return [inverted[int(a)] for a in x]

    def return_topics(self, model, top_n=10):
        """Top ``top_n`` term labels of every topic, one column per topic."""
        assert model.topics is not None, "You need to fit the model before asking for topics."
        top = {
            f"topic_{k}": self.return_original_indices(ranking[:top_n], self.terms_dict)
            for k, ranking in enumerate(model.topics)
        }

        return pd.DataFrame(top)

    def return_recommendations(self, model):
        """Labelled rankings of a fitted CTPF model.

        Returns two dicts: document label to ranked user labels, and user
        label to ranked document labels.
        """
        assert model.drecs is not None, "You need to fit the model before asking for recommendations."
        drecs = {
            label: self.return_original_indices(model.drecs[d], self.users_dict)
            for label, d in self.docs_dict.items()
        }
        urecs = {
            label: self.return_original_indices(model.urecs[u], self.docs_dict)
            for label, u in self.users_dict.items()
        }

        return drecs, urecs

    def return_dicts(self):
        return self.docs_dict, self.terms_dict, self.users_dict
