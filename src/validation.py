from corpus import check_corp


class TopicModelError(Exception):
    """A model's parameters are inconsistent with each other or with its corpus."""


def check_model(model):
    """Verify the structural invariants of a model and its attached corpus.

    Each model class yields its checks lazily from ``_invariants`` so that
    shape checks run before the checks that index into the arrays. Any failed
    check raises ``TopicModelError("invalid")``.
    """
    check_corp(model.corp)
    for ok in model._invariants():
        if not ok:
            raise TopicModelError("invalid")
