# benchmark_ctpf.py
import argparse
import time

import numpy as np

from corpus import Corpus, Document
from gpu_ctpf import GpuCTPF


# ------------------------------ helpers ---------------------------------

def mock_corpus(seed: int = 0,
                n_docs: int = 2_000,
                n_terms: int = 5_000,
                n_users: int = 1_000,
                doc_length: int = 100,
                doc_readers: int = 10) -> Corpus:
    """Generate a random corpus with reader feedback."""
    rng = np.random.default_rng(seed)

    docs = []
    for _ in range(n_docs):
        terms = rng.choice(n_terms, size=rng.integers(1, doc_length + 1), replace=False)
        readers = rng.choice(n_users, size=rng.integers(0, doc_readers + 1), replace=False)
        docs.append(
            Document(
                terms,
                counts=rng.integers(1, 5, size=len(terms)),
                readers=readers,
                ratings=rng.integers(1, 6, size=len(readers)),
            )
        )

    return Corpus(docs=docs, vocab={j: f"term{j}" for j in range(n_terms)},
                  users={u: f"user{u}" for u in range(n_users)})


# ------------------------------ benchmark --------------------------------

def main():
    parser = argparse.ArgumentParser(description="Benchmark GpuCTPF training speed.")
    parser.add_argument("--n_docs", type=int, default=2_000, help="Number of documents to simulate.")
    parser.add_argument("--n_terms", type=int, default=5_000, help="Vocabulary size.")
    parser.add_argument("--n_users", type=int, default=1_000, help="Number of users.")
    parser.add_argument("--topics", type=int, default=20, help="Number of topics.")
    parser.add_argument("--iterations", type=int, default=10, help="Training epochs.")
    parser.add_argument("--backend", type=str, default="numpy", help="Backend to use. Options: numpy, cupy, numba.")
    args = parser.parse_args()

    corp = mock_corpus(n_docs=args.n_docs, n_terms=args.n_terms, n_users=args.n_users)

    model = GpuCTPF(corp, args.topics, seed=0, backend=args.backend)

    # --- training time ---------------------------------------------------
    t0 = time.perf_counter()
    model.fit(iterations=args.iterations, check_elbo=max(args.iterations, 1), silent=True)
    train_time = time.perf_counter() - t0

    print(
        f"Backend:        {model.backend}\n"
        f"Training time:  {train_time:8.3f} s\n"
        f"Per epoch:      {train_time / max(model.epochs_run, 1):8.3f} s\n"
        f"Final ELBO:     {model.elbo:12.3f}"
    )


if __name__ == "__main__":
    main()
