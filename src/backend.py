from importlib import import_module

BACKENDS = ("cupy", "numba", "numpy")


def load_backend(name: str = "auto"):
    """Return the kernel module for the CTPF pipeline and its name.

    Parameters
    ----------
    name : str
        "auto"   – choose highest-performance backend available in the
                    order cupy → numba → numpy.
        "cupy"   – force GPU backend (raises ImportError if unavailable).
        "numba"  – force CPU/Numba backend.
        "numpy"  – reference implementation.
    """
    order = list(BACKENDS) if name == "auto" else [name]

    last_error = None
    for backend in order:
        try:
            return import_module(f"kernels_{backend}"), backend
        except ImportError as e:  # also covers cupy without a working CUDA runtime
            last_error = e
    raise ImportError(
        f"Could not load any backend. Last error: {last_error}")
