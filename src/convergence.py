import math
import numbers


def _is_count(x):
    return isinstance(x, numbers.Integral) and not isinstance(x, bool)


def validate_training_args(iterations, tol, niter, ntol, viter, vtol, check_elbo):
    """Reject training options before any work is done."""
    for name, value in (("tol", tol), ("ntol", ntol), ("vtol", vtol)):
        if not isinstance(value, numbers.Real) or math.isnan(value) or value < 0:
            raise ValueError(f"Tolerance parameter '{name}' must be non-negative, got {value!r}.")

    for name, value in (("iterations", iterations), ("niter", niter), ("viter", viter)):
        if not _is_count(value) or value < 0:
            raise ValueError(f"Iteration parameter '{name}' must be a non-negative integer, got {value!r}.")

    if not ((_is_count(check_elbo) and check_elbo > 0) or check_elbo == math.inf):
        raise ValueError(f"check_elbo must be a positive integer or math.inf, got {check_elbo!r}.")


class ElboMonitor:
    """Evaluates the ELBO on a fixed cadence and decides when training stops.

    Parameters
    ----------
    model : TopicModel
        Any model exposing ``compute_elbo()``, ``elbo`` and ``elbo_history``.

    check_elbo : int or math.inf
        Evaluate every ``check_elbo`` epochs. ``math.inf`` never evaluates.

    tol : float
        Stop once the absolute change between two evaluations is below ``tol``.

    iterations : int
        Epoch cap of the run. The bound is evaluated before the first epoch
        only if at least one check will happen during the run.

    logger : logging.Logger
    """

    def __init__(self, model, check_elbo, tol, iterations, logger):
        self.model = model
        self.check_elbo = check_elbo
        self.tol = tol
        self.iterations = iterations
        self.logger = logger

    @property
    def enabled(self):
        return self.check_elbo != math.inf and self.check_elbo <= self.iterations

    def start(self):
        if not self.enabled:
            return None
        elbo = self.model.compute_elbo()
        self.model.elbo = elbo
        self.model.elbo_history.append((0, elbo))
        self.logger.debug(f"Initial ELBO is {elbo:.3f}.")
        return elbo

    def step(self, epoch):
        """Return True when training should stop after ``epoch``."""
        if not self.enabled or epoch % self.check_elbo != 0:
            return False

        previous = self.model.elbo
        elbo = self.model.compute_elbo()
        delta = elbo - previous
        self.model.elbo = elbo
        self.model.elbo_history.append((epoch, elbo))
        self.logger.info(f"Epoch {epoch}: ELBO {elbo:.3f}, change {delta:.3f}.")

        if abs(delta) < self.tol:
            self.logger.info(f"Converged after {epoch} epochs.")
            return True
        return False
