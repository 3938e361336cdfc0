"""Step statistics counters."""

from dataclasses import asdict, dataclass


@dataclass
class IntegratorStatistics:
    """Counters accumulated over the integrator's lifetime.

    All counters only ever increase; :meth:`reset` is the sole way to zero
    them.
    """

    steps_attempted: int = 0
    steps_taken: int = 0
    error_test_failures: int = 0
    convergence_test_failures: int = 0
    # Iterative methods classify their iterations by whether the step
    # they belonged to converged.
    convergent_iterations: int = 0
    divergent_iterations: int = 0

    @property
    def num_iterations(self) -> int:
        return self.convergent_iterations + self.divergent_iterations

    def reset(self) -> None:
        self.steps_attempted = 0
        self.steps_taken = 0
        self.error_test_failures = 0
        self.convergence_test_failures = 0
        self.convergent_iterations = 0
        self.divergent_iterations = 0

    def as_dict(self) -> dict:
        stats = asdict(self)
        stats["num_iterations"] = self.num_iterations
        return stats
