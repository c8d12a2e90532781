"""
Exceptions raised by the solvers and the simulation engine.

Insufficient fuel and surface impact are deliberately absent: the former is
signalled by ``RocketStage.use_fuel`` returning ``None`` and the latter is a
regular state transition of a physics object.
"""


class ConvergenceError(RuntimeError):
    """A root-finding iteration exhausted its iteration or reseed budget."""

    def __init__(self, solver: str, iterations: int, residual: float = float('nan')):
        self.solver = solver
        self.iterations = iterations
        self.residual = residual
        super().__init__(
            f"{solver} did not converge after {iterations} iterations "
            f"(residual={residual:.3e})"
        )


class UnsupportedOrbitError(ValueError):
    """The orbit class or transfer geometry is not handled by an algorithm."""


class InvalidHierarchyError(ValueError):
    """A handle is unknown or the primary-body chain is malformed."""
