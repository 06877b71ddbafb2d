"""Runtime package of the fork engine.

The three stages of an invocation live here: run resolution, check
provisioning and the reconciliation loop. Each stage is driven through the
``RemoteFacade`` contract so that tests can run it against in-memory fakes.
"""

from .models import CheckState, ForkOutcome

__all__ = ["CheckState", "ForkOutcome"]
