from equiptrack.ledger.projector import LedgerProjector, ProjectionResult
from equiptrack.ledger.sequences import IdSequence

__all__ = ["LedgerProjector", "ProjectionResult", "IdSequence"]
