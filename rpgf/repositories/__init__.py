"""
Neo4j repositories for rounds, applications, forms, ballots, results and audit.
"""

from rpgf.repositories.application_repository import ApplicationRepository
from rpgf.repositories.audit_repository import AuditRepository
from rpgf.repositories.ballot_repository import BallotRepository
from rpgf.repositories.base import BaseRepository
from rpgf.repositories.form_repository import FormRepository
from rpgf.repositories.result_repository import ResultRepository
from rpgf.repositories.round_repository import RoundRepository

__all__ = [
    "BaseRepository",
    "ApplicationRepository",
    "AuditRepository",
    "BallotRepository",
    "FormRepository",
    "ResultRepository",
    "RoundRepository",
]
