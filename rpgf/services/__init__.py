"""
RPGF Services Module

Contains the round core:
- RoundService: drafts, publication, voters and the phase guards
- ApplicationService: submission, edits, review and attestation resolution
- BallotService: voter ballots and spreadsheet import
- ResultsService: tallying, publication and weight export
"""

from .applications import ApplicationService
from .attestation import AttestationVerifier, compare_declared_fields, deep_equal
from .audit import AuditService
from .ballot_signature import ballot_typed_data, hash_ballot_votes, verify_ballot_signature
from .ballot_validation import check_application_references, parse_ballot_rows, validate_allocations
from .ballots import BallotService
from .caching import CachingService, generate_key
from .phase import resolve_round_phase, round_phase, validate_schedule_for_publication
from .results import ResultsService
from .rounds import RoundService, is_round_admin, is_round_voter, require_admin, require_phase
from .tallying import compute_weights, distribute_remainder, round_half_up, tally

__all__ = [
    # Orchestrators
    "ApplicationService",
    "BallotService",
    "ResultsService",
    "RoundService",
    # Attestation
    "AttestationVerifier",
    "compare_declared_fields",
    "deep_equal",
    # Infrastructure
    "AuditService",
    "CachingService",
    "generate_key",
    # Ballots
    "ballot_typed_data",
    "check_application_references",
    "hash_ballot_votes",
    "parse_ballot_rows",
    "validate_allocations",
    "verify_ballot_signature",
    # Phases and guards
    "is_round_admin",
    "is_round_voter",
    "require_admin",
    "require_phase",
    "resolve_round_phase",
    "round_phase",
    "validate_schedule_for_publication",
    # Tallying
    "compute_weights",
    "distribute_remainder",
    "round_half_up",
    "tally",
]
