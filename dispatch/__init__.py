#Expose the high-level pipeline pieces:
#Candidate filtering (hard rules)
#Scoring / ranking
#Matcher (best driver + binding)
#Dispatcher orchestrator (the "one call" entry point)

from .candidate_filter import build_base_candidates
from .scoring import rank_candidates, score_driver
from .matcher import AssignmentResult, DriverMatcher
from .dispatcher import Dispatcher #the object the API layer calls

__all__ = [
    "build_base_candidates",
    "rank_candidates",
    "score_driver",
    "AssignmentResult",
    "DriverMatcher",
    "Dispatcher",
]
