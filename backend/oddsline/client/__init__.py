from oddsline.client.betting_slip import BettingSlip
from oddsline.client.odds_notifier import ConnectionState, LiveOddsNotifier, NotifierStatus
from oddsline.client.query_cache import QueryCache
from oddsline.client.session import BettingSession
from oddsline.client.submission import SlipValidationError, SubmissionResult, submit_betting_slip

__all__ = [
    "BettingSession",
    "BettingSlip",
    "ConnectionState",
    "LiveOddsNotifier",
    "NotifierStatus",
    "QueryCache",
    "SlipValidationError",
    "SubmissionResult",
    "submit_betting_slip",
]
