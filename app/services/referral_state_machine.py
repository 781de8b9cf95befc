"""
Referral state machine for managing referral status transitions
"""

from typing import Dict, List, Set
from app.models.referral import ReferralStatus

class ReferralStateMachine:
    """
    Manages valid referral status transitions
    """

    def __init__(self):
        self.transitions: Dict[ReferralStatus, Set[ReferralStatus]] = {
            ReferralStatus.PENDING: {
                ReferralStatus.ACTIVE,
                ReferralStatus.CHURNED
            },
            ReferralStatus.ACTIVE: {
                ReferralStatus.CHURNED,
                ReferralStatus.EXPIRED  # Commission window ended
            },
            ReferralStatus.CHURNED: set(),  # Terminal state
            ReferralStatus.EXPIRED: set()  # Terminal state
        }

    def sources_for(self, new_status: ReferralStatus) -> List[str]:
        """
        Statuses a referral may be in to move to ``new_status``

        Used as the guard of conditional UPDATE statements so that the
        transition is checked by the store in the same statement that
        applies it.
        """
        return sorted(
            status.value
            for status, targets in self.transitions.items()
            if new_status in targets
        )

referral_state_machine = ReferralStateMachine()
