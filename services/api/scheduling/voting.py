"""Legacy voting funnel tally: travelers vote on one consensus option each."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from services.api.scheduling.consensus import ConsensusOption
from services.api.scheduling.records import VoteRecord


@dataclass
class VoteOption:
    option_key: str
    start_date: str
    end_date: str
    index: int
    votes: int = 0
    voter_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "optionKey": self.option_key,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "votes": self.votes,
            "voterIds": list(self.voter_ids),
        }


@dataclass
class VotingStatus:
    is_voting_stage: bool
    total_travelers: int
    voted_count: int = 0
    has_current_user_voted: bool = False
    options: list[VoteOption] = field(default_factory=list)
    is_tie: bool = False
    ready_to_lock: bool = False
    ready_to_lock_reason: str | None = None

    @property
    def leading_option(self) -> VoteOption | None:
        if self.options and self.options[0].votes > 0:
            return self.options[0]
        return None

    def to_dict(self) -> dict[str, Any]:
        leading = self.leading_option
        return {
            "isVotingStage": self.is_voting_stage,
            "totalTravelers": self.total_travelers,
            "votedCount": self.voted_count,
            "remainingCount": self.total_travelers - self.voted_count,
            "hasCurrentUserVoted": self.has_current_user_voted,
            "leadingOption": leading.to_dict() if leading else None,
            "leadingVotes": leading.votes if leading else 0,
            "isTie": self.is_tie,
            "readyToLock": self.ready_to_lock,
            "readyToLockReason": self.ready_to_lock_reason,
            "options": [o.to_dict() for o in self.options],
        }


def voting_status(
    status: str,
    options: Iterable[ConsensusOption],
    votes: Iterable[VoteRecord],
    active_user_ids: Iterable[str],
    current_user_id: str | None = None,
) -> VotingStatus:
    active = set(active_user_ids)
    result = VotingStatus(is_voting_stage=status == "voting", total_travelers=len(active))
    if not result.is_voting_stage:
        return result

    counted = [v for v in votes if v.user_id in active]
    voters = {v.user_id for v in counted}
    result.voted_count = len(voters)
    result.has_current_user_voted = current_user_id in voters

    by_key: dict[str, VoteOption] = {}
    for idx, opt in enumerate(options):
        by_key[opt.option_key] = VoteOption(opt.option_key, opt.start_date, opt.end_date, idx)
    if not by_key:
        return result

    for vote in counted:
        option = by_key.get(vote.option_key)
        if option is not None:
            option.votes += 1
            option.voter_ids.append(vote.user_id)

    result.options = sorted(by_key.values(), key=lambda o: (-o.votes, o.index))
    leading = result.leading_option
    if leading and len(result.options) > 1 and result.options[1].votes == leading.votes:
        result.is_tie = True

    everyone_voted = result.voted_count == result.total_travelers
    if leading and not result.is_tie and result.voted_count > result.total_travelers / 2:
        result.ready_to_lock = True
        result.ready_to_lock_reason = f"{result.voted_count}/{result.total_travelers} voted, clear leader"
    elif everyone_voted and result.is_tie:
        # Leader breaks the tie
        result.ready_to_lock = True
        result.ready_to_lock_reason = "All votes in (tie - leader decides)"
    return result
