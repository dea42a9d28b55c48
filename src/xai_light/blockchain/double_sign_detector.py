import copy
import logging
from typing import Any, Dict, List, Optional, Tuple

from xai_light.blockchain.block import Commit
from xai_light.blockchain.evidence import DuplicateVoteEvidence
from xai_light.blockchain.vote import Vote
from xai_light.core.serializers import bytes_to_hex

logger = logging.getLogger("xai_light.blockchain.double_sign_detector")

VoteKey = Tuple[bytes, int, int, int]


class DuplicateVoteDetector:
    def __init__(self):
        # Stores the first vote seen per slot:
        # {(validator_address, height, round, type): Vote}
        self.votes: Dict[VoteKey, Vote] = {}
        logger.info("DuplicateVoteDetector initialized.")

    @staticmethod
    def _key(vote: Vote) -> VoteKey:
        return (vote.validator_address, vote.height, vote.round, int(vote.msg_type))

    def process_vote(self, vote: Vote) -> Optional[DuplicateVoteEvidence]:
        """
        Records a signed vote and checks it against earlier votes for the same slot.
        Returns duplicate-vote evidence if the validator already voted differently.
        Signatures are not checked here; callers verify votes before recording them.
        """
        if not vote.validator_address:
            raise ValueError("Vote must name a validator.")
        if vote.height <= 0:
            raise ValueError("Vote height must be positive.")

        key = self._key(vote)
        existing = self.votes.get(key)
        if existing is None:
            self.votes[key] = vote
            logger.debug(
                "Validator %s voted at height %s round %s",
                bytes_to_hex(vote.validator_address),
                vote.height,
                vote.round,
            )
            return None

        if existing.block_id == vote.block_id:
            # Same vote seen again (e.g., re-broadcast), not a double-sign
            return None

        logger.error(
            "Duplicate vote detected: validator %s height %s round %s (%s vs %s)",
            bytes_to_hex(vote.validator_address),
            vote.height,
            vote.round,
            existing.block_id,
            vote.block_id,
        )
        return DuplicateVoteEvidence(vote_a=existing, vote_b=vote)

    def process_commit(self, commit: Commit) -> List[DuplicateVoteEvidence]:
        """Record every vote in a commit, returning evidence for any conflicts."""
        evidence = []
        for index in range(len(commit.signatures)):
            vote = commit.vote(index)
            if vote is None:
                continue
            found = self.process_vote(vote)
            if found is not None:
                evidence.append(found)
        return evidence

    def get_state(self) -> Dict[str, Any]:
        """
        Get current detector state for snapshotting.

        Returns:
            Dictionary containing recorded votes
        """
        return {"votes": copy.copy(self.votes)}

    def restore_state(self, state: Dict[str, Any]) -> None:
        """
        Restore detector state from a snapshot.

        Args:
            state: State dictionary from get_state()
        """
        self.votes = copy.copy(state.get("votes", {}))
        logger.info("DuplicateVoteDetector state restored from snapshot.")
