"""
Unit tests for trusting-period header verification.
"""

import hashlib
from dataclasses import replace
from datetime import timedelta

import pytest

from chain_helpers import ChainFactory, corrupt_signature
from xai_light.blockchain.block import SignedHeader
from xai_light.blockchain.vote import CommitSig
from xai_light.core.config import LightClientConfig
from xai_light.core.crypto_utils import DefaultSignatureVerifier
from xai_light.core.lite_exceptions import (
    ChainIdMismatchError,
    CommitLengthMismatchError,
    CommitSignerMismatchError,
    ExpiredError,
    HeaderCommitMismatchError,
    InsufficientNewPowerError,
    InsufficientPowerError,
    InsufficientTrustedPowerError,
    NonIncreasingHeightError,
    ValidatorSetMismatchError,
)
from xai_light.core.timestamp import Time
from xai_light.lite.trust import TrustThreshold
from xai_light.lite.verifier import (
    LiteBlock,
    TrustedState,
    Verifier,
    check_expiry,
    verify_trusting,
)


class CountingVerifier(DefaultSignatureVerifier):
    """Signature verifier that records how often it is consulted."""

    def __init__(self):
        self.calls = 0

    def verify(self, public_key, message, signature):
        self.calls += 1
        return super().verify(public_key, message, signature)


class TestVerifyTrusting:
    """Ordered checks of verify_trusting."""

    def test_valid_successor_verifies(self, factory, keys, trusted):
        candidate = factory.signed_header(height=2, keys=keys)

        result = Verifier().verify_trusting(
            trusted.header,
            candidate.signed_header,
            candidate.validator_set,
            trusted.next_validator_set,
        )

        assert result is None

    def test_module_level_function(self, factory, keys, trusted):
        candidate = factory.signed_header(height=5, keys=keys)

        verify_trusting(
            trusted.header,
            candidate.signed_header,
            candidate.validator_set,
            trusted.next_validator_set,
        )

    def test_skipping_heights_is_allowed(self, factory, keys, trusted):
        candidate = factory.signed_header(height=100, keys=keys)

        Verifier().verify_trusting(
            trusted.header, candidate.signed_header, candidate.validator_set, trusted.next_validator_set
        )

    def test_commit_for_other_header_rejected(self, factory, keys, trusted):
        candidate = factory.signed_header(height=2, keys=keys)
        other = factory.signed_header(height=3, keys=keys)
        mixed = replace(candidate.signed_header, commit=other.commit)

        with pytest.raises(HeaderCommitMismatchError):
            Verifier().verify_trusting(
                trusted.header, mixed, candidate.validator_set, trusted.next_validator_set
            )

    def test_wrong_validator_set_rejected_before_signatures(self, factory, keys, trusted):
        candidate = factory.signed_header(height=2, keys=keys)
        other_set = factory.validator_set(factory.make_keys([5, 5, 5], seed_offset=50))
        counting = CountingVerifier()

        with pytest.raises(ValidatorSetMismatchError):
            Verifier(signature_verifier=counting).verify_trusting(
                trusted.header, candidate.signed_header, other_set, trusted.next_validator_set
            )

        assert counting.calls == 0

    def test_chain_id_mismatch_rejected(self, keys, trusted):
        other_chain = ChainFactory(chain_id="other-chain")
        candidate = other_chain.signed_header(height=2, keys=keys)

        with pytest.raises(ChainIdMismatchError):
            Verifier().verify_trusting(
                trusted.header, candidate.signed_header, candidate.validator_set, trusted.next_validator_set
            )

    @pytest.mark.parametrize("trusted_height,height", [(1, 1), (3, 2)])
    def test_non_increasing_height_rejected(self, factory, keys, trusted_height, height):
        trusted = factory.signed_header(height=trusted_height, keys=keys)
        candidate = factory.signed_header(height=height, keys=keys)

        with pytest.raises(NonIncreasingHeightError) as exc_info:
            Verifier().verify_trusting(
                trusted.header, candidate.signed_header, candidate.validator_set, trusted.next_validator_set
            )

        assert exc_info.value.candidate_height == height
        assert exc_info.value.trusted_height == trusted.header.height

    def test_one_invalid_signature_drops_below_two_thirds(self, factory):
        keys = factory.make_keys([10, 10, 10])
        trusted = factory.signed_header(height=1, keys=keys)
        candidate = factory.signed_header(height=2, keys=keys)
        bad_commit = corrupt_signature(candidate.commit, keys[0].address)
        bad = replace(candidate.signed_header, commit=bad_commit)

        with pytest.raises(InsufficientNewPowerError) as exc_info:
            Verifier().verify_trusting(
                trusted.header, bad, candidate.validator_set, trusted.next_validator_set
            )

        assert exc_info.value.tallied == 20
        assert exc_info.value.total == 30

    def test_invalid_signatures_drop_trusted_power_to_one_third(self, factory):
        keys = factory.make_keys([10, 10, 10])
        trusted = factory.signed_header(height=1, keys=keys)
        candidate = factory.signed_header(height=2, keys=keys)
        commit = corrupt_signature(candidate.commit, keys[0].address)
        commit = corrupt_signature(commit, keys[1].address)
        bad = replace(candidate.signed_header, commit=commit)

        with pytest.raises(InsufficientTrustedPowerError) as exc_info:
            Verifier().verify_trusting(
                trusted.header, bad, candidate.validator_set, trusted.next_validator_set
            )

        # Exactly one third is not more than one third.
        assert exc_info.value.tallied == 10
        assert exc_info.value.total == 30
        assert isinstance(exc_info.value, InsufficientPowerError)

    def test_all_absent_commit_fails_trusted_check(self, factory, keys, trusted):
        candidate = factory.signed_header(height=2, keys=keys, signers=[])

        assert all(sig.is_absent() for sig in candidate.commit.signatures)
        with pytest.raises(InsufficientTrustedPowerError) as exc_info:
            Verifier().verify_trusting(
                trusted.header, candidate.signed_header, candidate.validator_set, trusted.next_validator_set
            )
        assert exc_info.value.tallied == 0

    def test_nil_votes_do_not_count(self, factory, keys, trusted):
        candidate = factory.signed_header(
            height=2,
            keys=keys,
            signers=[k.address for k in keys[:2]],
            nil=[k.address for k in keys[2:]],
        )

        with pytest.raises(InsufficientNewPowerError) as exc_info:
            Verifier().verify_trusting(
                trusted.header, candidate.signed_header, candidate.validator_set, trusted.next_validator_set
            )
        assert exc_info.value.tallied == 20

    def test_exactly_two_thirds_is_insufficient(self, factory):
        keys = factory.make_keys([10, 10, 10])
        trusted = factory.signed_header(height=1, keys=keys)
        candidate = factory.signed_header(height=2, keys=keys, signers=[k.address for k in keys[:2]])

        with pytest.raises(InsufficientNewPowerError):
            Verifier().verify_trusting(
                trusted.header, candidate.signed_header, candidate.validator_set, trusted.next_validator_set
            )

    def test_more_than_two_thirds_is_sufficient(self, factory, keys, trusted):
        candidate = factory.signed_header(height=2, keys=keys, signers=[k.address for k in keys[:3]])

        Verifier().verify_trusting(
            trusted.header, candidate.signed_header, candidate.validator_set, trusted.next_validator_set
        )

    def test_commit_length_mismatch_is_structural(self, factory, keys, trusted):
        candidate = factory.signed_header(height=2, keys=keys)
        short = replace(candidate.commit, signatures=candidate.commit.signatures[:-1])
        counting = CountingVerifier()

        with pytest.raises(CommitLengthMismatchError):
            Verifier(signature_verifier=counting).verify_trusting(
                trusted.header,
                replace(candidate.signed_header, commit=short),
                candidate.validator_set,
                trusted.next_validator_set,
            )
        assert counting.calls == 0

    def test_commit_signer_out_of_position_is_structural(self, factory, keys, trusted):
        candidate = factory.signed_header(height=2, keys=keys)
        sigs = list(candidate.commit.signatures)
        sigs[0], sigs[1] = sigs[1], sigs[0]
        swapped = replace(candidate.commit, signatures=tuple(sigs))
        counting = CountingVerifier()

        with pytest.raises(CommitSignerMismatchError):
            Verifier(signature_verifier=counting).verify_trusting(
                trusted.header,
                replace(candidate.signed_header, commit=swapped),
                candidate.validator_set,
                trusted.next_validator_set,
            )
        assert counting.calls == 0


class TestValidatorSetChanges:
    """Trusted next set differs from the candidate's own set."""

    def test_overlap_above_one_third_verifies(self, factory):
        old_keys = factory.make_keys([10, 10, 10])
        new_keys = old_keys[:2] + factory.make_keys([10, 10], seed_offset=20)
        trusted = factory.signed_header(height=1, keys=old_keys)
        candidate = factory.signed_header(height=2, keys=new_keys)

        Verifier().verify_trusting(
            trusted.header, candidate.signed_header, candidate.validator_set, trusted.next_validator_set
        )

    def test_disjoint_sets_fail_trusted_check(self, factory):
        old_keys = factory.make_keys([10, 10, 10])
        new_keys = factory.make_keys([10, 10, 10], seed_offset=30)
        trusted = factory.signed_header(height=1, keys=old_keys)
        candidate = factory.signed_header(height=2, keys=new_keys)

        with pytest.raises(InsufficientTrustedPowerError) as exc_info:
            Verifier().verify_trusting(
                trusted.header, candidate.signed_header, candidate.validator_set, trusted.next_validator_set
            )
        assert exc_info.value.tallied == 0
        assert exc_info.value.total == 30

    def test_higher_trust_threshold_rejects_small_overlap(self, factory):
        old_keys = factory.make_keys([10, 10, 10])
        new_keys = old_keys[:2] + factory.make_keys([10, 10], seed_offset=20)
        trusted = factory.signed_header(height=1, keys=old_keys)
        candidate = factory.signed_header(height=2, keys=new_keys)
        strict = Verifier(trust_threshold=TrustThreshold(2, 3))

        # 20 of 30 trusted power is not more than two thirds.
        with pytest.raises(InsufficientTrustedPowerError):
            strict.verify_trusting(
                trusted.header, candidate.signed_header, candidate.validator_set, trusted.next_validator_set
            )


class TestTally:
    def test_positional_tally_counts_valid_commits(self, factory, keys, validator_set):
        candidate = factory.signed_header(height=2, keys=keys, signers=[k.address for k in keys[:3]])

        tally = Verifier().tally_commit(factory.chain_id, candidate.commit, validator_set)

        assert tally.tallied == 30
        assert tally.total == 40
        assert len(tally.signers) == 3
        assert tally.invalid_signatures == ()

    def test_tally_records_invalid_signatures(self, factory, keys, validator_set):
        candidate = factory.signed_header(height=2, keys=keys)
        commit = corrupt_signature(candidate.commit, keys[3].address)

        tally = Verifier().tally_commit(factory.chain_id, commit, validator_set)

        assert tally.tallied == 30
        assert tally.invalid_signatures == (keys[3].address,)

    def test_wrong_chain_id_invalidates_every_signature(self, factory, keys, validator_set):
        candidate = factory.signed_header(height=2, keys=keys)

        tally = Verifier().tally_commit("another-chain", candidate.commit, validator_set)

        assert tally.tallied == 0
        assert len(tally.invalid_signatures) == 4

    def test_trusting_tally_ignores_unknown_signers(self, factory, keys):
        candidate = factory.signed_header(height=2, keys=keys)
        trusted_set = factory.validator_set(keys[:1] + factory.make_keys([7], seed_offset=40))

        tally = Verifier().tally_commit_trusting(factory.chain_id, candidate.commit, trusted_set)

        assert tally.tallied == 10
        assert tally.total == 17

    def test_trusting_tally_counts_each_validator_once(self, factory, keys, validator_set):
        candidate = factory.signed_header(height=2, keys=keys)
        first = candidate.commit.signatures[0]
        doubled = replace(candidate.commit, signatures=candidate.commit.signatures + (first,))

        tally = Verifier().tally_commit_trusting(factory.chain_id, doubled, validator_set)

        assert tally.tallied == 40

    def test_parallel_tally_matches_sequential(self, factory, keys, validator_set):
        candidate = factory.signed_header(height=2, keys=keys)
        commit = corrupt_signature(candidate.commit, keys[1].address)

        sequential = Verifier().tally_commit(factory.chain_id, commit, validator_set)
        parallel = Verifier(max_workers=4).tally_commit(factory.chain_id, commit, validator_set)

        assert parallel == sequential

    def test_tally_ratio(self, factory, keys, validator_set):
        candidate = factory.signed_header(height=2, keys=keys, signers=[keys[0].address])

        tally = Verifier().tally_commit(factory.chain_id, candidate.commit, validator_set)

        assert tally.ratio.numerator == 1
        assert tally.ratio.denominator == 4

    def test_invalid_worker_count(self):
        with pytest.raises(ValueError):
            Verifier(max_workers=0)


class TestExpiry:
    def test_within_period(self, trusted):
        now = trusted.header.time + timedelta(days=1)

        check_expiry(trusted.header, timedelta(days=14), now)

    def test_boundary_is_expired(self, trusted):
        period = timedelta(days=14)

        with pytest.raises(ExpiredError):
            check_expiry(trusted.header, period, trusted.header.time + period)

    def test_one_nanosecond_before_boundary(self, trusted):
        period = timedelta(seconds=10)
        now = Time(trusted.header.time.unix_nanos + 10 * 1_000_000_000 - 1)

        check_expiry(trusted.header, period, now)

    def test_verifier_requires_a_period(self, trusted):
        with pytest.raises(ValueError):
            Verifier().check_expiry(trusted.header, trusted.header.time)

    def test_verifier_uses_configured_period(self, trusted):
        verifier = Verifier(trusting_period=timedelta(hours=1))

        with pytest.raises(ExpiredError):
            verifier.check_expiry(trusted.header, trusted.header.time + timedelta(hours=2))


class TestTrustedStateUpdates:
    def test_trusted_state_rejects_mismatched_next_set(self, factory, keys, trusted):
        other_set = factory.validator_set(factory.make_keys([1, 2], seed_offset=60))

        with pytest.raises(ValidatorSetMismatchError):
            TrustedState(trusted.signed_header, other_set)

    def test_update_trusted_state(self, factory, keys, trusted):
        state = TrustedState(trusted.signed_header, trusted.next_validator_set)
        candidate = factory.signed_header(height=2, keys=keys)
        block = LiteBlock(candidate.signed_header, candidate.validator_set, candidate.next_validator_set)

        new_state = Verifier(trusting_period=timedelta(days=1)).update_trusted_state(
            state, block, trusted.header.time + timedelta(minutes=5)
        )

        assert new_state.height == 2
        assert new_state.next_validator_set == candidate.next_validator_set

    def test_update_fails_when_expired(self, factory, keys, trusted):
        state = TrustedState(trusted.signed_header, trusted.next_validator_set)
        candidate = factory.signed_header(height=2, keys=keys)
        block = LiteBlock(candidate.signed_header, candidate.validator_set, candidate.next_validator_set)

        with pytest.raises(ExpiredError):
            Verifier().update_trusted_state(
                state, block, trusted.header.time + timedelta(days=30), timedelta(days=14)
            )

    def test_verify_sequence_follows_validator_changes(self, factory):
        set_a = factory.make_keys([10, 10, 10])
        set_b = set_a[1:] + factory.make_keys([10], seed_offset=70)
        genesis = factory.signed_header(height=1, keys=set_a)
        hop1 = factory.signed_header(height=2, keys=set_a, next_keys=set_b)
        hop2 = factory.signed_header(height=3, keys=set_b)
        blocks = [
            LiteBlock(hop.signed_header, hop.validator_set, hop.next_validator_set)
            for hop in (hop1, hop2)
        ]
        state = TrustedState(genesis.signed_header, genesis.next_validator_set)

        final = Verifier(trusting_period=timedelta(days=1)).verify_sequence(
            state, blocks, genesis.header.time + timedelta(hours=1)
        )

        assert final.height == 3
        assert final.next_validator_set == factory.validator_set(set_b)

    def test_verify_sequence_stops_at_first_failure(self, factory, keys, trusted):
        good = factory.signed_header(height=2, keys=keys)
        stale = factory.signed_header(height=2, keys=keys)
        blocks = [
            LiteBlock(good.signed_header, good.validator_set, good.next_validator_set),
            LiteBlock(stale.signed_header, stale.validator_set, stale.next_validator_set),
        ]
        state = TrustedState(trusted.signed_header, trusted.next_validator_set)

        with pytest.raises(NonIncreasingHeightError):
            Verifier(trusting_period=timedelta(days=1)).verify_sequence(
                state, blocks, trusted.header.time + timedelta(hours=1)
            )

    def test_lite_block_from_dict(self, factory, keys):
        candidate = factory.signed_header(height=2, keys=keys)
        payload = {
            "signed_header": candidate.signed_header.to_dict(),
            "validator_set": candidate.validator_set.to_dict(),
            "next_validator_set": candidate.next_validator_set.to_dict(),
        }

        block = LiteBlock.from_dict(payload)

        assert block.signed_header.header.hash() == candidate.header.hash()
        assert block.validator_set == candidate.validator_set


class TestFromConfig:
    def test_threshold_and_period_come_from_config(self):
        config = LightClientConfig(
            trusting_period=timedelta(hours=3), trust_threshold=TrustThreshold(1, 2)
        )

        verifier = Verifier.from_config(config)

        assert verifier.trusting_period == timedelta(hours=3)
        assert str(verifier.trust_threshold) == "1/2"


def test_absent_commit_sig_has_no_vote(factory, keys):
    candidate = factory.signed_header(height=2, keys=keys, signers=[keys[0].address])
    absent_index = next(i for i, s in enumerate(candidate.commit.signatures) if s == CommitSig.absent())

    assert candidate.commit.vote(absent_index) is None


class Blake2sHasher:
    def hash(self, data: bytes) -> bytes:
        return hashlib.blake2s(data).digest()


class TestInjectedHasher:
    """One hashing capability binds both the header and the validator sets."""

    def test_chain_hashed_with_injected_hasher_verifies(self, keys):
        blake = ChainFactory(hasher=Blake2sHasher())
        trusted = blake.signed_header(height=1, keys=keys)
        candidate = blake.signed_header(height=2, keys=keys)

        Verifier(hasher=Blake2sHasher()).verify_trusting(
            trusted.header, candidate.signed_header, candidate.validator_set, trusted.next_validator_set
        )

    def test_default_hasher_rejects_foreign_chain(self, keys):
        blake = ChainFactory(hasher=Blake2sHasher())
        trusted = blake.signed_header(height=1, keys=keys)
        candidate = blake.signed_header(height=2, keys=keys)

        with pytest.raises(HeaderCommitMismatchError):
            Verifier().verify_trusting(
                trusted.header, candidate.signed_header, candidate.validator_set, trusted.next_validator_set
            )

    def test_validator_set_hashed_with_injected_hasher(self, factory, keys):
        blake = ChainFactory(hasher=Blake2sHasher())
        trusted = blake.signed_header(height=1, keys=keys)
        validator_set = factory.validator_set(keys)
        # Header fields name the set by its SHA-256 hash while the commit uses BLAKE2s.
        header = factory.header(2, validator_set)
        commit = blake.commit(header, keys, validator_set)
        candidate = SignedHeader(header, commit)

        with pytest.raises(ValidatorSetMismatchError):
            Verifier(hasher=Blake2sHasher()).verify_trusting(
                trusted.header, candidate, validator_set, trusted.next_validator_set
            )

    def test_trusted_state_uses_injected_hasher(self, keys):
        blake = ChainFactory(hasher=Blake2sHasher())
        trusted = blake.signed_header(height=1, keys=keys)
        candidate = blake.signed_header(height=2, keys=keys)
        block = LiteBlock(candidate.signed_header, candidate.validator_set, candidate.next_validator_set)

        with pytest.raises(ValidatorSetMismatchError):
            TrustedState(trusted.signed_header, trusted.next_validator_set)

        state = TrustedState(trusted.signed_header, trusted.next_validator_set, hasher=Blake2sHasher())
        new_state = Verifier(hasher=Blake2sHasher(), trusting_period=timedelta(days=1)).update_trusted_state(
            state, block, trusted.header.time + timedelta(minutes=1)
        )

        assert new_state.height == 2


class TestConfiguredChainId:
    def test_candidate_on_other_chain_rejected(self, keys):
        other_chain = ChainFactory(chain_id="other-chain")
        trusted = other_chain.signed_header(height=1, keys=keys)
        candidate = other_chain.signed_header(height=2, keys=keys)
        verifier = Verifier.from_config(LightClientConfig(chain_id="test-chain-01"))

        with pytest.raises(ChainIdMismatchError) as exc_info:
            verifier.verify_trusting(
                trusted.header, candidate.signed_header, candidate.validator_set, trusted.next_validator_set
            )
        assert exc_info.value.details["expected"] == "test-chain-01"

    def test_candidate_on_configured_chain_verifies(self, factory, keys, trusted):
        candidate = factory.signed_header(height=2, keys=keys)
        verifier = Verifier.from_config(LightClientConfig(chain_id=factory.chain_id))

        verifier.verify_trusting(
            trusted.header, candidate.signed_header, candidate.validator_set, trusted.next_validator_set
        )

    def test_chain_id_read_from_environment(self):
        config = LightClientConfig.from_env({"XAI_LIGHT_CHAIN_ID": "cosmoshub-3"})

        assert Verifier.from_config(config).chain_id == "cosmoshub-3"


def test_explicit_zero_trusting_period_is_honoured(trusted):
    verifier = Verifier(trusting_period=timedelta(days=14))

    with pytest.raises(ExpiredError):
        verifier.check_expiry(trusted.header, trusted.header.time + timedelta(seconds=1), timedelta(0))
