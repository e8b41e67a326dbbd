"""Tests for the voter roll and the vote-casting flow."""

import pytest

from voting import (
    MINIMUM_AGE,
    PARTIES,
    RegistrationError,
    VoterRegistry,
    VotingError,
    VotingService,
    hash_password,
)


class TestVoterRegistry:
    def test_register_and_find(self) -> None:
        reg = VoterRegistry()
        voter = reg.register("Carol", "v9", 22, "Carol@Example.com", "secret", address="1 Main St")
        assert reg.find("v9") is voter
        assert voter.email == "carol@example.com"
        assert voter.password_hash == hash_password("secret")
        assert "secret" not in repr(voter)
        assert len(reg) == 1

    def test_underage_rejected(self) -> None:
        with pytest.raises(RegistrationError):
            VoterRegistry().register("Kid", "v9", MINIMUM_AGE - 1, "kid@example.com", "pw")

    def test_minimum_age_accepted(self) -> None:
        VoterRegistry().register("Adult", "v9", MINIMUM_AGE, "adult@example.com", "pw")

    @pytest.mark.parametrize(
        "voter_id,email,message",
        [("v1", "new@example.com", "Voter ID"), ("v9", "ALICE@example.com", "Email")],
    )
    def test_duplicates_rejected(self, registry: VoterRegistry, voter_id, email, message) -> None:
        with pytest.raises(RegistrationError, match=message):
            registry.register("Someone", voter_id, 30, email, "pw")
        assert len(registry) == 2

    def test_missing_fields(self) -> None:
        with pytest.raises(RegistrationError):
            VoterRegistry().register("", "v9", 30, "x@example.com", "pw")

    def test_authenticate(self, registry: VoterRegistry) -> None:
        assert registry.authenticate("v1", "pw1").name == "Alice Voter"
        assert registry.authenticate("v1", "wrong") is None
        assert registry.authenticate("nobody", "pw1") is None

    def test_all(self, registry: VoterRegistry) -> None:
        assert sorted(v.voter_id for v in registry.all()) == ["v1", "v2"]


class TestVotingService:
    def test_cast_vote(self, service: VotingService) -> None:
        assert not service.has_voted("v1")
        block = service.cast_vote("v1", "Green Party")
        assert block.index == 1
        assert block.payload.voter_id == "v1"
        assert service.has_voted("v1")
        assert service.ledger.is_valid()

    def test_second_vote_rejected(self, service: VotingService) -> None:
        service.cast_vote("v1", "Green Party")
        with pytest.raises(VotingError, match="already voted"):
            service.cast_vote("v1", "Independent")
        assert len(service.ledger) == 2

    def test_unregistered_voter(self, service: VotingService) -> None:
        with pytest.raises(VotingError):
            service.cast_vote("ghost", "Green Party")
        assert len(service.ledger) == 1

    def test_wrong_password(self, service: VotingService) -> None:
        with pytest.raises(VotingError):
            service.cast_vote("v1", "Green Party", password="nope")
        service.cast_vote("v1", "Green Party", password="pw1")
        assert service.has_voted("v1")

    def test_unknown_party(self, service: VotingService) -> None:
        with pytest.raises(VotingError):
            service.cast_vote("v1", "Pirate Party")
        assert len(service.ledger) == 1

    def test_results_zero_filled_in_party_order(self, service: VotingService) -> None:
        service.cast_vote("v1", "Green Party")
        service.cast_vote("v2", "Green Party")
        results = service.results()
        assert list(results) == list(PARTIES)
        assert results["Green Party"] == 2
        assert sum(results.values()) == 2

    def test_results_keep_unlisted_choices(self, service: VotingService) -> None:
        from blockchain import Vote

        service.ledger.append(Vote(voter_id="x", choice="Write-in", cast_at=0))
        results = service.results()
        assert results["Write-in"] == 1
        assert list(results)[-1] == "Write-in"

    def test_mining_timeout_reported_as_voting_error(self, registry: VoterRegistry, clock) -> None:
        from blockchain import Ledger, MiningTimeoutError

        ledger = Ledger(difficulty=64, clock=clock, mining_timeout=0.01)
        service = VotingService(ledger, registry, clock=clock)
        with pytest.raises(VotingError, match="not recorded") as excinfo:
            service.cast_vote("v1", "Green Party")
        assert isinstance(excinfo.value.__cause__, MiningTimeoutError)
        assert len(ledger) == 1
        assert not service.has_voted("v1")
