# voting.py
import hashlib
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from blockchain import Block, Ledger, MiningTimeoutError, Vote, now_ms

logger = logging.getLogger(__name__)

MINIMUM_AGE = 18

PARTIES = (
    "Democratic Party",
    "Republican Party",
    "Green Party",
    "Libertarian Party",
    "Independent",
)


class RegistrationError(ValueError):
    pass


class VotingError(ValueError):
    pass


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode()).hexdigest()


@dataclass
class Voter:
    voter_id: str
    name: str
    age: int
    email: str
    address: str = ""
    registered_at: int = field(default_factory=now_ms)
    password_hash: str = field(default="", repr=False)


class VoterRegistry:
    """In-memory voter roll. Lost on restart, like the ledger."""

    def __init__(self):
        self._voters: Dict[str, Voter] = {}
        self._lock = threading.Lock()

    def register(
        self,
        name: str,
        voter_id: str,
        age: int,
        email: str,
        password: str,
        address: str = "",
    ) -> Voter:
        name, voter_id, email = name.strip(), voter_id.strip(), email.strip().lower()
        if not name or not voter_id or not email or not password:
            raise RegistrationError("Fill all fields")
        if age < MINIMUM_AGE:
            raise RegistrationError(f"Voters must be at least {MINIMUM_AGE} years old")
        with self._lock:
            if voter_id in self._voters:
                raise RegistrationError("Voter ID already exists")
            if any(v.email == email for v in self._voters.values()):
                raise RegistrationError("Email already registered")
            voter = Voter(
                voter_id=voter_id,
                name=name,
                age=age,
                email=email,
                address=address.strip(),
                password_hash=hash_password(password),
            )
            self._voters[voter_id] = voter
        logger.info("voter %s registered", voter_id)
        return voter

    def find(self, voter_id: str) -> Optional[Voter]:
        with self._lock:
            return self._voters.get(voter_id)

    def authenticate(self, voter_id: str, password: str) -> Optional[Voter]:
        voter = self.find(voter_id)
        if voter is not None and voter.password_hash == hash_password(password):
            return voter
        return None

    def all(self) -> List[Voter]:
        with self._lock:
            return list(self._voters.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._voters)


class VotingService:
    """
    Vote-casting flow in front of the ledger. Enforces one vote per
    registered voter; the ledger itself stores whatever it is given.
    """

    def __init__(
        self,
        ledger: Ledger,
        registry: VoterRegistry,
        parties: Sequence[str] = PARTIES,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.ledger = ledger
        self.registry = registry
        self.parties = tuple(parties)
        self._clock = clock or now_ms
        # serializes check-then-append so two sessions can't both pass has_voted
        self._cast_lock = threading.Lock()

    def has_voted(self, voter_id: str) -> bool:
        return self.ledger.has_voted(voter_id)

    def cast_vote(self, voter_id: str, choice: str, password: Optional[str] = None) -> Block:
        if password is not None:
            voter = self.registry.authenticate(voter_id, password)
            if voter is None:
                raise VotingError("Invalid voter ID or password")
        elif self.registry.find(voter_id) is None:
            raise VotingError("Voter not registered")
        if choice not in self.parties:
            raise VotingError(f"Unknown party: {choice}")

        with self._cast_lock:
            if self.ledger.has_voted(voter_id):
                raise VotingError("You have already voted.")
            try:
                block = self.ledger.append(Vote(voter_id=voter_id, choice=choice, cast_at=self._clock()))
            except MiningTimeoutError as e:
                logger.warning("mining timed out for voter %s: %s", voter_id, e)
                raise VotingError("Mining took too long and the vote was not recorded. Please try again.") from e
        logger.info("vote by %s recorded in block %d", voter_id, block.index)
        return block

    def results(self) -> Dict[str, int]:
        counts = self.ledger.results()
        tally = {party: counts.pop(party, 0) for party in self.parties}
        tally.update(counts)
        return tally
