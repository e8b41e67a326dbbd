# blockchain.py
import hashlib
import json
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, NamedTuple, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_DIFFICULTY = 2
GENESIS_PREVIOUS_HASH = "0"
HASH_LENGTH = 64  # hex characters in a sha256 digest


class ValidationError(ValueError):
    pass


class MiningTimeoutError(RuntimeError):
    pass


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Vote:
    voter_id: str
    choice: str
    cast_at: int

    def to_dict(self) -> Dict:
        return {"voter_id": self.voter_id, "choice": self.choice, "cast_at": self.cast_at}


GENESIS_VOTE = Vote(voter_id="genesis", choice="genesis", cast_at=0)


def content_hash(index: int, previous_hash: str, timestamp: int, payload: Vote, nonce: int) -> str:
    """
    sha256 over the JSON array [index, previous_hash, timestamp, payload, nonce].
    Payload keys are sorted so re-hashing a stored block reproduces its hash.
    """
    block_string = json.dumps(
        [index, previous_hash, timestamp, payload.to_dict(), nonce],
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(block_string.encode()).hexdigest()


class Block:
    """
    Nonce and hash change only while mining. Once the ledger seals a block
    every attribute is read-only.
    """

    def __init__(self, index: int, timestamp: int, payload: Vote, previous_hash: str):
        self._sealed = False
        self.index = index
        self.timestamp = timestamp
        self.payload = payload
        self.previous_hash = previous_hash
        self.nonce = 0
        self.hash = self.compute_hash()

    def __setattr__(self, name, value):
        if getattr(self, "_sealed", False):
            raise AttributeError(f"block {self.index} is sealed; cannot set {name!r}")
        object.__setattr__(self, name, value)

    @property
    def sealed(self) -> bool:
        return self._sealed

    def seal(self) -> None:
        object.__setattr__(self, "_sealed", True)

    def compute_hash(self) -> str:
        return content_hash(self.index, self.previous_hash, self.timestamp, self.payload, self.nonce)

    def mine(self, difficulty: int, timeout: Optional[float] = None) -> None:
        """
        Increment the nonce until the hash starts with `difficulty` zeros.
        With a timeout (seconds) the search gives up with MiningTimeoutError.
        """
        if difficulty < 0 or difficulty > HASH_LENGTH:
            raise ValidationError(f"difficulty must be between 0 and {HASH_LENGTH}, got {difficulty}")
        target = "0" * difficulty
        deadline = time.monotonic() + timeout if timeout is not None else None
        while not self.hash.startswith(target):
            if deadline is not None and time.monotonic() > deadline:
                raise MiningTimeoutError(
                    f"block {self.index} not mined within {timeout}s (nonce {self.nonce})"
                )
            self.nonce += 1
            self.hash = self.compute_hash()

    def to_dict(self) -> Dict:
        return {
            "index": self.index,
            "timestamp": self.timestamp,
            "payload": self.payload.to_dict(),
            "previous_hash": self.previous_hash,
            "nonce": self.nonce,
            "hash": self.hash,
        }

    def __repr__(self) -> str:
        return f"Block(index={self.index}, hash={self.hash[:12]}..., nonce={self.nonce})"


class ChainStats(NamedTuple):
    blocks: int
    votes: int
    difficulty: int
    valid: bool


class Ledger:
    """
    Append-only chain of mined vote blocks.

    One instance backs the whole running application; it is built by the
    caller and handed to whoever needs it. `append` is the only mutator and
    holds the lock across read-tip / mine / push, so a new block is visible
    only once fully mined. Queries take the same lock.
    """

    def __init__(
        self,
        difficulty: int = DEFAULT_DIFFICULTY,
        clock: Optional[Callable[[], int]] = None,
        mining_timeout: Optional[float] = None,
    ):
        if difficulty < 0 or difficulty > HASH_LENGTH:
            raise ValidationError(f"difficulty must be between 0 and {HASH_LENGTH}, got {difficulty}")
        self._difficulty = difficulty
        self._clock = clock or now_ms
        self.mining_timeout = mining_timeout
        self._lock = threading.RLock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._chain = [self._create_genesis_block()]

    def _create_genesis_block(self) -> Block:
        # genesis is the root of trust and is not mined
        genesis = Block(0, self._clock(), GENESIS_VOTE, GENESIS_PREVIOUS_HASH)
        genesis.seal()
        logger.debug("genesis block created: %s", genesis.hash)
        return genesis

    @property
    def difficulty(self) -> int:
        return self._difficulty

    @property
    def chain(self) -> Tuple[Block, ...]:
        with self._lock:
            return tuple(self._chain)

    def __len__(self) -> int:
        with self._lock:
            return len(self._chain)

    def __iter__(self) -> Iterator[Block]:
        return iter(self.chain)

    def latest_block(self) -> Block:
        with self._lock:
            return self._chain[-1]

    def has_voted(self, voter_id: str) -> bool:
        with self._lock:
            return any(b.payload.voter_id == voter_id for b in self._chain[1:])

    def append(self, payload: Vote) -> Block:
        """
        Mine and append a block holding `payload`.

        No eligibility or duplicate-vote checks happen here; the vote-casting
        flow must check `has_voted` before calling.
        """
        if not isinstance(payload.voter_id, str) or not payload.voter_id.strip():
            raise ValidationError("voter_id must be a non-empty string")
        if not isinstance(payload.choice, str) or not payload.choice.strip():
            raise ValidationError("choice must be a non-empty string")

        with self._lock:
            previous = self._chain[-1]
            block = Block(previous.index + 1, self._clock(), payload, previous.hash)
            started = time.monotonic()
            block.mine(self._difficulty, timeout=self.mining_timeout)
            block.seal()
            self._chain.append(block)

        logger.info(
            "block %d mined in %.3fs (nonce=%d, hash=%s...)",
            block.index, time.monotonic() - started, block.nonce, block.hash[:16],
        )
        return block

    def append_async(self, payload: Vote) -> "Future[Block]":
        """Queue `append` on the ledger's single writer thread."""
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ledger-writer")
            return self._executor.submit(self.append, payload)

    def close(self) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

    def is_valid(self) -> bool:
        return self._validate(self.chain)

    @staticmethod
    def _validate(chain: Tuple[Block, ...]) -> bool:
        for i in range(1, len(chain)):
            curr = chain[i]
            prev = chain[i - 1]
            if curr.compute_hash() != curr.hash:
                logger.warning("block %d hash does not match its contents", curr.index)
                return False
            if curr.previous_hash != prev.hash:
                logger.warning("block %d is not linked to block %d", curr.index, prev.index)
                return False
        return True

    def results(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        with self._lock:
            for block in self._chain[1:]:
                choice = block.payload.choice
                counts[choice] = counts.get(choice, 0) + 1
        return counts

    def find_block(self, query: str) -> Optional[Block]:
        """Look a block up by index, then by hash, then by voter id."""
        query = query.strip()
        if not query:
            return None
        chain = self.chain
        try:
            index = int(query)
        except ValueError:
            index = None
        if index is not None and 0 <= index < len(chain):
            return chain[index]
        for block in chain:
            if block.hash == query:
                return block
        # the genesis sentinel is not a voter
        for block in chain[1:]:
            if block.payload.voter_id == query:
                return block
        return None

    def stats(self) -> ChainStats:
        chain = self.chain
        return ChainStats(
            blocks=len(chain),
            votes=len(chain) - 1,
            difficulty=self._difficulty,
            valid=self._validate(chain),
        )
