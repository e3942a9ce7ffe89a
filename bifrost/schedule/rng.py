"""
Bifrost Deterministic RNG

ChaCha20 keystream generator seeded from the epoch number. Every participant
seeding with the same epoch reads the same infinite sequence of words, so
draws are reproducible and publicly verifiable. The output is not secret and
must not be used for anything security sensitive.

Stream layout:
    key      = 32-byte seed (epoch as 8 little-endian bytes, zero padded)
    nonce    = 0, block counter starting at 0, 20 rounds
    u32      = consecutive little-endian keystream words
    u64      = two consecutive u32 words, low word first
"""

import struct

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms

from ..constants import EPOCH_SEED_BYTES, ENDIAN, RNG_SEED_LENGTH, U64_MAX

# Keystream bytes produced per refill (64 ChaCha blocks)
_CHUNK_BYTES = 4096
_CHUNK_WORDS = _CHUNK_BYTES // 4
_WORD_STRUCT = struct.Struct(f"<{_CHUNK_WORDS}I")
_ZEROS = bytes(_CHUNK_BYTES)


def epoch_seed(epoch: int) -> bytes:
    """32-byte seed for an epoch: little-endian epoch followed by zeros."""
    if epoch < 0 or epoch > U64_MAX:
        raise ValueError(f"Epoch {epoch} is outside the u64 range")
    return epoch.to_bytes(EPOCH_SEED_BYTES, ENDIAN) + bytes(RNG_SEED_LENGTH - EPOCH_SEED_BYTES)


class ChaChaRng:
    """
    Seeded ChaCha20 pseudorandom stream.

    Narrow interface: :meth:`from_seed`, :meth:`next_u32`, :meth:`next_u64`
    and :meth:`uniform_u64`.
    """

    def __init__(self, seed: bytes):
        if len(seed) != RNG_SEED_LENGTH:
            raise ValueError(f"Seed must be {RNG_SEED_LENGTH} bytes, got {len(seed)}")
        self._seed = bytes(seed)
        # 16-byte nonce field: 4-byte block counter + 12-byte nonce, all zero
        cipher = Cipher(algorithms.ChaCha20(self._seed, bytes(16)), mode=None)
        self._keystream = cipher.encryptor()
        self._words = ()
        self._index = _CHUNK_WORDS

    @classmethod
    def from_seed(cls, seed: bytes) -> "ChaChaRng":
        return cls(seed)

    @classmethod
    def from_epoch(cls, epoch: int) -> "ChaChaRng":
        return cls(epoch_seed(epoch))

    @property
    def seed(self) -> bytes:
        return self._seed

    def _refill(self) -> None:
        self._words = _WORD_STRUCT.unpack(self._keystream.update(_ZEROS))
        self._index = 0

    def next_u32(self) -> int:
        if self._index >= _CHUNK_WORDS:
            self._refill()
        word = self._words[self._index]
        self._index += 1
        return word

    def next_u64(self) -> int:
        low = self.next_u32()
        high = self.next_u32()
        return (high << 32) | low

    def uniform_u64(self, bound: int) -> int:
        """
        Unbiased draw in ``[0, bound)``.

        Widening-multiply rejection sampling: the high 64 bits of
        ``v * bound`` are the candidate, accepted when the low 64 bits fall
        inside the largest multiple of ``bound`` that fits in 2**64.

        Args:
            bound: Exclusive upper bound, ``1 <= bound <= 2**64 - 1``

        Returns:
            Draw in ``[0, bound)``
        """
        if bound <= 0 or bound > U64_MAX:
            raise ValueError(f"Bound {bound} must be in [1, 2**64)")

        zone = U64_MAX - ((U64_MAX - bound + 1) % bound)
        while True:
            product = self.next_u64() * bound
            if (product & U64_MAX) <= zone:
                return product >> 64
