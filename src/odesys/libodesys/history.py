"""
Fixed-capacity circular buffer of equally sized vectors.

Multistep methods need the last ``m`` states and derivatives addressable
as blocks ``0`` (newest) to ``m - 1`` (oldest).  Instead of moving every
block one slot down after each accepted step, the buffer keeps all
vectors in one ``(capacity, n)`` arena and rotates a head index:

    block j  ==  arena[(head + j) % capacity]

``push`` decrements the head, so the previous oldest row is overwritten
by the new vector and becomes block 0.  All index arithmetic for the
history lives here.
"""

from typing import Optional

import numpy as np

from .nrutils import allocate, assertEq, assertTrue, dp


class StepHistory:
    """Ring of ``capacity`` vectors of length ``size``, newest first.

    Parameters
    ----------
    capacity : int
        Number of blocks kept (the multistep order ``m``).
    size : int
        Length of each block (the system size ``n``).
    dtype : numpy dtype
        ``dp`` or ``dpc``.
    """

    __slots__ = ("capacity", "size", "dtype", "arena", "head", "filled", "_rows")

    def __init__(self, capacity: int, size: int, dtype=dp, what: str = "StepHistory"):
        assertTrue(int(capacity) >= 1, f"history capacity must be positive, got {capacity}")
        assertTrue(int(size) >= 1, f"system size must be positive, got {size}")
        self.capacity = int(capacity)
        self.size = int(size)
        self.dtype = np.dtype(dtype).type
        self.arena = allocate((self.capacity, self.size), self.dtype, what)
        self._rows = tuple(self.arena[r] for r in range(self.capacity))
        self.head = 0
        self.filled = 0

    def __len__(self) -> int:
        return self.filled

    def __repr__(self) -> str:
        return (
            f"StepHistory(capacity={self.capacity}, size={self.size}, "
            f"dtype={np.dtype(self.dtype).name}, filled={self.filled})"
        )

    @property
    def full(self) -> bool:
        return self.filled == self.capacity

    def row(self, j: int) -> int:
        """Arena row index of block *j*."""
        assertTrue(0 <= j < self.capacity, f"block index {j} out of range [0, {self.capacity})")
        return (self.head + j) % self.capacity

    def block(self, j: int) -> np.ndarray:
        """Writable view of block *j* (0 = newest)."""
        return self._rows[self.row(j)]

    @property
    def newest(self) -> np.ndarray:
        return self._rows[self.head]

    def advance(self) -> np.ndarray:
        """Rotate one slot and return the new block 0 for the caller to fill.

        The returned view still holds the previous oldest block.
        """
        self.head = (self.head - 1) % self.capacity
        if self.filled < self.capacity:
            self.filled += 1
        return self._rows[self.head]

    def push(self, vector: np.ndarray) -> np.ndarray:
        """Shift every block one slot older and store *vector* as block 0."""
        target = self.advance()
        target[:] = vector
        return target

    def validate(self, blocks) -> np.ndarray:
        """Check *blocks* can replace the history; return them as an array.

        Nothing is written, so several histories can be checked before
        any of them is loaded.
        """
        blocks = np.asarray(blocks)
        assertEq(
            blocks.shape, (self.capacity, self.size),
            msg="history blocks must have shape (capacity, size)",
        )
        assertTrue(
            np.can_cast(blocks.dtype, self.dtype, casting="same_kind"),
            f"cannot store {blocks.dtype} blocks in a {np.dtype(self.dtype).name} history",
        )
        return blocks

    def load(self, blocks) -> None:
        """Replace the whole history with *blocks*, ordered newest to oldest.

        Parameters
        ----------
        blocks : array_like, shape (capacity, size)
        """
        blocks = self.validate(blocks)
        self.head = 0
        self.arena[:] = blocks
        self.filled = self.capacity

    def ordered(self, out: Optional[np.ndarray] = None) -> np.ndarray:
        """Return the blocks newest to oldest as a ``(capacity, size)`` array."""
        if out is None:
            out = np.empty((self.capacity, self.size), dtype=self.dtype)
        order = (self.head + np.arange(self.capacity)) % self.capacity
        out[:] = self.arena[order]
        return out

    def reset(self) -> None:
        """Forget all blocks (contents are zeroed)."""
        self.arena[:] = 0.0
        self.head = 0
        self.filled = 0
