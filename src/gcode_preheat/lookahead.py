"""Look-ahead queue of instructions waiting to be written."""

from collections import deque
from typing import Iterator, Optional

from gcode_preheat.models.instruction import Instruction


class LookaheadQueue:
    """
    FIFO buffer of pending instructions with their summed duration.

    Holding instructions back lets the scheduler write a preheat directive
    ahead of instructions that were read before the toolchange requiring it.
    The aggregate duration is maintained on every push and pop.
    """

    def __init__(self) -> None:
        self._queue: deque[Instruction] = deque()
        self._queued_time = 0.0

    @property
    def queued_time(self) -> float:
        """Sum of the durations of all queued instructions, in seconds."""
        return self._queued_time

    def push(self, instruction: Instruction) -> None:
        """
        Append an instruction at the tail.

        Args:
            instruction: Instruction with its print_time already assigned
        """
        self._queue.append(instruction)
        self._queued_time += instruction.duration

    def front(self) -> Optional[Instruction]:
        """Get the head instruction without removing it, or None if empty."""
        if not self._queue:
            return None
        return self._queue[0]

    def pop(self) -> Optional[Instruction]:
        """
        Remove and return the head instruction.

        Returns:
            The head instruction, or None if the queue is empty
        """
        if not self._queue:
            return None

        instruction = self._queue.popleft()
        if self._queue:
            self._queued_time -= instruction.duration
        else:
            # Drop accumulated rounding error
            self._queued_time = 0.0
        return instruction

    def elapsed_since_head(self) -> float:
        """
        Time from the start of the head instruction to the end of the queue.

        Returns:
            queued_time minus the head's own duration, or 0.0 if empty
        """
        head = self.front()
        if head is None:
            return 0.0
        return self._queued_time - head.duration

    def __len__(self) -> int:
        return len(self._queue)

    def __iter__(self) -> Iterator[Instruction]:
        return iter(self._queue)
