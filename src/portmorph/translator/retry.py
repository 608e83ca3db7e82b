"""
Retry, backoff and prompt-degradation policy.
"""

from dataclasses import dataclass, field

from portmorph.config.models import PortingConfig, PromptMode

DEFAULT_BACKOFF = (0.0, 2.0, 5.0, 10.0)


@dataclass
class RetryPolicy:
    """
    Bounded attempt loop settings for one file or chunk.

    ``backoff_schedule[n - 1]`` is the wait before attempt ``n``; attempts
    past the end of the schedule reuse its last entry. The schedule is made
    non-decreasing on construction.
    """

    max_attempts: int = 3
    backoff_schedule: tuple[float, ...] = field(default=DEFAULT_BACKOFF)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        schedule = list(self.backoff_schedule) or [0.0]
        for i in range(1, len(schedule)):
            schedule[i] = max(schedule[i], schedule[i - 1])
        self.backoff_schedule = tuple(schedule)

    @classmethod
    def for_file(cls, config: PortingConfig) -> "RetryPolicy":
        return cls(config.max_attempts, tuple(config.backoff_schedule))

    @classmethod
    def for_chunk(cls, config: PortingConfig) -> "RetryPolicy":
        return cls(config.chunk_max_attempts, tuple(config.backoff_schedule))

    def attempts(self) -> range:
        return range(1, self.max_attempts + 1)

    def backoff_seconds(self, attempt: int) -> float:
        """Seconds to wait before ``attempt`` (1 based)."""
        index = min(max(attempt, 1), len(self.backoff_schedule)) - 1
        return self.backoff_schedule[index]

    @staticmethod
    def mode_for(attempt: int, initial_mode: PromptMode) -> PromptMode:
        """Prompt mode for ``attempt``: one step less detailed per retry."""
        mode = initial_mode
        for _ in range(attempt - 1):
            mode = mode.degrade()
        return mode


def initial_mode(estimate: int, config: PortingConfig) -> PromptMode:
    """Starting prompt mode for a prompt estimate."""
    if estimate > config.minimal_prompt_tokens:
        return PromptMode.MINIMAL
    if estimate > config.reduced_prompt_tokens:
        return PromptMode.REDUCED
    return PromptMode.FULL
