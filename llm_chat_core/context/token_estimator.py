"""
Approximate token counting.

Real tokenizers use byte-pair encoding; for context-window management a
word/punctuation heuristic is close enough:

- each whitespace-separated word costs ~1.3 tokens
- each punctuation mark costs one extra token
- the total is rounded up
"""

# Conservative context budget for conversation history
MAX_CONTEXT_TOKENS = 3000

PUNCTUATION = frozenset('.,!?;:-()[]{}"\'')

# 1.3 tokens per word, kept as a ratio of integers to avoid float drift
_WORD_TOKENS_NUMERATOR = 13
_WORD_TOKENS_DENOMINATOR = 10


class TokenEstimator:
    """Word and punctuation based token estimator."""

    @staticmethod
    def estimate(text: str) -> int:
        """
        Estimate the token cost of ``text``.

        Args:
            text: Text to measure

        Returns:
            ceil(words * 1.3 + punctuation), or 0 for blank text
        """
        if not text or not text.strip():
            return 0

        word_count = len(text.split())
        punctuation_count = sum(1 for char in text if char in PUNCTUATION)

        scaled = (word_count * _WORD_TOKENS_NUMERATOR
                  + punctuation_count * _WORD_TOKENS_DENOMINATOR)
        return -(-scaled // _WORD_TOKENS_DENOMINATOR)

    @classmethod
    def exceeds_limit(cls, text: str, limit: int = MAX_CONTEXT_TOKENS) -> bool:
        """Whether the estimate for ``text`` is strictly above ``limit``."""
        return cls.estimate(text) > limit
