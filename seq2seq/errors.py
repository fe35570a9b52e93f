"""Exceptions raised by the cost/gradient core. All are fail-fast caller contract violations."""


class Seq2SeqError(Exception):
    """Base class for all errors raised by the seq2seq core."""


class ConfigurationError(Seq2SeqError):
    """Invalid or conflicting model options (e.g. attention together with a positional mode)."""


class ShapeError(Seq2SeqError):
    """Batch, hidden or vocabulary dimensions disagree between weights, embeddings and input."""


class MaskError(Seq2SeqError):
    """A timestep has no real token where the selected mode needs at least one."""


class AggregationOverflowError(Seq2SeqError):
    """More embedding-gradient contributions than the pre-counted capacity."""
