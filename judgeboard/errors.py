class ScoringInputError(ValueError):
    """Raised when the rows handed to the scoring engine contradict each other."""
