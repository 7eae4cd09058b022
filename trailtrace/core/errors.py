# trailtrace/core/errors.py


class InvalidInputError(ValueError):
    """
    Raised at the engine boundary for input the pipeline cannot accept
    (too few trace points, bad canvas size, inconsistent projection).
    """


class SynthesisCancelled(Exception):
    """
    The caller's cancellation signal was set while a synthesis was running.

    This is an outcome, not a failure: no partial route is produced.
    """

    def __init__(self, stage: str) -> None:
        super().__init__(f"Route synthesis cancelled during {stage}")
        self.stage = stage
