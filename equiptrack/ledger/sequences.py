class IdSequence:
    """
    Independent monotonically increasing id sequence for one entity kind.
    Ids start at 1; replay feeds observed ids back so new ids never collide.
    """
    def __init__(self, kind: str):
        self.kind = kind
        self._last = 0

    @property
    def last(self) -> int:
        return self._last

    def next(self) -> int:
        self._last += 1
        return self._last

    def observe(self, value: int) -> None:
        if value > self._last:
            self._last = value

    def __repr__(self) -> str:
        return f"IdSequence(kind={self.kind!r}, last={self._last})"
