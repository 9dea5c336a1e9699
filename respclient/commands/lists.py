"""List-like views over Redis list keys."""

from typing import TYPE_CHECKING, Iterable, Iterator, List

if TYPE_CHECKING:
    from respclient.commands.client import CommandClient


class ListView:
    """
    A live view of one list key. Every operation is a round trip; nothing
    is cached locally.
    """

    def __init__(self, client: "CommandClient", key: str):
        self.client = client
        self.key = key

    def append(self, value: str) -> int:
        """Add a value at the tail (RPUSH). Returns the new length."""
        return self.client.rpush(self.key, value)

    def extend(self, values: Iterable[str]) -> int:
        values = list(values)
        if not values:
            return len(self)
        return self.client.rpush(self.key, *values)

    def clear(self) -> None:
        # start > stop empties the list whatever its length
        self.client.ltrim(self.key, 1, 0)

    def all(self) -> List[str]:
        return self.client.lrange(self.key, 0, -1)

    def __len__(self) -> int:
        return self.client.llen(self.key)

    def __iter__(self) -> Iterator[str]:
        return iter(self.all())

    def __repr__(self) -> str:
        return f"ListView(key={self.key!r})"


class Lists:
    """Key-indexed access to list views: ``client.lists["urn:characters"]``."""

    def __init__(self, client: "CommandClient"):
        self.client = client

    def __getitem__(self, key: str) -> ListView:
        return ListView(self.client, key)
