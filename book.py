from __future__ import annotations


class InvalidQuantityError(ValueError):
    """Raised when a quantity is not a positive integer."""

    def __init__(self, quantity) -> None:
        super().__init__(f"Quantity must be a positive integer, got {quantity!r}.")
        self.quantity = quantity


class InsufficientStockError(ValueError):
    """Raised when a borrow asks for more copies than are on the shelf."""

    def __init__(self, available: int, requested: int) -> None:
        super().__init__(f"Only {available} copies available (requested: {requested}).")
        self.available = available
        self.requested = requested


def _check_quantity(quantity) -> int:
    # bool is an int subclass; True must not count as one copy
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantityError(quantity)
    return quantity


class Book:
    """A single title/author entry in the catalog and its available copies."""

    def __init__(self, title: str, author: str, copies_available: int, book_id: int | None = None) -> None:
        self._title = title.strip()
        self._author = author.strip()
        self.copies_available = _check_quantity(copies_available)
        self.id = book_id

    @property
    def title(self) -> str:
        return self._title

    @property
    def author(self) -> str:
        return self._author

    def __str__(self) -> str:
        return f"{self.title} by {self.author} ({self.copies_available} available)"

    def __repr__(self) -> str:
        return f"Book(id={self.id!r}, title={self.title!r}, author={self.author!r}, copies_available={self.copies_available!r})"

    def matches_author(self, author: str) -> bool:
        return self._author.casefold() == author.strip().casefold()

    # ------------------------- Stock changes ------------------------- #
    def add_copies(self, quantity: int) -> None:
        self.copies_available += _check_quantity(quantity)

    def borrow(self, quantity: int) -> None:
        """Take `quantity` copies off the shelf.

        Raises InvalidQuantityError or InsufficientStockError and leaves the
        count untouched when the request can't be met.
        """
        _check_quantity(quantity)
        if quantity > self.copies_available:
            raise InsufficientStockError(self.copies_available, quantity)
        self.copies_available -= quantity

    def return_copies(self, quantity: int) -> None:
        # No upper bound: returns are never refused for a valid quantity
        self.copies_available += _check_quantity(quantity)

    # ------------------------- Serialization ------------------------- #
    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "copies_available": self.copies_available,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Book":
        """Rebuild a stored record. Stored records may sit at zero stock."""
        count = int(data.get("copies_available") or 0)
        if count < 0:
            raise ValueError(f"Stored copy count cannot be negative: {count}")
        book = cls.__new__(cls)
        book._title = data["title"].strip()
        book._author = data["author"].strip()
        book.copies_available = count
        book.id = data.get("id")
        return book
