from typing import Dict, Iterable, List, Optional, Any

from book import Book, InvalidQuantityError, InsufficientStockError


class Library:
    """In-memory catalog of books, indexed by case-folded title.

    Several books may share a title as long as their authors differ; they live
    together in one bucket in the order they were first added.
    """

    def __init__(self) -> None:
        self.books: Dict[str, List[Book]] = {}
        self._next_id = 1

    @classmethod
    def from_records(cls, records: Iterable[Book]) -> "Library":
        """Rebuild a catalog from stored records, keeping their ids."""
        lib = cls()
        for book in records:
            if book.id is None:
                book.id = lib._next_id
            lib.books.setdefault(cls._normalize_title(book.title), []).append(book)
            lib._next_id = max(lib._next_id, book.id + 1)
        return lib

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self.books.values())

    # ------------------------- Core operations ------------------------- #
    def add_book(self, title: str, author: str, quantity: int) -> bool:
        """Add copies of a title/author pair, creating the entry if needed."""
        key = self._normalize_title(title)
        bucket = self.books.get(key, [])
        match = next((book for book in bucket if book.matches_author(author)), None)
        try:
            if match is not None:
                match.add_copies(quantity)
                return True
            book = Book(title, author, quantity, book_id=self._next_id)
        except InvalidQuantityError:
            return False

        # Bucket is created only once it has an entry, so it is never empty
        self.books.setdefault(key, bucket).append(book)
        self._next_id += 1
        return True

    def find_book(self, title: str) -> List[Book]:
        """Return every book filed under `title`, or an empty list."""
        return list(self.books.get(self._normalize_title(title), []))

    def borrow_book(self, book: Book, quantity: int) -> bool:
        try:
            book.borrow(quantity)
        except (InvalidQuantityError, InsufficientStockError):
            return False
        return True

    def return_book(self, book: Book, quantity: int) -> bool:
        try:
            book.return_copies(quantity)
        except InvalidQuantityError:
            return False
        return True

    # ------------------------- Queries ------------------------- #
    def list_books(self) -> List[Book]:
        return [book for bucket in self.books.values() for book in bucket]

    def get_book(self, book_id: int) -> Optional[Book]:
        for book in self.list_books():
            if book.id == book_id:
                return book
        return None

    def get_statistics(self) -> Dict[str, Any]:
        books = self.list_books()
        return {
            "total_titles": len(self.books),
            "total_records": len(books),
            "total_copies": sum(book.copies_available for book in books),
            "unique_authors": len({book.author.casefold() for book in books}),
        }

    # ------------------------- Utilities ------------------------- #
    @staticmethod
    def _normalize_title(raw: str) -> str:
        if raw is None:
            return ""
        return raw.strip().casefold()
