from typing import Optional


class QuantityValidator:
    """Parses the quantities typed at the console.

    Zero is accepted here because the menu uses it to cancel an action; the
    catalog itself only ever receives positive quantities.
    """

    @staticmethod
    def parse(raw: Optional[str]) -> int:
        if raw is None:
            raise ValueError("Please enter an integer.")
        try:
            value = int(raw.strip())
        except ValueError:
            raise ValueError("Please enter an integer.") from None
        if value < 0:
            raise ValueError("Please enter a number greater than or equal to 0.")
        return value

    @staticmethod
    def is_positive(quantity) -> bool:
        return isinstance(quantity, int) and not isinstance(quantity, bool) and quantity > 0


class TextValidator:
    """Very basic text validations for titles and authors."""

    @staticmethod
    def _is_non_blank(text: Optional[str]) -> bool:
        return text is not None and bool(text.strip())

    @staticmethod
    def validate_title(title: Optional[str]) -> bool:
        return TextValidator._is_non_blank(title)

    @staticmethod
    def validate_author(author: Optional[str]) -> bool:
        return TextValidator._is_non_blank(author)
