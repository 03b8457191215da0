"""Per-category hawl (one lunar year of holding) flags."""
from zakat_engine.constants import ASSET_CATEGORIES
from zakat_engine.errors import InvalidInput


class HawlTracker:
    """Boolean hawl flag per asset category, defaulting to met."""

    def __init__(self, flags: dict | None = None):
        self._flags = {category: True for category in ASSET_CATEGORIES}
        for category, value in (flags or {}).items():
            if category in self._flags and isinstance(value, bool):
                self._flags[category] = value

    def is_met(self, category: str) -> bool:
        return self._flags.get(category, True)

    def set(self, category: str, met: bool) -> None:
        """Set a category's flag.

        Raises:
            InvalidInput: For an unknown category or a non-boolean flag.
        """
        if category not in self._flags:
            raise InvalidInput(f"Unknown asset category: {category}")
        if not isinstance(met, bool):
            raise InvalidInput('Hawl status must be true or false')
        self._flags[category] = met

    def to_dict(self) -> dict:
        return dict(self._flags)
