"""
Category catalog for the Trivia Quiz Bot.
Holds the category list fetched once at startup and its loading state.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from .models import ANY_CATEGORY, Category
from .trivia_api import TriviaApiClient, TriviaApiError


class CategoryCatalog:
    """Owns the fetched category list, with an "Any Category" entry first."""

    def __init__(self, api_client: TriviaApiClient):
        """
        Initialize the catalog.

        Args:
            api_client: Client used to fetch the category list
        """
        self.logger = logging.getLogger(__name__)
        self.api_client = api_client
        self.categories: List[Category] = []
        self.is_loading = False
        self.error: Optional[str] = None
        self._listeners: List[Callable[["CategoryCatalog"], Any]] = []
        self._load_task: Optional[asyncio.Task] = None

    def add_listener(self, callback: Callable[["CategoryCatalog"], Any]) -> None:
        """Register a callback invoked whenever the loading state changes."""
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[["CategoryCatalog"], Any]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    async def load(self) -> bool:
        """
        Fetch the categories, replacing any previous list or error.

        Calls made while a load is already running wait for that load.

        Returns:
            True if categories were loaded, False if the fetch failed
        """
        if self._load_task is None or self._load_task.done():
            self._load_task = asyncio.ensure_future(self._load())
        return await asyncio.shield(self._load_task)

    async def _load(self) -> bool:
        self.is_loading = True
        self.error = None
        self._notify()

        try:
            fetched = await self.api_client.fetch_categories()
        except TriviaApiError as e:
            self.logger.error(f"Failed to load categories ({e.kind.value}): {e.message}")
            self.error = e.message
            return False
        else:
            self.categories = [ANY_CATEGORY] + [c for c in fetched if c != ANY_CATEGORY]
            self.logger.info(f"Loaded {len(fetched)} categories")
            return True
        finally:
            self.is_loading = False
            self._notify()

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception as e:
                self.logger.error(f"Category listener failed: {e}", exc_info=True)

    def category_names(self) -> List[str]:
        """Display names in catalog order; just "Any Category" before a load."""
        if not self.categories:
            return [ANY_CATEGORY.name]
        return [category.name for category in self.categories]

    def find_by_name(self, name: str) -> Optional[Category]:
        """
        Look up a category by display name, ignoring case.

        Args:
            name: Display name to search for

        Returns:
            Matching category or None
        """
        wanted = name.strip().lower()
        if wanted == ANY_CATEGORY.name.lower():
            return ANY_CATEGORY
        for category in self.categories:
            if category.name.lower() == wanted:
                return category
        return None

    def get_loading_summary(self) -> Dict[str, Any]:
        """
        Get a summary of the catalog state.

        Returns:
            Dictionary with loading flags, error and category count
        """
        return {
            'is_loading': self.is_loading,
            'has_error': self.error is not None,
            'error': self.error,
            'category_count': max(len(self.categories) - 1, 0),
            'categories': self.category_names(),
        }
