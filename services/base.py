"""Base services container for dependency injection."""

from config import Config
from db.manager import DatabaseManager


class Services:
    """Container for all application services.

    This class provides a centralized way to access all services and makes
    it easy to inject a test database manager.

    Args:
        config: Application configuration object.
        db_manager: Optional database manager for testing. If provided, config is
            only used for category settings.
    """

    def __init__(self, config: Config, db_manager=None):
        """Initialize services with configuration.

        Args:
            config: Config object containing application configuration.
            db_manager: Optional database manager for dependency injection (testing).
                       If None, creates DatabaseManager from config.
        """
        self.config = config
        self.db_manager = db_manager or DatabaseManager(config)

        # Lazy import to avoid circular dependencies
        from services.categories import CategoryService
        from services.category_tree import CategoryTree
        from services.expenses import ExpenseService

        self.categories = CategoryService(self.db_manager)
        self.expenses = ExpenseService(self.db_manager)
        self.category_tree = CategoryTree(
            self.categories,
            max_depth=config.max_depth,
            default_icon=config.default_icon,
            default_color=config.default_color,
            indent_marker=config.indent_marker,
        )
