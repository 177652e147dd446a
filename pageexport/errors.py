"""Domain-specific exceptions."""


class PageExportError(Exception):
    """Base class for all pageexport errors."""


class UsageError(PageExportError):
    """Required job input missing or an option value could not be used."""


class NavigationFatal(PageExportError):
    """The page could not be loaded well enough to be exported."""


class ExportFailure(PageExportError):
    """Playwright failed while capturing the page."""
