"""Base provider interface for document link resolution.

To add support for a new document-sharing site, create a new module in this
package that subclasses ``BaseProvider`` and register it in
``scribdlink/providers/__init__.py``.
"""

from __future__ import annotations

import abc


class BaseProvider(abc.ABC):
    """Abstract base for all link-resolution providers."""

    @staticmethod
    @abc.abstractmethod
    def can_handle(url: str) -> bool:
        """Return True if this provider knows how to handle *url*."""

    @abc.abstractmethod
    def target_url(self, url: str) -> str:
        """Build the generator URL the browser should open for *url*.

        Parameters
        ----------
        url:
            The public document URL (e.g. a Scribd link).

        Returns
        -------
        str
            An absolute ``https`` URL on the redirection service whose
            network traffic carries the direct download link.

        Raises
        ------
        InvalidReferenceFormat
            If *url* is not a document URL this provider understands.
        """
