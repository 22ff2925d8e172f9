"""Document extraction from parsed source."""

from semindex.index._internal.extraction.documents import (
    CONTENT_TEMPLATE,
    DocumentExtractor,
    extract,
    render_content,
)

__all__ = ["CONTENT_TEMPLATE", "DocumentExtractor", "extract", "render_content"]
